"""Direction cosine matrices and quaternion conversion.

Conventions:
- Quaternions: [q0, q1, q2, q3] arrays with q0 the scalar part
  (Hamilton product, scalar first).
- DCMs are *frame* rotations: ``A @ v`` re-expresses a fixed vector v
  in the rotated frame.  The point (active) rotation matrix is ``A.T``.
- Composition: ``A(q * p) = A(p) @ A(q)``, i.e. rotating by q and then
  by p in frame terms.

The DCM is built with the diagonal in the form ``2(q0^2 + qi^2) - 1``,
which equals the usual form for unit quaternions and is the function
whose derivative ``vehstate.attitude.pointing_model`` linearizes.
"""

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import DimensionError, SingularQuaternionError

# Smallest branch denominator term accepted by dcm_to_quat.
KAPPA = 0.25


def quat_to_dcm(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Frame rotation DCM of a quaternion.

    Args:
        q: Unit quaternion [q0, q1, q2, q3].

    Returns:
        3x3 DCM A such that ``v_rotated_frame = A @ v``.

    Example:
        >>> A = quat_to_dcm(np.array([np.cos(0.5), 0.0, 0.0, np.sin(0.5)]))
        >>> np.allclose(A, rot_z(1.0))
        True
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise DimensionError(f"Expected quaternion of shape (4,), got {q.shape}")
    q0, q1, q2, q3 = q

    return np.array(
        [
            [2 * (q0 * q0 + q1 * q1) - 1, 2 * (q1 * q2 + q0 * q3), 2 * (q1 * q3 - q0 * q2)],
            [2 * (q1 * q2 - q0 * q3), 2 * (q0 * q0 + q2 * q2) - 1, 2 * (q2 * q3 + q0 * q1)],
            [2 * (q1 * q3 + q0 * q2), 2 * (q2 * q3 - q0 * q1), 2 * (q0 * q0 + q3 * q3) - 1],
        ],
        dtype=np.float64,
    )


def dcm_to_quat(dcm: NDArray[np.float64], kappa: float = KAPPA) -> NDArray[np.float64]:
    """Quaternion from a frame rotation DCM.

    Shepperd style extraction: the first of the four candidate terms
    ``1 + trace`` and ``1 + 2 m_ii - trace`` that exceeds ``kappa`` is used
    as the square root denominator, so the division is never by a small
    number.  For a proper rotation the largest of the four terms is at
    least 1, so some branch always clears the default threshold.

    Args:
        dcm: 3x3 frame rotation DCM.
        kappa: Branch threshold.

    Returns:
        Quaternion [q0, q1, q2, q3].  Its sign is not standardized.

    Raises:
        DimensionError: If dcm is not 3x3.
        SingularQuaternionError: If no branch term exceeds ``kappa``.
    """
    m = np.asarray(dcm, dtype=np.float64)
    if m.shape != (3, 3):
        raise DimensionError(f"Expected 3x3 matrix, got shape {m.shape}")

    t = 1.0 + m[0, 0] + m[1, 1] + m[2, 2]
    if t > kappa:
        s = np.sqrt(t)
        d4 = 0.5 / s
        return np.array(
            [0.5 * s, (m[1, 2] - m[2, 1]) * d4, (m[2, 0] - m[0, 2]) * d4, (m[0, 1] - m[1, 0]) * d4]
        )

    t = 1.0 + m[0, 0] - m[1, 1] - m[2, 2]
    if t > kappa:
        s = np.sqrt(t)
        d4 = 0.5 / s
        return np.array(
            [(m[1, 2] - m[2, 1]) * d4, 0.5 * s, (m[0, 1] + m[1, 0]) * d4, (m[0, 2] + m[2, 0]) * d4]
        )

    t = 1.0 - m[0, 0] + m[1, 1] - m[2, 2]
    if t > kappa:
        s = np.sqrt(t)
        d4 = 0.5 / s
        return np.array(
            [(m[2, 0] - m[0, 2]) * d4, (m[0, 1] + m[1, 0]) * d4, 0.5 * s, (m[1, 2] + m[2, 1]) * d4]
        )

    t = 1.0 - m[0, 0] - m[1, 1] + m[2, 2]
    if t > kappa:
        s = np.sqrt(t)
        d4 = 0.5 / s
        return np.array(
            [(m[0, 1] - m[1, 0]) * d4, (m[0, 2] + m[2, 0]) * d4, (m[1, 2] + m[2, 1]) * d4, 0.5 * s]
        )

    raise SingularQuaternionError(
        f"Cannot extract quaternion: no branch term exceeds kappa={kappa}"
    )


def rot_x(angle: float) -> NDArray[np.float64]:
    """Elementary frame rotation about the x axis."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, s], [0.0, -s, c]])


def rot_y(angle: float) -> NDArray[np.float64]:
    """Elementary frame rotation about the y axis."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, -s], [0.0, 1.0, 0.0], [s, 0.0, c]])


def rot_z(angle: float) -> NDArray[np.float64]:
    """Elementary frame rotation about the z axis."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, s, 0.0], [-s, c, 0.0], [0.0, 0.0, 1.0]])


def skew(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Cross product matrix: ``skew(a) @ b == np.cross(a, b)``."""
    x, y, z = np.asarray(v, dtype=np.float64)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])

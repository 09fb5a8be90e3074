"""Quaternion value type.

``Quaternion`` holds four float components ``(scalar, i, j, k)`` and is
mutable: normalization, standardization and re-assignment happen in
place and return ``self`` where chaining is convenient.  Products and
sums return new instances.

Conventions are those of ``vehstate.rotations.dcm``: Hamilton product,
scalar first, and ``rotation_matrix()`` is the frame rotation DCM.

- ``frame_rotate(v)``: express a fixed vector in the rotated frame,
  ``A @ v``.
- ``vector_rotate(v)``: rotate the vector itself within a fixed frame,
  ``A.T @ v``.

With ``q_ab`` the rotation from frame a to frame b and ``q_bc`` the
rotation from b to c, ``q_ab * q_bc`` is the rotation from a to c.

Example:
    >>> q = Quaternion.from_axis_angle(np.pi / 2, [0.0, 0.0, 1.0])
    >>> np.round(q.frame_rotate([1.0, 0.0, 0.0]), 12)
    array([ 0., -1.,  0.])
    >>> np.round(q.vector_rotate([1.0, 0.0, 0.0]), 12)
    array([0., 1., 0.])
"""

from typing import Iterable, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import DimensionError, SingularQuaternionError
from vehstate.rotations.dcm import KAPPA, dcm_to_quat, quat_to_dcm

# Squared norm deviation tolerated by normalize_if_drifted.
DRIFT_TOL = 1e-6

_BASIS_AXES = {
    "x": (1.0, 0.0, 0.0),
    "y": (0.0, 1.0, 0.0),
    "z": (0.0, 0.0, 1.0),
}


def _as_3vector(v) -> NDArray[np.float64]:
    arr = np.asarray(v, dtype=np.float64).ravel()
    if arr.shape != (3,):
        raise DimensionError(f"Expected 3-vector, got shape {arr.shape}")
    return arr


class Quaternion:
    """Rotation quaternion ``scalar + i*I + j*J + k*K``.

    Args:
        scalar: Scalar component, 1 by default (identity).
        i, j, k: Vector components.
    """

    __hash__ = None

    def __init__(self, scalar: float = 1.0, i: float = 0.0, j: float = 0.0, k: float = 0.0):
        self._q = np.array([scalar, i, j, k], dtype=np.float64)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls) -> "Quaternion":
        return cls()

    @classmethod
    def from_array(cls, q) -> "Quaternion":
        """From a [scalar, i, j, k] array-like."""
        arr = np.asarray(q, dtype=np.float64).ravel()
        if arr.shape != (4,):
            raise DimensionError(f"Expected quaternion of shape (4,), got {arr.shape}")
        return cls(*arr)

    @classmethod
    def from_axis_angle(cls, angle: float, axis) -> "Quaternion":
        """Rotation by ``angle`` radians about ``axis``.

        The axis is unitized.  A zero axis gives the identity.
        """
        quat = cls()
        quat.set_axis_angle(angle, axis)
        return quat

    @classmethod
    def from_basis_axis(cls, angle: float, axis: str) -> "Quaternion":
        """Rotation about one of the Cartesian axes ``"x"``, ``"y"`` or ``"z"``."""
        try:
            unit = _BASIS_AXES[axis.lower()]
        except KeyError:
            raise ValueError(f"Unknown axis {axis!r}, expected one of 'x', 'y', 'z'") from None
        return cls.from_axis_angle(angle, unit)

    @classmethod
    def from_rotation_matrix(cls, dcm, kappa: float = KAPPA) -> "Quaternion":
        quat = cls()
        quat.set_from_rotation_matrix(dcm, kappa)
        return quat

    def set(self, other: Union["Quaternion", Iterable[float]]) -> "Quaternion":
        """Copy components from another quaternion or a 4 element array."""
        if isinstance(other, Quaternion):
            self._q[:] = other._q
        else:
            self._q[:] = Quaternion.from_array(other)._q
        return self

    def set_axis_angle(self, angle: float, axis) -> "Quaternion":
        ax = _as_3vector(axis)
        mag = np.linalg.norm(ax)
        half = 0.5 * angle
        if mag == 0.0:
            self._q[:] = (1.0, 0.0, 0.0, 0.0)
        else:
            self._q[0] = np.cos(half)
            self._q[1:] = ax / mag * np.sin(half)
        return self

    def set_from_rotation_matrix(self, dcm, kappa: float = KAPPA) -> "Quaternion":
        """Set from a frame rotation DCM.

        Raises:
            SingularQuaternionError: If no extraction branch clears ``kappa``.
        """
        self._q[:] = dcm_to_quat(np.asarray(dcm, dtype=np.float64), kappa)
        return self

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def scalar(self) -> float:
        return float(self._q[0])

    @property
    def i(self) -> float:
        return float(self._q[1])

    @property
    def j(self) -> float:
        return float(self._q[2])

    @property
    def k(self) -> float:
        return float(self._q[3])

    @property
    def vector(self) -> NDArray[np.float64]:
        """Copy of the vector part [i, j, k]."""
        return self._q[1:].copy()

    @property
    def values(self) -> NDArray[np.float64]:
        """Copy of [scalar, i, j, k]."""
        return self._q.copy()

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self._q.copy()
        return self._q.astype(dtype)

    def __iter__(self):
        return iter(self._q.tolist())

    def copy(self) -> "Quaternion":
        return Quaternion(*self._q)

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def __mul__(self, other) -> "Quaternion":
        """Hamilton product with a quaternion, or scaling by a scalar."""
        if isinstance(other, Quaternion):
            a0, a1, a2, a3 = self._q
            b0, b1, b2, b3 = other._q
            return Quaternion(
                a0 * b0 - a1 * b1 - a2 * b2 - a3 * b3,
                a0 * b1 + a1 * b0 + a2 * b3 - a3 * b2,
                a0 * b2 - a1 * b3 + a2 * b0 + a3 * b1,
                a0 * b3 + a1 * b2 - a2 * b1 + a3 * b0,
            )
        if isinstance(other, (int, float, np.number)):
            return Quaternion(*(self._q * float(other)))
        return NotImplemented

    def __rmul__(self, other) -> "Quaternion":
        if isinstance(other, (int, float, np.number)):
            return Quaternion(*(self._q * float(other)))
        return NotImplemented

    def __add__(self, other: "Quaternion") -> "Quaternion":
        if not isinstance(other, Quaternion):
            return NotImplemented
        return Quaternion(*(self._q + other._q))

    def __sub__(self, other: "Quaternion") -> "Quaternion":
        if not isinstance(other, Quaternion):
            return NotImplemented
        return Quaternion(*(self._q - other._q))

    def __neg__(self) -> "Quaternion":
        return Quaternion(*(-self._q))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Quaternion):
            return NotImplemented
        return bool(np.all(self._q == other._q))

    def allclose(self, other: "Quaternion", atol: float = 1e-12, sign_invariant: bool = False) -> bool:
        """Component-wise closeness; optionally treat q and -q as equal."""
        close = np.allclose(self._q, other._q, rtol=0.0, atol=atol)
        if sign_invariant and not close:
            close = np.allclose(self._q, -other._q, rtol=0.0, atol=atol)
        return bool(close)

    def conjugate(self) -> "Quaternion":
        return Quaternion(self._q[0], -self._q[1], -self._q[2], -self._q[3])

    def norm_sq(self) -> float:
        return float(self._q @ self._q)

    def norm(self) -> float:
        return float(np.sqrt(self._q @ self._q))

    def inverse(self) -> "Quaternion":
        """Multiplicative inverse, conjugate over squared norm.

        Raises:
            SingularQuaternionError: If the quaternion is zero.
        """
        nsq = self.norm_sq()
        if nsq == 0.0:
            raise SingularQuaternionError("Cannot invert a zero quaternion")
        return self.conjugate() * (1.0 / nsq)

    def normalize(self) -> "Quaternion":
        """Scale to unit norm in place.

        Raises:
            SingularQuaternionError: If the quaternion is zero.
        """
        mag = self.norm()
        if mag == 0.0:
            raise SingularQuaternionError("Cannot normalize a zero quaternion")
        self._q /= mag
        return self

    def normalize_if_drifted(self, tol: float = DRIFT_TOL) -> bool:
        """Normalize only if ``|norm^2 - 1| > tol``.

        Returns:
            True if the quaternion was renormalized.
        """
        if abs(self.norm_sq() - 1.0) > tol:
            self.normalize()
            return True
        return False

    def standardize(self) -> "Quaternion":
        """Flip the sign so the scalar part is non-negative."""
        if self._q[0] < 0.0:
            self._q *= -1.0
        return self

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def angle(self) -> float:
        """Rotation angle in radians, in [0, 2*pi] for a unit quaternion."""
        return float(2.0 * np.arccos(np.clip(self._q[0], -1.0, 1.0)))

    def axis_angle(self) -> Tuple[NDArray[np.float64], float]:
        """Rotation axis and angle.

        The identity rotation returns a zero axis and zero angle.
        """
        angle = self.angle()
        s = np.sin(0.5 * angle)
        if abs(s) < 1e-15:
            return np.zeros(3), 0.0
        return self._q[1:] / s, angle

    def rotation_matrix(self) -> NDArray[np.float64]:
        """Frame rotation DCM."""
        return quat_to_dcm(self._q)

    def frame_rotate(self, v) -> NDArray[np.float64]:
        """Express a fixed vector in the rotated frame."""
        return self.rotation_matrix() @ _as_3vector(v)

    def vector_rotate(self, v) -> NDArray[np.float64]:
        """Rotate a vector within a fixed frame."""
        return self.rotation_matrix().T @ _as_3vector(v)

    def __repr__(self) -> str:
        q0, q1, q2, q3 = self._q
        return f"Quaternion({q0!r}, {q1!r}, {q2!r}, {q3!r})"

"""
Pointing measurement model and its partial derivatives.

For a reference vector x in the master frame, a master-to-body attitude
q and a body-to-sensor orientation q_bs, the predicted measurement is the
first two components of

    y = A(q_bs) @ A(q) @ x

The partials below are the exact derivatives of that model for each
parameterization used by the estimators in ``vehstate.attitude.wls``.
"""

import logging

import numpy as np
from numpy.typing import NDArray

from vehstate.rotations.dcm import quat_to_dcm, skew

logger = logging.getLogger(__name__)


def predict_pointing(
    xyz: NDArray[np.float64], q_bs: NDArray[np.float64], q: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Predicted [x, y] sensor measurement of reference vector ``xyz``."""
    body = quat_to_dcm(q) @ np.asarray(xyz, dtype=np.float64)
    return (quat_to_dcm(q_bs) @ body)[:2]


def _body_partials(xyz: NDArray[np.float64], q: NDArray[np.float64]) -> NDArray[np.float64]:
    """d(A(q) @ xyz)/dq, 3x4."""
    x, y, z = xyz
    q0, q1, q2, q3 = q
    return 2.0 * np.array(
        [
            [2 * x * q0 + y * q3 - z * q2, 2 * x * q1 + y * q2 + z * q3, y * q1 - z * q0, z * q1 + y * q0],
            [2 * y * q0 + z * q1 - x * q3, x * q2 + z * q0, x * q1 + 2 * y * q2 + z * q3, z * q2 - x * q0],
            [2 * z * q0 + x * q2 - y * q1, x * q3 - y * q0, y * q3 + x * q0, x * q1 + y * q2 + 2 * z * q3],
        ]
    )


def quaternion_partials(
    xyz: NDArray[np.float64], q_bs: NDArray[np.float64], q: NDArray[np.float64]
) -> NDArray[np.float64]:
    """
    Partials of the predicted measurement with respect to all four
    quaternion components.

    Returns:
        2x4 Jacobian.
    """
    dpdb = quat_to_dcm(q_bs)[:2]
    return dpdb @ _body_partials(np.asarray(xyz, dtype=np.float64), np.asarray(q, dtype=np.float64))


def vector_part_partials(
    xyz: NDArray[np.float64], q_bs: NDArray[np.float64], q: NDArray[np.float64]
) -> NDArray[np.float64]:
    """
    Partials with respect to the vector part of q, with the scalar part
    tied to it by ``q0 = sqrt(1 - |v|^2)``.

    Requires q0 != 0.

    Returns:
        2x3 Jacobian.
    """
    q = np.asarray(q, dtype=np.float64)
    j4 = quaternion_partials(xyz, q_bs, q)
    dq0_dv = -q[1:] / q[0]
    return j4[:, 1:] + np.outer(j4[:, 0], dq0_dv)


def rotation_partials(
    xyz: NDArray[np.float64], q_bs: NDArray[np.float64], q: NDArray[np.float64]
) -> NDArray[np.float64]:
    """
    Partials with respect to a small correction e applied as
    ``q * [1, e]``.

    Returns:
        2x3 Jacobian.
    """
    body = quat_to_dcm(q) @ np.asarray(xyz, dtype=np.float64)
    dpdb = quat_to_dcm(q_bs)[:2]
    return dpdb @ (2.0 * skew(body))


def left_product_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Matrix L(q) with ``L(q) @ p`` equal to the Hamilton product q * p."""
    q0, q1, q2, q3 = q
    return np.array(
        [
            [q0, -q1, -q2, -q3],
            [q1, q0, -q3, q2],
            [q2, q3, q0, -q1],
            [q3, -q2, q1, q0],
        ]
    )


def sensor_weight_matrix(sigma: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    2x2 measurement weight matrix from per-axis sigmas.

    Weights are ``1/sigma^2`` when both sigmas are positive.  If either is
    not, the sensor is unweighted on both axes (identity).
    """
    sx, sy = np.asarray(sigma, dtype=np.float64).ravel()
    if sx > 0.0 and sy > 0.0:
        return np.diag([1.0 / (sx * sx), 1.0 / (sy * sy)])
    logger.debug(f"Sensor sigma ({sx}, {sy}) not both positive, using unit weights")
    return np.eye(2)

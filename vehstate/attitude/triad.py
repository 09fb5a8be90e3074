"""
TRIAD deterministic attitude solution.

Two non-parallel vectors known in both the master frame and the body frame
fix the rotation between the frames.  Each pair is expanded into an
orthonormal triad

    t1 = v1
    t2 = (v1 x v2) / |v1 x v2|
    t3 = t1 x t2

and the master-to-body DCM is ``[o1 o2 o3] @ [r1 r2 r3]'`` with r the
reference triad and o the observed triad.  The first vector of each
pair is matched exactly; the second only contributes its plane.
"""

import logging
from typing import Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from vehstate.attitude.base import (
    INSUFFICIENT_DATA,
    AttitudeSolver,
    EstimatorStatus,
    count_valid_sensors,
)
from vehstate.errors import DimensionError, SingularMatrixError
from vehstate.rotations.dcm import KAPPA
from vehstate.sensors.pointing import PointingObservationSource

logger = logging.getLogger(__name__)

# Relative cross product magnitude below which two vectors are parallel.
PARALLEL_TOL = 1e-12


def _triad_basis(v1: NDArray[np.float64], v2: NDArray[np.float64]) -> NDArray[np.float64]:
    """Orthonormal triad as the rows of a 3x3 matrix."""
    a = np.asarray(v1, dtype=np.float64).ravel()
    b = np.asarray(v2, dtype=np.float64).ravel()
    if a.shape != (3,) or b.shape != (3,):
        raise DimensionError(f"TRIAD vectors must be 3-vectors, got {a.shape} and {b.shape}")

    na = np.linalg.norm(a)
    nb = np.linalg.norm(b)
    c = np.cross(a, b)
    nc = np.linalg.norm(c)
    if na == 0.0 or nb == 0.0 or nc < PARALLEL_TOL * na * nb:
        raise SingularMatrixError("TRIAD vectors are zero or parallel")

    t1 = a / na
    t2 = c / nc
    t3 = np.cross(t1, t2)
    return np.vstack([t1, t2, t3])


def triad_dcm(
    ref1: NDArray[np.float64],
    ref2: NDArray[np.float64],
    obs1: NDArray[np.float64],
    obs2: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Master-to-body frame rotation DCM from two vector pairs.

    Args:
        ref1, ref2: Reference vectors in the master frame.
        obs1, obs2: The same directions observed in the body frame.

    Returns:
        3x3 DCM A with ``A @ ref1`` parallel to ``obs1``.  Vector
        magnitudes do not matter.

    Raises:
        SingularMatrixError: If either pair is parallel or contains a
            zero vector.

    Example:
        >>> A = triad_dcm([1, 0, 0], [0, 1, 0], [0, 1, 0], [-1, 0, 0])
        >>> np.allclose(A @ [1, 0, 0], [0, 1, 0])
        True
    """
    ref_basis = _triad_basis(ref1, ref2)
    obs_basis = _triad_basis(obs1, obs2)
    return obs_basis.T @ ref_basis


def select_triad_pair(sensors: Sequence[PointingObservationSource]) -> Tuple[int, int]:
    """
    Indices of the two least noisy valid sensors.

    Noise is ranked by ``sigma_x^2 + sigma_y^2``; ties keep sensor order.

    Raises:
        ValueError: If fewer than two sensors carry measurements.
    """
    ranked = sorted(
        (float(np.dot(s.error_sigma(), s.error_sigma())), idx)
        for idx, s in enumerate(sensors)
        if s.is_valid()
    )
    if len(ranked) < 2:
        raise ValueError(f"TRIAD needs two sensors with measurements, got {len(ranked)}")
    return ranked[0][1], ranked[1][1]


class TriadSolver(AttitudeSolver):
    """
    Closed-form attitude from the first measurement of two sensors.

    Args:
        kappa: Branch threshold for the DCM to quaternion conversion.

    Example:
        >>> solver = TriadSolver()
        >>> if solver.solve(sensors) >= 0:
        ...     q = solver.quaternion
    """

    def __init__(self, kappa: float = KAPPA):
        super().__init__()
        self.kappa = kappa

    def solve(self, sensors: Sequence[PointingObservationSource]) -> int:
        """
        Returns:
            0 on success, ``INSUFFICIENT_DATA`` if fewer than two sensors
            carry measurements.

        Raises:
            SingularMatrixError: If the chosen vectors are parallel.
            SingularQuaternionError: If the DCM cannot be converted.
        """
        valid = count_valid_sensors(sensors)
        if valid < 2:
            logger.warning(f"TRIAD needs two sensors with measurements, got {valid}")
            self.status = EstimatorStatus.INSUFFICIENT_DATA
            self._iterations = INSUFFICIENT_DATA
            return INSUFFICIENT_DATA

        first, second = select_triad_pair(sensors)
        s1, s2 = sensors[first], sensors[second]
        dcm = triad_dcm(
            s1.reference_vector(0),
            s2.reference_vector(0),
            s1.observed_direction(0),
            s2.observed_direction(0),
        )
        self._quaternion.set_from_rotation_matrix(dcm, self.kappa)
        logger.debug(f"TRIAD from sensors {first} and {second}: {self._quaternion}")

        self.status = EstimatorStatus.CONVERGED
        self._iterations = 0
        return 0

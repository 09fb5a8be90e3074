"""
Base classes and shared types for attitude solvers.

Attitude solvers report expected outcomes through their integer return
value instead of raising:

    - a non-negative value is success (0 for TRIAD, the iteration count
      at convergence for the iterative estimators)
    - ``INSUFFICIENT_DATA`` when fewer than two sensors carry measurements
    - ``NOT_CONVERGED`` when the iteration limit is reached
    - ``SINGULAR_INFORMATION`` when the normal equations of an iteration
      cannot be decomposed

Numerically fatal conditions (a singular DCM extraction, a malformed
sensor) still raise; see ``vehstate.errors``.
"""

import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from vehstate.rotations.quaternion import Quaternion
from vehstate.sensors.pointing import PointingObservationSource

INSUFFICIENT_DATA = -1
NOT_CONVERGED = -2
SINGULAR_INFORMATION = -3

DEFAULT_MAX_ITERATIONS = 50


class EstimatorStatus(Enum):
    """State of an attitude solver.

    Attributes:
        INIT: No solve attempted yet.
        ITERATING: A solve is in progress.
        CONVERGED: The last solve succeeded.
        NOT_CONVERGED: The last solve ran out of iterations or diverged.
        INSUFFICIENT_DATA: Fewer than two sensors carried measurements.
        SINGULAR_INFORMATION: The information matrix could not be decomposed.
    """

    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"
    INSUFFICIENT_DATA = "insufficient_data"
    SINGULAR_INFORMATION = "singular_information"


def count_valid_sensors(sensors: Sequence[PointingObservationSource]) -> int:
    """Number of sensors that report themselves valid."""
    return sum(1 for sensor in sensors if sensor.is_valid())


@dataclass(frozen=True)
class WLSConfig:
    """
    Iteration settings for the iterative attitude estimators.

    Attributes:
        max_iterations: Maximum Gauss-Newton iterations per solve.
        tolerance: Update magnitude below which the solve has converged.
            ``None`` selects the estimator's own default.
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tolerance: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate iteration settings."""
        if not isinstance(self.max_iterations, (int, np.integer)) or self.max_iterations < 1:
            raise ValueError(f"max_iterations must be a positive integer, got {self.max_iterations}")
        if self.tolerance is not None:
            check_tolerance(self.tolerance)


def check_tolerance(tolerance: float) -> None:
    """Reject non-positive tolerances and warn about very loose ones."""
    if not tolerance > 0.0:
        raise ValueError(f"tolerance must be positive, got {tolerance}")
    if tolerance >= 1e-2:
        warnings.warn(
            f"Convergence tolerance of {tolerance} is unusually loose for a "
            f"unit quaternion update. Typical values are 1e-6 to 1e-3.",
            UserWarning,
        )


@dataclass
class AttitudeEstimate:
    """Result container for an attitude solve.

    Attributes:
        quaternion: Estimated master-to-body quaternion [q0, q1, q2, q3].
        covariance: Covariance of the solve-for parameters, or None.
        iterations: Return value of ``solve()``.
        status: Solver status after the solve.
        converged: Whether the solve succeeded.
        update_norms: Magnitude of each applied update, in order.
    """

    quaternion: np.ndarray
    covariance: Optional[np.ndarray]
    iterations: int
    status: EstimatorStatus
    converged: bool
    update_norms: List[float] = field(default_factory=list)


class AttitudeSolver(ABC):
    """Abstract base class for attitude solvers.

    A solver owns its working quaternion and its last result.  Instances
    are not safe to share between threads; use one per call stack.
    """

    def __init__(self):
        self._quaternion = Quaternion()
        self._iterations = 0
        self.status = EstimatorStatus.INIT

    @abstractmethod
    def solve(self, sensors: Sequence[PointingObservationSource]) -> int:
        """
        Estimate the attitude from a set of sensors.

        Args:
            sensors: Pointing sensors; those without measurements are skipped.

        Returns:
            Non-negative on success, otherwise one of the negative sentinels.
        """
        pass

    @property
    def quaternion(self) -> Quaternion:
        """Copy of the current master-to-body estimate."""
        return self._quaternion.copy()

    def iterations(self) -> int:
        """Return value of the last ``solve()``, 0 before any solve."""
        return self._iterations

    @property
    def converged(self) -> bool:
        return self.status is EstimatorStatus.CONVERGED

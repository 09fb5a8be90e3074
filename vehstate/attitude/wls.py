"""
Iterative weighted least squares attitude estimators.

All estimators run the same Gauss-Newton loop, seeded by TRIAD:

    1. Reset the normal equations.
    2. For every measurement of every sensor, predict the [x, y]
       observation from the current attitude, form the residual
       ``observed - bias - predicted`` and its Jacobian, and accumulate
       them with the sensor's 2x2 weight matrix.
    3. Solve for the update dp and keep the parameter covariance.
    4. Halve dp until ``|dp|`` is no larger than the previous update.
    5. Apply dp.
    6. Stop once the solved ``|dp|`` is below tolerance and the applied
       ``|dp|`` did not grow.

The variants differ in the parameters they solve for:

    - QuaternionWLSEstimator: all four components; the sum is renormalized
      after each update.
    - VectorPartWLSEstimator: the three vector components; the scalar is
      ``sqrt(1 - |v|^2)``.
    - MultiplicativeWLSEstimator: a small rotation e applied as
      ``q * [1, e]`` and renormalized.

Example:
    >>> estimator = QuaternionWLSEstimator()
    >>> n = estimator.solve(sensors)
    >>> if n >= 0:
    ...     q_ib = estimator.quaternion
    ...     P = estimator.covariance()
"""

import logging
from abc import abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from vehstate.attitude.base import (
    INSUFFICIENT_DATA,
    NOT_CONVERGED,
    SINGULAR_INFORMATION,
    AttitudeEstimate,
    AttitudeSolver,
    EstimatorStatus,
    WLSConfig,
    check_tolerance,
    count_valid_sensors,
)
from vehstate.attitude.pointing_model import (
    left_product_matrix,
    predict_pointing,
    quaternion_partials,
    rotation_partials,
    sensor_weight_matrix,
    vector_part_partials,
)
from vehstate.attitude.triad import TriadSolver
from vehstate.errors import SingularMatrixError
from vehstate.linalg.normal_equations import NormalEquationsAccumulator
from vehstate.rotations.dcm import KAPPA
from vehstate.rotations.quaternion import Quaternion
from vehstate.sensors.pointing import PointingObservationSource

logger = logging.getLogger(__name__)

# Rows contributed by one pointing measurement.
MEASUREMENT_DIM = 2


def limit_step(dp: NDArray[np.float64], bound: float) -> Tuple[NDArray[np.float64], float]:
    """
    Halve an update until its magnitude does not exceed ``bound``.

    Args:
        dp: Proposed update.
        bound: Largest allowed magnitude, > 0.

    Returns:
        Tuple of the (possibly scaled) update and its magnitude.

    Example:
        >>> dp, mag = limit_step(np.array([3.0, 4.0]), 2.0)
        >>> mag
        1.25
    """
    if not bound > 0.0:
        raise ValueError(f"Step bound must be positive, got {bound}")
    dp = np.array(dp, dtype=np.float64)
    if not np.all(np.isfinite(dp)):
        raise ValueError(f"Update contains non-finite values: {dp}")
    mag = float(np.linalg.norm(dp))
    while mag > bound:
        dp *= 0.5
        mag *= 0.5
    return dp, mag


class IterativeAttitudeEstimator(AttitudeSolver):
    """
    Base class for the Gauss-Newton attitude estimators.

    Args:
        config: Iteration settings; defaults to ``WLSConfig()`` with the
            subclass's default tolerance.
        kappa: Branch threshold for the TRIAD DCM to quaternion conversion.
    """

    n_params: int = 0
    default_tolerance: float = 0.0

    def __init__(self, config: Optional[WLSConfig] = None, kappa: float = KAPPA):
        super().__init__()
        config = config if config is not None else WLSConfig()
        self._max_iterations = config.max_iterations
        self._tolerance = (
            config.tolerance if config.tolerance is not None else self.default_tolerance
        )
        self.kappa = kappa
        self._covariance: Optional[np.ndarray] = None
        self._update_norms: List[float] = []

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        if int(value) < 1:
            raise ValueError(f"max_iterations must be positive, got {value}")
        self._max_iterations = int(value)

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @tolerance.setter
    def tolerance(self, value: float) -> None:
        check_tolerance(value)
        self._tolerance = float(value)

    @property
    def update_norms(self) -> List[float]:
        """Magnitude of each update applied by the last solve."""
        return list(self._update_norms)

    @abstractmethod
    def _initialize(self) -> bool:
        """Set up the parameters from the TRIAD quaternion."""
        pass

    @abstractmethod
    def _jacobian(
        self, xyz: NDArray[np.float64], q_bs: NDArray[np.float64], q: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        pass

    @abstractmethod
    def _apply_update(self, dp: NDArray[np.float64]) -> bool:
        """Apply an update; False means the parameters left their domain."""
        pass

    def _finish(self, status: EstimatorStatus, result: int) -> int:
        self.status = status
        self._iterations = result
        return result

    def _accumulate(
        self, acc: NormalEquationsAccumulator, sensors: Sequence[PointingObservationSource]
    ) -> None:
        q = self._quaternion.values
        for sensor in sensors:
            if not sensor.is_valid():
                continue
            count = sensor.measurement_count
            q_bs = sensor.orientation().values
            weight = sensor_weight_matrix(sensor.error_sigma())
            bias = sensor.measurement_bias()
            for i in range(count):
                xyz = sensor.reference_vector(i)
                residual = sensor.observed_vector(i) - bias - predict_pointing(xyz, q_bs, q)
                acc.accumulate(self._jacobian(xyz, q_bs, q), weight, residual)

    def solve(self, sensors: Sequence[PointingObservationSource]) -> int:
        """
        Estimate the master-to-body attitude.

        Args:
            sensors: Pointing sensors; those without measurements are skipped.

        Returns:
            The iteration count at convergence, or ``INSUFFICIENT_DATA``,
            ``NOT_CONVERGED`` or ``SINGULAR_INFORMATION``.
        """
        self._covariance = None
        self._update_norms = []

        valid = count_valid_sensors(sensors)
        if valid < 2:
            logger.warning(f"Attitude solve needs two sensors with measurements, got {valid}")
            return self._finish(EstimatorStatus.INSUFFICIENT_DATA, INSUFFICIENT_DATA)

        triad = TriadSolver(self.kappa)
        triad.solve(sensors)
        self._quaternion = triad.quaternion.normalize().standardize()
        if not self._initialize():
            return self._finish(EstimatorStatus.NOT_CONVERGED, NOT_CONVERGED)

        self.status = EstimatorStatus.ITERATING
        acc = NormalEquationsAccumulator(MEASUREMENT_DIM, self.n_params)
        dp_old = 100.0 * self._tolerance

        for iteration in range(1, self._max_iterations + 1):
            acc.reset()
            self._accumulate(acc, sensors)
            try:
                dp = acc.solve().values
                covariance = np.asarray(acc.covariance())
            except SingularMatrixError:
                logger.error("Can't decompose information matrix")
                return self._finish(EstimatorStatus.SINGULAR_INFORMATION, SINGULAR_INFORMATION)
            self._covariance = covariance

            # Convergence is judged on the solved step; a halved step can dip
            # below tolerance while the solution is still moving.
            dp_raw = float(np.linalg.norm(dp))
            dp, dp_new = limit_step(dp, dp_old)
            if not self._apply_update(dp):
                return self._finish(EstimatorStatus.NOT_CONVERGED, NOT_CONVERGED)
            self._update_norms.append(dp_new)
            logger.debug(f"Iteration {iteration}: |dp| = {dp_new:.3e}")

            if dp_raw < self._tolerance and dp_new <= dp_old:
                logger.info(
                    f"{type(self).__name__} converged in {iteration} iterations "
                    f"(|dp| = {dp_new:.3e})"
                )
                return self._finish(EstimatorStatus.CONVERGED, iteration)
            dp_old = dp_new

        logger.warning(
            f"{type(self).__name__} did not converge in {self._max_iterations} iterations"
        )
        return self._finish(EstimatorStatus.NOT_CONVERGED, NOT_CONVERGED)

    def covariance(self) -> np.ndarray:
        """
        Covariance of the solve-for parameters from the last iteration.

        Returns:
            P x P covariance matrix.

        Raises:
            RuntimeError: If no iteration has produced a covariance.
        """
        if self._covariance is None:
            raise RuntimeError("No covariance available. Call solve() first.")
        return self._covariance.copy()

    def _quaternion_jacobian(self) -> np.ndarray:
        """d(quaternion)/d(parameters), 4 x P."""
        return np.eye(4)

    def quaternion_covariance(self) -> np.ndarray:
        """Covariance propagated to the four quaternion components."""
        g = self._quaternion_jacobian()
        return g @ self.covariance() @ g.T

    def estimate(self, sensors: Sequence[PointingObservationSource]) -> AttitudeEstimate:
        """Run ``solve`` and collect the outcome in an ``AttitudeEstimate``."""
        result = self.solve(sensors)
        return AttitudeEstimate(
            quaternion=self._quaternion.values,
            covariance=None if self._covariance is None else self._covariance.copy(),
            iterations=result,
            status=self.status,
            converged=result >= 0,
            update_norms=self.update_norms,
        )


class QuaternionWLSEstimator(IterativeAttitudeEstimator):
    """
    Solves for all four quaternion components.

    The unit norm constraint is restored by renormalizing after each
    update.  ``covariance()`` is the 4x4 covariance of the components.
    """

    n_params = 4
    default_tolerance = 5e-5

    def _initialize(self) -> bool:
        return True

    def _jacobian(self, xyz, q_bs, q):
        return quaternion_partials(xyz, q_bs, q)

    def _apply_update(self, dp):
        q = self._quaternion.values + dp
        self._quaternion = Quaternion.from_array(q).normalize().standardize()
        return True


class VectorPartWLSEstimator(IterativeAttitudeEstimator):
    """
    Solves for the quaternion vector part v with ``q0 = sqrt(1 - |v|^2)``.

    An update that pushes ``|v|`` to 1 or beyond leaves the
    parameterization and ends the solve as not converged.
    """

    n_params = 3
    default_tolerance = 5e-4

    def _initialize(self) -> bool:
        if self._quaternion.scalar <= 0.0:
            logger.warning("Initial attitude is a half turn; vector part cannot parameterize it")
            return False
        self._vector = self._quaternion.vector
        return True

    def _jacobian(self, xyz, q_bs, q):
        return vector_part_partials(xyz, q_bs, q)

    def _apply_update(self, dp):
        v = self._vector + dp
        s = 1.0 - float(v @ v)
        if s <= 0.0:
            logger.warning(f"Vector part magnitude {np.sqrt(1.0 - s):.6f} reached 1, stopping")
            return False
        self._vector = v
        self._quaternion = Quaternion(np.sqrt(s), *v)
        return True

    def _quaternion_jacobian(self):
        q = self._quaternion.values
        return np.vstack([-q[1:] / q[0], np.eye(3)])


class MultiplicativeWLSEstimator(IterativeAttitudeEstimator):
    """
    Solves for a small rotation e composed as ``q * [1, e]``.

    The linearization point is always a unit quaternion, so no constraint
    handling is needed; ``covariance()`` is the 3x3 covariance of e.
    """

    n_params = 3
    default_tolerance = 5e-4

    def _initialize(self) -> bool:
        return True

    def _jacobian(self, xyz, q_bs, q):
        return rotation_partials(xyz, q_bs, q)

    def _apply_update(self, dp):
        self._quaternion = (self._quaternion * Quaternion(1.0, *dp)).normalize().standardize()
        return True

    def _quaternion_jacobian(self):
        return left_product_matrix(self._quaternion.values)[:, 1:]

"""
Tests for the iterative WLS attitude estimators.

Test cases include:
- Convergence to the true attitude from noise-free sensors
- Convergence from noisy cone trackers
- Sentinel results for missing data, singular information and an
  exhausted iteration limit
- Step limiting and the recorded update history
- Covariance propagation to the quaternion components
"""

import unittest
import warnings
from unittest import mock

import numpy as np
import pytest
from numpy.testing import assert_allclose

from vehstate.attitude import (
    INSUFFICIENT_DATA,
    NOT_CONVERGED,
    SINGULAR_INFORMATION,
    AttitudeEstimate,
    EstimatorStatus,
    MultiplicativeWLSEstimator,
    QuaternionWLSEstimator,
    TriadSolver,
    VectorPartWLSEstimator,
    WLSConfig,
    limit_step,
)
from vehstate.errors import SingularMatrixError
from vehstate.linalg import NormalEquationsAccumulator, Vector
from vehstate.rotations import Quaternion
from vehstate.sensors import ConeTrackerConfig, PointingSensor, SimpleConeTracker

ESTIMATORS = [QuaternionWLSEstimator, VectorPartWLSEstimator, MultiplicativeWLSEstimator]

ATTITUDE = Quaternion.from_axis_angle(0.9, [0.4, -0.2, 1.0])

SENSOR_ORIENTATIONS = [
    Quaternion(),
    Quaternion.from_basis_axis(np.pi / 2, "x"),
    Quaternion.from_basis_axis(np.pi / 2, "y"),
]

DIRECTIONS = np.array(
    [
        [0.0, 0.0, 1.0],
        [0.08, -0.05, 1.0],
        [-0.1, 0.12, 1.0],
    ]
)


def _noise_free_sensors(attitude=ATTITUDE, sigma=(1e-4, 1e-4)):
    return [
        PointingSensor.from_sensor_directions(DIRECTIONS, attitude, q_bs, sigma=sigma)
        for q_bs in SENSOR_ORIENTATIONS
    ]


def _noisy_sensors(seed, sigma=1e-4):
    rng = np.random.default_rng(seed)
    trackers = [
        SimpleConeTracker(
            ConeTrackerConfig(max_measurements=5, sigma=sigma, body_to_sensor=q_bs), rng=rng
        )
        for q_bs in SENSOR_ORIENTATIONS
    ]
    return [tracker.measure(ATTITUDE) for tracker in trackers]


def _empty_sensor():
    return PointingSensor(np.zeros((0, 3)), np.zeros((0, 2)), Quaternion(), np.zeros(2))


class _RejectedSensor(PointingSensor):
    def is_valid(self):
        return False


@pytest.mark.parametrize("estimator_cls", ESTIMATORS)
class TestConvergence:
    """All variants recover the attitude."""

    def test_noise_free(self, estimator_cls):
        estimator = estimator_cls()
        result = estimator.solve(_noise_free_sensors())
        assert 1 <= result <= 10
        assert estimator.iterations() == result
        assert estimator.converged
        assert estimator.status is EstimatorStatus.CONVERGED
        assert estimator.quaternion.allclose(ATTITUDE, atol=1e-9, sign_invariant=True)
        assert estimator.quaternion.scalar >= 0.0
        assert np.all(np.diag(estimator.covariance()) >= 0.0)

    def test_unweighted_sensors(self, estimator_cls):
        estimator = estimator_cls()
        result = estimator.solve(_noise_free_sensors(sigma=(0.0, 0.0)))
        assert result >= 1
        assert estimator.quaternion.allclose(ATTITUDE, atol=1e-9, sign_invariant=True)

    @pytest.mark.parametrize("seed", range(10))
    def test_noisy_cone_trackers(self, estimator_cls, seed):
        estimator = estimator_cls()
        result = estimator.solve(_noisy_sensors(seed))
        assert result >= 1
        assert estimator.status is EstimatorStatus.CONVERGED
        assert estimator.quaternion.allclose(ATTITUDE, atol=1e-3, sign_invariant=True)
        assert abs(estimator.quaternion.norm() - 1.0) < 1e-12

    def test_update_norms_nonincreasing(self, estimator_cls):
        estimator = estimator_cls()
        estimator.solve(_noisy_sensors(7))
        norms = estimator.update_norms
        assert len(norms) >= 1
        assert all(b <= a for a, b in zip(norms, norms[1:]))

    @pytest.mark.parametrize("n_valid", [0, 1])
    def test_insufficient_data(self, estimator_cls, n_valid):
        sensors = _noise_free_sensors()[:n_valid] + [_empty_sensor(), _empty_sensor()]
        estimator = estimator_cls()
        with mock.patch.object(TriadSolver, "solve") as triad_solve:
            assert estimator.solve(sensors) == INSUFFICIENT_DATA
        triad_solve.assert_not_called()
        assert estimator.status is EstimatorStatus.INSUFFICIENT_DATA
        with pytest.raises(RuntimeError):
            estimator.covariance()

    def test_empty_sensors_are_skipped(self, estimator_cls):
        sensors = [_empty_sensor()] + _noise_free_sensors() + [_empty_sensor()]
        estimator = estimator_cls()
        assert estimator.solve(sensors) >= 1
        assert estimator.quaternion.allclose(ATTITUDE, atol=1e-9, sign_invariant=True)

    def test_invalid_sensors_are_skipped(self, estimator_cls):
        rejected = _RejectedSensor(
            [[1.0, 0.0, 0.0]], [[0.3, 0.3]], Quaternion(), sigma=(1e-6, 1e-6)
        )
        estimator = estimator_cls()
        assert estimator.solve([rejected] + _noise_free_sensors()) >= 1
        assert estimator.quaternion.allclose(ATTITUDE, atol=1e-9, sign_invariant=True)
        assert estimator.solve([rejected, _noise_free_sensors()[0]]) == INSUFFICIENT_DATA

    def test_singular_information(self, estimator_cls):
        estimator = estimator_cls()
        with mock.patch.object(
            NormalEquationsAccumulator, "solve", side_effect=SingularMatrixError("singular")
        ):
            assert estimator.solve(_noise_free_sensors()) == SINGULAR_INFORMATION
        assert estimator.status is EstimatorStatus.SINGULAR_INFORMATION
        assert not estimator.converged

    def test_iteration_limit_reached(self, estimator_cls):
        estimator = estimator_cls(WLSConfig(max_iterations=1, tolerance=1e-12))
        assert estimator.solve(_noisy_sensors(4)) == NOT_CONVERGED
        assert estimator.status is EstimatorStatus.NOT_CONVERGED
        assert len(estimator.update_norms) == 1

    def test_quaternion_covariance(self, estimator_cls):
        estimator = estimator_cls()
        estimator.solve(_noisy_sensors(5))
        p = estimator.covariance()
        assert p.shape == (estimator.n_params, estimator.n_params)
        assert_allclose(p, p.T, atol=1e-18)
        pq = estimator.quaternion_covariance()
        assert pq.shape == (4, 4)
        assert np.all(np.linalg.eigvalsh(pq) >= -1e-15)

    def test_estimate(self, estimator_cls):
        result = estimator_cls().estimate(_noise_free_sensors())
        assert isinstance(result, AttitudeEstimate)
        assert result.converged
        assert result.iterations >= 1
        assert result.status is EstimatorStatus.CONVERGED
        assert result.covariance is not None
        assert len(result.update_norms) == result.iterations
        assert Quaternion.from_array(result.quaternion).allclose(
            ATTITUDE, atol=1e-9, sign_invariant=True
        )


class TestStepLimiting(unittest.TestCase):
    """Updates never grow from one iteration to the next."""

    def test_limit_step_halves(self):
        dp, mag = limit_step(np.array([3.0, 4.0]), 2.0)
        self.assertAlmostEqual(mag, 1.25)
        assert_allclose(dp, [0.75, 1.0])

    def test_limit_step_passthrough(self):
        dp, mag = limit_step(np.array([0.3, 0.4]), 1.0)
        self.assertAlmostEqual(mag, 0.5)
        assert_allclose(dp, [0.3, 0.4])

    def test_limit_step_does_not_modify_input(self):
        original = np.array([3.0, 4.0])
        limit_step(original, 1.0)
        assert_allclose(original, [3.0, 4.0])

    def test_limit_step_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            limit_step(np.array([1.0]), 0.0)
        with self.assertRaises(ValueError):
            limit_step(np.array([np.nan, 1.0]), 1.0)

    def test_growing_update_is_halved(self):
        """A larger proposed update is cut to no more than the previous one."""
        steps = [
            Vector([4e-4, 0.0, 0.0, 0.0]),
            Vector([0.0, 1e-3, 0.0, 0.0]),
            Vector([1e-6, 0.0, 0.0, 0.0]),
        ]
        estimator = QuaternionWLSEstimator()
        with mock.patch.object(
            NormalEquationsAccumulator, "solve", side_effect=steps
        ), mock.patch.object(NormalEquationsAccumulator, "covariance", return_value=np.eye(4)):
            result = estimator.solve(_noise_free_sensors())
        self.assertEqual(result, 3)
        assert_allclose(estimator.update_norms, [4e-4, 2.5e-4, 1e-6])

    def test_halved_step_below_tolerance_is_not_convergence(self):
        """Only the solved step, not the halved one, can end the iteration."""
        steps = [
            Vector([6e-5, 0.0, 0.0, 0.0]),
            Vector([0.0, 1.5e-4, 0.0, 0.0]),
            Vector([1e-6, 0.0, 0.0, 0.0]),
        ]
        estimator = QuaternionWLSEstimator()
        with mock.patch.object(
            NormalEquationsAccumulator, "solve", side_effect=steps
        ), mock.patch.object(NormalEquationsAccumulator, "covariance", return_value=np.eye(4)):
            result = estimator.solve(_noise_free_sensors())
        self.assertEqual(result, 3)
        assert_allclose(estimator.update_norms, [6e-5, 3.75e-5, 1e-6])

    def test_stalled_step_does_not_converge(self):
        steps = [Vector([6e-5, 0.0, 0.0, 0.0])] + [Vector([0.0, 1.5e-4, 0.0, 0.0])] * 3
        estimator = QuaternionWLSEstimator(WLSConfig(max_iterations=4))
        with mock.patch.object(
            NormalEquationsAccumulator, "solve", side_effect=steps
        ), mock.patch.object(NormalEquationsAccumulator, "covariance", return_value=np.eye(4)):
            self.assertEqual(estimator.solve(_noise_free_sensors()), NOT_CONVERGED)
        assert_allclose(estimator.update_norms, [6e-5, 3.75e-5, 3.75e-5, 3.75e-5])


class TestVectorPartDomain(unittest.TestCase):
    """The vector-part estimator stops when |v| reaches 1."""

    def test_overflowing_update_is_divergence(self):
        estimator = VectorPartWLSEstimator()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UserWarning)
            estimator.tolerance = 1.0
        with mock.patch.object(
            NormalEquationsAccumulator, "solve", side_effect=[Vector([5.0, 0.0, 0.0])]
        ), mock.patch.object(NormalEquationsAccumulator, "covariance", return_value=np.eye(3)):
            self.assertEqual(estimator.solve(_noise_free_sensors()), NOT_CONVERGED)
        self.assertIs(estimator.status, EstimatorStatus.NOT_CONVERGED)

    def test_half_turn_start_is_divergence(self):
        half_turn = Quaternion(0.0, 0.0, 0.0, 1.0)
        estimator = VectorPartWLSEstimator()
        with mock.patch.object(
            TriadSolver, "quaternion", new_callable=mock.PropertyMock, return_value=half_turn
        ):
            self.assertEqual(estimator.solve(_noise_free_sensors()), NOT_CONVERGED)
        self.assertEqual(estimator.update_norms, [])

    def test_covariance_jacobian_shape(self):
        estimator = VectorPartWLSEstimator()
        estimator.solve(_noise_free_sensors())
        self.assertEqual(estimator.quaternion_covariance().shape, (4, 4))


class TestWLSConfig(unittest.TestCase):
    """Iteration settings."""

    def test_defaults(self):
        self.assertEqual(QuaternionWLSEstimator().tolerance, 5e-5)
        self.assertEqual(VectorPartWLSEstimator().tolerance, 5e-4)
        self.assertEqual(MultiplicativeWLSEstimator().tolerance, 5e-4)
        self.assertEqual(QuaternionWLSEstimator().max_iterations, 50)

    def test_config_overrides(self):
        estimator = MultiplicativeWLSEstimator(WLSConfig(max_iterations=7, tolerance=1e-6))
        self.assertEqual(estimator.max_iterations, 7)
        self.assertEqual(estimator.tolerance, 1e-6)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            WLSConfig(max_iterations=0)
        with self.assertRaises(ValueError):
            WLSConfig(tolerance=0.0)
        with self.assertRaises(ValueError):
            QuaternionWLSEstimator().tolerance = -1e-6
        with self.assertRaises(ValueError):
            QuaternionWLSEstimator().max_iterations = 0

    def test_loose_tolerance_warns(self):
        with self.assertWarns(UserWarning):
            WLSConfig(tolerance=0.05)

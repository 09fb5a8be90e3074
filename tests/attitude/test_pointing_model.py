"""
Unit tests for the pointing measurement model.

Each analytic Jacobian is checked against central differences of
``predict_pointing`` under the matching parameterization.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from vehstate.attitude import (
    predict_pointing,
    quaternion_partials,
    rotation_partials,
    sensor_weight_matrix,
    vector_part_partials,
)
from vehstate.attitude.pointing_model import left_product_matrix
from vehstate.rotations import Quaternion

H = 1e-6

CASES = [
    (
        Quaternion.from_axis_angle(0.7, [1.0, -0.3, 0.2]),
        Quaternion(),
        np.array([0.2, -0.4, 0.89]),
    ),
    (
        Quaternion.from_axis_angle(2.4, [-0.1, 0.8, 0.5]),
        Quaternion.from_axis_angle(np.pi / 2, [0.0, 1.0, 0.0]),
        np.array([-0.6, 0.0, 0.8]),
    ),
    (
        Quaternion.from_axis_angle(1.1, [0.0, 0.0, 1.0]),
        Quaternion.from_axis_angle(-0.4, [1.0, 1.0, 0.0]),
        np.array([0.0, 1.0, 0.0]),
    ),
]


def _central_difference(fn, x0):
    cols = []
    for k in range(x0.size):
        step = np.zeros(x0.size)
        step[k] = H
        cols.append((fn(x0 + step) - fn(x0 - step)) / (2.0 * H))
    return np.column_stack(cols)


@pytest.mark.parametrize("q, q_bs, xyz", CASES)
class TestJacobians:
    def test_prediction_matches_rotation(self, q, q_bs, xyz):
        expected = (q * q_bs).frame_rotate(xyz)[:2]
        assert_allclose(predict_pointing(xyz, q_bs.values, q.values), expected, atol=1e-12)

    def test_quaternion_partials(self, q, q_bs, xyz):
        numeric = _central_difference(
            lambda p: predict_pointing(xyz, q_bs.values, p), q.values
        )
        analytic = quaternion_partials(xyz, q_bs.values, q.values)
        assert analytic.shape == (2, 4)
        assert_allclose(analytic, numeric, atol=1e-8)

    def test_vector_part_partials(self, q, q_bs, xyz):
        q_std = q.copy().standardize().values

        def model(v):
            q0 = np.sqrt(1.0 - v @ v)
            return predict_pointing(xyz, q_bs.values, np.concatenate([[q0], v]))

        numeric = _central_difference(model, q_std[1:])
        analytic = vector_part_partials(xyz, q_bs.values, q_std)
        assert analytic.shape == (2, 3)
        assert_allclose(analytic, numeric, atol=1e-7)

    def test_rotation_partials(self, q, q_bs, xyz):
        def model(e):
            p = (q * Quaternion(1.0, *e)).normalize()
            return predict_pointing(xyz, q_bs.values, p.values)

        numeric = _central_difference(model, np.zeros(3))
        analytic = rotation_partials(xyz, q_bs.values, q.values)
        assert analytic.shape == (2, 3)
        assert_allclose(analytic, numeric, atol=1e-8)


def test_left_product_matrix():
    q = Quaternion.from_axis_angle(0.9, [1.0, 2.0, 3.0])
    p = Quaternion(0.3, -0.1, 0.5, 0.7)
    assert_allclose(left_product_matrix(q.values) @ p.values, (q * p).values, atol=1e-15)


class TestSensorWeightMatrix:
    def test_inverse_variance(self):
        assert_allclose(sensor_weight_matrix([1e-2, 2e-2]), np.diag([1e4, 2.5e3]))

    @pytest.mark.parametrize("sigma", [(0.0, 0.0), (1e-3, 0.0), (0.0, 1e-3), (-1e-3, 1e-3)])
    def test_unit_weights_unless_both_positive(self, sigma):
        assert_allclose(sensor_weight_matrix(sigma), np.eye(2))

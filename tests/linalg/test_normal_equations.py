"""
Unit tests for block-diagonal normal equation accumulation.

Tests cover:
    - Sequential accumulation equals a single stacked, block-diagonally
      weighted solve
    - Weight forms (matrix, diagonal, identity)
    - Covariance and lifecycle (reset, solve before accumulate)
"""

import unittest
from unittest import mock

import numpy as np
from numpy.testing import assert_allclose

from vehstate.errors import DimensionError, FactorizationStateError, SingularMatrixError
from vehstate.linalg import (
    Decomposition,
    DenseMatrix,
    NormalEquationsAccumulator,
    WeightedSystemSolver,
)


def _block_diag(*blocks):
    n = sum(b.shape[0] for b in blocks)
    out = np.zeros((n, n))
    i = 0
    for b in blocks:
        k = b.shape[0]
        out[i : i + k, i : i + k] = b
        i += k
    return out


class TestAccumulatorLinearity(unittest.TestCase):
    """Accumulated sums match the stacked system."""

    def setUp(self):
        rng = np.random.default_rng(11)
        self.j1 = rng.normal(size=(2, 3))
        self.j2 = rng.normal(size=(2, 3))
        self.j3 = rng.normal(size=(2, 3))
        self.r1 = rng.normal(size=2)
        self.r2 = rng.normal(size=2)
        self.r3 = rng.normal(size=2)
        self.w1 = np.diag([4.0, 9.0])
        self.w2 = np.array([[2.0, 0.5], [0.5, 1.0]])
        self.w3 = np.eye(2)

    def test_information_matches_stacked(self):
        acc = NormalEquationsAccumulator(2, 3)
        acc.accumulate(self.j1, self.w1, self.r1)
        acc.accumulate(self.j2, self.w2, self.r2)

        a = np.vstack([self.j1, self.j2])
        w = _block_diag(self.w1, self.w2)
        y = np.concatenate([self.r1, self.r2])
        assert_allclose(acc.information_matrix, a.T @ w @ a, rtol=1e-10, atol=1e-12)
        assert_allclose(acc.information_vector, a.T @ w @ y, rtol=1e-10, atol=1e-12)

    def test_solution_matches_weighted_solver(self):
        acc = NormalEquationsAccumulator(2, 3)
        acc.accumulate(self.j1, self.w1, self.r1)
        acc.accumulate(self.j2, self.w2, self.r2)
        acc.accumulate_unweighted(self.j3, self.r3)
        dp = acc.solve()

        a = np.vstack([self.j1, self.j2, self.j3])
        w = _block_diag(self.w1, self.w2, self.w3)
        y = np.concatenate([self.r1, self.r2, self.r3])
        stacked = WeightedSystemSolver(Decomposition.QR, a, w)
        assert_allclose(dp.values, stacked.solve(y).values, rtol=1e-8, atol=1e-12)
        assert_allclose(
            np.asarray(acc.covariance()), np.asarray(stacked.covariance()), rtol=1e-8
        )

    def test_diagonal_weight_equals_matrix(self):
        a = NormalEquationsAccumulator(2, 3)
        b = NormalEquationsAccumulator(2, 3)
        a.accumulate(self.j1, np.diag([4.0, 9.0]), self.r1)
        b.accumulate(self.j1, np.array([4.0, 9.0]), self.r1)
        assert_allclose(a.information_matrix, b.information_matrix)
        assert_allclose(a.information_vector, b.information_vector)

    def test_variable_size_sets(self):
        acc = NormalEquationsAccumulator(None, 3)
        acc.accumulate(np.vstack([self.j1, self.j2]), None, np.concatenate([self.r1, self.r2]))
        acc.accumulate(self.j3[:1], None, self.r3[:1])
        self.assertEqual(acc.n_sets, 2)
        a = np.vstack([self.j1, self.j2, self.j3[:1]])
        assert_allclose(acc.information_matrix, a.T @ a, rtol=1e-10, atol=1e-12)


class TestAccumulatorLifecycle(unittest.TestCase):
    """Reset, shape checks and solve preconditions."""

    def test_solve_before_accumulate_raises(self):
        acc = NormalEquationsAccumulator(2, 4)
        with self.assertRaises(SingularMatrixError):
            acc.solve()

    def test_rank_deficient_raises(self):
        acc = NormalEquationsAccumulator(2, 3)
        acc.accumulate_unweighted(np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]), [1.0, 1.0])
        with self.assertRaises(SingularMatrixError):
            acc.solve()

    def test_covariance_before_solve_raises(self):
        acc = NormalEquationsAccumulator(2, 2)
        acc.accumulate_unweighted(np.eye(2), [1.0, 2.0])
        with self.assertRaises(FactorizationStateError):
            acc.covariance()

    def test_covariance_is_inverse_information(self):
        acc = NormalEquationsAccumulator(2, 2)
        acc.accumulate(np.eye(2), np.diag([4.0, 16.0]), [1.0, 2.0])
        dp = acc.solve()
        assert_allclose(dp.values, [1.0, 2.0])
        assert_allclose(np.asarray(acc.covariance()), np.diag([0.25, 0.0625]))

    def test_covariance_reuses_solve_factor(self):
        rng = np.random.default_rng(5)
        acc = NormalEquationsAccumulator(2, 3)
        for _ in range(3):
            acc.accumulate(rng.normal(size=(2, 3)), np.diag([2.0, 3.0]), rng.normal(size=2))
        acc.solve()
        with mock.patch.object(DenseMatrix, "factorize_cholesky") as factorize:
            first = np.asarray(acc.covariance())
            second = np.asarray(acc.covariance())
        factorize.assert_not_called()
        assert_allclose(first, np.linalg.inv(acc.information_matrix), rtol=1e-9, atol=1e-12)
        assert_allclose(second, first)

    def test_reset_clears_sums(self):
        acc = NormalEquationsAccumulator(2, 2)
        acc.accumulate_unweighted(np.eye(2), [1.0, 2.0])
        acc.solve()
        acc.reset()
        assert_allclose(acc.information_matrix, np.zeros((2, 2)))
        assert_allclose(acc.information_vector, np.zeros(2))
        self.assertEqual(acc.n_sets, 0)
        with self.assertRaises(FactorizationStateError):
            acc.covariance()

    def test_accumulate_invalidates_solution(self):
        acc = NormalEquationsAccumulator(2, 2)
        acc.accumulate_unweighted(np.eye(2), [1.0, 2.0])
        acc.solve()
        acc.accumulate_unweighted(np.eye(2), [1.0, 2.0])
        with self.assertRaises(FactorizationStateError):
            acc.covariance()

    def test_shape_checks(self):
        acc = NormalEquationsAccumulator(2, 3)
        with self.assertRaises(DimensionError):
            acc.accumulate_unweighted(np.ones((2, 4)), [1.0, 1.0])
        with self.assertRaises(DimensionError):
            acc.accumulate_unweighted(np.ones((3, 3)), [1.0, 1.0, 1.0])
        with self.assertRaises(DimensionError):
            acc.accumulate_unweighted(np.ones((2, 3)), [1.0])
        with self.assertRaises(DimensionError):
            acc.accumulate(np.ones((2, 3)), np.eye(3), [1.0, 1.0])

    def test_information_is_copy(self):
        acc = NormalEquationsAccumulator(2, 2)
        acc.accumulate_unweighted(np.eye(2), [1.0, 2.0])
        info = acc.information_matrix
        info[0, 0] = 100.0
        self.assertEqual(acc.information_matrix[0, 0], 1.0)

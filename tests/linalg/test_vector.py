"""
Unit tests for the fixed-length Vector type.

Tests cover:
    - Construction and checked element access
    - Dimension checked arithmetic
    - Dot, magnitude, unitize and cross product
    - Conversion to and from single row/column matrices
"""

import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose

from vehstate.errors import DimensionError, IndexOutOfBoundsError
from vehstate.linalg import DenseMatrix, Vector


class TestVectorAccess(unittest.TestCase):
    """Construction, get/put and bounds checks."""

    def test_zero_initialized(self):
        v = Vector(4)
        self.assertEqual(len(v), 4)
        assert_allclose(v.values, np.zeros(4))

    def test_from_values(self):
        v = Vector.from_values(1.0, 2.0, 3.0)
        self.assertEqual(v.get(2), 3.0)

    def test_put_get(self):
        v = Vector(3)
        v.put(1, 7.5)
        v[2] = -1.0
        self.assertEqual(v.get(1), 7.5)
        self.assertEqual(v[2], -1.0)

    def test_index_out_of_bounds(self):
        v = Vector(3)
        with self.assertRaises(IndexOutOfBoundsError):
            v.get(3)
        with self.assertRaises(IndexOutOfBoundsError):
            v.put(-1, 1.0)

    def test_out_of_bounds_is_index_error(self):
        """Callers catching IndexError still see bad accesses."""
        with self.assertRaises(IndexError):
            Vector(2)[5]

    def test_invalid_length(self):
        with self.assertRaises(DimensionError):
            Vector(0)
        with self.assertRaises(DimensionError):
            Vector([[1.0, 2.0]])

    def test_values_is_copy(self):
        v = Vector([1.0, 2.0])
        vals = v.values
        vals[0] = 99.0
        self.assertEqual(v[0], 1.0)


class TestVectorArithmetic(unittest.TestCase):
    """Arithmetic with dimension checks."""

    def setUp(self):
        self.a = Vector([1.0, 2.0, 3.0])
        self.b = Vector([4.0, 5.0, 6.0])

    def test_add_sub(self):
        assert_allclose((self.a + self.b).values, [5.0, 7.0, 9.0])
        assert_allclose((self.b - self.a).values, [3.0, 3.0, 3.0])

    def test_in_place(self):
        c = self.a.copy()
        c += self.b
        c *= 2.0
        assert_allclose(c.values, [10.0, 14.0, 18.0])
        # Original untouched
        assert_allclose(self.a.values, [1.0, 2.0, 3.0])

    def test_scalar_ops(self):
        assert_allclose((2.0 * self.a).values, [2.0, 4.0, 6.0])
        assert_allclose((self.a / 2.0).values, [0.5, 1.0, 1.5])
        assert_allclose((-self.a).values, [-1.0, -2.0, -3.0])

    def test_dimension_mismatch(self):
        with self.assertRaises(DimensionError):
            self.a + Vector(2)
        with self.assertRaises(DimensionError):
            self.a.set([1.0, 2.0])
        with self.assertRaises(DimensionError):
            self.a.dot(Vector(4))

    def test_set_and_zero(self):
        c = Vector(3)
        c.set(self.b)
        self.assertEqual(c, self.b)
        c.zero()
        assert_allclose(c.values, np.zeros(3))

    def test_dot_mag(self):
        self.assertAlmostEqual(self.a.dot(self.b), 32.0)
        self.assertAlmostEqual(Vector([3.0, 4.0]).mag(), 5.0)

    def test_unitize(self):
        v = Vector([0.0, 3.0, 4.0])
        v.unitize()
        assert_allclose(v.values, [0.0, 0.6, 0.8])
        self.assertAlmostEqual(v.mag(), 1.0)

    def test_unitize_zero_raises(self):
        with self.assertRaises(ValueError):
            Vector(3).unitize()

    def test_cross(self):
        x = Vector([1.0, 0.0, 0.0])
        y = Vector([0.0, 1.0, 0.0])
        assert_allclose(x.cross(y).values, [0.0, 0.0, 1.0])
        assert_allclose(self.a.cross(self.b).values, np.cross(self.a.values, self.b.values))

    def test_cross_requires_three(self):
        with self.assertRaises(DimensionError):
            Vector(2).cross(Vector(2))


class TestVectorMatrixConversion:
    """Conversion to and from DenseMatrix."""

    def test_to_column_matrix(self):
        m = Vector([1.0, 2.0, 3.0]).to_matrix()
        assert isinstance(m, DenseMatrix)
        assert m.shape == (3, 1)
        assert m.get(2, 0) == 3.0

    def test_to_row_matrix(self):
        m = Vector([1.0, 2.0]).to_matrix(row=True)
        assert m.shape == (1, 2)

    def test_from_matrix(self):
        v = Vector.from_matrix(DenseMatrix([[1.0], [2.0]]))
        assert_allclose(v.values, [1.0, 2.0])
        v = Vector.from_matrix(np.array([[4.0, 5.0, 6.0]]))
        assert_allclose(v.values, [4.0, 5.0, 6.0])

    def test_from_matrix_rejects_block(self):
        with pytest.raises(DimensionError):
            Vector.from_matrix(np.eye(2))

    def test_numpy_interop(self):
        v = Vector([1.0, 2.0])
        assert_allclose(np.asarray(v) * 2.0, [2.0, 4.0])

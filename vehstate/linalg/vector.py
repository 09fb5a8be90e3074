"""Fixed-length numeric vector.

A ``Vector`` wraps a 1-D float64 numpy array whose length is fixed at
construction.  Element access is bounds checked and arithmetic between
vectors is dimension checked, raising ``IndexOutOfBoundsError`` and
``DimensionError`` respectively instead of relying on numpy broadcasting.

Indexing is 0-based.

Example:
    >>> v = Vector([3.0, 4.0])
    >>> v.mag()
    5.0
    >>> (v * 2.0).values
    array([6., 8.])
"""

from typing import Iterable, Optional, Union

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import DimensionError, IndexOutOfBoundsError


class Vector:
    """Fixed-length vector with checked element access and arithmetic.

    Args:
        values: Either the vector length (all elements set to zero) or
            an iterable of initial element values.
    """

    __hash__ = None

    def __init__(self, values: Union[int, Iterable[float]]):
        if isinstance(values, (int, np.integer)):
            if values < 1:
                raise DimensionError(f"Vector length must be >= 1, got {values}")
            self._v = np.zeros(int(values), dtype=np.float64)
        else:
            arr = np.array(values, dtype=np.float64)
            if arr.ndim != 1 or arr.size < 1:
                raise DimensionError(
                    f"Vector values must be a non-empty 1D sequence, got shape {arr.shape}"
                )
            self._v = arr

    @classmethod
    def from_values(cls, *values: float) -> "Vector":
        """Create a vector from individual element values."""
        return cls(values)

    @classmethod
    def from_matrix(cls, matrix) -> "Vector":
        """Create a vector from a single row or single column matrix."""
        arr = np.asarray(matrix, dtype=np.float64)
        if arr.ndim != 2 or (arr.shape[0] != 1 and arr.shape[1] != 1):
            raise DimensionError(
                f"Matrix must be a single row or column, got shape {arr.shape}"
            )
        return cls(arr.ravel())

    def __len__(self) -> int:
        return self._v.size

    @property
    def size(self) -> int:
        """Number of elements."""
        return self._v.size

    @property
    def values(self) -> NDArray[np.float64]:
        """Copy of the element values."""
        return self._v.copy()

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self._v.copy()
        return self._v.astype(dtype)

    def _check_index(self, i: int) -> None:
        if not 0 <= i < self._v.size:
            raise IndexOutOfBoundsError(
                f"Index {i} out of bounds for Vector of length {self._v.size}"
            )

    def get(self, i: int) -> float:
        self._check_index(i)
        return float(self._v[i])

    def put(self, i: int, value: float) -> None:
        self._check_index(i)
        self._v[i] = value

    def __getitem__(self, i: int) -> float:
        return self.get(i)

    def __setitem__(self, i: int, value: float) -> None:
        self.put(i, value)

    def __iter__(self):
        return iter(self._v.tolist())

    def zero(self) -> None:
        self._v[:] = 0.0

    def set(self, other: Union["Vector", Iterable[float]]) -> None:
        """Copy element values from another vector of the same length."""
        self._v[:] = self._coerce(other)

    def copy(self) -> "Vector":
        return Vector(self._v)

    def _coerce(self, other) -> NDArray[np.float64]:
        arr = np.asarray(other, dtype=np.float64)
        if arr.shape != self._v.shape:
            raise DimensionError(
                f"Vector length mismatch: expected {self._v.size}, got shape {arr.shape}"
            )
        return arr

    def __add__(self, other) -> "Vector":
        return Vector(self._v + self._coerce(other))

    def __sub__(self, other) -> "Vector":
        return Vector(self._v - self._coerce(other))

    def __iadd__(self, other) -> "Vector":
        self._v += self._coerce(other)
        return self

    def __isub__(self, other) -> "Vector":
        self._v -= self._coerce(other)
        return self

    def __mul__(self, scalar: float) -> "Vector":
        return Vector(self._v * float(scalar))

    __rmul__ = __mul__

    def __imul__(self, scalar: float) -> "Vector":
        self._v *= float(scalar)
        return self

    def __truediv__(self, scalar: float) -> "Vector":
        return Vector(self._v / float(scalar))

    def __itruediv__(self, scalar: float) -> "Vector":
        self._v /= float(scalar)
        return self

    def __neg__(self) -> "Vector":
        return Vector(-self._v)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Vector):
            return NotImplemented
        return self._v.shape == other._v.shape and bool(np.all(self._v == other._v))

    def dot(self, other) -> float:
        return float(self._v @ self._coerce(other))

    def mag(self) -> float:
        """Euclidean norm."""
        return float(np.sqrt(self._v @ self._v))

    def unitize(self) -> None:
        """Scale this vector in place to unit length."""
        mag = self.mag()
        if mag == 0.0:
            raise ValueError("Cannot unitize a zero length vector")
        self._v /= mag

    def cross(self, other) -> "Vector":
        """Cross product, defined for 3 element vectors only."""
        b = self._coerce(other)
        if self._v.size != 3:
            raise DimensionError(f"Cross product requires 3 elements, got {self._v.size}")
        return Vector(np.cross(self._v, b))

    def to_matrix(self, row: bool = False):
        """Return this vector as a column (or row) ``DenseMatrix``."""
        from vehstate.linalg.dense import DenseMatrix

        if row:
            return DenseMatrix(self._v.reshape(1, -1))
        return DenseMatrix(self._v.reshape(-1, 1))

    def __repr__(self) -> str:
        return f"Vector({self._v.tolist()})"


def as_vector(values, length: Optional[int] = None) -> Vector:
    """Coerce array-like input to a ``Vector``, optionally checking length."""
    vec = values.copy() if isinstance(values, Vector) else Vector(np.asarray(values, dtype=np.float64).ravel())
    if length is not None and vec.size != length:
        raise DimensionError(f"Expected {length} elements, got {vec.size}")
    return vec

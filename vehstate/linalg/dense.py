"""Dense matrix with in-place decompositions.

``DenseMatrix`` is a fixed-shape float64 matrix that supports three
decomposition based solvers:

- Crout LU with scaled partial pivoting (``factorize_lu`` / ``solve``).
  Rows are never physically swapped; the pivot order is kept in a row
  order array and respected by ``solve``.
- Cholesky for symmetric positive definite matrices
  (``factorize_cholesky`` / ``solve_cholesky``).  The lower triangle is
  overwritten with L, the strict upper triangle is left untouched.
- Thin QR by modified Gram-Schmidt (``qr_decompose``), which does not
  modify the matrix.

The LU and Cholesky factorizations happen in place: after a successful
call the matrix holds its factors, not its original values.  Any
subsequent mutation through the public API discards the factorization,
so a solve can never run against stale factors.  Use ``lu_solve``,
``cholesky_solve`` or ``inverse`` to keep the original values.

Example:
    >>> a = DenseMatrix([[4.0, 2.0], [2.0, 3.0]])
    >>> a.factorize_cholesky()
    >>> a.solve_cholesky([2.0, 1.0]).values
    array([0.5, 0. ])
"""

from typing import Iterable, List, Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import (
    DimensionError,
    FactorizationStateError,
    IndexOutOfBoundsError,
    SingularMatrixError,
)
from vehstate.linalg.vector import Vector

# Smallest magnitude treated as nonzero by the decompositions.
EPS = 1e-100

# Column norms below this fraction of the original column norm count as
# rank deficient during QR.
QR_RANK_RTOL = 1e-12

_LU = "lu"
_CHOLESKY = "cholesky"


class DenseMatrix:
    """Fixed-shape dense matrix.

    Args:
        rows: Either the number of rows (with ``cols``, all elements zero)
            or a 2D array-like of initial values.
        cols: Number of columns when ``rows`` is an int.  Defaults to
            ``rows`` (square).
    """

    __hash__ = None

    def __init__(self, rows, cols: Optional[int] = None):
        if isinstance(rows, (int, np.integer)):
            ncols = rows if cols is None else cols
            if rows < 1 or ncols < 1:
                raise DimensionError(f"Matrix shape must be positive, got ({rows}, {ncols})")
            self._vals = np.zeros((int(rows), int(ncols)), dtype=np.float64)
        else:
            arr = np.array(rows, dtype=np.float64)
            if arr.ndim != 2 or arr.size == 0:
                raise DimensionError(
                    f"Matrix values must be a non-empty 2D array, got shape {arr.shape}"
                )
            self._vals = arr
        self._factorization: Optional[str] = None
        self._row_order: Optional[NDArray[np.int64]] = None
        self._row_scale: Optional[NDArray[np.float64]] = None

    @classmethod
    def identity(cls, n: int) -> "DenseMatrix":
        return cls(np.eye(n))

    @property
    def rows(self) -> int:
        return self._vals.shape[0]

    @property
    def cols(self) -> int:
        return self._vals.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self._vals.shape

    @property
    def values(self) -> NDArray[np.float64]:
        """Copy of the current element values (factors, if factorized)."""
        return self._vals.copy()

    @property
    def is_square(self) -> bool:
        return self.rows == self.cols

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self._vals.copy()
        return self._vals.astype(dtype)

    def _invalidate(self) -> None:
        self._factorization = None
        self._row_order = None
        self._row_scale = None

    def _check_index(self, row: int, col: int) -> None:
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexOutOfBoundsError(
                f"Index ({row}, {col}) out of bounds for matrix of shape {self.shape}"
            )

    def _require_square(self, operation: str) -> None:
        if not self.is_square:
            raise DimensionError(f"{operation} requires a square matrix, got shape {self.shape}")

    # ------------------------------------------------------------------
    # Element and block access
    # ------------------------------------------------------------------

    def get(self, row: int, col: int) -> float:
        self._check_index(row, col)
        return float(self._vals[row, col])

    def put(self, row: int, col: int, value: float) -> None:
        self._check_index(row, col)
        self._vals[row, col] = value
        self._invalidate()

    def __getitem__(self, index: Tuple[int, int]) -> float:
        return self.get(*index)

    def __setitem__(self, index: Tuple[int, int], value: float) -> None:
        self.put(index[0], index[1], value)

    def set(self, other) -> None:
        """Copy values from another matrix of the same shape."""
        self._vals[:, :] = self._coerce(other)
        self._invalidate()

    def zero(self) -> None:
        self._vals[:, :] = 0.0
        self._invalidate()

    def zero_upper(self) -> None:
        """Zero the strict upper triangle.

        After ``factorize_cholesky`` this leaves exactly the factor L, and
        the Cholesky factorization stays valid.
        """
        self._vals[np.triu_indices(self.rows, k=1, m=self.cols)] = 0.0
        if self._factorization != _CHOLESKY:
            self._invalidate()

    def set_rows(self, rows: Iterable[Iterable[float]], start: int = 0) -> None:
        """Overwrite consecutive rows beginning at ``start``."""
        block = np.atleast_2d(np.asarray(rows, dtype=np.float64))
        if block.shape[1] != self.cols or start < 0 or start + block.shape[0] > self.rows:
            raise DimensionError(
                f"Cannot place rows of shape {block.shape} at row {start} of {self.shape}"
            )
        self._vals[start : start + block.shape[0], :] = block
        self._invalidate()

    def set_columns(self, columns: Iterable[Iterable[float]], start: int = 0) -> None:
        """Overwrite consecutive columns beginning at ``start``.

        ``columns`` is given as a sequence of columns, each of length
        ``rows``.
        """
        block = np.atleast_2d(np.asarray(columns, dtype=np.float64))
        if block.shape[1] != self.rows or start < 0 or start + block.shape[0] > self.cols:
            raise DimensionError(
                f"Cannot place {block.shape[0]} columns of length {block.shape[1]} "
                f"at column {start} of {self.shape}"
            )
        self._vals[:, start : start + block.shape[0]] = block.T
        self._invalidate()

    def get_row_order(self) -> List[int]:
        """Pivot row order produced by the last ``factorize_lu``."""
        if self._factorization != _LU:
            raise FactorizationStateError("Matrix has no current LU factorization")
        return self._row_order.tolist()

    def copy(self) -> "DenseMatrix":
        """Copy of the values; the factorization state is not copied."""
        return DenseMatrix(self._vals)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _coerce(self, other) -> NDArray[np.float64]:
        arr = np.asarray(other, dtype=np.float64)
        if arr.shape != self._vals.shape:
            raise DimensionError(f"Matrix shape mismatch: {self.shape} vs {arr.shape}")
        return arr

    def transpose(self) -> "DenseMatrix":
        return DenseMatrix(self._vals.T)

    @property
    def T(self) -> "DenseMatrix":
        return self.transpose()

    def trace(self) -> float:
        self._require_square("trace")
        return float(np.trace(self._vals))

    def __add__(self, other) -> "DenseMatrix":
        return DenseMatrix(self._vals + self._coerce(other))

    def __sub__(self, other) -> "DenseMatrix":
        return DenseMatrix(self._vals - self._coerce(other))

    def __iadd__(self, other) -> "DenseMatrix":
        self._vals += self._coerce(other)
        self._invalidate()
        return self

    def __isub__(self, other) -> "DenseMatrix":
        self._vals -= self._coerce(other)
        self._invalidate()
        return self

    def __mul__(self, scalar: float) -> "DenseMatrix":
        return DenseMatrix(self._vals * float(scalar))

    __rmul__ = __mul__

    def __imul__(self, scalar: float) -> "DenseMatrix":
        self._vals *= float(scalar)
        self._invalidate()
        return self

    def __neg__(self) -> "DenseMatrix":
        return DenseMatrix(-self._vals)

    def __matmul__(self, other) -> Union["DenseMatrix", Vector]:
        """Matrix product with a matrix, or matrix-vector product."""
        if isinstance(other, Vector):
            if other.size != self.cols:
                raise DimensionError(
                    f"Cannot multiply {self.shape} matrix by vector of length {other.size}"
                )
            return Vector(self._vals @ np.asarray(other))
        arr = np.asarray(other, dtype=np.float64)
        if arr.ndim == 1:
            if arr.size != self.cols:
                raise DimensionError(
                    f"Cannot multiply {self.shape} matrix by vector of length {arr.size}"
                )
            return Vector(self._vals @ arr)
        if arr.ndim != 2 or arr.shape[0] != self.cols:
            raise DimensionError(f"Cannot multiply {self.shape} by {arr.shape}")
        return DenseMatrix(self._vals @ arr)

    def __rmatmul__(self, other) -> "DenseMatrix":
        arr = np.asarray(other, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] != self.rows:
            raise DimensionError(f"Cannot multiply {arr.shape} by {self.shape}")
        return DenseMatrix(arr @ self._vals)

    def __eq__(self, other) -> bool:
        if not isinstance(other, DenseMatrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.all(self._vals == other._vals))

    def __repr__(self) -> str:
        return f"DenseMatrix({self._vals.tolist()})"

    # ------------------------------------------------------------------
    # Crout LU
    # ------------------------------------------------------------------

    def factorize_lu(self) -> None:
        """Crout LU decomposition in place, with scaled partial pivoting.

        L (with its diagonal) and U (unit diagonal, not stored) share the
        matrix storage.  Rows are addressed through ``get_row_order()``.

        Raises:
            DimensionError: If the matrix is not square.
            SingularMatrixError: If a row's largest magnitude element is
                below ``EPS`` or a pivot underflows during elimination.
        """
        self._require_square("LU decomposition")
        self._invalidate()
        a = self._vals
        n = self.rows

        scale = np.max(np.abs(a), axis=1)
        zero_rows = np.flatnonzero(scale < EPS)
        if zero_rows.size:
            raise SingularMatrixError(
                f"Cannot LU decompose: row {int(zero_rows[0])} is all zeros"
            )
        order = np.arange(n)

        for j in range(n):
            # Column j of L for the rows not yet pivoted.
            rows = order[j:]
            if j > 0:
                a[rows, j] -= a[rows, :j] @ a[order[:j], j]

            # Pivot on the largest scaled candidate.
            p = j + int(np.argmax(np.abs(a[rows, j]) / scale[rows]))
            order[j], order[p] = order[p], order[j]
            r = order[j]
            pivot = a[r, j]
            if abs(pivot) < EPS:
                raise SingularMatrixError(f"Cannot LU decompose: pivot underflow in column {j}")

            # Row r of U, right of the diagonal.
            if j + 1 < n:
                a[r, j + 1 :] = (a[r, j + 1 :] - a[r, :j] @ a[order[:j], j + 1 :]) / pivot

        self._factorization = _LU
        self._row_order = order
        self._row_scale = scale

    def solve(self, y) -> Vector:
        """Solve ``A x = y`` using the current LU factorization.

        Raises:
            FactorizationStateError: If ``factorize_lu`` has not been run
                on the current values.
            DimensionError: If ``y`` has the wrong length.
        """
        if self._factorization != _LU:
            raise FactorizationStateError(
                "solve() requires a current LU factorization; call factorize_lu() first"
            )
        rhs = self._rhs(y)
        a = self._vals
        o = self._row_order
        n = self.rows

        z = np.zeros(n)
        for i in range(n):
            z[i] = (rhs[o[i]] - a[o[i], :i] @ z[:i]) / a[o[i], i]
        x = np.zeros(n)
        for i in range(n - 1, -1, -1):
            x[i] = z[i] - a[o[i], i + 1 :] @ x[i + 1 :]
        return Vector(x)

    def _rhs(self, y) -> NDArray[np.float64]:
        rhs = np.asarray(y, dtype=np.float64).ravel()
        if rhs.size != self.rows:
            raise DimensionError(
                f"Right-hand side has {rhs.size} elements, expected {self.rows}"
            )
        return rhs

    # ------------------------------------------------------------------
    # Cholesky
    # ------------------------------------------------------------------

    def factorize_cholesky(self) -> None:
        """Cholesky decomposition ``A = L Lᵀ`` in place.

        Only the lower triangle (with the diagonal) is read and
        overwritten; the strict upper triangle keeps its old values.

        Raises:
            DimensionError: If the matrix is not square.
            SingularMatrixError: If the matrix is not symmetric positive
                definite.
        """
        self._require_square("Cholesky decomposition")
        self._invalidate()
        a = self._vals
        n = self.rows

        for k in range(n):
            for i in range(k):
                a[k, i] = (a[k, i] - a[i, :i] @ a[k, :i]) / a[i, i]
            diag = a[k, k] - a[k, :k] @ a[k, :k]
            if diag < EPS:
                raise SingularMatrixError(
                    f"Cholesky decomposition failed at row {k}: matrix is not positive definite"
                )
            a[k, k] = np.sqrt(diag)

        self._factorization = _CHOLESKY

    def solve_cholesky(self, y) -> Vector:
        """Solve ``A x = y`` using the current Cholesky factorization."""
        if self._factorization != _CHOLESKY:
            raise FactorizationStateError(
                "solve_cholesky() requires a current Cholesky factorization; "
                "call factorize_cholesky() first"
            )
        rhs = self._rhs(y)
        a = self._vals
        n = self.rows

        z = np.zeros(n)
        for i in range(n):
            z[i] = (rhs[i] - a[i, :i] @ z[:i]) / a[i, i]
        x = np.zeros(n)
        for i in range(n - 1, -1, -1):
            x[i] = (z[i] - a[i + 1 :, i] @ x[i + 1 :]) / a[i, i]
        return Vector(x)

    def invert_cholesky(self) -> None:
        """Replace a Cholesky factorized matrix with the inverse of the original."""
        if self._factorization != _CHOLESKY:
            raise FactorizationStateError(
                "invert_cholesky() requires a current Cholesky factorization"
            )
        n = self.rows
        inv = np.empty((n, n))
        for j in range(n):
            e = np.zeros(n)
            e[j] = 1.0
            inv[:, j] = self.solve_cholesky(e).values
        self._vals[:, :] = inv
        self._invalidate()

    # ------------------------------------------------------------------
    # Inverse and determinant
    # ------------------------------------------------------------------

    def invert(self) -> None:
        """Invert in place.

        1x1 and 2x2 matrices use closed forms; larger ones are LU
        decomposed on a scratch copy and solved against each unit basis
        vector.

        Raises:
            DimensionError: If the matrix is not square.
            SingularMatrixError: If the matrix is singular.  The values
                are left unchanged.
        """
        self._require_square("Inversion")
        a = self._vals
        n = self.rows

        if n == 1:
            if abs(a[0, 0]) < EPS:
                raise SingularMatrixError("Cannot invert singular 1x1 matrix")
            a[0, 0] = 1.0 / a[0, 0]
            self._invalidate()
            return
        if n == 2:
            det = a[0, 0] * a[1, 1] - a[0, 1] * a[1, 0]
            if abs(det) < EPS:
                raise SingularMatrixError("Cannot invert singular 2x2 matrix")
            a[:, :] = np.array([[a[1, 1], -a[0, 1]], [-a[1, 0], a[0, 0]]]) / det
            self._invalidate()
            return

        work = self.copy()
        work.factorize_lu()
        diag = work._vals[work._row_order, np.arange(n)]
        if abs(np.prod(diag)) < EPS:
            raise SingularMatrixError("Cannot invert singular matrix")

        # Each solve gives one column of the inverse; stack as rows, transpose.
        rows = []
        for j in range(n):
            e = np.zeros(n)
            e[j] = 1.0
            rows.append(work.solve(e).values)
        a[:, :] = np.array(rows).T
        self._invalidate()

    def det(self) -> float:
        """Determinant.  The matrix is not modified."""
        self._require_square("Determinant")
        a = self._vals
        n = self.rows

        if n == 1:
            return float(a[0, 0])
        if n == 2:
            return float(a[0, 0] * a[1, 1] - a[0, 1] * a[1, 0])
        if n == 3:
            return float(
                a[0, 0] * (a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1])
                - a[0, 1] * (a[1, 0] * a[2, 2] - a[1, 2] * a[2, 0])
                + a[0, 2] * (a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0])
            )

        # Gaussian elimination with partial pivoting on a scratch copy.
        m = a.copy()
        sign = 1.0
        for k in range(n):
            p = k + int(np.argmax(np.abs(m[k:, k])))
            if abs(m[p, k]) < EPS:
                return 0.0
            if p != k:
                m[[k, p]] = m[[p, k]]
                sign = -sign
            m[k + 1 :, k:] -= np.outer(m[k + 1 :, k] / m[k, k], m[k, k:])
        return float(sign * np.prod(np.diag(m)))

    # ------------------------------------------------------------------
    # QR
    # ------------------------------------------------------------------

    def qr_decompose(self) -> Tuple["DenseMatrix", "DenseMatrix"]:
        """Thin QR decomposition by modified Gram-Schmidt.

        Returns:
            Tuple of Q (rows x cols, orthonormal columns) and R (cols x cols,
            upper triangular) with ``A = Q R``.

        Raises:
            DimensionError: If the matrix has fewer rows than columns.
            SingularMatrixError: If the columns are linearly dependent.
        """
        m, n = self.shape
        if m < n:
            raise DimensionError(f"QR decomposition requires rows >= cols, got {self.shape}")

        q = self._vals.copy()
        r = np.zeros((n, n))
        col_norms = np.linalg.norm(self._vals, axis=0)
        for k in range(n):
            rkk = float(np.sqrt(q[:, k] @ q[:, k]))
            if rkk < max(EPS, QR_RANK_RTOL * col_norms[k]):
                raise SingularMatrixError(
                    f"QR decomposition failed: column {k} is linearly dependent"
                )
            r[k, k] = rkk
            q[:, k] /= rkk
            if k + 1 < n:
                r[k, k + 1 :] = q[:, k] @ q[:, k + 1 :]
                q[:, k + 1 :] -= np.outer(q[:, k], r[k, k + 1 :])
        return DenseMatrix(q), DenseMatrix(r)


def _as_dense(a) -> DenseMatrix:
    return a.copy() if isinstance(a, DenseMatrix) else DenseMatrix(a)


def lu_solve(a, y) -> Vector:
    """Solve ``A x = y`` by LU without modifying ``a``."""
    work = _as_dense(a)
    work.factorize_lu()
    return work.solve(y)


def cholesky_solve(a, y) -> Vector:
    """Solve ``A x = y`` by Cholesky without modifying ``a``."""
    work = _as_dense(a)
    work.factorize_cholesky()
    return work.solve_cholesky(y)


def inverse(a) -> DenseMatrix:
    """Return the inverse of ``a`` as a new matrix."""
    work = _as_dense(a)
    work.invert()
    return work

"""
Stacked linear least squares solvers.

A solver is built once for a fixed design matrix A (and weight matrix W)
and then reused against many observation vectors y.  The expensive
decomposition happens in the constructor; ``solve`` only substitutes.

Classes:
    - SystemSolver: x = (A'A)^(-1) A'y
    - WeightedSystemSolver: x = (A'WA)^(-1) A'Wy

Both can decompose through Cholesky (normal equations), Crout LU (normal
equations) or QR (directly on A, numerically the most robust).  Neither
modifies the matrices passed in.

For measurement sets too large or too heterogeneous to stack, see
``vehstate.linalg.normal_equations.NormalEquationsAccumulator``.
"""

from enum import Enum
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import DimensionError
from vehstate.linalg.dense import DenseMatrix, inverse
from vehstate.linalg.vector import Vector


class Decomposition(Enum):
    """Decomposition used to solve a least squares system."""

    CHOLESKY = "cholesky"
    CROUT = "crout"
    QR = "qr"


def _back_substitute(r: NDArray[np.float64], b: NDArray[np.float64]) -> NDArray[np.float64]:
    n = r.shape[0]
    x = np.zeros(n)
    for i in range(n - 1, -1, -1):
        x[i] = (b[i] - r[i, i + 1 :] @ x[i + 1 :]) / r[i, i]
    return x


class SystemSolver:
    """
    Linear least squares solver for a fixed design matrix.

    Args:
        method: Decomposition to use.
        A: Design matrix (m x n), m >= n.

    Raises:
        DimensionError: If A has fewer rows than columns.
        SingularMatrixError: If A is rank deficient.

    Example:
        >>> import numpy as np
        >>> t = np.arange(5.0)
        >>> A = np.column_stack([np.ones(5), t])
        >>> solver = SystemSolver(Decomposition.QR, A)
        >>> np.allclose(solver.solve(1.0 + 2.0 * t).values, [1.0, 2.0])
        True
    """

    def __init__(self, method: Decomposition, A):
        self.method = Decomposition(method)
        self._a = self._validate_design(A)
        self._setup(self._a)

    @staticmethod
    def _validate_design(A) -> NDArray[np.float64]:
        a = np.array(A, dtype=np.float64)
        if a.ndim != 2:
            raise DimensionError(f"Design matrix must be 2D, got shape {a.shape}")
        m, n = a.shape
        if m < n:
            raise DimensionError(f"Underdetermined system: m={m} < n={n}. Need m >= n.")
        return a

    def _setup(self, a: NDArray[np.float64]) -> None:
        self._whitened = a
        if self.method is Decomposition.QR:
            self._q, self._r = DenseMatrix(a).qr_decompose()
            self._normal = None
        else:
            self._normal = DenseMatrix(a.T @ a)
            if self.method is Decomposition.CHOLESKY:
                self._normal.factorize_cholesky()
            else:
                self._normal.factorize_lu()

    @property
    def n_observations(self) -> int:
        return self._a.shape[0]

    @property
    def n_params(self) -> int:
        return self._a.shape[1]

    def _transform_observations(self, y: NDArray[np.float64]) -> NDArray[np.float64]:
        return y

    def solve(self, y) -> Vector:
        """Least squares solution for observation vector ``y``."""
        obs = np.asarray(y, dtype=np.float64).ravel()
        if obs.size != self.n_observations:
            raise DimensionError(
                f"Dimension mismatch: A has {self.n_observations} rows, y has {obs.size} elements"
            )
        obs = self._transform_observations(obs)

        if self.method is Decomposition.QR:
            qty = np.asarray(self._q).T @ obs
            return Vector(_back_substitute(np.asarray(self._r), qty))

        aty = self._whitened.T @ obs
        if self.method is Decomposition.CHOLESKY:
            return self._normal.solve_cholesky(aty)
        return self._normal.solve(aty)

    def covariance(self) -> DenseMatrix:
        """Inverse of the (weighted) normal matrix."""
        if self.method is Decomposition.QR:
            r_inv = np.asarray(inverse(self._r))
            return DenseMatrix(r_inv @ r_inv.T)
        return inverse(self._whitened.T @ self._whitened)


class WeightedSystemSolver(SystemSolver):
    """
    Weighted linear least squares solver for a fixed design and weight matrix.

    The weight matrix W (m x m, symmetric positive definite) is factored as
    W = L L'.  Whitening A and y by L' reduces the weighted problem to an
    ordinary one, so all three decompositions share the same code.

    Args:
        method: Decomposition to use.
        A: Design matrix (m x n), m >= n.
        W: Weight matrix (m x m) or its diagonal (m,).
    """

    def __init__(self, method: Decomposition, A, W):
        self.method = Decomposition(method)
        self._a = self._validate_design(A)
        m = self._a.shape[0]

        w = np.array(W, dtype=np.float64)
        if w.ndim == 1:
            w = np.diag(w)
        if w.shape != (m, m):
            raise DimensionError(
                f"Weight matrix shape mismatch: expected ({m}, {m}), got {w.shape}"
            )
        if not np.allclose(w, w.T):
            raise ValueError("Weight matrix W must be symmetric")

        chol = DenseMatrix(w)
        chol.factorize_cholesky()
        chol.zero_upper()
        self._lt: Optional[NDArray[np.float64]] = np.asarray(chol).T
        self._setup(self._lt @ self._a)

    def _transform_observations(self, y: NDArray[np.float64]) -> NDArray[np.float64]:
        return self._lt @ y

"""
Block-diagonal normal equation accumulation.

When measurement errors are independent between measurement sets, the
weight matrix of the stacked system is block diagonal and the normal
equations separate into a sum over sets:

    A'WA = sum_k J_k' W_k J_k
    A'Wy = sum_k J_k' W_k r_k

``NormalEquationsAccumulator`` keeps these two running sums, so sets of
different sizes and weights can be combined without ever forming the
stacked Jacobian.  The solve is a Cholesky back substitution against
the accumulated information matrix.

An accumulator is scratch state for a single call stack; create one per
estimation rather than sharing one between threads.
"""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import DimensionError, FactorizationStateError
from vehstate.linalg.dense import DenseMatrix
from vehstate.linalg.vector import Vector

logger = logging.getLogger(__name__)


class NormalEquationsAccumulator:
    """
    Running information matrix and vector for a fixed parameter count.

    Args:
        n_measurements: Rows per measurement set.  ``None`` accepts sets
            of any size.
        n_params: Number of solve-for parameters P.

    Example:
        >>> acc = NormalEquationsAccumulator(2, 3)
        >>> acc.accumulate(J1, W1, r1)
        >>> acc.accumulate(J2, W2, r2)
        >>> dp = acc.solve()
        >>> P = acc.covariance()
    """

    def __init__(self, n_measurements: Optional[int], n_params: int):
        if n_params < 1:
            raise DimensionError(f"n_params must be >= 1, got {n_params}")
        if n_measurements is not None and n_measurements < 1:
            raise DimensionError(f"n_measurements must be >= 1, got {n_measurements}")
        self._m = n_measurements
        self._n = n_params
        self._info = np.zeros((n_params, n_params))
        self._vec = np.zeros(n_params)
        self._n_sets = 0
        self._factor: Optional[DenseMatrix] = None

    @property
    def n_params(self) -> int:
        return self._n

    @property
    def n_measurements(self) -> Optional[int]:
        return self._m

    @property
    def n_sets(self) -> int:
        """Number of measurement sets accumulated since the last reset."""
        return self._n_sets

    @property
    def information_matrix(self) -> NDArray[np.float64]:
        """Copy of the running sum of J'WJ."""
        return self._info.copy()

    @property
    def information_vector(self) -> NDArray[np.float64]:
        """Copy of the running sum of J'Wr."""
        return self._vec.copy()

    def reset(self) -> None:
        """Zero the running sums and discard any previous solve."""
        self._info[:, :] = 0.0
        self._vec[:] = 0.0
        self._n_sets = 0
        self._factor = None

    def accumulate(self, jacobian, weight, residual) -> None:
        """
        Add one measurement set to the running sums.

        Args:
            jacobian: Measurement Jacobian J (m x P).
            weight: Weight matrix W (m x m), its diagonal (m,), or ``None``
                for identity weighting.
            residual: Residual vector r (m,).

        Raises:
            DimensionError: If the shapes are inconsistent.
        """
        j = np.asarray(jacobian, dtype=np.float64)
        r = np.asarray(residual, dtype=np.float64).ravel()
        if j.ndim != 2 or j.shape[1] != self._n:
            raise DimensionError(
                f"Jacobian must have shape (m, {self._n}), got {j.shape}"
            )
        m = j.shape[0]
        if self._m is not None and m != self._m:
            raise DimensionError(
                f"Jacobian has {m} rows, accumulator expects {self._m}"
            )
        if r.size != m:
            raise DimensionError(f"Residual has {r.size} elements, expected {m}")

        if weight is None:
            jtw = j.T
        else:
            w = np.asarray(weight, dtype=np.float64)
            if w.ndim == 1:
                if w.size != m:
                    raise DimensionError(f"Weight diagonal has {w.size} elements, expected {m}")
                jtw = j.T * w
            elif w.shape == (m, m):
                jtw = j.T @ w
            else:
                raise DimensionError(f"Weight must have shape ({m}, {m}), got {w.shape}")

        self._info += jtw @ j
        self._vec += jtw @ r
        self._n_sets += 1
        self._factor = None

    def accumulate_unweighted(self, jacobian, residual) -> None:
        """Add one measurement set with identity weighting."""
        self.accumulate(jacobian, None, residual)

    def solve(self) -> Vector:
        """
        Solve the accumulated normal equations.

        Returns:
            Parameter update of length P.

        Raises:
            SingularMatrixError: If the information matrix is not positive
                definite (nothing accumulated, or rank deficient input).
        """
        factor = DenseMatrix(self._info)
        factor.factorize_cholesky()
        dp = factor.solve_cholesky(self._vec)
        self._factor = factor
        logger.debug(f"Solved {self._n}-parameter normal equations from {self._n_sets} sets")
        return dp

    def covariance(self) -> DenseMatrix:
        """
        Inverse of the information matrix from the last ``solve()``.

        Raises:
            FactorizationStateError: If ``solve()`` has not succeeded since
                the last reset or accumulation.
        """
        if self._factor is None:
            raise FactorizationStateError(
                "covariance() is only valid after a successful solve()"
            )
        # Columns of the inverse from the factor kept by solve().
        cols = []
        for j in range(self._n):
            e = np.zeros(self._n)
            e[j] = 1.0
            cols.append(self._factor.solve_cholesky(e).values)
        return DenseMatrix(np.column_stack(cols))

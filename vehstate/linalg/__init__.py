"""
Dense linear algebra for estimation.

Available components:
    - Vector: fixed-length vector with checked arithmetic
    - DenseMatrix: Crout LU, Cholesky and QR decompositions
    - SystemSolver / WeightedSystemSolver: stacked least squares
    - NormalEquationsAccumulator: block-diagonal normal equations
"""

from vehstate.linalg.vector import Vector
from vehstate.linalg.dense import (
    EPS,
    DenseMatrix,
    cholesky_solve,
    inverse,
    lu_solve,
)
from vehstate.linalg.solvers import Decomposition, SystemSolver, WeightedSystemSolver
from vehstate.linalg.normal_equations import NormalEquationsAccumulator

__all__ = [
    "Vector",
    "EPS",
    "DenseMatrix",
    "lu_solve",
    "cholesky_solve",
    "inverse",
    "Decomposition",
    "SystemSolver",
    "WeightedSystemSolver",
    "NormalEquationsAccumulator",
]

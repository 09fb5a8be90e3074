"""Exception types raised by the vehstate numerical core.

Numerically fatal and programmer-error conditions raise one of these.
They subclass the builtin exception a caller would naturally catch
(``ValueError``, ``IndexError`` or ``RuntimeError``), so existing
``except ValueError`` handlers keep working.

Expected, caller-checkable outcomes of an estimation (not enough sensor
data, no convergence) are not exceptions; see
``vehstate.attitude.base.EstimatorStatus``.
"""


class VehStateError(Exception):
    """Base class for all vehstate exceptions."""


class DimensionError(VehStateError, ValueError):
    """Operand dimensions are incompatible with the requested operation."""


class IndexOutOfBoundsError(VehStateError, IndexError):
    """A vector or matrix element was accessed outside its bounds."""


class SingularMatrixError(VehStateError, ValueError):
    """A matrix could not be decomposed, solved or inverted.

    Raised for a row of zeros or pivot underflow during LU decomposition,
    a matrix that is not symmetric positive definite during Cholesky
    decomposition, a rank deficient matrix during QR decomposition, and
    singular (or near singular) matrix inversion.
    """


class SingularQuaternionError(VehStateError, ValueError):
    """A quaternion could not be extracted from a DCM or inverted."""


class FactorizationStateError(VehStateError, RuntimeError):
    """A solve was requested without a valid, current factorization."""

"""
Attitude determination from pointing vector observations.

Available solvers:
    - TriadSolver: closed-form two-vector solution
    - QuaternionWLSEstimator: iterative WLS on all four quaternion components
    - VectorPartWLSEstimator: iterative WLS on the quaternion vector part
    - MultiplicativeWLSEstimator: iterative WLS on a small rotation correction
"""

from vehstate.attitude.base import (
    INSUFFICIENT_DATA,
    NOT_CONVERGED,
    SINGULAR_INFORMATION,
    AttitudeEstimate,
    AttitudeSolver,
    EstimatorStatus,
    WLSConfig,
    count_valid_sensors,
)
from vehstate.attitude.pointing_model import (
    predict_pointing,
    quaternion_partials,
    rotation_partials,
    sensor_weight_matrix,
    vector_part_partials,
)
from vehstate.attitude.triad import TriadSolver, select_triad_pair, triad_dcm
from vehstate.attitude.wls import (
    IterativeAttitudeEstimator,
    MultiplicativeWLSEstimator,
    QuaternionWLSEstimator,
    VectorPartWLSEstimator,
    limit_step,
)

__all__ = [
    # Outcomes
    "INSUFFICIENT_DATA",
    "NOT_CONVERGED",
    "SINGULAR_INFORMATION",
    "EstimatorStatus",
    "AttitudeEstimate",
    "WLSConfig",
    "AttitudeSolver",
    "count_valid_sensors",
    # Measurement model
    "predict_pointing",
    "quaternion_partials",
    "vector_part_partials",
    "rotation_partials",
    "sensor_weight_matrix",
    # TRIAD
    "triad_dcm",
    "select_triad_pair",
    "TriadSolver",
    # Iterative WLS
    "limit_step",
    "IterativeAttitudeEstimator",
    "QuaternionWLSEstimator",
    "VectorPartWLSEstimator",
    "MultiplicativeWLSEstimator",
]

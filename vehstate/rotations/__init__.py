"""
Rotation representations.

Available components:
    - Quaternion: scalar-first Hamilton quaternion value type
    - quat_to_dcm / dcm_to_quat: frame rotation DCM conversions
    - rot_x / rot_y / rot_z: elementary frame rotations
"""

from vehstate.rotations.dcm import (
    KAPPA,
    dcm_to_quat,
    quat_to_dcm,
    rot_x,
    rot_y,
    rot_z,
    skew,
)
from vehstate.rotations.quaternion import DRIFT_TOL, Quaternion

__all__ = [
    "KAPPA",
    "DRIFT_TOL",
    "Quaternion",
    "quat_to_dcm",
    "dcm_to_quat",
    "rot_x",
    "rot_y",
    "rot_z",
    "skew",
]

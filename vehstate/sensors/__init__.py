"""
Pointing sensors.

Available components:
    - PointingObservationSource: interface consumed by attitude estimators
    - PointingSensor: immutable measurement container
    - SimpleConeTracker: cone field-of-view tracker simulation
"""

from vehstate.sensors.pointing import PointingObservationSource, PointingSensor
from vehstate.sensors.cone_tracker import ConeTrackerConfig, SimpleConeTracker

__all__ = [
    "PointingObservationSource",
    "PointingSensor",
    "ConeTrackerConfig",
    "SimpleConeTracker",
]

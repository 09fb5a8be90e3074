"""
Simulated cone field-of-view tracker.

``SimpleConeTracker`` generates pointing measurements for a sensor with a
circular field of view.  Targets are drawn uniformly in half-cone angle
and clock angle, which concentrates them toward the boresight.  Each
call to ``measure`` takes a true body attitude and returns an immutable
``PointingSensor`` snapshot.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from vehstate.rotations.quaternion import Quaternion
from vehstate.sensors.pointing import PointingSensor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConeTrackerConfig:
    """
    Cone tracker settings.

    Attributes:
        max_measurements: Upper bound on targets per frame.  Each frame
            draws between 1 and this many (none if it is 0).
        cone_width: Full cone angle of the field of view in radians.
        sigma: Standard deviation of the Gaussian noise added to the
            observed x and y components.  0 gives perfect measurements.
        body_to_sensor: Sensor orientation relative to the body.
    """

    max_measurements: int = 5
    cone_width: float = np.deg2rad(20.0)
    sigma: float = 0.0
    body_to_sensor: Quaternion = field(default_factory=Quaternion)

    def __post_init__(self) -> None:
        """Validate tracker settings."""
        if self.max_measurements < 0:
            raise ValueError(f"max_measurements must be >= 0, got {self.max_measurements}")
        if not 0.0 < self.cone_width <= np.pi:
            raise ValueError(f"cone_width must be in (0, pi], got {self.cone_width}")
        if self.sigma < 0:
            raise ValueError(f"sigma must be non-negative, got {self.sigma}")


class SimpleConeTracker:
    """
    Pointing tracker simulation.

    Args:
        config: Tracker settings.
        rng: Random number generator (a fresh default generator if None).

    Example:
        >>> tracker = SimpleConeTracker(
        ...     ConeTrackerConfig(max_measurements=4, sigma=1e-4),
        ...     rng=np.random.default_rng(7),
        ... )
        >>> sensor = tracker.measure(Quaternion.from_axis_angle(0.3, [1, 1, 0]))
        >>> 1 <= sensor.measurement_count <= 4
        True
    """

    def __init__(
        self,
        config: Optional[ConeTrackerConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config if config is not None else ConeTrackerConfig()
        self.rng = rng if rng is not None else np.random.default_rng()

    def _draw_count(self) -> int:
        n_max = self.config.max_measurements
        if n_max < 1:
            return 0
        return int(self.rng.integers(1, n_max + 1))

    def _draw_direction(self) -> np.ndarray:
        sine_half_cone = np.sin(self.rng.random() * 0.5 * self.config.cone_width)
        clock = self.rng.random() * 2.0 * np.pi
        x = np.cos(clock) * sine_half_cone
        y = np.sin(clock) * sine_half_cone
        return np.array([x, y, np.sqrt(1.0 - x * x - y * y)])

    def measure(self, attitude: Quaternion) -> PointingSensor:
        """
        Simulate one frame of measurements.

        Args:
            attitude: True master-to-body rotation.

        Returns:
            Sensor snapshot whose reference vectors are the true target
            directions and whose observations carry the configured noise.
        """
        cfg = self.config
        q_bs = cfg.body_to_sensor
        master_to_sensor = attitude * q_bs

        n = self._draw_count()
        refs = np.zeros((n, 3))
        obs = np.zeros((n, 2))
        for k in range(n):
            r_s = self._draw_direction()
            ref = master_to_sensor.vector_rotate(r_s)
            refs[k] = ref / np.linalg.norm(ref)

            if cfg.sigma > 0.0:
                r_s[:2] += self.rng.normal(0.0, cfg.sigma, size=2)
                mag = np.linalg.norm(r_s[:2])
                if mag > 1.0:
                    r_s[:2] /= mag
            obs[k] = r_s[:2]

        logger.debug(f"Cone tracker produced {n} measurements")
        return PointingSensor(refs, obs, q_bs, np.array([cfg.sigma, cfg.sigma]))

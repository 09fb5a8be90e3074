"""
Pointing sensor observation interface.

A pointing sensor (star tracker, sun sensor, antenna tracker) reports the
x and y components of unit vectors measured in its own frame; the z
component is implied by the unit norm.  Each measurement is paired with a
reference unit vector: the modeled direction of the same target in the
master (inertial) frame.

Frame conventions:
    - I: master/inertial frame of the reference vectors
    - B: body frame whose attitude is estimated
    - S: sensor frame of the observations
The sensor orientation is the body-to-sensor quaternion q_bs, so
``q_ib * q_bs`` takes the master frame to the sensor frame and, for a
noise-free measurement,

    observed = (A(q_bs) @ A(q_ib) @ reference)[:2]
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from vehstate.errors import DimensionError, IndexOutOfBoundsError
from vehstate.rotations.quaternion import Quaternion


class PointingObservationSource(ABC):
    """
    Read-only view of one pointing sensor's measurements.

    Estimators read this interface only; a source must not change while
    an estimation call is using it.
    """

    @property
    @abstractmethod
    def measurement_count(self) -> int:
        """Number of measurements (>= 0)."""
        pass

    @abstractmethod
    def reference_vector(self, i: int) -> NDArray[np.float64]:
        """Reference unit vector for measurement i, in the master frame."""
        pass

    @abstractmethod
    def observed_vector(self, i: int) -> NDArray[np.float64]:
        """Observed [x, y] of measurement i, in the sensor frame."""
        pass

    @abstractmethod
    def orientation(self) -> Quaternion:
        """Body-to-sensor frame rotation."""
        pass

    @abstractmethod
    def error_sigma(self) -> NDArray[np.float64]:
        """Per-axis random error standard deviations [sigma_x, sigma_y]."""
        pass

    def observed_direction(self, i: int) -> NDArray[np.float64]:
        """Observed unit vector of measurement i, expressed in the body frame."""
        u, v = self.observed_vector(i)
        w = np.sqrt(max(0.0, 1.0 - u * u - v * v))
        return self.orientation().vector_rotate([u, v, w])

    def is_valid(self) -> bool:
        """True if the sensor has at least one measurement."""
        return self.measurement_count > 0

    def measurement_bias(self) -> NDArray[np.float64]:
        """Known per-axis measurement bias [x, y], zero by default."""
        return np.zeros(2)


@dataclass(frozen=True, eq=False)
class PointingSensor(PointingObservationSource):
    """
    Immutable container of pointing measurements.

    Attributes:
        reference_vectors: Reference unit vectors (n x 3), master frame.
        observed_vectors: Observed [x, y] components (n x 2), sensor frame.
        body_to_sensor: Sensor orientation relative to the body.
        sigma: Per-axis error standard deviations [sigma_x, sigma_y].

    Example:
        >>> sensor = PointingSensor(
        ...     reference_vectors=np.array([[0.0, 0.0, 1.0]]),
        ...     observed_vectors=np.array([[0.0, 0.0]]),
        ...     body_to_sensor=Quaternion(),
        ...     sigma=np.array([1e-4, 1e-4]),
        ... )
        >>> sensor.measurement_count
        1
    """

    reference_vectors: np.ndarray
    observed_vectors: np.ndarray
    body_to_sensor: Quaternion
    sigma: np.ndarray

    def __post_init__(self) -> None:
        """Validate and freeze the measurement arrays."""
        refs = np.array(self.reference_vectors, dtype=np.float64).reshape(-1, 3)
        obs = np.array(self.observed_vectors, dtype=np.float64).reshape(-1, 2)
        if refs.shape[0] != obs.shape[0]:
            raise DimensionError(
                f"Got {refs.shape[0]} reference vectors but {obs.shape[0]} observations"
            )
        sigma = np.array(self.sigma, dtype=np.float64).ravel()
        if sigma.shape != (2,):
            raise DimensionError(f"sigma must have 2 elements, got shape {sigma.shape}")
        if not isinstance(self.body_to_sensor, Quaternion):
            raise TypeError(
                f"body_to_sensor must be a Quaternion, got {type(self.body_to_sensor)}"
            )
        for arr in (refs, obs, sigma):
            arr.flags.writeable = False
        object.__setattr__(self, "reference_vectors", refs)
        object.__setattr__(self, "observed_vectors", obs)
        object.__setattr__(self, "body_to_sensor", self.body_to_sensor.copy())
        object.__setattr__(self, "sigma", sigma)

    @classmethod
    def from_sensor_directions(
        cls,
        directions: np.ndarray,
        attitude: Quaternion,
        body_to_sensor: Optional[Quaternion] = None,
        sigma=(0.0, 0.0),
    ) -> "PointingSensor":
        """
        Build a noise-free sensor from target directions in the sensor frame.

        Args:
            directions: Target directions (n x 3) in the sensor frame.
                Each is unitized; its z component must be non-negative.
            attitude: True master-to-body rotation.
            body_to_sensor: Sensor orientation (identity if None).
            sigma: Per-axis error standard deviations to report.
        """
        q_bs = Quaternion() if body_to_sensor is None else body_to_sensor
        dirs = np.atleast_2d(np.asarray(directions, dtype=np.float64))
        if dirs.ndim != 2 or dirs.shape[1] != 3:
            raise DimensionError(f"directions must have shape (n, 3), got {dirs.shape}")
        dirs = dirs / np.linalg.norm(dirs, axis=1, keepdims=True)

        master_to_sensor = attitude * q_bs
        refs = np.array([master_to_sensor.vector_rotate(d) for d in dirs])
        return cls(refs, dirs[:, :2], q_bs, np.asarray(sigma, dtype=np.float64))

    def _check_index(self, i: int) -> None:
        if not 0 <= i < self.measurement_count:
            raise IndexOutOfBoundsError(
                f"Measurement index {i} out of range for {self.measurement_count} measurements"
            )

    @property
    def measurement_count(self) -> int:
        return self.reference_vectors.shape[0]

    def reference_vector(self, i: int) -> NDArray[np.float64]:
        self._check_index(i)
        return self.reference_vectors[i].copy()

    def observed_vector(self, i: int) -> NDArray[np.float64]:
        self._check_index(i)
        return self.observed_vectors[i].copy()

    def orientation(self) -> Quaternion:
        return self.body_to_sensor.copy()

    def error_sigma(self) -> NDArray[np.float64]:
        return self.sigma.copy()

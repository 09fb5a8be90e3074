"""Vehicle state estimation core.

This package contains the numerical building blocks used to estimate the
attitude of a vehicle from unit pointing-vector observations:
- linalg: Dense matrices, vectors, decomposition-based solvers and
  block-diagonal normal equation accumulation
- rotations: Quaternions and direction cosine matrices
- sensors: Pointing sensor interface and simulated trackers
- attitude: TRIAD and iterative weighted least squares attitude estimators
"""

__version__ = "0.1.0"

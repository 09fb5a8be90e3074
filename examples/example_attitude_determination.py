"""
Example: Attitude Determination from Pointing Sensors

This script simulates three cone field-of-view trackers mounted on a
vehicle and estimates the vehicle attitude frame by frame with TRIAD and
the three iterative weighted least squares estimators.

Can run with:
    - Defaults: python example_attitude_determination.py
    - Noisier sensors: python example_attitude_determination.py --sigma 1e-3
    - More frames: python example_attitude_determination.py --frames 500 --seed 3

Demonstrates:
    - Closed-form TRIAD from two vector pairs
    - Gauss-Newton WLS on the quaternion vector part, on all four
      components, and on a multiplicative rotation correction
    - Attitude error and reported covariance against the truth
"""

import argparse
import logging
from typing import Dict

import numpy as np

from vehstate.attitude import (
    MultiplicativeWLSEstimator,
    QuaternionWLSEstimator,
    TriadSolver,
    VectorPartWLSEstimator,
)
from vehstate.rotations import Quaternion
from vehstate.sensors import ConeTrackerConfig, SimpleConeTracker

SENSOR_MOUNTS = {
    "forward": Quaternion(),
    "port": Quaternion.from_basis_axis(np.pi / 2, "x"),
    "zenith": Quaternion.from_basis_axis(-np.pi / 2, "y"),
}


def attitude_error(estimate: Quaternion, truth: Quaternion) -> float:
    """Angle in radians of the rotation between two attitudes."""
    angle = (truth.conjugate() * estimate).angle()
    return min(angle, 2.0 * np.pi - angle)


def random_attitude(rng: np.random.Generator) -> Quaternion:
    q = rng.normal(size=4)
    return Quaternion.from_array(q).normalize().standardize()


def run_monte_carlo(
    n_frames: int, sigma: float, max_measurements: int, seed: int
) -> Dict[str, Dict]:
    """Run every estimator over ``n_frames`` random attitudes.

    Returns:
        Per-estimator lists of attitude errors, iteration counts and
        the number of failed solves.
    """
    rng = np.random.default_rng(seed)
    trackers = [
        SimpleConeTracker(
            ConeTrackerConfig(
                max_measurements=max_measurements, sigma=sigma, body_to_sensor=mount
            ),
            rng=rng,
        )
        for mount in SENSOR_MOUNTS.values()
    ]
    solvers = {
        "TRIAD": TriadSolver(),
        "WLS vector part": VectorPartWLSEstimator(),
        "WLS quaternion": QuaternionWLSEstimator(),
        "WLS multiplicative": MultiplicativeWLSEstimator(),
    }
    results = {name: {"errors": [], "iterations": [], "failures": 0} for name in solvers}

    for _ in range(n_frames):
        truth = random_attitude(rng)
        sensors = [tracker.measure(truth) for tracker in trackers]
        for name, solver in solvers.items():
            outcome = solver.solve(sensors)
            if outcome < 0:
                results[name]["failures"] += 1
                continue
            results[name]["errors"].append(attitude_error(solver.quaternion, truth))
            results[name]["iterations"].append(outcome)
    return results


def print_summary(results: Dict[str, Dict], sigma: float) -> None:
    print(f"\n{'Estimator':<22}{'RMS error [urad]':>18}{'Max [urad]':>14}{'Mean iter':>11}{'Fail':>6}")
    print("-" * 71)
    for name, res in results.items():
        errors = np.array(res["errors"])
        if errors.size == 0:
            print(f"{name:<22}{'-':>18}{'-':>14}{'-':>11}{res['failures']:>6}")
            continue
        rms = 1e6 * np.sqrt(np.mean(errors**2))
        worst = 1e6 * np.max(errors)
        iters = np.mean(res["iterations"])
        print(f"{name:<22}{rms:>18.2f}{worst:>14.2f}{iters:>11.2f}{res['failures']:>6}")
    print(f"\nSensor noise: {sigma:.1e} per axis ({1e6 * sigma:.1f} urad)")


def example_single_frame(sigma: float, seed: int) -> None:
    """Solve one frame and show the estimate with its 1-sigma bounds."""
    rng = np.random.default_rng(seed)
    truth = random_attitude(rng)
    sensors = [
        SimpleConeTracker(
            ConeTrackerConfig(max_measurements=5, sigma=sigma, body_to_sensor=mount), rng=rng
        ).measure(truth)
        for mount in SENSOR_MOUNTS.values()
    ]

    print("\nSingle frame:")
    for name, sensor in zip(SENSOR_MOUNTS, sensors):
        print(f"  {name:<8} {sensor.measurement_count} targets")

    estimator = MultiplicativeWLSEstimator()
    estimate = estimator.estimate(sensors)
    if not estimate.converged:
        print(f"  Solve failed with status {estimate.status.value}")
        return

    bounds = np.sqrt(np.diag(estimator.quaternion_covariance()))
    print(f"  True attitude:      {np.round(truth.values, 6)}")
    print(f"  Estimated attitude: {np.round(estimate.quaternion, 6)}")
    print(f"  1-sigma bounds:     {np.round(bounds, 8)}")
    print(f"  Iterations:         {estimate.iterations}")
    print(f"  Attitude error:     {1e6 * attitude_error(estimator.quaternion, truth):.2f} urad")


def main():
    """Run the attitude determination example."""
    parser = argparse.ArgumentParser(
        description="Attitude determination from simulated pointing sensors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default Monte Carlo run
  python example_attitude_determination.py

  # Noisier trackers with fewer targets per frame
  python example_attitude_determination.py --sigma 1e-3 --max-measurements 2
        """,
    )
    parser.add_argument("--frames", type=int, default=200, help="Number of simulated frames")
    parser.add_argument(
        "--sigma", type=float, default=1e-4, help="Tracker noise per axis (unit vector components)"
    )
    parser.add_argument(
        "--max-measurements", type=int, default=5, help="Maximum targets per tracker per frame"
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--verbose", action="store_true", help="Log estimator iterations")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    print("=" * 71)
    print("ATTITUDE DETERMINATION EXAMPLE")
    print("=" * 71)

    example_single_frame(args.sigma, args.seed)
    results = run_monte_carlo(args.frames, args.sigma, args.max_measurements, args.seed)
    print_summary(results, args.sigma)

    print("\n" + "=" * 71)
    print("EXAMPLE COMPLETED")
    print("=" * 71)


if __name__ == "__main__":
    main()

# /// script
# requires-python = ">=3.11"
# dependencies = ["typer>=0.9.0", "astrofilter"]
#
# [tool.uv.sources]
# astrofilter = { path = ".." }
# ///
"""Sequential orbit determination of a LEO satellite from ground tracking.

Simulates range and range-rate passes over a small network of ground
stations from a reference orbit, perturbs the initial orbit, and runs the
extended Kalman filter over the observations in time order. Optionally
estimates the drag coefficient and the range bias of the first station.

Requires astrofilter to be installed (``uv pip install -e .`` from the repo root).

Usage:
    uv run examples/sequential_od.py [OPTIONS]

Examples:
    # Two-body dynamics, 3 hours of tracking
    uv run examples/sequential_od.py --duration 3.0

    # J2 and drag, estimating the drag coefficient and a station range bias
    uv run examples/sequential_od.py --force-model leo --estimate-drag --range-bias 25.0

    # Keplerian orbital parameters with a dynamic outlier filter
    uv run examples/sequential_od.py --orbit-type keplerian --max-sigma 5.0
"""

import enum
import logging
import time
from typing import Annotated

import jax
import jax.numpy as jnp
import typer

from astrofilter import set_dtype
from astrofilter.constants import DEG2RAD, GM_EARTH, R_EARTH
from astrofilter.epoch import Epoch
from astrofilter.estimation import KalmanEstimatorBuilder, LinearProcessNoise
from astrofilter.measurements import DynamicOutlierFilter, GroundStation, Range, RangeRate
from astrofilter.orbit_dynamics import ForceModelConfig
from astrofilter.orbit_types import OrbitType
from astrofilter.propagation import TrajectoryBuilder

set_dtype(jnp.float64)  # Must be before any JIT compilation

STATIONS = [
    ("Kiruna", 21.06, 67.86, 385.0),
    ("Hartebeesthoek", 27.71, -25.89, 1558.0),
    ("Kourou", -52.80, 5.25, 14.0),
    ("Svalbard", 15.41, 78.23, 458.0),
]


class ForceModel(enum.StrEnum):
    """Dynamics used for simulation and estimation."""

    two_body = "two-body"
    leo = "leo"


class Orbit(enum.StrEnum):
    """Orbital parameters estimated by the filter."""

    cartesian = "cartesian"
    keplerian = "keplerian"


def _elevation(station_state: jax.Array, state: jax.Array) -> float:
    up = station_state[:3] / jnp.linalg.norm(station_state[:3])
    los = state[:3] - station_state[:3]
    return float(jnp.arcsin(jnp.dot(up, los) / jnp.linalg.norm(los)))


def main(
    duration: Annotated[float, typer.Option(help="Tracking duration in hours")] = 6.0,
    interval: Annotated[float, typer.Option(help="Time between observations in seconds")] = 30.0,
    force_model: Annotated[ForceModel, typer.Option(help="Force model")] = ForceModel.two_body,
    orbit_type: Annotated[Orbit, typer.Option(help="Estimated orbit type")] = Orbit.cartesian,
    sigma_range: Annotated[float, typer.Option(help="Range noise [m]")] = 10.0,
    sigma_range_rate: Annotated[float, typer.Option(help="Range-rate noise [m/s]")] = 0.01,
    range_bias: Annotated[float, typer.Option(help="True range bias of the first station [m]")] = 0.0,
    estimate_drag: Annotated[bool, typer.Option(help="Estimate the drag coefficient")] = False,
    max_sigma: Annotated[float, typer.Option(help="Outlier threshold (0 disables)")] = 0.0,
    min_elevation: Annotated[float, typer.Option(help="Minimum elevation [deg]")] = 10.0,
    seed: Annotated[int, typer.Option(help="Random seed for measurement noise")] = 42,
    verbose: Annotated[bool, typer.Option(help="Log every processed observation")] = False,
) -> None:
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)

    epoch_0 = Epoch(2024, 1, 1, 0, 0, 0.0)
    config = ForceModelConfig.leo_default() if force_model is ForceModel.leo else ForceModelConfig.two_body()

    # ── Stage 1: Reference orbit ───────────────────────────────────────────
    print("── Stage 1: Simulating reference orbit ──")
    sma = R_EARTH + 550e3
    v = float(jnp.sqrt(GM_EARTH / sma))
    inc = 97.6 * DEG2RAD
    true_state = jnp.array([sma, 0.0, 0.0, 0.0, v * jnp.cos(inc), v * jnp.sin(inc)])
    truth = TrajectoryBuilder(epoch_0, true_state, force_model=config).build_propagator()

    stations = [GroundStation(*s) for s in STATIONS]
    n_epochs = int(duration * 3600.0 / interval)
    key = jax.random.PRNGKey(seed)
    observations = []
    t0 = time.perf_counter()
    for i in range(1, n_epochs + 1):
        epoch = epoch_0 + i * interval
        ts = truth.propagate(epoch)
        for k, station in enumerate(stations):
            station_state = station.state_eci(epoch)
            if _elevation(station_state, ts.state) < min_elevation * DEG2RAD:
                continue
            key, k_r, k_rr = jax.random.split(key, 3)
            d = ts.state - station_state
            rho = float(jnp.linalg.norm(d[:3]))
            rho_dot = float(jnp.dot(d[:3], d[3:]) / rho)
            bias = range_bias if k == 0 else 0.0
            r_obs = Range(station, epoch,
                          rho + bias + float(jax.random.normal(k_r)) * sigma_range, sigma_range)
            rr_obs = RangeRate(station, epoch,
                               rho_dot + float(jax.random.normal(k_rr)) * sigma_range_rate,
                               sigma_range_rate)
            if max_sigma > 0.0:
                for obs in (r_obs, rr_obs):
                    obs.add_modifier(DynamicOutlierFilter(warmup=10, max_sigma=max_sigma))
            observations.extend([r_obs, rr_obs])
    print(f"  Simulated {len(observations)} observations in {time.perf_counter() - t0:.1f}s")
    if not observations:
        print("ERROR: No station saw the satellite. Exiting.")
        raise typer.Exit(code=1)

    # ── Stage 2: Filter setup ──────────────────────────────────────────────
    print("\n── Stage 2: Building the filter ──")
    initial = true_state + jnp.array([2000.0, -1000.0, 500.0, 1.0, -0.5, 0.5])
    builder = TrajectoryBuilder(
        epoch_0, initial, orbit_type=OrbitType(orbit_type.value), force_model=config
    )
    sigmas = [3e3] * 3 + [3.0] * 3
    rates = [1e-4] * 3 + [1e-10] * 3
    if orbit_type is Orbit.keplerian:
        sigmas = [3e3, 1e-3, 1e-3, 1e-3, 1e-2, 1e-2]
        rates = [1e-4, 1e-16, 1e-16, 1e-16, 1e-14, 1e-14]
    if estimate_drag:
        if force_model is not ForceModel.leo:
            print("ERROR: --estimate-drag requires --force-model leo. Exiting.")
            raise typer.Exit(code=1)
        cd = builder.propagation_parameters[1]
        cd.selected = True
        sigmas.append(0.5)
        rates.append(1e-8)
    estimated_bias = []
    if range_bias != 0.0:
        stations[0].range_bias.selected = True
        estimated_bias.append(stations[0].range_bias)
        sigmas.append(50.0)
        rates.append(0.0)

    P0 = jnp.diag(jnp.array(sigmas) ** 2)
    estimator = (
        KalmanEstimatorBuilder()
        .add_propagation_configuration(builder, LinearProcessNoise(P0, jnp.diag(jnp.array(rates))))
        .estimated_measurements_parameters(estimated_bias)
        .build()
    )
    print(f"  Estimated parameters: {estimator.model.layout.dimension}")
    for p in estimator.model.layout.parameters:
        print(f"    {p.name:<24} scale={p.scale:.3e}")

    # ── Stage 3: Filtering ────────────────────────────────────────────────
    print("\n── Stage 3: Processing observations ──")
    t0 = time.perf_counter()
    estimator.process_measurements(observations)
    print(f"  Processed {estimator.model.current_measurement_number} observations "
          f"in {time.perf_counter() - t0:.1f}s")

    # ── Stage 4: Results ──────────────────────────────────────────────────
    print("\n── Stage 4: Results ──")
    final = estimator.model.corrected_states[0]
    true_final = truth.propagate(final.epoch)
    dr = float(jnp.linalg.norm(final.state[:3] - true_final.state[:3]))
    dv = float(jnp.linalg.norm(final.state[3:] - true_final.state[3:]))
    print(f"  Final epoch: {final.epoch}")
    print(f"  Position error: {dr:.2f} m")
    print(f"  Velocity error: {dv * 1e3:.3f} mm/s")
    sigma = jnp.sqrt(jnp.diag(estimator.model.physical_estimated_covariance))
    for p, s in zip(estimator.model.layout.parameters, sigma):
        print(f"    {p.name:<24} {p.value: .6e} +/- {float(s):.3e}")

    print("\nDone.")


if __name__ == "__main__":
    typer.run(main)

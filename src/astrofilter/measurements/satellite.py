"""Observations of the spacecraft state itself and inter-satellite links."""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.epoch import Epoch
from astrofilter.measurements.base import ObservedMeasurement


class Position(ObservedMeasurement):
    """Inertial position fix ``[x, y, z]`` [m], e.g. from a GNSS receiver."""

    def __init__(self, epoch: Epoch, observed: ArrayLike, sigma: ArrayLike,
                 trajectory: int = 0) -> None:
        super().__init__(epoch, observed, sigma, (trajectory,))
        if self.dimension != 3:
            raise ValueError(f"Position expects 3 observed values, got {self.dimension}")

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        return states[0][:3]


class PV(ObservedMeasurement):
    """Inertial position-velocity fix ``[r, v]`` [m, m/s].

    Args:
        epoch: Observation epoch.
        observed: Observed state, shape ``(6,)``.
        sigma_position: Position standard deviation [m].
        sigma_velocity: Velocity standard deviation [m/s].
        trajectory: Index of the observed trajectory.
    """

    def __init__(self, epoch: Epoch, observed: ArrayLike, sigma_position: float,
                 sigma_velocity: float, trajectory: int = 0) -> None:
        sigma = jnp.array([sigma_position] * 3 + [sigma_velocity] * 3)
        super().__init__(epoch, observed, sigma, (trajectory,))

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        return states[0][:6]


class InterSatellitesRange(ObservedMeasurement):
    """Instantaneous range between two estimated spacecraft [m]."""

    def __init__(self, epoch: Epoch, observed: float, sigma: float,
                 local: int = 0, remote: int = 1) -> None:
        if local == remote:
            raise ValueError("Inter-satellite range needs two distinct trajectories")
        super().__init__(epoch, observed, sigma, (local, remote))

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        return jnp.atleast_1d(jnp.linalg.norm(states[0][:3] - states[1][:3]))

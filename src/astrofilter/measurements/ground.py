"""Observations from a ground station.

All models are instantaneous geometric models (no light-time iteration) in
the inertial frame; the station velocity is the Earth-rotation velocity.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.epoch import Epoch
from astrofilter.measurements.base import ObservedMeasurement
from astrofilter.measurements.station import GroundStation


class Range(ObservedMeasurement):
    """Station-to-spacecraft range [m], including the station range bias.

    Examples:
        ```python
        from astrofilter.measurements import GroundStation, Range
        station = GroundStation("Kiruna", 21.06, 67.86, 385.0)
        obs = Range(station, epoch, 1.23e6, sigma=10.0)
        ```
    """

    def __init__(self, station: GroundStation, epoch: Epoch, observed: float,
                 sigma: float, trajectory: int = 0) -> None:
        super().__init__(epoch, observed, sigma, (trajectory,), (station.range_bias,))
        self.station = station
        self._station_state = station.state_eci(self.epoch)

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        rho = states[0][:3] - self._station_state[:3]
        return jnp.atleast_1d(jnp.linalg.norm(rho) + params[0])


class RangeRate(ObservedMeasurement):
    """Station-to-spacecraft range rate [m/s]."""

    def __init__(self, station: GroundStation, epoch: Epoch, observed: float,
                 sigma: float, trajectory: int = 0) -> None:
        super().__init__(epoch, observed, sigma, (trajectory,))
        self.station = station
        self._station_state = station.state_eci(self.epoch)

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        d = states[0] - self._station_state
        rho = jnp.linalg.norm(d[:3])
        return jnp.atleast_1d(jnp.dot(d[:3], d[3:6]) / rho)


class AngularRaDec(ObservedMeasurement):
    """Topocentric right ascension and declination [rad].

    The theoretical right ascension is wrapped to within ``pi`` of the
    observed one so that residuals never jump by ``2 pi``.
    """

    def __init__(self, station: GroundStation, epoch: Epoch, observed: ArrayLike,
                 sigma: ArrayLike, trajectory: int = 0) -> None:
        super().__init__(epoch, observed, sigma, (trajectory,))
        if self.dimension != 2:
            raise ValueError(f"AngularRaDec expects 2 observed values, got {self.dimension}")
        self.station = station
        self._station_state = station.state_eci(self.epoch)

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        d = states[0][:3] - self._station_state[:3]
        ra = jnp.arctan2(d[1], d[0])
        dec = jnp.arcsin(d[2] / jnp.linalg.norm(d))
        ra_obs = self.observed[0]
        ra = ra_obs + jnp.remainder(ra - ra_obs + jnp.pi, 2.0 * jnp.pi) - jnp.pi
        return jnp.array([ra, dec])

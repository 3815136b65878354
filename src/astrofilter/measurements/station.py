"""Ground stations.

A station is fixed on the rotating Earth. Its inertial position at an epoch
is obtained by rotating its ECEF position about the z axis by the Greenwich
mean sidereal time, the same simplified Earth-rotation model used for the
atmosphere co-rotation in :mod:`astrofilter.orbit_dynamics.drag`.

References:
    1. NIMA Technical Report TR8350.2, *Department of Defense World Geodetic
       System 1984*.
    2. D. Vallado, *Fundamentals of Astrodynamics and Applications*,
       4th ed., Microcosm Press, 2013, Sec. 3.7.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.constants import DEG2RAD, OMEGA_EARTH, WGS84_a, WGS84_f
from astrofilter.epoch import Epoch
from astrofilter.parameters import Parameter

# First eccentricity squared of the WGS84 ellipsoid
ECC2 = WGS84_f * (2.0 - WGS84_f)


def position_geodetic_to_ecef(x_geod: ArrayLike, use_degrees: bool = False) -> Array:
    """Convert geodetic position ``[lon, lat, alt]`` to ECEF ``[x, y, z]``.

    Args:
        x_geod: Longitude and latitude in *rad* (or *deg* if
            ``use_degrees=True``), altitude in *m* above the WGS84 ellipsoid.
        use_degrees: Interpret longitude and latitude as degrees.

    Returns:
        ECEF position [m].

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.measurements import position_geodetic_to_ecef
        r = position_geodetic_to_ecef(jnp.array([0.0, 0.0, 0.0]))  # [WGS84_a, 0, 0]
        ```
    """
    x_geod = jnp.asarray(x_geod, dtype=get_dtype())
    lon, lat, alt = x_geod[0], x_geod[1], x_geod[2]
    if use_degrees:
        lon = lon * DEG2RAD
        lat = lat * DEG2RAD

    sin_lat = jnp.sin(lat)
    cos_lat = jnp.cos(lat)
    N = WGS84_a / jnp.sqrt(1.0 - ECC2 * sin_lat * sin_lat)

    return jnp.array([
        (N + alt) * cos_lat * jnp.cos(lon),
        (N + alt) * cos_lat * jnp.sin(lon),
        ((1.0 - ECC2) * N + alt) * sin_lat,
    ])


class GroundStation:
    """Earth-fixed tracking station.

    Args:
        name: Station name, used to name its parameters.
        longitude: Geodetic longitude [deg].
        latitude: Geodetic latitude [deg].
        altitude: Altitude above the WGS84 ellipsoid [m].
        range_bias_scale: Normalization scale of the range bias [m].

    Attributes:
        range_bias: Additive range bias :class:`~astrofilter.parameters.Parameter`
            named ``"<name> range bias"``, unselected by default.
    """

    def __init__(
        self,
        name: str,
        longitude: float,
        latitude: float,
        altitude: float = 0.0,
        range_bias_scale: float = 1.0,
    ) -> None:
        self.name = name
        self.position_ecef = position_geodetic_to_ecef(
            jnp.array([longitude, latitude, altitude]), use_degrees=True
        )
        self.range_bias = Parameter(f"{name} range bias", 0.0, range_bias_scale)

    def state_eci(self, epoch: Epoch) -> Array:
        """Inertial position and velocity ``[r, v]`` of the station at *epoch*."""
        theta = epoch.gmst()
        c, s = jnp.cos(theta), jnp.sin(theta)
        x, y, z = self.position_ecef
        r = jnp.array([c * x - s * y, s * x + c * y, z])
        omega = jnp.array([0.0, 0.0, OMEGA_EARTH], dtype=get_dtype())
        return jnp.concatenate([r, jnp.cross(omega, r)])

    def __repr__(self) -> str:
        return f"GroundStation({self.name!r})"

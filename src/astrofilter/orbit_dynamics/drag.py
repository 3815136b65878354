"""Atmospheric drag acceleration model.

Computes the non-conservative acceleration due to atmospheric drag,
accounting for the velocity of the atmosphere co-rotating with the Earth
about the inertial z axis.

All inputs and outputs use SI base units (metres, metres/second,
metres/second squared, kg, kg/m^3).

References:
    1. O. Montenbruck and E. Gill, *Satellite Orbits: Models, Methods
       and Applications*, 2012, Sec. 3.5.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.constants import OMEGA_EARTH, R_EARTH


def density_exponential(r_object: ArrayLike, rho0: float, h0: float,
                        scale_height: float) -> Array:
    """Exponential atmospheric density at the altitude of *r_object*.

    Altitude is measured above a spherical Earth of radius ``R_EARTH``.

    Args:
        r_object: Position [m].
        rho0: Density at reference altitude [kg/m^3].
        h0: Reference altitude [m].
        scale_height: Scale height [m].

    Returns:
        Density [kg/m^3].
    """
    r = jnp.asarray(r_object, dtype=get_dtype())[:3]
    h = jnp.linalg.norm(r) - R_EARTH
    return rho0 * jnp.exp(-(h - h0) / scale_height)


def accel_drag(
    x: ArrayLike,
    density: ArrayLike,
    mass: float,
    area: float,
    cd: ArrayLike,
) -> Array:
    """Acceleration due to atmospheric drag, in the inertial frame.

    Args:
        x: 6-element inertial state ``[r, v]`` [m; m/s].
        density: Atmospheric density [kg/m^3].
        mass: Spacecraft mass [kg].
        area: Wind-facing cross-sectional area [m^2].
        cd: Coefficient of drag [dimensionless].

    Returns:
        Drag acceleration [m/s^2], shape ``(3,)``.

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.orbit_dynamics import accel_drag
        x = jnp.array([6878e3, 0.0, 0.0, 0.0, 7500.0, 0.0])
        a = accel_drag(x, 1e-12, 1000.0, 1.0, 2.0)
        ```
    """
    _float = get_dtype()
    x = jnp.asarray(x, dtype=_float)
    r = x[:3]
    v = x[3:6]

    omega = jnp.array([0.0, 0.0, OMEGA_EARTH], dtype=_float)

    # Velocity relative to co-rotating atmosphere
    v_rel = v - jnp.cross(omega, r)
    v_abs = jnp.linalg.norm(v_rel)

    return -0.5 * cd * (area / mass) * density * v_abs * v_rel

"""Gravitational accelerations.

Point-mass gravity with an explicit gravitational parameter (so that it can
be estimated as a dynamical parameter) and the J2 zonal perturbation.

All inputs and outputs use SI base units.

References:
    1. O. Montenbruck and E. Gill, *Satellite Orbits: Models, Methods
       and Applications*, 2012, Sec. 3.2.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.constants import J2_EARTH, R_EARTH


def accel_point_mass(r_object: ArrayLike, gm: ArrayLike) -> Array:
    """Acceleration due to a point mass at the origin, ``-gm * r / |r|^3``.

    Args:
        r_object: Position of the object [m]. Shape ``(3,)`` or ``(6,)``
            (only first 3 elements used).
        gm: Gravitational parameter of the central body [m^3/s^2].

    Returns:
        Acceleration vector [m/s^2], shape ``(3,)``.

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.constants import R_EARTH, GM_EARTH
        from astrofilter.orbit_dynamics import accel_point_mass
        a = accel_point_mass(jnp.array([R_EARTH, 0.0, 0.0]), GM_EARTH)
        ```
    """
    r = jnp.asarray(r_object, dtype=get_dtype())[:3]
    r_norm = jnp.linalg.norm(r)
    return -gm * r / r_norm**3


def accel_j2(r_object: ArrayLike, gm: ArrayLike, j2: float = J2_EARTH,
             r_body: float = R_EARTH) -> Array:
    """Acceleration due to the J2 zonal harmonic in an inertial frame.

    The Earth's rotation axis is assumed aligned with the inertial z axis.

    Args:
        r_object: Position of the object [m].
        gm: Gravitational parameter [m^3/s^2].
        j2: Unnormalized J2 coefficient.
        r_body: Reference radius of the harmonic expansion [m].

    Returns:
        Acceleration vector [m/s^2], shape ``(3,)``.
    """
    r = jnp.asarray(r_object, dtype=get_dtype())[:3]
    r_norm = jnp.linalg.norm(r)
    z2 = (r[2] / r_norm) ** 2
    factor = -1.5 * j2 * gm * r_body**2 / r_norm**5
    return factor * jnp.array([
        r[0] * (1.0 - 5.0 * z2),
        r[1] * (1.0 - 5.0 * z2),
        r[2] * (3.0 - 5.0 * z2),
    ])

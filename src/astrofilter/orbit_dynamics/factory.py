"""Configurable orbit dynamics factory.

Composes the force models into a single closure
``dynamics(t, state, params) -> derivative`` whose explicit *params*
argument carries the dynamical parameters (``config.parameter_names()``
order). Keeping the parameters as an argument, rather than baking them into
the closure, is what lets the reference trajectories differentiate the
dynamics with respect to them and integrate the parameter sensitivities.

Boolean toggles in the configuration become Python ``if`` branches that are
resolved during ``jax.jit`` tracing.
"""

from __future__ import annotations

from collections.abc import Callable

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.orbit_dynamics.config import ForceModelConfig
from astrofilter.orbit_dynamics.drag import accel_drag, density_exponential
from astrofilter.orbit_dynamics.gravity import accel_j2, accel_point_mass


def create_orbit_dynamics(
    config: ForceModelConfig | None = None,
) -> Callable[[ArrayLike, ArrayLike, ArrayLike], Array]:
    """Create a parameterized orbit dynamics function.

    Args:
        config: Force model configuration. Defaults to point-mass two-body
            gravity (``ForceModelConfig.two_body()``).

    Returns:
        A callable ``dynamics(t, state, params) -> derivative`` where:

        - *t*: seconds since the trajectory reference epoch (unused by the
          time-invariant models provided here, kept for integrator
          compatibility).
        - *state*: ``[x, y, z, vx, vy, vz]`` in ECI [m, m/s].
        - *params*: dynamical parameter values, ordered as
          ``config.parameter_names()``.
        - *derivative*: ``[vx, vy, vz, ax, ay, az]`` [m/s, m/s^2].

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.constants import GM_EARTH
        from astrofilter.orbit_dynamics import create_orbit_dynamics
        dynamics = create_orbit_dynamics()
        x0 = jnp.array([6878e3, 0.0, 0.0, 0.0, 7612.0, 0.0])
        dx = dynamics(0.0, x0, jnp.array([GM_EARTH]))
        ```
    """
    if config is None:
        config = ForceModelConfig.two_body()

    _j2 = config.j2
    _drag = config.drag
    _mass = config.spacecraft.mass
    _area = config.spacecraft.drag_area
    _rho0 = config.atmosphere.rho0
    _h0 = config.atmosphere.h0
    _scale_height = config.atmosphere.scale_height

    def dynamics(t: ArrayLike, state: ArrayLike, params: ArrayLike) -> Array:
        r = state[:3]
        v = state[3:6]
        gm = params[0]

        a = accel_point_mass(r, gm)

        if _j2:
            a = a + accel_j2(r, gm)

        if _drag:
            cd = params[1]
            rho = density_exponential(r, _rho0, _h0, _scale_height)
            a = a + accel_drag(state, rho, _mass, _area, cd)

        return jnp.concatenate([v, a])

    return dynamics

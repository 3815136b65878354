"""Numerical ODE integration for the reference trajectories.

Provides the classic fixed-step 4th-order Runge-Kutta method, implemented in
JAX so that it composes with ``jax.jit`` and automatic differentiation.

Available functions:

- :func:`rk4_step` -- single RK4 step
- :func:`rk4_integrate` -- RK4 integration over a time span with bounded step
- :func:`rk4_fixed_steps` -- traceable loop of equal RK4 steps

All share the right-hand-side convention ``dynamics(t, x) -> dx`` used by
:func:`astrofilter.orbit_dynamics.create_orbit_dynamics` once its dynamical
parameters have been bound.
"""

from astrofilter.integrators._types import StepResult
from astrofilter.integrators.rk4 import rk4_fixed_steps, rk4_integrate, rk4_step

__all__ = [
    "StepResult",
    "rk4_step",
    "rk4_integrate",
    "rk4_fixed_steps",
]

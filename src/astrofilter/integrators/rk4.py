"""Classic 4th-order Runge-Kutta integrator (RK4).

Implements the standard four-stage, 4th-order explicit Runge-Kutta method.
The Butcher tableau for RK4 is:

.. math::

    \\begin{array}{c|cccc}
    0   &     &     &     &   \\\\
    1/2 & 1/2 &     &     &   \\\\
    1/2 &  0  & 1/2 &     &   \\\\
    1   &  0  &  0  &  1  &   \\\\
    \\hline
        & 1/6 & 1/3 & 1/3 & 1/6
    \\end{array}

The reference trajectories integrate the orbit together with its
variational equations, so the state passed here is usually the flattened
augmented vector ``[x, vec(Phi), vec(S)]``.
"""

from __future__ import annotations

import math
from collections.abc import Callable

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.integrators._types import StepResult


def rk4_step(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
) -> StepResult:
    """Perform a single RK4 integration step.

    Advances the state from time ``t`` to ``t + dt``. Compatible with
    ``jax.jit`` and ``jax.vmap``.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t: Current time.
        state: Current state vector.
        dt: Timestep to take.

    Returns:
        StepResult: State at ``t + dt`` and the timestep used.

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.integrators import rk4_step
        def harmonic(t, x):
            return jnp.array([x[1], -x[0]])
        result = rk4_step(harmonic, 0.0, jnp.array([1.0, 0.0]), 0.01)
        ```
    """
    dtype = get_dtype()
    t = jnp.asarray(t, dtype=dtype)
    state = jnp.asarray(state, dtype=dtype)
    dt = jnp.asarray(dt, dtype=dtype)

    k1 = dynamics(t, state)
    k2 = dynamics(t + 0.5 * dt, state + 0.5 * dt * k1)
    k3 = dynamics(t + 0.5 * dt, state + 0.5 * dt * k2)
    k4 = dynamics(t + dt, state + dt * k3)

    return StepResult(
        state=state + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4),
        dt_used=dt,
    )


def rk4_integrate(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t0: float,
    state: ArrayLike,
    t1: float,
    max_step: float,
) -> Array:
    """Integrate from ``t0`` to exactly ``t1`` with RK4.

    The span is split into the smallest number of equal steps not larger
    than *max_step*, and the steps are executed in a ``jax.lax.fori_loop``.
    A zero-length span returns the input state unchanged.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t0: Initial time.
        state: State at ``t0``.
        t1: Final time. Must not be before ``t0``.
        max_step: Maximum step size (strictly positive).

    Returns:
        State at ``t1``.

    Raises:
        ValueError: If ``t1 < t0`` or ``max_step <= 0``.
    """
    if max_step <= 0.0:
        raise ValueError(f"max_step must be strictly positive, got {max_step}")
    span = float(t1) - float(t0)
    if span < 0.0:
        raise ValueError(f"Cannot integrate backward from t={t0} to t={t1}")

    state = jnp.asarray(state, dtype=get_dtype())
    if span == 0.0:
        return state

    n_steps = max(1, math.ceil(span / max_step))
    return rk4_fixed_steps(dynamics, t0, state, span / n_steps, n_steps)


def rk4_fixed_steps(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t0: ArrayLike,
    state: ArrayLike,
    h: ArrayLike,
    n_steps: ArrayLike,
) -> Array:
    """Take *n_steps* RK4 steps of size *h* starting at ``t0``.

    All arguments may be traced, so the function can be wrapped in
    ``jax.jit`` once and reused for any span without retracing.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t0: Initial time.
        state: State at ``t0``.
        h: Step size.
        n_steps: Number of steps.

    Returns:
        State at ``t0 + n_steps * h``.
    """

    def body(k, x):
        return rk4_step(dynamics, t0 + k * h, x, h).state

    return jax.lax.fori_loop(0, n_steps, body, jnp.asarray(state, dtype=get_dtype()))

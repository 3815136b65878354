"""Type definitions for numerical integrators.

:class:`StepResult` is a :class:`~typing.NamedTuple`, which JAX treats as a
pytree automatically, so it can be returned from ``jax.jit`` compiled
functions and carried through ``jax.lax`` loops.
"""

from __future__ import annotations

from typing import NamedTuple

from jax import Array


class StepResult(NamedTuple):
    """Result of a single integrator step.

    Attributes:
        state: State vector at time ``t + dt_used``.
        dt_used: Timestep taken.
    """

    state: Array
    dt_used: Array

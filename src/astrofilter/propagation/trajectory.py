"""Reference trajectories with variational equations.

A :class:`ReferenceTrajectory` is an immutable snapshot of one body's orbit
(epoch, Cartesian state and dynamical parameter values) from which the orbit
is integrated together with its variational equations:

.. math::

    \\dot{x} = f(x, p), \\qquad
    \\dot{\\Phi} = A \\Phi, \\qquad
    \\dot{S} = A S + B,

where :math:`A = \\partial f / \\partial x`, :math:`B = \\partial f / \\partial p`
(selected dynamical parameters only), :math:`\\Phi(t_0) = I` and
:math:`S(t_0) = 0`. Both Jacobians are obtained with ``jax.jacfwd`` so every
force model in :mod:`astrofilter.orbit_dynamics` gets exact partials.

Integration only moves forward in time. A trajectory remembers the last
point it reached and resumes from there, so the cost of a request is bounded
by the span since the previous one. After each filter correction the owning
builder creates a new snapshot at the corrected epoch, which resets the
Jacobians to identity there.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype, get_epoch_eq_tolerance
from astrofilter.epoch import Epoch
from astrofilter.errors import PropagationError
from astrofilter.integrators import rk4_fixed_steps
from astrofilter.orbit_types import OrbitType

logger = logging.getLogger(__name__)


class TrajectoryState(NamedTuple):
    """State of a reference trajectory at one epoch.

    Attributes:
        epoch: Epoch of the state.
        state: Cartesian ECI state ``[r, v]`` [m, m/s].
        state_transition: ``dC/dC0``, 6x6 Cartesian state-transition matrix
            from the trajectory snapshot epoch.
        parameter_sensitivity: ``dC/dP``, 6xk sensitivity to the selected
            dynamical parameters.
    """

    epoch: Epoch
    state: Array
    state_transition: Array
    parameter_sensitivity: Array


def make_variational_propagator(
    dynamics: Callable[[ArrayLike, ArrayLike, ArrayLike], Array],
    selected: Sequence[int],
) -> Callable[[Array, Array, ArrayLike, ArrayLike, ArrayLike], Array]:
    """Build a jitted integrator of the augmented state ``[x, Phi, S]``.

    Args:
        dynamics: Parameterized dynamics ``f(t, x, params)``.
        selected: Indices into ``params`` of the parameters whose
            sensitivities are integrated.

    Returns:
        ``advance(y, params, t0, h, n_steps) -> y`` operating on the
        flattened augmented vector of length ``6 + 36 + 6 * len(selected)``.
    """
    sel = np.asarray(selected, dtype=int)
    n_sel = len(sel)

    def augmented(t, y, params):
        x = y[:6]
        phi = y[6:42].reshape(6, 6)
        s = y[42:].reshape(6, n_sel)
        A = jax.jacfwd(dynamics, argnums=1)(t, x, params)
        B = jax.jacfwd(dynamics, argnums=2)(t, x, params)[:, sel]
        return jnp.concatenate([
            dynamics(t, x, params),
            (A @ phi).ravel(),
            (A @ s + B).ravel(),
        ])

    @jax.jit
    def advance(y, params, t0, h, n_steps):
        return rk4_fixed_steps(lambda t, z: augmented(t, z, params), t0, y, h, n_steps)

    return advance


class ReferenceTrajectory:
    """Forward-only propagator of one body and its Jacobians.

    Instances are created by
    :meth:`astrofilter.propagation.TrajectoryBuilder.build_propagator`.

    Args:
        epoch: Snapshot epoch.
        state: Cartesian ECI state at *epoch*.
        parameters: Values of all dynamical parameters of the force model.
        orbit_type: Parameterization of the orbital parameters.
        gm: Gravitational parameter used for orbit-type conversions.
        advance: Augmented-state integrator from
            :func:`make_variational_propagator`.
        n_selected: Number of selected dynamical parameters.
        step_size: Maximum integration step [s].
    """

    def __init__(
        self,
        epoch: Epoch,
        state: ArrayLike,
        parameters: ArrayLike,
        orbit_type: OrbitType,
        gm: float,
        advance: Callable,
        n_selected: int,
        step_size: float,
    ) -> None:
        if step_size <= 0.0:
            raise ValueError(f"step_size must be strictly positive, got {step_size}")
        dtype = get_dtype()
        self.epoch = Epoch(epoch)
        self.orbit_type = orbit_type
        self.gm = gm
        self.step_size = float(step_size)
        self._advance = advance
        self._n_selected = n_selected
        self._parameters = jnp.asarray(parameters, dtype=dtype)

        x0 = jnp.asarray(state, dtype=dtype)
        self.initial = TrajectoryState(
            epoch=self.epoch,
            state=x0,
            state_transition=jnp.eye(6, dtype=dtype),
            parameter_sensitivity=jnp.zeros((6, n_selected), dtype=dtype),
        )
        self._dC0_dY0 = orbit_type.jacobian_wrt_parameters(x0, gm)
        self._last = self.initial

    @property
    def parameters(self) -> Array:
        return self._parameters

    @staticmethod
    def _pack(ts: TrajectoryState) -> Array:
        return jnp.concatenate([
            ts.state,
            ts.state_transition.ravel(),
            ts.parameter_sensitivity.ravel(),
        ])

    def propagate(self, epoch: Epoch) -> TrajectoryState:
        """Propagate to *epoch*.

        Args:
            epoch: Target epoch, not before the snapshot epoch.

        Returns:
            TrajectoryState at *epoch*.

        Raises:
            ValueError: If *epoch* precedes the snapshot epoch.
            PropagationError: If the integration produces non-finite values.
        """
        tol = get_epoch_eq_tolerance()
        if epoch - self.epoch < -tol:
            raise ValueError(
                f"Cannot propagate backward from {self.epoch} to {epoch}"
            )

        start = self._last if epoch - self._last.epoch >= -tol else self.initial
        span = epoch - start.epoch
        if span <= tol:
            return start

        n_steps = max(1, math.ceil(span / self.step_size))
        y = self._advance(
            self._pack(start), self._parameters,
            start.epoch - self.epoch, span / n_steps, n_steps,
        )
        if not bool(jnp.all(jnp.isfinite(y))):
            raise PropagationError("Non-finite state during propagation", epoch=epoch)

        result = TrajectoryState(
            epoch=epoch,
            state=y[:6],
            state_transition=y[6:42].reshape(6, 6),
            parameter_sensitivity=y[42:].reshape(6, self._n_selected),
        )
        self._last = result
        return result

    def state_jacobian(self, ts: TrajectoryState) -> Array:
        """``dY/dY0``: orbital parameters at *ts* w.r.t. those at the snapshot."""
        dY_dC = self.orbit_type.jacobian_wrt_cartesian(ts.state, self.gm)
        return dY_dC @ ts.state_transition @ self._dC0_dY0

    def parameter_jacobian(self, ts: TrajectoryState) -> Array:
        """``dY/dP``: orbital parameters at *ts* w.r.t. selected dynamical parameters."""
        dY_dC = self.orbit_type.jacobian_wrt_cartesian(ts.state, self.gm)
        return dY_dC @ ts.parameter_sensitivity


def propagate_all(
    trajectories: Sequence[ReferenceTrajectory],
    epoch: Epoch,
    max_workers: int = 1,
) -> list[TrajectoryState]:
    """Propagate independent trajectories to a common epoch.

    With ``max_workers > 1`` the trajectories are propagated in a thread
    pool; the function returns only once all of them have finished. The
    first failure is re-raised after the pool has drained.

    Args:
        trajectories: Trajectories to propagate.
        epoch: Common target epoch.
        max_workers: Maximum number of worker threads.

    Returns:
        List of :class:`TrajectoryState`, in input order.
    """
    if max_workers <= 1 or len(trajectories) <= 1:
        return [t.propagate(epoch) for t in trajectories]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(t.propagate, epoch) for t in trajectories]
    logger.debug("Propagated %d trajectories to %s", len(futures), epoch)
    return [f.result() for f in futures]

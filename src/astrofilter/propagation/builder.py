"""Builders of reference trajectories.

A :class:`TrajectoryBuilder` owns the estimable parameters of one body: the
six orbital parameters (named after the :class:`~astrofilter.orbit_types.OrbitType`)
and the dynamical parameters declared by its force model. The filter writes
corrected values into these parameters and asks the builder for a new
:class:`~astrofilter.propagation.ReferenceTrajectory` snapshot.
"""

from __future__ import annotations

import logging

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.epoch import Epoch
from astrofilter.orbit_dynamics import (
    CENTRAL_ATTRACTION_COEFFICIENT,
    DRAG_COEFFICIENT,
    ForceModelConfig,
    create_orbit_dynamics,
)
from astrofilter.orbit_types import OrbitType
from astrofilter.parameters import Parameter
from astrofilter.propagation.trajectory import (
    ReferenceTrajectory,
    TrajectoryState,
    make_variational_propagator,
)

logger = logging.getLogger(__name__)


class TrajectoryBuilder:
    """Owner of the estimable parameters of one body.

    Args:
        epoch: Initial epoch of the orbit.
        state: Initial Cartesian ECI state ``[r, v]`` [m, m/s].
        orbit_type: Parameterization of the orbital parameters.
        force_model: Force model configuration. Defaults to two-body.
        position_scale: Position scale [m] from which the normalization
            scales of the orbital parameters are derived.
        step_size: Maximum integration step [s].

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter import Epoch
        from astrofilter.propagation import TrajectoryBuilder
        builder = TrajectoryBuilder(
            Epoch(2024, 1, 1),
            jnp.array([6878e3, 0.0, 0.0, 0.0, 7612.6, 0.0]),
        )
        trajectory = builder.build_propagator()
        ts = trajectory.propagate(Epoch(2024, 1, 1, 0, 10, 0.0))
        ```
    """

    def __init__(
        self,
        epoch: Epoch,
        state: ArrayLike,
        orbit_type: OrbitType = OrbitType.CARTESIAN,
        force_model: ForceModelConfig | None = None,
        position_scale: float = 10.0,
        step_size: float = 60.0,
    ) -> None:
        if position_scale <= 0.0:
            raise ValueError(
                f"position_scale must be strictly positive, got {position_scale}"
            )
        if step_size <= 0.0:
            raise ValueError(f"step_size must be strictly positive, got {step_size}")

        self.orbit_type = orbit_type
        self.force_model = force_model if force_model is not None else ForceModelConfig.two_body()
        self.position_scale = float(position_scale)
        self.step_size = float(step_size)
        self._epoch = Epoch(epoch)
        self._dynamics = create_orbit_dynamics(self.force_model)
        self._propagators: dict[tuple[int, ...], object] = {}

        state = jnp.asarray(state, dtype=get_dtype())
        gm = self.force_model.gm
        values = orbit_type.from_cartesian(state, gm)
        scales = orbit_type.parameter_scales(state, self.position_scale, gm)
        self._orbital = [
            Parameter(name, float(values[i]), float(scales[i]),
                      min_value=lo, max_value=hi, selected=True)
            for i, (name, (lo, hi)) in enumerate(
                zip(orbit_type.parameter_names, orbit_type.parameter_bounds)
            )
        ]

        self._propagation = []
        for name in self.force_model.parameter_names():
            if name == CENTRAL_ATTRACTION_COEFFICIENT:
                p = Parameter(name, gm, self.force_model.gm_scale, min_value=0.0)
            elif name == DRAG_COEFFICIENT:
                p = Parameter(name, self.force_model.spacecraft.cd,
                              self.force_model.cd_scale, min_value=0.0)
            else:
                raise ValueError(f"Unknown dynamical parameter '{name}'")
            self._propagation.append(p)

    @property
    def epoch(self) -> Epoch:
        """Epoch of the orbital parameters."""
        return self._epoch

    @epoch.setter
    def epoch(self, epoch: Epoch) -> None:
        self._epoch = Epoch(epoch)

    @property
    def orbital_parameters(self) -> list[Parameter]:
        return list(self._orbital)

    @property
    def propagation_parameters(self) -> list[Parameter]:
        return list(self._propagation)

    def current_state(self) -> Array:
        """Cartesian state described by the current orbital parameter values."""
        values = jnp.array([p.value for p in self._orbital], dtype=get_dtype())
        return self.orbit_type.to_cartesian(values, self.force_model.gm)

    def reset_orbit(self, ts: TrajectoryState) -> None:
        """Set the epoch and the six orbital parameters from a trajectory state."""
        values = self.orbit_type.from_cartesian(ts.state, self.force_model.gm)
        for p, v in zip(self._orbital, values):
            p.value = float(v)
        self._epoch = ts.epoch

    def build_propagator(self) -> ReferenceTrajectory:
        """Snapshot the current parameter values into a new trajectory.

        The jitted variational integrator is cached per set of selected
        dynamical parameters, so rebuilding after each correction does not
        trigger recompilation.
        """
        selected = tuple(i for i, p in enumerate(self._propagation) if p.selected)
        advance = self._propagators.get(selected)
        if advance is None:
            advance = make_variational_propagator(self._dynamics, selected)
            self._propagators[selected] = advance

        params = jnp.array([p.value for p in self._propagation], dtype=get_dtype())
        logger.debug("Building reference trajectory at %s", self._epoch)
        return ReferenceTrajectory(
            epoch=self._epoch,
            state=self.current_state(),
            parameters=params,
            orbit_type=self.orbit_type,
            gm=self.force_model.gm,
            advance=advance,
            n_selected=len(selected),
            step_size=self.step_size,
        )

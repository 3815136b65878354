"""Observed and estimated measurements.

Every observation type derives from :class:`ObservedMeasurement` and only
implements :meth:`ObservedMeasurement.theoretical_value`, a pure JAX function
of the Cartesian states of the involved trajectories and of the values of the
measurement's own parameters. :meth:`ObservedMeasurement.estimate` evaluates
it and obtains all partial derivatives in one ``jax.jacfwd`` pass, then lets
the attached modifiers (for example outlier filters) adjust the result.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from typing import Protocol

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.epoch import Epoch
from astrofilter.errors import ConfigurationError, MeasurementEvaluationError
from astrofilter.parameters import Parameter

logger = logging.getLogger(__name__)


class MeasurementStatus(enum.Enum):
    """Outcome of the evaluation of a measurement."""

    PROCESSED = "processed"
    REJECTED = "rejected"


class EstimatedMeasurement:
    """Theoretical value of an observation and its partial derivatives.

    Attributes:
        observed_measurement: The observation this estimate belongs to.
        iteration: Number of measurements processed by the filter so far,
            this one included.
        states: Cartesian states of the involved trajectories.
        estimated_value: Theoretical value, shape ``(n,)``.
        state_derivatives: One ``(n, 6)`` Jacobian w.r.t. the Cartesian state
            of each involved trajectory, in ``trajectory_indices`` order.
        parameter_derivatives: ``(n,)`` derivative per parameter name.
        status: :attr:`MeasurementStatus.PROCESSED` unless a modifier
            rejected the measurement.
    """

    def __init__(
        self,
        observed_measurement: ObservedMeasurement,
        iteration: int,
        states: tuple[Array, ...],
        estimated_value: Array,
        state_derivatives: tuple[Array, ...],
        parameter_derivatives: dict[str, Array],
    ) -> None:
        self.observed_measurement = observed_measurement
        self.iteration = iteration
        self.states = states
        self.estimated_value = estimated_value
        self.state_derivatives = state_derivatives
        self.parameter_derivatives = parameter_derivatives
        self.status = MeasurementStatus.PROCESSED

    @property
    def residual(self) -> Array:
        """``observed - estimated`` in physical units."""
        return self.observed_measurement.observed - self.estimated_value

    def state_derivative(self, trajectory: int) -> Array | None:
        """Jacobian w.r.t. the state of *trajectory*, or ``None`` if not involved."""
        indices = self.observed_measurement.trajectory_indices
        if trajectory not in indices:
            return None
        return self.state_derivatives[indices.index(trajectory)]

    def __repr__(self) -> str:
        return (f"EstimatedMeasurement({type(self.observed_measurement).__name__}, "
                f"iteration={self.iteration}, status={self.status.value})")


class MeasurementModifier(Protocol):
    """Adjusts an :class:`EstimatedMeasurement` in place."""

    def modify(self, estimated: EstimatedMeasurement) -> None: ...


class ObservedMeasurement:
    """Base class of all observations.

    Args:
        epoch: Observation epoch.
        observed: Observed value(s), shape ``(n,)`` (scalars are promoted).
        sigma: Theoretical standard deviation of each component. Must be
            strictly positive.
        trajectory_indices: Indices of the trajectories the observation
            depends on.
        parameters: Parameters the theoretical value depends on (biases,
            offsets). Their values are the second argument of
            :meth:`theoretical_value`.

    Raises:
        ConfigurationError: If *sigma* has the wrong shape or a non-positive
            entry, or no trajectory is involved.
    """

    def __init__(
        self,
        epoch: Epoch,
        observed: ArrayLike,
        sigma: ArrayLike,
        trajectory_indices: Sequence[int] = (0,),
        parameters: Sequence[Parameter] = (),
    ) -> None:
        dtype = get_dtype()
        self.epoch = Epoch(epoch)
        self.observed = jnp.atleast_1d(jnp.asarray(observed, dtype=dtype))
        sigma = jnp.atleast_1d(jnp.asarray(sigma, dtype=dtype))
        if sigma.shape == (1,) and self.observed.shape[0] > 1:
            sigma = jnp.full(self.observed.shape, sigma[0], dtype=dtype)
        if sigma.shape != self.observed.shape:
            raise ConfigurationError(
                f"sigma shape {sigma.shape} does not match observed shape {self.observed.shape}"
            )
        if not bool(jnp.all(sigma > 0.0)):
            raise ConfigurationError(
                f"Measurement at {self.epoch} has non-positive sigma {sigma}"
            )
        self.sigma = sigma
        self.trajectory_indices = tuple(int(k) for k in trajectory_indices)
        if not self.trajectory_indices:
            raise ConfigurationError("A measurement must involve at least one trajectory")
        self.parameters = list(parameters)
        self.modifiers: list[MeasurementModifier] = []

    @property
    def dimension(self) -> int:
        return int(self.observed.shape[0])

    def add_modifier(self, modifier: MeasurementModifier) -> None:
        self.modifiers.append(modifier)

    def theoretical_value(self, states: tuple[Array, ...], params: Array) -> Array:
        """Theoretical value from the involved Cartesian states.

        Args:
            states: Cartesian ECI state of each involved trajectory.
            params: Values of :attr:`parameters`.

        Returns:
            Array of shape ``(n,)``.
        """
        raise NotImplementedError

    def estimate(self, iteration: int, states: Sequence[Array]) -> EstimatedMeasurement:
        """Evaluate the observation and its derivatives.

        Args:
            iteration: Number of measurements processed so far.
            states: Cartesian states of the involved trajectories, in
                ``trajectory_indices`` order.

        Returns:
            EstimatedMeasurement after all modifiers were applied.

        Raises:
            MeasurementEvaluationError: If the value or a derivative is not
                finite.
        """
        dtype = get_dtype()
        xs = tuple(jnp.asarray(x, dtype=dtype) for x in states)
        if len(xs) != len(self.trajectory_indices):
            raise ValueError(
                f"Expected {len(self.trajectory_indices)} states, got {len(xs)}"
            )
        pvals = jnp.array([p.value for p in self.parameters], dtype=dtype)

        value = jnp.atleast_1d(self.theoretical_value(xs, pvals))
        dxs, dp = jax.jacfwd(
            lambda s, p: jnp.atleast_1d(self.theoretical_value(s, p)), argnums=(0, 1)
        )(xs, pvals)

        finite = bool(jnp.all(jnp.isfinite(value))) and bool(jnp.all(jnp.isfinite(dp)))
        finite = finite and all(bool(jnp.all(jnp.isfinite(d))) for d in dxs)
        if not finite:
            raise MeasurementEvaluationError(
                f"Non-finite {type(self).__name__} evaluation", epoch=self.epoch
            )

        estimated = EstimatedMeasurement(
            observed_measurement=self,
            iteration=iteration,
            states=xs,
            estimated_value=value,
            state_derivatives=tuple(dxs),
            parameter_derivatives={
                p.name: dp[:, i] for i, p in enumerate(self.parameters)
            },
        )
        for modifier in self.modifiers:
            modifier.modify(estimated)
        return estimated

    def __repr__(self) -> str:
        return f"{type(self).__name__}(epoch={self.epoch}, observed={self.observed})"

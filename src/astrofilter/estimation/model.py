"""Nonlinear model of the sequential orbit determination filter.

:class:`KalmanModel` owns everything that is specific to orbit determination:
the reference trajectories, the parameter column layout, process noise
composition and measurement linearization. The linear algebra of the filter
itself lives in :mod:`astrofilter.estimation.ekf`, and
:class:`~astrofilter.estimation.KalmanEstimator` drives the cycle:

1. :meth:`KalmanModel.get_evolution` propagates all trajectories to the
   observation epoch and returns the normalized predicted state,
   state-transition matrix, process noise and measurement matrix.
2. :meth:`KalmanModel.get_innovation` applies the dynamic outlier filters
   and returns the normalized residual, or ``None`` if the observation is
   rejected.
3. :meth:`KalmanModel.finalize_estimation` writes the corrected estimate
   back into the parameters and rebuilds the reference trajectories from
   the corrected orbits.

Nothing computed in steps 1-2 is committed before step 3 succeeds, so a
failure leaves the model in the state of the last processed observation.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from jax import Array

from astrofilter.config import get_dtype
from astrofilter.epoch import Epoch
from astrofilter.errors import ConfigurationError
from astrofilter.estimation._types import NonLinearEvolution, ProcessEstimate
from astrofilter.estimation.config import EstimatorConfig
from astrofilter.estimation.matrices import (
    build_measurement_matrix,
    build_state_transition_matrix,
)
from astrofilter.estimation.normalization import (
    unnormalize_covariance,
    unnormalize_state,
)
from astrofilter.estimation.process_noise import ProcessNoiseComposer, ProcessNoiseProvider
from astrofilter.estimation.registry import ColumnLayout, ParameterRegistry
from astrofilter.measurements import (
    DynamicOutlierFilter,
    EstimatedMeasurement,
    MeasurementStatus,
    ObservedMeasurement,
)
from astrofilter.parameters import Parameter
from astrofilter.propagation import (
    ReferenceTrajectory,
    TrajectoryBuilder,
    TrajectoryState,
    propagate_all,
)

logger = logging.getLogger(__name__)


class _PendingStep(NamedTuple):
    measurement: ObservedMeasurement
    number: int
    epoch: Epoch
    predicted_states: list[TrajectoryState]
    predicted_measurement: EstimatedMeasurement


class KalmanModel:
    """Orbit determination model of an extended Kalman filter.

    Args:
        builders: One trajectory builder per estimated body. The first
            builder's epoch is the filter reference epoch.
        process_noise_providers: One process noise provider per builder.
        estimated_measurement_parameters: Selected observation-source
            parameters to estimate.
        config: Estimator configuration.

    Raises:
        ConfigurationError: If the builders, providers and parameters are
            inconsistent.
    """

    def __init__(
        self,
        builders: Sequence[TrajectoryBuilder],
        process_noise_providers: Sequence[ProcessNoiseProvider],
        estimated_measurement_parameters: Sequence[Parameter] = (),
        config: EstimatorConfig | None = None,
    ) -> None:
        if not builders:
            raise ConfigurationError("At least one trajectory builder is required")
        self.config = config if config is not None else EstimatorConfig()
        self.builders = list(builders)
        self.reference_date = self.builders[0].epoch

        registry = ParameterRegistry(self.reference_date)
        for builder in self.builders:
            registry.register_trajectory(builder.orbital_parameters,
                                         builder.propagation_parameters)
        registry.register_observation_parameters(estimated_measurement_parameters)
        self.layout: ColumnLayout = registry.build()
        self._composer = ProcessNoiseComposer(self.layout, process_noise_providers)

        self._trajectories = [b.build_propagator() for b in self.builders]
        self._corrected_states = [t.initial for t in self._trajectories]
        self._predicted_states = list(self._corrected_states)
        self._estimate = ProcessEstimate(
            time=0.0,
            state=self.layout.normalized_values(),
            covariance=self._composer.compose(None, self._corrected_states),
        )
        self._current_measurement_number = 0
        self._current_date = self.reference_date
        self._predicted_measurement: EstimatedMeasurement | None = None
        self._corrected_measurement: EstimatedMeasurement | None = None
        self._pending: _PendingStep | None = None

        logger.info(
            "Kalman model with %d trajectories and %d estimated parameters",
            len(self.builders), self.layout.dimension,
        )

    # Filter cycle

    def get_evolution(
        self,
        previous_time: float,
        previous_state: Array,
        measurement: ObservedMeasurement,
    ) -> NonLinearEvolution:
        """Predict the state to the observation epoch and linearize the observation.

        Args:
            previous_time: Time of the previous estimate.
            previous_state: Previous normalized state. Only its dimension is
                checked; the prediction starts from the committed estimate.
            measurement: Observation to process.

        Returns:
            NonLinearEvolution for *measurement*.

        Raises:
            ValueError: If the observation is older than the last processed
                one.
            ConfigurationError: If *previous_state* has the wrong dimension,
                or the observation refers to a trajectory the model does not
                have.
        """
        if previous_state.shape[0] != self.layout.dimension:
            raise ConfigurationError(
                f"State dimension {previous_state.shape[0]} does not match "
                f"layout dimension {self.layout.dimension}"
            )
        for k in measurement.trajectory_indices:
            if not 0 <= k < self.layout.n_trajectories:
                raise ConfigurationError(
                    f"Measurement refers to trajectory {k} but the model has "
                    f"{self.layout.n_trajectories}"
                )
        epoch = measurement.epoch
        if epoch < self._current_date:
            raise ValueError(
                f"Measurement at {epoch} is older than the last processed one "
                f"({self._current_date})"
            )
        self._pending = None

        for p in measurement.parameters:
            if p.reference_date is None:
                p.reference_date = self.reference_date

        number = self._current_measurement_number + 1
        predicted_states = propagate_all(self._trajectories, epoch, self.config.max_workers)
        predicted_state = self._predict_state(predicted_states)
        stm = build_state_transition_matrix(self.layout, self._trajectories, predicted_states)

        predicted_measurement = measurement.estimate(
            number, [predicted_states[k].state for k in measurement.trajectory_indices]
        )
        H = build_measurement_matrix(
            self.layout, self._trajectories, predicted_states, predicted_measurement
        )
        Q = self._composer.compose(self._corrected_states, predicted_states)

        self._pending = _PendingStep(
            measurement, number, epoch, predicted_states, predicted_measurement
        )
        logger.debug("Evolution to %s: m=%d, n=%d", epoch, self.layout.dimension,
                     measurement.dimension)
        return NonLinearEvolution(
            time=epoch - self.reference_date,
            predicted_state=predicted_state,
            state_transition_matrix=stm,
            process_noise=Q,
            measurement_matrix=H,
        )

    def _predict_state(self, predicted_states: Sequence[TrajectoryState]) -> Array:
        # Dynamical and measurement parameters are unchanged by propagation
        state = self._estimate.state
        for k, ts in enumerate(predicted_states):
            cols = np.asarray(self.layout.orbit_columns[k], dtype=int)
            if cols.size == 0:
                continue
            sel = np.asarray(self.layout.orbit_selection[k], dtype=int)
            builder = self.builders[k]
            values = builder.orbit_type.from_cartesian(ts.state, builder.force_model.gm)
            state = state.at[cols].set(values[sel] / self.layout.scale[cols])
        return state

    def _require_pending(self, measurement: ObservedMeasurement) -> _PendingStep:
        if self._pending is None or self._pending.measurement is not measurement:
            raise ValueError("get_evolution must be called first for this measurement")
        return self._pending

    def get_innovation(
        self,
        measurement: ObservedMeasurement,
        evolution: NonLinearEvolution,
        innovation_covariance: Array,
    ) -> Array | None:
        """Normalized residual ``(observed - estimated) / sigma``.

        Every :class:`~astrofilter.measurements.DynamicOutlierFilter` of the
        observation is applied with sigma ``sqrt(diag(S)) * sigma`` and
        cleared afterwards.

        Returns:
            Innovation of shape ``(n,)``, or ``None`` if the observation was
            rejected.
        """
        pending = self._require_pending(measurement)
        predicted = pending.predicted_measurement
        sigma = measurement.sigma

        for modifier in measurement.modifiers:
            if isinstance(modifier, DynamicOutlierFilter):
                modifier.set_sigma(jnp.sqrt(jnp.diag(innovation_covariance)) * sigma)
                try:
                    modifier.modify(predicted)
                finally:
                    modifier.set_sigma(None)

        if predicted.status is MeasurementStatus.REJECTED:
            return None
        return (measurement.observed - predicted.estimated_value) / sigma

    def finalize_estimation(
        self, measurement: ObservedMeasurement, estimate: ProcessEstimate
    ) -> None:
        """Commit the corrected estimate of the pending observation.

        Writes the corrected normalized values into the parameters (which clip
        them to their bounds), rebuilds the reference trajectories from the
        corrected orbits and evaluates the observation at the corrected
        states. If any of this fails the parameters are restored and the
        model keeps its previous state.
        """
        pending = self._require_pending(measurement)
        saved = self._save_parameters()
        try:
            for builder, ts in zip(self.builders, pending.predicted_states):
                builder.reset_orbit(ts)
            for column, parameter in enumerate(self.layout.parameters):
                parameter.normalized_value = float(estimate.state[column])

            trajectories = [b.build_propagator() for b in self.builders]
            corrected_states = [t.initial for t in trajectories]
            corrected_measurement = measurement.estimate(
                pending.number,
                [corrected_states[k].state for k in measurement.trajectory_indices],
            )
        except Exception:
            self._restore_parameters(saved)
            raise

        self._trajectories = trajectories
        self._corrected_states = corrected_states
        self._predicted_states = pending.predicted_states
        self._current_measurement_number = pending.number
        self._current_date = pending.epoch
        self._predicted_measurement = pending.predicted_measurement
        self._corrected_measurement = corrected_measurement
        # Clipped values are written back into the estimate
        self._estimate = ProcessEstimate(
            time=estimate.time,
            state=self.layout.normalized_values(),
            covariance=jnp.asarray(estimate.covariance, dtype=get_dtype()),
        )
        self._pending = None

        logger.info(
            "Measurement %d (%s) at %s %s",
            pending.number, type(measurement).__name__, pending.epoch,
            pending.predicted_measurement.status.value,
        )

    def discard_pending(self) -> None:
        """Forget a prediction that will not be finalized."""
        self._pending = None

    def _save_parameters(self) -> tuple[list, list]:
        epochs = [(b, b.epoch) for b in self.builders]
        params = []
        for b in self.builders:
            params.extend(b.orbital_parameters)
            params.extend(b.propagation_parameters)
        for driver in self.layout.estimated_measurement_parameters:
            params.extend(driver.members)
        return epochs, [(p, p.value) for p in params]

    def _restore_parameters(self, saved: tuple[list, list]) -> None:
        epochs, values = saved
        for builder, epoch in epochs:
            builder.epoch = epoch
        for p, value in values:
            p.value = value

    # Accessors

    @property
    def trajectories(self) -> list[ReferenceTrajectory]:
        return list(self._trajectories)

    @property
    def estimate(self) -> ProcessEstimate:
        """Last committed normalized estimate."""
        return self._estimate

    @property
    def current_measurement_number(self) -> int:
        return self._current_measurement_number

    @property
    def current_date(self) -> Epoch:
        return self._current_date

    @property
    def predicted_states(self) -> list[TrajectoryState]:
        return list(self._predicted_states)

    @property
    def corrected_states(self) -> list[TrajectoryState]:
        return list(self._corrected_states)

    @property
    def predicted_measurement(self) -> EstimatedMeasurement | None:
        return self._predicted_measurement

    @property
    def corrected_measurement(self) -> EstimatedMeasurement | None:
        return self._corrected_measurement

    @property
    def physical_estimated_state(self) -> Array:
        return unnormalize_state(self._estimate.state, self.layout.scale)

    @property
    def physical_estimated_covariance(self) -> Array:
        return unnormalize_covariance(self._estimate.covariance, self.layout.scale)

    @property
    def estimated_orbital_parameters(self):
        return self.layout.estimated_orbital_parameters

    @property
    def estimated_propagation_parameters(self):
        return self.layout.estimated_propagation_parameters

    @property
    def estimated_measurement_parameters(self):
        return self.layout.estimated_measurement_parameters

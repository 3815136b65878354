"""Sequential orbit determination with an extended Kalman filter.

:class:`KalmanEstimator` processes observations one at a time in
non-decreasing epoch order. For each observation it asks the
:class:`~astrofilter.estimation.KalmanModel` for the predicted state and
linearization, applies the linear predict/correct steps of
:mod:`astrofilter.estimation.ekf` in normalized space, and hands the
corrected estimate back to the model. Rejected observations skip the
correction: the prediction becomes the estimate.

Use :class:`KalmanEstimatorBuilder` to assemble an estimator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

import jax.numpy as jnp

from astrofilter.config import get_dtype
from astrofilter.errors import ConfigurationError, InnovationCovarianceError
from astrofilter.estimation._types import FilterState, ProcessEstimate
from astrofilter.estimation.config import EstimatorConfig
from astrofilter.estimation.ekf import (
    ekf_correct,
    ekf_predict_covariance,
    innovation_covariance,
)
from astrofilter.estimation.model import KalmanModel
from astrofilter.estimation.process_noise import ProcessNoiseProvider
from astrofilter.measurements import ObservedMeasurement
from astrofilter.parameters import Parameter
from astrofilter.propagation import TrajectoryBuilder

logger = logging.getLogger(__name__)


class KalmanEstimator:
    """Extended Kalman filter driver.

    Args:
        model: Orbit determination model.
        observer: Optional callable invoked with the model after each
            processed observation.
    """

    def __init__(
        self,
        model: KalmanModel,
        observer: Callable[[KalmanModel], None] | None = None,
    ) -> None:
        self.model = model
        self.observer = observer

    def process_measurement(self, measurement: ObservedMeasurement) -> ProcessEstimate:
        """Process one observation.

        Args:
            measurement: Observation, not older than the previous one.

        Returns:
            The corrected normalized estimate.

        Raises:
            ValueError: If *measurement* is older than the previous one.
            PropagationError: If a reference trajectory cannot be propagated.
            MeasurementEvaluationError: If the observation cannot be
                evaluated.
            InnovationCovarianceError: If the innovation covariance is not
                finite or too ill-conditioned to invert.
        """
        model = self.model
        previous = model.estimate
        try:
            evolution = model.get_evolution(previous.time, previous.state, measurement)

            P_pred = ekf_predict_covariance(
                previous.covariance,
                evolution.state_transition_matrix,
                evolution.process_noise,
            )
            H = evolution.measurement_matrix
            # Normalized measurement noise is identity
            R = jnp.eye(measurement.dimension, dtype=get_dtype())
            S = innovation_covariance(P_pred, H, R)
            self._check_innovation_covariance(S, measurement)

            innovation = model.get_innovation(measurement, evolution, S)
            if innovation is None:
                estimate = ProcessEstimate(evolution.time, evolution.predicted_state, P_pred)
            else:
                result = ekf_correct(
                    FilterState(x=evolution.predicted_state, P=P_pred),
                    innovation, H, R, S,
                )
                estimate = ProcessEstimate(evolution.time, result.state.x, result.state.P)

            model.finalize_estimation(measurement, estimate)
        finally:
            model.discard_pending()

        if self.observer is not None:
            self.observer(model)
        return model.estimate

    def process_measurements(
        self, measurements: Iterable[ObservedMeasurement]
    ) -> ProcessEstimate:
        """Process observations in order and return the last estimate."""
        estimate = self.model.estimate
        for measurement in measurements:
            estimate = self.process_measurement(measurement)
        return estimate

    def _check_innovation_covariance(self, S, measurement: ObservedMeasurement) -> None:
        if not bool(jnp.all(jnp.isfinite(S))):
            raise InnovationCovarianceError(
                "Innovation covariance is not finite", epoch=measurement.epoch
            )
        cond = float(jnp.linalg.cond(S))
        if not cond <= self.model.config.max_condition_number:
            raise InnovationCovarianceError(
                f"Innovation covariance is singular (condition number {cond:.3e})",
                epoch=measurement.epoch,
            )


class KalmanEstimatorBuilder:
    """Assembles a :class:`KalmanEstimator`.

    Examples:
        ```python
        from astrofilter.estimation import ConstantProcessNoise, KalmanEstimatorBuilder
        estimator = (
            KalmanEstimatorBuilder()
            .add_propagation_configuration(builder, ConstantProcessNoise(P0, Q))
            .build()
        )
        estimator.process_measurements(observations)
        ```
    """

    def __init__(self) -> None:
        self._builders: list[TrajectoryBuilder] = []
        self._providers: list[ProcessNoiseProvider] = []
        self._measurement_parameters: list[Parameter] = []
        self._config = EstimatorConfig()
        self._observer: Callable[[KalmanModel], None] | None = None

    def add_propagation_configuration(
        self, builder: TrajectoryBuilder, provider: ProcessNoiseProvider
    ) -> KalmanEstimatorBuilder:
        """Add one estimated trajectory and its process noise provider."""
        self._builders.append(builder)
        self._providers.append(provider)
        return self

    def estimated_measurements_parameters(
        self, parameters: Sequence[Parameter]
    ) -> KalmanEstimatorBuilder:
        """Set the (selected) observation-source parameters to estimate."""
        self._measurement_parameters = list(parameters)
        return self

    def config(self, config: EstimatorConfig) -> KalmanEstimatorBuilder:
        self._config = config
        return self

    def observer(self, observer: Callable[[KalmanModel], None]) -> KalmanEstimatorBuilder:
        self._observer = observer
        return self

    def build(self) -> KalmanEstimator:
        """Create the estimator.

        Raises:
            ConfigurationError: If no propagation configuration was added.
        """
        if not self._builders:
            raise ConfigurationError("At least one propagation configuration is required")
        model = KalmanModel(
            self._builders,
            self._providers,
            self._measurement_parameters,
            self._config,
        )
        return KalmanEstimator(model, self._observer)

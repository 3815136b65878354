"""Exception types raised by astrofilter.

Three families of failure are distinguished:

- :class:`ConfigurationError`: inconsistent setup (dimension mismatch
  between declared and supplied parameter counts, non-positive measurement
  noise, unselected parameters referenced as estimated). Detected eagerly
  at construction or first use and never retried.
- :class:`NumericalError`: failure of the current observation step
  (trajectory propagation, non-invertible innovation covariance,
  non-finite measurement evaluation). Carries the offending epoch; the
  filter keeps its last corrected state and may resume with the next
  observation.
- Outlier rejection is **not** an error. It is reported through
  :attr:`~astrofilter.measurements.MeasurementStatus.REJECTED`.

Plain :class:`ValueError` is used for API misuse such as requesting
backward propagation or feeding measurements out of epoch order.
"""

from __future__ import annotations


class EstimationError(Exception):
    """Base class of all astrofilter errors."""


class ConfigurationError(EstimationError, ValueError):
    """Fatal inconsistency in the filter configuration."""


class NumericalError(EstimationError, RuntimeError):
    """Numerical failure while processing one observation.

    Args:
        message: Human-readable description.
        epoch: Epoch of the observation (or propagation target) that failed.
    """

    def __init__(self, message: str, epoch=None) -> None:
        self.epoch = epoch
        if epoch is not None:
            message = f"{message} (epoch {epoch})"
        super().__init__(message)


class PropagationError(NumericalError):
    """A reference trajectory could not be propagated to the requested epoch."""


class InnovationCovarianceError(NumericalError):
    """The innovation covariance ``S = H P H^T + R`` is not invertible."""


class MeasurementEvaluationError(NumericalError):
    """An observation model produced non-finite values or derivatives."""

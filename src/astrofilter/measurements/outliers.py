"""Outlier filters.

Outlier filters are measurement modifiers that mark an estimated measurement
as :attr:`~astrofilter.measurements.MeasurementStatus.REJECTED` when any
component of its residual exceeds ``max_sigma`` standard deviations. Filters
stay inactive for the first ``warmup`` measurements so that a poor initial
guess does not reject everything.

:class:`DynamicOutlierFilter` has no standard deviation of its own: the
filter sets :attr:`DynamicOutlierFilter.sigma` from the innovation covariance
right before applying it and clears it right after, so each observation is
judged independently. While unset the filter does nothing.
"""

from __future__ import annotations

import logging

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.measurements.base import EstimatedMeasurement, MeasurementStatus

logger = logging.getLogger(__name__)


class OutlierFilter:
    """Reject measurements whose residual exceeds ``max_sigma`` theoretical sigmas.

    Args:
        warmup: Number of processed measurements before the filter activates.
        max_sigma: Rejection threshold in standard deviations.
    """

    def __init__(self, warmup: int, max_sigma: float) -> None:
        if warmup < 0:
            raise ValueError(f"warmup must be non-negative, got {warmup}")
        if max_sigma <= 0.0:
            raise ValueError(f"max_sigma must be strictly positive, got {max_sigma}")
        self.warmup = warmup
        self.max_sigma = max_sigma

    def _sigma(self, estimated: EstimatedMeasurement) -> Array | None:
        return estimated.observed_measurement.sigma

    def modify(self, estimated: EstimatedMeasurement) -> None:
        if estimated.iteration <= self.warmup:
            return
        sigma = self._sigma(estimated)
        if sigma is None:
            return
        if bool(jnp.any(jnp.abs(estimated.residual) > self.max_sigma * sigma)):
            estimated.status = MeasurementStatus.REJECTED
            logger.info(
                "Rejected %s at %s (residual %s, %g sigma threshold)",
                type(estimated.observed_measurement).__name__,
                estimated.observed_measurement.epoch,
                estimated.residual, self.max_sigma,
            )


class DynamicOutlierFilter(OutlierFilter):
    """Outlier filter whose sigma is supplied by the Kalman filter.

    The sigma used is ``sqrt(diag(S)) * sigma_theoretical`` with ``S`` the
    normalized innovation covariance of the current observation.
    """

    def __init__(self, warmup: int, max_sigma: float) -> None:
        super().__init__(warmup, max_sigma)
        self.sigma: Array | None = None

    def set_sigma(self, sigma: ArrayLike | None) -> None:
        self.sigma = None if sigma is None else jnp.asarray(sigma)

    def _sigma(self, estimated: EstimatedMeasurement) -> Array | None:
        return self.sigma

"""Type definitions for the sequential estimator.

- :class:`FilterState`: normalized state estimate and covariance.
- :class:`FilterResult`: output of a correction, with diagnostics.
- :class:`ProcessEstimate`: estimate attached to a filter time.
- :class:`NonLinearEvolution`: per-observation prediction and linearization.

All types are :class:`~typing.NamedTuple` instances, which JAX treats as
pytrees automatically, so they can be returned from ``jax.jit`` compiled
functions.
"""

from __future__ import annotations

from typing import NamedTuple

from jax import Array


class FilterState(NamedTuple):
    """State of a Kalman filter.

    Attributes:
        x: State estimate vector of shape ``(m,)``.
        P: Error covariance matrix of shape ``(m, m)``. Must be symmetric
            positive semi-definite.
    """

    x: Array
    P: Array


class FilterResult(NamedTuple):
    """Result of a filter correction step.

    Attributes:
        state: Corrected :class:`FilterState`.
        innovation: Normalized residual of shape ``(n,)``.
        innovation_covariance: Innovation covariance ``S`` of shape
            ``(n, n)``.
        kalman_gain: Kalman gain matrix ``K`` of shape ``(m, n)``.
    """

    state: FilterState
    innovation: Array
    innovation_covariance: Array
    kalman_gain: Array


class ProcessEstimate(NamedTuple):
    """Normalized estimate at a filter time.

    Attributes:
        time: Seconds since the filter reference epoch.
        state: Normalized state vector of shape ``(m,)``.
        covariance: Normalized covariance of shape ``(m, m)``.
    """

    time: float
    state: Array
    covariance: Array


class NonLinearEvolution(NamedTuple):
    """Prediction and linearization of the filter for one observation.

    Attributes:
        time: Seconds since the filter reference epoch.
        predicted_state: Normalized predicted state of shape ``(m,)``.
        state_transition_matrix: Normalized STM of shape ``(m, m)``.
        process_noise: Normalized process noise of shape ``(m, m)``.
        measurement_matrix: Normalized measurement matrix of shape ``(n, m)``.
    """

    time: float
    predicted_state: Array
    state_transition_matrix: Array
    process_noise: Array
    measurement_matrix: Array

"""Process noise providers and composer.

Each trajectory has a provider returning a *local* physical covariance whose
rows are, in order: the six orbital parameters, the trajectory's selected
dynamical parameters (builder declaration order), then the estimated
measurement parameters. :class:`ProcessNoiseComposer` scatters those local
blocks into the global state covariance through the indirection tables of
the :class:`~astrofilter.estimation.ColumnLayout`.

A provider called with ``previous=None`` returns the initial covariance of
its trajectory rather than a noise increment; this is how the filter seeds
its initial covariance.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.errors import ConfigurationError
from astrofilter.estimation.normalization import normalize_covariance
from astrofilter.estimation.registry import ColumnLayout
from astrofilter.propagation import TrajectoryState

logger = logging.getLogger(__name__)


class ProcessNoiseProvider(Protocol):
    """Supplies the local physical process noise of one trajectory."""

    def get_process_noise_matrix(
        self, previous: TrajectoryState | None, current: TrajectoryState
    ) -> Array: ...


def _square(matrix: ArrayLike, name: str) -> Array:
    matrix = jnp.asarray(matrix, dtype=get_dtype())
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ConfigurationError(f"{name} must be a square matrix, got shape {matrix.shape}")
    return matrix


class ConstantProcessNoise:
    """Fixed initial covariance and fixed noise added at every step.

    Args:
        initial: Initial physical covariance.
        process: Process noise added between any two observations.
    """

    def __init__(self, initial: ArrayLike, process: ArrayLike) -> None:
        self.initial = _square(initial, "initial")
        self.process = _square(process, "process")
        if self.initial.shape != self.process.shape:
            raise ConfigurationError(
                f"initial {self.initial.shape} and process {self.process.shape} differ in shape"
            )

    def get_process_noise_matrix(self, previous, current):
        return self.initial if previous is None else self.process


class LinearProcessNoise:
    """Process noise growing linearly with the time between observations.

    Args:
        initial: Initial physical covariance.
        rate: Noise added per second of propagation.

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.estimation import LinearProcessNoise
        provider = LinearProcessNoise(jnp.diag(jnp.array([100.0] * 3 + [1e-2] * 3)),
                                      jnp.diag(jnp.array([1e-4] * 3 + [1e-10] * 3)))
        ```
    """

    def __init__(self, initial: ArrayLike, rate: ArrayLike) -> None:
        self.initial = _square(initial, "initial")
        self.rate = _square(rate, "rate")
        if self.initial.shape != self.rate.shape:
            raise ConfigurationError(
                f"initial {self.initial.shape} and rate {self.rate.shape} differ in shape"
            )

    def get_process_noise_matrix(self, previous, current):
        if previous is None:
            return self.initial
        return self.rate * abs(current.epoch - previous.epoch)


class ProcessNoiseComposer:
    """Assembles the normalized global process noise matrix.

    Args:
        layout: Column layout of the state vector.
        providers: One provider per trajectory.

    Raises:
        ConfigurationError: If the number of providers differs from the
            number of trajectories.
    """

    def __init__(self, layout: ColumnLayout, providers: Sequence[ProcessNoiseProvider]) -> None:
        if len(providers) != layout.n_trajectories:
            raise ConfigurationError(
                f"Expected {layout.n_trajectories} process noise providers, got {len(providers)}"
            )
        self.layout = layout
        self.providers = list(providers)
        self._scatter = []
        for indirection in layout.process_noise_indirection:
            rows = np.nonzero(indirection >= 0)[0]
            self._scatter.append((rows, indirection[rows]))

    def compose(
        self,
        previous: Sequence[TrajectoryState] | None,
        current: Sequence[TrajectoryState],
    ) -> Array:
        """Normalized ``m x m`` process noise (initial covariance if *previous* is ``None``).

        Raises:
            ConfigurationError: If a provider returns a matrix whose size
                differs from the local dimension of its trajectory.
        """
        m = self.layout.dimension
        Q = jnp.zeros((m, m), dtype=get_dtype())
        for k, provider in enumerate(self.providers):
            local = jnp.asarray(
                provider.get_process_noise_matrix(
                    None if previous is None else previous[k], current[k]
                ),
                dtype=get_dtype(),
            )
            expected = self.layout.local_noise_dimension(k)
            if local.shape != (expected, expected):
                raise ConfigurationError(
                    f"Process noise of trajectory {k} has shape {local.shape}, "
                    f"expected ({expected}, {expected})"
                )
            rows, cols = self._scatter[k]
            if rows.size:
                Q = Q.at[np.ix_(cols, cols)].set(local[np.ix_(rows, rows)])
        return normalize_covariance(Q, self.layout.scale)

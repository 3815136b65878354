"""State-transition and measurement matrices of the filter.

Both matrices are assembled from per-trajectory blocks scattered into the
columns of the :class:`~astrofilter.estimation.ColumnLayout` and returned in
normalized form.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import jax.numpy as jnp
import numpy as np
from jax import Array

from astrofilter.config import get_dtype
from astrofilter.errors import ConfigurationError
from astrofilter.estimation.normalization import normalize_stm
from astrofilter.estimation.registry import ColumnLayout
from astrofilter.measurements import EstimatedMeasurement
from astrofilter.propagation import ReferenceTrajectory, TrajectoryState

logger = logging.getLogger(__name__)


def build_state_transition_matrix(
    layout: ColumnLayout,
    trajectories: Sequence[ReferenceTrajectory],
    predicted_states: Sequence[TrajectoryState],
) -> Array:
    """Normalized ``m x m`` error state-transition matrix.

    Starts from identity (measurement and unselected parameters are
    constant), then for each trajectory scatters the selected rows and
    columns of ``dY/dY0`` into its orbital columns and the selected rows of
    ``dY/dP`` into its orbital rows and dynamical-parameter columns.

    Args:
        layout: Column layout of the state vector.
        trajectories: Reference trajectories, one per registered trajectory.
        predicted_states: Propagated states, one per trajectory.

    Returns:
        Normalized state-transition matrix.
    """
    phi = jnp.eye(layout.dimension, dtype=get_dtype())
    for k, (trajectory, ts) in enumerate(zip(trajectories, predicted_states)):
        cols = np.asarray(layout.orbit_columns[k], dtype=int)
        if cols.size == 0:
            continue
        sel = np.asarray(layout.orbit_selection[k], dtype=int)
        dY_dY0 = trajectory.state_jacobian(ts)
        phi = phi.at[np.ix_(cols, cols)].set(dY_dY0[np.ix_(sel, sel)])

        pcols = np.asarray(layout.propagation_columns[k], dtype=int)
        if pcols.size:
            dY_dP = trajectory.parameter_jacobian(ts)
            phi = phi.at[np.ix_(cols, pcols)].set(dY_dP[sel, :])

    return normalize_stm(phi, layout.scale)


def build_measurement_matrix(
    layout: ColumnLayout,
    trajectories: Sequence[ReferenceTrajectory],
    predicted_states: Sequence[TrajectoryState],
    estimated: EstimatedMeasurement,
) -> Array:
    """Normalized ``n x m`` measurement matrix ``H``.

    Orbital columns use ``dM/dC . dC/dY``, dynamical-parameter columns use
    ``dM/dC . dC/dP`` (summed over the trajectories sharing a parameter) and
    measurement-parameter columns use the observation's own parameter
    derivatives. Each row is divided by the theoretical sigma and each column
    multiplied by its scale.

    Raises:
        ConfigurationError: If a theoretical sigma is not strictly positive.
    """
    observed = estimated.observed_measurement
    sigma = observed.sigma
    if not bool(jnp.all(sigma > 0.0)):
        raise ConfigurationError(
            f"Measurement at {observed.epoch} has non-positive sigma {sigma}"
        )

    H = jnp.zeros((observed.dimension, layout.dimension), dtype=get_dtype())
    for pos, k in enumerate(observed.trajectory_indices):
        trajectory, ts = trajectories[k], predicted_states[k]
        dM_dC = estimated.state_derivatives[pos]

        cols = np.asarray(layout.orbit_columns[k], dtype=int)
        if cols.size:
            sel = np.asarray(layout.orbit_selection[k], dtype=int)
            dC_dY = trajectory.orbit_type.jacobian_wrt_parameters(ts.state, trajectory.gm)
            H = H.at[:, cols].set((dM_dC @ dC_dY)[:, sel])

        pcols = np.asarray(layout.propagation_columns[k], dtype=int)
        if pcols.size:
            H = H.at[:, pcols].add(dM_dC @ ts.parameter_sensitivity)

    measurement_columns = set(layout.measurement_columns)
    for name, derivative in estimated.parameter_derivatives.items():
        col = layout.column_of(name)
        if col is not None and col in measurement_columns:
            H = H.at[:, col].add(derivative)

    return H / sigma[:, None] * layout.scale[None, :]

"""Parameter registry and column layout of the filter state vector.

The estimated state vector is the concatenation of three blocks:

1. **orbital** -- the selected orbital parameters of each trajectory, in
   trajectory order then declaration order. Orbital parameters never share
   a column; with several trajectories their names get a ``[k]`` suffix.
2. **propagation** -- the selected dynamical parameters of all trajectories,
   deduplicated by name (a name declared by several trajectories occupies a
   single column) and sorted by name.
3. **measurement** -- the selected observation-source parameters, one column
   per unique name, in registration order.

:class:`ParameterRegistry` collects the parameters and
:meth:`ParameterRegistry.build` freezes them into a :class:`ColumnLayout`,
which the other components only read.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import jax.numpy as jnp
import numpy as np
from jax import Array

from astrofilter.config import get_dtype
from astrofilter.epoch import Epoch
from astrofilter.errors import ConfigurationError
from astrofilter.parameters import DelegatingParameter, Parameter, ParameterList

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnLayout:
    """Read-only mapping between parameters and state-vector columns.

    Attributes:
        dimension: Number of columns.
        scale: Normalization scale of each column.
        parameters: Parameter handle of each column.
        orbit_columns: Per trajectory, columns of its selected orbital
            parameters.
        orbit_selection: Per trajectory, indices (0-5) of its selected
            orbital parameters, aligned with ``orbit_columns``.
        propagation_columns: Per trajectory, columns of its selected
            dynamical parameters in builder declaration order (the order of
            the parameter sensitivities of its reference trajectory).
        measurement_columns: Columns of the measurement parameters.
        process_noise_indirection: Per trajectory, global column of each row
            of its local process noise matrix, ``-1`` for rows that are not
            estimated.
    """

    dimension: int
    scale: Array
    parameters: tuple[Parameter | DelegatingParameter, ...]
    orbit_columns: tuple[tuple[int, ...], ...]
    orbit_selection: tuple[tuple[int, ...], ...]
    propagation_columns: tuple[tuple[int, ...], ...]
    measurement_columns: tuple[int, ...]
    process_noise_indirection: tuple[np.ndarray, ...]
    estimated_orbital_parameters: tuple[Parameter, ...]
    estimated_propagation_parameters: tuple[DelegatingParameter, ...]
    estimated_measurement_parameters: tuple[DelegatingParameter, ...]
    _columns: dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def n_trajectories(self) -> int:
        return len(self.orbit_columns)

    def column_of(self, name: str) -> int | None:
        """Column of the parameter called *name*, ``None`` if not estimated."""
        return self._columns.get(name)

    def local_noise_dimension(self, k: int) -> int:
        """Expected size of the local process noise matrix of trajectory *k*."""
        return len(self.process_noise_indirection[k])

    def normalized_values(self) -> Array:
        """Current normalized values of all estimated parameters."""
        return jnp.array([p.normalized_value for p in self.parameters], dtype=get_dtype())


class ParameterRegistry:
    """Collects estimable parameters and assigns their columns.

    Args:
        reference_date: Date assigned to parameters without a reference date
            (the filter initial epoch).

    Examples:
        ```python
        registry = ParameterRegistry(builder.epoch)
        registry.register_trajectory(builder.orbital_parameters,
                                     builder.propagation_parameters)
        layout = registry.build()
        layout.dimension
        ```
    """

    def __init__(self, reference_date: Epoch) -> None:
        self.reference_date = reference_date
        self._orbital: list[list[Parameter]] = []
        self._propagation: list[list[Parameter]] = []
        self._measurement = ParameterList()

    def register_trajectory(
        self,
        orbital: Sequence[Parameter],
        propagation: Sequence[Parameter],
    ) -> int:
        """Register the parameters of one trajectory.

        Returns:
            Index of the trajectory.

        Raises:
            ConfigurationError: If *orbital* does not hold exactly 6
                parameters.
        """
        if len(orbital) != 6:
            raise ConfigurationError(
                f"A trajectory needs 6 orbital parameters, got {len(orbital)}"
            )
        self._orbital.append(list(orbital))
        self._propagation.append(list(propagation))
        return len(self._orbital) - 1

    def register_observation_parameters(self, parameters: Sequence[Parameter]) -> None:
        """Register estimated observation-source parameters.

        Raises:
            ConfigurationError: If a parameter is not selected.
        """
        for p in parameters:
            if not p.selected:
                raise ConfigurationError(
                    f"Measurement parameter '{p.name}' is registered but not selected"
                )
            self._measurement.add(p)

    def _assign_reference_date(self, p: Parameter | DelegatingParameter) -> None:
        if p.reference_date is None:
            p.reference_date = self.reference_date

    def build(self) -> ColumnLayout:
        """Freeze the registered parameters into a :class:`ColumnLayout`.

        Raises:
            ConfigurationError: If no trajectory was registered, or the same
                name is used by parameters of different blocks.
        """
        n_traj = len(self._orbital)
        if n_traj == 0:
            raise ConfigurationError("At least one trajectory must be registered")

        if n_traj > 1:
            for k, orbital in enumerate(self._orbital):
                suffix = f"[{k}]"
                for p in orbital:
                    if not p.name.endswith(suffix):
                        p.name = p.name + suffix

        columns: dict[str, int] = {}
        parameters: list[Parameter | DelegatingParameter] = []
        scale: list[float] = []

        def assign(p):
            if p.name in columns:
                raise ConfigurationError(f"Parameter name '{p.name}' is used twice")
            columns[p.name] = len(parameters)
            parameters.append(p)
            scale.append(p.scale)
            self._assign_reference_date(p)

        # Orbital block
        orbit_columns, orbit_selection, estimated_orbital = [], [], []
        for orbital in self._orbital:
            cols, sel = [], []
            for i, p in enumerate(orbital):
                if p.selected:
                    assign(p)
                    cols.append(columns[p.name])
                    sel.append(i)
                    estimated_orbital.append(p)
            orbit_columns.append(tuple(cols))
            orbit_selection.append(tuple(sel))

        # Propagation block, shared by name
        shared = ParameterList()
        for propagation in self._propagation:
            for p in propagation:
                shared.add(p)
        shared.sort()
        estimated_propagation = []
        for driver in shared:
            self._assign_reference_date(driver)
            if driver.selected:
                for member in driver.members:
                    member.selected = True
                assign(driver)
                estimated_propagation.append(driver)
        propagation_columns = tuple(
            tuple(columns[p.name] for p in propagation if p.selected)
            for propagation in self._propagation
        )

        # Measurement block
        measurement_columns = []
        for driver in self._measurement:
            assign(driver)
            measurement_columns.append(columns[driver.name])

        indirection = []
        for k in range(n_traj):
            rows = [columns.get(p.name, -1) if p.selected else -1
                    for p in self._orbital[k]]
            rows += list(propagation_columns[k])
            rows += measurement_columns
            indirection.append(np.asarray(rows, dtype=int))

        logger.info(
            "Column layout: %d orbital, %d propagation, %d measurement parameters",
            len(estimated_orbital), len(estimated_propagation), len(measurement_columns),
        )

        return ColumnLayout(
            dimension=len(parameters),
            scale=jnp.asarray(scale, dtype=get_dtype()),
            parameters=tuple(parameters),
            orbit_columns=tuple(orbit_columns),
            orbit_selection=tuple(orbit_selection),
            propagation_columns=propagation_columns,
            measurement_columns=tuple(measurement_columns),
            process_noise_indirection=tuple(indirection),
            estimated_orbital_parameters=tuple(estimated_orbital),
            estimated_propagation_parameters=tuple(estimated_propagation),
            estimated_measurement_parameters=tuple(self._measurement.drivers),
            _columns=columns,
        )

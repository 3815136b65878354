"""Estimable scalar parameters.

A :class:`Parameter` is a named scalar with a current value, bounds, a
normalization scale and a *selected* flag telling the filter whether it is
estimated. Parameters are created by their owners (trajectory builders for
orbital and dynamical parameters, ground stations for measurement biases)
and only *indexed* by the filter.

When several owners declare a parameter with the same name (for example two
spacecraft sharing a single estimated drag coefficient), a
:class:`ParameterList` merges them behind one :class:`DelegatingParameter`
so that the filter sees a single scalar and writes every update through to
all of them.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator

from astrofilter.epoch import Epoch
from astrofilter.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Parameter:
    """A named, bounded, scaled scalar that may be estimated.

    Args:
        name: Parameter name. Names identify parameters across owners.
        reference_value: Initial (a priori) value in physical units.
        scale: Normalization scale in physical units. Must be strictly
            positive. The filter works with ``value / scale``.
        min_value: Lower bound applied whenever the value is set.
        max_value: Upper bound applied whenever the value is set.
        selected: Whether the parameter is estimated.
        reference_date: Reference date for time-dependent parameters.
            ``None`` lets the filter assign its initial epoch.

    Raises:
        ConfigurationError: If the scale is not strictly positive and finite,
            or the bounds are inconsistent.

    Examples:
        ```python
        from astrofilter.parameters import Parameter
        cd = Parameter("drag coefficient", 2.2, scale=0.1, min_value=0.0)
        cd.selected = True
        cd.normalized_value = 25.0   # value is now 2.5
        ```
    """

    def __init__(
        self,
        name: str,
        reference_value: float,
        scale: float,
        min_value: float = -math.inf,
        max_value: float = math.inf,
        selected: bool = False,
        reference_date: Epoch | None = None,
    ) -> None:
        if not (math.isfinite(scale) and scale > 0.0):
            raise ConfigurationError(
                f"Parameter '{name}' scale must be strictly positive, got {scale}"
            )
        if min_value > max_value:
            raise ConfigurationError(
                f"Parameter '{name}' has min_value {min_value} > max_value {max_value}"
            )
        self.name = name
        self.reference_value = float(reference_value)
        self.scale = float(scale)
        self.min_value = float(min_value)
        self.max_value = float(max_value)
        self.selected = selected
        self.reference_date = reference_date
        self._value = self._clip(float(reference_value))

    def _clip(self, value: float) -> float:
        clipped = min(max(value, self.min_value), self.max_value)
        if clipped != value:
            logger.warning(
                "Parameter '%s' value %g clipped to [%g, %g]",
                self.name, value, self.min_value, self.max_value,
            )
        return clipped

    @property
    def value(self) -> float:
        """Current physical value."""
        return self._value

    @value.setter
    def value(self, value: float) -> None:
        self._value = self._clip(float(value))

    @property
    def normalized_value(self) -> float:
        """Current value divided by the scale."""
        return self._value / self.scale

    @normalized_value.setter
    def normalized_value(self, normalized: float) -> None:
        self.value = float(normalized) * self.scale

    def __repr__(self) -> str:
        return (f"Parameter(name={self.name!r}, value={self._value!r}, "
                f"scale={self.scale!r}, selected={self.selected!r})")


class DelegatingParameter:
    """Single view over every :class:`Parameter` sharing one name.

    Reading returns the first registered member; writing updates all
    members, each clipping to its own bounds.
    """

    def __init__(self, first: Parameter) -> None:
        self._members: list[Parameter] = [first]

    def add(self, parameter: Parameter) -> None:
        if parameter.name != self.name:
            raise ConfigurationError(
                f"Cannot delegate '{parameter.name}' through '{self.name}'"
            )
        if not any(parameter is p for p in self._members):
            self._members.append(parameter)

    @property
    def members(self) -> tuple[Parameter, ...]:
        return tuple(self._members)

    @property
    def name(self) -> str:
        return self._members[0].name

    @property
    def scale(self) -> float:
        return self._members[0].scale

    @property
    def selected(self) -> bool:
        return any(p.selected for p in self._members)

    @property
    def reference_date(self) -> Epoch | None:
        return self._members[0].reference_date

    @reference_date.setter
    def reference_date(self, date: Epoch) -> None:
        for p in self._members:
            p.reference_date = date

    @property
    def value(self) -> float:
        return self._members[0].value

    @value.setter
    def value(self, value: float) -> None:
        for p in self._members:
            p.value = value

    @property
    def normalized_value(self) -> float:
        return self._members[0].normalized_value

    @normalized_value.setter
    def normalized_value(self, normalized: float) -> None:
        for p in self._members:
            p.normalized_value = normalized

    def __repr__(self) -> str:
        return f"DelegatingParameter(name={self.name!r}, members={len(self._members)})"


class ParameterList:
    """Ordered collection of parameters, merged by name.

    Adding a parameter whose name is already present delegates it through
    the existing entry rather than creating a second one.
    """

    def __init__(self, parameters: Iterable[Parameter | DelegatingParameter] = ()) -> None:
        self._drivers: list[DelegatingParameter] = []
        self._by_name: dict[str, DelegatingParameter] = {}
        for p in parameters:
            self.add(p)

    def add(self, parameter: Parameter | DelegatingParameter) -> None:
        members = parameter.members if isinstance(parameter, DelegatingParameter) else (parameter,)
        for member in members:
            existing = self._by_name.get(member.name)
            if existing is None:
                existing = DelegatingParameter(member)
                self._by_name[member.name] = existing
                self._drivers.append(existing)
            else:
                existing.add(member)

    def find(self, name: str) -> DelegatingParameter | None:
        return self._by_name.get(name)

    def sort(self) -> None:
        """Sort entries by name."""
        self._drivers.sort(key=lambda d: d.name)

    @property
    def drivers(self) -> tuple[DelegatingParameter, ...]:
        return tuple(self._drivers)

    def names(self) -> list[str]:
        return [d.name for d in self._drivers]

    def __len__(self) -> int:
        return len(self._drivers)

    def __iter__(self) -> Iterator[DelegatingParameter]:
        return iter(self._drivers)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

"""Observation models.

- **Base**: :class:`ObservedMeasurement`, :class:`EstimatedMeasurement`
- **Ground station**: :class:`Range`, :class:`RangeRate`, :class:`AngularRaDec`
- **Spacecraft**: :class:`Position`, :class:`PV`, :class:`InterSatellitesRange`
- **Outlier filters**: :class:`OutlierFilter`, :class:`DynamicOutlierFilter`
"""

from .base import (
    EstimatedMeasurement,
    MeasurementModifier,
    MeasurementStatus,
    ObservedMeasurement,
)
from .ground import AngularRaDec, Range, RangeRate
from .outliers import DynamicOutlierFilter, OutlierFilter
from .satellite import PV, InterSatellitesRange, Position
from .station import GroundStation, position_geodetic_to_ecef

__all__ = [
    "EstimatedMeasurement",
    "MeasurementModifier",
    "MeasurementStatus",
    "ObservedMeasurement",
    "AngularRaDec",
    "Range",
    "RangeRate",
    "DynamicOutlierFilter",
    "OutlierFilter",
    "PV",
    "InterSatellitesRange",
    "Position",
    "GroundStation",
    "position_geodetic_to_ecef",
]

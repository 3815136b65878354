"""The epoch module provides the ``Epoch`` class for time-tagging observations.

Observations, parameter reference dates and reference trajectories are all
tagged with an :class:`Epoch`. The internal representation is an integer
Modified Julian Day number plus seconds within that day, both kept as
Python scalars so that ordering checks in the filter bookkeeping are exact
and cheap. Differences between epochs are returned in seconds and are the
only quantity that flows into the JAX computations.

The split (integer day + double seconds) representation keeps sub-microsecond
resolution over centuries, which is far below the time-tag accuracy of the
tracking data processed by the filter.
"""

from __future__ import annotations

import math
import re

import jax.numpy as jnp

from astrofilter.config import get_epoch_eq_tolerance
from astrofilter.constants import JD_MJD_OFFSET, SECONDS_PER_DAY

# Modified Julian Date of the J2000.0 epoch (2000-01-01 12:00:00)
_MJD_J2000 = 51544.5

# Valid ISO 8601 epoch string patterns
_EPOCH_PATTERNS = [
    # YYYY-MM-DD
    re.compile(r'^(\d{4})-(\d{2})-(\d{2})$'),
    # YYYY-MM-DDTHH:MM:SSZ
    re.compile(r'^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})Z$'),
    # YYYY-MM-DDTHH:MM:SS.fffZ
    re.compile(r'^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d+)Z$'),
]


def _caldate_to_mjd_day(year: int, month: int, day: int) -> int:
    """Integer MJD of 00:00 on a Gregorian calendar date (Montenbruck & Gill)."""
    if month <= 2:
        year -= 1
        month += 12
    b = year // 400 - year // 100 + year // 4
    return 365 * year - 679004 + b + int(30.6001 * (month + 1)) + day


def _mjd_day_to_caldate(mjd_day: int) -> tuple[int, int, int]:
    """Calendar date of an integer MJD (Montenbruck & Gill, p. 322)."""
    a = mjd_day + 2400001
    if a < 2299161:
        c = a + 1524
    else:
        b = int((a - 1867216.25) / 36524.25)
        c = a + b - b // 4 + 1525
    d = int((c - 122.1) / 365.25)
    e = 365 * d + d // 4
    f = int((c - e) / 30.6001)
    day = c - e - int(30.6001 * f)
    month = f - 1 - 12 * (f // 14)
    year = d - 4715 - ((7 + month) // 10)
    return year, month, day


class Epoch:
    """Represents a single instant in time.

    Constructors:
        Epoch(2018, 1, 1)
        Epoch(2018, 1, 1, 12, 0, 0.0)
        Epoch("2018-01-01T12:00:00Z")
        Epoch(other_epoch)

    Subtracting two epochs returns the difference in seconds as a ``float``;
    adding or subtracting a number of seconds returns a new ``Epoch``.
    """

    __slots__ = ('_mjd', '_seconds')

    def __init__(self, *args: int | float | str | Epoch) -> None:
        self._mjd = 0
        self._seconds = 0.0

        if len(args) == 1:
            if isinstance(args[0], str):
                self._init_string(args[0])
            elif isinstance(args[0], Epoch):
                self._mjd = args[0]._mjd
                self._seconds = args[0]._seconds
            else:
                raise ValueError(f"Cannot construct Epoch from {type(args[0])}")
        elif 3 <= len(args) <= 6:
            self._init_date(*args)
        else:
            raise ValueError(
                "Epoch requires date components (3-6 args), a string, or an Epoch"
            )

    @classmethod
    def _from_internal(cls, mjd: int, seconds: float) -> Epoch:
        obj = object.__new__(cls)
        day_offset = math.floor(seconds / SECONDS_PER_DAY)
        obj._mjd = int(mjd + day_offset)
        obj._seconds = float(seconds - day_offset * SECONDS_PER_DAY)
        return obj

    def _init_date(self, year, month, day, hour=0, minute=0, second=0.0):
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month {month}")
        seconds = hour * 3600.0 + minute * 60.0 + float(second)
        other = Epoch._from_internal(_caldate_to_mjd_day(int(year), int(month), int(day)), seconds)
        self._mjd = other._mjd
        self._seconds = other._seconds

    def _init_string(self, string):
        for pattern in _EPOCH_PATTERNS:
            m = pattern.match(string)
            if m:
                groups = m.groups()
                hour, minute, second = 0, 0, 0.0
                if len(groups) >= 6:
                    hour = int(groups[3])
                    minute = int(groups[4])
                    second = float(groups[5])
                if len(groups) == 7:
                    second += float(f"0.{groups[6]}")
                self._init_date(int(groups[0]), int(groups[1]), int(groups[2]),
                                hour, minute, second)
                return

        raise ValueError(
            f'Invalid Epoch string: "{string}" is not ISO 8601 compliant'
        )

    # Arithmetic operators

    def __add__(self, delta: float) -> Epoch:
        """Return a new Epoch advanced by *delta* seconds."""
        return Epoch._from_internal(self._mjd, self._seconds + float(delta))

    def __radd__(self, delta: float) -> Epoch:
        return self.__add__(delta)

    def __sub__(self, other: Epoch | float) -> Epoch | float:
        """Subtract seconds or compute difference between Epochs.

        Args:
            other: If Epoch, returns the time difference in seconds.
                If numeric, returns a new Epoch with seconds subtracted.

        Returns:
            float or Epoch: Time difference in seconds, or new Epoch.
        """
        if isinstance(other, Epoch):
            return ((self._mjd - other._mjd) * SECONDS_PER_DAY
                    + (self._seconds - other._seconds))
        return Epoch._from_internal(self._mjd, self._seconds - float(other))

    # Comparison operators

    def __eq__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return abs(self - other) <= get_epoch_eq_tolerance()

    def __ne__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return not self.__eq__(other)

    def __lt__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return (self - other) < -get_epoch_eq_tolerance()

    def __le__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return (self - other) <= get_epoch_eq_tolerance()

    def __gt__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return (self - other) > get_epoch_eq_tolerance()

    def __ge__(self, other):
        if not isinstance(other, Epoch):
            return NotImplemented
        return (self - other) >= -get_epoch_eq_tolerance()

    # Time properties

    def caldate(self) -> tuple[int, int, int, int, int, float]:
        """Return the calendar date components.

        Returns:
            tuple: (year, month, day, hour, minute, second) where second
                includes fractional part.
        """
        year, month, day = _mjd_day_to_caldate(self._mjd)
        hour = int(self._seconds // 3600)
        minute = int((self._seconds - hour * 3600) // 60)
        second = self._seconds - hour * 3600 - minute * 60
        return year, month, day, hour, minute, second

    def mjd(self) -> float:
        """Return the Modified Julian Date."""
        return self._mjd + self._seconds / SECONDS_PER_DAY

    def jd(self) -> float:
        """Return the Julian Date."""
        return self.mjd() + JD_MJD_OFFSET

    def gmst(self) -> jnp.ndarray:
        """Compute Greenwich Mean Sidereal Time using the IAU 1982 model.

        Uses the Vallado GMST82 polynomial and assumes UTC approximates UT1
        (at most ~1 s of error), which is the level of fidelity of the
        simplified station models in :mod:`astrofilter.measurements`.

        Returns:
            Greenwich Mean Sidereal Time in radians, in ``[0, 2*pi)``.

        References:

            1. D. Vallado, *Fundamentals of Astrodynamics and Applications
               (4th Ed.)*, 2010.
        """
        days_from_j2000 = (self._mjd - _MJD_J2000) + self._seconds / SECONDS_PER_DAY
        t_ut1 = days_from_j2000 / 36525.0

        gmst_sec = (67310.54841
                    + (876600.0 * 3600.0 + 8640184.812866) * t_ut1
                    + 0.093104 * t_ut1 * t_ut1
                    - 6.2e-6 * t_ut1 * t_ut1 * t_ut1)

        return jnp.mod(jnp.deg2rad(gmst_sec / 240.0), 2.0 * jnp.pi)

    # String representations

    def __str__(self):
        year, month, day, hour, minute, second = self.caldate()
        return (f'{year:04d}-{month:02d}-{day:02d}T'
                f'{hour:02d}:{minute:02d}:{second:06.3f}Z')

    def __repr__(self):
        return f'Epoch(_mjd={self._mjd}, _seconds={self._seconds})'

    # Equality is tolerance based and not transitive, so no hash can agree
    # with it
    __hash__ = None

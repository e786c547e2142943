"""Unit conversion and wind direction helpers.

All conversion factors live in a single immutable ``ConversionTable`` that is
built once and handed to whoever needs it.
"""

import math
from dataclasses import dataclass

from ecowitt_collector.errors import NormalizationError

# 16-point compass rose, clockwise from north
WIND_DIRECTIONS: tuple[str, ...] = (
    "N",
    "NNE",
    "NE",
    "ENE",
    "E",
    "ESE",
    "SE",
    "SSE",
    "S",
    "SSW",
    "SW",
    "WSW",
    "W",
    "WNW",
    "NW",
    "NNW",
)

# 360 degrees / 16 directions
COMPASS_SECTOR = 22.5


@dataclass(frozen=True)
class ConversionTable:
    """Conversion factors from station (imperial) units to metric units."""

    # Exact SI definition. Older deployments used 0.447, which drifts.
    mph_to_ms: float = 0.44704
    inhg_to_hpa: float = 33.8638866667
    inch_to_mm: float = 25.4
    fahrenheit_offset: float = 32.0

    def speed(self, mph: float | None) -> float | None:
        """Miles per hour to meters per second."""
        if mph is None:
            return None
        return mph * self.mph_to_ms

    def pressure(self, inhg: float | None) -> float | None:
        """Inches of mercury to hectopascals."""
        if inhg is None:
            return None
        return inhg * self.inhg_to_hpa

    def length(self, inches: float | None) -> float | None:
        """Inches to millimeters."""
        if inches is None:
            return None
        return inches * self.inch_to_mm

    def temperature(self, fahrenheit: float | None) -> float | None:
        """Degrees Fahrenheit to degrees Celsius."""
        if fahrenheit is None:
            return None
        return (fahrenheit - self.fahrenheit_offset) * 5 / 9


DEFAULT_CONVERSIONS = ConversionTable()


def mph_to_ms(value: float) -> float:
    return value * DEFAULT_CONVERSIONS.mph_to_ms


def inhg_to_hpa(value: float) -> float:
    return value * DEFAULT_CONVERSIONS.inhg_to_hpa


def inch_to_mm(value: float) -> float:
    return value * DEFAULT_CONVERSIONS.inch_to_mm


def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32) * 5 / 9


def offset_degrees(degrees: int, offset: int) -> int:
    """Rotate a wind direction by ``offset`` degrees.

    The result is always in [0, 360), whatever the sign of
    ``degrees + offset`` (Python's modulo takes the sign of the divisor).
    """
    return (degrees + offset) % 360


def degrees_to_compass(degrees: float) -> str:
    """Map a bearing in [0, 360] to one of the 16 compass points.

    Raises:
        NormalizationError: if ``degrees`` is outside [0, 360].
    """
    if not 0 <= degrees <= 360:
        raise NormalizationError(f"invalid wind degrees {degrees}", value=degrees)

    idx = math.floor(degrees / COMPASS_SECTOR + 0.5)
    return WIND_DIRECTIONS[idx % len(WIND_DIRECTIONS)]

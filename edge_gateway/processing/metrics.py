"""
Derived Metric Calculator

Pure functions computing heat index, dew point and a comfort score from a
temperature/humidity pair. Callers validate ranges beforehand; physically
meaningless inputs produce NaN rather than an exception.
"""

import math
from dataclasses import dataclass

# Below this temperature the Rothfusz regression is outside its validity
# range and the air temperature is reported unchanged.
HEAT_INDEX_THRESHOLD_C = 27.0

# Magnus-Tetens constants
MAGNUS_A = 17.27
MAGNUS_B = 237.7  # °C

# Comfort band and penalty weights
COMFORT_TEMPERATURE_BAND = (20.0, 24.0)
COMFORT_HUMIDITY_BAND = (40.0, 60.0)
TEMPERATURE_PENALTY_PER_DEGREE = 6.0
HUMIDITY_PENALTY_PER_PERCENT = 1.5


@dataclass(frozen=True)
class DerivedMetrics:
    """Metrics computed from a single temperature/humidity pair."""
    heat_index: float
    dew_point: float
    comfort_score: float


def celsius_to_fahrenheit(value: float) -> float:
    return value * 9.0 / 5.0 + 32.0


def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32.0) * 5.0 / 9.0


def heat_index(temperature: float, humidity: float) -> float:
    """
    Perceived temperature using the NOAA Rothfusz regression.

    Args:
        temperature: Air temperature in °C
        humidity: Relative humidity in %

    Returns:
        Heat index in °C, or the temperature itself below HEAT_INDEX_THRESHOLD_C
    """
    if temperature < HEAT_INDEX_THRESHOLD_C:
        return temperature

    t = celsius_to_fahrenheit(temperature)
    rh = humidity

    hi = (
        -42.379
        + 2.04901523 * t
        + 10.14333127 * rh
        - 0.22475541 * t * rh
        - 0.00683783 * t * t
        - 0.05481717 * rh * rh
        + 0.00122874 * t * t * rh
        + 0.00085282 * t * rh * rh
        - 0.00000199 * t * t * rh * rh
    )

    return fahrenheit_to_celsius(hi)


def dew_point(temperature: float, humidity: float) -> float:
    """
    Dew point using the Magnus-Tetens approximation.

    Returns NaN when humidity is not strictly positive.
    """
    if humidity <= 0:
        return math.nan

    alpha = (MAGNUS_A * temperature) / (MAGNUS_B + temperature) + math.log(humidity / 100.0)
    return (MAGNUS_B * alpha) / (MAGNUS_A - alpha)


def _distance_outside(value: float, band: tuple[float, float]) -> float:
    low, high = band
    if value < low:
        return low - value
    if value > high:
        return value - high
    return 0.0


def comfort_score(temperature: float, humidity: float) -> float:
    """
    Thermal comfort rating from 0 (very uncomfortable) to 100 (ideal).

    100 inside the ideal band (20-24 °C, 40-60 %RH). Outside it, a linear
    penalty proportional to the distance from the nearest band bound is
    subtracted for each coordinate, then the result is clamped to [0, 100].
    """
    penalty = (
        TEMPERATURE_PENALTY_PER_DEGREE * _distance_outside(temperature, COMFORT_TEMPERATURE_BAND)
        + HUMIDITY_PENALTY_PER_PERCENT * _distance_outside(humidity, COMFORT_HUMIDITY_BAND)
    )
    return max(0.0, min(100.0, 100.0 - penalty))


def compute(temperature: float, humidity: float) -> DerivedMetrics:
    """Compute all derived metrics for one reading."""
    return DerivedMetrics(
        heat_index=heat_index(temperature, humidity),
        dew_point=dew_point(temperature, humidity),
        comfort_score=comfort_score(temperature, humidity),
    )

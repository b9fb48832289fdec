"""
Quality Scorer

Range correction for raw inputs and a 0-100 confidence score with itemized
issue codes for every processed reading.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from edge_gateway.exceptions import ValidationError

from .limits import DEFAULT_LIMITS, PhysicalLimits

# Issue codes, listed in reporting order
ISSUE_BATTERY_LOW = "battery_low"
ISSUE_BATTERY_MISSING = "battery_missing"
ISSUE_SIGNAL_WEAK = "signal_weak"
ISSUE_SIGNAL_MISSING = "signal_missing"
ISSUE_ANOMALY = "anomaly_detected"
ISSUE_TEMPERATURE_RANGE = "temperature_out_of_range"
ISSUE_HUMIDITY_RANGE = "humidity_out_of_range"

# How far outside the physical range a value may be and still be clamped.
TEMPERATURE_CORRECTION_MARGIN = 100.0
HUMIDITY_CORRECTION_MARGIN = 20.0


@dataclass(frozen=True)
class QualityPolicy:
    """Penalties and thresholds for quality scoring."""
    low_battery_threshold: float = 20.0  # %
    low_signal_threshold: float = -85.0  # dBm
    battery_low_penalty: int = 15
    battery_missing_penalty: int = 5
    signal_weak_penalty: int = 10
    signal_missing_penalty: int = 5
    anomaly_penalty: int = 25
    range_penalty: int = 20


@dataclass(frozen=True)
class RangeCorrection:
    """Effective values after clamping, plus which fields were clamped."""
    temperature: float
    humidity: float
    raw_temperature: float
    raw_humidity: float
    temperature_clamped: bool = False
    humidity_clamped: bool = False

    @property
    def corrected(self) -> bool:
        return self.temperature_clamped or self.humidity_clamped


@dataclass(frozen=True)
class QualityAssessment:
    """Quality verdict for a single reading."""
    score: int
    issues: Tuple[str, ...]
    corrected: bool


def _clamp(
    name: str,
    value: float,
    low: float,
    high: float,
    margin: float,
) -> Tuple[float, bool]:
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be a finite number", field=name)
    if value < low - margin or value > high + margin:
        raise ValidationError(
            f"{name} {value} is outside the correctable range "
            f"[{low - margin}, {high + margin}]",
            field=name,
        )
    if value < low:
        return low, True
    if value > high:
        return high, True
    return value, False


def correct_range(
    temperature: float,
    humidity: float,
    limits: PhysicalLimits = DEFAULT_LIMITS,
) -> RangeCorrection:
    """
    Clamp slightly out-of-range inputs to the nearest physical bound.

    Raises:
        ValidationError: If a value is not finite or too far out to correct
    """
    effective_temperature, temperature_clamped = _clamp(
        "temperature",
        temperature,
        limits.temperature_min,
        limits.temperature_max,
        TEMPERATURE_CORRECTION_MARGIN,
    )
    effective_humidity, humidity_clamped = _clamp(
        "humidity",
        humidity,
        limits.humidity_min,
        limits.humidity_max,
        HUMIDITY_CORRECTION_MARGIN,
    )
    return RangeCorrection(
        temperature=effective_temperature,
        humidity=effective_humidity,
        raw_temperature=temperature,
        raw_humidity=humidity,
        temperature_clamped=temperature_clamped,
        humidity_clamped=humidity_clamped,
    )


class QualityScorer:
    """Combines anomaly, metadata and range checks into a quality score."""

    def __init__(self, policy: Optional[QualityPolicy] = None):
        self.policy = policy or QualityPolicy()

    def score(
        self,
        battery_level: Optional[float],
        rssi: Optional[float],
        is_anomaly: bool,
        correction: Optional[RangeCorrection] = None,
    ) -> QualityAssessment:
        """
        Score a reading from 100 down, one penalty per triggered issue.

        Issues are ordered battery, signal, anomaly, range.
        """
        policy = self.policy
        score = 100
        issues: List[str] = []

        if battery_level is None:
            score -= policy.battery_missing_penalty
            issues.append(ISSUE_BATTERY_MISSING)
        elif battery_level < policy.low_battery_threshold:
            score -= policy.battery_low_penalty
            issues.append(ISSUE_BATTERY_LOW)

        if rssi is None:
            score -= policy.signal_missing_penalty
            issues.append(ISSUE_SIGNAL_MISSING)
        elif rssi < policy.low_signal_threshold:
            score -= policy.signal_weak_penalty
            issues.append(ISSUE_SIGNAL_WEAK)

        if is_anomaly:
            score -= policy.anomaly_penalty
            issues.append(ISSUE_ANOMALY)

        corrected = False
        if correction is not None:
            if correction.temperature_clamped:
                score -= policy.range_penalty
                issues.append(ISSUE_TEMPERATURE_RANGE)
            if correction.humidity_clamped:
                score -= policy.range_penalty
                issues.append(ISSUE_HUMIDITY_RANGE)
            corrected = correction.corrected

        return QualityAssessment(
            score=max(0, score),
            issues=tuple(issues),
            corrected=corrected,
        )

"""
Trend & Anomaly Detector

Classifies the direction of temperature and humidity changes against a small
per-sensor rolling window and flags readings that are physically implausible
or inconsistent with the sensor's recent history.
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .limits import DEFAULT_LIMITS, PhysicalLimits


class Trend(str, Enum):
    """Direction of a measurement relative to the previous sample."""
    FALLING = "falling"
    STABLE = "stable"
    RISING = "rising"


# Anomaly reason codes
REASON_TEMPERATURE_BOUNDS = "temperature_out_of_bounds"
REASON_HUMIDITY_BOUNDS = "humidity_out_of_bounds"
REASON_TEMPERATURE_JUMP = "temperature_jump"
REASON_HUMIDITY_JUMP = "humidity_jump"
REASON_STUCK_SENSOR = "stuck_sensor"


@dataclass(frozen=True)
class Sample:
    """One (temperature, humidity) pair held in a history window."""
    temperature: float
    humidity: float


class SensorHistory:
    """Fixed-capacity ring of the most recent samples for one sensor."""

    def __init__(self, capacity: int = 10, samples: Iterable[Sample] = ()):
        self.capacity = capacity
        self._samples: deque = deque(samples, maxlen=capacity)

    def push(self, temperature: float, humidity: float) -> None:
        self._samples.append(Sample(temperature, humidity))

    def clear(self) -> None:
        self._samples.clear()

    def latest(self) -> Optional[Sample]:
        return self._samples[-1] if self._samples else None

    def tail(self, count: int) -> List[Sample]:
        if count <= 0:
            return []
        return list(self._samples)[-count:]

    def samples(self) -> List[Sample]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


@dataclass
class _HistoryEntry:
    history: SensorHistory
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class HistoryTable:
    """
    Per-sensor history windows with per-entry exclusive access.

    Readings for the same sensor are serialized through the entry's lock;
    distinct sensors never contend with each other.
    """

    def __init__(self, capacity: int = 10):
        self.capacity = capacity
        self._entries: Dict[str, _HistoryEntry] = {}

    def _entry(self, sensor_id: str) -> _HistoryEntry:
        entry = self._entries.get(sensor_id)
        if entry is None:
            entry = _HistoryEntry(history=SensorHistory(self.capacity))
            self._entries[sensor_id] = entry
        return entry

    @asynccontextmanager
    async def acquire(self, sensor_id: str) -> AsyncIterator[SensorHistory]:
        """Hold the sensor's window exclusively for the duration of the block."""
        entry = self._entry(sensor_id)
        async with entry.lock:
            yield entry.history

    def load(self, sensor_id: str, samples: Iterable[Tuple[float, float]]) -> None:
        """Replace a sensor's window with samples ordered oldest first."""
        history = self._entry(sensor_id).history
        history.clear()
        for temperature, humidity in samples:
            history.push(temperature, humidity)

    def peek(self, sensor_id: str) -> List[Sample]:
        entry = self._entries.get(sensor_id)
        return entry.history.samples() if entry else []

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class AnomalyPolicy:
    """Thresholds and heuristics driving anomaly detection."""
    limits: PhysicalLimits = DEFAULT_LIMITS
    max_temperature_delta: float = 10.0
    max_humidity_delta: float = 30.0
    # Heuristic: identical consecutive samples usually mean a frozen sensor.
    detect_stuck_sensor: bool = True
    stuck_window: int = 5


@dataclass(frozen=True)
class Classification:
    """Result of classifying one reading against its sensor history."""
    temperature_trend: Trend
    humidity_trend: Trend
    is_anomaly: bool
    reasons: Tuple[str, ...] = ()


class TrendDetector:
    """Trend classification and anomaly flagging over a SensorHistory."""

    def __init__(self, policy: Optional[AnomalyPolicy] = None, epsilon: float = 0.1):
        self.policy = policy or AnomalyPolicy()
        self.epsilon = epsilon

    def trend(self, value: float, reference: Optional[float]) -> Trend:
        if reference is None:
            return Trend.STABLE
        difference = value - reference
        if abs(difference) <= self.epsilon:
            return Trend.STABLE
        return Trend.RISING if difference > 0 else Trend.FALLING

    def classify(
        self,
        history: SensorHistory,
        temperature: float,
        humidity: float,
        raw_temperature: Optional[float] = None,
        raw_humidity: Optional[float] = None,
        record: bool = True,
    ) -> Classification:
        """
        Classify a reading and optionally append it to the window.

        Args:
            history: The sensor's window (caller holds its lock)
            temperature: Effective (range-corrected) temperature
            humidity: Effective (range-corrected) humidity
            raw_temperature: Value as reported, used for the bound check
            raw_humidity: Value as reported, used for the bound check
            record: Append the sample to the window after classifying
        """
        previous = history.latest()
        reasons = self._bound_reasons(
            temperature if raw_temperature is None else raw_temperature,
            humidity if raw_humidity is None else raw_humidity,
        )

        if previous is not None:
            if abs(temperature - previous.temperature) > self.policy.max_temperature_delta:
                reasons.append(REASON_TEMPERATURE_JUMP)
            if abs(humidity - previous.humidity) > self.policy.max_humidity_delta:
                reasons.append(REASON_HUMIDITY_JUMP)
            if self.policy.detect_stuck_sensor and self._is_stuck(history, temperature, humidity):
                reasons.append(REASON_STUCK_SENSOR)

        classification = Classification(
            temperature_trend=self.trend(temperature, previous.temperature if previous else None),
            humidity_trend=self.trend(humidity, previous.humidity if previous else None),
            is_anomaly=bool(reasons),
            reasons=tuple(reasons),
        )

        if record:
            history.push(temperature, humidity)

        return classification

    def _bound_reasons(self, temperature: float, humidity: float) -> List[str]:
        reasons = []
        if not self.policy.limits.temperature_in_range(temperature):
            reasons.append(REASON_TEMPERATURE_BOUNDS)
        if not self.policy.limits.humidity_in_range(humidity):
            reasons.append(REASON_HUMIDITY_BOUNDS)
        return reasons

    def _is_stuck(self, history: SensorHistory, temperature: float, humidity: float) -> bool:
        window = self.policy.stuck_window
        previous = history.tail(window - 1)
        if len(previous) < window - 1:
            return False

        temperatures = np.array([s.temperature for s in previous] + [temperature])
        humidities = np.array([s.humidity for s in previous] + [humidity])
        return bool(np.ptp(temperatures) == 0 and np.ptp(humidities) == 0)

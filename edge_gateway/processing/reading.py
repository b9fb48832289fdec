"""Enriched reading produced by the edge processing pipeline."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .trends import Trend


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ComputedMetrics:
    """Metrics derived at the edge."""
    heat_index: float
    dew_point: Optional[float]  # None when undefined (humidity at 0 %)
    comfort_level: float
    is_anomaly: bool
    temperature_trend: Trend
    humidity_trend: Trend


@dataclass(frozen=True)
class DataQuality:
    """Quality verdict attached to a reading."""
    score: int  # 0-100
    issues: Tuple[str, ...]
    corrected: bool


@dataclass(frozen=True)
class ProcessedReading:
    """
    A reading with every computed field populated.

    Immutable once built; the sync fields reflect the store row it was read from.
    """
    id: uuid.UUID
    sensor_id: str
    temperature: float
    humidity: float
    gateway_timestamp: datetime
    computed: ComputedMetrics
    quality: DataQuality
    sensor_timestamp: Optional[datetime] = None
    battery_level: Optional[float] = None
    rssi: Optional[int] = None
    synced: bool = False
    sync_attempts: int = 0
    last_sync_attempt: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        """Representation sent to the aggregation service."""
        return {
            "id": str(self.id),
            "sensor_id": self.sensor_id,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "gateway_timestamp": self.gateway_timestamp.isoformat(),
            "computed": {
                "heat_index": self.computed.heat_index,
                "dew_point": self.computed.dew_point,
                "comfort_level": self.computed.comfort_level,
                "is_anomaly": self.computed.is_anomaly,
            },
            "quality": {
                "score": self.quality.score,
                "issues": list(self.quality.issues),
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full representation for local reporting."""
        result = self.to_payload()
        result["computed"]["temperature_trend"] = self.computed.temperature_trend.value
        result["computed"]["humidity_trend"] = self.computed.humidity_trend.value
        result["quality"]["corrected"] = self.quality.corrected
        result.update({
            "sensor_timestamp": _iso(self.sensor_timestamp),
            "battery_level": self.battery_level,
            "rssi": self.rssi,
            "synced": self.synced,
            "sync_attempts": self.sync_attempts,
            "last_sync_attempt": _iso(self.last_sync_attempt),
        })
        return result

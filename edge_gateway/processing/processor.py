"""
Edge Processor

Turns a raw temperature/humidity reading into a fully enriched reading:
range correction, derived metrics, trend and anomaly classification against
the sensor's rolling history, and quality scoring. Designed to run on edge
devices like Raspberry Pi or industrial gateways.
"""

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import structlog

from edge_gateway.config.settings import ProcessingSettings
from edge_gateway.schemas.reading import RawReading, parse_reading

from . import metrics
from .limits import DEFAULT_LIMITS, PhysicalLimits
from .quality import QualityPolicy, QualityScorer, correct_range
from .reading import ComputedMetrics, DataQuality, ProcessedReading
from .trends import AnomalyPolicy, HistoryTable, SensorHistory, TrendDetector

logger = structlog.get_logger(__name__)


class EdgeProcessor:
    """
    Local edge processing for sensor readings.

    Performs:
    - Range correction (clamping) of raw inputs
    - Heat index, dew point and comfort computation
    - Trend classification and anomaly pre-filtering
    - Quality scoring
    """

    def __init__(
        self,
        gateway_id: str,
        history_window: int = 10,
        detector: Optional[TrendDetector] = None,
        scorer: Optional[QualityScorer] = None,
        limits: PhysicalLimits = DEFAULT_LIMITS,
    ):
        self.gateway_id = gateway_id
        self.limits = limits
        self.detector = detector or TrendDetector(AnomalyPolicy(limits=limits))
        self.scorer = scorer or QualityScorer()

        # Per-sensor rolling windows
        self.history = HistoryTable(capacity=history_window)

        # Processing state
        self.readings_processed = 0
        self.anomalies_detected = 0
        self.corrections_applied = 0

    @classmethod
    def from_settings(cls, gateway_id: str, settings: ProcessingSettings) -> "EdgeProcessor":
        """Build a processor from the PROCESSING_ settings section."""
        policy = AnomalyPolicy(
            max_temperature_delta=settings.max_temperature_delta,
            max_humidity_delta=settings.max_humidity_delta,
            detect_stuck_sensor=settings.detect_stuck_sensor,
            stuck_window=settings.stuck_window,
        )
        scorer = QualityScorer(QualityPolicy(
            low_battery_threshold=settings.low_battery_threshold,
            low_signal_threshold=settings.low_signal_threshold,
        ))
        return cls(
            gateway_id,
            history_window=settings.history_window,
            detector=TrendDetector(policy, epsilon=settings.trend_epsilon),
            scorer=scorer,
        )

    def enrich(
        self,
        raw: RawReading,
        history: SensorHistory,
        gateway_timestamp: Optional[datetime] = None,
    ) -> ProcessedReading:
        """
        Compute every derived field for a reading without touching the window.

        The caller holds the sensor's history lock and calls commit() once the
        reading has been persisted.

        Raises:
            ValidationError: If the raw reading cannot be accepted
        """
        data = parse_reading(raw)
        if gateway_timestamp is None:
            gateway_timestamp = datetime.now(timezone.utc)

        correction = correct_range(data.temperature, data.humidity, self.limits)
        derived = metrics.compute(correction.temperature, correction.humidity)

        classification = self.detector.classify(
            history,
            correction.temperature,
            correction.humidity,
            raw_temperature=correction.raw_temperature,
            raw_humidity=correction.raw_humidity,
            record=False,
        )

        assessment = self.scorer.score(
            data.battery_level,
            data.rssi,
            classification.is_anomaly,
            correction,
        )

        return ProcessedReading(
            id=uuid.uuid4(),
            sensor_id=data.sensor_id,
            temperature=correction.temperature,
            humidity=correction.humidity,
            gateway_timestamp=gateway_timestamp,
            sensor_timestamp=data.sensor_timestamp,
            battery_level=data.battery_level,
            rssi=data.rssi,
            computed=ComputedMetrics(
                heat_index=derived.heat_index,
                dew_point=None if math.isnan(derived.dew_point) else derived.dew_point,
                comfort_level=derived.comfort_score,
                is_anomaly=classification.is_anomaly,
                temperature_trend=classification.temperature_trend,
                humidity_trend=classification.humidity_trend,
            ),
            quality=DataQuality(
                score=assessment.score,
                issues=assessment.issues,
                corrected=assessment.corrected,
            ),
        )

    def commit(self, history: SensorHistory, reading: ProcessedReading) -> None:
        """Record a persisted reading in its sensor window."""
        history.push(reading.temperature, reading.humidity)
        self.readings_processed += 1

        if reading.quality.corrected:
            self.corrections_applied += 1

        if reading.computed.is_anomaly:
            self.anomalies_detected += 1
            logger.warning(
                "anomaly_detected",
                sensor_id=reading.sensor_id,
                reading_id=str(reading.id),
                temperature=reading.temperature,
                humidity=reading.humidity,
                issues=list(reading.quality.issues),
            )

    async def process(self, raw: RawReading) -> ProcessedReading:
        """
        Enrich and commit a reading in one step without persisting it.

        Convenience for callers that keep no store; GatewayService persists
        between enrich() and commit() instead.
        """
        data = parse_reading(raw)
        async with self.history.acquire(data.sensor_id) as history:
            reading = self.enrich(data, history)
            self.commit(history, reading)
        return reading

    def rebuild_history(self, readings: Iterable[ProcessedReading]) -> int:
        """
        Restore windows from stored readings ordered oldest first.

        Returns the number of sensors restored.
        """
        by_sensor: Dict[str, list] = {}
        for reading in readings:
            by_sensor.setdefault(reading.sensor_id, []).append(
                (reading.temperature, reading.humidity)
            )

        for sensor_id, samples in by_sensor.items():
            self.history.load(sensor_id, samples)

        logger.info("history_rebuilt", sensors=len(by_sensor))
        return len(by_sensor)

    def get_status(self) -> Dict[str, Any]:
        """Get processor status for monitoring."""
        return {
            "gateway_id": self.gateway_id,
            "sensors_tracked": len(self.history),
            "readings_processed": self.readings_processed,
            "anomalies_detected": self.anomalies_detected,
            "corrections_applied": self.corrections_applied,
        }

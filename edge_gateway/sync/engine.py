"""
Sync Engine

Forwards pending readings to the aggregation service in batches and
reconciles the outcome against the reading store. Delivery is at-least-once:
readings are only marked synced after a definite 2xx answer, and a failed
batch stays pending, oldest first, for the next cycle.

Cycle states: IDLE -> SELECTING -> SENDING -> RECONCILING_SUCCESS | RECONCILING_FAILURE -> IDLE
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from edge_gateway.config.settings import SyncSettings
from edge_gateway.exceptions import StoreError, SyncTransportError
from edge_gateway.processing.reading import ProcessedReading
from edge_gateway.store.reading_store import ReadingStore
from edge_gateway.utils.logging import get_logger

from .client import CloudClient

logger = get_logger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    SENDING = "sending"
    RECONCILING_SUCCESS = "reconciling_success"
    RECONCILING_FAILURE = "reconciling_failure"


class SyncResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    EMPTY = "empty"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BatchStatistics:
    """Aggregate statistics of one outbound batch."""
    total_readings: int
    anomalies_detected: int
    sensors_count: int
    avg_quality_score: float

    @classmethod
    def from_readings(cls, readings: Sequence[ProcessedReading]) -> "BatchStatistics":
        if not readings:
            return cls(0, 0, 0, 0.0)
        scores = np.array([r.quality.score for r in readings], dtype=float)
        return cls(
            total_readings=len(readings),
            anomalies_detected=sum(1 for r in readings if r.computed.is_anomaly),
            sensors_count=len({r.sensor_id for r in readings}),
            avg_quality_score=float(np.mean(scores)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_readings": self.total_readings,
            "anomalies_detected": self.anomalies_detected,
            "sensors_count": self.sensors_count,
            "avg_quality_score": round(self.avg_quality_score, 2),
        }


@dataclass(frozen=True)
class SyncOutcome:
    """What happened during one sync cycle."""
    trigger: str
    result: SyncResult
    started_at: datetime
    finished_at: datetime
    batch_size: int = 0
    stats: Optional[BatchStatistics] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "result": self.result.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "batch_size": self.batch_size,
            "stats": self.stats.to_dict() if self.stats else None,
            "error": self.error,
            "status_code": self.status_code,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """
    Batch synchronization with the aggregation service.

    At most one cycle runs at a time. Consecutive failures widen the periodic
    interval exponentially up to a ceiling and suppress threshold triggers;
    any success resets the counter.
    """

    def __init__(
        self,
        store: ReadingStore,
        client: CloudClient,
        gateway_id: str,
        gateway_version: str,
        batch_size: int = 50,
        interval_seconds: float = 300.0,
        max_interval_seconds: float = 3600.0,
        timeout_seconds: float = 30.0,
    ):
        self.store = store
        self.client = client
        self.gateway_id = gateway_id
        self.gateway_version = gateway_version
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.max_interval_seconds = max_interval_seconds
        self.timeout_seconds = timeout_seconds

        self._cycle_lock = asyncio.Lock()
        self._state = SyncState.IDLE
        self.consecutive_failures = 0
        self.last_outcome: Optional[SyncOutcome] = None

    @classmethod
    def from_settings(
        cls,
        store: ReadingStore,
        settings: SyncSettings,
        gateway_id: str,
        gateway_version: str,
        client: Optional[CloudClient] = None,
    ) -> "SyncEngine":
        return cls(
            store=store,
            client=client or CloudClient.from_settings(settings, gateway_id),
            gateway_id=gateway_id,
            gateway_version=gateway_version,
            batch_size=settings.batch_size,
            interval_seconds=settings.interval_seconds,
            max_interval_seconds=settings.max_interval_seconds,
            timeout_seconds=settings.timeout_seconds,
        )

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    def next_interval(self) -> float:
        """Seconds until the next periodic cycle, widened by consecutive failures."""
        exponent = min(self.consecutive_failures, 32)
        return min(self.interval_seconds * (2 ** exponent), self.max_interval_seconds)

    def should_trigger(self, pending: int) -> bool:
        """Threshold trigger check run after each successful insert."""
        return pending >= self.batch_size and self.consecutive_failures == 0 and not self.busy

    def build_payload(
        self,
        readings: Sequence[ProcessedReading],
        stats: BatchStatistics,
        sent_at: datetime,
    ) -> Dict[str, Any]:
        return {
            "gateway_id": self.gateway_id,
            "gateway_version": self.gateway_version,
            "sent_at": sent_at.isoformat(),
            "batch_stats": stats.to_dict(),
            "data": [reading.to_payload() for reading in readings],
        }

    async def run_cycle(self, trigger: str = "manual") -> SyncOutcome:
        """
        Run one select/send/reconcile cycle.

        Transport failures are contained and reported in the outcome.

        Raises:
            StoreError: If the store cannot be read or reconciled
        """
        started_at = _now()
        if self.busy:
            logger.debug("sync_cycle_skipped", trigger=trigger)
            return SyncOutcome(trigger, SyncResult.SKIPPED, started_at, started_at)

        async with self._cycle_lock:
            try:
                self._state = SyncState.SELECTING
                readings = await self.store.select_pending(self.batch_size)
                if not readings:
                    logger.debug("sync_nothing_pending", trigger=trigger)
                    outcome = SyncOutcome(trigger, SyncResult.EMPTY, started_at, _now())
                    self.last_outcome = outcome
                    return outcome

                stats = BatchStatistics.from_readings(readings)
                ids = [reading.id for reading in readings]
                payload = self.build_payload(readings, stats, _now())

                self._state = SyncState.SENDING
                try:
                    await asyncio.wait_for(self.client.send(payload), timeout=self.timeout_seconds)
                except asyncio.CancelledError:
                    await self._reconcile_failure(trigger, started_at, ids, stats, "sync cycle cancelled")
                    raise
                except asyncio.TimeoutError:
                    return await self._reconcile_failure(
                        trigger, started_at, ids, stats,
                        f"no response within {self.timeout_seconds}s",
                    )
                except SyncTransportError as exc:
                    return await self._reconcile_failure(
                        trigger, started_at, ids, stats, exc.message, exc.status_code,
                    )

                return await self._reconcile_success(trigger, started_at, ids, stats)
            finally:
                self._state = SyncState.IDLE

    async def _reconcile_success(
        self,
        trigger: str,
        started_at: datetime,
        ids: List,
        stats: BatchStatistics,
    ) -> SyncOutcome:
        self._state = SyncState.RECONCILING_SUCCESS
        try:
            await self.store.mark_synced(ids, attempted_at=_now())
        except StoreError as exc:
            # Accepted remotely but still pending locally: the batch will be resent.
            self.consecutive_failures += 1
            self.last_outcome = SyncOutcome(
                trigger, SyncResult.FAILURE, started_at, _now(),
                batch_size=len(ids), stats=stats, error=exc.message,
            )
            logger.error("sync_reconcile_failed", trigger=trigger, batch_size=len(ids), error=exc.message)
            raise

        self.consecutive_failures = 0
        outcome = SyncOutcome(
            trigger, SyncResult.SUCCESS, started_at, _now(),
            batch_size=len(ids), stats=stats,
        )
        self.last_outcome = outcome
        logger.info(
            "sync_cycle_completed",
            trigger=trigger,
            batch_size=len(ids),
            anomalies=stats.anomalies_detected,
            sensors=stats.sensors_count,
            avg_quality=round(stats.avg_quality_score, 2),
        )
        return outcome

    async def _reconcile_failure(
        self,
        trigger: str,
        started_at: datetime,
        ids: List,
        stats: BatchStatistics,
        error: str,
        status_code: Optional[int] = None,
    ) -> SyncOutcome:
        self._state = SyncState.RECONCILING_FAILURE
        self.consecutive_failures += 1
        outcome = SyncOutcome(
            trigger, SyncResult.FAILURE, started_at, _now(),
            batch_size=len(ids), stats=stats, error=error, status_code=status_code,
        )
        self.last_outcome = outcome
        logger.warning(
            "sync_cycle_failed",
            trigger=trigger,
            batch_size=len(ids),
            error=error,
            status_code=status_code,
            consecutive_failures=self.consecutive_failures,
            next_interval_seconds=self.next_interval(),
        )
        await self.store.record_attempt(ids, _now())
        return outcome

    async def run_forever(self, stop: asyncio.Event) -> None:
        """Periodic trigger: run a cycle every interval until `stop` is set."""
        logger.info("sync_task_started", interval_seconds=self.interval_seconds)
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.next_interval())
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_cycle("periodic")
            except StoreError as exc:
                logger.error("sync_cycle_store_error", trigger="periodic", error=exc.message)
        logger.info("sync_task_stopped")

"""
Gateway Service

Orchestrates the edge gateway: ingestion (process, persist, threshold check),
history rebuild on startup, the periodic sync and retention loops, and the
reporting queries used by the HTTP API.
"""

import asyncio
import time
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Set

import httpx

from edge_gateway import __version__
from edge_gateway.config.settings import Settings
from edge_gateway.exceptions import StoreError
from edge_gateway.processing.processor import EdgeProcessor
from edge_gateway.processing.reading import ProcessedReading
from edge_gateway.processing.trends import SensorHistory
from edge_gateway.schemas.reading import RawReading, parse_reading
from edge_gateway.store.reading_store import ReadingStore
from edge_gateway.sync.client import CloudClient
from edge_gateway.sync.engine import BatchStatistics, SyncEngine, SyncOutcome
from edge_gateway.utils.logging import ServiceLogger, get_logger

logger = get_logger(__name__)


class GatewayService:
    """
    Service wiring the processor, the reading store and the sync engine.

    Ingestion holds the sensor's history lock from classification until the
    reading is committed to the window, so a reading that failed to persist
    never influences later trends.
    """

    def __init__(
        self,
        store: ReadingStore,
        processor: EdgeProcessor,
        sync_engine: SyncEngine,
        sync_enabled: bool = True,
        retention_days: int = 7,
        cleanup_interval_seconds: float = 3600.0,
    ):
        self.store = store
        self.processor = processor
        self.sync_engine = sync_engine
        self.sync_enabled = sync_enabled
        self.retention = timedelta(days=retention_days)
        self.cleanup_interval_seconds = cleanup_interval_seconds

        self.service_logger = ServiceLogger("gateway")
        self._stop = asyncio.Event()
        self._loops: List[asyncio.Task] = []
        self._background: Set[asyncio.Task] = set()
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "GatewayService":
        """Build the full service graph from settings."""
        store = ReadingStore.from_url(settings.database.url, echo=settings.database.echo)
        processor = EdgeProcessor.from_settings(settings.gateway_id, settings.processing)
        client = CloudClient.from_settings(settings.sync, settings.gateway_id, transport=transport)
        engine = SyncEngine.from_settings(
            store,
            settings.sync,
            gateway_id=settings.gateway_id,
            gateway_version=settings.app_version,
            client=client,
        )
        return cls(
            store=store,
            processor=processor,
            sync_engine=engine,
            sync_enabled=settings.sync.enabled,
            retention_days=settings.retention.days,
            cleanup_interval_seconds=settings.retention.cleanup_interval_seconds,
        )

    @property
    def gateway_id(self) -> str:
        return self.processor.gateway_id

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self, run_loops: bool = True) -> None:
        """
        Open the store, restore trend windows and start the periodic tasks.

        Raises:
            StoreError: If the store cannot be opened
        """
        if self._started:
            return
        self.service_logger.log_operation_start("gateway_startup", gateway_id=self.gateway_id)
        start_time = time.perf_counter()

        await self.store.initialize()
        history = await self.store.recent_history(self.processor.history.capacity)
        sensors = self.processor.rebuild_history(history)

        self._stop.clear()
        if run_loops:
            if self.sync_enabled:
                self._loops.append(asyncio.create_task(self.sync_engine.run_forever(self._stop)))
            self._loops.append(asyncio.create_task(self.run_retention_forever()))

        self._started = True
        self.service_logger.log_operation_complete(
            "gateway_startup",
            duration_ms=(time.perf_counter() - start_time) * 1000,
            sensors_restored=sensors,
            sync_enabled=self.sync_enabled,
        )

    async def stop(self) -> None:
        """Stop the periodic tasks, wait for in-flight syncs and close the store."""
        if not self._started:
            return
        self._stop.set()
        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()

        await self.wait_for_sync()
        await self.store.close()
        self._started = False
        logger.info("gateway_stopped", gateway_id=self.gateway_id)

    async def wait_for_sync(self) -> None:
        """Wait for threshold-triggered sync cycles still running in the background."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Ingestion ─────────────────────────────────────────────

    async def ingest(self, raw: RawReading) -> ProcessedReading:
        """
        Process and persist one raw reading.

        Raises:
            ValidationError: If the reading is rejected before processing
            StoreError: If the reading could not be persisted
        """
        data = parse_reading(raw)

        async with self.processor.history.acquire(data.sensor_id) as history:
            reading = self.processor.enrich(data, history)
            await self.store.insert(reading)
            self.processor.commit(history, reading)

        logger.info(
            "reading_ingested",
            reading_id=str(reading.id),
            sensor_id=reading.sensor_id,
            quality_score=reading.quality.score,
            is_anomaly=reading.computed.is_anomaly,
        )
        await self._check_threshold()
        return reading

    async def ingest_batch(self, raws: Sequence[RawReading]) -> List[ProcessedReading]:
        """
        Process and persist several readings in one transaction.

        Either every reading is stored and enters its sensor window, or none is.
        Readings of the same sensor are classified in the order given.
        """
        batch = [parse_reading(raw) for raw in raws]
        if not batch:
            return []
        sensor_ids = sorted({data.sensor_id for data in batch})

        async with AsyncExitStack() as stack:
            # Locks taken in sorted order so concurrent batches cannot deadlock.
            windows: Dict[str, SensorHistory] = {}
            for sensor_id in sensor_ids:
                windows[sensor_id] = await stack.enter_async_context(
                    self.processor.history.acquire(sensor_id)
                )

            scratch = {
                sensor_id: SensorHistory(history.capacity, history.samples())
                for sensor_id, history in windows.items()
            }
            readings = []
            for data in batch:
                reading = self.processor.enrich(data, scratch[data.sensor_id])
                scratch[data.sensor_id].push(reading.temperature, reading.humidity)
                readings.append(reading)

            await self.store.insert_many(readings)

            for reading in readings:
                self.processor.commit(windows[reading.sensor_id], reading)

        logger.info("batch_ingested", readings=len(readings), sensors=len(sensor_ids))
        await self._check_threshold()
        return readings

    async def _check_threshold(self) -> None:
        if not self.sync_enabled:
            return
        try:
            pending = await self.store.count_pending()
        except StoreError as exc:
            logger.error("threshold_check_failed", error=exc.message)
            return
        if self.sync_engine.should_trigger(pending):
            logger.debug("sync_threshold_reached", pending=pending)
            task = asyncio.create_task(self._background_sync("threshold"))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _background_sync(self, trigger: str) -> None:
        try:
            await self.sync_engine.run_cycle(trigger)
        except StoreError as exc:
            logger.error("sync_cycle_store_error", trigger=trigger, error=exc.message)

    # ── Sync & retention ──────────────────────────────────────

    async def sync_now(self) -> SyncOutcome:
        """Run one sync cycle immediately (manual trigger)."""
        return await self.sync_engine.run_cycle("manual")

    async def cleanup_expired(self) -> int:
        """Delete synced readings older than the retention window."""
        deleted = await self.store.cleanup(self.retention, only_synced=True)
        logger.info(
            "retention_cleanup_completed",
            deleted=deleted,
            retention_days=self.retention.days,
        )
        return deleted

    async def run_retention_forever(self) -> None:
        """Periodic retention cleanup until the service stops."""
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.cleanup_interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.cleanup_expired()
            except StoreError as exc:
                self.service_logger.log_operation_failed("retention_cleanup", exc)

    # ── Reporting ─────────────────────────────────────────────

    async def recent_readings(
        self,
        sensor_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[ProcessedReading]:
        return await self.store.recent_readings(sensor_id=sensor_id, limit=limit)

    async def count_pending(self) -> int:
        return await self.store.count_pending()

    @property
    def last_sync_outcome(self) -> Optional[SyncOutcome]:
        return self.sync_engine.last_outcome

    async def statistics(self) -> Dict[str, Any]:
        """Store and sync statistics for the reporting API."""
        pending = await self.store.count_pending()
        total = await self.store.count_total()
        outcome = self.sync_engine.last_outcome
        return {
            "gateway_id": self.gateway_id,
            "total_readings": total,
            "pending_readings": pending,
            "synced_readings": total - pending,
            "sync": {
                "enabled": self.sync_enabled,
                "state": self.sync_engine.state.value,
                "consecutive_failures": self.sync_engine.consecutive_failures,
                "next_interval_seconds": self.sync_engine.next_interval(),
                "last_outcome": outcome.to_dict() if outcome else None,
            },
            "processing": self.processor.get_status(),
        }

    def get_status(self) -> Dict[str, Any]:
        """Cheap in-memory status snapshot for health and metrics."""
        return {
            "gateway_id": self.gateway_id,
            "version": __version__,
            "running": self._started,
            "sync_state": self.sync_engine.state.value,
            "consecutive_failures": self.sync_engine.consecutive_failures,
            **{k: v for k, v in self.processor.get_status().items() if k != "gateway_id"},
        }

    @staticmethod
    def summarize(readings: Sequence[ProcessedReading]) -> Dict[str, Any]:
        return BatchStatistics.from_readings(readings).to_dict()

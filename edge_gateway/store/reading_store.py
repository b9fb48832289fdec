"""
Reading Store

Durable persistence of enriched readings and their sync state in a local
SQLite database. Every write runs in its own transaction behind a single
writer lock, so a reading appears with all of its fields or not at all and
sync bookkeeping for a batch is all-or-nothing.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from edge_gateway.database.base import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    is_memory_url,
)
from edge_gateway.exceptions import StoreError
from edge_gateway.models.reading import SensorReading
from edge_gateway.processing.reading import ComputedMetrics, DataQuality, ProcessedReading
from edge_gateway.processing.trends import Trend
from edge_gateway.utils.logging import get_logger

logger = get_logger(__name__)


def _to_row(reading: ProcessedReading) -> SensorReading:
    return SensorReading(
        id=str(reading.id),
        sensor_id=reading.sensor_id,
        gateway_timestamp=reading.gateway_timestamp,
        sensor_timestamp=reading.sensor_timestamp,
        temperature=reading.temperature,
        humidity=reading.humidity,
        battery_level=reading.battery_level,
        rssi=reading.rssi,
        heat_index=reading.computed.heat_index,
        dew_point=reading.computed.dew_point,
        comfort_level=reading.computed.comfort_level,
        is_anomaly=reading.computed.is_anomaly,
        temperature_trend=reading.computed.temperature_trend.value,
        humidity_trend=reading.computed.humidity_trend.value,
        quality_score=reading.quality.score,
        quality_issues=list(reading.quality.issues),
        quality_corrected=reading.quality.corrected,
        synced=reading.synced,
        sync_attempts=reading.sync_attempts,
        last_sync_attempt=reading.last_sync_attempt,
    )


def _from_row(row: SensorReading) -> ProcessedReading:
    return ProcessedReading(
        id=uuid.UUID(row.id),
        sensor_id=row.sensor_id,
        temperature=row.temperature,
        humidity=row.humidity,
        gateway_timestamp=row.gateway_timestamp,
        sensor_timestamp=row.sensor_timestamp,
        battery_level=row.battery_level,
        rssi=row.rssi,
        computed=ComputedMetrics(
            heat_index=row.heat_index,
            dew_point=row.dew_point,
            comfort_level=row.comfort_level,
            is_anomaly=row.is_anomaly,
            temperature_trend=Trend(row.temperature_trend),
            humidity_trend=Trend(row.humidity_trend),
        ),
        quality=DataQuality(
            score=row.quality_score,
            issues=tuple(row.quality_issues or ()),
            corrected=row.quality_corrected,
        ),
        synced=row.synced,
        sync_attempts=row.sync_attempts,
        last_sync_attempt=row.last_sync_attempt,
    )


def _id_strings(ids: Iterable) -> List[str]:
    return sorted({str(reading_id) for reading_id in ids})


class ReadingStore:
    """
    Local store-and-forward buffer for enriched readings.

    Any database or filesystem failure is raised as StoreError.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)
        self._write_lock = asyncio.Lock()
        # In-memory databases share one connection; reads must not interleave with a write.
        self._shared_connection = is_memory_url(engine.url)

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "ReadingStore":
        return cls(create_engine(url, echo=echo))

    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        try:
            await init_db(self.engine)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"Failed to initialize reading store: {exc}") from exc
        logger.info("reading_store_initialized", url=str(self.engine.url))

    async def close(self) -> None:
        await close_db(self.engine)

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        yield session
            except (SQLAlchemyError, OSError) as exc:
                logger.error("store_write_failed", operation=operation, error=str(exc))
                raise StoreError(f"{operation} failed: {exc}") from exc

    @asynccontextmanager
    async def _read(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._write_lock if self._shared_connection else nullcontext():
            try:
                async with self._session_factory() as session:
                    yield session
            except (SQLAlchemyError, OSError) as exc:
                logger.error("store_read_failed", operation=operation, error=str(exc))
                raise StoreError(f"{operation} failed: {exc}") from exc

    # ── Writes ────────────────────────────────────────────────

    async def insert(self, reading: ProcessedReading) -> None:
        """
        Persist one reading atomically.

        Raises:
            StoreError: If the id already exists or the write fails
        """
        await self.insert_many([reading])

    async def insert_many(self, readings: Sequence[ProcessedReading]) -> None:
        """Persist several readings in one all-or-nothing transaction."""
        if not readings:
            return
        try:
            async with self._transaction("insert") as session:
                session.add_all([_to_row(reading) for reading in readings])
        except StoreError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise StoreError("Reading id already exists in store") from exc.__cause__
            raise

    async def mark_synced(
        self,
        ids: Iterable,
        attempted_at: Optional[datetime] = None,
    ) -> int:
        """
        Mark exactly the given pending readings as synced.

        The send that just completed also counts as an attempt. If any id is
        not currently pending nothing is changed.

        Raises:
            StoreError: If an id is unknown or already synced, or the write fails
        """
        id_list = _id_strings(ids)
        if not id_list:
            return 0
        attempted_at = attempted_at or datetime.now(timezone.utc)

        async with self._transaction("mark_synced") as session:
            result = await session.execute(
                update(SensorReading)
                .where(SensorReading.id.in_(id_list), SensorReading.synced.is_(False))
                .values(
                    synced=True,
                    sync_attempts=SensorReading.sync_attempts + 1,
                    last_sync_attempt=attempted_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(id_list):
                raise StoreError(
                    f"mark_synced expected {len(id_list)} pending readings, "
                    f"matched {result.rowcount}; batch left unchanged"
                )
        return len(id_list)

    async def record_attempt(self, ids: Iterable, timestamp: Optional[datetime] = None) -> int:
        """Count a failed send attempt against the given pending readings."""
        id_list = _id_strings(ids)
        if not id_list:
            return 0
        timestamp = timestamp or datetime.now(timezone.utc)

        async with self._transaction("record_attempt") as session:
            result = await session.execute(
                update(SensorReading)
                .where(SensorReading.id.in_(id_list), SensorReading.synced.is_(False))
                .values(
                    sync_attempts=SensorReading.sync_attempts + 1,
                    last_sync_attempt=timestamp,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    async def cleanup(
        self,
        older_than: timedelta,
        only_synced: bool = True,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete synced readings whose gateway timestamp is older than the cutoff.

        Unsynced readings are never deleted, whatever their age.

        Returns:
            Number of rows deleted
        """
        if not only_synced:
            raise ValueError("cleanup never deletes unsynced readings")
        cutoff = (now or datetime.now(timezone.utc)) - older_than

        async with self._transaction("cleanup") as session:
            result = await session.execute(
                delete(SensorReading)
                .where(SensorReading.synced.is_(True), SensorReading.gateway_timestamp < cutoff)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    # ── Reads ─────────────────────────────────────────────────

    async def select_pending(self, limit: int) -> List[ProcessedReading]:
        """Oldest-first unsynced readings, at most `limit` of them."""
        if limit <= 0:
            return []
        async with self._read("select_pending") as session:
            result = await session.execute(
                select(SensorReading)
                .where(SensorReading.synced.is_(False))
                .order_by(SensorReading.gateway_timestamp.asc(), SensorReading.id.asc())
                .limit(limit)
            )
            return [_from_row(row) for row in result.scalars().all()]

    async def count_pending(self) -> int:
        async with self._read("count_pending") as session:
            result = await session.execute(
                select(func.count()).select_from(SensorReading).where(SensorReading.synced.is_(False))
            )
            return int(result.scalar_one())

    async def count_total(self) -> int:
        async with self._read("count_total") as session:
            result = await session.execute(select(func.count()).select_from(SensorReading))
            return int(result.scalar_one())

    async def get(self, reading_id) -> Optional[ProcessedReading]:
        async with self._read("get") as session:
            row = await session.get(SensorReading, str(reading_id))
            return _from_row(row) if row is not None else None

    async def recent_readings(
        self,
        sensor_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[ProcessedReading]:
        """Newest-first readings, optionally for a single sensor."""
        stmt = select(SensorReading)
        if sensor_id is not None:
            stmt = stmt.where(SensorReading.sensor_id == sensor_id)
        stmt = stmt.order_by(
            SensorReading.gateway_timestamp.desc(), SensorReading.id.desc()
        ).limit(limit)

        async with self._read("recent_readings") as session:
            result = await session.execute(stmt)
            return [_from_row(row) for row in result.scalars().all()]

    async def recent_history(self, window: int) -> List[ProcessedReading]:
        """
        The latest `window` readings of every sensor, oldest first per sensor.

        Used to rebuild in-memory trend windows after a restart.
        """
        rank = func.row_number().over(
            partition_by=SensorReading.sensor_id,
            order_by=(SensorReading.gateway_timestamp.desc(), SensorReading.id.desc()),
        ).label("rank")
        ranked = select(SensorReading.id, rank).subquery()

        stmt = (
            select(SensorReading)
            .join(ranked, SensorReading.id == ranked.c.id)
            .where(ranked.c.rank <= window)
            .order_by(
                SensorReading.sensor_id,
                SensorReading.gateway_timestamp.asc(),
                SensorReading.id.asc(),
            )
        )
        async with self._read("recent_history") as session:
            result = await session.execute(stmt)
            return [_from_row(row) for row in result.scalars().all()]

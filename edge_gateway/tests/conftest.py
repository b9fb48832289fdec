"""
Shared fixtures for the edge gateway tests.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List

import httpx
import pytest

from edge_gateway.config.settings import (
    DatabaseSettings,
    RetentionSettings,
    Settings,
    SyncSettings,
)
from edge_gateway.processing.processor import EdgeProcessor
from edge_gateway.processing.reading import ProcessedReading
from edge_gateway.processing.trends import SensorHistory
from edge_gateway.store.reading_store import ReadingStore
from edge_gateway.sync.client import CloudClient

CLOUD_URL = "http://cloud.test/api/v1/gateway/ingest"
BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class CloudRecorder:
    """Stand-in aggregation service recording every request it receives."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"accepted": self.status_code < 300})

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def cloud() -> CloudRecorder:
    """Aggregation service accepting every batch."""
    return CloudRecorder()


@pytest.fixture
def processor() -> EdgeProcessor:
    return EdgeProcessor(gateway_id="gw-test")


@pytest.fixture
def reading_factory(processor) -> Callable[..., ProcessedReading]:
    """Build enriched readings with controlled gateway timestamps."""

    def _make(
        sensor_id: str = "sensor-1",
        temperature: float = 22.0,
        humidity: float = 50.0,
        offset_seconds: float = 0,
        **extra,
    ) -> ProcessedReading:
        raw = {
            "sensor_id": sensor_id,
            "temperature": temperature,
            "humidity": humidity,
            "battery_level": 90.0,
            "rssi": -60,
            **extra,
        }
        return processor.enrich(
            raw,
            SensorHistory(),
            gateway_timestamp=BASE_TIME + timedelta(seconds=offset_seconds),
        )

    return _make


@pytest.fixture
async def store(tmp_path):
    """Reading store backed by a temporary SQLite file."""
    store = ReadingStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'readings.db'}")
    await store.initialize()
    yield store
    await store.close()


def make_client(handler, **kwargs) -> CloudClient:
    kwargs.setdefault("connect_backoff", 0)
    return CloudClient(
        url=CLOUD_URL,
        api_key="test-key",
        gateway_id="gw-test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Gateway settings pointing at a temporary database and the mock cloud."""
    return Settings(
        gateway_id="gw-test",
        log_format="console",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"),
        sync=SyncSettings(
            cloud_url=CLOUD_URL,
            api_key="test-key",
            batch_size=5,
            interval_seconds=300,
            max_interval_seconds=3600,
            timeout_seconds=2,
            connect_backoff_seconds=0,
        ),
        retention=RetentionSettings(days=7),
    )

"""
Tests for the cloud client and the sync engine.
"""

import asyncio

import httpx
import pytest

from edge_gateway.exceptions import SyncTransportError
from edge_gateway.sync.engine import BatchStatistics, SyncEngine, SyncResult, SyncState

from .conftest import CloudRecorder, make_client


def make_engine(store, handler, **kwargs) -> SyncEngine:
    client_kwargs = kwargs.pop("client_kwargs", {})
    options = {
        "batch_size": 5,
        "interval_seconds": 10.0,
        "max_interval_seconds": 80.0,
        "timeout_seconds": 1.0,
    }
    options.update(kwargs)
    return SyncEngine(
        store,
        make_client(handler, **client_kwargs),
        gateway_id="gw-test",
        gateway_version="1.0.0",
        **options,
    )


async def fill(store, reading_factory, count, sensor_id="sensor-1"):
    readings = [
        reading_factory(sensor_id, temperature=20.0 + i * 0.5, offset_seconds=i)
        for i in range(count)
    ]
    await store.insert_many(readings)
    return readings


class TestCloudClient:
    """Tests for CloudClient class."""

    async def test_sends_authenticated_json(self, cloud):
        """Test bearer token and gateway headers are attached."""
        client = make_client(cloud)

        await client.send({"hello": "world"})

        request = cloud.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://cloud.test/api/v1/gateway/ingest"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["X-Gateway-ID"] == "gw-test"
        assert cloud.payloads == [{"hello": "world"}]

    async def test_non_2xx_raises_with_status(self):
        """Test a rejected batch surfaces the status code."""
        client = make_client(CloudRecorder(status_code=503))

        with pytest.raises(SyncTransportError) as exc_info:
            await client.send({})

        assert exc_info.value.status_code == 503

    async def test_connect_errors_retried_then_raised(self):
        """Test connection failures are retried a bounded number of times."""
        calls = []

        def refuse(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(refuse, connect_attempts=3)

        with pytest.raises(SyncTransportError):
            await client.send({})

        assert len(calls) == 3

    async def test_read_errors_not_retried(self):
        """Test failures after the request left the gateway are final."""
        calls = []

        def broken(request):
            calls.append(request)
            raise httpx.ReadError("connection reset", request=request)

        client = make_client(broken, connect_attempts=3)

        with pytest.raises(SyncTransportError):
            await client.send({})

        assert len(calls) == 1


class TestBatchStatistics:
    """Tests for batch aggregation."""

    def test_from_readings(self, reading_factory):
        """Test totals, anomalies, sensors and mean quality."""
        readings = [
            reading_factory("a"),
            reading_factory("b", battery_level=None),
            reading_factory("a", temperature=150.0),
        ]

        stats = BatchStatistics.from_readings(readings)

        assert stats.total_readings == 3
        assert stats.anomalies_detected == 1
        assert stats.sensors_count == 2
        expected = sum(r.quality.score for r in readings) / 3
        assert stats.avg_quality_score == pytest.approx(expected)

    def test_empty(self):
        """Test an empty batch has zeroed statistics."""
        assert BatchStatistics.from_readings([]).to_dict()["total_readings"] == 0


class TestSyncCycle:
    """Tests for SyncEngine.run_cycle."""

    async def test_success_marks_batch_synced(self, store, reading_factory, cloud):
        """Test a 2xx answer marks every sent reading synced."""
        readings = await fill(store, reading_factory, 3)
        engine = make_engine(store, cloud)

        outcome = await engine.run_cycle("manual")

        assert outcome.result == SyncResult.SUCCESS
        assert outcome.batch_size == 3
        assert await store.count_pending() == 0
        for reading in readings:
            loaded = await store.get(reading.id)
            assert loaded.synced
            assert loaded.sync_attempts == 1
        assert engine.state == SyncState.IDLE

    async def test_payload_shape(self, store, reading_factory, cloud):
        """Test the batch body carries gateway info, statistics and readings."""
        readings = await fill(store, reading_factory, 2)
        engine = make_engine(store, cloud)

        await engine.run_cycle()

        payload = cloud.payloads[0]
        assert payload["gateway_id"] == "gw-test"
        assert payload["gateway_version"] == "1.0.0"
        assert "sent_at" in payload
        assert payload["batch_stats"]["total_readings"] == 2
        assert [item["id"] for item in payload["data"]] == [str(r.id) for r in readings]
        item = payload["data"][0]
        assert set(item["computed"]) == {"heat_index", "dew_point", "comfort_level", "is_anomaly"}
        assert set(item["quality"]) == {"score", "issues"}

    async def test_batch_size_limits_selection(self, store, reading_factory, cloud):
        """Test only the oldest batch_size readings are sent per cycle."""
        readings = await fill(store, reading_factory, 7)
        engine = make_engine(store, cloud, batch_size=5)

        await engine.run_cycle()

        sent = [item["id"] for item in cloud.payloads[0]["data"]]
        assert sent == [str(r.id) for r in readings[:5]]
        assert await store.count_pending() == 2

    async def test_failure_keeps_readings_pending(self, store, reading_factory):
        """Test a rejected batch stays pending with its attempt counted."""
        readings = await fill(store, reading_factory, 3)
        engine = make_engine(store, CloudRecorder(status_code=500))

        outcome = await engine.run_cycle()

        assert outcome.result == SyncResult.FAILURE
        assert outcome.status_code == 500
        assert engine.consecutive_failures == 1
        assert await store.count_pending() == 3
        for reading in readings:
            loaded = await store.get(reading.id)
            assert not loaded.synced
            assert loaded.sync_attempts == 1
            assert loaded.last_sync_attempt is not None

    async def test_failed_batch_is_resent_first(self, store, reading_factory):
        """Test the oldest failed readings lead the next batch."""
        readings = await fill(store, reading_factory, 3)
        recorder = CloudRecorder(status_code=500)
        engine = make_engine(store, recorder)

        await engine.run_cycle()
        recorder.status_code = 200
        await engine.run_cycle()

        assert recorder.payloads[0]["data"] == recorder.payloads[1]["data"]
        assert await store.count_pending() == 0
        assert (await store.get(readings[0].id)).sync_attempts == 2

    async def test_empty_cycle_makes_no_call(self, store, cloud):
        """Test nothing is sent when nothing is pending."""
        engine = make_engine(store, cloud)
        engine.consecutive_failures = 2

        outcome = await engine.run_cycle()

        assert outcome.result == SyncResult.EMPTY
        assert cloud.requests == []
        assert engine.consecutive_failures == 2

    async def test_timeout_counts_as_failure(self, store, reading_factory):
        """Test a slow aggregation service fails the cycle."""
        await fill(store, reading_factory, 2)

        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        engine = make_engine(store, slow, timeout_seconds=0.05)

        outcome = await engine.run_cycle()

        assert outcome.result == SyncResult.FAILURE
        assert engine.consecutive_failures == 1
        assert await store.count_pending() == 2

    async def test_unreachable_service_is_contained(self, store, reading_factory):
        """Test connection failures never escape the engine."""
        await fill(store, reading_factory, 1)

        def refuse(request):
            raise httpx.ConnectError("no route to host", request=request)

        engine = make_engine(store, refuse, client_kwargs={"connect_attempts": 2})

        outcome = await engine.run_cycle()

        assert outcome.result == SyncResult.FAILURE
        assert engine.last_outcome is outcome

    async def test_overlapping_cycle_skipped(self, store, reading_factory):
        """Test a trigger arriving during a cycle does not start another."""
        await fill(store, reading_factory, 2)
        release = asyncio.Event()
        calls = []

        async def gated(request):
            calls.append(request)
            await release.wait()
            return httpx.Response(200)

        engine = make_engine(store, gated)
        first = asyncio.create_task(engine.run_cycle("periodic"))
        while engine.state != SyncState.SENDING:
            await asyncio.sleep(0.001)

        second = await engine.run_cycle("threshold")
        release.set()
        outcome = await first

        assert second.result == SyncResult.SKIPPED
        assert outcome.result == SyncResult.SUCCESS
        assert len(calls) == 1

    async def test_cancellation_records_attempt(self, store, reading_factory):
        """Test a cancelled send is counted as an attempt and re-raised."""
        readings = await fill(store, reading_factory, 1)

        async def hang(request):
            await asyncio.sleep(10)
            return httpx.Response(200)

        engine = make_engine(store, hang, timeout_seconds=30.0)
        task = asyncio.create_task(engine.run_cycle())
        while engine.state != SyncState.SENDING:
            await asyncio.sleep(0.001)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        loaded = await store.get(readings[0].id)
        assert not loaded.synced
        assert loaded.sync_attempts == 1
        assert engine.state == SyncState.IDLE


class TestBackoff:
    """Tests for interval widening and trigger suppression."""

    async def test_backoff_widens_and_resets(self, store, reading_factory):
        """Test each failure doubles the interval up to the ceiling, success resets it."""
        await fill(store, reading_factory, 1)
        recorder = CloudRecorder(status_code=502)
        engine = make_engine(store, recorder, interval_seconds=10.0, max_interval_seconds=80.0)

        assert engine.next_interval() == 10.0
        intervals = []
        for _ in range(5):
            await engine.run_cycle()
            intervals.append(engine.next_interval())

        assert intervals == [20.0, 40.0, 80.0, 80.0, 80.0]

        recorder.status_code = 200
        await engine.run_cycle()

        assert engine.consecutive_failures == 0
        assert engine.next_interval() == 10.0

    async def test_threshold_trigger(self, store, cloud):
        """Test the threshold fires at batch_size and is suppressed while failing."""
        engine = make_engine(store, cloud, batch_size=5)

        assert not engine.should_trigger(4)
        assert engine.should_trigger(5)

        engine.consecutive_failures = 1
        assert not engine.should_trigger(50)

    async def test_run_forever_stops(self, store, cloud):
        """Test the periodic loop exits promptly when stopped."""
        engine = make_engine(store, cloud, interval_seconds=0.01, max_interval_seconds=0.01)
        stop = asyncio.Event()

        task = asyncio.create_task(engine.run_forever(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert engine.last_outcome.result == SyncResult.EMPTY

"""
Tests for trend classification and anomaly detection.
"""

import asyncio

import pytest

from edge_gateway.processing.trends import (
    REASON_HUMIDITY_JUMP,
    REASON_STUCK_SENSOR,
    REASON_TEMPERATURE_BOUNDS,
    REASON_TEMPERATURE_JUMP,
    AnomalyPolicy,
    HistoryTable,
    SensorHistory,
    Trend,
    TrendDetector,
)


@pytest.fixture
def detector():
    return TrendDetector()


def feed(detector, history, temperatures, humidity=50.0):
    for temperature in temperatures:
        detector.classify(history, temperature, humidity)


class TestSensorHistory:
    """Tests for the bounded sensor window."""

    def test_capacity_is_bounded(self):
        """Test oldest samples are evicted past capacity."""
        history = SensorHistory(capacity=3)
        for value in range(5):
            history.push(float(value), 50.0)

        assert len(history) == 3
        assert [s.temperature for s in history.samples()] == [2.0, 3.0, 4.0]
        assert history.latest().temperature == 4.0

    def test_tail(self):
        """Test tail returns the newest samples oldest first."""
        history = SensorHistory(capacity=5)
        for value in range(4):
            history.push(float(value), 50.0)

        assert [s.temperature for s in history.tail(2)] == [2.0, 3.0]
        assert history.tail(0) == []


class TestTrendClassification:
    """Tests for trend direction."""

    def test_rising_against_latest_sample(self, detector):
        """Test a jump from 22 to 25 is rising."""
        history = SensorHistory()
        feed(detector, history, [20.0, 21.0, 22.0])

        result = detector.classify(history, 25.0, 50.0, record=False)

        assert result.temperature_trend == Trend.RISING
        assert result.humidity_trend == Trend.STABLE

    def test_equal_value_is_stable(self, detector):
        """Test repeating the latest value is stable."""
        history = SensorHistory()
        feed(detector, history, [20.0, 21.0, 22.0])

        result = detector.classify(history, 22.0, 50.0)

        assert result.temperature_trend == Trend.STABLE

    def test_falling(self, detector):
        """Test a drop is falling."""
        history = SensorHistory()
        feed(detector, history, [22.0])

        assert detector.classify(history, 21.0, 45.0).temperature_trend == Trend.FALLING

    def test_within_epsilon_is_stable(self):
        """Test sub-epsilon changes are treated as noise."""
        detector = TrendDetector(epsilon=0.5)
        history = SensorHistory()
        feed(detector, history, [22.0])

        assert detector.classify(history, 22.4, 50.0).temperature_trend == Trend.STABLE

    def test_first_reading_is_stable(self, detector):
        """Test the first reading of a sensor has no direction."""
        result = detector.classify(SensorHistory(), 22.0, 50.0)

        assert result.temperature_trend == Trend.STABLE
        assert result.humidity_trend == Trend.STABLE
        assert not result.is_anomaly

    def test_record_false_leaves_window(self, detector):
        """Test classification without recording does not change the window."""
        history = SensorHistory()
        detector.classify(history, 22.0, 50.0, record=False)

        assert len(history) == 0


class TestAnomalyDetection:
    """Tests for anomaly flags."""

    def test_out_of_bounds_on_first_reading(self, detector):
        """Test bound checks apply even without history."""
        result = detector.classify(SensorHistory(), -55.0, 50.0)

        assert result.is_anomaly
        assert result.reasons == (REASON_TEMPERATURE_BOUNDS,)

    def test_bounds_use_raw_value(self, detector):
        """Test a clamped value is still flagged from its raw value."""
        result = detector.classify(SensorHistory(), 85.0, 50.0, raw_temperature=150.0)

        assert result.is_anomaly
        assert REASON_TEMPERATURE_BOUNDS in result.reasons

    def test_temperature_jump(self, detector):
        """Test large deltas between consecutive readings are anomalies."""
        history = SensorHistory()
        feed(detector, history, [20.0])

        result = detector.classify(history, 35.0, 50.0)

        assert result.is_anomaly
        assert REASON_TEMPERATURE_JUMP in result.reasons

    def test_humidity_jump(self, detector):
        """Test humidity deltas beyond the limit are anomalies."""
        history = SensorHistory()
        detector.classify(history, 20.0, 30.0)

        result = detector.classify(history, 20.5, 70.0)

        assert REASON_HUMIDITY_JUMP in result.reasons

    def test_normal_change_is_not_anomaly(self, detector):
        """Test moderate changes pass."""
        history = SensorHistory()
        feed(detector, history, [20.0, 21.0])

        assert not detector.classify(history, 23.0, 55.0).is_anomaly

    def test_stuck_sensor(self, detector):
        """Test identical values across the stuck window are anomalous."""
        history = SensorHistory()
        feed(detector, history, [21.5] * 4, humidity=48.0)

        result = detector.classify(history, 21.5, 48.0)

        assert result.is_anomaly
        assert result.reasons == (REASON_STUCK_SENSOR,)

    def test_stuck_needs_full_window(self, detector):
        """Test repeats shorter than the window are not flagged."""
        history = SensorHistory()
        feed(detector, history, [21.5] * 2, humidity=48.0)

        assert not detector.classify(history, 21.5, 48.0).is_anomaly

    def test_stuck_detection_can_be_disabled(self):
        """Test the stuck heuristic can be turned off."""
        detector = TrendDetector(AnomalyPolicy(detect_stuck_sensor=False))
        history = SensorHistory()
        feed(detector, history, [21.5] * 6, humidity=48.0)

        assert not detector.classify(history, 21.5, 48.0).is_anomaly


class TestHistoryTable:
    """Tests for per-sensor exclusive access."""

    async def test_same_sensor_is_serialized(self):
        """Test a second holder of the same sensor waits for the first."""
        table = HistoryTable()
        entered = asyncio.Event()

        async def second_holder():
            async with table.acquire("sensor-a"):
                entered.set()

        async with table.acquire("sensor-a"):
            task = asyncio.create_task(second_holder())
            await asyncio.sleep(0.01)
            assert not entered.is_set()

        await task
        assert entered.is_set()

    async def test_distinct_sensors_do_not_contend(self):
        """Test different sensors can be held concurrently."""
        table = HistoryTable()

        async def hold_other():
            async with table.acquire("sensor-b") as history:
                history.push(20.0, 50.0)

        async with table.acquire("sensor-a"):
            await asyncio.wait_for(hold_other(), timeout=1)

        assert len(table.peek("sensor-b")) == 1
        assert table.peek("sensor-a") == []

    def test_load_replaces_window(self):
        """Test load restores a window oldest first."""
        table = HistoryTable(capacity=3)
        table.load("sensor-a", [(20.0, 50.0), (21.0, 51.0), (22.0, 52.0), (23.0, 53.0)])

        assert [s.temperature for s in table.peek("sensor-a")] == [21.0, 22.0, 23.0]
        assert len(table) == 1

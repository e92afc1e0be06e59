"""Tests for the session statistics aggregator."""

from datetime import datetime

import pytest

from bytestream.mocks import MockClock
from bytestream.stats import StatisticsAggregator


class TestStatisticsAggregator:
    def test_counters_accumulate(self):
        stats = StatisticsAggregator(MockClock())
        stats.record_received(10)
        stats.record_received(5)
        stats.record_sent(3)
        stats.record_message()
        stats.record_message()

        assert stats.bytes_received == 15
        assert stats.bytes_sent == 3
        assert stats.messages_received == 2

    def test_session_start_captured_once(self):
        clock = MockClock(start_time=datetime(2025, 6, 1, 12, 0, 0))
        stats = StatisticsAggregator(clock)
        clock.advance(120)
        assert stats.session_start == datetime(2025, 6, 1, 12, 0, 0)

    def test_rates_use_one_second_floor(self):
        clock = MockClock()
        stats = StatisticsAggregator(clock)
        stats.record_received(100)

        # Zero uptime would divide by zero; the floor keeps the rate finite.
        assert stats.uptime_seconds() == 0.0
        assert stats.rx_rate() == 100.0

        clock.advance(0.5)
        assert stats.rx_rate() == 100.0

    def test_rates_over_uptime(self):
        clock = MockClock()
        stats = StatisticsAggregator(clock)
        stats.record_received(1000)
        stats.record_sent(50)
        clock.advance(10)

        snapshot = stats.snapshot()
        assert snapshot.uptime_seconds == pytest.approx(10.0)
        assert snapshot.rx_rate == pytest.approx(100.0)
        assert snapshot.tx_rate == pytest.approx(5.0)

    def test_negative_counts_rejected(self):
        stats = StatisticsAggregator(MockClock())
        with pytest.raises(ValueError):
            stats.record_received(-1)
        with pytest.raises(ValueError):
            stats.record_sent(-1)

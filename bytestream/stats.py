"""
Traffic statistics for a console session.

Counters are cumulative for the whole session: they survive reconnects
and are never reset. Rates and uptime are derived on demand.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .interfaces import ClockInterface
from .models import StatsSnapshot


class StatisticsAggregator:
    """
    Accumulates byte and message counters.

    Features:
    - Session start captured once, at construction
    - Received bytes counted per raw chunk, independent of line framing
    - Uptime and rates computed from the clock, never stored
    """

    def __init__(self, clock: ClockInterface):
        self._clock = clock
        self._session_start: datetime = clock.now()
        self._start_mono: float = clock.monotonic()
        self._bytes_received = 0
        self._bytes_sent = 0
        self._messages_received = 0

    @property
    def bytes_received(self) -> int:
        return self._bytes_received

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    @property
    def messages_received(self) -> int:
        return self._messages_received

    @property
    def session_start(self) -> datetime:
        return self._session_start

    def record_received(self, count: int) -> None:
        """Record a raw inbound chunk."""
        if count < 0:
            raise ValueError("Byte count cannot be negative")
        self._bytes_received += count

    def record_sent(self, count: int) -> None:
        """Record bytes acknowledged by a write."""
        if count < 0:
            raise ValueError("Byte count cannot be negative")
        self._bytes_sent += count

    def record_message(self) -> None:
        """Record one framed inbound line."""
        self._messages_received += 1

    def uptime_seconds(self, now: Optional[float] = None) -> float:
        if now is None:
            now = self._clock.monotonic()
        return max(0.0, now - self._start_mono)

    def rx_rate(self, now: Optional[float] = None) -> float:
        """Received bytes per second over the session."""
        return self._bytes_received / max(1.0, self.uptime_seconds(now))

    def tx_rate(self, now: Optional[float] = None) -> float:
        """Sent bytes per second over the session."""
        return self._bytes_sent / max(1.0, self.uptime_seconds(now))

    def snapshot(self) -> StatsSnapshot:
        now = self._clock.monotonic()
        return StatsSnapshot(
            bytes_received=self._bytes_received,
            bytes_sent=self._bytes_sent,
            messages_received=self._messages_received,
            session_start=self._session_start,
            uptime_seconds=self.uptime_seconds(now),
            rx_rate=self.rx_rate(now),
            tx_rate=self.tx_rate(now),
        )

"""
Event sinks: where a session's feed goes.

- QueueSink: bounded asyncio.Queue for a renderer running as another task
- CallbackSink: adapts a plain function
- ConsoleSink: line-oriented text rendering to a stream
"""

from __future__ import annotations

import asyncio
import math
import sys
from datetime import datetime
from typing import Callable, Optional, TextIO

from .framing import format_hex
from .interfaces import ConnectionState, EventSinkInterface
from .models import EventKind, SessionSnapshot, Severity, SinkEvent


class QueueSink(EventSinkInterface):
    """Non-blocking enqueue; when full, the oldest event is dropped."""

    def __init__(self, queue: Optional[asyncio.Queue] = None, maxsize: int = 1000):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, event: SinkEvent) -> None:
        try:
            self.queue.put_nowait(event)
            return
        except asyncio.QueueFull:
            pass
        # Drop oldest to make room
        try:
            self.queue.get_nowait()
            self.dropped += 1
        except asyncio.QueueEmpty:
            pass
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1


class CallbackSink(EventSinkInterface):
    def __init__(self, callback: Callable[[SinkEvent], None]):
        self._callback = callback

    def publish(self, event: SinkEvent) -> None:
        self._callback(event)


_SEVERITY_MARKS = {
    Severity.INFO: "*",
    Severity.SUCCESS: "+",
    Severity.WARNING: "!",
    Severity.ERROR: "x",
}

_STATE_LABELS = {
    ConnectionState.DISCONNECTED: "Disconnected",
    ConnectionState.CONNECTING: "Connecting",
    ConnectionState.CONNECTED: "Connected",
    ConnectionState.RECONNECTING: "Reconnecting",
    ConnectionState.PERMANENTLY_FAILED: "Failed",
}


def format_timestamp(ts: datetime) -> str:
    """HH:MM:SS.mmm"""
    return ts.strftime("%H:%M:%S.") + f"{ts.microsecond // 1000:03d}"


def format_uptime(seconds: float) -> str:
    """HH:MM:SS"""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_state(snapshot: SessionSnapshot) -> str:
    if snapshot.state is ConnectionState.RECONNECTING and snapshot.reconnect_remaining is not None:
        remaining = int(math.ceil(snapshot.reconnect_remaining))
        return f"Reconnecting... #{snapshot.attempts} ({remaining}s)"
    return _STATE_LABELS[snapshot.state]


def format_status(snapshot: SessionSnapshot) -> str:
    """One-line status summary with statistics and settings."""
    stats = snapshot.stats
    config = snapshot.config
    parts = [
        f"{snapshot.port}@{snapshot.baud}",
        format_state(snapshot),
        f"up {format_uptime(stats.uptime_seconds)}",
        f"RX {stats.bytes_received:,} B ({stats.rx_rate:.1f} B/s)",
        f"TX {stats.bytes_sent:,} B ({stats.tx_rate:.1f} B/s)",
        f"msgs {stats.messages_received:,}",
        f"log {'PAUSED' if config.paused else 'ACTIVE'}",
        f"hex {'ON' if config.show_hex else 'OFF'}",
        f"echo {'ON' if config.echo else 'OFF'}",
        f"le {config.line_ending.value}",
        f"auto {'ON' if config.auto_reconnect else 'OFF'}",
    ]
    if config.filter.enabled:
        parts.append(f'filter "{config.filter.text}"')
    return " | ".join(parts)


class ConsoleSink(EventSinkInterface):
    """
    Plain-text renderer.

    Inbound lines are marked with an arrow pointing left, echoed sends
    with one pointing right. Stats ticks are not printed; the latest
    snapshot is kept for status().
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        hex_width: Optional[int] = 32,
        show_system: bool = True,
    ):
        self._stream = stream or sys.stdout
        self._hex_width = hex_width
        self._show_system = show_system
        self.last_snapshot: Optional[SessionSnapshot] = None

    def publish(self, event: SinkEvent) -> None:
        if event.kind is EventKind.STATS_TICK:
            self.last_snapshot = event.payload
            return
        line = self.render(event)
        if line is not None:
            self.write(line)

    def render(self, event: SinkEvent) -> Optional[str]:
        ts = format_timestamp(event.timestamp)
        if event.kind is EventKind.MESSAGE:
            arrow = "→" if event.data.get("direction") == "out" else "←"
            return f"[{ts}] {arrow} {event.payload}"
        if event.kind is EventKind.HEX:
            return f"[{ts}] HEX {format_hex(event.payload, self._hex_width)}"
        if not self._show_system:
            return None
        mark = _SEVERITY_MARKS[event.severity]
        return f"[{ts}] [{mark}] {event.payload}"

    def write(self, text: str) -> None:
        self._stream.write(text + "\n")
        self._stream.flush()

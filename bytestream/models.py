"""
Value types shared by the session and its consumers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .interfaces import ConnectionState


class Severity(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class EventKind(Enum):
    MESSAGE = "message"
    HEX = "hex"
    STATE_CHANGE = "stateChange"
    STATS_TICK = "statsTick"
    NOTICE = "notice"


class LineEnding(Enum):
    """Terminator appended to caller-initiated sends."""
    LF = "LF"
    CR = "CR"
    CRLF = "CRLF"

    @property
    def sequence(self) -> bytes:
        return _LINE_ENDING_BYTES[self]

    def next(self) -> "LineEnding":
        order = list(LineEnding)
        return order[(order.index(self) + 1) % len(order)]

    @classmethod
    def parse(cls, value: str) -> "LineEnding":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown line ending: {value!r} (expected LF, CR or CRLF)")


_LINE_ENDING_BYTES = {
    LineEnding.LF: b"\n",
    LineEnding.CR: b"\r",
    LineEnding.CRLF: b"\r\n",
}


@dataclass(frozen=True)
class FilterConfig:
    """Filter text and whether it is applied.

    ``enabled`` always follows the text given at the last update, so an
    empty update disables filtering even if text was set before.
    """
    text: str = ""
    enabled: bool = False

    @classmethod
    def from_text(cls, text: Optional[str]) -> "FilterConfig":
        text = text or ""
        return cls(text=text, enabled=bool(text))


@dataclass(frozen=True)
class SessionConfig:
    """Every runtime toggle of a session, in one place."""
    auto_reconnect: bool = True
    paused: bool = False
    echo: bool = False
    show_hex: bool = True
    show_stats: bool = True
    line_ending: LineEnding = LineEnding.LF
    filter: FilterConfig = field(default_factory=FilterConfig)

    def with_changes(self, **changes: Any) -> "SessionConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class ReconnectAttempt:
    """Bookkeeping for the pending reconnect while in RECONNECTING."""
    ordinal: int
    delay: float
    started: float

    def remaining(self, now: float) -> float:
        return max(0.0, self.delay - (now - self.started))


@dataclass(frozen=True)
class StatsSnapshot:
    bytes_received: int
    bytes_sent: int
    messages_received: int
    session_start: datetime
    uptime_seconds: float
    rx_rate: float
    tx_rate: float


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything a renderer needs, captured at one instant."""
    port: str
    baud: int
    state: ConnectionState
    config: SessionConfig
    stats: StatsSnapshot
    attempts: int
    reconnect: Optional[ReconnectAttempt]
    reconnect_remaining: Optional[float]
    handle_open: bool


@dataclass(frozen=True)
class SinkEvent:
    """One item of the session's published feed."""
    kind: EventKind
    payload: Any
    severity: Severity
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)

"""
ByteStream - Serial Console

An interactive serial console with automatic reconnection, line framing,
filtering and live statistics.
"""

__version__ = "0.1.0"

from .interfaces import (
    ConnectionState,
    PortInfo,
    TransportEvent,
    TransportEventKind,
    TransportInterface,
    ClockInterface,
    EventSinkInterface,
)

from .models import (
    EventKind,
    FilterConfig,
    LineEnding,
    SessionConfig,
    SessionSnapshot,
    Severity,
    SinkEvent,
    StatsSnapshot,
)

from .errors import (
    BytestreamError,
    ConfigError,
    ConnectTimeout,
    NotConnected,
    PermanentTransportError,
    SessionClosed,
    SessionStateError,
    TransientTransportError,
    TransportError,
    WriteFailure,
)

from .backoff import BackoffScheduler
from .session import Session
from .sinks import CallbackSink, ConsoleSink, QueueSink
from .config import ConsoleSettings, load_settings

__all__ = [
    "ConnectionState",
    "PortInfo",
    "TransportEvent",
    "TransportEventKind",
    "TransportInterface",
    "ClockInterface",
    "EventSinkInterface",
    "EventKind",
    "FilterConfig",
    "LineEnding",
    "SessionConfig",
    "SessionSnapshot",
    "Severity",
    "SinkEvent",
    "StatsSnapshot",
    "BytestreamError",
    "ConfigError",
    "ConnectTimeout",
    "NotConnected",
    "PermanentTransportError",
    "SessionClosed",
    "SessionStateError",
    "TransientTransportError",
    "TransportError",
    "WriteFailure",
    "BackoffScheduler",
    "Session",
    "CallbackSink",
    "ConsoleSink",
    "QueueSink",
    "ConsoleSettings",
    "load_settings",
]

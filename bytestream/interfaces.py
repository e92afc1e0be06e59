"""
Interfaces for the ByteStream serial console.

Abstract base classes that define contracts for the pluggable pieces the
session depends on. This enables dependency injection and mock-based
testing without hardware.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SinkEvent


class ConnectionState(Enum):
    """Session connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    PERMANENTLY_FAILED = "permanently_failed"


@dataclass
class PortInfo:
    """Information about a serial port."""
    device: str
    description: str
    hwid: str
    manufacturer: str = ""
    serial_number: str = ""
    vid: Optional[int] = None
    pid: Optional[int] = None


class TransportEventKind(Enum):
    DATA = "data"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class TransportEvent:
    """One notification from a transport handle."""
    kind: TransportEventKind
    data: bytes = b""
    message: str = ""

    @classmethod
    def received(cls, data: bytes) -> "TransportEvent":
        return cls(TransportEventKind.DATA, data=data)

    @classmethod
    def error(cls, message: str) -> "TransportEvent":
        return cls(TransportEventKind.ERROR, message=message)

    @classmethod
    def closed(cls) -> "TransportEvent":
        return cls(TransportEventKind.CLOSED)


TransportListener = Callable[[TransportEvent], None]
Unsubscribe = Callable[[], None]


class TransportInterface(ABC):
    """
    Abstract interface for one serial link handle.

    A handle is opened at most once. Events are delivered on the event
    loop thread, in arrival order, to every subscribed listener.

    Implementations:
    - PySerialTransport: Wraps pyserial for actual hardware
    - MockTransport: For unit testing without hardware
    """

    @abstractmethod
    async def open(self, port: str, baud: int) -> None:
        """Open the link. Raises TransportError on failure."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the link. Safe to call more than once."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if the link is currently open."""
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write data. Returns bytes written, raises TransportError."""
        pass

    @abstractmethod
    def subscribe(self, listener: TransportListener) -> Unsubscribe:
        """Register a listener. The returned callable removes it."""
        pass


TransportFactory = Callable[[], TransportInterface]


class ClockInterface(ABC):
    """
    Abstract interface for time operations.

    Enables deterministic testing of time-dependent logic.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get current datetime."""
        pass

    @abstractmethod
    def monotonic(self) -> float:
        """Get a monotonic timestamp in seconds."""
        pass

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for the given duration."""
        pass


class EventSinkInterface(ABC):
    """
    Consumer of the session's event feed.

    Called on the event loop thread; implementations must not block.
    """

    @abstractmethod
    def publish(self, event: "SinkEvent") -> None:
        """Handle one event."""
        pass

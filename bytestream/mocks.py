"""
Mock implementations for testing.

These classes implement the abstract interfaces with in-memory behavior
suitable for unit testing without hardware.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Deque, List, Optional, Tuple

from .errors import TransportError
from .interfaces import (
    ClockInterface,
    ConnectionState,
    EventSinkInterface,
    TransportEvent,
    TransportInterface,
    TransportListener,
    Unsubscribe,
)
from .models import EventKind, SinkEvent

# Factory outcome: open() never completes.
HANG = object()


class MockTransport(TransportInterface):
    """
    Mock serial handle for testing.

    Test code injects inbound traffic with inject_line()/inject_bytes(),
    simulates link loss with inject_error()/inject_close(), and reads
    what the session wrote with get_sent().
    """

    def __init__(
        self,
        fail_with: Optional[BaseException] = None,
        hang_on_open: bool = False,
        write_error: Optional[BaseException] = None,
        leaky: bool = False,
    ):
        self._fail_with = fail_with
        self._hang_on_open = hang_on_open
        self._write_error = write_error
        self._leaky = leaky

        self._is_open = False
        self._port = ""
        self._baud = 0
        self._listeners: List[TransportListener] = []
        self._tx_buffer: List[bytes] = []
        self.open_calls = 0
        self.close_calls = 0

    async def open(self, port: str, baud: int) -> None:
        self.open_calls += 1
        self._port = port
        self._baud = baud
        if self._hang_on_open:
            await asyncio.get_running_loop().create_future()
        if self._fail_with is not None:
            raise self._fail_with
        self._is_open = True

    def close(self) -> None:
        self.close_calls += 1
        self._is_open = False

    def is_open(self) -> bool:
        return self._is_open

    def write(self, data: bytes) -> int:
        if not self._is_open:
            raise TransportError("Port is not open")
        if self._write_error is not None:
            raise self._write_error
        self._tx_buffer.append(bytes(data))
        return len(data)

    def subscribe(self, listener: TransportListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            # A leaky handle keeps delivering after unsubscribe, like a
            # driver callback that was already in flight.
            if not self._leaky and listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Test helper methods

    @property
    def port(self) -> str:
        return self._port

    @property
    def baud(self) -> int:
        return self._baud

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def inject_bytes(self, data: bytes) -> None:
        """Deliver a raw inbound chunk to the listeners."""
        self._dispatch(TransportEvent.received(data))

    def inject_line(self, line: str) -> None:
        """Deliver one newline-terminated line."""
        self.inject_bytes((line + "\n").encode())

    def inject_error(self, message: str) -> None:
        self._dispatch(TransportEvent.error(message))

    def inject_close(self) -> None:
        """Simulate the device going away."""
        self._is_open = False
        self._dispatch(TransportEvent.closed())

    def get_sent(self) -> List[bytes]:
        """Get all data sent via write()."""
        return self._tx_buffer.copy()

    def clear_sent(self) -> None:
        self._tx_buffer.clear()

    def set_write_error(self, error: Optional[BaseException]) -> None:
        self._write_error = error

    def _dispatch(self, event: TransportEvent) -> None:
        for listener in list(self._listeners):
            listener(event)


class MockTransportFactory:
    """
    Produces a fresh MockTransport per connect attempt.

    ``outcomes`` scripts the open() result of successive handles: None
    succeeds, an exception instance fails with it, HANG never completes.
    Once the script runs out every open succeeds.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None, **transport_kwargs: Any):
        self._outcomes: Deque[Any] = deque(outcomes or [])
        self._transport_kwargs = transport_kwargs
        self.created: List[MockTransport] = []

    def __call__(self) -> MockTransport:
        outcome = self._outcomes.popleft() if self._outcomes else None
        if outcome is HANG:
            transport = MockTransport(hang_on_open=True, **self._transport_kwargs)
        else:
            transport = MockTransport(fail_with=outcome, **self._transport_kwargs)
        self.created.append(transport)
        return transport

    def push(self, *outcomes: Any) -> None:
        self._outcomes.extend(outcomes)

    @property
    def latest(self) -> MockTransport:
        return self.created[-1]


class MockClock(ClockInterface):
    """
    Controllable clock for testing.

    With ``auto_advance`` (the default) sleep() returns at once, advancing
    time by the requested amount. Without it, sleepers stay suspended
    until advance() moves time past their deadline.
    """

    def __init__(self, start_time: Optional[datetime] = None, auto_advance: bool = True):
        self._current_time = start_time or datetime(2025, 1, 1, 0, 0, 0)
        self._mono = 0.0
        self._auto_advance = auto_advance
        self._sleep_calls: List[float] = []
        self._sleepers: List[Tuple[float, asyncio.Future]] = []

    def now(self) -> datetime:
        return self._current_time

    def monotonic(self) -> float:
        return self._mono

    async def sleep(self, seconds: float) -> None:
        self._sleep_calls.append(seconds)
        if self._auto_advance:
            self.advance(seconds)
            await asyncio.sleep(0)
            return

        entry = (self._mono + seconds, asyncio.get_running_loop().create_future())
        self._sleepers.append(entry)
        try:
            await entry[1]
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    # Test helper methods

    def advance(self, seconds: float) -> None:
        """Advance time and wake sleepers whose deadline has passed."""
        self._current_time += timedelta(seconds=seconds)
        self._mono += seconds
        for deadline, future in list(self._sleepers):
            if deadline <= self._mono and not future.done():
                future.set_result(None)

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    @property
    def pending_sleeps(self) -> int:
        return sum(1 for _, future in self._sleepers if not future.done())

    def get_sleep_calls(self) -> List[float]:
        """Get list of all sleep() calls made."""
        return self._sleep_calls.copy()

    def clear_sleep_calls(self) -> None:
        self._sleep_calls.clear()


class RecordingSink(EventSinkInterface):
    """
    Sink that keeps every event for assertions.
    """

    def __init__(self) -> None:
        self.events: List[SinkEvent] = []

    def publish(self, event: SinkEvent) -> None:
        self.events.append(event)

    # Test helper methods

    def of_kind(self, kind: EventKind) -> List[SinkEvent]:
        return [e for e in self.events if e.kind is kind]

    def messages(self) -> List[str]:
        return [e.payload for e in self.of_kind(EventKind.MESSAGE)]

    def hex_frames(self) -> List[bytes]:
        return [e.payload for e in self.of_kind(EventKind.HEX)]

    def notices(self) -> List[str]:
        return [e.payload for e in self.of_kind(EventKind.NOTICE)]

    def states(self) -> List[ConnectionState]:
        return [ConnectionState(e.data["state"]) for e in self.of_kind(EventKind.STATE_CHANGE)]

    def clear(self) -> None:
        self.events.clear()

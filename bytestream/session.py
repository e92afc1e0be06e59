"""
Console Session for ByteStream.

Owns the serial link for one port: opens it, frames and counts inbound
data, applies pause/filter/hex settings, reconnects with exponential
backoff when the link drops, and publishes everything that happens as
SinkEvents.

All work runs on one asyncio event loop. Transport callbacks, caller
commands and timers never run concurrently, so there is no locking; the
only suspension points are the bounded open() and the backoff sleep.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Optional, Union

from .backoff import BackoffScheduler
from .classifier import classify
from .errors import (
    ConnectTimeout,
    NotConnected,
    PermanentTransportError,
    SessionClosed,
    SessionStateError,
    WriteFailure,
)
from .framing import LineFramer
from .interfaces import (
    ClockInterface,
    ConnectionState,
    EventSinkInterface,
    TransportEvent,
    TransportEventKind,
    TransportFactory,
    TransportInterface,
    Unsubscribe,
)
from .message_filter import MessageFilter
from .models import (
    EventKind,
    FilterConfig,
    LineEnding,
    ReconnectAttempt,
    SessionConfig,
    SessionSnapshot,
    Severity,
    SinkEvent,
)
from .stats import StatisticsAggregator

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_STATS_INTERVAL = 1.0

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class Session:
    """
    Connection lifecycle and event feed for one serial port.

    State machine:
    - DISCONNECTED -> CONNECTING on start() or an explicit reconnect
    - CONNECTING -> CONNECTED when open() succeeds within the timeout
    - CONNECTING -> RECONNECTING on a transient open failure (auto-reconnect on)
    - CONNECTING -> PERMANENTLY_FAILED on a permanent open failure
    - CONNECTED -> RECONNECTING / DISCONNECTED when the link drops
    - RECONNECTING -> CONNECTING when the backoff delay elapses
    - any state -> DISCONNECTED on shutdown()

    Only one transport handle exists at a time. Every handle gets a new
    generation number; its listener is bound to that number and anything
    delivered after the handle was replaced is dropped.
    """

    def __init__(
        self,
        port: str,
        baud: int,
        transport_factory: TransportFactory,
        sink: EventSinkInterface,
        clock: Optional[ClockInterface] = None,
        config: Optional[SessionConfig] = None,
        backoff: Optional[BackoffScheduler] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        stats_interval: Optional[float] = DEFAULT_STATS_INTERVAL,
    ):
        if clock is None:
            from .implementations import RealClock
            clock = RealClock()

        self._port = port
        self._baud = baud
        self._factory = transport_factory
        self._sink = sink
        self._clock = clock
        self._config = config or SessionConfig()
        self._backoff = backoff or BackoffScheduler()
        self._connect_timeout = connect_timeout
        self._stats_interval = stats_interval

        self._stats = StatisticsAggregator(clock)
        self._filter = MessageFilter(self._config.filter)
        self._framer = LineFramer()

        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[TransportInterface] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._generation = 0

        self._attempts = 0
        self._reconnect: Optional[ReconnectAttempt] = None
        self._connections = 0
        self._task: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None

        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def port(self) -> str:
        return self._port

    @property
    def baud(self) -> int:
        return self._baud

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def attempts(self) -> int:
        """Reconnect attempts since the last successful open."""
        return self._attempts

    @property
    def connections(self) -> int:
        """Successful opens over the life of the session."""
        return self._connections

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def stats(self) -> StatisticsAggregator:
        return self._stats

    @property
    def closed(self) -> bool:
        return self._closed

    def is_connected(self) -> bool:
        return self._handle is not None and self._handle.is_open()

    def get_snapshot(self) -> SessionSnapshot:
        """State, statistics and settings for rendering."""
        now = self._clock.monotonic()
        remaining = self._reconnect.remaining(now) if self._reconnect else None
        return SessionSnapshot(
            port=self._port,
            baud=self._baud,
            state=self._state,
            config=self._config,
            stats=self._stats.snapshot(),
            attempts=self._attempts,
            reconnect=self._reconnect,
            reconnect_remaining=remaining,
            handle_open=self.is_connected(),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> ConnectionState:
        """
        Open the port for the first time.

        Returns the state after the first attempt: CONNECTED,
        RECONNECTING (retry scheduled), DISCONNECTED or PERMANENTLY_FAILED.
        """
        if self._closed:
            raise SessionClosed("Session has been shut down")
        if self._started:
            raise SessionStateError("Session already started")
        self._started = True
        logger.info("Starting session on %s at %d baud", self._port, self._baud)

        if self._stats_interval:
            self._ticker = asyncio.get_running_loop().create_task(self._tick_stats())

        self._begin_connect("Starting session")
        task = self._task
        if task is not None and self._state is ConnectionState.CONNECTING:
            await asyncio.wait({task})
        return self._state

    def shutdown(self) -> None:
        """
        Stop everything: cancel timers, close the handle, go DISCONNECTED.

        Safe to call more than once; later calls do nothing.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down session on %s", self._port)

        self._cancel_task()
        if self._ticker is not None:
            if self._ticker is not _current_task():
                self._ticker.cancel()
            self._ticker = None

        if self._state is ConnectionState.CONNECTED:
            self._flush_partial_line()
        self._teardown_handle()
        self._attempts = 0
        self._reconnect = None
        self._set_state(ConnectionState.DISCONNECTED, "Session shut down", Severity.INFO)

    async def wait_idle(self) -> None:
        """Wait until no open attempt or backoff timer is pending."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def send(self, payload: Union[str, bytes], line_ending: Optional[LineEnding] = None) -> int:
        """
        Write payload plus the line ending to the open port.

        Returns the number of bytes written. Raises NotConnected when no
        handle is open and WriteFailure when the transport rejects the
        write; both are also published to the sink.
        """
        if isinstance(payload, str):
            text = payload
            body = payload.encode("utf-8")
        else:
            body = bytes(payload)
            text = body.decode("utf-8", errors="replace")
        ending = line_ending or self._config.line_ending
        data = body + ending.sequence

        handle = self._handle
        if handle is None or not handle.is_open():
            self._notify("Port not connected. Cannot send data.", Severity.WARNING)
            raise NotConnected(f"{self._port} is not connected")

        try:
            written = handle.write(data)
        except Exception as exc:
            logger.warning("Write to %s failed: %s", self._port, exc)
            self._notify(f"Send failed: {exc}", Severity.ERROR)
            raise WriteFailure(str(exc)) from exc

        self._stats.record_sent(written)
        if self._config.echo and not self._config.paused:
            self._emit(EventKind.MESSAGE, text, Severity.INFO, direction="out")
        return written

    def set_filter(self, text: Optional[str]) -> FilterConfig:
        """Filter inbound lines by substring. Empty text disables filtering."""
        filter_config = self._filter.update(text or "")
        self._config = self._config.with_changes(filter=filter_config)
        if filter_config.enabled:
            self._notify(f'Filter enabled: "{filter_config.text}"')
        else:
            self._notify("Filter disabled")
        return filter_config

    def set_pause(self, paused: bool) -> None:
        self._config = self._config.with_changes(paused=paused)
        self._notify(f"Logging {'paused' if paused else 'resumed'}")

    def toggle_pause(self) -> bool:
        self.set_pause(not self._config.paused)
        return self._config.paused

    def set_echo(self, echo: bool) -> None:
        self._config = self._config.with_changes(echo=echo)
        self._notify(f"Echo mode {'enabled' if echo else 'disabled'}")

    def toggle_echo(self) -> bool:
        self.set_echo(not self._config.echo)
        return self._config.echo

    def set_hex(self, show_hex: bool) -> None:
        self._config = self._config.with_changes(show_hex=show_hex)
        self._notify(f"Hex view {'enabled' if show_hex else 'disabled'}")

    def toggle_hex(self) -> bool:
        self.set_hex(not self._config.show_hex)
        return self._config.show_hex

    def set_show_stats(self, show_stats: bool) -> None:
        self._config = self._config.with_changes(show_stats=show_stats)
        self._notify(f"Statistics {'enabled' if show_stats else 'disabled'}")

    def toggle_stats(self) -> bool:
        self.set_show_stats(not self._config.show_stats)
        return self._config.show_stats

    def set_line_ending(self, mode: Union[LineEnding, str]) -> LineEnding:
        if not isinstance(mode, LineEnding):
            mode = LineEnding.parse(mode)
        self._config = self._config.with_changes(line_ending=mode)
        self._notify(f"Line ending changed to {mode.value}")
        return mode

    def cycle_line_ending(self) -> LineEnding:
        return self.set_line_ending(self._config.line_ending.next())

    def set_auto_reconnect(self, enabled: bool) -> None:
        """
        Turn auto-reconnect on or off.

        Off while RECONNECTING cancels the pending retry and moves to
        DISCONNECTED. On while DISCONNECTED or PERMANENTLY_FAILED starts a
        fresh connect attempt with the counter at zero.
        """
        self._config = self._config.with_changes(auto_reconnect=enabled)

        if not enabled:
            if self._state is ConnectionState.RECONNECTING:
                self._cancel_task()
                self._attempts = 0
                self._reconnect = None
                self._set_state(
                    ConnectionState.DISCONNECTED,
                    "Auto-reconnect disabled, pending reconnect cancelled",
                    Severity.WARNING,
                )
            else:
                self._notify("Auto-reconnect disabled")
            return

        self._notify("Auto-reconnect enabled", Severity.SUCCESS)
        idle = self._state in (ConnectionState.DISCONNECTED, ConnectionState.PERMANENTLY_FAILED)
        if self._started and not self._closed and idle and self._handle is None:
            self._attempts = 0
            self._reconnect = None
            self._begin_connect("Auto-reconnect enabled")

    def toggle_auto_reconnect(self) -> bool:
        self.set_auto_reconnect(not self._config.auto_reconnect)
        return self._config.auto_reconnect

    def force_reconnect(self) -> None:
        """Drop any pending attempt and the current handle, then connect again."""
        if self._closed:
            raise SessionClosed("Session has been shut down")
        if not self._started:
            raise SessionStateError("Session not started")

        logger.info("Manual reconnect requested for %s", self._port)
        self._cancel_task()
        if self._state is ConnectionState.CONNECTED:
            self._flush_partial_line()
        self._attempts = 0
        self._begin_connect("Manual reconnect")

    # ------------------------------------------------------------------
    # Connection internals
    # ------------------------------------------------------------------

    def _begin_connect(self, cause: str) -> None:
        """Replace the handle and start opening it. Teardown always comes first."""
        self._teardown_handle()
        self._reconnect = None
        self._set_state(
            ConnectionState.CONNECTING,
            f"{cause}: opening {self._port} at {self._baud} baud",
            Severity.INFO,
        )

        try:
            handle = self._factory()
        except Exception as exc:
            logger.exception("Transport factory failed for %s", self._port)
            self._on_open_failure(exc)
            return

        self._generation += 1
        self._handle = handle
        self._framer = LineFramer()
        self._unsubscribe = handle.subscribe(partial(self._on_transport_event, self._generation))
        self._spawn(self._open(handle))

    async def _open(self, handle: TransportInterface) -> None:
        try:
            await asyncio.wait_for(handle.open(self._port, self._baud), timeout=self._connect_timeout)
        except asyncio.CancelledError:
            self._discard(handle)
            raise
        except asyncio.TimeoutError:
            failure: BaseException = ConnectTimeout(
                f"Connection timeout after {self._connect_timeout:g}s"
            )
        except Exception as exc:
            failure = exc
        else:
            if self._handle is handle and not self._closed:
                self._on_open_success()
            else:
                self._discard(handle)
            return

        if self._handle is not handle:
            self._discard(handle)
            return
        self._teardown_handle()
        self._on_open_failure(failure)

    def _on_open_success(self) -> None:
        attempts = self._attempts
        self._connections += 1
        self._attempts = 0
        self._reconnect = None
        if attempts:
            plural = "s" if attempts != 1 else ""
            message = f"Reconnected to {self._port} after {attempts} attempt{plural}"
        else:
            message = f"Connected to {self._port} at {self._baud} baud"
        self._set_state(ConnectionState.CONNECTED, message, Severity.SUCCESS)

    def _on_open_failure(self, error: BaseException) -> None:
        failure = classify(error)

        if isinstance(failure, PermanentTransportError):
            logger.error("Permanent error opening %s: %s", self._port, failure)
            self._config = self._config.with_changes(auto_reconnect=False)
            self._attempts = 0
            self._reconnect = None
            self._set_state(
                ConnectionState.PERMANENTLY_FAILED,
                f"Permanent error opening {self._port}: {failure}. Auto-reconnect disabled",
                Severity.WARNING,
                error=str(failure),
            )
            return

        if self._config.auto_reconnect and not self._closed:
            self._schedule_reconnect(f"Open failed: {failure}")
        else:
            self._set_state(
                ConnectionState.DISCONNECTED,
                f"Open failed: {failure}",
                Severity.ERROR,
                error=str(failure),
            )

    def _schedule_reconnect(self, cause: str) -> None:
        self._attempts += 1
        delay = self._backoff.delay(self._attempts)
        self._reconnect = ReconnectAttempt(
            ordinal=self._attempts,
            delay=delay,
            started=self._clock.monotonic(),
        )
        self._set_state(
            ConnectionState.RECONNECTING,
            f"{cause}. Reconnect attempt #{self._attempts} in {delay:g}s",
            Severity.WARNING,
            attempt=self._attempts,
            delay=delay,
        )
        self._spawn(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._clock.sleep(delay)
        if self._closed or not self._config.auto_reconnect:
            return
        self._begin_connect(f"Reconnect attempt #{self._attempts}")

    def _handle_link_loss(self, cause: str) -> None:
        self._flush_partial_line()
        self._teardown_handle()
        if self._config.auto_reconnect:
            self._schedule_reconnect(cause)
        else:
            self._set_state(ConnectionState.DISCONNECTED, cause, Severity.WARNING)

    def _teardown_handle(self) -> None:
        """Unsubscribe, then close. Nothing from the old handle gets through after this."""
        handle = self._handle
        if handle is None:
            return
        unsubscribe = self._unsubscribe
        self._handle = None
        self._unsubscribe = None
        self._generation += 1

        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception:
                logger.exception("Failed to unsubscribe transport listener")
        try:
            handle.close()
        except Exception as exc:
            logger.warning("Error closing %s: %s", self._port, exc)
        logger.debug("Transport handle for %s torn down (generation %d)", self._port, self._generation)

    def _discard(self, handle: TransportInterface) -> None:
        # A handle that is no longer current was already closed by _teardown_handle.
        if self._handle is handle:
            self._teardown_handle()

    def _spawn(self, coro: Any) -> asyncio.Task:
        self._cancel_task()
        task = asyncio.get_running_loop().create_task(coro)
        task.add_done_callback(self._on_task_done)
        self._task = task
        return task

    def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session task failed", exc_info=exc)

    async def _tick_stats(self) -> None:
        while not self._closed:
            await self._clock.sleep(self._stats_interval)
            if self._closed:
                break
            self._emit(EventKind.STATS_TICK, self.get_snapshot(), Severity.INFO)

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _on_transport_event(self, generation: int, event: TransportEvent) -> None:
        if generation != self._generation or self._handle is None:
            logger.debug(
                "Dropping %s event from stale handle (generation %d, current %d)",
                event.kind.value, generation, self._generation,
            )
            return

        if event.kind is TransportEventKind.DATA:
            self._on_data(event.data)
        elif event.kind is TransportEventKind.ERROR:
            if self._state is ConnectionState.CONNECTED:
                self._handle_link_loss(f"Port error: {event.message}")
            else:
                self._notify(f"Port error: {event.message}", Severity.ERROR)
        elif event.kind is TransportEventKind.CLOSED:
            if self._state is ConnectionState.CONNECTED:
                self._handle_link_loss("Port disconnected")

    def _on_data(self, chunk: bytes) -> None:
        self._stats.record_received(len(chunk))
        if self._config.show_hex and not self._config.paused:
            self._emit(EventKind.HEX, bytes(chunk), Severity.INFO)
        for line in self._framer.feed(chunk):
            self._deliver_line(line)

    def _deliver_line(self, line: str) -> None:
        self._stats.record_message()
        if self._config.paused or not self._filter.matches(line):
            return
        self._emit(EventKind.MESSAGE, line, Severity.SUCCESS, direction="in")

    def _flush_partial_line(self) -> None:
        tail = self._framer.flush()
        if tail is not None:
            self._deliver_line(tail)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _emit(self, kind: EventKind, payload: Any, severity: Severity, **data: Any) -> None:
        event = SinkEvent(
            kind=kind,
            payload=payload,
            severity=severity,
            timestamp=self._clock.now(),
            data=data,
        )
        try:
            self._sink.publish(event)
        except Exception:
            logger.exception("Event sink failed on %s event", kind.value)

    def _notify(self, text: str, severity: Severity = Severity.WARNING, **data: Any) -> None:
        logger.log(_LOG_LEVELS[severity], text)
        self._emit(EventKind.NOTICE, text, severity, **data)

    def _set_state(self, state: ConnectionState, cause: str, severity: Severity, **data: Any) -> None:
        previous = self._state
        self._state = state
        logger.log(_LOG_LEVELS[severity], "%s: %s -> %s (%s)", self._port, previous.value, state.value, cause)
        self._emit(
            EventKind.STATE_CHANGE,
            cause,
            severity,
            state=state.value,
            previous=previous.value,
            **data,
        )

"""
Real implementations of interfaces for production use.

These classes wrap actual system resources (serial ports, the system
clock) and implement the abstract interfaces.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import threading
import time
from datetime import datetime
from typing import List, Optional

import serial
import serial.tools.list_ports

from .errors import TransportError
from .interfaces import (
    ClockInterface,
    PortInfo,
    TransportEvent,
    TransportInterface,
    TransportListener,
    Unsubscribe,
)
from .port_lock import PortLock

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 0.1
DEFAULT_READ_SIZE = 4096


class PySerialTransport(TransportInterface):
    """
    Serial port handle using pyserial.

    open() runs in the default executor so a slow driver never blocks the
    event loop. A daemon thread reads whatever is waiting and hands each
    chunk to the loop thread with call_soon_threadsafe.
    """

    def __init__(
        self,
        lock_dir: Optional[str] = None,
        use_lock: bool = True,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        read_size: int = DEFAULT_READ_SIZE,
    ):
        self._lock_dir = lock_dir
        self._use_lock = use_lock
        self._read_timeout = read_timeout
        self._read_size = read_size

        self._serial: Optional[serial.Serial] = None
        self._lock: Optional[PortLock] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._listeners: List[TransportListener] = []
        self._reader: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._used = False
        self._closed = False

    async def open(self, port: str, baud: int) -> None:
        if self._used:
            raise TransportError("Transport handle can only be opened once")
        self._used = True
        self._loop = asyncio.get_running_loop()

        lock: Optional[PortLock] = None
        if self._use_lock:
            lock = PortLock(port, lock_dir=self._lock_dir)
            if not lock.acquire():
                owner = lock.get_owner()
                holder = f" by PID {owner.pid} ({owner.process_name})" if owner else ""
                raise TransportError(f"Resource busy: {port} is locked{holder}", errno=errno.EBUSY)

        future = self._loop.run_in_executor(None, self._open_serial, port, baud)
        try:
            ser = await asyncio.shield(future)
        except asyncio.CancelledError:
            # The executor may still produce an open port after we gave up on it.
            future.add_done_callback(self._close_abandoned)
            if lock is not None:
                lock.release()
            raise
        except serial.SerialException as exc:
            if lock is not None:
                lock.release()
            raise TransportError(str(exc), errno=getattr(exc, "errno", None)) from exc
        except (OSError, ValueError) as exc:
            if lock is not None:
                lock.release()
            raise TransportError(str(exc), errno=getattr(exc, "errno", None)) from exc

        if self._closed:
            ser.close()
            if lock is not None:
                lock.release()
            raise TransportError(f"{port} was closed while opening")

        self._serial = ser
        self._lock = lock
        self._stop_event.clear()
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(ser,),
            daemon=True,
            name=f"bytestream-reader-{port}",
        )
        self._reader.start()
        logger.debug("Opened %s at %d baud", port, baud)

    def _open_serial(self, port: str, baud: int) -> serial.Serial:
        # serial_for_url also accepts pyserial URLs such as loop:// and rfc2217://
        return serial.serial_for_url(port, baudrate=baud, timeout=self._read_timeout)

    @staticmethod
    def _close_abandoned(future: "asyncio.Future[serial.Serial]") -> None:
        if future.cancelled() or future.exception() is not None:
            return
        try:
            future.result().close()
        except Exception as exc:
            logger.debug("Closing abandoned port failed: %s", exc)

    def close(self) -> None:
        self._closed = True
        self._stop_event.set()
        ser = self._serial
        self._serial = None
        if ser is not None:
            try:
                ser.close()
            except Exception as exc:
                logger.debug("Error closing serial port: %s", exc)
        if self._lock is not None:
            self._lock.release()
            self._lock = None

    def is_open(self) -> bool:
        if self._serial is None:
            return False
        try:
            return bool(self._serial.is_open)
        except Exception:
            return False

    def write(self, data: bytes) -> int:
        ser = self._serial
        if ser is None:
            raise TransportError("Port is not open")
        try:
            written = ser.write(data)
        except serial.SerialException as exc:
            raise TransportError(str(exc), errno=getattr(exc, "errno", None)) from exc
        return len(data) if written is None else written

    def subscribe(self, listener: TransportListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _read_loop(self, ser: serial.Serial) -> None:
        while not self._stop_event.is_set():
            try:
                chunk = ser.read(min(ser.in_waiting or 1, self._read_size))
            except Exception as exc:
                if self._stop_event.is_set():
                    break
                # pyserial reports an unplugged device as a read error.
                self._post(TransportEvent.error(str(exc) or exc.__class__.__name__))
                self._post(TransportEvent.closed())
                break
            if chunk:
                self._post(TransportEvent.received(chunk))

    def _post(self, event: TransportEvent) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._dispatch, event)
        except RuntimeError:
            # Loop already closed; nobody is listening any more.
            self._stop_event.set()

    def _dispatch(self, event: TransportEvent) -> None:
        for listener in list(self._listeners):
            listener(event)


def list_ports() -> List[PortInfo]:
    """List available serial ports."""
    ports = []
    for p in serial.tools.list_ports.comports():
        ports.append(PortInfo(
            device=p.device,
            description=p.description or "",
            hwid=p.hwid or "",
            manufacturer=p.manufacturer or "",
            serial_number=p.serial_number or "",
            vid=p.vid,
            pid=p.pid,
        ))
    return sorted(ports, key=lambda info: info.device)


class RealClock(ClockInterface):
    """
    Real clock implementation using system time.
    """

    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

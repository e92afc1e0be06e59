"""Tests for the pyserial transport, using pyserial's loop:// device."""

from __future__ import annotations

import asyncio

import pytest

from bytestream.errors import TransportError
from bytestream.implementations import PySerialTransport, RealClock, list_ports
from bytestream.interfaces import TransportEventKind


class TestPySerialTransport:
    @pytest.mark.asyncio
    async def test_loopback_roundtrip(self, tmp_path):
        transport = PySerialTransport(lock_dir=str(tmp_path), read_timeout=0.05)
        received = bytearray()
        got_line = asyncio.Event()

        def on_event(event):
            if event.kind is TransportEventKind.DATA:
                received.extend(event.data)
                if received.endswith(b"\n"):
                    got_line.set()

        transport.subscribe(on_event)
        await transport.open("loop://", 9600)
        try:
            assert transport.is_open()
            assert transport.write(b"ping\n") == 5
            await asyncio.wait_for(got_line.wait(), timeout=2.0)
        finally:
            transport.close()

        assert bytes(received) == b"ping\n"
        assert not transport.is_open()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, tmp_path):
        transport = PySerialTransport(lock_dir=str(tmp_path))
        events = []
        unsubscribe = transport.subscribe(events.append)
        unsubscribe()
        unsubscribe()
        assert transport._listeners == []

    @pytest.mark.asyncio
    async def test_open_missing_device(self, tmp_path):
        transport = PySerialTransport(lock_dir=str(tmp_path))
        with pytest.raises(TransportError):
            await transport.open(str(tmp_path / "ttyMISSING"), 9600)
        transport.close()

    @pytest.mark.asyncio
    async def test_handle_opens_once(self, tmp_path):
        transport = PySerialTransport(lock_dir=str(tmp_path))
        await transport.open("loop://", 9600)
        try:
            with pytest.raises(TransportError):
                await transport.open("loop://", 9600)
        finally:
            transport.close()

    def test_write_when_closed(self):
        with pytest.raises(TransportError):
            PySerialTransport(use_lock=False).write(b"x")

    def test_close_is_idempotent(self):
        transport = PySerialTransport(use_lock=False)
        transport.close()
        transport.close()
        assert not transport.is_open()


class TestListPorts:
    def test_sorted_by_device(self, monkeypatch):
        class FakePort:
            def __init__(self, device):
                self.device = device
                self.description = "USB Serial"
                self.hwid = "USB VID:PID=0403:6001"
                self.manufacturer = "FTDI"
                self.serial_number = None
                self.vid = 0x0403
                self.pid = 0x6001

        monkeypatch.setattr(
            "serial.tools.list_ports.comports",
            lambda: [FakePort("/dev/ttyUSB1"), FakePort("/dev/ttyUSB0")],
        )

        ports = list_ports()

        assert [p.device for p in ports] == ["/dev/ttyUSB0", "/dev/ttyUSB1"]
        assert ports[0].manufacturer == "FTDI"
        assert ports[0].serial_number == ""


class TestRealClock:
    @pytest.mark.asyncio
    async def test_sleep_advances_monotonic(self):
        clock = RealClock()
        start = clock.monotonic()
        await clock.sleep(0.01)
        assert clock.monotonic() > start

"""Shared pytest fixtures for ByteStream tests."""

from __future__ import annotations

import os

import pytest

from bytestream.mocks import MockClock, MockTransportFactory, RecordingSink
from bytestream.session import Session

PORT = "/dev/ttyUSB0"
BAUD = 115200


@pytest.fixture(autouse=True)
def isolate_environment(tmp_path, monkeypatch):
    """Keep user config, BYTESTREAM_* variables and real lock dirs out of tests."""
    for key in list(os.environ):
        if key.startswith("BYTESTREAM_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("BYTESTREAM_RUN_DIR", str(tmp_path / "run"))


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def factory():
    return MockTransportFactory()


@pytest.fixture
def make_session(clock, sink, factory):
    """Build a Session on the mock transport; stats ticks off unless asked for."""

    def _make(**kwargs) -> Session:
        transport_factory = kwargs.pop("factory", factory)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("stats_interval", None)
        return Session(PORT, BAUD, transport_factory, kwargs.pop("sink", sink), **kwargs)

    return _make

"""Tests for the interactive console command mapping."""

from __future__ import annotations

import io

import pytest

from bytestream.console import HELP_TEXT, InteractiveConsole, StdinReader
from bytestream.interfaces import ConnectionState
from bytestream.models import LineEnding
from bytestream.sinks import ConsoleSink


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def console_for(make_session, output):
    def _make(session=None):
        session = session or make_session()
        return InteractiveConsole(session, ConsoleSink(stream=output)), session

    return _make


class TestHandleLine:
    @pytest.mark.asyncio
    async def test_plain_line_is_sent(self, console_for, factory):
        console, session = console_for()
        await session.start()

        assert console.handle_line("AT+GMR") is True

        assert factory.latest.get_sent() == [b"AT+GMR\n"]
        session.shutdown()

    @pytest.mark.asyncio
    async def test_blank_line_ignored(self, console_for, factory):
        console, session = console_for()
        await session.start()

        console.handle_line("   ")

        assert factory.latest.get_sent() == []
        session.shutdown()

    @pytest.mark.asyncio
    async def test_send_while_disconnected_keeps_running(self, console_for, sink):
        console, session = console_for()

        assert console.handle_line("hello") is True
        assert sink.notices() == ["Port not connected. Cannot send data."]

    @pytest.mark.asyncio
    async def test_send_command_allows_slash(self, console_for, factory):
        console, session = console_for()
        await session.start()

        console.handle_line("/send /reset now")

        assert factory.latest.get_sent() == [b"/reset now\n"]
        session.shutdown()

    @pytest.mark.asyncio
    async def test_toggles(self, console_for):
        console, session = console_for()

        console.handle_line("/pause")
        console.handle_line("/hex")
        console.handle_line("/echo")
        console.handle_line("/STATS")

        config = session.config
        assert config.paused is True
        assert config.show_hex is False
        assert config.echo is True
        assert config.show_stats is False

    @pytest.mark.asyncio
    async def test_line_ending(self, console_for):
        console, session = console_for()

        console.handle_line("/le")
        assert session.config.line_ending is LineEnding.CR

        console.handle_line("/le crlf")
        assert session.config.line_ending is LineEnding.CRLF

    @pytest.mark.asyncio
    async def test_bad_line_ending_reported(self, console_for, output):
        console, session = console_for()

        assert console.handle_line("/le NUL") is True

        assert "Error: Unknown line ending" in output.getvalue()
        assert session.config.line_ending is LineEnding.LF

    @pytest.mark.asyncio
    async def test_filter(self, console_for):
        console, session = console_for()

        console.handle_line("/filter  temp ")
        assert session.config.filter.text == "temp"
        assert session.config.filter.enabled

        console.handle_line("/filter")
        assert not session.config.filter.enabled

    @pytest.mark.asyncio
    async def test_auto_toggle(self, console_for):
        console, session = console_for()

        console.handle_line("/auto")

        assert session.config.auto_reconnect is False

    @pytest.mark.asyncio
    async def test_reconnect_before_start_reported(self, console_for, output):
        console, session = console_for()

        assert console.handle_line("/reconnect") is True
        assert "Error: Session not started" in output.getvalue()

    @pytest.mark.asyncio
    async def test_reconnect(self, console_for, factory):
        console, session = console_for()
        await session.start()

        console.handle_line("/reconnect")
        await session.wait_idle()

        assert len(factory.created) == 2
        assert session.state is ConnectionState.CONNECTED
        session.shutdown()

    @pytest.mark.asyncio
    async def test_status_help_unknown(self, console_for, output):
        console, session = console_for()
        await session.start()

        console.handle_line("/status")
        console.handle_line("/help")
        console.handle_line("/bogus")

        text = output.getvalue()
        assert "/dev/ttyUSB0@115200 | Connected" in text
        assert HELP_TEXT in text
        assert "Unknown command: /bogus" in text
        session.shutdown()

    @pytest.mark.asyncio
    async def test_quit(self, console_for):
        console, _ = console_for()
        assert console.handle_line("/quit") is False
        assert console.handle_line("/q") is False


class TestRun:
    @pytest.mark.asyncio
    async def test_run_until_quit(self, make_session, factory, output):
        session = make_session()
        reader = StdinReader(io.StringIO("hello\n/le CRLF\nworld\n/quit\nignored\n"))
        console = InteractiveConsole(session, ConsoleSink(stream=output), reader=reader)

        assert await console.run() == 0

        assert factory.latest.get_sent() == [b"hello\n", b"world\r\n"]
        assert session.closed
        assert factory.latest.close_calls == 1

    @pytest.mark.asyncio
    async def test_run_until_end_of_input(self, make_session, output):
        session = make_session()
        console = InteractiveConsole(session, ConsoleSink(stream=output), reader=StdinReader(io.StringIO("")))

        assert await console.run() == 0
        assert session.state is ConnectionState.DISCONNECTED

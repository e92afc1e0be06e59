"""Tests for the bytestream CLI: parsing, dispatch and command handlers."""

from __future__ import annotations

import asyncio
import errno
import io
import json
import logging

import pytest

import bytestream.cli as cli
from bytestream.cli import helpers
from bytestream.cli.dispatch import main
from bytestream.cli.helpers import _format_port, configure_logging
from bytestream.cli.parser import _preprocess_argv
from bytestream.config import ConsoleSettings
from bytestream.console import StdinReader
from bytestream.errors import TransportError
from bytestream.interfaces import PortInfo
from bytestream.mocks import MockTransport, MockTransportFactory
from bytestream.models import LineEnding


class DroppingTransport(MockTransport):
    """Connects, then loses the link shortly after."""

    async def open(self, port, baud):
        await super().open(port, baud)
        asyncio.get_running_loop().call_later(0.01, self.inject_close)


class TalkingTransport(DroppingTransport):
    """Sends one line right after connecting, then drops."""

    async def open(self, port, baud):
        await super().open(port, baud)
        asyncio.get_running_loop().call_soon(self.inject_line, "hello")


@pytest.fixture
def captured(monkeypatch):
    """Replace the command handlers with recorders; returns the call log."""
    calls = []

    def recorder(name):
        def _record(**kwargs):
            calls.append((name, kwargs))
            return 0
        return _record

    for name in ("cmd_list", "cmd_read", "cmd_write", "cmd_monitor"):
        monkeypatch.setattr(cli, name, recorder(name))
    return calls


@pytest.fixture
def mock_factory(monkeypatch):
    factory = MockTransportFactory()
    monkeypatch.setattr(helpers, "make_transport_factory", lambda settings: factory)
    return factory


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestPreprocessArgv:
    def test_moves_global_flags_first(self):
        argv = ["read", "/dev/ttyUSB0", "-vv", "--json"]
        assert _preprocess_argv(argv) == ["-vv", "--json", "read", "/dev/ttyUSB0"]

    def test_leaves_other_flags(self):
        argv = ["write", "/dev/ttyUSB0", "AT", "-n"]
        assert _preprocess_argv(argv) == argv


class TestDispatch:
    def test_list(self, captured):
        assert main(["--json", "list"]) == 0
        assert captured == [("cmd_list", {"json_mode": True})]

    @pytest.mark.parametrize("alias", ["monitor", "mon", "m", "interactive", "i"])
    def test_monitor_aliases(self, captured, alias):
        assert main([alias, "/dev/ttyUSB0"]) == 0
        name, kwargs = captured[0]
        assert name == "cmd_monitor"
        assert kwargs["port"] == "/dev/ttyUSB0"
        assert kwargs["settings"] == ConsoleSettings()

    def test_read_flags_override_settings(self, captured, monkeypatch):
        monkeypatch.setenv("BYTESTREAM_BAUD", "57600")
        monkeypatch.setenv("BYTESTREAM_ECHO", "true")

        main([
            "read", "/dev/ttyUSB0", "-b", "115200", "--no-reconnect",
            "--line-ending", "crlf", "--filter", "temp",
        ])

        _, kwargs = captured[0]
        settings = kwargs["settings"]
        assert settings.baud == 115200
        assert settings.echo is True
        assert settings.auto_reconnect is False
        assert settings.line_ending is LineEnding.CRLF
        assert kwargs["filter_text"] == "temp"
        assert kwargs["show_hex"] is False

    def test_read_hex_flag(self, captured):
        main(["read", "/dev/ttyUSB0", "--hex"])
        assert captured[0][1]["show_hex"] is True

    def test_monitor_no_hex_flag(self, captured):
        main(["monitor", "/dev/ttyUSB0", "--no-hex"])
        assert captured[0][1]["settings"].show_hex is False

    def test_read_rejects_no_hex(self, captured):
        with pytest.raises(SystemExit) as exc_info:
            main(["read", "/dev/ttyUSB0", "--no-hex"])
        assert exc_info.value.code == 2

    def test_write_args(self, captured):
        main(["write", "COM3", "AT", "-n", "--no-lock"])
        name, kwargs = captured[0]
        assert name == "cmd_write"
        assert kwargs["data"] == "AT"
        assert kwargs["newline"] is True
        assert kwargs["settings"].use_lock is False

    def test_config_file_flag(self, captured, tmp_path):
        path = tmp_path / "bs.yaml"
        path.write_text("baud: 230400\n")
        main(["--config", str(path), "read", "/dev/ttyUSB0"])
        assert captured[0][1]["settings"].baud == 230400

    def test_bad_config_is_usage_error(self, captured, monkeypatch, capsys):
        monkeypatch.setenv("BYTESTREAM_BAUD", "fast")
        assert main(["read", "/dev/ttyUSB0"]) == 2
        assert captured == []
        assert "Invalid value for baud" in capsys.readouterr().out

    def test_missing_subcommand(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(["--version"])
        assert "bytestream" in capsys.readouterr().out


class TestLogging:
    def test_verbosity_levels(self):
        configure_logging(0)
        assert logging.getLogger().level == logging.WARNING
        configure_logging(1)
        assert logging.getLogger().level == logging.INFO
        configure_logging(2)
        assert logging.getLogger().level == logging.DEBUG

    def test_log_file(self, tmp_path):
        log_path = tmp_path / "bytestream.log"
        configure_logging(1, str(log_path))
        logging.getLogger("bytestream.test").info("hello log")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello log" in log_path.read_text()


class TestCmdList:
    PORTS = [
        PortInfo(
            device="/dev/ttyUSB0",
            description="CP2102 USB to UART",
            hwid="USB VID:PID=10C4:EA60",
            manufacturer="Silicon Labs",
            serial_number="0001",
            vid=0x10C4,
            pid=0xEA60,
        ),
        PortInfo(device="/dev/ttyS0", description="n/a", hwid="n/a"),
    ]

    def test_text(self, monkeypatch, capsys):
        monkeypatch.setattr("bytestream.cli.port_cmds.list_ports", lambda: self.PORTS)
        assert cli.cmd_list(json_mode=False) == 0
        out = capsys.readouterr().out
        assert "1. /dev/ttyUSB0 - CP2102 USB to UART [Silicon Labs] (SN: 0001) VID:PID=10C4:EA60" in out
        assert "2. /dev/ttyS0" in out

    def test_json(self, monkeypatch, capsys):
        monkeypatch.setattr("bytestream.cli.port_cmds.list_ports", lambda: self.PORTS)
        assert cli.cmd_list(json_mode=True) == 0
        data = json.loads(capsys.readouterr().out)
        assert [p["device"] for p in data["ports"]] == ["/dev/ttyUSB0", "/dev/ttyS0"]
        assert data["ports"][1]["manufacturer"] is None

    def test_no_ports(self, monkeypatch, capsys):
        monkeypatch.setattr("bytestream.cli.port_cmds.list_ports", lambda: [])
        assert cli.cmd_list(json_mode=False) == 0
        assert "No serial ports found." in capsys.readouterr().out

    def test_format_port_minimal(self):
        assert _format_port(3, PortInfo(device="COM3", description="", hwid="")) == "3. COM3"


class TestCmdWrite:
    def test_writes_once_and_closes(self, mock_factory, capsys):
        code = cli.cmd_write(port="/dev/ttyUSB0", data="AT", newline=True, settings=ConsoleSettings(), json_mode=True)

        assert code == 0
        transport = mock_factory.latest
        assert transport.get_sent() == [b"AT\n"]
        assert transport.close_calls == 1
        assert json.loads(capsys.readouterr().out)["bytes_written"] == 3

    def test_open_failure(self, mock_factory, capsys):
        mock_factory.push(TransportError("Resource busy", errno=errno.EBUSY))

        code = cli.cmd_write(port="/dev/ttyUSB0", data="AT", newline=False, settings=ConsoleSettings(), json_mode=False)

        assert code == 1
        assert "Error: Resource busy" in capsys.readouterr().out
        assert mock_factory.latest.close_calls == 1


class TestCmdRead:
    def test_permanent_failure_exits_1(self, mock_factory, capsys):
        mock_factory.push(PermissionError(errno.EACCES, "Permission denied"))

        code = cli.cmd_read(port="/dev/ttyUSB0", settings=ConsoleSettings(stats_interval=None))

        assert code == 1
        out = capsys.readouterr().out
        assert "Reading from /dev/ttyUSB0" in out
        assert "Permanent error opening /dev/ttyUSB0" in out

    def test_stops_when_link_lost_without_reconnect(self, monkeypatch):
        monkeypatch.setattr(helpers, "make_transport_factory", lambda settings: DroppingTransport)
        settings = ConsoleSettings(auto_reconnect=False, stats_interval=None)

        assert cli.cmd_read(port="/dev/ttyUSB0", settings=settings) == 0

    def test_open_failure_without_reconnect_exits_1(self, mock_factory, capsys):
        """A port that never opened is a failure even though the session ends DISCONNECTED."""
        mock_factory.push(OSError(errno.EIO, "Input/output error"))
        settings = ConsoleSettings(auto_reconnect=False, stats_interval=None)

        code = cli.cmd_read(port="/dev/ttyUSB0", settings=settings)

        assert code == 1
        assert "Input/output error" in capsys.readouterr().out
        assert len(mock_factory.created) == 1

    def test_lines_only_by_default(self, monkeypatch, capsys):
        monkeypatch.setattr(helpers, "make_transport_factory", lambda settings: TalkingTransport)
        settings = ConsoleSettings(auto_reconnect=False, stats_interval=None)

        assert cli.cmd_read(port="/dev/ttyUSB0", settings=settings) == 0

        out = capsys.readouterr().out
        assert "← hello" in out
        assert " HEX " not in out

    def test_hex_on_request(self, monkeypatch, capsys):
        monkeypatch.setattr(helpers, "make_transport_factory", lambda settings: TalkingTransport)
        settings = ConsoleSettings(auto_reconnect=False, stats_interval=None)

        assert cli.cmd_read(port="/dev/ttyUSB0", settings=settings, show_hex=True) == 0

        out = capsys.readouterr().out
        assert "← hello" in out
        assert "HEX 68 65 6C 6C 6F 0A" in out


class TestCmdMonitor:
    def test_sends_typed_lines(self, mock_factory, capsys):
        reader = StdinReader(io.StringIO("hello\n/quit\n"))

        code = cli.cmd_monitor(
            port="/dev/ttyUSB0",
            settings=ConsoleSettings(stats_interval=None),
            reader=reader,
        )

        assert code == 0
        assert mock_factory.latest.get_sent() == [b"hello\n"]
        assert "ByteStream console on /dev/ttyUSB0" in capsys.readouterr().out

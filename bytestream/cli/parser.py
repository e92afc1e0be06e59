"""Argument parser for the bytestream CLI."""

from __future__ import annotations

import argparse

from bytestream import __version__

MONITOR_ALIASES = ("mon", "m", "interactive", "i")


def _preprocess_argv(argv: list[str]) -> list[str]:
    """Move global flags (--json, -v/-vv/--verbose) in front of the subcommand.

    argparse only accepts top-level flags before the subcommand, but
    ``bytestream read /dev/ttyUSB0 -v`` should work too.

    Args:
        argv: Raw argument list (without ``sys.argv[0]``).

    Returns:
        Reordered argument list with global flags moved to the front.
    """
    global_args: list[str] = []
    rest: list[str] = []
    for token in argv:
        if token == "--json" or token == "--verbose" or (
            token.startswith("-v") and not token.startswith("--") and set(token[1:]) == {"v"}
        ):
            global_args.append(token)
        else:
            rest.append(token)
    return global_args + rest


def _add_port_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("port", help="Serial port path (e.g. /dev/ttyUSB0, COM3)")
    p.add_argument("-b", "--baud", type=int, default=None, help="Baud rate (default: 9600 or config)")
    p.add_argument("--timeout", type=float, default=None, dest="connect_timeout", help="Open timeout in seconds")
    p.add_argument("--no-lock", action="store_true", help="Do not take the cross-process port lock")


def _add_session_args(p: argparse.ArgumentParser) -> None:
    _add_port_args(p)
    p.add_argument("--filter", default=None, dest="filter_text", help="Only show lines containing TEXT")
    p.add_argument("--no-reconnect", action="store_true", help="Disable automatic reconnection")
    p.add_argument("--echo", action="store_true", help="Echo sent data")
    p.add_argument(
        "--line-ending",
        choices=["LF", "CR", "CRLF"],
        type=str.upper,
        default=None,
        help="Line ending appended to sent lines (default: LF)",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the full argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(prog="bytestream", description="Serial console with auto-reconnect")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--json", action="store_true", help="Output machine-parseable JSON")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log more (-v INFO, -vv DEBUG)")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    parser.add_argument(
        "--config",
        default=None,
        help="Settings file (default: $BYTESTREAM_CONFIG or ~/.config/bytestream/config.yaml)",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="List available serial ports")

    p_read = sub.add_parser("read", help="Stream data from a serial port until Ctrl+C")
    _add_session_args(p_read)
    p_read.add_argument("--hex", action="store_true", help="Also show hex frames of incoming data")

    p_write = sub.add_parser("write", help="Write data to a serial port once")
    _add_port_args(p_write)
    p_write.add_argument("data", help="Text to send")
    p_write.add_argument("-n", "--newline", action="store_true", help="Append a newline")

    p_monitor = sub.add_parser(
        "monitor",
        aliases=list(MONITOR_ALIASES),
        help="Interactive console: read and send, /help for commands",
    )
    _add_session_args(p_monitor)
    p_monitor.add_argument("--no-hex", action="store_true", help="Do not show hex frames of incoming data")

    return parser

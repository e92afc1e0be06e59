"""
bytestream: command-line serial console.

Main commands:
- list: enumerate serial ports
- read: stream timestamped lines from a port
- write: send data to a port once
- monitor: interactive console with auto-reconnect

Entry points:
- bytestream: Main CLI entry point (installed via pip)
- Can also be imported and called programmatically via main(argv)
"""

from __future__ import annotations

from bytestream.cli.helpers import (
    _print,
    build_session,
    configure_logging,
    make_transport_factory,
)

from bytestream.cli.port_cmds import (
    cmd_list,
    cmd_write,
)
from bytestream.cli.monitor_cmds import (
    cmd_read,
    cmd_monitor,
)

from bytestream.cli.parser import _build_parser, _preprocess_argv
from bytestream.cli.dispatch import main

__all__ = [
    "main",
    "cmd_list",
    "cmd_write",
    "cmd_read",
    "cmd_monitor",
    "build_session",
    "configure_logging",
    "make_transport_factory",
    "_build_parser",
    "_preprocess_argv",
    "_print",
]

"""Command dispatch for the bytestream CLI."""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from bytestream.config import ConsoleSettings, load_settings
from bytestream.errors import ConfigError

from bytestream.cli.parser import MONITOR_ALIASES, _build_parser, _preprocess_argv
from bytestream.cli.helpers import _print, configure_logging


def _settings_from_args(args: argparse.Namespace) -> ConsoleSettings:
    """Config file and environment first, then whatever flags were given."""
    settings = load_settings(args.config)
    return settings.merged(
        baud=getattr(args, "baud", None),
        connect_timeout=getattr(args, "connect_timeout", None),
        line_ending=getattr(args, "line_ending", None),
        show_hex=False if getattr(args, "no_hex", False) else None,
        auto_reconnect=False if getattr(args, "no_reconnect", False) else None,
        echo=True if getattr(args, "echo", False) else None,
        use_lock=False if getattr(args, "no_lock", False) else None,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``bytestream`` CLI.

    Args:
        argv: Argument list to parse.  Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code: 0 on success, 1 on a runtime failure, 2 on bad usage
        or configuration.
    """
    if argv is None:
        argv = sys.argv[1:]

    argv = _preprocess_argv(argv)

    # Late import so tests can monkeypatch bytestream.cli.cmd_xxx
    import bytestream.cli as cli

    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    try:
        settings = _settings_from_args(args)
    except ConfigError as exc:
        _print({"error": str(exc)} if args.json else f"Error: {exc}", json_mode=args.json)
        return 2

    if args.cmd == "list":
        return cli.cmd_list(json_mode=args.json)
    if args.cmd == "write":
        return cli.cmd_write(
            port=args.port,
            data=args.data,
            newline=args.newline,
            settings=settings,
            json_mode=args.json,
        )
    if args.cmd == "read":
        return cli.cmd_read(
            port=args.port,
            settings=settings,
            filter_text=args.filter_text,
            show_hex=args.hex,
        )
    if args.cmd == "monitor" or args.cmd in MONITOR_ALIASES:
        return cli.cmd_monitor(port=args.port, settings=settings, filter_text=args.filter_text)

    parser.error(f"unknown command: {args.cmd}")
    return 2

"""Streaming commands for bytestream: read and the interactive monitor."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from bytestream.config import ConsoleSettings
from bytestream.console import InteractiveConsole, StdinReader
from bytestream.interfaces import ConnectionState
from bytestream.session import Session
from bytestream.sinks import ConsoleSink

from bytestream.cli.helpers import build_session

logger = logging.getLogger(__name__)

_POLL_INTERVAL_S = 0.2


async def _read_until_stopped(session: Session) -> int:
    await session.start()
    try:
        while True:
            state = session.state
            if state is ConnectionState.PERMANENTLY_FAILED:
                return 1
            if state is ConnectionState.DISCONNECTED:
                return 0 if session.connections else 1
            await asyncio.sleep(_POLL_INTERVAL_S)
    finally:
        session.shutdown()


def cmd_read(
    *,
    port: str,
    settings: ConsoleSettings,
    filter_text: Optional[str] = None,
    show_hex: bool = False,
) -> int:
    """Stream inbound lines from the port until Ctrl+C.

    Only text lines are printed unless ``show_hex`` asks for the hex frames
    too. Exits on its own once the session can no longer reconnect: 1 after
    a permanent failure or when the port never opened, 0 when an open link
    was lost with auto-reconnect off.
    """
    sink = ConsoleSink()
    session = build_session(port, settings.merged(show_hex=show_hex), sink, filter_text=filter_text)
    sink.write(f"Reading from {port} at {settings.baud} baud. Press Ctrl+C to stop.")
    try:
        return asyncio.run(_read_until_stopped(session))
    except KeyboardInterrupt:
        logger.debug("Interrupted, closing %s", port)
        return 0


def cmd_monitor(
    *,
    port: str,
    settings: ConsoleSettings,
    filter_text: Optional[str] = None,
    reader: Optional[StdinReader] = None,
) -> int:
    """Interactive console: typed lines go to the device, /commands control the session."""
    sink = ConsoleSink()
    session = build_session(port, settings, sink, filter_text=filter_text)
    console = InteractiveConsole(session, sink, reader=reader)
    try:
        return asyncio.run(console.run())
    except KeyboardInterrupt:
        logger.debug("Interrupted, closing %s", port)
        return 0

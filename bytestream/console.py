"""
Interactive line console for a ByteStream session.

Plain input lines are sent to the device. Lines starting with "/" are
console commands (see HELP_TEXT).
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Callable, Dict, Optional, TextIO

from .errors import NotConnected, SessionStateError, WriteFailure
from .session import Session
from .sinks import ConsoleSink, format_status

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands:
  /quit             exit the console
  /pause            pause or resume logging of incoming data
  /hex              toggle the hex view
  /stats            toggle statistics in the status line
  /echo             toggle echo of sent data
  /le [LF|CR|CRLF]  cycle or set the line ending for sends
  /filter [TEXT]    only show lines containing TEXT (no TEXT disables)
  /auto             toggle auto-reconnect
  /reconnect        drop the link and reconnect now
  /status           show connection status and statistics
  /send TEXT        send TEXT even if it starts with "/"
  /help             show this help
Anything else is sent to the device."""


class StdinReader:
    """
    Reads lines from a blocking stream on a daemon thread.

    Lines are handed to the event loop through an asyncio.Queue; a
    readline still pending at exit does not keep the process alive.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stdin
        self._queue: Optional[asyncio.Queue] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._thread = threading.Thread(
            target=self._read_loop,
            args=(loop, self._queue),
            daemon=True,
            name="bytestream-stdin",
        )
        self._thread.start()

    async def readline(self) -> Optional[str]:
        """Next line without its newline, or None at end of input."""
        if self._queue is None:
            self.start()
        return await self._queue.get()

    def _read_loop(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> None:
        while True:
            line = self._stream.readline()
            try:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\r\n") if line else None)
            except RuntimeError:
                return
            if not line:
                return


class InteractiveConsole:
    """Maps typed lines onto Session commands."""

    def __init__(self, session: Session, sink: ConsoleSink, reader: Optional[StdinReader] = None):
        self._session = session
        self._sink = sink
        self._reader = reader or StdinReader()
        self._commands: Dict[str, Callable[[str], Optional[bool]]] = {
            "quit": self._cmd_quit,
            "q": self._cmd_quit,
            "exit": self._cmd_quit,
            "pause": lambda arg: self._session.toggle_pause(),
            "hex": lambda arg: self._session.toggle_hex(),
            "stats": lambda arg: self._session.toggle_stats(),
            "echo": lambda arg: self._session.toggle_echo(),
            "le": self._cmd_line_ending,
            "filter": lambda arg: self._session.set_filter(arg),
            "auto": lambda arg: self._session.toggle_auto_reconnect(),
            "reconnect": lambda arg: self._session.force_reconnect(),
            "status": self._cmd_status,
            "send": self._cmd_send,
            "help": self._cmd_help,
        }

    def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the console should exit."""
        if not line.strip():
            return True
        if not line.startswith("/"):
            self._send(line)
            return True

        name, _, arg = line[1:].partition(" ")
        handler = self._commands.get(name.lower())
        if handler is None:
            self._sink.write(f"Unknown command: /{name} (try /help)")
            return True
        try:
            result = handler(arg.strip() if name.lower() != "send" else arg)
        except (ValueError, SessionStateError) as exc:
            self._sink.write(f"Error: {exc}")
            return True
        return result is not False

    async def run(self) -> int:
        """Start the session, process input until /quit or end of input."""
        self._sink.write(f"ByteStream console on {self._session.port} at {self._session.baud} baud. /help for commands.")
        await self._session.start()
        try:
            while True:
                line = await self._reader.readline()
                if line is None:
                    break
                if not self.handle_line(line):
                    break
        finally:
            self._session.shutdown()
        return 0

    def _send(self, text: str) -> None:
        try:
            self._session.send(text)
        except (NotConnected, WriteFailure) as exc:
            # Already published to the sink.
            logger.debug("Send not completed: %s", exc)

    def _cmd_quit(self, arg: str) -> bool:
        return False

    def _cmd_line_ending(self, arg: str) -> None:
        if arg:
            self._session.set_line_ending(arg)
        else:
            self._session.cycle_line_ending()

    def _cmd_status(self, arg: str) -> None:
        self._sink.write(format_status(self._session.get_snapshot()))

    def _cmd_send(self, arg: str) -> None:
        if arg:
            self._send(arg)

    def _cmd_help(self, arg: str) -> None:
        self._sink.write(HELP_TEXT)

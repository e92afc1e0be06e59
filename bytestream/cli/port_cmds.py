"""Port listing and one-shot write commands for bytestream."""

from __future__ import annotations

import asyncio
import logging

from bytestream.config import ConsoleSettings
from bytestream.errors import TransportError
from bytestream.implementations import list_ports

from bytestream.cli import helpers
from bytestream.cli.helpers import _format_port, _port_dict, _print

logger = logging.getLogger(__name__)


def cmd_list(*, json_mode: bool) -> int:
    """List available serial ports."""
    try:
        ports = list_ports()
    except Exception as exc:
        logger.error("Port enumeration failed: %s", exc)
        _print({"error": str(exc)} if json_mode else f"Error listing ports: {exc}", json_mode=json_mode)
        return 1

    if json_mode:
        _print({"ports": [_port_dict(p) for p in ports]}, json_mode=True)
        return 0

    if not ports:
        print("No serial ports found.")
        return 0

    print("Available serial ports:")
    for i, info in enumerate(ports, start=1):
        print(f"  {_format_port(i, info)}")
    return 0


async def _write_once(port: str, payload: bytes, settings: ConsoleSettings) -> int:
    transport = helpers.make_transport_factory(settings)()
    try:
        await asyncio.wait_for(transport.open(port, settings.baud), timeout=settings.connect_timeout)
        return transport.write(payload)
    finally:
        transport.close()


def cmd_write(*, port: str, data: str, newline: bool, settings: ConsoleSettings, json_mode: bool) -> int:
    """Open the port, write data once, close it."""
    payload = data.encode("utf-8")
    if newline:
        payload += b"\n"

    try:
        written = asyncio.run(_write_once(port, payload, settings))
    except asyncio.TimeoutError:
        message = f"Connection timeout after {settings.connect_timeout:g}s"
        _print({"error": message, "port": port} if json_mode else f"Error: {message}", json_mode=json_mode)
        return 1
    except TransportError as exc:
        _print({"error": str(exc), "port": port} if json_mode else f"Error: {exc}", json_mode=json_mode)
        return 1

    if json_mode:
        _print({"port": port, "baud": settings.baud, "data": data, "bytes_written": written}, json_mode=True)
    else:
        print(f"Sent to {port}: {data}")
    return 0

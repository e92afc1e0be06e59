"""Shared utilities for bytestream CLI commands."""

from __future__ import annotations

import json
import logging
import sys
from functools import partial
from typing import Any, Optional

from bytestream.config import ConsoleSettings
from bytestream.implementations import PySerialTransport
from bytestream.interfaces import EventSinkInterface, PortInfo, TransportFactory
from bytestream.models import FilterConfig
from bytestream.session import Session

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _print(obj: Any, *, json_mode: bool) -> None:
    if json_mode:
        print(json.dumps(obj, indent=2, sort_keys=True))
    else:
        if isinstance(obj, str):
            print(obj)
        else:
            print(json.dumps(obj, indent=2, sort_keys=True))


def configure_logging(verbosity: int = 0, log_file: Optional[str] = None) -> None:
    """Route log records to stderr (and optionally a file).

    stdout carries the data stream, so logs never go there.
    -v enables INFO, -vv DEBUG; the default is WARNING.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def make_transport_factory(settings: ConsoleSettings) -> TransportFactory:
    """A factory producing a fresh pyserial handle per connect attempt."""
    return partial(PySerialTransport, lock_dir=settings.lock_dir, use_lock=settings.use_lock)


def build_session(
    port: str,
    settings: ConsoleSettings,
    sink: EventSinkInterface,
    filter_text: Optional[str] = None,
) -> Session:
    config = settings.session_config()
    if filter_text:
        config = config.with_changes(filter=FilterConfig.from_text(filter_text))
    return Session(
        port,
        settings.baud,
        make_transport_factory(settings),
        sink,
        config=config,
        backoff=settings.backoff(),
        connect_timeout=settings.connect_timeout,
        stats_interval=settings.stats_interval,
    )


def _format_port(index: int, info: PortInfo) -> str:
    line = f"{index}. {info.device}"
    if info.description and info.description != "n/a":
        line += f" - {info.description}"
    if info.manufacturer:
        line += f" [{info.manufacturer}]"
    if info.serial_number:
        line += f" (SN: {info.serial_number})"
    if info.vid is not None and info.pid is not None:
        line += f" VID:PID={info.vid:04X}:{info.pid:04X}"
    return line


def _port_dict(info: PortInfo) -> dict[str, Any]:
    return {
        "device": info.device,
        "description": info.description,
        "hwid": info.hwid,
        "manufacturer": info.manufacturer or None,
        "serial_number": info.serial_number or None,
        "vid": info.vid,
        "pid": info.pid,
    }

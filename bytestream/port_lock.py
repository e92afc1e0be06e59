"""
Port locking for ByteStream.

Advisory, cross-platform lock file per serial device so two consoles on
the same machine do not fight over one port. The second opener fails
with a "resource busy" error instead of stealing bytes from the first.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Optional

import portalocker

logger = logging.getLogger(__name__)


def default_lock_dir() -> str:
    run_dir = os.environ.get("BYTESTREAM_RUN_DIR") or tempfile.gettempdir()
    return os.path.join(run_dir, "bytestream-locks")


@dataclass
class PortOwner:
    """Information about the current port owner."""
    pid: int
    process_name: str
    started: datetime
    port: str
    lock_file: str


class PortLock:
    """
    File-based port lock.

    Usage:
        lock = PortLock("/dev/ttyUSB0")
        if lock.acquire():
            # Use the port
            lock.release()
        else:
            print(f"Port in use by: {lock.get_owner()}")
    """

    def __init__(self, port: str, lock_dir: Optional[str] = None):
        self._port = port
        self._lock_dir = lock_dir or default_lock_dir()
        self._lock_file: Optional[IO[str]] = None
        self._lock_path = self.lock_path_for(port, self._lock_dir)
        self._info_path = self._lock_path + ".info"

        Path(self._lock_dir).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def lock_path_for(port: str, lock_dir: str) -> str:
        """Convert port path to lock file path."""
        # /dev/ttyUSB0 -> <lock_dir>/dev_ttyUSB0.lock, COM3 -> COM3.lock
        safe_name = port.strip("/\\").replace("/", "_").replace("\\", "_").replace(":", "_")
        return os.path.join(lock_dir, f"{safe_name}.lock")

    @property
    def held(self) -> bool:
        return self._lock_file is not None

    def acquire(self) -> bool:
        """Take the lock without waiting. Returns False if someone else holds it."""
        if self._lock_file is not None:
            return True
        lock_file = open(self._lock_path, "a+")
        try:
            portalocker.lock(lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
        except (portalocker.LockException, OSError):
            lock_file.close()
            owner = self.get_owner()
            if owner:
                logger.warning(
                    "Port %s locked by PID %d (%s) since %s",
                    self._port, owner.pid, owner.process_name, owner.started.isoformat(),
                )
            else:
                logger.warning("Port %s locked by unknown process", self._port)
            return False

        self._lock_file = lock_file
        self._write_owner_info()
        logger.debug("Acquired lock for %s", self._port)
        return True

    def release(self) -> None:
        """Release the lock. Does nothing if it is not held."""
        lock_file = self._lock_file
        if lock_file is None:
            return
        self._lock_file = None
        try:
            os.unlink(self._info_path)
        except OSError:
            pass
        try:
            portalocker.unlock(lock_file)
        except (portalocker.LockException, OSError) as exc:
            logger.debug("Unlock of %s failed: %s", self._lock_path, exc)
        finally:
            lock_file.close()
        logger.debug("Released lock for %s", self._port)

    def get_owner(self) -> Optional[PortOwner]:
        """Get information about the current lock owner."""
        try:
            with open(self._info_path, "r", encoding="utf-8") as f:
                info = json.load(f)
            return PortOwner(
                pid=int(info["pid"]),
                process_name=info["process_name"],
                started=datetime.fromisoformat(info["started"]),
                port=info["port"],
                lock_file=self._lock_path,
            )
        except (OSError, ValueError, KeyError):
            return None

    def _write_owner_info(self) -> None:
        info = {
            "pid": os.getpid(),
            "process_name": " ".join(sys.argv[:3])[:50] or f"python:{os.getpid()}",
            "started": datetime.now().isoformat(),
            "port": self._port,
        }
        # Atomic write to avoid corrupt JSON on crash.
        tmp_path = f"{self._info_path}.tmp.{os.getpid()}"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(info, f, indent=2)
        os.replace(tmp_path, self._info_path)

    def __enter__(self) -> "PortLock":
        if not self.acquire():
            raise RuntimeError(f"Could not acquire lock for {self._port}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False

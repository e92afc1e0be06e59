"""
Error types raised by ByteStream.

Transport drivers raise TransportError. The session translates those into
the connection-level types below and never lets a driver exception reach
its caller.
"""

from __future__ import annotations

from typing import Optional


class BytestreamError(Exception):
    """Base class for all ByteStream errors."""


class ConfigError(BytestreamError):
    """Invalid configuration file, environment value or option."""


class TransportError(BytestreamError):
    """Failure reported by a transport driver."""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


class ConnectTimeout(TransportError):
    """Opening the transport did not finish within the connect timeout."""


class TransientTransportError(TransportError):
    """Open failure worth retrying with backoff."""


class PermanentTransportError(TransportError):
    """Open failure that disables auto-reconnect."""


class NotConnected(BytestreamError):
    """A send was requested while no transport handle is open."""


class WriteFailure(BytestreamError):
    """The transport rejected a write. Connection state is unchanged."""


class SessionStateError(BytestreamError):
    """An operation was called in a state that does not allow it."""


class SessionClosed(SessionStateError):
    """The session was shut down."""

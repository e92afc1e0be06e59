"""
Open-failure classification.

Decides whether a failed open is worth retrying. Only a small fixed set
of signals is treated as permanent: the port is not ours to open
(permissions, another owner holds it) or the device node is gone for
good. Everything else is transient.
"""

from __future__ import annotations

import errno
from typing import Optional

from .errors import (
    ConnectTimeout,
    PermanentTransportError,
    TransientTransportError,
    TransportError,
)

PERMANENT_ERRNOS = frozenset({
    errno.EACCES,
    errno.EPERM,
    errno.EBUSY,
    errno.ENODEV,
})

# Matched case-insensitively against the error text. Covers pyserial's
# messages on Linux, macOS and Windows.
PERMANENT_MARKERS = (
    "access denied",
    "access is denied",
    "permission denied",
    "eacces",
    "eperm",
    "resource busy",
    "ebusy",
    "exclusively lock",
    "no such device",
)


def is_permanent(message: str, err_no: Optional[int] = None) -> bool:
    """Check an error signal against the permanent-failure markers."""
    if err_no is not None and err_no in PERMANENT_ERRNOS:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in PERMANENT_MARKERS)


def classify(error: BaseException) -> TransportError:
    """
    Map an open failure to TransientTransportError or PermanentTransportError.

    Already-classified errors pass through unchanged. Timeouts are always
    transient.
    """
    if isinstance(error, (TransientTransportError, PermanentTransportError)):
        return error
    if isinstance(error, ConnectTimeout):
        return TransientTransportError(str(error) or "Connection timeout")

    err_no = getattr(error, "errno", None)
    message = str(error) or error.__class__.__name__
    if is_permanent(message, err_no):
        return PermanentTransportError(message, errno=err_no)
    return TransientTransportError(message, errno=err_no)

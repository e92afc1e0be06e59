"""
Line framing and hex formatting for the inbound byte stream.

The framer splits on a single delimiter and keeps any incomplete tail
until a later chunk finishes it or the connection goes away.
"""

from __future__ import annotations

from typing import List, Optional

DEFAULT_DELIMITER = b"\n"

# Guard against a peer that never sends a delimiter.
MAX_PENDING_BYTES = 64 * 1024


def decode_line(raw: bytes) -> str:
    """Decode one framed line and trim surrounding whitespace."""
    return raw.decode("utf-8", errors="replace").strip()


class LineFramer:
    """
    Delimiter-based line splitter.

    Features:
    - Emits one trimmed text line per complete delimiter-terminated line
    - Drops lines that are empty after trimming
    - Buffers partial trailing data across chunks
    - Flushes the buffered tail on demand (connection closed)
    - Forces out an over-long tail so the buffer stays bounded
    """

    def __init__(self, delimiter: bytes = DEFAULT_DELIMITER, max_pending: int = MAX_PENDING_BYTES):
        if not delimiter:
            raise ValueError("Delimiter must be non-empty")
        self._delimiter = delimiter
        self._max_pending = max_pending
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet framed."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[str]:
        """Add a chunk and return the lines it completes."""
        self._buffer.extend(chunk)
        lines: List[str] = []
        while True:
            idx = self._buffer.find(self._delimiter)
            if idx < 0:
                break
            raw = bytes(self._buffer[:idx])
            del self._buffer[:idx + len(self._delimiter)]
            line = decode_line(raw)
            if line:
                lines.append(line)

        if len(self._buffer) > self._max_pending:
            line = decode_line(bytes(self._buffer))
            self._buffer.clear()
            if line:
                lines.append(line)
        return lines

    def flush(self) -> Optional[str]:
        """Return the buffered tail as a line, or None if nothing but whitespace is pending."""
        if not self._buffer:
            return None
        raw = bytes(self._buffer)
        self._buffer.clear()
        return decode_line(raw) or None

    def reset(self) -> None:
        self._buffer.clear()


def format_hex(data: bytes, max_bytes: Optional[int] = None) -> str:
    """
    Format bytes as uppercase space-separated pairs.

    With ``max_bytes`` the output is cut and ends with ``...``.
    """
    if max_bytes is not None and len(data) > max_bytes:
        shown = " ".join(f"{b:02X}" for b in data[:max(0, max_bytes - 1)])
        return f"{shown} ..." if shown else "..."
    return " ".join(f"{b:02X}" for b in data)

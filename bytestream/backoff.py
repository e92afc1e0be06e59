"""
Reconnect delay policy.

Exponential growth from a base delay, with the exponent capped so the
delay plateaus, and an absolute ceiling. Deterministic, no jitter.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_BASE_DELAY = 1.0
DEFAULT_CAP_EXPONENT = 5
DEFAULT_MAX_DELAY = 30.0


@dataclass(frozen=True)
class BackoffScheduler:
    """
    Computes the wait before reconnect attempt N (N starts at 1).

        delay(n) = min(base * 2 ** min(n - 1, cap_exponent), max_delay)
    """
    base_delay: float = DEFAULT_BASE_DELAY
    cap_exponent: int = DEFAULT_CAP_EXPONENT
    max_delay: float = DEFAULT_MAX_DELAY

    def __post_init__(self) -> None:
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if self.cap_exponent < 0:
            raise ValueError("cap_exponent must be non-negative")

    def delay(self, attempt: int) -> float:
        """Delay in seconds before the given attempt."""
        if attempt < 1:
            raise ValueError(f"Attempt numbering starts at 1, got {attempt}")
        exponent = min(attempt - 1, self.cap_exponent)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def delay_ms(self, attempt: int) -> int:
        return int(round(self.delay(attempt) * 1000))

"""
Substring filter for inbound lines.
"""

from __future__ import annotations

from .models import FilterConfig


class MessageFilter:
    """
    Case-insensitive substring predicate.

    A line passes when filtering is disabled, or when its lowercase form
    contains the lowercase filter text.
    """

    def __init__(self, config: FilterConfig = FilterConfig()):
        self._config = config
        self._needle = config.text.lower()

    @property
    def config(self) -> FilterConfig:
        return self._config

    def update(self, text: str) -> FilterConfig:
        """Replace the filter text. Empty text disables filtering."""
        self._config = FilterConfig.from_text(text)
        self._needle = self._config.text.lower()
        return self._config

    def matches(self, line: str) -> bool:
        if not self._config.enabled or not self._needle:
            return True
        return self._needle in line.lower()

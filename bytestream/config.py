"""
Console settings.

Sources, lowest to highest priority: defaults, a YAML file, environment
variables (BYTESTREAM_<FIELD>), then explicit overrides from the CLI.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from .backoff import BackoffScheduler
from .errors import ConfigError
from .models import LineEnding, SessionConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "BYTESTREAM_"
CONFIG_ENV = "BYTESTREAM_CONFIG"
USER_CONFIG_PATH = os.path.join("~", ".config", "bytestream", "config.yaml")


@dataclass(frozen=True)
class ConsoleSettings:
    baud: int = 9600
    connect_timeout: float = 5.0
    backoff_base: float = 1.0
    backoff_cap_exponent: int = 5
    backoff_max: float = 30.0
    auto_reconnect: bool = True
    show_hex: bool = True
    show_stats: bool = True
    echo: bool = False
    line_ending: LineEnding = LineEnding.LF
    stats_interval: Optional[float] = 1.0
    lock_dir: Optional[str] = None
    use_lock: bool = True

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            auto_reconnect=self.auto_reconnect,
            echo=self.echo,
            show_hex=self.show_hex,
            show_stats=self.show_stats,
            line_ending=self.line_ending,
        )

    def backoff(self) -> BackoffScheduler:
        return BackoffScheduler(
            base_delay=self.backoff_base,
            cap_exponent=self.backoff_cap_exponent,
            max_delay=self.backoff_max,
        )

    def merged(self, **overrides: Any) -> "ConsoleSettings":
        """Apply overrides, skipping those left as None."""
        changes = {k: _coerce(k, v) for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_optional_float(value: Any) -> Optional[float]:
    if value is None or str(value).strip().lower() in ("", "none", "off"):
        return None
    return float(value)


def _parse_line_ending(value: Any) -> LineEnding:
    if isinstance(value, LineEnding):
        return value
    return LineEnding.parse(str(value))


def _parse_positive_int(value: Any) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"must be positive, got {number}")
    return number


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "baud": _parse_positive_int,
    "connect_timeout": float,
    "backoff_base": float,
    "backoff_cap_exponent": int,
    "backoff_max": float,
    "auto_reconnect": _parse_bool,
    "show_hex": _parse_bool,
    "show_stats": _parse_bool,
    "echo": _parse_bool,
    "line_ending": _parse_line_ending,
    "stats_interval": _parse_optional_float,
    "lock_dir": lambda v: None if v is None else os.path.expanduser(str(v)),
    "use_lock": _parse_bool,
}

_FIELD_NAMES = frozenset(f.name for f in fields(ConsoleSettings))


def _coerce(name: str, value: Any) -> Any:
    if name not in _FIELD_NAMES:
        raise ConfigError(f"Unknown setting: {name}")
    try:
        return _CONVERTERS[name](value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {exc}") from exc


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """$BYTESTREAM_CONFIG, else the per-user file when it exists."""
    env = os.environ if environ is None else environ
    explicit = env.get(CONFIG_ENV)
    if explicit:
        return os.path.expanduser(explicit)
    user_path = os.path.expanduser(USER_CONFIG_PATH)
    if os.path.exists(user_path):
        return user_path
    return None


def read_config_file(path: str) -> Dict[str, Any]:
    """Load a YAML mapping of setting names (dashes or underscores) to values."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for name in _FIELD_NAMES:
        key = ENV_PREFIX + name.upper()
        if key in env:
            values[name] = env[key]
    return values


def load_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ConsoleSettings:
    """Build settings from defaults, the config file and the environment."""
    settings = ConsoleSettings()

    config_path = path or default_config_path(environ)
    if config_path:
        logger.debug("Loading settings from %s", config_path)
        file_values = read_config_file(config_path)
        settings = replace(settings, **{k: _coerce(k, v) for k, v in file_values.items()})

    env_values = settings_from_env(environ)
    if env_values:
        settings = replace(settings, **{k: _coerce(k, v) for k, v in env_values.items()})

    return settings

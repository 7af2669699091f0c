"""Slotpool configuration loading and validation.

Reads slotpool.toml from a path, resolves ``${VAR}`` references, parses all
sections, and returns a validated AppConfig dataclass.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from slotpool.models import EventTypeConfig

DEFAULT_CONFIG_FILENAME = "slotpool.toml"
DEFAULT_TIMEOUT_S = 30.0

# Pattern matching ${VAR_NAME}; supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigurationError(Exception):
    """Raised when configuration is missing, malformed, or names an unsupported policy."""


@dataclass
class LoggingConfig:
    """Logging configuration from [slotpool.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class AppConfig:
    """Parsed and validated slotpool configuration."""

    base_url: str
    timeout_s: float = DEFAULT_TIMEOUT_S
    timezone: str = "UTC"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    event_type: EventTypeConfig | None = None


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigurationError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigurationError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigurationError(
            f"Invalid slotpool.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    return LoggingConfig(level=log_level, format=log_format, log_root=section.get("log_root"))


def parse_event_type(raw: dict[str, Any]) -> EventTypeConfig:
    """Validate an ``[event_type]`` table, converting pydantic errors to ConfigurationError."""
    from pydantic import ValidationError

    from slotpool.models import EventTypeConfig

    try:
        return EventTypeConfig.model_validate(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'event_type'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid [event_type] section: {problems}") from exc


def load_config(config_path: Path) -> AppConfig:
    """Load and validate a slotpool.toml.

    Parameters
    ----------
    config_path:
        Either the TOML file itself or a directory containing ``slotpool.toml``.

    Raises
    ------
    ConfigurationError
        If the file is missing, contains invalid TOML, or lacks required fields.
    """
    toml_path = config_path / DEFAULT_CONFIG_FILENAME if config_path.is_dir() else config_path

    if not toml_path.exists():
        raise ConfigurationError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {toml_path}: {exc}") from exc

    data = resolve_env_vars(data)

    # --- [slotpool] section (required) ---
    section = data.get("slotpool")
    if not isinstance(section, dict):
        raise ConfigurationError("Missing [slotpool] section in config")

    base_url = section.get("base_url")
    if not isinstance(base_url, str) or not base_url.strip():
        raise ConfigurationError("Missing required field: slotpool.base_url")

    try:
        timeout_s = float(section.get("timeout_s", DEFAULT_TIMEOUT_S))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("slotpool.timeout_s must be a number") from exc
    if timeout_s <= 0:
        raise ConfigurationError(
            f"Invalid slotpool.timeout_s: {timeout_s!r}. Must be a positive number."
        )

    timezone = str(section.get("timezone", "UTC")).strip() or "UTC"

    logging_section = section.get("logging", {})
    if not isinstance(logging_section, dict):
        raise ConfigurationError("slotpool.logging must be a TOML table")

    # --- [event_type] section (optional; the CLI can supply users/policy) ---
    event_type: EventTypeConfig | None = None
    raw_event_type = data.get("event_type")
    if raw_event_type is not None:
        if not isinstance(raw_event_type, dict):
            raise ConfigurationError("event_type must be a TOML table")
        event_type = parse_event_type(raw_event_type)

    return AppConfig(
        base_url=base_url.strip().rstrip("/"),
        timeout_s=timeout_s,
        timezone=timezone,
        logging=_parse_logging(logging_section),
        event_type=event_type,
    )

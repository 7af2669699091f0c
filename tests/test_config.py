"""Tests for slotpool configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from slotpool.config import (
    AppConfig,
    ConfigurationError,
    LoggingConfig,
    load_config,
    parse_event_type,
    resolve_env_vars,
)
from slotpool.models import SchedulingPolicy

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FULL_TOML = """\
[slotpool]
base_url = "https://cal.example.com/"
timeout_s = 12.5
timezone = "Europe/Berlin"

[slotpool.logging]
level = "debug"
format = "JSON"
log_root = "/var/log/slotpool"

[event_type]
id = 42
length = 30
slot_interval = 15
minimum_booking_notice = 120
before_buffer = 5
after_buffer = 10
scheduling_type = "ROUND_ROBIN"
users = ["alice", "bob"]
"""

MINIMAL_TOML = """\
[slotpool]
base_url = "https://cal.example.com"
"""


def _write_toml(tmp_path: Path, content: str, filename: str = "slotpool.toml") -> Path:
    """Write *content* to a TOML file inside *tmp_path* and return the directory."""
    (tmp_path / filename).write_text(content)
    return tmp_path


# ---------------------------------------------------------------------------
# Happy-path tests
# ---------------------------------------------------------------------------


def test_load_full_config(tmp_path: Path):
    """All sections present: every field is parsed correctly."""
    cfg = load_config(_write_toml(tmp_path, FULL_TOML))

    assert isinstance(cfg, AppConfig)
    assert cfg.base_url == "https://cal.example.com"
    assert cfg.timeout_s == 12.5
    assert cfg.timezone == "Europe/Berlin"
    assert cfg.logging == LoggingConfig(level="DEBUG", format="json", log_root="/var/log/slotpool")

    event_type = cfg.event_type
    assert event_type is not None
    assert event_type.id == 42
    assert event_type.slot_interval == 15
    assert event_type.minimum_booking_notice == 120
    assert event_type.before_buffer == 5
    assert event_type.after_buffer == 10
    assert event_type.scheduling_type is SchedulingPolicy.round_robin
    assert event_type.users == ["alice", "bob"]


def test_load_minimal_config(tmp_path: Path):
    """Only base_url is given: everything else falls back to defaults."""
    cfg = load_config(_write_toml(tmp_path, MINIMAL_TOML))

    assert cfg.base_url == "https://cal.example.com"
    assert cfg.timeout_s == 30.0
    assert cfg.timezone == "UTC"
    assert cfg.logging == LoggingConfig()
    assert cfg.event_type is None


def test_load_config_accepts_file_path(tmp_path: Path):
    path = tmp_path / "custom.toml"
    path.write_text(MINIMAL_TOML)
    assert load_config(path).base_url == "https://cal.example.com"


def test_env_var_substitution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SLOTPOOL_HOST", "cal.internal")
    toml = '[slotpool]\nbase_url = "https://${SLOTPOOL_HOST}/"\n'
    cfg = load_config(_write_toml(tmp_path, toml))
    assert cfg.base_url == "https://cal.internal"


# ---------------------------------------------------------------------------
# Error cases
# ---------------------------------------------------------------------------


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="Config file not found"):
        load_config(tmp_path)


def test_invalid_toml(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="Invalid TOML"):
        load_config(_write_toml(tmp_path, "[slotpool\nbase_url = "))


def test_missing_section(tmp_path: Path):
    with pytest.raises(ConfigurationError, match=r"Missing \[slotpool\] section"):
        load_config(_write_toml(tmp_path, "[other]\nkey = 1\n"))


def test_missing_base_url(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="slotpool.base_url"):
        load_config(_write_toml(tmp_path, "[slotpool]\ntimezone = 'UTC'\n"))


@pytest.mark.parametrize("value", ["0", "-1", '"soon"'])
def test_invalid_timeout(tmp_path: Path, value: str):
    toml = f'[slotpool]\nbase_url = "https://x"\ntimeout_s = {value}\n'
    with pytest.raises(ConfigurationError, match="timeout_s"):
        load_config(_write_toml(tmp_path, toml))


def test_invalid_log_format(tmp_path: Path):
    toml = MINIMAL_TOML + '\n[slotpool.logging]\nformat = "xml"\n'
    with pytest.raises(ConfigurationError, match="logging.format"):
        load_config(_write_toml(tmp_path, toml))


def test_unresolved_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("SLOTPOOL_MISSING", raising=False)
    toml = '[slotpool]\nbase_url = "${SLOTPOOL_MISSING}"\n'
    with pytest.raises(ConfigurationError, match="SLOTPOOL_MISSING"):
        load_config(_write_toml(tmp_path, toml))


def test_unknown_policy_in_event_type(tmp_path: Path):
    toml = MINIMAL_TOML + '\n[event_type]\nid = 1\nlength = 30\nusers = ["a"]\n'
    toml += 'scheduling_type = "managed"\n'
    with pytest.raises(ConfigurationError, match="scheduling_type"):
        load_config(_write_toml(tmp_path, toml))


def test_event_type_without_users(tmp_path: Path):
    toml = MINIMAL_TOML + "\n[event_type]\nid = 1\nlength = 30\n"
    with pytest.raises(ConfigurationError, match=r"Invalid \[event_type\] section: users"):
        load_config(_write_toml(tmp_path, toml))


# ---------------------------------------------------------------------------
# Helpers under test
# ---------------------------------------------------------------------------


def test_resolve_env_vars_walks_nested_values(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SLOTPOOL_USER", "alice")
    raw = {"users": ["${SLOTPOOL_USER}", "bob"], "length": 30, "nested": {"x": "${SLOTPOOL_USER}"}}
    assert resolve_env_vars(raw) == {
        "users": ["alice", "bob"],
        "length": 30,
        "nested": {"x": "alice"},
    }


def test_parse_event_type_reports_every_problem():
    with pytest.raises(ConfigurationError) as exc_info:
        parse_event_type({"id": -1, "length": 0, "users": ["a"]})
    message = str(exc_info.value)
    assert "id:" in message
    assert "length:" in message

"""CLI for slotpool: compute bookable slots from the command line."""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import date
from pathlib import Path

import click

from slotpool import __version__
from slotpool.client import AvailabilityClient
from slotpool.config import AppConfig, ConfigurationError, load_config, parse_event_type
from slotpool.core.logging import configure_logging
from slotpool.core.telemetry import init_telemetry
from slotpool.models import EventTypeConfig
from slotpool.orchestrator import SlotsQuery, SlotsResult, SlotsState

DEFAULT_CONFIG_PATH = Path("slotpool.toml")


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}") from exc


def _resolve_event_type(
    config: AppConfig,
    users: tuple[str, ...],
    policy: str | None,
) -> EventTypeConfig:
    """Apply command-line overrides on top of the configured ``[event_type]``."""
    if config.event_type is None:
        raise ConfigurationError("Missing [event_type] section in config")
    overrides = config.event_type.model_dump()
    if users:
        overrides["users"] = list(users)
    if policy is not None:
        overrides["scheduling_type"] = policy
    return parse_event_type(overrides)


async def _compute(config: AppConfig, event_type: EventTypeConfig, day: date) -> SlotsResult:
    async with AvailabilityClient(config.base_url, timeout_s=config.timeout_s) as client:
        query = SlotsQuery(client, event_type, timezone=config.timezone)
        return await query.refresh(day)


def _echo_result(result: SlotsResult, *, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps([slot.to_payload() for slot in result.slots], indent=2))
        return
    if not result.slots:
        click.echo("No available slots")
        return
    for slot in result.slots:
        click.echo(f"{slot.time.isoformat()}  {', '.join(slot.attendees)}")


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """slotpool: pooled meeting availability for one or more calendar users."""


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    help="Path to slotpool.toml (or a directory containing it)",
)
@click.option("--date", "day_raw", required=True, help="Day to query (YYYY-MM-DD)")
@click.option("--user", "users", multiple=True, help="Participant username (repeatable)")
@click.option("--policy", default=None, help="Scheduling policy: single, collective, round_robin")
@click.option("--json", "as_json", is_flag=True, help="Print slots as a JSON array")
def slots(
    config_path: Path,
    day_raw: str,
    users: tuple[str, ...],
    policy: str | None,
    as_json: bool,
) -> None:
    """Print the bookable slots for a day."""
    day = _parse_day(day_raw)
    try:
        config = load_config(config_path)
        event_type = _resolve_event_type(config, users, policy)
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    log_root = Path(config.logging.log_root) if config.logging.log_root else None
    configure_logging(level=config.logging.level, fmt=config.logging.format, log_root=log_root)
    init_telemetry("slotpool-cli")

    result = asyncio.run(_compute(config, event_type, day))

    if result.state is SlotsState.error:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)
    _echo_result(result, as_json=as_json)


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    help="Path to slotpool.toml (or a directory containing it)",
)
def check(config_path: Path) -> None:
    """Validate a config file and print a summary."""
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"base_url: {config.base_url}")
    click.echo(f"timezone: {config.timezone}")
    event_type = config.event_type
    if event_type is None:
        click.echo("event_type: (none)")
        return
    policy = event_type.scheduling_type.value if event_type.scheduling_type else "(none)"
    click.echo(
        f"event_type: id={event_type.id} length={event_type.length}m "
        f"interval={int(event_type.frequency.total_seconds() // 60)}m "
        f"buffers={event_type.before_buffer}m/{event_type.after_buffer}m "
        f"notice={event_type.minimum_booking_notice}m policy={policy}"
    )
    click.echo(f"users: {', '.join(event_type.users)}")


if __name__ == "__main__":
    cli()

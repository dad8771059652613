"""Click CLI commands for tableturn."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tableturn.auth import CredentialStore
from tableturn.config import load_engine_config
from tableturn.duration import estimate_duration_minutes
from tableturn.engine import open_engine
from tableturn.errors import TableturnError
from tableturn.lifecycle import LifecycleState
from tableturn.models import EngineConfig
from tableturn.notifications import (
    display_cleared,
    display_day_view,
    display_extend_result,
    display_timeline_edit,
    format_remaining,
    notify_expired,
)
from tableturn.timemodel import DAY_MINUTES, minutes_to_time, time_to_minutes

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load(config_file: str) -> tuple[EngineConfig, str]:
    """Config + API key, or exit with the error printed."""
    try:
        config = load_engine_config(config_file)
        api_key = CredentialStore().load_api_key(config.records.api_key_env)
    except TableturnError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    return config, api_key


def _clock_minute(value: str) -> int:
    """HH:MM to minutes; "24:00" is midnight at the end of the day."""
    if value.strip() == "24:00":
        return DAY_MINUTES
    return time_to_minutes(value)


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except TableturnError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """tableturn: table occupancy, extensions and cascades for the floor."""
    _setup_logging(verbose)


@main.command()
@click.option("--remove", is_flag=True, help="Delete the stored API key instead.")
def configure(remove: bool) -> None:
    """Store the record-store API key in the OS keyring."""
    credentials = CredentialStore()
    if remove:
        credentials.delete_api_key()
        console.print("[green]API key removed.[/green]")
        return

    api_key = click.prompt("Record store API key", hide_input=True)
    credentials.store_api_key(api_key)
    console.print("[green]API key stored.[/green]")


@main.command()
@click.argument("party_size", type=click.IntRange(min=0))
def estimate(party_size: int) -> None:
    """Print the default seating duration for a party size."""
    minutes = estimate_duration_minutes(party_size)
    console.print(f"Party of {party_size}: [bold]{minutes} min[/bold]")


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.argument("date")
@click.option("--today", default=None, help="Override today's date (YYYY-MM-DD).")
def day(config_file: str, date: str, today: str | None) -> None:
    """Show the floor for an operating date, spillovers included."""
    config, api_key = _load(config_file)

    async def _day() -> None:
        async with open_engine(config, date, api_key=api_key) as engine:
            display_day_view(date, engine.day_view(date, today=today))

    _run(_day())


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.argument("reservation_id")
@click.argument("date")
@click.option("--now", "now_time", default=None, help="Current time as HH:MM (default: clock).")
@click.option("--after-midnight", is_flag=True, help="--now falls on the next calendar day.")
def extend(
    config_file: str, reservation_id: str, date: str, now_time: str | None, after_midnight: bool
) -> None:
    """Extend a seated reservation and push back whoever it runs into."""
    config, api_key = _load(config_file)
    now_minute = None
    if now_time is not None:
        now_minute = time_to_minutes(now_time) + (DAY_MINUTES if after_midnight else 0)

    async def _extend() -> None:
        async with open_engine(config, date, api_key=api_key) as engine:
            result = await engine.extend(reservation_id, now_minute)
            display_extend_result(result)

    _run(_extend())


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.argument("reservation_id")
@click.argument("date")
@click.option("--start", "start_time", default=None, help="New start as HH:MM.")
@click.option("--end", "end_time", default=None, help="New end as HH:MM (24:00 for midnight).")
@click.option("--table", "table_id", default=None, help="Timeline row to edit in (default: first table).")
@click.option("--now", "now_time", default=None, help="Current time as HH:MM (default: clock).")
def resize(
    config_file: str,
    reservation_id: str,
    date: str,
    start_time: str | None,
    end_time: str | None,
    table_id: str | None,
    now_time: str | None,
) -> None:
    """Drag one edge of a reservation's block on the timeline."""
    if (start_time is None) == (end_time is None):
        raise click.UsageError("Give exactly one of --start or --end.")
    config, api_key = _load(config_file)
    now_minute = _clock_minute(now_time) if now_time is not None else None

    async def _resize() -> None:
        async with open_engine(config, date, api_key=api_key) as engine:
            if end_time is not None:
                edit = await engine.resize_end(
                    reservation_id, _clock_minute(end_time), now_minute, table_id=table_id
                )
            else:
                edit = await engine.resize_start(
                    reservation_id, _clock_minute(start_time), now_minute, table_id=table_id
                )
            display_timeline_edit(edit)

    _run(_resize())


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.argument("reservation_id")
@click.argument("date")
@click.argument("start_time")
@click.option("--table", "table_id", default=None, help="Timeline row to edit in (default: first table).")
@click.option("--now", "now_time", default=None, help="Current time as HH:MM (default: clock).")
def move(
    config_file: str,
    reservation_id: str,
    date: str,
    start_time: str,
    table_id: str | None,
    now_time: str | None,
) -> None:
    """Move a reservation's block to start at START_TIME (HH:MM)."""
    config, api_key = _load(config_file)
    now_minute = _clock_minute(now_time) if now_time is not None else None

    async def _move() -> None:
        async with open_engine(config, date, api_key=api_key) as engine:
            edit = await engine.move(
                reservation_id, _clock_minute(start_time), now_minute, table_id=table_id
            )
            display_timeline_edit(edit)

    _run(_move())


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.argument("reservation_id")
@click.argument("date")
def clear(config_file: str, reservation_id: str, date: str) -> None:
    """Mark a seated party as gone."""
    config, api_key = _load(config_file)

    async def _clear() -> None:
        async with open_engine(config, date, api_key=api_key) as engine:
            display_cleared(await engine.clear(reservation_id))

    _run(_clear())


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.argument("reservation_id")
@click.argument("date")
def watch(config_file: str, reservation_id: str, date: str) -> None:
    """Count down a seated party and ask to clear or extend when time is up."""
    config, api_key = _load(config_file)

    async def _watch() -> None:
        async with open_engine(config, date, api_key=api_key) as engine:
            lifecycle = engine.lifecycle(reservation_id)
            reservation = lifecycle.reservation
            window = lifecycle.window()

            table = Table(show_header=False, box=None, padding=(0, 2))
            table.add_column(style="bold")
            table.add_column()
            table.add_row("Guest", reservation.guest_name or reservation.id)
            table.add_row("Tables", ", ".join(reservation.table_ids) or "-")
            table.add_row("Seated", minutes_to_time(window.start_minutes))
            table.add_row("Until", minutes_to_time(window.end_minutes))
            console.print(Panel(table, title="Seated"))

            while lifecycle.state is not LifecycleState.CLEARED:
                with console.status("") as status:
                    def _on_tick(remaining: float) -> None:
                        status.update(f"Time left: [bold]{format_remaining(remaining)}[/bold]")

                    await lifecycle.start(_on_tick)

                if lifecycle.state is not LifecycleState.EXPIRED:
                    console.print("[yellow]Reservation is no longer seated.[/yellow]")
                    return

                notify_expired(reservation)
                choice = await asyncio.to_thread(
                    click.prompt,
                    "Time is up. Clear the table or extend?",
                    type=click.Choice(["clear", "extend"]),
                    default="clear",
                )
                if choice == "clear":
                    display_cleared(await lifecycle.clear())
                else:
                    display_extend_result(await lifecycle.extend())

    _run(_watch())

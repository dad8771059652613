"""Floor output: Rich console tables + macOS notification on expiry."""

from __future__ import annotations

import subprocess
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tableturn.models import (
    AnyReservation,
    CascadeResult,
    DayEntry,
    ExtendResult,
    ReservationKind,
    TimelineEdit,
)
from tableturn.timemodel import DAY_MINUTES, minutes_to_time

console = Console()

_STATUS_STYLES = {
    "waiting": "yellow",
    "confirmed": "cyan",
    "arrived": "green",
}


def format_remaining(seconds: float) -> str:
    """Countdown label: "1h 5m", "5m" or "30s"."""
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m"
    return f"{secs}s"


def _format_end(end_minutes: int) -> str:
    if end_minutes > DAY_MINUTES:
        return f"{minutes_to_time(end_minutes - DAY_MINUTES)} (+1d)"
    return minutes_to_time(end_minutes)


def display_day_view(date: str, entries: list[DayEntry]) -> None:
    if not entries:
        console.print(f"[yellow]No reservations on {date}.[/yellow]")
        return

    table = Table(title=f"Floor {date}")
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Guest")
    table.add_column("Party", justify="right")
    table.add_column("Tables")
    table.add_column("Status")
    table.add_column("Note")

    for entry in entries:
        r = entry.reservation
        status = entry.display_status
        style = _STATUS_STYLES.get(status, "white")
        note = f"from {entry.source_date}" if entry.spillover else ""
        if r.kind == ReservationKind.EVENT:
            note = ", ".join(n for n in (note, "event") if n)
        table.add_row(
            minutes_to_time(entry.window.start_minutes),
            _format_end(entry.window.end_minutes),
            r.guest_name or r.id,
            str(r.party_size),
            ", ".join(r.table_ids) or "-",
            f"[{style}]{status}[/{style}]",
            note,
        )

    console.print(table)


def _add_shift_rows(table: Table, cascade: CascadeResult) -> None:
    for shift in cascade.shifts:
        if shift.ok:
            table.add_row(
                f"Shifted {shift.reservation_id}",
                f"{minutes_to_time(shift.old_window.start_minutes)} -> {shift.new_time}",
            )
        else:
            table.add_row(f"Shift {shift.reservation_id}", f"[red]failed: {shift.error}[/red]")


def display_extend_result(result: ExtendResult) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()

    table.add_row("Reservation", result.reservation_id)
    table.add_row("Previous end", _format_end(result.previous_end))
    table.add_row("New end", _format_end(result.extended_end))
    _add_shift_rows(table, result.cascade)

    border = "yellow" if result.cascade.failed else "green"
    console.print(Panel(table, title="SEATING EXTENDED", border_style=border))


def display_timeline_edit(edit: TimelineEdit) -> None:
    if not edit.changed:
        console.print(f"[yellow]{edit.reservation_id} stays where it is.[/yellow]")
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()

    old, new = edit.old_window, edit.new_window
    table.add_row("Reservation", edit.reservation_id)
    table.add_row("Was", f"{minutes_to_time(old.start_minutes)}-{_format_end(old.end_minutes)}")
    table.add_row("Now", f"{minutes_to_time(new.start_minutes)}-{_format_end(new.end_minutes)}")
    _add_shift_rows(table, edit.cascade)
    if edit.error:
        table.add_row("Record", f"[red]time not saved: {edit.error}[/red]")

    border = "yellow" if edit.error or edit.cascade.failed else "green"
    console.print(Panel(table, title="TIMELINE UPDATED", border_style=border))


def display_cleared(reservation: AnyReservation) -> None:
    console.print(
        f"[green]Cleared {reservation.guest_name or reservation.id}[/green] "
        f"(tables {', '.join(reservation.table_ids) or '-'})"
    )


def notify_expired(reservation: AnyReservation) -> None:
    _macos_notify(
        "Table time is up",
        f"{reservation.guest_name or reservation.id}: clear or extend?",
    )


def _macos_notify(title: str, message: str) -> None:
    """Send a macOS notification via osascript."""
    if sys.platform != "darwin":
        return
    try:
        script = f'display notification "{message}" with title "{title}"'
        subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            timeout=5,
        )
    except Exception:
        pass  # Non-critical

"""Wall-clock <-> minute-of-day conversion and operating-day helpers.

An operating day spans minutes [0, 1440). Adjusted end boundaries may run up
to 2880: anything past 1440 is occupancy that spills into the next calendar
date while the reservation stays filed under its own operating date.
"""

from __future__ import annotations

from datetime import date, timedelta

DAY_MINUTES = 1440
MAX_MINUTES = 2 * DAY_MINUTES


def _to_int(part: str) -> int:
    try:
        return int(part.strip())
    except ValueError:
        return 0


def time_to_minutes(value: str | None) -> int:
    """Convert "HH:MM" to minutes after midnight.

    Never raises. Missing or non-numeric components count as zero, hours are
    taken mod 24 and minutes mod 60, so the result is always in [0, 1440).
    """
    parts = str(value or "").split(":")
    hours = _to_int(parts[0]) if parts else 0
    minutes = _to_int(parts[1]) if len(parts) > 1 else 0
    return (hours % 24) * 60 + (minutes % 60)


def minutes_to_time(minutes: int) -> str:
    """Convert minutes after midnight to zero-padded "HH:MM"."""
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def spills_over(end_minutes: int) -> bool:
    """True when an end boundary runs past midnight into the next day."""
    return end_minutes > DAY_MINUTES


def date_key(day: date) -> str:
    return day.isoformat()


def _shift_key(key: str, days: int) -> str | None:
    try:
        return (date.fromisoformat(key) + timedelta(days=days)).isoformat()
    except (TypeError, ValueError):
        return None


def previous_date_key(key: str) -> str | None:
    """The operating date before `key`, or None when `key` is not YYYY-MM-DD."""
    return _shift_key(key, -1)


def next_date_key(key: str) -> str | None:
    """The operating date after `key`, or None when `key` is not YYYY-MM-DD."""
    return _shift_key(key, 1)

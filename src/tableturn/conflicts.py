"""Detection of reservations that collide with an extended seating."""

from __future__ import annotations

from collections.abc import Iterable

from tableturn.models import (
    AnyReservation,
    Conflict,
    DayEntry,
    DurationAdjustment,
    OccupancyWindow,
)
from tableturn.resolver import resolve


class ConflictDetector:
    """
    Finds the pending reservations an extension runs into.

    A candidate conflicts with an extension of `reservation_id` from
    `previous_end` to `new_end` when:
    1. it is a different reservation
    2. it is still pending (waiting/confirmed, or booked for events)
    3. it shares at least one table
    4. its resolved start lies in [previous_end, new_end)

    Starts before `previous_end` are ignored so reservations already pushed
    past an earlier boundary are not flagged again.
    """

    def find_conflicts(
        self,
        candidates: Iterable[AnyReservation],
        adjustments: dict[str, DurationAdjustment],
        *,
        reservation_id: str,
        table_ids: list[str],
        previous_end: int,
        new_end: int,
    ) -> list[Conflict]:
        """Return conflicts ordered by start minute, then id.

        Each conflict carries the candidate's own pre-shift window.
        """
        if new_end <= previous_end or not table_ids:
            return []

        conflicts: list[Conflict] = []
        for candidate in candidates:
            if candidate.id == reservation_id:
                continue
            if not candidate.is_pending:
                continue
            if not candidate.shares_table(table_ids):
                continue

            window = resolve(candidate, adjustments.get(candidate.id))
            if previous_end <= window.start_minutes < new_end:
                conflicts.append(Conflict(reservation=candidate, window=window))

        conflicts.sort(key=lambda c: (c.window.start_minutes, c.reservation.id))
        return conflicts

    def occupied_by(
        self,
        entries: Iterable[DayEntry],
        table_ids: list[str],
        window: OccupancyWindow,
        *,
        exclude_id: str | None = None,
    ) -> list[DayEntry]:
        """Seated or spillover entries holding any of `table_ids` during `window`.

        `entries` is a day view (see SpilloverClassifier.day_view), so
        spillovers from the previous day are already mapped onto this day.
        """
        blocking: list[DayEntry] = []
        for entry in entries:
            reservation = entry.reservation
            if exclude_id is not None and reservation.id == exclude_id:
                continue
            if not (entry.spillover or reservation.is_seated):
                continue
            if not reservation.shares_table(table_ids):
                continue
            if entry.window.overlaps(window):
                blocking.append(entry)
        return blocking

"""Forward shifting of reservations that conflict with an extension.

Single-level cascade: a shifted reservation may itself now overlap the next
reservation on its table. That secondary conflict is not resolved here, and
the shifted end is capped at midnight even if the new start is later.
"""

from __future__ import annotations

import logging

from tableturn.book import ReservationBook
from tableturn.models import (
    CascadeResult,
    Conflict,
    DurationAdjustment,
    OccupancyWindow,
    ShiftOutcome,
)
from tableturn.store import AdjustmentStore
from tableturn.timemodel import DAY_MINUTES, minutes_to_time

logger = logging.getLogger(__name__)


def shifted_window(window: OccupancyWindow, new_end: int) -> OccupancyWindow:
    """Push `window` so it starts exactly at `new_end`, keeping its length
    (end capped at midnight)."""
    shift = new_end - window.start_minutes
    return OccupancyWindow(
        start_minutes=window.start_minutes + shift,
        end_minutes=min(DAY_MINUTES, window.end_minutes + shift),
    )


class CascadeShifter:
    """Sole writer of a reservation's wall-clock time when shifting."""

    def __init__(self, book: ReservationBook, store: AdjustmentStore) -> None:
        self.book = book
        self.store = store

    async def apply(self, date: str, conflicts: list[Conflict], new_end: int) -> CascadeResult:
        """Shift every conflict to start at `new_end`.

        Candidates are independent: a failure is logged, recorded on that
        candidate's outcome, and the remaining candidates are still shifted.
        """
        outcomes = [await self._shift_one(date, conflict, new_end) for conflict in conflicts]
        result = CascadeResult(shifts=outcomes)
        if conflicts:
            logger.info(
                "Cascade on %s: %d shifted, %d failed",
                date, len(result.shifted), len(result.failed),
            )
        return result

    async def _shift_one(self, date: str, conflict: Conflict, new_end: int) -> ShiftOutcome:
        candidate = conflict.reservation
        new_window = shifted_window(conflict.window, new_end)
        new_time = minutes_to_time(new_window.start_minutes)
        patch = {"time": new_time}
        error: str | None = None

        try:
            updated = self.book.apply_local(candidate.id, patch)
            self.store.set_adjustment(
                date,
                candidate.id,
                DurationAdjustment(start=new_window.start_minutes, end=new_window.end_minutes),
            )
            await self.book.push(updated, patch)
        except Exception as e:
            logger.warning("Shifting %s to %s failed: %s", candidate.id, new_time, e)
            error = str(e)
        else:
            logger.info(
                "Shifted %s from %s to %s (until %s)",
                candidate.id,
                minutes_to_time(conflict.window.start_minutes),
                new_time,
                minutes_to_time(new_window.end_minutes),
            )

        return ShiftOutcome(
            reservation_id=candidate.id,
            kind=candidate.kind,
            old_window=conflict.window,
            new_window=new_window,
            new_time=new_time,
            error=error,
        )

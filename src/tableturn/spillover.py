"""Which operating day a reservation shows up on when it runs past midnight."""

from __future__ import annotations

from collections.abc import Iterable

from tableturn.models import AnyReservation, DayEntry, DurationAdjustment, OccupancyWindow
from tableturn.resolver import resolve
from tableturn.timemodel import DAY_MINUTES, previous_date_key


class SpilloverClassifier:
    """
    Read-time view computation, never mutates records or adjustments.

    A reservation filed on D whose resolved end passes 1440:
    - stays on D's list while today is D
    - leaves D's list once today's date key is past D
    - appears on D+1's list as a spillover entry occupying
      [00:00, end - 1440], tagged with source date D
    """

    @staticmethod
    def is_moved_to_next_day(
        reservation: AnyReservation, window: OccupancyWindow, today: str
    ) -> bool:
        return window.spills_over and today > reservation.date

    @staticmethod
    def spillover_window(window: OccupancyWindow) -> OccupancyWindow | None:
        """The part of `window` that falls on the next day, or None."""
        spill_end = max(0, min(DAY_MINUTES, window.end_minutes - DAY_MINUTES))
        if spill_end <= 0:
            return None
        return OccupancyWindow(start_minutes=0, end_minutes=spill_end)

    def day_view(
        self,
        date: str,
        reservations: Iterable[AnyReservation],
        adjustments: dict[str, DurationAdjustment],
        previous_adjustments: dict[str, DurationAdjustment],
        today: str,
    ) -> list[DayEntry]:
        """Entries shown for operating date `date`, ordered by start minute.

        `reservations` may hold both collections for `date` and the day
        before; `previous_adjustments` are the adjustments filed on the day
        before (spillovers keep their adjustment on their own date).
        """
        previous = previous_date_key(date)
        entries: list[DayEntry] = []

        for reservation in reservations:
            if not reservation.is_visible:
                continue

            if reservation.date == date:
                window = resolve(reservation, adjustments.get(reservation.id))
                if self.is_moved_to_next_day(reservation, window, today):
                    continue
                entries.append(DayEntry(reservation=reservation, window=window))

            elif previous is not None and reservation.date == previous:
                window = resolve(reservation, previous_adjustments.get(reservation.id))
                spill = self.spillover_window(window)
                if spill is None:
                    continue
                entries.append(
                    DayEntry(
                        reservation=reservation,
                        window=spill,
                        spillover=True,
                        source_date=previous,
                    )
                )

        entries.sort(key=lambda e: (e.window.start_minutes, e.reservation.id))
        return entries

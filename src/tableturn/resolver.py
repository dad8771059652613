"""Effective occupancy window of a reservation."""

from __future__ import annotations

from tableturn.duration import estimate_duration_minutes
from tableturn.models import AnyReservation, DurationAdjustment, OccupancyWindow
from tableturn.timemodel import DAY_MINUTES, time_to_minutes


def resolve(
    reservation: AnyReservation, adjustment: DurationAdjustment | None = None
) -> OccupancyWindow:
    """
    Resolve the start/end minutes a reservation occupies its tables.

    start: adjustment.start if set, else the reservation's wall-clock time.
    end:   adjustment.end if set, else start + estimated duration, capped at
           midnight. Only the default is capped; an explicit end may run past
           1440 to express spillover into the next day.
    """
    adj = adjustment or DurationAdjustment()
    start = adj.start if adj.start is not None else time_to_minutes(reservation.time)
    if adj.end is not None:
        end = adj.end
    else:
        end = min(DAY_MINUTES, start + estimate_duration_minutes(reservation.party_size))
    return OccupancyWindow(start_minutes=start, end_minutes=end)

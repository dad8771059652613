"""Manual timeline edits: resize either edge of a block or move it.

Blocks live on a 5-minute grid and are never shorter than 15 minutes. An
edit is bounded by the neighbouring blocks in the same table row and by
midnight; on today's floor it is also bounded by the current minute.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from tableturn.book import ReservationBook
from tableturn.cascade import CascadeShifter
from tableturn.conflicts import ConflictDetector
from tableturn.errors import RecordStoreError, TimelineError
from tableturn.models import (
    AnyReservation,
    CascadeResult,
    DayEntry,
    DurationAdjustment,
    OccupancyWindow,
    TimelineEdit,
)
from tableturn.resolver import resolve
from tableturn.store import AdjustmentStore
from tableturn.timemodel import DAY_MINUTES, minutes_to_time

logger = logging.getLogger(__name__)

SNAP_MINUTES = 5
MIN_BLOCK_MINUTES = 15


def snap_minutes(minutes: float, step: int = SNAP_MINUTES) -> int:
    """Round to the nearest `step` minutes, halves up."""
    return int(math.floor(minutes / step + 0.5)) * step


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def editable_block(window: OccupancyWindow) -> OccupancyWindow:
    """The grid-aligned block drawn for `window` within one day."""
    start = snap_minutes(_clamp(window.start_minutes, 0, DAY_MINUTES))
    end = snap_minutes(max(start + MIN_BLOCK_MINUTES, min(DAY_MINUTES, window.end_minutes)))
    return OccupancyWindow(start_minutes=start, end_minutes=end)


def neighbour_bounds(
    entries: Iterable[DayEntry],
    reservation: AnyReservation,
    block: OccupancyWindow,
    table_id: str | None = None,
) -> tuple[int, int]:
    """(end of the closest block before, start of the closest block after).

    Neighbours are the other blocks in one table's row: `table_id`, or the
    reservation's first table. Defaults are 00:00 and midnight.
    """
    previous_end, next_start = 0, DAY_MINUTES
    if table_id is None:
        if not reservation.table_ids:
            return previous_end, next_start
        table_id = reservation.table_ids[0]
    for entry in entries:
        other = entry.reservation
        if other.id == reservation.id or not other.shares_table([table_id]):
            continue
        other_block = editable_block(entry.window)
        if other_block.end_minutes <= block.start_minutes:
            previous_end = max(previous_end, other_block.end_minutes)
        if other_block.start_minutes >= block.end_minutes:
            next_start = min(next_start, other_block.start_minutes)
    return previous_end, next_start


def clamp_end(
    block: OccupancyWindow,
    requested_end: float,
    next_start: int,
    *,
    seated: bool = False,
    now_minute: int | None = None,
) -> int | None:
    """New end for a right-edge resize, or None when no end is allowed.

    A seated block on today's floor cannot end before `now_minute`; if the
    next block is already at or before that line nothing moves.
    """
    max_end = min(next_start, DAY_MINUTES)
    min_end = block.start_minutes + MIN_BLOCK_MINUTES
    if seated and now_minute is not None:
        min_end = max(min_end, now_minute)
        if max_end <= min_end:
            return None
    snapped = snap_minutes(_clamp(requested_end, 0, DAY_MINUTES))
    return min(max_end, max(min_end, snapped))


def clamp_start(
    block: OccupancyWindow,
    requested_start: float,
    previous_end: int,
    *,
    now_minute: int | None = None,
) -> int:
    """New start for a left-edge resize."""
    min_start = snap_minutes(now_minute) if now_minute is not None else 0
    snapped = snap_minutes(_clamp(requested_start, 0, DAY_MINUTES))
    return max(max(previous_end, min_start), min(block.end_minutes - MIN_BLOCK_MINUTES, snapped))


def clamp_move(
    block: OccupancyWindow,
    requested_start: float,
    previous_end: int,
    next_start: int,
    *,
    now_minute: int | None = None,
) -> OccupancyWindow:
    """Block moved to start near `requested_start`, length unchanged."""
    width = max(MIN_BLOCK_MINUTES, block.duration_minutes)
    min_start = snap_minutes(now_minute) if now_minute is not None else 0
    lower = max(previous_end, min_start, 0)
    upper = max(lower, min(next_start - width, DAY_MINUTES - width))
    start = int(_clamp(snap_minutes(_clamp(requested_start, 0, DAY_MINUTES)), lower, upper))
    return OccupancyWindow(start_minutes=start, end_minutes=start + width)


class TimelineEditor:
    """
    Applies manual edits to a reservation's block.

    `entries` is the day view of the reservation's own operating date, so
    spillovers from the day before bound the start like any other block.
    `now_minute` is passed only when that date is today.
    """

    def __init__(
        self,
        book: ReservationBook,
        store: AdjustmentStore,
        *,
        detector: ConflictDetector | None = None,
        shifter: CascadeShifter | None = None,
    ) -> None:
        self.book = book
        self.store = store
        self.detector = detector or ConflictDetector()
        self.shifter = shifter or CascadeShifter(book, store)

    def block(self, reservation: AnyReservation) -> OccupancyWindow:
        adjustment = self.store.get_adjustment(reservation.date, reservation.id, refresh=False)
        return editable_block(resolve(reservation, adjustment))

    def _editable(self, reservation_id: str) -> AnyReservation:
        reservation = self.book.get(reservation_id)
        if not reservation.is_visible:
            raise TimelineError(f"Reservation {reservation_id} is not on the timeline")
        return reservation

    async def resize_end(
        self,
        reservation_id: str,
        requested_end: float,
        entries: Iterable[DayEntry],
        *,
        table_id: str | None = None,
        now_minute: int | None = None,
    ) -> TimelineEdit:
        """Drag the right edge. Extending a seated block pushes back the
        pending reservations it now runs into."""
        reservation = self._editable(reservation_id)
        block = self.block(reservation)
        _, next_start = neighbour_bounds(entries, reservation, block, table_id)
        new_end = clamp_end(
            block, requested_end, next_start, seated=reservation.is_seated, now_minute=now_minute
        )
        if new_end is None or new_end == block.end_minutes:
            logger.debug("Resize of %s left its end at %s", reservation.id, block.end_minutes)
            return self._edit(reservation, block, block)

        new_block = OccupancyWindow(start_minutes=block.start_minutes, end_minutes=new_end)
        self._persist(reservation, new_block)

        cascade = CascadeResult()
        if reservation.is_seated and new_end > block.end_minutes:
            conflicts = self.detector.find_conflicts(
                self.book.on(reservation.date),
                self.store.get_day(reservation.date),
                reservation_id=reservation.id,
                table_ids=reservation.table_ids,
                previous_end=block.end_minutes,
                new_end=new_end,
            )
            cascade = await self.shifter.apply(reservation.date, conflicts, new_end)
        return self._edit(reservation, block, new_block, cascade=cascade)

    async def resize_start(
        self,
        reservation_id: str,
        requested_start: float,
        entries: Iterable[DayEntry],
        *,
        table_id: str | None = None,
        now_minute: int | None = None,
    ) -> TimelineEdit:
        """Drag the left edge. The record's `time` follows the new start."""
        reservation = self._editable(reservation_id)
        if reservation.is_seated:
            raise TimelineError(f"Reservation {reservation_id} is seated, its start is fixed")
        block = self.block(reservation)
        previous_end, _ = neighbour_bounds(entries, reservation, block, table_id)
        new_start = clamp_start(block, requested_start, previous_end, now_minute=now_minute)
        new_block = OccupancyWindow(start_minutes=new_start, end_minutes=block.end_minutes)
        return await self._reschedule(reservation, block, new_block)

    async def move(
        self,
        reservation_id: str,
        requested_start: float,
        entries: Iterable[DayEntry],
        *,
        table_id: str | None = None,
        now_minute: int | None = None,
    ) -> TimelineEdit:
        """Drag the whole block. The record's `time` follows the new start."""
        reservation = self._editable(reservation_id)
        if reservation.is_seated:
            raise TimelineError(f"Reservation {reservation_id} is seated and cannot be moved")
        block = self.block(reservation)
        previous_end, next_start = neighbour_bounds(entries, reservation, block, table_id)
        new_block = clamp_move(
            block, requested_start, previous_end, next_start, now_minute=now_minute
        )
        return await self._reschedule(reservation, block, new_block)

    async def _reschedule(
        self, reservation: AnyReservation, block: OccupancyWindow, new_block: OccupancyWindow
    ) -> TimelineEdit:
        if new_block == block:
            return self._edit(reservation, block, block)

        self._persist(reservation, new_block)
        new_time = minutes_to_time(new_block.start_minutes)
        try:
            await self.book.patch(reservation.id, {"time": new_time})
        except RecordStoreError as e:
            logger.warning("Moving %s to %s failed: %s", reservation.id, new_time, e)
            return self._edit(reservation, block, new_block, error=str(e))
        return self._edit(reservation, block, new_block)

    def _persist(self, reservation: AnyReservation, new_block: OccupancyWindow) -> None:
        self.store.set_adjustment(
            reservation.date,
            reservation.id,
            DurationAdjustment(start=new_block.start_minutes, end=new_block.end_minutes),
        )
        logger.info(
            "Timeline: %s now %s-%s",
            reservation.id,
            minutes_to_time(new_block.start_minutes),
            minutes_to_time(new_block.end_minutes),
        )

    @staticmethod
    def _edit(
        reservation: AnyReservation,
        old: OccupancyWindow,
        new: OccupancyWindow,
        *,
        cascade: CascadeResult | None = None,
        error: str | None = None,
    ) -> TimelineEdit:
        return TimelineEdit(
            reservation_id=reservation.id,
            date=reservation.date,
            old_window=old,
            new_window=new,
            cascade=cascade or CascadeResult(),
            error=error,
        )

"""Seated-party lifecycle: countdown, expiry confirmation, clear or extend.

    SEATED ──(end reached)──> EXPIRED_AWAITING_CONFIRMATION
       ^                               │          │
       └────────── extend() ───────────┘        clear()
                                                  v
                                               CLEARED

The countdown holds no time of its own: each tick re-resolves the
reservation's window from the adjustment store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from tableturn.book import ReservationBook
from tableturn.cascade import CascadeShifter
from tableturn.clock import FloorClock
from tableturn.conflicts import ConflictDetector
from tableturn.errors import LifecycleError
from tableturn.models import (
    AnyReservation,
    DurationAdjustment,
    EventReservation,
    ExtendResult,
    OccupancyWindow,
    ReservationKind,
)
from tableturn.resolver import resolve
from tableturn.store import AdjustmentStore
from tableturn.timemodel import MAX_MINUTES, minutes_to_time

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION_MINUTES = 15

EventClearCallback = Callable[[EventReservation], Awaitable[None]]
TickCallback = Callable[[float], None]


class LifecycleState(str, Enum):
    SEATED = "seated"
    EXPIRED = "expired_awaiting_confirmation"
    CLEARED = "cleared"


class SeatedLifecycle:
    """
    Drives one seated reservation from countdown to clear.

    extend() is the entry point into conflict detection and the cascade:
    the new end is now + extension_minutes (capped at 2880), every pending
    reservation starting between the previous end and the new end is pushed
    to the new end, then the reservation's own adjustment is written (which
    broadcasts the change).
    """

    def __init__(
        self,
        reservation_id: str,
        *,
        book: ReservationBook,
        store: AdjustmentStore,
        clock: FloorClock | None = None,
        detector: ConflictDetector | None = None,
        shifter: CascadeShifter | None = None,
        extension_minutes: int = DEFAULT_EXTENSION_MINUTES,
        tick_seconds: float = 1.0,
        on_event_clear: EventClearCallback | None = None,
    ) -> None:
        self.reservation_id = reservation_id
        self.book = book
        self.store = store
        self.clock = clock or FloorClock()
        self.detector = detector or ConflictDetector()
        self.shifter = shifter or CascadeShifter(book, store)
        self.extension_minutes = extension_minutes
        self.tick_seconds = tick_seconds
        self.on_event_clear = on_event_clear

        self.state = LifecycleState.CLEARED if self.reservation.cleared else LifecycleState.SEATED
        self._task: asyncio.Task | None = None

    @property
    def reservation(self) -> AnyReservation:
        return self.book.get(self.reservation_id)

    @property
    def date(self) -> str:
        return self.reservation.date

    def window(self) -> OccupancyWindow:
        adjustment = self.store.get_adjustment(self.date, self.reservation_id, refresh=False)
        return resolve(self.reservation, adjustment)

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------

    def tick(self, now_seconds: float | None = None) -> float:
        """Recompute remaining seconds; moves to EXPIRED when none are left.

        `now_seconds` counts from 00:00 of the reservation's operating date.
        """
        if self.state is not LifecycleState.SEATED:
            return 0.0
        if now_seconds is None:
            now_seconds = self.clock.seconds_into(self.date)

        remaining = self.window().end_minutes * 60 - now_seconds
        if remaining <= 0:
            self.state = LifecycleState.EXPIRED
            logger.info("Reservation %s reached its end, awaiting confirmation", self.reservation_id)
            return 0.0
        return remaining

    async def run_countdown(self, on_tick: TickCallback | None = None) -> LifecycleState:
        """Tick every `tick_seconds` until expiry or the party is no longer seated."""
        while self.state is LifecycleState.SEATED and self.reservation.is_seated:
            remaining = self.tick()
            if on_tick is not None:
                on_tick(remaining)
            if self.state is not LifecycleState.SEATED:
                break
            await asyncio.sleep(self.tick_seconds)
        return self.state

    def start(self, on_tick: TickCallback | None = None) -> asyncio.Task:
        """Run the countdown as a task on the current event loop."""
        self.stop()
        self._task = asyncio.create_task(self.run_countdown(on_tick))
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def stop(self) -> None:
        """Cancel the running countdown task."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def extend(self, now_minute: int | None = None) -> ExtendResult:
        """Extend an expired seating by `extension_minutes` from now and cascade.

        Only allowed while awaiting confirmation. The countdown is not
        restarted here; the caller owns it.
        """
        if self.state is not LifecycleState.EXPIRED:
            raise LifecycleError(
                f"Reservation {self.reservation_id} cannot be extended while {self.state.value}"
            )
        self.stop()

        reservation = self.reservation
        date = reservation.date
        if now_minute is None:
            now_minute = self.clock.minute_of(date)
        extended_end = min(MAX_MINUTES, now_minute + self.extension_minutes)

        # Without a prior adjustment the conflict window opens at the current
        # minute, not at the estimated end.
        existing = self.store.get_adjustment(date, reservation.id, refresh=False)
        previous_end = (
            resolve(reservation, existing).end_minutes if existing is not None else now_minute
        )

        conflicts = self.detector.find_conflicts(
            self.book.on(date),
            self.store.get_day(date),
            reservation_id=reservation.id,
            table_ids=reservation.table_ids,
            previous_end=previous_end,
            new_end=extended_end,
        )
        cascade = await self.shifter.apply(date, conflicts, extended_end)

        self.store.set_adjustment(date, reservation.id, DurationAdjustment(end=extended_end))
        logger.info(
            "Extended %s until %s (%d conflict(s))",
            reservation.id, minutes_to_time(extended_end), len(conflicts),
        )

        self.state = LifecycleState.SEATED

        return ExtendResult(
            reservation_id=reservation.id,
            date=date,
            previous_end=previous_end,
            extended_end=extended_end,
            cascade=cascade,
        )

    async def clear(self) -> AnyReservation:
        """Mark the party as gone.

        Event reservations go through `on_event_clear` when one is supplied
        (event teardown may convert them into regular records). If the write
        fails the lifecycle returns to EXPIRED so the prompt can be retried.
        """
        if self.state is LifecycleState.CLEARED:
            return self.reservation

        self.stop()
        reservation = self.reservation
        self.state = LifecycleState.CLEARED
        try:
            if reservation.kind == ReservationKind.EVENT and self.on_event_clear is not None:
                await self.on_event_clear(reservation)
                return self.book.find(reservation.id) or reservation
            return await self.book.patch(reservation.id, {"status": "arrived", "cleared": True})
        except Exception:
            self.state = LifecycleState.EXPIRED
            logger.warning("Clearing %s failed, confirmation stays open", reservation.id)
            raise

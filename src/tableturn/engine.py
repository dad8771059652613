"""Engine wiring: one facade over the book, the adjustment store and the clock.

Typical use from async code:

    async with open_engine(config, "2024-05-01", api_key=key) as engine:
        result = await engine.extend("r1")
        entries = engine.day_view("2024-05-01")
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from tableturn.api import RecordStoreClient
from tableturn.book import ReservationBook
from tableturn.cascade import CascadeShifter
from tableturn.clock import FloorClock
from tableturn.conflicts import ConflictDetector
from tableturn.lifecycle import DEFAULT_EXTENSION_MINUTES, EventClearCallback, SeatedLifecycle
from tableturn.models import (
    AnyReservation,
    DayEntry,
    EngineConfig,
    ExtendResult,
    OccupancyWindow,
    TimelineEdit,
)
from tableturn.resolver import resolve
from tableturn.spillover import SpilloverClassifier
from tableturn.store import AdjustmentStore, LocalAdjustmentCache
from tableturn.timeline import TimelineEditor
from tableturn.timemodel import previous_date_key

logger = logging.getLogger(__name__)


class FloorEngine:
    """
    Entry point for the floor: windows, day views, extend, clear and
    manual timeline edits.

    One SeatedLifecycle is kept per reservation id so a running countdown
    survives repeated lookups.
    """

    def __init__(
        self,
        book: ReservationBook,
        store: AdjustmentStore,
        *,
        clock: FloorClock | None = None,
        extension_minutes: int = DEFAULT_EXTENSION_MINUTES,
        tick_seconds: float = 1.0,
    ) -> None:
        self.book = book
        self.store = store
        self.clock = clock or FloorClock()
        self.extension_minutes = extension_minutes
        self.tick_seconds = tick_seconds
        self.detector = ConflictDetector()
        self.shifter = CascadeShifter(book, store)
        self.classifier = SpilloverClassifier()
        self.editor = TimelineEditor(book, store, detector=self.detector, shifter=self.shifter)
        self._lifecycles: dict[str, SeatedLifecycle] = {}

    def lifecycle(
        self, reservation_id: str, on_event_clear: EventClearCallback | None = None
    ) -> SeatedLifecycle:
        lifecycle = self._lifecycles.get(reservation_id)
        if lifecycle is None:
            lifecycle = SeatedLifecycle(
                reservation_id,
                book=self.book,
                store=self.store,
                clock=self.clock,
                detector=self.detector,
                shifter=self.shifter,
                extension_minutes=self.extension_minutes,
                tick_seconds=self.tick_seconds,
                on_event_clear=on_event_clear,
            )
            self._lifecycles[reservation_id] = lifecycle
        elif on_event_clear is not None:
            lifecycle.on_event_clear = on_event_clear
        return lifecycle

    def window(self, reservation_id: str) -> OccupancyWindow:
        reservation = self.book.get(reservation_id)
        return resolve(reservation, self.store.get_adjustment(reservation.date, reservation_id))

    def day_view(self, date: str, today: str | None = None) -> list[DayEntry]:
        """Entries for `date`, including spillovers from the day before."""
        previous = previous_date_key(date)
        reservations = self.book.on(date)
        previous_adjustments = {}
        if previous is not None:
            reservations += self.book.on(previous)
            previous_adjustments = self.store.get_day(previous)
        return self.classifier.day_view(
            date,
            reservations,
            self.store.get_day(date),
            previous_adjustments,
            today or self.clock.today_key(),
        )

    def blocking(
        self, date: str, table_ids: list[str], window: OccupancyWindow, *, exclude_id: str | None = None
    ) -> list[DayEntry]:
        """Seated or spillover entries holding `table_ids` during `window` on `date`."""
        return self.detector.occupied_by(
            self.day_view(date), table_ids, window, exclude_id=exclude_id
        )

    async def sync(self, date: str) -> None:
        """Pull remote adjustments for `date` and the day before."""
        for key in (previous_date_key(date), date):
            if key is not None:
                await self.store.sync_day(key)

    async def extend(self, reservation_id: str, now_minute: int | None = None) -> ExtendResult:
        """Extend a seating whose time is up; the countdown is checked first."""
        lifecycle = self.lifecycle(reservation_id)
        lifecycle.tick(now_minute * 60 if now_minute is not None else None)
        return await lifecycle.extend(now_minute)

    async def clear(self, reservation_id: str) -> AnyReservation:
        return await self.lifecycle(reservation_id).clear()

    def _now_line(self, date: str, now_minute: int | None) -> int | None:
        """The current minute when `date` is today (or an explicit override)."""
        if now_minute is not None:
            return now_minute
        if self.clock.today_key() == date:
            return self.clock.minute_of(date)
        return None

    async def resize_end(
        self,
        reservation_id: str,
        end_minute: int,
        now_minute: int | None = None,
        table_id: str | None = None,
    ) -> TimelineEdit:
        date = self.book.get(reservation_id).date
        return await self.editor.resize_end(
            reservation_id,
            end_minute,
            self.day_view(date, today=date),
            table_id=table_id,
            now_minute=self._now_line(date, now_minute),
        )

    async def resize_start(
        self,
        reservation_id: str,
        start_minute: int,
        now_minute: int | None = None,
        table_id: str | None = None,
    ) -> TimelineEdit:
        date = self.book.get(reservation_id).date
        return await self.editor.resize_start(
            reservation_id,
            start_minute,
            self.day_view(date, today=date),
            table_id=table_id,
            now_minute=self._now_line(date, now_minute),
        )

    async def move(
        self,
        reservation_id: str,
        start_minute: int,
        now_minute: int | None = None,
        table_id: str | None = None,
    ) -> TimelineEdit:
        date = self.book.get(reservation_id).date
        return await self.editor.move(
            reservation_id,
            start_minute,
            self.day_view(date, today=date),
            table_id=table_id,
            now_minute=self._now_line(date, now_minute),
        )

    def stop_all(self) -> None:
        for lifecycle in self._lifecycles.values():
            lifecycle.stop()


@asynccontextmanager
async def open_engine(
    config: EngineConfig, date: str, api_key: str | None = None
) -> AsyncIterator[FloorEngine]:
    """Load `date` (and the day before, for spillovers) and yield a ready engine.

    Pending remote adjustment writes are awaited before the HTTP client closes.
    """
    records = config.records
    clock = FloorClock(config.timezone)
    if config.ntp_check:
        await clock.check_ntp_offset_async()

    dates = [d for d in (previous_date_key(date), date) if d is not None]
    async with RecordStoreClient(
        records.base_url,
        api_key=api_key,
        owner_id=records.owner_id,
        timeout_seconds=records.timeout_seconds,
    ) as client:
        book = await ReservationBook.load(client, dates, writer=client)
        store = AdjustmentStore(LocalAdjustmentCache(config.cache_dir), remote=client)
        engine = FloorEngine(
            book,
            store,
            clock=clock,
            extension_minutes=config.extension_minutes,
            tick_seconds=config.countdown_interval_seconds,
        )
        await engine.sync(date)
        try:
            yield engine
        finally:
            engine.stop_all()
            await store.drain()
            logger.debug("Engine for %s closed", date)

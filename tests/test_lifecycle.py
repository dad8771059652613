"""Tests for the seated-party lifecycle: countdown, extend, clear."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tableturn.book import ReservationBook
from tableturn.clock import FloorClock
from tableturn.errors import LifecycleError, RecordStoreError
from tableturn.lifecycle import LifecycleState, SeatedLifecycle
from tableturn.models import DurationAdjustment
from tableturn.timemodel import MAX_MINUTES

from conftest import DAY, make_event_reservation, make_reservation


class _Base:
    def setup_method(self):
        self.writer = AsyncMock()
        self.clock = MagicMock(spec=FloorClock)
        self.seated = make_reservation("r1", "20:00", status="arrived", party_size=2)
        self.next_up = make_reservation("r2", "21:10", status="waiting")
        self.book = ReservationBook([self.seated, self.next_up], [], writer=self.writer)

    def _lifecycle(self, store, reservation_id="r1", **kwargs):
        return SeatedLifecycle(
            reservation_id, book=self.book, store=store, clock=self.clock, tick_seconds=0, **kwargs
        )

    def _expired(self, store, reservation_id="r1", **kwargs):
        lifecycle = self._lifecycle(store, reservation_id, **kwargs)
        lifecycle.tick(now_seconds=MAX_MINUTES * 60)
        return lifecycle


class TestCountdown(_Base):
    def test_initial_state(self, store):
        assert self._lifecycle(store).state is LifecycleState.SEATED

    def test_already_cleared_starts_cleared(self, store):
        self.book.add(make_reservation("r9", "19:00", status="arrived", cleared=True))
        assert self._lifecycle(store, "r9").state is LifecycleState.CLEARED

    def test_tick_uses_resolved_end(self, store):
        lifecycle = self._lifecycle(store)
        assert lifecycle.tick(now_seconds=1230 * 60) == 30 * 60

        store.set_adjustment(DAY, "r1", DurationAdjustment(end=1280))
        assert lifecycle.tick(now_seconds=1265 * 60) == 15 * 60

    def test_tick_reads_clock(self, store):
        self.clock.seconds_into.return_value = 1259 * 60 + 30
        lifecycle = self._lifecycle(store)

        assert lifecycle.tick() == 30
        self.clock.seconds_into.assert_called_with(DAY)

    def test_expires_at_end(self, store):
        lifecycle = self._lifecycle(store)

        assert lifecycle.tick(now_seconds=1260 * 60) == 0
        assert lifecycle.state is LifecycleState.EXPIRED
        assert lifecycle.tick(now_seconds=1200 * 60) == 0

    def test_spilling_end_counts_past_midnight(self, store):
        store.set_adjustment(DAY, "r1", DurationAdjustment(end=1450))
        lifecycle = self._lifecycle(store)

        assert lifecycle.tick(now_seconds=1445 * 60) == 5 * 60
        assert lifecycle.state is LifecycleState.SEATED


@pytest.mark.asyncio
class TestCountdownTask(_Base):
    async def test_runs_until_expired(self, store):
        self.clock.seconds_into.side_effect = [1258 * 60, 1259 * 60, 1260 * 60]
        ticks = []

        state = await self._lifecycle(store).run_countdown(ticks.append)

        assert state is LifecycleState.EXPIRED
        assert ticks == [120, 60, 0]

    async def test_stops_when_not_seated(self, store):
        lifecycle = self._lifecycle(store, "r2")
        assert await lifecycle.run_countdown() is LifecycleState.SEATED
        self.clock.seconds_into.assert_not_called()

    async def test_stop_cancels_task(self, store):
        self.clock.seconds_into.return_value = 0
        lifecycle = self._lifecycle(store)
        lifecycle.tick_seconds = 60

        task = lifecycle.start()
        lifecycle.stop()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert lifecycle.state is LifecycleState.SEATED


@pytest.mark.asyncio
class TestExtend(_Base):
    async def test_extend_without_prior_adjustment(self, store):
        lifecycle = self._expired(store)

        result = await lifecycle.extend(now_minute=1265)

        assert result.previous_end == 1265
        assert result.extended_end == 1280
        assert store.get_adjustment(DAY, "r1") == DurationAdjustment(end=1280)
        assert [s.reservation_id for s in result.cascade.shifted] == ["r2"]
        assert self.book.get("r2").time == "21:20"
        assert store.get_adjustment(DAY, "r2") == DurationAdjustment(start=1280, end=1340)

    async def test_extend_from_previous_adjustment(self, store):
        self.book.add(make_reservation("r3", "21:25", status="confirmed"))
        store.set_adjustment(DAY, "r1", DurationAdjustment(end=1280))
        lifecycle = self._expired(store)

        result = await lifecycle.extend(now_minute=1285)

        assert result.previous_end == 1280
        assert result.extended_end == 1300
        # r2 starts before the previous end and is left alone
        assert [(s.reservation_id, s.new_time) for s in result.cascade.shifted] == [("r3", "21:40")]

    async def test_extend_uses_clock(self, store):
        self.clock.minute_of.return_value = 1262
        lifecycle = self._expired(store, extension_minutes=30)

        result = await lifecycle.extend()

        assert result.extended_end == 1292
        self.clock.minute_of.assert_called_once_with(DAY)

    async def test_extend_capped(self, store):
        lifecycle = self._expired(store)
        result = await lifecycle.extend(now_minute=2870)
        assert result.extended_end == 2880

    async def test_extend_reopens_expired(self, store):
        lifecycle = self._lifecycle(store)
        lifecycle.tick(now_seconds=1260 * 60)
        assert lifecycle.state is LifecycleState.EXPIRED

        await lifecycle.extend(now_minute=1260)

        assert lifecycle.state is LifecycleState.SEATED
        assert lifecycle.tick(now_seconds=1261 * 60) == 14 * 60

    async def test_extend_after_clear_rejected(self, store):
        lifecycle = self._lifecycle(store)
        await lifecycle.clear()

        with pytest.raises(LifecycleError):
            await lifecycle.extend(now_minute=1265)

    async def test_extend_broadcasts(self, store):
        events = []
        store.subscribe(events.append, date=DAY)

        await self._expired(store).extend(now_minute=1265)

        assert [e.reservation_id for e in events] == ["r2", "r1"]

    async def test_extend_while_seated_rejected(self, store):
        store.set_adjustment(DAY, "r1", DurationAdjustment(end=1280))
        lifecycle = self._lifecycle(store)

        with pytest.raises(LifecycleError, match="seated"):
            await lifecycle.extend(now_minute=1200)

        assert store.get_adjustment(DAY, "r1") == DurationAdjustment(end=1280)
        assert self.book.get("r2").time == "21:10"
        self.writer.update_reservation.assert_not_awaited()

    async def test_extend_leaves_countdown_to_caller(self, store):
        self.clock.seconds_into.return_value = 1260 * 60
        lifecycle = self._lifecycle(store)

        assert await lifecycle.start() is LifecycleState.EXPIRED
        await lifecycle.extend(now_minute=1260)

        assert lifecycle.state is LifecycleState.SEATED
        assert not lifecycle.running


@pytest.mark.asyncio
class TestClear(_Base):
    async def test_clear_regular(self, store):
        lifecycle = self._lifecycle(store)

        cleared = await lifecycle.clear()

        assert lifecycle.state is LifecycleState.CLEARED
        assert cleared.cleared
        assert cleared.status == "arrived"
        self.writer.update_reservation.assert_awaited_once_with(
            "r1", {"status": "arrived", "cleared": True}
        )

    async def test_clear_twice_is_noop(self, store):
        lifecycle = self._lifecycle(store)
        await lifecycle.clear()
        await lifecycle.clear()

        assert self.writer.update_reservation.await_count == 1

    async def test_failed_clear_returns_to_prompt(self, store):
        self.writer.update_reservation.side_effect = RecordStoreError("HTTP 503")
        lifecycle = self._lifecycle(store)

        with pytest.raises(RecordStoreError):
            await lifecycle.clear()

        assert lifecycle.state is LifecycleState.EXPIRED

    async def test_event_clear_delegated(self, store):
        self.book.add(make_event_reservation("e1", "20:00", status="arrived"))
        on_event_clear = AsyncMock()
        lifecycle = self._lifecycle(store, "e1", on_event_clear=on_event_clear)

        await lifecycle.clear()

        on_event_clear.assert_awaited_once()
        assert on_event_clear.await_args.args[0].id == "e1"
        self.writer.update_event_reservation.assert_not_awaited()
        assert lifecycle.state is LifecycleState.CLEARED

    async def test_event_clear_without_callback(self, store):
        self.book.add(make_event_reservation("e1", "20:00", status="arrived"))
        lifecycle = self._lifecycle(store, "e1")

        await lifecycle.clear()

        self.writer.update_event_reservation.assert_awaited_once_with(
            "e1", {"status": "arrived", "cleared": True}
        )

"""Tests for the in-memory reservation book."""

from unittest.mock import AsyncMock

import pytest

from tableturn.book import ReservationBook
from tableturn.errors import RecordStoreError, ReservationNotFoundError

from conftest import DAY, NEXT_DAY, make_event_reservation, make_reservation


class TestReservationBook:
    def setup_method(self):
        self.book = ReservationBook(
            [make_reservation("r1"), make_reservation("r2", date=NEXT_DAY)],
            [make_event_reservation("e1")],
        )

    def test_on_date_regular_first(self):
        assert [r.id for r in self.book.on(DAY)] == ["r1", "e1"]
        assert [r.id for r in self.book.on(NEXT_DAY)] == ["r2"]

    def test_get_missing(self):
        assert self.book.find("nope") is None
        with pytest.raises(ReservationNotFoundError):
            self.book.get("nope")

    def test_apply_local_validates(self):
        updated = self.book.apply_local("e1", {"time": "21:20", "table_ids": [4]})

        assert updated.time == "21:20"
        assert updated.table_ids == ["4"]
        assert self.book.get("e1").event_id == "ev1"


@pytest.mark.asyncio
class TestReservationBookWrites:
    async def test_load(self):
        source = AsyncMock()
        source.list_reservations.return_value = [make_reservation("r1")]
        source.list_event_reservations.return_value = [make_event_reservation("e1")]

        book = await ReservationBook.load(source, [DAY])

        assert [r.id for r in book.on(DAY)] == ["r1", "e1"]
        source.list_reservations.assert_awaited_once_with([DAY])

    async def test_patch_pushes(self):
        writer = AsyncMock()
        book = ReservationBook([make_reservation("r1")], writer=writer)

        await book.patch("r1", {"status": "confirmed"})

        writer.update_reservation.assert_awaited_once_with("r1", {"status": "confirmed"})
        assert book.get("r1").status == "confirmed"

    async def test_failed_push_keeps_local_patch(self):
        writer = AsyncMock()
        writer.update_reservation.side_effect = ConnectionError("reset")
        book = ReservationBook([make_reservation("r1")], writer=writer)

        with pytest.raises(RecordStoreError, match="reset"):
            await book.patch("r1", {"time": "21:20"})

        assert book.get("r1").time == "21:20"

    async def test_without_writer_is_local_only(self):
        book = ReservationBook([make_reservation("r1")])
        updated = await book.patch("r1", {"time": "21:20"})
        assert updated.time == "21:20"

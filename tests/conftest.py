"""Shared test fixtures."""

import pytest

from tableturn.models import EventReservation, Reservation
from tableturn.store import AdjustmentStore, LocalAdjustmentCache

DAY = "2024-05-01"
NEXT_DAY = "2024-05-02"


def make_reservation(rid: str, time: str = "20:00", **kwargs) -> Reservation:
    fields = {"date": DAY, "party_size": 2, "table_ids": ["T1"], "status": "waiting"}
    fields.update(kwargs)
    return Reservation(id=rid, time=time, **fields)


def make_event_reservation(rid: str, time: str = "20:00", **kwargs) -> EventReservation:
    fields = {"date": DAY, "party_size": 2, "table_ids": ["T1"], "status": "booked", "event_id": "ev1"}
    fields.update(kwargs)
    return EventReservation(id=rid, time=time, **fields)


@pytest.fixture
def cache(tmp_path):
    return LocalAdjustmentCache(tmp_path)


@pytest.fixture
def store(cache):
    """Local-only adjustment store (no remote tier)."""
    return AdjustmentStore(cache)


@pytest.fixture
def sample_reservation_rows():
    """Realistic rows from the `reservations` table."""
    return [
        {
            "id": "r1",
            "date": DAY,
            "time": "20:00",
            "number_of_guests": 2,
            "table_ids": [1],
            "status": "arrived",
            "cleared": False,
            "zone_id": "main",
            "guest_name": "Ana",
            "is_deleted": False,
        },
        {
            "id": "r2",
            "date": DAY,
            "time": "21:10",
            "number_of_guests": 4,
            "table_ids": [1, 2],
            "status": "waiting",
            "cleared": False,
            "zone_id": "main",
            "guest_name": "Ben",
            "is_deleted": False,
        },
        {
            "id": "r-deleted",
            "date": DAY,
            "time": "19:00",
            "number_of_guests": 2,
            "table_ids": [3],
            "status": "confirmed",
            "is_deleted": True,
        },
    ]


@pytest.fixture
def sample_event_rows():
    """Realistic rows from the `event_reservations` table."""
    return [
        {
            "id": "e1",
            "event_id": "wine-night",
            "date": DAY,
            "time": "21:15",
            "number_of_guests": 6,
            "table_ids": ["1"],
            "status": "booked",
            "payment_status": "paid",
            "cleared": False,
        },
    ]

"""Default occupancy estimates by party size."""

from __future__ import annotations

# (max party size, minutes) tiers, checked in order
DURATION_TIERS: tuple[tuple[int, int], ...] = ((2, 60), (4, 120))
LARGE_PARTY_MINUTES = 150
DEFAULT_PARTY_SIZE = 2


def estimate_duration_minutes(party_size: int | None) -> int:
    """Default number of minutes a party occupies its table.

    2 guests or fewer -> 60, up to 4 -> 120, anything larger -> 150.
    Only used when no adjustment overrides the end of a reservation.
    """
    guests = DEFAULT_PARTY_SIZE if party_size is None else party_size
    for max_guests, minutes in DURATION_TIERS:
        if guests <= max_guests:
            return minutes
    return LARGE_PARTY_MINUTES

"""In-memory view of both reservation collections with optimistic record patches."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from tableturn.errors import RecordStoreError, ReservationNotFoundError
from tableturn.models import AnyReservation, EventReservation, Reservation, ReservationKind

logger = logging.getLogger(__name__)


class ReservationWriter(Protocol):
    """CRUD layer owning reservation records (both collections)."""

    async def update_reservation(self, reservation_id: str, patch: dict[str, Any]) -> None: ...

    async def update_event_reservation(self, reservation_id: str, patch: dict[str, Any]) -> None: ...


class ReservationSource(Protocol):
    async def list_reservations(self, dates: list[str]) -> list[Reservation]: ...

    async def list_event_reservations(self, dates: list[str]) -> list[EventReservation]: ...


class ReservationBook:
    """
    Regular and event reservations for the operating dates in view.

    Patches are applied to the in-memory record first (readers see them
    immediately), then pushed to the writer. A failed push leaves the local
    patch in place and raises RecordStoreError.
    """

    def __init__(
        self,
        reservations: Iterable[Reservation] = (),
        event_reservations: Iterable[EventReservation] = (),
        writer: ReservationWriter | None = None,
    ) -> None:
        self._regular: dict[str, Reservation] = {r.id: r for r in reservations}
        self._event: dict[str, EventReservation] = {r.id: r for r in event_reservations}
        self._writer = writer

    @classmethod
    async def load(
        cls,
        source: ReservationSource,
        dates: list[str],
        writer: ReservationWriter | None = None,
    ) -> ReservationBook:
        """Fetch both collections for `dates` from the record store."""
        regular = await source.list_reservations(dates)
        events = await source.list_event_reservations(dates)
        logger.info(
            "Loaded %d reservations and %d event reservations for %s",
            len(regular), len(events), ", ".join(dates),
        )
        return cls(regular, events, writer=writer)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, reservation_id: str) -> AnyReservation | None:
        return self._regular.get(reservation_id) or self._event.get(reservation_id)

    def get(self, reservation_id: str) -> AnyReservation:
        reservation = self.find(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"No reservation {reservation_id}")
        return reservation

    def regular_on(self, date: str) -> list[Reservation]:
        return [r for r in self._regular.values() if r.date == date]

    def events_on(self, date: str) -> list[EventReservation]:
        return [r for r in self._event.values() if r.date == date]

    def on(self, date: str) -> list[AnyReservation]:
        """Both collections for one operating date, regular first."""
        return [*self.regular_on(date), *self.events_on(date)]

    def add(self, reservation: AnyReservation) -> None:
        if reservation.kind == ReservationKind.EVENT:
            self._event[reservation.id] = reservation
        else:
            self._regular[reservation.id] = reservation

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_local(self, reservation_id: str, patch: dict[str, Any]) -> AnyReservation:
        """Patch the in-memory record and return the updated copy."""
        current = self.get(reservation_id)
        updated = type(current).model_validate({**current.model_dump(), **patch})
        self.add(updated)
        return updated

    async def push(self, reservation: AnyReservation, patch: dict[str, Any]) -> None:
        """Send `patch` to the collection the reservation belongs to."""
        if self._writer is None:
            return
        try:
            if reservation.kind == ReservationKind.EVENT:
                await self._writer.update_event_reservation(reservation.id, patch)
            else:
                await self._writer.update_reservation(reservation.id, patch)
        except RecordStoreError:
            raise
        except Exception as e:
            raise RecordStoreError(f"Updating {reservation.id} failed: {e}") from e

    async def patch(self, reservation_id: str, patch: dict[str, Any]) -> AnyReservation:
        """apply_local() then push(); the local change survives a failed push."""
        updated = self.apply_local(reservation_id, patch)
        await self.push(updated, patch)
        return updated

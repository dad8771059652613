"""Async record-store client using httpx against a PostgREST-style API.

Serves both remote collaborators of the engine:
- duration adjustments (table `reservation_adjustments`)
- reservation records (tables `reservations` and `event_reservations`)

Use as an async context manager to get connection pooling and keep-alive:

    async with RecordStoreClient(base_url="https://...", api_key="...") as client:
        adjustments = await client.get_by_date("2024-05-01")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import orjson
from pydantic import ValidationError

from tableturn.errors import RecordStoreError
from tableturn.models import DurationAdjustment, EventReservation, Reservation

logger = logging.getLogger(__name__)

ADJUSTMENTS_TABLE = "reservation_adjustments"
RESERVATIONS_TABLE = "reservations"
EVENT_RESERVATIONS_TABLE = "event_reservations"

_ADJUSTMENT_COLUMNS = "reservation_id,start_min,end_min"


def _adjustment_from_row(row: dict) -> DurationAdjustment:
    data: dict[str, int] = {}
    if row.get("start_min") is not None:
        data["start"] = row["start_min"]
    if row.get("end_min") is not None:
        data["end"] = row["end_min"]
    return DurationAdjustment(**data)


def _common_fields(row: dict) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "date": row["date"],
        "time": row.get("time") or "00:00",
        "party_size": 2 if row.get("number_of_guests") is None else row["number_of_guests"],
        "table_ids": row.get("table_ids") or [],
        "cleared": bool(row.get("cleared")),
        "zone_id": row.get("zone_id") or "",
        "guest_name": row.get("guest_name") or "",
    }


def reservation_from_row(row: dict) -> Reservation:
    return Reservation(status=row.get("status") or "waiting", **_common_fields(row))


def event_reservation_from_row(row: dict) -> EventReservation:
    return EventReservation(
        status=row.get("status") or "booked",
        event_id=str(row.get("event_id") or ""),
        payment_status=row.get("payment_status") or "not_required",
        **_common_fields(row),
    )


class RecordStoreClient:
    """
    Async HTTP client for the reservation record store.

    Implements `store.AdjustmentService` and `book.ReservationWriter`.
    Every non-2xx answer raises RecordStoreError; callers decide whether the
    failure is fatal (it never is for adjustment mirroring).
    """

    REST_PREFIX = "/rest/v1"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        owner_id: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owner_id = owner_id
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds))
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> RecordStoreClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url + self.REST_PREFIX,
            headers=self._base_headers(),
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _base_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def set_api_key(self, api_key: str) -> None:
        """Update credentials on a live client (keeps the pooled connection)."""
        self._api_key = api_key
        if self._client:
            self._client.headers["apikey"] = api_key
            self._client.headers["Authorization"] = f"Bearer {api_key}"

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                body = orjson.loads(resp.content)
                msg = body.get("message", resp.text) if isinstance(body, dict) else resp.text
            except orjson.JSONDecodeError:
                msg = resp.text or f"HTTP {resp.status_code}"
            raise RecordStoreError(
                f"{resp.request.method} {resp.request.url.path} -> HTTP {resp.status_code}: {msg}"
            )
        if not resp.content:
            return None
        return orjson.loads(resp.content)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        assert self._client is not None
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RecordStoreError(f"{method} {path} failed: {e}") from e
        return self._decode(resp)

    def _owner_filter(self) -> dict[str, str]:
        return {"user_id": f"eq.{self._owner_id}"} if self._owner_id else {}

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    async def get_one(self, date: str, reservation_id: str) -> DurationAdjustment | None:
        """GET one adjustment row, or None when the key has never been adjusted."""
        rows = await self._request(
            "GET",
            f"/{ADJUSTMENTS_TABLE}",
            params={
                "select": _ADJUSTMENT_COLUMNS,
                "date": f"eq.{date}",
                "reservation_id": f"eq.{reservation_id}",
                **self._owner_filter(),
            },
        )
        if not rows:
            return None
        return _adjustment_from_row(rows[0])

    async def get_by_date(self, date: str) -> dict[str, DurationAdjustment]:
        """GET every adjustment filed under `date`, keyed by reservation id."""
        rows = await self._request(
            "GET",
            f"/{ADJUSTMENTS_TABLE}",
            params={"select": _ADJUSTMENT_COLUMNS, "date": f"eq.{date}", **self._owner_filter()},
        )
        adjustments: dict[str, DurationAdjustment] = {}
        for row in rows or []:
            try:
                adjustments[str(row["reservation_id"])] = _adjustment_from_row(row)
            except (KeyError, ValidationError) as e:
                logger.warning("Skipping malformed adjustment row %s: %s", row, e)
        return adjustments

    async def upsert_adjustment(
        self, date: str, reservation_id: str, patch: DurationAdjustment
    ) -> None:
        """POST with merge-duplicates: only the fields set on `patch` are written."""
        row: dict[str, Any] = {"date": date, "reservation_id": reservation_id}
        fields = patch.model_dump(exclude_unset=True)
        if "start" in fields:
            row["start_min"] = fields["start"]
        if "end" in fields:
            row["end_min"] = fields["end"]
        conflict_cols = "reservation_id,date"
        if self._owner_id:
            row["user_id"] = self._owner_id
            conflict_cols = "user_id,reservation_id,date"

        await self._request(
            "POST",
            f"/{ADJUSTMENTS_TABLE}",
            params={"on_conflict": conflict_cols},
            content=orjson.dumps(row),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    # ------------------------------------------------------------------
    # Reservation records
    # ------------------------------------------------------------------

    async def _list_rows(self, table: str, dates: list[str]) -> list[dict]:
        rows = await self._request(
            "GET",
            f"/{table}",
            params={"select": "*", "date": f"in.({','.join(dates)})"},
        )
        return [r for r in rows or [] if not r.get("is_deleted")]

    async def list_reservations(self, dates: list[str]) -> list[Reservation]:
        return [reservation_from_row(r) for r in await self._list_rows(RESERVATIONS_TABLE, dates)]

    async def list_event_reservations(self, dates: list[str]) -> list[EventReservation]:
        return [
            event_reservation_from_row(r)
            for r in await self._list_rows(EVENT_RESERVATIONS_TABLE, dates)
        ]

    async def _patch(self, table: str, reservation_id: str, patch: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{reservation_id}"},
            content=orjson.dumps(patch),
            headers={"Prefer": "return=minimal"},
        )

    async def update_reservation(self, reservation_id: str, patch: dict[str, Any]) -> None:
        await self._patch(RESERVATIONS_TABLE, reservation_id, patch)

    async def update_event_reservation(self, reservation_id: str, patch: dict[str, Any]) -> None:
        await self._patch(EVENT_RESERVATIONS_TABLE, reservation_id, patch)

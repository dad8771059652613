"""Two-tier duration adjustment store: fast local cache + remote record store.

Write path (optimistic):
1. Merge the patch into the in-memory map for the date (visible immediately)
2. Persist the whole per-date map to the local cache file
3. Notify listeners subscribed to that date
4. Mirror the same patch to the remote store in a background task

Reconciliation rule: the most recent successful remote read overwrites the
local value for that key, unless the key was written locally after the read
was sent or still has a local upsert in flight. In both cases the remote copy
is known to be older. Remote failures are logged and never roll back the
local write.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, Protocol

import orjson
from pydantic import ValidationError

from tableturn.models import AdjustmentsChanged, DurationAdjustment

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "duration-adjustments"

Listener = Callable[[AdjustmentsChanged], None]


class AdjustmentService(Protocol):
    """Authoritative remote store for adjustments. Every call may fail."""

    async def get_one(self, date: str, reservation_id: str) -> DurationAdjustment | None: ...

    async def get_by_date(self, date: str) -> dict[str, DurationAdjustment]: ...

    async def upsert_adjustment(
        self, date: str, reservation_id: str, patch: DurationAdjustment
    ) -> None: ...


class LocalAdjustmentCache:
    """One JSON file per operating date: {reservation_id: {start?, end?}}.

    Missing, unreadable or corrupt files read as an empty map.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    @staticmethod
    def key_for(date: str) -> str:
        return f"{CACHE_KEY_PREFIX}-{date}"

    def path_for(self, date: str) -> Path:
        return self.directory / f"{self.key_for(date)}.json"

    def load(self, date: str) -> dict[str, DurationAdjustment]:
        path = self.path_for(date)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("Could not read adjustment cache %s: %s", path, e)
            return {}

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Corrupt adjustment cache %s, treating as empty", path)
            return {}
        if not isinstance(data, dict):
            return {}

        adjustments: dict[str, DurationAdjustment] = {}
        for reservation_id, record in data.items():
            if not isinstance(record, dict):
                continue
            try:
                adjustments[str(reservation_id)] = DurationAdjustment.model_validate(record)
            except ValidationError:
                logger.debug("Skipping invalid cached adjustment for %s", reservation_id)
        return adjustments

    def save(self, date: str, adjustments: dict[str, DurationAdjustment]) -> None:
        payload = {rid: adj.to_record() for rid, adj in adjustments.items()}
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path_for(date).write_bytes(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS))


class AdjustmentStore:
    """
    Sole writer of duration adjustments.

    Reads always come from the local tier. Remote reads and writes run as
    background tasks on the running event loop; `drain()` awaits them.
    """

    def __init__(
        self,
        cache: LocalAdjustmentCache,
        remote: AdjustmentService | None = None,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._days: dict[str, dict[str, DurationAdjustment]] = {}
        self._listeners: list[tuple[str | None, Listener]] = []
        self._pending: set[asyncio.Task] = set()
        self._in_flight: dict[tuple[str, str], int] = {}
        self._writes: dict[tuple[str, str], int] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _day(self, date: str) -> dict[str, DurationAdjustment]:
        if date not in self._days:
            self._days[date] = self._cache.load(date)
        return self._days[date]

    def get_day(self, date: str) -> dict[str, DurationAdjustment]:
        """Snapshot of every local adjustment filed under `date`."""
        return dict(self._day(date))

    def get_adjustment(
        self, date: str, reservation_id: str, *, refresh: bool = True
    ) -> DurationAdjustment | None:
        """Local read. With refresh=True, also re-fetches the key in the background."""
        adjustment = self._day(date).get(reservation_id)
        if refresh and self._remote is not None:
            self._spawn(self._fetch(date, reservation_id, self._writes.get((date, reservation_id), 0)))
        return adjustment

    async def fetch_adjustment(self, date: str, reservation_id: str) -> DurationAdjustment | None:
        """Read the key from the remote store, reconcile, return the local value."""
        return await self._fetch(date, reservation_id, self._writes.get((date, reservation_id), 0))

    async def _fetch(
        self, date: str, reservation_id: str, writes_seen: int
    ) -> DurationAdjustment | None:
        if self._remote is not None:
            try:
                remote = await self._remote.get_one(date, reservation_id)
            except Exception as e:
                logger.warning("Adjustment fetch failed for %s on %s: %s", reservation_id, date, e)
            else:
                if remote is not None:
                    self._reconcile(date, {reservation_id: remote}, {reservation_id: writes_seen})
        return self._day(date).get(reservation_id)

    async def sync_day(self, date: str) -> dict[str, DurationAdjustment]:
        """Pull every remote adjustment for `date` into the local tier."""
        if self._remote is not None:
            seen = self._write_counts(date)
            try:
                remote = await self._remote.get_by_date(date)
            except Exception as e:
                logger.warning("Adjustment sync failed for %s: %s", date, e)
            else:
                self._reconcile(date, remote, seen)
        return self.get_day(date)

    def _write_counts(self, date: str) -> dict[str, int]:
        return {rid: count for (d, rid), count in self._writes.items() if d == date}

    def _reconcile(
        self,
        date: str,
        remote: dict[str, DurationAdjustment],
        seen: dict[str, int],
    ) -> None:
        """Apply `remote` values; `seen` holds per-key write counts taken when the read was sent."""
        day = self._day(date)
        changed = False
        for reservation_id, adjustment in remote.items():
            if self._writes.get((date, reservation_id), 0) != seen.get(reservation_id, 0):
                logger.debug("Ignoring stale remote adjustment for %s", reservation_id)
                continue
            if self._in_flight.get((date, reservation_id)):
                logger.debug("Keeping local adjustment for %s (upsert in flight)", reservation_id)
                continue
            if day.get(reservation_id) != adjustment:
                day[reservation_id] = adjustment
                changed = True
        if changed:
            self._persist(date)
            self._notify(AdjustmentsChanged(date=date))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_adjustment(
        self, date: str, reservation_id: str, patch: DurationAdjustment
    ) -> DurationAdjustment:
        """Merge `patch` locally, notify, then mirror the patch remotely.

        Returns the merged local record, already visible to readers.
        """
        day = self._day(date)
        key = (date, reservation_id)
        self._writes[key] = self._writes.get(key, 0) + 1
        merged = day.get(reservation_id, DurationAdjustment()).merged(patch)
        day[reservation_id] = merged
        self._persist(date)
        logger.debug("Adjustment %s on %s -> %s", reservation_id, date, merged.to_record())

        self._notify(AdjustmentsChanged(date=date, reservation_id=reservation_id))

        if self._remote is not None:
            self._mirror(date, reservation_id, patch)
        return merged

    def _persist(self, date: str) -> None:
        try:
            self._cache.save(date, self._day(date))
        except OSError as e:
            # In-memory copy stays authoritative for this session
            logger.warning("Could not write adjustment cache for %s: %s", date, e)

    def _mirror(self, date: str, reservation_id: str, patch: DurationAdjustment) -> None:
        key = (date, reservation_id)
        self._in_flight[key] = self._in_flight.get(key, 0) + 1

        def _release() -> None:
            remaining = self._in_flight.get(key, 1) - 1
            if remaining > 0:
                self._in_flight[key] = remaining
            else:
                self._in_flight.pop(key, None)

        async def _upsert() -> None:
            try:
                await self._remote.upsert_adjustment(date, reservation_id, patch)
            except Exception as e:
                logger.warning(
                    "Remote upsert failed for %s on %s (local copy kept): %s",
                    reservation_id, date, e,
                )
            finally:
                _release()

        if not self._spawn(_upsert()):
            _release()
            logger.warning("No running event loop, remote mirror skipped for %s", reservation_id)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return False
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def drain(self) -> None:
        """Wait for every background remote read/write to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener, date: str | None = None) -> Callable[[], None]:
        """Register `listener` for changes on `date` (every date when None).

        Returns a callable that unsubscribes.
        """
        entry = (date, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(entry)
            except ValueError:
                pass

        return unsubscribe

    def _notify(self, event: AdjustmentsChanged) -> None:
        for date, listener in list(self._listeners):
            if date is not None and date != event.date:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Adjustment listener failed for %s", event.date)

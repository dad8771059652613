"""Pydantic models for reservations, adjustments and engine results."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tableturn.timemodel import DAY_MINUTES, MAX_MINUTES


# --- Reservations ---


class ReservationKind(str, Enum):
    REGULAR = "regular"
    EVENT = "event"


class ReservationStatus(str, Enum):
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    NOT_ARRIVED = "not_arrived"
    CANCELLED = "cancelled"


class EventReservationStatus(str, Enum):
    BOOKED = "booked"
    ARRIVED = "arrived"
    NOT_ARRIVED = "not_arrived"
    CANCELLED = "cancelled"


class EventPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    NOT_REQUIRED = "not_required"


class _ReservationBase(BaseModel):
    """Fields shared by regular and event reservations."""

    id: str
    date: str  # operating date, "YYYY-MM-DD"
    time: str = "00:00"
    party_size: int = Field(default=2, ge=0)
    table_ids: list[str] = []
    cleared: bool = False
    zone_id: str = ""
    guest_name: str = ""

    kind: ClassVar[ReservationKind]
    pending_statuses: ClassVar[frozenset]
    visible_statuses: ClassVar[frozenset]

    @field_validator("table_ids", mode="before")
    @classmethod
    def _stringify_table_ids(cls, value):
        # Layout tables may be referenced by number or uuid
        if value is None:
            return []
        return [str(v) for v in value]

    @property
    def is_pending(self) -> bool:
        """Not yet seated and still expected (candidate for being shifted)."""
        return self.status in self.pending_statuses and not self.cleared

    @property
    def is_seated(self) -> bool:
        return self.status == "arrived" and not self.cleared

    @property
    def is_visible(self) -> bool:
        """Shown on a day view: pending or seated, never cleared."""
        return self.status in self.visible_statuses and not self.cleared

    def shares_table(self, table_ids: list[str]) -> bool:
        wanted = {str(t) for t in table_ids}
        return any(t in wanted for t in self.table_ids)


class Reservation(_ReservationBase):
    status: ReservationStatus = ReservationStatus.WAITING

    kind: ClassVar[ReservationKind] = ReservationKind.REGULAR
    pending_statuses: ClassVar[frozenset] = frozenset(
        {ReservationStatus.WAITING, ReservationStatus.CONFIRMED}
    )
    visible_statuses: ClassVar[frozenset] = frozenset(
        {ReservationStatus.WAITING, ReservationStatus.CONFIRMED, ReservationStatus.ARRIVED}
    )

    @property
    def display_status(self) -> str:
        return self.status.value


class EventReservation(_ReservationBase):
    event_id: str = ""
    status: EventReservationStatus = EventReservationStatus.BOOKED
    payment_status: EventPaymentStatus = EventPaymentStatus.NOT_REQUIRED

    kind: ClassVar[ReservationKind] = ReservationKind.EVENT
    pending_statuses: ClassVar[frozenset] = frozenset({EventReservationStatus.BOOKED})
    visible_statuses: ClassVar[frozenset] = frozenset(
        {EventReservationStatus.BOOKED, EventReservationStatus.ARRIVED}
    )

    @property
    def display_status(self) -> str:
        # 'booked' is the event equivalent of 'waiting'
        if self.status == EventReservationStatus.BOOKED:
            return ReservationStatus.WAITING.value
        return self.status.value


AnyReservation = Union[Reservation, EventReservation]


class Table(BaseModel):
    """Layout table. Owned by the layout editor; read-only here."""

    id: str
    number: int | None = None
    zone_id: str = ""


# --- Adjustments ---


class DurationAdjustment(BaseModel):
    """Persisted override of a reservation's start and/or end minute.

    An unset field means "use the default for that boundary". Zero is a real
    minute, so fields are checked with `is not None`, never by truthiness.
    """

    start: int | None = Field(default=None, ge=0, le=MAX_MINUTES)
    end: int | None = Field(default=None, ge=0, le=MAX_MINUTES)

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None

    def merged(self, patch: DurationAdjustment) -> DurationAdjustment:
        """Apply only the fields explicitly set on `patch`."""
        data = self.model_dump(exclude_none=True)
        data.update(patch.model_dump(exclude_unset=True))
        return DurationAdjustment(**data)

    def to_record(self) -> dict[str, int]:
        return self.model_dump(exclude_none=True)


class AdjustmentsChanged(BaseModel):
    """Broadcast after a local adjustment write for `date`."""

    model_config = ConfigDict(frozen=True)

    date: str
    reservation_id: str | None = None


# --- Derived windows and results ---


class OccupancyWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_minutes: int
    end_minutes: int

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def spills_over(self) -> bool:
        return self.end_minutes > DAY_MINUTES

    def overlaps(self, other: OccupancyWindow) -> bool:
        return self.start_minutes < other.end_minutes and other.start_minutes < self.end_minutes


class Conflict(BaseModel):
    """A pending reservation whose start falls inside a newly claimed interval."""

    reservation: AnyReservation
    window: OccupancyWindow  # pre-shift window


class ShiftOutcome(BaseModel):
    reservation_id: str
    kind: ReservationKind
    old_window: OccupancyWindow
    new_window: OccupancyWindow
    new_time: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CascadeResult(BaseModel):
    shifts: list[ShiftOutcome] = []

    @property
    def shifted(self) -> list[ShiftOutcome]:
        return [s for s in self.shifts if s.ok]

    @property
    def failed(self) -> list[ShiftOutcome]:
        return [s for s in self.shifts if not s.ok]


class ExtendResult(BaseModel):
    reservation_id: str
    date: str
    previous_end: int
    extended_end: int
    cascade: CascadeResult = Field(default_factory=CascadeResult)


class TimelineEdit(BaseModel):
    """Outcome of a manual resize or move on the timeline."""

    reservation_id: str
    date: str
    old_window: OccupancyWindow
    new_window: OccupancyWindow
    cascade: CascadeResult = Field(default_factory=CascadeResult)
    error: str | None = None  # set when the record `time` push failed

    @property
    def changed(self) -> bool:
        return self.old_window != self.new_window


class DayEntry(BaseModel):
    """One row of an operating day's view.

    Spillover entries belong to `source_date` but occupy `window` on the
    viewed date (starting at 00:00).
    """

    reservation: AnyReservation
    window: OccupancyWindow
    spillover: bool = False
    source_date: str | None = None

    @property
    def display_status(self) -> str:
        return self.reservation.display_status


# --- Configuration ---


class RecordStoreConfig(BaseModel):
    """Where reservation records and adjustments live."""

    base_url: str
    api_key_env: str = "TABLETURN_API_KEY"
    owner_id: str | None = None  # scopes adjustment rows to one account
    timeout_seconds: float = Field(default=10.0, gt=0)


class EngineConfig(BaseModel):
    """Loaded from YAML config file."""

    records: RecordStoreConfig
    cache_dir: Path = Path("~/.tableturn/cache")
    extension_minutes: int = Field(default=15, ge=1, le=240)
    countdown_interval_seconds: float = Field(default=1.0, gt=0)
    ntp_check: bool = False
    timezone: str | None = None  # floor clock zone, system local when unset

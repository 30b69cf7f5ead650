"""
Domain models for availability rules, bookings and derived time slots.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Dict, List

import pendulum
from pendulum import DateTime


class BookingStatus(str, Enum):
    INQUIRY = "inquiry"
    PENDING = "pending"
    APPROVED = "approved"
    DEPOSIT_PAID = "deposit_paid"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DossierStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


def parse_time_of_day(value: str | time) -> time:
    """
    Parse a local time of day in ``HH:MM`` or ``HH:MM:SS`` form.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM or HH:MM:SS)") from None


def weekday_index(day: date) -> int:
    """Return the weekday with Sunday as 0 and Saturday as 6."""
    return day.isoweekday() % 7


def _parse_timestamp(value: Any) -> DateTime | None:
    if value is None or value == "":
        return None
    if isinstance(value, DateTime):
        return value
    parsed = pendulum.parse(str(value))
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Could not parse timestamp: {value}")
    return parsed


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start


@dataclass(frozen=True)
class AvailabilityRule:
    """
    A weekly window during which an artist accepts bookings.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    artist_id: str
    day_of_week: int | None
    start_time: time
    end_time: time
    is_recurring: bool = True
    id: str | None = None
    specific_date: str | None = None

    def is_degenerate(self) -> bool:
        """A rule whose window is empty yields no slots."""
        return self.start_time >= self.end_time

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AvailabilityRule":
        return cls(
            artist_id=row["artist_id"],
            day_of_week=int(row["day_of_week"]) if row.get("day_of_week") is not None else None,
            start_time=parse_time_of_day(row["start_time"]),
            end_time=parse_time_of_day(row["end_time"]),
            is_recurring=bool(row.get("is_recurring", True)),
            id=row.get("id"),
            specific_date=row.get("specific_date"),
        )

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "artist_id": self.artist_id,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.strftime("%H:%M:%S"),
            "end_time": self.end_time.strftime("%H:%M:%S"),
            "is_recurring": self.is_recurring,
        }
        if self.specific_date is not None:
            row["specific_date"] = self.specific_date
        return row


@dataclass(frozen=True)
class Booking:
    """A reservation linking a client to an optional provider and slot."""
    id: str
    client_id: str
    status: BookingStatus
    deposit_amount: int
    dossier_id: str | None = None
    artist_id: str | None = None
    studio_id: str | None = None
    date: DateTime | None = None
    payment_reference: str | None = None
    created_at: DateTime | None = None

    @property
    def provider_id(self) -> str | None:
        return self.artist_id or self.studio_id

    def blocks_slot(self) -> bool:
        """Whether this booking occupies its slot for scheduling purposes."""
        return self.date is not None and self.status != BookingStatus.CANCELLED

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Booking":
        return cls(
            id=str(row["id"]),
            client_id=row["client_id"],
            status=BookingStatus(row["status"]),
            deposit_amount=int(row.get("deposit_amount") or 0),
            dossier_id=row.get("dossier_id"),
            artist_id=row.get("artist_id"),
            studio_id=row.get("studio_id"),
            date=_parse_timestamp(row.get("date")),
            payment_reference=row.get("stripe_payment_intent"),
            created_at=_parse_timestamp(row.get("created_at")),
        )


@dataclass(frozen=True)
class Dossier:
    """A client's tattoo project request."""
    id: str
    client_id: str
    title: str
    description: str
    status: DossierStatus
    body_zone: str | None = None
    budget_min: int | None = None
    budget_max: int | None = None
    concept_images: List[str] = field(default_factory=list)
    studio_id: str | None = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Dossier":
        return cls(
            id=str(row["id"]),
            client_id=row.get("client_id") or row.get("user_id"),
            title=row["title"],
            description=row.get("description") or "",
            status=DossierStatus(row["status"]),
            body_zone=row.get("body_zone"),
            budget_min=row.get("budget_min"),
            budget_max=row.get("budget_max"),
            concept_images=list(row.get("concept_images") or []),
            studio_id=row.get("studio_id"),
        )


@dataclass(frozen=True)
class TimeSlot:
    """
    A candidate appointment start derived from a rule. Never persisted.
    """
    time_range: TimeRange
    available: bool

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def time(self) -> str:
        """Start time formatted as ``HH:MM``."""
        return self.time_range.start.format("HH:mm")

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "available": self.available}


@dataclass(frozen=True)
class User:
    """The authenticated caller."""
    id: str
    email: str | None = None


@dataclass(frozen=True)
class DepositIntent:
    """A pending charge created by the payment gateway."""
    id: str
    client_secret: str

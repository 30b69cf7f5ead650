"""
Application services for reading slots and editing weekly availability.

``AvailabilityService`` loads rules and bookings through the store protocol
and delegates slot generation to the domain-level ``SlotGenerator``. The
editor replaces an artist's recurring schedule in one call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, List, Sequence

from ..domain.exceptions import Unauthorized, ValidationFailed
from ..domain.models import (
    AvailabilityRule,
    Booking,
    BookingStatus,
    TimeSlot,
    parse_time_of_day,
)
from ..domain.slot_generator import SlotGenerator
from .protocols import (
    AVAILABILITY_TABLE,
    BOOKINGS_TABLE,
    AvailabilityStore,
    IdentityProvider,
)

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = tuple(
    status.value for status in BookingStatus if status != BookingStatus.CANCELLED
)


@dataclass(frozen=True)
class WeeklyWindow:
    """One enabled weekday of a schedule being saved."""
    day_of_week: int
    start_time: time
    end_time: time

    @classmethod
    def parse(cls, day_of_week: int, start: str, end: str) -> "WeeklyWindow":
        try:
            return cls(
                day_of_week=int(day_of_week),
                start_time=parse_time_of_day(start),
                end_time=parse_time_of_day(end),
            )
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc


def validate_schedule(windows: Sequence[WeeklyWindow]) -> None:
    """
    Reject schedules that could not be booked or would be ambiguous.

    Raises:
        ValidationFailed: On an unknown weekday, an empty window or a
            weekday listed twice
    """
    seen: set[int] = set()
    for window in windows:
        if window.day_of_week not in range(7):
            raise ValidationFailed(
                f"day_of_week must be between 0 (Sunday) and 6 (Saturday), got {window.day_of_week}"
            )
        if window.start_time >= window.end_time:
            raise ValidationFailed(
                f"Window for day {window.day_of_week} must start before it ends "
                f"({window.start_time:%H:%M} - {window.end_time:%H:%M})"
            )
        if window.day_of_week in seen:
            raise ValidationFailed(f"Day {window.day_of_week} is listed more than once")
        seen.add(window.day_of_week)


class AvailabilityService:
    """
    Orchestrates store reads, slot generation and schedule replacement.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        slot_generator: SlotGenerator,
        identity: IdentityProvider | None = None,
    ) -> None:
        self._store = store
        self._slot_generator = slot_generator
        self._identity = identity

    async def get_schedule(self, artist_id: str) -> List[AvailabilityRule]:
        """Return the artist's recurring rules ordered by weekday."""
        rules = await self.fetch_rules(artist_id)
        return sorted(rules, key=lambda rule: (rule.day_of_week is None, rule.day_of_week or 0))

    async def fetch_rules(self, artist_id: str) -> List[AvailabilityRule]:
        """Recurring rules in store order (first match wins on duplicates)."""
        rows = await self._store.query(
            AVAILABILITY_TABLE,
            {"artist_id": artist_id, "is_recurring": True},
        )
        return [AvailabilityRule.from_row(row) for row in rows]

    async def fetch_bookings(self, artist_id: str) -> List[Booking]:
        """Active bookings of the artist that hold a date."""
        rows = await self._store.query(
            BOOKINGS_TABLE,
            {"artist_id": artist_id, "status": ACTIVE_BOOKING_STATUSES},
        )
        bookings = [Booking.from_row(row) for row in rows]
        return [booking for booking in bookings if booking.blocks_slot()]

    async def get_slots(self, artist_id: str, target_date: date) -> List[TimeSlot]:
        """Slots the artist offers on ``target_date`` with availability flags."""
        rules = await self.fetch_rules(artist_id)
        bookings = await self.fetch_bookings(artist_id)

        return self._slot_generator.generate_slots(
            target_date=target_date,
            rules=rules,
            existing_bookings=bookings,
        )

    async def get_calendar(
        self,
        artist_id: str,
        start: date,
        days: int,
        today: date | None = None,
    ) -> List[date]:
        """Dates in the window a client may pick for this artist."""
        rules = await self.fetch_rules(artist_id)
        return self._slot_generator.selectable_dates(rules, start, days, today=today)

    async def set_availability(
        self,
        artist_id: str,
        windows: Iterable[WeeklyWindow],
    ) -> List[AvailabilityRule]:
        """
        Replace the artist's whole recurring schedule.

        New rows are inserted before the previous ones are deleted, so a
        failed insert leaves the old schedule untouched. If the delete fails
        both sets exist until the next save; the older rows come first in
        store order and stay authoritative.

        Raises:
            Unauthorized: If nobody is signed in or the caller is another user
            ValidationFailed: If the schedule is malformed
            StoreError: Store failures, surfaced verbatim
        """
        await self._require_owner(artist_id)

        windows = list(windows)
        validate_schedule(windows)

        existing = await self._store.query(
            AVAILABILITY_TABLE,
            {"artist_id": artist_id, "is_recurring": True},
        )
        stale_ids = [row["id"] for row in existing if row.get("id") is not None]

        new_rules = [
            AvailabilityRule(
                artist_id=artist_id,
                day_of_week=window.day_of_week,
                start_time=window.start_time,
                end_time=window.end_time,
            )
            for window in windows
        ]

        inserted: List[dict] = []
        if new_rules:
            inserted = await self._store.insert(
                AVAILABILITY_TABLE,
                [rule.to_row() for rule in new_rules],
            )

        if stale_ids:
            await self._store.delete(AVAILABILITY_TABLE, {"id": stale_ids})

        logger.info(
            "Saved %d availability window(s) for artist %s, replaced %d",
            len(new_rules),
            artist_id,
            len(stale_ids),
        )
        return [AvailabilityRule.from_row(row) for row in inserted]

    async def _require_owner(self, artist_id: str) -> None:
        if self._identity is None:
            raise Unauthorized("Unauthorized")

        user = await self._identity.current_user()
        if user is None:
            raise Unauthorized("Unauthorized")
        if user.id != artist_id:
            raise Unauthorized(f"User {user.id} cannot edit the schedule of {artist_id}")

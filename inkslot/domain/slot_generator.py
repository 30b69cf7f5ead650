"""
Core business logic for turning weekly availability into bookable slots.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O). Callers fetch rules and bookings and pass them in.
"""

from datetime import date, time
from typing import Iterable, List, Sequence

import pendulum
from pendulum import DateTime

from .models import AvailabilityRule, Booking, TimeRange, TimeSlot, weekday_index

DEFAULT_SLOT_DURATION_MINUTES = 60


class SlotGenerator:
    """
    Generates the ordered slots an artist offers on a calendar date.

    Algorithm:
    1. Determine the weekday of the target date (Sunday = 0)
    2. Pick the first recurring rule for that weekday; none means a closed day
    3. Step from the rule's start in fixed increments while a whole slot
       still fits before the rule's end
    4. Mark a slot unavailable when an active booking starts at the same
       date and HH:MM (or overlaps it, when overlap detection is enabled)
    """

    def __init__(
        self,
        slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES,
        timezone: str = "Europe/Berlin",
        detect_overlaps: bool = False,
    ):
        if slot_duration_minutes <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        self.slot_duration_minutes = slot_duration_minutes
        self.timezone = timezone
        self.detect_overlaps = detect_overlaps

    def generate_slots(
        self,
        target_date: date,
        rules: Sequence[AvailabilityRule],
        existing_bookings: Iterable[Booking],
    ) -> List[TimeSlot]:
        """
        Produce the slots for ``target_date``.

        Args:
            target_date: Calendar date to generate slots for
            rules: The artist's recurring availability rules
            existing_bookings: Bookings of the same artist

        Returns:
            Slots ascending by start time; empty when the day is closed
        """
        rule = self.find_rule(target_date, rules)

        if rule is None or rule.is_degenerate():
            return []

        window_end = self._at(target_date, rule.end_time)
        current = self._at(target_date, rule.start_time)

        busy = [
            booking.date.in_timezone(self.timezone)
            for booking in existing_bookings
            if booking.blocks_slot()
        ]

        slots: List[TimeSlot] = []

        while current < window_end:
            slot_end = current.add(minutes=self.slot_duration_minutes)
            if slot_end > window_end:
                break

            slot_range = TimeRange(start=current, end=slot_end)
            slots.append(
                TimeSlot(time_range=slot_range, available=not self._is_booked(slot_range, busy))
            )
            current = slot_end

        return slots

    def find_rule(
        self,
        target_date: date,
        rules: Sequence[AvailabilityRule],
    ) -> AvailabilityRule | None:
        """Return the first recurring rule for the weekday of ``target_date``."""
        day_of_week = weekday_index(target_date)

        for rule in rules:
            if rule.is_recurring and rule.day_of_week == day_of_week:
                return rule

        return None

    def is_date_selectable(
        self,
        target_date: date,
        rules: Sequence[AvailabilityRule],
        today: date | None = None,
    ) -> bool:
        """
        A date can be picked when it is not in the past and the artist works
        on its weekday.
        """
        if today is None:
            today = pendulum.today(self.timezone).date()

        if target_date < today:
            return False

        return self.find_rule(target_date, rules) is not None

    def selectable_dates(
        self,
        rules: Sequence[AvailabilityRule],
        start: date,
        days: int,
        today: date | None = None,
    ) -> List[date]:
        """List the selectable dates among ``days`` consecutive days from ``start``."""
        start_day = pendulum.date(start.year, start.month, start.day)
        candidates = (start_day.add(days=offset) for offset in range(days))

        return [
            candidate for candidate in candidates
            if self.is_date_selectable(candidate, rules, today=today)
        ]

    def _at(self, target_date: date, time_of_day: time) -> DateTime:
        return pendulum.datetime(
            target_date.year,
            target_date.month,
            target_date.day,
            time_of_day.hour,
            time_of_day.minute,
            time_of_day.second,
            tz=self.timezone,
        )

    def _is_booked(self, slot_range: TimeRange, busy: List[DateTime]) -> bool:
        if self.detect_overlaps:
            # Bookings carry no duration of their own; assume one slot length.
            return any(
                slot_range.overlaps(
                    TimeRange(start=start, end=start.add(minutes=self.slot_duration_minutes))
                )
                for start in busy
            )

        slot_start = slot_range.start
        return any(
            start.date() == slot_start.date()
            and start.format("HH:mm") == slot_start.format("HH:mm")
            for start in busy
        )

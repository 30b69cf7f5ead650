"""
Tests for the SlotGenerator domain logic.
"""

from datetime import time

import pendulum
import pytest

from inkslot.domain.models import AvailabilityRule, Booking, BookingStatus
from inkslot.domain.slot_generator import SlotGenerator

TZ = "Europe/Berlin"
MONDAY = pendulum.date(2024, 11, 25)
SUNDAY = pendulum.date(2024, 11, 24)


def _rule(day_of_week=1, start=time(9, 0), end=time(12, 0), **kwargs):
    return AvailabilityRule(
        artist_id="artist-1",
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        **kwargs,
    )


def _booking(when, status=BookingStatus.PENDING, booking_id="bk-1"):
    return Booking(
        id=booking_id,
        client_id="client-1",
        status=status,
        deposit_amount=5000,
        artist_id="artist-1",
        date=when,
    )


@pytest.fixture
def generator():
    return SlotGenerator(slot_duration_minutes=60, timezone=TZ)


def test_closed_day_yields_no_slots(generator):
    """A weekday without a rule has no slots."""
    assert generator.generate_slots(SUNDAY, [_rule(day_of_week=1)], []) == []


def test_hourly_slots_cover_window(generator):
    slots = generator.generate_slots(MONDAY, [_rule()], [])

    assert [slot.time for slot in slots] == ["09:00", "10:00", "11:00"]
    assert all(slot.available for slot in slots)
    assert slots[0].start == pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ)


def test_booked_slot_is_marked_unavailable(generator):
    bookings = [_booking(pendulum.datetime(2024, 11, 25, 10, 0, tz=TZ))]

    slots = generator.generate_slots(MONDAY, [_rule()], bookings)

    assert [slot.to_dict() for slot in slots] == [
        {"time": "09:00", "available": True},
        {"time": "10:00", "available": False},
        {"time": "11:00", "available": True},
    ]


def test_utc_booking_is_compared_in_local_time(generator):
    """09:00 UTC is 10:00 in Berlin during winter time."""
    bookings = [_booking(pendulum.datetime(2024, 11, 25, 9, 0, tz="UTC"))]

    slots = generator.generate_slots(MONDAY, [_rule()], bookings)

    assert [slot.available for slot in slots] == [True, False, True]


def test_cancelled_and_other_day_bookings_do_not_block(generator):
    bookings = [
        _booking(pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ), status=BookingStatus.CANCELLED),
        _booking(pendulum.datetime(2024, 11, 26, 10, 0, tz=TZ), booking_id="bk-2"),
        _booking(None, status=BookingStatus.INQUIRY, booking_id="bk-3"),
    ]

    slots = generator.generate_slots(MONDAY, [_rule()], bookings)

    assert all(slot.available for slot in slots)


def test_off_grid_booking_does_not_block_in_exact_mode(generator):
    bookings = [_booking(pendulum.datetime(2024, 11, 25, 10, 30, tz=TZ))]

    slots = generator.generate_slots(MONDAY, [_rule()], bookings)

    assert all(slot.available for slot in slots)


def test_overlap_mode_blocks_partially_covered_slots():
    generator = SlotGenerator(slot_duration_minutes=60, timezone=TZ, detect_overlaps=True)
    bookings = [_booking(pendulum.datetime(2024, 11, 25, 10, 30, tz=TZ))]

    slots = generator.generate_slots(MONDAY, [_rule()], bookings)

    assert [slot.available for slot in slots] == [True, False, False]


@pytest.mark.parametrize(
    "start,end",
    [(time(12, 0), time(12, 0)), (time(14, 0), time(9, 0))],
)
def test_degenerate_window_yields_no_slots(generator, start, end):
    assert generator.generate_slots(MONDAY, [_rule(start=start, end=end)], []) == []


def test_partial_trailing_slot_is_dropped(generator):
    slots = generator.generate_slots(MONDAY, [_rule(end=time(12, 30))], [])

    assert [slot.time for slot in slots] == ["09:00", "10:00", "11:00"]
    assert slots[-1].time_range.end == pendulum.datetime(2024, 11, 25, 12, 0, tz=TZ)


def test_slot_count_is_floor_of_window_over_duration():
    generator = SlotGenerator(slot_duration_minutes=45, timezone=TZ)

    slots = generator.generate_slots(MONDAY, [_rule(end=time(12, 0))], [])

    # 180 minutes / 45 minutes
    assert [slot.time for slot in slots] == ["09:00", "09:45", "10:30", "11:15"]


def test_half_hour_slots():
    generator = SlotGenerator(slot_duration_minutes=30, timezone=TZ)

    slots = generator.generate_slots(MONDAY, [_rule(end=time(10, 30))], [])

    assert [slot.time for slot in slots] == ["09:00", "09:30", "10:00"]


def test_first_matching_rule_wins(generator):
    rules = [
        _rule(start=time(9, 0), end=time(11, 0), id="first"),
        _rule(start=time(14, 0), end=time(16, 0), id="second"),
    ]

    assert generator.find_rule(MONDAY, rules).id == "first"
    assert [slot.time for slot in generator.generate_slots(MONDAY, rules, [])] == ["09:00", "10:00"]


def test_one_off_rules_are_ignored(generator):
    rules = [_rule(is_recurring=False, specific_date="2024-11-25")]

    assert generator.generate_slots(MONDAY, rules, []) == []


def test_generation_is_repeatable(generator):
    rules = [_rule()]
    bookings = [_booking(pendulum.datetime(2024, 11, 25, 11, 0, tz=TZ))]

    first = generator.generate_slots(MONDAY, rules, bookings)
    second = generator.generate_slots(MONDAY, rules, bookings)

    assert first == second


@pytest.mark.parametrize("duration", [0, -15])
def test_non_positive_duration_is_rejected(duration):
    with pytest.raises(ValueError, match="greater than zero"):
        SlotGenerator(slot_duration_minutes=duration)


class TestSelectableDates:
    """Tests for the calendar date predicate."""

    def test_past_dates_are_not_selectable(self, generator):
        rules = [_rule(day_of_week=1)]

        assert not generator.is_date_selectable(MONDAY, rules, today=pendulum.date(2024, 11, 26))
        assert generator.is_date_selectable(MONDAY, rules, today=MONDAY)

    def test_days_without_rule_are_not_selectable(self, generator):
        assert not generator.is_date_selectable(SUNDAY, [_rule(day_of_week=1)], today=SUNDAY)

    def test_selectable_dates_over_two_weeks(self, generator):
        rules = [_rule(day_of_week=1), _rule(day_of_week=4)]

        dates = generator.selectable_dates(rules, start=SUNDAY, days=14, today=SUNDAY)

        assert [d.isoformat() for d in dates] == [
            "2024-11-25",
            "2024-11-28",
            "2024-12-02",
            "2024-12-05",
        ]

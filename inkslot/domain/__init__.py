"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    AvailabilityRule,
    Booking,
    BookingStatus,
    DepositIntent,
    Dossier,
    DossierStatus,
    TimeRange,
    TimeSlot,
    User,
)
from .slot_generator import SlotGenerator

__all__ = [
    "AvailabilityRule",
    "Booking",
    "BookingStatus",
    "DepositIntent",
    "Dossier",
    "DossierStatus",
    "TimeRange",
    "TimeSlot",
    "User",
    "SlotGenerator",
]

"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, WeeklyWindow
from .protocols import AvailabilityStore, IdentityProvider, PaymentGateway
from .reservation import (
    ReservationRequest,
    ReservationResult,
    ReservationService,
    combine_slot,
)

__all__ = [
    "AvailabilityService",
    "WeeklyWindow",
    "AvailabilityStore",
    "IdentityProvider",
    "PaymentGateway",
    "ReservationRequest",
    "ReservationResult",
    "ReservationService",
    "combine_slot",
]

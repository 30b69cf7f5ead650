"""
Booking reservation workflow.

Creates the client's dossier and, when a provider was chosen, a deposit
payment intent and a pending booking for the selected slot. The steps run
strictly in order against a remote store without cross-insert atomicity:

1. Insert the dossier as ``draft`` (failure aborts everything)
2. Without a provider, publish the dossier as ``open`` and stop
3. Request a deposit intent (failure degrades to no payment reference)
4. Insert the ``pending`` booking (failure leaves the dossier behind)

A slot already held by another active booking is rejected by the store's
unique constraint and reported as ``SlotTaken``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    BookingCreationFailed,
    BookingNotFound,
    DossierCreationFailed,
    InvalidBookingTransition,
    PaymentGatewayError,
    PaymentIntentFailed,
    SlotTaken,
    StoreConflictError,
    StoreError,
    Unauthorized,
    ValidationFailed,
)
from ..domain.models import (
    Booking,
    BookingStatus,
    DepositIntent,
    Dossier,
    DossierStatus,
    User,
    parse_time_of_day,
)
from .protocols import (
    BOOKINGS_TABLE,
    DOSSIERS_TABLE,
    AvailabilityStore,
    IdentityProvider,
    PaymentGateway,
)

logger = logging.getLogger(__name__)

DEFAULT_DEPOSIT_AMOUNT = 5000
DEFAULT_CURRENCY = "usd"

CANCELLABLE_STATUSES = tuple(
    status.value
    for status in BookingStatus
    if status not in (BookingStatus.CANCELLED, BookingStatus.COMPLETED)
)


def combine_slot(day: date | None, slot_time: str | None, timezone: str) -> DateTime:
    """
    Merge a picked calendar date and ``HH:MM`` slot into one timestamp.

    Raises:
        ValidationFailed: If the date or the time is missing or malformed
    """
    if day is None or not slot_time:
        raise ValidationFailed("Please select a date and time")

    try:
        time_of_day = parse_time_of_day(slot_time)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc

    return pendulum.datetime(
        day.year,
        day.month,
        day.day,
        time_of_day.hour,
        time_of_day.minute,
        tz=timezone,
    )


@dataclass(frozen=True)
class ReservationRequest:
    """Project details and optional provider/slot picked in the booking wizard."""
    title: str
    description: str
    body_zone: str
    budget_min: int
    budget_max: int
    concept_images: List[str] = field(default_factory=list)
    artist_id: str | None = None
    studio_id: str | None = None
    slot_datetime: DateTime | None = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValidationFailed("A project title is required")
        if self.budget_min < 0 or self.budget_max < 0:
            raise ValidationFailed("Budget values cannot be negative")
        if self.budget_min > self.budget_max:
            raise ValidationFailed(
                f"budget_min ({self.budget_min}) cannot exceed budget_max ({self.budget_max})"
            )

    @property
    def provider_id(self) -> str | None:
        return self.artist_id or self.studio_id


@dataclass(frozen=True)
class ReservationResult:
    """What the caller needs to finish payment on the client side."""
    dossier: Dossier
    booking: Booking | None = None
    client_secret: str | None = None


class ReservationService:
    """
    Runs the reservation workflow and the follow-up booking transitions.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        payment_gateway: PaymentGateway,
        identity: IdentityProvider,
        deposit_amount: int = DEFAULT_DEPOSIT_AMOUNT,
        currency: str = DEFAULT_CURRENCY,
        proceed_without_payment_on_gateway_failure: bool = True,
    ) -> None:
        self._store = store
        self._payment_gateway = payment_gateway
        self._identity = identity
        self.deposit_amount = deposit_amount
        self.currency = currency
        self.proceed_without_payment_on_gateway_failure = proceed_without_payment_on_gateway_failure

    async def reserve(self, request: ReservationRequest) -> ReservationResult:
        """
        Create the dossier and, for a direct provider, the deposit booking.

        Raises:
            Unauthorized: If nobody is signed in
            DossierCreationFailed: If the dossier insert is rejected
            PaymentIntentFailed: If the gateway fails and degrading is off
            SlotTaken: If another active booking already holds the slot
            BookingCreationFailed: If the booking insert is rejected
        """
        user = await self._require_user()

        dossier = await self._create_dossier(user, request)

        if request.provider_id is None:
            return ReservationResult(dossier=await self._publish_dossier(dossier))

        intent = await self._create_deposit_intent(dossier, request)
        booking = await self._create_booking(user, dossier, request, intent)

        return ReservationResult(
            dossier=dossier,
            booking=booking,
            client_secret=intent.client_secret if intent else None,
        )

    async def cancel_booking(self, booking_id: str) -> Booking:
        """
        Cancel a booking, freeing its slot.

        Only the booking's client or provider may cancel it, and only while
        it is not already cancelled or completed.

        Raises:
            Unauthorized: If the caller is not a party to the booking
            BookingNotFound: If the booking does not exist
            InvalidBookingTransition: If the booking is cancelled or completed
        """
        user = await self._require_user()
        booking = await self._load_booking(booking_id)

        if user.id not in (booking.client_id, booking.artist_id, booking.studio_id):
            raise Unauthorized(f"User {user.id} cannot cancel booking {booking_id}")

        booking = await self._transition(booking, CANCELLABLE_STATUSES, BookingStatus.CANCELLED)
        logger.info("Booking cancelled: %s", booking_id)
        return booking

    async def confirm_deposit(self, booking_id: str, succeeded: bool) -> Booking:
        """
        Record the outcome of the client-side payment confirmation.

        Success moves a ``pending`` booking to ``deposit_paid``; repeating it
        is harmless. A failed confirmation leaves the booking unchanged so the
        client can retry the payment.

        Raises:
            Unauthorized: If the caller is not the booking's client
            BookingNotFound: If the booking does not exist
            InvalidBookingTransition: If the booking is no longer pending
        """
        user = await self._require_user()
        booking = await self._load_booking(booking_id)

        if user.id != booking.client_id:
            raise Unauthorized(f"User {user.id} cannot confirm payment for booking {booking_id}")

        if not succeeded:
            logger.warning("Deposit confirmation failed for booking %s", booking_id)
            return booking

        if booking.status == BookingStatus.DEPOSIT_PAID:
            return booking

        booking = await self._transition(
            booking, (BookingStatus.PENDING.value,), BookingStatus.DEPOSIT_PAID
        )
        logger.info("Deposit paid for booking %s", booking_id)
        return booking

    async def _require_user(self) -> User:
        user = await self._identity.current_user()
        if user is None:
            raise Unauthorized("Unauthorized")
        return user

    async def _load_booking(self, booking_id: str) -> Booking:
        rows = await self._store.query(BOOKINGS_TABLE, {"id": booking_id})
        if not rows:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return Booking.from_row(rows[0])

    async def _transition(
        self,
        booking: Booking,
        allowed: Tuple[str, ...],
        target: BookingStatus,
    ) -> Booking:
        """
        Move ``booking`` to ``target`` if it is still in one of ``allowed``.

        The status check is part of the update filter, so a concurrent change
        between reading and writing makes the update match nothing.
        """
        if booking.status.value not in allowed:
            raise InvalidBookingTransition(
                f"Booking {booking.id} is {booking.status.value} and cannot become {target.value}"
            )

        try:
            rows = await self._store.update(
                BOOKINGS_TABLE,
                {"id": booking.id, "status": allowed},
                {"status": target.value},
            )
        except StoreConflictError as exc:
            raise SlotTaken(
                "This time slot was just booked by someone else",
                detail=str(exc),
            ) from exc

        if rows:
            return Booking.from_row(rows[0])

        current = await self._load_booking(booking.id)
        raise InvalidBookingTransition(
            f"Booking {booking.id} is {current.status.value} and cannot become {target.value}"
        )

    async def _create_dossier(self, user: User, request: ReservationRequest) -> Dossier:
        row: Dict[str, Any] = {
            "title": request.title,
            "description": request.description,
            "body_zone": request.body_zone,
            "budget_min": request.budget_min,
            "budget_max": request.budget_max,
            "start_date": None,
            "end_date": None,
            "status": DossierStatus.DRAFT.value,
            "client_id": user.id,
            "studio_id": request.studio_id,
            "concept_images": list(request.concept_images),
            "size_cm": None,
        }

        try:
            inserted = await self._store.insert(DOSSIERS_TABLE, [row])
        except StoreError as exc:
            logger.error("Dossier insert failed for client %s: %s", user.id, exc)
            raise DossierCreationFailed("Failed to create dossier", detail=str(exc)) from exc

        return Dossier.from_row(inserted[0])

    async def _publish_dossier(self, dossier: Dossier) -> Dossier:
        try:
            rows = await self._store.update(
                DOSSIERS_TABLE,
                {"id": dossier.id},
                {"status": DossierStatus.OPEN.value},
            )
        except StoreError as exc:
            logger.error("Publishing dossier %s failed: %s", dossier.id, exc)
            raise DossierCreationFailed("Failed to publish dossier", detail=str(exc)) from exc

        if not rows:
            logger.error("Dossier %s disappeared before it could be published", dossier.id)
            raise DossierCreationFailed(
                "Failed to publish dossier",
                detail=f"Dossier {dossier.id} not found",
            )

        logger.info("Dossier %s published to the marketplace", dossier.id)
        return Dossier.from_row(rows[0])

    async def _create_deposit_intent(
        self,
        dossier: Dossier,
        request: ReservationRequest,
    ) -> DepositIntent | None:
        metadata = {
            "booking_id": "pending_creation",
            "dossier_id": dossier.id,
        }
        if request.artist_id:
            metadata["artist_id"] = request.artist_id
        if request.studio_id:
            metadata["studio_id"] = request.studio_id

        try:
            return await self._payment_gateway.create_deposit_intent(
                amount=self.deposit_amount,
                currency=self.currency,
                metadata=metadata,
            )
        except PaymentGatewayError as exc:
            if not self.proceed_without_payment_on_gateway_failure:
                logger.error("Deposit intent failed for dossier %s: %s", dossier.id, exc)
                raise PaymentIntentFailed("Failed to create deposit payment", detail=str(exc)) from exc

            logger.warning(
                "Deposit intent failed for dossier %s, continuing without payment: %s",
                dossier.id,
                exc,
            )
            return None

    async def _create_booking(
        self,
        user: User,
        dossier: Dossier,
        request: ReservationRequest,
        intent: DepositIntent | None,
    ) -> Booking:
        slot = request.slot_datetime
        row: Dict[str, Any] = {
            "dossier_id": dossier.id,
            "client_id": user.id,
            "artist_id": request.artist_id,
            "studio_id": request.studio_id,
            "status": BookingStatus.PENDING.value,
            "deposit_amount": self.deposit_amount,
            "stripe_payment_intent": intent.id if intent else None,
            "date": slot.in_timezone("UTC").to_iso8601_string() if slot else None,
        }

        try:
            inserted = await self._store.insert(BOOKINGS_TABLE, [row])
        except StoreConflictError as exc:
            logger.warning(
                "Slot %s for provider %s already taken (dossier %s kept)",
                row["date"],
                request.provider_id,
                dossier.id,
            )
            raise SlotTaken(
                "This time slot was just booked by someone else, please pick another one",
                detail=str(exc),
            ) from exc
        except StoreError as exc:
            logger.error("Booking insert failed for dossier %s: %s", dossier.id, exc)
            raise BookingCreationFailed("Failed to create booking", detail=str(exc)) from exc

        booking = Booking.from_row(inserted[0])
        logger.info(
            "Booking %s created for dossier %s (payment reference: %s)",
            booking.id,
            dossier.id,
            booking.payment_reference,
        )
        return booking

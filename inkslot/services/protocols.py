"""
Protocols describing the collaborators the services depend on.

Each service talks to the outside world only through these, so the hosted
backend adapters and the in-memory mock adapters are interchangeable.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Protocol

from ..domain.models import DepositIntent, User

Row = Dict[str, Any]

AVAILABILITY_TABLE = "artist_availability"
BOOKINGS_TABLE = "bookings"
DOSSIERS_TABLE = "dossiers"


class AvailabilityStore(Protocol):
    """
    Remote table store.

    Filters match columns by equality; a list or tuple value matches any of
    its members. Unique violations raise ``StoreConflictError``, every other
    failure ``StoreError``.
    """

    async def query(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        """Return the rows matching ``filters`` in store order."""

    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        """Insert rows and return them as stored (ids filled in)."""

    async def update(self, table: str, filters: Mapping[str, Any], patch: Row) -> List[Row]:
        """Apply ``patch`` to matching rows and return the updated rows."""

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        """Delete matching rows."""


class PaymentGateway(Protocol):
    """Creates deposit payment intents confirmed later on the client side."""

    async def create_deposit_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
    ) -> DepositIntent:
        """Create a pending charge of ``amount`` minor currency units."""


class IdentityProvider(Protocol):
    """Resolves the caller of the current operation."""

    async def current_user(self) -> User | None:
        """Return the signed-in user, or None when nobody is signed in."""

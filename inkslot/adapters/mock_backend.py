"""
In-memory backend for running without the hosted store, payments or auth.
"""

from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Tuple

import pendulum

from ..domain.exceptions import PaymentGatewayError, StoreConflictError, StoreError
from ..domain.models import DepositIntent, User

Row = Dict[str, Any]


def _active_booking(row: Row) -> bool:
    return row.get("status") != "cancelled"


@dataclass(frozen=True)
class UniqueConstraint:
    """
    Unique index over ``columns``, optionally partial.

    Rows with a NULL in any key column, or rejected by ``where``, are exempt.
    """
    name: str
    columns: Tuple[str, ...]
    where: Callable[[Row], bool] | None = None

    def key(self, row: Row) -> Tuple[Any, ...] | None:
        values = tuple(row.get(column) for column in self.columns)
        if any(value is None for value in values):
            return None
        if self.where is not None and not self.where(row):
            return None
        return values


# Mirrors migrations/001_scheduling_constraints.sql
DEFAULT_CONSTRAINTS: Dict[str, List[UniqueConstraint]] = {
    "bookings": [
        UniqueConstraint("bookings_artist_slot_key", ("artist_id", "date"), _active_booking),
        UniqueConstraint("bookings_studio_slot_key", ("studio_id", "date"), _active_booking),
    ],
    "artist_availability": [],
    "dossiers": [],
}


def _matches(row: Row, filters: Mapping[str, Any]) -> bool:
    for column, expected in filters.items():
        value = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class InMemoryStore:
    """
    Store that keeps tables as lists of dicts in insertion order.

    Optionally seeded from ``mock_data.json``. Enforces the same unique
    constraints as the production schema so double bookings are rejected.
    Tests can make an operation fail with ``fail()`` and inspect ``calls``.
    """

    def __init__(
        self,
        tables: Dict[str, List[Row]] | None = None,
        constraints: Dict[str, List[UniqueConstraint]] | None = None,
    ):
        self.tables: Dict[str, List[Row]] = copy.deepcopy(tables) if tables else {}
        self.constraints = DEFAULT_CONSTRAINTS if constraints is None else constraints
        self.calls: List[Tuple[str, str]] = []
        self._failures: Dict[Tuple[str, str], Exception] = {}

    @classmethod
    def from_json(cls, data_file: Path | None = None) -> "InMemoryStore":
        """Load seed tables from a JSON file (defaults to the bundled mock data)."""
        data_file = data_file or Path(__file__).parent / "mock_data.json"

        if data_file.exists():
            with open(data_file, "r", encoding="utf-8") as f:
                tables = json.load(f)
        else:
            tables = {}

        return cls(tables=tables)

    def fail(self, operation: str, table: str, error: Exception | None = None) -> None:
        """Make every later ``operation`` on ``table`` raise ``error``."""
        self._failures[(operation, table)] = error or StoreError(f"{operation} on {table} failed")

    def count(self, operation: str, table: str) -> int:
        """How often ``operation`` was attempted on ``table``."""
        return self.calls.count((operation, table))

    async def query(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        self._enter("query", table)
        return [dict(row) for row in self.tables.get(table, []) if _matches(row, filters)]

    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        self._enter("insert", table)

        now = pendulum.now("UTC").to_iso8601_string()
        new_rows = []
        for row in rows:
            stored = dict(row)
            stored.setdefault("id", uuid.uuid4().hex)
            stored.setdefault("created_at", now)
            new_rows.append(stored)

        existing = self.tables.get(table, [])
        self._check_constraints(table, existing + new_rows)

        self.tables.setdefault(table, []).extend(new_rows)
        return [dict(row) for row in new_rows]

    async def update(self, table: str, filters: Mapping[str, Any], patch: Row) -> List[Row]:
        self._enter("update", table)
        if not filters:
            raise StoreError(f"Refusing to update every row of {table}")

        current = self.tables.get(table, [])
        matched = [index for index, row in enumerate(current) if _matches(row, filters)]

        candidate = list(current)
        for index in matched:
            candidate[index] = {**current[index], **patch}
        self._check_constraints(table, candidate)

        self.tables[table] = candidate
        return [dict(candidate[index]) for index in matched]

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        self._enter("delete", table)
        if not filters:
            raise StoreError(f"Refusing to delete every row of {table}")

        self.tables[table] = [
            row for row in self.tables.get(table, []) if not _matches(row, filters)
        ]

    def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        failure = self._failures.get((operation, table))
        if failure is not None:
            raise failure

    def _check_constraints(self, table: str, rows: List[Row]) -> None:
        for constraint in self.constraints.get(table, []):
            seen: set = set()
            for row in rows:
                key = constraint.key(row)
                if key is None:
                    continue
                if key in seen:
                    raise StoreConflictError(
                        f'duplicate key value violates unique constraint "{constraint.name}"'
                    )
                seen.add(key)


class MockPaymentGateway:
    """
    Payment gateway that fabricates deposit intents.

    With ``fail=True`` every call raises ``PaymentGatewayError``.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.intents: List[Dict[str, Any]] = []

    async def create_deposit_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
    ) -> DepositIntent:
        if self.fail:
            raise PaymentGatewayError("Mock payment gateway unavailable")

        intent_id = f"pi_mock_{uuid.uuid4().hex[:16]}"
        self.intents.append(
            {"id": intent_id, "amount": amount, "currency": currency, "metadata": dict(metadata)}
        )
        return DepositIntent(id=intent_id, client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:8]}")


class MockIdentityProvider:
    """
    Identity provider with a fixed signed-in user (or none).
    """

    def __init__(self, user_id: str | None = "mock-client", email: str | None = None):
        self._user = User(id=user_id, email=email) if user_id else None

    async def current_user(self) -> User | None:
        return self._user

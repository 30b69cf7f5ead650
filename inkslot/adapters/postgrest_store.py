"""
Hosted backend REST (PostgREST) client for the scheduling tables.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping

import requests

from ..domain.exceptions import StoreConflictError, StoreError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

UNIQUE_VIOLATION = "23505"


def _literal(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def build_filter_params(filters: Mapping[str, Any]) -> Dict[str, str]:
    """
    Translate equality/membership filters into PostgREST query parameters.

    Example:
        {"artist_id": "a1", "status": ["pending", "approved"]}
        -> {"artist_id": "eq.a1", "status": 'in.("pending","approved")'}
    """
    params: Dict[str, str] = {}

    for column, value in filters.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            members = ",".join(f'"{_literal(member)}"' for member in value)
            params[column] = f"in.({members})"
        elif value is None:
            params[column] = "is.null"
        else:
            params[column] = f"eq.{_literal(value)}"

    return params


class PostgrestStore:
    """
    Client for the backend's auto-generated REST interface.

    Each table is served at ``/rest/v1/<table>``; row level security decides
    what the caller may see, so requests carry the signed-in user's token
    when one is available.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        timeout: float = 30,
    ):
        """
        Initialize the REST client.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            api_key: Project anon key
            access_token: Optional user session token
            timeout: Per-request timeout in seconds
        """
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }

    async def query(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        params = {"select": "*", **build_filter_params(filters)}
        return await asyncio.to_thread(self._request, "GET", table, params=params)

    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        return await asyncio.to_thread(
            self._request,
            "POST",
            table,
            json=rows,
            prefer="return=representation",
        )

    async def update(self, table: str, filters: Mapping[str, Any], patch: Row) -> List[Row]:
        if not filters:
            raise StoreError(f"Refusing to update every row of {table}")
        return await asyncio.to_thread(
            self._request,
            "PATCH",
            table,
            params=build_filter_params(filters),
            json=patch,
            prefer="return=representation",
        )

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        if not filters:
            raise StoreError(f"Refusing to delete every row of {table}")
        await asyncio.to_thread(
            self._request,
            "DELETE",
            table,
            params=build_filter_params(filters),
        )

    def _request(
        self,
        method: str,
        table: str,
        params: Dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> List[Row]:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = requests.request(
                method,
                f"{self.endpoint}/{table}",
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Store request failed ({method} {table}): {e}") from e

        if response.status_code >= 400:
            self._raise_for_error(response, method, table)

        if not response.content:
            return []
        return response.json()

    def _raise_for_error(self, response: requests.Response, method: str, table: str) -> None:
        """
        Map a PostgREST error response onto the store exceptions.

        Error body format:
        {"code": "23505", "message": "duplicate key value ...", "details": "...", "hint": null}
        """
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = body.get("message") or response.text or response.reason
        logger.debug("Store error %s on %s %s: %s", response.status_code, method, table, body)

        code = body.get("code")
        if code == UNIQUE_VIOLATION or (response.status_code == 409 and code is None):
            raise StoreConflictError(message)

        raise StoreError(f"{method} {table} failed with status {response.status_code}: {message}")

"""
Backend authentication with a cached user session.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
import requests
from keyring.errors import KeyringError

from ..domain.exceptions import AuthenticationError
from ..domain.models import User

logger = logging.getLogger(__name__)


KEYRING_SERVICE_NAME = "inkslot"


class SessionAuthenticator:
    """
    Signs users in against the backend auth API and serves as the identity
    provider for the services.

    The session (access and refresh token) is stored in the OS keyring when
    one is available, otherwise in a plaintext file with 0600 permissions:
    1. ``sign_in`` exchanges email and password for a session
    2. ``current_user`` resolves the cached access token to a user
    3. An expired access token is refreshed once with the refresh token
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        cache_file: Path | None = None,
        timeout: float = 30,
    ):
        """
        Initialize the authenticator.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            api_key: Project anon key
            cache_file: Optional path to the session cache file
            timeout: Request timeout in seconds
        """
        self.auth_endpoint = f"{base_url.rstrip('/')}/auth/v1"
        self.api_key = api_key
        self.timeout = timeout

        self.cache_file = cache_file or Path.home() / ".inkslot_session.json"
        self._key_identifier = base_url.rstrip("/")
        self._keyring_supported = True
        self._cache_backend = "keyring"
        self._insecure_storage_warning: Optional[str] = None
        self.session: Dict[str, Any] = self._load_session()

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return self._cache_backend

    @property
    def insecure_storage_warning(self) -> Optional[str]:
        """Provide a warning message when the cache falls back to plaintext storage."""
        return self._insecure_storage_warning

    @property
    def access_token(self) -> Optional[str]:
        return self.session.get("access_token")

    def sign_in(self, email: str, password: str) -> User:
        """
        Exchange credentials for a session and cache it.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        data = self._token_request("password", {"email": email, "password": password})
        self._store_session(data)

        user = data.get("user") or {}
        logger.info("Signed in as %s", user.get("email", email))
        return User(id=user.get("id", ""), email=user.get("email", email))

    async def current_user(self) -> User | None:
        return await asyncio.to_thread(self._resolve_user)

    def clear_cache(self) -> None:
        """Forget the cached session (sign out locally)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            logger.warning("Could not remove session from keyring: %s", exc)
        self.session = {}

    def _resolve_user(self) -> User | None:
        if not self.access_token:
            return None

        user = self._fetch_user(self.access_token)
        if user is not None:
            return user

        refresh_token = self.session.get("refresh_token")
        if not refresh_token:
            return None

        try:
            data = self._token_request("refresh_token", {"refresh_token": refresh_token})
        except AuthenticationError as exc:
            logger.info("Session refresh failed: %s", exc)
            return None

        self._store_session(data)
        return self._fetch_user(self.access_token)

    def _fetch_user(self, access_token: str) -> User | None:
        try:
            response = requests.get(
                f"{self.auth_endpoint}/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Auth service unreachable: {e}") from e

        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise AuthenticationError(
                f"Could not resolve current user (status {response.status_code})"
            )

        data = response.json()
        return User(id=data["id"], email=data.get("email"))

    def _token_request(self, grant_type: str, body: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = requests.post(
                f"{self.auth_endpoint}/token",
                params={"grant_type": grant_type},
                headers={"apikey": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Auth service unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or "access_token" not in data:
            error = data.get("error_description") or data.get("msg") or "Unknown error"
            raise AuthenticationError(f"Authentication failed: {error}")

        return data

    def _store_session(self, data: Dict[str, Any]) -> None:
        self.session = {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token"),
        }
        self._save_session()

    def _load_session(self) -> Dict[str, Any]:
        """Load the session from keyring or disk if it exists."""
        serialized = self._load_from_keyring()
        if serialized is None:
            serialized = self._load_from_file()

        if not serialized:
            return {}

        try:
            session = json.loads(serialized)
        except ValueError as exc:
            logger.warning("Could not deserialize session cache: %s", exc)
            return {}

        return session if isinstance(session, dict) else {}

    def _load_from_keyring(self) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _load_from_file(self) -> Optional[str]:
        if self.cache_file.exists():
            try:
                with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                    return file_handle.read()
            except OSError as exc:
                logger.warning("Could not load session file %s: %s", self.cache_file, exc)
        return None

    def _save_session(self) -> None:
        """Save the session to the configured backend."""
        serialized = json.dumps(self.session)

        if self._keyring_supported and self._save_to_keyring(serialized):
            return

        self._save_to_file(serialized)

    def _save_to_keyring(self, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
            self._cache_backend = "keyring"
            return True
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _save_to_file(self, serialized: str) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(serialized)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save session to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache.",
                reason,
            )
        self._keyring_supported = False
        self._cache_backend = "file"
        if not self._insecure_storage_warning:
            self._insecure_storage_warning = (
                f"Secure credential storage unavailable ({reason}). "
                f"Falling back to plaintext cache at {self.cache_file}."
            )

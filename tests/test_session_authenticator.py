"""
Tests for the session authenticator with keyring and HTTP stubbed out.
"""

import asyncio
import json

import pytest
from keyring.errors import KeyringError

from inkslot.adapters import session_authenticator
from inkslot.adapters.session_authenticator import KEYRING_SERVICE_NAME, SessionAuthenticator
from inkslot.domain.exceptions import AuthenticationError

BASE_URL = "https://demo.supabase.co"


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class MemoryKeyring:
    def __init__(self):
        self.passwords = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        self.passwords.pop((service, username), None)


class BrokenKeyring:
    def get_password(self, service, username):
        raise KeyringError("no backend")

    def set_password(self, service, username, password):
        raise KeyringError("no backend")

    def delete_password(self, service, username):
        raise KeyringError("no backend")


def _install_keyring(monkeypatch, backend):
    monkeypatch.setattr(session_authenticator.keyring, "get_password", backend.get_password)
    monkeypatch.setattr(session_authenticator.keyring, "set_password", backend.set_password)
    monkeypatch.setattr(session_authenticator.keyring, "delete_password", backend.delete_password)
    return backend


@pytest.fixture
def memory_keyring(monkeypatch):
    return _install_keyring(monkeypatch, MemoryKeyring())


def test_sign_in_caches_session_in_keyring(monkeypatch, tmp_path, memory_keyring):
    posted = []

    def fake_post(url, **kwargs):
        posted.append({"url": url, **kwargs})
        return FakeResponse(body={
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "user": {"id": "user-1", "email": "ada@example.com"},
        })

    monkeypatch.setattr(session_authenticator.requests, "post", fake_post)
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")

    user = auth.sign_in("ada@example.com", "secret")

    assert user.id == "user-1"
    assert auth.access_token == "access-1"
    assert auth.cache_backend == "keyring"
    assert posted[0]["url"] == f"{BASE_URL}/auth/v1/token"
    assert posted[0]["params"] == {"grant_type": "password"}
    stored = json.loads(memory_keyring.passwords[(KEYRING_SERVICE_NAME, BASE_URL)])
    assert stored == {"access_token": "access-1", "refresh_token": "refresh-1"}
    assert not (tmp_path / "session.json").exists()


def test_rejected_credentials(monkeypatch, tmp_path, memory_keyring):
    monkeypatch.setattr(
        session_authenticator.requests,
        "post",
        lambda url, **kwargs: FakeResponse(400, {"error_description": "Invalid login credentials"}),
    )
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")

    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        auth.sign_in("ada@example.com", "wrong")


def test_current_user_without_session(tmp_path, memory_keyring):
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")

    assert asyncio.run(auth.current_user()) is None


def test_current_user_from_cached_session(monkeypatch, tmp_path, memory_keyring):
    memory_keyring.set_password(
        KEYRING_SERVICE_NAME, BASE_URL, json.dumps({"access_token": "access-1", "refresh_token": "r"})
    )
    seen_headers = []

    def fake_get(url, **kwargs):
        seen_headers.append(kwargs["headers"])
        return FakeResponse(body={"id": "user-1", "email": "ada@example.com"})

    monkeypatch.setattr(session_authenticator.requests, "get", fake_get)
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")

    user = asyncio.run(auth.current_user())

    assert user.id == "user-1"
    assert seen_headers[0]["Authorization"] == "Bearer access-1"


def test_expired_token_is_refreshed_once(monkeypatch, tmp_path, memory_keyring):
    memory_keyring.set_password(
        KEYRING_SERVICE_NAME, BASE_URL, json.dumps({"access_token": "old", "refresh_token": "refresh-1"})
    )

    def fake_get(url, **kwargs):
        if kwargs["headers"]["Authorization"] == "Bearer old":
            return FakeResponse(401, {"msg": "JWT expired"})
        return FakeResponse(body={"id": "user-1"})

    def fake_post(url, **kwargs):
        assert kwargs["params"] == {"grant_type": "refresh_token"}
        assert kwargs["json"] == {"refresh_token": "refresh-1"}
        return FakeResponse(body={"access_token": "new", "refresh_token": "refresh-2"})

    monkeypatch.setattr(session_authenticator.requests, "get", fake_get)
    monkeypatch.setattr(session_authenticator.requests, "post", fake_post)
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")

    user = asyncio.run(auth.current_user())

    assert user.id == "user-1"
    assert auth.access_token == "new"
    stored = json.loads(memory_keyring.passwords[(KEYRING_SERVICE_NAME, BASE_URL)])
    assert stored["refresh_token"] == "refresh-2"


def test_failed_refresh_means_signed_out(monkeypatch, tmp_path, memory_keyring):
    memory_keyring.set_password(
        KEYRING_SERVICE_NAME, BASE_URL, json.dumps({"access_token": "old", "refresh_token": "stale"})
    )
    monkeypatch.setattr(session_authenticator.requests, "get", lambda url, **kwargs: FakeResponse(401, {}))
    monkeypatch.setattr(
        session_authenticator.requests, "post", lambda url, **kwargs: FakeResponse(400, {"msg": "invalid"})
    )
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")

    assert asyncio.run(auth.current_user()) is None


def test_falls_back_to_private_file_without_keyring(monkeypatch, tmp_path):
    _install_keyring(monkeypatch, BrokenKeyring())
    monkeypatch.setattr(
        session_authenticator.requests,
        "post",
        lambda url, **kwargs: FakeResponse(body={"access_token": "a", "refresh_token": "r", "user": {"id": "u"}}),
    )
    cache_file = tmp_path / "session.json"
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=cache_file)

    auth.sign_in("ada@example.com", "secret")

    assert auth.cache_backend == "file"
    assert "plaintext" in auth.insecure_storage_warning
    assert json.loads(cache_file.read_text()) == {"access_token": "a", "refresh_token": "r"}
    assert cache_file.stat().st_mode & 0o777 == 0o600


def test_clear_cache_forgets_session(tmp_path, memory_keyring):
    memory_keyring.set_password(KEYRING_SERVICE_NAME, BASE_URL, json.dumps({"access_token": "a"}))
    auth = SessionAuthenticator(BASE_URL, "anon-key", cache_file=tmp_path / "session.json")
    assert auth.access_token == "a"

    auth.clear_cache()

    assert auth.access_token is None
    assert memory_keyring.passwords == {}

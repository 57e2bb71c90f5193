"""Unit tests for the session manager.

Tests for:
- Registration checks and duplicate detection
- Sign-in via Basic credentials
- Token resolution, expiry and sign-out
- Backend failure mapping
"""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest

from files_manager.service.auth import SessionManager, session_key
from files_manager.service.credentials import digest
from files_manager.service.errors import (
    AuthenticationError,
    StoreUnavailableError,
    ValidationError,
)
from files_manager.storage.errors import BackendUnavailable, ConstraintViolation
from files_manager.storage.memory import MemoryCache, MemoryStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _basic(email: str, password: str) -> str:
    raw = f"{email}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sessions(memory_store, clock):
    return SessionManager(memory_store, MemoryCache(clock=clock))


@pytest.mark.asyncio
async def test_register_stores_digest(sessions, memory_store):
    user = await sessions.register_user("bob@dylan.com", "toto1234!")

    assert user.email == "bob@dylan.com"
    stored = memory_store.get_user(user.id)
    assert stored.password_digest == digest("toto1234!")
    assert stored.password_digest != "toto1234!"


@pytest.mark.asyncio
async def test_register_checks_fields_in_order(sessions):
    with pytest.raises(ValidationError) as exc_info:
        await sessions.register_user(None, None)
    assert exc_info.value.message == "Missing email"

    with pytest.raises(ValidationError) as exc_info:
        await sessions.register_user("bob@dylan.com", "")
    assert exc_info.value.message == "Missing password"


@pytest.mark.asyncio
async def test_register_rejects_duplicate_email(sessions, memory_store):
    await sessions.register_user("bob@dylan.com", "toto1234!")

    with pytest.raises(ValidationError) as exc_info:
        await sessions.register_user("bob@dylan.com", "other")
    assert exc_info.value.message == "Already exist"
    assert memory_store.count("users") == 1


@pytest.mark.asyncio
async def test_register_maps_constraint_violation(sessions, memory_store, monkeypatch):
    def _raise(email, password_digest):
        raise ConstraintViolation("email already exists", {"field": "email"})

    monkeypatch.setattr(memory_store, "create_user", _raise)

    with pytest.raises(ValidationError) as exc_info:
        await sessions.register_user("bob@dylan.com", "toto1234!")
    assert exc_info.value.message == "Already exist"


@pytest.mark.asyncio
async def test_sign_in_then_resolve(sessions):
    user = await sessions.register_user("bob@dylan.com", "toto1234!")

    token = await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))

    assert await sessions.resolve_token(token) == user.id
    identity = await sessions.fetch_identity(token)
    assert identity.id == user.id
    assert identity.email == "bob@dylan.com"


@pytest.mark.asyncio
async def test_sign_in_tokens_are_distinct(sessions):
    await sessions.register_user("bob@dylan.com", "toto1234!")
    header = _basic("bob@dylan.com", "toto1234!")

    first = await sessions.sign_in(header)
    second = await sessions.sign_in(header)

    assert first != second
    assert await sessions.resolve_token(first) == await sessions.resolve_token(second)


@pytest.mark.asyncio
async def test_sign_in_failures_are_indistinguishable(sessions):
    await sessions.register_user("bob@dylan.com", "toto1234!")

    with pytest.raises(AuthenticationError) as wrong_password:
        await sessions.sign_in(_basic("bob@dylan.com", "nope"))
    with pytest.raises(AuthenticationError) as unknown_email:
        await sessions.sign_in(_basic("nobody@dylan.com", "toto1234!"))
    with pytest.raises(AuthenticationError) as malformed:
        await sessions.sign_in("Bearer abc")

    messages = {
        wrong_password.value.message,
        unknown_email.value.message,
        malformed.value.message,
    }
    assert messages == {"Unauthorized"}


@pytest.mark.asyncio
async def test_sign_in_writes_session_with_ttl(memory_store):
    cache = AsyncMock()
    sessions = SessionManager(
        memory_store, cache, session_ttl_seconds=86400, token_factory=lambda: "tok"
    )
    user = await sessions.register_user("bob@dylan.com", "toto1234!")

    token = await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))

    assert token == "tok"
    cache.set.assert_awaited_once_with(session_key("tok"), user.id, 86400)
    assert session_key("tok") == "auth_tok"


@pytest.mark.asyncio
async def test_sign_out_is_single_use(sessions):
    await sessions.register_user("bob@dylan.com", "toto1234!")
    token = await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))

    await sessions.sign_out(token)

    with pytest.raises(AuthenticationError):
        await sessions.sign_out(token)
    with pytest.raises(AuthenticationError):
        await sessions.fetch_identity(token)


@pytest.mark.asyncio
async def test_session_expires_after_ttl(sessions, clock):
    await sessions.register_user("bob@dylan.com", "toto1234!")
    token = await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))

    clock.advance(86399)
    assert await sessions.resolve_token(token)

    # resolving does not extend the session
    clock.advance(1)
    with pytest.raises(AuthenticationError):
        await sessions.resolve_token(token)


@pytest.mark.asyncio
async def test_resolve_rejects_missing_token(sessions):
    with pytest.raises(AuthenticationError):
        await sessions.resolve_token(None)
    with pytest.raises(AuthenticationError):
        await sessions.resolve_token("")
    with pytest.raises(AuthenticationError):
        await sessions.resolve_token("never-issued")


@pytest.mark.asyncio
async def test_fetch_identity_with_dangling_session(sessions, memory_store):
    user = await sessions.register_user("bob@dylan.com", "toto1234!")
    token = await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))
    memory_store.users.pop(user.id)

    with pytest.raises(AuthenticationError):
        await sessions.fetch_identity(token)


@pytest.mark.asyncio
async def test_store_not_alive_maps_to_unavailable(sessions, memory_store, monkeypatch):
    monkeypatch.setattr(memory_store, "is_alive", lambda: False)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await sessions.register_user("bob@dylan.com", "toto1234!")
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Internal Server Error"

    with pytest.raises(StoreUnavailableError):
        await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))


@pytest.mark.asyncio
async def test_store_query_failure_maps_to_unavailable(sessions, memory_store, monkeypatch):
    def _raise(email):
        raise BackendUnavailable("postgres", "query failed")

    monkeypatch.setattr(memory_store, "get_user_by_email", _raise)

    with pytest.raises(StoreUnavailableError):
        await sessions.register_user("bob@dylan.com", "toto1234!")


@pytest.mark.asyncio
async def test_cache_failure_maps_to_unavailable(memory_store):
    cache = AsyncMock()
    cache.set.side_effect = BackendUnavailable("redis", "set failed")
    cache.get.side_effect = BackendUnavailable("redis", "get failed")
    sessions = SessionManager(memory_store, cache)
    await sessions.register_user("bob@dylan.com", "toto1234!")

    with pytest.raises(StoreUnavailableError):
        await sessions.sign_in(_basic("bob@dylan.com", "toto1234!"))
    with pytest.raises(StoreUnavailableError):
        await sessions.resolve_token("some-token")


@pytest.mark.asyncio
async def test_concurrent_registration_creates_one_user(sessions, memory_store):
    results = await asyncio.gather(
        sessions.register_user("bob@dylan.com", "toto1234!"),
        sessions.register_user("bob@dylan.com", "toto1234!"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, ValidationError)]
    assert len(errors) == 1
    assert errors[0].message == "Already exist"
    assert memory_store.count("users") == 1


def test_error_messages_are_fixed_per_class():
    assert AuthenticationError().message == "Unauthorized"
    assert StoreUnavailableError().message == "Internal Server Error"
    assert StoreUnavailableError().status_code == 500
    assert ValidationError("Missing email").message == "Missing email"


@pytest.mark.asyncio
async def test_registered_user_timestamp_is_utc(sessions):
    user = await sessions.register_user("bob@dylan.com", "toto1234!")

    assert user.created_at.utcoffset().total_seconds() == 0

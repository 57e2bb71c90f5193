from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Optional, Protocol, TypeVar

from files_manager.logging import get_logger
from files_manager.service.credentials import MalformedHeader, decode_basic_envelope, digest
from files_manager.service.errors import (
    AuthenticationError,
    StoreUnavailableError,
    ValidationError,
)
from files_manager.storage.errors import BackendUnavailable, ConstraintViolation
from files_manager.storage.models import User

logger = get_logger(__name__)

SESSION_KEY_PREFIX = "auth_"
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24

T = TypeVar("T")


class UserStore(Protocol):
    def is_alive(self) -> bool: ...

    def create_user(self, email: str, password_digest: str) -> User: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def get_user_by_credentials(
        self, email: str, password_digest: str
    ) -> Optional[User]: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def count(self, collection: str) -> int: ...


class SessionCache(Protocol):
    async def is_alive(self) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> int: ...


def session_key(token: str) -> str:
    return f"{SESSION_KEY_PREFIX}{token}"


class SessionManager:
    """Registration, sign-in, token resolution and sign-out.

    A session is a single ephemeral key ``auth_<token>`` holding the user id
    with a fixed TTL. Its presence is the only proof of authentication; it is
    never renewed on access. Every credential or token failure surfaces as the
    same :class:`AuthenticationError`, and every backend failure as
    :class:`StoreUnavailableError`.
    """

    def __init__(
        self,
        store: UserStore,
        cache: SessionCache,
        *,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        token_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.store = store
        self.cache = cache
        self.session_ttl_seconds = session_ttl_seconds
        self._new_token = token_factory
        self.logger = logger

    async def _store_call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking persistent-store call off the event loop."""
        if not self.store.is_alive():
            self.logger.warning("persistent_store_not_alive", operation=func.__name__)
            raise StoreUnavailableError()
        try:
            return await asyncio.to_thread(func, *args)
        except BackendUnavailable as exc:
            self.logger.error(
                "persistent_store_unavailable", operation=func.__name__, backend=exc.backend
            )
            raise StoreUnavailableError() from exc

    async def _cache_get(self, key: str) -> Optional[str]:
        try:
            return await self.cache.get(key)
        except BackendUnavailable as exc:
            raise StoreUnavailableError() from exc

    async def register_user(self, identifier: Optional[str], secret: Optional[str]) -> User:
        if not identifier:
            raise ValidationError("Missing email")
        if not secret:
            raise ValidationError("Missing password")
        existing = await self._store_call(self.store.get_user_by_email, identifier)
        if existing:
            raise ValidationError("Already exist")
        try:
            user = await self._store_call(
                self.store.create_user, identifier, digest(secret)
            )
        except ConstraintViolation as exc:
            # lost the race against a concurrent registration
            raise ValidationError("Already exist") from exc
        self.logger.info("user_registered", user_id=user.id)
        return user

    async def sign_in(self, header_value: Optional[str]) -> str:
        try:
            credential = decode_basic_envelope(header_value)
        except MalformedHeader as exc:
            self.logger.info("sign_in_rejected", reason="malformed_header")
            raise AuthenticationError() from exc
        user = await self._store_call(
            self.store.get_user_by_credentials,
            credential.identifier,
            digest(credential.secret),
        )
        if not user:
            self.logger.info("sign_in_rejected", reason="bad_credentials")
            raise AuthenticationError()
        token = self._new_token()
        try:
            await self.cache.set(session_key(token), user.id, self.session_ttl_seconds)
        except BackendUnavailable as exc:
            self.logger.error("session_write_failed", user_id=user.id)
            raise StoreUnavailableError() from exc
        self.logger.info("sign_in_succeeded", user_id=user.id)
        return token

    async def resolve_token(self, token: Optional[str]) -> str:
        if not token:
            raise AuthenticationError()
        user_id = await self._cache_get(session_key(token))
        if not user_id:
            raise AuthenticationError()
        return user_id

    async def sign_out(self, token: Optional[str]) -> None:
        user_id = await self.resolve_token(token)
        try:
            await self.cache.delete(session_key(token))
        except BackendUnavailable as exc:
            raise StoreUnavailableError() from exc
        self.logger.info("signed_out", user_id=user_id)

    async def fetch_identity(self, token: Optional[str]) -> User:
        user_id = await self.resolve_token(token)
        user = await self._store_call(self.store.get_user, user_id)
        if not user:
            # dangling session: the user record is gone
            self.logger.warning("session_user_missing", user_id=user_id)
            raise AuthenticationError()
        return user

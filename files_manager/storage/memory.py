from __future__ import annotations

import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional

from files_manager.storage.errors import ConstraintViolation
from files_manager.storage.models import User


class MemoryStore:
    """In-process persistent store used for tests and local development.

    Mirrors the ``PostgresStore`` surface: exact-match user lookups, user
    insertion and per-collection counts. Always alive.
    """

    COLLECTIONS = ("users", "files")

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        # count-only; file records are written by other services
        self.files: Dict[str, dict] = {}
        # RLock for all data operations to ensure thread safety
        self._data_lock = threading.RLock()

    def is_alive(self) -> bool:
        return True

    def create_user(self, email: str, password_digest: str) -> User:
        with self._data_lock:
            if any(u.email == email for u in self.users.values()):
                raise ConstraintViolation("email already exists", {"field": "email"})
            user = User(
                id=str(uuid.uuid4()),
                email=email,
                password_digest=password_digest,
            )
            self.users[user.id] = user
            return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._data_lock:
            return next((u for u in self.users.values() if u.email == email), None)

    def get_user_by_credentials(
        self, email: str, password_digest: str
    ) -> Optional[User]:
        with self._data_lock:
            return next(
                (
                    u
                    for u in self.users.values()
                    if u.email == email and u.password_digest == password_digest
                ),
                None,
            )

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def count(self, collection: str) -> int:
        if collection not in self.COLLECTIONS:
            raise ValueError(f"unknown collection: {collection}")
        with self._data_lock:
            return len(getattr(self, collection))

    def close(self) -> None:
        return None


class MemoryCache:
    """In-process key/value store with per-key expiry.

    Stands in for ``RedisCache`` when Redis is not configured. Expired keys
    are dropped lazily on read. ``clock`` returns seconds and can be replaced
    to simulate the passage of time.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    async def is_alive(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                self._data.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (str(value), expires_at)

    async def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self._data.pop(key, None) is not None else 0

    async def close(self) -> None:
        with self._lock:
            self._data.clear()

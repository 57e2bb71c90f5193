from __future__ import annotations

import asyncio
import threading
from typing import Dict, Optional
from urllib.parse import urlparse, urlunparse

from files_manager.config import Settings, get_settings, reset_settings_cache
from files_manager.logging import get_logger
from files_manager.service.auth import SessionManager
from files_manager.service.errors import StoreUnavailableError
from files_manager.service.readiness import wait_until_alive
from files_manager.storage.errors import BackendUnavailable
from files_manager.storage.memory import MemoryCache, MemoryStore
from files_manager.storage.postgres import PostgresStore
from files_manager.storage.redis_cache import RedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Owns the store adapters and the services built on them.

    Adapters are constructed here, handed to :class:`SessionManager`, and
    closed by :meth:`close`. Construction never waits on a backend; call
    :meth:`wait_until_ready` once at startup.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store=None,
        cache=None,
    ) -> None:
        self.settings = settings or get_settings()
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            test_mode=self.settings.test_mode,
        )
        if store is None:
            if self.settings.use_memory_store:
                store = MemoryStore()
            else:
                store = PostgresStore(
                    self.settings.database_url,
                    acquire_timeout=float(self.settings.db_connect_timeout),
                )
        if cache is None:
            if self.settings.use_memory_store:
                cache = MemoryCache()
            else:
                cache = RedisCache(
                    self.settings.redis_url,
                    socket_timeout=self.settings.redis_socket_timeout,
                )
                logger.info(
                    "runtime_cache_configured",
                    redis_url=_mask_url_password(self.settings.redis_url),
                )
        self.store = store
        self.cache = cache
        self.sessions = SessionManager(
            self.store,
            self.cache,
            session_ttl_seconds=self.settings.session_ttl_seconds,
        )
        logger.info(
            "runtime_initialized",
            store_type=type(self.store).__name__,
            cache_type=type(self.cache).__name__,
        )

    async def wait_until_ready(self) -> int:
        """Block startup until the persistent store is alive (bounded)."""
        return await wait_until_alive(
            self.store.is_alive,
            attempts=self.settings.readiness_attempts,
            interval=self.settings.readiness_interval_seconds,
            deadline=self.settings.readiness_deadline_seconds,
            name="persistent_store",
        )

    async def status(self) -> Dict[str, bool]:
        return {
            "redis": bool(await self.cache.is_alive()),
            "db": bool(self.store.is_alive()),
        }

    async def stats(self) -> Dict[str, int]:
        if not self.store.is_alive():
            raise StoreUnavailableError()
        try:
            users, files = await asyncio.gather(
                asyncio.to_thread(self.store.count, "users"),
                asyncio.to_thread(self.store.count, "files"),
            )
        except BackendUnavailable as exc:
            raise StoreUnavailableError() from exc
        return {"users": users, "files": files}

    async def close(self) -> None:
        try:
            await self.cache.close()
        finally:
            await asyncio.to_thread(self.store.close)
        logger.info("runtime_closed")


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def set_runtime(instance: Optional[Runtime]) -> None:
    """Install an explicitly constructed runtime (or clear it with ``None``)."""
    global runtime
    with _runtime_lock:
        runtime = instance


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        if not settings.use_memory_store:
            raise RuntimeError("runtime reset requires USE_MEMORY_STORE")
        runtime = Runtime(settings)
        return runtime

from __future__ import annotations

import contextlib
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Iterator, Optional

import psycopg
from psycopg import errors, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from files_manager.logging import get_logger
from files_manager.storage.errors import BackendUnavailable, ConstraintViolation
from files_manager.storage.models import User

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY,
        email TEXT NOT NULL,
        password_digest TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS users_email_key ON users (email)",
    """
    CREATE TABLE IF NOT EXISTS files (
        id UUID PRIMARY KEY,
        user_id UUID REFERENCES users (id)
    )
    """,
)


class PostgresStore:
    """Thin Postgres-backed store for user records and collection counts.

    The connection pool is opened in the background: construction returns
    immediately and ``is_alive`` turns true once the first connection has been
    established and the schema is in place.
    """

    COLLECTIONS = ("users", "files")

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        acquire_timeout: float = 5.0,
        recovery_interval: float = 1.0,
    ) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.acquire_timeout = acquire_timeout
        self.recovery_interval = recovery_interval
        self._connected = False
        self._recovering = False
        self._recovery_lock = threading.Lock()
        self._schema_ready = False
        self._schema_lock = threading.Lock()
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            open=False,
            configure=self._configure_connection,
            kwargs={"row_factory": dict_row, "autocommit": True},
            name="files_manager",
        )
        self.pool.open(wait=False)

    def _configure_connection(self, conn: psycopg.Connection) -> None:
        """Pool hook run on every new connection; creates the schema once."""
        with self._schema_lock:
            if not self._schema_ready:
                for statement in _SCHEMA_STATEMENTS:
                    conn.execute(statement)
                self._schema_ready = True
                self.logger.info("postgres_schema_ready")
        if not self._connected:
            self.logger.info("postgres_connected")
        self._connected = True

    def is_alive(self) -> bool:
        return self._connected and not self.pool.closed

    @contextlib.contextmanager
    def _connect(self) -> Iterator[psycopg.Connection]:
        try:
            with self.pool.connection(timeout=self.acquire_timeout) as conn:
                yield conn
        except PoolTimeout as exc:
            # saturated, not disconnected
            self.logger.warning("postgres_pool_timeout", timeout=self.acquire_timeout)
            raise BackendUnavailable("postgres", "no connection available") from exc
        except psycopg.OperationalError as exc:
            self.logger.error(
                "postgres_unavailable", error_type=type(exc).__name__, error=str(exc)
            )
            self._mark_down()
            raise BackendUnavailable("postgres", "query failed") from exc

    def _mark_down(self) -> None:
        """Report the store down and start reconnecting in the background."""
        self._connected = False
        with self._recovery_lock:
            if self._recovering:
                return
            self._recovering = True
        self._spawn_recovery()

    def _spawn_recovery(self) -> None:
        threading.Thread(
            target=self._recover, name="files_manager-postgres-recovery", daemon=True
        ).start()

    def _recover(self) -> None:
        """Probe the pool until a connection answers, then report alive again."""
        try:
            while not self.pool.closed:
                try:
                    self.pool.check()
                    with self.pool.connection(timeout=self.acquire_timeout) as conn:
                        conn.execute("SELECT 1")
                except (PoolTimeout, psycopg.OperationalError) as exc:
                    self.logger.debug("postgres_recovery_failed", error=str(exc))
                    time.sleep(self.recovery_interval)
                    continue
                self._connected = True
                self.logger.info("postgres_reconnected")
                return
        finally:
            with self._recovery_lock:
                self._recovering = False

    @staticmethod
    def _user_from_row(row: dict) -> User:
        return User(
            id=str(row["id"]),
            email=row["email"],
            password_digest=row["password_digest"],
            created_at=row.get("created_at") or datetime.now(timezone.utc),
        )

    def create_user(self, email: str, password_digest: str) -> User:
        user_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO users (id, email, password_digest)
                    VALUES (%s, %s, %s)
                    RETURNING id, email, password_digest, created_at
                    """,
                    (user_id, email, password_digest),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        return self._user_from_row(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = %s LIMIT 1", (email,)
            ).fetchone()
        if not row:
            return None
        return self._user_from_row(row)

    def get_user_by_credentials(
        self, email: str, password_digest: str
    ) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = %s AND password_digest = %s LIMIT 1",
                (email, password_digest),
            ).fetchone()
        if not row:
            return None
        return self._user_from_row(row)

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            uuid.UUID(user_id)
        except (TypeError, ValueError):
            # not an id this store could have assigned
            return None
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = %s", (user_id,)
            ).fetchone()
        if not row:
            return None
        return self._user_from_row(row)

    def count(self, collection: str) -> int:
        if collection not in self.COLLECTIONS:
            raise ValueError(f"unknown collection: {collection}")
        query = sql.SQL("SELECT count(*) AS n FROM {}").format(sql.Identifier(collection))
        with self._connect() as conn:
            row = conn.execute(query).fetchone()
        return int(row["n"]) if row else 0

    def close(self) -> None:
        self._connected = False
        self.pool.close()

"""
Database connection factory utilities for rowmap.

Provides centralized management of the shared PostgreSQL connection pool used
by the Postgres store. The PoolManager singleton ensures the pool is closed on
application exit.

Connection checkout retries transient failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rowmap.config import Settings, get_settings
from rowmap.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def apply_statement_timeout(cur: Any, timeout_ms: int) -> None:
    """
    Set a per-session statement timeout on the cursor's connection.

    A non-positive timeout leaves the server default untouched.
    """
    if timeout_ms and timeout_ms > 0:
        cur.execute(
            sql.SQL("SET statement_timeout = {}").format(sql.Literal(int(timeout_ms)))
        )


def configure_connection(conn: Connection) -> None:
    """
    Pool `configure` callback, run once per new connection.

    Pins the session time zone to UTC, since temporal literals are rendered as
    UTC wall-clock strings without an offset, and applies the statement
    timeout from settings.
    """
    with conn.cursor() as cur:
        cur.execute("SET TIME ZONE 'UTC'")
        apply_statement_timeout(cur, get_settings().db_statement_timeout_ms)
    conn.commit()


class PoolManager:
    """
    Thread-safe singleton for managing the database connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool: Optional[ConnectionPool] = None
                # Register cleanup on exit
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(
        self, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int, optional
            Minimum number of idle connections to keep (default from settings).
        max_size : int, optional
            Maximum total connections in the pool (default from settings).

        Returns
        -------
        ConnectionPool
            The managed sync pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(settings),
                    min_size=min_size or settings.db_pool_min_size,
                    max_size=max_size or settings.db_pool_max_size,
                    configure=configure_connection,
                    open=True,
                )
                log.info(
                    "Connection pool opened",
                    extra={"db_host": settings.db_host, "db_name": settings.db_name},
                )
            return self._sync_pool

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except Exception:
                    log.warning("Error while closing connection pool", exc_info=True)
                finally:
                    self._sync_pool = None


RETRYABLE_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError, PoolTimeout)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(RETRYABLE_ERRORS),
    reraise=True,
)
def checkout_connection(pool: ConnectionPool) -> Connection:
    """
    Take a connection from the pool with automatic retry.

    Retries up to 3 times with exponential backoff when the pool times out or
    the server is transiently unreachable.

    Raises
    ------
    psycopg.OperationalError, psycopg_pool.PoolTimeout
        If acquisition fails after all retry attempts.
    """
    return pool.getconn()


@contextmanager
def pooled_connection(pool: ConnectionPool) -> Iterator[Connection]:
    """
    Borrow a connection for one transaction.

    The transaction is committed when the block succeeds and rolled back when
    it raises; the connection always goes back to the pool.

    Example
    -------
        with pooled_connection(get_sync_pool()) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
    """
    conn = checkout_connection(pool)
    try:
        with conn:
            yield conn
    finally:
        pool.putconn(conn)


def get_sync_pool(
    min_size: Optional[int] = None, max_size: Optional[int] = None
) -> ConnectionPool:
    """
    Get or create a synchronous connection pool via PoolManager.
    """
    manager = PoolManager()
    return manager.get_sync_pool(min_size=min_size, max_size=max_size)


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "checkout_connection",
    "configure_connection",
    "pooled_connection",
    "get_sync_pool",
]

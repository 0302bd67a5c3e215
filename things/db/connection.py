"""
Database connection management.

This module provides connection pooling, transaction scoping and
health utilities for PostgreSQL access.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Generator

import psycopg2
from psycopg2 import pool

from ..settings import settings

if TYPE_CHECKING:
    from psycopg2.extensions import connection as PgConnection

logger = logging.getLogger("things.db")

# Connection pool (lazy initialized)
_connection_pool: pool.ThreadedConnectionPool | None = None
# One slot per pooled connection; callers wait here instead of exhausting the pool
_connection_slots: threading.BoundedSemaphore | None = None


def get_database_url() -> str | None:
    """Get the configured database URL."""
    return settings.database_url or None


def init_pool(min_conn: int | None = None, max_conn: int | None = None) -> None:
    """
    Initialize the connection pool.

    Should be called once at application startup.
    """
    global _connection_pool, _connection_slots

    db_url = get_database_url()
    if not db_url:
        logger.warning("No database URL configured, connection pool disabled")
        return

    min_conn = settings.db_pool_min if min_conn is None else min_conn
    max_conn = settings.db_pool_max if max_conn is None else max_conn
    try:
        _connection_pool = pool.ThreadedConnectionPool(
            min_conn, max_conn, db_url, connect_timeout=settings.db_connect_timeout
        )
        _connection_slots = threading.BoundedSemaphore(max_conn)
        logger.info("Database connection pool initialized (min=%d, max=%d)", min_conn, max_conn)
    except psycopg2.Error as e:
        logger.error("Failed to initialize connection pool: %s", e)
        _connection_pool = None
        _connection_slots = None


def close_pool() -> None:
    """Close the connection pool. Should be called at application shutdown."""
    global _connection_pool, _connection_slots

    if _connection_pool:
        _connection_pool.closeall()
        _connection_pool = None
        _connection_slots = None
        logger.info("Database connection pool closed")


@contextmanager
def get_connection(timeout: float | None = None) -> Generator[PgConnection, None, None]:
    """
    Get a database connection from the pool.

    When every pooled connection is in use the caller waits for one to be
    returned, for at most ``timeout`` seconds (forever when None).

    Usage:
        with get_connection() as conn:
            with transaction(conn) as cur:
                cur.execute("SELECT 1")

    Raises:
        RuntimeError: If no database URL is configured.
        psycopg2.pool.PoolError: If no connection freed up within ``timeout``.
    """
    connection_pool, slots = _connection_pool, _connection_slots

    # Use pool if available, otherwise create direct connection
    if connection_pool and slots:
        wait = timeout if timeout and timeout > 0 else None
        if not slots.acquire(timeout=wait):
            raise pool.PoolError(f"no pooled connection available within {timeout}s")
        try:
            conn = connection_pool.getconn()
            try:
                yield conn
            finally:
                connection_pool.putconn(conn)
        finally:
            slots.release()
    else:
        # Fallback to direct connection (for tests or when pool not initialized)
        db_url = get_database_url()
        if not db_url:
            raise RuntimeError("No database URL configured")
        conn = psycopg2.connect(db_url, connect_timeout=settings.db_connect_timeout)
        try:
            yield conn
        finally:
            conn.close()


@contextmanager
def transaction(
    conn: PgConnection,
    timeout: float | None = None,
    cursor_factory=None,
) -> Generator:
    """
    Run the enclosed statements in a single transaction.

    Commits on success and rolls back on any exception, which is re-raised.
    A positive ``timeout`` (seconds) is applied as the transaction's
    statement_timeout, so the server cancels a statement that overruns it.
    """
    conn.autocommit = False
    try:
        with conn.cursor(cursor_factory=cursor_factory) as cur:
            if timeout:
                cur.execute(
                    "SELECT set_config('statement_timeout', %s, true)",
                    (str(max(1, int(timeout * 1000))),),
                )
            yield cur
        conn.commit()
    except BaseException:
        conn.rollback()
        raise


def wait_for_database(
    db_url: str | None = None,
    timeout_seconds: float | None = None,
    interval_seconds: float = 1.0,
) -> None:
    """
    Block until the database accepts connections.

    Called at startup before the pool is opened. ``timeout_seconds``
    defaults to ``settings.db_wait_seconds``.

    Raises:
        RuntimeError: If no database URL is available
        psycopg2.OperationalError: The last connection error, once the wait expires
    """
    url = db_url or get_database_url()
    if not url:
        raise RuntimeError("No database URL available")

    if timeout_seconds is None:
        timeout_seconds = settings.db_wait_seconds
    deadline = time.monotonic() + timeout_seconds
    attempts = 0

    while True:
        attempts += 1
        try:
            psycopg2.connect(url, connect_timeout=settings.db_connect_timeout).close()
        except psycopg2.OperationalError as exc:
            if time.monotonic() + interval_seconds >= deadline:
                logger.error("Database still unreachable after %d attempt(s)", attempts)
                raise
            logger.debug("Waiting for database... (%s)", exc)
            time.sleep(interval_seconds)
        else:
            logger.info("Database reachable after %d attempt(s)", attempts)
            return


def check_connection() -> tuple[bool, str | None]:
    """
    Check if the database is reachable.

    Returns:
        Tuple of (is_healthy, error_message)
    """
    db_url = get_database_url()
    if not db_url:
        return False, "database URL not configured"

    try:
        conn = psycopg2.connect(db_url, connect_timeout=settings.db_connect_timeout)
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
            return True, None
        finally:
            conn.close()
    except psycopg2.Error as e:
        return False, str(e)

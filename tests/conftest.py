"""
Pytest configuration and shared fixtures.

This module provides reusable fixtures for testing the thing repository,
both against a mocked connection and against a live PostgreSQL.
"""

import os
import sys
import uuid
from contextlib import contextmanager
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Ensure the project root is in the path
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from things.db import PostgresThingRepository  # noqa: E402
from things.models import Thing  # noqa: E402

TEST_DATABASE_URL = os.getenv("THINGS_TEST_DATABASE_URL")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS things (
    id       UUID PRIMARY KEY,
    owner    VARCHAR(254),
    name     VARCHAR(1024),
    key      VARCHAR(4096) UNIQUE,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb
);
CREATE INDEX IF NOT EXISTS things_owner_idx ON things (owner);
CREATE TABLE IF NOT EXISTS connections (
    channel_id UUID NOT NULL,
    thing_id   UUID NOT NULL REFERENCES things (id) ON DELETE CASCADE,
    PRIMARY KEY (channel_id, thing_id)
);
"""


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables."""
    os.environ.setdefault("THINGS_STATEMENT_TIMEOUT_MS", "0")
    os.environ.setdefault("DATABASE_URL", "")  # Disable DB for unit tests
    yield


# --- Mocked store ---


@pytest.fixture
def cursor() -> MagicMock:
    """Cursor double; tests set rowcount, fetch results or side effects."""
    cur = MagicMock(name="cursor")
    cur.rowcount = 1
    cur.fetchone.return_value = None
    cur.fetchall.return_value = []
    return cur


@pytest.fixture
def connection(cursor) -> MagicMock:
    conn = MagicMock(name="connection")
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.fixture
def repo(connection) -> PostgresThingRepository:
    """Repository wired to the mocked connection."""

    @contextmanager
    def connect(timeout=None):
        connection.timeouts.append(timeout)
        yield connection

    connection.timeouts = []
    return PostgresThingRepository(connect=connect)


@pytest.fixture
def executed(cursor):
    """Statements passed to cursor.execute, whitespace-normalised, with params."""

    def _executed() -> list[tuple[str, object]]:
        return [
            (" ".join(c.args[0].split()), c.args[1] if len(c.args) > 1 else None)
            for c in cursor.execute.call_args_list
        ]

    return _executed


# --- Live store ---


@pytest.fixture(scope="session")
def pg_url() -> str:
    if not TEST_DATABASE_URL:
        pytest.skip("THINGS_TEST_DATABASE_URL not set")
    import psycopg2

    conn = psycopg2.connect(TEST_DATABASE_URL)
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
    finally:
        conn.close()
    return TEST_DATABASE_URL


@pytest.fixture
def pg_repo(pg_url) -> Generator[PostgresThingRepository, None, None]:
    """Repository on a live database, emptied after each test."""
    import psycopg2

    @contextmanager
    def connect(timeout=None):
        conn = psycopg2.connect(pg_url)
        try:
            yield conn
        finally:
            conn.close()

    yield PostgresThingRepository(connect=connect)

    with connect() as conn:
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute("TRUNCATE connections, things")


@pytest.fixture
def connect_thing(pg_url):
    """Insert a connection row, the way the channel subsystem would."""
    import psycopg2

    def _connect(channel_id: str, thing_id: str) -> None:
        conn = psycopg2.connect(pg_url)
        conn.autocommit = True
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO connections (channel_id, thing_id) VALUES (%s, %s)",
                    (channel_id, thing_id),
                )
        finally:
            conn.close()

    return _connect


# --- Builders ---


@pytest.fixture
def owner() -> str:
    return "user@example.com"


@pytest.fixture
def make_thing(owner):
    """Build a thing with a fresh id and key."""

    def _make(**overrides) -> Thing:
        values = {
            "id": str(uuid.uuid4()),
            "owner": owner,
            "name": "thing",
            "key": str(uuid.uuid4()),
            "metadata": {},
        }
        values.update(overrides)
        return Thing(**values)

    return _make


# --- Service ---


@pytest.fixture
def app():
    """Create a fresh FastAPI application for testing."""
    import importlib
    from things import main
    importlib.reload(main)
    return main.app


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client."""
    with patch("things.main.init_pool"), patch("things.main.close_pool"), \
            patch("things.main.wait_for_database"):
        with TestClient(app) as c:
            yield c

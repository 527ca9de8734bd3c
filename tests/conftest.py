"""
Pytest configuration for rowmap.

Provides fixtures for:
- An in-memory Store with two described tables
- A fresh process-wide schema cache per test
- Database connection management for integration tests
"""

from __future__ import annotations

import os
from typing import Any, Dict, Generator, List, Mapping, Optional, Tuple

import psycopg
import pytest

from rowmap.config import Settings
from rowmap.domain.schema_cache import SchemaCache
from rowmap.infrastructure.store import ColumnSpec, ExecuteResult, StatementKind, set_default_store


def column(
    name: str,
    type_: str,
    default: Optional[str] = None,
    null: str = "NO",
    extra: str = "",
    comment: str = "",
) -> ColumnSpec:
    return ColumnSpec(name=name, type=type_, extra=extra, default=default, comment=comment, null=null)


SCHEMAS: Dict[str, List[ColumnSpec]] = {
    "user_account": [
        column("id", "int(10) unsigned", extra="auto_increment"),
        column("nickname", "varchar(8)", default=""),
        column("bio", "text", null="YES"),
        column("active", "tinyint(1)", default="1"),
        column("score", "int(11)", default="0"),
        column("balance", "decimal(10,2) unsigned", default="0.00"),
        column("rating", "float", null="YES"),
        column("status", "enum('draft','live','archived')", default="live"),
        column("permissions", "int(10) unsigned", default="0", comment="bitmask"),
        column("created_at", "datetime", null="YES"),
        column("birthday", "date", null="YES"),
    ],
    "audit_note": [
        column("id", "int(10) unsigned", extra="auto_increment"),
        column("body", "text"),
    ],
}


class FakeStore:
    """
    In-memory Store recording every call it receives.
    """

    def __init__(self, schemas: Mapping[str, List[ColumnSpec]] = SCHEMAS) -> None:
        self.schemas = dict(schemas)
        self.rows: Dict[str, Dict[int, Dict[str, Any]]] = {table: {} for table in schemas}
        self.calls: List[Tuple[Any, ...]] = []
        self.fail_writes = False
        self.next_id = 100

    def introspect_columns(self, table: str) -> List[ColumnSpec]:
        self.calls.append(("introspect", table))
        return list(self.schemas[table])

    def fetch_one(self, table: str, identifier: int) -> Optional[Dict[str, Any]]:
        self.calls.append(("fetch_one", table, identifier))
        row = self.rows[table].get(identifier)
        return dict(row) if row is not None else None

    def count_rows(self, table: str, identifier: int) -> int:
        self.calls.append(("count_rows", table, identifier))
        return 1 if identifier in self.rows[table] else 0

    def execute(
        self,
        kind: StatementKind,
        table: str,
        literals: Mapping[str, str],
        identifier: Optional[int] = None,
    ) -> ExecuteResult:
        self.calls.append(("execute", kind, table, dict(literals), identifier))
        if self.fail_writes:
            return ExecuteResult(success=False, generated_id=None)
        if kind is StatementKind.INSERT:
            self.next_id += 1
            self.rows[table][self.next_id] = {"id": self.next_id}
            return ExecuteResult(success=True, generated_id=self.next_id)
        return ExecuteResult(success=True, generated_id=None)

    def execute_delete(self, table: str, identifier: int) -> bool:
        self.calls.append(("execute_delete", table, identifier))
        return self.rows[table].pop(identifier, None) is not None

    def escape_literal(self, value: str) -> str:
        return value.replace("\\", "\\\\").replace("'", "''")

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    @property
    def writes(self) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == "execute"]


@pytest.fixture(autouse=True)
def fresh_schema_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give every test its own process-wide schema cache."""
    monkeypatch.setattr(SchemaCache, "_instance", None)


@pytest.fixture
def make_store() -> type:
    """Factory for additional, independent in-memory stores."""
    return FakeStore


@pytest.fixture
def store() -> Generator[FakeStore, None, None]:
    """
    In-memory store installed as the default store for the test.
    """
    fake = FakeStore()
    set_default_store(fake)
    try:
        yield fake
    finally:
        set_default_store(None)


@pytest.fixture
def seeded_store(store: FakeStore) -> FakeStore:
    """Store holding user_account row 7."""
    store.rows["user_account"][7] = {
        "id": 7,
        "nickname": "ada",
        "bio": None,
        "active": 1,
        "score": -3,
        "balance": "12.50",
        "rating": None,
        "status": "draft",
        "permissions": 13,
        "created_at": "2024-01-02T03:04:05",
        "birthday": None,
    }
    return store


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "rowmap"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


INTEGRATION_SCHEMA_SQL = """
DROP TABLE IF EXISTS public.rowmap_member;
DROP TYPE IF EXISTS public.rowmap_member_status;
CREATE TYPE public.rowmap_member_status AS ENUM ('draft', 'live', 'archived');
CREATE TABLE public.rowmap_member (
    id          serial PRIMARY KEY,
    nickname    varchar(8) NOT NULL DEFAULT '',
    bio         text NULL,
    active      boolean NOT NULL DEFAULT true,
    score       integer NOT NULL DEFAULT 0,
    balance     numeric(10, 2) NOT NULL DEFAULT 0,
    status      public.rowmap_member_status NOT NULL DEFAULT 'live',
    permissions integer NOT NULL DEFAULT 0,
    created_at  timestamp NULL,
    joined_at   timestamp NOT NULL DEFAULT now(),
    seen_at     timestamptz NULL
);
COMMENT ON COLUMN public.rowmap_member.permissions IS 'bitmask';
"""


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> Generator[bool, None, None]:
    """
    Create the rowmap_member table (and its enum type) for the session.
    """
    with db_connection.cursor() as cur:
        cur.execute(INTEGRATION_SCHEMA_SQL)
    yield True
    with db_connection.cursor() as cur:
        cur.execute("DROP TABLE IF EXISTS public.rowmap_member;")
        cur.execute("DROP TYPE IF EXISTS public.rowmap_member_status;")


@pytest.fixture(scope="function")
def clean_member_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty rowmap_member before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.rowmap_member RESTART IDENTITY;")
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.rowmap_member RESTART IDENTITY;")

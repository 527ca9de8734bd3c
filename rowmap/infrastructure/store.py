"""
Store interface and result contracts for rowmap.

The record layer never talks to a database driver directly: it goes through
an object implementing the Store protocol. The PostgreSQL implementation
lives in `rowmap.infrastructure.postgres`; tests use an in-memory fake.
"""

from __future__ import annotations

import enum
import threading
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, TypedDict, runtime_checkable


class ColumnSpec(TypedDict):
    """
    One column as reported by schema introspection.

    `type` is a raw MySQL-style spec such as "int(10) unsigned",
    "varchar(64)" or "enum('a','b')"; `null` is "YES" or "NO".
    """

    name: str
    type: str
    extra: str
    default: Optional[str]
    comment: str
    null: str


class ExecuteResult(TypedDict, total=False):
    success: bool
    generated_id: Optional[int]


class StatementKind(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"


@runtime_checkable
class Store(Protocol):
    """
    Relational store collaborator used by records.

    Column literal maps passed to `execute` are already rendered SQL
    literals (quoted and escaped where needed) keyed by column name.
    """

    def introspect_columns(self, table: str) -> Sequence[ColumnSpec]:
        ...

    def fetch_one(self, table: str, identifier: int) -> Optional[Dict[str, Any]]:
        ...

    def count_rows(self, table: str, identifier: int) -> int:
        ...

    def execute(
        self,
        kind: StatementKind,
        table: str,
        literals: Mapping[str, str],
        identifier: Optional[int] = None,
    ) -> ExecuteResult:
        ...

    def execute_delete(self, table: str, identifier: int) -> bool:
        ...

    def escape_literal(self, value: str) -> str:
        ...


_default_store: Optional[Store] = None
_default_lock = threading.Lock()


def set_default_store(store: Optional[Store]) -> None:
    """Install the store used by records constructed without an explicit one."""
    global _default_store
    with _default_lock:
        _default_store = store


def get_default_store() -> Store:
    """
    Return the default store, creating a PostgreSQL store from settings on
    first use.
    """
    global _default_store
    with _default_lock:
        if _default_store is None:
            from rowmap.infrastructure.postgres import PostgresStore

            _default_store = PostgresStore()
        return _default_store


__all__ = [
    "ColumnSpec",
    "ExecuteResult",
    "StatementKind",
    "Store",
    "set_default_store",
    "get_default_store",
]

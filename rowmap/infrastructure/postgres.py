"""
PostgreSQL implementation of the Store protocol.

Schema introspection reads `information_schema.columns` and translates each
PostgreSQL type into the MySQL-style raw type spec understood by the column
classifier (e.g. `boolean` -> "tinyint(1)", enum types -> "enum('a','b')").
Writes are composed from pre-rendered literals with `psycopg.sql` and each
statement runs in its own pooled transaction.
"""

from __future__ import annotations

import re
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import psycopg
from psycopg import Connection, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from rowmap.domain.columns import ID_FIELD
from rowmap.infrastructure.db_factory import get_sync_pool, pooled_connection
from rowmap.infrastructure.store import ColumnSpec, ExecuteResult, StatementKind
from rowmap.utils.logging import get_logger

log = get_logger(__name__)

_PG_TYPES: Dict[str, str] = {
    "smallint": "smallint",
    "integer": "int",
    "bigint": "bigint",
    "boolean": "tinyint(1)",
    "real": "real",
    "double precision": "double",
    "numeric": "numeric",
    "date": "date",
    "timestamp without time zone": "datetime",
    "timestamp with time zone": "timestamp",
    "time without time zone": "time",
    "time with time zone": "time",
}

_QUOTED_DEFAULT = re.compile(r"^'((?:[^']|'')*)'(?:::[\w\s\".\[\]]+)?$")
_NUMERIC_DEFAULT = re.compile(r"^\(?(-?\d+(?:\.\d+)?)\)?(?:::[\w\s]+)?$")

COLUMNS_SQL = """
SELECT c.column_name,
       c.data_type,
       c.udt_name,
       c.character_maximum_length,
       c.column_default,
       c.is_nullable,
       c.is_identity,
       col_description(
           format('%%I.%%I', c.table_schema, c.table_name)::regclass,
           c.ordinal_position
       ) AS comment
FROM information_schema.columns c
WHERE c.table_schema = %s AND c.table_name = %s
ORDER BY c.ordinal_position;
"""

ENUM_LABELS_SQL = """
SELECT e.enumlabel
FROM pg_type t
JOIN pg_enum e ON e.enumtypid = t.oid
WHERE t.typname = %s
ORDER BY e.enumsortorder;
"""


def pg_type_spec(
    data_type: str,
    char_length: Optional[int] = None,
    enum_labels: Sequence[str] = (),
) -> str:
    """
    Translate an information_schema data type into a raw type spec.

    >>> pg_type_spec("character varying", 64)
    'varchar(64)'
    >>> pg_type_spec("USER-DEFINED", enum_labels=["draft", "live"])
    "enum('draft','live')"
    """
    if data_type == "character varying":
        return f"varchar({char_length})" if char_length else "varchar"
    if data_type == "character":
        return f"char({char_length or 1})"
    if data_type == "USER-DEFINED" and enum_labels:
        quoted = ",".join("'" + label.replace("'", "''") + "'" for label in enum_labels)
        return f"enum({quoted})"
    return _PG_TYPES.get(data_type, "text")


def pg_default(raw: Optional[str]) -> Optional[str]:
    """
    Unwrap a literal column default; expression defaults give None.

    >>> pg_default("'pending'::character varying")
    'pending'
    >>> pg_default("now()") is None
    True
    """
    if raw is None:
        return None
    text = raw.strip()
    match = _QUOTED_DEFAULT.match(text)
    if match:
        return match.group(1).replace("''", "'")
    match = _NUMERIC_DEFAULT.match(text)
    if match:
        return match.group(1)
    if text in ("true", "false"):
        return text
    return None


def is_auto_increment(raw_default: Optional[str], is_identity: Optional[str]) -> bool:
    return (is_identity or "").upper() == "YES" or (raw_default or "").startswith("nextval(")


class PostgresStore:
    """
    Store backed by a psycopg connection pool.

    Parameters
    ----------
    pool : ConnectionPool, optional
        Pool to use; defaults to the shared pool from PoolManager.
    schema : str
        PostgreSQL schema holding the tables.
    """

    def __init__(self, pool: Optional[ConnectionPool] = None, schema: str = "public") -> None:
        self._pool_instance = pool
        self.schema = schema
        self._standard_strings: Optional[bool] = None
        self._escaping_lock = threading.Lock()

    def _get_pool(self) -> ConnectionPool:
        if self._pool_instance is None:
            self._pool_instance = get_sync_pool()
        return self._pool_instance

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        """One pooled transaction; checkout retries transient failures."""
        with pooled_connection(self._get_pool()) as conn:
            yield conn

    def _table(self, table: str) -> sql.Composable:
        return sql.Identifier(self.schema, table)

    def introspect_columns(self, table: str) -> List[ColumnSpec]:
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(COLUMNS_SQL, (self.schema, table))
                rows = cur.fetchall()
                specs: List[ColumnSpec] = []
                for row in rows:
                    labels: List[str] = []
                    if row["data_type"] == "USER-DEFINED":
                        cur.execute(ENUM_LABELS_SQL, (row["udt_name"],))
                        labels = [label["enumlabel"] for label in cur.fetchall()]
                    raw_default = row["column_default"]
                    specs.append(
                        ColumnSpec(
                            name=row["column_name"],
                            type=pg_type_spec(
                                row["data_type"], row["character_maximum_length"], labels
                            ),
                            extra=(
                                "auto_increment"
                                if is_auto_increment(raw_default, row["is_identity"])
                                else ""
                            ),
                            default=pg_default(raw_default),
                            comment=row["comment"] or "",
                            null=row["is_nullable"],
                        )
                    )
        if not specs:
            raise LookupError(f"Table '{self.schema}.{table}' has no columns or does not exist")
        return specs

    def fetch_one(self, table: str, identifier: int) -> Optional[Dict[str, Any]]:
        query = sql.SQL("SELECT * FROM {} WHERE {} = %s LIMIT 1").format(
            self._table(table), sql.Identifier(ID_FIELD)
        )
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (identifier,))
                return cur.fetchone()

    def count_rows(self, table: str, identifier: int) -> int:
        query = sql.SQL("SELECT COUNT(*) FROM {} WHERE {} = %s").format(
            self._table(table), sql.Identifier(ID_FIELD)
        )
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (identifier,))
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def _insert(self, table: str, literals: Mapping[str, str]) -> sql.Composed:
        values = [
            # serial/identity columns only generate a value for DEFAULT, not NULL
            sql.SQL("DEFAULT") if name == ID_FIELD and literal == "NULL" else sql.SQL(literal)
            for name, literal in literals.items()
        ]
        return sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING {}").format(
            self._table(table),
            sql.SQL(", ").join(sql.Identifier(name) for name in literals),
            sql.SQL(", ").join(values),
            sql.Identifier(ID_FIELD),
        )

    def _update(self, table: str, literals: Mapping[str, str], identifier: int) -> sql.Composed:
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(name), sql.SQL(literal))
            for name, literal in literals.items()
        )
        return sql.SQL("UPDATE {} SET {} WHERE {} = {}").format(
            self._table(table),
            assignments,
            sql.Identifier(ID_FIELD),
            sql.Literal(int(identifier)),
        )

    def execute(
        self,
        kind: StatementKind,
        table: str,
        literals: Mapping[str, str],
        identifier: Optional[int] = None,
    ) -> ExecuteResult:
        if kind is StatementKind.INSERT:
            query = self._insert(table, literals)
        else:
            if identifier is None:
                raise ValueError("UPDATE requires an identifier")
            query = self._update(table, literals, identifier)

        try:
            with self._connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query)
                    generated_id = None
                    if kind is StatementKind.INSERT:
                        row = cur.fetchone()
                        generated_id = int(row[0]) if row and row[0] is not None else None
        except psycopg.Error:
            log.error(
                f"{kind.value.upper()} failed",
                exc_info=True,
                extra={"table": table, "record_id": identifier},
            )
            return ExecuteResult(success=False, generated_id=None)
        return ExecuteResult(success=True, generated_id=generated_id)

    def execute_delete(self, table: str, identifier: int) -> bool:
        query = sql.SQL("DELETE FROM {} WHERE {} = %s").format(
            self._table(table), sql.Identifier(ID_FIELD)
        )
        try:
            with self._connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, (identifier,))
        except psycopg.Error:
            log.error("DELETE failed", exc_info=True, extra={"table": table, "record_id": identifier})
            return False
        return True

    def _uses_standard_strings(self) -> bool:
        with self._escaping_lock:
            if self._standard_strings is None:
                with self._connection() as conn:
                    setting = conn.info.parameter_status("standard_conforming_strings")
                self._standard_strings = setting != "off"
            return self._standard_strings

    def escape_literal(self, value: str) -> str:
        """
        Escape a string for use between single quotes (no quotes added).

        Follows libpq's PQescapeStringConn: quotes are doubled, backslashes are
        doubled only when standard_conforming_strings is off, and the text ends
        at the first NUL character. The server setting is read once per store.
        """
        text = value.split("\x00", 1)[0]
        if not self._uses_standard_strings():
            text = text.replace("\\", "\\\\")
        return text.replace("'", "''")


__all__ = ["PostgresStore", "pg_type_spec", "pg_default", "is_auto_increment"]

"""
Process-wide cache of table schemas.

Each table is introspected once, the first time a record of that table is
constructed; every later record of the table reuses the same descriptors.
Schemas are assumed static for the lifetime of the process, so entries are
never refreshed.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from rowmap.domain.columns import ColumnDescriptor, describe_column
from rowmap.infrastructure.store import Store
from rowmap.utils.logging import get_logger

log = get_logger(__name__)

Descriptors = Mapping[str, ColumnDescriptor]


class SchemaCache:
    """
    Thread-safe singleton mapping table name to its column descriptors.

    Introspection for a given table runs under that table's own lock, so
    concurrent first resolutions trigger a single store round-trip and never
    observe a partially built descriptor set.
    """

    _instance: Optional["SchemaCache"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "SchemaCache":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._tables: Dict[str, Descriptors] = {}
                cls._instance._table_locks: Dict[str, threading.Lock] = {}
            return cls._instance

    def _table_lock(self, table: str) -> threading.Lock:
        with self._lock:
            lock = self._table_locks.get(table)
            if lock is None:
                lock = self._table_locks[table] = threading.Lock()
            return lock

    def resolve(self, table: str, store: Store) -> Descriptors:
        """
        Return the ordered column descriptors for `table`.

        Parameters
        ----------
        table : str
            Table name.
        store : Store
            Store used to introspect the table on a cache miss.

        Returns
        -------
        Mapping[str, ColumnDescriptor]
            Read-only mapping in the table's declared column order.
        """
        cached = self._tables.get(table)
        if cached is not None:
            log.debug("Schema cache hit", extra={"table": table})
            return cached

        with self._table_lock(table):
            cached = self._tables.get(table)
            if cached is not None:
                return cached

            columns = {}
            for spec in store.introspect_columns(table):
                descriptor = describe_column(spec)
                columns[descriptor.name] = descriptor
            descriptors = MappingProxyType(columns)

            with self._lock:
                self._tables[table] = descriptors
            log.info(
                f"Described table '{table}'",
                extra={"table": table, "columns": len(descriptors)},
            )
            return descriptors

    def is_cached(self, table: str) -> bool:
        return table in self._tables

    def tables(self) -> List[str]:
        """Names of all tables described so far."""
        return sorted(self._tables)


__all__ = ["SchemaCache", "Descriptors"]

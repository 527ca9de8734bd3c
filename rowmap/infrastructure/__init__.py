"""
Infrastructure package for rowmap.

Centralizes database connectivity concerns (store protocol, connection
factory, pooling). The PostgreSQL store is imported from
`rowmap.infrastructure.postgres` on demand.
"""

from rowmap.infrastructure.db_factory import (
    build_dsn,
    get_sync_pool,
    pooled_connection,
)
from rowmap.infrastructure.store import (
    ColumnSpec,
    ExecuteResult,
    StatementKind,
    Store,
    get_default_store,
    set_default_store,
)

__all__ = [
    "ColumnSpec",
    "ExecuteResult",
    "StatementKind",
    "Store",
    "build_dsn",
    "get_default_store",
    "get_sync_pool",
    "pooled_connection",
    "set_default_store",
]

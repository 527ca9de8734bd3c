"""
rowmap - schema-driven record mapping for relational tables.

Each entity class maps to one table and each instance to one row. Column
rules are introspected from the database once per table, every field write
is coerced and validated against them, and changes are tracked so a single
`save()` decides between INSERT, UPDATE, or no write at all.

- Lazy, process-wide schema introspection cache
- Field coercion and validation on every write
- Dirty tracking with insert/update decision on save
- Bitmask helpers over integer columns
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from rowmap.config import Settings, get_settings
from rowmap.domain.coercion import CoercionPolicy, FieldCoercer, coerce
from rowmap.domain.columns import ColumnDescriptor, TypeClass
from rowmap.domain.errors import (
    CacheMissError,
    ErrorKind,
    FieldNotFoundError,
    IncorrectTypeError,
    InvalidValueError,
    RecordError,
    RecordNotFoundError,
)
from rowmap.domain.persistence import NoopSaveHooks, PersistenceEngine, SaveHooks, SaveOutcome
from rowmap.domain.record import Record, ids_of, record_class_for
from rowmap.domain.schema_cache import SchemaCache
from rowmap.infrastructure.store import Store, get_default_store, set_default_store
from rowmap.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Records
    "Record",
    "ids_of",
    "record_class_for",
    # Schema and coercion
    "ColumnDescriptor",
    "TypeClass",
    "SchemaCache",
    "CoercionPolicy",
    "FieldCoercer",
    "coerce",
    # Persistence
    "PersistenceEngine",
    "SaveHooks",
    "NoopSaveHooks",
    "SaveOutcome",
    # Store
    "Store",
    "get_default_store",
    "set_default_store",
    # Errors
    "ErrorKind",
    "RecordError",
    "FieldNotFoundError",
    "InvalidValueError",
    "IncorrectTypeError",
    "RecordNotFoundError",
    "CacheMissError",
    # Logging
    "configure_logging",
    "get_logger",
]

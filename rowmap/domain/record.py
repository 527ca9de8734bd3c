"""
Record: one table row as a typed, field-named object.

Each concrete entity class maps to one table (its snake_case class name unless
`table` is set) and each instance holds exactly one row. Field values are
coerced on every write according to the table's introspected schema, and the
record tracks whether any value changed so `save()` can choose between
INSERT, UPDATE, or no write at all.

Usage:
    class UserAccount(Record):
        pass

    user = UserAccount(7)              # load row id=7
    user.set("nickname", "ada")
    user.add_flag("permissions", 4, 1)
    user.save()
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from rowmap.domain.coercion import LEGACY_POLICY, CoercionPolicy, FieldCoercer, coerce
from rowmap.domain.columns import ID_FIELD, ColumnDescriptor, TypeClass
from rowmap.domain.errors import (
    CacheMissError,
    FieldNotFoundError,
    IncorrectTypeError,
    InvalidValueError,
    RecordNotFoundError,
)
from rowmap.domain.naming import class_to_table
from rowmap.domain.persistence import (
    EXISTS_KEY,
    NoopSaveHooks,
    PersistenceEngine,
    SaveHooks,
    SaveOutcome,
)
from rowmap.domain.schema_cache import Descriptors, SchemaCache
from rowmap.infrastructure.store import Store, get_default_store
from rowmap.utils.logging import get_logger

log = get_logger(__name__)

Source = Union[None, int, Mapping[str, Any], "Record"]


class Record:
    """
    Base class for table-backed entities.

    Subclass once per table. Class attributes:

    table : str, optional
        Explicit table name; defaults to the snake_case class name.
    coercion_policy : CoercionPolicy
        Truncation and null handling applied to field writes.
    save_hooks : SaveHooks
        Callbacks run before and after `save()`.
    """

    table: ClassVar[Optional[str]] = None
    coercion_policy: ClassVar[CoercionPolicy] = LEGACY_POLICY
    save_hooks: ClassVar[SaveHooks] = NoopSaveHooks()

    def __init__(
        self,
        source: Source = None,
        *,
        store: Optional[Store] = None,
        table: Optional[str] = None,
        run_init: bool = True,
    ) -> None:
        self._table = table if table is not None else type(self).default_table_name()
        self.store: Store = store if store is not None else get_default_store()
        self._coercer = FieldCoercer(self.coercion_policy)
        self._fields: Dict[str, Any] = {}
        self._cache: Dict[str, Any] = {}
        self._dirty = False
        self.last_save_outcome: Optional[SaveOutcome] = None

        self._descriptors = SchemaCache().resolve(self._table, self.store)
        for name, descriptor in self._descriptors.items():
            self._fields[name] = self._initial_value(descriptor)

        self._load(source)
        if run_init:
            self.initialize()

    @classmethod
    def default_table_name(cls) -> str:
        return cls.table or class_to_table(cls.__name__)

    @property
    def table_name(self) -> str:
        """Table this instance is bound to."""
        return self._table

    def initialize(self) -> None:
        """Hook run at the end of construction; override in subclasses."""

    def _initial_value(self, descriptor: ColumnDescriptor) -> Any:
        result = self._coercer.coerce(descriptor, descriptor.default)
        if result.error is None:
            return result.value
        # Schema defaults such as CURRENT_TIMESTAMP are not values.
        log.warning(
            f"Ignoring unusable default for '{descriptor.name}'",
            extra={"table": self._table, "field": descriptor.name},
        )
        return coerce(descriptor, None, LEGACY_POLICY).value

    # Population ------------------------------------------------------------

    def _load(self, source: Source) -> None:
        if isinstance(source, bool):
            raise IncorrectTypeError("an identifier, a mapping or a record", "bool")
        if isinstance(source, Record):
            self.load_from_peer(source)
        elif isinstance(source, Mapping):
            self.load_from_map(source)
        elif isinstance(source, int) and source:
            self.load_from_identifier(source)
        elif source is not None and not isinstance(source, int):
            raise IncorrectTypeError(
                "an identifier, a mapping or a record", type(source).__name__
            )
        self._dirty = False

    def load_from_identifier(self, identifier: int) -> None:
        """
        Overlay the row with the given identifier.

        Raises
        ------
        RecordNotFoundError
            If the store has no such row.
        """
        if identifier:
            row = self.store.fetch_one(self._table, identifier)
            if row is None:
                raise RecordNotFoundError(self._table, identifier)
            self.load_from_map(row)
        self._dirty = False

    def load_from_map(self, values: Mapping[str, Any]) -> None:
        """Set each key of `values`; unknown keys raise FieldNotFoundError."""
        for name, value in values.items():
            self.set(name, value)

    def load_from_user_input(self, values: Mapping[str, Any]) -> None:
        """
        Like `load_from_map`, but the record is always dirty afterwards, even
        if every submitted value equals the stored one.
        """
        self.load_from_map(values)
        self._dirty = True

    def load_from_peer(self, other: "Record") -> None:
        """
        Copy every field from another record of the same entity class.

        Raises
        ------
        IncorrectTypeError
            If `other` is an instance of a different class.
        """
        if type(other) is not type(self):
            raise IncorrectTypeError(type(self).__name__, type(other).__name__)
        for name in self._descriptors:
            self.set(name, other._fields[name])

    # Field access ----------------------------------------------------------

    @property
    def descriptors(self) -> Descriptors:
        return self._descriptors

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def mark_clean(self) -> None:
        """Forget pending changes, e.g. after they were written to the store."""
        self._dirty = False

    @property
    def id(self) -> int:
        return self.get(ID_FIELD)

    def descriptor(self, field: str) -> ColumnDescriptor:
        try:
            return self._descriptors[field]
        except KeyError:
            raise FieldNotFoundError(field) from None

    def has_field(self, field: str) -> bool:
        return field in self._descriptors

    def field_count(self) -> int:
        return len(self._descriptors)

    def get(self, field: str) -> Any:
        if field not in self._descriptors:
            raise FieldNotFoundError(field)
        return self._fields[field]

    def set(self, field: str, value: Any) -> None:
        """
        Coerce and store `value`, marking the record dirty if it changed.

        Raises
        ------
        FieldNotFoundError
            If the table has no such column.
        InvalidValueError
            If the value is rejected by the column's rules.
        """
        descriptor = self.descriptor(field)
        normalised = self._coercer.coerce_or_raise(descriptor, value)
        current = self._fields[field]
        changed = type(current) is not type(normalised) or current != normalised
        self._dirty = self._dirty or changed
        self._fields[field] = normalised

    def fields(self) -> Dict[str, Any]:
        """Ordered copy of all field values."""
        return dict(self._fields)

    def __getitem__(self, field: str) -> Any:
        return self.get(field)

    def __setitem__(self, field: str, value: Any) -> None:
        self.set(field, value)

    def __contains__(self, field: object) -> bool:
        return isinstance(field, str) and self.has_field(field)

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        for name in self._descriptors:
            yield name, self._fields[name]

    def __len__(self) -> int:
        return self.field_count()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._table} id={self._fields.get(ID_FIELD)!r}>"

    def get_enum_index(self, field: str) -> int:
        """Zero-based position of an enumerated field's value in its domain."""
        descriptor = self.descriptor(field)
        if descriptor.type_class is not TypeClass.ENUMERATED:
            raise IncorrectTypeError("an enumerated field", descriptor.type_class.value)
        value = self._fields[field]
        try:
            return descriptor.enum_domain.index(value)
        except ValueError:
            raise InvalidValueError(field, value, "not in the enum domain") from None

    # Bitmask helpers -------------------------------------------------------

    def _mask(self, field: str, flags: Tuple[int, ...]) -> int:
        if not flags:
            raise TypeError("at least one flag is required")
        descriptor = self.descriptor(field)
        if descriptor.type_class is not TypeClass.INTEGER:
            raise IncorrectTypeError("an integer field", descriptor.type_class.value)
        mask = 0
        for flag in flags:
            mask |= int(flag)
        return mask

    def _bits(self, field: str) -> int:
        return self._fields[field] or 0

    def add_flag(self, field: str, *flags: int) -> None:
        mask = self._mask(field, flags)
        self.set(field, self._bits(field) | mask)

    def remove_flag(self, field: str, *flags: int) -> None:
        mask = self._mask(field, flags)
        self.set(field, self._bits(field) & ~mask)

    def toggle_flag(self, field: str, *flags: int) -> None:
        mask = self._mask(field, flags)
        self.set(field, self._bits(field) ^ mask)

    def has_flag(self, field: str, *flags: int) -> bool:
        """True if every given bit is set."""
        mask = self._mask(field, flags)
        return (self._bits(field) & mask) == mask

    def has_any_flag(self, field: str, *flags: int) -> bool:
        """True if at least one given bit is set."""
        mask = self._mask(field, flags)
        return (self._bits(field) & mask) != 0

    # Transient cache -------------------------------------------------------

    def cache_get(self, key: str) -> Any:
        try:
            return self._cache[key]
        except KeyError:
            raise CacheMissError(key) from None

    def cache_put(self, key: str, value: Any) -> None:
        self._cache[key] = value

    def is_cached(self, key: str) -> bool:
        return key in self._cache

    def uncache(self, key: str) -> None:
        self._cache.pop(key, None)

    # Persistence -----------------------------------------------------------

    def exists(self) -> bool:
        """Whether a row with this record's identifier exists (cached)."""
        if not self.is_cached(EXISTS_KEY):
            identifier = self.id
            if not identifier:
                self.cache_put(EXISTS_KEY, False)
            else:
                self.cache_put(EXISTS_KEY, self.store.count_rows(self._table, identifier) > 0)
        return self.cache_get(EXISTS_KEY)

    def save(self, hooks: Optional[SaveHooks] = None) -> Any:
        return PersistenceEngine(self.store, hooks).save(self)

    def delete(self) -> bool:
        return PersistenceEngine(self.store).delete(self)

    # Projection ------------------------------------------------------------

    def to_projection(self) -> Dict[str, Any]:
        """
        Ordered field mapping used for serialisation. Override to drop or
        transform fields before they leave the process.
        """
        return {name: self.get(name) for name in self._descriptors}

    def to_json(self) -> str:
        return json.dumps(self.to_projection(), default=str)

    def dump(self) -> None:
        """Print the record as a table on the console."""
        from rowmap.reporter import print_record

        print_record(self)


def ids_of(obj: Any) -> Union[int, List[Any], None]:
    """
    Identifier of a record, list of identifiers for a list/tuple of records
    (nested sequences give nested lists), or None for anything else.
    """
    if isinstance(obj, Record):
        return obj.id
    if isinstance(obj, (list, tuple)):
        return [ids_of(item) for item in obj]
    return None


def record_class_for(table: str) -> type:
    """Build an entity class bound to `table` (for ad-hoc access and the CLI)."""
    class_name = "".join(part.capitalize() for part in table.split("_")) or "AnonymousRecord"
    return type(class_name, (Record,), {"table": table})


__all__ = ["Record", "ids_of", "record_class_for"]

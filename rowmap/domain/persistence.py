"""
Insert/update/delete decisions for records.

The engine decides between INSERT and UPDATE from the record's existence and
dirty state, renders every field as a SQL literal, and hands the statement to
the Store. Store failures are reported through return values, never raised.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Protocol, runtime_checkable

from rowmap.domain.columns import ID_FIELD, ColumnDescriptor, TypeClass
from rowmap.infrastructure.store import StatementKind, Store
from rowmap.utils.logging import get_logger

if TYPE_CHECKING:
    from rowmap.domain.record import Record

log = get_logger(__name__)

EXISTS_KEY = "exists"


class SaveOutcome(enum.IntEnum):
    ERROR = 0
    UPDATED = 1
    INSERTED = 2


@runtime_checkable
class SaveHooks(Protocol):
    """
    Callbacks invoked by the engine around each save.

    `before_save` returning False aborts the save before any store
    interaction. A non-None return value from `after_save` replaces the value
    returned by `save()`.
    """

    def before_save(self, record: "Record") -> bool:
        ...

    def after_save(self, record: "Record", outcome: SaveOutcome) -> Optional[Any]:
        ...


class NoopSaveHooks:
    def before_save(self, record: "Record") -> bool:
        return True

    def after_save(self, record: "Record", outcome: SaveOutcome) -> Optional[Any]:
        return None


def to_sql_literal(
    descriptor: ColumnDescriptor,
    value: Any,
    escape: Callable[[str], str],
) -> str:
    """
    Render a coerced field value as a SQL literal.

    Parameters
    ----------
    descriptor : ColumnDescriptor
        Column the value belongs to.
    value : Any
        Coerced value as stored on the record.
    escape : Callable[[str], str]
        Store-specific string escaping (without surrounding quotes).
    """
    if value is None or (descriptor.is_auto_generated_key and not value):
        return "NULL"

    type_class = descriptor.type_class
    if type_class is TypeClass.INTEGER:
        return str(int(value))
    if type_class is TypeClass.FLOAT:
        return repr(float(value))
    if type_class is TypeClass.TEMPORAL:
        moment = datetime.fromtimestamp(int(value), tz=timezone.utc)
        if descriptor.base_type == "date":
            return moment.strftime("'%Y-%m-%d'")
        return moment.strftime("'%Y-%m-%d %H:%M:%S'")
    if type_class is TypeClass.BOOLEAN:
        return "'1'" if value else "'0'"
    text = str(value).replace("\r\n", "\n")
    return "'" + escape(text) + "'"


class PersistenceEngine:
    """
    Save/delete logic layered on a record and its Store.
    """

    def __init__(self, store: Store, hooks: Optional[SaveHooks] = None) -> None:
        self.store = store
        self.hooks = hooks

    def _literals(self, record: "Record") -> Dict[str, str]:
        return {
            name: to_sql_literal(descriptor, record.get(name), self.store.escape_literal)
            for name, descriptor in record.descriptors.items()
        }

    def save(self, record: "Record") -> Any:
        """
        Insert or update `record` as needed.

        Returns
        -------
        bool | Any
            True on success (including when nothing needed writing), False on
            failure or hook abort, or the after_save hook's override value.
        """
        hooks = self.hooks or record.save_hooks
        table = record.table_name

        if hooks.before_save(record) is False:
            log.info("Save aborted by before_save hook", extra={"table": table})
            return False

        do_insert = not record.exists()
        success = True

        if do_insert or record.is_dirty:
            literals = self._literals(record)
            if do_insert:
                result = self.store.execute(StatementKind.INSERT, table, literals)
            else:
                result = self.store.execute(StatementKind.UPDATE, table, literals, record.id)
            success = bool(result.get("success"))

            if success:
                record.cache_put(EXISTS_KEY, True)
                generated_id = result.get("generated_id")
                if do_insert and generated_id is not None:
                    record.set(ID_FIELD, generated_id)
                record.mark_clean()

        if not success:
            outcome = SaveOutcome.ERROR
        elif do_insert:
            outcome = SaveOutcome.INSERTED
        else:
            outcome = SaveOutcome.UPDATED
        record.last_save_outcome = outcome
        log.info(
            f"Saved record: {outcome.name.lower()}",
            extra={"table": table, "record_id": record.id, "outcome": outcome.name},
        )

        override = hooks.after_save(record, outcome)
        if override is not None:
            return override
        return success

    def delete(self, record: "Record") -> bool:
        """
        Delete the row with the record's identifier. No dependent rows are
        touched.
        """
        table = record.table_name
        deleted = bool(self.store.execute_delete(table, record.id))
        if deleted:
            record.uncache(EXISTS_KEY)
        log.info("Deleted record" if deleted else "Delete failed",
                 extra={"table": table, "record_id": record.id})
        return deleted


__all__ = [
    "EXISTS_KEY",
    "SaveOutcome",
    "SaveHooks",
    "NoopSaveHooks",
    "PersistenceEngine",
    "to_sql_literal",
]

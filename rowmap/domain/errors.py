"""
Error taxonomy for record access and coercion.

Every error raised by the record layer derives from RecordError and carries
an ErrorKind, so callers can branch on `exc.kind` rather than on the class.
Persistence failures are not part of this hierarchy: `save()` and `delete()`
report them through their return values.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    FIELD_NOT_FOUND = "field_not_found"
    INVALID_VALUE = "invalid_value"
    INCORRECT_TYPE = "incorrect_type"
    RECORD_NOT_FOUND = "record_not_found"
    CACHE_MISS = "cache_miss"


class RecordError(Exception):
    """Base class for all record-layer failures."""

    kind: ErrorKind


class FieldNotFoundError(RecordError, KeyError):
    kind = ErrorKind.FIELD_NOT_FOUND

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Field '{field}' does not exist")

    def __str__(self) -> str:
        return self.args[0]


class InvalidValueError(RecordError, ValueError):
    kind = ErrorKind.INVALID_VALUE

    def __init__(self, field: str, value: Any, reason: str = "") -> None:
        self.field = field
        self.value = value
        self.reason = reason
        message = f"Value {value!r} is not valid for field '{field}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class IncorrectTypeError(RecordError, TypeError):
    kind = ErrorKind.INCORRECT_TYPE

    def __init__(self, expected: str, actual: str = "") -> None:
        self.expected = expected
        self.actual = actual
        message = f"Expected {expected}"
        if actual:
            message = f"{message}, got {actual}"
        super().__init__(message)


class RecordNotFoundError(RecordError, LookupError):
    kind = ErrorKind.RECORD_NOT_FOUND

    def __init__(self, table: str, identifier: int) -> None:
        self.table = table
        self.identifier = identifier
        super().__init__(f"No row in '{table}' with id {identifier}")


class CacheMissError(RecordError, KeyError):
    kind = ErrorKind.CACHE_MISS

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Nothing cached under '{key}'")

    def __str__(self) -> str:
        return self.args[0]


__all__ = [
    "ErrorKind",
    "RecordError",
    "FieldNotFoundError",
    "InvalidValueError",
    "IncorrectTypeError",
    "RecordNotFoundError",
    "CacheMissError",
]

"""
Field coercion: turning raw values into the normalised type of a column.

`coerce` is pure: it returns a CoercionResult carrying either the normalised
value or an InvalidValueError, and never raises for bad input. Two lenient
behaviours are kept for compatibility with existing data and are controlled
by CoercionPolicy rather than hard-wired:

- strings longer than the column limit are truncated, not rejected;
- a null written to a non-nullable column is cast like an empty value
  ("" / 0 / 0.0 / False / epoch) instead of being rejected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, NamedTuple, Optional

from pydantic import TypeAdapter, ValidationError

from rowmap.config import get_settings
from rowmap.domain.columns import ColumnDescriptor, TypeClass
from rowmap.domain.errors import InvalidValueError
from rowmap.utils.logging import get_logger

log = get_logger(__name__)

FALSE_WORDS = frozenset({"no", "false", "off"})

_datetime_adapter = TypeAdapter(datetime)
_date_adapter = TypeAdapter(date)


@dataclass(frozen=True)
class CoercionPolicy:
    truncate_strings: bool = True
    coerce_null_on_non_nullable: bool = True

    @classmethod
    def from_settings(cls) -> "CoercionPolicy":
        settings = get_settings()
        return cls(
            truncate_strings=settings.truncate_strings,
            coerce_null_on_non_nullable=settings.coerce_null_on_non_nullable,
        )


LEGACY_POLICY = CoercionPolicy()
STRICT_POLICY = CoercionPolicy(truncate_strings=False, coerce_null_on_non_nullable=False)


class CoercionResult(NamedTuple):
    value: Any
    error: Optional[InvalidValueError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _Reject(Exception):
    """Internal signal carrying the reason a value was rejected."""


def _parse_number(value: Any) -> Decimal:
    """Parse an int/float/Decimal/numeric string; blank strings count as zero."""
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            raise _Reject("not a finite number")
        return Decimal(repr(value))
    if isinstance(value, (int, Decimal)):
        number = Decimal(value)
    else:
        text = "" if value is None else str(value).strip()
        if not text:
            return Decimal(0)
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise _Reject("not a number") from None
    if not number.is_finite():
        raise _Reject("not a finite number")
    return number


def _is_numeric_string(value: str) -> bool:
    try:
        return Decimal(value.strip()).is_finite()
    except InvalidOperation:
        return False


def _to_string(value: Any) -> str:
    return "" if value is None else str(value)


def _to_boolean(value: Any) -> bool:
    if isinstance(value, str):
        if _is_numeric_string(value):
            return Decimal(value.strip()) != 0
        if value.strip().lower() in FALSE_WORDS:
            return False
    return bool(value)


def _to_integer(descriptor: ColumnDescriptor, value: Any) -> int:
    number = value if isinstance(value, int) and not isinstance(value, bool) else _parse_number(value)
    if descriptor.unsigned and number < 0:
        raise _Reject("negative value for unsigned column")
    # Python integers are unbounded: BIGINT UNSIGNED values never widen to float.
    return int(number)


def _to_float(descriptor: ColumnDescriptor, value: Any) -> float:
    number = float(_parse_number(value))
    if descriptor.unsigned and number < 0:
        raise _Reject("negative value for unsigned column")
    return number


def _checked_timestamp(seconds: int) -> int:
    # Must stay renderable as a calendar date (years 1..9999).
    try:
        datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        raise _Reject("timestamp out of range") from None
    return seconds


def _to_timestamp(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise _Reject("not a date/time")
    if isinstance(value, (int, float, Decimal)):
        return _checked_timestamp(int(_parse_number(value)))
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            raise _Reject("empty date/time")
        try:
            moment = _datetime_adapter.validate_python(text)
        except ValidationError:
            try:
                day = _date_adapter.validate_python(text)
            except ValidationError:
                raise _Reject("unparsable date/time") from None
            moment = datetime(day.year, day.month, day.day)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return _checked_timestamp(int(moment.timestamp()))


def _to_enum(descriptor: ColumnDescriptor, value: Any) -> str:
    domain = descriptor.enum_domain
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value < len(domain):
            return domain[value]
        raise _Reject(f"index out of range 0..{len(domain) - 1}")
    text = _to_string(value)
    if text not in domain:
        raise _Reject(f"not one of {list(domain)}")
    return text


def coerce(
    descriptor: ColumnDescriptor,
    value: Any,
    policy: CoercionPolicy = LEGACY_POLICY,
) -> CoercionResult:
    """
    Normalise `value` for the column described by `descriptor`.

    Parameters
    ----------
    descriptor : ColumnDescriptor
        Rules of the target column.
    value : Any
        Raw incoming value.
    policy : CoercionPolicy
        Truncation and null handling policy.

    Returns
    -------
    CoercionResult
        `(value, None)` on success, `(None, InvalidValueError)` on rejection.
    """
    if value is None:
        if descriptor.nullable:
            return CoercionResult(None)
        if not policy.coerce_null_on_non_nullable:
            return CoercionResult(
                None, InvalidValueError(descriptor.name, value, "column is not nullable")
            )

    type_class = descriptor.type_class
    try:
        if type_class is TypeClass.STRING:
            text = _to_string(value)
            limit = descriptor.max_length
            if limit and len(text) > limit:
                if not policy.truncate_strings:
                    raise _Reject(f"longer than {limit} characters")
                log.debug(
                    f"Truncating value for '{descriptor.name}' to {limit} characters",
                    extra={"field": descriptor.name, "max_length": limit},
                )
                text = text[:limit]
            result: Any = text
        elif type_class is TypeClass.BOOLEAN:
            result = _to_boolean(value)
        elif type_class is TypeClass.INTEGER:
            result = _to_integer(descriptor, value)
        elif type_class is TypeClass.FLOAT:
            result = _to_float(descriptor, value)
        elif type_class is TypeClass.TEMPORAL:
            result = _to_timestamp(value)
        elif type_class is TypeClass.ENUMERATED:
            result = _to_enum(descriptor, value)
        else:
            result = _to_string(value)
    except _Reject as reason:
        return CoercionResult(None, InvalidValueError(descriptor.name, value, str(reason)))
    return CoercionResult(result)


class FieldCoercer:
    """
    Coercion bound to a policy.
    """

    def __init__(self, policy: CoercionPolicy = LEGACY_POLICY) -> None:
        self.policy = policy

    def coerce(self, descriptor: ColumnDescriptor, value: Any) -> CoercionResult:
        return coerce(descriptor, value, self.policy)

    def coerce_or_raise(self, descriptor: ColumnDescriptor, value: Any) -> Any:
        """Return the normalised value, raising InvalidValueError on rejection."""
        result = self.coerce(descriptor, value)
        if result.error is not None:
            raise result.error
        return result.value


__all__ = [
    "CoercionPolicy",
    "CoercionResult",
    "FieldCoercer",
    "LEGACY_POLICY",
    "STRICT_POLICY",
    "coerce",
]

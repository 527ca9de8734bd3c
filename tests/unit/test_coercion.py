from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from rowmap.domain.coercion import (
    LEGACY_POLICY,
    STRICT_POLICY,
    CoercionPolicy,
    FieldCoercer,
    coerce,
)
from rowmap.domain.columns import ColumnDescriptor, TypeClass
from rowmap.domain.errors import ErrorKind, InvalidValueError

MAX_LENGTH = 5
HUGE_UNSIGNED = 2**64 - 1
TIMESTAMP_2024 = int(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc).timestamp())
LAST_RENDERABLE_TIMESTAMP = 253402300799  # 9999-12-31T23:59:59Z
MIDNIGHT_2024 = int(datetime(2024, 1, 2, tzinfo=timezone.utc).timestamp())


def _column(type_class: TypeClass, **kwargs) -> ColumnDescriptor:
    return ColumnDescriptor(name="field", type_class=type_class, **kwargs)


STRING = _column(TypeClass.STRING, max_length=MAX_LENGTH)
BOOLEAN = _column(TypeClass.BOOLEAN)
SIGNED = _column(TypeClass.INTEGER)
UNSIGNED = _column(TypeClass.INTEGER, unsigned=True)
FLOAT = _column(TypeClass.FLOAT)
UNSIGNED_FLOAT = _column(TypeClass.FLOAT, unsigned=True)
TEMPORAL = _column(TypeClass.TEMPORAL, base_type="datetime")
ENUM = _column(TypeClass.ENUMERATED, enum_domain=("draft", "live", "archived"))
TEXT = _column(TypeClass.TEXT)


def _value(descriptor: ColumnDescriptor, raw):
    result = coerce(descriptor, raw)
    assert result.ok, result.error
    return result.value


def _error(descriptor: ColumnDescriptor, raw, policy: CoercionPolicy = LEGACY_POLICY):
    result = coerce(descriptor, raw, policy)
    assert result.value is None
    assert isinstance(result.error, InvalidValueError)
    assert result.error.kind is ErrorKind.INVALID_VALUE
    return result.error


def test_string_is_cast_to_text():
    assert _value(STRING, 42) == "42"


def test_string_longer_than_limit_is_truncated():
    assert _value(STRING, "abcdefgh") == "abcde"


def test_string_truncation_rejected_by_strict_policy():
    _error(STRING, "abcdefgh", STRICT_POLICY)


def test_unbounded_string_is_not_truncated():
    unbounded = _column(TypeClass.STRING, max_length=0)
    assert _value(unbounded, "x" * 500) == "x" * 500


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("no", False),
        ("FALSE", False),
        ("Off", False),
        ("yes", True),
        ("0", False),
        ("1", True),
        ("0.0", False),
        ("", False),
        (0, False),
        (2, True),
        (True, True),
    ],
)
def test_boolean(raw, expected):
    assert _value(BOOLEAN, raw) is expected


@pytest.mark.parametrize(
    "raw,expected",
    [("12", 12), ("12.7", 12), (-3, -3), (7.9, 7), (Decimal("4"), 4), ("", 0), (True, 1)],
)
def test_signed_integer(raw, expected):
    assert _value(SIGNED, raw) == expected


def test_unsigned_integer_rejects_negative():
    _error(UNSIGNED, -1)
    _error(UNSIGNED, "-0.5")


def test_unsigned_integer_keeps_values_beyond_64_bits_as_int():
    value = _value(UNSIGNED, str(HUGE_UNSIGNED))
    assert value == HUGE_UNSIGNED
    assert isinstance(value, int)


def test_integer_rejects_non_numeric_text():
    _error(SIGNED, "twelve")


def test_float():
    assert _value(FLOAT, "2.5") == pytest.approx(2.5)
    assert _value(FLOAT, -1) == pytest.approx(-1.0)
    assert isinstance(_value(FLOAT, 3), float)


def test_unsigned_float_rejects_negative():
    _error(UNSIGNED_FLOAT, -0.01)


def test_float_rejects_non_numeric_text():
    _error(FLOAT, "abc")


def test_temporal_keeps_numeric_timestamps():
    assert _value(TEMPORAL, TIMESTAMP_2024) == TIMESTAMP_2024


def test_temporal_parses_iso_strings_as_utc():
    assert _value(TEMPORAL, "2024-01-02T03:04:05") == TIMESTAMP_2024


def test_temporal_parses_date_only_strings():
    assert _value(TEMPORAL, "2024-01-02") == MIDNIGHT_2024


def test_temporal_converts_datetime_and_date_objects():
    assert _value(TEMPORAL, datetime(2024, 1, 2, 3, 4, 5)) == TIMESTAMP_2024
    assert _value(TEMPORAL, date(2024, 1, 2)) == MIDNIGHT_2024


def test_temporal_unparsable_is_an_error_not_epoch():
    _error(TEMPORAL, "not a date")


def test_temporal_accepts_last_renderable_second():
    assert _value(TEMPORAL, LAST_RENDERABLE_TIMESTAMP) == LAST_RENDERABLE_TIMESTAMP


@pytest.mark.parametrize(
    "raw", [LAST_RENDERABLE_TIMESTAMP + 1, 10**12, -(10**12), float(10**15)]
)
def test_temporal_rejects_timestamps_beyond_calendar_range(raw):
    _error(TEMPORAL, raw)


def test_enum_by_index_returns_domain_string():
    assert _value(ENUM, 1) == "live"


@pytest.mark.parametrize("index", [3, -1])
def test_enum_index_out_of_range(index):
    _error(ENUM, index)


def test_enum_by_member_round_trips():
    assert _value(ENUM, "archived") == "archived"


def test_enum_member_match_is_case_sensitive():
    _error(ENUM, "Live")


def test_text_is_not_truncated():
    assert _value(TEXT, "y" * 1000) == "y" * 1000


def test_null_on_nullable_column_is_kept():
    for type_class in (TypeClass.INTEGER, TypeClass.STRING, TypeClass.TEMPORAL):
        descriptor = _column(type_class, nullable=True)
        assert coerce(descriptor, None).value is None


@pytest.mark.parametrize(
    "descriptor,expected",
    [
        (STRING, ""),
        (TEXT, ""),
        (BOOLEAN, False),
        (SIGNED, 0),
        (FLOAT, 0.0),
        (TEMPORAL, 0),
    ],
)
def test_null_on_non_nullable_column_is_cast_under_legacy_policy(descriptor, expected):
    assert _value(descriptor, None) == expected


def test_null_on_non_nullable_enum_is_invalid():
    _error(ENUM, None)


def test_null_on_non_nullable_column_rejected_by_strict_policy():
    _error(SIGNED, None, STRICT_POLICY)


def test_field_coercer_raises_on_rejection():
    coercer = FieldCoercer()
    assert coercer.coerce_or_raise(ENUM, 0) == "draft"
    with pytest.raises(InvalidValueError) as excinfo:
        coercer.coerce_or_raise(UNSIGNED, -5)
    assert excinfo.value.field == "field"
    assert excinfo.value.value == -5


def test_policy_from_settings(monkeypatch):
    from rowmap import config

    monkeypatch.setenv("ROWMAP_TRUNCATE_STRINGS", "false")
    config.get_settings.cache_clear()
    try:
        policy = CoercionPolicy.from_settings()
    finally:
        config.get_settings.cache_clear()
    assert policy.truncate_strings is False
    assert policy.coerce_null_on_non_nullable is True

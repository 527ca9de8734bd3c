"""
Column descriptors and type classification.

A ColumnDescriptor is the parsed, immutable rule set for one column: which
type class its values are coerced to, how long strings may be, whether
negatives are allowed, and so on. Descriptors are built from the raw
"TYPE(size) [qualifier]" strings reported by schema introspection.
"""
from __future__ import annotations

import enum
import re
from typing import Any, NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from rowmap.infrastructure.store import ColumnSpec

ID_FIELD = "id"


class TypeClass(str, enum.Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    TEMPORAL = "temporal"
    ENUMERATED = "enumerated"
    TEXT = "text"


STRING_TYPES = frozenset({"varchar", "char"})
INTEGER_TYPES = frozenset({"int", "bit", "tinyint", "smallint", "mediumint", "integer", "bigint"})
FLOAT_TYPES = frozenset({"real", "float", "decimal", "double", "numeric"})
TEMPORAL_TYPES = frozenset({"date", "datetime", "timestamp"})

# "int(10) unsigned" -> ("int", "10", "unsigned"); "enum('a','b')" -> ("enum", "'a','b'", "")
_TYPE_SPEC = re.compile(r"^\s*([A-Za-z]+)\s*(?:\((.*)\))?\s*(.*?)\s*$")
_ENUM_LITERAL = re.compile(r"'((?:[^']|'')*)'")


class ParsedType(NamedTuple):
    base: str
    size: int
    qualifier: str
    enum_domain: Tuple[str, ...]


def parse_type_spec(raw: str) -> ParsedType:
    """
    Split a raw column type into base name, size, qualifier and enum domain.

    The base name and qualifier are lower-cased; enum literals keep their case.
    """
    match = _TYPE_SPEC.match(raw or "")
    if match is None:
        return ParsedType(base="", size=0, qualifier="", enum_domain=())

    base = match.group(1).lower()
    args = match.group(2) or ""
    qualifier = match.group(3).lower()

    if base == "enum":
        domain = tuple(literal.replace("''", "'") for literal in _ENUM_LITERAL.findall(args))
        return ParsedType(base=base, size=0, qualifier=qualifier, enum_domain=domain)

    size_text = args.split(",", 1)[0].strip()
    size = int(size_text) if size_text.isdigit() else 0
    return ParsedType(base=base, size=size, qualifier=qualifier, enum_domain=())


def classify(base: str, size: int) -> TypeClass:
    """Map a lower-cased base type name and size to its TypeClass."""
    if base in STRING_TYPES:
        return TypeClass.STRING
    # tinyint(1) is the boolean convention and wins over the integer rule
    if base == "tinyint" and size == 1:
        return TypeClass.BOOLEAN
    if base in INTEGER_TYPES:
        return TypeClass.INTEGER
    if base in FLOAT_TYPES:
        return TypeClass.FLOAT
    if base in TEMPORAL_TYPES:
        return TypeClass.TEMPORAL
    if base == "enum":
        return TypeClass.ENUMERATED
    return TypeClass.TEXT


class ColumnDescriptor(BaseModel):
    """
    Coercion and validation rules for a single column.
    """

    name: str = Field(..., min_length=1)
    type_class: TypeClass
    base_type: str = Field("", description="Lower-cased raw base type, e.g. 'datetime'.")
    max_length: int = Field(0, ge=0, description="String length limit, 0 = unbounded.")
    unsigned: bool = False
    nullable: bool = False
    default: Any = Field(None, description="Raw schema default, None when absent.")
    enum_domain: Tuple[str, ...] = ()
    is_auto_generated_key: bool = False
    extra: str = ""
    label: str = ""

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": False,
    }

    @model_validator(mode="before")
    @classmethod
    def _normalise_enum_default(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        domain = tuple(data.get("enum_domain") or ())
        is_enum = data.get("type_class") in (TypeClass.ENUMERATED, TypeClass.ENUMERATED.value)
        if is_enum != bool(domain):
            raise ValueError("enum_domain must be non-empty exactly for enumerated columns")
        if is_enum and data.get("default") not in domain:
            data = {**data, "default": domain[0]}
        return data

    @property
    def is_numeric(self) -> bool:
        return self.type_class in (TypeClass.INTEGER, TypeClass.FLOAT)


def describe_column(spec: ColumnSpec) -> ColumnDescriptor:
    """
    Build a ColumnDescriptor from one introspected column.
    """
    parsed = parse_type_spec(spec["type"])
    type_class = classify(parsed.base, parsed.size)
    extra = spec.get("extra") or ""
    return ColumnDescriptor(
        name=spec["name"],
        type_class=type_class,
        base_type=parsed.base,
        max_length=parsed.size if type_class is TypeClass.STRING else 0,
        unsigned=(
            type_class in (TypeClass.INTEGER, TypeClass.FLOAT)
            and "unsigned" in parsed.qualifier.split()
        ),
        nullable=str(spec.get("null", "")).upper() == "YES",
        default=spec.get("default"),
        enum_domain=parsed.enum_domain,
        is_auto_generated_key=spec["name"] == ID_FIELD and "auto_increment" in extra.lower(),
        extra=extra,
        label=spec.get("comment") or "",
    )


__all__ = [
    "ID_FIELD",
    "TypeClass",
    "ParsedType",
    "ColumnDescriptor",
    "parse_type_spec",
    "classify",
    "describe_column",
]

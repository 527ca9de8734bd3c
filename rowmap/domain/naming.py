"""Table naming convention: entity class names map to snake_case tables."""

from __future__ import annotations

import re

_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def class_to_table(class_name: str) -> str:
    """
    Convert a CamelCase class name to its table name.

    >>> class_to_table("SomeEntity")
    'some_entity'
    >>> class_to_table("HTTPRequestLog")
    'http_request_log'
    """
    return _BOUNDARY.sub("_", class_name).lower()


__all__ = ["class_to_table"]

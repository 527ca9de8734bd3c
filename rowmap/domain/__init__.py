"""
Domain package for rowmap.

Exports the record base class and the schema, coercion, and persistence
machinery it is built on. Database access stays behind the Store protocol
in `rowmap.infrastructure`.
"""

from rowmap.domain.columns import ColumnDescriptor, TypeClass
from rowmap.domain.record import Record

__all__ = [
    "ColumnDescriptor",
    "Record",
    "TypeClass",
]

"""
Dialect-aware column types.

StringSet stores a set of string ids as a JSON array:
JSONB on PostgreSQL, generic JSON on SQLite and others.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator
from sqlalchemy.engine import Dialect


class StringSet(TypeDecorator):
    """
    Set of strings persisted as a sorted, de-duplicated JSON array.

    Accepts any iterable of strings on the way in and always yields a
    list (never None) on the way out.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return []
        return sorted({str(item) for item in value})

    def process_result_value(self, value, dialect):
        if not value:
            return []
        return list(value)

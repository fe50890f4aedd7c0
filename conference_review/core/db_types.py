"""
Dialect-aware database types.
Stores string lists as PostgreSQL JSONB when available,
falls back to generic JSON for SQLite.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator
from sqlalchemy.engine import Dialect


class StringList(TypeDecorator):
    """
    A JSON array of strings (keywords, role names).
    Always hands back a list, never None.
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
        return [str(v) for v in value]

    def process_result_value(self, value, dialect):
        return list(value or [])

"""DB-API adapter and dialect exports."""

from .database import Database
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect

__all__ = [
    "Database",
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
]

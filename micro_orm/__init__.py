"""Dataclass ORM core with DB-API adapters."""

import logging

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .ports import Database, Dialect, MySQLDialect, PostgresDialect, SQLiteDialect

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    *_core_all,
    "Database",
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
]

"""Schema helpers deriving `CREATE TABLE` SQL from entity descriptors.

Meant for test fixtures and quick starts; this is not a migration tool.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Type

from .contracts import DatabasePort, DialectPort
from .errors import backend_errors
from .metadata import EntityDescriptor, FieldDescriptor
from .models import DataclassModel, is_optional, unwrap_optional
from .registry import SchemaRegistry, default_registry


def create_table_sql(
    descriptor: EntityDescriptor[Any],
    dialect: DialectPort,
    *,
    if_not_exists: bool = False,
) -> str:
    """Build a `CREATE TABLE` statement covering every leaf column."""

    column_definitions = [column_sql(item, dialect) for item in descriptor.fields]
    prefix = "CREATE TABLE IF NOT EXISTS" if if_not_exists else "CREATE TABLE"
    return (
        f"{prefix} {dialect.q(descriptor.table)} (\n  "
        + ",\n  ".join(column_definitions)
        + "\n)"
    )


def drop_table_sql(descriptor: EntityDescriptor[Any], dialect: DialectPort) -> str:
    return f"DROP TABLE IF EXISTS {dialect.q(descriptor.table)}"


def column_sql(item: FieldDescriptor, dialect: DialectPort) -> str:
    """Build one column definition SQL fragment."""

    if item.primary_key and item.auto_generated:
        return dialect.auto_pk_sql(item.column)

    indexed = item.primary_key or item.unique
    sql_parts = [dialect.q(item.column), resolve_sql_type(item, dialect, indexed=indexed)]
    sql_parts.append("NULL" if is_optional(item.annotation) else "NOT NULL")
    if item.primary_key:
        sql_parts.append("PRIMARY KEY")
    elif item.unique:
        sql_parts.append("UNIQUE")
    return " ".join(sql_parts)


def resolve_sql_type(item: FieldDescriptor, dialect: DialectPort, *, indexed: bool = False) -> str:
    """Map a field annotation to an SQL scalar type."""

    base_type = unwrap_optional(item.annotation)
    if isinstance(base_type, str):
        return _resolve_from_name(base_type.lower(), dialect, indexed)

    if isinstance(base_type, type) and issubclass(base_type, Enum):
        return _text_type(dialect, indexed)
    if base_type is bool:
        return "BOOLEAN"
    if base_type is datetime:
        return "DATETIME(3)" if dialect.name == "mysql" else "TIMESTAMP"
    if base_type is date:
        return "DATE"
    if base_type is time:
        return "TIME"
    if base_type is Decimal:
        return "NUMERIC"
    if base_type in {bytes, bytearray, memoryview}:
        return "BYTEA" if dialect.name == "postgres" else "BLOB"
    if base_type is int:
        return "BIGINT" if dialect.name != "sqlite" else "INTEGER"
    if base_type is float:
        return "DOUBLE PRECISION" if dialect.name == "postgres" else "REAL"
    return _text_type(dialect, indexed)


def _resolve_from_name(lowered: str, dialect: DialectPort, indexed: bool) -> str:
    if "bool" in lowered:
        return "BOOLEAN"
    if "datetime" in lowered:
        return "DATETIME(3)" if dialect.name == "mysql" else "TIMESTAMP"
    if "date" in lowered:
        return "DATE"
    if "int" in lowered:
        return "BIGINT" if dialect.name != "sqlite" else "INTEGER"
    if "float" in lowered:
        return "REAL"
    return _text_type(dialect, indexed)


def _text_type(dialect: DialectPort, indexed: bool) -> str:
    # MySQL cannot index TEXT columns without a prefix length.
    if dialect.name == "mysql" and indexed:
        return "VARCHAR(191)"
    return "TEXT"


def apply_schema(
    db: DatabasePort,
    *models: Type[DataclassModel],
    registry: Optional[SchemaRegistry] = None,
    drop_existing: bool = False,
) -> List[str]:
    """Create tables for `models` and commit; returns the executed SQL.

    Raises:
        ConfigurationError: If a model has invalid metadata.
        QueryError: If the backend rejects the DDL.
    """

    registry = registry if registry is not None else default_registry
    executed: List[str] = []
    with backend_errors():
        for model in models:
            descriptor = registry.register(model)
            if drop_existing:
                sql = drop_table_sql(descriptor, db.dialect)
                db.execute(sql)
                executed.append(sql)
            sql = create_table_sql(descriptor, db.dialect, if_not_exists=True)
            db.execute(sql)
            executed.append(sql)
        db.commit()
    return executed

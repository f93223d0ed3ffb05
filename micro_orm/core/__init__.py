"""Public core API for mapping, statement building, execution and transactions."""

from .conditions import (
    C,
    Condition,
    ConditionGroup,
    NotCondition,
    OrderBy,
    RawCondition,
    WhereExpression,
    WhereInput,
)
from .config import OrmConfig
from .contracts import DatabasePort, DialectPort
from .engine import Engine
from .errors import (
    BackendConnectionError,
    BackendError,
    ConfigurationError,
    ConstraintViolation,
    MappingError,
    NotRegisteredError,
    OrmError,
    QueryError,
    StateError,
    classify_backend_error,
)
from .metadata import EmbeddedGroup, EntityDescriptor, FieldDescriptor, build_entity_descriptor
from .models import AutoTimePolicy, DataclassModel, TimeUnit, table_name
from .registry import SchemaRegistry, default_registry
from .repository import Repository
from .schema import apply_schema, create_table_sql, drop_table_sql
from .session import Session
from .statement_builder import (
    build_count,
    build_delete,
    build_exists_probe,
    build_insert,
    build_raw,
    build_select,
    build_update,
    build_update_columns,
    build_update_nonzero,
    build_upsert,
)
from .statements import ConflictPolicy, ExecutionResult, Statement, StatementKind
from .transactions import TransactionHandle, TransactionManager, TransactionState

__all__ = [
    "AutoTimePolicy",
    "BackendConnectionError",
    "BackendError",
    "C",
    "Condition",
    "ConditionGroup",
    "ConfigurationError",
    "ConflictPolicy",
    "ConstraintViolation",
    "DataclassModel",
    "DatabasePort",
    "DialectPort",
    "EmbeddedGroup",
    "Engine",
    "EntityDescriptor",
    "ExecutionResult",
    "FieldDescriptor",
    "MappingError",
    "NotCondition",
    "NotRegisteredError",
    "OrderBy",
    "OrmConfig",
    "OrmError",
    "QueryError",
    "RawCondition",
    "Repository",
    "SchemaRegistry",
    "Session",
    "StateError",
    "Statement",
    "StatementKind",
    "TimeUnit",
    "TransactionHandle",
    "TransactionManager",
    "TransactionState",
    "WhereExpression",
    "WhereInput",
    "apply_schema",
    "build_count",
    "build_delete",
    "build_entity_descriptor",
    "build_exists_probe",
    "build_insert",
    "build_raw",
    "build_select",
    "build_update",
    "build_update_columns",
    "build_update_nonzero",
    "build_upsert",
    "classify_backend_error",
    "create_table_sql",
    "default_registry",
    "drop_table_sql",
    "table_name",
]

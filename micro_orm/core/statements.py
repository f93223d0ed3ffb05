"""Backend-agnostic statement and result value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from .conditions import OrderBy, WhereExpression
from .metadata import EntityDescriptor


class StatementKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SELECT = "select"
    RAW = "raw"


class ConflictPolicy(str, Enum):
    """Insert behavior when a row collides with an existing unique key."""

    NONE = "none"
    UPDATE_ALL = "update_all"
    IGNORE = "ignore"


@dataclass(frozen=True)
class Statement:
    """One statement ready for compilation by a dialect.

    Write statements carry `columns` and `rows`: one tuple of Python values
    per row, serialized at compile time. `entities` holds the instances that
    generated keys are written back into; it does not take part in equality.
    """

    kind: StatementKind
    table: str
    columns: Tuple[str, ...] = ()
    rows: Tuple[Tuple[Any, ...], ...] = ()
    where: Optional[WhereExpression] = None
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    conflict: ConflictPolicy = ConflictPolicy.NONE
    conflict_target: Tuple[str, ...] = ()
    update_columns: Tuple[str, ...] = ()
    returning: Optional[str] = None
    aggregate: Optional[str] = None
    descriptor: Optional[EntityDescriptor[Any]] = field(default=None, compare=False)
    into: Optional[EntityDescriptor[Any]] = field(default=None, compare=False)
    entities: Tuple[Any, ...] = field(default=(), compare=False, repr=False)
    sql: Optional[str] = None
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of executing one statement."""

    rows_affected: int = 0
    generated_keys: Tuple[Any, ...] = ()
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def last_insert_id(self) -> Any:
        return self.generated_keys[-1] if self.generated_keys else None

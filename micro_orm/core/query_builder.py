"""SQL compilation for `Statement` objects.

This module turns backend-agnostic statements into SQL text plus bound
parameters for one dialect. Placeholder style, identifier quoting, conflict
clauses and value adaptation all come from the dialect, so the statement
builder never sees SQL.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional, Sequence

from .codecs import serialize_value
from .conditions import Condition, ConditionGroup, NotCondition, OrderBy, RawCondition, WhereExpression
from .contracts import DialectPort
from .errors import MappingError
from .statements import Statement, StatementKind
from .types import NamedParams, PositionalParams, QueryParams


@dataclass(frozen=True)
class CompiledStatement:
    """Represents compiled SQL with its bound parameters."""

    sql: str
    params: QueryParams


class _ParamCollector:
    """Collects bound values and hands out dialect placeholders."""

    def __init__(self, dialect: DialectPort) -> None:
        self.dialect = dialect
        self._counter = 0
        self._named: NamedParams = {}
        self._positional: PositionalParams = []

    def add(self, value: Any, hint: str = "p") -> str:
        """Bind one value and return its placeholder."""

        value = adapt_param(value, self.dialect)
        if self.dialect.paramstyle == "named":
            self._counter += 1
            safe = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in hint)
            key = f"{safe}_{self._counter}"
            self._named[key] = value
            return f":{key}"
        self._positional.append(value)
        return self.dialect.placeholder(hint)

    @property
    def params(self) -> QueryParams:
        if self.dialect.paramstyle == "named":
            return self._named
        return self._positional


def adapt_param(value: Any, dialect: DialectPort) -> Any:
    """Adapt a condition value the way column values are serialized."""

    if isinstance(value, Enum):
        return value.value
    if getattr(dialect, "datetime_as_text", False) and isinstance(value, (datetime, date)):
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    return value


def compile_statement(
    statement: Statement,
    dialect: DialectPort,
    *,
    rows: Optional[Sequence[int]] = None,
) -> CompiledStatement:
    """Compile one statement.

    Args:
        statement: Statement to compile.
        dialect: SQL dialect used for quoting, placeholders and clauses.
        rows: For inserts, the indexes of `statement.rows` to include.

    Returns:
        SQL text and parameters.
    """

    params = _ParamCollector(dialect)
    if statement.kind is StatementKind.INSERT:
        sql = _compile_insert(statement, dialect, params, rows)
    elif statement.kind is StatementKind.UPDATE:
        sql = _compile_update(statement, dialect, params)
    elif statement.kind is StatementKind.DELETE:
        sql = f"DELETE FROM {dialect.q(statement.table)}"
        sql += compile_where(statement.where, dialect, params)
    elif statement.kind is StatementKind.SELECT:
        sql = _compile_select(statement, dialect, params)
    elif statement.kind is StatementKind.RAW:
        sql = compile_raw_fragment(statement.sql or "", statement.params, dialect, params)
    else:  # pragma: no cover - enum is exhaustive
        raise ValueError(f"Unsupported statement kind {statement.kind!r}.")
    return CompiledStatement(sql, params.params)


def compile_where(
    where: Optional[WhereExpression],
    dialect: DialectPort,
    params: _ParamCollector,
) -> str:
    """Compile an expression tree into a SQL `WHERE` fragment."""

    if where is None:
        return ""
    return f" WHERE {_compile_expression(where, dialect, params, top_level=True)}"


def compile_order_by(order_by: Optional[Sequence[OrderBy]], dialect: DialectPort) -> str:
    """Compile `ORDER BY` clause from ordering inputs."""

    if not order_by:
        return ""

    ordered_cols = ", ".join(
        f"{dialect.q(item.col)} {'DESC' if item.desc else 'ASC'}" for item in order_by
    )
    return f" ORDER BY {ordered_cols}"


def append_limit_offset(
    sql: str,
    params: _ParamCollector,
    *,
    limit: Optional[int],
    offset: Optional[int],
    dialect: DialectPort,
) -> str:
    """Append pagination clauses, binding the values as parameters."""

    if limit is None and offset is not None:
        unbounded = getattr(dialect, "unbounded_limit", None)
        if unbounded is not None:
            sql += f" LIMIT {unbounded}"
    elif limit is not None:
        sql += f" LIMIT {params.add(limit, '__limit')}"
    if offset is not None:
        sql += f" OFFSET {params.add(offset, '__offset')}"
    return sql


def compile_raw_fragment(
    sql: str,
    values: Sequence[Any],
    dialect: DialectPort,
    params: _ParamCollector,
) -> str:
    """Rewrite `?` placeholders of a raw fragment into dialect placeholders.

    Question marks inside single-quoted literals are left alone. A list, tuple
    or set parameter expands to `(p1, p2, ...)`; an empty one to `(NULL)`.
    """

    out: List[str] = []
    pending = list(values)
    in_literal = False
    escape_percent = dialect.paramstyle == "format"
    for ch in sql:
        if ch == "'":
            in_literal = not in_literal
            out.append(ch)
        elif ch == "?" and not in_literal:
            if not pending:
                raise ValueError(f"Not enough parameters for SQL fragment {sql!r}.")
            value = pending.pop(0)
            if isinstance(value, (list, tuple, set, frozenset)):
                items = list(value)
                if not items:
                    out.append("(NULL)")
                else:
                    out.append("(" + ", ".join(params.add(item) for item in items) + ")")
            else:
                out.append(params.add(value))
        elif ch == "%" and escape_percent:
            out.append("%%")
        else:
            out.append(ch)
    if pending:
        raise ValueError(f"Too many parameters for SQL fragment {sql!r}.")
    return "".join(out)


def _compile_expression(
    expr: WhereExpression,
    dialect: DialectPort,
    params: _ParamCollector,
    *,
    top_level: bool = False,
) -> str:
    if isinstance(expr, Condition):
        return _compile_condition(expr, dialect, params)
    if isinstance(expr, RawCondition):
        fragment = compile_raw_fragment(expr.sql, expr.params, dialect, params)
        return fragment if top_level else f"({fragment})"
    if isinstance(expr, NotCondition):
        return f"NOT ({_compile_expression(expr.item, dialect, params, top_level=True)})"
    if isinstance(expr, ConditionGroup):
        operator = expr.operator.upper()
        if operator not in ("AND", "OR"):
            raise ValueError(f"Unsupported group operator {expr.operator!r}.")
        parts = [_compile_expression(item, dialect, params) for item in expr.items]
        joined = f" {operator} ".join(parts)
        if top_level or len(parts) == 1:
            return joined
        return f"({joined})"
    raise TypeError(f"Unsupported where expression: {type(expr).__name__}")


def _compile_condition(
    condition: Condition,
    dialect: DialectPort,
    params: _ParamCollector,
) -> str:
    col_sql = dialect.q(condition.col)

    if condition.is_unary:
        return f"{col_sql} {condition.op}"

    if condition.op == "IN":
        values = list(condition.values or [])
        if not values:
            return "1=0"
        placeholders = ", ".join(params.add(value, condition.col) for value in values)
        return f"{col_sql} IN ({placeholders})"

    return f"{col_sql} {condition.op} {params.add(condition.value, condition.col)}"


def _serialize_row(statement: Statement, row: Sequence[Any], dialect: DialectPort) -> List[Any]:
    descriptor = statement.descriptor
    datetime_as_text = bool(getattr(dialect, "datetime_as_text", False))
    if descriptor is None:
        return [adapt_param(value, dialect) for value in row]
    out = []
    for column, value in zip(statement.columns, row):
        out.append(
            serialize_value(
                descriptor.field_for_column(column),
                value,
                datetime_as_text=datetime_as_text,
            )
        )
    return out


def _compile_insert(
    statement: Statement,
    dialect: DialectPort,
    params: _ParamCollector,
    rows: Optional[Sequence[int]],
) -> str:
    table_sql = dialect.q(statement.table)
    selected = range(len(statement.rows)) if rows is None else rows
    prefix = dialect.insert_prefix(statement.conflict.value)

    if not statement.columns:
        if len(selected) != 1:
            raise MappingError("DEFAULT VALUES inserts take exactly one row.")
        sql = f"{prefix} INTO {table_sql} DEFAULT VALUES"
    else:
        column_sql = ", ".join(dialect.q(col) for col in statement.columns)
        groups = []
        for index in selected:
            values = _serialize_row(statement, statement.rows[index], dialect)
            placeholders = ", ".join(
                params.add(value, col) for col, value in zip(statement.columns, values)
            )
            groups.append(f"({placeholders})")
        sql = f"{prefix} INTO {table_sql} ({column_sql}) VALUES {', '.join(groups)}"
        sql += dialect.on_conflict_clause(
            statement.conflict.value,
            statement.conflict_target,
            statement.update_columns,
        )

    if statement.returning and dialect.supports_returning:
        sql += dialect.returning_clause(statement.returning)
    return sql


def _compile_update(
    statement: Statement,
    dialect: DialectPort,
    params: _ParamCollector,
) -> str:
    if not statement.columns or len(statement.rows) != 1:
        raise MappingError("UPDATE requires at least one column and exactly one value row.")
    values = _serialize_row(statement, statement.rows[0], dialect)
    assignments = ", ".join(
        f"{dialect.q(col)} = {params.add(value, col)}"
        for col, value in zip(statement.columns, values)
    )
    sql = f"UPDATE {dialect.q(statement.table)} SET {assignments}"
    return sql + compile_where(statement.where, dialect, params)


def _compile_select(
    statement: Statement,
    dialect: DialectPort,
    params: _ParamCollector,
) -> str:
    if statement.aggregate:
        projection = f"{statement.aggregate} AS {dialect.q('value')}"
    else:
        projection = ", ".join(dialect.q(col) for col in statement.columns) or "*"
    sql = f"SELECT {projection} FROM {dialect.q(statement.table)}"
    sql += compile_where(statement.where, dialect, params)
    sql += compile_order_by(statement.order_by, dialect)
    return append_limit_offset(
        sql,
        params,
        limit=statement.limit,
        offset=statement.offset,
        dialect=dialect,
    )

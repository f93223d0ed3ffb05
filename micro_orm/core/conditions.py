"""Query condition primitives for statement filtering and sorting."""

from __future__ import annotations

from collections.abc import Mapping, Sequence as SequenceABC
from dataclasses import dataclass, is_dataclass
from typing import Any, Optional, Sequence

from .models import DataclassModel


@dataclass(frozen=True)
class Condition:
    """Represents one SQL condition expression.

    Attributes:
        col: Raw column name.
        op: SQL operator (for example `=`, `IN`, `IS NULL`).
        value: Scalar value for binary operators.
        values: Sequence value for `IN`.
        is_unary: Whether the operator is unary (`IS NULL`, `IS NOT NULL`).
    """

    col: str
    op: str
    value: Any = None
    values: Optional[Sequence[Any]] = None
    is_unary: bool = False


@dataclass(frozen=True)
class RawCondition:
    """A raw filter fragment using `?` positional placeholders.

    A list or tuple parameter expands into a parenthesised placeholder list,
    so `RawCondition("id IN ?", (["1", "2"],))` compiles to `id IN (?, ?)`.
    """

    sql: str
    params: tuple[Any, ...] = ()


@dataclass(frozen=True)
class ConditionGroup:
    """Represents a grouped logical expression (`AND`/`OR`)."""

    operator: str
    items: tuple["WhereExpression", ...]


@dataclass(frozen=True)
class NotCondition:
    """Represents a negated expression."""

    item: "WhereExpression"


WhereExpression = Condition | RawCondition | ConditionGroup | NotCondition

_EXPRESSION_TYPES = (Condition, RawCondition, ConditionGroup, NotCondition)


class C:
    """Fluent condition factory methods."""

    @staticmethod
    def eq(col: str, val: Any) -> Condition:
        """Build `col = value` condition."""

        return Condition(col=col, op="=", value=val)

    @staticmethod
    def ne(col: str, val: Any) -> Condition:
        """Build `col <> value` condition."""

        return Condition(col=col, op="<>", value=val)

    @staticmethod
    def lt(col: str, val: Any) -> Condition:
        return Condition(col=col, op="<", value=val)

    @staticmethod
    def le(col: str, val: Any) -> Condition:
        return Condition(col=col, op="<=", value=val)

    @staticmethod
    def gt(col: str, val: Any) -> Condition:
        return Condition(col=col, op=">", value=val)

    @staticmethod
    def ge(col: str, val: Any) -> Condition:
        return Condition(col=col, op=">=", value=val)

    @staticmethod
    def like(col: str, pattern: str) -> Condition:
        """Build `col LIKE pattern` condition."""

        return Condition(col=col, op="LIKE", value=pattern)

    @staticmethod
    def is_null(col: str) -> Condition:
        """Build `col IS NULL` condition."""

        return Condition(col=col, op="IS NULL", is_unary=True)

    @staticmethod
    def is_not_null(col: str) -> Condition:
        """Build `col IS NOT NULL` condition."""

        return Condition(col=col, op="IS NOT NULL", is_unary=True)

    @staticmethod
    def in_(col: str, values: Sequence[Any]) -> Condition:
        """Build `col IN (...)` condition."""

        return Condition(col=col, op="IN", values=list(values))

    @staticmethod
    def raw(sql: str, *params: Any) -> RawCondition:
        """Build a raw fragment such as `C.raw("first_name LIKE ?", "%User%")`."""

        if not isinstance(sql, str) or not sql.strip():
            raise ValueError("Raw condition requires a non-empty SQL fragment.")
        placeholders = count_placeholders(sql)
        if placeholders != len(params):
            raise ValueError(
                f"Raw condition {sql!r} has {placeholders} placeholders "
                f"but {len(params)} parameters."
            )
        return RawCondition(sql=sql, params=tuple(params))

    @staticmethod
    def match(values: Mapping[str, Any]) -> ConditionGroup:
        """Build an `AND` of equality conditions from a column/value mapping."""

        if not values:
            raise ValueError("match() requires at least one column.")
        return ConditionGroup(
            operator="AND",
            items=tuple(
                C.is_null(col) if val is None else C.eq(col, val) for col, val in values.items()
            ),
        )

    @staticmethod
    def and_(*items: WhereExpression | Sequence[WhereExpression]) -> ConditionGroup:
        """Build a grouped `AND` expression."""

        normalized = C._normalize_group_items(items)
        return ConditionGroup(operator="AND", items=normalized)

    @staticmethod
    def or_(*items: WhereExpression | Sequence[WhereExpression]) -> ConditionGroup:
        """Build a grouped `OR` expression."""

        normalized = C._normalize_group_items(items)
        return ConditionGroup(operator="OR", items=normalized)

    @staticmethod
    def not_(item: WhereExpression) -> NotCondition:
        """Build a negated expression (`NOT (...)`)."""

        C._ensure_expr(item)
        return NotCondition(item=item)

    @staticmethod
    def _normalize_group_items(
        items: Sequence[WhereExpression | Sequence[WhereExpression]],
    ) -> tuple[WhereExpression, ...]:
        normalized_input: Sequence[WhereExpression | Sequence[WhereExpression]]
        if (
            len(items) == 1
            and isinstance(items[0], SequenceABC)
            and not isinstance(items[0], (str, bytes) + _EXPRESSION_TYPES)
        ):
            normalized_input = items[0]
        else:
            normalized_input = items

        normalized: list[WhereExpression] = []
        for item in normalized_input:
            C._ensure_expr(item)
            normalized.append(item)

        if not normalized:
            raise ValueError("Grouped condition must contain at least one expression.")
        return tuple(normalized)

    @staticmethod
    def _ensure_expr(item: Any) -> None:
        if not isinstance(item, _EXPRESSION_TYPES):
            raise TypeError(
                "Expression must be Condition, RawCondition, ConditionGroup, or NotCondition."
            )


@dataclass(frozen=True)
class OrderBy:
    """Represents one ordering expression."""

    col: str
    desc: bool = False


WhereInput = Optional[WhereExpression | Mapping[str, Any] | Sequence[WhereExpression] | DataclassModel]


def count_placeholders(sql: str) -> int:
    """Count `?` placeholders outside single-quoted literals."""

    count = 0
    in_literal = False
    for ch in sql:
        if ch == "'":
            in_literal = not in_literal
        elif ch == "?" and not in_literal:
            count += 1
    return count


def normalize_where(where: WhereInput) -> Optional[WhereExpression]:
    """Collapse a `WhereInput` into a single expression (or `None`).

    Mappings become `C.match(...)`; sequences are combined with `AND`. Model
    instances are resolved by the statement builders, which know the columns.
    """

    if where is None:
        return None
    if isinstance(where, _EXPRESSION_TYPES):
        return where
    if isinstance(where, Mapping):
        return C.match(where) if where else None
    if isinstance(where, (str, bytes)):
        raise TypeError("Use C.raw(sql, *params) for raw SQL conditions.")
    if is_dataclass(where):
        raise TypeError(
            f"{type(where).__name__} instance conditions need an entity descriptor; "
            "pass them to a statement builder."
        )
    items = [normalize_where(item) for item in where]
    present = [item for item in items if item is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return ConditionGroup(operator="AND", items=tuple(present))


def and_where(*parts: Optional[WhereExpression]) -> Optional[WhereExpression]:
    """Join optional expressions with `AND`, skipping `None`."""

    present = [part for part in parts if part is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return ConditionGroup(operator="AND", items=tuple(present))

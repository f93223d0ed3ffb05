"""Builders that turn entities and predicates into `Statement` objects.

Builders never touch the database. The one decision that needs the backend,
insert-vs-update for `build_upsert`, takes an `exists` probe callable.
"""

from __future__ import annotations

from collections.abc import Mapping as MappingABC, Sequence as SequenceABC
from dataclasses import is_dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .conditions import C, OrderBy, WhereExpression, WhereInput, and_where, normalize_where
from .errors import MappingError
from .metadata import EntityDescriptor, FieldDescriptor
from .models import AutoTimePolicy, TimeUnit, is_zero_value, unwrap_optional
from .statements import ConflictPolicy, Statement, StatementKind

ExistsProbe = Callable[[EntityDescriptor[Any], Any], bool]


def auto_time_value(field: FieldDescriptor, now: datetime) -> Any:
    """Return `now` in the representation an auto-time field stores."""

    base = unwrap_optional(field.annotation)
    if base is int:
        if field.time_unit is TimeUnit.MILLISECONDS:
            return int(now.timestamp() * 1000)
        return int(now.timestamp())
    if field.time_unit is TimeUnit.MILLISECONDS:
        return now.replace(microsecond=(now.microsecond // 1000) * 1000)
    return now.replace(microsecond=0)


def build_insert(
    descriptor: EntityDescriptor[Any],
    entities: Any,
    conflict: ConflictPolicy = ConflictPolicy.NONE,
    *,
    now: datetime,
) -> Statement:
    """Build one INSERT for an entity or a homogeneous sequence of entities.

    Unset auto-generated primary keys are left out of the column list.
    Unset auto-time fields are filled from `now` and written back to the
    entities.

    Raises:
        MappingError: If an entity is of the wrong type, a batch mixes set
            and unset auto keys, or a conflict policy needs a missing key.
        ValueError: If the sequence is empty.
    """

    objects = _as_entity_list(descriptor, entities)
    if not objects:
        raise ValueError("Cannot INSERT an empty sequence of entities.")

    for obj in objects:
        _stamp_auto_time(descriptor, obj, now, creating=True)

    omit_pk = False
    auto_pk = descriptor.auto_pk
    if auto_pk is not None:
        unset = [is_zero_value(auto_pk.get(obj)) for obj in objects]
        if any(unset) and not all(unset):
            raise MappingError(
                f"Batch insert of {descriptor.model.__name__} mixes set and unset "
                f"values for auto key {auto_pk.name!r}."
            )
        omit_pk = all(unset)

    insert_fields = [
        item for item in descriptor.fields if not (omit_pk and item is auto_pk)
    ]
    rows = tuple(tuple(item.get(obj) for item in insert_fields) for obj in objects)

    conflict_target: Tuple[str, ...] = ()
    update_columns: Tuple[str, ...] = ()
    if conflict is not ConflictPolicy.NONE:
        pk = descriptor.require_pk()
        conflict_target = (pk.column,)
        if conflict is ConflictPolicy.UPDATE_ALL:
            update_columns = tuple(
                item.column
                for item in insert_fields
                if not item.primary_key
                and not (item.auto_time.on_create and not item.auto_time.on_update)
            )

    return Statement(
        kind=StatementKind.INSERT,
        table=descriptor.table,
        columns=tuple(item.column for item in insert_fields),
        rows=rows,
        conflict=conflict,
        conflict_target=conflict_target,
        update_columns=update_columns,
        returning=auto_pk.column if omit_pk and auto_pk is not None else None,
        descriptor=descriptor,
        entities=tuple(objects),
    )


def build_update(
    descriptor: EntityDescriptor[Any],
    entity: Any,
    *,
    now: datetime,
) -> Statement:
    """Build a full-entity UPDATE addressed by primary key.

    Every mapped column is written; auto-update timestamps are refreshed.
    Create-only timestamps that are unset on the entity are not written, so
    saving a partially loaded entity does not clear them.
    """

    _require_instance(descriptor, entity)
    pk = descriptor.require_pk()
    pk_value = pk.get(entity)
    if is_zero_value(pk_value):
        raise MappingError("Cannot UPDATE without PK set on object.")

    _stamp_auto_time(descriptor, entity, now, creating=False)
    update_fields = [
        item
        for item in descriptor.fields
        if not item.primary_key
        and not (item.auto_time.on_create and is_zero_value(item.get(entity)))
    ]
    if not update_fields:
        raise MappingError(
            "Cannot UPDATE model with no writable columns besides primary key."
        )

    return Statement(
        kind=StatementKind.UPDATE,
        table=descriptor.table,
        columns=tuple(item.column for item in update_fields),
        rows=(tuple(item.get(entity) for item in update_fields),),
        where=C.eq(pk.column, pk_value),
        descriptor=descriptor,
        entities=(entity,),
    )


def build_upsert(
    descriptor: EntityDescriptor[Any],
    entity: Any,
    exists: ExistsProbe,
    *,
    now: datetime,
) -> Statement:
    """Insert when the key is unset or absent from the backend, else update."""

    _require_instance(descriptor, entity)
    pk_value = descriptor.pk_value(entity)
    if is_zero_value(pk_value) or not exists(descriptor, pk_value):
        return build_insert(descriptor, entity, now=now)
    return build_update(descriptor, entity, now=now)


def build_update_columns(
    descriptor: EntityDescriptor[Any],
    values: Mapping[str, Any],
    where: WhereInput,
    *,
    now: datetime,
    with_deleted: bool = False,
) -> Statement:
    """Build a partial UPDATE writing only the listed columns.

    Auto-update timestamps are refreshed unless the caller lists them.

    Raises:
        ValueError: If `values` is empty or no predicate is given.
        MappingError: If a column is unknown or is the primary key.
    """

    if not values:
        raise ValueError("update values cannot be empty.")
    predicate = resolve_where(descriptor, where)
    if predicate is None:
        raise ValueError("Refusing to UPDATE without a WHERE clause.")

    assignments: Dict[str, Any] = {}
    for column, value in values.items():
        item = descriptor.field_for_column(column)
        if item.primary_key:
            raise MappingError(f"Cannot update primary key column {column!r}.")
        assignments[column] = value

    for item in descriptor.fields:
        if item.auto_time.on_update and item.column not in assignments:
            assignments[item.column] = auto_time_value(item, now)

    return Statement(
        kind=StatementKind.UPDATE,
        table=descriptor.table,
        columns=tuple(assignments),
        rows=(tuple(assignments.values()),),
        where=and_where(predicate, _live_rows(descriptor, with_deleted)),
        descriptor=descriptor,
    )


def build_update_nonzero(
    descriptor: EntityDescriptor[Any],
    template: Any,
    where: WhereInput = None,
    *,
    now: datetime,
) -> Statement:
    """Build a partial UPDATE from the non-zero fields of a template entity.

    Best-effort convenience: a field deliberately set to `""`, `0` or `False`
    is indistinguishable from an unset one and is skipped. Prefer
    `build_update_columns` when such values must be written. The primary key
    is never written; when `where` is omitted it addresses the row instead.
    """

    _require_instance(descriptor, template)
    values = {
        item.column: item.get(template)
        for item in descriptor.fields
        if not item.primary_key
        and item.auto_time is AutoTimePolicy.NONE
        and not item.soft_delete
        and not is_zero_value(item.get(template))
    }
    if not values:
        raise ValueError("Template has no non-zero fields to update.")

    predicate = resolve_where(descriptor, where)
    if predicate is None and descriptor.pk is not None:
        pk_value = descriptor.pk.get(template)
        if not is_zero_value(pk_value):
            predicate = C.eq(descriptor.pk.column, pk_value)
    return build_update_columns(descriptor, values, predicate, now=now)


def build_select(
    descriptor: EntityDescriptor[Any],
    where: WhereInput = None,
    *,
    columns: Optional[Sequence[str]] = None,
    order_by: Optional[Sequence[OrderBy]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    into: Optional[EntityDescriptor[Any]] = None,
    with_deleted: bool = False,
) -> Statement:
    """Build a SELECT.

    The projection defaults to every mapped column. With `into`, only columns
    that the result type also maps are selected.
    """

    _validate_limit_offset(limit, offset)
    projection = list(columns) if columns else descriptor.columns
    for column in projection:
        if not descriptor.has_column(column):
            raise MappingError(f"{descriptor.model.__name__} has no column {column!r}.")
    if into is not None and into is not descriptor:
        projection = [column for column in projection if into.has_column(column)]
        if not projection:
            raise MappingError(
                f"{into.model.__name__} shares no columns with {descriptor.model.__name__}."
            )

    return Statement(
        kind=StatementKind.SELECT,
        table=descriptor.table,
        columns=tuple(projection),
        where=and_where(resolve_where(descriptor, where), _live_rows(descriptor, with_deleted)),
        order_by=tuple(order_by or ()),
        limit=limit,
        offset=offset,
        descriptor=descriptor,
        into=into,
    )


def build_count(
    descriptor: EntityDescriptor[Any],
    where: WhereInput = None,
    *,
    with_deleted: bool = False,
) -> Statement:
    return Statement(
        kind=StatementKind.SELECT,
        table=descriptor.table,
        where=and_where(resolve_where(descriptor, where), _live_rows(descriptor, with_deleted)),
        aggregate="COUNT(*)",
        descriptor=descriptor,
    )


def build_exists_probe(descriptor: EntityDescriptor[Any], pk_value: Any) -> Statement:
    """SELECT of the key column for one key value, soft-deleted rows included."""

    pk = descriptor.require_pk()
    return Statement(
        kind=StatementKind.SELECT,
        table=descriptor.table,
        columns=(pk.column,),
        where=C.eq(pk.column, pk_value),
        limit=1,
        descriptor=descriptor,
    )


def build_delete(
    descriptor: EntityDescriptor[Any],
    entity: Any = None,
    where: WhereInput = None,
    *,
    now: datetime,
    hard: bool = False,
) -> Statement:
    """Build a DELETE by entity key, by predicate, or both.

    Models with a soft-delete field get an UPDATE stamping that field instead,
    unless `hard` is set.

    Raises:
        ValueError: If neither a keyed entity nor a predicate is given.
    """

    predicate = resolve_where(descriptor, where)
    if entity is not None:
        _require_instance(descriptor, entity)
        if descriptor.pk is not None:
            pk_value = descriptor.pk.get(entity)
            if not is_zero_value(pk_value):
                predicate = and_where(C.eq(descriptor.pk.column, pk_value), predicate)
    if predicate is None:
        raise ValueError("Refusing to DELETE without a WHERE clause.")

    soft = descriptor.soft_delete_field
    if soft is not None and not hard:
        stamp = auto_time_value(soft, now)
        if entity is not None:
            soft.set(entity, stamp)
        return Statement(
            kind=StatementKind.UPDATE,
            table=descriptor.table,
            columns=(soft.column,),
            rows=((stamp,),),
            where=and_where(predicate, C.is_null(soft.column)),
            descriptor=descriptor,
        )

    return Statement(
        kind=StatementKind.DELETE,
        table=descriptor.table,
        where=predicate,
        descriptor=descriptor,
    )


def build_raw(sql: str, params: Sequence[Any] = (), *, into: Optional[EntityDescriptor[Any]] = None) -> Statement:
    """Wrap raw SQL using `?` placeholders in a statement."""

    if not isinstance(sql, str) or not sql.strip():
        raise ValueError("Raw SQL cannot be empty.")
    return Statement(
        kind=StatementKind.RAW,
        table="",
        sql=sql,
        params=tuple(params),
        into=into,
    )


def resolve_where(descriptor: EntityDescriptor[Any], where: WhereInput) -> Optional[WhereExpression]:
    """Normalize `where`, expanding a model instance into column equalities.

    An instance of the descriptor's model matches on every non-zero leaf
    column except the soft-delete marker; an all-zero instance matches
    everything.

    Raises:
        MappingError: If the instance is of another model type.
    """

    if is_dataclass(where) and not isinstance(where, type):
        _require_instance(descriptor, where)
        return and_where(
            *(
                C.eq(item.column, item.get(where))
                for item in descriptor.fields
                if not item.soft_delete and not is_zero_value(item.get(where))
            )
        )
    return normalize_where(where)


def _live_rows(
    descriptor: EntityDescriptor[Any], with_deleted: bool
) -> Optional[WhereExpression]:
    soft = descriptor.soft_delete_field
    if soft is None or with_deleted:
        return None
    return C.is_null(soft.column)


def _stamp_auto_time(
    descriptor: EntityDescriptor[Any],
    obj: Any,
    now: datetime,
    *,
    creating: bool,
) -> None:
    for item in descriptor.fields:
        policy = item.auto_time
        if creating:
            # Update-tracked columns also start at the creation time.
            if (policy.on_create or policy.on_update) and is_zero_value(item.get(obj)):
                item.set(obj, auto_time_value(item, now))
        elif policy.on_update:
            item.set(obj, auto_time_value(item, now))


def _require_instance(descriptor: EntityDescriptor[Any], obj: Any) -> None:
    if not isinstance(obj, descriptor.model):
        raise MappingError(
            f"Expected {descriptor.model.__name__} instance, got {type(obj).__name__}."
        )


def _as_entity_list(descriptor: EntityDescriptor[Any], entities: Any) -> List[Any]:
    if isinstance(entities, descriptor.model):
        return [entities]
    if isinstance(entities, SequenceABC) and not isinstance(entities, (str, bytes, MappingABC)):
        objects = list(entities)
        for obj in objects:
            _require_instance(descriptor, obj)
        return objects
    raise MappingError(
        f"Expected {descriptor.model.__name__} or a sequence of them, "
        f"got {type(entities).__name__}."
    )


def _validate_limit_offset(limit: Optional[int], offset: Optional[int]) -> None:
    if limit is not None and limit <= 0:
        raise ValueError("limit must be > 0.")
    if offset is not None and offset < 0:
        raise ValueError("offset must be >= 0.")

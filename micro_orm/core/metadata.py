"""Entity descriptors: the registered storage shape of a dataclass model."""

from __future__ import annotations

from dataclasses import dataclass, is_dataclass
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from .errors import ConfigurationError, MappingError
from .models import (
    AutoTimePolicy,
    DataclassModel,
    TimeUnit,
    is_optional,
    is_time_annotation,
    model_fields,
    model_type_hints,
    parse_auto_time,
    table_name,
    unwrap_optional,
)

T = TypeVar("T", bound=DataclassModel)


@dataclass(frozen=True)
class FieldDescriptor:
    """One leaf column of an entity.

    `path` walks embedded groups from the entity down to the attribute that
    stores the value; `name` is the dotted form of `path`.
    """

    name: str
    column: str
    path: Tuple[str, ...]
    annotation: Any
    primary_key: bool = False
    auto_generated: bool = False
    auto_time: AutoTimePolicy = AutoTimePolicy.NONE
    time_unit: TimeUnit = TimeUnit.SECONDS
    soft_delete: bool = False
    unique: bool = False
    codec: Optional[str] = None

    def get(self, obj: Any) -> Any:
        """Read this column's value from an entity instance."""

        value = obj
        for attr in self.path:
            if value is None:
                return None
            value = getattr(value, attr)
        return value

    def set(self, obj: Any, value: Any) -> None:
        """Write this column's value into an entity instance."""

        target = obj
        for attr in self.path[:-1]:
            target = getattr(target, attr)
        setattr(target, self.path[-1], value)


@dataclass(frozen=True)
class EmbeddedGroup:
    """An embedded dataclass attribute flattened into parent columns."""

    path: Tuple[str, ...]
    model: Type[Any]


@dataclass(frozen=True)
class EntityDescriptor(Generic[T]):
    """Normalized, immutable model description used by statement building."""

    model: Type[T]
    table: str
    fields: Tuple[FieldDescriptor, ...]
    pk: Optional[FieldDescriptor]
    embedded: Tuple[EmbeddedGroup, ...] = ()

    @property
    def columns(self) -> List[str]:
        return [item.column for item in self.fields]

    @property
    def auto_pk(self) -> Optional[FieldDescriptor]:
        if self.pk is not None and self.pk.auto_generated:
            return self.pk
        return None

    @property
    def soft_delete_field(self) -> Optional[FieldDescriptor]:
        for item in self.fields:
            if item.soft_delete:
                return item
        return None

    def field_for_column(self, column: str) -> FieldDescriptor:
        """Return the field mapped to `column` or raise `MappingError`."""

        for item in self.fields:
            if item.column == column:
                return item
        raise MappingError(f"{self.model.__name__} has no column {column!r}.")

    def has_column(self, column: str) -> bool:
        return any(item.column == column for item in self.fields)

    def require_pk(self) -> FieldDescriptor:
        """Return the primary key field or raise `MappingError`."""

        if self.pk is None:
            raise MappingError(
                f"{self.model.__name__} has no primary key. "
                "Use field(metadata={'pk': True})."
            )
        return self.pk

    def pk_value(self, obj: Any) -> Any:
        return self.require_pk().get(obj)


def build_entity_descriptor(model: Type[T]) -> EntityDescriptor[T]:
    """Build an entity descriptor from dataclass annotations and field metadata.

    Args:
        model: Dataclass model type.

    Returns:
        Immutable descriptor with embedded groups flattened into leaf columns.

    Raises:
        ConfigurationError: If the model is not a dataclass, declares more than
            one primary key, maps two fields to one column, or declares an
            auto-time / soft-delete field with a non-time type.
    """

    if not isinstance(model, type) or not is_dataclass(model):
        raise ConfigurationError(f"{getattr(model, '__name__', model)!r} must be a dataclass.")

    leaves: List[FieldDescriptor] = []
    groups: List[EmbeddedGroup] = []
    _collect_fields(model, (), "", leaves, groups)

    pks = [item for item in leaves if item.primary_key]
    if len(pks) > 1:
        names = ", ".join(item.name for item in pks)
        raise ConfigurationError(
            f"{model.__name__} declares multiple primary keys ({names}); "
            "composite keys are not supported."
        )

    seen: Dict[str, str] = {}
    for item in leaves:
        if item.column in seen:
            raise ConfigurationError(
                f"{model.__name__} maps both {seen[item.column]!r} and {item.name!r} "
                f"to column {item.column!r}."
            )
        seen[item.column] = item.name

    soft = [item for item in leaves if item.soft_delete]
    if len(soft) > 1:
        raise ConfigurationError(f"{model.__name__} declares more than one soft_delete field.")

    return EntityDescriptor(
        model=model,
        table=table_name(model),
        fields=tuple(leaves),
        pk=pks[0] if pks else None,
        embedded=tuple(groups),
    )


def _collect_fields(
    cls: Type[Any],
    path: Tuple[str, ...],
    prefix: str,
    leaves: List[FieldDescriptor],
    groups: List[EmbeddedGroup],
) -> None:
    hints = model_type_hints(cls)
    for field in model_fields(cls):
        annotation = hints.get(field.name, field.type)
        field_path = path + (field.name,)
        dotted = ".".join(field_path)
        meta = field.metadata

        if meta.get("embedded"):
            target = unwrap_optional(annotation)
            if not (isinstance(target, type) and is_dataclass(target)):
                raise ConfigurationError(
                    f"Embedded field {dotted!r} must be annotated with a dataclass type."
                )
            if meta.get("pk"):
                raise ConfigurationError(f"Embedded field {dotted!r} cannot be a primary key.")
            groups.append(EmbeddedGroup(path=field_path, model=target))
            nested_prefix = prefix + str(meta.get("prefix", ""))
            _collect_fields(target, field_path, nested_prefix, leaves, groups)
            continue

        try:
            policy, unit = parse_auto_time(field)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        if policy is not AutoTimePolicy.NONE and not is_time_annotation(annotation):
            raise ConfigurationError(
                f"Auto-time field {dotted!r} must be a datetime or int, got {annotation!r}."
            )

        soft_delete = bool(meta.get("soft_delete"))
        if soft_delete and not (is_time_annotation(annotation) and is_optional(annotation)):
            raise ConfigurationError(
                f"Soft-delete field {dotted!r} must be Optional[datetime] or Optional[int]."
            )

        column = meta.get("column") or f"{prefix}{field.name}"
        if not isinstance(column, str):
            raise ConfigurationError(f"Column name for {dotted!r} must be a string.")

        leaves.append(
            FieldDescriptor(
                name=dotted,
                column=column,
                path=field_path,
                annotation=annotation,
                primary_key=bool(meta.get("pk")),
                auto_generated=bool(meta.get("auto")),
                auto_time=policy,
                time_unit=unit,
                soft_delete=soft_delete,
                unique=bool(meta.get("unique")),
                codec=meta.get("codec"),
            )
        )

"""Model utilities for dataclass validation, field metadata and row mapping."""

from __future__ import annotations

import types
from dataclasses import Field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Protocol, Type, Union, get_args, get_origin, get_type_hints


class DataclassModel(Protocol):
    """Protocol for supported dataclass model types."""

    __dataclass_fields__: ClassVar[dict[str, Any]]


class AutoTimePolicy(str, Enum):
    """When an auto-time column is filled from the clock."""

    NONE = "none"
    CREATE = "create"
    UPDATE = "update"
    CREATE_AND_UPDATE = "create_and_update"

    @property
    def on_create(self) -> bool:
        return self in (AutoTimePolicy.CREATE, AutoTimePolicy.CREATE_AND_UPDATE)

    @property
    def on_update(self) -> bool:
        return self in (AutoTimePolicy.UPDATE, AutoTimePolicy.CREATE_AND_UPDATE)


class TimeUnit(str, Enum):
    """Granularity of auto-time values."""

    SECONDS = "s"
    MILLISECONDS = "ms"


_UNIT_ALIASES = {
    "s": TimeUnit.SECONDS,
    "sec": TimeUnit.SECONDS,
    "second": TimeUnit.SECONDS,
    "seconds": TimeUnit.SECONDS,
    "ms": TimeUnit.MILLISECONDS,
    "milli": TimeUnit.MILLISECONDS,
    "millis": TimeUnit.MILLISECONDS,
}


def require_dataclass_model(cls: Type[Any]) -> None:
    """Validate that a class is a dataclass model."""

    if not isinstance(cls, type) or not is_dataclass(cls):
        name = getattr(cls, "__name__", type(cls).__name__)
        raise TypeError(f"{name} must be a dataclass.")


def table_name(model_or_cls: Any) -> str:
    """Resolve table name from model class or instance.

    Uses `__table__` override when present, otherwise lowercased class name.
    """

    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    name = getattr(cls, "__table__", None)
    return name if isinstance(name, str) and name else cls.__name__.lower()


def model_fields(cls: Type[DataclassModel]) -> List[Field[Any]]:
    """Return dataclass fields for a model type."""

    require_dataclass_model(cls)
    return list(fields(cls))


def model_type_hints(cls: Type[Any]) -> Dict[str, Any]:
    """Resolve field annotations, falling back to raw `Field.type` values."""

    try:
        return dict(get_type_hints(cls))
    except Exception:
        return {field.name: field.type for field in fields(cls)}


def unwrap_optional(annotation: Any) -> Any:
    """Extract wrapped type from `Optional[T]` / `T | None` annotations."""

    origin = get_origin(annotation)
    if origin not in (Union, types.UnionType):
        return annotation

    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if len(args) == 1:
        return args[0]
    return annotation


def is_optional(annotation: Any) -> bool:
    """Return whether annotation admits `None`."""

    if isinstance(annotation, str):
        lowered = annotation.lower()
        return lowered.startswith("optional[") or "none" in lowered
    if get_origin(annotation) not in (Union, types.UnionType):
        return annotation is type(None)
    return any(arg is type(None) for arg in get_args(annotation))


def is_time_annotation(annotation: Any) -> bool:
    """Auto-time columns must hold a `datetime` or an integer epoch."""

    if isinstance(annotation, str):
        lowered = annotation.lower()
        return "datetime" in lowered or lowered.replace("optional[", "").startswith("int")
    base = unwrap_optional(annotation)
    return base is datetime or (base is int)


def parse_auto_time(field: Field[Any]) -> tuple[AutoTimePolicy, TimeUnit]:
    """Read `auto_create` / `auto_update` metadata into a policy and unit."""

    create = field.metadata.get("auto_create")
    update = field.metadata.get("auto_update")
    on_create = bool(create)
    on_update = bool(update)

    if on_create and on_update:
        policy = AutoTimePolicy.CREATE_AND_UPDATE
    elif on_create:
        policy = AutoTimePolicy.CREATE
    elif on_update:
        policy = AutoTimePolicy.UPDATE
    else:
        policy = AutoTimePolicy.NONE

    unit = TimeUnit.SECONDS
    for raw in (create, update):
        if isinstance(raw, str):
            parsed = _UNIT_ALIASES.get(raw.strip().lower())
            if parsed is None:
                raise ValueError(
                    f"Unsupported time unit {raw!r} on field {field.name!r}. "
                    "Use 's' or 'ms'."
                )
            if parsed is TimeUnit.MILLISECONDS:
                unit = parsed
    return policy, unit


def is_zero_value(value: Any) -> bool:
    """Zero-value test used by model-instance conditions and partial updates.

    `""`, `0`, `False`, `None` and empty containers all count as unset; a
    value explicitly set to one of them is indistinguishable from unset.
    """

    if value is None:
        return True
    if isinstance(value, Enum):
        return False
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    if isinstance(value, bool):
        return value is False
    if isinstance(value, (int, float)):
        return value == 0
    return False

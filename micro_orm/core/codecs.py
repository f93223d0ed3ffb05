"""Field codec helpers for DB serialization/deserialization and row mapping."""

from __future__ import annotations

import json
from dataclasses import MISSING, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Type, get_origin

from .errors import MappingError
from .metadata import EntityDescriptor, FieldDescriptor
from .models import unwrap_optional
from .types import RowMapping


def serialize_value(
    field: FieldDescriptor,
    value: Any,
    *,
    datetime_as_text: bool = False,
) -> Any:
    """Serialize one entity field value for DB writes."""

    if value is None:
        return None

    base = unwrap_optional(field.annotation)
    if isinstance(value, Enum) or field.codec == "enum":
        return _serialize_enum(value, enum_type=_enum_type(base), field_name=field.name)

    if _is_json_field(base, field.codec):
        if isinstance(value, (str, bytes, bytearray, memoryview)):
            return value
        return json.dumps(value)

    if datetime_as_text and isinstance(value, (datetime, date)):
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()

    return value


def deserialize_value(field: FieldDescriptor, value: Any) -> Any:
    """Deserialize one DB value into the entity field type."""

    if value is None:
        return None

    base = unwrap_optional(field.annotation)
    enum_type = _enum_type(base)
    if enum_type is not None:
        return _deserialize_enum(value, enum_type=enum_type, field_name=field.name)

    if _is_json_field(base, field.codec):
        return _deserialize_json(value, field_name=field.name)

    if base is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if base is date and isinstance(value, str):
        return date.fromisoformat(value)
    if base is bool and isinstance(value, int):
        return bool(value)

    return value


def row_to_entity(descriptor: EntityDescriptor[Any], row: RowMapping) -> Any:
    """Map one DB row to an instance of the descriptor's model.

    Columns absent from the row keep the dataclass default (or `None` for
    fields without one). Row columns unknown to the model are ignored, which
    is what lets a narrower projection type read a wider table.
    """

    by_path = {item.path: item for item in descriptor.fields}
    groups = {group.path: group.model for group in descriptor.embedded}
    return _build(descriptor.model, (), by_path, groups, row)


def _build(
    cls: Type[Any],
    path: Tuple[str, ...],
    by_path: Mapping[Tuple[str, ...], FieldDescriptor],
    groups: Mapping[Tuple[str, ...], Type[Any]],
    row: RowMapping,
) -> Any:
    kwargs: Dict[str, Any] = {}
    for field in fields(cls):
        if not field.init:
            continue
        field_path = path + (field.name,)
        if field_path in groups:
            kwargs[field.name] = _build(groups[field_path], field_path, by_path, groups, row)
            continue
        leaf = by_path.get(field_path)
        if leaf is not None and leaf.column in row:
            kwargs[field.name] = deserialize_value(leaf, row[leaf.column])
            continue
        if field.default is MISSING and field.default_factory is MISSING:  # type: ignore[misc]
            kwargs[field.name] = None
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise MappingError(f"Cannot build {cls.__name__} from row: {exc}") from exc


def _serialize_enum(value: Any, *, enum_type: type[Enum] | None, field_name: str) -> Any:
    if isinstance(value, Enum):
        return value.value
    if enum_type is None:
        raise MappingError(f"Field {field_name!r} uses enum codec but has no Enum annotation.")
    try:
        return enum_type(value).value
    except ValueError as exc:
        raise MappingError(f"Invalid enum value {value!r} for field {field_name!r}.") from exc


def _deserialize_enum(value: Any, *, enum_type: type[Enum], field_name: str) -> Any:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError as exc:
        if isinstance(value, str) and value in enum_type.__members__:
            return enum_type[value]
        raise MappingError(
            f"Cannot deserialize value {value!r} to enum {enum_type.__name__} "
            f"for field {field_name!r}."
        ) from exc


def _deserialize_json(value: Any, *, field_name: str) -> Any:
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8")
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise MappingError(f"Cannot deserialize JSON for field {field_name!r}: {value!r}.") from exc


def _enum_type(annotation: Any) -> type[Enum] | None:
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return annotation
    return None


def _is_json_field(annotation: Any, codec: str | None) -> bool:
    if codec == "json":
        return True
    if codec == "enum":
        return False
    if annotation in (dict, list):
        return True
    return get_origin(annotation) in (dict, list)

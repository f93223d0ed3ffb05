"""Process-wide cache of entity descriptors."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Type, TypeVar

from .errors import NotRegisteredError
from .metadata import EntityDescriptor, build_entity_descriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SchemaRegistry:
    """Maps model types to their `EntityDescriptor`.

    Reads are lock-free; registration builds the descriptor under a lock so
    concurrent first use of one model yields a single cached descriptor.
    """

    def __init__(self) -> None:
        self._descriptors: Dict[type, EntityDescriptor[Any]] = {}
        self._lock = threading.Lock()

    def register(self, model: Type[T]) -> EntityDescriptor[T]:
        """Build and cache the descriptor for `model`. Idempotent."""

        cached = self._descriptors.get(model)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._descriptors.get(model)
            if cached is not None:
                return cached
            descriptor = build_entity_descriptor(model)
            self._descriptors[model] = descriptor
        logger.debug(
            "registered %s as table %r with columns %s",
            model.__name__,
            descriptor.table,
            descriptor.columns,
        )
        return descriptor

    def register_many(self, *models: Type[Any]) -> None:
        for model in models:
            self.register(model)

    def lookup(self, model: Type[T]) -> EntityDescriptor[T]:
        """Return the cached descriptor or raise `NotRegisteredError`."""

        descriptor = self._descriptors.get(model)
        if descriptor is None:
            name = getattr(model, "__name__", repr(model))
            raise NotRegisteredError(
                f"Model {name} is not registered. Call register() before performing actions."
            )
        return descriptor

    def resolve(self, model: Type[T], *, auto_register: bool = True) -> EntityDescriptor[T]:
        """Lookup, registering on first use when `auto_register` is set."""

        if auto_register:
            return self.register(model)
        return self.lookup(model)

    def is_registered(self, model: Type[Any]) -> bool:
        return model in self._descriptors

    def clear(self) -> None:
        with self._lock:
            self._descriptors.clear()

    def __len__(self) -> int:
        return len(self._descriptors)


default_registry = SchemaRegistry()

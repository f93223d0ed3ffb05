"""Session facade over registry, statement builders, engine and transactions."""

from __future__ import annotations

import contextlib
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
)

from .conditions import OrderBy, WhereInput
from .config import OrmConfig
from .contracts import DatabasePort
from .engine import Engine
from .errors import StateError
from .metadata import EntityDescriptor
from .models import DataclassModel
from .registry import SchemaRegistry, default_registry
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
from .statements import ConflictPolicy, ExecutionResult
from .transactions import TransactionHandle, TransactionManager

if TYPE_CHECKING:
    from .repository import Repository

T = TypeVar("T", bound=DataclassModel)
R = TypeVar("R")


class Session:
    """Sync session bound to one database adapter.

    Write operations join the innermost active transaction (or the `handle`
    passed explicitly) and otherwise run in their own implicit transaction.
    """

    def __init__(
        self,
        db: DatabasePort,
        *,
        config: Optional[OrmConfig] = None,
        registry: Optional[SchemaRegistry] = None,
    ):
        """Create a session.

        Args:
            db: Database adapter implementing `DatabasePort`.
            config: Engine settings; defaults to `OrmConfig()`.
            registry: Descriptor cache; defaults to the process-wide registry.
        """

        self.db = db
        self.config = config or OrmConfig()
        self.registry = registry if registry is not None else default_registry
        self.transactions = TransactionManager(db)
        self.engine = Engine(db, transactions=self.transactions, config=self.config)

    def _now(self) -> datetime:
        return self.config.clock()

    def descriptor(self, model: Type[T]) -> EntityDescriptor[T]:
        """Return the registered descriptor for `model`.

        Raises:
            NotRegisteredError: If the model is unknown and auto registration
                is disabled.
        """

        return self.registry.resolve(model, auto_register=self.config.auto_register)

    def _descriptor_of(self, obj: Any) -> EntityDescriptor[Any]:
        return self.descriptor(type(obj))

    def _into(self, into: Optional[Type[Any]]) -> Optional[EntityDescriptor[Any]]:
        return self.descriptor(into) if into is not None else None

    def register(self, *models: Type[DataclassModel]) -> None:
        """Validate and cache descriptors for `models`."""

        for model in models:
            self.registry.register(model)

    def repo(self, model: Type[T]) -> Repository[T]:
        from .repository import Repository

        return Repository(self, model)

    # Writes

    def insert(
        self,
        obj: T,
        *,
        conflict: ConflictPolicy = ConflictPolicy.NONE,
        handle: Optional[TransactionHandle] = None,
    ) -> T:
        """Insert one entity and write back its generated key."""

        statement = build_insert(self._descriptor_of(obj), obj, conflict, now=self._now())
        self.engine.execute(statement, handle)
        return obj

    def insert_many(
        self,
        objects: Sequence[T],
        *,
        conflict: ConflictPolicy = ConflictPolicy.NONE,
        handle: Optional[TransactionHandle] = None,
    ) -> List[T]:
        """Insert a homogeneous batch atomically; returns the same instances."""

        items = list(objects)
        if not items:
            return []
        descriptor = self._descriptor_of(items[0])
        statement = build_insert(descriptor, items, conflict, now=self._now())
        self.engine.execute(statement, handle)
        return items

    def save(self, obj: T, *, handle: Optional[TransactionHandle] = None) -> T:
        """Insert when the key is unset or not stored yet, else update every column."""

        def probe(descriptor: EntityDescriptor[Any], pk_value: Any) -> bool:
            return self.engine.exists(build_exists_probe(descriptor, pk_value))

        statement = build_upsert(self._descriptor_of(obj), obj, probe, now=self._now())
        self.engine.execute(statement, handle)
        return obj

    def update(self, obj: Any, *, handle: Optional[TransactionHandle] = None) -> int:
        """Write every mapped column of `obj`, addressed by its primary key."""

        statement = build_update(self._descriptor_of(obj), obj, now=self._now())
        return self.engine.execute(statement, handle).rows_affected

    def update_columns(
        self,
        model: Type[T],
        values: Mapping[str, Any],
        where: WhereInput,
        *,
        with_deleted: bool = False,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        statement = build_update_columns(
            self.descriptor(model),
            values,
            where,
            now=self._now(),
            with_deleted=with_deleted,
        )
        return self.engine.execute(statement, handle).rows_affected

    def update_column(
        self,
        model: Type[T],
        column: str,
        value: Any,
        where: WhereInput,
        *,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        return self.update_columns(model, {column: value}, where, handle=handle)

    def update_nonzero(
        self,
        template: Any,
        where: WhereInput = None,
        *,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        """Write the non-zero fields of `template`.

        Best-effort: empty strings, zeros and `False` are skipped. Use
        `update_columns` to write such values.
        """

        statement = build_update_nonzero(
            self._descriptor_of(template), template, where, now=self._now()
        )
        return self.engine.execute(statement, handle).rows_affected

    def delete(
        self,
        obj: Any,
        *,
        hard: bool = False,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        statement = build_delete(self._descriptor_of(obj), obj, now=self._now(), hard=hard)
        return self.engine.execute(statement, handle).rows_affected

    def delete_where(
        self,
        model: Type[T],
        where: WhereInput,
        *,
        hard: bool = False,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        statement = build_delete(
            self.descriptor(model), where=where, now=self._now(), hard=hard
        )
        return self.engine.execute(statement, handle).rows_affected

    # Reads

    def get(self, model: Type[T], pk_value: Any, *, with_deleted: bool = False) -> Optional[T]:
        descriptor = self.descriptor(model)
        pk = descriptor.require_pk()
        return self.take(model, {pk.column: pk_value}, with_deleted=with_deleted)

    def first(
        self,
        model: Type[T],
        where: WhereInput = None,
        *,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> Any:
        """Return the matching row with the lowest primary key, or `None`."""

        return self._one(model, where, into, with_deleted, desc=False)

    def last(
        self,
        model: Type[T],
        where: WhereInput = None,
        *,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> Any:
        """Return the matching row with the highest primary key, or `None`."""

        return self._one(model, where, into, with_deleted, desc=True)

    def take(
        self,
        model: Type[T],
        where: WhereInput = None,
        *,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> Any:
        """Return any one matching row (no ordering), or `None`."""

        return self._one(model, where, into, with_deleted, desc=None)

    def _one(
        self,
        model: Type[T],
        where: WhereInput,
        into: Optional[Type[Any]],
        with_deleted: bool,
        *,
        desc: Optional[bool],
    ) -> Any:
        descriptor = self.descriptor(model)
        order_by: List[OrderBy] = []
        if desc is not None:
            order_by.append(OrderBy(descriptor.require_pk().column, desc=desc))
        statement = build_select(
            descriptor,
            where,
            order_by=order_by,
            limit=1,
            into=self._into(into),
            with_deleted=with_deleted,
        )
        return self.engine.query_one(statement)

    def find(
        self,
        model: Type[T],
        where: WhereInput = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> List[Any]:
        """List matching rows with optional projection, sorting and pagination."""

        return list(
            self.iter(
                model,
                where,
                columns=columns,
                order_by=order_by,
                limit=limit,
                offset=offset,
                into=into,
                with_deleted=with_deleted,
            )
        )

    def iter(
        self,
        model: Type[T],
        where: WhereInput = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> Iterator[Any]:
        """Lazy form of `find`; the iterator can be consumed once."""

        statement = build_select(
            self.descriptor(model),
            where,
            columns=columns,
            order_by=order_by,
            limit=limit,
            offset=offset,
            into=self._into(into),
            with_deleted=with_deleted,
        )
        return self.engine.query_many(statement)

    def count(self, model: Type[T], where: WhereInput = None, *, with_deleted: bool = False) -> int:
        statement = build_count(self.descriptor(model), where, with_deleted=with_deleted)
        return int(self.engine.query_scalar(statement) or 0)

    def exists(self, model: Type[T], where: WhereInput = None, *, with_deleted: bool = False) -> bool:
        descriptor = self.descriptor(model)
        columns = [descriptor.pk.column] if descriptor.pk is not None else None
        statement = build_select(
            descriptor, where, columns=columns, limit=1, with_deleted=with_deleted
        )
        return self.engine.exists(statement)

    # Raw SQL

    def exec(
        self,
        sql: str,
        *params: Any,
        handle: Optional[TransactionHandle] = None,
    ) -> ExecutionResult:
        """Run raw SQL with `?` placeholders that returns no rows."""

        return self.engine.execute(build_raw(sql, params), handle)

    def raw(self, sql: str, *params: Any, into: Optional[Type[Any]] = None) -> List[Any]:
        """Run a raw query; rows map to dicts, or to `into` instances."""

        return list(self.raw_iter(sql, *params, into=into))

    def raw_iter(self, sql: str, *params: Any, into: Optional[Type[Any]] = None) -> Iterator[Any]:
        return self.engine.query_raw(sql, params, into=self._into(into))

    # Transactions

    def begin(self) -> TransactionHandle:
        """Begin a transaction (a savepoint when one is already active)."""

        return self.transactions.begin()

    def commit(self, handle: Optional[TransactionHandle] = None) -> None:
        self.transactions.commit(self._target(handle))

    def rollback(self, handle: Optional[TransactionHandle] = None) -> None:
        self.transactions.rollback(self._target(handle))

    def _target(self, handle: Optional[TransactionHandle]) -> TransactionHandle:
        if handle is not None:
            return handle
        current = self.transactions.current()
        if current is None:
            raise StateError("No active transaction.")
        return current

    @contextlib.contextmanager
    def transaction(self) -> Iterator[TransactionHandle]:
        """Run the block in one transaction: commit on exit, roll back on error."""

        with self.transactions.scope() as handle:
            yield handle

    def run_in_transaction(self, work: Callable[[TransactionHandle], R]) -> R:
        return self.transactions.run_in_transaction(work)

    def close(self) -> None:
        """Roll back anything still open and close the adapter when it can."""

        current = self.transactions.current()
        while current is not None:
            self.transactions.rollback(current)
            current = self.transactions.current()
        close = getattr(self.db, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Session(dialect={self.db.dialect.name!r}, registered={len(self.registry)})"

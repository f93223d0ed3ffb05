"""Repository bound to one model type."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Iterator, List, Mapping, Optional, Sequence, Type, TypeVar

from .conditions import OrderBy, WhereInput
from .errors import MappingError
from .metadata import EntityDescriptor
from .models import DataclassModel, require_dataclass_model
from .statements import ConflictPolicy
from .transactions import TransactionHandle

if TYPE_CHECKING:
    from .session import Session

T = TypeVar("T", bound=DataclassModel)


class Repository(Generic[T]):
    """CRUD repository for one model, delegating to a `Session`.

    Instances passed to write methods must be of the bound model type.
    """

    def __init__(self, session: Session, model: Type[T]):
        require_dataclass_model(model)
        self.session = session
        self.model = model
        self.meta: EntityDescriptor[T] = session.descriptor(model)

    def _check(self, obj: Any) -> None:
        if not isinstance(obj, self.model):
            raise MappingError(
                f"Expected {self.model.__name__} instance, got {type(obj).__name__}."
            )

    def insert(
        self,
        obj: T,
        *,
        conflict: ConflictPolicy = ConflictPolicy.NONE,
        handle: Optional[TransactionHandle] = None,
    ) -> T:
        """Insert an object and populate its auto primary key."""

        self._check(obj)
        return self.session.insert(obj, conflict=conflict, handle=handle)

    def insert_many(
        self,
        objects: Sequence[T],
        *,
        conflict: ConflictPolicy = ConflictPolicy.NONE,
        handle: Optional[TransactionHandle] = None,
    ) -> List[T]:
        for obj in objects:
            self._check(obj)
        return self.session.insert_many(objects, conflict=conflict, handle=handle)

    def save(self, obj: T, *, handle: Optional[TransactionHandle] = None) -> T:
        self._check(obj)
        return self.session.save(obj, handle=handle)

    def update(self, obj: T, *, handle: Optional[TransactionHandle] = None) -> int:
        """Update one row identified by model primary key."""

        self._check(obj)
        return self.session.update(obj, handle=handle)

    def update_columns(
        self,
        values: Mapping[str, Any],
        where: WhereInput,
        *,
        with_deleted: bool = False,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        return self.session.update_columns(
            self.model, values, where, with_deleted=with_deleted, handle=handle
        )

    def update_column(
        self,
        column: str,
        value: Any,
        where: WhereInput,
        *,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        return self.session.update_column(self.model, column, value, where, handle=handle)

    def update_nonzero(
        self,
        template: T,
        where: WhereInput = None,
        *,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        self._check(template)
        return self.session.update_nonzero(template, where, handle=handle)

    def delete(
        self,
        obj: T,
        *,
        hard: bool = False,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        """Delete one row identified by model primary key."""

        self._check(obj)
        return self.session.delete(obj, hard=hard, handle=handle)

    def delete_where(
        self,
        where: WhereInput,
        *,
        hard: bool = False,
        handle: Optional[TransactionHandle] = None,
    ) -> int:
        return self.session.delete_where(self.model, where, hard=hard, handle=handle)

    def get(self, pk_value: Any, *, with_deleted: bool = False) -> Optional[T]:
        """Fetch one row by primary key and map it to the model type."""

        return self.session.get(self.model, pk_value, with_deleted=with_deleted)

    def first(self, where: WhereInput = None, *, into: Optional[Type[Any]] = None) -> Any:
        return self.session.first(self.model, where, into=into)

    def last(self, where: WhereInput = None, *, into: Optional[Type[Any]] = None) -> Any:
        return self.session.last(self.model, where, into=into)

    def take(self, where: WhereInput = None, *, into: Optional[Type[Any]] = None) -> Any:
        return self.session.take(self.model, where, into=into)

    def find(
        self,
        where: WhereInput = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> List[Any]:
        """List rows with optional filtering, sorting and pagination."""

        return self.session.find(
            self.model,
            where,
            columns=columns,
            order_by=order_by,
            limit=limit,
            offset=offset,
            into=into,
            with_deleted=with_deleted,
        )

    def iter(
        self,
        where: WhereInput = None,
        *,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        into: Optional[Type[Any]] = None,
        with_deleted: bool = False,
    ) -> Iterator[Any]:
        return self.session.iter(
            self.model,
            where,
            columns=columns,
            order_by=order_by,
            limit=limit,
            offset=offset,
            into=into,
            with_deleted=with_deleted,
        )

    def count(self, where: WhereInput = None, *, with_deleted: bool = False) -> int:
        return self.session.count(self.model, where, with_deleted=with_deleted)

    def exists(self, where: WhereInput = None, *, with_deleted: bool = False) -> bool:
        return self.session.exists(self.model, where, with_deleted=with_deleted)

    def raw(self, sql: str, *params: Any) -> List[T]:
        """Run a raw query and map every row to the bound model."""

        return self.session.raw(sql, *params, into=self.model)

    def raw_iter(self, sql: str, *params: Any) -> Iterator[T]:
        return self.session.raw_iter(sql, *params, into=self.model)

    def __repr__(self) -> str:
        return f"Repository({self.model.__name__}, table={self.meta.table!r})"

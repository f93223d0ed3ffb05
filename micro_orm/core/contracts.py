"""Core port contracts used by adapters and the execution engine."""

from __future__ import annotations

from typing import Any, Iterator, List, Optional, Protocol, Sequence

from .types import MaybeRow, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required by statement compilation and transactions."""

    name: str
    paramstyle: str
    supports_returning: bool
    datetime_as_text: bool
    unbounded_limit: Optional[int]

    def q(self, ident: str) -> str: ...

    def placeholder(self, key: str) -> str: ...

    def auto_pk_sql(self, pk_name: str) -> str: ...

    def returning_clause(self, pk_name: str) -> str: ...

    def insert_prefix(self, conflict: str) -> str: ...

    def on_conflict_clause(
        self,
        conflict: str,
        target: Sequence[str],
        update_columns: Sequence[str],
    ) -> str: ...

    def begin_sql(self) -> Optional[str]: ...

    def savepoint_sql(self, name: str) -> str: ...

    def release_savepoint_sql(self, name: str) -> str: ...

    def rollback_to_savepoint_sql(self, name: str) -> str: ...

    def get_lastrowid(self, cursor: Any) -> Optional[int]: ...


class DatabasePort(Protocol):
    """Storage backend behavior required by the engine and transaction manager."""

    dialect: DialectPort

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...

    def iterate(
        self, sql: str, params: QueryParams = None, *, size: int = 100
    ) -> Iterator[RowMapping]: ...

"""Execution engine: runs statements against a `DatabasePort`."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from .codecs import row_to_entity
from .config import OrmConfig
from .contracts import DatabasePort
from .errors import OrmError, StateError, backend_errors
from .metadata import EntityDescriptor
from .query_builder import CompiledStatement, compile_statement
from .statement_builder import build_raw
from .statements import ExecutionResult, Statement, StatementKind
from .transactions import TransactionHandle, TransactionManager
from .types import RowMapping

logger = logging.getLogger(__name__)


class Engine:
    """Compiles statements, submits them and maps results back to entities.

    Statements run inside the given handle, else inside the manager's current
    handle, else (for writes) inside their own implicit transaction.
    """

    def __init__(
        self,
        db: DatabasePort,
        *,
        transactions: Optional[TransactionManager] = None,
        config: Optional[OrmConfig] = None,
    ):
        self.db = db
        self.dialect = db.dialect
        self.transactions = transactions or TransactionManager(db)
        self.config = config or OrmConfig()

    def execute(
        self,
        statement: Statement,
        handle: Optional[TransactionHandle] = None,
    ) -> ExecutionResult:
        """Run one write (or raw) statement and return its result."""

        target = handle or self.transactions.current()
        if target is not None:
            if not target.active:
                raise StateError(
                    f"Cannot execute in a transaction that is {target.state.value}."
                )
            result = self._run(statement)
            target.statements.append(statement)
            return result

        if statement.kind is StatementKind.SELECT:
            return self._run(statement)

        with self.transactions.scope() as implicit:
            result = self._run(statement)
            implicit.statements.append(statement)
        return result

    def try_execute(
        self,
        statement: Statement,
        handle: Optional[TransactionHandle] = None,
    ) -> ExecutionResult:
        """Like `execute`, but return taxonomy errors in the result."""

        try:
            return self.execute(statement, handle)
        except OrmError as exc:
            return ExecutionResult(error=exc)

    def query_one(self, statement: Statement) -> Any:
        """Return the first mapped row, or `None` when nothing matches."""

        if statement.kind is StatementKind.SELECT and statement.limit is None:
            statement = dataclasses.replace(statement, limit=1)
        compiled = self._compile(statement)
        with backend_errors():
            row = self.db.fetchone(compiled.sql, compiled.params)
        if row is None:
            return None
        return self._map_row(statement, row)

    def query_many(self, statement: Statement) -> Iterator[Any]:
        """Lazily yield mapped rows; the iterator can be consumed once."""

        compiled = self._compile(statement)
        rows = self.db.iterate(compiled.sql, compiled.params, size=self.config.fetch_size)
        while True:
            with backend_errors():
                row = next(rows, None)
            if row is None:
                return
            yield self._map_row(statement, row)

    def query_scalar(self, statement: Statement) -> Any:
        """Return the first column of the first row (for aggregates)."""

        compiled = self._compile(statement)
        with backend_errors():
            row = self.db.fetchone(compiled.sql, compiled.params)
        if row is None:
            return None
        return next(iter(row.values()), None)

    def exists(self, statement: Statement) -> bool:
        return self.query_one(statement) is not None

    def query_raw(
        self,
        sql: str,
        params: Sequence[Any] = (),
        *,
        into: Optional[EntityDescriptor[Any]] = None,
    ) -> Iterator[Any]:
        """Lazily scan raw SQL rows into mappings, or into `into` entities."""

        return self.query_many(build_raw(sql, params, into=into))

    def _compile(self, statement: Statement, rows: Optional[Sequence[int]] = None) -> CompiledStatement:
        compiled = compile_statement(statement, self.dialect, rows=rows)
        if self.config.log_statements:
            logger.debug("sql: %s params: %r", compiled.sql, compiled.params)
        return compiled

    def _map_row(self, statement: Statement, row: RowMapping) -> Any:
        target = statement.into or statement.descriptor
        if target is None:
            return dict(row)
        return row_to_entity(target, row)

    def _run(self, statement: Statement) -> ExecutionResult:
        if statement.kind is StatementKind.INSERT:
            return self._run_insert(statement)
        compiled = self._compile(statement)
        with backend_errors():
            cursor = self.db.execute(compiled.sql, compiled.params)
        rowcount = getattr(cursor, "rowcount", -1)
        return ExecutionResult(rows_affected=max(rowcount, 0))

    def _run_insert(self, statement: Statement) -> ExecutionResult:
        count = len(statement.rows)
        needs_keys = statement.returning is not None
        per_row = count > 1 and (
            not statement.columns or (needs_keys and not self.dialect.supports_returning)
        )

        keys: List[Any] = []
        affected = 0
        if per_row:
            for index in range(count):
                row_affected, row_keys = self._insert_rows(statement, [index])
                affected += row_affected
                keys.extend(row_keys)
        else:
            affected, keys = self._insert_rows(statement, None)

        self._write_back_keys(statement, keys)
        return ExecutionResult(rows_affected=affected, generated_keys=tuple(keys))

    def _insert_rows(
        self,
        statement: Statement,
        rows: Optional[Sequence[int]],
    ) -> Tuple[int, List[Any]]:
        compiled = self._compile(statement, rows)
        expected = len(statement.rows) if rows is None else len(rows)
        with backend_errors():
            cursor = self.db.execute(compiled.sql, compiled.params)
            if statement.returning and self.dialect.supports_returning:
                returned = cursor.fetchall()
                keys = [_first_value(row) for row in returned]
                # Auto keys are allocated in row order; RETURNING output order is not.
                if all(isinstance(key, int) for key in keys):
                    keys.sort()
                return len(returned), keys

        rowcount = getattr(cursor, "rowcount", -1)
        affected = expected if rowcount is None or rowcount < 0 else rowcount
        keys = []
        if statement.returning and expected == 1:
            key = self.dialect.get_lastrowid(cursor)
            if key:
                keys.append(key)
        return affected, keys

    def _write_back_keys(self, statement: Statement, keys: Sequence[Any]) -> None:
        descriptor = statement.descriptor
        if not keys or descriptor is None or descriptor.auto_pk is None:
            return
        if len(keys) != len(statement.entities):
            logger.debug(
                "skipping key write-back: %d keys for %d entities",
                len(keys),
                len(statement.entities),
            )
            return
        for entity, key in zip(statement.entities, keys):
            descriptor.auto_pk.set(entity, key)


def _first_value(row: Any) -> Any:
    if isinstance(row, dict):
        return next(iter(row.values()))
    if hasattr(row, "keys"):
        return row[list(row.keys())[0]]
    return row[0]

"""DB-API adapter implementation for the core database port."""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from ...core.errors import BackendConnectionError
from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from .dialects import Dialect


class Database:
    """Thin DB-API wrapper that normalizes execute, transaction and row mapping behavior."""

    def __init__(self, conn: Any, dialect: Dialect):
        """Create database adapter.

        Args:
            conn: Open DB-API 2.0 connection object.
            dialect: Concrete SQL dialect instance.
        """

        self._closed = False
        self.conn: Any | None = conn
        self.dialect = dialect

    def _require_open_connection(self) -> Any:
        if self._closed or self.conn is None:
            raise BackendConnectionError("connection is closed")
        return self.conn

    def begin(self) -> None:
        """Open a transaction explicitly when the dialect needs it."""

        conn = self._require_open_connection()
        sql = self.dialect.begin_sql()
        if sql is None or getattr(conn, "in_transaction", False):
            return
        conn.cursor().execute(sql)

    def commit(self) -> None:
        self._require_open_connection().commit()

    def rollback(self) -> None:
        self._require_open_connection().rollback()

    def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Execute SQL with optional parameters and return cursor."""

        conn = self._require_open_connection()
        cur = conn.cursor()
        if params is None:
            cur.execute(sql)
        else:
            cur.execute(sql, params)
        return cur

    def _row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        """Normalize row object to mapping.

        Supports mapping rows directly and tuple/list rows via
        `cursor.description`.
        """

        if isinstance(row, Mapping):
            return row

        desc = getattr(cursor, "description", None)
        if not desc:
            raise TypeError("Cursor has no description; cannot map tuple rows to dict.")
        cols = [d[0] for d in desc]
        if isinstance(row, (tuple, list)):
            return dict(zip(cols, row))
        if hasattr(row, "keys"):
            return {key: row[key] for key in row.keys()}

        raise TypeError(f"Unsupported row type: {type(row)}")

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        cur = self.execute(sql, params)
        row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_mapping(cur, row)

    def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        cur = self.execute(sql, params)
        rows = cur.fetchall()
        return [self._row_to_mapping(cur, r) for r in rows]

    def iterate(
        self, sql: str, params: QueryParams = None, *, size: int = 100
    ) -> Iterator[RowMapping]:
        """Execute query and lazily yield normalized rows in `size` batches."""

        cur = self.execute(sql, params)
        try:
            while True:
                batch = cur.fetchmany(size)
                if not batch:
                    return
                for row in batch:
                    yield self._row_to_mapping(cur, row)
        finally:
            close = getattr(cur, "close", None)
            if callable(close):
                close()

    def close(self) -> None:
        """Close the underlying connection."""

        if self._closed:
            return
        conn = self.conn
        self._closed = True
        self.conn = None
        close = getattr(conn, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

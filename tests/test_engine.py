from __future__ import annotations

import unittest
from datetime import datetime
from typing import Any, Iterator

from micro_orm import (
    BackendConnectionError,
    ConstraintViolation,
    Engine,
    MySQLDialect,
    PostgresDialect,
    OrmConfig,
    QueryError,
    build_entity_descriptor,
    build_insert,
    build_raw,
    build_select,
)
from tests._models import Sample, UserLog, sqlite_session

NOW = datetime(2024, 1, 2, 3, 4, 5)


class _NoReturningDb:
    """Records statements; cursors report increasing `lastrowid` values."""

    class _Cursor:
        def __init__(self, rowid: int, rowcount: int) -> None:
            self.rowcount = rowcount
            self.lastrowid = rowid

    def __init__(self) -> None:
        self.dialect = MySQLDialect()
        self.executed: list[tuple[str, Any]] = []
        self.commits = 0
        self._next_id = 40

    def begin(self) -> None:
        self.executed.append(("START TRANSACTION", None))

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:  # pragma: no cover
        raise AssertionError("unexpected rollback")

    def execute(self, sql, params=None):  # noqa: ANN001,ANN201
        self.executed.append((sql, params))
        self._next_id += 1
        return self._Cursor(self._next_id, sql.count("(%s"))

    def fetchone(self, sql, params=None):  # noqa: ANN001,ANN201
        return None

    def fetchall(self, sql, params=None):  # noqa: ANN001,ANN201
        return []

    def iterate(self, sql, params=None, *, size=100) -> Iterator[Any]:  # noqa: ANN001
        return iter(())


class _ShuffledReturningDb(_NoReturningDb):
    """A RETURNING backend that hands the generated keys back out of order."""

    class _ReturningCursor:
        def __init__(self, rows: list[tuple[int]]) -> None:
            self.rowcount = len(rows)
            self._rows = rows

        def fetchall(self) -> list[tuple[int]]:
            return self._rows

    def __init__(self) -> None:
        super().__init__()
        self.dialect = PostgresDialect()

    def execute(self, sql, params=None):  # noqa: ANN001,ANN201
        self.executed.append((sql, params))
        return self._ReturningCursor([(43,), (41,), (42,)])


class EngineWithoutReturningTests(unittest.TestCase):
    def test_batch_needing_keys_is_split_into_one_scope(self) -> None:
        db = _NoReturningDb()
        engine = Engine(db)
        logs = [UserLog(user_id="1", action=name) for name in ("a", "b", "c")]

        result = engine.execute(build_insert(build_entity_descriptor(UserLog), logs, now=NOW))

        inserts = [sql for sql, _ in db.executed if sql.startswith("INSERT")]
        self.assertEqual(len(inserts), 3)
        self.assertEqual(db.executed[0][0], "START TRANSACTION")
        self.assertEqual(db.commits, 1)
        self.assertEqual(result.rows_affected, 3)
        self.assertEqual([log.id for log in logs], [41, 42, 43])
        self.assertEqual(result.last_insert_id, 43)

    def test_batch_with_explicit_keys_is_one_statement(self) -> None:
        db = _NoReturningDb()
        engine = Engine(db)
        samples = [Sample(str(index), "x") for index in range(3)]

        result = engine.execute(build_insert(build_entity_descriptor(Sample), samples, now=NOW))

        inserts = [sql for sql, _ in db.executed if sql.startswith("INSERT")]
        self.assertEqual(len(inserts), 1)
        self.assertEqual(result.rows_affected, 3)
        self.assertEqual(result.generated_keys, ())

    def test_returning_keys_follow_row_order(self) -> None:
        db = _ShuffledReturningDb()
        engine = Engine(db)
        logs = [UserLog(user_id="1", action=name) for name in ("a", "b", "c")]

        result = engine.execute(build_insert(build_entity_descriptor(UserLog), logs, now=NOW))

        inserts = [sql for sql, _ in db.executed if sql.startswith("INSERT")]
        self.assertEqual(len(inserts), 1)
        self.assertIn("RETURNING", inserts[0])
        self.assertEqual([log.id for log in logs], [41, 42, 43])
        self.assertEqual(result.generated_keys, (41, 42, 43))


class EngineSQLiteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn, self.session = sqlite_session(fetch_size=2)
        self.engine = self.session.engine

    def tearDown(self) -> None:
        self.conn.close()

    def test_returning_batch_writes_back_increasing_keys(self) -> None:
        logs = [UserLog(user_id="1", action=str(index)) for index in range(4)]
        result = self.engine.execute(
            build_insert(build_entity_descriptor(UserLog), logs, now=NOW)
        )

        self.assertEqual(result.rows_affected, 4)
        ids = [log.id for log in logs]
        self.assertTrue(all(ids))
        self.assertEqual(ids, sorted(set(ids)))
        self.assertEqual(result.generated_keys, tuple(ids))

    def test_query_many_is_lazy_and_batched(self) -> None:
        self.session.insert_many([Sample(str(index), "n") for index in range(5)])
        rows = self.engine.query_many(
            build_select(self.session.descriptor(Sample), order_by=None)
        )

        first = next(rows)
        self.assertIsInstance(first, Sample)
        self.assertEqual(len(list(rows)), 4)
        self.assertEqual(list(rows), [])

    def test_query_raw_returns_mappings_without_target(self) -> None:
        self.session.insert(Sample("1", "Nandes"))
        rows = list(self.engine.query_raw("SELECT id, name FROM sample WHERE id = ?", ("1",)))
        self.assertEqual(rows, [{"id": "1", "name": "Nandes"}])

    def test_try_execute_reports_constraint_violation(self) -> None:
        descriptor = build_entity_descriptor(Sample)
        self.engine.execute(build_insert(descriptor, Sample("1"), now=NOW))
        result = self.engine.try_execute(build_insert(descriptor, Sample("1"), now=NOW))

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, ConstraintViolation)
        self.assertIsNotNone(result.error.original)

    def test_bad_sql_is_query_error(self) -> None:
        with self.assertRaises(QueryError):
            self.engine.execute(build_raw("INSERT INTO missing_table VALUES (?)", (1,)))

    def test_closed_connection_is_connection_error(self) -> None:
        self.conn.close()
        with self.assertRaises(BackendConnectionError) as ctx:
            self.engine.query_one(build_raw("SELECT 1"))
        self.assertIsInstance(ctx.exception, ConnectionError)

    def test_statement_logging(self) -> None:
        self.session.engine.config = OrmConfig(log_statements=True)
        with self.assertLogs("micro_orm.core.engine", level="DEBUG") as logs:
            self.engine.query_one(build_raw("SELECT 1 AS one"))
        self.assertTrue(any("SELECT 1 AS one" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()

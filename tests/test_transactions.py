from __future__ import annotations

import unittest

from micro_orm import (
    ConstraintViolation,
    SQLiteDialect,
    StateError,
    TransactionManager,
    TransactionState,
)
from tests._models import Sample, sqlite_session


class _RollbackFailsDb:
    """Adapter whose rollback always fails."""

    def __init__(self) -> None:
        self.dialect = SQLiteDialect()
        self.calls: list[str] = []

    def begin(self) -> None:
        self.calls.append("begin")

    def commit(self) -> None:
        self.calls.append("commit")

    def rollback(self) -> None:
        self.calls.append("rollback")
        raise RuntimeError("rollback exploded")

    def execute(self, sql, params=None):  # noqa: ANN001,ANN201
        self.calls.append(sql)


class TransactionManagerSQLiteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn, self.session = sqlite_session()

    def tearDown(self) -> None:
        self.conn.close()

    def test_commit_persists(self) -> None:
        handle = self.session.begin()
        self.session.insert(Sample("1", "Nandes"))
        handle.commit()

        self.assertIs(handle.state, TransactionState.COMMITTED)
        self.assertEqual(self.session.count(Sample), 1)
        self.assertEqual(len(handle.statements), 1)

    def test_rollback_discards_and_is_idempotent(self) -> None:
        handle = self.session.begin()
        self.session.insert(Sample("1", "Nandes"))
        handle.rollback()
        handle.rollback()

        self.assertIs(handle.state, TransactionState.ROLLED_BACK)
        self.assertEqual(self.session.count(Sample), 0)
        with self.assertRaises(StateError):
            handle.commit()

    def test_commit_twice_raises(self) -> None:
        handle = self.session.begin()
        handle.commit()
        with self.assertRaises(StateError):
            self.session.commit(handle)

    def test_session_commit_and_rollback_use_current_handle(self) -> None:
        self.session.begin()
        self.session.insert(Sample("1"))
        self.session.commit()
        self.session.begin()
        self.session.insert(Sample("2"))
        self.session.rollback()

        self.assertEqual([row.id for row in self.session.find(Sample)], ["1"])
        with self.assertRaises(StateError):
            self.session.commit()

    def test_handle_context_rolls_back_without_commit(self) -> None:
        with self.session.begin() as handle:
            self.session.insert(Sample("1"))

        self.assertIs(handle.state, TransactionState.ROLLED_BACK)
        self.assertEqual(self.session.count(Sample), 0)

    def test_constraint_violation_rolls_back_whole_scope(self) -> None:
        def work(handle):  # noqa: ANN001,ANN202
            self.session.insert(Sample("1", "first"))
            self.session.insert(Sample("1", "duplicate"))

        with self.assertRaises(ConstraintViolation):
            self.session.run_in_transaction(work)

        self.assertEqual(self.session.count(Sample), 0)
        self.assertIsNone(self.session.transactions.current())

    def test_failed_batch_discards_earlier_batches(self) -> None:
        def work(handle):  # noqa: ANN001,ANN202
            self.session.insert_many([Sample("1", "a"), Sample("2", "b"), Sample("3", "c")])
            self.session.insert_many([Sample("4", "d"), Sample("2", "duplicate")])

        with self.assertRaises(ConstraintViolation):
            self.session.run_in_transaction(work)

        self.assertEqual(self.session.count(Sample), 0)

    def test_duplicate_on_second_of_three_statements_undoes_first(self) -> None:
        def work(handle):  # noqa: ANN001,ANN202
            self.session.insert(Sample("1", "first"))
            self.session.insert(Sample("1", "again"))
            self.session.insert(Sample("3", "never"))

        with self.assertRaises(ConstraintViolation):
            self.session.run_in_transaction(work)

        self.assertEqual(self.session.find(Sample), [])

    def test_run_in_transaction_returns_work_result(self) -> None:
        result = self.session.run_in_transaction(
            lambda handle: self.session.insert(Sample("1", "Nandes")).name
        )
        self.assertEqual(result, "Nandes")
        self.assertEqual(self.session.count(Sample), 1)

    def test_work_may_finish_the_handle_itself(self) -> None:
        def work(handle):  # noqa: ANN001,ANN202
            self.session.insert(Sample("1"))
            handle.rollback()

        self.session.run_in_transaction(work)
        self.assertEqual(self.session.count(Sample), 0)

    def test_base_exception_still_rolls_back(self) -> None:
        with self.assertRaises(KeyboardInterrupt):
            with self.session.transaction():
                self.session.insert(Sample("1"))
                raise KeyboardInterrupt

        self.assertEqual(self.session.count(Sample), 0)
        self.assertIsNone(self.session.transactions.current())

    def test_nested_rollback_returns_to_savepoint(self) -> None:
        with self.session.transaction():
            self.session.insert(Sample("1"))
            inner = self.session.begin()
            self.assertIsNotNone(inner.savepoint)
            self.session.insert(Sample("2"))
            inner.rollback()
            self.session.insert(Sample("3"))

        ids = sorted(row.id for row in self.session.find(Sample))
        self.assertEqual(ids, ["1", "3"])

    def test_nested_commit_keeps_rows(self) -> None:
        with self.session.transaction():
            with self.session.transaction():
                self.session.insert(Sample("1"))
        self.assertEqual(self.session.count(Sample), 1)

    def test_outer_commit_with_active_inner_raises(self) -> None:
        outer = self.session.begin()
        inner = self.session.begin()
        with self.assertRaises(StateError):
            outer.commit()

        outer.rollback()
        self.assertIs(inner.state, TransactionState.ROLLED_BACK)
        self.assertIs(outer.state, TransactionState.ROLLED_BACK)

    def test_statement_on_finished_handle_raises(self) -> None:
        handle = self.session.begin()
        handle.commit()
        with self.assertRaises(StateError):
            self.session.insert(Sample("1"), handle=handle)


class TransactionManagerFailureTests(unittest.TestCase):
    def test_rollback_failure_does_not_mask_original_error(self) -> None:
        db = _RollbackFailsDb()
        manager = TransactionManager(db)

        def work(handle):  # noqa: ANN001,ANN202
            raise ValueError("work failed")

        with self.assertLogs("micro_orm.core.transactions", level="ERROR") as logs:
            with self.assertRaises(ValueError):
                manager.run_in_transaction(work)

        self.assertIn("rollback failed", logs.output[0])
        self.assertEqual(db.calls, ["begin", "rollback"])
        self.assertIsNone(manager.current())

    def test_explicit_rollback_failure_propagates(self) -> None:
        manager = TransactionManager(_RollbackFailsDb())
        handle = manager.begin()
        with self.assertRaises(RuntimeError):
            handle.rollback()
        self.assertIs(handle.state, TransactionState.ROLLED_BACK)


if __name__ == "__main__":
    unittest.main()

"""Transaction handles and the manager that drives them.

The outermost handle maps to a real backend transaction; handles begun while
another is active map to savepoints. A handle is owned by one flow of control
from `begin()` until it is committed or rolled back.
"""

from __future__ import annotations

import contextlib
import itertools
import logging
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, TypeVar

from .contracts import DatabasePort
from .errors import StateError, backend_errors
from .statements import Statement

logger = logging.getLogger(__name__)

R = TypeVar("R")


class TransactionState(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionHandle:
    """One atomic unit of work.

    Used as a context manager it gives the guaranteed-release behavior of a
    deferred rollback: leaving the block without `commit()` rolls back.
    """

    def __init__(self, manager: TransactionManager, depth: int, savepoint: Optional[str]):
        self._manager = manager
        self.depth = depth
        self.savepoint = savepoint
        self.state = TransactionState.ACTIVE
        self.statements: List[Statement] = []

    @property
    def active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    def commit(self) -> None:
        self._manager.commit(self)

    def rollback(self) -> None:
        self._manager.rollback(self)

    def __enter__(self) -> TransactionHandle:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if not self.active:
            return
        try:
            self._manager.rollback(self)
        except Exception:
            if exc is None:
                raise
            logger.exception("rollback failed while unwinding %r", exc)

    def __repr__(self) -> str:
        return f"TransactionHandle(depth={self.depth}, state={self.state.value})"


class TransactionManager:
    """Begins, commits and rolls back handles against one database adapter."""

    def __init__(self, db: DatabasePort):
        self.db = db
        self._stack: List[TransactionHandle] = []
        self._savepoint_ids = itertools.count(1)

    def current(self) -> Optional[TransactionHandle]:
        """Return the innermost active handle, if any."""

        return self._stack[-1] if self._stack else None

    def begin(self) -> TransactionHandle:
        """Start a transaction, or a savepoint when one is already active."""

        depth = len(self._stack)
        savepoint = None
        with backend_errors():
            if depth == 0:
                self.db.begin()
            else:
                savepoint = f"sp_{next(self._savepoint_ids)}"
                self.db.execute(self.db.dialect.savepoint_sql(savepoint))
        handle = TransactionHandle(self, depth, savepoint)
        self._stack.append(handle)
        logger.debug("begin %r", handle)
        return handle

    def commit(self, handle: TransactionHandle) -> None:
        """Commit an active handle.

        Raises:
            StateError: If the handle is already committed/rolled back, or
                inner handles begun after it are still active.
        """

        if not handle.active:
            raise StateError(f"Cannot commit a transaction that is {handle.state.value}.")
        if self.current() is not handle:
            raise StateError("Cannot commit while a nested transaction is still active.")

        try:
            with backend_errors():
                if handle.savepoint is None:
                    self.db.commit()
                else:
                    self.db.execute(self.db.dialect.release_savepoint_sql(handle.savepoint))
        except BaseException as exc:
            self._rollback_quietly(handle, exc)
            raise
        self._stack.pop()
        handle.state = TransactionState.COMMITTED
        logger.debug("commit %r", handle)

    def rollback(self, handle: TransactionHandle) -> None:
        """Roll back a handle; a no-op when it is already terminal.

        Inner handles still active above it are rolled back first.
        """

        if not handle.active:
            return
        while self._stack and self._stack[-1] is not handle:
            self.rollback(self._stack[-1])

        if self._stack and self._stack[-1] is handle:
            self._stack.pop()
        handle.state = TransactionState.ROLLED_BACK
        with backend_errors():
            if handle.savepoint is None:
                self.db.rollback()
            else:
                dialect = self.db.dialect
                self.db.execute(dialect.rollback_to_savepoint_sql(handle.savepoint))
                self.db.execute(dialect.release_savepoint_sql(handle.savepoint))
        logger.debug("rollback %r", handle)

    def run_in_transaction(self, work: Callable[[TransactionHandle], R]) -> R:
        """Run `work` in a new handle: commit on return, roll back on error.

        The original exception always propagates; a failing rollback is logged
        and does not replace it. `work` may commit or roll back the handle
        itself, in which case nothing more happens on return.
        """

        with self.scope() as handle:
            return work(handle)

    @contextlib.contextmanager
    def scope(self) -> Iterator[TransactionHandle]:
        """Context manager form of `run_in_transaction`."""

        handle = self.begin()
        try:
            yield handle
        except BaseException as exc:
            self._rollback_quietly(handle, exc)
            raise
        if handle.active:
            self.commit(handle)

    def _rollback_quietly(self, handle: TransactionHandle, cause: BaseException) -> None:
        try:
            self.rollback(handle)
        except Exception:
            logger.exception("rollback failed after %s", type(cause).__name__)

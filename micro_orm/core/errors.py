"""Error taxonomy raised by the persistence core.

Raw DB-API exceptions are reclassified by `classify_backend_error`. DB-API
drivers share exception class names (PEP 249), so classification matches on
names in the exception MRO instead of importing every driver.
"""

from __future__ import annotations

import contextlib
from typing import Iterator, Optional


class OrmError(Exception):
    """Base class for all errors raised by micro_orm."""


class ConfigurationError(OrmError):
    """Raised when entity metadata is invalid at registration time."""


class MappingError(OrmError):
    """Raised when an entity cannot be mapped to a statement or a row."""


class NotRegisteredError(MappingError):
    """Raised when a model is used before registration."""


class StateError(OrmError):
    """Raised on an invalid transaction handle transition."""


class BackendError(OrmError):
    """Backend failure wrapper that keeps the original driver exception."""

    def __init__(self, message: str, *, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class ConstraintViolation(BackendError):
    """Uniqueness, not-null, or foreign-key failure reported by the backend."""


class BackendConnectionError(BackendError, ConnectionError):
    """Backend unreachable, closed, or lost mid-operation. Retryable."""


class QueryError(BackendError):
    """Any other backend execution failure (bad SQL, missing table, ...)."""


_CONNECTION_HINTS = (
    "closed",
    "lost connection",
    "gone away",
    "can't connect",
    "could not connect",
    "connection refused",
    "server closed",
    "unable to open",
    "disk i/o",
    "database is locked",
    "terminating connection",
)


def classify_backend_error(exc: BaseException) -> Optional[BackendError]:
    """Map a driver exception to the error taxonomy.

    Returns `None` when the exception is not a recognized backend error; the
    caller then re-raises it unchanged.
    """

    if isinstance(exc, OrmError):
        return None

    names = {cls.__name__ for cls in type(exc).__mro__}
    message = str(exc)
    lowered = message.lower()

    if "IntegrityError" in names:
        return ConstraintViolation(message, original=exc)
    if "InterfaceError" in names or isinstance(exc, (ConnectionError, TimeoutError)):
        return BackendConnectionError(message, original=exc)
    if "OperationalError" in names or "ProgrammingError" in names:
        if any(hint in lowered for hint in _CONNECTION_HINTS):
            return BackendConnectionError(message, original=exc)
        return QueryError(message, original=exc)
    if "DatabaseError" in names:
        return QueryError(message, original=exc)
    return None


@contextlib.contextmanager
def backend_errors() -> Iterator[None]:
    """Re-raise recognized driver exceptions as taxonomy errors."""

    try:
        yield
    except Exception as exc:
        mapped = classify_backend_error(exc)
        if mapped is None:
            raise
        raise mapped from exc

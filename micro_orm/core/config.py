"""Runtime configuration for sessions and the execution engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Optional

_TRUE_VALUES = ("1", "true", "yes", "on")


def _local_now() -> datetime:
    return datetime.now()


@dataclass(frozen=True)
class OrmConfig:
    """Engine settings.

    Attributes:
        auto_register: Register unknown models on first use instead of
            raising `NotRegisteredError`.
        fetch_size: Rows pulled per `fetchmany` call by lazy queries.
        log_statements: Log compiled SQL and parameters at DEBUG level.
        clock: Source of "now" for auto-time columns.
    """

    auto_register: bool = True
    fetch_size: int = 100
    log_statements: bool = False
    clock: Callable[[], datetime] = field(default=_local_now, compare=False)

    def __post_init__(self) -> None:
        if self.fetch_size < 1:
            raise ValueError("fetch_size must be >= 1.")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> OrmConfig:
        """Build config from `MICRO_ORM_*` environment variables."""

        env = os.environ if environ is None else environ
        defaults = cls()
        auto_register = env.get("MICRO_ORM_AUTO_REGISTER")
        fetch_size = env.get("MICRO_ORM_FETCH_SIZE")
        log_statements = env.get("MICRO_ORM_LOG_STATEMENTS")
        return cls(
            auto_register=(
                defaults.auto_register
                if auto_register is None
                else auto_register.strip().lower() in _TRUE_VALUES
            ),
            fetch_size=defaults.fetch_size if fetch_size is None else int(fetch_size),
            log_statements=(
                defaults.log_statements
                if log_statements is None
                else log_statements.strip().lower() in _TRUE_VALUES
            ),
        )

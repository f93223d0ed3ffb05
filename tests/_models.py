from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from micro_orm import Database, OrmConfig, SchemaRegistry, Session, SQLiteDialect, apply_schema


@dataclass
class Sample:
    __table__ = "sample"

    id: str = field(default="", metadata={"pk": True})
    name: str = ""


@dataclass
class Name:
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""


@dataclass
class User:
    __table__ = "users"

    id: str = field(default="", metadata={"pk": True})
    password: str = ""
    name: Name = field(default_factory=Name, metadata={"embedded": True})
    created_at: Optional[datetime] = field(default=None, metadata={"auto_create": True})
    updated_at: Optional[datetime] = field(
        default=None, metadata={"auto_create": True, "auto_update": True}
    )


@dataclass
class UserResponse:
    id: str = ""
    first_name: str = ""
    last_name: str = ""


@dataclass
class UserLog:
    __table__ = "user_logs"

    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    user_id: str = ""
    action: str = ""
    created_at: int = field(default=0, metadata={"auto_create": "ms"})
    updated_at: int = field(default=0, metadata={"auto_create": "ms", "auto_update": "ms"})


@dataclass
class Todo:
    __table__ = "todos"

    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    user_id: str = ""
    title: str = ""
    description: str = ""
    created_at: Optional[datetime] = field(default=None, metadata={"auto_create": True})
    updated_at: Optional[datetime] = field(
        default=None, metadata={"auto_create": True, "auto_update": True}
    )
    deleted_at: Optional[datetime] = field(default=None, metadata={"soft_delete": True})


@dataclass
class Account:
    __table__ = "accounts"

    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    email: str = field(default="", metadata={"unique": True})
    balance: int = 0


ALL_MODELS = (Sample, User, UserLog, Todo, Account)


class FixedClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 2, 3, 4, 5)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


def sqlite_session(**config: Any) -> tuple[sqlite3.Connection, Session]:
    conn = sqlite3.connect(":memory:")
    db = Database(conn, SQLiteDialect())
    registry = SchemaRegistry()
    apply_schema(db, *ALL_MODELS, registry=registry)
    session = Session(db, config=OrmConfig(**config), registry=registry)
    return conn, session


def seed_users(session: Session, count: int = 5) -> list[User]:
    users = [
        User(
            id=str(index),
            password="password",
            name=Name(first_name=f"User {index}", last_name="Test"),
        )
        for index in range(1, count + 1)
    ]
    session.insert_many(users)
    return users

from __future__ import annotations

import importlib
import os
import unittest
from typing import Any

from micro_orm import (
    C,
    ConflictPolicy,
    ConstraintViolation,
    Database,
    MySQLDialect,
    OrderBy,
    SchemaRegistry,
    Session,
    apply_schema,
)
from tests._models import Account, Name, Todo, User, UserLog, UserResponse


def _load_mysql_driver() -> tuple[str, Any] | tuple[None, None]:
    for module_name in ("MySQLdb", "pymysql", "mysql.connector"):
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            continue
        connect = getattr(module, "connect", None)
        if connect is not None:
            return module_name, connect
    return None, None


MYSQL_DRIVER, MYSQL_CONNECT = _load_mysql_driver()
HAS_MYSQL_DRIVER = MYSQL_CONNECT is not None
HAS_MYSQL_SETTINGS = "MICRO_ORM_MYSQL_HOST" in os.environ


def _mysql_connect(
    *,
    driver_name: str,
    host: str,
    port: int,
    user: str,
    password: str,
    database: str,
) -> Any:
    if driver_name == "MySQLdb":
        return MYSQL_CONNECT(  # type: ignore[misc]
            host=host,
            port=port,
            user=user,
            passwd=password,
            db=database,
            charset="utf8mb4",
        )
    if driver_name == "pymysql":
        return MYSQL_CONNECT(  # type: ignore[misc]
            host=host,
            port=port,
            user=user,
            password=password,
            db=database,
            charset="utf8mb4",
        )
    return MYSQL_CONNECT(  # mysql.connector # type: ignore[misc]
        host=host,
        port=port,
        user=user,
        password=password,
        database=database,
    )


@unittest.skipUnless(HAS_MYSQL_DRIVER, "mysql driver is not installed")
@unittest.skipUnless(HAS_MYSQL_SETTINGS, "MICRO_ORM_MYSQL_HOST is not set")
class SessionMySQLTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.host = os.getenv("MICRO_ORM_MYSQL_HOST", "localhost")
        cls.port = int(os.getenv("MICRO_ORM_MYSQL_PORT", "3306"))
        cls.user = os.getenv("MICRO_ORM_MYSQL_USER", "root")
        cls.password = os.getenv("MICRO_ORM_MYSQL_PASSWORD", "password")
        cls.database = os.getenv("MICRO_ORM_MYSQL_DATABASE", "micro_orm_test")
        bootstrap_db = os.getenv("MICRO_ORM_MYSQL_BOOTSTRAP_DB", "mysql")

        try:
            bootstrap_conn = _mysql_connect(
                driver_name=MYSQL_DRIVER,  # type: ignore[arg-type]
                host=cls.host,
                port=cls.port,
                user=cls.user,
                password=cls.password,
                database=bootstrap_db,
            )
            cur = bootstrap_conn.cursor()
            cur.execute(f"CREATE DATABASE IF NOT EXISTS `{cls.database}`")
            bootstrap_conn.commit()
            cur.close()
            bootstrap_conn.close()

            cls.conn = _mysql_connect(
                driver_name=MYSQL_DRIVER,  # type: ignore[arg-type]
                host=cls.host,
                port=cls.port,
                user=cls.user,
                password=cls.password,
                database=cls.database,
            )
        except Exception as exc:
            raise unittest.SkipTest(
                f"MySQL is not reachable at {cls.host}:{cls.port} "
                f"with configured credentials: {exc}"
            ) from exc

        cls.db = Database(cls.conn, MySQLDialect())

    @classmethod
    def tearDownClass(cls) -> None:
        conn = getattr(cls, "conn", None)
        if conn is not None:
            conn.close()

    def setUp(self) -> None:
        registry = SchemaRegistry()
        apply_schema(self.db, User, UserLog, Todo, Account, registry=registry, drop_existing=True)
        self.session = Session(self.db, registry=registry)

    def _seed(self, count: int = 3) -> None:
        self.session.insert_many(
            [
                User(id=str(index), password="password", name=Name(f"User {index}", "", "Test"))
                for index in range(1, count + 1)
            ]
        )

    def test_batch_insert_writes_back_auto_keys(self) -> None:
        logs = [UserLog(user_id="1", action=str(index)) for index in range(3)]
        self.session.insert_many(logs)

        ids = [log.id for log in logs]
        self.assertTrue(all(ids))
        self.assertEqual(ids, sorted(set(ids)))
        self.assertEqual(self.session.count(UserLog), 3)

    def test_query_projection_and_paging(self) -> None:
        self._seed(5)
        rows = self.session.find(
            User,
            C.raw("first_name LIKE ?", "%User%"),
            order_by=[OrderBy("id", desc=True)],
            limit=2,
            offset=1,
            into=UserResponse,
        )
        self.assertEqual([row.id for row in rows], ["4", "3"])

    def test_conflict_policies(self) -> None:
        self._seed(1)
        self.session.insert(User(id="1", password="ignored"), conflict=ConflictPolicy.IGNORE)
        self.assertEqual(self.session.get(User, "1").password, "password")

        self.session.insert(User(id="1", password="changed"), conflict=ConflictPolicy.UPDATE_ALL)
        self.assertEqual(self.session.get(User, "1").password, "changed")

    def test_transaction_rolls_back_on_duplicate(self) -> None:
        def work(handle):  # noqa: ANN001,ANN202
            self.session.insert(Account(email="a@example.com"))
            self.session.insert(Account(email="a@example.com"))

        with self.assertRaises(ConstraintViolation):
            self.session.run_in_transaction(work)
        self.assertEqual(self.session.count(Account), 0)

    def test_soft_delete(self) -> None:
        todo = self.session.insert(Todo(user_id="1", title="t"))
        self.session.delete(todo)
        self.assertEqual(self.session.count(Todo), 0)
        self.assertEqual(self.session.count(Todo, with_deleted=True), 1)


if __name__ == "__main__":
    unittest.main()

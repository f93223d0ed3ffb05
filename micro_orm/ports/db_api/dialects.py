"""Concrete SQL dialect implementations for DB-API adapters."""

from __future__ import annotations

from typing import Any, Optional, Sequence


class Dialect:
    """Base dialect that defines SQL quoting, placeholders and clause variants."""

    name: str = "generic"
    paramstyle: str = "named"
    quote_char: str = '"'
    supports_returning: bool = False
    datetime_as_text: bool = False
    # LIMIT value standing in for "no limit" when only OFFSET is given.
    unbounded_limit: Optional[int] = None

    def q(self, ident: str) -> str:
        """Quote SQL identifier."""

        escaped = ident.replace(self.quote_char, self.quote_char * 2)
        return f"{self.quote_char}{escaped}{self.quote_char}"

    def placeholder(self, key: str) -> str:
        """Return parameter placeholder for current param style."""

        if self.paramstyle == "named":
            return f":{key}"
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "format":
            return "%s"
        raise ValueError(f"Unsupported paramstyle: {self.paramstyle}")

    def auto_pk_sql(self, pk_name: str) -> str:
        """Return SQL fragment for auto-increment primary key column."""

        return f"{self.q(pk_name)} INTEGER PRIMARY KEY"

    def returning_clause(self, pk_name: str) -> str:
        """Return `RETURNING` clause when dialect supports it."""

        if self.supports_returning:
            return f" RETURNING {self.q(pk_name)}"
        return ""

    def insert_prefix(self, conflict: str) -> str:
        """Return the `INSERT` keyword variant for a conflict policy."""

        return "INSERT"

    def on_conflict_clause(
        self,
        conflict: str,
        target: Sequence[str],
        update_columns: Sequence[str],
    ) -> str:
        """Return the clause appended to an `INSERT` for a conflict policy."""

        if conflict == "none":
            return ""
        target_sql = ", ".join(self.q(col) for col in target)
        if conflict == "ignore":
            return f" ON CONFLICT ({target_sql}) DO NOTHING" if target_sql else " ON CONFLICT DO NOTHING"
        if not update_columns:
            return f" ON CONFLICT ({target_sql}) DO NOTHING"
        assignments = ", ".join(
            f"{self.q(col)} = excluded.{self.q(col)}" for col in update_columns
        )
        return f" ON CONFLICT ({target_sql}) DO UPDATE SET {assignments}"

    def begin_sql(self) -> Optional[str]:
        """SQL that opens an explicit transaction, or `None` if implicit."""

        return None

    def savepoint_sql(self, name: str) -> str:
        return f"SAVEPOINT {self.q(name)}"

    def release_savepoint_sql(self, name: str) -> str:
        return f"RELEASE SAVEPOINT {self.q(name)}"

    def rollback_to_savepoint_sql(self, name: str) -> str:
        return f"ROLLBACK TO SAVEPOINT {self.q(name)}"

    def get_lastrowid(self, cursor: Any) -> Optional[int]:
        """Extract `lastrowid` from DB-API cursor when available."""

        return getattr(cursor, "lastrowid", None)


class SQLiteDialect(Dialect):
    """SQLite dialect (`:name` parameters, supports `RETURNING`)."""

    name = "sqlite"
    paramstyle = "named"
    quote_char = '"'
    supports_returning = True
    datetime_as_text = True
    unbounded_limit = -1

    def begin_sql(self) -> Optional[str]:
        return "BEGIN"


class PostgresDialect(Dialect):
    """PostgreSQL dialect (`%s` positional parameters)."""

    name = "postgres"
    paramstyle = "format"
    quote_char = '"'
    supports_returning = True

    def auto_pk_sql(self, pk_name: str) -> str:
        return f"{self.q(pk_name)} SERIAL PRIMARY KEY"


class MySQLDialect(Dialect):
    """MySQL dialect (`%s` positional parameters, no `RETURNING`)."""

    name = "mysql"
    paramstyle = "format"
    quote_char = "`"
    supports_returning = False
    unbounded_limit = 18446744073709551615

    def auto_pk_sql(self, pk_name: str) -> str:
        return f"{self.q(pk_name)} INT AUTO_INCREMENT PRIMARY KEY"

    def insert_prefix(self, conflict: str) -> str:
        return "INSERT IGNORE" if conflict == "ignore" else "INSERT"

    def on_conflict_clause(
        self,
        conflict: str,
        target: Sequence[str],
        update_columns: Sequence[str],
    ) -> str:
        if conflict != "update_all":
            return ""
        columns = list(update_columns) or list(target)
        assignments = ", ".join(f"{self.q(col)} = VALUES({self.q(col)})" for col in columns)
        return f" ON DUPLICATE KEY UPDATE {assignments}"

    def begin_sql(self) -> Optional[str]:
        return "START TRANSACTION"

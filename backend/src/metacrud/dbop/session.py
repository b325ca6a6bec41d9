"""Session wrapper and fluent query builder over a SQLAlchemy connection.

Statements are written with ``?`` placeholders and compiled into
SQLAlchemy ``text()`` constructs with named binds, so the same SQL
fragments work on SQLite, PostgreSQL (psycopg v3) and MySQL.

Transaction model
-----------------
Outside an explicit transaction every statement is committed right away
("commit as you go"). ``begin()`` opens an explicit transaction that lasts
until ``commit()`` or ``rollback()``; operations use ``in_transaction`` to
decide whether they must open their own.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from sqlalchemy import text
from sqlalchemy.engine import Connection

from metacrud.models.registry import NameMapper, snake_case


@dataclass(frozen=True)
class Expr:
    """A raw SQL expression assigned to a column instead of a bound value."""

    sql: str


class SelectColumn(NamedTuple):
    column: str
    alias: str
    table: str | None = None


def _escape_colons(sql: str) -> str:
    return sql.replace(":", "\\:")


def compile_sql(sql: str, args: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """Turn ``?`` placeholders into named binds for ``text()``.

    Literal colons are escaped so SQLAlchemy does not mistake them for
    bind names. Placeholders inside single-quoted literals are left alone.
    An Expr argument is spliced in as raw SQL and never scanned for
    placeholders.
    """
    parts: list[str] = []
    binds: dict[str, Any] = {}
    index = 0
    in_quote = False

    for char in sql:
        if char == "'":
            in_quote = not in_quote
            parts.append(char)
        elif char == "?" and not in_quote:
            if index >= len(args):
                raise ValueError(f"Not enough arguments for statement: {sql}")
            arg = args[index]
            if isinstance(arg, Expr):
                parts.append(_escape_colons(arg.sql))
            else:
                name = f"p{index}"
                parts.append(f":{name}")
                binds[name] = arg
            index += 1
        elif char == ":":
            parts.append("\\:")
        else:
            parts.append(char)

    if index != len(args):
        raise ValueError(
            f"Statement expects {index} arguments, got {len(args)}: {sql}"
        )
    return "".join(parts), binds


class Session:
    """One database connection used for the lifetime of a request."""

    def __init__(self, connection: Connection, mapper: NameMapper = snake_case):
        self.connection = connection
        self.mapper = mapper
        self._explicit = False

    # ------------------------------------------------------------------
    # Dialect helpers
    # ------------------------------------------------------------------

    @property
    def dialect_name(self) -> str:
        """Database engine name ("sqlite", "postgresql", "mysql", ...)."""
        return self.connection.dialect.name

    def quote(self, identifier: str) -> str:
        """Quote a table or column identifier for the current dialect."""
        if self.dialect_name in ("mysql", "mariadb"):
            return "`" + identifier.replace("`", "``") + "`"
        return '"' + identifier.replace('"', '""') + '"'

    def column_name(self, field_name: str) -> str:
        return self.mapper(field_name)

    def table_name(self, model_name: str) -> str:
        return self.mapper(model_name)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        """True while an explicit transaction opened by begin() is active."""
        return self._explicit

    def begin(self) -> None:
        if self._explicit:
            raise RuntimeError("Transaction already started")
        if not self.connection.in_transaction():
            self.connection.begin()
        self._explicit = True

    def commit(self) -> None:
        self._explicit = False
        self.connection.commit()

    def rollback(self) -> None:
        self._explicit = False
        self.connection.rollback()

    @contextlib.contextmanager
    def savepoint(self) -> Iterator[None]:
        """Guard one statement inside an open transaction.

        PostgreSQL aborts the whole transaction when a statement fails, so
        a savepoint is needed before the statement can be retried. Other
        engines keep the transaction usable and need nothing.
        """
        if self._explicit and self.dialect_name == "postgresql":
            with self.connection.begin_nested():
                yield
        else:
            yield

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run(
        self, sql: str, args: Sequence[Any], fetch: bool, lastrowid: bool = False
    ) -> tuple[int, list[dict[str, Any]], Any]:
        compiled, binds = compile_sql(sql, args)
        try:
            result = self.connection.execute(text(compiled), binds)
            rows = [dict(row) for row in result.mappings().all()] if fetch else []
            rowcount = result.rowcount
            row_id = result.lastrowid if lastrowid else None
        except Exception:
            if not self._explicit:
                self.connection.rollback()
            raise
        if not self._explicit:
            self.connection.commit()
        return rowcount, rows, row_id

    def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        """Execute a statement and return the affected row count."""
        rowcount, _, _ = self._run(sql, args, fetch=False)
        return rowcount

    def fetch_all(self, sql: str, args: Sequence[Any] = ()) -> list[dict[str, Any]]:
        _, rows, _ = self._run(sql, args, fetch=True)
        return rows

    def fetch_one(self, sql: str, args: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = self.fetch_all(sql, args)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Statement builders
    # ------------------------------------------------------------------

    def _assignments(self, values: dict[str, Any]) -> tuple[list[str], list[str], list[Any]]:
        # Expr values travel as arguments too; compile_sql splices them in
        columns = [self.quote(column) for column in values]
        placeholders = ["?"] * len(values)
        return columns, placeholders, list(values.values())

    def insert(self, table: str, values: dict[str, Any], returning: str | None = None) -> Any:
        """INSERT one row. Values may be Expr for database-side expressions.

        Returns the affected row count or, when *returning* names a column
        the database generates (an auto-increment key), that column's value.
        """
        columns, placeholders, args = self._assignments(values)
        sql = (
            f"INSERT INTO {self.quote(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)})"
        )
        if returning is None:
            return self.execute(sql, args)

        if self.dialect_name == "postgresql":
            _, rows, _ = self._run(f"{sql} RETURNING {self.quote(returning)}", args, fetch=True)
            return rows[0][returning] if rows else None
        _, _, row_id = self._run(sql, args, fetch=False, lastrowid=True)
        return row_id

    def update(
        self,
        table: str,
        values: dict[str, Any],
        where: str = "",
        where_args: Sequence[Any] = (),
    ) -> int:
        columns, placeholders, args = self._assignments(values)
        set_clause = ", ".join(f"{c}={p}" for c, p in zip(columns, placeholders))
        sql = f"UPDATE {self.quote(table)} SET {set_clause}"
        if where:
            sql += f" WHERE {where}"
        return self.execute(sql, [*args, *where_args])

    def delete(self, table: str, where: str, where_args: Sequence[Any] = ()) -> int:
        sql = f"DELETE FROM {self.quote(table)} WHERE {where}"
        return self.execute(sql, where_args)

    def query(self, table: str) -> Query:
        return Query(self, table)

    def close(self) -> None:
        if self._explicit:
            self.rollback()
        self.connection.close()


class Query:
    """Fluent SELECT builder bound to a session.

    Example:
        session.query("user").where("age>?", 18).asc("name").limit(10).find(columns)
    """

    def __init__(self, session: Session, table: str):
        self.session = session
        self._table = table
        self._joins: list[str] = []
        self._wheres: list[str] = []
        self._args: list[Any] = []
        self._omit: set[str] = set()
        self._orders: list[str] = []
        self._limit: int | None = None
        self._offset = 0

    @property
    def table_name(self) -> str:
        return self._table

    def table(self, name: str) -> Query:
        self._table = name
        return self

    def join(self, operator: str, table: str, condition: str, alias: str | None = None) -> Query:
        q = self.session.quote
        target = q(table) if alias is None else f"{q(table)} AS {q(alias)}"
        self._joins.append(f"{operator} JOIN {target} ON {condition}")
        return self

    def where(self, clause: str, *args: Any) -> Query:
        if clause:
            self._wheres.append(clause)
            self._args.extend(args)
        return self

    def in_(self, column: str, values: Sequence[Any]) -> Query:
        if not values:
            return self.where("1=0")
        placeholders = ", ".join("?" for _ in values)
        return self.where(f"{column} IN ({placeholders})", *values)

    def omit(self, *columns: str) -> Query:
        self._omit.update(columns)
        return self

    def asc(self, column: str) -> Query:
        self._orders.append(f"{column} ASC")
        return self

    def desc(self, column: str) -> Query:
        self._orders.append(f"{column} DESC")
        return self

    def limit(self, limit: int, offset: int = 0) -> Query:
        self._limit = limit
        self._offset = max(offset, 0)
        return self

    def _from_where(self) -> str:
        sql = f" FROM {self.session.quote(self._table)}"
        if self._joins:
            sql += " " + " ".join(self._joins)
        if self._wheres:
            if len(self._wheres) == 1:
                sql += f" WHERE {self._wheres[0]}"
            else:
                sql += " WHERE " + " AND ".join(f"({w})" for w in self._wheres)
        return sql

    def _select_list(self, columns: Sequence[SelectColumn]) -> str:
        q = self.session.quote
        parts = []
        for col in columns:
            if col.column in self._omit:
                continue
            ref = q(col.column) if col.table is None else f"{q(col.table)}.{q(col.column)}"
            parts.append(f"{ref} AS {q(col.alias)}")
        return ", ".join(parts) if parts else "*"

    def count(self) -> int:
        row = self.session.fetch_one(f"SELECT COUNT(*) AS total{self._from_where()}", self._args)
        return int(row["total"]) if row else 0

    def find(self, columns: Sequence[SelectColumn]) -> list[dict[str, Any]]:
        sql = f"SELECT {self._select_list(columns)}{self._from_where()}"
        if self._orders:
            sql += " ORDER BY " + ", ".join(self._orders)
        if self._limit is not None:
            sql += f" LIMIT {int(self._limit)} OFFSET {int(self._offset)}"
        return self.session.fetch_all(sql, self._args)

    def get(self, columns: Sequence[SelectColumn]) -> dict[str, Any] | None:
        self.limit(1)
        rows = self.find(columns)
        return rows[0] if rows else None

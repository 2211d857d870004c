import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from prioritydb.errors import StorageFailure

logger = logging.getLogger(__name__)


class Column(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    declaration: str


class TableSchema(BaseModel):
    """Name and ordered columns of a table whose first column is the row id."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[Column, ...]
    # Each entry is the column list of one index
    indexed: tuple[tuple[str, ...], ...] = ()

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def key_column(self) -> str:
        return self.columns[0].name


class DurableTable:
    """
    One SQLite table behind a small create/insert/delete/select interface.

    Writes are expected to run inside ``transaction()``; a statement issued
    outside of it runs in its own implicit transaction, since the connection
    is in autocommit mode.
    """

    def __init__(self, conn: sqlite3.Connection, schema: TableSchema) -> None:
        self._conn = conn
        self._schema = schema
        self._closed = False

    @property
    def schema(self) -> TableSchema:
        return self._schema

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        if self._closed:
            raise StorageFailure(f"table {self._schema.name!r} is closed")
        try:
            return self._conn.execute(sql, params)
        except (sqlite3.Error, OverflowError) as e:
            raise StorageFailure(str(e)) from e

    def _check_columns(self, names: Sequence[str]) -> None:
        known = self._schema.column_names
        for name in names:
            if name not in known:
                raise ValueError(f"Unknown column {name!r} for table {self._schema.name!r}")

    def _where(self, predicate: dict[str, Any]) -> tuple[str, list[Any]]:
        if not predicate:
            return "", []
        self._check_columns(list(predicate))
        clause = " AND ".join(f"{name} = ?" for name in predicate)
        return f" WHERE {clause}", list(predicate.values())

    def create_if_absent(self) -> None:
        """Create the table and its indexes unless they already exist."""
        columns = ",\n    ".join(f"{c.name} {c.declaration}" for c in self._schema.columns)
        with self.transaction():
            self._execute(f"CREATE TABLE IF NOT EXISTS {self._schema.name} (\n    {columns}\n)")
            for index_columns in self._schema.indexed:
                self._check_columns(index_columns)
                index_name = f"idx_{self._schema.name}_{'_'.join(index_columns)}"
                self._execute(
                    f"CREATE INDEX IF NOT EXISTS {index_name} ON {self._schema.name} ({', '.join(index_columns)})"
                )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements atomically.

        Nested use joins the outer transaction.
        """
        if self._closed:
            raise StorageFailure(f"table {self._schema.name!r} is closed")
        if self._conn.in_transaction:
            yield
            return

        self._execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageFailure(str(e)) from e

    def insert(self, row: dict[str, Any]) -> int:
        """Insert a row and return the id the store assigned to it."""
        self._check_columns(list(row))
        names = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        cursor = self._execute(
            f"INSERT INTO {self._schema.name} ({names}) VALUES ({placeholders})",
            list(row.values()),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise StorageFailure(f"no row id assigned by table {self._schema.name!r}")
        return row_id

    def delete_where(self, **predicate: Any) -> int:
        where, params = self._where(predicate)
        cursor = self._execute(f"DELETE FROM {self._schema.name}{where}", params)
        return cursor.rowcount

    def update_where(self, values: dict[str, Any], **predicate: Any) -> int:
        if not values:
            return 0
        self._check_columns(list(values))
        assignments = ", ".join(f"{name} = ?" for name in values)
        where, params = self._where(predicate)
        cursor = self._execute(
            f"UPDATE {self._schema.name} SET {assignments}{where}",
            list(values.values()) + params,
        )
        return cursor.rowcount

    def select_where(
        self,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        **predicate: Any,
    ) -> list[tuple]:
        """Select full rows matching ``predicate``.

        ``order_by`` entries are column names, optionally prefixed with ``-``
        for descending order. Rows default to ascending id order.
        """
        if order_by is None:
            order_by = (self._schema.key_column,)
        terms = []
        for term in order_by:
            name = term.lstrip("-")
            self._check_columns([name])
            terms.append(f"{name} DESC" if term.startswith("-") else f"{name} ASC")

        where, params = self._where(predicate)
        sql = f"SELECT {', '.join(self._schema.column_names)} FROM {self._schema.name}{where}"
        sql += f" ORDER BY {', '.join(terms)}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._execute(sql, params).fetchall()

    def sum(self, column: str, **predicate: Any) -> int:
        self._check_columns([column])
        where, params = self._where(predicate)
        result = self._execute(f"SELECT SUM({column}) FROM {self._schema.name}{where}", params).fetchone()[0]
        # SUM returns NULL for an empty table
        return result if result is not None else 0

    def count(self, **predicate: Any) -> int:
        where, params = self._where(predicate)
        return self._execute(f"SELECT COUNT(*) FROM {self._schema.name}{where}", params).fetchone()[0]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"closing table {self._schema.name!r}")
        self._conn.close()

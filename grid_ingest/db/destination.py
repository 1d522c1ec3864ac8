from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import psycopg2
from psycopg2 import sql

from .errors import FetchError, WriteError

"""Destination collaborator: one-record insert / upsert, plus a keyed read of existing rows.

Each call is atomic on its own: PostgresDestination commits after a successful
statement and rolls back before raising WriteError, so a failed record leaves
nothing behind and does not poison the connection for the next record.
"""

__all__ = [
    "Destination",
    "PostgresDestination",
    "WriteMetrics",
    "build_insert",
    "build_upsert",
    "build_select_existing",
]


class Destination(Protocol):
    def insert(self, table: str, record: Mapping[str, Any]) -> None: ...

    def upsert(self, table: str, record: Mapping[str, Any], conflict_key: str) -> None: ...

    def fetch_existing(self, table: str, key: str, values: Sequence[str]) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class WriteMetrics:
    """Timing of one statement."""
    table: str
    operation: str  # insert / upsert
    elapsed_seconds: float
    ok: bool


def build_insert(table: str, columns: list[str]) -> sql.Composed:
    return sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
        sql.Identifier(table),
        sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        sql.SQL(", ").join(sql.Placeholder() for _ in columns),
    )


def build_upsert(table: str, columns: list[str], conflict_key: str) -> sql.Composed:
    base = build_insert(table, columns)
    updates = [c for c in columns if c != conflict_key]
    if not updates:
        return sql.SQL("{} ON CONFLICT ({}) DO NOTHING").format(base, sql.Identifier(conflict_key))
    return sql.SQL("{} ON CONFLICT ({}) DO UPDATE SET {}").format(
        base,
        sql.Identifier(conflict_key),
        sql.SQL(", ").join(
            sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(c), sql.Identifier(c)) for c in updates
        ),
    )


def build_select_existing(table: str, key: str) -> sql.Composed:
    # file values are strings; compare the key as text whatever its column type
    return sql.SQL("SELECT * FROM {} WHERE {}::text = ANY(%s)").format(
        sql.Identifier(table),
        sql.Identifier(key),
    )


class PostgresDestination:
    """psycopg2-backed destination.

    Parameters
    ----------
    connection: open psycopg2 connection (autocommit off)
    metrics_callback: optional hook receiving WriteMetrics for every statement
    """

    def __init__(
        self,
        connection: Any,
        metrics_callback: Callable[[WriteMetrics], None] | None = None,
    ) -> None:
        self.connection = connection
        self.metrics_callback = metrics_callback

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        columns = list(record.keys())
        self._execute(table, "insert", build_insert(table, columns), [record[c] for c in columns])

    def upsert(self, table: str, record: Mapping[str, Any], conflict_key: str) -> None:
        columns = list(record.keys())
        self._execute(
            table, "upsert", build_upsert(table, columns, conflict_key), [record[c] for c in columns]
        )

    def _execute(self, table: str, operation: str, statement: sql.Composed, values: list[Any]) -> None:
        start = time.time()
        ok = False
        try:
            with self.connection.cursor() as cur:
                cur.execute(statement, values)
            self.connection.commit()
            ok = True
        except psycopg2.Error as e:
            self.connection.rollback()
            diag = getattr(e, "diag", None)
            raise WriteError(
                (e.pgerror or str(e)).strip(),
                code=e.pgcode,
                column=getattr(diag, "column_name", None),
                constraint=getattr(diag, "constraint_name", None),
                table=getattr(diag, "table_name", None),
            ) from e
        finally:
            if self.metrics_callback is not None:
                self.metrics_callback(
                    WriteMetrics(
                        table=table,
                        operation=operation,
                        elapsed_seconds=time.time() - start,
                        ok=ok,
                    )
                )

    def fetch_existing(self, table: str, key: str, values: Sequence[str]) -> list[dict[str, Any]]:
        """Rows of ``table`` whose ``key`` is one of ``values``, as column -> value dicts.

        Raises:
            FetchError: the SELECT failed (the transaction is rolled back)
        """
        if not values:
            return []
        try:
            with self.connection.cursor() as cur:
                cur.execute(build_select_existing(table, key), (list(values),))
                columns = [d[0] for d in cur.description]
                rows = cur.fetchall()
            self.connection.commit()
        except psycopg2.Error as e:
            self.connection.rollback()
            raise FetchError((e.pgerror or str(e)).strip(), code=e.pgcode) from e
        return [dict(zip(columns, row, strict=True)) for row in rows]

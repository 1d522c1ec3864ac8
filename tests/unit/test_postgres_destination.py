from __future__ import annotations

from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2 import sql

from grid_ingest.config.loader import DatabaseConfig
from grid_ingest.db.connection import resolve_dsn
from grid_ingest.db.destination import (
    PostgresDestination,
    build_insert,
    build_select_existing,
    build_upsert,
)
from grid_ingest.db.errors import FetchError, WriteError


def _connection():
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn, cursor


def test_insert_executes_and_commits():
    conn, cursor = _connection()
    PostgresDestination(conn).insert("gastos", {"monto": 10.0, "fecha": None})
    statement, values = cursor.execute.call_args.args
    assert isinstance(statement, sql.Composed)
    assert values == [10.0, None]
    conn.commit.assert_called_once()
    conn.rollback.assert_not_called()


def test_upsert_statement_updates_non_key_columns():
    stmt = build_upsert("ml_sales", ["num_venta", "total"], "num_venta")
    text = repr(stmt)
    assert "ON CONFLICT" in text and "DO UPDATE SET" in text
    assert "EXCLUDED" in text
    assert "Identifier('total')" in text


def test_upsert_with_only_key_column_does_nothing_on_conflict():
    text = repr(build_upsert("sku_alterno", ["sku"], "sku"))
    assert "DO NOTHING" in text
    assert "DO UPDATE" not in text


def test_insert_statement_quotes_identifiers():
    text = repr(build_insert("ml_sales", ["num venta"]))
    assert "Identifier('num venta')" in text


def test_driver_error_becomes_write_error_and_rolls_back():
    conn, cursor = _connection()
    cursor.execute.side_effect = psycopg2.IntegrityError("duplicate key value violates unique constraint")
    seen = []
    dest = PostgresDestination(conn, metrics_callback=seen.append)

    with pytest.raises(WriteError) as exc:
        dest.upsert("ml_sales", {"num_venta": "1"}, "num_venta")

    assert "duplicate key" in exc.value.message
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    assert len(seen) == 1
    assert seen[0].ok is False and seen[0].operation == "upsert"


def test_metrics_callback_reports_success():
    conn, _ = _connection()
    seen = []
    PostgresDestination(conn, metrics_callback=seen.append).insert("t", {"a": 1})
    assert seen[0].ok is True
    assert seen[0].table == "t"
    assert seen[0].elapsed_seconds >= 0


def test_resolve_dsn_prefers_database_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@h/db")
    monkeypatch.setenv("PGDSN", "host=other")
    assert resolve_dsn(DatabaseConfig(dsn="host=cfg")) == "postgresql://u:p@h/db"


def test_resolve_dsn_falls_back_to_config_dsn(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("PGDSN", raising=False)
    assert resolve_dsn(DatabaseConfig(dsn="host=cfg dbname=x")) == "host=cfg dbname=x"


def test_resolve_dsn_builds_from_parts(monkeypatch):
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PGHOST", "db.internal")
    dsn = resolve_dsn(DatabaseConfig(port=6543, user="app", password="pw", database="sales"))
    assert dsn == "host=db.internal port=6543 user=app dbname=sales password=pw"


def test_fetch_existing_returns_rows_as_dicts():
    conn, cursor = _connection()
    cursor.description = [("num_venta",), ("total",)]
    cursor.fetchall.return_value = [("1001", 10.0), ("1002", None)]

    rows = PostgresDestination(conn).fetch_existing("ml_sales", "num_venta", ("1001", "1002"))

    assert rows == [{"num_venta": "1001", "total": 10.0}, {"num_venta": "1002", "total": None}]
    statement, params = cursor.execute.call_args.args
    assert isinstance(statement, sql.Composed)
    assert params == (["1001", "1002"],)
    conn.commit.assert_called_once()


def test_fetch_existing_without_values_does_not_query():
    conn, cursor = _connection()
    assert PostgresDestination(conn).fetch_existing("ml_sales", "num_venta", []) == []
    conn.cursor.assert_not_called()


def test_fetch_driver_error_becomes_fetch_error_and_rolls_back():
    conn, cursor = _connection()
    cursor.execute.side_effect = psycopg2.ProgrammingError("relation \"ml_sales\" does not exist")

    with pytest.raises(FetchError) as exc:
        PostgresDestination(conn).fetch_existing("ml_sales", "num_venta", ["1"])

    assert "does not exist" in exc.value.message
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_select_existing_compares_key_as_text():
    text = repr(build_select_existing("ml_sales", "num_venta"))
    assert "::text = ANY(%s)" in text
    assert "Identifier('num_venta')" in text

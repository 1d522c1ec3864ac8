# Shared pytest fixtures
from __future__ import annotations

import logging
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from grid_ingest.db.errors import WriteError
from grid_ingest.logging.init import LOGGER_NAME, reset_logging
from grid_ingest.models.grid import RawGrid


class FakeDestination:
    """In-memory insert/upsert/fetch collaborator; ``rows`` may be pre-seeded.

    ``failures`` maps a predicate-free key (conflict value or insert call
    number, 1-based) to the WriteError raised for it.
    """

    def __init__(self, failures: Mapping[Any, WriteError] | None = None) -> None:
        self.failures = dict(failures or {})
        self.rows: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.fetches: list[list[str]] = []

    def _fail_key(self, record: Mapping[str, Any], conflict_key: str | None) -> Any:
        if conflict_key:
            return record.get(conflict_key)
        return len(self.calls)

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        self.calls.append(("insert", table, dict(record)))
        err = self.failures.get(self._fail_key(record, None))
        if err is not None:
            raise err
        self.rows.setdefault(table, []).append(dict(record))

    def upsert(self, table: str, record: Mapping[str, Any], conflict_key: str) -> None:
        self.calls.append(("upsert", table, dict(record)))
        err = self.failures.get(self._fail_key(record, conflict_key))
        if err is not None:
            raise err
        rows = self.rows.setdefault(table, [])
        for i, existing in enumerate(rows):
            if existing.get(conflict_key) == record[conflict_key]:
                rows[i] = {**existing, **record}
                return
        rows.append(dict(record))

    def fetch_existing(self, table: str, key: str, values: Sequence[str]) -> list[dict[str, Any]]:
        self.fetches.append(list(values))
        wanted = set(values)
        return [dict(r) for r in self.rows.get(table, []) if str(r.get(key)) in wanted]


@pytest.fixture()
def fake_destination_cls():
    return FakeDestination


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("PGDSN", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """delimiter: ","
null_sentinels: ["N/A"]
field_types:
  cantidad: number
  activo: boolean
tables:
  ml_sales:
    conflict_key: num_venta
    columns: [num_venta, sku, total]
    aliases:
      "# de venta:": num_venta
      "Total (MXN)": total
  notas:
    columns: [texto]
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def sales_grid() -> RawGrid:
    """Header row + four data rows, sales export style."""
    return RawGrid.from_rows([
        ["# de venta:", "SKU", "Total (MXN)", "Comprador"],
        ["1001", "00A7", "1,250.50", "Ana"],
        ["1002", "00B3", "99", "Luis"],
        ["1003", "00C1", "abc", "Marta"],
        ["1004", "00D9", "", "Pedro"],
    ])


@pytest.fixture()
def sales_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "ventas.csv"
    f.write_text(
        "# de venta:,SKU,Total (MXN),Comprador\n"
        "1001,00A7,1250.50,Ana\n"
        "1002,00B3,99,Luis\n"
        "   ,  ,,\n"
        "1003,00C1,10,Marta\n",
        encoding="utf-8",
    )
    return f


@pytest.fixture(autouse=True)
def _fresh_logging():
    """Each test starts with an unconfigured ``grid_ingest`` logger."""
    reset_logging()
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    reset_logging()

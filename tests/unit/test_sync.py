from __future__ import annotations

from datetime import date

import pytest

from grid_ingest.db.errors import FetchError, WriteError
from grid_ingest.models.table import MaterializedTable
from grid_ingest.services.sync import (
    SyncError,
    SyncMode,
    classify_records,
    dedupe_by_key,
    sync_records,
)


def _sales_table(n: int = 4) -> MaterializedTable:
    return MaterializedTable(
        headers=["num_venta", "sku", "total"],
        rows=[[f"{1000 + i}", f"00{i}", f"{i * 10}"] for i in range(1, n + 1)],
    )


@pytest.fixture()
def seeded(fake_destination_cls):
    dest = fake_destination_cls()
    dest.rows["ml_sales"] = [
        {"num_venta": "1001", "sku": "001", "total": 10.0},
        {"num_venta": "1002", "sku": " 002 ", "total": 20.00005},
        {"num_venta": "1003", "sku": "OLD", "total": 30.0},
    ]
    return dest


def test_records_sorted_into_new_update_unchanged(seeded):
    analysis = classify_records(seeded, "ml_sales", _sales_table(), "num_venta")
    assert [r["num_venta"] for r in analysis.new] == ["1004"]
    assert [u.record["num_venta"] for u in analysis.update] == ["1003"]
    assert analysis.update[0].existing["sku"] == "OLD"
    # 1002: trimmed text and numeric tolerance make it equal
    assert [r["num_venta"] for r in analysis.unchanged] == ["1001", "1002"]
    assert analysis.total == 4
    # classification writes nothing
    assert seeded.calls == []


def test_numeric_difference_above_tolerance_is_an_update(seeded):
    table = MaterializedTable(headers=["num_venta", "total"], rows=[["1001", "10.001"]])
    analysis = classify_records(seeded, "ml_sales", table, "num_venta")
    assert len(analysis.update) == 1


def test_missing_number_equals_zero(fake_destination_cls):
    dest = fake_destination_cls()
    dest.rows["t"] = [{"num_venta": "1", "total": 0}]
    table = MaterializedTable(headers=["num_venta", "total"], rows=[["1", ""]])
    assert len(classify_records(dest, "t", table, "num_venta").unchanged) == 1


def test_dates_compared_as_timestamps(fake_destination_cls):
    dest = fake_destination_cls()
    dest.rows["t"] = [{"num_venta": "1", "fecha_venta": date(2024, 3, 5)}, {"num_venta": "2", "fecha_venta": None}]
    table = MaterializedTable(
        headers=["num_venta", "fecha_venta"],
        rows=[["1", "2024-03-05"], ["2", "2024-03-06"]],
    )
    analysis = classify_records(dest, "t", table, "num_venta")
    assert [r["num_venta"] for r in analysis.unchanged] == ["1"]
    assert [u.record["num_venta"] for u in analysis.update] == ["2"]


def test_last_record_per_key_wins():
    records, replaced = dedupe_by_key(
        [{"k": "1", "v": "a"}, {"k": "2", "v": "b"}, {"k": "1", "v": "c"}],
        "k",
    )
    assert records == [{"k": "1", "v": "c"}, {"k": "2", "v": "b"}]
    assert replaced == 1


def test_in_file_duplicates_and_missing_keys_are_counted(fake_destination_cls):
    table = MaterializedTable(
        headers=["num_venta", "sku"],
        rows=[["1", "a"], ["", "b"], ["1", "c"], ["2", "d"]],
    )
    analysis = classify_records(fake_destination_cls(), "t", table, "num_venta")
    assert analysis.duplicate_count == 1
    assert analysis.skipped_count == 1
    assert [r["sku"] for r in analysis.new] == ["c", "d"]


def test_existing_rows_fetched_in_batches(fake_destination_cls):
    dest = fake_destination_cls()
    classify_records(dest, "ml_sales", _sales_table(5), "num_venta", batch_size=2)
    assert [len(chunk) for chunk in dest.fetches] == [2, 2, 1]
    assert dest.fetches[0] == ["1001", "1002"]


def test_integral_float_keys_match_text_keys(fake_destination_cls):
    dest = fake_destination_cls()
    dest.rows["t"] = [{"total": 5, "sku": "x"}]
    table = MaterializedTable(headers=["total", "sku"], rows=[["5", "x"]])
    analysis = classify_records(dest, "t", table, "total")
    assert dest.fetches == [["5"]]
    assert len(analysis.unchanged) == 1


def test_conflict_key_is_required(fake_destination_cls):
    with pytest.raises(SyncError):
        classify_records(fake_destination_cls(), "t", _sales_table(), None)


def test_malformed_table_is_rejected(fake_destination_cls):
    table = MaterializedTable(headers=["num_venta", "sku"], rows=[["1"]])
    with pytest.raises(SyncError, match="Invalid data"):
        classify_records(fake_destination_cls(), "t", table, "num_venta")


def test_fetch_error_propagates(fake_destination_cls):
    dest = fake_destination_cls()

    def broken(table, key, values):
        raise FetchError("permission denied for table t", code="42501")

    dest.fetch_existing = broken
    with pytest.raises(FetchError):
        classify_records(dest, "t", _sales_table(), "num_venta")


@pytest.mark.parametrize(
    "mode,written,skipped",
    [
        (SyncMode.NEW, ["1004"], 3),
        (SyncMode.UPDATE, ["1003"], 3),
        (SyncMode.ALL, ["1004", "1003"], 2),
    ],
)
def test_sync_writes_only_the_chosen_group(seeded, mode, written, skipped):
    analysis = classify_records(seeded, "ml_sales", _sales_table(), "num_venta")
    outcome = sync_records(seeded, analysis, mode, show_progress=False)
    assert [c[2]["num_venta"] for c in seeded.calls] == written
    assert {c[0] for c in seeded.calls} == {"upsert"}
    assert outcome.processed_count == len(written)
    assert outcome.skipped_count == skipped
    assert outcome.success


def test_sync_failures_are_reported_per_record(seeded):
    seeded.failures["1004"] = WriteError("duplicate key", code="23505")
    analysis = classify_records(seeded, "ml_sales", _sales_table(), "num_venta")
    outcome = sync_records(seeded, analysis, SyncMode.ALL, show_progress=False)
    assert outcome.processed_count == 1
    assert [e.record_identifier for e in outcome.errors] == ["1004"]
    assert outcome.success is False


def test_analysis_to_dict(seeded):
    payload = classify_records(seeded, "ml_sales", _sales_table(), "num_venta").to_dict()
    assert (payload["newCount"], payload["updateCount"], payload["unchangedCount"]) == (1, 1, 2)
    assert payload["conflictKey"] == "num_venta"
    assert payload["update"][0]["existing"]["sku"] == "OLD"

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pandas as pd

from ..db.destination import Destination
from ..logging.error_log import BatchErrorLog
from ..models.batch_outcome import BatchOutcome
from ..models.table import MaterializedTable
from .coercion import CoercionPolicy, FieldType
from .persistence import build_records, write_records

"""Keyed reconciliation against the destination before writing.

classify_records() coerces the table, keeps the last record per conflict-key
value, reads the matching destination rows in batches and sorts every record
into new / update / unchanged. sync_records() then writes only the group the
operator picked, through the same per-record writer persist_table() uses.

Comparison only looks at the columns present in the table:
- NUMBER fields: numeric, missing counts as 0, equal within NUMERIC_TOLERANCE
- DATE fields: as timestamps (timezone-aware values compared in UTC)
- everything else: trimmed text, missing counts as ""
"""

__all__ = [
    "SyncError",
    "SyncMode",
    "RecordUpdate",
    "RecordAnalysis",
    "FETCH_BATCH_SIZE",
    "NUMERIC_TOLERANCE",
    "dedupe_by_key",
    "fetch_existing_rows",
    "classify_records",
    "sync_records",
]

logger = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 500
NUMERIC_TOLERANCE = 0.0001


class SyncError(Exception):
    """The table cannot be reconciled (no conflict key, malformed rows)."""


class SyncMode(Enum):
    NEW = "new"
    UPDATE = "update"
    ALL = "all"


@dataclass(frozen=True)
class RecordUpdate:
    record: dict[str, Any]
    existing: dict[str, Any]


@dataclass(frozen=True)
class RecordAnalysis:
    """Outcome of classify_records(); nothing has been written yet.

    Attributes:
        skipped_count: records without a conflict-key value
        duplicate_count: earlier records replaced by a later one with the same key
    """
    table: str
    conflict_key: str
    new: list[dict[str, Any]] = field(default_factory=list)
    update: list[RecordUpdate] = field(default_factory=list)
    unchanged: list[dict[str, Any]] = field(default_factory=list)
    skipped_count: int = 0
    duplicate_count: int = 0

    @property
    def total(self) -> int:
        return len(self.new) + len(self.update) + len(self.unchanged)

    def records_for(self, mode: SyncMode) -> list[dict[str, Any]]:
        """Records to write for a sync mode; new ones first for ``all``."""
        updates = [u.record for u in self.update]
        if mode is SyncMode.NEW:
            return list(self.new)
        if mode is SyncMode.UPDATE:
            return updates
        return [*self.new, *updates]

    def to_dict(self) -> dict[str, Any]:
        """camelCase view for JSON output."""
        return {
            "table": self.table,
            "conflictKey": self.conflict_key,
            "newCount": len(self.new),
            "updateCount": len(self.update),
            "unchangedCount": len(self.unchanged),
            "skippedCount": self.skipped_count,
            "duplicateCount": self.duplicate_count,
            "new": list(self.new),
            "update": [{"record": u.record, "existing": u.existing} for u in self.update],
        }


def _key_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def dedupe_by_key(records: Iterable[dict[str, Any]], key: str) -> tuple[list[dict[str, Any]], int]:
    """One record per key value; the last one wins, at the position of the first.

    Returns:
        (records, number_of_replaced_records)
    """
    by_key: dict[str, dict[str, Any]] = {}
    replaced = 0
    for record in records:
        k = _key_text(record[key])
        if k in by_key:
            replaced += 1
        by_key[k] = record
    return list(by_key.values()), replaced


def fetch_existing_rows(
    destination: Destination,
    table: str,
    key: str,
    values: Sequence[str],
    batch_size: int = FETCH_BATCH_SIZE,
) -> dict[str, dict[str, Any]]:
    """Key text -> destination row, read ``batch_size`` keys at a time.

    Raises:
        FetchError: propagated from the destination
    """
    existing: dict[str, dict[str, Any]] = {}
    for start in range(0, len(values), batch_size):
        chunk = list(values[start:start + batch_size])
        for row in destination.fetch_existing(table, key, chunk):
            existing[_key_text(row.get(key))] = row
        logger.debug("table=%s fetched keys %d-%d", table, start + 1, start + len(chunk))
    return existing


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_timestamp(value: Any) -> pd.Timestamp | None:
    if value is None or value == "":
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value).strip()


def _same_value(kind: FieldType, new: Any, old: Any) -> bool:
    if kind is FieldType.NUMBER:
        a, b = _to_float(new), _to_float(old)
        if a is not None and b is not None:
            return abs(a - b) <= NUMERIC_TOLERANCE
    elif kind is FieldType.DATE:
        a, b = _to_timestamp(new), _to_timestamp(old)
        if a is not None or b is not None:
            return a == b
    return _text(new) == _text(old)


def _differs(record: dict[str, Any], existing: dict[str, Any], policy: CoercionPolicy) -> bool:
    return any(
        not _same_value(policy.type_of(column), value, existing.get(column))
        for column, value in record.items()
    )


def classify_records(
    destination: Destination,
    table_name: str,
    table: MaterializedTable,
    conflict_key: str | None,
    *,
    policy: CoercionPolicy | None = None,
    batch_size: int = FETCH_BATCH_SIZE,
) -> RecordAnalysis:
    """Sort the table's records into new / update / unchanged against the destination.

    Raises:
        SyncError: no conflict key, or rows of the wrong width
        FetchError: existing rows could not be read
    """
    if not conflict_key:
        raise SyncError("reconciliation needs a conflict key")
    if not table.is_rectangular():
        raise SyncError("Invalid data: every row must have one value per header.")
    policy = policy or CoercionPolicy()

    kept, skipped = build_records(table, policy, conflict_key)
    records, duplicates = dedupe_by_key((record for _, record in kept), conflict_key)
    if duplicates:
        logger.info("table=%s %d duplicate %r values in file; last occurrence kept", table_name, duplicates, conflict_key)

    keys = [_key_text(r[conflict_key]) for r in records]
    existing = fetch_existing_rows(destination, table_name, conflict_key, keys, batch_size)

    new: list[dict[str, Any]] = []
    update: list[RecordUpdate] = []
    unchanged: list[dict[str, Any]] = []
    for key_value, record in zip(keys, records, strict=True):
        current = existing.get(key_value)
        if current is None:
            new.append(record)
        elif _differs(record, current, policy):
            update.append(RecordUpdate(record=record, existing=current))
        else:
            unchanged.append(record)

    analysis = RecordAnalysis(
        table=table_name,
        conflict_key=conflict_key,
        new=new,
        update=update,
        unchanged=unchanged,
        skipped_count=skipped,
        duplicate_count=duplicates,
    )
    logger.info(
        "analysis table=%s new=%d update=%d unchanged=%d skipped=%d duplicates=%d",
        table_name,
        len(new),
        len(update),
        len(unchanged),
        skipped,
        duplicates,
    )
    return analysis


def sync_records(
    destination: Destination,
    analysis: RecordAnalysis,
    mode: SyncMode = SyncMode.ALL,
    *,
    error_log: BatchErrorLog | None = None,
    show_progress: bool = True,
) -> BatchOutcome:
    """Upsert the records of the chosen group.

    ``skipped_count`` of the outcome counts every file record that was not
    sent: missing key, replaced duplicates, unchanged and the group not chosen.
    """
    records = analysis.records_for(mode)
    not_sent = analysis.total - len(records)
    return write_records(
        destination,
        analysis.table,
        list(enumerate(records, start=1)),
        analysis.conflict_key,
        skipped_count=analysis.skipped_count + analysis.duplicate_count + not_sent,
        error_log=error_log,
        show_progress=show_progress,
    )

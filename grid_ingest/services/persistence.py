from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..db.destination import Destination
from ..db.errors import ErrorKind, WriteError, classify_write_error
from ..logging.error_log import BatchErrorLog
from ..models.batch_outcome import BatchOutcome, RowError
from ..models.table import MaterializedTable
from .coercion import CoercionPolicy, coerce_row
from .progress import RecordProgress

"""Resilient batch persistence: MaterializedTable -> destination table.

Records are coerced, filtered on the conflict key, then written one at a time
in table order. A failing record is classified and reported; it never stops
the records after it. The returned BatchOutcome is the full account of the
run: every written record and every failure with its reason.
"""

__all__ = [
    "persist_table",
    "write_records",
    "build_records",
    "NOT_CONFIGURED_MESSAGE",
]

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Destination store is not configured; no records were written."


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def build_records(
    table: MaterializedTable,
    policy: CoercionPolicy,
    conflict_key: str | None = None,
) -> tuple[list[tuple[int, dict[str, Any]]], int]:
    """Coerce every row and drop records that lack the conflict key.

    Returns:
        ([(table_row_number, record), ...], skipped_count); row numbers are
        1-based positions in ``table.rows``
    """
    kept: list[tuple[int, dict[str, Any]]] = []
    skipped = 0
    for index, row in enumerate(table.rows, start=1):
        record = coerce_row(table.headers, row, policy)
        if conflict_key and _is_missing(record.get(conflict_key)):
            skipped += 1
            continue
        kept.append((index, record))
    return kept, skipped


def _record_identifier(record: dict[str, Any], row_number: int, conflict_key: str | None) -> str:
    if conflict_key:
        return str(record.get(conflict_key))
    return f"row {row_number}"


def write_records(
    destination: Destination,
    table_name: str,
    records: Sequence[tuple[int, dict[str, Any]]],
    conflict_key: str | None = None,
    *,
    skipped_count: int = 0,
    error_log: BatchErrorLog | None = None,
    show_progress: bool = True,
) -> BatchOutcome:
    """Write already coerced records one by one and report every outcome.

    Upsert on ``conflict_key`` when given, plain insert otherwise.
    """
    processed = 0
    errors: list[RowError] = []
    successful: list[dict[str, Any]] = []

    with RecordProgress(len(records), description=f"Writing {table_name}", enabled=show_progress) as progress:
        for row_number, record in records:
            try:
                if conflict_key:
                    destination.upsert(table_name, record, conflict_key)
                else:
                    destination.insert(table_name, record)
            except WriteError as e:
                kind, message = classify_write_error(e, table_name, conflict_key)
                identifier = _record_identifier(record, row_number, conflict_key)
                errors.append(RowError(record_identifier=identifier, message=message, error_type=kind.value))
                logger.warning("table=%s record=%s %s: %s", table_name, identifier, kind.value, e.message)
                if error_log is not None:
                    error_log.record_failure(identifier, kind.value, e.message)
                progress.advance(False)
                continue
            except Exception as e:
                # unexpected collaborator failure: report against the record, keep going
                identifier = _record_identifier(record, row_number, conflict_key)
                errors.append(RowError(record_identifier=identifier, message=str(e), error_type=ErrorKind.UNKNOWN.value))
                logger.exception("table=%s record=%s unexpected write failure", table_name, identifier)
                if error_log is not None:
                    error_log.record_failure(identifier, "UNEXPECTED_ERROR", str(e))
                progress.advance(False)
                continue
            processed += 1
            successful.append(record)
            progress.advance(True)

    logger.debug(
        "table=%s conflict_key=%s attempted=%d processed=%d errors=%d skipped=%d",
        table_name,
        conflict_key,
        len(records),
        processed,
        len(errors),
        skipped_count,
    )
    return BatchOutcome(
        success=not errors,
        message=f"Processed: {processed}, Errors: {len(errors)}",
        processed_count=processed,
        error_count=len(errors),
        errors=errors,
        successful_records=successful,
        skipped_count=skipped_count,
    )


def persist_table(
    destination: Destination | None,
    table_name: str,
    table: MaterializedTable,
    conflict_key: str | None = None,
    *,
    policy: CoercionPolicy | None = None,
    error_log: BatchErrorLog | None = None,
    show_progress: bool = True,
) -> BatchOutcome:
    """Write a materialized table record by record.

    Args:
        destination: insert/upsert collaborator; None means not configured
        table_name: destination table
        table: rows to write
        conflict_key: natural key for upsert; records without it are skipped
        policy: coercion rules (built-in table when None)
        error_log: optional per-batch log receiving one entry per failure
        show_progress: tqdm bar when stdout is a TTY

    Returns:
        BatchOutcome; ``success`` is True only if no record failed
    """
    conflict_key = conflict_key or None
    if destination is None:
        logger.error("table=%s destination not configured; %d records not written", table_name, len(table.rows))
        if error_log is not None:
            error_log.batch_failure("DESTINATION_NOT_CONFIGURED", NOT_CONFIGURED_MESSAGE)
        return BatchOutcome(
            success=False,
            message=NOT_CONFIGURED_MESSAGE,
            processed_count=0,
            error_count=len(table.rows),
        )

    if not table.is_rectangular():
        message = "Invalid data: every row must have one value per header."
        logger.error("table=%s %s", table_name, message)
        return BatchOutcome(success=False, message=message, processed_count=0, error_count=0)

    policy = policy or CoercionPolicy()
    if conflict_key and conflict_key not in table.headers:
        logger.warning(
            "table=%s conflict key %r is not a table header; every record will be skipped",
            table_name,
            conflict_key,
        )
    records, skipped = build_records(table, policy, conflict_key)
    if skipped:
        logger.info("table=%s skipped %d records without conflict key %r", table_name, skipped, conflict_key)

    return write_records(
        destination,
        table_name,
        records,
        conflict_key,
        skipped_count=skipped,
        error_log=error_log,
        show_progress=show_progress,
    )

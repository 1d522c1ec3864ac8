from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the per-record error log.

One ErrorRecord is written (as a JSON Lines entry) for every record the
destination rejected, and one for a batch that could not start at all
(``record="<BATCH>"``). The key set is fixed; see
grid_ingest/logging/error_log_schema.json.
"""

__all__ = [
    "ErrorRecord",
    "BATCH_LEVEL",
]

BATCH_LEVEL = "<BATCH>"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: input file name (or ``<memory>`` when the table was built in code)
        table: destination table name
        record: record identifier, ``<BATCH>`` for batch-level failures
        error_type: error classification in UPPER_SNAKE_CASE format
        db_message: raw destination message
    """
    timestamp: str  # ISO8601 UTC
    source: str
    table: str
    record: str
    error_type: str  # UPPER_SNAKE
    db_message: str

    @staticmethod
    def create(source: str, table: str, record: str, error_type: str, db_message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            table=table,
            record=record,
            error_type=error_type,
            db_message=db_message,
        )

    def to_json_line(self) -> str:
        """Serialize to one JSON Lines entry (no extra keys)."""
        return json.dumps(asdict(self), ensure_ascii=False)

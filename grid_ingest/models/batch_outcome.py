from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""BatchOutcome model: the per-record report returned after a persistence run.

A BatchOutcome is created once per persist_table() call and never mutated
afterwards. A batch with mixed results has ``success=False`` but still carries
every record that was written.
"""

__all__ = [
    "RowError",
    "BatchOutcome",
]


@dataclass(frozen=True)
class RowError:
    """One failed record.

    Attributes:
        record_identifier: conflict-key value, or ``row <n>`` (1-based table row)
        message: operator-facing explanation
        error_type: classification in UPPER_SNAKE_CASE (see db.errors.ErrorKind)
    """
    record_identifier: str
    message: str
    error_type: str = "UNKNOWN"

    def to_dict(self) -> dict[str, str]:
        return {
            "recordIdentifier": self.record_identifier,
            "message": self.message,
            "errorType": self.error_type,
        }


@dataclass(frozen=True)
class BatchOutcome:
    success: bool
    message: str
    processed_count: int
    error_count: int
    errors: list[RowError] = field(default_factory=list)
    successful_records: list[dict[str, Any]] = field(default_factory=list)
    skipped_count: int = 0  # excluded before writing (missing conflict key)

    @property
    def attempted_count(self) -> int:
        return self.processed_count + len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """camelCase view for JSON output."""
        return {
            "success": self.success,
            "message": self.message,
            "processedCount": self.processed_count,
            "errorCount": self.error_count,
            "skippedCount": self.skipped_count,
            "errors": [e.to_dict() for e in self.errors],
            "successfulRecords": list(self.successful_records),
        }

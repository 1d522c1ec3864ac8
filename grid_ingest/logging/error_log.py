from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import BATCH_LEVEL, ErrorRecord

"""Per-batch error log (JSON Lines).

A BatchErrorLog belongs to one destination table and one input source. It
collects an ErrorRecord for every rejected record and writes them to
``logs/errors-<table>-YYYYMMDD-HHMMSS.log``, so two tables ingested by the
same process never share a file.
"""

__all__ = [
    "BatchErrorLog",
    "LOGS_DIR",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

_UNSAFE_CHARS = str.maketrans({c: "_" for c in '/\\:*?"<>| '})


class BatchErrorLog:
    """Failures of one batch, written on flush().

    Nothing touches the filesystem until there is at least one failure.
    """

    def __init__(self, table: str, source: str = "<memory>", logs_dir: Path | None = None) -> None:
        self.table = table
        self.source = source
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{self.table.translate(_UNSAFE_CHARS)}-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def record_failure(self, identifier: str, error_type: str, db_message: str) -> ErrorRecord:
        rec = ErrorRecord.create(self.source, self.table, identifier, error_type, db_message)
        self._records.append(rec)
        return rec

    def batch_failure(self, error_type: str, message: str) -> ErrorRecord:
        """The batch could not start; logged against ``<BATCH>``."""
        return self.record_failure(BATCH_LEVEL, error_type, message)

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records; returns the log path, or None if nothing was pending."""
        if not self._records:
            return None
        fp = self.file_path
        fp.parent.mkdir(parents=True, exist_ok=True)
        with fp.open("a", encoding="utf-8") as f:
            f.writelines(r.to_json_line() + "\n" for r in self._records)
        self._records.clear()
        return fp

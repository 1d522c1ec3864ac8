from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Destination read/write errors and the operator-facing classification of write errors.

Classification looks at the SQLSTATE first and falls back to the message text
(the destination may be a proxy that only forwards messages). Anything
unrecognized keeps the collaborator's raw message.
"""

__all__ = [
    "WriteError",
    "FetchError",
    "ErrorKind",
    "classify_write_error",
]


class WriteError(Exception):
    """Raised by a Destination when one insert/upsert call fails.

    Attributes mirror psycopg2's ``pgcode`` / ``diag`` fields; any of them may
    be None when the destination cannot provide them.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        column: str | None = None,
        constraint: str | None = None,
        table: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.column = column
        self.constraint = constraint
        self.table = table


class FetchError(Exception):
    """Raised by a Destination when existing rows cannot be read back."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ErrorKind(Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    CONFLICT_TARGET_NOT_UNIQUE = "CONFLICT_TARGET_NOT_UNIQUE"
    DUPLICATE_IN_BATCH = "DUPLICATE_IN_BATCH"
    NOT_NULL_VIOLATION = "NOT_NULL_VIOLATION"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class _Rule:
    kind: ErrorKind
    codes: tuple[str, ...]
    fragments: tuple[str, ...]


# Order matters: 42P10 must be checked before the generic duplicate rule.
_RULES: tuple[_Rule, ...] = (
    _Rule(ErrorKind.PERMISSION_DENIED, ("42501",), ("permission denied", "row-level security")),
    _Rule(
        ErrorKind.CONFLICT_TARGET_NOT_UNIQUE,
        ("42P10",),
        ("no unique or exclusion constraint matching the on conflict",),
    ),
    _Rule(ErrorKind.DUPLICATE_IN_BATCH, ("21000",), ("cannot affect row a second time",)),
    _Rule(ErrorKind.DUPLICATE_KEY, ("23505",), ("duplicate key",)),
    _Rule(ErrorKind.NOT_NULL_VIOLATION, ("23502",), ("not-null", "null value in column")),
    _Rule(ErrorKind.FOREIGN_KEY_VIOLATION, ("23503",), ("foreign key",)),
)


def _kind_of(error: WriteError) -> ErrorKind:
    if error.code:
        for rule in _RULES:
            if error.code in rule.codes:
                return rule.kind
    text = (error.message or "").lower()
    for rule in _RULES:
        if any(fragment in text for fragment in rule.fragments):
            return rule.kind
    return ErrorKind.UNKNOWN


def classify_write_error(
    error: WriteError, table: str, conflict_key: str | None = None
) -> tuple[ErrorKind, str]:
    """Map a WriteError to (kind, operator-facing message)."""
    kind = _kind_of(error)
    target = error.table or table
    if kind is ErrorKind.PERMISSION_DENIED:
        return kind, f"Permission denied (RLS/policy): table '{target}' does not allow writes."
    if kind is ErrorKind.CONFLICT_TARGET_NOT_UNIQUE:
        return kind, (
            f"Conflict key '{conflict_key}' is not backed by a unique constraint on table "
            f"'{target}'; upsert cannot match existing records."
        )
    if kind is ErrorKind.DUPLICATE_IN_BATCH:
        return kind, (
            "Duplicate identifier in the same batch: the file contains several records "
            "with the same key. Remove the duplicates and retry."
        )
    if kind is ErrorKind.DUPLICATE_KEY:
        if conflict_key:
            return kind, f"Duplicate conflict on key '{conflict_key}' in table '{target}'."
        constraint = f" ({error.constraint})" if error.constraint else ""
        return kind, f"Duplicate record: a row with the same unique value already exists{constraint}."
    if kind is ErrorKind.NOT_NULL_VIOLATION:
        if error.column:
            return kind, f"Required column '{error.column}' of table '{target}' is empty."
        return kind, f"A required column of table '{target}' is empty."
    if kind is ErrorKind.FOREIGN_KEY_VIOLATION:
        return kind, "Reference error: the record points to a value that does not exist in the master tables."
    return kind, error.message or "Unknown error while saving the record."

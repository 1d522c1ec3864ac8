from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""MaterializedTable: the hand-off artifact between extraction and persistence."""

__all__ = [
    "MaterializedTable",
]


@dataclass(frozen=True)
class MaterializedTable:
    """Canonical header + rows table.

    Every row has exactly ``len(headers)`` cells; cells the selection did not
    cover hold ``""``.
    """
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def is_rectangular(self) -> bool:
        width = len(self.headers)
        return all(len(r) == width for r in self.rows)

    def to_records(self) -> list[dict[str, str]]:
        return [dict(zip(self.headers, row, strict=True)) for row in self.rows]

    def to_dict(self) -> dict[str, Any]:
        return {"headers": list(self.headers), "rows": [list(r) for r in self.rows]}

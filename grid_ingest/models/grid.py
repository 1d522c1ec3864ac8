from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import pandas as pd

from .cell import CellCoordinate

"""RawGrid model: the parsed tabular input of one extraction session.

The first row is the header row used for label lookups. Rows are padded to the
width of the widest row so that every coordinate inside (row_count, col_count)
resolves to a string.
"""

__all__ = [
    "RawGrid",
]


@dataclass(frozen=True)
class RawGrid:
    """Immutable rectangular grid of string cells."""
    rows: tuple[tuple[str, ...], ...]

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[object]]) -> RawGrid:
        """Build a grid from ragged rows, padding short rows with ``""``.

        pandas pads ragged input with None when building the frame, which is
        then replaced by the empty string.
        """
        rows_list = [list(r) for r in rows]
        if not rows_list:
            return cls(rows=())
        df = pd.DataFrame(rows_list, dtype=object)
        df = df.where(df.notna(), "")
        normalized = tuple(
            tuple(str(v) for v in record) for record in df.itertuples(index=False, name=None)
        )
        return cls(rows=normalized)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def col_count(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    @property
    def header_row(self) -> tuple[str, ...]:
        return self.rows[0] if self.rows else ()

    def in_bounds(self, coord: CellCoordinate) -> bool:
        return 0 <= coord.row < self.row_count and 0 <= coord.col < self.col_count

    def cell(self, row: int, col: int) -> str:
        """Value at (row, col); out-of-bounds reads return ``""``."""
        if 0 <= row < self.row_count and 0 <= col < self.col_count:
            return self.rows[row][col]
        return ""

    def header_label(self, col: int) -> str:
        """Header-row text for a column, or ``Column <letter>`` when blank.

        A synthesized label never equals real header text: if the header row
        already holds ``Column B``, a blank column B becomes ``Column B (2)``.
        """
        from ..grid.addressing import index_to_column_letter

        label = self.cell(0, col).strip()
        if label:
            return label
        base = f"Column {index_to_column_letter(col)}"
        taken = {h.strip() for h in self.header_row}
        label, n = base, 2
        while label in taken:
            label = f"{base} ({n})"
            n += 1
        return label

    def is_blank_row(self, row: int) -> bool:
        if not 0 <= row < self.row_count:
            return True
        return all(v.strip() == "" for v in self.rows[row])

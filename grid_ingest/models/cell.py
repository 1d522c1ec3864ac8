from __future__ import annotations

from dataclasses import dataclass

"""Cell coordinate models.

Coordinates are zero-based on both axes. The authored form (``A7``) is
1-based for rows; conversion happens in grid.addressing.
"""

__all__ = [
    "CellCoordinate",
    "CellRange",
]


@dataclass(frozen=True, order=True)
class CellCoordinate:
    """A single grid cell (zero-based row, zero-based column)."""
    row: int
    col: int


@dataclass(frozen=True)
class CellRange:
    """Rectangular block of cells, inclusive on both ends.

    Always normalized so that ``col_start <= col_end`` and
    ``row_start <= row_end`` (see parse_range_reference).
    """
    col_start: int
    col_end: int
    row_start: int
    row_end: int

    def coordinates(self) -> list[CellCoordinate]:
        """Row-major expansion of the block (unclipped)."""
        return [
            CellCoordinate(row=r, col=c)
            for r in range(self.row_start, self.row_end + 1)
            for c in range(self.col_start, self.col_end + 1)
        ]

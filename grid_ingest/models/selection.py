from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from .cell import CellCoordinate

"""Selection specs: the four addressing modes an operator can use.

- RangeSpec: explicit rectangle (1-based rows, column letters as authored)
- ItemListSpec: comma separated cells / sub-ranges, e.g. ``"A1, C10-C20"``
- ManualSelection: click-built set of coordinates with toggle semantics
- FieldMappingSpec: field name -> starting cell, rows extend downward
"""

__all__ = [
    "RangeSpec",
    "ItemListSpec",
    "ManualSelection",
    "FieldMappingSpec",
    "SelectionSpec",
]


@dataclass(frozen=True)
class RangeSpec:
    """Explicit rectangular range as typed by the operator.

    ``row_end`` of 0 or an empty ``col_end`` means "not set yet" and resolves
    to an empty selection.
    """
    row_start: int
    row_end: int
    col_start: str
    col_end: str


@dataclass(frozen=True)
class ItemListSpec:
    """Free-text list of single cells and ranges, comma separated."""
    expression: str

    def tokens(self) -> list[str]:
        return [t.strip().upper() for t in self.expression.split(",") if t.strip()]


class ManualSelection:
    """Mutable set of clicked coordinates.

    Keeps insertion order so the first-seen header order of the materialized
    table follows the order the operator clicked in. Only in-bounds clicks are
    stored when a bounds shape is given.
    """

    def __init__(self, row_count: int | None = None, col_count: int | None = None) -> None:
        self._cells: dict[CellCoordinate, None] = {}
        self.row_count = row_count
        self.col_count = col_count

    def _accepts(self, coord: CellCoordinate) -> bool:
        if coord.row < 0 or coord.col < 0:
            return False
        if self.row_count is not None and coord.row >= self.row_count:
            return False
        if self.col_count is not None and coord.col >= self.col_count:
            return False
        return True

    def toggle(self, row: int, col: int) -> bool:
        """Add the cell if absent, remove it if present.

        Returns True when the cell is selected after the call.
        """
        coord = CellCoordinate(row=row, col=col)
        if coord in self._cells:
            del self._cells[coord]
            return False
        if not self._accepts(coord):
            return False
        self._cells[coord] = None
        return True

    def add(self, row: int, col: int) -> None:
        coord = CellCoordinate(row=row, col=col)
        if self._accepts(coord):
            self._cells.setdefault(coord, None)

    def remove(self, row: int, col: int) -> None:
        self._cells.pop(CellCoordinate(row=row, col=col), None)

    def clear(self) -> None:
        self._cells.clear()

    @property
    def coordinates(self) -> list[CellCoordinate]:
        return list(self._cells)

    def __contains__(self, coord: object) -> bool:
        return coord in self._cells

    def __iter__(self) -> Iterator[CellCoordinate]:
        return iter(list(self._cells))

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:  # pragma: no cover (debug aid)
        return f"ManualSelection({self.coordinates!r})"


@dataclass(frozen=True)
class FieldMappingSpec:
    """Semantic field name -> authored starting cell (``"A7"``).

    Fields with an empty starting cell are ignored by the extractor. Dict
    order is the declaration order and becomes the header order.
    """
    assignments: Mapping[str, str] = field(default_factory=dict)

    def assigned(self) -> list[tuple[str, str]]:
        return [
            (name, (cell or "").strip().upper())
            for name, cell in self.assignments.items()
            if (cell or "").strip()
        ]


SelectionSpec = RangeSpec | ItemListSpec | ManualSelection | FieldMappingSpec

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models.cell import CellCoordinate
from ..models.grid import RawGrid
from ..models.selection import FieldMappingSpec, ItemListSpec, ManualSelection, RangeSpec
from ..models.table import MaterializedTable
from .field_mapping import extract_records, records_to_table
from .selection import resolve_selection

"""Table materializer: selected coordinates -> MaterializedTable.

Column identity is the header label (header-row text, or ``Column <letter>``
when blank), in first-encounter order across the selection. Every emitted row
carries every header; cells a row did not select are ``""``.
"""

__all__ = [
    "materialize",
    "extract_table",
]

logger = logging.getLogger(__name__)


def materialize(grid: RawGrid, coordinates: Sequence[CellCoordinate]) -> MaterializedTable:
    """Build the canonical table for a resolved selection.

    Coordinates outside the grid are ignored. Rows come out in ascending grid
    order. When two grid columns share a label they form one output column and
    the first selected one (in selection order) supplies the row's value.
    """
    coords = [c for c in dict.fromkeys(coordinates) if grid.in_bounds(c)]
    if not coords:
        return MaterializedTable(headers=[], rows=[])

    labels: dict[int, str] = {}
    headers: list[str] = []
    seen: set[str] = set()
    by_row: dict[int, dict[str, int]] = {}
    for coord in coords:
        label = labels.get(coord.col)
        if label is None:
            label = grid.header_label(coord.col)
            labels[coord.col] = label
        if label not in seen:
            seen.add(label)
            headers.append(label)
        row_cols = by_row.setdefault(coord.row, {})
        row_cols.setdefault(label, coord.col)

    rows: list[list[str]] = []
    for row_index in sorted(by_row):
        selected = by_row[row_index]
        rows.append([
            grid.cell(row_index, selected[h]) if h in selected else ""
            for h in headers
        ])
    return MaterializedTable(headers=headers, rows=rows)


def extract_table(
    grid: RawGrid, spec: RangeSpec | ItemListSpec | ManualSelection | FieldMappingSpec
) -> MaterializedTable:
    """Resolve any selection mode into a MaterializedTable.

    Raises:
        FieldMappingError: invalid field mapping (input-shape error)
    """
    if isinstance(spec, FieldMappingSpec):
        records = extract_records(grid, spec)
        table = records_to_table(records, [name for name, _ in spec.assigned()])
    else:
        table = materialize(grid, resolve_selection(spec, grid))
    if table.is_empty:
        logger.info("selection resolved to no data (mode=%s)", type(spec).__name__)
    return table

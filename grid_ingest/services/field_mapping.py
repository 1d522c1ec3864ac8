from __future__ import annotations

import logging

from ..grid.addressing import parse_cell_reference
from ..models.grid import RawGrid
from ..models.selection import FieldMappingSpec
from ..models.table import MaterializedTable

"""Field-mapping extractor.

Each named field gets a starting cell; its column is fixed and rows extend
downward from the topmost assigned row to the end of the grid. Fully blank
rows are skipped, not treated as the end of the data: exports often carry
stray separator rows.
"""

__all__ = [
    "FieldMappingError",
    "extract_records",
    "records_to_table",
]

logger = logging.getLogger(__name__)


class FieldMappingError(Exception):
    """Operator-facing validation error for a field mapping."""


def extract_records(grid: RawGrid, spec: FieldMappingSpec) -> list[dict[str, str]]:
    """Walk the grid from the topmost mapped row and emit one record per populated row.

    Raises:
        FieldMappingError: no field has a starting cell, or a starting cell is
            not in ``A7`` form
    """
    assigned = spec.assigned()
    if not assigned:
        raise FieldMappingError("Incomplete mapping: set the starting cell for at least one field.")

    columns: list[tuple[str, int]] = []
    start_rows: list[int] = []
    invalid: list[str] = []
    for name, cell_text in assigned:
        coord = parse_cell_reference(cell_text)
        if coord is None:
            invalid.append(f"{name}={cell_text!r}")
            continue
        columns.append((name, coord.col))
        start_rows.append(coord.row)
    if invalid:
        raise FieldMappingError(
            f"Invalid cell format for {', '.join(invalid)}; use a reference like A7 or B12."
        )

    start_row = min(start_rows)
    records: list[dict[str, str]] = []
    for row_index in range(start_row, grid.row_count):
        if grid.is_blank_row(row_index):
            continue
        record: dict[str, str] = {}
        has_data = False
        for name, col in columns:
            value = grid.cell(row_index, col).strip()
            record[name] = value
            if value:
                has_data = True
        if has_data:
            records.append(record)
    logger.debug(
        "field mapping: fields=%s start_row=%d records=%d", [n for n, _ in columns], start_row + 1, len(records)
    )
    return records


def records_to_table(records: list[dict[str, str]], field_names: list[str]) -> MaterializedTable:
    """Records -> MaterializedTable with the field names as headers, in order."""
    headers = list(dict.fromkeys(field_names))
    rows = [[r.get(h, "") for h in headers] for r in records]
    return MaterializedTable(headers=headers, rows=rows)

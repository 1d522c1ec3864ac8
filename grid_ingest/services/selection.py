from __future__ import annotations

import logging

from ..grid.addressing import column_letter_to_index, parse_cell_reference, parse_range_reference
from ..models.cell import CellCoordinate, CellRange
from ..models.grid import RawGrid
from ..models.selection import FieldMappingSpec, ItemListSpec, ManualSelection, RangeSpec

"""Selection resolver: SelectionSpec + RawGrid -> ordered, deduplicated coordinates.

Every returned coordinate is inside the grid. Out-of-bounds parts of a
selection are clipped or dropped, never reported as errors; an empty result is
a valid state (empty preview).

Field-mapping selections are not rectangles and are handled by
services.field_mapping instead.
"""

__all__ = [
    "SelectionError",
    "resolve_range",
    "resolve_items",
    "resolve_manual",
    "resolve_selection",
]

logger = logging.getLogger(__name__)


class SelectionError(Exception):
    """Raised when a spec cannot be resolved into a coordinate set."""


def _dedupe(coords: list[CellCoordinate]) -> list[CellCoordinate]:
    return list(dict.fromkeys(coords))


def _clip(block: CellRange, grid: RawGrid) -> CellRange | None:
    """Clip a block to the grid; None when nothing of it remains."""
    if grid.row_count == 0 or grid.col_count == 0:
        return None
    row_start = max(block.row_start, 0)
    row_end = min(block.row_end, grid.row_count - 1)
    col_start = max(block.col_start, 0)
    col_end = min(block.col_end, grid.col_count - 1)
    if row_start > row_end or col_start > col_end:
        return None
    return CellRange(col_start=col_start, col_end=col_end, row_start=row_start, row_end=row_end)


def resolve_range(spec: RangeSpec, grid: RawGrid) -> list[CellCoordinate]:
    """Resolve an explicit range. Unlike typed item ranges this is not reordered:
    a start after its end on either axis yields nothing.
    """
    if not spec.row_end or not (spec.col_end or "").strip():
        return []
    col_start = column_letter_to_index((spec.col_start or "").strip().upper())
    col_end = column_letter_to_index(spec.col_end.strip().upper())
    if col_start < 0 or col_end < 0:
        return []
    block = CellRange(
        col_start=col_start,
        col_end=col_end,
        row_start=spec.row_start - 1,
        row_end=spec.row_end - 1,
    )
    clipped = _clip(block, grid)
    if clipped is None:
        return []
    return clipped.coordinates()


def resolve_items(spec: ItemListSpec, grid: RawGrid) -> list[CellCoordinate]:
    """Resolve ``"A1, B2-B9, ZZ1"``; malformed tokens are skipped."""
    coords: list[CellCoordinate] = []
    for token in spec.tokens():
        block = parse_range_reference(token)
        if block is not None:
            clipped = _clip(block, grid)
            if clipped is not None:
                coords.extend(clipped.coordinates())
            continue
        cell = parse_cell_reference(token)
        if cell is None:
            logger.debug("selection: dropping malformed item %r", token)
            continue
        if grid.in_bounds(cell):
            coords.append(cell)
    return _dedupe(coords)


def resolve_manual(selection: ManualSelection, grid: RawGrid) -> list[CellCoordinate]:
    # the set only ever holds in-bounds clicks; filtering again covers a grid swap
    return [c for c in selection.coordinates if grid.in_bounds(c)]


def resolve_selection(
    spec: RangeSpec | ItemListSpec | ManualSelection, grid: RawGrid
) -> list[CellCoordinate]:
    """Dispatch on the addressing mode."""
    if isinstance(spec, RangeSpec):
        return resolve_range(spec, grid)
    if isinstance(spec, ItemListSpec):
        return resolve_items(spec, grid)
    if isinstance(spec, ManualSelection):
        return resolve_manual(spec, grid)
    if isinstance(spec, FieldMappingSpec):
        raise SelectionError("field mappings extend downward; use extract_records() instead")
    raise SelectionError(f"unsupported selection type: {type(spec).__name__}")

from __future__ import annotations

import re

from ..models.cell import CellCoordinate, CellRange

"""Spreadsheet cell addressing.

Column labels are bijective base-26 (A..Z, AA..ZZ, AAA..). Internally every
index is zero-based: ``A -> 0``, ``Z -> 25``, ``AA -> 26``; authored row
numbers are 1-based (``A7`` is row index 6).

Invalid input never raises here. Callers run these functions inside filtering
pipelines, so failures are reported as ``-1`` / ``None`` and the caller drops
the entry.
"""

__all__ = [
    "column_letter_to_index",
    "index_to_column_letter",
    "parse_cell_reference",
    "parse_range_reference",
]

_LETTERS_RE = re.compile(r"^[A-Z]+$")
_CELL_RE = re.compile(r"^([A-Z]+)(\d+)$")
_RANGE_RE = re.compile(r"^([A-Z]+\d+)-([A-Z]+\d+)$")


def column_letter_to_index(letters: str) -> int:
    """Convert column letters to a zero-based index (A->0, AA->26).

    Uppercase only; lower-case input must be normalized by the caller.
    Returns -1 for empty or non A-Z input.
    """
    if not letters or not _LETTERS_RE.match(letters):
        return -1
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def index_to_column_letter(index: int) -> str:
    """Convert a zero-based column index to letters (0->A, 26->AA).

    Negative indices have no label and return ``""``.
    """
    out = []
    x = index
    while x >= 0:
        out.append(chr(ord("A") + x % 26))
        x = x // 26 - 1
    return "".join(reversed(out))


def parse_cell_reference(text: str) -> CellCoordinate | None:
    """Parse ``A7`` into CellCoordinate(row=6, col=0).

    Anything other than letters immediately followed by digits is rejected,
    as is row 0.
    """
    m = _CELL_RE.match(text or "")
    if not m:
        return None
    row_number = int(m.group(2))
    if row_number < 1:
        return None
    return CellCoordinate(row=row_number - 1, col=column_letter_to_index(m.group(1)))


def parse_range_reference(text: str) -> CellRange | None:
    """Parse ``C10-C20`` into a normalized CellRange.

    Ranges typed backwards (``C20-A10``) are normalized so start <= end on
    both axes.
    """
    m = _RANGE_RE.match(text or "")
    if not m:
        return None
    a = parse_cell_reference(m.group(1))
    b = parse_cell_reference(m.group(2))
    if a is None or b is None:
        return None
    return CellRange(
        col_start=min(a.col, b.col),
        col_end=max(a.col, b.col),
        row_start=min(a.row, b.row),
        row_end=max(a.row, b.row),
    )

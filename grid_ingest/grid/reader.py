from __future__ import annotations

import re
from pathlib import Path

import pandas as pd

from ..models.grid import RawGrid

"""Grid reader: delimited text or Excel workbook -> RawGrid.

Text input is split line by line and field by field on the delimiter; there is
no quote handling. The first remaining line is the header row. Rows made only
of whitespace are dropped here, before any selection runs.

Excel input goes through pandas (openpyxl engine) with every cell read as text.
"""

__all__ = [
    "GridReadError",
    "parse_grid_text",
    "read_grid",
    "TEXT_SUFFIXES",
    "EXCEL_SUFFIXES",
]

TEXT_SUFFIXES = {".csv", ".txt", ".tsv"}
EXCEL_SUFFIXES = {".xlsx", ".xlsm"}

_LINE_SPLIT_RE = re.compile(r"\r\n|\n|\r")


class GridReadError(Exception):
    """Raised when the input file cannot be turned into a grid."""


def _drop_blank(rows: list[list[str]]) -> list[list[str]]:
    return [r for r in rows if any(cell.strip() != "" for cell in r)]


def parse_grid_text(
    text: str,
    delimiter: str = ",",
    skip_blank_rows: bool = True,
    skip_header_lines: int = 0,
) -> RawGrid:
    """Split delimited text into a RawGrid.

    Parameters
    ----------
    text: file contents (a leading BOM is ignored)
    delimiter: field separator, "," by default
    skip_blank_rows: drop rows whose cells are all whitespace
    skip_header_lines: number of leading lines (report banners) discarded
        before the header row
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = _LINE_SPLIT_RE.split(text)
    # trailing newline produces one empty line
    if lines and lines[-1] == "":
        lines.pop()
    if skip_header_lines > 0:
        lines = lines[skip_header_lines:]
    rows = [line.split(delimiter) for line in lines]
    if skip_blank_rows:
        rows = _drop_blank(rows)
    return RawGrid.from_rows(rows)


def _read_excel_grid(path: Path, sheet: str | None, skip_blank_rows: bool, skip_header_lines: int) -> RawGrid:
    try:
        xls = pd.ExcelFile(path)
    except Exception as e:
        raise GridReadError(f"cannot open workbook {path.name}: {e}") from e
    if sheet is None:
        name = xls.sheet_names[0]
    elif sheet in xls.sheet_names:
        name = sheet
    else:
        raise GridReadError(f"sheet '{sheet}' not found in {path.name} (available: {xls.sheet_names})")
    df = xls.parse(name, header=None, dtype=str, keep_default_na=False)
    df = df.fillna("")
    rows = [[str(v) for v in record] for record in df.itertuples(index=False, name=None)]
    if skip_header_lines > 0:
        rows = rows[skip_header_lines:]
    if skip_blank_rows:
        rows = _drop_blank(rows)
    return RawGrid.from_rows(rows)


def read_grid(
    path: Path,
    sheet: str | None = None,
    delimiter: str = ",",
    skip_blank_rows: bool = True,
    skip_header_lines: int = 0,
) -> RawGrid:
    """Read a file into a RawGrid, choosing the parser by suffix.

    Raises:
        GridReadError: missing file, unsupported suffix, unreadable workbook
    """
    path = Path(path)
    if not path.exists():
        raise GridReadError(f"file not found: {path}")
    suffix = path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return _read_excel_grid(path, sheet, skip_blank_rows, skip_header_lines)
    if suffix in TEXT_SUFFIXES:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise GridReadError(f"cannot read {path.name}: {e}") from e
        if suffix == ".tsv" and delimiter == ",":
            delimiter = "\t"
        return parse_grid_text(
            text,
            delimiter=delimiter,
            skip_blank_rows=skip_blank_rows,
            skip_header_lines=skip_header_lines,
        )
    raise GridReadError(f"unsupported file type: {path.suffix or '<none>'}")

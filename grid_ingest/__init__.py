"""grid-ingest: spreadsheet-style cell selection and tolerant batch ingestion.

Typical flow::

    grid = read_grid(Path("ventas.csv"))
    table = extract_table(grid, ItemListSpec("A1, C2-C40"))
    outcome = persist_table(destination, "ml_sales", table, conflict_key="num_venta")
"""

from .grid.reader import read_grid, parse_grid_text
from .models import (
    BatchOutcome,
    FieldMappingSpec,
    ItemListSpec,
    ManualSelection,
    MaterializedTable,
    RangeSpec,
    RawGrid,
)
from .services.materialize import extract_table
from .services.persistence import persist_table

__version__ = "0.1.0"

__all__ = [
    "read_grid",
    "parse_grid_text",
    "RawGrid",
    "RangeSpec",
    "ItemListSpec",
    "ManualSelection",
    "FieldMappingSpec",
    "MaterializedTable",
    "BatchOutcome",
    "extract_table",
    "persist_table",
]

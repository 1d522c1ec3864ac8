"""Domain models for the grid extraction and ingestion pipeline.

RawGrid (parsed input) -> SelectionSpec (operator choice) -> MaterializedTable
(canonical table) -> BatchOutcome (persistence report).
"""

from .batch_outcome import BatchOutcome, RowError
from .cell import CellCoordinate, CellRange
from .error_record import ErrorRecord
from .grid import RawGrid
from .selection import FieldMappingSpec, ItemListSpec, ManualSelection, RangeSpec, SelectionSpec
from .table import MaterializedTable

__all__ = [
    # Input / addressing
    "RawGrid",
    "CellCoordinate",
    "CellRange",
    # Selection modes
    "RangeSpec",
    "ItemListSpec",
    "ManualSelection",
    "FieldMappingSpec",
    "SelectionSpec",
    # Output
    "MaterializedTable",
    "BatchOutcome",
    "RowError",
    "ErrorRecord",
]

from __future__ import annotations

from grid_ingest.models.cell import CellCoordinate as C
from grid_ingest.models.grid import RawGrid
from grid_ingest.models.selection import FieldMappingSpec, ItemListSpec, RangeSpec
from grid_ingest.services.materialize import extract_table, materialize


def test_range_selection_builds_rectangular_table(sales_grid):
    table = extract_table(sales_grid, RangeSpec(row_start=1, row_end=3, col_start="A", col_end="B"))
    assert table.headers == ["# de venta:", "SKU"]
    assert table.rows == [
        ["# de venta:", "SKU"],
        ["1001", "00A7"],
        ["1002", "00B3"],
    ]


def test_unselected_cells_are_blank_in_wider_rows(sales_grid):
    table = extract_table(sales_grid, ItemListSpec("A2, C2-C3"))
    assert table.headers == ["# de venta:", "Total (MXN)"]
    assert table.rows == [["1001", "1,250.50"], ["", "99"]]
    assert table.is_rectangular()


def test_blank_header_falls_back_to_column_letter():
    grid = RawGrid.from_rows([["id", "", "name"], ["1", "x", "Ana"]])
    table = materialize(grid, [C(1, 0), C(1, 1)])
    assert table.headers == ["id", "Column B"]
    assert table.rows == [["1", "x"]]


def test_empty_selection_gives_empty_table(sales_grid):
    table = extract_table(sales_grid, ItemListSpec("Z99, ???"))
    assert table.headers == [] and table.rows == []
    assert table.is_empty


def test_rows_follow_grid_order_regardless_of_selection_order(sales_grid):
    table = extract_table(sales_grid, ItemListSpec("B4, B2"))
    assert table.rows == [["00A7"], ["00C1"]]


def test_out_of_bounds_coordinates_are_ignored(sales_grid):
    table = materialize(sales_grid, [C(1, 1), C(40, 1), C(1, 40)])
    assert table.rows == [["00A7"]]


def test_duplicate_header_labels_share_one_column():
    grid = RawGrid.from_rows([["x", "x"], ["1", "2"], ["3", "4"]])
    table = materialize(grid, [C(1, 1), C(1, 0), C(2, 0)])
    assert table.headers == ["x"]
    # first selected column for the row supplies the value
    assert table.rows == [["2"], ["3"]]


def test_extraction_is_idempotent(sales_grid):
    spec = ItemListSpec("A1-D3, B5")
    first = extract_table(sales_grid, spec)
    second = extract_table(sales_grid, spec)
    assert first == second


def test_every_row_matches_header_width(sales_grid):
    for spec in (RangeSpec(1, 5, "A", "D"), ItemListSpec("D5, A2, C3-C4")):
        table = extract_table(sales_grid, spec)
        assert all(len(row) == len(table.headers) for row in table.rows)


def test_mapping_mode_headers_are_field_names(sales_grid):
    table = extract_table(sales_grid, FieldMappingSpec({"num_venta": "A2", "total": "C2", "unused": ""}))
    assert table.headers == ["num_venta", "total"]
    assert table.rows[0] == ["1001", "1,250.50"]
    assert len(table.rows) == 4


def test_to_records_and_to_dict(sales_grid):
    table = extract_table(sales_grid, RangeSpec(2, 2, "A", "B"))
    assert table.to_records() == [{"# de venta:": "1001", "SKU": "00A7"}]
    assert table.to_dict() == {"headers": ["# de venta:", "SKU"], "rows": [["1001", "00A7"]]}


def test_blank_header_label_does_not_collide_with_real_header_text():
    grid = RawGrid.from_rows([["Column B", ""], ["x", "y"]])
    table = materialize(grid, [C(1, 0), C(1, 1)])
    assert table.headers == ["Column B", "Column B (2)"]
    assert table.rows == [["x", "y"]]

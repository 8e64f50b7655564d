import io

from openpyxl import load_workbook

from core.enums import FontWeight, TextAlign
from core.models import CellStyle
from engine.export import export_csv, export_extent, export_xlsx
from engine.grid import Grid


def test_extent_has_minimum_block(grid):
    grid.set_cell("A1", "1")
    assert export_extent(grid) == (10, 6)


def test_extent_grows_with_content(grid):
    grid.set_cell("H12", "1")
    assert export_extent(grid) == (12, 8)


def test_extent_capped_by_grid():
    small = Grid(rows=3, cols=2)
    assert export_extent(small) == (3, 2)


def test_csv_uses_resolved_values(grid):
    grid.set_cell("A1", "5")
    grid.set_cell("B1", "=A1*2")
    grid.set_cell("C1", "=1/0")
    grid.set_cell("A2", "true")
    grid.set_cell("B2", "a, b")
    lines = export_csv(grid).splitlines()
    assert lines[0] == "5,10,#DIV/0!,,,"
    assert lines[1] == 'true,"a, b",,,,'
    assert lines[9] == ",,,,,"


def test_xlsx_values_and_styles(grid):
    grid.set_cell("A1", "5")
    grid.set_cell("B1", "=A1+0.5")
    grid.set_cell("C1", "2024-01-31")
    grid.set_style("A1", CellStyle(font_weight=FontWeight.BOLD, text_align=TextAlign.CENTER, background_color="#FFEE00"))
    grid.set_style("B1", CellStyle(color="red"))

    workbook = load_workbook(io.BytesIO(export_xlsx(grid, title="Results")))
    sheet = workbook.active
    assert sheet.title == "Results"
    assert sheet["A1"].value == 5
    assert sheet["B1"].value == 5.5
    assert sheet["C1"].value == "2024-01-31"
    assert sheet["A1"].font.bold is True
    assert sheet["A1"].alignment.horizontal == "center"
    assert sheet["A1"].fill.start_color.rgb.endswith("FFEE00")

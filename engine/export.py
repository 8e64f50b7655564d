"""CSV and XLSX export of resolved grid values."""

from __future__ import annotations

import csv
import io
import re
from typing import List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils.cell import get_column_letter

from config import settings
from core.enums import FontStyle, FontWeight
from core.models import CellStyle, CellValue
from engine.grid import Grid
from engine.references import make_address, split_address

HEX_COLOR_RE = re.compile(r"^#?([0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


def export_extent(grid: Grid) -> Tuple[int, int]:
    """Rows and columns to export: populated area, at least the minimum block."""
    max_row, max_col = 0, 0
    for cell in grid:
        row, col = split_address(cell.address)
        max_row = max(max_row, row)
        max_col = max(max_col, col)
    rows = min(max(max_row, settings.EXPORT_MIN_ROWS), grid.rows)
    cols = min(max(max_col, settings.EXPORT_MIN_COLS), grid.cols)
    return rows, cols


def _display(value: CellValue) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolved_rows(grid: Grid) -> List[List[CellValue]]:
    values = grid.resolved_values()
    rows, cols = export_extent(grid)
    return [
        [values.get(make_address(row, col)) for col in range(1, cols + 1)]
        for row in range(1, rows + 1)
    ]


def export_csv(grid: Grid) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in resolved_rows(grid):
        writer.writerow([_display(value) for value in row])
    return buffer.getvalue()


def _hex(color: Optional[str]) -> Optional[str]:
    """openpyxl colour string, or None for names it cannot take (``red``)."""
    if color and HEX_COLOR_RE.match(color):
        return color.lstrip("#").upper()
    return None


def _apply_style(target, style: CellStyle) -> None:
    target.font = Font(
        bold=style.font_weight == FontWeight.BOLD,
        italic=style.font_style == FontStyle.ITALIC,
        size=style.font_size,
        color=_hex(style.color),
    )
    if style.text_align:
        target.alignment = Alignment(horizontal=style.text_align.value)
    fill = _hex(style.background_color)
    if fill:
        target.fill = PatternFill(start_color=fill, end_color=fill, fill_type="solid")


def export_xlsx(grid: Grid, title: str = "Sheet1") -> bytes:
    """Workbook with computed values (formulas are not carried over)."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title[:31] or "Sheet1"

    for row_idx, row in enumerate(resolved_rows(grid), start=1):
        for col_idx, value in enumerate(row, start=1):
            if value is None:
                continue
            target = sheet.cell(row=row_idx, column=col_idx, value=value)
            if isinstance(value, str) and value.startswith("="):
                target.data_type = "s"

    for cell in grid:
        if cell.style is None:
            continue
        row, col = split_address(cell.address)
        _apply_style(sheet.cell(row=row, column=col), cell.style)

    rows, cols = export_extent(grid)
    for col in range(1, cols + 1):
        sheet.column_dimensions[get_column_letter(col)].width = 14

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()

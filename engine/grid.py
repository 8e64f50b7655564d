"""Grid store: address -> cell, with write-time evaluation."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Union

from config import settings
from core.enums import CellType
from core.exceptions import CellReferenceError, CircularReferenceError, EvalError
from core.models import Cell, CellStyle, CellValue, SheetData
from engine.classifier import parse_input
from engine.dependencies import DependencyGraph
from engine.formula import Number, evaluate
from engine.references import CellRange, in_bounds, make_address, split_address
from utils.logging import get_logger

logger = get_logger(__name__)


class Grid:
    """A sheet's cells plus its row/column bounds.

    Cells are created on first write and removed only by ``clear_cell``.
    Formula cells are evaluated when written; when ``recalc_dependents`` is
    on, every formula that reads a changed cell is re-evaluated in
    dependency order and cycles are reported as ``#CIRCULAR!``.
    """

    def __init__(
        self,
        rows: Optional[int] = None,
        cols: Optional[int] = None,
        recalc_dependents: Optional[bool] = None,
    ):
        self.rows = settings.SHEET_DEFAULT_ROWS if rows is None else rows
        self.cols = settings.SHEET_DEFAULT_COLS if cols is None else cols
        if not 1 <= self.rows <= settings.SHEET_MAX_ROWS:
            raise ValueError(f"rows must be between 1 and {settings.SHEET_MAX_ROWS}")
        if not 1 <= self.cols <= settings.SHEET_MAX_COLS:
            raise ValueError(f"cols must be between 1 and {settings.SHEET_MAX_COLS}")
        self.recalc_dependents = (
            settings.SHEET_RECALC_DEPENDENTS if recalc_dependents is None else recalc_dependents
        )
        self._cells: Dict[str, Cell] = {}
        self._graph = DependencyGraph()

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, address: str) -> bool:
        return make_address(*split_address(address)) in self._cells

    def __iter__(self) -> Iterator[Cell]:
        """Stored cells in row-major order."""
        for address in sorted(self._cells, key=split_address):
            yield self._cells[address]

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def _key(self, address: str) -> str:
        row, col = split_address(address)
        if not in_bounds(row, col, self.rows, self.cols):
            raise CellReferenceError(address, self.rows, self.cols)
        return make_address(row, col)

    # ─────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────

    def get_cell(self, address: str) -> Optional[Cell]:
        return self._cells.get(make_address(*split_address(address)))

    def get_range(self, top_left: str, bottom_right: str) -> List[Optional[Cell]]:
        """Cells of the rectangle in row-major order; None where empty."""
        cell_range = CellRange.from_corners(top_left, bottom_right)
        if not cell_range.fits(self.rows, self.cols):
            raise CellReferenceError(str(cell_range), self.rows, self.cols)
        return [self._cells.get(address) for address in cell_range.addresses()]

    def resolved_values(self) -> Dict[str, CellValue]:
        """Displayed value per populated address (error codes for failed formulas)."""
        return {cell.address: cell.value for cell in self}

    def evaluate_formula(self, formula: str, address: Optional[str] = None) -> Union[Number, EvalError]:
        """Evaluate against the current values, returning the error instead of raising."""
        try:
            return evaluate(formula, self, address)
        except EvalError as e:
            return e

    # ─────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────

    def set_cell(self, address: str, raw_input: str) -> Cell:
        """Classify raw input and store it; formulas are evaluated immediately."""
        key = self._key(address)
        cell_type, value = parse_input(raw_input)
        previous = self._cells.get(key)
        cell = Cell(
            address=key,
            type=cell_type,
            value=None if cell_type == CellType.FORMULA else value,
            formula=raw_input if cell_type == CellType.FORMULA else None,
            style=previous.style if previous else None,
            validation=previous.validation if previous else None,
        )
        self._cells[key] = cell

        if cell_type == CellType.FORMULA:
            self._graph.set_formula(key, raw_input)
        else:
            self._graph.remove(key)

        self._recalculate(key)
        return self._cells[key]

    def clear_cell(self, address: str) -> bool:
        """Remove a cell; dependents see it as empty."""
        key = self._key(address)
        existed = self._cells.pop(key, None) is not None
        self._graph.remove(key)
        if existed:
            self._recalculate(key)
        return existed

    def set_style(self, address: str, style: Optional[CellStyle]) -> Cell:
        key = self._key(address)
        cell = self._cells.get(key)
        if cell is None:
            cell = Cell(address=key, type=CellType.TEXT, value="", style=style)
        else:
            cell = cell.model_copy(update={"style": style})
        self._cells[key] = cell
        return cell

    def recalculate_all(self) -> None:
        """Re-evaluate every formula cell in dependency order."""
        targets = {cell.address for cell in self._cells.values() if cell.is_formula}
        self._run(targets)

    def _recalculate(self, address: str) -> None:
        targets = set()
        if address in self._graph:
            targets.add(address)
        if self.recalc_dependents:
            targets |= self._graph.affected([address])
            self._run(targets)
            return

        if targets:
            cycle = self._graph.cycle_through(address)
            if cycle:
                self._set_error(address, CircularReferenceError(cycle, address))
            else:
                self._evaluate_cell(address)

    def _run(self, targets: set) -> None:
        if not targets:
            return
        plan = self._graph.plan(targets)
        for address in plan.head:
            self._evaluate_cell(address)
        for address in sorted(plan.cyclic):
            cycle = self._graph.cycle_through(address) or [address]
            self._set_error(address, CircularReferenceError(cycle, address))
        for address in plan.tail:
            self._evaluate_cell(address)
        logger.debug(
            "Recalculated formulas",
            evaluated=len(plan.head) + len(plan.tail),
            circular=len(plan.cyclic),
        )

    def _evaluate_cell(self, address: str) -> None:
        cell = self._cells[address]
        try:
            value = evaluate(cell.formula, self, address)
        except EvalError as e:
            self._set_error(address, e)
            return
        self._cells[address] = cell.model_copy(update={"value": value, "error": None})

    def _set_error(self, address: str, error: EvalError) -> None:
        logger.debug("Formula error", address=address, code=error.code.value, reason=error.message)
        cell = self._cells[address]
        self._cells[address] = cell.model_copy(
            update={"value": error.code.value, "error": error.code}
        )

    # ─────────────────────────────────────────────────────────
    # Serialization
    # ─────────────────────────────────────────────────────────

    def to_data(self) -> SheetData:
        return SheetData(
            cells={cell.address: cell.to_data() for cell in self},
            rows=self.rows,
            cols=self.cols,
        )

    @classmethod
    def from_data(cls, data: SheetData, recalc_dependents: Optional[bool] = None) -> "Grid":
        """Load stored cells as-is; values are not re-evaluated."""
        grid = cls(rows=data.rows, cols=data.cols, recalc_dependents=recalc_dependents)
        for address, cell_data in data.cells.items():
            key = grid._key(address)
            grid._cells[key] = Cell.from_data(key, cell_data)
            if cell_data.type == CellType.FORMULA and cell_data.formula:
                grid._graph.set_formula(key, cell_data.formula)
        return grid

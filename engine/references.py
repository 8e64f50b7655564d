"""A1-style addresses and rectangular ranges."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Tuple

from openpyxl.utils.cell import (
    column_index_from_string,
    coordinate_from_string,
    get_column_letter,
    range_boundaries,
)
from openpyxl.utils.exceptions import CellCoordinatesException

from core.exceptions import InvalidAddressError


def split_address(address: str) -> Tuple[int, int]:
    """Return ``(row, col)``, both 1-based, for an address like ``B12``."""
    try:
        letters, row = coordinate_from_string(address.strip().upper())
        col = column_index_from_string(letters)
    except (CellCoordinatesException, ValueError) as e:
        raise InvalidAddressError(address) from e
    return row, col


def make_address(row: int, col: int) -> str:
    return f"{get_column_letter(col)}{row}"


def normalize_address(address: str) -> str:
    """Upper-case, ``$``-free form used as the grid key."""
    row, col = split_address(address)
    return make_address(row, col)


def is_address(text: str) -> bool:
    try:
        split_address(text)
    except InvalidAddressError:
        return False
    return True


def in_bounds(row: int, col: int, rows: int, cols: int) -> bool:
    return 1 <= row <= rows and 1 <= col <= cols


@dataclass(frozen=True)
class CellRange:
    """Rectangle of cells; corners are normalized so min <= max."""

    min_row: int
    min_col: int
    max_row: int
    max_col: int

    @classmethod
    def from_corners(cls, top_left: str, bottom_right: str) -> "CellRange":
        row_a, col_a = split_address(top_left)
        row_b, col_b = split_address(bottom_right)
        return cls(
            min_row=min(row_a, row_b),
            min_col=min(col_a, col_b),
            max_row=max(row_a, row_b),
            max_col=max(col_a, col_b),
        )

    @classmethod
    def parse(cls, text: str) -> "CellRange":
        """Parse ``A1:B2``; a single address is a one-cell range.

        Whole-row and whole-column ranges (``A:A``, ``1:3``) are rejected.
        """
        try:
            min_col, min_row, max_col, max_row = range_boundaries(text.strip().upper())
        except (CellCoordinatesException, ValueError) as e:
            raise InvalidAddressError(text) from e
        bounds = (min_col, min_row, max_col, max_row)
        if any(b is None or b < 1 for b in bounds):
            raise InvalidAddressError(text)
        return cls(
            min_row=min(min_row, max_row),
            min_col=min(min_col, max_col),
            max_row=max(min_row, max_row),
            max_col=max(min_col, max_col),
        )

    @property
    def top_left(self) -> str:
        return make_address(self.min_row, self.min_col)

    @property
    def bottom_right(self) -> str:
        return make_address(self.max_row, self.max_col)

    @property
    def size(self) -> int:
        return (self.max_row - self.min_row + 1) * (self.max_col - self.min_col + 1)

    def fits(self, rows: int, cols: int) -> bool:
        return in_bounds(self.min_row, self.min_col, rows, cols) and in_bounds(
            self.max_row, self.max_col, rows, cols
        )

    def addresses(self) -> Iterator[str]:
        """Addresses in row-major order."""
        for row in range(self.min_row, self.max_row + 1):
            for col in range(self.min_col, self.max_col + 1):
                yield make_address(row, col)

    def __str__(self) -> str:
        return f"{self.top_left}:{self.bottom_right}"

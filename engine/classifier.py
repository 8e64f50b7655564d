"""Type inference for raw cell input."""

from __future__ import annotations

import math
import re
from typing import Optional, Tuple, Union

from core.enums import CellType

# Decimal numerals: no inf/nan words or underscore separators.
NUMBER_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*$")
INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")
# Unsigned 0x/0b/0o literals, as accepted by JavaScript's Number().
RADIX_RE = re.compile(r"^\s*0(?:[xX][0-9a-fA-F]+|[bB][01]+|[oO][0-7]+)\s*$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

BOOLEAN_WORDS = {"true": True, "false": False}

Number = Union[int, float]


def parse_number(raw: str) -> Optional[Number]:
    """Numeric value of a numeral, or None if it is not a finite number."""
    if RADIX_RE.match(raw):
        return int(raw.strip(), 0)
    if not NUMBER_RE.match(raw):
        return None
    if INTEGER_RE.match(raw):
        try:
            return int(raw)
        except ValueError:
            # past the interpreter's int-string digit limit
            pass
    value = float(raw)
    return value if math.isfinite(value) else None


def classify(raw: str) -> CellType:
    """Decide the type tag of a raw input string.

    Rules apply in priority order: formula, number, boolean, date, text.
    """
    if raw.startswith("="):
        return CellType.FORMULA
    if parse_number(raw) is not None:
        return CellType.NUMBER
    if raw.lower() in BOOLEAN_WORDS:
        return CellType.BOOLEAN
    if DATE_RE.match(raw):
        return CellType.DATE
    return CellType.TEXT


def coerce(raw: str, cell_type: CellType) -> Union[str, int, float, bool]:
    """Convert raw input to the scalar stored for a non-formula type."""
    if cell_type == CellType.NUMBER:
        value = parse_number(raw)
        if value is None:
            raise ValueError(f"{raw!r} is not a finite number")
        return value
    if cell_type == CellType.BOOLEAN:
        return BOOLEAN_WORDS[raw.lower()]
    if cell_type == CellType.FORMULA:
        raise ValueError("formula input is evaluated, not coerced")
    return raw


def parse_input(raw: str) -> Tuple[CellType, Union[str, int, float, bool]]:
    """Classify and coerce in one step; formulas return their raw text."""
    cell_type = classify(raw)
    if cell_type == CellType.FORMULA:
        return cell_type, raw
    return cell_type, coerce(raw, cell_type)

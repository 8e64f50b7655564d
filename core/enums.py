"""Core enumerations for test sheets"""

from enum import Enum


class CellType(str, Enum):
    """Inferred type tag of a cell"""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    FORMULA = "formula"


class ErrorCode(str, Enum):
    """In-cell error indicators"""
    PARSE = "#ERROR!"
    NAME = "#NAME?"
    REF = "#REF!"
    VALUE = "#VALUE!"
    DIV_ZERO = "#DIV/0!"
    CIRCULAR = "#CIRCULAR!"


class FontWeight(str, Enum):
    NORMAL = "normal"
    BOLD = "bold"


class FontStyle(str, Enum):
    NORMAL = "normal"
    ITALIC = "italic"


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ValidationType(str, Enum):
    """Cell validation kinds (stored, not enforced)"""
    LIST = "list"
    NUMBER = "number"
    DATE = "date"
    TEXT = "text"


class ChartType(str, Enum):
    LINE = "line"
    BAR = "bar"
    PIE = "pie"
    COLUMN = "column"


class ExportFormat(str, Enum):
    """Supported export formats"""
    CSV = "csv"
    XLSX = "xlsx"

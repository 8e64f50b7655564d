"""Core abstractions for test sheets"""

from .models import *
from .enums import *
from .exceptions import *
from .interfaces import *

__all__ = [
    # Models
    "CellValue",
    "BorderStyle",
    "CellStyle",
    "CellValidation",
    "CellData",
    "Cell",
    "SheetData",
    "ChartPosition",
    "ChartConfig",
    "NamedRange",
    "SheetMetadata",
    "TestSheet",
    "TestSheetCreate",
    "TestSheetUpdate",
    "CellUpdate",
    "DuplicateRequest",
    # Enums
    "CellType",
    "ErrorCode",
    "FontWeight",
    "FontStyle",
    "TextAlign",
    "ValidationType",
    "ChartType",
    "ExportFormat",
    # Exceptions
    "SheetError",
    "InvalidAddressError",
    "SheetNotFoundError",
    "StaleRevisionError",
    "PersistenceError",
    "EvalError",
    "FormulaParseError",
    "UnknownFunctionError",
    "CellReferenceError",
    "CellTypeError",
    "DivisionByZeroError",
    "CircularReferenceError",
    "PropagatedError",
    # Interfaces
    "SheetRepository",
    "SaveTransport",
]

"""Custom exceptions for test sheets"""

from typing import Optional

from .enums import ErrorCode


class SheetError(Exception):
    """Base exception for all test sheet errors"""

    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidAddressError(SheetError):
    """Address or range text is not A1 notation"""

    http_status = 400

    def __init__(self, address: str):
        super().__init__(f"Invalid cell address: {address!r}")
        self.address = address


class SheetNotFoundError(SheetError):
    """No sheet stored under the requested id"""

    http_status = 404

    def __init__(self, sheet_id: int):
        super().__init__("Test sheet not found")
        self.sheet_id = sheet_id


class StaleRevisionError(SheetError):
    """A save carried an older version than the stored sheet"""

    http_status = 409

    def __init__(self, sheet_id: int, revision: int, current: int):
        super().__init__(
            f"Sheet {sheet_id}: revision {revision} is older than stored version {current}"
        )
        self.sheet_id = sheet_id
        self.revision = revision
        self.current = current


class PersistenceError(SheetError):
    """Auto-save write failed"""

    http_status = 502

    def __init__(self, message: str, sheet_id: int = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.sheet_id = sheet_id
        self.status_code = status_code


# ─────────────────────────────────────────────────────────────
# Formula evaluation
# ─────────────────────────────────────────────────────────────

class EvalError(SheetError):
    """Formula evaluation failed for a single cell.

    ``code`` is the indicator shown in the cell in place of a value. These
    normally stay inside the cell; one reaching an API caller means the
    request itself addressed something outside the grid.
    """

    http_status = 400
    code: ErrorCode = ErrorCode.PARSE

    def __init__(self, message: str, address: str = None):
        super().__init__(message)
        self.address = address


class FormulaParseError(EvalError):
    """Formula text cannot be tokenized or parsed"""
    code = ErrorCode.PARSE


class UnknownFunctionError(FormulaParseError):
    """Formula names a function or identifier that does not exist"""
    code = ErrorCode.NAME

    def __init__(self, name: str, address: str = None):
        super().__init__(f"Unknown name: {name}", address)
        self.name = name


class CellReferenceError(EvalError):
    """Reference or range falls outside the grid bounds"""
    code = ErrorCode.REF

    def __init__(self, reference: str, rows: int, cols: int, address: str = None):
        super().__init__(
            f"Reference {reference} is outside the {rows}x{cols} grid", address
        )
        self.reference = reference


class CellTypeError(EvalError):
    """Arithmetic met a non-numeric operand or left the numeric range"""
    code = ErrorCode.VALUE


class DivisionByZeroError(EvalError):
    code = ErrorCode.DIV_ZERO

    def __init__(self, address: str = None):
        super().__init__("Division by zero", address)


class CircularReferenceError(EvalError):
    """Formula depends on itself directly or through other cells"""
    code = ErrorCode.CIRCULAR

    def __init__(self, cycle: list, address: str = None):
        super().__init__(f"Circular reference: {' -> '.join(cycle)}", address)
        self.cycle = cycle


class PropagatedError(EvalError):
    """A referenced cell is itself in error; the code is carried through"""

    def __init__(self, code: ErrorCode, source: str, address: str = None):
        super().__init__(f"{source} is in error {code.value}", address)
        self.code = code
        self.source = source

"""Formula parsing and evaluation.

Formulas are tokenized with openpyxl's ``Tokenizer`` and parsed into a small
expression tree:

    expr    := term (('+'|'-') term)*
    term    := unary (('*'|'/') unary)*
    unary   := ('+'|'-') unary | postfix
    postfix := primary '%'*
    primary := NUMBER | REF | '(' expr ')' | FUNC '(' [arg (',' arg)*] ')'
    arg     := RANGE | expr

Evaluation resolves references against a grid snapshot: a reference reads
the referenced cell's current value, never its formula text.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional, Tuple, Union

from openpyxl.formula.tokenizer import Token, Tokenizer, TokenizerError

from config import settings
from core.enums import ErrorCode
from core.exceptions import (
    CellReferenceError,
    CellTypeError,
    DivisionByZeroError,
    EvalError,
    FormulaParseError,
    InvalidAddressError,
    PropagatedError,
    UnknownFunctionError,
)
from core.models import CellValue
from engine.classifier import DATE_RE, parse_number
from engine.references import CellRange, in_bounds, is_address, make_address, split_address

if TYPE_CHECKING:
    from engine.grid import Grid

Number = Union[int, float]

SUPPORTED_INFIX = ("+", "-", "*", "/")


def is_number(value: CellValue) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ─────────────────────────────────────────────────────────────
# Expression tree
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NumberNode:
    value: Number


@dataclass(frozen=True)
class RefNode:
    address: str
    row: int
    col: int


@dataclass(frozen=True)
class RangeNode:
    cell_range: CellRange


@dataclass(frozen=True)
class UnaryNode:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class PercentNode:
    operand: "Node"


@dataclass(frozen=True)
class BinaryNode:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class CallNode:
    name: str
    args: Tuple["Node", ...]


Node = Union[NumberNode, RefNode, RangeNode, UnaryNode, PercentNode, BinaryNode, CallNode]


def _walk(node: Node) -> Iterator[Node]:
    yield node
    if isinstance(node, (UnaryNode, PercentNode)):
        yield from _walk(node.operand)
    elif isinstance(node, BinaryNode):
        yield from _walk(node.left)
        yield from _walk(node.right)
    elif isinstance(node, CallNode):
        for arg in node.args:
            yield from _walk(arg)


# ─────────────────────────────────────────────────────────────
# Functions
# ─────────────────────────────────────────────────────────────

def _numeric(values: List[CellValue]) -> List[Number]:
    return [v for v in values if is_number(v)]


def _sum(values: List[CellValue]) -> Number:
    return sum(_numeric(values))


def _average(values: List[CellValue]) -> Number:
    numbers = _numeric(values)
    return sum(numbers) / len(numbers) if numbers else 0


def _count(values: List[CellValue]) -> Number:
    return len(_numeric(values))


def _counta(values: List[CellValue]) -> Number:
    return len([v for v in values if v is not None and v != ""])


def _max(values: List[CellValue]) -> Number:
    numbers = _numeric(values)
    return max(numbers) if numbers else 0


def _min(values: List[CellValue]) -> Number:
    numbers = _numeric(values)
    return min(numbers) if numbers else 0


# Single-argument functions read the raw value of their argument.

def _text(value: CellValue) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _len(values: List[CellValue]) -> Number:
    return len(_text(values[0]))


def _date_part(part: str) -> Callable[[List[CellValue]], Number]:
    def extract(values: List[CellValue]) -> Number:
        value = values[0]
        if not isinstance(value, str) or not DATE_RE.match(value):
            raise CellTypeError(f"{part.upper()} needs a YYYY-MM-DD date, got {value!r}")
        try:
            parsed = date.fromisoformat(value)
        except ValueError as e:
            raise CellTypeError(f"Invalid date {value!r}") from e
        return getattr(parsed, part)
    return extract


FUNCTIONS: Dict[str, Callable[[List[CellValue]], Number]] = {
    "SUM": _sum,
    "AVERAGE": _average,
    "COUNT": _count,
    "COUNTA": _counta,
    "MAX": _max,
    "MIN": _min,
    "LEN": _len,
    "YEAR": _date_part("year"),
    "MONTH": _date_part("month"),
    "DAY": _date_part("day"),
}

SINGLE_ARGUMENT = {"LEN", "YEAR", "MONTH", "DAY"}


# ─────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────

def _check_balanced(body: str) -> None:
    depth = 0
    in_string = False
    for char in body:
        if char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise FormulaParseError("Unbalanced parentheses")
    if depth != 0:
        raise FormulaParseError("Unbalanced parentheses")


def tokenize(formula: str) -> List[Token]:
    """Tokenize formula text, dropping whitespace tokens."""
    if not formula.startswith("="):
        raise FormulaParseError("Formula must start with '='")
    if not formula[1:].strip():
        raise FormulaParseError("Empty formula")
    _check_balanced(formula[1:])
    try:
        items = Tokenizer(formula).items
    except TokenizerError as e:
        raise FormulaParseError(str(e)) from e
    return [token for token in items if token.type != Token.WSPACE]


def _to_number(text: str) -> Number:
    value = parse_number(text)
    if value is None:
        raise FormulaParseError(f"Invalid number literal {text!r}")
    return value


class FormulaParser:
    """Recursive-descent parser over openpyxl tokens"""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def parse(self) -> Node:
        node = self._expr()
        token = self._peek()
        if token is not None:
            raise self._unexpected(token)
        return node

    def _peek(self, offset: int = 0) -> Optional[Token]:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise FormulaParseError("Unexpected end of formula")
        self.pos += 1
        return token

    def _unexpected(self, token: Token) -> FormulaParseError:
        if token.type in (Token.OP_IN, Token.OP_PRE, Token.OP_POST) and (
            token.value not in SUPPORTED_INFIX + ("%",)
        ):
            return FormulaParseError(f"Unsupported operator {token.value!r}")
        return FormulaParseError(f"Unexpected token {token.value!r}")

    def _at_infix(self, ops: str) -> bool:
        token = self._peek()
        return token is not None and token.type == Token.OP_IN and token.value in ops

    def _expr(self) -> Node:
        node = self._term()
        while self._at_infix("+-"):
            op = self._next().value
            node = BinaryNode(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._at_infix("*/"):
            op = self._next().value
            node = BinaryNode(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        token = self._peek()
        if token is not None and token.type == Token.OP_PRE:
            self._next()
            if token.value not in ("+", "-"):
                raise self._unexpected(token)
            return UnaryNode(token.value, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        token = self._peek()
        while token is not None and token.type == Token.OP_POST:
            self._next()
            if token.value != "%":
                raise self._unexpected(token)
            node = PercentNode(node)
            token = self._peek()
        return node

    def _primary(self) -> Node:
        token = self._next()
        if token.type == Token.OPERAND:
            return self._operand(token)
        if token.type == Token.PAREN and token.subtype == Token.OPEN:
            node = self._expr()
            self._expect_close(Token.PAREN)
            return node
        if token.type == Token.FUNC and token.subtype == Token.OPEN:
            return self._call(token)
        raise self._unexpected(token)

    def _expect_close(self, kind: str) -> None:
        token = self._next()
        if token.type != kind or token.subtype != Token.CLOSE:
            raise self._unexpected(token)

    def _operand(self, token: Token) -> Node:
        if token.subtype == Token.NUMBER:
            return NumberNode(_to_number(token.value))
        if token.subtype != Token.RANGE:
            raise FormulaParseError(f"Unsupported literal {token.value!r}")

        text = token.value
        if "!" in text:
            raise FormulaParseError(f"Cross-sheet reference {text!r} is not supported")
        if ":" in text:
            raise FormulaParseError(f"Range {text} is only allowed as a function argument")
        if not is_address(text):
            raise UnknownFunctionError(text)
        row, col = split_address(text)
        return RefNode(make_address(row, col), row, col)

    def _call(self, token: Token) -> Node:
        name = token.value[:-1].strip().upper()
        if name not in FUNCTIONS:
            raise UnknownFunctionError(name)

        args: List[Node] = []
        closing = self._peek()
        if closing is not None and closing.type == Token.FUNC and closing.subtype == Token.CLOSE:
            self._next()
        else:
            while True:
                args.append(self._arg())
                token = self._next()
                if token.type == Token.SEP and token.subtype == Token.ARG:
                    continue
                if token.type == Token.FUNC and token.subtype == Token.CLOSE:
                    break
                raise self._unexpected(token)

        if name in SINGLE_ARGUMENT and (len(args) != 1 or isinstance(args[0], RangeNode)):
            raise FormulaParseError(f"{name} takes exactly one value")
        return CallNode(name, tuple(args))

    def _arg(self) -> Node:
        token = self._peek()
        after = self._peek(1)
        is_range = (
            token is not None
            and token.type == Token.OPERAND
            and token.subtype == Token.RANGE
            and ":" in token.value
            and after is not None
            and after.type in (Token.SEP, Token.FUNC)
        )
        if not is_range:
            return self._expr()

        self._next()
        if "!" in token.value:
            raise FormulaParseError(f"Cross-sheet reference {token.value!r} is not supported")
        try:
            return RangeNode(CellRange.parse(token.value))
        except InvalidAddressError as e:
            raise FormulaParseError(f"Invalid range {token.value!r}") from e


@dataclass(frozen=True)
class ParsedFormula:
    """A formula and its expression tree"""

    text: str
    tree: Node

    def dependencies(self, max_expansion: Optional[int] = None) -> Tuple[List[str], List[CellRange]]:
        """Addresses this formula reads, plus ranges too large to expand.

        Ranges up to ``max_expansion`` cells are expanded into addresses;
        larger ones are returned whole so callers can test containment.
        """
        limit = settings.MAX_RANGE_EXPANSION if max_expansion is None else max_expansion
        addresses: Dict[str, None] = {}
        large: List[CellRange] = []
        for node in _walk(self.tree):
            if isinstance(node, RefNode):
                addresses[node.address] = None
            elif isinstance(node, RangeNode):
                if node.cell_range.size > limit:
                    large.append(node.cell_range)
                else:
                    for address in node.cell_range.addresses():
                        addresses[address] = None
        return list(addresses), large


@lru_cache(maxsize=2048)
def parse_formula(formula: str) -> ParsedFormula:
    """Parse formula text; raises FormulaParseError."""
    tree = FormulaParser(tokenize(formula)).parse()
    return ParsedFormula(text=formula, tree=tree)


def formula_references(formula: str, max_expansion: Optional[int] = None) -> List[str]:
    """Distinct addresses a formula depends on; empty if it does not parse.

    Ranges larger than ``max_expansion`` cells are left out. Use
    ``ParsedFormula.dependencies`` to get them as whole ranges.
    """
    try:
        parsed = parse_formula(formula)
    except FormulaParseError:
        return []
    addresses, _ = parsed.dependencies(max_expansion)
    return addresses


# ─────────────────────────────────────────────────────────────
# Evaluation
# ─────────────────────────────────────────────────────────────

class FormulaEvaluator:
    """Evaluates an expression tree against a grid snapshot"""

    def __init__(self, grid: "Grid", address: Optional[str] = None):
        self.grid = grid
        self.address = address

    def evaluate(self, node: Node) -> Number:
        if isinstance(node, NumberNode):
            return node.value
        if isinstance(node, RefNode):
            return self._cell_number(node)
        if isinstance(node, UnaryNode):
            value = self.evaluate(node.operand)
            return -value if node.op == "-" else value
        if isinstance(node, PercentNode):
            return self.evaluate(node.operand) / 100
        if isinstance(node, BinaryNode):
            return self._binary(node)
        if isinstance(node, CallNode):
            return self._call(node)
        raise FormulaParseError("Range used outside a function call", self.address)

    def _binary(self, node: BinaryNode) -> Number:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if right == 0:
            raise DivisionByZeroError(self.address)
        return left / right

    def _call(self, node: CallNode) -> Number:
        values: List[CellValue] = []
        for arg in node.args:
            if isinstance(arg, RefNode):
                values.append(self._cell_value(arg.address, arg.row, arg.col))
            elif isinstance(arg, RangeNode):
                values.extend(self._range_values(arg.cell_range))
            else:
                values.append(self.evaluate(arg))
        return FUNCTIONS[node.name](values)

    def _cell_value(self, address: str, row: int, col: int) -> CellValue:
        if not in_bounds(row, col, self.grid.rows, self.grid.cols):
            raise CellReferenceError(address, self.grid.rows, self.grid.cols, self.address)
        cell = self.grid.get_cell(address)
        if cell is None:
            return None
        if cell.error is not None:
            raise PropagatedError(ErrorCode(cell.error), address, self.address)
        return cell.value

    def _cell_number(self, node: RefNode) -> Number:
        value = self._cell_value(node.address, node.row, node.col)
        if value is None or value == "":
            return 0
        if is_number(value):
            return value
        raise CellTypeError(f"{node.address} is not numeric: {value!r}", self.address)

    def _range_values(self, cell_range: CellRange) -> List[CellValue]:
        if not cell_range.fits(self.grid.rows, self.grid.cols):
            raise CellReferenceError(
                str(cell_range), self.grid.rows, self.grid.cols, self.address
            )
        values = []
        for row in range(cell_range.min_row, cell_range.max_row + 1):
            for col in range(cell_range.min_col, cell_range.max_col + 1):
                values.append(self._cell_value(make_address(row, col), row, col))
        return values


def _finish(result: Number, address: Optional[str]) -> Number:
    if isinstance(result, float):
        if not math.isfinite(result):
            raise CellTypeError("Result is not a finite number", address)
        if result.is_integer():
            return int(result)
    return result


def evaluate(formula: str, grid: "Grid", address: Optional[str] = None) -> Number:
    """Evaluate formula text against the grid's current values.

    Raises an EvalError subclass when the formula cannot be parsed, reads
    outside the grid, meets a non-numeric operand, divides by zero or
    overflows the float range.
    """
    try:
        parsed = parse_formula(formula)
        try:
            result = FormulaEvaluator(grid, address).evaluate(parsed.tree)
            return _finish(result, address)
        except ArithmeticError as e:
            raise CellTypeError(f"Numeric overflow: {e}", address) from e
    except EvalError as e:
        if e.address is None:
            e.address = address
        raise

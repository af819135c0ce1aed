"""
Expression model for stepeval.

Expressions form a small tagged union of immutable nodes:

    Const(value)                           - a number or boolean, terminal
    Variable(name)                         - a parameter inside a function body
    UnaryOp(op, operand)                   - "-" or "!"
    BinaryOp(op, lhs, rhs)                 - arithmetic, comparison, equality
    IfThenElse(condition, then_case, else_case, source)
    FunctionCall(func, arguments)

Values are an explicit two-case union, Number and Boolean. Raw Python
numbers and bools are coerced on construction, so Const(42), Const(42.0) and
Const(Number(42)) are the same node.

The canonical rendering produced by format_expr() is the trace format:

    (1 + 2)                  binary operators are always parenthesized
    -(23 + 13)               unary operators are prefixed without parens
    ((n <= 0) ? 1 : n)       conditionals use ternary syntax
    factorial((n - 1))       calls list their arguments
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Mapping, Sequence, Tuple, TypeVar, Union

from .errors import FunctionDefinitionError

UNARY_OPERATORS = ("-", "!")
BINARY_OPERATORS = (
    "+", "-", "*", "/", "%",
    ">", "<", "<=", ">=",
    "==", "!=", "===", "!==",
)
IF_SOURCES = ("expression", "statement")

RawValue = Union[int, float, bool]
T = TypeVar("T")


# ============================================================
# Values
# ============================================================

def format_number(x: float) -> str:
    """
    Render a float the way JavaScript's Number#toString does.

    Examples:
        format_number(65.0)    -> "65"
        format_number(-3.75)   -> "-3.75"
        format_number(1e21)    -> "1e+21"
        format_number(1e-7)    -> "1e-7"
        format_number(-0.0)    -> "0"
    """
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    if x == 0:
        return "0"

    sign = "-" if x < 0 else ""
    # repr() gives the shortest digits that round-trip, as JS does
    _, digit_tuple, exponent = Decimal(repr(abs(x))).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = exponent + k

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits

    e = n - 1
    e_str = f"e+{e}" if e >= 0 else f"e-{-e}"
    if k == 1:
        return sign + digits + e_str
    return sign + digits[0] + "." + digits[1:] + e_str


@dataclass(frozen=True)
class Number:
    """A numeric value, always held as a float."""

    value: float

    def __post_init__(self):
        object.__setattr__(self, "value", float(self.value))

    def __str__(self) -> str:
        return format_number(self.value)


@dataclass(frozen=True)
class Boolean:
    """A boolean value."""

    value: bool

    def __str__(self) -> str:
        return "true" if self.value else "false"


Value = Union[Number, Boolean]


def to_value(raw: Union[Value, RawValue]) -> Value:
    """
    Coerce a raw Python value into a tagged Value.

    bool must be checked before int since bool is an int subclass.

    Raises:
        TypeError: If raw is not a number, bool, Number or Boolean
    """
    if isinstance(raw, (Number, Boolean)):
        return raw
    if isinstance(raw, bool):
        return Boolean(raw)
    if isinstance(raw, (int, float)):
        return Number(raw)
    raise TypeError(f"Not a number or boolean: {raw!r}")


def to_python(value: Value) -> RawValue:
    """Unwrap a tagged Value, turning integral floats back into ints."""
    if isinstance(value, Number) and value.value.is_integer():
        return int(value.value)
    return value.value


# ============================================================
# Expressions
# ============================================================

class Expr:
    """Base class for expressions."""

    def __str__(self) -> str:
        return format_expr(self)


@dataclass(frozen=True, repr=False)
class Const(Expr):
    """A fully reduced value. No step ever rewrites a Const."""

    value: Value

    def __post_init__(self):
        object.__setattr__(self, "value", to_value(self.value))

    def __repr__(self) -> str:
        return f"Const({self.value})"


@dataclass(frozen=True, repr=False)
class Variable(Expr):
    """A parameter reference, only meaningful inside a function body."""

    name: str

    def __repr__(self) -> str:
        return f"Variable({self.name!r})"


@dataclass(frozen=True, repr=False)
class UnaryOp(Expr):
    op: str
    operand: Expr

    def __post_init__(self):
        if self.op not in UNARY_OPERATORS:
            raise ValueError(f"Unknown unary operator: {self.op}")

    def __repr__(self) -> str:
        return f"UnaryOp({self.op!r}, {self.operand!r})"


@dataclass(frozen=True, repr=False)
class BinaryOp(Expr):
    op: str
    lhs: Expr
    rhs: Expr

    def __post_init__(self):
        if self.op not in BINARY_OPERATORS:
            raise ValueError(f"Unknown binary operator: {self.op}")

    def __repr__(self) -> str:
        return f"BinaryOp({self.op!r}, {self.lhs!r}, {self.rhs!r})"


@dataclass(frozen=True, repr=False)
class IfThenElse(Expr):
    """Conditional expression.

    source records whether the conditional came from a ternary expression or
    an if statement. Both behave the same; the parser only produces
    "expression".
    """

    condition: Expr
    then_case: Expr
    else_case: Expr
    source: str = "expression"

    def __post_init__(self):
        if self.source not in IF_SOURCES:
            raise ValueError(f"Unknown conditional source: {self.source}")

    def __repr__(self) -> str:
        return (f"IfThenElse({self.condition!r}, {self.then_case!r}, "
                f"{self.else_case!r}, source={self.source!r})")


@dataclass(frozen=True, repr=False)
class FunctionCall(Expr):
    func: str
    arguments: Tuple[Expr, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "arguments", tuple(self.arguments))

    def __repr__(self) -> str:
        args = ", ".join(repr(arg) for arg in self.arguments)
        return f"FunctionCall({self.func!r}, [{args}])"


def is_value(expr: Expr) -> bool:
    """Check if an expression is terminal (a Const)."""
    return isinstance(expr, Const)


def children(expr: Expr) -> Tuple[Expr, ...]:
    """Direct sub-expressions in left-to-right order."""
    if isinstance(expr, (Const, Variable)):
        return ()
    if isinstance(expr, UnaryOp):
        return (expr.operand,)
    if isinstance(expr, BinaryOp):
        return (expr.lhs, expr.rhs)
    if isinstance(expr, IfThenElse):
        return (expr.condition, expr.then_case, expr.else_case)
    if isinstance(expr, FunctionCall):
        return expr.arguments
    raise TypeError(f"Not an expression: {expr!r}")


def with_children(expr: Expr, new_children: Sequence[Expr]) -> Expr:
    """Rebuild a compound node around new sub-expressions, in children() order."""
    if isinstance(expr, UnaryOp):
        return UnaryOp(expr.op, new_children[0])
    if isinstance(expr, BinaryOp):
        return BinaryOp(expr.op, new_children[0], new_children[1])
    if isinstance(expr, IfThenElse):
        return IfThenElse(new_children[0], new_children[1], new_children[2], expr.source)
    if isinstance(expr, FunctionCall):
        return FunctionCall(expr.func, tuple(new_children))
    raise TypeError(f"Not a compound expression: {expr!r}")


def fold_expr(expr: Expr, combine: Callable[[Expr, List[T]], T]) -> T:
    """
    Fold an expression bottom-up with an explicit stack.

    combine(node, results) receives the folded children of node in order
    (an empty list for leaves). Tree depth is not limited by the Python
    call stack.
    """
    results: List[T] = []
    stack: List[Tuple[Expr, bool]] = [(expr, False)]
    while stack:
        node, expanded = stack.pop()
        kids = children(node)
        if expanded or not kids:
            start = len(results) - len(kids)
            folded = combine(node, results[start:])
            del results[start:]
            results.append(folded)
        else:
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(kids))
    return results[0]


def _render_node(expr: Expr, parts: List[str]) -> str:
    if isinstance(expr, Const):
        return str(expr.value)
    if isinstance(expr, Variable):
        return expr.name
    if isinstance(expr, UnaryOp):
        return f"{expr.op}{parts[0]}"
    if isinstance(expr, BinaryOp):
        return f"({parts[0]} {expr.op} {parts[1]})"
    if isinstance(expr, IfThenElse):
        return f"({parts[0]} ? {parts[1]} : {parts[2]})"
    return f"{expr.func}({', '.join(parts)})"


def format_expr(expr: Expr) -> str:
    """
    Render an expression in the canonical trace syntax.

    Examples:
        BinaryOp("+", Const(42), Const(23))      -> "(42 + 23)"
        UnaryOp("-", BinaryOp("+", ...))         -> "-(23 + 13)"
        FunctionCall("f", [Const(1), Const(2)])  -> "f(1, 2)"
    """
    return fold_expr(expr, _render_node)


# ============================================================
# Function definitions and evaluation input
# ============================================================

@dataclass(frozen=True)
class FunctionDef:
    """A user function: ordered unique parameter names and a body."""

    parameters: Tuple[str, ...]
    body: Expr

    def __post_init__(self):
        params = tuple(self.parameters)
        object.__setattr__(self, "parameters", params)
        seen = set()
        for name in params:
            if name in seen:
                raise FunctionDefinitionError(f"Duplicate parameter name: {name}")
            seen.add(name)

    @property
    def arity(self) -> int:
        return len(self.parameters)

    def signature(self, name: str) -> str:
        """Render the definition head, e.g. "factorial(n)"."""
        return f"{name}({', '.join(self.parameters)})"


FunctionTable = Mapping[str, FunctionDef]


@dataclass(frozen=True)
class Input:
    """A full evaluation task: a function table and the expression to reduce."""

    functions: FunctionTable
    expression: Expr

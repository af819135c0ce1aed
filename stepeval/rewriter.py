"""
Core rewriter module for small-step evaluation.

This module provides substitution and the single-step reduction relation.
Reduction is leftmost-innermost and call-by-value: operands and arguments
are reduced left to right until they are values, then the enclosing node is
rewritten. Every call to step() performs exactly one rewrite and returns a
new tree; nodes are never mutated.

Operator semantics live in two preludes mapping operator symbols to handlers,
so the rewrite rules stay independent of how each operator computes.
"""

import math
from typing import Callable, Dict, List, Mapping, Tuple

from .errors import (
    ArityMismatch,
    InvariantViolation,
    UnboundVariable,
    UndefinedFunction,
)
from .expr import (
    BinaryOp, Boolean, Const, Expr, FunctionCall, FunctionTable, IfThenElse,
    Number, UnaryOp, Value, Variable, children, fold_expr, with_children,
)

BindingsType = Mapping[str, Expr]
UnaryHandler = Callable[[Value], Value]
BinaryHandler = Callable[[Value, Value], Value]


# ============================================================
# Coercions
# ============================================================

def to_number(value: Value) -> float:
    """Coerce a value to a float: true -> 1, false -> 0."""
    if isinstance(value, Boolean):
        return 1.0 if value.value else 0.0
    return value.value


def truthy(value: Value) -> bool:
    """Truthiness: true, or any number other than 0 and NaN."""
    if isinstance(value, Boolean):
        return value.value
    return not (value.value == 0 or math.isnan(value.value))


def loose_equals(lhs: Value, rhs: Value) -> bool:
    """Loose equality (==): compare numerically after coercion."""
    return to_number(lhs) == to_number(rhs)


def strict_equals(lhs: Value, rhs: Value) -> bool:
    """Strict equality (===): same tag and equal value."""
    return type(lhs) is type(rhs) and lhs.value == rhs.value


# ============================================================
# IEEE-754 arithmetic helpers
# ============================================================

def ieee_div(a: float, b: float) -> float:
    """Division that yields Infinity/NaN instead of raising on zero."""
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def ieee_rem(a: float, b: float) -> float:
    """Truncated remainder with the sign of the dividend."""
    if math.isnan(a) or math.isnan(b) or math.isinf(a) or b == 0:
        return math.nan
    if math.isinf(b) or a == 0:
        return a
    return math.fmod(a, b)


# ============================================================
# Operator Handler Builders
# ============================================================

def numeric(f: Callable[[float, float], float]) -> BinaryHandler:
    """Create an arithmetic handler: coerce both operands, return a Number."""
    def handler(lhs: Value, rhs: Value) -> Value:
        return Number(f(to_number(lhs), to_number(rhs)))
    return handler


def relational(f: Callable[[float, float], bool]) -> BinaryHandler:
    """Create a comparison handler: coerce both operands, return a Boolean."""
    def handler(lhs: Value, rhs: Value) -> Value:
        return Boolean(f(to_number(lhs), to_number(rhs)))
    return handler


def equality(f: Callable[[Value, Value], bool], negate: bool = False) -> BinaryHandler:
    """Create an equality handler from an equality predicate."""
    def handler(lhs: Value, rhs: Value) -> Value:
        return Boolean(f(lhs, rhs) != negate)
    return handler


# ============================================================
# Standard Preludes
# ============================================================

UNARY_PRELUDE: Dict[str, UnaryHandler] = {
    "-": lambda operand: Number(-to_number(operand)),
    "!": lambda operand: Boolean(not truthy(operand)),
}

BINARY_PRELUDE: Dict[str, BinaryHandler] = {
    # Arithmetic
    "+": numeric(lambda a, b: a + b),
    "-": numeric(lambda a, b: a - b),
    "*": numeric(lambda a, b: a * b),
    "/": numeric(ieee_div),
    "%": numeric(ieee_rem),
    # Comparison (NaN compares false, as with floats)
    ">": relational(lambda a, b: a > b),
    "<": relational(lambda a, b: a < b),
    "<=": relational(lambda a, b: a <= b),
    ">=": relational(lambda a, b: a >= b),
    # Equality
    "==": equality(loose_equals),
    "!=": equality(loose_equals, negate=True),
    "===": equality(strict_equals),
    "!==": equality(strict_equals, negate=True),
}


def apply_unary(op: str, operand: Value) -> Value:
    """Apply a unary operator to a value."""
    return UNARY_PRELUDE[op](operand)


def apply_binary(op: str, lhs: Value, rhs: Value) -> Value:
    """Apply a binary operator to two values."""
    return BINARY_PRELUDE[op](lhs, rhs)


# ============================================================
# Substitution
# ============================================================

def substitute(expr: Expr, bindings: BindingsType) -> Expr:
    """
    Replace every bound variable in an expression.

    The language has no nested binders, so bindings always cover exactly
    one function's parameters and no renaming is needed. Compound nodes are
    rebuilt, so the result never shares structure with a function body that
    a later call could observe.

    Args:
        expr: The expression to instantiate (usually a function body)
        bindings: Parameter name -> argument expression

    Returns:
        A new expression with no variable named in bindings

    Raises:
        UnboundVariable: If expr references a name missing from bindings
    """
    def instantiate(node: Expr, new_children: List[Expr]) -> Expr:
        if isinstance(node, Const):
            return node
        if isinstance(node, Variable):
            if node.name not in bindings:
                raise UnboundVariable(node.name)
            return bindings[node.name]
        return with_children(node, new_children)

    return fold_expr(expr, instantiate)


# ============================================================
# Single-step reduction
# ============================================================

def _pending_operands(expr: Expr) -> Tuple[Expr, ...]:
    """Operands that must become values before expr itself is rewritten."""
    if isinstance(expr, IfThenElse):
        return (expr.condition,)
    return children(expr)


def _contract(expr: Expr, functions: FunctionTable) -> Tuple[Expr, str]:
    """Rewrite a node whose pending operands are all values."""
    if isinstance(expr, UnaryOp):
        return Const(apply_unary(expr.op, expr.operand.value)), expr.op
    if isinstance(expr, BinaryOp):
        return Const(apply_binary(expr.op, expr.lhs.value, expr.rhs.value)), expr.op
    if isinstance(expr, IfThenElse):
        branch = expr.then_case if truthy(expr.condition.value) else expr.else_case
        return branch, "?:"
    if isinstance(expr, FunctionCall):
        return apply_function(expr, functions), f"{expr.func}()"
    raise TypeError(f"Not an expression: {expr!r}")


def reduce_once(expr: Expr, functions: FunctionTable) -> Tuple[Expr, str]:
    """
    Perform one rewrite and name the rule that fired.

    The redex is found by walking down the leftmost operand that is not yet
    a value (lhs before rhs, arguments left to right, only the condition of
    a conditional). The path is kept in an explicit list of (node, slot)
    frames and the spine is rebuilt upward, so deep trees do not exhaust
    the Python call stack. Untouched siblings are shared with the input.

    The rule label is the operator symbol for unary and binary operators,
    "?:" for a conditional, and "name()" for a function call.

    Args:
        expr: A non-terminal expression
        functions: The function table for calls

    Returns:
        (new expression, rule label)

    Raises:
        InvariantViolation: If expr is already a Const
        UnboundVariable: If a variable is reached
        UndefinedFunction: If a call names an unknown function
        ArityMismatch: If a call has the wrong number of arguments
    """
    if isinstance(expr, Const):
        raise InvariantViolation("step called after evaluation was finished")

    frames: List[Tuple[Expr, int]] = []
    node = expr
    while True:
        if isinstance(node, Variable):
            raise UnboundVariable(node.name)
        operands = _pending_operands(node)
        slot = next((i for i, operand in enumerate(operands)
                     if not isinstance(operand, Const)), None)
        if slot is None:
            break
        frames.append((node, slot))
        node = operands[slot]

    result, rule = _contract(node, functions)
    for parent, slot in reversed(frames):
        new_children = list(children(parent))
        new_children[slot] = result
        result = with_children(parent, new_children)
    return result, rule


def apply_function(call: FunctionCall, functions: FunctionTable) -> Expr:
    """Expand a call whose arguments are all values into its function body."""
    func = functions.get(call.func)
    if func is None:
        raise UndefinedFunction(call.func)
    if len(func.parameters) != len(call.arguments):
        raise ArityMismatch(call.func, len(func.parameters), len(call.arguments))
    bindings = dict(zip(func.parameters, call.arguments))
    return substitute(func.body, bindings)


def step(expr: Expr, functions: FunctionTable) -> Expr:
    """
    Apply exactly one rewrite to a non-terminal expression.

    Examples:
        step(E("(1 + 2) * 3"), {})  -> (3 * 3)
        step(E("3 * 3"), {})        -> 9
    """
    result, _ = reduce_once(expr, functions)
    return result

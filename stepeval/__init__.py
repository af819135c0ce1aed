"""
stepeval - Small-step evaluation traces for a tiny expression language

Reduces expressions one rewrite at a time (leftmost-innermost, call by value)
and exposes every intermediate state.

Quick Start:
    from stepeval import Evaluator

    evaluator = Evaluator.from_dsl('''
        factorial(n) = n <= 0 ? 1 : n * factorial(n - 1)
    ''')

    for state in evaluator.steps("factorial(2)"):
        print(state)
    # factorial(2)
    # ((2 <= 0) ? 1 : (2 * factorial((2 - 1))))
    # ...
    # 2

Expression Syntax:
    42  1.5  true  false          - constants
    n                             - parameter reference
    -x  !x                        - unary operators
    a + b  a === b  a <= b        - binary operators (JavaScript precedence)
    c ? a : b                     - conditional
    f(a, b)                       - function call

Function Definitions (.fns files):
    # Comments start with # or //
    and(a, b) = a ? b : a
    not(x) = !x
    :include other.fns

Cancellation:
    Traces are lazy generators. Stop iterating (or return STOP from a run()
    consumer) to cancel a non-terminating evaluation.
"""

from loguru import logger

__version__ = "0.1.0"

# Expression model
from .expr import (
    Expr,
    Const,
    Variable,
    UnaryOp,
    BinaryOp,
    IfThenElse,
    FunctionCall,
    FunctionDef,
    FunctionTable,
    Input,
    Number,
    Boolean,
    Value,
    UNARY_OPERATORS,
    BINARY_OPERATORS,
    is_value,
    to_value,
    to_python,
    format_expr,
    format_number,
)

# Errors
from .errors import (
    StepevalError,
    EvaluationError,
    UnboundVariable,
    UndefinedFunction,
    ArityMismatch,
    InvariantViolation,
    ExpressionSyntaxError,
    FunctionDefinitionError,
)

# Reduction
from .rewriter import (
    substitute,
    step,
    reduce_once,
    truthy,
    UNARY_PRELUDE,
    BINARY_PRELUDE,
)

# Parser
from .parser import (
    parse_expression,
    parse_function_definition,
)

# Trace driver, evaluator and loaders
from .engine import (
    E,
    STOP,
    iterate,
    run,
    trace,
    Evaluation,
    Evaluator,
    TraceStep,
    EvaluationTrace,
    load_functions_from_dsl,
    load_functions_from_file,
    load_functions_from_json,
)

from .logging_utils import configure_logging

# Library use stays silent until configure_logging() is called
logger.disable("stepeval")

# Public API
__all__ = [
    # Version
    "__version__",
    # Expressions
    "Expr",
    "Const",
    "Variable",
    "UnaryOp",
    "BinaryOp",
    "IfThenElse",
    "FunctionCall",
    "FunctionDef",
    "FunctionTable",
    "Input",
    # Values
    "Number",
    "Boolean",
    "Value",
    "UNARY_OPERATORS",
    "BINARY_OPERATORS",
    "is_value",
    "to_value",
    "to_python",
    "format_expr",
    "format_number",
    # Errors
    "StepevalError",
    "EvaluationError",
    "UnboundVariable",
    "UndefinedFunction",
    "ArityMismatch",
    "InvariantViolation",
    "ExpressionSyntaxError",
    "FunctionDefinitionError",
    # Reduction
    "substitute",
    "step",
    "reduce_once",
    "truthy",
    "UNARY_PRELUDE",
    "BINARY_PRELUDE",
    # Parser
    "parse_expression",
    "parse_function_definition",
    # Trace driver
    "E",
    "STOP",
    "iterate",
    "run",
    "trace",
    "Evaluation",
    "Evaluator",
    "TraceStep",
    "EvaluationTrace",
    # Loaders
    "load_functions_from_dsl",
    "load_functions_from_file",
    "load_functions_from_json",
    # Logging
    "configure_logging",
]

"""Error types for the stepeval reduction engine, parser and loaders."""

from typing import Optional


class StepevalError(Exception):
    """Base class for all stepeval errors."""


class EvaluationError(StepevalError):
    """Fatal error raised while reducing an expression.

    These abort the current run immediately; the engine never recovers from
    them or substitutes a default.
    """


class UnboundVariable(EvaluationError):
    """A variable reached the reduction engine or was missing from bindings."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unbound variable: {name}")


class UndefinedFunction(EvaluationError):
    """A call names a function absent from the function table."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Undefined function: {name}")


class ArityMismatch(EvaluationError):
    """A call passes the wrong number of arguments."""

    def __init__(self, name: str, expected: int, got: int):
        self.name = name
        self.expected = expected
        self.got = got
        super().__init__(
            f"Wrong number of arguments to {name}: {got} for {expected}"
        )


class InvariantViolation(EvaluationError):
    """The engine was asked to step an expression that is already a value."""


class ExpressionSyntaxError(StepevalError):
    """Source text is not exactly one supported expression."""

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.line is not None and self.column is not None:
            return f"Syntax error at line {self.line}, column {self.column}: {self.message}"
        return f"Syntax error: {self.message}"


class FunctionDefinitionError(StepevalError):
    """A function definition is malformed or clashes with another one."""

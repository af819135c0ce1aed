"""
Trace driver and function loaders for stepeval.

This module drives the reduction engine one step at a time and exposes the
intermediate states, and loads function tables from a small definition DSL
or JSON.

Tracing:
    for state in iterate(E("factorial(2)"), functions):
        print(state)

    Breaking out of the loop (or closing the generator) cancels the run.
    Nothing is reduced until the next state is requested, so a
    non-terminating program is safe to trace as long as the consumer stops.

DSL Format (.fns files):
    # Comment (// also works)
    factorial(n) = n <= 0 ? 1 : n * factorial(n - 1)
    and(a, b) = a ? b : a
    :include other.fns

JSON Format:
    {
        "name": "booleans",
        "functions": {
            "and": {"parameters": ["a", "b"], "body": "a ? b : a"}
        },
        "definitions": ["not(x) = !x"]
    }
"""

import itertools
import json
from pathlib import Path
from types import MappingProxyType
from typing import (
    Any, Callable, Dict, Iterator, List, Optional, Tuple, Union,
)

from loguru import logger

from .errors import FunctionDefinitionError
from .expr import (
    BinaryOp, Const, Expr, FunctionCall, FunctionDef, FunctionTable,
    IfThenElse, Input, RawValue, UnaryOp, Variable, format_expr,
)
from .parser import parse_expression, parse_function_definition
from .rewriter import reduce_once


# ============================================================
# Expression Builder
# ============================================================

def _wrap(arg: Union[Expr, RawValue, str]) -> Expr:
    """Raw numbers and bools become constants, strings become variables."""
    if isinstance(arg, Expr):
        return arg
    if isinstance(arg, str):
        return Variable(arg)
    return Const(arg)


class _ExprBuilder:
    """
    Expression builder for stepeval.

    Examples:
        from stepeval import E

        # Parse source text
        expr = E("1 * (2 + 3)")

        # Build programmatically
        expr = E.op("*", 1, E.op("+", 2, 3))
        expr = E.call("factorial", E.op("-", "n", 1))
        expr = E.cond(E.op("<=", "n", 0), 1, "n")
    """

    def __call__(self, s: str) -> Expr:
        """
        Parse source text.

        Examples:
            E("42 + 23") -> BinaryOp("+", Const(42), Const(23))
        """
        return parse_expression(s)

    def op(self, name: str, *args) -> Expr:
        """
        Build an operator node: unary with one operand, binary with two.

        Examples:
            E.op("-", 5)        -> -5
            E.op("+", "x", 1)   -> (x + 1)
        """
        if len(args) == 1:
            return UnaryOp(name, _wrap(args[0]))
        if len(args) == 2:
            return BinaryOp(name, _wrap(args[0]), _wrap(args[1]))
        raise ValueError(f"Operator {name} takes 1 or 2 operands, got {len(args)}")

    def call(self, name: str, *args) -> FunctionCall:
        """Build a function call: E.call("f", 1, "x") -> f(1, x)"""
        return FunctionCall(name, tuple(_wrap(arg) for arg in args))

    def cond(self, condition, then_case, else_case) -> IfThenElse:
        """Build a conditional: E.cond(c, a, b) -> (c ? a : b)"""
        return IfThenElse(_wrap(condition), _wrap(then_case), _wrap(else_case))

    def var(self, name: str) -> Variable:
        """Create a variable: E.var("n") -> n"""
        return Variable(name)

    def const(self, value: RawValue) -> Const:
        """Create a constant: E.const(5) -> 5, E.const(True) -> true"""
        return Const(value)

    def __repr__(self) -> str:
        return "E (expression builder)"


# Singleton instance
E = _ExprBuilder()


# ============================================================
# Function loading
# ============================================================

def _add_function(table: Dict[str, FunctionDef], name: str, func: FunctionDef) -> None:
    if name in table:
        raise FunctionDefinitionError(f"Function defined twice: {name}")
    table[name] = func


def load_functions_from_dsl(
    text: str,
    base_path: Optional[Path] = None,
    _included_files: Optional[set] = None
) -> Dict[str, FunctionDef]:
    """
    Load function definitions from DSL text.

    Supports:
    - One definition per line: name(a, b) = body
    - Comments starting with # or //
    - File includes: :include path/to/file.fns

    Args:
        text: DSL text containing definitions
        base_path: Base path for resolving relative :include paths
        _included_files: Internal tracking for circular include detection

    Returns:
        Dict of name -> FunctionDef

    Raises:
        FunctionDefinitionError: On a malformed line or a repeated name
        ExpressionSyntaxError: If a function body does not parse
    """
    functions: Dict[str, FunctionDef] = {}

    if _included_files is None:
        _included_files = set()

    for lineno, line in enumerate(text.split('\n'), 1):
        line_stripped = line.strip()

        if not line_stripped or line_stripped.startswith(('#', '//')):
            continue

        if line_stripped.startswith(':include '):
            include_path_str = line_stripped[9:].strip()
            include_path = base_path / include_path_str if base_path else Path(include_path_str)

            abs_path = include_path.resolve()
            if abs_path in _included_files:
                raise ValueError(f"Circular include detected: {include_path}")
            if not include_path.exists():
                raise FileNotFoundError(f"Include file not found: {include_path}")

            _included_files.add(abs_path)
            included = load_functions_from_file(include_path, _included_files=_included_files)
            for name, func in included.items():
                _add_function(functions, name, func)
            continue

        result = parse_function_definition(line_stripped)
        if result is None:
            raise FunctionDefinitionError(
                f"line {lineno}: expected 'name(params) = body', got {line_stripped!r}"
            )
        name, func = result
        _add_function(functions, name, func)

    return functions


def load_functions_from_file(
    path: Union[str, Path],
    _included_files: Optional[set] = None
) -> Dict[str, FunctionDef]:
    """
    Load function definitions from a .fns or .json file.

    DSL :include paths are resolved relative to the containing file.
    """
    path = Path(path)
    text = path.read_text()

    if path.suffix == '.json':
        functions = load_functions_from_json(text)
    else:
        if _included_files is None:
            _included_files = {path.resolve()}
        functions = load_functions_from_dsl(
            text,
            base_path=path.parent,
            _included_files=_included_files
        )
    logger.debug("functions.load path={} count={}", path, len(functions))
    return functions


def load_functions_from_json(text: str) -> Dict[str, FunctionDef]:
    """
    Load function definitions from JSON text.

    Expected format:
        {
            "name": "optional table name",
            "functions": {
                "factorial": {
                    "parameters": ["n"],
                    "body": "n <= 0 ? 1 : n * factorial(n - 1)"
                }
            },
            "definitions": ["not(x) = !x"]   # optional DSL lines
        }
    """
    data = json.loads(text)
    functions: Dict[str, FunctionDef] = {}

    for name, spec in data.get('functions', {}).items():
        try:
            parameters = spec['parameters']
            body = spec['body']
        except (KeyError, TypeError) as e:
            raise FunctionDefinitionError(
                f"Function {name} needs 'parameters' and 'body'"
            ) from e
        _add_function(functions, name, FunctionDef(tuple(parameters), parse_expression(body)))

    for line in data.get('definitions', []):
        result = parse_function_definition(line)
        if result is None:
            raise FunctionDefinitionError(f"Not a function definition: {line!r}")
        _add_function(functions, *result)

    return functions


def functions_to_dsl(functions: FunctionTable) -> List[str]:
    """Render a function table as DSL lines, one definition per line."""
    return [
        f"{func.signature(name)} = {format_expr(func.body)}"
        for name, func in functions.items()
    ]


# ============================================================
# Trace driver
# ============================================================

class _Stop:
    """
    Singleton a run consumer returns to cancel the run.

        def consumer(expr):
            lines.append(str(expr))
            if len(lines) >= 10:
                return STOP
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "STOP"


# Singleton instance
STOP = _Stop()


def iterate_steps(expression: Expr, functions: FunctionTable) -> Iterator[Tuple[Expr, Optional[str]]]:
    """
    Lazily reduce an expression, yielding (state, rule) pairs.

    The first pair is the initial expression with rule None. Each following
    pair is the whole tree after one step and the rule that produced it. The
    generator ends after yielding the first Const.
    """
    current = expression
    logger.debug("eval.start expr={}", current)
    yield current, None

    index = 0
    while not isinstance(current, Const):
        current, rule = reduce_once(current, functions)
        index += 1
        logger.debug("eval.step index={} rule={} expr={}", index, rule, current)
        yield current, rule

    logger.debug("eval.stop steps={} value={}", index, current)


def iterate(expression: Expr, functions: FunctionTable) -> Iterator[Expr]:
    """
    Lazily reduce an expression, yielding every state.

    Yields the initial expression, then the whole tree after each step, and
    stops after the first Const. Stop consuming to cancel.

    Example:
        states = [str(s) for s in iterate(E("42 + 23"), {})]
        # => ["(42 + 23)", "65"]
    """
    for state, _ in iterate_steps(expression, functions):
        yield state


def run(task: Input, consumer: Callable[[Expr], Any]) -> Expr:
    """
    Emit every state of an evaluation task to a consumer.

    The consumer may return STOP after any state to end the run without an
    error. Engine errors propagate to the caller.

    Args:
        task: The function table and expression to evaluate
        consumer: Called once per state, in order

    Returns:
        The last state emitted (a Const when the run completed)
    """
    last = task.expression
    states = iterate(task.expression, task.functions)
    try:
        for state in states:
            last = state
            if consumer(state) is STOP:
                logger.debug("eval.cancel expr={}", state)
                break
    finally:
        states.close()
    return last


class Evaluation:
    """
    A restartable lazy sequence of evaluation states.

    Each iteration starts again from the initial expression, so the same
    Evaluation can be traced several times and always yields the same
    sequence.

        evaluation = Evaluation(E("infty(0)"), functions)
        evaluation.take(3)   # first three states
        for state in evaluation:
            ...
    """

    def __init__(self, expression: Expr, functions: FunctionTable):
        self.expression = expression
        self.functions = functions

    def __iter__(self) -> Iterator[Expr]:
        return iterate(self.expression, self.functions)

    def take(self, n: int) -> List[Expr]:
        """Return at most the first n states."""
        states = []
        if n <= 0:
            return states
        for state in self:
            states.append(state)
            if len(states) >= n:
                break
        return states

    def __repr__(self) -> str:
        return f"Evaluation({format_expr(self.expression)})"


# ============================================================
# Traces
# ============================================================

class TraceStep:
    """A single step in an evaluation trace."""

    def __init__(self, index: int, rule: str, before: Expr, after: Expr):
        self.index = index
        self.rule = rule
        self.before = before
        self.after = after

    def __repr__(self) -> str:
        return f"{self.rule}: {format_expr(self.before)} → {format_expr(self.after)}"

    def to_dict(self) -> Dict:
        """Convert step to dictionary for serialization."""
        return {
            "index": self.index,
            "rule": self.rule,
            "before": format_expr(self.before),
            "after": format_expr(self.after),
        }


class EvaluationTrace:
    """
    A trace of every state an evaluation went through.

    Provides multiple formatting options:
        - format("lines"): one rendered state per line (the canonical trace)
        - format("chain"): states joined by the rule that fired
        - format("compact"): single line summary
        - format("rules"): just the rules applied
        - to_dict(): JSON-serializable dictionary

    completed is False when the trace was cut short by a step limit.
    """

    STYLES = ("lines", "chain", "compact", "rules")

    def __init__(self, initial: Expr):
        self.initial: Expr = initial
        self.final: Expr = initial
        self.steps: List[TraceStep] = []
        self.completed = isinstance(initial, Const)

    def add_step(self, step: TraceStep):
        self.steps.append(step)
        self.final = step.after
        self.completed = isinstance(step.after, Const)

    def states(self) -> List[Expr]:
        """All states in order, starting with the initial expression."""
        return [self.initial] + [step.after for step in self.steps]

    def lines(self) -> List[str]:
        """All states rendered in the canonical syntax."""
        return [format_expr(state) for state in self.states()]

    def format(self, style: str = "lines") -> str:
        """
        Format the trace in different styles.

        Args:
            style: One of "lines", "chain", "compact", "rules"

        Returns:
            Formatted string representation of the trace.
        """
        if style == "compact":
            rules = self.rules_applied()
            arrow = f"--[{len(rules)} steps]-->"
            suffix = "" if self.completed else " ..."
            return f"{format_expr(self.initial)} {arrow} {format_expr(self.final)}{suffix}"

        elif style == "rules":
            rules = self.rules_applied()
            return " -> ".join(rules) if rules else "(no steps)"

        elif style == "chain":
            parts = [format_expr(self.initial)]
            for step in self.steps:
                parts.append(f"  --({step.rule})-->")
                parts.append(format_expr(step.after))
            return "\n".join(parts)

        elif style == "lines":
            return "\n".join(self.lines())

        raise ValueError(f"Unknown trace style: {style}. "
                         f"Valid options: {', '.join(self.STYLES)}")

    def __repr__(self) -> str:
        lines = [f"Initial: {format_expr(self.initial)}"]
        for step in self.steps:
            lines.append(f"  {step.index}. {step}")
        status = "Final" if self.completed else "Stopped"
        lines.append(f"{status}: {format_expr(self.final)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        """Iterate over trace steps."""
        return iter(self.steps)

    def __bool__(self) -> bool:
        """True if any step was taken."""
        return len(self.steps) > 0

    def to_dict(self) -> Dict:
        """Convert trace to dictionary for JSON serialization."""
        return {
            "initial": format_expr(self.initial),
            "final": format_expr(self.final),
            "completed": self.completed,
            "steps": [step.to_dict() for step in self.steps],
            "step_count": len(self.steps),
        }

    def rules_applied(self) -> List[str]:
        """Get list of rules in order of application."""
        return [step.rule for step in self.steps]

    def rule_counts(self) -> Dict[str, int]:
        """Count how many times each rule fired."""
        counts: Dict[str, int] = {}
        for step in self.steps:
            counts[step.rule] = counts.get(step.rule, 0) + 1
        return counts

    def summary(self) -> str:
        """Get a brief summary of the evaluation."""
        if not self.steps:
            return "No steps taken"
        counts = self.rule_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.steps)} steps using {len(counts)} distinct rules. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")


def _check_max_steps(max_steps: Optional[int]) -> None:
    if max_steps is not None and max_steps < 1:
        raise ValueError(f"max_steps must be at least 1, got {max_steps}")


def trace(expression: Expr, functions: FunctionTable,
          max_steps: Optional[int] = None) -> EvaluationTrace:
    """
    Evaluate an expression and record every step.

    Args:
        expression: Expression to evaluate
        functions: Function table for calls
        max_steps: Stop after this many states have been emitted (counting
            the initial one). None means run until a value is reached.

    Returns:
        The trace; trace.completed tells whether a value was reached.
    """
    _check_max_steps(max_steps)
    result = EvaluationTrace(expression)
    states = iterate_steps(expression, functions)
    emitted = 0
    try:
        for state, rule in states:
            if rule is not None:
                result.add_step(TraceStep(len(result.steps) + 1, rule, result.final, state))
            emitted += 1
            if max_steps is not None and emitted >= max_steps:
                break
    finally:
        states.close()
    return result


# Evaluator.evaluate takes a "trace" flag that shadows the function
_trace = trace


# ============================================================
# Evaluator
# ============================================================

class Evaluator:
    """
    An evaluator owning a function table.

    Example:
        from stepeval import Evaluator, E

        evaluator = Evaluator.from_dsl('''
            factorial(n) = n <= 0 ? 1 : n * factorial(n - 1)
        ''')

        evaluator.evaluate(E("factorial(5)"))                # => Const(120)
        value, trace = evaluator.evaluate(E("factorial(2)"), trace=True)
        print(trace.format("lines"))
    """

    def __init__(self, functions: Optional[FunctionTable] = None):
        self._functions: Dict[str, FunctionDef] = dict(functions or {})

    @property
    def functions(self) -> FunctionTable:
        """Read-only live view of the function table."""
        return MappingProxyType(self._functions)

    def _snapshot(self) -> FunctionTable:
        """Freeze the current table for one run; later definitions do not leak in."""
        return MappingProxyType(dict(self._functions))

    def _merge(self, functions: FunctionTable) -> 'Evaluator':
        for name, func in functions.items():
            if name in self._functions:
                raise FunctionDefinitionError(f"Function defined twice: {name}")
        self._functions.update(functions)
        return self

    def load_dsl(self, text: str) -> 'Evaluator':
        """Load function definitions from DSL text."""
        return self._merge(load_functions_from_dsl(text))

    def load_file(self, path: Union[str, Path]) -> 'Evaluator':
        """Load function definitions from a file (.fns or .json)."""
        return self._merge(load_functions_from_file(path))

    def load_json(self, text: str) -> 'Evaluator':
        """Load function definitions from JSON text."""
        return self._merge(load_functions_from_json(text))

    def define(self, name: str, parameters, body: Union[str, Expr]) -> 'Evaluator':
        """
        Define a single function; body may be source text or an Expr.

            evaluator.define("double", ["x"], "x * 2")
        """
        if isinstance(body, str):
            body = parse_expression(body)
        return self._merge({name: FunctionDef(tuple(parameters), body)})

    def clear(self) -> 'Evaluator':
        """Remove all functions."""
        self._functions.clear()
        return self

    def _coerce(self, expr: Union[str, Expr]) -> Expr:
        return parse_expression(expr) if isinstance(expr, str) else expr

    def steps(self, expr: Union[str, Expr]) -> Evaluation:
        """Return a restartable lazy sequence of states for expr."""
        return Evaluation(self._coerce(expr), self._snapshot())

    def run(self, expr: Union[str, Expr], consumer: Callable[[Expr], Any]) -> Expr:
        """Emit every state of expr to consumer; see run()."""
        return run(Input(self._snapshot(), self._coerce(expr)), consumer)

    def evaluate(
        self,
        expr: Union[str, Expr],
        trace: bool = False,
        max_steps: Optional[int] = None,
    ):
        """
        Evaluate an expression.

        Args:
            expr: Expression or source text
            trace: If True, return (result, trace) tuple
            max_steps: Stop after this many emitted states (no error); the
                result is then the last state reached, not a value

        Returns:
            The last state, or (last state, trace) if trace=True

        Raises:
            ValueError: If max_steps is less than 1
        """
        expression = self._coerce(expr)
        if trace:
            result = _trace(expression, self._snapshot(), max_steps=max_steps)
            return result.final, result

        _check_max_steps(max_steps)
        last = expression
        for last in itertools.islice(iterate(expression, self._snapshot()), max_steps):
            pass
        return last

    def list_functions(self) -> List[str]:
        """List all function signatures."""
        return [func.signature(name) for name, func in self._functions.items()]

    def to_dsl(self, name: Optional[str] = None) -> str:
        """Export functions to DSL format string."""
        lines = []
        if name:
            lines.append(f"# {name}")
            lines.append("")
        lines.extend(functions_to_dsl(self._functions))
        return "\n".join(lines)

    def to_json(self, name: Optional[str] = None, indent: Optional[int] = 2) -> str:
        """Export functions to JSON compatible with load_functions_from_json()."""
        result: Dict[str, Any] = {
            "functions": {
                fname: {
                    "parameters": list(func.parameters),
                    "body": format_expr(func.body),
                }
                for fname, func in self._functions.items()
            }
        }
        if name:
            result["name"] = name
        return json.dumps(result, indent=indent)

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        return f"Evaluator({len(self._functions)} functions)"

    def __call__(self, expr: Union[str, Expr], **kwargs):
        """evaluator(expr) is shorthand for evaluator.evaluate(expr)."""
        return self.evaluate(expr, **kwargs)

    def __iter__(self):
        """Iterate over (name, FunctionDef) pairs."""
        return iter(self._functions.items())

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __getitem__(self, name: str) -> FunctionDef:
        if name not in self._functions:
            raise KeyError(f"No function named '{name}'")
        return self._functions[name]

    @classmethod
    def from_dsl(cls, text: str) -> 'Evaluator':
        """Create evaluator from DSL text."""
        return cls().load_dsl(text)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'Evaluator':
        """Create evaluator from file."""
        return cls().load_file(path)

    def copy(self) -> 'Evaluator':
        """Create a copy of this evaluator."""
        return Evaluator(self._functions)

    def __or__(self, other: 'Evaluator') -> 'Evaluator':
        """Union of two function tables; a shared name is an error."""
        return self.copy()._merge(other.functions)


"""
Surface syntax parser for stepeval.

Parses a JavaScript expression subset into the expression model:

    literals      42  3.5  .5  1e3  0xff  true  false
    names         n  acc  $tmp  _x
    calls         factorial(n - 1)       (the callee must be a bare name)
    unary         -x  !x
    binary        * / %   + -   < > <= >=   == != === !==
    conditional   c ? a : b              (right-associative, lowest)

Precedence and associativity follow JavaScript. As in JavaScript, "--" and
"++" are not two prefix operators in a row ("--5" and "1--2" are errors,
"- -5" is fine). Anything else raises ExpressionSyntaxError.

Function definitions use the same expression syntax for their body:

    factorial(n) = n <= 0 ? 1 : n * factorial(n - 1)
"""

import re
from typing import List, Optional, Tuple

from pyparsing import (
    Forward, Keyword, MatchFirst, OpAssoc, Opt, ParseBaseException,
    ParserElement, Regex, Suppress, ZeroOrMore, infix_notation, one_of,
)

from .errors import ExpressionSyntaxError, FunctionDefinitionError
from .expr import (
    BinaryOp, Const, Expr, FunctionCall, FunctionDef, IfThenElse, UnaryOp,
    Variable,
)

# Enable packrat parsing, infix_notation backtracks heavily without it
ParserElement.enable_packrat()

IDENTIFIER_PATTERN = r"[A-Za-z_$][A-Za-z0-9_$]*"

# Words that cannot be used as names
RESERVED_WORDS = (
    "true", "false", "null", "this", "new", "typeof", "void", "delete",
    "in", "instanceof", "function", "class", "var", "let", "const",
    "if", "else", "return",
)

_DEFINITION_HEAD = re.compile(
    r"^\s*(" + IDENTIFIER_PATTERN + r")\s*\(([^()]*)\)\s*=(?!=)(.*)$",
    re.DOTALL,
)
_IDENTIFIER = re.compile(r"^" + IDENTIFIER_PATTERN + r"$")


# ============================================================
# Parse actions
# ============================================================

def _make_number(tokens) -> Const:
    text = tokens[0]
    prefix = text[:2].lower()
    if prefix == "0x":
        return Const(int(text[2:], 16))
    if prefix == "0o":
        return Const(int(text[2:], 8))
    if prefix == "0b":
        return Const(int(text[2:], 2))
    return Const(float(text))


def _make_call(tokens) -> FunctionCall:
    items = list(tokens)
    return FunctionCall(items[0], tuple(items[1:]))


def _make_unary(tokens) -> Expr:
    items = list(tokens[0])
    if len(items) == 1:
        return items[0]
    op, operand = items
    return UnaryOp(op, operand)


def _make_binary(tokens) -> Expr:
    """Fold a flat [a, op, b, op, c] group left-associatively."""
    items = list(tokens[0])
    result = items[0]
    for i in range(1, len(items), 2):
        result = BinaryOp(items[i], result, items[i + 1])
    return result


def _make_conditional(tokens) -> Expr:
    """Fold [c, "?", a, ":", b, ...] right-associatively."""
    items = list(tokens[0])
    result = items[-1]
    for i in range(len(items) - 5, -1, -4):
        result = IfThenElse(items[i], items[i + 2], result, source="expression")
    return result


# ============================================================
# Grammar
# ============================================================

class ExpressionGrammar:
    """Expression grammar definition using pyparsing."""

    def __init__(self):
        self._setup_grammar()

    def _setup_grammar(self):
        expression = Forward()

        reserved = MatchFirst([Keyword(word) for word in RESERVED_WORDS])

        number = Regex(
            r"0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+"
            r"|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
        ).set_name("number").set_parse_action(_make_number)

        boolean = (
            Keyword("true").set_parse_action(lambda: Const(True)) |
            Keyword("false").set_parse_action(lambda: Const(False))
        ).set_name("boolean")

        # Names exclude reserved words, the same way for calls and variables
        call_name = ~reserved + Regex(IDENTIFIER_PATTERN)
        variable = (~reserved + Regex(IDENTIFIER_PATTERN)).set_name("name").set_parse_action(
            lambda t: Variable(t[0])
        )

        arguments = Opt(expression + ZeroOrMore(Suppress(",") + expression))
        call = (
            call_name + Suppress("(") + arguments + Suppress(")")
        ).set_name("call").set_parse_action(_make_call)

        # Calls before variables, both start with a name
        operand = (number | boolean | call | variable).set_name("operand")

        # JavaScript lexes "--" and "++" as one token, never as two signs
        unary_op = Regex(r"!|-(?!-)").set_name("unary operator")
        additive_op = Regex(r"\+(?!\+)|-(?!-)").set_name("additive operator")

        expression <<= infix_notation(operand, [
            (unary_op, 1, OpAssoc.RIGHT, _make_unary),
            (one_of("* / %"), 2, OpAssoc.LEFT, _make_binary),
            (additive_op, 2, OpAssoc.LEFT, _make_binary),
            (one_of("< > <= >="), 2, OpAssoc.LEFT, _make_binary),
            (one_of("== != === !=="), 2, OpAssoc.LEFT, _make_binary),
            (("?", ":"), 3, OpAssoc.RIGHT, _make_conditional),
        ])
        expression.set_name("expression")

        self.expression = expression

    def parse(self, text: str) -> Expr:
        """Parse exactly one expression, consuming all of text."""
        if not text.strip():
            raise ExpressionSyntaxError("expected an expression, got empty input")
        try:
            result = self.expression.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise ExpressionSyntaxError(e.msg, e.lineno, e.col) from e
        return result[0]


_grammar: Optional[ExpressionGrammar] = None


def _get_grammar() -> ExpressionGrammar:
    global _grammar
    if _grammar is None:
        _grammar = ExpressionGrammar()
    return _grammar


def parse_expression(text: str) -> Expr:
    """
    Parse source text into an expression.

    Examples:
        parse_expression("42 + 23")       -> BinaryOp("+", Const(42), Const(23))
        parse_expression("-(23 + 13)")    -> UnaryOp("-", BinaryOp(...))
        parse_expression("f(x, 1)")       -> FunctionCall("f", [Variable("x"), Const(1)])

    Raises:
        ExpressionSyntaxError: If text is not exactly one supported expression
    """
    return _get_grammar().parse(text)


def parse_parameters(text: str) -> List[str]:
    """Split and validate a comma-separated parameter list."""
    if not text.strip():
        return []
    params = [p.strip() for p in text.split(",")]
    for name in params:
        if not _IDENTIFIER.match(name) or name in RESERVED_WORDS:
            raise FunctionDefinitionError(f"Invalid parameter name: {name!r}")
    return params


def parse_function_definition(text: str) -> Optional[Tuple[str, FunctionDef]]:
    """
    Parse a function definition line.

    Format:
        name(param1, param2) = body

    Returns: (name, FunctionDef) or None if the line is not a definition

    Raises:
        FunctionDefinitionError: If the head is malformed (bad or repeated
            parameter names, reserved function name)
        ExpressionSyntaxError: If the body does not parse
    """
    match_obj = _DEFINITION_HEAD.match(text)
    if not match_obj:
        return None

    name, params_text, body_text = match_obj.groups()
    if name in RESERVED_WORDS:
        raise FunctionDefinitionError(f"Invalid function name: {name!r}")

    parameters = parse_parameters(params_text)
    body = parse_expression(body_text)
    return name, FunctionDef(tuple(parameters), body)

"""Tests for the expression model, values and rendering."""

import math

import pytest
from stepeval import (
    E, Const, Variable, UnaryOp, BinaryOp, IfThenElse, FunctionCall,
    FunctionDef, Number, Boolean, FunctionDefinitionError,
    format_expr, format_number, to_value, to_python, is_value,
)


class TestFormatNumber:
    """Tests for JavaScript-style number rendering."""

    def test_integral_floats(self):
        """Integral values render without a fraction."""
        assert format_number(65.0) == "65"
        assert format_number(-36.0) == "-36"
        assert format_number(1e20) == "100000000000000000000"

    def test_fractions(self):
        assert format_number(1.25) == "1.25"
        assert format_number(-3.75) == "-3.75"
        assert format_number(0.1 + 0.2) == "0.30000000000000004"
        assert format_number(0.000001) == "0.000001"

    def test_exponent_forms(self):
        """Very large and very small values switch to exponent notation."""
        assert format_number(1e21) == "1e+21"
        assert format_number(1.5e22) == "1.5e+22"
        assert format_number(1e-7) == "1e-7"
        assert format_number(-2.5e-8) == "-2.5e-8"

    def test_zero_and_specials(self):
        assert format_number(0.0) == "0"
        assert format_number(-0.0) == "0"
        assert format_number(math.inf) == "Infinity"
        assert format_number(-math.inf) == "-Infinity"
        assert format_number(math.nan) == "NaN"


class TestValues:
    """Tests for the tagged value union."""

    def test_to_value_bool_before_int(self):
        """bool is an int subclass but must become a Boolean."""
        assert to_value(True) == Boolean(True)
        assert to_value(1) == Number(1.0)

    def test_to_value_rejects_other_types(self):
        with pytest.raises(TypeError):
            to_value("42")
        with pytest.raises(TypeError):
            to_value(None)

    def test_number_is_float(self):
        assert Number(42).value == 42.0
        assert isinstance(Number(42).value, float)

    def test_to_python(self):
        assert to_python(Number(2.0)) == 2
        assert isinstance(to_python(Number(2.0)), int)
        assert to_python(Number(1.5)) == 1.5
        assert to_python(Boolean(False)) is False

    def test_const_coerces_raw_values(self):
        """Const(42), Const(42.0) and Const(Number(42)) are the same node."""
        assert Const(42) == Const(42.0) == Const(Number(42))
        assert Const(True) != Const(1)


class TestRendering:
    """Tests for the canonical trace syntax."""

    def test_constants(self):
        assert format_expr(Const(42)) == "42"
        assert format_expr(Const(-3.75)) == "-3.75"
        assert format_expr(Const(True)) == "true"
        assert format_expr(Const(False)) == "false"

    def test_binary_always_parenthesized(self):
        expr = BinaryOp("+", Const(42), Const(23))
        assert format_expr(expr) == "(42 + 23)"

    def test_unary_has_no_parens(self):
        expr = UnaryOp("-", BinaryOp("+", Const(23), Const(13)))
        assert format_expr(expr) == "-(23 + 13)"
        assert format_expr(UnaryOp("!", Const(True))) == "!true"

    def test_conditional(self):
        expr = IfThenElse(BinaryOp("<=", Variable("n"), Const(0)), Const(1), Variable("n"))
        assert format_expr(expr) == "((n <= 0) ? 1 : n)"

    def test_call(self):
        expr = FunctionCall("f", [Const(1), BinaryOp("-", Variable("n"), Const(1))])
        assert format_expr(expr) == "f(1, (n - 1))"
        assert format_expr(FunctionCall("g")) == "g()"

    def test_str_uses_canonical_syntax(self):
        assert str(E.op("*", 2, E.call("f", "x"))) == "(2 * f(x))"

    def test_deep_nesting(self):
        """Rendering depth is not limited by the call stack."""
        expr = Const(1)
        for _ in range(5000):
            expr = UnaryOp("!", expr)
        assert format_expr(expr) == "!" * 5000 + "1"

        chain = Variable("x")
        for _ in range(3000):
            chain = BinaryOp("+", Const(1), chain)
        text = format_expr(chain)
        assert text.startswith("(1 + (1 + ")
        assert text.endswith("x" + ")" * 3000)


class TestNodes:
    """Tests for node construction and validation."""

    def test_unknown_operators_rejected(self):
        with pytest.raises(ValueError):
            UnaryOp("~", Const(1))
        with pytest.raises(ValueError):
            BinaryOp("**", Const(1), Const(2))

    def test_unknown_conditional_source_rejected(self):
        with pytest.raises(ValueError):
            IfThenElse(Const(True), Const(1), Const(2), source="loop")

    def test_statement_source_allowed(self):
        expr = IfThenElse(Const(True), Const(1), Const(2), source="statement")
        assert expr.source == "statement"

    def test_call_arguments_become_tuple(self):
        call = FunctionCall("f", [Const(1)])
        assert call.arguments == (Const(1),)
        assert hash(call) == hash(FunctionCall("f", (Const(1),)))

    def test_nodes_are_frozen(self):
        expr = BinaryOp("+", Const(1), Const(2))
        with pytest.raises(AttributeError):
            expr.lhs = Const(5)

    def test_is_value(self):
        assert is_value(Const(1))
        assert not is_value(Variable("x"))
        assert not is_value(UnaryOp("-", Const(1)))


class TestFunctionDef:
    """Tests for function definitions."""

    def test_arity_and_signature(self):
        func = FunctionDef(["a", "b"], Variable("a"))
        assert func.parameters == ("a", "b")
        assert func.arity == 2
        assert func.signature("and") == "and(a, b)"

    def test_duplicate_parameter_rejected(self):
        with pytest.raises(FunctionDefinitionError):
            FunctionDef(("x", "x"), Variable("x"))


class TestExprBuilder:
    """Tests for the E builder."""

    def test_parse_text(self):
        assert E("42 + 23") == BinaryOp("+", Const(42), Const(23))

    def test_wrapping(self):
        """Raw values become constants and strings become variables."""
        assert E.op("+", "x", 1) == BinaryOp("+", Variable("x"), Const(1))
        assert E.op("-", 5) == UnaryOp("-", Const(5))
        assert E.cond(True, 1, "n") == IfThenElse(Const(True), Const(1), Variable("n"))
        assert E.call("f", 1, "x") == FunctionCall("f", (Const(1), Variable("x")))

    def test_var_and_const(self):
        assert E.var("n") == Variable("n")
        assert E.const(False) == Const(False)

    def test_op_operand_count(self):
        with pytest.raises(ValueError):
            E.op("+", 1, 2, 3)

"""Tests for the expression parser."""

import pytest
from stepeval import (
    Const, Variable, UnaryOp, BinaryOp, IfThenElse, FunctionCall,
    ExpressionSyntaxError, FunctionDefinitionError, StepevalError,
    parse_expression, parse_function_definition,
)
from stepeval.parser import parse_parameters


def render(text):
    return str(parse_expression(text))


class TestLiterals:
    """Tests for literal parsing."""

    def test_integers_and_floats(self):
        assert parse_expression("42") == Const(42)
        assert parse_expression("3.5") == Const(3.5)
        assert parse_expression(".5") == Const(0.5)
        assert parse_expression("1e3") == Const(1000)
        assert parse_expression("2.5E-1") == Const(0.25)

    def test_radix_literals(self):
        assert parse_expression("0xff") == Const(255)
        assert parse_expression("0o17") == Const(15)
        assert parse_expression("0b101") == Const(5)

    def test_booleans(self):
        assert parse_expression("true") == Const(True)
        assert parse_expression("false") == Const(False)

    def test_identifiers(self):
        assert parse_expression("n") == Variable("n")
        assert parse_expression("$tmp_1") == Variable("$tmp_1")
        assert parse_expression("trueish") == Variable("trueish")

    def test_negative_literal_is_unary(self):
        assert parse_expression("-42") == UnaryOp("-", Const(42))


class TestPrecedence:
    """Tests for operator precedence and associativity."""

    def test_multiplicative_over_additive(self):
        assert render("1 + 2 * 3") == "(1 + (2 * 3))"
        assert render("(1 + 2) * 3") == "((1 + 2) * 3)"

    def test_left_associative(self):
        assert render("1 - 2 - 3") == "((1 - 2) - 3)"
        assert render("8 / 4 / 2") == "((8 / 4) / 2)"

    def test_full_chain(self):
        assert render("1 * (2 + 3) / 4 - 5 === 6 % 7") == \
            "((((1 * (2 + 3)) / 4) - 5) === (6 % 7))"

    def test_comparison_below_arithmetic(self):
        assert render("n <= 0") == "(n <= 0)"
        assert render("a + 1 < b * 2") == "((a + 1) < (b * 2))"

    def test_equality_below_comparison(self):
        assert render("1 < 2 == true") == "((1 < 2) == true)"
        assert render("a !== b != c") == "((a !== b) != c)"

    def test_unary_binds_tightest(self):
        assert render("-42 > -(23+13)") == "(-42 > -(23 + 13))"
        assert render("!a == b") == "(!a == b)"
        assert render("- -x") == "--x"
        assert render("-(-5)") == "--5"
        assert render("!!x") == "!!x"

    def test_spaced_minus_signs(self):
        assert render("1 - -2") == "(1 - -2)"
        assert parse_expression("- -5") == UnaryOp("-", UnaryOp("-", Const(5)))

    def test_conditional_lowest(self):
        expr = parse_expression("n <= 0 ? 1 : n * f(n - 1)")
        assert isinstance(expr, IfThenElse)
        assert expr.source == "expression"
        assert str(expr) == "((n <= 0) ? 1 : (n * f((n - 1))))"

    def test_conditional_right_associative(self):
        assert render("a ? b : c ? d : e") == "(a ? b : (c ? d : e))"
        assert render("a ? b ? c : d : e") == "(a ? (b ? c : d) : e)"


class TestCalls:
    """Tests for function call parsing."""

    def test_call_arguments(self):
        expr = parse_expression("f(x, 1 + 2)")
        assert expr == FunctionCall("f", (Variable("x"), BinaryOp("+", Const(1), Const(2))))

    def test_nullary_call(self):
        assert parse_expression("answer()") == FunctionCall("answer")

    def test_nested_calls(self):
        assert render("not(1 < 2)") == "not((1 < 2))"
        assert render("f(g(x), h())") == "f(g(x), h())"

    def test_call_inside_unary(self):
        assert parse_expression("!f(x)") == UnaryOp("!", FunctionCall("f", (Variable("x"),)))


class TestSyntaxErrors:
    """Tests for rejected input."""

    @pytest.mark.parametrize("text", [
        "1 +",
        "1 2",
        "(1 + 2",
        "a = 1",
        "x ** 2",
        "(f)(1)",
        "f(1,)",
        "null",
        "this",
        "typeof x",
        "a && b",
        "1; 2",
        "--5",
        "--x",
        "1--2",
        "a++",
    ])
    def test_rejected(self, text):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression(text)

    def test_empty_input(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("   ")

    def test_error_carries_position(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("1 + 2 )")
        error = exc_info.value
        assert error.line == 1
        assert error.column is not None
        assert "line 1" in str(error)
        assert isinstance(error, StepevalError)

    def test_unsupported_operator_message_is_short(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("2 ** 3")
        error = exc_info.value
        assert error.message.startswith("Expected")
        assert len(str(error)) < 200


class TestFunctionDefinitions:
    """Tests for definition lines."""

    def test_definition(self):
        name, func = parse_function_definition("and(a, b) = a ? b : a")
        assert name == "and"
        assert func.parameters == ("a", "b")
        assert str(func.body) == "(a ? b : a)"

    def test_nullary_definition(self):
        name, func = parse_function_definition("answer() = 42")
        assert name == "answer"
        assert func.parameters == ()

    def test_not_a_definition(self):
        assert parse_function_definition("f(1) == 1") is None
        assert parse_function_definition("f(x) <= 3") is None
        assert parse_function_definition("1 + 2") is None
        assert parse_function_definition("factorial(2)") is None

    def test_bad_parameters(self):
        with pytest.raises(FunctionDefinitionError):
            parse_function_definition("f(1) = 2")
        with pytest.raises(FunctionDefinitionError):
            parse_function_definition("f(x, x) = x")
        with pytest.raises(FunctionDefinitionError):
            parse_function_definition("f(true) = 1")

    def test_reserved_function_name(self):
        with pytest.raises(FunctionDefinitionError):
            parse_function_definition("if(x) = x")

    def test_bad_body(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_function_definition("f(x) = x +")

    def test_parse_parameters(self):
        assert parse_parameters("") == []
        assert parse_parameters(" a , b ") == ["a", "b"]

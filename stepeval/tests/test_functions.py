"""Tests for loading function tables from DSL text, files and JSON."""

import json

import pytest
from pathlib import Path
from stepeval import (
    Const, Evaluator, FunctionDefinitionError, ExpressionSyntaxError,
    load_functions_from_dsl, load_functions_from_file, load_functions_from_json,
)


class TestDSLLoading:
    """Tests for load_functions_from_dsl()."""

    def test_definitions_and_comments(self):
        functions = load_functions_from_dsl('''
            # boolean helpers
            and(a, b) = a ? b : a
            // C-style comment
            or(a, b) = a ? a : b

            not(x) = !x
        ''')
        assert list(functions) == ["and", "or", "not"]
        assert functions["not"].parameters == ("x",)

    def test_duplicate_name(self):
        with pytest.raises(FunctionDefinitionError):
            load_functions_from_dsl('''
                f(x) = x
                f(y) = y + 1
            ''')

    def test_non_definition_line(self):
        with pytest.raises(FunctionDefinitionError) as exc_info:
            load_functions_from_dsl("f(x) = x\n1 + 2\n")
        assert "line 2" in str(exc_info.value)

    def test_bad_body(self):
        with pytest.raises(ExpressionSyntaxError):
            load_functions_from_dsl("f(x) = x * * 2")

    def test_empty(self):
        assert load_functions_from_dsl("") == {}
        assert load_functions_from_dsl("# only a comment") == {}


class TestIncludes:
    """Tests for :include directive."""

    @pytest.fixture
    def temp_dir(self, tmp_path):
        return tmp_path

    def test_basic_include(self, temp_dir):
        (temp_dir / "base.fns").write_text("not(x) = !x\n")
        (temp_dir / "main.fns").write_text(":include base.fns\nnand(a, b) = not(a ? b : a)\n")

        functions = load_functions_from_file(temp_dir / "main.fns")
        assert set(functions) == {"not", "nand"}
        evaluator = Evaluator(functions)
        assert evaluator.evaluate("nand(true, false)") == Const(True)

    def test_nested_include(self, temp_dir):
        (temp_dir / "sub").mkdir()
        (temp_dir / "sub" / "leaf.fns").write_text("id(x) = x\n")
        (temp_dir / "sub" / "mid.fns").write_text(":include leaf.fns\ntwice(x) = id(x) * 2\n")
        (temp_dir / "top.fns").write_text(":include sub/mid.fns\n")

        functions = load_functions_from_file(temp_dir / "top.fns")
        assert set(functions) == {"id", "twice"}

    def test_missing_include(self, temp_dir):
        (temp_dir / "main.fns").write_text(":include nowhere.fns\n")
        with pytest.raises(FileNotFoundError):
            load_functions_from_file(temp_dir / "main.fns")

    def test_circular_include(self, temp_dir):
        (temp_dir / "a.fns").write_text(":include b.fns\nf(x) = x\n")
        (temp_dir / "b.fns").write_text(":include a.fns\ng(x) = x\n")
        with pytest.raises(ValueError, match="Circular include"):
            load_functions_from_file(temp_dir / "a.fns")

    def test_self_include(self, temp_dir):
        (temp_dir / "self.fns").write_text(":include self.fns\n")
        with pytest.raises(ValueError, match="Circular include"):
            load_functions_from_file(temp_dir / "self.fns")

    def test_include_duplicate_name(self, temp_dir):
        (temp_dir / "base.fns").write_text("f(x) = x\n")
        (temp_dir / "main.fns").write_text(":include base.fns\nf(y) = y\n")
        with pytest.raises(FunctionDefinitionError):
            load_functions_from_file(temp_dir / "main.fns")

    def test_include_relative_to_base_path(self, temp_dir):
        (temp_dir / "lib.fns").write_text("sq(x) = x * x\n")
        functions = load_functions_from_dsl(":include lib.fns", base_path=temp_dir)
        assert "sq" in functions


class TestJSONLoading:
    """Tests for load_functions_from_json()."""

    def test_functions_object(self):
        text = json.dumps({
            "name": "math",
            "functions": {
                "factorial": {
                    "parameters": ["n"],
                    "body": "n <= 0 ? 1 : n * factorial(n - 1)",
                },
            },
        })
        functions = load_functions_from_json(text)
        assert Evaluator(functions).evaluate("factorial(4)") == Const(24)

    def test_definition_lines(self):
        text = json.dumps({"definitions": ["not(x) = !x", "id(x) = x"]})
        functions = load_functions_from_json(text)
        assert set(functions) == {"not", "id"}

    def test_missing_body(self):
        text = json.dumps({"functions": {"f": {"parameters": ["x"]}}})
        with pytest.raises(FunctionDefinitionError):
            load_functions_from_json(text)

    def test_duplicate_across_sections(self):
        text = json.dumps({
            "functions": {"f": {"parameters": [], "body": "1"}},
            "definitions": ["f() = 2"],
        })
        with pytest.raises(FunctionDefinitionError):
            load_functions_from_json(text)

    def test_json_file(self, tmp_path):
        path = tmp_path / "lib.json"
        path.write_text(json.dumps({"definitions": ["inc(x) = x + 1"]}))
        functions = load_functions_from_file(path)
        assert "inc" in functions

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            load_functions_from_json("{not json")


class TestEvaluatorLoading:
    """Tests for Evaluator load methods."""

    def test_load_file(self, tmp_path):
        path = tmp_path / "bool.fns"
        path.write_text("not(x) = !x\n")
        evaluator = Evaluator.from_file(path)
        assert evaluator.evaluate("not(0)") == Const(True)

    def test_load_file_conflict(self, tmp_path):
        path = tmp_path / "bool.fns"
        path.write_text("not(x) = !x\n")
        evaluator = Evaluator.from_dsl("not(y) = y")
        with pytest.raises(FunctionDefinitionError):
            evaluator.load_file(Path(path))

    def test_bundled_examples_load(self):
        examples = Path(__file__).resolve().parents[2] / "examples"
        if not examples.exists():
            pytest.skip("examples directory not available")
        evaluator = Evaluator.from_file(examples / "boolean.fns")
        assert evaluator.evaluate("and(true, not(false))") == Const(True)

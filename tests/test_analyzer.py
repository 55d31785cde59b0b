"""Tests for scope-based binding analysis."""

import pytest

from deminify.core.analyzer import analyze_bindings, parse_code
from deminify.core.position_map import Position, PositionMap
from deminify.errors import ParseError


class TestParseCode:
    """Tests for parse_code."""

    def test_parse_simple_code(self):
        parsed = parse_code("var a = 1;")

        assert parsed.root.type == "program"
        assert not parsed.root.has_error

    def test_parse_garbage_raises(self):
        with pytest.raises(ParseError):
            parse_code(")))))))))))))))))))))")


class TestAnalyzeBindings:
    """Tests for analyze_bindings."""

    def test_const_with_references(self):
        result = analyze_bindings("const x=1;console.log(x);const y=x+1;", None, "x")

        assert len(result.bindings) == 1
        binding = result.bindings[0]
        assert binding.kind == "const"
        assert binding.definition.column == 6
        assert binding.total_reference_count == 2
        assert [r.column for r in binding.references] == [22, 33]

    def test_separate_function_scopes(self):
        code = "function a(){var x=1;return x}\nfunction b(){var x=2;return x+x}"

        result = analyze_bindings(code, None, "x")

        assert len(result.bindings) == 2
        assert [b.kind for b in result.bindings] == ["var", "var"]
        assert [b.definition.line for b in result.bindings] == [1, 2]
        assert [b.total_reference_count for b in result.bindings] == [1, 2]

    def test_block_scoped_let(self):
        code = "let v=1;\n{let v=2;v}\nv;"

        result = analyze_bindings(code, None, "v")

        assert len(result.bindings) == 2
        outer, inner = result.bindings
        assert outer.definition.line == 1
        assert [r.line for r in outer.references] == [3]
        assert inner.definition.line == 2
        assert [r.line for r in inner.references] == [2]

    def test_var_hoists_to_function(self):
        code = "function f(){if(ok){var v=1}return v}"

        result = analyze_bindings(code, None, "v")

        assert len(result.bindings) == 1
        assert result.bindings[0].kind == "var"
        assert result.bindings[0].total_reference_count == 1

    def test_parameter(self):
        result = analyze_bindings("function f(p,q){return p*q}", None, "p")

        assert len(result.bindings) == 1
        assert result.bindings[0].kind == "param"
        assert result.bindings[0].total_reference_count == 1

    def test_arrow_parameter(self):
        result = analyze_bindings("const g=(p)=>p+1;", None, "p")

        assert result.bindings[0].kind == "param"
        assert result.bindings[0].total_reference_count == 1

    def test_catch_parameter(self):
        result = analyze_bindings("try{run()}catch(e){log(e)}", None, "e")

        assert len(result.bindings) == 1
        assert result.bindings[0].kind == "catch"
        assert result.bindings[0].total_reference_count == 1

    def test_function_and_class_declarations(self):
        functions = analyze_bindings("function go(){}go();", None, "go")
        classes = analyze_bindings("class Box{}new Box();", None, "Box")

        assert functions.bindings[0].kind == "function"
        assert functions.bindings[0].total_reference_count == 1
        assert classes.bindings[0].kind == "class"
        assert classes.bindings[0].total_reference_count == 1

    def test_globals_have_no_binding(self):
        result = analyze_bindings("foo();foo();", None, "foo")

        assert result.bindings == []

    def test_property_names_are_not_references(self):
        result = analyze_bindings("var x=1;o.x=2;var p={x:3};x;", None, "x")

        assert len(result.bindings) == 1
        assert result.bindings[0].total_reference_count == 1

    def test_identifier_absent(self):
        result = analyze_bindings("var a=1;", None, "zzz")

        assert result.bindings == []
        assert not result.is_targeted

    def test_reference_cap_keeps_exact_total(self):
        code = "var x=1;" + "x;" * 20

        result = analyze_bindings(code, None, "x")

        assert len(result.bindings[0].references) == 10
        assert result.bindings[0].total_reference_count == 20

    def test_explicit_reference_cap(self):
        code = "var x=1;" + "x;" * 5

        result = analyze_bindings(code, None, "x", max_references=2)

        assert len(result.bindings[0].references) == 2
        assert result.bindings[0].total_reference_count == 5

    def test_original_positions_from_map(self):
        code = "var a=1;\nuse(a);"
        position_map = PositionMap.identity(code, "orig.js")

        result = analyze_bindings(code, position_map, "a")

        binding = result.bindings[0]
        assert binding.definition.original == Position(1, 0)
        assert binding.references[0].original == Position(2, 0)
        assert binding.references[0].line_content == "use(a);"


class TestTargetedAnalysis:
    """Tests for line-targeted lookups."""

    CODE = (
        "function a(){\n"
        "var x=1;\n"
        "return x}\n"
        "function b(){\n"
        "var x=2;\n"
        "return x}\n"
    )

    def test_target_selects_one_binding(self):
        result = analyze_bindings(self.CODE, None, "x", target_line=6)

        assert result.is_targeted
        assert result.target_line == 6
        assert len(result.bindings) == 1
        binding = result.bindings[0]
        assert binding.definition.line == 5
        assert binding.hit_location.line == 6
        assert binding.references[0].same_place(binding.hit_location)

    def test_target_on_definition(self):
        result = analyze_bindings(self.CODE, None, "x", target_line=2)

        binding = result.bindings[0]
        assert binding.definition.same_place(binding.hit_location)

    def test_target_line_without_occurrence(self):
        result = analyze_bindings(self.CODE, None, "x", target_line=1)

        assert result.is_targeted
        assert result.bindings == []

    def test_targeted_default_reference_cap(self):
        code = "var x=1;" + "x;" * 20

        result = analyze_bindings(code, None, "x", target_line=1)

        assert len(result.bindings[0].references) == 15
        assert result.bindings[0].total_reference_count == 20

"""
Tests for expression compilation, builtins and evaluation.
"""

import pytest

from wisp.config.parser import parse
from wisp.expr.ast import Call, Literal, VarRef
from wisp.expr.builtins import BuiltinRegistry, builtins
from wisp.expr.compiler import compile_expression
from wisp.expr.evaluator import evaluate
from wisp.expr.value import EMPTY, FALSE, TRUE, Value
from wisp.utils.errors import CompileError, EvalError, TypeMismatch, UnknownVariable


def compile_text(text):
    (node,) = parse(text)
    return compile_expression(node)


def run(text, **variables):
    snapshot = {name: Value.from_python(value) for name, value in variables.items()}
    return evaluate(compile_text(text), snapshot)


class TestCompiler:
    """Test ConfigNode to Expression compilation"""

    def test_literals(self):
        assert compile_text('"hi"') == Literal(Value.string("hi"))
        assert compile_text("12") == Literal(Value.number(12))
        assert compile_text("true") == Literal(TRUE)

    def test_symbols_are_variable_references(self):
        assert compile_text("counter") == VarRef("counter")

    def test_call(self):
        expr = compile_text("(+ counter 10)")
        assert expr == Call("+", (VarRef("counter"), Literal(Value.number(10))))

    def test_dependency_set_includes_all_branches(self):
        expr = compile_text('(if (== mode "dark") fg bg)')
        assert expr.variables() == frozenset({"mode", "fg", "bg"})

    def test_unknown_function(self):
        with pytest.raises(CompileError, match="Unknown function 'frobnicate'"):
            compile_text("(frobnicate 1)")

    def test_arity_mismatch(self):
        with pytest.raises(CompileError, match="exactly 3"):
            compile_text("(if a b)")

    def test_empty_call(self):
        with pytest.raises(CompileError):
            compile_text("(str ())")

    def test_keyword_in_value_position(self):
        with pytest.raises(CompileError):
            compile_text("(str :text)")

    def test_call_must_start_with_symbol(self):
        with pytest.raises(CompileError):
            compile_text('("+" 1 2)')

    def test_to_source_round_trip(self):
        text = '(if (== mode "dark") "#000" (str "x" 1))'
        assert compile_text(compile_text(text).to_source()) == compile_text(text)

    def test_substitute(self):
        expr = compile_text("(str prefix name)")
        result = expr.substitute({"name": Literal(Value.string("bob"))})
        assert result == Call("str", (VarRef("prefix"), Literal(Value.string("bob"))))


class TestEvaluator:
    """Test evaluation against snapshots"""

    def test_variable_lookup(self):
        assert run("counter", counter=3) == Value.number(3)

    def test_unknown_variable(self):
        with pytest.raises(UnknownVariable) as excinfo:
            run("(+ missing 1)")
        assert excinfo.value.name == "missing"

    def test_evaluation_is_pure(self):
        expr = compile_text("(str a b)")
        snapshot = {"a": Value.string("x"), "b": Value.string("y")}
        assert evaluate(expr, snapshot) == evaluate(expr, dict(snapshot))
        assert snapshot == {"a": Value.string("x"), "b": Value.string("y")}

    def test_lazy_if_skips_untaken_branch(self):
        # the else branch references a missing variable but is never evaluated
        assert run('(if (== mode "dark") "#000" missing)', mode="dark") == Value.string("#000")

    def test_lazy_and_short_circuits(self):
        assert run("(and false missing)") == FALSE
        assert run("(or true missing)") == TRUE

    def test_custom_registry(self):
        registry = BuiltinRegistry()

        @registry.register("twice", 1)
        def _twice(args):
            return Value.number(args[0].as_number() * 2)

        (node,) = parse("(twice 4)")
        expr = compile_expression(node, registry)
        assert evaluate(expr, {}, registry) == Value.number(8)


class TestBuiltins:
    """Test the builtin function set"""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("(+ 1 2 3)", Value.number(6)),
            ('(+ "1" 10)', Value.number(11)),
            ("(- 10 4 1)", Value.number(5)),
            ("(- 3)", Value.number(-3)),
            ("(* 2 3)", Value.number(6)),
            ("(/ 7 2)", Value.number(3.5)),
            ("(% 7 3)", Value.number(1)),
            ("(min 4 2 9)", Value.number(2)),
            ("(max 4 2 9)", Value.number(9)),
            ("(round 2.567 2)", Value.number(2.57)),
            ("(round 2.5)", Value.number(2)),
        ],
    )
    def test_arithmetic(self, text, expected):
        assert run(text) == expected

    def test_division_by_zero(self):
        with pytest.raises(EvalError):
            run("(/ 1 0)")
        with pytest.raises(EvalError):
            run("(% 1 0)")

    def test_arithmetic_type_mismatch(self):
        with pytest.raises(TypeMismatch):
            run('(+ "abc" 1)')

    @pytest.mark.parametrize(
        "text,expected",
        [
            ('(== "1" 1)', TRUE),
            ('(== "1.0" 1)', TRUE),
            ('(== "dark" "dark")', TRUE),
            ('(== "dark" "light")', FALSE),
            ('(!= "a" "b")', TRUE),
            ("(< 1 2)", TRUE),
            ("(>= 2 2)", TRUE),
            ("(> 1 2)", FALSE),
            ("(<= 3 2)", FALSE),
        ],
    )
    def test_comparison(self, text, expected):
        assert run(text) == expected

    def test_ordering_needs_numbers(self):
        with pytest.raises(TypeMismatch):
            run('(< "a" "b")')

    def test_not(self):
        assert run("(not false)") == TRUE
        with pytest.raises(TypeMismatch):
            run('(not "maybe")')

    def test_fallback(self):
        assert run('(?: name "anon")', name="") == Value.string("anon")
        assert run('(?: name "anon")', name="bob") == Value.string("bob")
        assert run('(?: 0 "anon")') == Value.number(0)

    @pytest.mark.parametrize(
        "text,expected",
        [
            ('(str "cpu: " 42 "%")', Value.string("cpu: 42%")),
            ('(strlength "hello")', Value.number(5)),
            ('(substring "hello" 1 3)', Value.string("ell")),
            ('(substring "hello" 2)', Value.string("llo")),
            ('(replace "a-b-c" "-" "+")', Value.string("a+b+c")),
            ('(matches "volume: 42" "[0-9]+")', TRUE),
            ('(upper "abc")', Value.string("ABC")),
            ('(lower "ABC")', Value.string("abc")),
            ('(trim "  x ")', Value.string("x")),
        ],
    )
    def test_strings(self, text, expected):
        assert run(text) == expected

    def test_invalid_regex(self):
        with pytest.raises(EvalError, match="Invalid regular expression"):
            run('(matches "x" "(")')

    def test_substring_needs_whole_numbers(self):
        with pytest.raises(TypeMismatch):
            run('(substring "hello" 1.5)')

    def test_substring_rejects_negative_start(self):
        with pytest.raises(TypeMismatch, match="must not be negative"):
            run('(substring "hello" -2 3)')

    def test_registry_lists_every_builtin(self):
        names = set(builtins.list_builtins())
        assert {"+", "==", "if", "?:", "str", "matches"} <= names
        assert builtins.get("+").arity_text() == "at least 1"
        assert builtins.get("if").lazy

    def test_empty_string_is_default(self):
        assert run('(str "")') == EMPTY

"""
Tests for the configuration parser.
"""

import pytest

from wisp.config.nodes import Atom, AtomKind, ListNode, serialize
from wisp.config.parser import MAX_DEPTH, parse
from wisp.utils.errors import ParseError


class TestParse:
    """Test parsing of well-formed text"""

    def test_atoms(self):
        nodes = parse('foo :bar "baz" 42 -3.5')
        kinds = [node.kind for node in nodes]
        assert kinds == [AtomKind.SYMBOL, AtomKind.KEYWORD, AtomKind.STRING, AtomKind.NUMBER, AtomKind.NUMBER]
        assert nodes[1].keyword_name == "bar"
        assert nodes[2].text == "baz"
        assert nodes[4].text == "-3.5"

    def test_operator_symbols(self):
        nodes = parse("(+ a 1) (?: x y) (== a b)")
        assert [node.head_symbol for node in nodes] == ["+", "?:", "=="]

    def test_nested_lists(self):
        (node,) = parse('(box (label :text "a") (label :text "b"))')
        assert isinstance(node, ListNode)
        assert node.head_symbol == "box"
        assert len(node.items) == 3
        assert node.items[2].items[2] == Atom(AtomKind.STRING, "b")

    def test_comments_and_whitespace_are_ignored(self):
        nodes = parse('; leading comment\n(defvar x "1") ; trailing\n\n; end')
        assert len(nodes) == 1
        assert nodes[0].items[1].text == "x"

    def test_semicolon_inside_string_is_text(self):
        (node,) = parse('(defvar x "a;b")')
        assert node.items[2].text == "a;b"

    def test_string_escapes(self):
        (node,) = parse(r'"say \"hi\"\n\tand \\ done"')
        assert node.text == 'say "hi"\n\tand \\ done'

    def test_unknown_escape_is_kept(self):
        (node,) = parse(r'"a\qb"')
        assert node.text == "a\\qb"

    def test_empty_input(self):
        assert parse("") == []
        assert parse("   ; only a comment") == []

    def test_dash_alone_is_a_symbol(self):
        (node,) = parse("(- 5 2)")
        assert node.items[0] == Atom(AtomKind.SYMBOL, "-")

    def test_spans(self):
        nodes = parse('(defvar a "1")\n  (defvar b "2")')
        assert nodes[0].span.line == 1
        assert nodes[0].span.column == 1
        assert nodes[1].span.line == 2
        assert nodes[1].span.column == 3
        assert nodes[1].span.offset == 17


class TestParseErrors:
    """Test that malformed text raises position-qualified errors"""

    def test_unclosed_bracket(self):
        with pytest.raises(ParseError) as excinfo:
            parse('(defvar a "1")\n(box (label :text "x")')
        error = excinfo.value
        assert error.line == 2
        assert error.column == 1
        assert "Unclosed" in error.reason
        assert "line 2, column 1" in str(error)

    def test_unexpected_closing_bracket(self):
        with pytest.raises(ParseError) as excinfo:
            parse("(a))")
        assert excinfo.value.offset == 3
        assert excinfo.value.column == 4

    def test_unterminated_string(self):
        with pytest.raises(ParseError) as excinfo:
            parse('(defvar a\n  "oops)')
        assert excinfo.value.line == 2
        assert excinfo.value.column == 3
        assert "Unterminated" in excinfo.value.reason

    def test_trailing_backslash_in_string(self):
        with pytest.raises(ParseError):
            parse('"abc\\')

    def test_bare_colon(self):
        with pytest.raises(ParseError) as excinfo:
            parse("(label : 1)")
        assert excinfo.value.column == 8

    def test_deep_nesting(self):
        with pytest.raises(ParseError) as excinfo:
            parse("(+ 1 " * 3000 + ")" * 3000)
        assert excinfo.value.line == 1
        assert excinfo.value.column == MAX_DEPTH * 5 + 1
        assert "Nesting" in excinfo.value.reason

    def test_nesting_at_the_limit(self):
        nodes = parse("(a " * MAX_DEPTH + ")" * MAX_DEPTH)
        assert len(nodes) == 1


class TestRoundTrip:
    """Canonical serialization parses back to an equal tree"""

    @pytest.mark.parametrize(
        "text",
        [
            '(defvar greeting "hello")',
            '(defpoll cpu :interval "2s" :initial "0" "top -bn1 | head -1")',
            '(defwindow bar :monitor 0 (box (label :text (str "a" b))))',
            r'(defvar quoted "she said \"hi\"\nbye")',
        ],
    )
    def test_serialize_then_parse(self, text):
        nodes = parse(text)
        assert parse(serialize(nodes)) == nodes

    def test_serialization_is_canonical(self):
        nodes = parse('(box   :spacing 4\n   ; comment\n  (label :text "x"))')
        assert serialize(nodes) == '(box :spacing 4 (label :text "x"))'

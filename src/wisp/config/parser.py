"""
Parser for the s-expression configuration language.

The parser is a single forward scan over the text with explicit bracket
depth tracking. It produces a flat sequence of top-level ConfigNodes.
Any malformed form aborts the whole parse: configuration loading is
all-or-nothing.
"""

import logging
import re
from typing import List, Tuple

from ..utils.errors import ParseError
from .nodes import Atom, AtomKind, ConfigNode, ListNode, Span

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")

# Characters that end a bare token
DELIMITERS = frozenset('()";')

# Deepest list nesting accepted
MAX_DEPTH = 100

ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t"}


class _Scanner:
    """Cursor over the source text that tracks line and column."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.line = 1
        self.line_start = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos]

    def span(self) -> Span:
        return Span(self.pos, self.line, self.pos - self.line_start + 1)

    def advance(self) -> str:
        char = self.text[self.pos]
        self.pos += 1
        if char == "\n":
            self.line += 1
            self.line_start = self.pos
        return char

    def error(self, message: str, span: Span = None) -> ParseError:
        span = span or self.span()
        return ParseError(message, span.offset, span.line, span.column)


def parse(text: str) -> List[ConfigNode]:
    """
    Parse configuration text into top-level nodes.

    Args:
        text: Raw configuration text

    Returns:
        List of top-level ConfigNodes in source order

    Raises:
        ParseError: On unmatched brackets, unterminated strings,
            malformed tokens or lists nested deeper than MAX_DEPTH.
            Carries the offending offset, line and column.
    """
    scanner = _Scanner(text)
    top_level: List[ConfigNode] = []
    # Each open list: (span of its '(', collected items)
    stack: List[Tuple[Span, List[ConfigNode]]] = []

    def emit(node: ConfigNode) -> None:
        if stack:
            stack[-1][1].append(node)
        else:
            top_level.append(node)

    while not scanner.at_end():
        char = scanner.peek()

        if char.isspace():
            scanner.advance()
        elif char == ";":
            # Line comment
            while not scanner.at_end() and scanner.peek() != "\n":
                scanner.advance()
        elif char == "(":
            if len(stack) >= MAX_DEPTH:
                raise scanner.error(f"Nesting deeper than {MAX_DEPTH} levels")
            stack.append((scanner.span(), []))
            scanner.advance()
        elif char == ")":
            if not stack:
                raise scanner.error("Unexpected ')' without matching '('")
            scanner.advance()
            open_span, items = stack.pop()
            emit(ListNode(tuple(items), open_span))
        elif char == '"':
            emit(_read_string(scanner))
        else:
            emit(_read_bare(scanner))

    if stack:
        open_span, _items = stack[-1]
        raise scanner.error(f"Unclosed '(' (depth {len(stack)})", open_span)

    logger.debug(f"Parsed {len(top_level)} top-level forms")
    return top_level


def _read_string(scanner: _Scanner) -> Atom:
    start = scanner.span()
    scanner.advance()  # opening quote
    chars: List[str] = []

    while True:
        if scanner.at_end():
            raise scanner.error("Unterminated string literal", start)
        char = scanner.advance()
        if char == '"':
            break
        if char == "\\":
            if scanner.at_end():
                raise scanner.error("Unterminated string literal", start)
            escaped = scanner.advance()
            chars.append(ESCAPES.get(escaped, "\\" + escaped))
        else:
            chars.append(char)

    return Atom(AtomKind.STRING, "".join(chars), start)


def _read_bare(scanner: _Scanner) -> Atom:
    start = scanner.span()
    begin = scanner.pos
    while not scanner.at_end():
        char = scanner.peek()
        if char.isspace() or char in DELIMITERS:
            break
        scanner.advance()
    token = scanner.text[begin : scanner.pos]

    if NUMBER_PATTERN.fullmatch(token):
        return Atom(AtomKind.NUMBER, token, start)
    if token.startswith(":"):
        if len(token) == 1:
            raise scanner.error("Keyword is missing a name", start)
        return Atom(AtomKind.KEYWORD, token, start)
    return Atom(AtomKind.SYMBOL, token, start)

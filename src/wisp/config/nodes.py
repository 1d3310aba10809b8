"""
Structural nodes produced by the configuration parser.

A configuration is a sequence of s-expressions. Each node is either an
atom (symbol, keyword, string or number) or a list of nodes. Nodes are
immutable; their source position is kept for error reporting but does not
take part in equality, so a re-parsed canonical serialization compares equal
to the original.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterable, Optional, Tuple, Union


class AtomKind(Enum):
    SYMBOL = auto()  # identifiers and operators: label, +, ==, ?:
    KEYWORD = auto()  # :text, :interval
    STRING = auto()  # "quoted text"
    NUMBER = auto()  # 10, -3, 2.5


@dataclass(frozen=True)
class Span:
    """Position of a node in the source text."""

    offset: int
    line: int
    column: int

    def __str__(self) -> str:
        return f"line {self.line}, column {self.column}"


@dataclass(frozen=True)
class Atom:
    kind: AtomKind
    text: str
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    @property
    def is_symbol(self) -> bool:
        return self.kind is AtomKind.SYMBOL

    @property
    def is_keyword(self) -> bool:
        return self.kind is AtomKind.KEYWORD

    @property
    def keyword_name(self) -> str:
        """Keyword without its leading colon."""
        return self.text[1:]

    def to_source(self) -> str:
        if self.kind is AtomKind.STRING:
            escaped = (
                self.text.replace("\\", "\\\\")
                .replace('"', '\\"')
                .replace("\n", "\\n")
                .replace("\t", "\\t")
            )
            return f'"{escaped}"'
        return self.text


@dataclass(frozen=True)
class ListNode:
    items: Tuple["ConfigNode", ...]
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    @property
    def head(self) -> Optional["ConfigNode"]:
        return self.items[0] if self.items else None

    @property
    def head_symbol(self) -> Optional[str]:
        """Name of the leading symbol, if the list starts with one."""
        head = self.head
        if isinstance(head, Atom) and head.is_symbol:
            return head.text
        return None

    def to_source(self) -> str:
        return "(" + " ".join(item.to_source() for item in self.items) + ")"


ConfigNode = Union[Atom, ListNode]


def serialize(nodes: Iterable[ConfigNode]) -> str:
    """Render nodes back to canonical configuration text, one form per line."""
    return "\n".join(node.to_source() for node in nodes)

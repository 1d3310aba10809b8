"""
Widget tree records kept by the diff engine.

Nodes are addressed by index paths from the root, e.g. (0, 2) is the third
child of the root's first child. Paths are stable across reactive updates
because ordinary updates never change the tree's structure.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple

from ..expr.ast import Expression
from ..expr.value import Value

Path = Tuple[int, ...]


class WidgetNode:
    """
    One instantiated widget.

    Attributes:
        widget_type: Widget type tag
        attributes: Current value per declared attribute, in declaration order
        children: Ordered child nodes
        handle: Opaque render backend handle once materialized (root only)
    """

    def __init__(
        self,
        widget_type: str,
        attributes: Optional[Dict[str, Value]] = None,
        children: Optional[List["WidgetNode"]] = None,
    ):
        self.widget_type = widget_type
        self.attributes: Dict[str, Value] = dict(attributes or {})
        self.children: List["WidgetNode"] = list(children or [])
        self.handle: Any = None

    def node_at(self, path: Path) -> "WidgetNode":
        """
        Resolve an index path relative to this node.

        Raises:
            IndexError: If the path does not exist
        """
        node = self
        for index in path:
            if index < 0 or index >= len(node.children):
                raise IndexError(f"No node at path {path}")
            node = node.children[index]
        return node

    def walk(self, path: Path = ()) -> Iterator[Tuple[Path, "WidgetNode"]]:
        """Pre-order traversal yielding (path, node)."""
        yield path, self
        for index, child in enumerate(self.children):
            yield from child.walk(path + (index,))

    def copy(self) -> "WidgetNode":
        """Deep structural copy without backend handles."""
        return WidgetNode(
            self.widget_type,
            dict(self.attributes),
            [child.copy() for child in self.children],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.widget_type,
            "attributes": {name: value.to_python() for name, value in self.attributes.items()},
            "children": [child.to_dict() for child in self.children],
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WidgetNode):
            return NotImplemented
        return (
            self.widget_type == other.widget_type
            and self.attributes == other.attributes
            and self.children == other.children
        )

    __hash__ = None  # mutable record

    def __repr__(self) -> str:
        return (
            f"<WidgetNode(type={self.widget_type}, attributes={len(self.attributes)}, "
            f"children={len(self.children)})>"
        )


@dataclass(frozen=True)
class Binding:
    """
    A live (node, attribute, expression) triple.

    dependencies is the expression's DependencySet, computed once when the
    tree is built.
    """

    path: Path
    attribute: str
    expression: Expression
    dependencies: FrozenSet[str]

    @property
    def key(self) -> Tuple[Path, str]:
        return (self.path, self.attribute)

    def describe(self) -> str:
        location = "/".join(str(index) for index in self.path) or "root"
        return f"{location}:{self.attribute}"

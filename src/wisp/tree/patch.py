"""
Patches: ordered primitive mutations of a widget tree.

A patch is applied by the render backend as one visual update. Indexes in
later operations refer to the tree as left by earlier operations.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional, Tuple, Union

from ..expr.value import Value
from .node import Path, WidgetNode


@dataclass(frozen=True)
class SetAttribute:
    path: Path
    name: str
    value: Value


@dataclass(frozen=True)
class InsertChild:
    parent_path: Path
    index: int
    subtree: WidgetNode


@dataclass(frozen=True)
class RemoveChild:
    parent_path: Path
    index: int


PatchOp = Union[SetAttribute, InsertChild, RemoveChild]


@dataclass(frozen=True)
class Patch:
    """
    Operations for one window.

    Attributes:
        window: Name of the window the patch belongs to
        target: Backend handle of the window's root
        ops: Ordered operations
    """

    window: str
    target: Any
    ops: Tuple[PatchOp, ...] = ()

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self) -> Iterator[PatchOp]:
        return iter(self.ops)

    def __bool__(self) -> bool:
        return bool(self.ops)

    def set_attributes(self) -> Tuple[SetAttribute, ...]:
        return tuple(op for op in self.ops if isinstance(op, SetAttribute))

    def find(self, path: Path, name: str) -> Optional[SetAttribute]:
        for op in self.set_attributes():
            if op.path == path and op.name == name:
                return op
        return None

"""
Widget tree records, patches and the diff engine.
"""

from .diff import apply_patch, build_tree, compatible, diff_attributes, diff_trees
from .node import Binding, Path, WidgetNode
from .patch import InsertChild, Patch, PatchOp, RemoveChild, SetAttribute

__all__ = [
    "WidgetNode",
    "Binding",
    "Path",
    "Patch",
    "PatchOp",
    "SetAttribute",
    "InsertChild",
    "RemoveChild",
    "build_tree",
    "diff_attributes",
    "diff_trees",
    "compatible",
    "apply_patch",
]

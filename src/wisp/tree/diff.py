"""
Tree instantiation and diffing.

build_tree() instantiates a fully expanded widget spec against a snapshot.
diff_attributes() turns recomputed attribute values into SetAttribute
operations, skipping values that did not change. diff_trees() computes the
structural patch used when a configuration reload changes a window's shape.
apply_patch() advances the engine's record of the tree once the backend has
confirmed a patch.
"""

import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from ..config.definitions import WidgetSpec
from ..expr.evaluator import evaluate
from ..expr.value import Value
from ..utils.errors import CompileError, EvalError
from ..widgets.registry import WidgetRegistry
from .node import Binding, Path, WidgetNode
from .patch import InsertChild, Patch, PatchOp, RemoveChild, SetAttribute

logger = logging.getLogger(__name__)

AttributeChange = Tuple[Path, str, Value]
ErrorHandler = Callable[[Binding, EvalError], None]


def build_tree(
    spec: WidgetSpec,
    snapshot: Mapping[str, Value],
    registry: WidgetRegistry,
    on_error: Optional[ErrorHandler] = None,
) -> Tuple[WidgetNode, List[Binding]]:
    """
    Instantiate a widget spec.

    The spec must already be expanded (no defwidget references). Every
    attribute is evaluated against the same snapshot; an attribute whose
    expression fails starts at its widget type's default value.

    Args:
        spec: Expanded widget spec
        snapshot: Variable values to evaluate against
        registry: Widget type catalogue
        on_error: Called for each attribute that failed to evaluate

    Returns:
        (root node, bindings in pre-order)

    Raises:
        CompileError: If the spec names an unknown widget type
    """
    bindings: List[Binding] = []
    root = _build_node(spec, (), snapshot, registry, bindings, on_error)
    logger.debug(f"Built tree with {len(bindings)} bindings")
    return root, bindings


def _build_node(
    spec: WidgetSpec,
    path: Path,
    snapshot: Mapping[str, Value],
    registry: WidgetRegistry,
    bindings: List[Binding],
    on_error: Optional[ErrorHandler],
) -> WidgetNode:
    widget = registry.get(spec.widget_type)
    if widget is None:
        raise CompileError(f"Unknown widget type '{spec.widget_type}'", spec.span)

    node = WidgetNode(spec.widget_type)
    for name, expr in spec.attributes:
        binding = Binding(path, name, expr, expr.variables())
        bindings.append(binding)
        try:
            node.attributes[name] = evaluate(expr, snapshot)
        except EvalError as e:
            node.attributes[name] = widget.default_for(name)
            if on_error:
                on_error(binding, e)
            else:
                logger.warning(f"Cannot evaluate {binding.describe()} ({spec.widget_type}): {e}")

    for index, child in enumerate(spec.children):
        node.children.append(_build_node(child, path + (index,), snapshot, registry, bindings, on_error))
    return node


def diff_attributes(
    root: WidgetNode, changes: Iterable[AttributeChange], window: str = "", target: Any = None
) -> Patch:
    """
    Build a patch of SetAttribute operations for changed values.

    Values equal to what the tree already records produce no operation,
    so applying the same update twice is a no-op the second time.
    """
    ops: List[PatchOp] = []
    for path, name, value in changes:
        node = root.node_at(path)
        if name not in node.attributes:
            raise KeyError(f"Node {path} ({node.widget_type}) has no attribute '{name}'")
        if node.attributes[name] != value:
            ops.append(SetAttribute(path, name, value))
    return Patch(window, target, tuple(ops))


def compatible(old: WidgetNode, new: WidgetNode) -> bool:
    """True if a node can be updated in place rather than replaced."""
    return old.widget_type == new.widget_type and set(old.attributes) == set(new.attributes)


def diff_trees(old: WidgetNode, new: WidgetNode, window: str = "", target: Any = None) -> Patch:
    """
    Structural diff between two trees with compatible roots.

    Children are matched by position. A child whose type or attribute set
    changed is replaced; surplus children are removed from the end and new
    ones appended.

    Raises:
        ValueError: If the roots are not compatible
    """
    if not compatible(old, new):
        raise ValueError(f"Cannot patch root '{old.widget_type}' into '{new.widget_type}'")
    ops: List[PatchOp] = []
    _diff_nodes(old, new, (), ops)
    return Patch(window, target, tuple(ops))


def _diff_nodes(old: WidgetNode, new: WidgetNode, path: Path, ops: List[PatchOp]) -> None:
    for name, value in new.attributes.items():
        if old.attributes[name] != value:
            ops.append(SetAttribute(path, name, value))

    common = min(len(old.children), len(new.children))
    for index in range(common):
        old_child, new_child = old.children[index], new.children[index]
        if compatible(old_child, new_child):
            _diff_nodes(old_child, new_child, path + (index,), ops)
        else:
            ops.append(RemoveChild(path, index))
            ops.append(InsertChild(path, index, new_child.copy()))

    for index in range(len(old.children) - 1, common - 1, -1):
        ops.append(RemoveChild(path, index))
    for index in range(common, len(new.children)):
        ops.append(InsertChild(path, index, new.children[index].copy()))


def apply_patch(root: WidgetNode, patch: Iterable[PatchOp]) -> None:
    """
    Apply patch operations to a tree record in order.

    Raises:
        IndexError: If an operation addresses a missing node
        KeyError: If a SetAttribute names an undeclared attribute
    """
    for op in patch:
        if isinstance(op, SetAttribute):
            node = root.node_at(op.path)
            if op.name not in node.attributes:
                raise KeyError(f"Node {op.path} ({node.widget_type}) has no attribute '{op.name}'")
            node.attributes[op.name] = op.value
        elif isinstance(op, InsertChild):
            parent = root.node_at(op.parent_path)
            if op.index > len(parent.children):
                raise IndexError(f"Cannot insert at {op.index} under {op.parent_path}")
            parent.children.insert(op.index, op.subtree.copy())
        elif isinstance(op, RemoveChild):
            parent = root.node_at(op.parent_path)
            if op.index >= len(parent.children):
                raise IndexError(f"No child {op.index} under {op.parent_path}")
            del parent.children[op.index]
        else:
            raise TypeError(f"Unknown patch operation: {op!r}")

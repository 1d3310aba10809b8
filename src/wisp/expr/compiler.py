"""
Compiles attribute-value ConfigNodes into Expression trees.

Unknown builtins and arity mismatches are rejected here so configuration
mistakes surface on load rather than on the first state change.
"""

import logging
from typing import Optional

from ..config.nodes import Atom, AtomKind, ConfigNode
from ..utils.errors import CompileError
from .ast import Call, Expression, Literal, VarRef
from .builtins import BuiltinRegistry, builtins
from .value import Value

logger = logging.getLogger(__name__)


def compile_expression(node: ConfigNode, registry: Optional[BuiltinRegistry] = None) -> Expression:
    """
    Compile a ConfigNode into an Expression.

    Args:
        node: Attribute value as parsed from the configuration
        registry: Builtin registry to resolve calls against (defaults to
            the global registry)

    Returns:
        Expression tree

    Raises:
        CompileError: For keywords in value position, empty calls, unknown
            builtins or wrong argument counts
    """
    registry = registry or builtins

    if isinstance(node, Atom):
        return _compile_atom(node)

    if not node.items:
        raise CompileError("Empty expression '()'", node.span)

    head = node.head
    if not (isinstance(head, Atom) and head.is_symbol):
        raise CompileError(
            f"Expression must start with a function name, got {head.to_source()}", node.span
        )

    builtin = registry.get(head.text)
    if builtin is None:
        raise CompileError(f"Unknown function '{head.text}'", head.span)

    args = tuple(compile_expression(item, registry) for item in node.items[1:])
    if not builtin.accepts(len(args)):
        raise CompileError(
            f"'{builtin.name}' takes {builtin.arity_text()} argument(s), got {len(args)}",
            node.span,
        )

    return Call(builtin.name, args, node.span)


def _compile_atom(atom: Atom) -> Expression:
    if atom.kind is AtomKind.STRING:
        return Literal(Value.string(atom.text), atom.span)
    if atom.kind is AtomKind.NUMBER:
        return Literal(Value.number(float(atom.text)), atom.span)
    if atom.kind is AtomKind.KEYWORD:
        raise CompileError(f"Unexpected keyword {atom.text} in value position", atom.span)
    if atom.text == "true":
        return Literal(Value.boolean(True), atom.span)
    if atom.text == "false":
        return Literal(Value.boolean(False), atom.span)
    return VarRef(atom.text, atom.span)



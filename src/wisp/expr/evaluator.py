"""
Expression evaluation against a variable snapshot.

Evaluation is a pure function of the expression and the snapshot it is
given. It never reads the live store, so every variable referenced by one
expression is observed at the same instant.
"""

from typing import Mapping

from ..utils.errors import EvalError, UnknownVariable
from .ast import Call, Expression, Literal, VarRef
from .builtins import BuiltinRegistry, builtins
from .value import Value


def evaluate(
    expr: Expression, snapshot: Mapping[str, Value], registry: BuiltinRegistry = None
) -> Value:
    """
    Evaluate an expression.

    Args:
        expr: Compiled expression
        snapshot: Mapping of variable name to current Value
        registry: Builtin registry (defaults to the global registry)

    Returns:
        Resulting Value

    Raises:
        UnknownVariable: A referenced variable is not in the snapshot
        TypeMismatch: An operand could not be coerced
        EvalError: Any other evaluation failure (e.g. division by zero)
    """
    registry = registry or builtins

    if isinstance(expr, Literal):
        return expr.value

    if isinstance(expr, VarRef):
        try:
            return snapshot[expr.name]
        except KeyError:
            raise UnknownVariable(expr.name) from None

    if isinstance(expr, Call):
        builtin = registry.get(expr.name)
        if builtin is None:
            # Compiled expressions always resolve; this guards hand-built trees
            raise EvalError(f"Unknown function '{expr.name}'")
        if builtin.lazy:
            thunks = [_thunk(arg, snapshot, registry) for arg in expr.args]
            return builtin.func(thunks)
        return builtin.func([evaluate(arg, snapshot, registry) for arg in expr.args])

    raise EvalError(f"Not an expression: {expr!r}")


def _thunk(expr: Expression, snapshot: Mapping[str, Value], registry: BuiltinRegistry):
    return lambda: evaluate(expr, snapshot, registry)

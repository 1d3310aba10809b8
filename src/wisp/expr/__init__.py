"""
Expression model: typed values, expression trees, builtins and evaluation.
"""

from .ast import Call, Expression, Literal, VarRef
from .builtins import Builtin, BuiltinRegistry, builtins
from .compiler import compile_expression
from .evaluator import evaluate
from .value import Value, ValueKind

__all__ = [
    "Value",
    "ValueKind",
    "Expression",
    "Literal",
    "VarRef",
    "Call",
    "Builtin",
    "BuiltinRegistry",
    "builtins",
    "compile_expression",
    "evaluate",
]

"""
Utility modules for Wisp.
"""

from .errors import (
    BackendError,
    CompileError,
    ConfigurationError,
    DuplicateVariable,
    EvalError,
    ParseError,
    ProducerFailure,
    TypeMismatch,
    UnknownVariable,
    WispError,
    error_boundary,
    safe_execute,
)

__all__ = [
    "WispError",
    "ConfigurationError",
    "ParseError",
    "CompileError",
    "DuplicateVariable",
    "EvalError",
    "UnknownVariable",
    "TypeMismatch",
    "ProducerFailure",
    "BackendError",
    "error_boundary",
    "safe_execute",
]

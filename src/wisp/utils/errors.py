"""
Error handling utilities and boundaries for Wisp.

Provides the error taxonomy shared by the loader, the evaluator and the
runtime, plus consistent error handling patterns for worker threads.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

# Type variable for generic function decoration
F = TypeVar("F", bound=Callable[..., Any])


def error_boundary(
    *,
    reraise: bool = False,
    default_return: Any = None,
    log_level: int = logging.ERROR,
) -> Callable[[F], F]:
    """
    Decorator to create consistent error boundaries around functions.

    Worker loops (poll scheduler, listeners, file watcher) run their
    iterations behind a boundary so a single failure is logged instead of
    silently killing the thread.

    Args:
        reraise: If True, re-raise the exception after logging
        default_return: Value to return if error occurs and not reraising
        log_level: Logging level for the error (default: ERROR)

    Returns:
        Decorated function with error handling

    Example:
        >>> @error_boundary(default_return=False)
        ... def tick(self):
        ...     # If this raises, it will be logged and return False
        ...     self._run_due_polls()
        ...     return True
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.log(
                    log_level,
                    f"Error in {func.__name__}: {e}",
                    exc_info=True,
                    extra={"function": func.__name__},
                )

                if reraise:
                    raise

                return default_return

        return wrapper  # type: ignore

    return decorator


def safe_execute(
    func: Callable[[], Any],
    *,
    on_error: Optional[Callable[[Exception], Any]] = None,
    default: Any = None,
) -> Any:
    """
    Safely execute a function with error handling.

    Useful for one-off operations where a decorator isn't appropriate,
    e.g. destroying backend handles during shutdown.

    Args:
        func: Function to execute
        on_error: Optional callback to call if error occurs (receives exception)
        default: Default value to return on error

    Returns:
        Function result, or default value on error
    """
    try:
        return func()
    except Exception as e:
        logger.error(f"Error in safe_execute: {e}", exc_info=True)
        if on_error:
            on_error(e)
        return default


class WispError(Exception):
    """Base exception for all Wisp-specific errors."""

    pass


class ConfigurationError(WispError):
    """Raised when configuration cannot be loaded or is inconsistent."""

    pass


class ParseError(ConfigurationError):
    """
    Raised when configuration text is malformed.

    Attributes:
        offset: Zero-based character offset of the problem
        line: One-based line number
        column: One-based column number
    """

    def __init__(self, message: str, offset: int, line: int, column: int):
        super().__init__(f"{message} (line {line}, column {column})")
        self.reason = message
        self.offset = offset
        self.line = line
        self.column = column


class CompileError(ConfigurationError):
    """Raised for unknown builtins, arity mismatches and unknown widget types."""

    def __init__(self, message: str, span=None):
        if span is not None:
            message = f"{message} (line {span.line}, column {span.column})"
        super().__init__(message)
        self.span = span


class DuplicateVariable(ConfigurationError):
    """Raised when a variable name is declared twice."""

    def __init__(self, name: str):
        super().__init__(f"Variable '{name}' is declared more than once")
        self.name = name


class EvalError(WispError):
    """Raised when an expression cannot be evaluated against a snapshot."""

    pass


class UnknownVariable(EvalError):
    """Raised when an expression references a variable that does not exist."""

    def __init__(self, name: str):
        super().__init__(f"Unknown variable '{name}'")
        self.name = name


class TypeMismatch(EvalError):
    """Raised when a value cannot be coerced to the kind an operation needs."""

    pass


class ProducerFailure(WispError):
    """Raised when a poll or listen producer fails or emits unusable output."""

    def __init__(self, variable: str, message: str):
        super().__init__(f"Producer for '{variable}' failed: {message}")
        self.variable = variable


class BackendError(WispError):
    """Raised when the render backend cannot materialize or apply a patch."""

    pass

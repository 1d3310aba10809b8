"""
Builtin function registry for configuration expressions.

The builtin set is fixed: configurations cannot define functions. Each
builtin declares its arity so calls are checked when the configuration is
compiled, never while it is being evaluated.

Example:
    >>> builtins.get("+").arity_text()
    'at least 1'
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from ..utils.errors import EvalError, TypeMismatch
from .value import FALSE, TRUE, Value

logger = logging.getLogger(__name__)

Thunk = Callable[[], Value]


class Builtin:
    """
    A builtin function.

    Attributes:
        name: Name used in configuration, e.g. "+" or "strlength"
        min_args: Minimum accepted argument count
        max_args: Maximum accepted argument count, or None for variadic
        lazy: If True the implementation receives thunks and decides which
            arguments to evaluate (conditionals, short-circuit logic)
        func: Implementation taking a list of Values (or thunks if lazy)
    """

    def __init__(
        self,
        name: str,
        func: Callable,
        min_args: int,
        max_args: Optional[int],
        lazy: bool = False,
    ):
        self.name = name
        self.func = func
        self.min_args = min_args
        self.max_args = max_args
        self.lazy = lazy

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return f"exactly {self.min_args}"
        return f"{self.min_args} to {self.max_args}"

    def __repr__(self) -> str:
        return f"<Builtin(name={self.name}, arity={self.arity_text()}, lazy={self.lazy})>"


class BuiltinRegistry:
    """Registry for all available builtin functions"""

    def __init__(self):
        self._builtins: Dict[str, Builtin] = {}

    def register(
        self, name: str, min_args: int, max_args: Optional[int] = -1, lazy: bool = False
    ) -> Callable:
        """
        Decorator registering a builtin implementation.

        Args:
            name: Configuration-facing name
            min_args: Minimum argument count
            max_args: Maximum argument count; -1 means same as min_args,
                None means variadic
            lazy: Pass thunks instead of evaluated values
        """
        if max_args == -1:
            max_args = min_args

        def decorator(func: Callable) -> Callable:
            if name in self._builtins:
                logger.warning(f"Overwriting existing builtin: {name}")
            self._builtins[name] = Builtin(name, func, min_args, max_args, lazy)
            return func

        return decorator

    def get(self, name: str) -> Optional[Builtin]:
        return self._builtins.get(name)

    def list_builtins(self) -> list:
        return list(self._builtins.keys())


# Global registry instance
builtins = BuiltinRegistry()


def _integer(value: Value, what: str) -> int:
    number = value.as_number()
    if not number.is_integer():
        raise TypeMismatch(f"{what} must be a whole number, got {value}")
    return int(number)


# Arithmetic


@builtins.register("+", 1, None)
def _add(args: List[Value]) -> Value:
    return Value.number(sum(arg.as_number() for arg in args))


@builtins.register("-", 1, None)
def _subtract(args: List[Value]) -> Value:
    if len(args) == 1:
        return Value.number(-args[0].as_number())
    result = args[0].as_number()
    for arg in args[1:]:
        result -= arg.as_number()
    return Value.number(result)


@builtins.register("*", 2, None)
def _multiply(args: List[Value]) -> Value:
    result = 1.0
    for arg in args:
        result *= arg.as_number()
    return Value.number(result)


@builtins.register("/", 2)
def _divide(args: List[Value]) -> Value:
    divisor = args[1].as_number()
    if divisor == 0:
        raise EvalError("Division by zero")
    return Value.number(args[0].as_number() / divisor)


@builtins.register("%", 2)
def _modulo(args: List[Value]) -> Value:
    divisor = args[1].as_number()
    if divisor == 0:
        raise EvalError("Modulo by zero")
    return Value.number(args[0].as_number() % divisor)


@builtins.register("min", 1, None)
def _min(args: List[Value]) -> Value:
    return Value.number(min(arg.as_number() for arg in args))


@builtins.register("max", 1, None)
def _max(args: List[Value]) -> Value:
    return Value.number(max(arg.as_number() for arg in args))


@builtins.register("round", 1, 2)
def _round(args: List[Value]) -> Value:
    digits = _integer(args[1], "round precision") if len(args) == 2 else 0
    return Value.number(round(args[0].as_number(), digits))


# Comparison


def _loosely_equal(left: Value, right: Value) -> bool:
    """Numeric comparison when both sides are numeric, otherwise textual."""
    if left.coerces_to_number() and right.coerces_to_number():
        return left.as_number() == right.as_number()
    return left.as_string() == right.as_string()


@builtins.register("==", 2)
def _equal(args: List[Value]) -> Value:
    return Value.boolean(_loosely_equal(args[0], args[1]))


@builtins.register("!=", 2)
def _not_equal(args: List[Value]) -> Value:
    return Value.boolean(not _loosely_equal(args[0], args[1]))


@builtins.register("<", 2)
def _less(args: List[Value]) -> Value:
    return Value.boolean(args[0].as_number() < args[1].as_number())


@builtins.register(">", 2)
def _greater(args: List[Value]) -> Value:
    return Value.boolean(args[0].as_number() > args[1].as_number())


@builtins.register("<=", 2)
def _less_equal(args: List[Value]) -> Value:
    return Value.boolean(args[0].as_number() <= args[1].as_number())


@builtins.register(">=", 2)
def _greater_equal(args: List[Value]) -> Value:
    return Value.boolean(args[0].as_number() >= args[1].as_number())


# Logic and conditionals


@builtins.register("and", 1, None, lazy=True)
def _and(thunks: List[Thunk]) -> Value:
    for thunk in thunks:
        if not thunk().as_bool():
            return FALSE
    return TRUE


@builtins.register("or", 1, None, lazy=True)
def _or(thunks: List[Thunk]) -> Value:
    for thunk in thunks:
        if thunk().as_bool():
            return TRUE
    return FALSE


@builtins.register("not", 1)
def _not(args: List[Value]) -> Value:
    return Value.boolean(not args[0].as_bool())


@builtins.register("if", 3, lazy=True)
def _if(thunks: List[Thunk]) -> Value:
    condition, then_branch, else_branch = thunks
    return then_branch() if condition().as_bool() else else_branch()


@builtins.register("?:", 2, lazy=True)
def _fallback(thunks: List[Thunk]) -> Value:
    value = thunks[0]()
    if value.is_string and value.raw == "":
        return thunks[1]()
    return value


# Strings


@builtins.register("str", 1, None)
def _concat(args: List[Value]) -> Value:
    return Value.string("".join(arg.as_string() for arg in args))


@builtins.register("strlength", 1)
def _strlength(args: List[Value]) -> Value:
    return Value.number(len(args[0].as_string()))


@builtins.register("substring", 2, 3)
def _substring(args: List[Value]) -> Value:
    text = args[0].as_string()
    start = _integer(args[1], "substring start")
    if start < 0:
        raise TypeMismatch(f"substring start must not be negative, got {start}")
    if len(args) == 3:
        length = _integer(args[2], "substring length")
        if length < 0:
            raise TypeMismatch(f"substring length must not be negative, got {length}")
        return Value.string(text[start : start + length])
    return Value.string(text[start:])


def _compile_pattern(pattern: str) -> "re.Pattern":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise EvalError(f"Invalid regular expression {pattern!r}: {e}")


@builtins.register("replace", 3)
def _replace(args: List[Value]) -> Value:
    pattern = _compile_pattern(args[1].as_string())
    try:
        return Value.string(pattern.sub(args[2].as_string(), args[0].as_string()))
    except re.error as e:
        raise EvalError(f"Invalid replacement {args[2].as_string()!r}: {e}")


@builtins.register("matches", 2)
def _matches(args: List[Value]) -> Value:
    pattern = _compile_pattern(args[1].as_string())
    return Value.boolean(pattern.search(args[0].as_string()) is not None)


@builtins.register("upper", 1)
def _upper(args: List[Value]) -> Value:
    return Value.string(args[0].as_string().upper())


@builtins.register("lower", 1)
def _lower(args: List[Value]) -> Value:
    return Value.string(args[0].as_string().lower())


@builtins.register("trim", 1)
def _trim(args: List[Value]) -> Value:
    return Value.string(args[0].as_string().strip())

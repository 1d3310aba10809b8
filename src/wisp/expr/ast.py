"""
Expression trees bound to widget attributes and variable declarations.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Tuple, Union

from ..config.nodes import Span
from .value import Value


@dataclass(frozen=True)
class Literal:
    value: Value
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    def variables(self) -> FrozenSet[str]:
        return frozenset()

    def substitute(self, bindings: Mapping[str, "Expression"]) -> "Expression":
        return self

    def to_source(self) -> str:
        if self.value.is_string:
            escaped = self.value.raw.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        return self.value.as_string()


@dataclass(frozen=True)
class VarRef:
    name: str
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    def variables(self) -> FrozenSet[str]:
        return frozenset((self.name,))

    def substitute(self, bindings: Mapping[str, "Expression"]) -> "Expression":
        return bindings.get(self.name, self)

    def to_source(self) -> str:
        return self.name


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Expression", ...]
    span: Optional[Span] = field(default=None, compare=False, repr=False)

    def variables(self) -> FrozenSet[str]:
        """All names read by any argument, including untaken branches."""
        names: FrozenSet[str] = frozenset()
        for arg in self.args:
            names = names | arg.variables()
        return names

    def substitute(self, bindings: Mapping[str, "Expression"]) -> "Expression":
        return Call(self.name, tuple(arg.substitute(bindings) for arg in self.args), self.span)

    def to_source(self) -> str:
        parts = [self.name] + [arg.to_source() for arg in self.args]
        return "(" + " ".join(parts) + ")"


Expression = Union[Literal, VarRef, Call]

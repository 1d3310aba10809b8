"""
Typed values flowing through expressions, variables and widget attributes.

A Value is a closed tagged union over string, number and boolean. Coercions
between kinds are explicit: every conversion either succeeds with a
well-defined result or raises TypeMismatch.
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from ..utils.errors import TypeMismatch

NUMERIC_TEXT = re.compile(r"\s*-?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?\s*")


class ValueKind(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Value:
    """
    Immutable tagged value.

    Equality is per kind: Value.string("1") != Value.number(1). Ordering is
    only defined between values of the same kind.

    Example:
        >>> Value.parse("12").as_number() + 1
        13.0
        >>> Value.number(11).as_string()
        '11'
    """

    kind: ValueKind
    raw: Union[str, float, bool]

    @classmethod
    def string(cls, text: str) -> "Value":
        return cls(ValueKind.STRING, str(text))

    @classmethod
    def number(cls, number: Union[int, float]) -> "Value":
        return cls(ValueKind.NUMBER, float(number))

    @classmethod
    def boolean(cls, flag: bool) -> "Value":
        return cls(ValueKind.BOOLEAN, bool(flag))

    @classmethod
    def parse(cls, text: str) -> "Value":
        """
        Classify raw text (producer output, bare config atoms).

        Numeric literals become numbers, "true"/"false" become booleans,
        anything else stays a string.
        """
        if NUMERIC_TEXT.fullmatch(text) and text.strip():
            return cls.number(float(text))
        if text == "true":
            return cls.boolean(True)
        if text == "false":
            return cls.boolean(False)
        return cls.string(text)

    @classmethod
    def from_python(cls, obj) -> "Value":
        """Wrap a plain Python scalar (used by set_variable and YAML input)."""
        if isinstance(obj, Value):
            return obj
        if isinstance(obj, bool):
            return cls.boolean(obj)
        if isinstance(obj, (int, float)):
            return cls.number(obj)
        if isinstance(obj, str):
            return cls.string(obj)
        raise TypeMismatch(f"Cannot use {type(obj).__name__} as a value")

    @property
    def is_string(self) -> bool:
        return self.kind is ValueKind.STRING

    @property
    def is_number(self) -> bool:
        return self.kind is ValueKind.NUMBER

    @property
    def is_boolean(self) -> bool:
        return self.kind is ValueKind.BOOLEAN

    def as_string(self) -> str:
        if self.kind is ValueKind.STRING:
            return self.raw
        if self.kind is ValueKind.BOOLEAN:
            return "true" if self.raw else "false"
        return format_number(self.raw)

    def as_number(self) -> float:
        if self.kind is ValueKind.NUMBER:
            return self.raw
        if self.kind is ValueKind.BOOLEAN:
            return 1.0 if self.raw else 0.0
        if NUMERIC_TEXT.fullmatch(self.raw) and self.raw.strip():
            return float(self.raw)
        raise TypeMismatch(f"Expected a number, got string {self.raw!r}")

    def as_bool(self) -> bool:
        if self.kind is ValueKind.BOOLEAN:
            return self.raw
        if self.kind is ValueKind.NUMBER:
            return self.raw != 0
        if self.raw == "true":
            return True
        if self.raw == "false":
            return False
        raise TypeMismatch(f"Expected a boolean, got string {self.raw!r}")

    def coerces_to_number(self) -> bool:
        try:
            self.as_number()
            return True
        except TypeMismatch:
            return False

    def to_python(self) -> Union[str, float, int, bool]:
        """Plain scalar for dumps; integral numbers come back as ints."""
        if self.kind is ValueKind.NUMBER and self.raw.is_integer():
            return int(self.raw)
        return self.raw

    def __lt__(self, other: "Value") -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        if self.kind is not other.kind:
            raise TypeMismatch(f"Cannot order {self.kind.value} against {other.kind.value}")
        return self.raw < other.raw

    def __str__(self) -> str:
        return self.as_string()


def format_number(number: float) -> str:
    """
    Render a number in plain decimal notation.

    Integral numbers lose their trailing '.0'. Exponent notation is never
    produced for finite numbers, so the text is always a valid number literal.
    """
    if not math.isfinite(number):
        return repr(number)
    if number.is_integer():
        return str(int(number))
    text = repr(number)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    return text


EMPTY = Value.string("")
TRUE = Value.boolean(True)
FALSE = Value.boolean(False)

"""
Runtime value wrappers for the expression interpreter.

Values wrap Python numbers, bools and tuples with a kind tag so that the
interpreter can tell a numeric result from a boolean one. That distinction
drives the numeric-first/boolean-fallback coercion rules of control values.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple

from ..expr.errors import error_type_mismatch, error_invalid_binding


class ValueKind(Enum):
    """The closed set of runtime value kinds."""
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    TUPLE = "tuple"
    EMPTY = "empty"


@dataclass(frozen=True)
class Value:
    """
    A runtime value with its kind.

    `data` is an `int`, `float`, `bool`, a tuple of `Value`, or None for empty.
    """
    data: Any
    kind: ValueKind

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.kind.value})"

    @property
    def is_number(self) -> bool:
        return self.kind in (ValueKind.INT, ValueKind.FLOAT)

    def as_float(self) -> float:
        """Numeric view; bools are not numbers here."""
        if self.is_number:
            return float(self.data)
        raise error_type_mismatch("number", self.kind.value)

    def as_int(self) -> int:
        """Integer view; floats are truncated toward zero."""
        if self.kind == ValueKind.INT:
            return self.data
        if self.kind == ValueKind.FLOAT:
            if not math.isfinite(self.data):
                raise error_type_mismatch("finite number", repr(self.data))
            return int(self.data)
        raise error_type_mismatch("number", self.kind.value)

    def as_bool(self) -> bool:
        if self.kind == ValueKind.BOOL:
            return self.data
        raise error_type_mismatch("bool", self.kind.value)

    def as_tuple(self) -> Tuple["Value", ...]:
        if self.kind == ValueKind.TUPLE:
            return self.data
        raise error_type_mismatch("tuple", self.kind.value)

    def to_python(self) -> Any:
        """Unwrap to plain Python data."""
        if self.kind == ValueKind.TUPLE:
            return tuple(v.to_python() for v in self.data)
        return self.data


# Convenience constructors

def int_val(n: int) -> Value:
    """Create an integer value."""
    return Value(int(n), ValueKind.INT)


def float_val(x: float) -> Value:
    """Create a float value."""
    return Value(float(x), ValueKind.FLOAT)


def bool_val(b: bool) -> Value:
    """Create a boolean value."""
    return Value(bool(b), ValueKind.BOOL)


def tuple_val(items) -> Value:
    """Create a tuple value from Values."""
    return Value(tuple(items), ValueKind.TUPLE)


EMPTY = Value(None, ValueKind.EMPTY)


def wrap_value(raw: Any, name: str = "<value>") -> Value:
    """
    Wrap a plain Python value for use as a binding.

    Raises TypeMismatch for anything that is not a number, bool or a
    tuple/list of those. Checking here keeps bad constants a construction
    error rather than a per-read one.
    """
    if isinstance(raw, Value):
        return raw
    # bool first: bool is a subclass of int
    if isinstance(raw, bool):
        return bool_val(raw)
    if isinstance(raw, int):
        return int_val(raw)
    if isinstance(raw, float):
        return float_val(raw)
    if isinstance(raw, (tuple, list)):
        return tuple_val(wrap_value(r, name) for r in raw)
    # numpy scalars and similar
    if hasattr(raw, "__float__") and not isinstance(raw, str):
        return float_val(float(raw))
    raise error_invalid_binding(name, type(raw).__name__)

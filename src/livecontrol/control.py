"""
Control values: a field that is either a literal or an expression.

A `ControlValue` is resolved once per frame against an
`EvaluationContext`. Literals ignore the context entirely. Expressions are
evaluated numerically first; if that is a type mismatch they are tried as
booleans (true -> 1.0, false -> -1.0), and if that also fails the numeric
error is what the caller sees.

Example:
    >>> cv = ControlValue.from_raw("clamp(x, 0, 1)")
    >>> cv.resolve(ctx.with_bindings({"x": 1.5}))
    1.0
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Tuple, Union

from .context import EvaluationContext
from .expr.ast import Expression
from .expr.errors import (
    TypeMismatch,
    error_type_mismatch,
    error_structural_mismatch,
)
from .expr.parser import parse_expression
from .runtime.builtins import clamp


class ControlKind(Enum):
    FLOAT = "float"
    INT = "int"
    BOOL = "bool"
    EXPR = "expr"


def _bool_to_float(b: bool) -> float:
    return 1.0 if b else -1.0


@dataclass(frozen=True)
class ControlValue:
    """A literal number/bool or a parsed expression."""
    kind: ControlKind
    value: Any
    source: Optional[str] = None

    @classmethod
    def literal(cls, x: Union[bool, int, float]) -> "ControlValue":
        # bool first: bool is a subclass of int
        if isinstance(x, bool):
            return cls(ControlKind.BOOL, x)
        if isinstance(x, int):
            return cls(ControlKind.INT, x)
        if isinstance(x, float):
            return cls(ControlKind.FLOAT, x)
        raise error_type_mismatch("number or bool literal", type(x).__name__)

    @classmethod
    def expression(cls, expr: Union[str, Expression]) -> "ControlValue":
        if isinstance(expr, str):
            return cls(ControlKind.EXPR, parse_expression(expr), expr)
        return cls(ControlKind.EXPR, expr)

    @classmethod
    def from_raw(cls, raw: Any) -> "ControlValue":
        """Build from a document value: numbers and bools are literals, strings parse."""
        if isinstance(raw, ControlValue):
            return raw
        if isinstance(raw, str):
            return cls.expression(raw)
        if isinstance(raw, (bool, int, float)):
            return cls.literal(raw)
        raise error_type_mismatch("number, bool or expression string", type(raw).__name__)

    @property
    def is_literal(self) -> bool:
        return self.kind != ControlKind.EXPR

    def resolve(self, ctx: EvaluationContext) -> float:
        """Numeric resolution: number first, boolean fallback as +/-1."""
        if self.kind == ControlKind.BOOL:
            return _bool_to_float(self.value)
        if self.kind in (ControlKind.INT, ControlKind.FLOAT):
            return float(self.value)
        try:
            return ctx.resolve_numeric(self.value)
        except TypeMismatch as numeric_error:
            try:
                return _bool_to_float(ctx.resolve_boolean(self.value))
            except TypeMismatch:
                raise numeric_error from None

    def resolve_bool(self, ctx: EvaluationContext) -> bool:
        """Boolean resolution: bool first, numbers are true when > 0."""
        if self.kind == ControlKind.BOOL:
            return self.value
        if self.kind in (ControlKind.INT, ControlKind.FLOAT):
            return self.value > 0
        try:
            return ctx.resolve_boolean(self.value)
        except TypeMismatch as bool_error:
            try:
                return ctx.resolve_numeric(self.value) > 0.0
            except TypeMismatch:
                raise bool_error from None

    def resolve_int(self, ctx: EvaluationContext) -> int:
        """Numeric resolution truncated to an int (used for repeat counts)."""
        x = self.resolve(ctx)
        if not math.isfinite(x):
            raise error_type_mismatch("finite number", repr(x), source_line=self.source)
        return int(x)

    def to_raw(self) -> Any:
        if self.kind == ControlKind.EXPR:
            return self.source if self.source is not None else repr(self.value)
        return self.value

    def __repr__(self) -> str:
        return f"ControlValue({self.to_raw()!r})"


def resolve(control: ControlValue, ctx: EvaluationContext) -> float:
    return control.resolve(ctx)


@dataclass(frozen=True)
class Bounds:
    """Caller-side clamp applied after resolution."""
    min: Optional[float] = None
    max: Optional[float] = None

    def apply(self, x: float) -> float:
        if self.min is not None and x < self.min:
            x = self.min
        if self.max is not None and x > self.max:
            x = self.max
        return x


@dataclass(frozen=True)
class ControlBool:
    control: ControlValue

    @classmethod
    def from_raw(cls, raw: Any) -> "ControlBool":
        return cls(ControlValue.from_raw(raw))

    def resolve(self, ctx: EvaluationContext) -> bool:
        return self.control.resolve_bool(ctx)


@dataclass(frozen=True)
class ControlVec:
    """Two to four control values resolved element-wise."""
    elements: Tuple[ControlValue, ...]

    def __post_init__(self):
        if not 2 <= len(self.elements) <= 4:
            raise error_structural_mismatch(
                f"a vector needs 2 to 4 elements, got {len(self.elements)}")

    @classmethod
    def from_raw(cls, raw: Sequence[Any]) -> "ControlVec":
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
            raise error_structural_mismatch(f"expected a list for a vector, got {type(raw).__name__}")
        return cls(tuple(ControlValue.from_raw(r) for r in raw))

    def __len__(self) -> int:
        return len(self.elements)

    def resolve(self, ctx: EvaluationContext) -> Tuple[float, ...]:
        return tuple(e.resolve(ctx) for e in self.elements)


@dataclass(frozen=True)
class ControlColor:
    """
    HSVA color. Saturation and value are clamped to [0, 1]; hue wraps
    freely and alpha is left as resolved.
    """
    h: ControlValue
    s: ControlValue
    v: ControlValue
    a: ControlValue = ControlValue(ControlKind.FLOAT, 1.0)

    @classmethod
    def from_raw(cls, raw: Sequence[Any]) -> "ControlColor":
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence) or len(raw) not in (3, 4):
            raise error_structural_mismatch("a color needs [h, s, v] or [h, s, v, a]")
        return cls(*(ControlValue.from_raw(r) for r in raw))

    def resolve(self, ctx: EvaluationContext) -> Tuple[float, float, float, float]:
        return (
            self.h.resolve(ctx),
            clamp(self.s.resolve(ctx), 0.0, 1.0),
            clamp(self.v.resolve(ctx), 0.0, 1.0),
            self.a.resolve(ctx),
        )

"""
Built-in function registry for the expression interpreter.

Maps expression function names to implementations. The table is fixed and
process-wide: constants (PI, ROOT2, ROOT3), trig with optional frequency and
phase, wave shapes for animation (tri, saw, bounce, ease, pulse, ...),
range mapping (s, s11, slog, remap, clmap), deterministic randomness
(rn, perlin) and index helpers (idx, manymod).
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import math

from .values import Value, ValueKind, int_val, float_val
from .noise import rn as _rn, perlin as _perlin
from ..expr.errors import error_wrong_arity, error_unknown_function, error_type_mismatch


# --- Shared numeric helpers (also used by signals, lerp and boop) ---

def lerp(start: float, end: float, pct: float) -> float:
    return start + (end - start) * pct


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def map_range(x: float, in_lo: float, in_hi: float, out_lo: float, out_hi: float) -> float:
    """Linear map of x from [in_lo, in_hi] onto [out_lo, out_hi], unclamped."""
    if in_hi == in_lo:
        return out_lo
    return out_lo + (x - in_lo) * (out_hi - out_lo) / (in_hi - in_lo)


def fract(x: float) -> float:
    """Fractional part, always in [0, 1)."""
    return x % 1.0


def smoothstep(t: float, edge0: float, edge1: float) -> float:
    if edge1 == edge0:
        return 0.0 if t < edge0 else 1.0
    raw = clamp((t - edge0) / (edge1 - edge0), 0.0, 1.0)
    return raw * raw * (3.0 - 2.0 * raw)


def ease(src: float, mult: float, offset: float = 0.0) -> float:
    """Smoothed triangle wave in [0, 1] with period 2/mult."""
    raw = abs(((src * mult + offset) % 2.0) - 1.0)
    return raw * raw * (3.0 - 2.0 * raw)


@dataclass
class BuiltinFunction:
    """
    A built-in function with its implementation and arity.

    `max_args` of None means variadic.
    """
    name: str
    implementation: Callable[..., Value]
    min_args: int
    max_args: Optional[int]
    doc: str = ""

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"

    def __call__(self, *args: Value) -> Value:
        n = len(args)
        if n < self.min_args or (self.max_args is not None and n > self.max_args):
            raise error_wrong_arity(self.name, self.arity_text(), n)
        return self.implementation(*args)


def _num(v: Value) -> float:
    return v.as_float()


def _finite(v: Value) -> float:
    x = v.as_float()
    if not math.isfinite(x):
        raise error_type_mismatch("finite number", repr(x))
    return x


class BuiltinRegistry:
    """
    Registry of all built-in functions and constants.

    Functions are registered by name and looked up at call time; constants
    are seeded into every evaluation namespace.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._constants: Dict[str, Value] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def has_function(self, name: str) -> bool:
        return name in self._functions

    def register(self, func: BuiltinFunction) -> None:
        """Register a function."""
        self._functions[func.name] = func

    def register_constant(self, name: str, value: Value) -> None:
        self._constants[name] = value

    @property
    def constants(self) -> Dict[str, Value]:
        return dict(self._constants)

    @property
    def function_names(self) -> List[str]:
        return sorted(self._functions)

    def _simple(self, name: str, impl: Callable[..., float], min_args: int,
                max_args: Optional[int] = -1, doc: str = "", finite: bool = False) -> None:
        """
        Register a float-in/float-out function.

        With `finite`, inf and nan arguments are a type mismatch. Otherwise
        math domain errors give nan, as IEEE arithmetic would.
        """
        if max_args == -1:
            max_args = min_args
        convert = _finite if finite else _num

        def _call(*args: Value) -> Value:
            xs = [convert(a) for a in args]
            try:
                return float_val(impl(*xs))
            except (ValueError, OverflowError):
                return float_val(math.nan)

        self.register(BuiltinFunction(name, _call, min_args, max_args, doc))

    def _register_all(self) -> None:
        self._register_constants()
        self._register_math_functions()
        self._register_range_functions()
        self._register_wave_functions()
        self._register_random_functions()
        self._register_index_functions()

    # --- Constants ---

    def _register_constants(self) -> None:
        self.register_constant("PI", float_val(math.pi))
        self.register_constant("ROOT2", float_val(math.sqrt(2.0)))
        self.register_constant("ROOT3", float_val(math.sqrt(3.0)))

    # --- Math Functions ---

    def _register_math_functions(self) -> None:
        """Register trig and elementary math."""

        def _sin(x: float, freq: float = 1.0, phase: float = 0.0) -> float:
            return math.sin(x * freq + phase)

        def _cos(x: float, freq: float = 1.0, phase: float = 0.0) -> float:
            return math.cos(x * freq + phase)

        def _sqrt(x: float) -> float:
            return math.sqrt(x) if x >= 0.0 else math.nan

        def _pow(base: float, exp: float) -> float:
            try:
                return math.pow(base, exp)
            except (ValueError, OverflowError):
                return math.nan

        def _len(x: float, y: float) -> float:
            return math.hypot(x, y)

        def _abs(x: Value) -> Value:
            if x.kind == ValueKind.INT:
                return int_val(abs(x.data))
            return float_val(abs(_num(x)))

        def _floor(x: Value) -> Value:
            return int_val(math.floor(_finite(x)))

        def _ceil(x: Value) -> Value:
            return int_val(math.ceil(_finite(x)))

        def _min(*args: Value) -> Value:
            values = [_num(a) for a in args]
            if all(a.kind == ValueKind.INT for a in args):
                return int_val(min(values))
            return float_val(min(values))

        def _max(*args: Value) -> Value:
            values = [_num(a) for a in args]
            if all(a.kind == ValueKind.INT for a in args):
                return int_val(max(values))
            return float_val(max(values))

        self._simple("sin", _sin, 1, 3, "sin(x * freq + phase)")
        self._simple("cos", _cos, 1, 3, "cos(x * freq + phase)")
        self._simple("sqrt", _sqrt, 1)
        self._simple("pow", _pow, 2)
        self._simple("atan2", math.atan2, 2)
        self._simple("fract", fract, 1)
        self._simple("len", _len, 2, doc="length of the 2D vector (x, y)")
        self.register(BuiltinFunction("abs", _abs, 1, 1))
        self.register(BuiltinFunction("floor", _floor, 1, 1))
        self.register(BuiltinFunction("ceil", _ceil, 1, 1))
        self.register(BuiltinFunction("min", _min, 1, None))
        self.register(BuiltinFunction("max", _max, 1, None))

    # --- Range Functions ---

    def _register_range_functions(self) -> None:
        """Register clamping and range mapping."""

        def _s(src: float, lo: float, hi: float) -> float:
            return map_range(src, 0.0, 1.0, lo, hi)

        def _s11(src: float, lo: float, hi: float) -> float:
            return map_range(src, -1.0, 1.0, lo, hi)

        def _slog(src: float, lo: float, hi: float) -> float:
            return map_range(src, 0.0, 1.0, 10.0 ** lo, 10.0 ** hi)

        def _clmap(src: float, in_lo: float, in_hi: float, out_lo: float, out_hi: float) -> float:
            lo, hi = min(in_lo, in_hi), max(in_lo, in_hi)
            return map_range(clamp(src, lo, hi), in_lo, in_hi, out_lo, out_hi)

        self._simple("clamp", clamp, 3, doc="clamp(x, min, max)")
        self._simple("mix", lerp, 3, doc="mix(a, b, pct)")
        self._simple("s", _s, 3, doc="map [0, 1] onto [min, max]")
        self._simple("s11", _s11, 3, doc="map [-1, 1] onto [min, max]")
        self._simple("slog", _slog, 3, doc="map [0, 1] onto [10^min, 10^max]")
        self._simple("remap", map_range, 5)
        self._simple("clmap", _clmap, 5, doc="remap with the source clamped to its range")

    # --- Wave Functions ---

    def _register_wave_functions(self) -> None:
        """Register periodic and easing shapes driven by time."""

        def _tri(x: float) -> float:
            return 1.0 - abs(2.0 * x - 1.0)

        def _saw(src: float, mult: float) -> float:
            return abs(((src * mult) % 2.0) - 1.0)

        def _bounce(src: float, mult: float, offset: float = 0.0) -> float:
            return math.sin((src * mult + offset) * 2.0 * math.pi) * 0.5 + 0.5

        def _step(edge: float, x: float) -> float:
            return 0.0 if x < edge else 1.0

        def _pulse(pct: float, t: float, size: float) -> float:
            return smoothstep(t, pct - size, pct) - smoothstep(t, pct, pct + size)

        def _ramp(src: float, length: float) -> float:
            return fract(src * length)

        self._simple("tri", _tri, 1)
        self._simple("saw", _saw, 2)
        self._simple("bounce", _bounce, 2, 3)
        self._simple("ease", ease, 2, 3)
        self._simple("smoothstep", smoothstep, 3, doc="smoothstep(t, edge0, edge1)")
        self._simple("step", _step, 2, doc="step(edge, x)")
        self._simple("pulse", _pulse, 3, doc="pulse(pct, t, size)")
        self._simple("ramp", _ramp, 2)

    # --- Random Functions ---

    def _register_random_functions(self) -> None:
        self._simple("rn", _rn, 2, doc="rn(seed, idx) in [0, 1)", finite=True)
        self._simple("perlin", _perlin, 3, doc="perlin(x, y, z)", finite=True)

    # --- Index Functions ---

    def _register_index_functions(self) -> None:
        """Register tuple indexing and mixed-radix helpers."""

        def _idx(items: Value, i: Value) -> Value:
            elements = items.as_tuple()
            if not elements:
                raise error_type_mismatch("non-empty tuple", "()")
            return elements[i.as_int() % len(elements)]

        def _manymod(*args: Value) -> Value:
            if len(args) % 2 != 0:
                raise error_wrong_arity("manymod", "an even number of", len(args))
            pairs = [(args[k].as_int(), args[k + 1].as_int()) for k in range(0, len(args), 2)]
            result = 0
            for digit, radix in reversed(pairs):
                if radix <= 0:
                    raise error_type_mismatch("positive radix", str(radix))
                result = result * radix + (digit % radix)
            return int_val(result)

        self.register(BuiltinFunction("idx", _idx, 2, 2, "idx(tuple, i), wrapping"))
        self.register(BuiltinFunction("manymod", _manymod, 2, None,
                                      "manymod(v0, n0, v1, n1, ...) mixed-radix combination"))


# Global singleton registry
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry


def call_builtin(name: str, args: List[Value]) -> Value:
    """
    Call a built-in function by name.

    Raises UnknownIdentifier if the function is not registered and
    TypeMismatch on a wrong argument count or kind.
    """
    func = get_builtin_registry().get_function(name)
    if func is None:
        raise error_unknown_function(name)
    return func(*args)

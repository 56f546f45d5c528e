"""
Spring smoothing ("boop") of resolved values.

A boop sits between the resolved target of a control and what gets drawn.
Each numeric field keeps a small state machine:

    Uninitialized -> Direct(value)          (reset, or a Noop filter)
    Uninitialized -> Springing(SpringState) (a SecondOrderODE filter)

Springing integrates a critically-damped second-order system toward the
target every step. If the integration blows up (non-finite `y`) the state
snaps back to the target, zeroes its velocity and reports `weird` for that
step.

Filters are chosen per dotted field path: `BoopConfig.for_field("a")`
then `.for_field("b")` looks up the longest override matching `a.b`,
falling back to the default filter.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple, Union

from .expr.errors import error_invalid_config, warning_numeric_divergence

logger = logging.getLogger(__name__)


# =============================================================================
# Filters
# =============================================================================

@dataclass(frozen=True)
class SecondOrderODE:
    """Second-order filter: `f` frequency, `z` damping, `r` initial response."""
    f: float
    z: float
    r: float

    def __post_init__(self):
        if not self.f > 0.0:
            raise error_invalid_config(f"spring frequency must be positive, got {self.f}")

    def constants(self) -> Tuple[float, float, float]:
        k1 = self.z / (math.pi * self.f)
        w = 2.0 * math.pi * self.f
        k2 = 1.0 / (w * w)
        k3 = self.r * self.z / w
        return k1, k2, k3


@dataclass(frozen=True)
class Noop:
    """Pass the target through unchanged."""


FilterKind = Union[SecondOrderODE, Noop]


def filter_from_raw(raw: Any, path: str = "") -> FilterKind:
    """`"noop"`, `None`, `{f, z, r}` or `[f, z, r]`."""
    if isinstance(raw, (SecondOrderODE, Noop)):
        return raw
    if raw is None or (isinstance(raw, str) and raw.lower() == "noop"):
        return Noop()
    if isinstance(raw, Mapping) and set(raw) == {"f", "z", "r"}:
        return SecondOrderODE(float(raw["f"]), float(raw["z"]), float(raw["r"]))
    if isinstance(raw, (list, tuple)) and len(raw) == 3:
        return SecondOrderODE(*(float(v) for v in raw))
    raise error_invalid_config(f"unknown boop filter {raw!r}", path)


# =============================================================================
# Spring state
# =============================================================================

@dataclass
class SpringState:
    y: float
    yd: float
    prev_target: float
    prev_time: float
    weird: bool = False

    @classmethod
    def init(cls, target: float, t: float) -> "SpringState":
        return cls(y=target, yd=0.0, prev_target=target, prev_time=t)

    def reset(self, target: float, t: float) -> None:
        self.y = target
        self.yd = 0.0
        self.prev_target = target
        self.prev_time = t

    def update(self, target: float, t: float, ode: SecondOrderODE) -> float:
        """
        Advance one step toward `target` at time `t` and return `y`.

        A paused or rewound clock (`t` not after the previous step) holds
        `y` and restarts the next step from `t`.
        """
        self.weird = False
        k1, k2, k3 = ode.constants()

        dt = t - self.prev_time
        if dt <= 0.0:
            self.prev_target = target
            self.prev_time = t
            return self.y

        xd = (target - self.prev_target) / dt
        self.prev_target = target
        self.prev_time = t

        k2_stable = max(k2, dt * dt * 0.5 + dt * k1 * 0.5, dt * k1)
        self.y += dt * self.yd
        self.yd += dt * (target + k3 * xd - self.y - k1 * self.yd) / k2_stable

        if not math.isfinite(self.y):
            self.reset(target, t)
            self.weird = True

        return self.y


# =============================================================================
# Config
# =============================================================================

@dataclass(frozen=True)
class BoopConfig:
    reset: bool = False
    default_filter: FilterKind = Noop()
    overrides: Mapping[str, FilterKind] = field(default_factory=dict)
    path: Tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "BoopConfig":
        """
        Build from a document section:

            boop:
              reset: false
              default: {f: 2.0, z: 1.0, r: 0.0}
              fields:
                color.h: noop
        """
        if not raw:
            return cls()
        if not isinstance(raw, Mapping):
            raise error_invalid_config("boop must be a mapping", "boop")
        fields = raw.get("fields") or {}
        if not isinstance(fields, Mapping):
            raise error_invalid_config("boop.fields must be a mapping", "boop.fields")
        return cls(
            reset=bool(raw.get("reset", False)),
            default_filter=filter_from_raw(raw.get("default"), "boop.default"),
            overrides={str(k): filter_from_raw(v, f"boop.fields.{k}") for k, v in fields.items()},
        )

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)

    def filter_for(self, path: str) -> FilterKind:
        """Longest override equal to `path` or a dotted prefix of it."""
        best: Optional[str] = None
        for key in self.overrides:
            if path == key or path.startswith(key + "."):
                if best is None or len(key) > len(best):
                    best = key
        return self.overrides[best] if best is not None else self.default_filter

    @property
    def current(self) -> FilterKind:
        if not self.path:
            return self.default_filter
        return self.filter_for(self.dotted_path)

    def for_field(self, name: Union[str, int]) -> "BoopConfig":
        return dataclasses.replace(self, path=self.path + (str(name),))

    def with_reset(self, reset: bool) -> "BoopConfig":
        return dataclasses.replace(self, reset=reset)


# =============================================================================
# Boops
# =============================================================================

class BoopResult(NamedTuple):
    value: Any
    weird: bool = False


class Boop:
    """Per-field smoothing state. Subclasses implement `step`."""

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        raise NotImplementedError


class PassBoop(Boop):
    """For values with no meaningful in-between (bools, strings, ints)."""

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        return BoopResult(target)


class FieldBoop(Boop):
    def __init__(self):
        self.state: Union[None, float, SpringState] = None

    @property
    def is_springing(self) -> bool:
        return isinstance(self.state, SpringState)

    def step(self, conf: BoopConfig, t: float, target: float) -> BoopResult:
        target = float(target)
        filt = conf.current
        if conf.reset or isinstance(filt, Noop):
            self.state = target
            return BoopResult(target)

        if not isinstance(self.state, SpringState):
            self.state = SpringState.init(target, t)
            return BoopResult(target)

        y = self.state.update(target, t, filt)
        if self.state.weird:
            logger.debug("spring at %s diverged, reset to target", conf.dotted_path or "<root>")
        return BoopResult(y, self.state.weird)


def shape_of(target: Any) -> str:
    """Which kind of boop a value needs: field, vec, variant, record or pass."""
    if isinstance(target, bool) or isinstance(target, (str, int)) or target is None:
        return "pass"
    if isinstance(target, float):
        return "field"
    if isinstance(target, (list, tuple)):
        return "vec"
    if isinstance(target, Mapping) and "type" in target:
        return "variant"
    if isinstance(target, Mapping) or (dataclasses.is_dataclass(target) and not isinstance(target, type)):
        return "record"
    return "pass"


def default_boop(target: Any) -> Boop:
    """Pick a boop for a value by its shape."""
    shape = shape_of(target)
    if shape == "field":
        return FieldBoop()
    if shape == "vec":
        return VecBoop()
    if shape == "variant":
        return VariantBoop(make=lambda _: RecordBoop())
    if shape == "record":
        return RecordBoop()
    return PassBoop()


class VecBoop(Boop):
    """
    Smooths a sequence item by item.

    Pairs are matched by position: surviving items keep their state, new
    items start fresh at their target and dropped items are discarded. An
    item whose shape changes (a number becoming a list, say) starts fresh
    too.
    """

    def __init__(self, make: Callable[[Any], Boop] = default_boop):
        self.make = make
        self.items: List[Boop] = []
        self.shapes: List[str] = []

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        values = []
        weird = False
        items = []
        shapes = []
        for i, value in enumerate(target):
            shape = shape_of(value)
            if i < len(self.items) and self.shapes[i] == shape:
                boop = self.items[i]
            else:
                if i < len(self.items):
                    logger.debug("item %d at %s changed shape, spring state discarded",
                                 i, conf.dotted_path or "<root>")
                boop = self.make(value)
            result = boop.step(conf, t, value)
            items.append(boop)
            shapes.append(shape)
            values.append(result.value)
            weird = weird or result.weird
        self.items = items
        self.shapes = shapes
        out = tuple(values) if isinstance(target, tuple) else values
        return BoopResult(out, weird)


class ColorBoop(Boop):
    """HSVA color; every channel, alpha included, has its own spring."""

    def __init__(self):
        self.channels = [FieldBoop() for _ in range(4)]

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        if len(target) == 3:
            target = (*target, 1.0)
        results = [c.step(conf, t, v) for c, v in zip(self.channels, target)]
        return BoopResult(tuple(r.value for r in results), any(r.weird for r in results))


def discriminant_of(target: Any) -> Any:
    """Variant tag of a value: `{"type": ...}` mappings use the tag, else the type."""
    if isinstance(target, Mapping) and "type" in target:
        return target["type"]
    return type(target)


class VariantBoop(Boop):
    """Reinitializes the inner boop whenever the value's variant changes."""

    def __init__(self, make: Callable[[Any], Boop] = default_boop,
                 discriminant: Callable[[Any], Any] = discriminant_of):
        self.make = make
        self.discriminant = discriminant
        self.variant: Any = None
        self.inner: Optional[Boop] = None

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        variant = self.discriminant(target)
        if self.inner is None or variant != self.variant:
            if self.inner is not None:
                logger.debug("variant changed at %s, spring state discarded", conf.dotted_path or "<root>")
            self.variant = variant
            self.inner = self.make(target)
        return self.inner.step(conf, t, target)


class RecordBoop(Boop):
    """
    Smooths a record (mapping or dataclass) field by field.

    Each field gets `conf.for_field(name)`, so overrides can target
    `outer.inner` paths. `weird` is the OR over all fields and is logged
    once per step.
    """

    def __init__(self, fields: Optional[Dict[str, Boop]] = None,
                 make: Callable[[Any], Boop] = default_boop):
        self.fields: Dict[str, Boop] = dict(fields or {})
        self.shapes: Dict[str, str] = {}
        self.make = make

    def _boop_for(self, name: str, value: Any) -> Boop:
        shape = shape_of(value)
        boop = self.fields.get(name)
        seen = self.shapes.get(name)
        if boop is None or (seen is not None and seen != shape):
            if boop is not None:
                logger.debug("field %s changed shape, spring state discarded", name)
            boop = self.make(value)
            self.fields[name] = boop
        self.shapes[name] = shape
        return boop

    def step_fields(self, conf: BoopConfig, t: float,
                    values: Mapping[str, Any]) -> Tuple[Dict[str, Any], bool]:
        out: Dict[str, Any] = {}
        weird = False
        for name, value in values.items():
            result = self._boop_for(name, value).step(conf.for_field(name), t, value)
            out[name] = result.value
            weird = weird or result.weird
        return out, weird

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        if isinstance(target, Mapping):
            out, weird = self.step_fields(conf, t, target)
            value: Any = out
        else:
            current = {f.name: getattr(target, f.name) for f in dataclasses.fields(target) if f.init}
            out, weird = self.step_fields(conf, t, current)
            value = dataclasses.replace(target, **out)

        if weird and not conf.path:
            logger.warning(warning_numeric_divergence(conf.dotted_path or "<root>").message)
        return BoopResult(value, weird)

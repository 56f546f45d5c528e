"""
Repeat blocks and per-index expansion.

A repeat block turns one declaration into an indexed sequence of sibling
items. Every index gets its own context: the parent context plus a layer
of index variables (`i_x`, `i_seed`, `i_rn0`, ...) under a name prefix.
Nested repeats stack their layers, so inner items see outer indices too.

Expansion runs in two phases:

1. Planning walks the element tree with an explicit stack, resolves every
   repeat count and records one (payload, context, index) entry per item,
   plus blend markers. Nothing is resolved yet, so the expansion limits
   are enforced before a single item is produced.
2. Resolution resolves each planned payload in order and applies the
   blend cursors, merging blended items into the tail of the result.

Lazy vectors reuse the plan from phase 1 and defer phase 2.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .context import DefinitionLayer, EvaluationContext
from .control import ControlValue
from .expr.errors import (
    error_expansion_too_large,
    error_nesting_too_deep,
    error_structural_mismatch,
)
from .lerp import lerp_values
from .runtime.noise import random_draws

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "i_"
RN_COUNT = 6


def index_prefix(prefix: str = "") -> str:
    """`""` -> `"i_"`, `"p"` -> `"p_"`."""
    return DEFAULT_PREFIX if not prefix else f"{prefix}_"


@dataclass(frozen=True)
class ExpansionLimits:
    """Upper bounds that keep a malformed edit from expanding without end."""
    max_items: int = 10000
    max_depth: int = 16


# =============================================================================
# Indices
# =============================================================================

@dataclass(frozen=True)
class IdxInRange:
    """Item `i` of `total`."""
    i: int
    total: int

    def pct(self) -> float:
        """0 to 1 inclusive; a single item sits at 0.5."""
        if self.total == 1:
            return 0.5
        return self.i / (self.total - 1)

    def half_step_pct(self) -> float:
        return 0.5 / self.total

    def is_last(self) -> bool:
        return self.i == self.total - 1

    def amount_from_end(self) -> int:
        return self.total - self.i - 1


@dataclass(frozen=True)
class UnitCellIndex:
    """
    A position inside a repeat's 1D, 2D or 3D iteration space.

    Axes beyond `dims` are pinned to a single cell and report 0.0 for
    their normalized coordinate.
    """
    x_i: int = 0
    y_i: int = 0
    z_i: int = 0
    total_x: int = 1
    total_y: int = 1
    total_z: int = 1
    dims: int = 1
    h_ratio: float = 1.0

    @classmethod
    def from_1d(cls, i: int, total: int) -> "UnitCellIndex":
        return cls(x_i=i, total_x=total, dims=1)

    @classmethod
    def from_2d(cls, x_i: int, y_i: int, total_x: int, total_y: int,
                h_ratio: float = 1.0) -> "UnitCellIndex":
        return cls(x_i=x_i, y_i=y_i, total_x=total_x, total_y=total_y, dims=2, h_ratio=h_ratio)

    @classmethod
    def from_3d(cls, x_i: int, y_i: int, z_i: int,
                total_x: int, total_y: int, total_z: int) -> "UnitCellIndex":
        return cls(x_i, y_i, z_i, total_x, total_y, total_z, dims=3)

    @property
    def seed(self) -> int:
        return self.z_i * (self.total_y * self.total_x) + self.y_i * self.total_x + self.x_i

    @property
    def i(self) -> int:
        return self.seed

    @property
    def total(self) -> int:
        return self.total_x * self.total_y * self.total_z

    @property
    def frac(self) -> float:
        return self.i / self.total

    def idx(self) -> IdxInRange:
        return IdxInRange(self.i, self.total)

    def _axis(self, i: int, total: int, axis: int) -> float:
        if axis >= self.dims:
            return 0.0
        r = IdxInRange(i, total)
        return r.pct() + r.half_step_pct()

    @property
    def rn(self) -> Tuple[float, ...]:
        """rn0..rn5, drawn from a counter-based stream keyed on the seed."""
        return random_draws(self.seed, RN_COUNT)

    def bindings(self) -> List[Tuple[str, Any]]:
        idx = self.idx()
        values: List[Tuple[str, Any]] = [
            ("i", self.i),
            ("if", float(self.i)),
            ("pct", idx.pct()),
            ("total", self.total),
            ("totalf", float(self.total)),
            ("x", self._axis(self.x_i, self.total_x, 0)),
            ("y", self._axis(self.y_i, self.total_y, 1)),
            ("z", self._axis(self.z_i, self.total_z, 2)),
            ("x_i", self.x_i),
            ("y_i", self.y_i),
            ("z_i", self.z_i),
            ("x_total", self.total_x),
            ("y_total", self.total_y),
            ("z_total", self.total_z),
            ("frac", self.frac),
            ("seed", self.seed),
            ("h_ratio", self.h_ratio),
        ]
        values.extend((f"rn{k}", r) for k, r in enumerate(self.rn))
        return values

    def to_layer(self, prefix: str = DEFAULT_PREFIX) -> DefinitionLayer:
        return DefinitionLayer.bindings(self.bindings(), prefix)


# =============================================================================
# Repeat specs
# =============================================================================

class RepeatKind(Enum):
    COUNT = "count"
    RECT = "rect"
    BLEND = "blend"


@dataclass(frozen=True)
class ResolvedRepeat:
    kind: RepeatKind
    extent: Tuple[int, ...]
    blend: int = 0

    @property
    def size(self) -> int:
        n = 1
        for e in self.extent:
            n *= e
        return n + self.blend


def _count(control: ControlValue, ctx: EvaluationContext) -> int:
    # negative counts saturate to zero
    return max(0, control.resolve_int(ctx))


@dataclass(frozen=True)
class RepeatSpec:
    """
    How many items a repeat block produces.

    - `count(n)`: n items along x
    - `rect(x, y[, z])`: a grid, x varying fastest
    - `blend(count, blend)`: `count` items, then `blend` more that are
      cross-faded into the tail of what came before
    """
    kind: RepeatKind
    extent: Tuple[ControlValue, ...]
    blend_by: Optional[ControlValue] = None

    @classmethod
    def count(cls, n: Any) -> "RepeatSpec":
        return cls(RepeatKind.COUNT, (ControlValue.from_raw(n),))

    @classmethod
    def rect(cls, x: Any, y: Any, z: Any = None) -> "RepeatSpec":
        axes = [x, y] if z is None else [x, y, z]
        return cls(RepeatKind.RECT, tuple(ControlValue.from_raw(a) for a in axes))

    @classmethod
    def blend(cls, count: Any, blend: Any) -> "RepeatSpec":
        return cls(RepeatKind.BLEND, (ControlValue.from_raw(count),), ControlValue.from_raw(blend))

    @classmethod
    def from_raw(cls, raw: Any) -> "RepeatSpec":
        """A bare number/expression, `{x, y[, z]}` or `{count, blend}`."""
        if isinstance(raw, RepeatSpec):
            return raw
        if isinstance(raw, Mapping):
            keys = set(raw)
            if keys in ({"x", "y"}, {"x", "y", "z"}):
                return cls.rect(raw["x"], raw["y"], raw.get("z"))
            if keys == {"count", "blend"}:
                return cls.blend(raw["count"], raw["blend"])
            if keys == {"count"}:
                return cls.count(raw["count"])
            raise error_structural_mismatch(
                f"repeat must be a count, {{x, y}} or {{count, blend}}, got keys {sorted(keys)}")
        if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
            return cls.count(raw)
        raise error_structural_mismatch(f"invalid repeat count {raw!r}")

    def resolve(self, ctx: EvaluationContext) -> ResolvedRepeat:
        extent = tuple(_count(c, ctx) for c in self.extent)
        blend = _count(self.blend_by, ctx) if self.blend_by is not None else 0
        return ResolvedRepeat(self.kind, extent, blend)


def iter_indices(resolved: ResolvedRepeat) -> Iterator[UnitCellIndex]:
    if resolved.kind == RepeatKind.RECT:
        tx, ty = resolved.extent[0], resolved.extent[1]
        if len(resolved.extent) == 2:
            for y in range(ty):
                for x in range(tx):
                    yield UnitCellIndex.from_2d(x, y, tx, ty)
            return
        tz = resolved.extent[2]
        for z in range(tz):
            for y in range(ty):
                for x in range(tx):
                    yield UnitCellIndex.from_3d(x, y, z, tx, ty, tz)
        return
    total = resolved.size
    for i in range(total):
        yield UnitCellIndex.from_1d(i, total)


def expand(spec: RepeatSpec, ctx: EvaluationContext,
           limits: Optional[ExpansionLimits] = None) -> List[UnitCellIndex]:
    """Resolve `spec` against `ctx` and list its indices in iteration order."""
    limits = limits or ExpansionLimits()
    resolved = spec.resolve(ctx)
    if resolved.size > limits.max_items:
        raise error_expansion_too_large(resolved.size, limits.max_items)
    return list(iter_indices(resolved))


# =============================================================================
# Elements
# =============================================================================

@dataclass(frozen=True)
class Single:
    """
    One leaf item. A nonzero `blend_next` merges the next `blend_next`
    emitted items into the tail instead of appending them.
    """
    value: Any
    blend_next: int = 0

    depth = 0


@dataclass(frozen=True)
class Repeat:
    spec: RepeatSpec
    what: Tuple[Union[Single, "Repeat"], ...]
    prefix: str = ""
    depth: int = field(init=False, default=1, compare=False)

    def __post_init__(self):
        what = tuple(self.what)
        for element in what:
            if not isinstance(element, (Single, Repeat)):
                raise error_structural_mismatch(
                    f"repeat items must be Single or Repeat, got {type(element).__name__}")
        object.__setattr__(self, "what", what)
        object.__setattr__(self, "depth", 1 + max((e.depth for e in what), default=0))

    @property
    def layer_prefix(self) -> str:
        return index_prefix(self.prefix)


Element = Union[Single, Repeat]


@dataclass(frozen=True)
class BlendWith:
    """
    Cursor over items being merged into the tail of a growing sequence.

    The incoming item lands on `len(result) - 1 - offset`, keeping
    `(offset + 1) / (count + 1)` of the item already there.
    """
    offset: int
    count: int

    @property
    def fraction(self) -> float:
        return (self.offset + 1) / (self.count + 1)

    def target(self, length: int) -> int:
        return length - 1 - self.offset

    def advance(self) -> Optional["BlendWith"]:
        if self.offset <= 0:
            return None
        return BlendWith(self.offset - 1, self.count)


@dataclass
class BlendMarker:
    """The next `count` planned items merge into the tail."""
    count: int = 0


@dataclass(frozen=True)
class PlannedItem:
    payload: Any
    ctx: EvaluationContext
    index: Optional[UnitCellIndex] = None


PlanEntry = Union[PlannedItem, BlendMarker]


def element_depth(items: Sequence[Element]) -> int:
    return max((e.depth for e in items), default=0)


def plan(items: Sequence[Element], ctx: EvaluationContext,
         limits: Optional[ExpansionLimits] = None) -> List[PlanEntry]:
    """
    Walk `items`, resolving repeat counts and pushing index layers, without
    resolving any payload.
    """
    limits = limits or ExpansionLimits()
    depth = element_depth(items)
    if depth > limits.max_depth:
        raise error_nesting_too_deep(depth, limits.max_depth)

    out: List[PlanEntry] = []
    item_count = 0
    # (kind, payload, ctx, index); kinds: element, blend_start, blend_end
    stack: List[Tuple[str, Any, Optional[EvaluationContext], Optional[UnitCellIndex]]] = [
        ("element", e, ctx, None) for e in reversed(items)
    ]
    open_regions: List[BlendMarker] = []
    region_starts: List[int] = []

    while stack:
        kind, payload, item_ctx, index = stack.pop()

        if kind == "blend_start":
            marker = BlendMarker()
            out.append(marker)
            open_regions.append(marker)
            region_starts.append(item_count)
            continue
        if kind == "blend_end":
            marker = open_regions.pop()
            marker.count = item_count - region_starts.pop()
            continue

        if isinstance(payload, Single):
            item_count += 1
            if item_count > limits.max_items:
                raise error_expansion_too_large(item_count, limits.max_items)
            out.append(PlannedItem(payload.value, item_ctx, index))
            if payload.blend_next > 0:
                out.append(BlendMarker(payload.blend_next))
            continue

        resolved = payload.spec.resolve(item_ctx)
        if item_count + resolved.size > limits.max_items:
            raise error_expansion_too_large(item_count + resolved.size, limits.max_items)

        work = []
        main_count = resolved.size - resolved.blend
        for n, idx in enumerate(iter_indices(resolved)):
            if resolved.blend and n == main_count:
                work.append(("blend_start", None, None, None))
            child_ctx = item_ctx.with_layer(idx.to_layer(payload.layer_prefix))
            work.extend(("element", e, child_ctx, idx) for e in payload.what)
        if resolved.blend:
            work.append(("blend_end", None, None, None))
        stack.extend(reversed(work))

    return out


def _default_resolver(payload: Any, ctx: EvaluationContext,
                      index: Optional[UnitCellIndex]) -> Any:
    if hasattr(payload, "resolve"):
        return payload.resolve(ctx)
    return payload


Resolver = Callable[[Any, EvaluationContext, Optional[UnitCellIndex]], Any]


@dataclass(frozen=True)
class UnitCell:
    """A resolved item together with the index it was produced at."""
    node: Any
    index: UnitCellIndex

    def lerpify(self, other: "UnitCell", pct: float) -> "UnitCell":
        return UnitCell(lerp_values(self.node, other.node, pct), other.index if pct > 0.5 else self.index)


def unitcell_resolver(payload: Any, ctx: EvaluationContext,
                      index: Optional[UnitCellIndex]) -> Any:
    """Resolve through `eval_unitcell` when the payload supports it."""
    index = index if index is not None else UnitCellIndex()
    if hasattr(payload, "eval_unitcell"):
        return payload.eval_unitcell(ctx, index)
    return UnitCell(_default_resolver(payload, ctx, index), index)


def merge_planned(entries: Sequence[PlanEntry],
                  produce: Callable[[PlannedItem], Any]) -> List[Any]:
    """Produce each planned item in order and apply blend markers."""
    result: List[Any] = []
    cursor: Optional[BlendWith] = None
    dropped = 0

    for entry in entries:
        if isinstance(entry, BlendMarker):
            if entry.count > 0:
                if cursor is not None:
                    logger.debug("blend cursor replaced with %d merges left", cursor.offset + 1)
                cursor = BlendWith(entry.count - 1, entry.count)
            continue

        value = produce(entry)
        if cursor is None:
            result.append(value)
            continue

        target = cursor.target(len(result))
        if target >= 0:
            result[target] = lerp_values(value, result[target], cursor.fraction)
        else:
            dropped += 1
        cursor = cursor.advance()

    if dropped:
        logger.debug("dropped %d blend merges with no item to merge into", dropped)
    return result


def expand_and_resolve(items: Sequence[Element], ctx: EvaluationContext,
                       resolver: Optional[Resolver] = None,
                       limits: Optional[ExpansionLimits] = None) -> List[Any]:
    """
    Expand `items` under `ctx` and resolve every leaf, in declaration order.

    `resolver(payload, ctx, index)` turns a leaf payload into a value; by
    default payloads with `eval_unitcell` or `resolve` are resolved and
    anything else passes through.
    """
    resolver = resolver or _default_resolver
    entries = plan(items, ctx, limits)
    return merge_planned(entries, lambda e: resolver(e.payload, e.ctx, e.index))


def expand_unitcells(items: Sequence[Element], ctx: EvaluationContext,
                     limits: Optional[ExpansionLimits] = None) -> List[Any]:
    """Like `expand_and_resolve`, keeping each item's index next to it."""
    return expand_and_resolve(items, ctx, unitcell_resolver, limits)


# =============================================================================
# Declarative form
# =============================================================================

def element_from_raw(raw: Any, leaf: Callable[[Any], Any] = ControlValue.from_raw) -> Element:
    """
    Parse one list element of a document.

    `{repeat: N, prefix?: p, what: [...]}` is a repeat block; the explicit
    `{c: leaf}` / `{r: {repeat, ...}}` spelling is also accepted. Anything
    else is a leaf and goes through `leaf`.
    """
    if isinstance(raw, (Single, Repeat)):
        return raw
    if isinstance(raw, Mapping):
        has_c = "c" in raw
        has_r = "r" in raw or "repeat" in raw
        if has_c and has_r:
            raise error_structural_mismatch("element has both a value and a repeat")
        if has_c:
            return Single(leaf(raw["c"]), int(raw.get("blend_next", 0)))
        if "r" in raw:
            return _repeat_from_raw(raw["r"], leaf)
        if "repeat" in raw:
            return _repeat_from_raw(raw, leaf)
        if "what" in raw:
            raise error_structural_mismatch("element has neither a value nor a repeat count")
    if raw is None:
        raise error_structural_mismatch("element has neither a value nor a repeat")
    return Single(leaf(raw))


def _repeat_from_raw(raw: Any, leaf: Callable[[Any], Any]) -> Repeat:
    if not isinstance(raw, Mapping) or "repeat" not in raw:
        raise error_structural_mismatch("repeat block needs a 'repeat' count")
    what = raw.get("what")
    if not isinstance(what, list):
        raise error_structural_mismatch("repeat block needs a 'what' list")
    return Repeat(
        spec=RepeatSpec.from_raw(raw["repeat"]),
        what=tuple(element_from_raw(w, leaf) for w in what),
        prefix=str(raw.get("prefix", "") or ""),
    )


def elements_from_raw(raw: Any, leaf: Callable[[Any], Any] = ControlValue.from_raw) -> List[Element]:
    if isinstance(raw, Mapping):
        return [element_from_raw(raw, leaf)]
    if not isinstance(raw, list):
        raise error_structural_mismatch(f"expected a list of elements, got {type(raw).__name__}")
    return [element_from_raw(r, leaf) for r in raw]


@dataclass(frozen=True)
class ControlList:
    """A list control whose elements may be repeat blocks."""
    elements: Tuple[Element, ...]

    @classmethod
    def from_raw(cls, raw: Any, leaf: Callable[[Any], Any] = ControlValue.from_raw) -> "ControlList":
        return cls(tuple(elements_from_raw(raw, leaf)))

    def resolve(self, ctx: EvaluationContext, limits: Optional[ExpansionLimits] = None,
                resolver: Optional[Resolver] = None) -> List[Any]:
        return expand_and_resolve(self.elements, ctx, resolver, limits)

"""
Lazy value trees: build now, evaluate later.

Building a lazy tree captures the expressions and the context they were
declared in but evaluates nothing. More definitions (an outer repeat's
index variables, a caller's bindings) can then be pushed onto every leaf
with `with_more_defs`, and `eval_lazy` does the final resolution once.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from .context import DefinitionLayer, EvaluationContext
from .control import ControlColor, ControlValue, ControlVec
from .expr.ast import Expression
from .expr.errors import error_type_mismatch, error_structural_mismatch
from .runtime.builtins import clamp
from .runtime.values import ValueKind
from .unitcells import (
    BlendMarker,
    ControlList,
    Element,
    ExpansionLimits,
    IdxInRange,
    PlannedItem,
    UnitCellIndex,
    elements_from_raw,
    index_prefix,
    merge_planned,
    plan,
)

Defs = Union[DefinitionLayer, Mapping[str, Any], str]


def as_layers(defs: Union[Defs, Iterable[Defs], None]) -> Tuple[DefinitionLayer, ...]:
    """Normalize layers, binding maps and program texts to a tuple of layers."""
    if defs is None:
        return ()
    if isinstance(defs, (DefinitionLayer, Mapping, str)):
        defs = [defs]
    out = []
    for d in defs:
        if isinstance(d, DefinitionLayer):
            out.append(d)
        elif isinstance(d, Mapping):
            out.append(DefinitionLayer.bindings(d))
        else:
            out.append(DefinitionLayer.program(d))
    return tuple(out)


def _index_layer(idx: Union[IdxInRange, UnitCellIndex], prefix: str) -> DefinitionLayer:
    if isinstance(idx, IdxInRange):
        idx = UnitCellIndex.from_1d(idx.i, idx.total)
    return idx.to_layer(index_prefix(prefix))


@dataclass(frozen=True)
class LazyNode:
    """An expression plus the layers to apply before evaluating it."""
    expr: Expression
    defs: Tuple[DefinitionLayer, ...] = ()
    base: Optional[EvaluationContext] = None
    source: Optional[str] = None

    def add_more_defs(self, defs: Union[Defs, Iterable[Defs]]) -> "LazyNode":
        return replace(self, defs=self.defs + as_layers(defs))

    def build_ctx(self, ctx: Optional[EvaluationContext] = None) -> EvaluationContext:
        ctx = ctx if ctx is not None else self.base
        if ctx is None:
            raise error_structural_mismatch("lazy node evaluated without a context")
        return ctx.with_layers(self.defs)

    def eval(self, ctx: Optional[EvaluationContext] = None) -> float:
        value = self.build_ctx(ctx).evaluate(self.expr)
        if value.kind in (ValueKind.FLOAT, ValueKind.INT):
            return float(value.data)
        if value.kind == ValueKind.BOOL:
            return 1.0 if value.data else -1.0
        raise error_type_mismatch("number", value.kind.value, source_line=self.source)

    def variable_names(self, ctx: Optional[EvaluationContext] = None) -> List[str]:
        return sorted(self.build_ctx(ctx).namespace)


@dataclass(frozen=True)
class LazyControl:
    """A literal, or a `LazyNode` when the control is an expression."""
    control: ControlValue
    node: Optional[LazyNode] = None

    @classmethod
    def build(cls, control: Any, ctx: Optional[EvaluationContext] = None) -> "LazyControl":
        control = ControlValue.from_raw(control)
        if control.is_literal:
            return cls(control)
        return cls(control, LazyNode(control.value, (), ctx, control.source))

    def add_more_defs(self, defs: Union[Defs, Iterable[Defs]]) -> "LazyControl":
        # literals ignore any definitions
        if self.node is None:
            return self
        return LazyControl(self.control, self.node.add_more_defs(defs))

    def eval(self, ctx: Optional[EvaluationContext] = None) -> float:
        if self.node is None:
            return self.control.resolve(ctx)
        return self.node.eval(ctx)

    def eval_lazy(self, min: Optional[float] = None, max: Optional[float] = None,
                  ctx: Optional[EvaluationContext] = None) -> float:
        x = self.eval(ctx)
        if min is not None:
            x = x if x > min else min
        if max is not None:
            x = x if x < max else max
        return x

    def eval_idx(self, ctx: Optional[EvaluationContext],
                 idx: Union[IdxInRange, UnitCellIndex], prefix: str = "") -> float:
        """Evaluate with an index layer injected under `prefix`."""
        return self.add_more_defs(_index_layer(idx, prefix)).eval(ctx)


@dataclass(frozen=True)
class LazyGroup:
    """Fixed-size group of lazy controls: a vector or an HSVA color."""
    items: Tuple[LazyControl, ...]
    is_color: bool = False

    def add_more_defs(self, defs: Union[Defs, Iterable[Defs]]) -> "LazyGroup":
        layers = as_layers(defs)
        return LazyGroup(tuple(i.add_more_defs(layers) for i in self.items), self.is_color)

    def eval(self, ctx: Optional[EvaluationContext] = None) -> Tuple[float, ...]:
        values = [i.eval(ctx) for i in self.items]
        if self.is_color:
            values[1] = clamp(values[1], 0.0, 1.0)
            values[2] = clamp(values[2], 0.0, 1.0)
        return tuple(values)


def lazify(payload: Any, ctx: Optional[EvaluationContext]) -> Any:
    """Turn a declared payload into its lazy counterpart bound to `ctx`."""
    if isinstance(payload, (LazyControl, LazyGroup, LazyNode, BuiltLazyVec)):
        return payload
    if isinstance(payload, ControlValue):
        return LazyControl.build(payload, ctx)
    if isinstance(payload, ControlVec):
        return LazyGroup(tuple(LazyControl.build(e, ctx) for e in payload.elements))
    if isinstance(payload, ControlColor):
        channels = (payload.h, payload.s, payload.v, payload.a)
        return LazyGroup(tuple(LazyControl.build(c, ctx) for c in channels), is_color=True)
    if isinstance(payload, ControlList):
        return LazyVec(payload.elements).to_lazy(ctx)
    if hasattr(payload, "to_lazy"):
        return payload.to_lazy(ctx)
    return payload


@dataclass(frozen=True)
class BuiltLazyVec:
    """
    A lazy vector after its repeats were expanded.

    Each planned item already carries the index layers of every repeat it
    sits in; blend markers are kept so evaluation merges exactly as an
    eager expansion would.
    """
    entries: Tuple[Union[PlannedItem, BlendMarker], ...]

    def add_more_defs(self, defs: Union[Defs, Iterable[Defs]]) -> "BuiltLazyVec":
        layers = as_layers(defs)
        return BuiltLazyVec(tuple(
            replace(e, payload=with_more_defs(e.payload, layers)) if isinstance(e, PlannedItem) else e
            for e in self.entries
        ))

    def eval(self, ctx: Optional[EvaluationContext] = None,
             item: Optional[Callable[[Any, Optional[EvaluationContext]], Any]] = None) -> List[Any]:
        """Evaluate every item; `item(payload, ctx)` replaces `eval_lazy` per leaf."""
        produce = item or eval_lazy
        return merge_planned(self.entries, lambda e: produce(e.payload, ctx))

    def __len__(self) -> int:
        return sum(1 for e in self.entries if isinstance(e, PlannedItem))


@dataclass(frozen=True)
class LazyVec:
    """A list of `Single`/`Repeat` elements whose leaves are built lazily."""
    elements: Tuple[Element, ...]

    @classmethod
    def from_raw(cls, raw: Any) -> "LazyVec":
        return cls(tuple(elements_from_raw(raw)))

    def to_lazy(self, ctx: EvaluationContext,
                limits: Optional[ExpansionLimits] = None) -> BuiltLazyVec:
        base_depth = len(ctx.layers)
        entries = []
        for entry in plan(self.elements, ctx, limits):
            if isinstance(entry, BlendMarker):
                entries.append(entry)
                continue
            index_layers = entry.ctx.layers[base_depth:]
            leaf = with_more_defs(lazify(entry.payload, ctx), index_layers)
            entries.append(PlannedItem(leaf, ctx, entry.index))
        return BuiltLazyVec(tuple(entries))


def with_more_defs(tree: Any, defs: Union[Defs, Iterable[Defs]]) -> Any:
    """Push definitions onto every lazy leaf of `tree` without evaluating."""
    layers = as_layers(defs)
    if not layers:
        return tree
    if hasattr(tree, "add_more_defs"):
        return tree.add_more_defs(layers)
    if isinstance(tree, list):
        return [with_more_defs(t, layers) for t in tree]
    if isinstance(tree, tuple):
        return tuple(with_more_defs(t, layers) for t in tree)
    if isinstance(tree, Mapping):
        return {k: with_more_defs(v, layers) for k, v in tree.items()}
    return tree


def eval_lazy(tree: Any, ctx: Optional[EvaluationContext] = None) -> Any:
    """Evaluate every lazy leaf of `tree`, keeping its shape."""
    if hasattr(tree, "eval"):
        return tree.eval(ctx)
    if hasattr(tree, "eval_lazy"):
        return tree.eval_lazy()
    if isinstance(tree, list):
        return [eval_lazy(t, ctx) for t in tree]
    if isinstance(tree, tuple):
        return tuple(eval_lazy(t, ctx) for t in tree)
    if isinstance(tree, Mapping):
        return {k: eval_lazy(v, ctx) for k, v in tree.items()}
    return tree

"""
Schema-driven dispatch for user record types.

A record type is a plain dataclass whose fields carry a `kind` (and
optional `min`, `max`, `boop`, `item`) in their metadata:

    @dataclass
    class Dot:
        size: float = field(metadata={"kind": "f32", "min": 0.0})
        color: tuple = field(metadata={"kind": "color"})
        on: bool = True

`RecordSchema.from_dataclass(Dot)` reads that once. `schema.parse(raw)`
turns a document mapping into a `ControlRecord`, which resolves to a `Dot`
through any of the four capabilities below; `schema.booper()` builds the
matching spring smoother.

Kinds are inferred from plain annotations (`float`, `int`, `bool`, `str`,
nested dataclasses) when no metadata is given.
"""

import dataclasses
import logging
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Type

from .boop import (
    Boop,
    BoopConfig,
    BoopResult,
    ColorBoop,
    FieldBoop,
    FilterKind,
    PassBoop,
    VecBoop,
    filter_from_raw,
)
from .context import DefinitionLayer, EvaluationContext
from .control import Bounds, ControlColor, ControlValue, ControlVec
from .expr.errors import error_structural_mismatch, warning_numeric_divergence
from .lazy import (
    LazyControl,
    LazyVec,
    as_layers,
    eval_lazy,
    lazify,
    with_more_defs,
)
from .unitcells import (
    ControlList,
    ExpansionLimits,
    UnitCell,
    UnitCellIndex,
    elements_from_raw,
)

logger = logging.getLogger(__name__)

KINDS = ("f32", "bool", "int", "vec2", "vec3", "color", "list", "record", "lazy", "string")

# Reserved document key: a context program applied before the fields
CTX_KEY = "ctx"

# FieldSpec.default for fields the document must supply
NO_DEFAULT = object()


# =============================================================================
# Capabilities
# =============================================================================

class ResolvesTo(ABC):
    """Produces a concrete value from a context."""

    @abstractmethod
    def resolve(self, ctx: EvaluationContext) -> Any:
        ...


class IsLazy(ABC):
    """Two-phase: `to_lazy(ctx)` builds, `eval_lazy()` on the result evaluates."""

    @abstractmethod
    def to_lazy(self, ctx: EvaluationContext) -> Any:
        ...


class EvaluableUnitCell(ABC):
    @abstractmethod
    def eval_unitcell(self, ctx: EvaluationContext, idx: UnitCellIndex) -> Any:
        ...


class BoopFrom(ABC):
    """Spring-filtered resolution: smooths successive targets."""

    @abstractmethod
    def boop(self, conf: BoopConfig, t: float, target: Any) -> Any:
        ...

    @abstractmethod
    def any_weird_states(self) -> bool:
        ...


# =============================================================================
# Fields
# =============================================================================

@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str
    bounds: Bounds = Bounds()
    boop: Optional[FilterKind] = None
    item: Any = None
    record: Optional["RecordSchema"] = None
    default: Any = NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    # --- parsing ---

    def parse(self, raw: Any) -> Any:
        """Document value -> unresolved control for this field."""
        kind = self.kind
        if kind in ("f32", "bool", "int", "lazy"):
            return ControlValue.from_raw(raw)
        if kind == "string":
            return str(raw)
        if kind in ("vec2", "vec3"):
            vec = ControlVec.from_raw(raw)
            want = 2 if kind == "vec2" else 3
            if len(vec) != want:
                raise error_structural_mismatch(
                    f"field '{self.name}' needs {want} elements, got {len(vec)}", self.name)
            return vec
        if kind == "color":
            return ControlColor.from_raw(raw)
        if kind == "record":
            return self.record.parse(raw)
        if kind == "list":
            return ControlList(tuple(elements_from_raw(raw, self.item_spec().parse)))
        raise error_structural_mismatch(f"unknown field kind '{kind}'", self.name)

    def item_spec(self) -> "FieldSpec":
        """The spec each element of a list field is parsed and resolved with.

        Scalar items share the list's bounds.
        """
        item = self.item
        if isinstance(item, type) and dataclasses.is_dataclass(item):
            item = schema_for(item)
        if isinstance(item, RecordSchema):
            return FieldSpec(self.name, "record", record=item)
        return FieldSpec(self.name, str(item or "f32"), bounds=self.bounds)

    # --- resolution ---

    def resolve(self, control: Any, ctx: EvaluationContext,
                limits: Optional[ExpansionLimits] = None) -> Any:
        kind = self.kind
        if kind == "f32":
            return float(self.bounds.apply(control.resolve(ctx)))
        if kind == "int":
            return int(self.bounds.apply(control.resolve_int(ctx)))
        if kind == "bool":
            return control.resolve_bool(ctx)
        if kind == "lazy":
            return LazyControl.build(control, ctx)
        if kind == "string":
            return control
        if kind == "list":
            item = self.item_spec()
            return control.resolve(ctx, limits, lambda payload, c, _: item.resolve(payload, c, limits))
        return control.resolve(ctx)

    def to_lazy(self, control: Any, ctx: EvaluationContext) -> Any:
        if self.kind == "list":
            return LazyVec(control.elements).to_lazy(ctx)
        if self.kind == "lazy":
            return LazyControl.build(control, ctx)
        return lazify(control, ctx)

    def eval_lazy(self, lazy: Any, ctx: Optional[EvaluationContext] = None) -> Any:
        kind = self.kind
        if kind == "f32":
            return float(lazy.eval_lazy(self.bounds.min, self.bounds.max, ctx))
        if kind == "int":
            return int(self.bounds.apply(lazy.eval(ctx)))
        if kind == "bool":
            return lazy.eval(ctx) > 0.0
        if kind == "lazy":
            # still lazy; the caller evaluates it
            return lazy
        if kind == "list":
            return lazy.eval(ctx, self.item_spec().eval_lazy)
        return eval_lazy(lazy, ctx)

    # --- smoothing ---

    def make_boop(self) -> Boop:
        kind = self.kind
        if kind == "f32":
            return FieldBoop()
        if kind in ("vec2", "vec3"):
            return VecBoop(lambda _: FieldBoop())
        if kind == "color":
            return ColorBoop()
        if kind == "record":
            return self.record.booper()
        if kind == "list":
            item = self.item
            if isinstance(item, type) and dataclasses.is_dataclass(item):
                item_schema = schema_for(item)
                return VecBoop(lambda _: item_schema.booper())
            if isinstance(item, RecordSchema):
                return VecBoop(lambda _: item.booper())
            return VecBoop(lambda _: FieldBoop() if item in (None, "f32") else PassBoop())
        return PassBoop()


def _infer_kind(annotation: Any) -> Optional[str]:
    if annotation is bool:
        return "bool"
    if annotation is int:
        return "int"
    if annotation is float:
        return "f32"
    if annotation is str:
        return "string"
    if isinstance(annotation, type) and dataclasses.is_dataclass(annotation):
        return "record"
    return None


# =============================================================================
# Records
# =============================================================================

class RecordSchema:
    """Per-field dispatch for one dataclass type."""

    def __init__(self, cls: Type, fields: List[FieldSpec]):
        self.cls = cls
        self.fields = fields
        self.by_name: Dict[str, FieldSpec] = {f.name: f for f in fields}

    def __repr__(self) -> str:
        return f"RecordSchema({self.cls.__name__}, {[f.name for f in self.fields]})"

    @classmethod
    def from_dataclass(cls, record_cls: Type) -> "RecordSchema":
        if not (isinstance(record_cls, type) and dataclasses.is_dataclass(record_cls)):
            raise TypeError(f"{record_cls!r} is not a dataclass type")
        hints = typing.get_type_hints(record_cls)
        specs = []
        for f in dataclasses.fields(record_cls):
            if not f.init:
                continue
            meta = f.metadata or {}
            annotation = hints.get(f.name)
            kind = meta.get("kind") or _infer_kind(annotation)
            if kind not in KINDS:
                raise error_structural_mismatch(
                    f"field '{f.name}' of {record_cls.__name__} needs a kind, one of {', '.join(KINDS)}",
                    f.name)
            default = f.default
            if default is dataclasses.MISSING:
                if f.default_factory is not dataclasses.MISSING:
                    default = f.default_factory()
                else:
                    default = NO_DEFAULT
            boop = meta.get("boop")
            specs.append(FieldSpec(
                name=f.name,
                kind=kind,
                bounds=Bounds(meta.get("min"), meta.get("max")),
                boop=filter_from_raw(boop, f.name) if boop is not None else None,
                item=meta.get("item"),
                record=schema_for(annotation) if kind == "record" else None,
                default=default,
            ))
        return cls(record_cls, specs)

    def parse(self, raw: Any) -> "ControlRecord":
        if isinstance(raw, ControlRecord):
            return raw
        if not isinstance(raw, Mapping):
            raise error_structural_mismatch(
                f"{self.cls.__name__} needs a mapping, got {type(raw).__name__}")
        unknown = set(raw) - set(self.by_name) - {CTX_KEY}
        if unknown:
            raise error_structural_mismatch(
                f"unknown fields for {self.cls.__name__}: {', '.join(sorted(unknown))}")
        controls: Dict[str, Any] = {}
        fixed: Dict[str, Any] = {}
        for spec in self.fields:
            if spec.name in raw:
                controls[spec.name] = spec.parse(raw[spec.name])
            elif spec.has_default:
                fixed[spec.name] = spec.default
            else:
                raise error_structural_mismatch(
                    f"missing field '{spec.name}' for {self.cls.__name__}", spec.name)
        program = raw.get(CTX_KEY)
        layer = DefinitionLayer.program(program) if program else None
        return ControlRecord(self, controls, fixed, layer)

    def booper(self) -> "SchemaBoop":
        return SchemaBoop(self)


@lru_cache(maxsize=None)
def schema_for(record_cls: Type) -> RecordSchema:
    return RecordSchema.from_dataclass(record_cls)


class ControlRecord(ResolvesTo, IsLazy, EvaluableUnitCell):
    """The unresolved form of a record: one control per field."""

    def __init__(self, schema: RecordSchema, controls: Dict[str, Any],
                 fixed: Optional[Dict[str, Any]] = None,
                 ctx_layer: Optional[DefinitionLayer] = None):
        self.schema = schema
        self.controls = controls
        self.fixed = dict(fixed or {})
        self.ctx_layer = ctx_layer

    def _ctx(self, ctx: EvaluationContext) -> EvaluationContext:
        return ctx.with_layer(self.ctx_layer) if self.ctx_layer is not None else ctx

    def resolve(self, ctx: EvaluationContext, limits: Optional[ExpansionLimits] = None) -> Any:
        ctx = self._ctx(ctx)
        values = dict(self.fixed)
        for name, control in self.controls.items():
            values[name] = self.schema.by_name[name].resolve(control, ctx, limits)
        return self.schema.cls(**values)

    def eval_unitcell(self, ctx: EvaluationContext, idx: UnitCellIndex) -> UnitCell:
        return UnitCell(self.resolve(ctx), idx)

    def to_lazy(self, ctx: EvaluationContext) -> "LazyRecord":
        ctx = self._ctx(ctx)
        lazies = {
            name: self.schema.by_name[name].to_lazy(control, ctx)
            for name, control in self.controls.items()
        }
        return LazyRecord(self.schema, lazies, self.fixed)


class LazyRecord:
    """A record whose fields are built but not yet evaluated."""

    def __init__(self, schema: RecordSchema, lazies: Dict[str, Any], fixed: Dict[str, Any]):
        self.schema = schema
        self.lazies = lazies
        self.fixed = fixed

    def add_more_defs(self, defs) -> "LazyRecord":
        layers = as_layers(defs)
        return LazyRecord(
            self.schema,
            {name: with_more_defs(lazy, layers) for name, lazy in self.lazies.items()},
            self.fixed,
        )

    def eval(self, ctx: Optional[EvaluationContext] = None) -> Any:
        values = dict(self.fixed)
        for name, lazy in self.lazies.items():
            values[name] = self.schema.by_name[name].eval_lazy(lazy, ctx)
        return self.schema.cls(**values)

    def eval_lazy(self) -> Any:
        return self.eval(None)


class SchemaBoop(Boop, BoopFrom):
    """
    Spring smoothing for a record, one boop per field by kind.

    A field's `boop` metadata replaces the default filter below that
    field; path overrides in the config still win over it.
    """

    def __init__(self, schema: RecordSchema):
        self.schema = schema
        self.fields: Dict[str, Boop] = {spec.name: spec.make_boop() for spec in schema.fields}
        self.weird = False

    def step(self, conf: BoopConfig, t: float, target: Any) -> BoopResult:
        changes = {}
        weird = False
        for spec in self.schema.fields:
            child = conf.for_field(spec.name)
            if spec.boop is not None:
                child = dataclasses.replace(child, default_filter=spec.boop)
            result = self.fields[spec.name].step(child, t, getattr(target, spec.name))
            changes[spec.name] = result.value
            weird = weird or result.weird
        self.weird = weird
        if weird and not conf.path:
            logger.warning(warning_numeric_divergence(self.schema.cls.__name__).message)
        return BoopResult(dataclasses.replace(target, **changes), weird)

    def boop(self, conf: BoopConfig, t: float, target: Any) -> Any:
        return self.step(conf, t, target).value

    def any_weird_states(self) -> bool:
        return self.weird


def resolve_record(record_cls: Type, raw: Mapping[str, Any], ctx: EvaluationContext) -> Any:
    """Parse and resolve a document mapping straight to a `record_cls` instance."""
    return schema_for(record_cls).parse(raw).resolve(ctx)


__all__ = [
    "KINDS",
    "ResolvesTo",
    "IsLazy",
    "EvaluableUnitCell",
    "BoopFrom",
    "FieldSpec",
    "RecordSchema",
    "ControlRecord",
    "LazyRecord",
    "SchemaBoop",
    "schema_for",
    "resolve_record",
]

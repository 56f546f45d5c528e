"""
Evaluation context for one frame.

An `EvaluationContext` is the namespace expressions are evaluated in. It
combines, in order:
- the builtin constants (PI, ROOT2, ROOT3)
- the frame's signals (t, ti, f, fi, pointer/key state, audio bands, ...)
- an ordered list of `DefinitionLayer`s

Contexts are immutable. `with_layer` returns a child context that keeps a
reference to its parent; the child's namespace is built from the parent's
cached namespace plus the new layer the first time anything reads it, and
is then reused. Adding a layer never touches the parent's cache.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .cached import CachedCompute
from .expr.ast import Expression, Program
from .expr.parser import parse_expression, parse_program
from .expr.errors import error_type_mismatch
from .runtime.values import Value, ValueKind, wrap_value
from .runtime.builtins import BuiltinRegistry, get_builtin_registry
from .runtime.interpreter import Interpreter

logger = logging.getLogger(__name__)

ExprLike = Union[str, Expression]
Bindings = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class LayerKind(Enum):
    BINDINGS = "bindings"
    PROGRAM = "program"


def _binding_pairs(values: Bindings) -> List[Tuple[str, Any]]:
    if isinstance(values, Mapping):
        return list(values.items())
    return list(values)


@dataclass(frozen=True)
class DefinitionLayer:
    """
    One overlay of definitions on top of a context.

    Either a flat set of name -> value bindings (each name optionally
    prefixed) or a context program whose assignments become bindings.
    Values are checked when the layer is built, so a bad constant fails
    here and not on every read.
    """
    kind: LayerKind
    values: Tuple[Tuple[str, Value], ...] = ()
    prefix: str = ""
    ast: Optional[Program] = None
    source: Optional[str] = None

    @classmethod
    def bindings(cls, values: Bindings, prefix: str = "") -> "DefinitionLayer":
        pairs = tuple(
            (f"{prefix}{name}", wrap_value(raw, f"{prefix}{name}"))
            for name, raw in _binding_pairs(values)
        )
        return cls(kind=LayerKind.BINDINGS, values=pairs, prefix=prefix)

    @classmethod
    def program(cls, program: Union[str, Program]) -> "DefinitionLayer":
        if isinstance(program, str):
            return cls(kind=LayerKind.PROGRAM, ast=parse_program(program), source=program)
        return cls(kind=LayerKind.PROGRAM, ast=program)

    @property
    def names(self) -> List[str]:
        """Names this layer defines."""
        if self.kind == LayerKind.BINDINGS:
            return [name for name, _ in self.values]
        return self.ast.assigned_names if self.ast else []

    def apply(self, namespace: Mapping[str, Value], interpreter: Interpreter) -> Dict[str, Value]:
        """The bindings this layer adds when applied on top of `namespace`."""
        if self.kind == LayerKind.BINDINGS:
            return dict(self.values)
        return interpreter.run_program(self.ast, namespace, self.source)


class EvaluationContext:
    """
    The namespace expressions are evaluated against.

    Build a root context once per frame with `EvaluationContext.build`, then
    derive per-item contexts with `with_layer` / `with_bindings`.
    """

    def __init__(self, registry: Optional[BuiltinRegistry] = None,
                 signals: Optional[Bindings] = None,
                 parent: Optional["EvaluationContext"] = None,
                 layer: Optional[DefinitionLayer] = None):
        if parent is not None:
            registry = parent.registry
        self.registry = registry or get_builtin_registry()
        self.interpreter = Interpreter(self.registry) if parent is None else parent.interpreter
        self._parent = parent
        self._layer = layer
        self._signals: Tuple[Tuple[str, Value], ...] = ()
        if parent is None and signals is not None:
            self._signals = tuple(
                (name, wrap_value(raw, name)) for name, raw in _signal_pairs(signals)
            )
        self._namespace: CachedCompute[Mapping[str, Value]] = CachedCompute(self._build_namespace)
        self.depth = 0 if parent is None else parent.depth + 1

    @classmethod
    def build(cls, builtins: Optional[BuiltinRegistry] = None,
              signals: Optional[Bindings] = None) -> "EvaluationContext":
        """Root context from a builtin table and the frame's signals."""
        return cls(registry=builtins, signals=signals)

    # =========================================================================
    # Layering
    # =========================================================================

    def with_layer(self, layer: DefinitionLayer) -> "EvaluationContext":
        """A new context with `layer` applied last. `self` is unchanged."""
        return EvaluationContext(parent=self, layer=layer)

    def with_layers(self, layers: Iterable[DefinitionLayer]) -> "EvaluationContext":
        ctx = self
        for layer in layers:
            ctx = ctx.with_layer(layer)
        return ctx

    def with_bindings(self, values: Bindings, prefix: str = "") -> "EvaluationContext":
        return self.with_layer(DefinitionLayer.bindings(values, prefix))

    def with_program(self, program: Union[str, Program]) -> "EvaluationContext":
        return self.with_layer(DefinitionLayer.program(program))

    @property
    def parent(self) -> Optional["EvaluationContext"]:
        return self._parent

    @property
    def layers(self) -> List[DefinitionLayer]:
        """All layers from the root down, in application order."""
        out = []
        node = self
        while node is not None and node._layer is not None:
            out.append(node._layer)
            node = node._parent
        out.reverse()
        return out

    @property
    def root(self) -> "EvaluationContext":
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    # =========================================================================
    # Namespace
    # =========================================================================

    def _build_namespace(self) -> Mapping[str, Value]:
        if self._parent is None:
            base: Dict[str, Value] = dict(self.registry.constants)
            base.update(self._signals)
            logger.debug("built root namespace with %d names", len(base))
            return MappingProxyType(base)

        # Force unbuilt ancestors top-down so a long chain of layers
        # never recurses once per layer.
        pending = []
        node = self._parent
        while node is not None and not node._namespace.is_ready:
            pending.append(node)
            node = node._parent
        for ancestor in reversed(pending):
            ancestor._namespace.get()

        parent_ns = self._parent._namespace.get()
        added = self._layer.apply(parent_ns, self.interpreter)
        merged = dict(parent_ns)
        merged.update(added)
        return MappingProxyType(merged)

    @property
    def namespace(self) -> Mapping[str, Value]:
        """Read-only name -> Value mapping, computed once per context."""
        return self._namespace.get()

    def get(self, name: str) -> Optional[Value]:
        return self.namespace.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.namespace

    def to_dict(self) -> Dict[str, Any]:
        """Plain Python snapshot of every visible name."""
        return {name: value.to_python() for name, value in self.namespace.items()}

    # =========================================================================
    # Resolution
    # =========================================================================

    def evaluate(self, expr: ExprLike) -> Value:
        """Evaluate an expression (text or AST) to a runtime Value."""
        if isinstance(expr, str):
            source = expr
            expr = parse_expression(expr)
        else:
            source = None
        return self.interpreter.evaluate(expr, self.namespace, source)

    def resolve_numeric(self, expr: ExprLike) -> float:
        """Evaluate to a float. Bool results are a TypeMismatch here."""
        value = self.evaluate(expr)
        if value.kind in (ValueKind.INT, ValueKind.FLOAT):
            return float(value.data)
        raise error_type_mismatch("number", value.kind.value, source_line=_source_of(expr))

    def resolve_boolean(self, expr: ExprLike) -> bool:
        """Evaluate to a bool. Numeric results are a TypeMismatch here."""
        value = self.evaluate(expr)
        if value.kind == ValueKind.BOOL:
            return value.data
        raise error_type_mismatch("bool", value.kind.value, source_line=_source_of(expr))

    def __repr__(self) -> str:
        return f"EvaluationContext(depth={self.depth})"


def _source_of(expr: ExprLike) -> Optional[str]:
    return expr if isinstance(expr, str) else None


def _signal_pairs(signals: Any) -> List[Tuple[str, Any]]:
    # Signal aggregators expose export() -> [(name, value), ...]
    if hasattr(signals, "export"):
        return list(signals.export())
    return _binding_pairs(signals)


# Functional spellings of the context operations

def build(builtins: Optional[BuiltinRegistry] = None,
          signals: Optional[Bindings] = None) -> EvaluationContext:
    return EvaluationContext.build(builtins, signals)


def with_layer(ctx: EvaluationContext, layer: DefinitionLayer) -> EvaluationContext:
    return ctx.with_layer(layer)


def resolve_numeric(ctx: EvaluationContext, expr: ExprLike) -> float:
    return ctx.resolve_numeric(expr)


def resolve_boolean(ctx: EvaluationContext, expr: ExprLike) -> bool:
    return ctx.resolve_boolean(expr)

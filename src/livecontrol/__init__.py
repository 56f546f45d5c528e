# -*- coding: utf-8 -*-
"""
livecontrol - per-frame parametric evaluation for live visuals.

    from livecontrol import EvaluationContext, ControlValue

    ctx = EvaluationContext.build(signals={"t": 2.0})
    ControlValue.from_raw("ease(t, 0.25)").resolve(ctx)
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("livecontrol")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

from .expr.errors import (
    Diagnostic,
    LivecodeError,
    MalformedExpression,
    UnknownIdentifier,
    TypeMismatch,
    StructuralMismatch,
    ConfigurationError,
)
from .context import DefinitionLayer, EvaluationContext, resolve_numeric, resolve_boolean
from .signals import FrameInput, FrameSignals, TimingConfig, TimeSignals, AppInputSignals, CustomVars
from .control import ControlValue, ControlBool, ControlVec, ControlColor, Bounds
from .unitcells import (
    UnitCellIndex,
    RepeatSpec,
    BlendWith,
    Single,
    Repeat,
    ControlList,
    ExpansionLimits,
    expand,
    expand_and_resolve,
)
from .lazy import LazyNode, LazyControl, LazyVec, with_more_defs, eval_lazy
from .boop import (
    SecondOrderODE,
    Noop,
    BoopConfig,
    SpringState,
    FieldBoop,
    VecBoop,
    ColorBoop,
    VariantBoop,
    RecordBoop,
)
from .schema import RecordSchema, ControlRecord, SchemaBoop, schema_for
from .config import ControlDocument, load_document

__all__ = [
    "__version__",
    # errors
    "Diagnostic",
    "LivecodeError",
    "MalformedExpression",
    "UnknownIdentifier",
    "TypeMismatch",
    "StructuralMismatch",
    "ConfigurationError",
    # context
    "DefinitionLayer",
    "EvaluationContext",
    "resolve_numeric",
    "resolve_boolean",
    # signals
    "FrameInput",
    "FrameSignals",
    "TimingConfig",
    "TimeSignals",
    "AppInputSignals",
    "CustomVars",
    # controls
    "ControlValue",
    "ControlBool",
    "ControlVec",
    "ControlColor",
    "Bounds",
    # repeats
    "UnitCellIndex",
    "RepeatSpec",
    "BlendWith",
    "Single",
    "Repeat",
    "ControlList",
    "ExpansionLimits",
    "expand",
    "expand_and_resolve",
    # lazy
    "LazyNode",
    "LazyControl",
    "LazyVec",
    "with_more_defs",
    "eval_lazy",
    # smoothing
    "SecondOrderODE",
    "Noop",
    "BoopConfig",
    "SpringState",
    "FieldBoop",
    "VecBoop",
    "ColorBoop",
    "VariantBoop",
    "RecordBoop",
    # records
    "RecordSchema",
    "ControlRecord",
    "SchemaBoop",
    "schema_for",
    # documents
    "ControlDocument",
    "load_document",
]

"""Declarative control documents and engine settings.

A control document is YAML:

    engine:
      limits: {max_items: 2000, max_depth: 8}
      timing: {bpm: 120, fps: 60}
    ctx: |
      wob = sin(t * PI);
    boop:
      default: {f: 2.0, z: 1.0, r: 0.0}
    controls:
      size: "clamp(wob, 0, 1)"
      dots:
        - repeat: 4
          prefix: d
          what: ["d_pct * size"]
      tint: {color: [0.5, 1.0, "0.5 + 0.5 * wob"]}

Environment Variables:
    LIVECONTROL_MAX_ITEMS: Overrides engine.limits.max_items
    LIVECONTROL_MAX_DEPTH: Overrides engine.limits.max_depth
    LIVECONTROL_BPM:       Overrides engine.timing.bpm
    LIVECONTROL_FPS:       Overrides engine.timing.fps

Environment values are read once; call `clear_cache()` after changing them.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from .boop import BoopConfig
from .context import DefinitionLayer, EvaluationContext
from .control import ControlColor, ControlValue, ControlVec
from .expr.errors import DiagnosticCollector, LivecodeError, error_invalid_config
from .lazy import lazify
from .signals import FrameInput, FrameSignals, TimingConfig
from .unitcells import ControlList, ExpansionLimits

logger = logging.getLogger(__name__)

__all__ = [
    "LIVECONTROL_MAX_ITEMS",
    "LIVECONTROL_MAX_DEPTH",
    "LIVECONTROL_BPM",
    "LIVECONTROL_FPS",
    "EngineSettings",
    "ControlMap",
    "ControlDocument",
    "parse_control",
    "resolve_control",
    "load_document",
    "parse_document",
    "env_overrides",
    "clear_cache",
]

LIVECONTROL_MAX_ITEMS = "LIVECONTROL_MAX_ITEMS"
LIVECONTROL_MAX_DEPTH = "LIVECONTROL_MAX_DEPTH"
LIVECONTROL_BPM = "LIVECONTROL_BPM"
LIVECONTROL_FPS = "LIVECONTROL_FPS"

# env var -> (section, key, type)
_ENV_KEYS = {
    LIVECONTROL_MAX_ITEMS: ("limits", "max_items", int),
    LIVECONTROL_MAX_DEPTH: ("limits", "max_depth", int),
    LIVECONTROL_BPM: ("timing", "bpm", float),
    LIVECONTROL_FPS: ("timing", "fps", float),
}

DOCUMENT_KEYS = ("engine", "ctx", "boop", "controls")
CTX_KEY = "ctx"


def clear_cache() -> None:
    """Forget cached environment overrides."""
    env_overrides.cache_clear()


@lru_cache(maxsize=None)
def env_overrides() -> Dict[str, Dict[str, Any]]:
    """Engine settings taken from the environment, by section."""
    out: Dict[str, Dict[str, Any]] = {"limits": {}, "timing": {}}
    for var, (section, key, kind) in _ENV_KEYS.items():
        raw = os.environ.get(var)
        if raw is None or not raw.strip():
            continue
        try:
            out[section][key] = kind(float(raw)) if kind is int else kind(raw)
        except ValueError:
            logger.warning("ignoring %s=%r: not a number", var, raw)
    return out


# =============================================================================
# Engine settings
# =============================================================================

def _section(raw: Mapping[str, Any], name: str, allowed) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise error_invalid_config(f"{name} must be a mapping", f"engine.{name}")
    unknown = set(value) - set(allowed)
    if unknown:
        raise error_invalid_config(f"unknown keys {sorted(unknown)}", f"engine.{name}")
    return dict(value)


@dataclass(frozen=True)
class EngineSettings:
    limits: ExpansionLimits = ExpansionLimits()
    timing: TimingConfig = TimingConfig()

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]], use_env: bool = True) -> "EngineSettings":
        """Build from the `engine:` section; environment overrides win."""
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise error_invalid_config("engine must be a mapping", "engine")
        unknown = set(raw) - {"limits", "timing"}
        if unknown:
            raise error_invalid_config(f"unknown keys {sorted(unknown)}", "engine")

        limits = _section(raw, "limits", [f.name for f in dataclasses.fields(ExpansionLimits)])
        timing = _section(raw, "timing", [f.name for f in dataclasses.fields(TimingConfig)])
        if use_env:
            env = env_overrides()
            limits.update(env["limits"])
            timing.update(env["timing"])

        try:
            limits_obj = ExpansionLimits(**{k: int(v) for k, v in limits.items()})
            timing_obj = TimingConfig(**{
                k: bool(v) if k == "realtime" else float(v) for k, v in timing.items()
            })
        except (TypeError, ValueError) as e:
            raise error_invalid_config(str(e), "engine") from e

        if limits_obj.max_items < 0 or limits_obj.max_depth < 0:
            raise error_invalid_config("limits must not be negative", "engine.limits")
        if timing_obj.fps <= 0.0:
            raise error_invalid_config(f"fps must be positive, got {timing_obj.fps}", "engine.timing")
        return cls(limits_obj, timing_obj)


# =============================================================================
# Controls
# =============================================================================

@dataclass(frozen=True)
class ControlMap:
    """A mapping of named controls, optionally with its own `ctx` program."""
    controls: Mapping[str, Any]
    ctx_layer: Optional[DefinitionLayer] = None

    def _ctx(self, ctx: EvaluationContext) -> EvaluationContext:
        return ctx.with_layer(self.ctx_layer) if self.ctx_layer is not None else ctx

    def resolve(self, ctx: EvaluationContext, limits: Optional[ExpansionLimits] = None) -> Dict[str, Any]:
        ctx = self._ctx(ctx)
        return {name: resolve_control(c, ctx, limits) for name, c in self.controls.items()}

    def resolve_collecting(self, ctx: EvaluationContext, collector: DiagnosticCollector,
                           limits: Optional[ExpansionLimits] = None, path: str = "") -> Dict[str, Any]:
        """Like `resolve`, but a failing control is recorded in `collector` and left out."""
        ctx = self._ctx(ctx)
        out: Dict[str, Any] = {}
        for name, control in self.controls.items():
            child = f"{path}.{name}" if path else name
            if isinstance(control, ControlMap):
                out[name] = control.resolve_collecting(ctx, collector, limits, child)
                continue
            try:
                out[name] = resolve_control(control, ctx, limits)
            except LivecodeError as e:
                collector.add(child, e.diagnostic)
        return out

    def to_lazy(self, ctx: EvaluationContext) -> Dict[str, Any]:
        ctx = self._ctx(ctx)
        return {name: lazify(c, ctx) for name, c in self.controls.items()}


def parse_control(raw: Any) -> Any:
    """
    Document value -> control.

    Scalars and expression strings become `ControlValue`s, lists and
    `{repeat: ...}` blocks become `ControlList`s, `{vec: [...]}` and
    `{color: [h, s, v, a?]}` are explicit vectors and colors, and any
    other mapping is a nested `ControlMap`.
    """
    if isinstance(raw, (bool, int, float, str)):
        return ControlValue.from_raw(raw)
    if isinstance(raw, list):
        return ControlList.from_raw(raw, parse_control)
    if isinstance(raw, Mapping):
        if "repeat" in raw or "r" in raw:
            return ControlList.from_raw(raw, parse_control)
        if set(raw) == {"vec"}:
            return ControlVec.from_raw(raw["vec"])
        if set(raw) == {"color"}:
            return ControlColor.from_raw(raw["color"])
        program = raw.get(CTX_KEY)
        controls = {str(k): parse_control(v) for k, v in raw.items() if k != CTX_KEY}
        return ControlMap(controls, DefinitionLayer.program(program) if program else None)
    if raw is None:
        raise error_invalid_config("control has no value")
    # records parsed by a schema, or controls built in code
    return raw


def resolve_control(control: Any, ctx: EvaluationContext,
                    limits: Optional[ExpansionLimits] = None) -> Any:
    if isinstance(control, (ControlList, ControlMap)):
        return control.resolve(ctx, limits)
    if hasattr(control, "resolve"):
        return control.resolve(ctx)
    return control


@dataclass
class ControlDocument:
    """A parsed control document."""
    settings: EngineSettings = field(default_factory=EngineSettings)
    controls: ControlMap = field(default_factory=lambda: ControlMap({}))
    boop: BoopConfig = field(default_factory=BoopConfig)
    source_path: Optional[str] = None

    def signals(self) -> FrameSignals:
        return FrameSignals.default(self.settings.timing)

    def context(self, frame_input: Union[FrameInput, int, None] = None,
                signals: Optional[FrameSignals] = None) -> EvaluationContext:
        """Root context for one frame, before the document's `ctx` program."""
        if not isinstance(frame_input, FrameInput):
            frame_input = FrameInput(frame=frame_input or 0)
        signals = signals or self.signals()
        signals.update(frame_input)
        return EvaluationContext.build(signals=signals)

    def resolve(self, ctx: Optional[EvaluationContext] = None) -> Dict[str, Any]:
        ctx = ctx if ctx is not None else self.context()
        return self.controls.resolve(ctx, self.settings.limits)

    def resolve_collecting(self, ctx: Optional[EvaluationContext] = None,
                           collector: Optional[DiagnosticCollector] = None,
                           ) -> Tuple[Dict[str, Any], DiagnosticCollector]:
        """
        Resolve what can be resolved this frame.

        Returns the values of every control that resolved and the collector
        holding a diagnostic for each one that did not.
        """
        ctx = ctx if ctx is not None else self.context()
        if collector is None:
            collector = DiagnosticCollector()
        values = self.controls.resolve_collecting(ctx, collector, self.settings.limits)
        first = collector.first_error
        if first is not None:
            logger.warning("%d control(s) failed, first at '%s': %s",
                           len(collector.errors), first[0], first[1].message)
        return values, collector

    def to_lazy(self, ctx: Optional[EvaluationContext] = None) -> Dict[str, Any]:
        ctx = ctx if ctx is not None else self.context()
        return self.controls.to_lazy(ctx)


def parse_document(data: Any, source_path: Optional[str] = None,
                   use_env: bool = True) -> ControlDocument:
    """Build a `ControlDocument` from already-loaded YAML data."""
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise error_invalid_config(f"expected a mapping at the document root, got {type(data).__name__}")
    unknown = set(data) - set(DOCUMENT_KEYS)
    if unknown:
        raise error_invalid_config(f"unknown top-level keys {sorted(unknown)}")

    controls = data.get("controls") or {}
    if not isinstance(controls, Mapping):
        raise error_invalid_config("controls must be a mapping", "controls")
    program = data.get(CTX_KEY)
    if program is not None and not isinstance(program, str):
        raise error_invalid_config("ctx must be program text", CTX_KEY)

    parsed = {str(k): parse_control(v) for k, v in controls.items()}
    return ControlDocument(
        settings=EngineSettings.from_raw(data.get("engine"), use_env=use_env),
        controls=ControlMap(parsed, DefinitionLayer.program(program) if program else None),
        boop=BoopConfig.from_raw(data.get("boop")),
        source_path=source_path,
    )


def load_document(path: Union[str, Path], use_env: bool = True) -> ControlDocument:
    """Load and parse a control document.

    Raises:
        FileNotFoundError: If `path` does not exist
        ConfigurationError: If the YAML is malformed or has an invalid shape
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Control document not found: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise error_invalid_config(f"invalid YAML in {path}: {e}") from e
    logger.debug("loaded control document %s", path)
    return parse_document(data, str(path), use_env=use_env)

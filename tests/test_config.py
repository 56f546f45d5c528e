"""
Tests for control documents and engine settings.
"""

import logging

import pytest

from livecontrol.boop import SecondOrderODE
from livecontrol.config import (
    LIVECONTROL_BPM,
    LIVECONTROL_FPS,
    LIVECONTROL_MAX_ITEMS,
    ControlMap,
    EngineSettings,
    clear_cache,
    env_overrides,
    load_document,
    parse_control,
    parse_document,
)
from livecontrol.control import ControlColor, ControlValue, ControlVec
from livecontrol.context import EvaluationContext
from livecontrol.expr import ConfigurationError, StructuralMismatch
from livecontrol.expr.errors import DiagnosticCollector, warning_numeric_divergence
from livecontrol.lazy import eval_lazy
from livecontrol.unitcells import ControlList, ExpansionLimits

DOCUMENT = """\
engine:
  limits: {max_items: 100}
  timing: {bpm: 120, fps: 30}
ctx: |
  half = t / 2;
boop:
  default: {f: 2.0, z: 1.0, r: 0.0}
  fields:
    tint: noop
controls:
  size: "clamp(half, 0, 1)"
  dots:
    - repeat: 3
      prefix: d
      what: ["d_i * 10"]
  tint: {color: [0.5, 1.5, 0.5]}
  offset: {vec: [1, "half"]}
  nested:
    ctx: "k = 3"
    value: "k + half"
"""


@pytest.fixture(autouse=True)
def fresh_env(monkeypatch):
    for var in (LIVECONTROL_BPM, LIVECONTROL_FPS, LIVECONTROL_MAX_ITEMS):
        monkeypatch.delenv(var, raising=False)
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def doc_path(tmp_path):
    path = tmp_path / "scene.yaml"
    path.write_text(DOCUMENT)
    return path


# =============================================================================
# Engine settings
# =============================================================================

class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings.from_raw(None)
        assert settings.limits == ExpansionLimits()
        assert settings.timing.bpm == 135.0

    def test_sections(self):
        settings = EngineSettings.from_raw({
            "limits": {"max_items": 50, "max_depth": 4},
            "timing": {"bpm": 90, "realtime": True},
        })
        assert settings.limits == ExpansionLimits(50, 4)
        assert settings.timing.bpm == 90.0
        assert settings.timing.realtime is True

    def test_unknown_keys(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineSettings.from_raw({"limits": {"max_things": 1}})
        assert exc_info.value.code == "E304"
        with pytest.raises(ConfigurationError):
            EngineSettings.from_raw({"speed": 1})

    def test_negative_limits(self):
        with pytest.raises(ConfigurationError):
            EngineSettings.from_raw({"limits": {"max_items": -1}})

    def test_fps_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            EngineSettings.from_raw({"timing": {"fps": 0}})

    def test_bad_value(self):
        with pytest.raises(ConfigurationError):
            EngineSettings.from_raw({"timing": {"bpm": "fast"}})


class TestEnvOverrides:
    def test_env_wins(self, monkeypatch):
        monkeypatch.setenv(LIVECONTROL_BPM, "60")
        monkeypatch.setenv(LIVECONTROL_MAX_ITEMS, "7")
        clear_cache()
        settings = EngineSettings.from_raw({"timing": {"bpm": 120}})
        assert settings.timing.bpm == 60.0
        assert settings.limits.max_items == 7

    def test_env_ignored_when_disabled(self, monkeypatch):
        monkeypatch.setenv(LIVECONTROL_BPM, "60")
        clear_cache()
        assert EngineSettings.from_raw({}, use_env=False).timing.bpm == 135.0

    def test_values_cached_until_cleared(self, monkeypatch):
        """Environment values are read once per cache."""
        assert env_overrides()["timing"] == {}
        monkeypatch.setenv(LIVECONTROL_FPS, "24")
        assert env_overrides()["timing"] == {}
        clear_cache()
        assert env_overrides()["timing"] == {"fps": 24.0}

    def test_bad_value_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv(LIVECONTROL_BPM, "lots")
        clear_cache()
        with caplog.at_level(logging.WARNING, logger="livecontrol.config"):
            assert env_overrides()["timing"] == {}
        assert LIVECONTROL_BPM in caplog.text


# =============================================================================
# Controls
# =============================================================================

class TestParseControl:
    def test_scalars_and_expressions(self):
        assert isinstance(parse_control(1.5), ControlValue)
        assert isinstance(parse_control("t * 2"), ControlValue)
        assert isinstance(parse_control(True), ControlValue)

    def test_lists_and_repeats(self):
        assert isinstance(parse_control([1, 2]), ControlList)
        assert isinstance(parse_control({"repeat": 2, "what": [1]}), ControlList)

    def test_vec_and_color(self):
        assert isinstance(parse_control({"vec": [1, 2]}), ControlVec)
        assert isinstance(parse_control({"color": [0, 1, 1]}), ControlColor)

    def test_nested_map(self):
        control = parse_control({"ctx": "k = 2", "a": "k", "b": {"c": 1}})
        assert isinstance(control, ControlMap)
        assert set(control.controls) == {"a", "b"}
        assert control.ctx_layer.names == ["k"]

    def test_none_is_invalid(self):
        with pytest.raises(ConfigurationError):
            parse_control(None)

    def test_vectors_inside_lists(self):
        control = parse_control([{"vec": [1, 2]}, {"repeat": 2, "what": [{"vec": ["i_i", 0]}]}])
        assert control.resolve(EvaluationContext.build()) == [(1.0, 2.0), (0.0, 0.0), (1.0, 0.0)]


# =============================================================================
# Documents
# =============================================================================

class TestDocument:
    def test_load_and_resolve(self, doc_path):
        doc = load_document(doc_path)
        assert doc.source_path == str(doc_path)
        assert doc.settings.limits.max_items == 100
        assert doc.boop.default_filter == SecondOrderODE(2.0, 1.0, 0.0)

        # 120 bpm at 30 fps: frame 30 is beat 2
        values = doc.resolve(doc.context(30))
        assert values == {
            "size": 1.0,
            "dots": [0.0, 10.0, 20.0],
            "tint": (0.5, 1.0, 0.5, 1.0),
            "offset": (1.0, 1.0),
            "nested": {"value": 4.0},
        }

    def test_lazy_matches_eager(self, doc_path):
        doc = load_document(doc_path)
        ctx = doc.context(15)
        assert eval_lazy(doc.to_lazy(ctx)) == doc.resolve(ctx)

    def test_env_reaches_document(self, doc_path, monkeypatch):
        monkeypatch.setenv(LIVECONTROL_BPM, "60")
        clear_cache()
        doc = load_document(doc_path)
        assert doc.resolve(doc.context(30))["size"] == 0.5

    def test_document_limits(self, tmp_path):
        path = tmp_path / "big.yaml"
        path.write_text("engine: {limits: {max_items: 5}}\ncontrols:\n  xs: [{repeat: 10, what: [1]}]\n")
        doc = load_document(path)
        with pytest.raises(ConfigurationError) as exc_info:
            doc.resolve()
        assert exc_info.value.code == "E302"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_document(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("controls: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_document(path)

    def test_unknown_top_level_key(self):
        with pytest.raises(ConfigurationError):
            parse_document({"controls": {}, "extras": 1})

    def test_ctx_must_be_text(self):
        with pytest.raises(ConfigurationError):
            parse_document({"ctx": [1, 2]})

    def test_empty_document(self):
        doc = parse_document(None)
        assert doc.resolve() == {}

    def test_structural_errors_surface(self):
        with pytest.raises(StructuralMismatch):
            parse_document({"controls": {"xs": [{"repeat": 2, "what": 3}]}})


# =============================================================================
# Per-frame diagnostics
# =============================================================================

class TestResolveCollecting:
    def test_failing_controls_left_out(self, caplog):
        """One broken control does not take the rest of the frame with it."""
        doc = parse_document({"controls": {
            "size": "t * 2",
            "bad": "nope + 1",
            "group": {"ok": 1, "worse": "rn(1 / 0, 0)"},
        }})
        with caplog.at_level(logging.WARNING, logger="livecontrol.config"):
            values, collector = doc.resolve_collecting(doc.context(0))
        assert values == {"size": 0.0, "group": {"ok": 1.0}}
        assert collector.failed_paths == ["bad", "group.worse"]
        assert collector.first_error[1].code == "E201"
        assert collector.errors[1][1].code == "E202"
        assert "in 'group.worse'" in collector.report()
        assert "2 control(s) failed, first at 'bad'" in caplog.text

    def test_clean_frame(self, doc_path):
        doc = load_document(doc_path)
        values, collector = doc.resolve_collecting(doc.context(30))
        assert values == doc.resolve(doc.context(30))
        assert not collector.has_errors
        assert collector.first_error is None

    def test_collector_reused_across_frames(self):
        collector = DiagnosticCollector()
        collector.add("tint", warning_numeric_divergence("tint"))
        assert len(collector) == 1
        assert not collector.has_errors
        assert "failed" not in collector.report()
        collector.clear()
        assert len(collector) == 0

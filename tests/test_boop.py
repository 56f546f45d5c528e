"""
Tests for spring smoothing.
"""

import logging
import math
from dataclasses import dataclass

import pytest

from livecontrol.boop import (
    BoopConfig, ColorBoop, FieldBoop, Noop, PassBoop, RecordBoop, SecondOrderODE, SpringState,
    VariantBoop, VecBoop, default_boop, filter_from_raw,
)
from livecontrol.expr import ConfigurationError

SPRING = SecondOrderODE(f=2.0, z=1.0, r=0.0)
DT = 1.0 / 60.0


def spring_conf(**overrides):
    return BoopConfig(default_filter=SPRING, overrides=overrides)


@dataclass(frozen=True)
class Ball:
    x: float
    hidden: bool


# =============================================================================
# Filters and config
# =============================================================================

class TestFilters:
    def test_from_raw(self):
        assert filter_from_raw("noop") == Noop()
        assert filter_from_raw(None) == Noop()
        assert filter_from_raw({"f": 2, "z": 1, "r": 0}) == SPRING
        assert filter_from_raw([2, 1, 0]) == SPRING

    def test_unknown_filter(self):
        with pytest.raises(ConfigurationError):
            filter_from_raw("wobble")

    def test_frequency_must_be_positive(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SecondOrderODE(f=0.0, z=1.0, r=0.0)
        assert exc_info.value.code == "E304"

    def test_constants(self):
        k1, k2, k3 = SecondOrderODE(f=1.0, z=1.0, r=2.0).constants()
        assert k1 == pytest.approx(1.0 / math.pi)
        assert k2 == pytest.approx(1.0 / (2.0 * math.pi) ** 2)
        assert k3 == pytest.approx(2.0 / (2.0 * math.pi))


class TestBoopConfig:
    def test_filter_for_longest_match(self):
        """The longest matching dotted prefix wins."""
        slow = SecondOrderODE(0.5, 1.0, 0.0)
        conf = spring_conf(a=Noop(), **{"a.b": slow})
        assert conf.filter_for("a.b.c") == slow
        assert conf.filter_for("a.x") == Noop()
        assert conf.filter_for("ab") == SPRING

    def test_for_field_builds_path(self):
        conf = spring_conf(**{"shape.size": Noop()})
        inner = conf.for_field("shape").for_field("size")
        assert inner.dotted_path == "shape.size"
        assert inner.current == Noop()
        assert conf.for_field("shape").current == SPRING
        assert conf.current == SPRING

    def test_from_raw(self):
        conf = BoopConfig.from_raw({
            "reset": True,
            "default": {"f": 2.0, "z": 1.0, "r": 0.0},
            "fields": {"color.h": "noop"},
        })
        assert conf.reset
        assert conf.default_filter == SPRING
        assert conf.overrides == {"color.h": Noop()}

    def test_from_raw_empty(self):
        assert BoopConfig.from_raw(None) == BoopConfig()

    def test_from_raw_bad_fields(self):
        with pytest.raises(ConfigurationError):
            BoopConfig.from_raw({"fields": [1, 2]})


# =============================================================================
# Fields
# =============================================================================

class TestFieldBoop:
    def test_first_step_is_target(self):
        boop = FieldBoop()
        assert boop.step(spring_conf(), 0.0, 5.0).value == 5.0
        assert boop.is_springing

    def test_converges_and_settles(self):
        """A step change settles within 1e-3, then stops moving."""
        boop = FieldBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, 0.0)
        t = 0.0
        for _ in range(240):
            t += DT
            y = boop.step(conf, t, 1.0).value
        assert y == pytest.approx(1.0, abs=1e-3)

        last = y
        for _ in range(30):
            t += DT
            y = boop.step(conf, t, 1.0).value
            assert abs(y - last) < 1e-6
            last = y

    def test_moves_toward_target(self):
        boop = FieldBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, 0.0)
        first = boop.step(conf, DT, 1.0).value
        second = boop.step(conf, 2 * DT, 1.0).value
        assert 0.0 <= first < second < 1.0

    def test_reset_passes_through(self):
        """A reset drops a spring that was mid-flight."""
        boop = FieldBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, 0.0)
        boop.step(conf, DT, 1.0)
        moving = boop.step(conf, 2 * DT, 1.0).value
        assert 0.0 < moving < 1.0
        assert boop.is_springing

        assert boop.step(conf.with_reset(True), 3 * DT, 3.0).value == 3.0
        assert not boop.is_springing
        # the spring starts over from the reset value
        assert boop.step(conf, 4 * DT, 5.0).value == 5.0
        assert boop.is_springing

    def test_noop_passes_through(self):
        boop = FieldBoop()
        conf = BoopConfig(default_filter=Noop())
        assert boop.step(conf, 0.0, 1.0).value == 1.0
        assert boop.step(conf, DT, 2.0).value == 2.0

    def test_paused_clock_holds(self):
        """Repeated frame times hold the output and never diverge."""
        boop = FieldBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, 0.0)
        boop.step(conf, DT, 1.0)
        moving = boop.step(conf, 2 * DT, 1.0).value
        for target in (1.0, 4.0, 1.0, 0.0, 1.0, 1.0):
            held = boop.step(conf, 2 * DT, target)
            assert not held.weird
            assert held.value == moving

        resumed = boop.step(conf, 3 * DT, 1.0).value
        assert moving < resumed < 1.0

    def test_rewound_clock_holds_then_resumes(self):
        boop = FieldBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, 0.0)
        boop.step(conf, DT, 1.0)
        moving = boop.step(conf, 2 * DT, 1.0).value
        rewound = boop.step(conf, 0.0, 1.0)
        assert rewound.value == moving
        assert not rewound.weird
        assert boop.step(conf, DT, 1.0).value > moving

    def test_divergence_resets_to_target(self):
        """An infinite target poisons the velocity; the next step snaps back."""
        boop = FieldBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, 0.0)
        poisoned = boop.step(conf, DT, math.inf)
        assert not poisoned.weird
        assert math.isnan(boop.state.yd)

        result = boop.step(conf, 2 * DT, 1.0)
        assert result.weird
        assert result.value == 1.0
        assert boop.state.yd == 0.0

        after = boop.step(conf, 3 * DT, 1.0)
        assert not after.weird
        assert math.isfinite(after.value)

    def test_spring_state_init(self):
        state = SpringState.init(2.0, 1.0)
        assert (state.y, state.yd, state.prev_target, state.prev_time) == (2.0, 0.0, 2.0, 1.0)


# =============================================================================
# Compound values
# =============================================================================

class TestCompoundBoops:
    def test_default_boop_by_shape(self):
        assert isinstance(default_boop(1.0), FieldBoop)
        assert isinstance(default_boop(True), PassBoop)
        assert isinstance(default_boop(3), PassBoop)
        assert isinstance(default_boop("x"), PassBoop)
        assert isinstance(default_boop([1.0]), VecBoop)
        assert isinstance(default_boop({"a": 1.0}), RecordBoop)
        assert isinstance(default_boop({"type": "circle"}), VariantBoop)
        assert isinstance(default_boop(Ball(0.0, False)), RecordBoop)

    def test_vec_items_added_and_dropped(self):
        boop = VecBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, [0.0, 0.0])
        grown = boop.step(conf, DT, [1.0, 1.0, 5.0]).value
        assert len(grown) == 3
        # the new item starts at its target
        assert grown[2] == 5.0
        assert grown[0] < 1.0

        shrunk = boop.step(conf, 2 * DT, (1.0,)).value
        assert isinstance(shrunk, tuple)
        assert len(boop.items) == 1

    def test_vec_item_changing_shape_starts_fresh(self):
        boop = VecBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, [1.0, 2.0])
        boop.step(conf, DT, [1.0, 2.0])
        out = boop.step(conf, 2 * DT, [[1.0], 2.0]).value
        assert out == [[1.0], 2.0]
        assert isinstance(boop.items[0], VecBoop)

        back = boop.step(conf, 3 * DT, [3.0, 2.0]).value
        assert back[0] == 3.0
        assert isinstance(boop.items[0], FieldBoop)

    def test_color_alpha_has_its_own_spring(self):
        boop = ColorBoop()
        conf = spring_conf()
        assert boop.step(conf, 0.0, (0.1, 0.5, 0.5)).value == (0.1, 0.5, 0.5, 1.0)
        boop.step(conf, DT, (0.1, 0.5, 0.5, 0.0))
        value = boop.step(conf, 2 * DT, (0.1, 0.5, 0.5, 0.0)).value
        assert 0.0 < value[3] < 1.0
        assert value[:3] == (0.1, 0.5, 0.5)

    def test_variant_change_reinitializes(self):
        boop = VariantBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, {"type": "circle", "r": 0.0})
        moving = boop.step(conf, DT, {"type": "circle", "r": 1.0}).value
        assert moving["r"] < 1.0

        switched = boop.step(conf, 2 * DT, {"type": "square", "r": 4.0}).value
        assert switched["r"] == 4.0

    def test_record_fields(self):
        boop = RecordBoop()
        conf = spring_conf(hidden=Noop())
        boop.step(conf, 0.0, Ball(0.0, False))
        out = boop.step(conf, DT, Ball(1.0, True)).value
        assert isinstance(out, Ball)
        assert out.hidden is True
        assert 0.0 <= out.x < 1.0

    def test_record_field_changing_shape_starts_fresh(self):
        boop = RecordBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, {"x": 0.0, "y": 0.0})
        boop.step(conf, DT, {"x": 1.0, "y": 1.0})
        out = boop.step(conf, 2 * DT, {"x": [0.5, 1.0], "y": 1.0}).value
        assert out["x"] == [0.5, 1.0]
        assert 0.0 < out["y"] < 1.0
        assert isinstance(boop.fields["x"], VecBoop)

    def test_preset_field_boops_kept(self):
        boop = RecordBoop(fields={"x": PassBoop()})
        conf = spring_conf()
        boop.step(conf, 0.0, {"x": 0.0})
        assert boop.step(conf, DT, {"x": 1.0}).value == {"x": 1.0}
        assert isinstance(boop.fields["x"], PassBoop)

    def test_record_field_override(self):
        boop = RecordBoop()
        conf = spring_conf(x=Noop())
        boop.step(conf, 0.0, {"x": 0.0, "y": 0.0})
        out = boop.step(conf, DT, {"x": 1.0, "y": 1.0}).value
        assert out["x"] == 1.0
        assert out["y"] < 1.0

    def test_record_divergence_warns(self, caplog):
        boop = RecordBoop()
        conf = spring_conf()
        boop.step(conf, 0.0, {"x": 0.0})
        boop.step(conf, DT, {"x": math.inf})
        with caplog.at_level(logging.WARNING, logger="livecontrol.boop"):
            result = boop.step(conf, 2 * DT, {"x": 1.0})
        assert result.weird
        assert result.value == {"x": 1.0}
        assert "spring filter diverged" in caplog.text

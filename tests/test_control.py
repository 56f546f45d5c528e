"""
Tests for control values, vectors, colors and bounds.
"""

import math

import pytest

from livecontrol.context import EvaluationContext
from livecontrol.control import (
    ControlKind, ControlValue, ControlBool, ControlVec, ControlColor, Bounds, resolve,
)
from livecontrol.expr import TypeMismatch, UnknownIdentifier, StructuralMismatch, MalformedExpression


@pytest.fixture
def ctx():
    return EvaluationContext.build(signals={"t": 2.0, "on": True, "off": False, "zero": 0.0})


# --- Construction ---

class TestConstruction:
    def test_literal_kinds(self):
        assert ControlValue.literal(True).kind == ControlKind.BOOL
        assert ControlValue.literal(3).kind == ControlKind.INT
        assert ControlValue.literal(0.5).kind == ControlKind.FLOAT

    def test_from_raw_string_parses(self):
        cv = ControlValue.from_raw("t * 2")
        assert cv.kind == ControlKind.EXPR
        assert not cv.is_literal
        assert cv.source == "t * 2"

    def test_from_raw_rejects_other_types(self):
        """Only numbers, bools and expression strings are controls."""
        with pytest.raises(TypeMismatch):
            ControlValue.from_raw([1, 2])
        with pytest.raises(TypeMismatch):
            ControlValue.from_raw(None)

    def test_from_raw_bad_expression(self):
        with pytest.raises(MalformedExpression):
            ControlValue.from_raw("t +")

    def test_from_raw_passthrough(self):
        cv = ControlValue.literal(1.0)
        assert ControlValue.from_raw(cv) is cv

    def test_to_raw_round_trip(self):
        assert ControlValue.from_raw("t * 2").to_raw() == "t * 2"
        assert ControlValue.from_raw(4).to_raw() == 4


# --- Numeric resolution ---

class TestResolve:
    def test_literal_ignores_context(self):
        """A literal resolves to itself in any context, even none."""
        cv = ControlValue.literal(0.25)
        assert cv.resolve(None) == 0.25
        assert cv.resolve(EvaluationContext.build(signals={"t": 99.0})) == 0.25

    def test_int_literal_to_float(self):
        value = ControlValue.literal(3).resolve(None)
        assert value == 3.0
        assert isinstance(value, float)

    def test_bool_literal_is_plus_minus_one(self):
        assert ControlValue.literal(True).resolve(None) == 1.0
        assert ControlValue.literal(False).resolve(None) == -1.0

    def test_expression(self, ctx):
        assert ControlValue.from_raw("t * 2").resolve(ctx) == 4.0

    def test_clamp_expression(self):
        """clamp(x, 0, 1) at 1.5 and -0.2."""
        cv = ControlValue.from_raw("clamp(x, 0, 1)")
        root = EvaluationContext.build()
        assert cv.resolve(root.with_bindings({"x": 1.5})) == 1.0
        assert cv.resolve(root.with_bindings({"x": -0.2})) == 0.0

    def test_boolean_fallback(self, ctx):
        """A boolean expression resolves numerically to +/-1."""
        assert ControlValue.from_raw("t > 1").resolve(ctx) == 1.0
        assert ControlValue.from_raw("t < 1").resolve(ctx) == -1.0

    def test_tuple_result_is_numeric_error(self, ctx):
        """When both readings fail the numeric error is reported."""
        with pytest.raises(TypeMismatch) as exc_info:
            ControlValue.from_raw("(1, 2)").resolve(ctx)
        assert "number" in exc_info.value.diagnostic.message

    def test_unknown_name_propagates(self, ctx):
        with pytest.raises(UnknownIdentifier):
            ControlValue.from_raw("nope + 1").resolve(ctx)

    def test_module_resolve(self, ctx):
        assert resolve(ControlValue.from_raw("t"), ctx) == 2.0

    def test_resolve_int(self, ctx):
        assert ControlValue.from_raw("t * 1.9").resolve_int(ctx) == 3

    def test_resolve_int_rejects_inf(self, ctx):
        with pytest.raises(TypeMismatch):
            ControlValue.from_raw("1 / 0").resolve_int(ctx)

    def test_division_by_zero_is_inf(self, ctx):
        assert ControlValue.from_raw("1 / zero").resolve(ctx) == math.inf

    @pytest.mark.parametrize("source", ["rn(1 / zero, 0)", "perlin(1 / zero, 0, 0)", "perlin(0, 0 / zero, 0)"])
    def test_noise_of_non_finite_is_type_mismatch(self, ctx, source):
        with pytest.raises(TypeMismatch):
            ControlValue.from_raw(source).resolve(ctx)


# --- Boolean resolution ---

class TestResolveBool:
    def test_bool_first(self, ctx):
        assert ControlValue.from_raw("on").resolve_bool(ctx) is True
        assert ControlValue.from_raw("off").resolve_bool(ctx) is False

    def test_numbers_positive_is_true(self, ctx):
        assert ControlValue.from_raw("t - 1").resolve_bool(ctx) is True
        assert ControlValue.from_raw("zero").resolve_bool(ctx) is False

    def test_literals(self):
        assert ControlValue.literal(1).resolve_bool(None) is True
        assert ControlValue.literal(0.0).resolve_bool(None) is False
        assert ControlValue.literal(-2).resolve_bool(None) is False

    def test_control_bool(self, ctx):
        assert ControlBool.from_raw("t > 1").resolve(ctx) is True
        assert ControlBool.from_raw(0).resolve(ctx) is False


# --- Compound controls ---

class TestCompound:
    def test_bounds(self):
        assert Bounds(0.0, 1.0).apply(1.5) == 1.0
        assert Bounds(0.0, 1.0).apply(-0.2) == 0.0
        assert Bounds(min=2.0).apply(10.0) == 10.0
        assert Bounds().apply(-5.0) == -5.0

    def test_vec(self, ctx):
        vec = ControlVec.from_raw([1, "t", "t * 2"])
        assert len(vec) == 3
        assert vec.resolve(ctx) == (1.0, 2.0, 4.0)

    def test_vec_arity(self):
        """Vectors hold two to four elements."""
        with pytest.raises(StructuralMismatch):
            ControlVec.from_raw([1])
        with pytest.raises(StructuralMismatch):
            ControlVec.from_raw([1, 2, 3, 4, 5])

    def test_vec_needs_list(self):
        with pytest.raises(StructuralMismatch):
            ControlVec.from_raw("1, 2")

    def test_color_clamps_s_and_v(self, ctx):
        color = ControlColor.from_raw(["t", 1.5, -0.5, 0.5])
        assert color.resolve(ctx) == (2.0, 1.0, 0.0, 0.5)

    def test_color_default_alpha(self, ctx):
        color = ControlColor.from_raw([0.1, 0.5, 0.5])
        assert color.resolve(ctx)[3] == 1.0

    def test_color_arity(self):
        with pytest.raises(StructuralMismatch):
            ControlColor.from_raw([0.1, 0.5])

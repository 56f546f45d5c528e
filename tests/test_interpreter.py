"""
Tests for the expression interpreter and runtime values.
"""

import math

import pytest

from livecontrol.expr import parse_expression, parse_program, TypeMismatch, UnknownIdentifier
from livecontrol.runtime import (
    Interpreter, Value, ValueKind, EMPTY,
    int_val, float_val, bool_val, wrap_value,
)


def run(source, **names):
    """Evaluate `source` with plain Python bindings."""
    ns = {k: wrap_value(v, k) for k, v in names.items()}
    return Interpreter().evaluate(parse_expression(source), ns, source)


# --- Value Tests ---

class TestValues:
    """Test runtime value wrappers."""

    def test_wrap_bool_before_int(self):
        """bool is a subclass of int but wraps as BOOL."""
        assert wrap_value(True).kind == ValueKind.BOOL
        assert wrap_value(1).kind == ValueKind.INT
        assert wrap_value(1.5).kind == ValueKind.FLOAT

    def test_wrap_tuple(self):
        v = wrap_value((1, 2.0, True))
        assert v.kind == ValueKind.TUPLE
        assert v.to_python() == (1, 2.0, True)

    def test_wrap_rejects_strings(self):
        """Strings are not valid bindings (E205)."""
        with pytest.raises(TypeMismatch) as exc_info:
            wrap_value("nope", "name")
        assert exc_info.value.code == "E205"

    def test_as_float_rejects_bool(self):
        with pytest.raises(TypeMismatch):
            bool_val(True).as_float()

    def test_as_int_truncates(self):
        assert float_val(2.9).as_int() == 2
        assert float_val(-2.9).as_int() == -2

    def test_as_int_rejects_nan(self):
        with pytest.raises(TypeMismatch):
            float_val(math.nan).as_int()


# --- Arithmetic ---

class TestArithmetic:
    def test_int_arithmetic_stays_int(self):
        v = run("2 + 3 * 4")
        assert v == int_val(14)

    def test_int_division_truncates(self):
        """Two ints divide toward zero; any float operand gives a float."""
        assert run("7 / 2") == int_val(3)
        assert run("-7 / 2") == int_val(-3)
        assert run("7 / -2") == int_val(-3)
        assert run("7.0 / 2") == float_val(3.5)
        assert run("i / 2", i=5) == int_val(2)

    def test_mixed_is_float(self):
        assert run("1 + 0.5") == float_val(1.5)

    def test_int_remainder_keeps_dividend_sign(self):
        assert run("-1 % 3") == int_val(-1)
        assert run("7 % -3") == int_val(1)
        assert run("7 % 3") == int_val(1)

    def test_float_modulo_is_floored(self):
        assert run("-0.5 % 2").data == pytest.approx(1.5)

    def test_power(self):
        assert run("2 ^ 10") == int_val(1024)
        assert run("2 ** 0.5").data == pytest.approx(math.sqrt(2))
        assert run("2 ^ -1").data == pytest.approx(0.5)

    def test_large_int_power_goes_float(self):
        """Powers too big for 63 bits are computed as floats."""
        assert run("2 ^ 62") == int_val(2 ** 62)
        big = run("2 ^ 64")
        assert big.kind == ValueKind.FLOAT
        assert big.data == pytest.approx(2.0 ** 64)

    def test_tower_of_powers_overflows_to_inf(self):
        # right associative: 10 ^ (10 ^ 10)
        assert run("10 ^ 10 ^ 10") == float_val(math.inf)
        assert run("(0 - 10) ^ 10 ^ 10") == float_val(math.inf)
        assert run("(0 - 10) ^ (10 ^ 10 + 1)") == float_val(-math.inf)
        assert run("1 ^ 10 ^ 10") == int_val(1)

    def test_divide_by_zero(self):
        """Division by zero follows IEEE: inf with sign, nan for 0/0."""
        assert run("1 / 0").data == math.inf
        assert run("-1 / 0").data == -math.inf
        assert math.isnan(run("0 / 0").data)

    def test_modulo_by_zero_is_nan(self):
        assert math.isnan(run("5 % 0").data)

    def test_unary_minus(self):
        assert run("-x", x=3) == int_val(-3)
        assert run("-x", x=0.5) == float_val(-0.5)

    def test_unary_minus_on_bool(self):
        with pytest.raises(TypeMismatch):
            run("-true")


# --- Comparison and logic ---

class TestLogic:
    def test_comparison_yields_bool(self):
        assert run("t > 1", t=2.0) == bool_val(True)
        assert run("1 == 1.0") == bool_val(True)
        assert run("1 != 2") == bool_val(True)

    def test_bool_equality(self):
        assert run("true == false") == bool_val(False)

    def test_mixed_equality_is_error(self):
        with pytest.raises(TypeMismatch):
            run("1 == true")

    def test_logic_needs_bools(self):
        """Logical operators do not coerce numbers."""
        with pytest.raises(TypeMismatch):
            run("1 and true")

    def test_short_circuit(self):
        """The right side of a decided 'and'/'or' is never evaluated."""
        assert run("false and missing") == bool_val(False)
        assert run("true || missing") == bool_val(True)

    def test_not(self):
        assert run("!true") == bool_val(False)
        assert run("not (1 > 2)") == bool_val(True)

    def test_ternary(self):
        assert run("1 if t > 0 else 2", t=1.0) == int_val(1)
        assert run("1 if t > 0 else 2", t=-1.0) == int_val(2)

    def test_ternary_condition_must_be_bool(self):
        with pytest.raises(TypeMismatch):
            run("1 if 1 else 2")


# --- Names and calls ---

class TestNamesAndCalls:
    def test_unknown_identifier(self):
        """Unbound names are E201 and carry the source text."""
        with pytest.raises(UnknownIdentifier) as exc_info:
            run("t + nope", t=1.0)
        err = exc_info.value
        assert err.code == "E201"
        assert err.diagnostic.source_line == "t + nope"

    def test_call(self):
        assert run("clamp(x, 0, 1)", x=1.5).data == 1.0

    def test_unknown_function(self):
        with pytest.raises(UnknownIdentifier) as exc_info:
            run("frobnicate(1)")
        assert exc_info.value.code == "E204"

    def test_tuple_and_idx(self):
        assert run("idx((1, 2, 3), i)", i=5) == int_val(3)

    def test_tuple_value(self):
        assert run("(1, 2.5)").to_python() == (1, 2.5)


# --- Programs ---

class TestPrograms:
    def test_run_program_returns_assignments(self):
        interp = Interpreter()
        out = interp.run_program(parse_program("a = t * 2; b = a + 1"), {"t": float_val(1.5)})
        assert set(out) == {"a", "b"}
        assert out["b"].data == pytest.approx(4.0)

    def test_program_shadowing(self):
        """Later statements see and can shadow earlier ones."""
        interp = Interpreter()
        out = interp.run_program(parse_program("a = 1; a = a + 1"), {})
        assert out["a"] == int_val(2)

    def test_program_value(self):
        interp = Interpreter()
        assert interp.program_value(parse_program("a = 2; a * 3"), {}) == int_val(6)
        assert interp.program_value(parse_program("a = 2"), {}) is EMPTY

    def test_program_error_has_source(self):
        interp = Interpreter()
        with pytest.raises(UnknownIdentifier) as exc_info:
            interp.run_program(parse_program("a = q"), {}, "a = q")
        assert exc_info.value.diagnostic.source_line == "a = q"

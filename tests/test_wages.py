import pytest
from hypothesis import given, strategies as st

from app.errors import InvalidAmount
from app.services.wages import ShiftKind, WageRules, calculate_wage


def test_regular_day_shift():
    assert calculate_wage(5, 800, 8, ShiftKind.DAY, 1.0) == pytest.approx(4000)


def test_overtime_beyond_base_hours():
    # regular 4000 + overtime 5 * (800 / 8) * 2 * 1.5
    assert calculate_wage(5, 800, 10, ShiftKind.DAY) == pytest.approx(5500)


@pytest.mark.parametrize("shift,expected", [
    (ShiftKind.DAY, 1000),
    (ShiftKind.NIGHT, 1250),
    (ShiftKind.FULL_DAY, 1500),
    (ShiftKind.HALF_DAY, 500),
])
def test_shift_multipliers(shift, expected):
    assert calculate_wage(2, 500, 8, shift) == pytest.approx(expected)


def test_shift_given_as_string():
    assert calculate_wage(1, 800, 8, "NIGHT") == pytest.approx(1000)


def test_short_day_is_prorated():
    assert calculate_wage(1, 800, 4) == pytest.approx(400)


def test_fraction_scales_regular_pay_only():
    # regular 800 * 0.5 + overtime 1 * 100 * 2 * 1.5 (unscaled)
    assert calculate_wage(1, 800, 10, ShiftKind.DAY, 0.5) == pytest.approx(700)


def test_zero_count_is_zero_wage():
    assert calculate_wage(0, 800, 10) == 0


def test_custom_rules():
    rules = WageRules(base_hours=10, overtime_rate=2.0)
    assert calculate_wage(1, 1000, 12, rules=rules) == pytest.approx(1000 + 100 * 2 * 2.0)


@pytest.mark.parametrize("kwargs", [
    {"count": -1, "rate_per_worker": 800, "hours_worked": 8},
    {"count": 1, "rate_per_worker": -5, "hours_worked": 8},
    {"count": 1, "rate_per_worker": 800, "hours_worked": -1},
    {"count": 1, "rate_per_worker": 800, "hours_worked": 8, "shift_fraction": 1.5},
    {"count": 1, "rate_per_worker": 800, "hours_worked": 8, "shift_fraction": -0.1},
])
def test_rejects_invalid_inputs(kwargs):
    with pytest.raises(InvalidAmount):
        calculate_wage(**kwargs)


counts = st.integers(min_value=0, max_value=200)
rates = st.floats(min_value=0, max_value=5000, allow_nan=False, allow_infinity=False)
hours = st.floats(min_value=0, max_value=24, allow_nan=False, allow_infinity=False)
fractions = st.floats(min_value=0, max_value=1, allow_nan=False, allow_infinity=False)
shifts = st.sampled_from(list(ShiftKind))


@given(counts, rates, hours, shifts, fractions)
def test_wage_is_never_negative(count, rate, hrs, shift, fraction):
    assert calculate_wage(count, rate, hrs, shift, fraction) >= 0


@given(counts, rates, hours, shifts, fractions)
def test_wage_is_linear_in_count(count, rate, hrs, shift, fraction):
    single = calculate_wage(1, rate, hrs, shift, fraction)
    assert calculate_wage(count, rate, hrs, shift, fraction) == pytest.approx(count * single, rel=1e-9, abs=1e-6)


@given(counts, rates, hours, shifts, fractions)
def test_wage_is_linear_in_rate(count, rate, hrs, shift, fraction):
    unit = calculate_wage(count, 1.0, hrs, shift, fraction)
    assert calculate_wage(count, rate, hrs, shift, fraction) == pytest.approx(rate * unit, rel=1e-9, abs=1e-6)


@given(st.integers(min_value=1, max_value=50), rates, shifts)
def test_more_hours_never_pay_less(count, rate, shift):
    previous = 0.0
    for h in range(0, 17):
        wage = calculate_wage(count, rate, h, shift)
        assert wage >= previous - 1e-9
        previous = wage

"""Tests for compounding and rate conversion."""

import os
import sys
import decimal
import pytest
from hypothesis import given, settings, strategies as st

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, PROJECT_ROOT)

from fee_errors import RateOutOfRange
from fixed_point import RATE_SCALE, UNIT_SCALE
from rate_math import (
    MANAGEMENT_FEE_DIGITS,
    SECONDS_PER_YEAR,
    precision_context,
    rpow,
    to_scaled_per_second_rate,
    from_scaled_per_second_rate,
)


class TestRpow:
    """Tests for fixed-point exponentiation."""

    def test_unit_base(self):
        """One to any power is one."""
        assert rpow(RATE_SCALE, 1000, RATE_SCALE) == RATE_SCALE

    def test_zero_exponent(self):
        """Anything to the zero power is the scale."""
        assert rpow(3 * RATE_SCALE, 0, RATE_SCALE) == RATE_SCALE
        assert rpow(0, 0, UNIT_SCALE) == UNIT_SCALE

    def test_exact_power(self):
        """Test an exactly representable result."""
        assert rpow(2 * RATE_SCALE, 10, RATE_SCALE) == 1024 * RATE_SCALE
        assert rpow(UNIT_SCALE // 2, 2, UNIT_SCALE) == UNIT_SCALE // 4

    def test_zero_base(self):
        """Test a zero base with a positive exponent."""
        assert rpow(0, 5, RATE_SCALE) == 0

    def test_result_is_floored(self):
        """Growth of a fractional factor never rounds up."""
        x = RATE_SCALE + 10 ** 18
        assert rpow(x, 1, RATE_SCALE) == x

    def test_monotonic_in_exponent(self):
        """A growth factor compounds upward with time."""
        x = to_scaled_per_second_rate(10 ** 16)
        values = [rpow(x, n, RATE_SCALE) for n in (1, 60, 3600, 86400, SECONDS_PER_YEAR)]
        assert values == sorted(values)
        assert values[0] > RATE_SCALE


class TestPrecisionContext:
    """Tests for explicit decimal contexts."""

    def test_context_settings(self):
        """Test the default context configuration."""
        ctx = precision_context()
        assert ctx.prec == MANAGEMENT_FEE_DIGITS
        assert ctx.rounding == decimal.ROUND_HALF_UP

    def test_fresh_context_each_call(self):
        """Contexts are never shared between callers."""
        assert precision_context() is not precision_context()

    def test_global_context_untouched(self):
        """Using a custom precision leaves the process-wide context alone."""
        before = decimal.getcontext().prec
        to_scaled_per_second_rate(5 * 10 ** 16, precision_context(45))
        rpow(RATE_SCALE + 12345, SECONDS_PER_YEAR, RATE_SCALE, precision_context(45))
        assert decimal.getcontext().prec == before

    def test_results_independent_of_global_context(self):
        """Changing the global context does not change fee math."""
        expected = to_scaled_per_second_rate(2 * 10 ** 16)
        with decimal.localcontext() as ctx:
            ctx.prec = 5
            ctx.rounding = decimal.ROUND_DOWN
            assert to_scaled_per_second_rate(2 * 10 ** 16) == expected


class TestRateConversion:
    """Tests for annual / per-second rate conversion."""

    def test_zero_rate(self):
        """A zero annual rate means no growth."""
        assert to_scaled_per_second_rate(0) == RATE_SCALE
        assert from_scaled_per_second_rate(RATE_SCALE) == 0

    def test_one_year_of_growth(self):
        """A year of compounding charges r of the post-fee supply."""
        annual_rate = 10 ** 16  # 1%
        growth = rpow(to_scaled_per_second_rate(annual_rate), SECONDS_PER_YEAR, RATE_SCALE)
        # growth - 1 == r / (1 - r)
        expected = RATE_SCALE * annual_rate // (UNIT_SCALE - annual_rate)
        assert abs((growth - RATE_SCALE) - expected) < 10 ** 12

    def test_rejects_full_rate(self):
        """Test rates of 100% or more are rejected."""
        with pytest.raises(RateOutOfRange):
            to_scaled_per_second_rate(UNIT_SCALE)

    def test_rejects_negative_rate(self):
        """Test negative rates are rejected."""
        with pytest.raises(RateOutOfRange):
            to_scaled_per_second_rate(-1)

    def test_inverse_rejects_shrinking_rate(self):
        """Test a per-second factor below one is rejected."""
        with pytest.raises(RateOutOfRange):
            from_scaled_per_second_rate(RATE_SCALE - 1)


@settings(max_examples=50, deadline=None)
@given(st.integers(min_value=1, max_value=UNIT_SCALE // 2))
def test_rate_round_trip(annual_rate):
    """Converting to per-second and back stays within one unit of the last place."""
    recovered = from_scaled_per_second_rate(to_scaled_per_second_rate(annual_rate))
    assert abs(recovered - annual_rate) <= 1

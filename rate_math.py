"""
Compound accrual and annual/per-second rate conversion.

Management fees compound every second. A human annual rate is turned once into
a "scaled per-second rate" (RATE_SCALE fixed point) and raised to the number of
elapsed seconds at every settlement with `rpow`.

The decimal work runs at a fixed number of significant digits
(MANAGEMENT_FEE_DIGITS). The precision lives in an explicit decimal.Context
that callers can pass in; nothing here touches the process-wide decimal context,
so funds configured with different precisions can be processed side by side.
"""

from decimal import (
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    ROUND_CEILING,
    ROUND_FLOOR,
    ROUND_HALF_UP,
    MAX_EMAX,
    MIN_EMIN,
)
from typing import Optional

from fee_errors import RateOutOfRange
from fixed_point import RATE_SCALE, UNIT_SCALE, check_uint256


MANAGEMENT_FEE_DIGITS = 27

# No leap-year adjustment
SECONDS_PER_YEAR = 365 * 24 * 60 * 60


def precision_context(digits: int = MANAGEMENT_FEE_DIGITS) -> Context:
    """
    Build a fresh decimal context for fee math.

    A new Context is returned on every call so a caller can never share (and
    accidentally mutate) the precision used by another fund.

    Args:
        digits: Significant digits kept by every intermediate operation

    Returns:
        decimal.Context with ROUND_HALF_UP rounding and arithmetic traps enabled
    """
    return Context(
        prec=digits,
        rounding=ROUND_HALF_UP,
        Emax=MAX_EMAX,
        Emin=MIN_EMIN,
        traps=[InvalidOperation, DivisionByZero, Overflow],
    )


def _to_int(value: Decimal, rounding: str) -> int:
    return int(value.to_integral_value(rounding=rounding))


def rpow(x: int, n: int, b: int, context: Optional[Context] = None) -> int:
    """
    Fixed-point exponentiation: floor((x / b) ** n * b).

    Uses decimal exponentiation at the context's precision instead of repeated
    integer multiplication, so truncation error does not pile up over millions
    of seconds.

    Args:
        x: Base, scaled by b (e.g., a scaled per-second rate)
        n: Integer exponent (elapsed seconds)
        b: Scale of x and of the result
        context: Decimal context carrying the precision; defaults to
            MANAGEMENT_FEE_DIGITS significant digits

    Returns:
        The result scaled by b
    """
    check_uint256(x)
    check_uint256(n)
    check_uint256(b)

    if n == 0 or x == b:
        return b

    ctx = context or precision_context()
    ratio = ctx.divide(x, b)
    growth = ctx.power(ratio, n)
    return check_uint256(_to_int(ctx.multiply(growth, b), ROUND_FLOOR))


def to_scaled_per_second_rate(annual_rate: int, context: Optional[Context] = None) -> int:
    """
    Convert an annual rate (UNIT_SCALE) into a scaled per-second rate (RATE_SCALE).

    The annual rate is a fraction of post-fee value, so it is first mapped to
    the effective rate r / (1 - r) before taking the per-second root:

        factor = (1 + r / (1 - r)) ** (1 / SECONDS_PER_YEAR)

    Args:
        annual_rate: Annual fee rate, 10^18 == 100%
        context: Decimal precision context

    Returns:
        Per-second compounding factor scaled by 10^27 (10^27 == no growth)

    Raises:
        RateOutOfRange: If the rate is negative or at least 100%
    """
    if annual_rate < 0 or annual_rate >= UNIT_SCALE:
        raise RateOutOfRange(f"Annual rate {annual_rate} must be within [0, {UNIT_SCALE})")

    ctx = context or precision_context()
    rate = ctx.divide(annual_rate, UNIT_SCALE)
    effective_rate = ctx.divide(rate, ctx.subtract(1, rate))
    exponent = ctx.divide(1, SECONDS_PER_YEAR)
    factor = ctx.power(ctx.add(1, effective_rate), exponent)

    return check_uint256(_to_int(ctx.multiply(factor, RATE_SCALE), ROUND_FLOOR))


def from_scaled_per_second_rate(scaled_per_second_rate: int, context: Optional[Context] = None) -> int:
    """
    Recover the annual rate (UNIT_SCALE) from a scaled per-second rate.

    Inverse of to_scaled_per_second_rate. The final 18-decimal value is rounded
    up so a round trip never under-reports the configured fee.

    Raises:
        RateOutOfRange: If the per-second rate is below 10^27 (negative growth)
    """
    if scaled_per_second_rate < RATE_SCALE:
        raise RateOutOfRange(
            f"Scaled per-second rate {scaled_per_second_rate} must be at least {RATE_SCALE}"
        )

    ctx = context or precision_context()
    per_second = ctx.divide(scaled_per_second_rate, RATE_SCALE)
    effective_rate = ctx.subtract(ctx.power(per_second, SECONDS_PER_YEAR), 1)
    rate = ctx.divide(effective_rate, ctx.add(1, effective_rate))

    return check_uint256(_to_int(ctx.multiply(rate, UNIT_SCALE), ROUND_CEILING))

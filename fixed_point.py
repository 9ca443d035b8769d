"""
Fixed-point scales and truncating integer arithmetic.

All fee amounts are plain Python integers carrying an implied denominator:

- UNIT_SCALE (10^18): share prices, share amounts, annual rates
- RATE_SCALE (10^27): scaled per-second rates used for compounding
- BPS_SCALE  (10^4):  basis-point rates (exit fees)

Every division floors, exactly like the unsigned integer division of the
on-chain ledger. Signed intermediates (performance fee value deltas) truncate
toward zero, like Solidity's int256 division. Results are checked against the
256-bit word size instead of silently wrapping.
"""

from decimal import Decimal, ROUND_FLOOR, localcontext
from typing import Union

from fee_errors import ArithmeticOverflow


UNIT_SCALE = 10 ** 18
RATE_SCALE = 10 ** 27
BPS_SCALE = 10 ** 4

UINT256_MAX = 2 ** 256 - 1
INT256_MAX = 2 ** 255 - 1
INT256_MIN = -(2 ** 255)


def check_uint256(value: int) -> int:
    """Return value unchanged if it fits an unsigned 256-bit word."""
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflow(f"Value {value} does not fit in uint256")
    return value


def check_int256(value: int) -> int:
    """Return value unchanged if it fits a signed 256-bit word."""
    if value < INT256_MIN or value > INT256_MAX:
        raise ArithmeticOverflow(f"Value {value} does not fit in int256")
    return value


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute floor(a * b / denominator) for unsigned operands.

    The product is formed at full width before dividing, so only the inputs
    and the final quotient are required to fit in uint256.

    Args:
        a: First unsigned factor
        b: Second unsigned factor
        denominator: Unsigned, non-zero divisor

    Returns:
        The truncated quotient

    Raises:
        ArithmeticOverflow: If an operand is negative or out of range, or the
            quotient does not fit in uint256
        ZeroDivisionError: If denominator is zero
    """
    check_uint256(a)
    check_uint256(b)
    check_uint256(denominator)
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return check_uint256(a * b // denominator)


def signed_mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b / denominator truncated toward zero for signed operands.

    Python's // floors toward negative infinity, so the magnitude is divided
    and the sign reapplied to match int256 semantics.
    """
    check_int256(a)
    check_int256(b)
    check_int256(denominator)
    if denominator == 0:
        raise ZeroDivisionError("signed_mul_div denominator is zero")

    product = a * b
    quotient = abs(product) // abs(denominator)
    if (product < 0) != (denominator < 0):
        quotient = -quotient
    return check_int256(quotient)


def rescale(value: int, from_scale: int, to_scale: int) -> int:
    """Convert an unsigned fixed-point value between scales, flooring on the way down."""
    return mul_div(value, to_scale, from_scale)


def to_fixed(value: Union[str, int, float, Decimal], scale: int = UNIT_SCALE) -> int:
    """
    Convert a human-readable decimal amount into a fixed-point integer.

    Floats are routed through their shortest string form so that 0.1 becomes
    exactly 10^17 at the unit scale. The result is floored.

    Args:
        value: Amount in human units (e.g., 0.02 for 2%)
        scale: Fixed-point denominator

    Returns:
        Unsigned fixed-point integer
    """
    with localcontext() as ctx:
        ctx.prec = 100
        amount = Decimal(str(value)) * scale
        return check_uint256(int(amount.to_integral_value(rounding=ROUND_FLOOR)))


def from_fixed(value: int, scale: int = UNIT_SCALE) -> Decimal:
    """Exact Decimal view of a power-of-ten fixed-point integer, for reporting only."""
    exponent = len(str(scale)) - 1
    digits = tuple(int(d) for d in str(abs(value)))
    return Decimal((1 if value < 0 else 0, digits, -exponent))

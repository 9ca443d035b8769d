"""
Dilution-correct share minting.

Minting exactly the "value-equivalent" number of shares undershoots the fee
recipient's claim, because the new shares dilute every holder, the recipient
included. The settler solves for the mint amount that leaves the recipient
with the intended fraction of the enlarged supply:

    actual / (supply + actual) == raw / supply
    actual = raw * supply / (supply - raw)
"""

from fee_errors import DilutionPrecondition
from fixed_point import mul_div


def shares_due_with_inflation(raw_shares_due: int, shares_supply: int) -> int:
    """
    Convert a raw shares-due amount into the number of shares to mint.

    Args:
        raw_shares_due: Shares worth the value owed at the current price
        shares_supply: Shares supply before minting

    Returns:
        Shares to mint (floored)

    Raises:
        DilutionPrecondition: If raw_shares_due >= shares_supply, which means the
            valuation or fee configuration upstream is broken
    """
    if raw_shares_due == 0:
        return 0

    # A single share cannot be split; the formula would divide by zero or go negative
    if raw_shares_due == 1 or shares_supply == 1:
        return 1

    if raw_shares_due >= shares_supply:
        raise DilutionPrecondition(
            f"Raw shares due {raw_shares_due} must be less than shares supply {shares_supply}"
        )

    return mul_div(raw_shares_due, shares_supply, shares_supply - raw_shares_due)

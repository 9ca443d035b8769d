"""
Management fee accrual.

The fee compounds every second on the shares supply:

    growth     = rpow(scaled_per_second_rate, elapsed, RATE_SCALE)
    shares_due = shares_supply * (growth - RATE_SCALE) / RATE_SCALE

Shares due are minted to the fee recipient. Settling twice at the same
timestamp is a no-op.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Context
from typing import Optional, Tuple

from fee_hooks import (
    Continuous,
    FeeHook,
    FeeSettlementType,
    NO_SETTLEMENT,
    PreBuyShares,
    PreRedeemShares,
    SettlementResult,
    ensure_fee_hook,
)
from fixed_point import RATE_SCALE, mul_div
from rate_math import MANAGEMENT_FEE_DIGITS, precision_context, rpow, to_scaled_per_second_rate


@dataclass(frozen=True)
class ManagementFeeState:
    """Persisted management fee state for one fund."""
    last_settled_timestamp: int = 0


def management_fee_shares_due(
    scaled_per_second_rate: int,
    shares_supply: int,
    seconds_since_last_settled: int,
    context: Optional[Context] = None
) -> int:
    """
    Calculate management fee shares due for an elapsed period.

    Args:
        scaled_per_second_rate: Per-second compounding factor (RATE_SCALE)
        shares_supply: Shares supply the fee is charged on
        seconds_since_last_settled: Elapsed seconds
        context: Decimal precision context for rpow

    Returns:
        Shares to mint (floored)
    """
    if shares_supply == 0 or seconds_since_last_settled == 0:
        return 0

    growth = rpow(scaled_per_second_rate, seconds_since_last_settled, RATE_SCALE, context)
    return mul_div(shares_supply, growth - RATE_SCALE, RATE_SCALE)


def settle(
    state: ManagementFeeState,
    scaled_per_second_rate: int,
    shares_supply: int,
    now: int,
    context: Optional[Context] = None
) -> Tuple[int, ManagementFeeState]:
    """
    Settle the management fee up to `now`.

    Returns:
        Tuple of (shares_due, new_state). The timestamp advances even when no
        shares are due (zero supply), since there was nothing to dilute.

    Raises:
        ValueError: If `now` is before the last settlement
    """
    elapsed = now - state.last_settled_timestamp
    if elapsed < 0:
        raise ValueError(
            f"Settlement time {now} is before last settlement {state.last_settled_timestamp}"
        )
    if elapsed == 0:
        return 0, state

    shares_due = management_fee_shares_due(scaled_per_second_rate, shares_supply, elapsed, context)
    logging.debug(f"Management fee: {elapsed}s elapsed on supply {shares_supply}, {shares_due} shares due")

    return shares_due, replace(state, last_settled_timestamp=now)


@dataclass
class ManagementFee:
    """
    Management fee configured for one fund.

    Attributes:
        scaled_per_second_rate: Per-second compounding factor (RATE_SCALE)
        precision_digits: Significant digits for the decimal math
    """
    scaled_per_second_rate: int
    precision_digits: int = MANAGEMENT_FEE_DIGITS

    @classmethod
    def from_annual_rate(cls, annual_rate: int, precision_digits: int = MANAGEMENT_FEE_DIGITS) -> "ManagementFee":
        """Configure from an annual rate (UNIT_SCALE); raises RateOutOfRange for rates >= 100%."""
        rate = to_scaled_per_second_rate(annual_rate, precision_context(precision_digits))
        return cls(scaled_per_second_rate=rate, precision_digits=precision_digits)

    def activate(self, now: int) -> ManagementFeeState:
        return ManagementFeeState(last_settled_timestamp=now)

    def settles_on_hook(self, hook: FeeHook) -> bool:
        return isinstance(ensure_fee_hook(hook), (Continuous, PreBuyShares, PreRedeemShares))

    def settle(
        self,
        state: ManagementFeeState,
        hook: FeeHook,
        shares_supply: int,
        now: int
    ) -> Tuple[SettlementResult, ManagementFeeState]:
        """Settle on a hook; hooks the fee does not listen to leave the state untouched."""
        if not self.settles_on_hook(hook):
            return NO_SETTLEMENT, state

        shares_due, new_state = settle(
            state,
            self.scaled_per_second_rate,
            shares_supply,
            now,
            precision_context(self.precision_digits),
        )
        if shares_due == 0:
            return NO_SETTLEMENT, new_state

        logging.info(f"Management fee settled: {shares_due} shares to mint at {now}")
        return SettlementResult(settlement_type=FeeSettlementType.mint, shares_due=shares_due), new_state

"""
Entrance and exit fees.

Both are charged once per trade and do not depend on elapsed time.

- Entrance fee: a fraction of the gross shares bought, sized so that the net
  shares delivered to the buyer plus the fee shares add back up to the gross
  amount: fee = bought * rate / (1 + rate).
- Exit fee: plain basis points of the shares redeemed. The shares are already
  leaving the supply, so no dilution correction applies.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from fee_errors import RateOutOfRange
from fee_hooks import (
    FeeHook,
    FeeSettlementType,
    NO_SETTLEMENT,
    PostBuyShares,
    PreRedeemShares,
    SettlementResult,
    ensure_fee_hook,
)
from fixed_point import BPS_SCALE, UNIT_SCALE, mul_div


SETTLEMENT_TYPES = {
    'direct': FeeSettlementType.direct,
    'burn': FeeSettlementType.burn,
}


def entrance_fee_shares_due(rate: int, shares_bought: int) -> int:
    """
    Entrance fee shares for a buy.

    Args:
        rate: Entrance fee rate (UNIT_SCALE, 10^16 == 1%)
        shares_bought: Gross shares issued for the investment

    Returns:
        Fee shares (floored)
    """
    return mul_div(shares_bought, rate, UNIT_SCALE + rate)


def exit_fee_shares_due(rate: int, shares_redeemed: int) -> int:
    """
    Exit fee shares for a redemption.

    Args:
        rate: Exit fee rate in basis points (BPS_SCALE == 100%)
        shares_redeemed: Shares being redeemed

    Returns:
        Fee shares (floored)
    """
    return mul_div(shares_redeemed, rate, BPS_SCALE)


def split_entrance_fee(rate: int, shares_bought: int) -> Tuple[int, int]:
    """Return (net shares to the buyer, fee shares); they always sum to shares_bought."""
    fee_shares = entrance_fee_shares_due(rate, shares_bought)
    return shares_bought - fee_shares, fee_shares


def _settlement_type(name: str) -> FeeSettlementType:
    try:
        return SETTLEMENT_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown settlement type '{name}', expected one of {sorted(SETTLEMENT_TYPES)}") from None


@dataclass
class EntranceRateFee:
    """
    Entrance fee configured for one fund.

    Attributes:
        rate: Fee rate (UNIT_SCALE)
        settlement: 'direct' pays the recipient from the buyer's shares,
            'burn' burns them
    """
    rate: int
    settlement: str = 'direct'

    def __post_init__(self):
        if self.rate < 0:
            raise RateOutOfRange(f"Entrance fee rate {self.rate} must not be negative")
        self.settlement_type = _settlement_type(self.settlement)

    def settles_on_hook(self, hook: FeeHook) -> bool:
        return isinstance(ensure_fee_hook(hook), PostBuyShares)

    def settle(self, hook: FeeHook) -> SettlementResult:
        if not self.settles_on_hook(hook):
            return NO_SETTLEMENT

        shares_due = entrance_fee_shares_due(self.rate, hook.shares_bought)
        if shares_due == 0:
            return NO_SETTLEMENT

        logging.info(f"Entrance fee: {shares_due} of {hook.shares_bought} shares bought")
        return SettlementResult(settlement_type=self.settlement_type, shares_due=shares_due)


@dataclass
class ExitRateFee:
    """
    Exit fee configured for one fund.

    Attributes:
        in_kind_rate: Rate for pro-rata in-kind redemptions (basis points)
        specific_assets_rate: Rate for redemptions of specific assets (basis points)
        settlement: 'burn' (default) or 'direct'
    """
    in_kind_rate: int
    specific_assets_rate: int
    settlement: str = 'burn'

    def __post_init__(self):
        for name, rate in (('in-kind', self.in_kind_rate), ('specific-assets', self.specific_assets_rate)):
            if rate < 0 or rate >= BPS_SCALE:
                raise RateOutOfRange(f"Exit fee {name} rate {rate} must be within [0, {BPS_SCALE})")
        self.settlement_type = _settlement_type(self.settlement)

    def rate_for(self, hook: PreRedeemShares) -> int:
        return self.specific_assets_rate if hook.for_specific_assets else self.in_kind_rate

    def settles_on_hook(self, hook: FeeHook) -> bool:
        return isinstance(ensure_fee_hook(hook), PreRedeemShares)

    def settle(self, hook: FeeHook) -> SettlementResult:
        if not self.settles_on_hook(hook):
            return NO_SETTLEMENT

        shares_due = exit_fee_shares_due(self.rate_for(hook), hook.shares_redeemed)
        if shares_due == 0:
            return NO_SETTLEMENT

        logging.info(f"Exit fee: {shares_due} of {hook.shares_redeemed} shares redeemed")
        return SettlementResult(settlement_type=self.settlement_type, shares_due=shares_due)

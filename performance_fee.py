"""
Performance fee accrual with a high-water mark.

Fee Structure:
1. Value created above the high-water mark (HWM) since the last settlement is
   charged at `rate` and added to an aggregate value due.
2. The aggregate value due is converted to shares at the current price and
   kept minted to the vault as "shares outstanding" until payout. Each
   settlement mints or burns the difference to the new target.
3. A loss reduces the aggregate value due (never below zero), which burns
   outstanding shares back.

Share Price Tracking:
- The price used is the price WITHOUT performance: GAV over the net shares
  supply (total supply minus shares outstanding).
- Settlements before a buy or a redeem predict the post-trade share price,
  because shares are minted/burned in the same step as the trade.

Crystallization:
- Once per period the outstanding shares become payable to the recipient;
  the HWM is raised to the last share price and the aggregate value due resets.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from fee_errors import ArithmeticOverflow, FeeNotActivated, RateOutOfRange, TradePrecondition
from fee_hooks import (
    Continuous,
    FeeHook,
    FeeSettlementType,
    PostBuyShares,
    PreBuyShares,
    PreRedeemShares,
    SettlementResult,
    ensure_fee_hook,
)
from fixed_point import UNIT_SCALE, mul_div, signed_mul_div
from share_dilution import shares_due_with_inflation


@dataclass(frozen=True)
class PerformanceFeeState:
    """
    Persisted performance fee state for one fund.

    Attributes:
        high_water_mark: Highest share price without performance seen so far (UNIT_SCALE)
        last_share_price: Share price recorded at the last settlement (UNIT_SCALE)
        aggregate_value_due: Unpaid value owed to the recipient, in GAV units
        activated: Activation timestamp
        last_paid: Timestamp of the last payout, 0 if never paid
    """
    high_water_mark: int
    last_share_price: int
    aggregate_value_due: int = 0
    activated: int = 0
    last_paid: int = 0


@dataclass(frozen=True)
class PerformanceFeeSettlement:
    """Full outcome of a performance fee settlement."""

    #: Signed shares due; negative means outstanding shares are burned back
    shares_due: int
    share_price_without_performance: int
    next_share_price: int
    next_aggregate_value_due: int
    state: PerformanceFeeState

    @property
    def settlement_type(self) -> FeeSettlementType:
        if self.shares_due > 0:
            return FeeSettlementType.mint_shares_outstanding
        if self.shares_due < 0:
            return FeeSettlementType.burn_shares_outstanding
        return FeeSettlementType.none

    def to_settlement_result(self) -> SettlementResult:
        return SettlementResult(settlement_type=self.settlement_type, shares_due=abs(self.shares_due))


def activate(initial_share_price: int = UNIT_SCALE, now: int = 0) -> PerformanceFeeState:
    """Create the initial state: HWM and last share price both at the initial price."""
    return PerformanceFeeState(
        high_water_mark=initial_share_price,
        last_share_price=initial_share_price,
        aggregate_value_due=0,
        activated=now,
        last_paid=0,
    )


def share_price_without_performance(gav: int, net_shares_supply: int) -> int:
    """GAV per net share (UNIT_SCALE); zero for an empty fund."""
    if net_shares_supply == 0:
        return 0
    return mul_div(gav, UNIT_SCALE, net_shares_supply)


def performance_fee_shares_due(
    rate: int,
    total_shares_supply: int,
    shares_outstanding: int,
    gav: int,
    high_water_mark: int,
    prev_share_price: int,
    prev_aggregate_value_due: int
) -> Tuple[int, int, int]:
    """
    Calculate performance fee shares due since the last settlement.

    Args:
        rate: Performance fee rate (UNIT_SCALE, 10^17 == 10%)
        total_shares_supply: Total shares supply, outstanding fee shares included
        shares_outstanding: Performance fee shares already minted to the vault
        gav: Current gross asset value
        high_water_mark: Current HWM share price
        prev_share_price: Share price at the last settlement
        prev_aggregate_value_due: Aggregate value due after the last settlement

    Returns:
        Tuple of (shares_due, next_aggregate_value_due, share_price_without_performance).
        shares_due is signed.
    """
    if shares_outstanding > total_shares_supply:
        raise ArithmeticOverflow(
            f"Shares outstanding {shares_outstanding} exceed total supply {total_shares_supply}"
        )

    net_shares_supply = total_shares_supply - shares_outstanding
    price = share_price_without_performance(gav, net_shares_supply)

    # Only value created strictly above the HWM counts
    value_since_last = signed_mul_div(
        max(high_water_mark, price) - max(high_water_mark, prev_share_price),
        net_shares_supply,
        UNIT_SCALE,
    )
    accrued = signed_mul_div(value_since_last, rate, UNIT_SCALE)

    next_aggregate_value_due = prev_aggregate_value_due + accrued
    if next_aggregate_value_due < 0:
        logging.warning(
            f"Loss of {-accrued} exceeds aggregate value due {prev_aggregate_value_due}, clamping to 0"
        )
        next_aggregate_value_due = 0

    settled_shares = 0
    if next_aggregate_value_due > 0 and gav > 0:
        raw_shares_due = mul_div(next_aggregate_value_due, net_shares_supply, gav)
        settled_shares = shares_due_with_inflation(raw_shares_due, net_shares_supply)

    return settled_shares - shares_outstanding, next_aggregate_value_due, price


def next_share_price(
    hook: FeeHook,
    gav: int,
    net_shares_supply: int,
    total_shares_supply: int,
    price_without_performance: int,
    empty_fund_share_price: int = UNIT_SCALE
) -> int:
    """
    Share price to record for the next settlement.

    For Continuous and PostBuyShares the current price already reflects the
    fund. Before a buy or a redeem the price after the pending trade is
    predicted from the trade amount.

    Args:
        hook: Lifecycle point that triggered the settlement
        gav: GAV before the pending trade
        net_shares_supply: Net shares supply before the pending trade
        total_shares_supply: Total supply after this settlement's mint/burn
        price_without_performance: Current share price without performance
        empty_fund_share_price: Price of the first buy into an empty fund,
            normally the last recorded share price

    Raises:
        InvalidFeeHook: If hook is not a known variant
        TradePrecondition: If the trade amount is negative or the trade would
            leave no net shares
    """
    hook = ensure_fee_hook(hook)

    if isinstance(hook, (Continuous, PostBuyShares)):
        return price_without_performance

    if isinstance(hook, PreBuyShares):
        if hook.investment_amount < 0:
            raise TradePrecondition(f"Negative investment amount {hook.investment_amount}")
        buy_price = price_without_performance or empty_fund_share_price
        shares_issued = mul_div(hook.investment_amount, UNIT_SCALE, buy_price)
        next_net_shares_supply = net_shares_supply + shares_issued
        next_gav = gav + hook.investment_amount
    else:
        shares_redeemed = hook.shares_redeemed
        if shares_redeemed < 0:
            raise TradePrecondition(f"Negative redeemed shares {shares_redeemed}")
        if shares_redeemed >= net_shares_supply:
            raise TradePrecondition(
                f"Redeeming {shares_redeemed} shares leaves no net supply (net supply {net_shares_supply})"
            )
        next_net_shares_supply = net_shares_supply - shares_redeemed
        # Assets leave pro rata to the total supply, outstanding fee shares included
        next_gav = gav - mul_div(shares_redeemed, gav, total_shares_supply)

    if next_net_shares_supply <= 0:
        raise TradePrecondition("Pending trade leaves the fund without net shares")

    return mul_div(next_gav, UNIT_SCALE, next_net_shares_supply)


def settle(
    state: Optional[PerformanceFeeState],
    hook: FeeHook,
    rate: int,
    total_shares_supply: int,
    shares_outstanding: int,
    gav: int
) -> PerformanceFeeSettlement:
    """
    Settle the performance fee and compute the next state.

    Raises:
        FeeNotActivated: If state is None
        InvalidFeeHook: If hook is not a known variant
    """
    if state is None:
        raise FeeNotActivated("Performance fee has not been activated")
    hook = ensure_fee_hook(hook)

    shares_due, next_aggregate_value_due, price = performance_fee_shares_due(
        rate=rate,
        total_shares_supply=total_shares_supply,
        shares_outstanding=shares_outstanding,
        gav=gav,
        high_water_mark=state.high_water_mark,
        prev_share_price=state.last_share_price,
        prev_aggregate_value_due=state.aggregate_value_due,
    )

    price_after = next_share_price(
        hook,
        gav,
        total_shares_supply - shares_outstanding,
        total_shares_supply + shares_due,
        price,
        empty_fund_share_price=state.last_share_price,
    )

    new_state = replace(
        state,
        high_water_mark=max(state.high_water_mark, price),
        last_share_price=price_after,
        aggregate_value_due=next_aggregate_value_due,
    )
    logging.debug(
        f"Performance fee: price {price}, HWM {state.high_water_mark} -> {new_state.high_water_mark}, "
        f"aggregate value due {state.aggregate_value_due} -> {next_aggregate_value_due}"
    )

    return PerformanceFeeSettlement(
        shares_due=shares_due,
        share_price_without_performance=price,
        next_share_price=price_after,
        next_aggregate_value_due=next_aggregate_value_due,
        state=new_state,
    )


def payout_allowed(state: PerformanceFeeState, period: int, now: int) -> bool:
    """
    Whether a full crystallization period has passed since the last payout.

    Periods are counted from activation. The first payout needs one full period;
    after that at most one payout happens per period.
    """
    if period <= 0:
        raise ValueError(f"Performance fee period must be positive, got {period}")

    time_since_activated = now - state.activated
    if time_since_activated < period:
        return False

    period_start = now - time_since_activated % period
    return state.last_paid < period_start


def payout(state: Optional[PerformanceFeeState], period: int, now: int) -> Tuple[bool, PerformanceFeeState]:
    """
    Crystallize the performance fee if the period allows it.

    Returns:
        Tuple of (paid, new_state). When paid, the shares outstanding become
        payable to the fee recipient, the HWM moves up to the last share price
        and the aggregate value due resets to zero.
    """
    if state is None:
        raise FeeNotActivated("Performance fee has not been activated")
    if not payout_allowed(state, period, now):
        return False, state

    new_state = replace(
        state,
        last_paid=now,
        high_water_mark=max(state.high_water_mark, state.last_share_price),
        aggregate_value_due=0,
    )
    return True, new_state


@dataclass
class PerformanceFee:
    """
    Performance fee configured for one fund.

    Attributes:
        rate: Fee rate on value above the HWM (UNIT_SCALE, must be below 100%)
        period: Crystallization period in seconds
    """
    rate: int
    period: int = 365 * 24 * 60 * 60

    def __post_init__(self):
        if self.rate < 0 or self.rate >= UNIT_SCALE:
            raise RateOutOfRange(f"Performance fee rate {self.rate} must be within [0, {UNIT_SCALE})")
        if self.period <= 0:
            raise ValueError(f"Performance fee period must be positive, got {self.period}")

    def activate(self, initial_share_price: int = UNIT_SCALE, now: int = 0) -> PerformanceFeeState:
        logging.info(f"Performance fee activated at {now} with HWM {initial_share_price}")
        return activate(initial_share_price, now)

    def settles_on_hook(self, hook: FeeHook) -> bool:
        ensure_fee_hook(hook)
        return True

    def settle(
        self,
        state: Optional[PerformanceFeeState],
        hook: FeeHook,
        total_shares_supply: int,
        shares_outstanding: int,
        gav: int
    ) -> PerformanceFeeSettlement:
        settlement = settle(state, hook, self.rate, total_shares_supply, shares_outstanding, gav)

        if settlement.shares_due < 0:
            logging.warning(f"Performance fee burning {-settlement.shares_due} outstanding shares")
        elif settlement.shares_due > 0:
            logging.info(f"Performance fee minting {settlement.shares_due} outstanding shares")
        return settlement

    def payout_allowed(self, state: PerformanceFeeState, now: int) -> bool:
        return payout_allowed(state, self.period, now)

    def payout(self, state: Optional[PerformanceFeeState], now: int) -> Tuple[bool, PerformanceFeeState]:
        paid, new_state = payout(state, self.period, now)
        if paid:
            logging.info(
                f"Performance fee paid out at {now}: HWM {state.high_water_mark} -> {new_state.high_water_mark}, "
                f"aggregate value due {state.aggregate_value_due} cleared"
            )
        return paid, new_state

"""
Fee hooks and settlement types.

A fee hook names the point of the vault lifecycle that triggered a settlement.
It is a closed set of four variants; only the variants that describe a pending
trade carry a payload, so there is no optional "settlement data" to null-check.
"""

import enum
from dataclasses import dataclass
from typing import Union

from fee_errors import InvalidFeeHook


@dataclass(frozen=True)
class Continuous:
    """Settlement outside of any trade (e.g., a keeper or a manager action)."""


@dataclass(frozen=True)
class PreBuyShares:
    """Settlement before a buy; the investment has not reached the vault yet."""

    #: Amount of denomination asset being invested, in GAV units
    investment_amount: int


@dataclass(frozen=True)
class PostBuyShares:
    """Settlement after a buy, once GAV and supply reflect the trade."""

    #: Gross shares issued to the buyer, used by the entrance fee
    shares_bought: int = 0


@dataclass(frozen=True)
class PreRedeemShares:
    """Settlement before a redemption; the shares have not been burned yet."""

    #: Shares about to be redeemed
    shares_redeemed: int

    #: Redemption of specific assets instead of a pro-rata in-kind payout
    for_specific_assets: bool = False


FeeHook = Union[Continuous, PreBuyShares, PostBuyShares, PreRedeemShares]

FEE_HOOK_TYPES = (Continuous, PreBuyShares, PostBuyShares, PreRedeemShares)


def ensure_fee_hook(hook) -> FeeHook:
    """Return hook if it is one of the four known variants, else raise InvalidFeeHook."""
    if not isinstance(hook, FEE_HOOK_TYPES):
        raise InvalidFeeHook(f"Unsupported fee hook: {hook!r}")
    return hook


class FeeSettlementType(enum.Enum):
    """How the vault applies the shares due from a settlement."""

    #: Nothing to do
    none = "none"

    #: Transfer shares from the payer directly to the fee recipient
    direct = "direct"

    #: Mint new shares to the fee recipient
    mint = "mint"

    #: Burn shares from the payer
    burn = "burn"

    #: Mint shares to the vault, held as outstanding until payout
    mint_shares_outstanding = "mint_shares_outstanding"

    #: Burn previously minted outstanding shares held by the vault
    burn_shares_outstanding = "burn_shares_outstanding"


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a single fee settlement, ready for the vault ledger."""

    settlement_type: FeeSettlementType

    #: Absolute number of shares to move; the direction is in settlement_type
    shares_due: int


NO_SETTLEMENT = SettlementResult(settlement_type=FeeSettlementType.none, shares_due=0)

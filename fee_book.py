"""
Fee book: persisted fee state per (fund, fee) and serialized settlement.

settle() is a read-modify-write of the fee state, so two settlements of the
same fund's fee must never interleave. The book keeps one lock per
(fund, fee) key and runs every state transition for that key under it.
Different funds, or different fees of the same fund, settle independently.

Every transition is recorded in an audit history that can be exported as a
DataFrame.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

import pandas as pd

from fee_errors import FeeNotActivated
from fee_hooks import FeeHook, SettlementResult
from management_fee import ManagementFee, ManagementFeeState
from performance_fee import PerformanceFee, PerformanceFeeSettlement, PerformanceFeeState


MANAGEMENT_FEE = 'management'
PERFORMANCE_FEE = 'performance'

HISTORY_COLUMNS = [
    'fund_id', 'fee', 'event', 'timestamp', 'hook', 'settlement_type', 'shares_due',
    'high_water_mark', 'last_share_price', 'aggregate_value_due', 'last_settled_timestamp',
]

FeeKey = Tuple[str, str]


class FeeBook:
    """
    Holds fee state records and serializes their updates.

    Attributes:
        history: Audit trail of activations, settlements and payouts
    """

    def __init__(self):
        self._states: Dict[FeeKey, object] = {}
        self._locks: Dict[FeeKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._history_lock = threading.Lock()
        self.history: List[Dict] = []

    def _lock_for(self, key: FeeKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def _record(self, **event):
        row = {column: event.get(column) for column in HISTORY_COLUMNS}
        with self._history_lock:
            self.history.append(row)

    def get_state(self, fund_id: str, fee_name: str):
        """Current state for a fund's fee, or None if it was never activated."""
        return self._states.get((fund_id, fee_name))

    # ------------------------------------------------------------------
    # Management fee
    # ------------------------------------------------------------------

    def activate_management_fee(self, fund_id: str, fee: ManagementFee, now: int) -> ManagementFeeState:
        key = (fund_id, MANAGEMENT_FEE)
        with self._lock_for(key):
            state = fee.activate(now)
            self._states[key] = state
        self._record(fund_id=fund_id, fee=MANAGEMENT_FEE, event='activate', timestamp=now,
                     last_settled_timestamp=state.last_settled_timestamp)
        return state

    def settle_management_fee(
        self,
        fund_id: str,
        fee: ManagementFee,
        hook: FeeHook,
        shares_supply: int,
        now: int
    ) -> SettlementResult:
        """
        Settle a fund's management fee under its lock.

        Raises:
            FeeNotActivated: If the fee was never activated for the fund
        """
        key = (fund_id, MANAGEMENT_FEE)
        with self._lock_for(key):
            state = self._states.get(key)
            if state is None:
                raise FeeNotActivated(f"Management fee has not been activated for {fund_id}")
            result, new_state = fee.settle(state, hook, shares_supply, now)
            self._states[key] = new_state

        self._record(
            fund_id=fund_id, fee=MANAGEMENT_FEE, event='settle', timestamp=now,
            hook=type(hook).__name__, settlement_type=result.settlement_type.value,
            shares_due=result.shares_due, last_settled_timestamp=new_state.last_settled_timestamp,
        )
        return result

    # ------------------------------------------------------------------
    # Performance fee
    # ------------------------------------------------------------------

    def activate_performance_fee(
        self,
        fund_id: str,
        fee: PerformanceFee,
        initial_share_price: int,
        now: int
    ) -> PerformanceFeeState:
        key = (fund_id, PERFORMANCE_FEE)
        with self._lock_for(key):
            state = fee.activate(initial_share_price, now)
            self._states[key] = state
        self._record_performance(fund_id, 'activate', now, state)
        return state

    def settle_performance_fee(
        self,
        fund_id: str,
        fee: PerformanceFee,
        hook: FeeHook,
        total_shares_supply: int,
        shares_outstanding: int,
        gav: int,
        now: int
    ) -> PerformanceFeeSettlement:
        """
        Settle a fund's performance fee under its lock.

        Raises:
            FeeNotActivated: If the fee was never activated for the fund
        """
        key = (fund_id, PERFORMANCE_FEE)
        with self._lock_for(key):
            settlement = fee.settle(self._states.get(key), hook, total_shares_supply, shares_outstanding, gav)
            self._states[key] = settlement.state

        self._record_performance(
            fund_id, 'settle', now, settlement.state,
            hook=type(hook).__name__,
            settlement_type=settlement.settlement_type.value,
            shares_due=settlement.shares_due,
        )
        return settlement

    def payout_performance_fee(self, fund_id: str, fee: PerformanceFee, now: int) -> bool:
        key = (fund_id, PERFORMANCE_FEE)
        with self._lock_for(key):
            paid, new_state = fee.payout(self._states.get(key), now)
            self._states[key] = new_state

        if paid:
            self._record_performance(fund_id, 'payout', now, new_state)
        return paid

    def _record_performance(self, fund_id: str, event: str, now: int, state: PerformanceFeeState, **extra):
        self._record(
            fund_id=fund_id, fee=PERFORMANCE_FEE, event=event, timestamp=now,
            high_water_mark=state.high_water_mark,
            last_share_price=state.last_share_price,
            aggregate_value_due=state.aggregate_value_due,
            **extra,
        )

    def get_history_df(self, fund_id: Optional[str] = None) -> pd.DataFrame:
        """Audit history as a DataFrame, optionally for one fund."""
        with self._history_lock:
            rows = list(self.history)

        if not rows:
            return pd.DataFrame(columns=HISTORY_COLUMNS)

        # Fixed-point integers exceed int64, keep them as Python ints
        df = pd.DataFrame(rows, columns=HISTORY_COLUMNS, dtype=object)
        if fund_id is not None:
            df = df[df['fund_id'] == fund_id].reset_index(drop=True)
        logging.debug(f"Fee history export: {len(df)} rows")
        return df

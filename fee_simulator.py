"""
Off-chain fee simulator.

Replays a scenario of vault events (settlements, buys, redemptions, payouts)
through the fee engine, keeping the share ledger side that the on-chain vault
would normally own: GAV, total supply, performance fee shares outstanding and
shares held by the fee recipient.

Scenario file (YAML):

    events:
      - {type: buy, timestamp: '2024-01-01', amount: 1000}
      - {type: settle, timestamp: '2024-07-01', gav: 1100}
      - {type: redeem, timestamp: '2024-09-01', shares: 100, gav: 1150}
      - {type: payout, timestamp: '2025-01-01'}

Amounts and GAV are in denomination units, shares in whole shares.
Timestamps are unix seconds or anything pandas.Timestamp can parse.
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd
import yaml

import utils
from config_loader import Config, load_config, validate_config
from fee_book import FeeBook, PERFORMANCE_FEE
from fee_errors import FeeEngineError, TradePrecondition
from fee_hooks import (
    Continuous,
    FeeHook,
    FeeSettlementType,
    PostBuyShares,
    PreBuyShares,
    PreRedeemShares,
)
from fixed_point import UNIT_SCALE, from_fixed, mul_div, to_fixed


RESULT_COLUMNS = [
    'timestamp', 'event', 'gav', 'total_supply', 'shares_outstanding', 'recipient_shares',
    'share_price', 'high_water_mark', 'aggregate_value_due',
    'management_fee_shares', 'performance_fee_shares', 'entrance_fee_shares', 'exit_fee_shares',
]

# Columns holding denomination-unit amounts; the rest of the fixed-point columns are shares
AMOUNT_COLUMNS = ['gav', 'share_price', 'high_water_mark', 'aggregate_value_due']
SHARE_COLUMNS = [
    'total_supply', 'shares_outstanding', 'recipient_shares',
    'management_fee_shares', 'performance_fee_shares', 'entrance_fee_shares', 'exit_fee_shares',
]


def parse_timestamp(value) -> int:
    """Unix seconds from an int or a date/datetime string."""
    if isinstance(value, int):
        return value
    return int(pd.Timestamp(value).timestamp())


class VaultSimulation:
    """
    Single-fund vault driven by scenario events.

    Attributes:
        config: Fee configuration
        book: Fee book holding the fund's fee state
        gav: Gross asset value (denomination units, fixed point)
        total_supply: Total shares supply, outstanding fee shares included
        shares_outstanding: Performance fee shares held by the vault until payout
        recipient_shares: Shares owned by the fee recipient
    """

    def __init__(self, config: Config, book: Optional[FeeBook] = None, start: int = 0):
        self.config = config
        self.fees = config.build_fees()
        self.book = book or FeeBook()
        self.fund_id = config.fund.name
        self.unit = config.fund.denomination_unit

        self.gav = 0
        self.total_supply = 0
        self.shares_outstanding = 0
        self.recipient_shares = 0
        self.rows: List[Dict] = []

        if self.fees.management is not None:
            self.book.activate_management_fee(self.fund_id, self.fees.management, start)
        if self.fees.performance is not None:
            self.book.activate_performance_fee(
                self.fund_id, self.fees.performance, config.fund.initial_share_price_fixed, start
            )

    @property
    def investor_shares(self) -> int:
        return self.total_supply - self.shares_outstanding - self.recipient_shares

    @property
    def share_price(self) -> int:
        """Gross share value; the initial price while the fund is empty."""
        if self.total_supply == 0:
            return self.config.fund.initial_share_price_fixed
        return mul_div(self.gav, UNIT_SCALE, self.total_supply)

    def _settle_recurring_fees(self, hook: FeeHook, now: int) -> Dict:
        fee_shares = {'management_fee_shares': 0, 'performance_fee_shares': 0}

        management = self.fees.management
        if management is not None and management.settles_on_hook(hook):
            result = self.book.settle_management_fee(
                self.fund_id, management, hook, self.total_supply - self.shares_outstanding, now
            )
            if result.settlement_type == FeeSettlementType.mint:
                self.total_supply += result.shares_due
                self.recipient_shares += result.shares_due
                fee_shares['management_fee_shares'] = result.shares_due

        fee_shares['performance_fee_shares'] = self._settle_performance_fee(hook, now)
        return fee_shares

    def _settle_performance_fee(self, hook: FeeHook, now: int) -> int:
        """Settle the performance fee and apply its mint or burn of outstanding shares."""
        performance = self.fees.performance
        if performance is None:
            return 0

        settlement = self.book.settle_performance_fee(
            self.fund_id, performance, hook, self.total_supply, self.shares_outstanding, self.gav, now
        )
        self.total_supply += settlement.shares_due
        self.shares_outstanding += settlement.shares_due
        return settlement.shares_due

    def settle(self, now: int, gav: Optional[int] = None) -> Dict:
        if gav is not None:
            self.gav = gav
        fee_shares = self._settle_recurring_fees(Continuous(), now)
        return self._record(now, 'settle', **fee_shares)

    def buy(self, now: int, investment_amount: int, gav: Optional[int] = None) -> Dict:
        """Buy shares for investment_amount; fees settle before and after the trade."""
        if investment_amount <= 0:
            raise TradePrecondition(f"Investment amount must be positive, got {investment_amount}")
        if gav is not None:
            self.gav = gav

        fee_shares = self._settle_recurring_fees(PreBuyShares(investment_amount=investment_amount), now)

        shares_bought = mul_div(investment_amount, UNIT_SCALE, self.share_price)
        self.gav += investment_amount
        self.total_supply += shares_bought

        post_buy = PostBuyShares(shares_bought=shares_bought)
        entrance_fee_shares = 0
        if self.fees.entrance is not None:
            result = self.fees.entrance.settle(post_buy)
            entrance_fee_shares = result.shares_due
            if result.settlement_type == FeeSettlementType.direct:
                self.recipient_shares += entrance_fee_shares
            elif result.settlement_type == FeeSettlementType.burn:
                self.total_supply -= entrance_fee_shares

        fee_shares['performance_fee_shares'] += self._settle_performance_fee(post_buy, now)

        logging.info(f"Buy at {now}: {investment_amount} invested for {shares_bought} shares")
        return self._record(now, 'buy', entrance_fee_shares=entrance_fee_shares, **fee_shares)

    def redeem(self, now: int, shares: int, gav: Optional[int] = None, for_specific_assets: bool = False) -> Dict:
        """Redeem investor shares; the exit fee is taken from the redeemed shares."""
        if shares <= 0 or shares > self.investor_shares:
            raise TradePrecondition(f"Cannot redeem {shares} shares, investors hold {self.investor_shares}")
        if gav is not None:
            self.gav = gav

        hook = PreRedeemShares(shares_redeemed=shares, for_specific_assets=for_specific_assets)
        fee_shares = self._settle_recurring_fees(hook, now)

        exit_fee_shares = 0
        if self.fees.exit is not None:
            exit_fee_shares = self.fees.exit.settle(hook).shares_due

        shares_paid_out = shares - exit_fee_shares
        self.gav -= mul_div(shares_paid_out, self.gav, self.total_supply)
        if self.fees.exit is not None and self.fees.exit.settlement_type == FeeSettlementType.direct:
            self.recipient_shares += exit_fee_shares
            self.total_supply -= shares_paid_out
        else:
            self.total_supply -= shares

        # The pre-redeem price prediction assumes the gross shares leave; re-record the actual price
        if exit_fee_shares > 0:
            fee_shares['performance_fee_shares'] += self._settle_performance_fee(Continuous(), now)

        logging.info(f"Redeem at {now}: {shares} shares, {exit_fee_shares} taken as exit fee")
        return self._record(now, 'redeem', exit_fee_shares=exit_fee_shares, **fee_shares)

    def payout(self, now: int) -> Dict:
        """Crystallize the performance fee; outstanding shares move to the recipient."""
        performance = self.fees.performance
        if performance is not None and self.book.payout_performance_fee(self.fund_id, performance, now):
            self.recipient_shares += self.shares_outstanding
            self.shares_outstanding = 0
        return self._record(now, 'payout')

    def _record(self, now: int, event: str, **fee_shares) -> Dict:
        state = self.book.get_state(self.fund_id, PERFORMANCE_FEE)
        row = {
            'timestamp': now,
            'event': event,
            'gav': self.gav,
            'total_supply': self.total_supply,
            'shares_outstanding': self.shares_outstanding,
            'recipient_shares': self.recipient_shares,
            'share_price': self.share_price,
            'high_water_mark': state.high_water_mark if state else None,
            'aggregate_value_due': state.aggregate_value_due if state else None,
            'management_fee_shares': fee_shares.get('management_fee_shares', 0),
            'performance_fee_shares': fee_shares.get('performance_fee_shares', 0),
            'entrance_fee_shares': fee_shares.get('entrance_fee_shares', 0),
            'exit_fee_shares': fee_shares.get('exit_fee_shares', 0),
        }
        self.rows.append(row)
        return row

    def apply_event(self, event: Dict) -> Dict:
        """
        Apply one scenario event.

        Raises:
            ValueError: If the event type is unknown or a required field is missing
        """
        event_type = event.get('type')
        if 'timestamp' not in event:
            raise ValueError(f"Event {event} has no timestamp")
        now = parse_timestamp(event['timestamp'])
        gav = to_fixed(event['gav'], self.unit) if 'gav' in event else None

        if event_type == 'settle':
            return self.settle(now, gav)
        if event_type == 'buy':
            return self.buy(now, to_fixed(event['amount'], self.unit), gav)
        if event_type == 'redeem':
            return self.redeem(
                now,
                to_fixed(event['shares'], UNIT_SCALE),
                gav,
                for_specific_assets=event.get('specific_assets', False),
            )
        if event_type == 'payout':
            return self.payout(now)
        raise ValueError(f"Unknown event type: {event_type}")

    def run(self, events: List[Dict]) -> pd.DataFrame:
        for event in events:
            self.apply_event(event)
        return self.results_df()

    def results_df(self) -> pd.DataFrame:
        if not self.rows:
            return pd.DataFrame(columns=RESULT_COLUMNS)
        return pd.DataFrame(self.rows, columns=RESULT_COLUMNS, dtype=object)


def load_scenario(scenario_path: str) -> List[Dict]:
    """Load the event list from a scenario YAML file."""
    with open(scenario_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    events = raw.get('events', [])
    if not isinstance(events, list):
        raise ValueError(f"Scenario {scenario_path}: 'events' must be a list")
    logging.info(f"Loaded {len(events)} events from {scenario_path}")
    return events


def format_results(results: pd.DataFrame, denomination_unit: int) -> pd.DataFrame:
    """Human-readable copy of the results: fixed-point columns as decimal strings, dates as datetimes."""
    formatted = results.copy()
    formatted['timestamp'] = pd.to_datetime(formatted['timestamp'].astype('int64'), unit='s')
    for column in AMOUNT_COLUMNS:
        formatted[column] = formatted[column].map(
            lambda v: '' if v is None else str(from_fixed(v, denomination_unit))
        )
    for column in SHARE_COLUMNS:
        formatted[column] = formatted[column].map(lambda v: str(from_fixed(v, UNIT_SCALE)))
    return formatted


def save_results(results: pd.DataFrame, denomination_unit: int, output_dir: str = 'results') -> str:
    """
    Save raw results to CSV and formatted results to Excel.

    Returns:
        Path of the Excel file
    """
    logging.info(f"Saving results to {output_dir}")
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    os.makedirs(output_dir, exist_ok=True)

    csv_file = os.path.join(output_dir, f'fee_history_{timestamp}.csv')
    excel_file = os.path.join(output_dir, f'fee_history_{timestamp}.xlsx')

    results.to_csv(csv_file, index=False)

    with pd.ExcelWriter(excel_file, engine='openpyxl') as writer:
        format_results(results, denomination_unit).to_excel(writer, index=False, sheet_name='History')
        worksheet = writer.sheets['History']
        for column_cells in worksheet.columns:
            worksheet.column_dimensions[column_cells[0].column_letter].width = 24

    logging.info(f"- Raw history: {os.path.basename(csv_file)}")
    logging.info(f"- Formatted history: {os.path.basename(excel_file)}")
    return excel_file


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Simulate vault fee accrual and settlement over a scenario of events.')
    parser.add_argument('-c', '--config', default='config.yaml', help='Fee configuration YAML')
    parser.add_argument('-s', '--scenario', required=True, help='Scenario YAML with an events list')
    parser.add_argument('-o', '--output-dir', default=None, help='Output directory (defaults to paths.output_dir)')
    args = parser.parse_args(argv)

    config = load_config(args.config)
    utils.setup_logging('FeeSimulation', config.paths.log_dir)

    for issue in validate_config(config):
        logging.warning(issue)

    try:
        events = load_scenario(args.scenario)
        start = parse_timestamp(events[0].get('timestamp', 0)) if events else 0
        simulation = VaultSimulation(config, start=start)
        results = simulation.run(events)
    except (FeeEngineError, ValueError) as e:
        logging.error(f"Simulation failed: {e}")
        return 1

    save_results(results, config.fund.denomination_unit, args.output_dir or config.paths.output_dir)
    print("Fee simulation completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())

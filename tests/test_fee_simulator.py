"""Tests for the fee simulator."""

import os
import sys
import pytest
import yaml

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, PROJECT_ROOT)

import fee_simulator
import utils
from config_loader import EntranceFeeConfig, ExitFeeConfig
from fee_book import PERFORMANCE_FEE
from fee_errors import TradePrecondition
from fee_simulator import VaultSimulation, format_results, load_scenario, parse_timestamp
from fixed_point import UNIT_SCALE, mul_div
from rate_math import SECONDS_PER_YEAR

UNIT = UNIT_SCALE


@pytest.fixture
def funded_simulation(default_config):
    simulation = VaultSimulation(default_config, start=0)
    simulation.buy(0, 100 * UNIT)
    return simulation


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    def test_int_passthrough(self):
        """Test unix seconds are used as-is."""
        assert parse_timestamp(1700000000) == 1700000000

    def test_date_string(self):
        """Test dates are read as UTC midnight."""
        assert parse_timestamp('1970-01-02') == 86400


class TestVaultSimulation:
    """Tests for the simulated vault ledger."""

    def test_first_buy(self, funded_simulation):
        """The first buy is priced at the initial share price."""
        assert funded_simulation.total_supply == 100 * UNIT
        assert funded_simulation.gav == 100 * UNIT
        assert funded_simulation.share_price == UNIT
        assert funded_simulation.investor_shares == 100 * UNIT

    def test_settle_after_a_year_of_gains(self, funded_simulation):
        """Both recurring fees settle after a year of gains."""
        row = funded_simulation.settle(SECONDS_PER_YEAR, gav=110 * UNIT)

        assert row['management_fee_shares'] > 0
        assert row['performance_fee_shares'] > 0
        assert funded_simulation.recipient_shares == row['management_fee_shares']
        assert funded_simulation.shares_outstanding == row['performance_fee_shares']
        assert funded_simulation.total_supply == (
            100 * UNIT + row['management_fee_shares'] + row['performance_fee_shares']
        )

    def test_payout_moves_outstanding_shares(self, funded_simulation):
        """Paying out hands the outstanding shares to the recipient."""
        settled = funded_simulation.settle(SECONDS_PER_YEAR, gav=110 * UNIT)
        funded_simulation.payout(SECONDS_PER_YEAR)

        assert funded_simulation.shares_outstanding == 0
        assert funded_simulation.recipient_shares == (
            settled['management_fee_shares'] + settled['performance_fee_shares']
        )

    def test_early_payout_is_a_no_op(self, funded_simulation):
        """Test a payout before the period ends keeps shares outstanding."""
        funded_simulation.settle(1000, gav=120 * UNIT)
        outstanding = funded_simulation.shares_outstanding
        funded_simulation.payout(2000)
        assert funded_simulation.shares_outstanding == outstanding > 0

    def test_redeem_with_exit_fee_burn(self, default_config):
        """Burned exit fee shares stay in the fund for the other holders."""
        default_config.management_fee.enabled = False
        default_config.performance_fee.enabled = False
        default_config.exit_fee = ExitFeeConfig(enabled=True, in_kind_rate_bps=100)
        simulation = VaultSimulation(default_config)
        simulation.buy(0, 100 * UNIT)

        row = simulation.redeem(10, 10 * UNIT)

        assert row['exit_fee_shares'] == UNIT // 10
        assert simulation.total_supply == 90 * UNIT
        assert simulation.gav == 100 * UNIT - (10 * UNIT - UNIT // 10)

    def test_redeem_with_exit_fee_direct(self, default_config):
        """Direct exit fee shares go to the recipient."""
        default_config.management_fee.enabled = False
        default_config.performance_fee.enabled = False
        default_config.exit_fee = ExitFeeConfig(enabled=True, in_kind_rate_bps=100, settlement='direct')
        simulation = VaultSimulation(default_config)
        simulation.buy(0, 100 * UNIT)

        simulation.redeem(10, 10 * UNIT)

        assert simulation.recipient_shares == UNIT // 10
        assert simulation.total_supply == 90 * UNIT + UNIT // 10

    def test_buy_with_entrance_fee(self, default_config):
        """Direct entrance fee shares are carved out of the buyer's shares."""
        default_config.entrance_fee = EntranceFeeConfig(enabled=True, rate=0.01)
        simulation = VaultSimulation(default_config)
        row = simulation.buy(0, 101 * UNIT)

        assert row['entrance_fee_shares'] == UNIT
        assert simulation.recipient_shares == UNIT
        assert simulation.investor_shares == 100 * UNIT

    def test_outstanding_shares_match_fee_history(self, funded_simulation):
        """Every performance fee mint or burn in the history is applied to the ledger."""
        funded_simulation.settle(1000, gav=173 * UNIT)
        row = funded_simulation.buy(2000, 37 * UNIT + 12345, gav=181 * UNIT)

        history = funded_simulation.book.get_history_df(funded_simulation.fund_id)
        settled = history[(history['fee'] == PERFORMANCE_FEE) & (history['event'] == 'settle')]
        assert len(settled) == 5
        assert funded_simulation.shares_outstanding == sum(settled['shares_due'])

        buy_rows = settled[settled['timestamp'] == 2000]
        assert row['performance_fee_shares'] == sum(buy_rows['shares_due'])

    def test_redeem_with_exit_fee_records_actual_price(self, default_config):
        """After a redeem with an exit fee the stored share price is the post-trade price."""
        default_config.exit_fee = ExitFeeConfig(enabled=True, in_kind_rate_bps=100)
        simulation = VaultSimulation(default_config)
        simulation.buy(0, 100 * UNIT)
        simulation.settle(1000, gav=130 * UNIT)

        simulation.redeem(2000, 10 * UNIT)

        state = simulation.book.get_state(simulation.fund_id, PERFORMANCE_FEE)
        net_supply = simulation.total_supply - simulation.shares_outstanding
        assert state.last_share_price == mul_div(simulation.gav, UNIT, net_supply)

        history = simulation.book.get_history_df(simulation.fund_id)
        settled = history[(history['fee'] == PERFORMANCE_FEE) & (history['event'] == 'settle')]
        assert simulation.shares_outstanding == sum(settled['shares_due'])

    def test_redeem_more_than_held(self, funded_simulation):
        """Test redeeming beyond investor holdings raises."""
        with pytest.raises(TradePrecondition):
            funded_simulation.redeem(10, 101 * UNIT)

    def test_buy_requires_positive_amount(self, funded_simulation):
        """Test a zero investment raises."""
        with pytest.raises(TradePrecondition):
            funded_simulation.buy(10, 0)

    def test_unknown_event(self, funded_simulation):
        """Test unknown event types raise."""
        with pytest.raises(ValueError):
            funded_simulation.apply_event({'type': 'swap', 'timestamp': 10})

    def test_event_without_timestamp(self, funded_simulation):
        """Test events must carry a timestamp."""
        with pytest.raises(ValueError):
            funded_simulation.apply_event({'type': 'settle'})


class TestRun:
    """Tests for replaying scenarios."""

    def test_run_scenario(self, default_config):
        """Test a full scenario produces one row per event."""
        events = [
            {'type': 'buy', 'timestamp': '2024-01-01', 'amount': 1000},
            {'type': 'settle', 'timestamp': '2024-07-01', 'gav': 1100},
            {'type': 'redeem', 'timestamp': '2024-09-01', 'shares': 100, 'gav': 1150},
            {'type': 'payout', 'timestamp': '2025-01-02'},
        ]
        simulation = VaultSimulation(default_config, start=parse_timestamp('2024-01-01'))
        results = simulation.run(events)

        assert list(results['event']) == ['buy', 'settle', 'redeem', 'payout']
        assert results.iloc[-1]['shares_outstanding'] == 0
        assert results.iloc[-1]['recipient_shares'] > 0

        formatted = format_results(results, default_config.fund.denomination_unit)
        assert formatted.loc[0, 'gav'] == '1000.000000000000000000'

    def test_load_scenario(self, tmp_path):
        """Test events are read from the YAML file."""
        path = tmp_path / 'scenario.yaml'
        path.write_text(yaml.dump({'events': [{'type': 'settle', 'timestamp': 0}]}))
        assert load_scenario(str(path)) == [{'type': 'settle', 'timestamp': 0}]

    def test_load_scenario_bad_events(self, tmp_path):
        """Test a non-list events section raises."""
        path = tmp_path / 'scenario.yaml'
        path.write_text(yaml.dump({'events': {'type': 'settle'}}))
        with pytest.raises(ValueError):
            load_scenario(str(path))


class TestMain:
    """Tests for the command line entry point."""

    @pytest.fixture(autouse=True)
    def no_log_files(self, monkeypatch):
        monkeypatch.setattr(utils, 'setup_logging', lambda *args, **kwargs: None)

    def _write_inputs(self, tmp_path, events):
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(yaml.dump({
            'paths': {'output_dir': str(tmp_path / 'out'), 'log_dir': str(tmp_path / 'logs')},
        }))
        scenario_path = tmp_path / 'scenario.yaml'
        scenario_path.write_text(yaml.dump({'events': events}))
        return str(config_path), str(scenario_path)

    def test_writes_results(self, tmp_path):
        """Test a successful run writes the CSV and the Excel history."""
        config_path, scenario_path = self._write_inputs(tmp_path, [
            {'type': 'buy', 'timestamp': 0, 'amount': 100},
            {'type': 'settle', 'timestamp': SECONDS_PER_YEAR, 'gav': 120},
        ])

        assert fee_simulator.main(['-c', config_path, '-s', scenario_path]) == 0

        written = sorted(os.listdir(tmp_path / 'out'))
        assert len(written) == 2
        assert written[0].startswith('fee_history_') and written[0].endswith('.csv')
        assert written[1].endswith('.xlsx')

    def test_failed_run(self, tmp_path):
        """Test an invalid scenario exits with a non-zero status."""
        config_path, scenario_path = self._write_inputs(tmp_path, [
            {'type': 'buy', 'timestamp': 0, 'amount': 100},
            {'type': 'redeem', 'timestamp': 10, 'shares': 500},
        ])

        assert fee_simulator.main(['-c', config_path, '-s', scenario_path]) == 1
        assert not os.path.exists(tmp_path / 'out')

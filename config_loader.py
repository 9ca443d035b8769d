"""
Configuration loader for the vault fee engine.

Loads and validates fee configuration from a config.yaml file. Rates are
written in human units (0.02 for 2%) and converted to fixed point here, so
no float ever reaches the fee math.
"""

import os
import yaml
import logging
from dataclasses import dataclass
from typing import List, Optional

from entrance_exit_fees import SETTLEMENT_TYPES, EntranceRateFee, ExitRateFee
from fixed_point import BPS_SCALE, UNIT_SCALE, to_fixed
from management_fee import ManagementFee
from performance_fee import PerformanceFee
from rate_math import MANAGEMENT_FEE_DIGITS


SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class FundConfig:
    """Fund denomination and starting share price."""
    name: str = 'Fund'
    denomination_decimals: int = 18
    initial_share_price: float = 1.0

    @property
    def denomination_unit(self) -> int:
        return 10 ** self.denomination_decimals

    @property
    def initial_share_price_fixed(self) -> int:
        """Share prices are quoted in denomination units per whole share."""
        return to_fixed(self.initial_share_price, self.denomination_unit)


@dataclass
class ManagementFeeConfig:
    """Management fee configuration."""
    enabled: bool = True
    annual_rate: float = 0.02  # 2% of post-fee value per year

    @property
    def annual_rate_fixed(self) -> int:
        return to_fixed(self.annual_rate, UNIT_SCALE)

    def build(self, precision_digits: int = MANAGEMENT_FEE_DIGITS) -> ManagementFee:
        return ManagementFee.from_annual_rate(self.annual_rate_fixed, precision_digits)


@dataclass
class PerformanceFeeConfig:
    """Performance fee configuration."""
    enabled: bool = True
    rate: float = 0.10       # 10% of value above the high-water mark
    period_days: int = 365   # crystallization period

    @property
    def rate_fixed(self) -> int:
        return to_fixed(self.rate, UNIT_SCALE)

    @property
    def period_seconds(self) -> int:
        return self.period_days * SECONDS_PER_DAY

    def build(self) -> PerformanceFee:
        return PerformanceFee(rate=self.rate_fixed, period=self.period_seconds)


@dataclass
class EntranceFeeConfig:
    """Entrance fee configuration."""
    enabled: bool = False
    rate: float = 0.0
    settlement: str = 'direct'

    @property
    def rate_fixed(self) -> int:
        return to_fixed(self.rate, UNIT_SCALE)

    def build(self) -> EntranceRateFee:
        return EntranceRateFee(rate=self.rate_fixed, settlement=self.settlement)


@dataclass
class ExitFeeConfig:
    """Exit fee configuration, rates in basis points."""
    enabled: bool = False
    in_kind_rate_bps: int = 0
    specific_assets_rate_bps: int = 0
    settlement: str = 'burn'

    def build(self) -> ExitRateFee:
        return ExitRateFee(
            in_kind_rate=self.in_kind_rate_bps,
            specific_assets_rate=self.specific_assets_rate_bps,
            settlement=self.settlement,
        )


@dataclass
class PrecisionConfig:
    """Significant digits for rpow and rate conversion."""
    digits: int = MANAGEMENT_FEE_DIGITS


@dataclass
class PathsConfig:
    """Path configuration."""
    output_dir: str = 'results'
    log_dir: str = 'Logs'


@dataclass
class FundFees:
    """Fee objects built from a Config; disabled fees are None."""
    management: Optional[ManagementFee] = None
    performance: Optional[PerformanceFee] = None
    entrance: Optional[EntranceRateFee] = None
    exit: Optional[ExitRateFee] = None


@dataclass
class Config:
    """Main configuration class."""
    fund: FundConfig
    management_fee: ManagementFeeConfig
    performance_fee: PerformanceFeeConfig
    entrance_fee: EntranceFeeConfig
    exit_fee: ExitFeeConfig
    precision: PrecisionConfig
    paths: PathsConfig

    def build_fees(self) -> FundFees:
        """
        Build the configured fees.

        Raises:
            RateOutOfRange: If a rate is outside what its formula supports
        """
        return FundFees(
            management=self.management_fee.build(self.precision.digits) if self.management_fee.enabled else None,
            performance=self.performance_fee.build() if self.performance_fee.enabled else None,
            entrance=self.entrance_fee.build() if self.entrance_fee.enabled else None,
            exit=self.exit_fee.build() if self.exit_fee.enabled else None,
        )


def load_config(config_path: str = 'config.yaml') -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Config object

    Raises:
        yaml.YAMLError: If the file is not valid YAML
    """
    if not os.path.exists(config_path):
        logging.warning(f"Config file {config_path} not found, using defaults")
        return _get_default_config()

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    return _parse_config(raw_config)


def _get_default_config() -> Config:
    """Return default configuration."""
    return Config(
        fund=FundConfig(),
        management_fee=ManagementFeeConfig(),
        performance_fee=PerformanceFeeConfig(),
        entrance_fee=EntranceFeeConfig(),
        exit_fee=ExitFeeConfig(),
        precision=PrecisionConfig(),
        paths=PathsConfig(),
    )


def _parse_config(raw: dict) -> Config:
    """Parse raw YAML dict into Config object."""
    fund_raw = raw.get('fund', {})
    fund = FundConfig(
        name=fund_raw.get('name', 'Fund'),
        denomination_decimals=fund_raw.get('denomination_decimals', 18),
        initial_share_price=fund_raw.get('initial_share_price', 1.0),
    )

    mgmt_raw = raw.get('management_fee', {})
    management_fee = ManagementFeeConfig(
        enabled=mgmt_raw.get('enabled', True),
        annual_rate=mgmt_raw.get('annual_rate', 0.02),
    )

    perf_raw = raw.get('performance_fee', {})
    performance_fee = PerformanceFeeConfig(
        enabled=perf_raw.get('enabled', True),
        rate=perf_raw.get('rate', 0.10),
        period_days=perf_raw.get('period_days', 365),
    )

    entrance_raw = raw.get('entrance_fee', {})
    entrance_fee = EntranceFeeConfig(
        enabled=entrance_raw.get('enabled', False),
        rate=entrance_raw.get('rate', 0.0),
        settlement=entrance_raw.get('settlement', 'direct'),
    )

    exit_raw = raw.get('exit_fee', {})
    exit_fee = ExitFeeConfig(
        enabled=exit_raw.get('enabled', False),
        in_kind_rate_bps=exit_raw.get('in_kind_rate_bps', 0),
        specific_assets_rate_bps=exit_raw.get('specific_assets_rate_bps', 0),
        settlement=exit_raw.get('settlement', 'burn'),
    )

    precision_raw = raw.get('precision', {})
    precision = PrecisionConfig(
        digits=precision_raw.get('digits', MANAGEMENT_FEE_DIGITS),
    )

    paths_raw = raw.get('paths', {})
    paths = PathsConfig(
        output_dir=paths_raw.get('output_dir', 'results'),
        log_dir=paths_raw.get('log_dir', 'Logs'),
    )

    return Config(
        fund=fund,
        management_fee=management_fee,
        performance_fee=performance_fee,
        entrance_fee=entrance_fee,
        exit_fee=exit_fee,
        precision=precision,
        paths=paths,
    )


def validate_config(config: Config) -> List[str]:
    """
    Validate configuration and return list of warnings/errors.

    Args:
        config: Configuration to validate

    Returns:
        List of warning/error messages (empty if valid)
    """
    issues = []

    # Validate fund
    if config.fund.denomination_decimals < 0 or config.fund.denomination_decimals > 36:
        issues.append(f"Invalid denomination decimals: {config.fund.denomination_decimals}")
    if config.fund.initial_share_price <= 0:
        issues.append(f"Initial share price must be positive, got {config.fund.initial_share_price}")

    # Validate management fee
    mgmt_rate = config.management_fee.annual_rate
    if mgmt_rate < 0 or mgmt_rate >= 1:
        issues.append(f"Management fee rate {mgmt_rate} out of range (must be within [0, 1))")
    elif mgmt_rate > 0.10:
        issues.append(f"Management fee rate {mgmt_rate} seems unusual (expected 0-10%)")

    # Validate performance fee
    perf_rate = config.performance_fee.rate
    if perf_rate < 0 or perf_rate >= 1:
        issues.append(f"Performance fee rate {perf_rate} out of range (must be within [0, 1))")
    elif perf_rate > 0.50:
        issues.append(f"Performance fee rate {perf_rate} seems unusual (expected 0-50%)")

    if config.performance_fee.period_days <= 0:
        issues.append(f"Performance fee period must be positive, got {config.performance_fee.period_days} days")

    # Validate entrance fee
    if config.entrance_fee.rate < 0:
        issues.append(f"Entrance fee rate {config.entrance_fee.rate} must not be negative")
    if config.entrance_fee.settlement not in SETTLEMENT_TYPES:
        issues.append(f"Unknown entrance fee settlement: {config.entrance_fee.settlement}")

    # Validate exit fee
    for name in ('in_kind_rate_bps', 'specific_assets_rate_bps'):
        bps = getattr(config.exit_fee, name)
        if bps < 0 or bps >= BPS_SCALE:
            issues.append(f"Exit fee {name} {bps} out of range (must be within [0, {BPS_SCALE}))")
    if config.exit_fee.settlement not in SETTLEMENT_TYPES:
        issues.append(f"Unknown exit fee settlement: {config.exit_fee.settlement}")

    # Validate precision
    if config.precision.digits < 18 or config.precision.digits > 50:
        issues.append(f"Precision of {config.precision.digits} digits seems unusual (expected 18-50)")

    return issues

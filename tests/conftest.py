import pytest

UNIT = 10 ** 18


@pytest.fixture
def unit():
    return UNIT


@pytest.fixture
def management_fee():
    from management_fee import ManagementFee
    return ManagementFee.from_annual_rate(2 * 10 ** 16)  # 2%


@pytest.fixture
def performance_fee():
    from performance_fee import PerformanceFee
    return PerformanceFee(rate=10 ** 17, period=100)  # 10%, short period for payout tests


@pytest.fixture
def activated_performance_state():
    from performance_fee import activate
    return activate(UNIT, now=0)


@pytest.fixture
def default_config():
    from config_loader import _get_default_config
    return _get_default_config()

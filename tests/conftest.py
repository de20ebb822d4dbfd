"""Shared fixtures for the gateway tests."""
from unittest.mock import Mock

import pytest

from cache.core import TTLCache
from evince.config import Settings
from evince.fetchers import DataFetcher
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Create a test cache instance driven by the fake clock."""
    return TTLCache(max_cost=100, clock=clock)


@pytest.fixture
def settings():
    return Settings(
        CHAIN_HOST="http://{chain_id}.rpc.test:26657",
        QUICK_HOST="http://quicksilver.rpc.test:26657",
        LCD_ENDPOINT="http://lcd.test",
        APR_URL="http://apr.test",
        CHAINS=["cosmoshub", "stargaze", "osmosis"],
        VESTING_ACCOUNTS=["quick1vesting1", "quick1vesting2"],
        SUPPLY_DENOM="uqck",
        APR_CACHE_TIME=5,
        SUPPLY_CACHE_TIME=1,
    )


@pytest.fixture
def fetcher():
    """Mock data fetcher; tests set the return values they need."""
    return Mock(spec=DataFetcher)

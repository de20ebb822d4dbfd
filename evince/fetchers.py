"""
Fetchers for the auxiliary JSON-over-HTTP data sources.

These cover the APR directory service and the ledger's LCD REST endpoints
(bank supply, auth accounts, distribution community pool). All token amounts
are kept as Python integers in base units.
"""
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import requests
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import FetchError

logger = structlog.get_logger()

SUPPLY_PATH = "/cosmos/bank/v1beta1/supply"
ACCOUNTS_PATH = "/cosmos/auth/v1beta1/accounts/"
COMMUNITY_POOL_PATH = "/cosmos/distribution/v1beta1/community_pool"

CONTINUOUS_VESTING = "/cosmos.vesting.v1beta1.ContinuousVestingAccount"
DELAYED_VESTING = "/cosmos.vesting.v1beta1.DelayedVestingAccount"
PERIODIC_VESTING = "/cosmos.vesting.v1beta1.PeriodicVestingAccount"


class ChainAPR(BaseModel):
    """APR record for one chain."""
    chain_id: str
    apr: float


class APRResponse(BaseModel):
    """APR of every configured chain, in configured order."""
    chains: List[ChainAPR] = Field(default_factory=list)


class Coin(BaseModel):
    denom: str
    amount: int


class DecCoin(BaseModel):
    denom: str
    amount: Decimal


class PageResponse(BaseModel):
    next_key: Optional[str] = None
    total: Optional[str] = None


class SupplyResponse(BaseModel):
    supply: List[Coin] = Field(default_factory=list)
    pagination: Optional[PageResponse] = None


class CommunityPoolResponse(BaseModel):
    pool: List[DecCoin] = Field(default_factory=list)


class BaseVestingAccount(BaseModel):
    original_vesting: List[Coin] = Field(default_factory=list)
    end_time: int = 0


class VestingPeriod(BaseModel):
    length: int
    amount: List[Coin] = Field(default_factory=list)


class Account(BaseModel):
    """Account as rendered by the auth module; vesting fields are absent on plain accounts."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type_url: str = Field(alias="@type")
    base_vesting_account: Optional[BaseVestingAccount] = None
    start_time: int = 0
    vesting_periods: List[VestingPeriod] = Field(default_factory=list)


class AccountResponse(BaseModel):
    account: Account


class DirectoryParams(BaseModel):
    estimated_apr: float


class DirectoryChain(BaseModel):
    chain_id: str
    params: DirectoryParams


class DirectoryResponse(BaseModel):
    chain: DirectoryChain


def amount_of(coins: List[Coin], denom: str) -> int:
    """Sum of `denom` in a coin list."""
    return sum(coin.amount for coin in coins if coin.denom == denom)


def locked_amount(account: Account, denom: str, now: float) -> int:
    """
    Tokens of `denom` still locked in `account` at time `now`.

    Continuous vesting unlocks linearly between start and end time, delayed
    vesting unlocks everything at end time, and periodic vesting unlocks each
    period's amount when that period ends. Non-vesting accounts lock nothing.
    """
    base = account.base_vesting_account
    if base is None:
        return 0

    original = amount_of(base.original_vesting, denom)

    if account.type_url == CONTINUOUS_VESTING:
        if now <= account.start_time:
            return original
        if now >= base.end_time:
            return 0
        remaining = int(base.end_time - now)
        return original * remaining // (base.end_time - account.start_time)

    if account.type_url == DELAYED_VESTING:
        return original if now < base.end_time else 0

    if account.type_url == PERIODIC_VESTING:
        locked = 0
        period_end = account.start_time
        for period in account.vesting_periods:
            period_end += period.length
            if period_end > now:
                locked += amount_of(period.amount, denom)
        return locked

    logger.warning("unknown_vesting_account_type", type_url=account.type_url)
    return 0


class DataFetcher:
    """
    Client for the APR service and the ledger REST endpoints.

    Every request is bounded by `timeout`; nothing is retried.
    """

    def __init__(self, lcd_endpoint: str, apr_url: str, timeout: float = 30.0,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time):
        self.lcd_endpoint = lcd_endpoint.rstrip("/")
        self.apr_url = apr_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock

    def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise FetchError(f"GET {url}: {e}") from e
        except ValueError as e:
            raise FetchError(f"GET {url}: invalid json: {e}") from e

    def _get_model(self, model, url: str, params: Optional[Dict[str, str]] = None):
        data = self._get_json(url, params)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise FetchError(f"GET {url}: unexpected shape: {e}") from e

    def get_chain_apr(self, chain: str) -> ChainAPR:
        """Estimated staking APR for a chain from the directory service."""
        directory = self._get_model(DirectoryResponse, f"{self.apr_url}/{chain}")
        return ChainAPR(chain_id=directory.chain.chain_id, apr=directory.chain.params.estimated_apr)

    def get_total_supply(self, denom: str) -> int:
        """Total supply of `denom` in base units, following supply pagination."""
        params = None
        while True:
            page = self._get_model(SupplyResponse, self.lcd_endpoint + SUPPLY_PATH, params)
            for coin in page.supply:
                if coin.denom == denom:
                    return coin.amount

            next_key = page.pagination.next_key if page.pagination else None
            if not next_key:
                raise FetchError(f"denom {denom} not found in supply")
            params = {"pagination.key": next_key}

    def get_vesting_account_locked(self, address: str, denom: str) -> int:
        """Currently locked `denom` balance of a vesting account."""
        response = self._get_model(AccountResponse, self.lcd_endpoint + ACCOUNTS_PATH + address)
        return locked_amount(response.account, denom, self.clock())

    def get_community_pool(self, denom: str) -> int:
        """Community pool balance of `denom`, truncated to whole base units."""
        response = self._get_model(CommunityPoolResponse, self.lcd_endpoint + COMMUNITY_POOL_PATH)
        try:
            return int(sum((coin.amount for coin in response.pool if coin.denom == denom), Decimal(0)))
        except InvalidOperation as e:
            raise FetchError(f"invalid community pool amount: {e}") from e

"""
Resource resolvers.

A resolver produces a fresh payload for one resource on a cache miss. Each
resolution is a short saga of fallible steps: the first failure aborts it,
every intermediate result is discarded, and only a complete payload is ever
written to the cache.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Type

import structlog
from google.protobuf.message import Message

from cache.core import PayloadCache

from . import codec
from .config import Settings
from .errors import (
    ABCIQueryError,
    EvinceError,
    FetchError,
    MarshalResponseError,
    RPCConnectionError,
    UnableToGetAPR,
    UnableToGetCommunityPool,
    UnableToGetLockedTokens,
    UnableToGetTotalSupply,
)
from .fetchers import APRResponse, DataFetcher
from .rpc import RPCClient

logger = structlog.get_logger()

VALIDATOR_LIST = "validatorList"
EXISTING_DELEGATIONS = "existingDelegations"
ZONES = "zones"
APR = "apr"
TOTAL_SUPPLY = "total_supply"
CIRCULATING_SUPPLY = "circulating_supply"

VALIDATORS_METHOD = "/cosmos.staking.v1beta1.Query/Validators"
DELEGATOR_DELEGATIONS_METHOD = "/cosmos.staking.v1beta1.Query/DelegatorDelegations"
ZONE_INFOS_METHOD = "/quicksilver.interchainstaking.v1.Query/ZoneInfos"

# Base units per display unit.
DISPLAY_DIVISOR = 1_000_000
# Balance of an excluded account, carved out of circulating supply by policy.
EXCLUDED_ACCOUNT_BALANCE = 500_000_000_000

ENTRY_COST = 1

Connector = Callable[[str, float], RPCClient]


class Pagination(str, Enum):
    NONE = "none"
    CURSOR_ACCUMULATE = "cursor-accumulate"


@dataclass(frozen=True)
class ResourceQuery:
    """Describes how one resource is read from a chain node."""
    endpoint: str
    method: str
    build_request: Callable[..., Message]
    response_type: Type[Message]
    ttl: float
    pagination: Pagination = Pagination.NONE
    items_field: Optional[str] = None


def to_display(amount: int) -> float:
    """Convert base units to display units."""
    try:
        return amount / DISPLAY_DIVISOR
    except OverflowError as e:
        raise MarshalResponseError(e) from e


def circulating_supply(total: int, locked: int, community_pool: int) -> int:
    """Circulating supply in base units."""
    return total - locked - community_pool - EXCLUDED_ACCOUNT_BALANCE


def fetch_pages(client: RPCClient, query: ResourceQuery, **params: Any) -> Iterator[Message]:
    """
    Lazily fetch consecutive pages of a paginated query.

    Each request after the first carries the previous page's continuation
    key. The sequence ends when a page has no continuation key.
    """
    next_key = b""
    while True:
        request = query.build_request(**params)
        if next_key:
            request.pagination.key = next_key
        page = codec.decode(client.query(query.method, request.SerializeToString()), query.response_type)
        yield page

        next_key = page.pagination.next_key
        if not next_key:
            return


def accumulate(pages: Iterable[Message], items_field: str) -> Message:
    """
    Fold pages into a single response.

    Consumes pages until the number of collected items is no less than the
    largest total any page reported. Nodes only report the total on the
    first page of a key-paginated query, so the largest value is kept.
    """
    result = None
    total = 0
    for page in pages:
        if result is None:
            result = type(page)()
        items = getattr(result, items_field)
        items.extend(getattr(page, items_field))
        total = max(total, page.pagination.total)
        if total and len(items) >= total:
            break

    if result is None:
        raise ABCIQueryError("no pages returned")

    collected = len(getattr(result, items_field))
    if collected < total:
        raise ABCIQueryError(f"pagination ended after {collected} of {total} {items_field}")

    result.pagination.total = total
    return result


class Resolver:
    """Base class: resolves a resource and writes it through the cache."""

    name = "resolver"

    def __init__(self, ttl: float):
        self.ttl = ttl

    def resolve(self, **params: Any) -> bytes:
        raise NotImplementedError

    def resolve_into(self, cache: PayloadCache, key: str, **params: Any) -> bytes:
        """
        Resolve the resource and store the payload under `key`.

        Raises:
            EvinceError: The resolution failed; nothing was cached
        """
        logger.info("resolve", resolver=self.name, key=key)
        try:
            payload = self.resolve(**params)
        except EvinceError as e:
            logger.error("resolve_failed", resolver=self.name, error=e.message, cause=str(e.cause))
            raise

        cache.set_with_ttl(key, payload, ENTRY_COST, self.ttl)
        return payload


class RPCResolver(Resolver):
    """Resolves a resource with ABCI queries against a chain node."""

    def __init__(self, name: str, query: ResourceQuery, connect: Connector = RPCClient.connect,
                 timeout: float = 30.0):
        super().__init__(query.ttl)
        self.name = name
        self.query = query
        self.connect = connect
        self.timeout = timeout

    def resolve(self, **params: Any) -> bytes:
        try:
            host = self.query.endpoint.format(**params)
        except (KeyError, IndexError, ValueError) as e:
            raise RPCConnectionError(f"invalid host template {self.query.endpoint!r}: {e!r}") from e
        with self.connect(host, self.timeout) as client:
            if self.query.pagination is Pagination.CURSOR_ACCUMULATE:
                response = accumulate(fetch_pages(client, self.query, **params), self.query.items_field)
            else:
                request = self.query.build_request(**params)
                data = client.query(self.query.method, request.SerializeToString())
                response = codec.decode(data, self.query.response_type)

        return codec.message_to_json(response)


class APRResolver(Resolver):
    """APR for every configured chain, in configured order."""

    name = APR

    def __init__(self, fetcher: DataFetcher, chains, ttl: float, workers: int = 4):
        super().__init__(ttl)
        self.fetcher = fetcher
        self.chains = list(chains)
        self.workers = workers

    def resolve(self, **params: Any) -> bytes:
        workers = max(1, min(self.workers, len(self.chains)))
        try:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                # map yields in submission order regardless of completion order.
                records = list(executor.map(self.fetcher.get_chain_apr, self.chains))
        except FetchError as e:
            raise UnableToGetAPR(e) from e

        return codec.dump_json(APRResponse(chains=records).model_dump())


class TotalSupplyResolver(Resolver):
    name = TOTAL_SUPPLY

    def __init__(self, fetcher: DataFetcher, denom: str, ttl: float):
        super().__init__(ttl)
        self.fetcher = fetcher
        self.denom = denom

    def resolve(self, **params: Any) -> bytes:
        try:
            total_supply = self.fetcher.get_total_supply(self.denom)
        except FetchError as e:
            raise UnableToGetTotalSupply(e) from e
        logger.info("total_supply", amount=total_supply)

        return codec.dump_json(to_display(total_supply))


class CirculatingSupplyResolver(Resolver):
    """
    Circulating supply: total supply minus vesting-locked tokens, the
    community pool and the excluded account balance.
    """

    name = CIRCULATING_SUPPLY

    def __init__(self, fetcher: DataFetcher, denom: str, vesting_accounts, ttl: float):
        super().__init__(ttl)
        self.fetcher = fetcher
        self.denom = denom
        self.vesting_accounts = list(vesting_accounts)

    def resolve(self, **params: Any) -> bytes:
        total_locked = 0
        for address in self.vesting_accounts:
            try:
                locked = self.fetcher.get_vesting_account_locked(address, self.denom)
            except FetchError as e:
                raise UnableToGetLockedTokens(e) from e
            total_locked += locked
            logger.info("locked_tokens", address=address, amount=locked)

        try:
            total_supply = self.fetcher.get_total_supply(self.denom)
        except FetchError as e:
            raise UnableToGetTotalSupply(e) from e
        logger.info("total_supply", amount=total_supply)

        try:
            community_pool = self.fetcher.get_community_pool(self.denom)
        except FetchError as e:
            raise UnableToGetCommunityPool(e) from e
        logger.info("community_pool", amount=community_pool)

        circulating = circulating_supply(total_supply, total_locked, community_pool)
        return codec.dump_json(to_display(circulating))


def validators_request(**_: Any) -> Message:
    return codec.QueryValidatorsRequest(status="", pagination=codec.PageRequest(count_total=True))


def delegations_request(address: str, **_: Any) -> Message:
    return codec.QueryDelegatorDelegationsRequest(delegator_addr=address)


def zones_request(**_: Any) -> Message:
    return codec.QueryZonesInfoRequest()


def build_resolvers(settings: Settings, fetcher: DataFetcher,
                    connect: Connector = RPCClient.connect) -> Dict[str, Resolver]:
    """Create one resolver per exposed resource from the process settings."""
    timeout = settings.RPC_TIMEOUT
    return {
        VALIDATOR_LIST: RPCResolver(
            VALIDATOR_LIST,
            ResourceQuery(
                endpoint=settings.CHAIN_HOST,
                method=VALIDATORS_METHOD,
                build_request=validators_request,
                response_type=codec.QueryValidatorsResponse,
                ttl=settings.VALIDATOR_LIST_TTL,
                pagination=Pagination.CURSOR_ACCUMULATE,
                items_field="validators",
            ),
            connect, timeout,
        ),
        EXISTING_DELEGATIONS: RPCResolver(
            EXISTING_DELEGATIONS,
            ResourceQuery(
                endpoint=settings.CHAIN_HOST,
                method=DELEGATOR_DELEGATIONS_METHOD,
                build_request=delegations_request,
                response_type=codec.QueryDelegatorDelegationsResponse,
                ttl=settings.DELEGATIONS_TTL,
            ),
            connect, timeout,
        ),
        ZONES: RPCResolver(
            ZONES,
            ResourceQuery(
                endpoint=settings.QUICK_HOST,
                method=ZONE_INFOS_METHOD,
                build_request=zones_request,
                response_type=codec.QueryZonesInfoResponse,
                ttl=settings.ZONES_TTL,
            ),
            connect, timeout,
        ),
        APR: APRResolver(fetcher, settings.CHAINS, ttl=settings.APR_CACHE_TIME * 60,
                         workers=settings.APR_FETCH_WORKERS),
        TOTAL_SUPPLY: TotalSupplyResolver(fetcher, settings.SUPPLY_DENOM,
                                          ttl=settings.SUPPLY_CACHE_TIME * 3600),
        CIRCULATING_SUPPLY: CirculatingSupplyResolver(fetcher, settings.SUPPLY_DENOM,
                                                      settings.VESTING_ACCOUNTS,
                                                      ttl=settings.SUPPLY_CACHE_TIME * 3600),
    }

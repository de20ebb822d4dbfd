from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from cache.core import TTLCache
from evince import codec
from evince.api import create_app
from evince.errors import ABCIQueryError, FetchError
from evince.fetchers import ChainAPR
from evince.resolvers import build_resolvers
from evince.service import Gateway, create_cache
from tests.fakes import FakeNode, delegations_response, validators_page, zones_response


def chain_node(path, data):
    if path.endswith("/Validators"):
        return validators_page(0, 3, total=3)
    if path.endswith("/DelegatorDelegations"):
        address = codec.decode(data, codec.QueryDelegatorDelegationsRequest).delegator_addr
        return delegations_response(address)
    if path.endswith("/ZoneInfos"):
        return zones_response("cosmoshub-4")
    raise ABCIQueryError(f"unknown query path {path}")


@pytest.fixture
def node():
    return FakeNode(chain_node)


@pytest.fixture
def gateway(settings, fetcher, node, clock):
    return Gateway.from_settings(settings, cache=TTLCache(clock=clock), fetcher=fetcher,
                                 connect=node.connect)


@pytest.fixture
def client(settings, gateway):
    return TestClient(create_app(settings, gateway))


def test_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "Quicksilver (evince): unknown\n"


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_validator_list_is_served_from_cache(client, node):
    first = client.get("/validatorList/cosmoshub-4")
    second = client.get("/validatorList/cosmoshub-4")

    assert first.status_code == 200
    assert first.headers["content-type"] == "application/json"
    assert len(first.json()["validators"]) == 3
    assert second.content == first.content
    assert len(node.calls) == 1


PAYLOAD_TTLS = [
    ("/validatorList/cosmoshub-4", 3600, lambda node, fetcher: len(node.calls)),
    ("/existingDelegations/cosmoshub-4/quick1abc", 120, lambda node, fetcher: len(node.calls)),
    ("/zones", 60, lambda node, fetcher: len(node.calls)),
    ("/apr", 5 * 60, lambda node, fetcher: fetcher.get_chain_apr.call_count),
    ("/total_supply", 3600, lambda node, fetcher: fetcher.get_total_supply.call_count),
    ("/circulating_supply", 3600, lambda node, fetcher: fetcher.get_community_pool.call_count),
]


@pytest.mark.parametrize("path,ttl,fetches", PAYLOAD_TTLS, ids=[p[0].split("/")[1] for p in PAYLOAD_TTLS])
def test_payload_is_cached_until_ttl(client, node, fetcher, clock, path, ttl, fetches):
    """Requests inside the TTL are served from cache; the first one after it refetches."""
    fetcher.get_chain_apr.side_effect = lambda chain: ChainAPR(chain_id=f"{chain}-1", apr=0.1)
    fetcher.get_total_supply.return_value = 10 ** 15
    fetcher.get_vesting_account_locked.return_value = 5 * 10 ** 13
    fetcher.get_community_pool.return_value = 5 * 10 ** 13

    first = client.get(path)
    assert first.status_code == 200
    fetched = fetches(node, fetcher)
    assert fetched > 0

    clock.advance(ttl - 1)
    assert client.get(path).content == first.content
    assert fetches(node, fetcher) == fetched

    clock.advance(1)
    assert client.get(path).status_code == 200
    assert fetches(node, fetcher) == 2 * fetched


def test_delegations_are_cached_per_chain_and_address(client, node):
    client.get("/existingDelegations/cosmoshub-4/quick1abc")
    client.get("/existingDelegations/cosmoshub-4/quick1def")
    client.get("/existingDelegations/stargaze-1/quick1abc")
    response = client.get("/existingDelegations/cosmoshub-4/quick1abc")

    assert response.json()["delegation_responses"][0]["delegation"]["delegator_address"] == "quick1abc"
    assert len(node.calls) == 3
    assert node.hosts == [
        "http://cosmoshub-4.rpc.test:26657",
        "http://cosmoshub-4.rpc.test:26657",
        "http://stargaze-1.rpc.test:26657",
    ]


def test_apr(client, fetcher):
    fetcher.get_chain_apr.side_effect = lambda chain: ChainAPR(chain_id=f"{chain}-1", apr=0.1)

    response = client.get("/apr")

    assert response.status_code == 200
    assert [c["chain_id"] for c in response.json()["chains"]] == ["cosmoshub-1", "stargaze-1", "osmosis-1"]


def test_supply_endpoints(client, fetcher):
    fetcher.get_total_supply.return_value = 10 ** 18
    fetcher.get_vesting_account_locked.side_effect = [6 * 10 ** 16, 4 * 10 ** 16]
    fetcher.get_community_pool.return_value = 5 * 10 ** 16

    assert client.get("/total_supply").content == b"1000000000000"
    assert client.get("/circulating_supply").content == b"849999500000"


def test_failure_is_generic_500(client, fetcher, gateway):
    fetcher.get_total_supply.side_effect = FetchError("connection reset")

    response = client.get("/total_supply")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal Server Error"}
    assert gateway.cache.get("total_supply") is None


def test_failure_is_not_cached(client, fetcher):
    fetcher.get_total_supply.side_effect = [FetchError("connection reset"), 10 ** 18]

    assert client.get("/total_supply").status_code == 500
    assert client.get("/total_supply").status_code == 200
    assert fetcher.get_total_supply.call_count == 2


def test_metrics_endpoint(client):
    client.get("/zones")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "evince_cache_misses_total" in response.text


def test_create_cache_backends(settings):
    assert isinstance(create_cache(settings), TTLCache)

    with pytest.raises(ValueError):
        create_cache(settings.model_copy(update={"CACHE_BACKEND": "redis"}))
    with pytest.raises(ValueError):
        create_cache(settings.model_copy(update={"CACHE_BACKEND": "memcached"}))


def test_gateway_records_hits_and_misses(settings, fetcher, node, clock):
    monitor = Mock()
    gateway = Gateway(TTLCache(clock=clock), build_resolvers(settings, fetcher, node.connect), monitor)

    gateway.serve("zones")
    gateway.serve("zones")

    monitor.record_miss.assert_called_once_with("zones")
    monitor.record_hit.assert_called_once_with("zones")
    monitor.record_latency.assert_called_once()


def test_stats_endpoint(client):
    client.get("/zones")
    client.get("/zones")

    body = client.get("/stats").json()

    assert body["uptime_seconds"] >= 0
    assert set(body["hit_ratios"]) == {
        "validatorList", "existingDelegations", "zones", "apr", "total_supply", "circulating_supply",
    }
    assert 0 < body["hit_ratios"]["zones"] <= 1

from unittest.mock import Mock

import pytest
import requests

from evince.errors import FetchError
from evince.fetchers import (
    CONTINUOUS_VESTING,
    DELAYED_VESTING,
    PERIODIC_VESTING,
    Account,
    ChainAPR,
    DataFetcher,
    locked_amount,
)

START = 1_600_000_000
END = 1_700_000_000


def json_response(body, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def data_fetcher(session):
    return DataFetcher("http://lcd.test/", "http://apr.test", timeout=10, session=session,
                       clock=lambda: (START + END) / 2)


def vesting_account(type_url, original=1_000_000, denom="uqck", **extra):
    return Account.model_validate({
        "@type": type_url,
        "base_vesting_account": {
            "base_account": {"address": "quick1vesting"},
            "original_vesting": [{"denom": denom, "amount": str(original)}],
            "delegated_free": [],
            "delegated_vesting": [],
            "end_time": str(END),
        },
        **extra,
    })


class TestLockedAmount:
    def test_continuous_before_start_is_fully_locked(self):
        account = vesting_account(CONTINUOUS_VESTING, start_time=str(START))
        assert locked_amount(account, "uqck", START - 1) == 1_000_000

    def test_continuous_is_linear(self):
        account = vesting_account(CONTINUOUS_VESTING, start_time=str(START))
        assert locked_amount(account, "uqck", START + (END - START) / 4) == 750_000

    def test_continuous_after_end_is_unlocked(self):
        account = vesting_account(CONTINUOUS_VESTING, start_time=str(START))
        assert locked_amount(account, "uqck", END) == 0

    def test_continuous_large_amounts_stay_exact(self):
        original = 10 ** 24 + 7
        account = vesting_account(CONTINUOUS_VESTING, original=original, start_time=str(START))
        now = START + (END - START) // 2
        assert locked_amount(account, "uqck", now) == original * (END - now) // (END - START)

    def test_delayed(self):
        account = vesting_account(DELAYED_VESTING)
        assert locked_amount(account, "uqck", END - 1) == 1_000_000
        assert locked_amount(account, "uqck", END) == 0

    def test_periodic_unlocks_finished_periods(self):
        account = vesting_account(
            PERIODIC_VESTING,
            start_time=str(START),
            vesting_periods=[
                {"length": "100", "amount": [{"denom": "uqck", "amount": "300"}]},
                {"length": "100", "amount": [{"denom": "uqck", "amount": "300"}]},
                {"length": "100", "amount": [{"denom": "uqck", "amount": "400"}]},
            ],
        )
        assert locked_amount(account, "uqck", START + 150) == 700
        assert locked_amount(account, "uqck", START + 300) == 0

    def test_other_denoms_are_ignored(self):
        account = vesting_account(DELAYED_VESTING, denom="uatom")
        assert locked_amount(account, "uqck", START) == 0

    def test_plain_account_locks_nothing(self):
        account = Account.model_validate({"@type": "/cosmos.auth.v1beta1.BaseAccount",
                                          "address": "quick1plain"})
        assert locked_amount(account, "uqck", START) == 0


def test_get_chain_apr(data_fetcher, session):
    session.get.return_value = json_response({
        "repository": {"url": "https://github.com/cosmos/chain-registry"},
        "chain": {"chain_name": "cosmoshub", "chain_id": "cosmoshub-4",
                  "params": {"estimated_apr": 0.1834, "bonded_ratio": 0.6}},
    })

    assert data_fetcher.get_chain_apr("cosmoshub") == ChainAPR(chain_id="cosmoshub-4", apr=0.1834)
    session.get.assert_called_once_with("http://apr.test/cosmoshub", params=None, timeout=10)


def test_get_chain_apr_missing_estimate(data_fetcher, session):
    session.get.return_value = json_response({"chain": {"chain_id": "x-1", "params": {}}})

    with pytest.raises(FetchError):
        data_fetcher.get_chain_apr("x")


def test_get_total_supply_follows_pagination(data_fetcher, session):
    session.get.side_effect = [
        json_response({"supply": [{"denom": "ibc/ABC", "amount": "5"}],
                       "pagination": {"next_key": "AAE=", "total": "2"}}),
        json_response({"supply": [{"denom": "uqck", "amount": "1000000000000000000000"}],
                       "pagination": {"next_key": None, "total": "0"}}),
    ]

    assert data_fetcher.get_total_supply("uqck") == 10 ** 21
    second_call = session.get.call_args_list[1]
    assert second_call.args == ("http://lcd.test/cosmos/bank/v1beta1/supply",)
    assert second_call.kwargs["params"] == {"pagination.key": "AAE="}


def test_get_total_supply_missing_denom(data_fetcher, session):
    session.get.return_value = json_response({"supply": [], "pagination": {"next_key": None}})

    with pytest.raises(FetchError):
        data_fetcher.get_total_supply("uqck")


def test_get_vesting_account_locked(data_fetcher, session):
    session.get.return_value = json_response({
        "account": {
            "@type": DELAYED_VESTING,
            "base_vesting_account": {
                "original_vesting": [{"denom": "uqck", "amount": "42000000"}],
                "end_time": str(END),
            },
        }
    })

    assert data_fetcher.get_vesting_account_locked("quick1vesting", "uqck") == 42_000_000
    session.get.assert_called_once_with("http://lcd.test/cosmos/auth/v1beta1/accounts/quick1vesting",
                                        params=None, timeout=10)


def test_get_community_pool_truncates_decimals(data_fetcher, session):
    session.get.return_value = json_response({"pool": [
        {"denom": "ibc/ABC", "amount": "12.5"},
        {"denom": "uqck", "amount": "50000000000000.987654321000000000"},
    ]})

    assert data_fetcher.get_community_pool("uqck") == 50_000_000_000_000


def test_http_error_is_fetch_error(data_fetcher, session):
    session.get.return_value = json_response({"code": 5}, status_code=500)

    with pytest.raises(FetchError):
        data_fetcher.get_community_pool("uqck")


def test_timeout_is_fetch_error(data_fetcher, session):
    session.get.side_effect = requests.Timeout("read timed out")

    with pytest.raises(FetchError):
        data_fetcher.get_total_supply("uqck")


def test_invalid_json_is_fetch_error(data_fetcher, session):
    response = json_response(None)
    response.json.side_effect = ValueError("Expecting value")
    session.get.return_value = response

    with pytest.raises(FetchError):
        data_fetcher.get_chain_apr("cosmoshub")

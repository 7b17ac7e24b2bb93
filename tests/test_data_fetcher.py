"""
Unit tests for DataFetcher and swap normalisation.
"""

from __future__ import annotations

import pytest
import requests

from mint_bundles.data_fetcher import DataFetcher, TradeHistory, normalize_swap


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

MINT = "7EYnhQoR9YM3N7UoaKRoA44Uy8JeaZV3qyouov87awMs"
HELIUS_KEY = "test_api_key"
BUYER = "buyer_wallet"
POOL = "pool_wallet"


@pytest.fixture()
def fetcher() -> DataFetcher:
    return DataFetcher(helius_api_key=HELIUS_KEY)


def _swap(
    signature: str = "sig1",
    slot: int | None = 250_000_000,
    token_amount: float = 1000.0,
    lamports: int = 500_000_000,
    to_buyer: bool = True,
) -> dict:
    """A Helius enhanced SWAP transaction in which BUYER buys MINT for SOL."""
    return {
        "signature": signature,
        "slot": slot,
        "timestamp": 1_700_000_000,
        "type": "SWAP",
        "feePayer": BUYER,
        "nativeTransfers": [
            {"fromUserAccount": BUYER, "toUserAccount": POOL, "amount": lamports},
        ],
        "tokenTransfers": [
            {
                "mint": MINT,
                "tokenAmount": token_amount,
                "fromUserAccount": POOL if to_buyer else BUYER,
                "toUserAccount": BUYER if to_buyer else POOL,
            }
        ],
        "events": {"swap": {"nativeInput": {"account": BUYER, "amount": str(lamports)}}},
    }


def _sell(signature: str = "sell1", token_amount: float = 400.0, lamports: int = 800_000_000) -> dict:
    """A Helius enhanced SWAP transaction in which BUYER sells MINT back for SOL."""
    return {
        "signature": signature,
        "slot": 250_000_100,
        "timestamp": 1_700_000_600,
        "type": "SWAP",
        "feePayer": BUYER,
        "nativeTransfers": [
            {"fromUserAccount": POOL, "toUserAccount": BUYER, "amount": lamports},
        ],
        "tokenTransfers": [
            {"mint": MINT, "tokenAmount": token_amount, "fromUserAccount": BUYER, "toUserAccount": POOL},
        ],
        "events": {"swap": {"nativeOutput": {"account": BUYER, "amount": str(lamports)}}},
    }


# ---------------------------------------------------------------------------
# normalize_swap
# ---------------------------------------------------------------------------

class TestNormalizeSwap:
    def test_buy_is_normalised(self):
        trade = normalize_swap(_swap(), MINT)
        assert trade == {
            "signature": "sig1",
            "slot": 250_000_000,
            "timestamp": 1_700_000_000_000,
            "price": pytest.approx(0.0005),
            "quantity": 1000.0,
            "side": "buy",
            "buyer": BUYER,
        }

    def test_sell_is_normalised(self):
        trade = normalize_swap(_sell(), MINT)
        assert trade == {
            "signature": "sell1",
            "slot": 250_000_100,
            "timestamp": 1_700_000_600_000,
            "price": pytest.approx(0.002),
            "quantity": 400.0,
            "side": "sell",
            "seller": BUYER,
        }

    def test_sell_falls_back_to_incoming_native_transfers(self):
        txn = _sell()
        del txn["events"]
        assert normalize_swap(txn, MINT)["price"] == pytest.approx(0.002)

    def test_sell_falls_back_to_swap_token_inputs(self):
        txn = _sell()
        txn["tokenTransfers"] = []
        txn["events"]["swap"]["tokenInputs"] = [
            {
                "mint": MINT,
                "userAccount": BUYER,
                "rawTokenAmount": {"tokenAmount": "400000000", "decimals": 6},
            }
        ]
        trade = normalize_swap(txn, MINT)
        assert trade["side"] == "sell"
        assert trade["quantity"] == pytest.approx(400.0)

    def test_other_mint_is_ignored(self):
        assert normalize_swap(_swap(), "some_other_mint") is None

    def test_missing_slot_is_ignored(self):
        assert normalize_swap(_swap(slot=None), MINT) is None

    def test_falls_back_to_native_transfers(self):
        txn = _swap(lamports=250_000_000)
        del txn["events"]
        trade = normalize_swap(txn, MINT)
        assert trade["price"] == pytest.approx(0.25 / 1000)

    def test_falls_back_to_swap_token_outputs(self):
        txn = _swap()
        txn["tokenTransfers"] = []
        txn["events"]["swap"]["tokenOutputs"] = [
            {
                "mint": MINT,
                "userAccount": BUYER,
                "rawTokenAmount": {"tokenAmount": "2500000000", "decimals": 6},
            }
        ]
        trade = normalize_swap(txn, MINT)
        assert trade["quantity"] == pytest.approx(2500.0)

    def test_missing_sol_gives_zero_price(self):
        txn = _swap()
        del txn["events"]
        txn["nativeTransfers"] = []
        assert normalize_swap(txn, MINT)["price"] == 0.0


# ---------------------------------------------------------------------------
# get_mint_info
# ---------------------------------------------------------------------------

class TestGetMintInfo:
    def test_returns_supply_and_decimals(self, fetcher: DataFetcher, mocker):
        mock_response = {
            "jsonrpc": "2.0",
            "id": "1",
            "result": {
                "value": {
                    "amount": "1000000000000000",
                    "decimals": 6,
                    "uiAmount": 1_000_000_000.0,
                    "uiAmountString": "1000000000",
                }
            },
        }
        mock_post = mocker.patch("mint_bundles.data_fetcher.requests.post", return_value=_mock_resp(mock_response))
        result = fetcher.get_mint_info(MINT)
        assert result == {"supply": 1_000_000_000_000_000, "decimals": 6}
        assert mock_post.call_args.kwargs["json"]["method"] == "getTokenSupply"
        assert mock_post.call_args.kwargs["timeout"] == 10

    def test_returns_empty_dict_on_network_error(self, fetcher: DataFetcher, mocker):
        mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            side_effect=requests.exceptions.ConnectionError("Network unreachable"),
        )
        mocker.patch("mint_bundles.data_fetcher.time.sleep")
        assert fetcher.get_mint_info(MINT) == {}

    def test_returns_empty_dict_when_result_missing(self, fetcher: DataFetcher, mocker):
        mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            return_value=_mock_resp({"jsonrpc": "2.0", "id": "1", "result": None}),
        )
        assert fetcher.get_mint_info(MINT) == {}

    def test_returns_empty_dict_on_malformed_amount(self, fetcher: DataFetcher, mocker):
        mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            return_value=_mock_resp({"result": {"value": {"amount": "lots", "decimals": 6}}}),
        )
        assert fetcher.get_mint_info(MINT) == {}

    def test_custom_timeout_used(self, mocker):
        mock_post = mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            return_value=_mock_resp({"result": {"value": {"amount": "1", "decimals": 0}}}),
        )
        DataFetcher(HELIUS_KEY, timeout=3).get_mint_info(MINT)
        assert mock_post.call_args.kwargs["timeout"] == 3


# ---------------------------------------------------------------------------
# get_transaction_history
# ---------------------------------------------------------------------------

class TestGetTransactionHistory:
    def test_returns_normalised_buys_and_sells(self, fetcher: DataFetcher, mocker):
        mock_txns = [_swap("sig1"), _sell("sig2"), _swap("sig3", token_amount=0)]
        mock_get = mocker.patch("mint_bundles.data_fetcher.requests.get", return_value=_mock_resp(mock_txns))
        result = fetcher.get_transaction_history(MINT)
        assert [(t["signature"], t["side"]) for t in result] == [("sig1", "buy"), ("sig2", "sell")]
        params = mock_get.call_args.kwargs["params"]
        assert params["type"] == "SWAP"
        assert params["api-key"] == HELIUS_KEY
        assert "before" not in params

    def test_pages_backwards(self, fetcher: DataFetcher, mocker):
        page_one = [_swap(f"sig{i}") for i in range(100)]
        page_two = [_swap("sig100")]
        mock_get = mocker.patch(
            "mint_bundles.data_fetcher.requests.get",
            side_effect=[_mock_resp(page_one), _mock_resp(page_two)],
        )
        result = fetcher.get_transaction_history(MINT)
        assert len(result) == 101
        assert result.reached_start is True
        assert mock_get.call_count == 2
        assert mock_get.call_args_list[1].kwargs["params"]["before"] == "sig99"

    def test_stops_at_max_pages(self, mocker):
        mock_get = mocker.patch(
            "mint_bundles.data_fetcher.requests.get",
            return_value=_mock_resp([_swap(f"sig{i}") for i in range(100)]),
        )
        result = DataFetcher(HELIUS_KEY, history_max_pages=1).get_transaction_history(MINT)
        assert len(result) == 100
        assert result.reached_start is False
        assert mock_get.call_count == 1

    def test_returns_empty_list_on_error(self, fetcher: DataFetcher, mocker):
        mocker.patch(
            "mint_bundles.data_fetcher.requests.get",
            side_effect=requests.exceptions.Timeout(),
        )
        mocker.patch("mint_bundles.data_fetcher.time.sleep")
        assert fetcher.get_transaction_history(MINT) == []

    def test_returns_empty_list_when_response_is_dict(self, fetcher: DataFetcher, mocker):
        """If the API returns a dict (error) instead of a list, return empty list."""
        mocker.patch(
            "mint_bundles.data_fetcher.requests.get",
            return_value=_mock_resp({"error": "something went wrong"}),
        )
        assert fetcher.get_transaction_history(MINT) == []

    def test_keeps_earlier_pages_when_later_page_fails(self, fetcher: DataFetcher, mocker):
        mocker.patch(
            "mint_bundles.data_fetcher.requests.get",
            side_effect=[_mock_resp([_swap(f"sig{i}") for i in range(100)]), _mock_resp({}, status_code=404)],
        )
        result = fetcher.get_transaction_history(MINT)
        assert len(result) == 100
        assert result.reached_start is False

    def test_empty_final_page_reaches_start(self, fetcher: DataFetcher, mocker):
        mocker.patch(
            "mint_bundles.data_fetcher.requests.get",
            side_effect=[_mock_resp([_swap(f"sig{i}") for i in range(100)]), _mock_resp([])],
        )
        result = fetcher.get_transaction_history(MINT)
        assert isinstance(result, TradeHistory)
        assert result.reached_start is True


# ---------------------------------------------------------------------------
# Retry logic
# ---------------------------------------------------------------------------

class TestRetryLogic:
    def test_retries_on_server_error(self, fetcher: DataFetcher, mocker):
        """POST should retry on 5xx error and succeed on second attempt."""
        server_error = requests.exceptions.HTTPError(response=_mock_resp({}, status_code=503))
        mock_post = mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            side_effect=[server_error, _mock_resp({"result": {"value": {"amount": "5", "decimals": 0}}})],
        )
        mocker.patch("mint_bundles.data_fetcher.time.sleep")  # don't actually sleep
        assert fetcher.get_mint_info(MINT) == {"supply": 5, "decimals": 0}
        assert mock_post.call_count == 2

    def test_client_error_not_retried(self, fetcher: DataFetcher, mocker):
        mock_post = mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            return_value=_mock_resp({}, status_code=401),
        )
        assert fetcher.get_mint_info(MINT) == {}
        assert mock_post.call_count == 1

    def test_stops_after_max_retries(self, fetcher: DataFetcher, mocker):
        """After MAX_RETRIES failures, should return empty dict."""
        mock_post = mocker.patch(
            "mint_bundles.data_fetcher.requests.post",
            side_effect=requests.exceptions.Timeout("always times out"),
        )
        mocker.patch("mint_bundles.data_fetcher.time.sleep")
        assert fetcher.get_mint_info(MINT) == {}
        assert mock_post.call_count == 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _MockResponse:
    def __init__(self, data, status_code: int = 200):
        self._data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            err = requests.exceptions.HTTPError(f"HTTP {self.status_code}")
            err.response = self
            raise err

    def json(self):
        return self._data


def _mock_resp(data, status_code: int = 200) -> _MockResponse:
    return _MockResponse(data, status_code)

"""
Data fetcher module – retrieves mint metadata and swap history from Helius.
All methods return empty dicts/lists on failure; they never raise to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_HELIUS_RPC = "https://mainnet.helius-rpc.com/"
_HELIUS_API = "https://api.helius.xyz"

_DEFAULT_TIMEOUT = 10  # seconds
_MAX_RETRIES = 2
_PAGE_SIZE = 100
_LAMPORTS_PER_SOL = 1_000_000_000


def _post_with_retry(url: str, payload: dict, timeout: float = _DEFAULT_TIMEOUT) -> dict:
    """POST JSON with retry logic. Returns parsed JSON or empty dict."""
    last_exc: Exception | None = None
    for attempt in range(_MAX_RETRIES + 1):
        try:
            resp = requests.post(url, json=payload, timeout=timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.Timeout as exc:
            last_exc = exc
            logger.warning("Timeout on attempt %d/%d for %s", attempt + 1, _MAX_RETRIES + 1, _redact(url))
        except requests.exceptions.HTTPError as exc:
            # Don't retry 4xx client errors
            if exc.response is not None and 400 <= exc.response.status_code < 500:
                logger.error("HTTP %d for %s", exc.response.status_code, _redact(url))
                return {}
            last_exc = exc
            logger.warning("HTTP error on attempt %d: %s", attempt + 1, exc)
        except requests.exceptions.RequestException as exc:
            last_exc = exc
            logger.warning("Request error on attempt %d: %s", attempt + 1, exc)

        if attempt < _MAX_RETRIES:
            time.sleep(1.5 ** attempt)

    logger.error("All retries exhausted for %s: %s", _redact(url), last_exc)
    return {}


def _get_with_retry(url: str, params: dict | None = None, timeout: float = _DEFAULT_TIMEOUT) -> dict | list:
    """GET with retry logic. Returns parsed JSON or empty dict."""
    last_exc: Exception | None = None
    for attempt in range(_MAX_RETRIES + 1):
        try:
            resp = requests.get(url, params=params, timeout=timeout)
            if resp.status_code == 404:
                return {}
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.Timeout as exc:
            last_exc = exc
            logger.warning("Timeout on attempt %d/%d for %s", attempt + 1, _MAX_RETRIES + 1, url)
        except requests.exceptions.HTTPError as exc:
            if exc.response is not None and 400 <= exc.response.status_code < 500:
                logger.error("HTTP %d for %s", exc.response.status_code, url)
                return {}
            last_exc = exc
            logger.warning("HTTP error on attempt %d: %s", attempt + 1, exc)
        except requests.exceptions.RequestException as exc:
            last_exc = exc
            logger.warning("Request error on attempt %d: %s", attempt + 1, exc)

        if attempt < _MAX_RETRIES:
            time.sleep(1.5 ** attempt)

    logger.error("All retries exhausted for %s: %s", url, last_exc)
    return {}


def _redact(url: str) -> str:
    """Strip the api-key query string before a URL is logged."""
    return url.split("?", 1)[0]


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ---------------------------------------------------------------------------
# Swap normalisation
# ---------------------------------------------------------------------------

class TradeHistory(list):
    """
    A list of trade records that also says whether paging reached the start
    of the mint's history (``reached_start``) or stopped early.
    """

    def __init__(self, trades=(), reached_start: bool = False):
        super().__init__(trades)
        self.reached_start = reached_start


def normalize_swap(txn: dict, mint_address: str) -> dict | None:
    """
    Convert a Helius enhanced SWAP transaction into a trade record.

    Buys of ``mint_address`` by the fee payer carry ``side="buy"`` and a
    ``buyer``; sells carry ``side="sell"`` and a ``seller``. Unrelated swaps
    and records missing a slot or signature yield ``None``.
    """
    signature = txn.get("signature")
    slot = txn.get("slot")
    wallet = txn.get("feePayer") or txn.get("fee_payer") or ""
    if not signature or slot is None or not wallet:
        return None

    trade = {
        "signature": signature,
        "slot": int(slot),
        "timestamp": int(_to_float(txn.get("timestamp")) * 1000),
    }

    quantity = _received_quantity(txn, mint_address, wallet)
    if quantity > 0:
        trade.update(side="buy", price=_sol_paid(txn, wallet) / quantity, quantity=quantity, buyer=wallet)
        return trade

    quantity = _sent_quantity(txn, mint_address, wallet)
    if quantity > 0:
        trade.update(side="sell", price=_sol_received(txn, wallet) / quantity, quantity=quantity, seller=wallet)
        return trade

    return None


def _received_quantity(txn: dict, mint_address: str, buyer: str) -> float:
    """UI token amount of ``mint_address`` delivered to ``buyer``."""
    total = 0.0
    for transfer in txn.get("tokenTransfers", []) or []:
        if transfer.get("mint") == mint_address and transfer.get("toUserAccount") == buyer:
            total += _to_float(transfer.get("tokenAmount"))
    if total > 0:
        return total

    swap = (txn.get("events") or {}).get("swap") or {}
    for output in swap.get("tokenOutputs", []) or []:
        if output.get("mint") != mint_address or output.get("userAccount") != buyer:
            continue
        raw = output.get("rawTokenAmount") or {}
        decimals = int(raw.get("decimals") or 0)
        total += _to_float(raw.get("tokenAmount")) / (10 ** decimals)
    return total


def _sol_paid(txn: dict, buyer: str) -> float:
    """SOL spent by ``buyer``: the swap's native input, else outgoing native transfers."""
    swap = (txn.get("events") or {}).get("swap") or {}
    native_input = swap.get("nativeInput") or {}
    lamports = _to_float(native_input.get("amount"))
    if lamports <= 0:
        lamports = sum(
            _to_float(t.get("amount"))
            for t in txn.get("nativeTransfers", []) or []
            if t.get("fromUserAccount") == buyer
        )
    return lamports / _LAMPORTS_PER_SOL


def _sent_quantity(txn: dict, mint_address: str, seller: str) -> float:
    """UI token amount of ``mint_address`` sent away by ``seller``."""
    total = 0.0
    for transfer in txn.get("tokenTransfers", []) or []:
        if transfer.get("mint") == mint_address and transfer.get("fromUserAccount") == seller:
            total += _to_float(transfer.get("tokenAmount"))
    if total > 0:
        return total

    swap = (txn.get("events") or {}).get("swap") or {}
    for token_input in swap.get("tokenInputs", []) or []:
        if token_input.get("mint") != mint_address or token_input.get("userAccount") != seller:
            continue
        raw = token_input.get("rawTokenAmount") or {}
        decimals = int(raw.get("decimals") or 0)
        total += _to_float(raw.get("tokenAmount")) / (10 ** decimals)
    return total


def _sol_received(txn: dict, seller: str) -> float:
    """SOL received by ``seller``: the swap's native output, else incoming native transfers."""
    swap = (txn.get("events") or {}).get("swap") or {}
    native_output = swap.get("nativeOutput") or {}
    lamports = _to_float(native_output.get("amount"))
    if lamports <= 0:
        lamports = sum(
            _to_float(t.get("amount"))
            for t in txn.get("nativeTransfers", []) or []
            if t.get("toUserAccount") == seller
        )
    return lamports / _LAMPORTS_PER_SOL


# ---------------------------------------------------------------------------
# DataFetcher
# ---------------------------------------------------------------------------

class DataFetcher:
    """Fetches mint metadata and swap history from the Helius APIs."""

    def __init__(
        self,
        helius_api_key: str,
        timeout: float = _DEFAULT_TIMEOUT,
        history_max_pages: int = 5,
    ):
        self.helius_api_key = helius_api_key
        self.timeout = timeout
        self.history_max_pages = history_max_pages

    # ------------------------------------------------------------------
    # Helius helpers
    # ------------------------------------------------------------------

    def _helius_rpc_url(self) -> str:
        return f"{_HELIUS_RPC}?api-key={self.helius_api_key}"

    def _helius_rpc(self, method: str, params: Any) -> dict:
        payload = {"jsonrpc": "2.0", "id": "1", "method": method, "params": params}
        return _post_with_retry(self._helius_rpc_url(), payload, timeout=self.timeout)

    # ------------------------------------------------------------------
    # Public API methods
    # ------------------------------------------------------------------

    def get_mint_info(self, mint_address: str) -> dict:
        """Return ``{"supply": <raw units>, "decimals": int}`` or ``{}`` on failure."""
        data = self._helius_rpc("getTokenSupply", [mint_address])
        value = (data.get("result") or {}).get("value") or {}
        if not value or value.get("amount") is None:
            return {}
        try:
            return {
                "supply": int(value["amount"]),
                "decimals": int(value.get("decimals", 0)),
            }
        except (TypeError, ValueError):
            logger.error("Malformed getTokenSupply response for %s: %r", mint_address, value)
            return {}

    def get_transaction_history(self, mint_address: str) -> TradeHistory:
        """
        Page through recent SWAP transactions and return normalised buys and
        sells. ``reached_start`` is set only when the API ran out of pages;
        hitting ``history_max_pages`` or a failed page leaves it False.
        """
        url = f"{_HELIUS_API}/v0/addresses/{mint_address}/transactions"
        trades = TradeHistory()
        before: str | None = None

        for page in range(self.history_max_pages):
            params = {
                "api-key": self.helius_api_key,
                "limit": _PAGE_SIZE,
                "type": "SWAP",
            }
            if before:
                params["before"] = before

            result = _get_with_retry(url, params=params, timeout=self.timeout)
            if not isinstance(result, list):
                if page == 0:
                    return TradeHistory()
                break
            if not result:
                trades.reached_start = True
                break

            for txn in result:
                trade = normalize_swap(txn, mint_address)
                if trade is not None:
                    trades.append(trade)

            logger.debug("Fetched page %d for %s (%d txns)", page + 1, mint_address, len(result))
            if len(result) < _PAGE_SIZE:
                trades.reached_start = True
                break
            before = result[-1].get("signature")
            if not before:
                break

        return trades

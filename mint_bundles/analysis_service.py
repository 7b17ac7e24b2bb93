"""
Analysis service – fetches a mint's data and runs bundle detection behind a
short-lived cache, returning a uniform success/failure envelope.
"""

from __future__ import annotations

import copy
import logging
import numbers
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from mint_bundles.bundler_detector import BundlerDetector
from mint_bundles.cache import AnalysisCache
from mint_bundles.data_fetcher import DataFetcher

logger = logging.getLogger(__name__)

MintInfoFetcher = Callable[[str], dict]
HistoryFetcher = Callable[[str], list]

TIMEFRAMES_MS: dict[str, int | None] = {
    "1h": 3_600_000,
    "24h": 24 * 3_600_000,
    "7d": 7 * 24 * 3_600_000,
    "30d": 30 * 24 * 3_600_000,
    "all": None,
}


def to_display_units(raw_amount: float, decimals: int) -> float:
    """Convert a raw base-unit token amount into UI units."""
    return raw_amount / (10 ** decimals)


def filter_timeframe(transactions: list[dict], timeframe: str) -> list[dict]:
    """
    Keep transactions inside ``timeframe``, measured back from the newest
    timestamp in the history (not from the wall clock).
    """
    window = TIMEFRAMES_MS[timeframe]
    if window is None or not transactions:
        return list(transactions)
    newest = max(t["timestamp"] for t in transactions)
    return [t for t in transactions if t["timestamp"] >= newest - window]


class MintBundleAnalyzer:
    """Runs bundle analysis for a mint using injected data sources."""

    def __init__(
        self,
        fetch_mint_info: MintInfoFetcher,
        fetch_transaction_history: HistoryFetcher,
        detector: BundlerDetector | None = None,
        cache: AnalysisCache | None = None,
    ):
        self.fetch_mint_info = fetch_mint_info
        self.fetch_transaction_history = fetch_transaction_history
        self.detector = detector or BundlerDetector()
        self.cache = cache or AnalysisCache(should_cache=_is_success)

    @classmethod
    def from_fetcher(
        cls,
        fetcher: DataFetcher,
        cache_ttl: float = 300,
        cache_max_size: int = 256,
    ) -> "MintBundleAnalyzer":
        """Build an analyzer backed by a DataFetcher."""
        return cls(
            fetcher.get_mint_info,
            fetcher.get_transaction_history,
            cache=AnalysisCache(ttl=cache_ttl, should_cache=_is_success, max_size=cache_max_size),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze(
        self,
        mint_address: str,
        min_slot_transactions: int = BundlerDetector.MIN_SLOT_TRANSACTIONS,
        timeframe: str = "all",
        min_supply_percentage: float = 0.0,
    ) -> dict:
        """
        Analyse a mint and return ``{"success": True, "data": analysis}`` or
        ``{"success": False, "error": message}``.

        Raises ValueError for invalid arguments; fetch problems never raise.
        Each call returns its own copy, so callers may modify the result
        without touching the cached one.
        """
        mint_address = mint_address.strip()
        if not mint_address:
            raise ValueError("mint_address must not be empty")
        if min_slot_transactions < 2:
            raise ValueError("min_slot_transactions must be at least 2")
        if timeframe not in TIMEFRAMES_MS:
            raise ValueError(f"timeframe must be one of {', '.join(TIMEFRAMES_MS)}")
        if not 0 <= min_supply_percentage <= 100:
            raise ValueError("min_supply_percentage must be between 0 and 100")

        key = (mint_address, min_slot_transactions, timeframe, min_supply_percentage)
        result = self.cache.get_or_compute(
            key,
            lambda: self._run(mint_address, min_slot_transactions, timeframe, min_supply_percentage),
        )
        return copy.deepcopy(result)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(
        self,
        mint_address: str,
        min_slot_transactions: int,
        timeframe: str,
        min_supply_percentage: float,
    ) -> dict:
        try:
            mint_info, history = self._fetch(mint_address)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Fetching data for %s failed", mint_address)
            return _failure(f"Failed to fetch data for {mint_address}: {exc}")

        if not mint_info:
            return _failure(f"Mint metadata unavailable for {mint_address}")
        try:
            supply, decimals = _parse_mint_info(mint_info)
        except ValueError as exc:
            return _failure(f"Malformed mint metadata for {mint_address}: {exc}")
        if supply <= 0:
            return _failure(f"Mint {mint_address} reports no supply")

        if not history:
            return _failure(f"No transaction history for {mint_address}")
        try:
            _check_history(history)
        except ValueError as exc:
            return _failure(f"Malformed transaction history for {mint_address}: {exc}")

        transactions = filter_timeframe(history, timeframe)
        total_supply = to_display_units(supply, decimals)
        reached_launch = timeframe == "all" and bool(getattr(history, "reached_start", False))

        analysis = self.detector.detect(
            mint_address,
            transactions,
            total_supply,
            min_slot_transactions=min_slot_transactions,
            min_supply_percentage=min_supply_percentage,
            reached_launch=reached_launch,
        )
        logger.info(
            "Analysed %s: %d transactions, %d bundles",
            mint_address, len(transactions), analysis["total_bundles"],
        )
        return {"success": True, "data": analysis}

    def _fetch(self, mint_address: str) -> tuple[dict, list]:
        """Fetch metadata and history concurrently; both must finish before analysis."""
        with ThreadPoolExecutor(max_workers=2) as executor:
            info_future = executor.submit(self.fetch_mint_info, mint_address)
            history_future = executor.submit(self.fetch_transaction_history, mint_address)
            return info_future.result(), history_future.result()


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _parse_mint_info(mint_info) -> tuple[float, int]:
    """Return ``(supply, decimals)``; raise ValueError when either is unusable."""
    if not isinstance(mint_info, dict):
        raise ValueError(f"expected a mapping, got {type(mint_info).__name__}")
    supply = mint_info.get("supply")
    decimals = mint_info.get("decimals", 0)
    if not _is_number(supply):
        raise ValueError(f"supply must be a number, got {supply!r}")
    if not _is_number(decimals) or decimals != int(decimals) or decimals < 0:
        raise ValueError(f"decimals must be a non-negative integer, got {decimals!r}")
    return supply, int(decimals)


def _check_history(history) -> None:
    """Raise ValueError naming the first trade record that can't be analysed."""
    if not isinstance(history, list):
        raise ValueError(f"expected a list, got {type(history).__name__}")
    for index, record in enumerate(history):
        if not isinstance(record, dict):
            raise ValueError(f"record {index} is not a mapping")
        signature = record.get("signature")
        if not isinstance(signature, str) or not signature:
            raise ValueError(f"record {index} has no signature")
        slot = record.get("slot")
        if not isinstance(slot, int) or isinstance(slot, bool):
            raise ValueError(f"record {index} ({signature}) has a bad slot: {slot!r}")
        for field in ("timestamp", "price", "quantity"):
            if not _is_number(record.get(field)):
                raise ValueError(f"record {index} ({signature}) has a bad {field}: {record.get(field)!r}")
        if record.get("side", "buy") not in ("buy", "sell"):
            raise ValueError(f"record {index} ({signature}) has an unknown side: {record['side']!r}")


def _failure(message: str) -> dict:
    logger.warning(message)
    return {"success": False, "error": message}


def _is_success(result: dict) -> bool:
    return bool(result.get("success"))

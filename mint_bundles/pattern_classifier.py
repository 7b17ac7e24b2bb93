"""
Pattern classifier – flags bundles that match known manipulation signatures.
"""

from __future__ import annotations

import logging
from typing import Iterable

logger = logging.getLogger(__name__)


class PatternClassifier:
    """Sorts bundles into independent, non-exclusive suspicious-pattern lists."""

    # Thresholds
    RAPID_VELOCITY_THRESHOLD = 1000     # tokens per hour
    PRICE_RATIO_THRESHOLD = 2.0         # max/min price within one bundle
    COORDINATED_MIN_TXNS = 5
    COORDINATED_MIN_SUPPLY_PCT = 5.0
    EARLY_SLOT_WINDOW = 10              # first N observed slots count as launch snipes

    PATTERNS = ("rapid_accumulation", "price_manipulation", "coordinated_buying", "snipers")

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def classify(self, bundles: list[dict], observed_slots: Iterable[int] | None = None) -> dict[str, list[dict]]:
        """
        Return a dict mapping each pattern name to the bundles that match it.

        ``observed_slots`` is every slot seen in the mint's history (bundled or
        not); the earliest EARLY_SLOT_WINDOW of them define the sniper window.
        Without it the ``snipers`` list stays empty.
        """
        early_slots = set(sorted(observed_slots or [])[: self.EARLY_SLOT_WINDOW])

        return {
            "rapid_accumulation": [b for b in bundles if self.is_rapid_accumulation(b)],
            "price_manipulation": [b for b in bundles if self.is_price_manipulation(b)],
            "coordinated_buying": [b for b in bundles if self.is_coordinated_buying(b)],
            "snipers": [b for b in bundles if b["slot"] in early_slots],
        }

    def is_rapid_accumulation(self, bundle: dict) -> bool:
        return bundle["purchase_velocity"] > self.RAPID_VELOCITY_THRESHOLD

    def is_price_manipulation(self, bundle: dict) -> bool:
        """True when the highest price paid in the bundle is more than double the lowest."""
        prices = [t["price"] for t in bundle["transactions"]]
        if not prices:
            return False
        low = min(prices)
        if low <= 0:
            logger.debug("Skipping price check for slot %s: non-positive price", bundle["slot"])
            return False
        return max(prices) / low > self.PRICE_RATIO_THRESHOLD

    def is_coordinated_buying(self, bundle: dict) -> bool:
        return (
            len(bundle["transactions"]) >= self.COORDINATED_MIN_TXNS
            and bundle["supply_percentage"] > self.COORDINATED_MIN_SUPPLY_PCT
        )

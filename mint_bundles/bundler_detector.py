"""
Bundler detector – groups same-slot purchases of a mint into bundles and
aggregates them into a per-mint analysis.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from mint_bundles.pattern_classifier import PatternClassifier

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000


class BundlerDetector:
    """Detects groups of purchases that landed in the same slot (block)."""

    MIN_SLOT_TRANSACTIONS = 2   # default min txns in a slot to call it a bundle
    SLOT_DURATION_MS = 400      # floor for a bundle's active period

    def __init__(self, classifier: PatternClassifier | None = None):
        self.classifier = classifier or PatternClassifier()

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def detect(
        self,
        mint_address: str,
        transactions: list[dict],
        total_supply: float,
        min_slot_transactions: int = MIN_SLOT_TRANSACTIONS,
        min_supply_percentage: float = 0.0,
        reached_launch: bool = False,
    ) -> dict:
        """
        Run the full pipeline over a mint's trade history.

        Records with ``side == "sell"`` never form bundles; they are credited
        to the seller's bundles instead. Records without a ``side`` are buys.
        Sniper detection needs ``reached_launch``: the history must go back to
        the mint's first trades for "earliest slots" to mean launch.

        Returns a MintBundleAnalysis dict with: mint_address, total_bundles,
        total_sol_spent, total_unique_wallets, total_supply, total_bought,
        total_sold, total_profit_loss, largest_bundle, bundles,
        suspicious_patterns.
        """
        buys = [t for t in transactions if t.get("side", "buy") != "sell"]
        sells = [t for t in transactions if t.get("side") == "sell"]

        slot_groups = self.group_by_slot(buys)
        bundles = self.build_bundles(slot_groups, total_supply, min_slot_transactions, sells=sells)

        if min_supply_percentage > 0:
            bundles = [b for b in bundles if b["supply_percentage"] >= min_supply_percentage]

        observed_slots = slot_groups.keys() if reached_launch else None
        patterns = self.classifier.classify(bundles, observed_slots=observed_slots)
        return self.aggregate(mint_address, bundles, patterns, total_supply)

    def group_by_slot(self, transactions: list[dict]) -> dict[int, list[dict]]:
        """Group transactions by slot number."""
        groups: dict[int, list[dict]] = defaultdict(list)
        for txn in transactions:
            slot = txn.get("slot")
            if slot is not None:
                groups[slot].append(txn)
        return dict(groups)

    def build_bundles(
        self,
        slot_groups: dict[int, list[dict]],
        total_supply: float,
        min_slot_transactions: int = MIN_SLOT_TRANSACTIONS,
        sells: list[dict] | None = None,
    ) -> list[dict]:
        """Return one bundle per slot holding at least ``min_slot_transactions`` txns."""
        if total_supply <= 0:
            logger.warning("Total supply is %s; supply percentages will be reported as 0", total_supply)

        bundles: list[dict] = []
        for slot in sorted(slot_groups):
            txns = slot_groups[slot]
            if len(txns) < min_slot_transactions:
                continue
            bundles.append(self._build_bundle(slot, txns, total_supply))

        if sells:
            self._apply_sells(bundles, sells)
        return bundles

    def aggregate(
        self,
        mint_address: str,
        bundles: list[dict],
        patterns: dict[str, list[dict]],
        total_supply: float,
    ) -> dict:
        """Assemble the top-level analysis; bundles are ranked by supply share."""
        ranked = sorted(bundles, key=lambda b: b["supply_percentage"], reverse=True)

        # Counts signatures, not owners: each bundled purchase is treated as a wallet.
        signatures: set[str] = set()
        for bundle in ranked:
            signatures.update(txn["signature"] for txn in bundle["transactions"])

        return {
            "mint_address": mint_address,
            "total_bundles": len(ranked),
            "total_sol_spent": sum(b["sol_spent"] for b in ranked),
            "total_unique_wallets": len(signatures),
            "total_supply": total_supply,
            "total_bought": sum(b["total_bought"] for b in ranked),
            "total_sold": sum(b["total_sold"] for b in ranked),
            "total_profit_loss": sum(b["profit_loss"] for b in ranked),
            "largest_bundle": ranked[0] if ranked else None,
            "bundles": ranked,
            "suspicious_patterns": patterns,
        }

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _build_bundle(self, slot: int, txns: list[dict], total_supply: float) -> dict:
        ordered = sorted(txns, key=lambda t: (t["timestamp"], t["signature"]))

        total_quantity = sum(t["quantity"] for t in ordered)
        sol_spent = sum(t["price"] * t["quantity"] for t in ordered)
        first_time = min(t["timestamp"] for t in ordered)
        last_time = max(t["timestamp"] for t in ordered)
        buyers = {t.get("buyer") for t in ordered if t.get("buyer")}

        supply_pct = total_quantity / total_supply * 100 if total_supply > 0 else 0.0
        avg_price = sol_spent / total_quantity if total_quantity > 0 else 0.0

        return {
            "slot": slot,
            "bundle_address": txns[0]["signature"],
            "transactions": ordered,
            "total_quantity": total_quantity,
            "supply_percentage": supply_pct,
            "sol_spent": sol_spent,
            "current_holdings": total_quantity,
            "avg_price_per_token": avg_price,
            "first_purchase_time": first_time,
            "last_purchase_time": last_time,
            "purchase_velocity": self._purchase_velocity(total_quantity, first_time, last_time),
            "unique_buyers": len(buyers),
            "buyers": sorted(buyers),
            "is_pumpfun_bundle": False,
            "total_bought": total_quantity,
            "total_sold": 0.0,
            "sell_amount": 0.0,
            "profit_loss": -sol_spent,
        }

    def _apply_sells(self, bundles: list[dict], sells: list[dict]) -> None:
        """
        Credit each sell to the seller's most recent bundle at or before the
        sell's slot. Sells by wallets that never bundled are ignored.
        """
        by_wallet: dict[str, list[dict]] = defaultdict(list)
        for bundle in bundles:  # ascending slot order
            for wallet in bundle["buyers"]:
                by_wallet[wallet].append(bundle)

        for sell in sorted(sells, key=lambda t: (t["slot"], t["timestamp"], t["signature"])):
            candidates = [b for b in by_wallet.get(sell.get("seller") or "", []) if b["slot"] <= sell["slot"]]
            if not candidates:
                continue
            bundle = candidates[-1]
            bundle["total_sold"] += sell["quantity"]
            bundle["sell_amount"] += sell["price"] * sell["quantity"]

        for bundle in bundles:
            # Bundled wallets may also have bought outside the bundle.
            bundle["current_holdings"] = max(bundle["total_bought"] - bundle["total_sold"], 0.0)
            bundle["profit_loss"] = bundle["sell_amount"] - bundle["sol_spent"]

    def _purchase_velocity(self, total_quantity: float, first_time: int, last_time: int) -> float:
        """Tokens per hour; sub-slot durations are floored to one slot."""
        if total_quantity <= 0:
            return 0.0
        duration_ms = max(last_time - first_time, self.SLOT_DURATION_MS)
        return total_quantity / (duration_ms / MS_PER_HOUR)

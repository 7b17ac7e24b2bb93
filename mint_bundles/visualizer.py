"""
Visualizer – generates PNG charts for bundle analysis results.
Uses matplotlib for maximum compatibility.
"""

from __future__ import annotations

import logging
from pathlib import Path

from mint_bundles.report_generator import flagged_slots, pattern_counts

logger = logging.getLogger(__name__)


def _get_matplotlib():
    import matplotlib
    matplotlib.use("Agg")  # non-interactive backend
    import matplotlib.pyplot as plt
    return plt


class Visualizer:
    """Generates PNG charts and saves them to output_dir."""

    MAX_BARS = 15

    _COLORS = {
        "bundle": "#2196F3",
        "flagged": "#B71C1C",
        "pattern": "#FF9800",
        "bg": "#1e1e2e",
        "fg": "#cdd6f4",
        "grid": "#313244",
    }

    def __init__(self, output_dir: str = "./output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Individual chart methods
    # ------------------------------------------------------------------

    def plot_bundle_supply(self, analysis: dict) -> str:
        """Bar chart: supply % held by each bundle, flagged bundles in red."""
        plt = _get_matplotlib()

        bundles = analysis.get("bundles", [])[: self.MAX_BARS]
        out_path = str(self.output_dir / "bundle_supply.png")

        if not bundles:
            fig, ax = plt.subplots(figsize=(6, 3), facecolor=self._COLORS["bg"])
            ax.set_facecolor(self._COLORS["bg"])
            ax.text(
                0.5, 0.5, "No bundles detected", ha="center", va="center",
                transform=ax.transAxes, color=self._COLORS["fg"], fontsize=12,
            )
            ax.set_title("Bundle Supply Share", color=self._COLORS["fg"], fontsize=13)
            ax.axis("off")
            fig.savefig(out_path, bbox_inches="tight", dpi=120, facecolor=self._COLORS["bg"])
            plt.close(fig)
            return out_path

        suspicious = flagged_slots(analysis)
        x_labels = [f"Slot {b['slot']}" for b in bundles]
        shares = [b["supply_percentage"] for b in bundles]
        bar_colors = [
            self._COLORS["flagged"] if b["slot"] in suspicious else self._COLORS["bundle"]
            for b in bundles
        ]

        fig, ax = plt.subplots(figsize=(max(6, len(bundles) * 0.8), 5), facecolor=self._COLORS["bg"])
        ax.set_facecolor(self._COLORS["bg"])

        bars = ax.bar(x_labels, shares, color=bar_colors, edgecolor="none")
        ax.bar_label(bars, fmt="%.2f%%", color=self._COLORS["fg"], fontsize=8, padding=3)

        ax.set_xlabel("Slot", color=self._COLORS["fg"], fontsize=10)
        ax.set_ylabel("Supply %", color=self._COLORS["fg"], fontsize=10)
        ax.set_title("Bundle Supply Share (red = suspicious)", color=self._COLORS["fg"], fontsize=12)
        ax.tick_params(colors=self._COLORS["fg"])
        ax.spines[:].set_color(self._COLORS["grid"])
        ax.yaxis.grid(True, color=self._COLORS["grid"], linestyle="--", alpha=0.5)
        ax.set_axisbelow(True)
        plt.xticks(rotation=30, ha="right")

        fig.savefig(out_path, bbox_inches="tight", dpi=120, facecolor=self._COLORS["bg"])
        plt.close(fig)
        return out_path

    def plot_pattern_counts(self, analysis: dict) -> str:
        """Horizontal bar chart: bundles flagged per suspicious pattern."""
        plt = _get_matplotlib()

        counts = pattern_counts(analysis)
        names = [name.replace("_", " ").title() for name in counts]
        values = list(counts.values())

        fig, ax = plt.subplots(figsize=(8, 4), facecolor=self._COLORS["bg"])
        ax.set_facecolor(self._COLORS["bg"])

        bars = ax.barh(names, values, color=self._COLORS["pattern"], edgecolor="none")
        ax.bar_label(bars, fmt="%d", color=self._COLORS["fg"], fontsize=9, padding=4)

        ax.set_title(
            f"Suspicious Patterns  │  {analysis.get('total_bundles', 0)} bundles",
            color=self._COLORS["fg"],
            fontsize=12,
        )
        ax.set_xlabel("Bundles", color=self._COLORS["fg"], fontsize=10)
        ax.tick_params(colors=self._COLORS["fg"])
        ax.spines[:].set_color(self._COLORS["grid"])
        ax.xaxis.grid(True, color=self._COLORS["grid"], linestyle="--", alpha=0.5)
        ax.set_axisbelow(True)

        out_path = str(self.output_dir / "pattern_counts.png")
        fig.savefig(out_path, bbox_inches="tight", dpi=120, facecolor=self._COLORS["bg"])
        plt.close(fig)
        return out_path

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def generate_all(self, analysis: dict) -> list[str]:
        """Generate all charts and return list of file paths."""
        paths: list[str] = []
        for name in ("plot_bundle_supply", "plot_pattern_counts"):
            try:
                paths.append(getattr(self, name)(analysis))
            except Exception:  # noqa: BLE001
                logger.warning("%s chart failed", name, exc_info=True)
        return paths

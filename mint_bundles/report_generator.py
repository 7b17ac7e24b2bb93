"""
Report generator – produces JSON and rich terminal dashboard outputs.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mint_bundles.pattern_classifier import PatternClassifier

_PATTERN_LABELS = {
    "rapid_accumulation": "Rapid Accumulation",
    "price_manipulation": "Price Manipulation",
    "coordinated_buying": "Coordinated Buying",
    "snipers": "Potential Snipers",
}


def pattern_counts(analysis: dict) -> dict[str, int]:
    """Number of bundles flagged under each suspicious pattern."""
    patterns = analysis.get("suspicious_patterns", {})
    return {name: len(patterns.get(name, [])) for name in PatternClassifier.PATTERNS}


def flagged_slots(analysis: dict) -> set[int]:
    """Slots of bundles that appear in at least one suspicious pattern."""
    slots: set[int] = set()
    for bundles in analysis.get("suspicious_patterns", {}).values():
        slots.update(b["slot"] for b in bundles)
    return slots


class ReportGenerator:
    """Generates bundle analysis reports in multiple formats."""

    TOP_BUNDLES = 10

    def __init__(self, output_dir: str = "./output", console: Console | None = None):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.console = console or Console()

    # ------------------------------------------------------------------
    # JSON report
    # ------------------------------------------------------------------

    def generate_json_report(self, mint_address: str, analysis: dict, chart_paths: list[str] | None = None) -> str:
        """Write a JSON report and return the file path."""
        largest = analysis.get("largest_bundle")
        report = {
            "generated_at": datetime.now(tz=timezone.utc).isoformat(),
            "mint_address": mint_address,
            "summary": {
                k: analysis.get(k)
                for k in (
                    "total_bundles",
                    "total_sol_spent",
                    "total_unique_wallets",
                    "total_supply",
                    "total_bought",
                    "total_sold",
                    "total_profit_loss",
                )
            },
            "pattern_counts": pattern_counts(analysis),
            "largest_bundle_slot": largest["slot"] if largest else None,
            "bundles_preview": analysis.get("bundles", [])[: self.TOP_BUNDLES],
            "flagged_slots": sorted(flagged_slots(analysis)),
            "chart_files": chart_paths or [],
        }

        filename = f"bundle_report_{mint_address[:8]}_{self._ts()}.json"
        out_path = self.output_dir / filename
        out_path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
        return str(out_path)

    # ------------------------------------------------------------------
    # Terminal dashboard (rich)
    # ------------------------------------------------------------------

    def print_terminal_dashboard(self, mint_address: str, analysis: dict) -> None:
        """Print a rich formatted terminal dashboard."""
        console = self.console
        counts = pattern_counts(analysis)
        flagged = sum(counts.values())

        console.print(
            Panel(
                f"[bold cyan]🔍 Mint Bundle Analysis[/bold cyan]\n[dim]{mint_address}[/dim]",
                title="Bundle Report",
                border_style="cyan",
            )
        )

        if not analysis.get("total_bundles"):
            console.print(
                Panel(
                    "[green]No bundles found.[/green] No slot held enough purchases to qualify.",
                    border_style="green",
                )
            )
            return

        largest = analysis.get("largest_bundle") or {}
        console.print(
            Panel(
                f"Total Bundles: [yellow]{analysis['total_bundles']}[/yellow]  │  "
                f"Total SOL Spent: [yellow]{analysis['total_sol_spent']:.2f} SOL[/yellow]  │  "
                f"Unique Wallets: [yellow]{analysis['total_unique_wallets']}[/yellow]\n"
                f"Sold Back: [yellow]{analysis.get('total_sold', 0):,.0f}[/yellow] of "
                f"[yellow]{analysis.get('total_bought', 0):,.0f}[/yellow] tokens  │  "
                f"Realised P/L: [yellow]{analysis.get('total_profit_loss', 0):+.2f} SOL[/yellow]\n"
                f"Largest Bundle: slot [yellow]{largest.get('slot')}[/yellow] holding "
                f"[yellow]{largest.get('supply_percentage', 0):.2f}%[/yellow] of supply",
                title="Summary",
                border_style="red" if flagged else "yellow",
            )
        )

        bundle_table = Table(title="Top Bundles", box=box.ROUNDED, border_style="dim")
        bundle_table.add_column("Slot", style="white")
        bundle_table.add_column("Txns", justify="right")
        bundle_table.add_column("Supply %", justify="right")
        bundle_table.add_column("SOL Spent", justify="right")
        bundle_table.add_column("Holding", justify="right")
        bundle_table.add_column("Avg Price", justify="right")
        bundle_table.add_column("Label", style="dim")
        suspicious = flagged_slots(analysis)
        for bundle in analysis["bundles"][: self.TOP_BUNDLES]:
            slot_style = "bold red" if bundle["slot"] in suspicious else "white"
            bundle_table.add_row(
                f"[{slot_style}]{bundle['slot']}[/{slot_style}]",
                str(len(bundle["transactions"])),
                f"{bundle['supply_percentage']:.2f}%",
                f"{bundle['sol_spent']:.4f}",
                f"{bundle.get('current_holdings', 0):,.0f}",
                f"{bundle['avg_price_per_token']:.3g}",
                bundle["bundle_address"][:12] + "…",
            )
        console.print(bundle_table)

        pattern_table = Table(title="Suspicious Patterns", box=box.ROUNDED, border_style="dim")
        pattern_table.add_column("Pattern", style="white")
        pattern_table.add_column("Bundles", justify="right")
        for name, count in counts.items():
            style = "red" if count else "green"
            pattern_table.add_row(_PATTERN_LABELS[name], f"[{style}]{count}[/{style}]")
        console.print(pattern_table)

    def print_failure(self, mint_address: str, error: str) -> None:
        """Report a failed analysis, distinct from a clean 'no bundles' result."""
        self.console.print(
            Panel(
                f"[bold red]Failed to analyze[/bold red] [dim]{mint_address}[/dim]\n{error}",
                title="Analysis Unavailable",
                border_style="red",
            )
        )

    @staticmethod
    def _ts() -> str:
        return datetime.now().strftime("%Y%m%d_%H%M%S")

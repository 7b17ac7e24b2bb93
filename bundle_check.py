#!/usr/bin/env python3
"""
Mint Bundle Analyzer – CLI Entry Point

Usage:
    python bundle_check.py <mint_address>
    python bundle_check.py <mint_address> --min-slot-transactions 3
    python bundle_check.py <mint_address> --timeframe 24h --min-supply-percentage 1
    python bundle_check.py <mint_address> --no-charts
    python bundle_check.py <mint_address> --json-only
"""

from __future__ import annotations

import argparse
import logging
import sys

from rich import print as rprint
from rich.logging import RichHandler

from mint_bundles.analysis_service import TIMEFRAMES_MS

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SUSPICIOUS = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundle_check",
        description="Mint Bundle Analyzer – detect coordinated same-slot buys of a Solana token.",
    )
    parser.add_argument("mint_address", help="Solana token mint address to analyse")
    parser.add_argument(
        "--min-slot-transactions",
        type=int,
        default=None,
        metavar="N",
        help="Purchases required in one slot to count as a bundle (default: from .env or 2)",
    )
    parser.add_argument(
        "--timeframe",
        choices=list(TIMEFRAMES_MS),
        default="all",
        help="Only analyse trades this close to the newest one (default: all)",
    )
    parser.add_argument(
        "--min-supply-percentage",
        type=float,
        default=0.0,
        metavar="PCT",
        help="Drop bundles holding less than this share of supply",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        metavar="DIR",
        help="Override the output directory for reports and charts (default: from .env or ./output)",
    )
    parser.add_argument(
        "--no-charts",
        action="store_true",
        help="Skip chart generation",
    )
    parser.add_argument(
        "--json-only",
        action="store_true",
        help="Only write JSON report; skip the terminal dashboard",
    )
    parser.add_argument(
        "--fail-on-suspicious",
        action="store_true",
        help="Exit with status 2 when any suspicious pattern is found",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
    )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    mint_address = args.mint_address.strip()

    # ── Load configuration ───────────────────────────────────────────────
    from mint_bundles.config import Config
    try:
        cfg = Config()
    except EnvironmentError as exc:
        rprint(f"[bold red]Configuration error:[/bold red] {exc}")
        return EXIT_FAILED

    output_dir = args.output_dir or cfg.output_dir
    min_slot_transactions = cfg.min_slot_transactions
    if args.min_slot_transactions is not None:
        min_slot_transactions = args.min_slot_transactions

    # ── Fetch + analyse ──────────────────────────────────────────────────
    rprint(f"\n[bold cyan]🔍 Analysing mint:[/bold cyan] [yellow]{mint_address}[/yellow]\n")

    from mint_bundles.analysis_service import MintBundleAnalyzer
    from mint_bundles.data_fetcher import DataFetcher
    fetcher = DataFetcher(
        cfg.helius_api_key,
        timeout=cfg.fetch_timeout_seconds,
        history_max_pages=cfg.history_max_pages,
    )
    analyzer = MintBundleAnalyzer.from_fetcher(fetcher, cache_ttl=cfg.cache_ttl_seconds)

    rprint("[cyan]→ Fetching mint metadata and swap history...[/cyan]")
    try:
        result = analyzer.analyze(
            mint_address,
            min_slot_transactions=min_slot_transactions,
            timeframe=args.timeframe,
            min_supply_percentage=args.min_supply_percentage,
        )
    except ValueError as exc:
        parser.error(str(exc))

    from mint_bundles.report_generator import ReportGenerator
    reporter = ReportGenerator(output_dir)

    if not result["success"]:
        reporter.print_failure(mint_address, result["error"])
        return EXIT_FAILED

    analysis = result["data"]

    # ── Visualisations ───────────────────────────────────────────────────
    chart_paths: list[str] = []
    if not args.no_charts:
        rprint("[cyan]→ Generating charts...[/cyan]")
        from mint_bundles.visualizer import Visualizer
        chart_paths = Visualizer(output_dir).generate_all(analysis)
        for p in chart_paths:
            rprint(f"  [dim]Chart saved:[/dim] {p}")

    # ── Reports ──────────────────────────────────────────────────────────
    json_path = reporter.generate_json_report(mint_address, analysis, chart_paths)
    rprint(f"\n[green]✓ JSON report:[/green] {json_path}")

    if not args.json_only:
        rprint("")
        reporter.print_terminal_dashboard(mint_address, analysis)

    # ── Exit code ────────────────────────────────────────────────────────
    flagged = any(analysis["suspicious_patterns"].values())
    if flagged and args.fail_on_suspicious:
        rprint("\n[bold white on red] ⛔  Suspicious bundle activity detected [/bold white on red]\n")
        return EXIT_SUSPICIOUS

    rprint("\n[bold green]✓ Analysis complete.[/bold green]\n")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

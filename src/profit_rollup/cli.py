"""Command-line entry point for profit-rollup."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date

logger = logging.getLogger(__name__)

LEVELS = ("sku", "product", "parent", "category")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="profit-rollup",
        description="Compute SKU, product, parent and category profitability from settlement transactions.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── analyze ────────────────────────────────────────────────────────────
    analyze_cmd = sub.add_parser("analyze", help="Run the profitability analysis and write reports.")
    analyze_cmd.add_argument("--config", default="config.yaml", help="Path to config.yaml (default: config.yaml)")
    analyze_cmd.add_argument("--transactions", default=None, help="Settlement CSV (overrides inputs.transactions_file).")
    analyze_cmd.add_argument("--costs", default=None, help="Cost sheet CSV (overrides inputs.costs_file).")
    analyze_cmd.add_argument("--marketplace", default=None, help="Only analyse one marketplace, e.g. US.")
    analyze_cmd.add_argument(
        "--split-by-marketplace",
        action="store_true",
        help="Keep the same SKU in different marketplaces apart.",
    )
    analyze_cmd.add_argument("--level", choices=LEVELS, default="product", help="Rollup level to report.")
    analyze_cmd.add_argument("--live-rates", action="store_true", help="Fetch live exchange rates.")
    analyze_cmd.add_argument(
        "--json",
        dest="output_json",
        action="store_true",
        help="Print the JSON report to stdout instead of writing files.",
    )
    analyze_cmd.add_argument("--output-dir", default=None, help="Override storage.reports_dir.")

    # ── convert ────────────────────────────────────────────────────────────
    convert_cmd = sub.add_parser("convert", help="Convert an amount between two currencies.")
    convert_cmd.add_argument("amount", type=float)
    convert_cmd.add_argument("from_currency", metavar="FROM")
    convert_cmd.add_argument("to_currency", metavar="TO")
    convert_cmd.add_argument("--config", default=None, help="Optional config.yaml with an exchange_rates table.")
    convert_cmd.add_argument("--live-rates", action="store_true", help="Fetch live exchange rates.")

    return parser


def _rate_table(cfg, live: bool):
    from .http import NetworkError, ParseError
    from .sources_fx import fetch_live_rates

    if not live:
        return cfg.exchange_rates
    try:
        return fetch_live_rates(cfg.exchange_rates.currencies())
    except (NetworkError, ParseError) as exc:
        logger.warning("Live rates unavailable, using configured rates: %s", exc)
        return cfg.exchange_rates


# ---------------------------------------------------------------------------
# Sub-command implementations
# ---------------------------------------------------------------------------

def _cmd_analyze(args: argparse.Namespace) -> None:
    """Load inputs, compute every level and report the requested one."""
    from .config import ConfigError, load_config

    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(f"[ERROR] Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    tx_path = args.transactions or cfg.inputs.transactions_file
    if not tx_path:
        print("[ERROR] No transactions file given (--transactions or inputs.transactions_file).", file=sys.stderr)
        sys.exit(2)
    costs_path = args.costs or cfg.inputs.costs_file

    from .calculator import calculate_sku_profitability
    from .coverage import extract_cost_overrides, summarize_cost_coverage
    from .currency import RateUnavailable, UnknownMarketplace
    from .ingest import load_cost_overrides_csv, load_transactions_csv
    from .report import generate_json_report, write_reports
    from .rollup import (
        calculate_category_profitability,
        calculate_parent_profitability,
        calculate_product_profitability,
    )
    from .shipping import RouteNotFound
    from .summary import calculate_profitability_summary

    try:
        transactions = load_transactions_csv(tx_path)
        overrides = extract_cost_overrides(transactions)
        if costs_path:
            overrides.update(load_cost_overrides_csv(costs_path))
    except (OSError, ValueError) as exc:
        print(f"[ERROR] Cannot read input data: {exc}", file=sys.stderr)
        sys.exit(3)

    coverage = summarize_cost_coverage([t.sku for t in transactions], overrides)
    rates = _rate_table(cfg, args.live_rates or cfg.live_rates)

    try:
        skus = calculate_sku_profitability(
            transactions,
            overrides,
            cfg.shipping_rates,
            cfg.countries,
            args.marketplace,
            cfg.global_costs,
            args.split_by_marketplace,
            rates=rates,
            cost_currency=cfg.cost_currency,
            settlement_currency=cfg.settlement_currency,
        )
    except (RateUnavailable, RouteNotFound, UnknownMarketplace) as exc:
        print(f"[ERROR] Configuration incomplete: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:  # noqa: BLE001
        print(f"[ERROR] Unexpected error during analysis: {exc}", file=sys.stderr)
        sys.exit(4)

    products = calculate_product_profitability(skus)
    parents = calculate_parent_profitability(products)
    by_level = {
        "sku": skus,
        "product": products,
        "parent": parents,
        "category": calculate_category_profitability(parents, products),
    }
    records = by_level[args.level]
    summary = calculate_profitability_summary(products)
    currency = skus[0].currency if skus else cfg.settlement_currency

    if args.output_json:
        payload = generate_json_report(
            records, summary, date.today().isoformat(), args.level, currency, args.marketplace, cfg.runtime.timezone,
            coverage=coverage,
        )
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
        return

    try:
        _, _, text = write_reports(
            records=records,
            summary=summary,
            reports_dir=args.output_dir or cfg.storage.reports_dir,
            level=args.level,
            currency=currency,
            marketplace=args.marketplace,
            timezone_str=cfg.runtime.timezone,
            coverage=coverage,
        )
    except OSError as exc:
        print(f"[ERROR] Report generation failed: {exc}", file=sys.stderr)
        sys.exit(3)

    print(text)


def _cmd_convert(args: argparse.Namespace) -> None:
    """Convert one amount and print the result."""
    from .config import AppConfig, ConfigError, load_config
    from .currency import RateUnavailable, convert

    try:
        cfg = load_config(args.config) if args.config else AppConfig()
    except ConfigError as exc:
        print(f"[ERROR] Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    rates = _rate_table(cfg, args.live_rates)
    try:
        result = convert(args.amount, args.from_currency, args.to_currency, rates)
    except RateUnavailable as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        sys.exit(2)

    print(f"{args.amount:,.2f} {args.from_currency.upper()} = {result:,.2f} {args.to_currency.upper()}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "analyze":
        _cmd_analyze(args)
    elif args.command == "convert":
        _cmd_convert(args)
    else:
        parser.print_help()
        sys.exit(0)

    sys.exit(0)


if __name__ == "__main__":
    main()

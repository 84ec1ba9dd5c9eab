"""Report generation: Markdown, JSON, and a short plain-text summary."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from dateutil import tz

from .calculator import ProfitFigures
from .coverage import CostCoverage
from .summary import SummaryStats

logger = logging.getLogger(__name__)

_DISCLAIMER = (
    "> **Note:** Net profit, margin and ROI are only shown for items with a known unit cost. "
    "Items flagged as missing size data may understate shipping and customs costs. "
    "Mixed-channel items are costed as a 50/50 FBA/FBM split."
)

# Attribute holding the display label at each level.
_LABEL_ATTRS = ("sku", "name", "parent", "category")


def _now_local(timezone_str: str) -> datetime:
    local_tz = tz.gettz(timezone_str) or tz.tzlocal()
    return datetime.now(tz=local_tz)


def _label(record: ProfitFigures) -> str:
    for attr in _LABEL_ATTRS:
        value = getattr(record, attr, None)
        if value:
            return str(value)
    return "?"


def _money(value: float, currency: str) -> str:
    return f"{value:,.2f} {currency}"


def _flags(record: ProfitFigures) -> str:
    missing = []
    if not record.has_cost_data:
        missing.append("cost")
    if not record.has_size_data:
        missing.append("size")
    return "missing " + "+".join(missing) if missing else "ok"


def _ranked(records: Sequence[ProfitFigures], n: int = 3, worst: bool = False) -> list[ProfitFigures]:
    known = [r for r in records if r.has_cost_data]
    return sorted(known, key=lambda r: r.net_profit, reverse=not worst)[:n]


def _coverage_md(coverage: CostCoverage | None) -> str:
    if coverage is None:
        return ""
    lines = [f"**Cost coverage:** {coverage.matched}/{coverage.total_skus} SKUs ({coverage.match_percent:.1f}%)"]
    if coverage.missing_cost:
        lines.append("**Missing cost:** " + ", ".join(f"`{s}`" for s in coverage.missing_cost))
    return "".join("\n" + line for line in lines)


def _md_table(records: Sequence[ProfitFigures], currency: str) -> str:
    if not records:
        return "_No items._\n"
    header = "| Item | Channel | Revenue | Fees | Costs | Net Profit | Margin | ROI | Data |\n"
    separator = "|---|---|---:|---:|---:|---:|---:|---:|---|\n"
    rows = []
    for r in records:
        channel = getattr(r, "fulfillment", None)
        net = _money(r.net_profit, currency) if r.has_cost_data else "n/a"
        margin = f"{r.profit_margin:.1f}%" if r.has_cost_data else "n/a"
        roi = f"{r.roi:.1f}%" if r.has_cost_data else "n/a"
        rows.append(
            f"| `{_label(r)}` | {channel.value if channel else ''} | {_money(r.total_revenue, currency)} "
            f"| {_money(r.marketplace_fees + r.vat, currency)} | {_money(r.total_cost, currency)} "
            f"| {net} | {margin} | {roi} | {_flags(r)} |"
        )
    return header + separator + "\n".join(rows) + "\n"


def generate_markdown_report(
    records: Sequence[ProfitFigures],
    summary: SummaryStats,
    run_date_str: str,
    level: str,
    currency: str,
    marketplace: str | None = None,
    timezone_str: str = "Europe/Istanbul",
    coverage: CostCoverage | None = None,
) -> str:
    highlights = [
        f"- Best: `{_label(r)}`: {_money(r.net_profit, currency)} ({r.profit_margin:.1f}%)"
        for r in _ranked(records)
        if r.net_profit > 0
    ]
    highlights += [
        f"- Worst: `{_label(r)}`: {_money(r.net_profit, currency)} ({r.profit_margin:.1f}%)"
        for r in _ranked(records, worst=True)
        if r.net_profit <= 0
    ]
    highlights_md = "\n".join(highlights) if highlights else "- No items with cost data."

    return f"""# Profitability Report

**Date:** {run_date_str} ({timezone_str})
**Marketplace:** {marketplace or 'all'}
**Level:** {level}
**Currency:** {currency}{_coverage_md(coverage)}

---

## Summary

| Metric | Value |
|---|---:|
| Revenue | {_money(summary.total_revenue, currency)} |
| Orders | {summary.total_orders} |
| Units | {summary.total_quantity:g} |
| Marketplace fees | {_money(summary.total_marketplace_fees, currency)} |
| Product cost | {_money(summary.total_product_cost, currency)} |
| Shipping | {_money(summary.total_shipping_cost, currency)} |
| Customs + DDP | {_money(summary.total_customs_duty, currency)} |
| Gross profit | {_money(summary.total_gross_profit, currency)} |
| Net profit | {_money(summary.total_net_profit, currency)} |
| Margin | {summary.profit_margin:.1f}% |
| Profitable / unprofitable / unknown | {summary.profitable_count} / {summary.unprofitable_count} / {summary.unknown_count} |

---

## Highlights

{highlights_md}

---

## Details

{_md_table(records, currency)}

---

{_DISCLAIMER}
"""


def generate_json_report(
    records: Sequence[Any],
    summary: SummaryStats,
    run_date_str: str,
    level: str,
    currency: str,
    marketplace: str | None = None,
    timezone_str: str = "Europe/Istanbul",
    coverage: CostCoverage | None = None,
) -> dict[str, Any]:
    return {
        "meta": {
            "date": run_date_str,
            "timezone": timezone_str,
            "marketplace": marketplace,
            "level": level,
            "currency": currency,
            "total_items": len(records),
            "cost_coverage": coverage.as_dict() if coverage else None,
        },
        "summary": summary.as_dict(),
        "items": [r.as_dict() for r in records],
    }


def generate_text_summary(
    summary: SummaryStats,
    run_date_str: str,
    currency: str,
    md_path: str,
    json_path: str,
) -> str:
    """Return a short plain-text summary for the terminal."""
    lines = [
        f"Profitability report ({run_date_str})",
        f"Revenue:     {_money(summary.total_revenue, currency)}",
        f"Net profit:  {_money(summary.total_net_profit, currency)} ({summary.profit_margin:.1f}%)",
        f"Items:       {summary.item_count} "
        f"({summary.profitable_count} profitable, {summary.unprofitable_count} unprofitable, "
        f"{summary.unknown_count} unknown)",
        "",
        f"Report (MD):   {md_path}",
        f"Report (JSON): {json_path}",
    ]
    if summary.unknown_count:
        lines.append(f"{summary.unknown_count} item(s) have no unit cost; add them to the cost sheet.")
    return "\n".join(lines)


def write_reports(
    records: Sequence[Any],
    summary: SummaryStats,
    reports_dir: str | Path,
    level: str,
    currency: str,
    marketplace: str | None = None,
    timezone_str: str = "Europe/Istanbul",
    coverage: CostCoverage | None = None,
) -> tuple[Path, Path, str]:
    """
    Write Markdown + JSON reports to reports_dir.
    Returns (md_path, json_path, text_summary).
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)

    now = _now_local(timezone_str)
    date_str = now.strftime("%Y-%m-%d")
    file_stem = f"profit_{level}_{(marketplace or 'all').lower()}_{now.strftime('%Y%m%d')}"

    md_content = generate_markdown_report(
        records, summary, date_str, level, currency, marketplace, timezone_str, coverage
    )
    json_content = generate_json_report(
        records, summary, date_str, level, currency, marketplace, timezone_str, coverage
    )

    md_path = reports_dir / f"{file_stem}.md"
    json_path = reports_dir / f"{file_stem}.json"

    md_path.write_text(md_content, encoding="utf-8")
    json_path.write_text(json.dumps(json_content, indent=2, default=str), encoding="utf-8")

    logger.info("Report written: %s", md_path)
    logger.info("Report written: %s", json_path)

    text = generate_text_summary(summary, date_str, currency, str(md_path), str(json_path))
    return md_path, json_path, text

"""Cost-data coverage: which SKUs can be fully costed and which cannot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from .config import ProductCostOverride

if TYPE_CHECKING:
    from .calculator import ProfitFigures
    from .ingest import Transaction

logger = logging.getLogger(__name__)

_GRADE_RESELL_MARKERS = ("AMZN.GR", "AMZN,GR")


def is_grade_resell(sku: str | None) -> bool:
    """Returned-and-regraded units relisted by the marketplace."""
    if not sku:
        return False
    upper = sku.upper()
    return upper.startswith(_GRADE_RESELL_MARKERS)


@dataclass
class CompletenessSplit:
    complete: list = field(default_factory=list)
    incomplete: list = field(default_factory=list)
    grade_resell: list = field(default_factory=list)


def partition_by_completeness(
    records: Iterable[ProfitFigures],
    exclude_grade_resell: bool = True,
) -> CompletenessSplit:
    """
    Split analyses into fully costed and incomplete ones.

    A record is complete when both cost and size data are known.  Records
    without a ``sku`` attribute (rollups) are never treated as grade-and-resell.
    """
    split = CompletenessSplit()
    for record in records:
        if exclude_grade_resell and is_grade_resell(getattr(record, "sku", None)):
            split.grade_resell.append(record)
        elif record.has_cost_data and record.has_size_data:
            split.complete.append(record)
        else:
            split.incomplete.append(record)
    return split


@dataclass
class CostCoverage:
    total_skus: int
    matched: int
    missing_cost: list[str] = field(default_factory=list)
    missing_size: list[str] = field(default_factory=list)

    @property
    def match_percent(self) -> float:
        return self.matched / self.total_skus * 100 if self.total_skus else 0.0

    def as_dict(self) -> dict:
        return {
            "total_skus": self.total_skus,
            "matched": self.matched,
            "match_percent": round(self.match_percent, 1),
            "missing_cost": self.missing_cost,
            "missing_size": self.missing_size,
        }


def summarize_cost_coverage(
    skus: Sequence[str],
    overrides: Mapping[str, ProductCostOverride],
) -> CostCoverage:
    """How many of ``skus`` have a cost row, and which lack cost or size."""
    unique = list(dict.fromkeys(s for s in skus if s))
    matched = 0
    missing_cost: list[str] = []
    missing_size: list[str] = []
    for sku in unique:
        override = overrides.get(sku)
        if override is not None:
            matched += 1
        if override is None or override.unit_cost is None:
            missing_cost.append(sku)
        if override is None or not override.weight:
            missing_size.append(sku)
    coverage = CostCoverage(
        total_skus=len(unique),
        matched=matched,
        missing_cost=missing_cost,
        missing_size=missing_size,
    )
    logger.info(
        "Cost coverage: %d/%d SKUs matched (%.1f%%)", matched, coverage.total_skus, coverage.match_percent
    )
    return coverage


_ENRICHED_FIELDS = tuple(f.name for f in fields(ProductCostOverride) if f.name != "sku")


def extract_cost_overrides(transactions: Iterable[Transaction]) -> dict[str, ProductCostOverride]:
    """
    Build per-SKU cost data from transactions that already carry it.

    The first non-null value seen for each field wins.  SKUs whose
    transactions carry neither a unit cost nor a weight are left out.
    """
    found: dict[str, dict] = {}
    for t in transactions:
        if not t.sku:
            continue
        values = found.setdefault(t.sku, {})
        for name in _ENRICHED_FIELDS:
            if values.get(name) is None:
                value = getattr(t, name, None)
                if value is not None:
                    values[name] = value

    overrides = {
        sku: ProductCostOverride(sku=sku, **values)
        for sku, values in found.items()
        if values.get("unit_cost") is not None or values.get("weight") is not None
    }
    logger.debug("Extracted cost data for %d SKUs from transactions", len(overrides))
    return overrides

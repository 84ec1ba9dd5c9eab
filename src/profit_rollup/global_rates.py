"""Derive global cost percentages from period totals."""

from __future__ import annotations

import logging
from typing import Iterable

from .channels import FulfillmentTag
from .config import GlobalCostPercentages
from .duty import DEFAULT_RECOVERY_RATE
from .ingest import ORDER, Transaction

logger = logging.getLogger(__name__)

# Share of refunded revenue typically recovered by reselling returns.
DEFAULT_RECOVERY_RATES: dict[str, float] = {
    "US": 0.50,
    "UK": 0.30,
    "CA": 0.40,
    "AU": 0.40,
}


def recovery_rate_for(marketplace: str | None) -> float:
    if not marketplace:
        return DEFAULT_RECOVERY_RATE
    return DEFAULT_RECOVERY_RATES.get(marketplace.upper(), DEFAULT_RECOVERY_RATE)


def derive_global_percentages(
    transactions: Iterable[Transaction],
    advertising_cost: float = 0.0,
    fba_cost: float = 0.0,
    fbm_cost: float = 0.0,
    marketplace: str | None = None,
) -> GlobalCostPercentages:
    """
    Turn absolute period costs into percentages of the matching revenue.

    Advertising is spread over all order revenue, FBA overhead over
    origin-fulfilled revenue and FBM overhead over everything else.  The
    costs must be in the same currency as the transactions.
    """
    code = marketplace.upper() if marketplace else None
    total = fba = fbm = 0.0
    for t in transactions:
        if t.kind != ORDER or (code and t.marketplace != code):
            continue
        total += t.product_sales
        if t.fulfillment is FulfillmentTag.ORIGIN:
            fba += t.product_sales
        else:
            fbm += t.product_sales

    def pct(cost: float, revenue: float) -> float:
        return cost / revenue * 100 if revenue > 0 else 0.0

    result = GlobalCostPercentages(
        advertising_percent=pct(advertising_cost, total),
        fba_cost_percent=pct(fba_cost, fba),
        fbm_cost_percent=pct(fbm_cost, fbm),
        refund_recovery_rate=recovery_rate_for(code),
    )
    logger.info(
        "Derived global costs for %s: ads %.2f%%, FBA %.2f%%, FBM %.2f%%",
        code or "all marketplaces",
        result.advertising_percent,
        result.fba_cost_percent,
        result.fbm_cost_percent,
    )
    return result

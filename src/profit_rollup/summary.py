"""Portfolio-wide totals over one rollup level."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .calculator import ProfitFigures

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryStats:
    total_revenue: float = 0.0
    total_orders: int = 0
    total_quantity: float = 0.0
    total_selling_fees: float = 0.0
    total_fba_fees: float = 0.0
    total_refund_loss: float = 0.0
    total_marketplace_fees: float = 0.0
    total_product_cost: float = 0.0
    total_shipping_cost: float = 0.0
    total_customs_duty: float = 0.0      # customs + DDP
    total_costs: float = 0.0
    total_gross_profit: float = 0.0
    total_net_profit: float = 0.0        # records with cost data only
    profitable_count: int = 0
    unprofitable_count: int = 0
    unknown_count: int = 0
    item_count: int = 0

    @property
    def profit_margin(self) -> float:
        return self.total_net_profit / self.total_revenue * 100 if self.total_revenue else 0.0

    def as_dict(self) -> dict:
        return {
            "total_revenue": round(self.total_revenue, 2),
            "total_orders": self.total_orders,
            "total_quantity": self.total_quantity,
            "total_selling_fees": round(self.total_selling_fees, 2),
            "total_fba_fees": round(self.total_fba_fees, 2),
            "total_refund_loss": round(self.total_refund_loss, 2),
            "total_marketplace_fees": round(self.total_marketplace_fees, 2),
            "total_product_cost": round(self.total_product_cost, 2),
            "total_shipping_cost": round(self.total_shipping_cost, 2),
            "total_customs_duty": round(self.total_customs_duty, 2),
            "total_costs": round(self.total_costs, 2),
            "total_gross_profit": round(self.total_gross_profit, 2),
            "total_net_profit": round(self.total_net_profit, 2),
            "profit_margin": round(self.profit_margin, 2),
            "profitable_count": self.profitable_count,
            "unprofitable_count": self.unprofitable_count,
            "unknown_count": self.unknown_count,
            "item_count": self.item_count,
        }


def calculate_profitability_summary(records: Iterable[ProfitFigures]) -> SummaryStats:
    """
    Reduce analyses (normally products) into portfolio totals.

    Items without cost data count as "unknown" and are left out of the net
    profit total; the rest are profitable when net profit is above zero.
    """
    totals = {
        "revenue": 0.0, "orders": 0, "quantity": 0.0, "selling": 0.0, "fba": 0.0,
        "refund": 0.0, "product": 0.0, "shipping": 0.0, "customs": 0.0, "gross": 0.0, "net": 0.0,
    }
    profitable = unprofitable = unknown = items = 0

    for r in records:
        items += 1
        totals["revenue"] += r.total_revenue
        totals["orders"] += r.total_orders
        totals["quantity"] += r.total_quantity
        totals["selling"] += r.selling_fees
        totals["fba"] += r.fba_fees
        totals["refund"] += r.refund_loss
        totals["product"] += r.total_product_cost
        totals["shipping"] += r.shipping_cost
        totals["customs"] += r.customs_duty + r.ddp_fee
        totals["gross"] += r.gross_profit
        if not r.has_cost_data:
            unknown += 1
            continue
        totals["net"] += r.net_profit
        if r.net_profit > 0:
            profitable += 1
        else:
            unprofitable += 1

    stats = SummaryStats(
        total_revenue=totals["revenue"],
        total_orders=totals["orders"],
        total_quantity=totals["quantity"],
        total_selling_fees=totals["selling"],
        total_fba_fees=totals["fba"],
        total_refund_loss=totals["refund"],
        total_marketplace_fees=totals["selling"] + totals["fba"] + totals["refund"],
        total_product_cost=totals["product"],
        total_shipping_cost=totals["shipping"],
        total_customs_duty=totals["customs"],
        total_costs=totals["product"] + totals["shipping"] + totals["customs"],
        total_gross_profit=totals["gross"],
        total_net_profit=totals["net"],
        profitable_count=profitable,
        unprofitable_count=unprofitable,
        unknown_count=unknown,
        item_count=items,
    )
    logger.debug(
        "Summary: %d items (%d profitable, %d unprofitable, %d unknown)",
        items, profitable, unprofitable, unknown,
    )
    return stats

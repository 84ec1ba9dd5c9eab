"""
SKU -> product -> parent -> category rollups.

Every stage groups its children by the next key, sums every summable
field, AND-s the completeness flags and recomputes the channel from the
set of child channels.  Labels are taken from the first child seen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence, TypeVar

from .calculator import ProfitFigures, SKUProfitAnalysis, sum_figures
from .channels import Channel, combine_channels

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ProfitFigures)

DEFAULT_TOP_N = 5


def _group(children: Iterable[T], key: Callable[[T], str]) -> dict[str, list[T]]:
    grouped: dict[str, list[T]] = {}
    for child in children:
        grouped.setdefault(key(child), []).append(child)
    return grouped


def _by_revenue(records: list[T]) -> list[T]:
    return sorted(records, key=lambda r: r.total_revenue, reverse=True)


@dataclass(frozen=True)
class ProductProfitAnalysis(ProfitFigures):
    name: str = ""
    parent: str = ""
    category: str = ""
    fulfillment: Channel = Channel.FBM
    skus: tuple[str, ...] = ()

    @property
    def sku_count(self) -> int:
        return len(self.skus)

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "parent": self.parent,
            "category": self.category,
            "fulfillment": self.fulfillment.value,
            "sku_count": self.sku_count,
            "skus": list(self.skus),
            **self.figures_dict(),
        }


@dataclass(frozen=True)
class ParentProfitAnalysis(ProfitFigures):
    parent: str = ""
    category: str = ""
    fulfillment: Channel = Channel.FBM
    products: tuple[str, ...] = ()
    sku_count: int = 0

    @property
    def product_count(self) -> int:
        return len(self.products)

    def as_dict(self) -> dict:
        return {
            "parent": self.parent,
            "category": self.category,
            "fulfillment": self.fulfillment.value,
            "product_count": self.product_count,
            "sku_count": self.sku_count,
            "products": list(self.products),
            **self.figures_dict(),
        }


@dataclass(frozen=True)
class TopProduct:
    name: str
    total_revenue: float
    net_profit: float
    profit_margin: float
    has_cost_data: bool

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "total_revenue": round(self.total_revenue, 2),
            "net_profit": round(self.net_profit, 2),
            "profit_margin": round(self.profit_margin, 2),
            "has_cost_data": self.has_cost_data,
        }


@dataclass(frozen=True)
class CategoryProfitAnalysis(ProfitFigures):
    category: str = ""
    fulfillment: Channel = Channel.FBM
    parents: tuple[str, ...] = ()
    product_count: int = 0
    sku_count: int = 0
    top_products: tuple[TopProduct, ...] = ()

    @property
    def parent_count(self) -> int:
        return len(self.parents)

    def as_dict(self) -> dict:
        return {
            "category": self.category,
            "fulfillment": self.fulfillment.value,
            "parent_count": self.parent_count,
            "product_count": self.product_count,
            "sku_count": self.sku_count,
            "top_products": [p.as_dict() for p in self.top_products],
            **self.figures_dict(),
        }


# ── Stages ────────────────────────────────────────────────────────────────────

def calculate_product_profitability(skus: Iterable[SKUProfitAnalysis]) -> list[ProductProfitAnalysis]:
    """Group SKU analyses by product name."""
    products = []
    for name, children in _group(skus, lambda s: s.name).items():
        first = children[0]
        products.append(
            ProductProfitAnalysis(
                name=name,
                parent=first.parent,
                category=first.category,
                fulfillment=combine_channels(c.fulfillment for c in children),
                skus=tuple(dict.fromkeys(c.sku for c in children)),
                **sum_figures(children),
            )
        )
    logger.debug("Rolled %d product(s) up from SKUs", len(products))
    return _by_revenue(products)


def calculate_parent_profitability(products: Iterable[ProductProfitAnalysis]) -> list[ParentProfitAnalysis]:
    """Group product analyses by parent listing."""
    parents = []
    for parent, children in _group(products, lambda p: p.parent).items():
        parents.append(
            ParentProfitAnalysis(
                parent=parent,
                category=children[0].category,
                fulfillment=combine_channels(c.fulfillment for c in children),
                products=tuple(c.name for c in children),
                sku_count=sum(c.sku_count for c in children),
                **sum_figures(children),
            )
        )
    logger.debug("Rolled %d parent(s) up from products", len(parents))
    return _by_revenue(parents)


def _top_products(products: Sequence[ProductProfitAnalysis], top_n: int) -> tuple[TopProduct, ...]:
    return tuple(
        TopProduct(
            name=p.name,
            total_revenue=p.total_revenue,
            net_profit=p.net_profit,
            profit_margin=p.profit_margin,
            has_cost_data=p.has_cost_data,
        )
        for p in _by_revenue(list(products))[:top_n]
    )


def calculate_category_profitability(
    parents: Iterable[ParentProfitAnalysis],
    products: Iterable[ProductProfitAnalysis],
    top_n: int = DEFAULT_TOP_N,
) -> list[CategoryProfitAnalysis]:
    """
    Group parent analyses by category.

    ``products`` only feeds the per-category top-N shortlist; the figures
    come from ``parents``.
    """
    products_by_category = _group(products, lambda p: p.category)
    categories = []
    for category, children in _group(parents, lambda p: p.category).items():
        categories.append(
            CategoryProfitAnalysis(
                category=category,
                fulfillment=combine_channels(c.fulfillment for c in children),
                parents=tuple(c.parent for c in children),
                product_count=sum(c.product_count for c in children),
                sku_count=sum(c.sku_count for c in children),
                top_products=_top_products(products_by_category.get(category, []), top_n),
                **sum_figures(children),
            )
        )
    logger.debug("Rolled %d categories up from parents", len(categories))
    return _by_revenue(categories)

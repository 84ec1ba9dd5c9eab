"""
SKU-level profitability.

Transactions are grouped by SKU (or SKU + marketplace), converted to one
settlement currency while they are accumulated, and turned into a full
cost breakdown:

  gross profit = revenue - (selling fees + FBA fees + refund loss + VAT)
  net profit   = gross profit - total cost       (0 when unit cost unknown)

Only ``Order`` and ``Refund`` lines take part; every other kind is skipped.
A ``Mixed`` group is costed as 50% FBA and 50% FBM, by quantity and by
revenue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Iterable, Mapping

from .channels import Channel, FulfillmentTag, classify_tags
from .config import CountryProfitConfig, GlobalCostPercentages, ProductCostOverride
from .coverage import is_grade_resell
from .currency import RateTable, convert, marketplace_currency
from .duty import (
    ResolvedCountryConfig,
    category_duty_percent,
    gst_amount,
    infer_high_value_tax,
    resolve_country_config,
    resolve_gst_applicability,
    resolve_local_freight_per_weight,
    resolve_local_warehouse_percent,
    resolve_recovery_rate,
    resolve_shipping_source,
)
from .ingest import ORDER, REFUND, Transaction
from .shipping import (
    CostPath,
    PathContext,
    ShippingRateTable,
    ShippingSource,
    fbm_cost_path,
    local_route_for,
)

logger = logging.getLogger(__name__)

GRADE_AND_RESELL = "Grade and Resell"
UNCATEGORIZED = "Uncategorized"
UNKNOWN_PARENT = "Unknown"

_MIXED_SHARE = 0.5


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


# ── Shared figures ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProfitFigures:
    """
    Summable absolutes shared by every analysis level.

    Percentages, margin, ROI and averages are properties so a rollup never
    averages its children's ratios.
    """

    total_revenue: float = 0.0
    total_orders: int = 0
    total_quantity: float = 0.0
    refunded_quantity: float = 0.0
    fba_revenue: float = 0.0
    fbm_revenue: float = 0.0
    fba_quantity: float = 0.0
    fbm_quantity: float = 0.0
    selling_fees: float = 0.0
    fba_fees: float = 0.0
    refund_loss: float = 0.0
    vat: float = 0.0
    total_product_cost: float = 0.0
    shipping_cost: float = 0.0
    customs_duty: float = 0.0
    ddp_fee: float = 0.0
    warehouse_cost: float = 0.0
    gst_cost: float = 0.0
    advertising_cost: float = 0.0
    fba_overhead: float = 0.0
    fbm_overhead: float = 0.0
    gross_profit: float = 0.0
    net_profit: float = 0.0
    has_cost_data: bool = True
    has_size_data: bool = True

    @property
    def others_cost(self) -> float:
        return self.warehouse_cost + self.customs_duty + self.ddp_fee

    @property
    def marketplace_fees(self) -> float:
        return self.selling_fees + self.fba_fees + self.refund_loss

    @property
    def total_cost(self) -> float:
        return (
            self.total_product_cost
            + self.shipping_cost
            + self.customs_duty
            + self.ddp_fee
            + self.advertising_cost
            + self.fba_overhead
            + self.fbm_overhead
            + self.warehouse_cost
            + self.gst_cost
        )

    @property
    def avg_sale_price(self) -> float:
        return self.total_revenue / self.total_quantity if self.total_quantity else 0.0

    @property
    def avg_unit_cost(self) -> float:
        """Quantity-weighted unit cost."""
        return self.total_product_cost / self.total_quantity if self.total_quantity else 0.0

    @property
    def profit_margin(self) -> float:
        if not self.has_cost_data:
            return 0.0
        return _pct(self.net_profit, self.total_revenue)

    @property
    def roi(self) -> float:
        if not self.has_cost_data:
            return 0.0
        return _pct(self.net_profit, self.total_cost)

    @property
    def selling_fee_percent(self) -> float:
        return _pct(self.selling_fees, self.total_revenue)

    @property
    def fba_fee_percent(self) -> float:
        return _pct(self.fba_fees, self.total_revenue)

    @property
    def refund_loss_percent(self) -> float:
        return _pct(self.refund_loss, self.total_revenue)

    @property
    def vat_percent(self) -> float:
        return _pct(self.vat, self.total_revenue)

    @property
    def product_cost_percent(self) -> float:
        return _pct(self.total_product_cost, self.total_revenue)

    @property
    def shipping_cost_percent(self) -> float:
        return _pct(self.shipping_cost, self.total_revenue)

    @property
    def customs_duty_percent(self) -> float:
        return _pct(self.customs_duty, self.total_revenue)

    @property
    def warehouse_cost_percent(self) -> float:
        return _pct(self.warehouse_cost, self.total_revenue)

    @property
    def others_cost_percent(self) -> float:
        return _pct(self.others_cost, self.total_revenue)

    @property
    def gst_cost_percent(self) -> float:
        return _pct(self.gst_cost, self.total_revenue)

    @property
    def advertising_percent(self) -> float:
        return _pct(self.advertising_cost, self.total_revenue)

    @property
    def fba_overhead_percent(self) -> float:
        return _pct(self.fba_overhead, self.total_revenue)

    @property
    def fbm_overhead_percent(self) -> float:
        return _pct(self.fbm_overhead, self.total_revenue)

    @property
    def gross_margin(self) -> float:
        return _pct(self.gross_profit, self.total_revenue)

    def figures_dict(self) -> dict:
        out: dict = {}
        for f in fields(ProfitFigures):
            value = getattr(self, f.name)
            out[f.name] = round(value, 2) if isinstance(value, float) else value
        for name in _DERIVED:
            out[name] = round(getattr(self, name), 2)
        return out


_DERIVED = (
    "others_cost",
    "marketplace_fees",
    "total_cost",
    "avg_sale_price",
    "avg_unit_cost",
    "profit_margin",
    "roi",
    "selling_fee_percent",
    "fba_fee_percent",
    "refund_loss_percent",
    "vat_percent",
    "product_cost_percent",
    "shipping_cost_percent",
    "customs_duty_percent",
    "warehouse_cost_percent",
    "others_cost_percent",
    "gst_cost_percent",
    "advertising_percent",
    "fba_overhead_percent",
    "fbm_overhead_percent",
    "gross_margin",
)

FLAG_FIELDS = ("has_cost_data", "has_size_data")
SUMMABLE_FIELDS = tuple(f.name for f in fields(ProfitFigures) if f.name not in FLAG_FIELDS)


def sum_figures(children: Iterable[ProfitFigures]) -> dict:
    """Field-wise sum of ``children``; completeness flags are AND-ed."""
    totals: dict = {name: 0 for name in SUMMABLE_FIELDS}
    flags = {name: True for name in FLAG_FIELDS}
    for child in children:
        for name in SUMMABLE_FIELDS:
            totals[name] += getattr(child, name)
        for name in FLAG_FIELDS:
            flags[name] = flags[name] and getattr(child, name)
    return {**totals, **flags}


@dataclass(frozen=True)
class SKUProfitAnalysis(ProfitFigures):
    sku: str = ""
    name: str = ""
    parent: str = UNKNOWN_PARENT
    asin: str | None = None
    category: str = UNCATEGORIZED
    marketplaces: tuple[str, ...] = ()
    currency: str = "USD"
    fulfillment: Channel = Channel.FBM
    unit_cost: float | None = None         # settlement currency
    weight: float | None = None
    shipping_source: ShippingSource | None = None
    using_default_config: bool = False

    @property
    def marketplace(self) -> str | None:
        return self.marketplaces[0] if len(self.marketplaces) == 1 else None

    def as_dict(self) -> dict:
        return {
            "sku": self.sku,
            "name": self.name,
            "parent": self.parent,
            "asin": self.asin,
            "category": self.category,
            "marketplaces": list(self.marketplaces),
            "currency": self.currency,
            "fulfillment": self.fulfillment.value,
            "unit_cost": round(self.unit_cost, 2) if self.unit_cost is not None else None,
            "weight": self.weight,
            "shipping_source": self.shipping_source.value if self.shipping_source else None,
            "using_default_config": self.using_default_config,
            **self.figures_dict(),
        }


# ── Accumulation ──────────────────────────────────────────────────────────────

@dataclass
class _SkuGroup:
    sku: str
    marketplaces: list[str] = field(default_factory=list)
    name: str | None = None
    parent: str | None = None
    asin: str | None = None
    category: str | None = None
    tags: set[FulfillmentTag] = field(default_factory=set)
    revenue: float = 0.0
    orders: int = 0
    quantity: float = 0.0
    refunded_quantity: float = 0.0
    refund_amount: float = 0.0
    selling_fees: float = 0.0
    fba_fees: float = 0.0
    vat: float = 0.0
    high_value_tax: float = 0.0

    def note_labels(self, t: Transaction) -> None:
        if t.marketplace not in self.marketplaces:
            self.marketplaces.append(t.marketplace)
        self.name = self.name or t.name
        self.parent = self.parent or t.parent
        self.asin = self.asin or t.asin
        self.category = self.category or t.category


class _Settlement:
    """Per-marketplace config and currency lookups for one calculation."""

    def __init__(
        self,
        configs: Mapping[str, CountryProfitConfig] | None,
        rates: RateTable,
        currency: str,
    ) -> None:
        self.configs = configs
        self.rates = rates
        self.currency = currency
        self._resolved: dict[str, ResolvedCountryConfig] = {}
        self._overrides = {
            code.upper(): cfg.currency for code, cfg in (configs or {}).items() if cfg.currency
        }

    def country(self, marketplace: str) -> ResolvedCountryConfig:
        if marketplace not in self._resolved:
            self._resolved[marketplace] = resolve_country_config(self.configs, marketplace)
        return self._resolved[marketplace]

    def native_currency(self, marketplace: str) -> str:
        return marketplace_currency(marketplace, self._overrides)

    def to_settlement(self, amount: float, marketplace: str) -> float:
        return convert(amount, self.native_currency(marketplace), self.currency, self.rates)


def settlement_currency_for(
    marketplace_filter: str | None,
    country_configs: Mapping[str, CountryProfitConfig] | None,
    default: str = "USD",
) -> str:
    """Output currency: the filtered marketplace's own currency, else ``default``."""
    if not marketplace_filter:
        return default.upper()
    overrides = {code.upper(): cfg.currency for code, cfg in (country_configs or {}).items() if cfg.currency}
    return marketplace_currency(marketplace_filter, overrides)


def _accumulate(
    transactions: Iterable[Transaction],
    settlement: _Settlement,
    marketplace_filter: str | None,
    split_by_marketplace: bool,
) -> dict[tuple[str, ...], _SkuGroup]:
    groups: dict[tuple[str, ...], _SkuGroup] = {}
    skipped = 0
    for t in transactions:
        if marketplace_filter and t.marketplace != marketplace_filter:
            continue
        if t.kind not in (ORDER, REFUND):
            skipped += 1
            continue
        if not t.sku:
            continue

        key = (t.sku, t.marketplace) if split_by_marketplace else (t.sku,)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _SkuGroup(sku=t.sku)
        group.note_labels(t)
        group.tags.add(t.fulfillment)

        if t.kind == ORDER:
            group.orders += 1
            group.quantity += t.quantity
            group.revenue += settlement.to_settlement(t.product_sales, t.marketplace)
            group.selling_fees += settlement.to_settlement(abs(t.selling_fees), t.marketplace)
            group.fba_fees += settlement.to_settlement(abs(t.fba_fees), t.marketplace)
            group.vat += settlement.to_settlement(abs(t.vat), t.marketplace)
            if t.fulfillment is not FulfillmentTag.ORIGIN and t.quantity:
                rule = settlement.country(t.marketplace).config.high_value_tax
                tax = infer_high_value_tax(rule, t.product_sales / t.quantity, t.product_sales, t.vat)
                if tax:
                    group.high_value_tax += settlement.to_settlement(tax, t.marketplace)
        else:
            group.refunded_quantity += abs(t.quantity)
            group.refund_amount += settlement.to_settlement(abs(t.total), t.marketplace)

    if skipped:
        logger.debug("Ignored %d transactions that are neither orders nor refunds", skipped)
    return groups


# ── Channel costs ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _ChannelCost:
    path: CostPath = field(default_factory=CostPath)
    size_known: bool = True


def _fba_cost(
    config: CountryProfitConfig,
    weight: float | None,
    quantity: float,
    revenue: float,
    settlement: _Settlement,
    cost_currency: str,
) -> _ChannelCost:
    warehouse = revenue * (config.fba.warehouse_percent / 100)
    if not weight:
        return _ChannelCost(CostPath(warehouse_cost=warehouse, found=False), size_known=False)
    per_weight = convert(config.fba.shipping_per_weight, cost_currency, settlement.currency, settlement.rates)
    return _ChannelCost(CostPath(shipping=weight * per_weight * quantity, warehouse_cost=warehouse))


def _fbm_cost(
    ctx: PathContext,
    source: ShippingSource,
    quantity: float,
    revenue: float,
) -> _ChannelCost:
    path = fbm_cost_path(ctx, source, quantity, revenue)
    return _ChannelCost(path, size_known=path.found)


def _labels(group: _SkuGroup, override: ProductCostOverride | None) -> dict:
    category = group.category or (override.category if override else None)
    if not category:
        category = GRADE_AND_RESELL if is_grade_resell(group.sku) else UNCATEGORIZED
    asin = group.asin or (override.asin if override else None)
    parent = group.parent or (override.parent if override else None) or asin or UNKNOWN_PARENT
    name = group.name or (override.name if override else None) or group.sku
    return {"name": name, "parent": parent, "asin": asin, "category": category}


def _analyze_group(
    group: _SkuGroup,
    override: ProductCostOverride | None,
    shipping_table: ShippingRateTable | None,
    settlement: _Settlement,
    global_costs: GlobalCostPercentages,
    cost_currency: str,
) -> SKUProfitAnalysis:
    channel = classify_tags(group.tags)
    revenue = group.revenue
    quantity = group.quantity

    unit_cost = None
    custom_shipping = None
    weight = None
    if override is not None:
        weight = override.weight
        if override.unit_cost is not None:
            unit_cost = convert(override.unit_cost, cost_currency, settlement.currency, settlement.rates)
        if override.custom_shipping is not None:
            custom_shipping = convert(
                override.custom_shipping, cost_currency, settlement.currency, settlement.rates
            )
    has_cost_data = unit_cost is not None
    product_cost = unit_cost * quantity if unit_cost is not None else 0.0

    if channel is Channel.MIXED:
        shares = {Channel.FBA: _MIXED_SHARE, Channel.FBM: _MIXED_SHARE}
    else:
        shares = {channel: 1.0}

    path = CostPath()
    size_known = True
    gst_cost = group.high_value_tax
    source = None
    using_default = False

    if len(group.marketplaces) == 1:
        marketplace = group.marketplaces[0]
        resolved = settlement.country(marketplace)
        config = resolved.config
        using_default = resolved.using_default

        if Channel.FBA in shares:
            share = shares[Channel.FBA]
            fba = _fba_cost(config, weight, quantity * share, revenue * share, settlement, cost_currency)
            path, size_known = path + fba.path, size_known and fba.size_known

        if Channel.FBM in shares:
            source = resolve_shipping_source(config, override.shipping_source if override else None)
            if shipping_table is None:
                logger.debug("No shipping table; FBM costs skipped for %s", group.sku)
            else:
                local = config.fbm.local
                ctx = PathContext(
                    table=shipping_table,
                    rates=settlement.rates,
                    currency=settlement.currency,
                    cost_currency=cost_currency,
                    weight=weight,
                    custom_shipping=custom_shipping,
                    avg_price=revenue / quantity if quantity else 0.0,
                    origin_route=config.fbm.origin.route,
                    local_route=local_route_for(marketplace, local.route if local else None),
                    duty_percent=category_duty_percent(config, _labels(group, override)["category"]),
                    ddp_fee=config.fbm.origin.ddp_fee,
                    to_warehouse_per_weight=resolve_local_freight_per_weight(config),
                    local_warehouse_percent=resolve_local_warehouse_percent(config),
                    marketplace=marketplace,
                )
                share = shares[Channel.FBM]
                fbm = _fbm_cost(ctx, source, quantity * share, revenue * share)
                path, size_known = path + fbm.path, size_known and fbm.size_known

        gst = resolve_gst_applicability(settlement.configs, marketplace, channel)
        gst_cost += gst_amount(revenue, gst)
    else:
        logger.debug(
            "SKU %s spans marketplaces %s; country costs not applied", group.sku, ", ".join(group.marketplaces)
        )
        size_known = False

    recovery = resolve_recovery_rate(global_costs)
    refund_loss = group.refund_amount * (1 - recovery)
    advertising = revenue * (global_costs.advertising_percent / 100)
    fba_overhead = revenue * (global_costs.fba_cost_percent / 100) if Channel.FBA in shares else 0.0
    fbm_overhead = revenue * (global_costs.fbm_cost_percent / 100) if Channel.FBM in shares else 0.0

    gross = revenue - (group.selling_fees + group.fba_fees + refund_loss + group.vat)
    fba_share = shares.get(Channel.FBA, 0.0)
    fbm_share = shares.get(Channel.FBM, 0.0)

    analysis = SKUProfitAnalysis(
        sku=group.sku,
        **_labels(group, override),
        marketplaces=tuple(group.marketplaces),
        currency=settlement.currency,
        fulfillment=channel,
        unit_cost=unit_cost,
        weight=weight,
        shipping_source=source,
        using_default_config=using_default,
        total_revenue=revenue,
        total_orders=group.orders,
        total_quantity=quantity,
        refunded_quantity=group.refunded_quantity,
        fba_revenue=revenue * fba_share,
        fbm_revenue=revenue * fbm_share,
        fba_quantity=quantity * fba_share,
        fbm_quantity=quantity * fbm_share,
        selling_fees=group.selling_fees,
        fba_fees=group.fba_fees,
        refund_loss=refund_loss,
        vat=group.vat,
        total_product_cost=product_cost,
        shipping_cost=path.shipping,
        customs_duty=path.customs_duty,
        ddp_fee=path.ddp_fee,
        warehouse_cost=path.warehouse_cost,
        gst_cost=gst_cost,
        advertising_cost=advertising,
        fba_overhead=fba_overhead,
        fbm_overhead=fbm_overhead,
        gross_profit=gross,
        has_cost_data=has_cost_data,
        has_size_data=size_known,
    )
    net = gross - analysis.total_cost if has_cost_data else 0.0
    return replace(analysis, net_profit=net)


# ── Entry point ───────────────────────────────────────────────────────────────

def calculate_sku_profitability(
    transactions: Iterable[Transaction],
    cost_overrides: Mapping[str, ProductCostOverride] | None,
    shipping_table: ShippingRateTable | None,
    country_configs: Mapping[str, CountryProfitConfig] | None,
    marketplace_filter: str | None = None,
    global_percentages: GlobalCostPercentages | None = None,
    split_by_marketplace: bool = False,
    *,
    rates: RateTable,
    cost_currency: str = "USD",
    settlement_currency: str = "USD",
) -> list[SKUProfitAnalysis]:
    """
    Per-SKU profitability, sorted by revenue (highest first).

    With ``marketplace_filter`` set, results are in that marketplace's
    currency; otherwise in ``settlement_currency``.

    Raises:
        RateUnavailable: a currency in use is missing from ``rates``.
        RouteNotFound: a merchant-fulfilled group needs a route the shipping
            table does not define.
        UnknownMarketplace: a marketplace has no known currency.
    """
    marketplace_filter = marketplace_filter.upper() if marketplace_filter else None
    currency = settlement_currency_for(marketplace_filter, country_configs, settlement_currency)
    settlement = _Settlement(country_configs, rates, currency)
    global_costs = global_percentages or GlobalCostPercentages()
    overrides = cost_overrides or {}

    groups = _accumulate(transactions, settlement, marketplace_filter, split_by_marketplace)
    results = [
        _analyze_group(group, overrides.get(group.sku), shipping_table, settlement, global_costs, cost_currency)
        for group in groups.values()
    ]
    results.sort(key=lambda a: a.total_revenue, reverse=True)

    logger.info(
        "Calculated profitability for %d SKU groups in %s (%d without cost data)",
        len(results),
        currency,
        sum(1 for a in results if not a.has_cost_data),
    )
    return results

"""
Country cost settings: customs duty, GST/VAT and fallback resolution.

All country-level defaults are resolved here so the calculator never
guesses at a call site:

  Customs duty  – category override (case-insensitive substring match in
                  either direction, first match wins) else the country's
                  default percent.  Only the origin-shipped share of a
                  merchant-fulfilled order pays it.

  GST/VAT       – seller-owed tax the marketplace does NOT collect.  Gated
                  by channel (FBA, FBM or BOTH).  When included in price it
                  is extracted as ``price x rate / (100 + rate)``.

  High-value    – merchant-fulfilled orders above a fixed unit-price
  tax           threshold where the settlement shows no tax collected; the
                  tax is extracted from the tax-inclusive price.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from .channels import Channel
from .config import (
    CountryProfitConfig,
    FBAConfig,
    FBMConfig,
    FBMLocalConfig,
    FBMOriginConfig,
    GlobalCostPercentages,
    GSTConfig,
    GstApplyTo,
    HighValueTaxRule,
)
from .shipping import ShippingSource

logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_RATE = 0.30

# ── Country defaults ──────────────────────────────────────────────────────────

_DEFAULT_DUTY_PCT = 8.5
_DEFAULT_DDP_FEE = 2.50
_DEFAULT_FREIGHT_PER_WEIGHT = 1.0
_DEFAULT_LOCAL_WAREHOUSE_PCT = 3.0

# Marketplaces served from both the origin country and a local warehouse.
_BLENDED_MARKETPLACES = {"US"}


def default_country_config(marketplace: str) -> CountryProfitConfig:
    """Built-in settings for a marketplace with no explicit configuration."""
    code = marketplace.upper()
    if code in _BLENDED_MARKETPLACES:
        return CountryProfitConfig(
            marketplace=code,
            fba=FBAConfig(shipping_per_weight=_DEFAULT_FREIGHT_PER_WEIGHT, warehouse_percent=0.0),
            fbm=FBMConfig(
                shipping_source=ShippingSource.BLENDED,
                origin=FBMOriginConfig(customs_duty_percent=_DEFAULT_DUTY_PCT, ddp_fee=_DEFAULT_DDP_FEE),
                local=FBMLocalConfig(
                    warehouse_percent=_DEFAULT_LOCAL_WAREHOUSE_PCT,
                    shipping_per_weight=_DEFAULT_FREIGHT_PER_WEIGHT,
                ),
            ),
        )
    return CountryProfitConfig(marketplace=code)


@dataclass(frozen=True)
class ResolvedCountryConfig:
    config: CountryProfitConfig
    using_default: bool


def resolve_country_config(
    configs: Mapping[str, CountryProfitConfig] | None,
    marketplace: str,
) -> ResolvedCountryConfig:
    code = marketplace.upper()
    if configs and code in configs:
        return ResolvedCountryConfig(config=configs[code], using_default=False)
    logger.info("No profit config for marketplace %s; using built-in defaults", code)
    return ResolvedCountryConfig(config=default_country_config(code), using_default=True)


def resolve_shipping_source(
    config: CountryProfitConfig,
    override: ShippingSource | None = None,
) -> ShippingSource:
    """SKU-level source override, else the country's configured source."""
    return override or config.fbm.shipping_source


def resolve_local_freight_per_weight(config: CountryProfitConfig) -> float:
    local = config.fbm.local
    if local is not None and local.shipping_per_weight is not None:
        return local.shipping_per_weight
    return config.fba.shipping_per_weight


def resolve_local_warehouse_percent(config: CountryProfitConfig) -> float:
    return config.fbm.local.warehouse_percent if config.fbm.local is not None else 0.0


# ── Customs duty ──────────────────────────────────────────────────────────────

def category_duty_percent(config: CountryProfitConfig, category: str | None) -> float:
    origin = config.fbm.origin
    if not category or not origin.category_duties:
        return origin.customs_duty_percent
    wanted = category.lower().strip()
    for cd in origin.category_duties:
        candidate = cd.category.lower().strip()
        if candidate and (candidate in wanted or wanted in candidate):
            return cd.duty_percent
    return origin.customs_duty_percent


def resolve_duty_percent(
    configs: Mapping[str, CountryProfitConfig] | None,
    marketplace: str,
    category: str | None,
) -> float:
    """Effective customs duty percent for ``category`` sold on ``marketplace``."""
    return category_duty_percent(resolve_country_config(configs, marketplace).config, category)


# ── GST / VAT ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GstApplicability:
    applies: bool
    rate: float = 0.0
    included_in_price: bool = True
    share: float = 0.0   # fraction of the group's revenue the tax applies to


_NO_GST = GstApplicability(applies=False)


def resolve_gst_applicability(
    configs: Mapping[str, CountryProfitConfig] | None,
    marketplace: str,
    fulfillment: Channel,
) -> GstApplicability:
    """
    Whether seller-owed GST applies to a SKU group.

    A ``Mixed`` group is split 50/50, so a rule limited to one channel
    applies to half of its revenue.
    """
    gst: GSTConfig | None = resolve_country_config(configs, marketplace).config.gst
    if gst is None or not gst.enabled or gst.rate_percent <= 0:
        return _NO_GST

    if gst.apply_to is GstApplyTo.BOTH:
        share = 1.0
    elif fulfillment is Channel.MIXED:
        share = 0.5
    elif fulfillment.value == gst.apply_to.value:
        share = 1.0
    else:
        return _NO_GST

    return GstApplicability(
        applies=True,
        rate=gst.rate_percent,
        included_in_price=gst.included_in_price,
        share=share,
    )


def extract_inclusive_tax(price: float, rate_percent: float) -> float:
    """Tax contained in a tax-inclusive ``price``: 110 at 10% -> 10."""
    return price * rate_percent / (100 + rate_percent)


def gst_amount(revenue: float, gst: GstApplicability) -> float:
    if not gst.applies:
        return 0.0
    taxed = revenue * gst.share
    if gst.included_in_price:
        return extract_inclusive_tax(taxed, gst.rate)
    return taxed * (gst.rate / 100)


def infer_high_value_tax(
    rule: HighValueTaxRule | None,
    unit_price: float,
    product_sales: float,
    vat_collected: float,
) -> float:
    """
    Tax owed on one merchant-fulfilled order line above the threshold.

    ``unit_price`` is compared in the marketplace's own currency.  Returns
    0 when there is no rule, the price is at or below the threshold, or the
    settlement already shows tax collected.
    """
    if rule is None or unit_price <= rule.threshold:
        return 0.0
    if abs(vat_collected) >= rule.zero_tax_tolerance:
        return 0.0
    return extract_inclusive_tax(product_sales, rule.rate_percent)


def resolve_recovery_rate(global_costs: GlobalCostPercentages | None) -> float:
    if global_costs is None or global_costs.refund_recovery_rate is None:
        return DEFAULT_RECOVERY_RATE
    return global_costs.refund_recovery_rate

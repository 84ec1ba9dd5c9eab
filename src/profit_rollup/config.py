"""Configuration loader with ENV:VAR_NAME resolution."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .currency import RateTable, fallback_rate_table
from .shipping import ShippingRateTable, ShippingRoute, ShippingSource, ShippingTier, parse_shipping_source

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""


def _resolve(value: Any) -> Any:
    """Recursively resolve ENV:VAR_NAME references."""
    if isinstance(value, str) and value.startswith("ENV:"):
        var = value[4:]
        resolved = os.environ.get(var)
        if resolved is None:
            logger.debug("Environment variable %s not set (value stays None)", var)
        return resolved
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v) for v in value]
    return value


class GstApplyTo(str, Enum):
    FBA = "FBA"
    FBM = "FBM"
    BOTH = "BOTH"


# ── Country profit settings ───────────────────────────────────────────────────

@dataclass
class FBAConfig:
    shipping_per_weight: float = 0.0   # freight to the platform warehouse, cost currency
    warehouse_percent: float = 0.0


@dataclass
class CategoryDuty:
    category: str
    duty_percent: float


@dataclass
class FBMOriginConfig:
    customs_duty_percent: float = 0.0
    ddp_fee: float = 0.0               # fixed per unit, cost currency
    category_duties: list[CategoryDuty] = field(default_factory=list)
    route: str | None = None


@dataclass
class FBMLocalConfig:
    warehouse_percent: float = 0.0
    shipping_per_weight: float | None = None   # None: same as FBA freight
    route: str | None = None


@dataclass
class FBMConfig:
    shipping_source: ShippingSource = ShippingSource.ORIGIN
    origin: FBMOriginConfig = field(default_factory=FBMOriginConfig)
    local: FBMLocalConfig | None = None


@dataclass
class GSTConfig:
    """Seller-owed GST/VAT that the marketplace does not collect."""

    rate_percent: float = 0.0
    included_in_price: bool = True
    apply_to: GstApplyTo = GstApplyTo.BOTH
    enabled: bool = True


@dataclass
class HighValueTaxRule:
    """Tax owed on merchant-fulfilled sales above ``threshold`` with no tax collected."""

    threshold: float
    rate_percent: float
    zero_tax_tolerance: float = 0.01


@dataclass
class CountryProfitConfig:
    marketplace: str
    currency: str | None = None
    fba: FBAConfig = field(default_factory=FBAConfig)
    fbm: FBMConfig = field(default_factory=FBMConfig)
    gst: GSTConfig | None = None
    high_value_tax: HighValueTaxRule | None = None


@dataclass
class GlobalCostPercentages:
    advertising_percent: float = 0.0
    fba_cost_percent: float = 0.0
    fbm_cost_percent: float = 0.0
    refund_recovery_rate: float | None = None


@dataclass(frozen=True)
class ProductCostOverride:
    """Per-SKU cost data. ``None`` marks a value as unknown."""

    sku: str
    unit_cost: float | None = None
    weight: float | None = None
    custom_shipping: float | None = None
    shipping_source: ShippingSource | None = None
    name: str | None = None
    parent: str | None = None
    category: str | None = None
    asin: str | None = None


# ── Application config ────────────────────────────────────────────────────────

@dataclass
class InputsConfig:
    transactions_file: str | None = None
    costs_file: str | None = None


@dataclass
class StorageConfig:
    reports_dir: str = "reports"


@dataclass
class RuntimeConfig:
    timezone: str = "Europe/Istanbul"
    log_level: str = "INFO"


@dataclass
class AppConfig:
    settlement_currency: str = "USD"
    cost_currency: str = "USD"
    live_rates: bool = False
    exchange_rates: RateTable = field(default_factory=fallback_rate_table)
    global_costs: GlobalCostPercentages = field(default_factory=GlobalCostPercentages)
    shipping_rates: ShippingRateTable = field(default_factory=ShippingRateTable)
    countries: dict[str, CountryProfitConfig] = field(default_factory=dict)
    inputs: InputsConfig = field(default_factory=InputsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)


def _float(value: Any, default: float | None = 0.0) -> float | None:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Expected a number, got {value!r}") from exc


def parse_rate_table(raw: dict | None) -> RateTable:
    if not raw or not raw.get("rates"):
        return fallback_rate_table()
    base = str(raw.get("base", "USD")).upper()
    rates = {str(k).upper(): _float(v) for k, v in (raw.get("rates") or {}).items()}
    rates.setdefault(base, 1.0)
    return RateTable(base=base, rates=rates)


def parse_shipping_table(raw: dict | None) -> ShippingRateTable:
    routes: dict[str, ShippingRoute] = {}
    for route_id, route in (raw or {}).items():
        if not isinstance(route, dict):
            raise ConfigError(f"Shipping route {route_id!r} must be a mapping")
        tiers = []
        for entry in route.get("tiers") or []:
            if isinstance(entry, dict):
                weight, rate = entry.get("weight"), entry.get("rate")
            else:
                weight, rate = entry
            tiers.append(ShippingTier(weight=_float(weight), rate=_float(rate)))
        routes[str(route_id)] = ShippingRoute(
            currency=str(route.get("currency", "USD")).upper(),
            tiers=tuple(tiers),
        )
    return ShippingRateTable(routes=routes)


def _parse_apply_to(raw: Any) -> GstApplyTo:
    try:
        return GstApplyTo(str(raw or "BOTH").strip().upper())
    except ValueError as exc:
        raise ConfigError(f"Invalid GST apply_to value: {raw!r}") from exc


def parse_country(code: str, raw: dict) -> CountryProfitConfig:
    code = code.upper()
    fba_raw = raw.get("fba") or {}
    fbm_raw = raw.get("fbm") or {}
    origin_raw = fbm_raw.get("origin") or {}
    local_raw = fbm_raw.get("local")

    source = ShippingSource.ORIGIN
    if fbm_raw.get("shipping_source") is not None:
        source = parse_shipping_source(fbm_raw.get("shipping_source"))
        if source is None:
            raise ConfigError(f"{code}: invalid fbm.shipping_source {fbm_raw.get('shipping_source')!r}")

    cfg = CountryProfitConfig(
        marketplace=code,
        currency=str(raw["currency"]).upper() if raw.get("currency") else None,
        fba=FBAConfig(
            shipping_per_weight=_float(fba_raw.get("shipping_per_weight")),
            warehouse_percent=_float(fba_raw.get("warehouse_percent")),
        ),
        fbm=FBMConfig(
            shipping_source=source,
            origin=FBMOriginConfig(
                customs_duty_percent=_float(origin_raw.get("customs_duty_percent")),
                ddp_fee=_float(origin_raw.get("ddp_fee")),
                category_duties=[
                    CategoryDuty(category=str(cd["category"]), duty_percent=_float(cd.get("duty_percent")))
                    for cd in origin_raw.get("category_duties") or []
                ],
                route=origin_raw.get("route"),
            ),
            local=FBMLocalConfig(
                warehouse_percent=_float(local_raw.get("warehouse_percent")),
                shipping_per_weight=_float(local_raw.get("shipping_per_weight"), default=None),
                route=local_raw.get("route"),
            ) if isinstance(local_raw, dict) else None,
        ),
    )

    gst_raw = raw.get("gst")
    if gst_raw:
        cfg.gst = GSTConfig(
            rate_percent=_float(gst_raw.get("rate_percent")),
            included_in_price=bool(gst_raw.get("included_in_price", True)),
            apply_to=_parse_apply_to(gst_raw.get("apply_to")),
            enabled=bool(gst_raw.get("enabled", True)),
        )

    hv_raw = raw.get("high_value_tax")
    if hv_raw:
        if hv_raw.get("threshold") is None or hv_raw.get("rate_percent") is None:
            raise ConfigError(f"{code}: high_value_tax needs threshold and rate_percent")
        cfg.high_value_tax = HighValueTaxRule(
            threshold=_float(hv_raw["threshold"]),
            rate_percent=_float(hv_raw["rate_percent"]),
            zero_tax_tolerance=_float(hv_raw.get("zero_tax_tolerance"), default=0.01),
        )
    return cfg


def load_config(path: str | Path) -> AppConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    raw = _resolve(raw)

    cfg = AppConfig()
    cfg.settlement_currency = str(raw.get("settlement_currency", "USD")).upper()
    cfg.cost_currency = str(raw.get("cost_currency", "USD")).upper()

    fx = raw.get("exchange_rates") or {}
    cfg.live_rates = bool(fx.get("live", False))
    cfg.exchange_rates = parse_rate_table(fx)

    gc = raw.get("global_costs", {})
    cfg.global_costs = GlobalCostPercentages(
        advertising_percent=_float(gc.get("advertising_percent")),
        fba_cost_percent=_float(gc.get("fba_cost_percent")),
        fbm_cost_percent=_float(gc.get("fbm_cost_percent")),
        refund_recovery_rate=_float(gc.get("refund_recovery_rate"), default=None),
    )

    cfg.shipping_rates = parse_shipping_table(raw.get("shipping_rates"))
    cfg.countries = {
        str(code).upper(): parse_country(str(code), section or {})
        for code, section in (raw.get("countries") or {}).items()
    }

    inp = raw.get("inputs", {})
    cfg.inputs = InputsConfig(
        transactions_file=inp.get("transactions_file"),
        costs_file=inp.get("costs_file"),
    )

    sto = raw.get("storage", {})
    cfg.storage = StorageConfig(reports_dir=sto.get("reports_dir", "reports"))

    rt = raw.get("runtime", {})
    cfg.runtime = RuntimeConfig(
        timezone=rt.get("timezone", "Europe/Istanbul"),
        log_level=rt.get("log_level", "INFO"),
    )

    logging.basicConfig(level=getattr(logging, cfg.runtime.log_level.upper(), logging.INFO))
    logger.debug(
        "Loaded config: %d countries, %d shipping routes", len(cfg.countries), len(cfg.shipping_rates.routes)
    )
    return cfg

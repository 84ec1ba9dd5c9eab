"""
Shipping rate tables and merchant-fulfilled cost paths.

A rate table maps a route id (``"US-TR"``, ``"EU"``...) to a currency and
a list of weight tiers.  Lookup is "smallest tier >= requested weight";
blank tiers (rate <= 0) are skipped and a weight above the last tier is
not silently clamped to it.

Merchant-fulfilled orders can ship from the origin country (tier rate +
customs duty + DDP fee), from a local warehouse (freight to the
warehouse + last-mile rate + warehouse handling) or from a blend of both.
The blend is computed as two independent paths; only the origin half
ever carries customs duty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .currency import RateTable, convert

logger = logging.getLogger(__name__)


class RouteNotFound(Exception):
    """Raised when a route id is absent from the shipping table."""


class TierNotFound(Exception):
    """Raised when no usable tier covers the requested weight."""


class ShippingSource(str, Enum):
    ORIGIN = "origin"
    LOCAL = "local"
    BLENDED = "blended"


_SOURCE_ALIASES: dict[str, ShippingSource] = {
    "origin": ShippingSource.ORIGIN,
    "tr": ShippingSource.ORIGIN,
    "turkey": ShippingSource.ORIGIN,
    "local": ShippingSource.LOCAL,
    "us": ShippingSource.LOCAL,
    "usa": ShippingSource.LOCAL,
    "warehouse": ShippingSource.LOCAL,
    "blended": ShippingSource.BLENDED,
    "both": ShippingSource.BLENDED,
    "mixed": ShippingSource.BLENDED,
}


def parse_shipping_source(raw: str | None) -> ShippingSource | None:
    """Parse a shipping-source value; ``None`` for blank or unrecognised input."""
    if raw is None:
        return None
    key = str(raw).strip().lower()
    if not key or key == "nan":
        return None
    source = _SOURCE_ALIASES.get(key)
    if source is None:
        logger.warning("Unrecognised shipping source %r ignored", raw)
    return source


# ── Routes per marketplace ────────────────────────────────────────────────────

DEFAULT_ORIGIN_ROUTES: dict[str, str] = {
    "US": "US-TR",
    "UK": "UK",
    "DE": "EU",
    "FR": "EU",
    "IT": "EU",
    "ES": "EU",
    "CA": "CA",
    "AU": "AU",
    "AE": "UAE",
    "SA": "SA",
}

# Only marketplaces with a local warehouse have a last-mile route.
DEFAULT_LOCAL_ROUTES: dict[str, str] = {
    "US": "US-US",
}


def origin_route_for(marketplace: str, override: str | None = None) -> str:
    if override:
        return override
    try:
        return DEFAULT_ORIGIN_ROUTES[marketplace.upper()]
    except KeyError:
        raise RouteNotFound(f"No shipping route configured for marketplace {marketplace!r}") from None


def local_route_for(marketplace: str, override: str | None = None) -> str | None:
    return override or DEFAULT_LOCAL_ROUTES.get(marketplace.upper())


# ── Rate table ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ShippingTier:
    weight: float
    rate: float


@dataclass(frozen=True)
class ShippingRoute:
    currency: str
    tiers: tuple[ShippingTier, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiers", tuple(sorted(self.tiers, key=lambda t: t.weight)))


@dataclass(frozen=True)
class ShippingRateTable:
    routes: dict[str, ShippingRoute] = field(default_factory=dict)
    last_updated: str | None = None

    def route(self, route_id: str) -> ShippingRoute:
        try:
            return self.routes[route_id]
        except KeyError:
            raise RouteNotFound(f"Route {route_id!r} not present in shipping table") from None


@dataclass(frozen=True)
class ResolvedRate:
    rate: float
    currency: str
    tier_weight: float


def resolve_rate(table: ShippingRateTable, route: str, weight: float) -> ResolvedRate:
    """
    Resolve the shipping rate for ``weight`` on ``route``.

    Returns the first tier (ascending by weight) whose weight is >= the
    requested weight and whose rate is positive.

    Raises:
        RouteNotFound: the route id is not in the table.
        TierNotFound: no usable tier covers the weight.
    """
    route_cfg = table.route(route)
    for tier in route_cfg.tiers:
        if weight <= tier.weight and tier.rate > 0:
            return ResolvedRate(rate=tier.rate, currency=route_cfg.currency, tier_weight=tier.weight)
    raise TierNotFound(f"No tier >= {weight} on route {route!r}")


# ── Cost paths ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CostPath:
    """Shipping-related cost lines of one fulfillment path, settlement currency."""

    shipping: float = 0.0
    customs_duty: float = 0.0
    ddp_fee: float = 0.0
    warehouse_cost: float = 0.0
    found: bool = True

    @property
    def others(self) -> float:
        return self.warehouse_cost + self.customs_duty + self.ddp_fee

    def __add__(self, other: "CostPath") -> "CostPath":
        return CostPath(
            shipping=self.shipping + other.shipping,
            customs_duty=self.customs_duty + other.customs_duty,
            ddp_fee=self.ddp_fee + other.ddp_fee,
            warehouse_cost=self.warehouse_cost + other.warehouse_cost,
            found=self.found and other.found,
        )


NOT_FOUND = CostPath(found=False)


@dataclass(frozen=True)
class PathContext:
    """
    Inputs shared by the merchant-fulfilled cost paths of one SKU group.

    ``custom_shipping`` and ``avg_price`` are already in ``currency``;
    ``ddp_fee`` and ``to_warehouse_per_weight`` are in ``cost_currency``.
    ``origin_route`` is a configured override; without one the route is
    looked up from ``marketplace`` only when a tier rate is needed.
    """

    table: ShippingRateTable
    rates: RateTable
    currency: str
    cost_currency: str
    weight: float | None
    custom_shipping: float | None
    avg_price: float
    origin_route: str | None
    local_route: str | None
    duty_percent: float
    ddp_fee: float
    to_warehouse_per_weight: float
    local_warehouse_percent: float
    marketplace: str = ""


def _tier_rate(ctx: PathContext, route: str) -> float | None:
    """Tier rate converted to the settlement currency, ``None`` when no tier fits."""
    if not ctx.weight:
        return None
    try:
        resolved = resolve_rate(ctx.table, route, ctx.weight)
    except TierNotFound:
        logger.debug("No tier for weight %s on route %s", ctx.weight, route)
        return None
    return convert(resolved.rate, resolved.currency, ctx.currency, ctx.rates)


def _origin_duties(ctx: PathContext, quantity: float) -> tuple[float, float]:
    """Customs duty and DDP owed on origin-shipped units."""
    ddp = convert(ctx.ddp_fee, ctx.cost_currency, ctx.currency, ctx.rates)
    return ctx.avg_price * (ctx.duty_percent / 100) * quantity, ddp * quantity


def _local_warehouse(ctx: PathContext, revenue: float) -> float:
    return revenue * (ctx.local_warehouse_percent / 100)


def origin_path(ctx: PathContext, quantity: float) -> CostPath:
    """Ship from origin: tier rate (or custom shipping), customs duty and DDP."""
    if ctx.custom_shipping is not None:
        per_unit = ctx.custom_shipping
    else:
        per_unit = _tier_rate(ctx, origin_route_for(ctx.marketplace, ctx.origin_route))
        if per_unit is None:
            return NOT_FOUND
    customs, ddp = _origin_duties(ctx, quantity)
    return CostPath(shipping=per_unit * quantity, customs_duty=customs, ddp_fee=ddp)


def local_path(ctx: PathContext, quantity: float, revenue: float) -> CostPath:
    """Ship from a local warehouse: freight to the warehouse plus last mile."""
    to_warehouse = 0.0
    if ctx.weight:
        per_weight = convert(ctx.to_warehouse_per_weight, ctx.cost_currency, ctx.currency, ctx.rates)
        to_warehouse = ctx.weight * per_weight

    if ctx.custom_shipping is not None:
        last_mile: float | None = ctx.custom_shipping
    elif ctx.local_route:
        last_mile = _tier_rate(ctx, ctx.local_route)
    else:
        last_mile = None

    if last_mile is None and to_warehouse <= 0:
        return NOT_FOUND
    if last_mile is None:
        logger.debug("Local path without last-mile rate; freight to warehouse only")

    return CostPath(
        shipping=(to_warehouse + (last_mile or 0.0)) * quantity,
        warehouse_cost=_local_warehouse(ctx, revenue),
    )


def blended_path(ctx: PathContext, quantity: float, revenue: float) -> CostPath:
    """
    Average of the origin and local paths.

    Shipping is the mean of both, or the one side that resolves.  Only
    half the units come from origin, so customs and DDP are always half
    of the origin figures and warehouse handling half of the local one.
    """
    origin = origin_path(ctx, quantity)
    local = local_path(ctx, quantity, revenue)
    if origin.found and local.found:
        shipping = (origin.shipping + local.shipping) / 2
    elif origin.found:
        logger.debug("Blended path: local side unresolved, shipping from origin rate")
        shipping = origin.shipping
    elif local.found:
        logger.debug("Blended path: origin side unresolved, shipping from local rate")
        shipping = local.shipping
    else:
        return NOT_FOUND
    customs, ddp = _origin_duties(ctx, quantity)
    return CostPath(
        shipping=shipping,
        customs_duty=customs / 2,
        ddp_fee=ddp / 2,
        warehouse_cost=_local_warehouse(ctx, revenue) / 2,
    )


def fbm_cost_path(
    ctx: PathContext,
    source: ShippingSource,
    quantity: float,
    revenue: float,
) -> CostPath:
    if source is ShippingSource.LOCAL:
        return local_path(ctx, quantity, revenue)
    if source is ShippingSource.BLENDED:
        return blended_path(ctx, quantity, revenue)
    return origin_path(ctx, quantity)

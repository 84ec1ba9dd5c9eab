"""Tests for shipping.py"""

from dataclasses import replace

import pytest

from profit_rollup.currency import RateTable
from profit_rollup.shipping import (
    PathContext,
    RouteNotFound,
    ShippingRateTable,
    ShippingRoute,
    ShippingSource,
    ShippingTier,
    TierNotFound,
    blended_path,
    fbm_cost_path,
    local_path,
    origin_path,
    origin_route_for,
    parse_shipping_source,
    resolve_rate,
)

TABLE = ShippingRateTable(
    routes={
        "O": ShippingRoute("USD", (ShippingTier(1, 5), ShippingTier(2, 8), ShippingTier(5, 15))),
        "L": ShippingRoute("USD", (ShippingTier(1, 3), ShippingTier(2, 4))),
        "EU": ShippingRoute("EUR", (ShippingTier(2, 8),)),
    }
)
RATES = RateTable(base="USD", rates={"EUR": 0.5})

BASE_CTX = PathContext(
    table=TABLE,
    rates=RATES,
    currency="USD",
    cost_currency="USD",
    weight=2,
    custom_shipping=None,
    avg_price=100.0,
    origin_route="O",
    local_route="L",
    duty_percent=10.0,
    ddp_fee=2.0,
    to_warehouse_per_weight=1.0,
    local_warehouse_percent=3.0,
)


# ── resolve_rate ──────────────────────────────────────────────────────────────

def test_resolve_picks_smallest_tier_at_or_above_weight():
    resolved = resolve_rate(TABLE, "O", 1.5)
    assert resolved.rate == 8
    assert resolved.tier_weight == 2
    assert resolved.currency == "USD"


def test_resolve_exact_tier_weight():
    assert resolve_rate(TABLE, "O", 2).rate == 8


def test_resolve_above_last_tier_raises():
    with pytest.raises(TierNotFound):
        resolve_rate(TABLE, "O", 6)


def test_resolve_unknown_route_raises():
    with pytest.raises(RouteNotFound):
        resolve_rate(TABLE, "NOPE", 1)


def test_resolve_skips_blank_tiers():
    table = ShippingRateTable(routes={"R": ShippingRoute("USD", (ShippingTier(1, 0), ShippingTier(2, 8)))})
    assert resolve_rate(table, "R", 1).rate == 8


def test_route_tiers_sorted_on_construction():
    route = ShippingRoute("USD", (ShippingTier(5, 15), ShippingTier(1, 5)))
    assert [t.weight for t in route.tiers] == [1, 5]


# ── sources and routes ────────────────────────────────────────────────────────

def test_parse_shipping_source_aliases():
    assert parse_shipping_source("TR") is ShippingSource.ORIGIN
    assert parse_shipping_source("us") is ShippingSource.LOCAL
    assert parse_shipping_source(" Both ") is ShippingSource.BLENDED
    assert parse_shipping_source("blended") is ShippingSource.BLENDED


def test_parse_shipping_source_blank_or_unknown():
    assert parse_shipping_source(None) is None
    assert parse_shipping_source("") is None
    assert parse_shipping_source("by boat") is None


def test_origin_route_defaults_and_override():
    assert origin_route_for("US") == "US-TR"
    assert origin_route_for("fr") == "EU"
    assert origin_route_for("US", "CUSTOM") == "CUSTOM"


def test_origin_route_unknown_marketplace_raises():
    with pytest.raises(RouteNotFound):
        origin_route_for("JP")


# ── cost paths ────────────────────────────────────────────────────────────────

def test_origin_path():
    path = origin_path(BASE_CTX, 2)
    assert path.found
    assert path.shipping == pytest.approx(16)
    assert path.customs_duty == pytest.approx(20)
    assert path.ddp_fee == pytest.approx(4)
    assert path.warehouse_cost == 0


def test_origin_path_converts_route_currency():
    path = origin_path(replace(BASE_CTX, origin_route="EU"), 1)
    assert path.shipping == pytest.approx(16)


def test_custom_shipping_bypasses_tiers():
    ctx = replace(BASE_CTX, weight=None, custom_shipping=7.0)
    path = origin_path(ctx, 2)
    assert path.found
    assert path.shipping == pytest.approx(14)


def test_origin_path_without_weight_not_found():
    assert not origin_path(replace(BASE_CTX, weight=None), 1).found


def test_local_path():
    path = local_path(BASE_CTX, 2, 200)
    assert path.shipping == pytest.approx((2 * 1.0 + 4) * 2)
    assert path.warehouse_cost == pytest.approx(6)
    assert path.customs_duty == 0


def test_local_path_freight_only_when_no_last_mile_route():
    path = local_path(replace(BASE_CTX, local_route=None), 1, 100)
    assert path.found
    assert path.shipping == pytest.approx(2)


def test_local_path_nothing_resolvable():
    ctx = replace(BASE_CTX, weight=None, local_route=None)
    assert not local_path(ctx, 1, 100).found


def test_blended_path_halves_origin_only_lines():
    path = blended_path(BASE_CTX, 2, 200)
    assert path.shipping == pytest.approx((16 + 12) / 2)
    assert path.customs_duty == pytest.approx(10)
    assert path.ddp_fee == pytest.approx(2)
    assert path.warehouse_cost == pytest.approx(3)
    assert path.others == pytest.approx(15)


def test_blended_path_origin_side_only_still_halves_duties():
    ctx = replace(BASE_CTX, local_route=None, to_warehouse_per_weight=0.0)
    path = blended_path(ctx, 2, 200)
    assert path.shipping == pytest.approx(16)
    assert path.customs_duty == pytest.approx(10)
    assert path.ddp_fee == pytest.approx(2)
    assert path.warehouse_cost == pytest.approx(3)


def test_blended_path_local_side_only_still_halves_duties():
    ctx = replace(BASE_CTX, weight=6)
    path = blended_path(ctx, 1, 100)
    assert path.shipping == pytest.approx(6)
    assert path.customs_duty == pytest.approx(5)
    assert path.ddp_fee == pytest.approx(1)
    assert path.warehouse_cost == pytest.approx(1.5)


def test_blended_path_default_us_routes():
    table = ShippingRateTable(
        routes={
            "US-TR": ShippingRoute("USD", (ShippingTier(5, 10),)),
            "US-US": ShippingRoute("USD", (ShippingTier(1, 4),)),
        }
    )
    ctx = replace(
        BASE_CTX, table=table, marketplace="US", origin_route=None, local_route="US-US",
        weight=3, to_warehouse_per_weight=0.0,
    )
    path = blended_path(ctx, 1, 100)
    assert path.shipping == pytest.approx(10)
    assert path.customs_duty == pytest.approx(5)
    assert path.ddp_fee == pytest.approx(1)


def test_origin_route_resolved_only_when_needed():
    ctx = replace(BASE_CTX, marketplace="JP", origin_route=None)
    with pytest.raises(RouteNotFound):
        origin_path(ctx, 1)
    assert origin_path(replace(ctx, custom_shipping=4.0), 1).shipping == pytest.approx(4)
    assert fbm_cost_path(ctx, ShippingSource.LOCAL, 1, 100).found


def test_blended_path_nothing_resolvable():
    ctx = replace(BASE_CTX, weight=None, local_route=None)
    assert not blended_path(ctx, 1, 100).found


def test_fbm_cost_path_dispatch():
    assert fbm_cost_path(BASE_CTX, ShippingSource.ORIGIN, 2, 200) == origin_path(BASE_CTX, 2)
    assert fbm_cost_path(BASE_CTX, ShippingSource.LOCAL, 2, 200) == local_path(BASE_CTX, 2, 200)
    assert fbm_cost_path(BASE_CTX, ShippingSource.BLENDED, 2, 200) == blended_path(BASE_CTX, 2, 200)

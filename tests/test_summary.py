"""Tests for summary.py"""

import pytest

from profit_rollup.channels import Channel
from profit_rollup.rollup import ProductProfitAnalysis
from profit_rollup.summary import calculate_profitability_summary

PRODUCTS = [
    ProductProfitAnalysis(
        name="Lamp", fulfillment=Channel.FBA, total_revenue=100, total_orders=4, total_quantity=5,
        selling_fees=15, fba_fees=5, refund_loss=2, total_product_cost=30, shipping_cost=6,
        customs_duty=3, ddp_fee=1, gross_profit=78, net_profit=20,
    ),
    ProductProfitAnalysis(
        name="Vase", fulfillment=Channel.FBM, total_revenue=50, total_orders=2, total_quantity=2,
        selling_fees=7.5, gross_profit=42.5, net_profit=-5,
    ),
    ProductProfitAnalysis(
        name="Hose", total_revenue=30, total_orders=1, total_quantity=1, gross_profit=30,
        net_profit=0, has_cost_data=False,
    ),
    ProductProfitAnalysis(name="Rake", total_revenue=10, total_orders=1, total_quantity=1, net_profit=0),
]


def test_totals():
    stats = calculate_profitability_summary(PRODUCTS)
    assert stats.total_revenue == pytest.approx(190)
    assert stats.total_orders == 8
    assert stats.total_quantity == 9
    assert stats.total_selling_fees == pytest.approx(22.5)
    assert stats.total_marketplace_fees == pytest.approx(22.5 + 5 + 2)
    assert stats.total_customs_duty == pytest.approx(4)
    assert stats.total_costs == pytest.approx(30 + 6 + 4)
    assert stats.total_gross_profit == pytest.approx(150.5)


def test_net_profit_only_counts_known_costs():
    stats = calculate_profitability_summary(PRODUCTS)
    assert stats.total_net_profit == pytest.approx(15)
    assert stats.profit_margin == pytest.approx(15 / 190 * 100)


def test_classification_counts():
    stats = calculate_profitability_summary(PRODUCTS)
    assert stats.profitable_count == 1
    assert stats.unprofitable_count == 2   # zero net counts as unprofitable
    assert stats.unknown_count == 1
    assert stats.item_count == 4


def test_empty_input():
    stats = calculate_profitability_summary([])
    assert stats.total_revenue == 0
    assert stats.profit_margin == 0
    assert stats.item_count == 0


def test_as_dict_rounds():
    d = calculate_profitability_summary(PRODUCTS).as_dict()
    assert d["profit_margin"] == round(15 / 190 * 100, 2)
    assert d["unknown_count"] == 1

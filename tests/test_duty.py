"""Tests for duty.py"""

import pytest

from profit_rollup.channels import Channel
from profit_rollup.config import (
    CategoryDuty,
    CountryProfitConfig,
    FBMConfig,
    FBMOriginConfig,
    GlobalCostPercentages,
    GSTConfig,
    GstApplyTo,
    HighValueTaxRule,
)
from profit_rollup.duty import (
    DEFAULT_RECOVERY_RATE,
    GstApplicability,
    extract_inclusive_tax,
    gst_amount,
    infer_high_value_tax,
    resolve_country_config,
    resolve_duty_percent,
    resolve_gst_applicability,
    resolve_recovery_rate,
    resolve_shipping_source,
)
from profit_rollup.shipping import ShippingSource

CONFIGS = {
    "US": CountryProfitConfig(
        marketplace="US",
        fbm=FBMConfig(
            origin=FBMOriginConfig(
                customs_duty_percent=8.5,
                category_duties=[
                    CategoryDuty("Electronics", 2.6),
                    CategoryDuty("Home Kitchen Appliances", 4.0),
                ],
            )
        ),
    ),
}


def _gst_configs(apply_to: GstApplyTo, enabled: bool = True) -> dict:
    return {
        "AU": CountryProfitConfig(
            marketplace="AU",
            gst=GSTConfig(rate_percent=10, included_in_price=True, apply_to=apply_to, enabled=enabled),
        )
    }


# ── Country config ────────────────────────────────────────────────────────────

def test_configured_country_is_not_default():
    resolved = resolve_country_config(CONFIGS, "us")
    assert resolved.using_default is False
    assert resolved.config is CONFIGS["US"]


def test_missing_us_gets_blended_defaults():
    resolved = resolve_country_config({}, "US")
    assert resolved.using_default is True
    assert resolved.config.fbm.shipping_source is ShippingSource.BLENDED
    assert resolved.config.fbm.origin.customs_duty_percent == 8.5
    assert resolved.config.fbm.origin.ddp_fee == 2.5
    assert resolved.config.fbm.local.warehouse_percent == 3.0


def test_missing_other_country_gets_zeroed_origin_defaults():
    config = resolve_country_config(None, "UK").config
    assert config.fbm.shipping_source is ShippingSource.ORIGIN
    assert config.fbm.origin.customs_duty_percent == 0
    assert config.fba.shipping_per_weight == 0


def test_sku_shipping_source_override_wins():
    config = resolve_country_config({}, "US").config
    assert resolve_shipping_source(config, ShippingSource.LOCAL) is ShippingSource.LOCAL
    assert resolve_shipping_source(config) is ShippingSource.BLENDED


# ── Customs duty ──────────────────────────────────────────────────────────────

def test_category_override_matches_substring():
    assert resolve_duty_percent(CONFIGS, "US", "Consumer Electronics") == 2.6


def test_category_override_case_insensitive():
    assert resolve_duty_percent(CONFIGS, "US", "ELECTRONICS") == 2.6


def test_category_override_matches_other_direction():
    assert resolve_duty_percent(CONFIGS, "US", "kitchen") == 4.0


def test_category_without_override_uses_default():
    assert resolve_duty_percent(CONFIGS, "US", "Toys") == 8.5


def test_no_category_uses_default():
    assert resolve_duty_percent(CONFIGS, "US", None) == 8.5


# ── GST / VAT ─────────────────────────────────────────────────────────────────

def test_inclusive_extraction():
    assert extract_inclusive_tax(110, 10) == pytest.approx(10)


def test_gst_amount_inclusive():
    gst = GstApplicability(applies=True, rate=10, included_in_price=True, share=1.0)
    assert gst_amount(110, gst) == pytest.approx(10)


def test_gst_amount_exclusive():
    gst = GstApplicability(applies=True, rate=10, included_in_price=False, share=1.0)
    assert gst_amount(100, gst) == pytest.approx(10)


def test_gst_not_applicable_is_zero():
    assert gst_amount(1000, GstApplicability(applies=False)) == 0


def test_gst_gated_by_channel():
    configs = _gst_configs(GstApplyTo.FBM)
    assert resolve_gst_applicability(configs, "AU", Channel.FBA).applies is False
    fbm = resolve_gst_applicability(configs, "AU", Channel.FBM)
    assert fbm.applies is True
    assert fbm.share == 1.0


def test_gst_mixed_channel_pays_on_half():
    gst = resolve_gst_applicability(_gst_configs(GstApplyTo.FBA), "AU", Channel.MIXED)
    assert gst.applies is True
    assert gst.share == 0.5


def test_gst_both_applies_in_full():
    gst = resolve_gst_applicability(_gst_configs(GstApplyTo.BOTH), "AU", Channel.MIXED)
    assert gst.share == 1.0


def test_gst_disabled():
    assert resolve_gst_applicability(_gst_configs(GstApplyTo.BOTH, enabled=False), "AU", Channel.FBA).applies is False


def test_gst_absent_for_unconfigured_country():
    assert resolve_gst_applicability({}, "US", Channel.FBM).applies is False


# ── High-value tax ────────────────────────────────────────────────────────────

RULE = HighValueTaxRule(threshold=1000, rate_percent=10)


def test_high_value_tax_inferred_when_nothing_collected():
    assert infer_high_value_tax(RULE, 1100, 1100, 0.0) == pytest.approx(100)


def test_high_value_tax_skipped_when_tax_collected():
    assert infer_high_value_tax(RULE, 1100, 1100, -100.0) == 0


def test_high_value_tax_skipped_below_threshold():
    assert infer_high_value_tax(RULE, 900, 900, 0.0) == 0
    assert infer_high_value_tax(RULE, 1000, 1000, 0.0) == 0


def test_high_value_tax_without_rule():
    assert infer_high_value_tax(None, 5000, 5000, 0.0) == 0


# ── Recovery rate ─────────────────────────────────────────────────────────────

def test_recovery_rate_default():
    assert resolve_recovery_rate(None) == DEFAULT_RECOVERY_RATE == 0.30
    assert resolve_recovery_rate(GlobalCostPercentages()) == 0.30


def test_recovery_rate_configured():
    assert resolve_recovery_rate(GlobalCostPercentages(refund_recovery_rate=0.5)) == 0.5

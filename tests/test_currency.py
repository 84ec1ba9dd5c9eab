"""Tests for currency.py"""

import pytest

from profit_rollup.currency import (
    RateTable,
    RateUnavailable,
    UnknownMarketplace,
    convert,
    fallback_rate_table,
    marketplace_currency,
)

RATES = RateTable(base="USD", rates={"EUR": 0.9, "GBP": 0.8})


def test_convert_from_base():
    assert convert(100, "USD", "EUR", RATES) == pytest.approx(90)


def test_convert_to_base():
    assert convert(90, "EUR", "USD", RATES) == pytest.approx(100)


def test_convert_cross_routes_through_base():
    assert convert(90, "EUR", "GBP", RATES) == pytest.approx(80)


def test_convert_same_currency_needs_no_rate():
    assert convert(12.5, "JPY", "jpy", RATES) == 12.5


def test_convert_is_case_insensitive():
    assert convert(100, "usd", " eur ", RATES) == pytest.approx(90)


def test_convert_missing_currency_raises():
    with pytest.raises(RateUnavailable):
        convert(10, "USD", "CAD", RATES)


def test_convert_never_falls_back_to_one_to_one():
    with pytest.raises(RateUnavailable):
        convert(10, "AUD", "USD", RATES)


def test_zero_rate_is_unavailable():
    with pytest.raises(RateUnavailable):
        RateTable(rates={"EUR": 0.0}).rate_for("EUR")


def test_marketplace_currency_known_codes():
    assert marketplace_currency("US") == "USD"
    assert marketplace_currency("uk") == "GBP"
    assert marketplace_currency("DE") == "EUR"
    assert marketplace_currency("AE") == "AED"


def test_marketplace_currency_override_wins():
    assert marketplace_currency("JP", {"JP": "jpy"}) == "JPY"


def test_marketplace_currency_unknown_raises():
    with pytest.raises(UnknownMarketplace):
        marketplace_currency("JP")


def test_fallback_table_covers_marketplace_currencies():
    table = fallback_rate_table()
    for code in ("USD", "EUR", "GBP", "CAD", "AUD", "AED", "SAR"):
        assert table.rate_for(code) > 0

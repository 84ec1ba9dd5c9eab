"""Currency conversion against a caller-supplied rate table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class RateUnavailable(Exception):
    """Raised when a currency is missing from the rate table."""


class UnknownMarketplace(Exception):
    """Raised when no settlement currency is known for a marketplace code."""


# ── Marketplace settlement currencies ─────────────────────────────────────────

MARKETPLACE_CURRENCY: dict[str, str] = {
    "US": "USD",
    "UK": "GBP",
    "DE": "EUR",
    "FR": "EUR",
    "IT": "EUR",
    "ES": "EUR",
    "CA": "CAD",
    "AU": "AUD",
    "AE": "AED",
    "SA": "SAR",
}

# Currencies with a fixed peg to USD. Not quoted by the ECB feed.
USD_PEGGED: dict[str, float] = {
    "AED": 3.6725,
    "SAR": 3.75,
}

# Static USD-based table for offline runs.
FALLBACK_USD_RATES: dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.95,
    "GBP": 0.79,
    "CAD": 1.40,
    "AUD": 1.55,
    "AED": 3.67,
    "SAR": 3.75,
    "TRY": 34.5,
}


@dataclass(frozen=True)
class RateTable:
    """Exchange rates keyed to one base currency: 1 ``base`` = ``rates[C]`` units of C."""

    base: str = "USD"
    rates: dict[str, float] = field(default_factory=dict)

    def rate_for(self, currency: str) -> float:
        code = currency.strip().upper()
        if code == self.base:
            return 1.0
        rate = self.rates.get(code)
        if rate is None or rate <= 0:
            raise RateUnavailable(f"No exchange rate for {code} (base {self.base})")
        return rate

    def currencies(self) -> list[str]:
        return sorted(set(self.rates) | {self.base})

    def as_dict(self) -> dict:
        return {"base": self.base, "rates": dict(self.rates)}


def convert(amount: float, from_currency: str, to_currency: str, rates: RateTable) -> float:
    """
    Convert ``amount`` between two currencies.

    Non-base pairs are routed through the base currency. Both currencies
    must be present in ``rates``; there is no 1:1 fallback.

    Raises:
        RateUnavailable: if either currency is missing from the table.
    """
    src = from_currency.strip().upper()
    dst = to_currency.strip().upper()
    if src == dst:
        return amount
    from_rate = rates.rate_for(src)
    to_rate = rates.rate_for(dst)
    return amount / from_rate * to_rate


def marketplace_currency(marketplace: str, overrides: dict[str, str] | None = None) -> str:
    """Settlement currency for a marketplace code, ``overrides`` first."""
    code = marketplace.strip().upper()
    if overrides and overrides.get(code):
        return overrides[code].strip().upper()
    try:
        return MARKETPLACE_CURRENCY[code]
    except KeyError:
        raise UnknownMarketplace(f"No settlement currency configured for marketplace {code!r}") from None


def fallback_rate_table() -> RateTable:
    logger.debug("Using static fallback exchange rates")
    return RateTable(base="USD", rates=dict(FALLBACK_USD_RATES))

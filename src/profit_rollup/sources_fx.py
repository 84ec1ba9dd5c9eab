"""Live exchange rates from the Frankfurter (ECB reference rate) API."""

from __future__ import annotations

import logging
from typing import Iterable

import requests

from .currency import FALLBACK_USD_RATES, USD_PEGGED, RateTable
from .http import ParseError, get_json

logger = logging.getLogger(__name__)

FRANKFURTER_URL = "https://api.frankfurter.app/latest"

# Currencies quoted by the ECB feed; pegged ones are added afterwards.
_DEFAULT_SYMBOLS = tuple(c for c in FALLBACK_USD_RATES if c != "USD" and c not in USD_PEGGED)


def fetch_live_rates(
    symbols: Iterable[str] = _DEFAULT_SYMBOLS,
    *,
    session: requests.Session | None = None,
) -> RateTable:
    """
    Fetch USD-based rates and complete them with the fixed USD pegs.

    Raises:
        NetworkError: the API could not be reached.
        ParseError: the response has no usable ``rates`` mapping.
    """
    wanted = [s.upper() for s in symbols if s.upper() not in USD_PEGGED and s.upper() != "USD"]
    payload = get_json(
        FRANKFURTER_URL,
        params={"from": "USD", "to": ",".join(wanted)},
        session=session,
    )

    raw = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(raw, dict) or not raw:
        raise ParseError("Frankfurter response carries no rates")

    rates: dict[str, float] = {"USD": 1.0}
    for code, value in raw.items():
        try:
            rates[str(code).upper()] = float(value)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Invalid rate for {code}: {value!r}") from exc
    rates.update(USD_PEGGED)

    missing = sorted(set(wanted) - set(rates))
    if missing:
        logger.warning("Live feed did not quote: %s", ", ".join(missing))
    logger.info("Fetched live exchange rates for %d currencies (date %s)", len(rates), payload.get("date"))
    return RateTable(base="USD", rates=rates)

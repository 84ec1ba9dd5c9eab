"""Tests for sources_fx.py and http.py (no network: sessions are stubbed)."""

import pytest
import requests

from profit_rollup.http import NetworkError, ParseError
from profit_rollup.sources_fx import FRANKFURTER_URL, fetch_live_rates


class _Response:
    def __init__(self, payload=None, status=200, body_is_json=True):
        self._payload = payload
        self.status_code = status
        self._json = body_is_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(response=self)

    def json(self):
        if not self._json:
            raise ValueError("not json")
        return self._payload


class _Session:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.responses.pop(0)


def test_fetch_live_rates_adds_pegs():
    session = _Session(_Response({"base": "USD", "date": "2025-01-06", "rates": {"EUR": 0.96, "GBP": 0.8}}))
    table = fetch_live_rates(["EUR", "GBP", "AED"], session=session)

    assert table.base == "USD"
    assert table.rate_for("EUR") == 0.96
    assert table.rate_for("AED") == 3.6725
    assert table.rate_for("SAR") == 3.75

    url, kwargs = session.calls[0]
    assert url == FRANKFURTER_URL
    assert kwargs["params"] == {"from": "USD", "to": "EUR,GBP"}


def test_missing_rates_is_parse_error():
    with pytest.raises(ParseError):
        fetch_live_rates(["EUR"], session=_Session(_Response({"message": "not found"})))


def test_invalid_json_is_parse_error():
    with pytest.raises(ParseError):
        fetch_live_rates(["EUR"], session=_Session(_Response(body_is_json=False)))


def test_client_error_not_retried():
    session = _Session(_Response(status=404), _Response({"rates": {"EUR": 1.0}}))
    with pytest.raises(NetworkError):
        fetch_live_rates(["EUR"], session=session)
    assert len(session.calls) == 1


def test_server_error_retried(monkeypatch):
    monkeypatch.setattr("profit_rollup.http.time.sleep", lambda _: None)
    session = _Session(_Response(status=503), _Response({"rates": {"EUR": 0.9}}))
    table = fetch_live_rates(["EUR"], session=session)
    assert table.rate_for("EUR") == 0.9
    assert len(session.calls) == 2

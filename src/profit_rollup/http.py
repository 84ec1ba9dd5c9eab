"""HTTP client for rate feeds: timeout, retry with exponential backoff, JSON decoding."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_RETRIES = 3
BACKOFF_BASE = 2.0
USER_AGENT = "profit-rollup/0.1"


class NetworkError(Exception):
    """Raised on unrecoverable HTTP / connectivity failures."""


class ParseError(Exception):
    """Raised when a response body is not the expected JSON."""


def _backoff(attempt: int) -> float:
    return BACKOFF_BASE ** attempt


def _retryable(exc: requests.exceptions.HTTPError) -> bool:
    # Client errors other than rate limiting will not improve on retry.
    status = exc.response.status_code if exc.response is not None else None
    return status is None or status == 429 or status >= 500


def get(
    url: str,
    *,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    params: dict[str, Any] | None = None,
    session: requests.Session | None = None,
) -> requests.Response:
    """GET with retry/backoff. Raises NetworkError on final failure."""
    client = session or requests.Session()
    last_exc: Exception | None = None

    for attempt in range(retries):
        try:
            resp = client.get(url, timeout=timeout, params=params, headers={"User-Agent": USER_AGENT})
            resp.raise_for_status()
            return resp
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            last_exc = exc
            logger.warning("%s on attempt %d/%d: %s", type(exc).__name__, attempt + 1, retries, url)
        except requests.exceptions.HTTPError as exc:
            last_exc = exc
            logger.warning(
                "HTTP %s on attempt %d/%d: %s",
                exc.response.status_code if exc.response is not None else "?",
                attempt + 1,
                retries,
                url,
            )
            if not _retryable(exc):
                break

        if attempt < retries - 1:
            wait = _backoff(attempt)
            logger.debug("Backing off %.1fs before retry", wait)
            time.sleep(wait)

    raise NetworkError(f"Failed to GET {url}: {last_exc}") from last_exc


def get_json(url: str, **kwargs: Any) -> Any:
    """GET ``url`` and decode the body as JSON."""
    resp = get(url, **kwargs)
    try:
        return resp.json()
    except ValueError as exc:
        raise ParseError(f"Response from {url} is not valid JSON") from exc

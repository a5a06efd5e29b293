# Overview: Exchange-rate sources injected into the app; HTTP-backed or disabled.

"""
Rate sources are registered on `app.extensions["rate_source"]` by
create_app. Routes and CLI commands take the source from there instead of
constructing a client themselves, so an unconfigured deployment simply gets
the disabled source.

The HTTP source expects a JSON body shaped like
    {"rates": {"USD": 1, "EUR": 0.93, ...}}
with every rate relative to the same baseline currency.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import httpx

logger = logging.getLogger(__name__)


class RateSourceError(Exception):
    """Raised when the rate source responds with unusable data."""
    pass


class DisabledRateSource:
    """Used when no RATES_SOURCE_URL is configured; never returns rates."""

    enabled = False

    def fetch_rates(self) -> dict[str, Decimal]:
        return {}


class HttpRateSource:
    """Fetches baseline-relative rates from an HTTP JSON endpoint."""

    enabled = True

    def __init__(self, url: str, *, timeout: float = 10.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def fetch_rates(self) -> dict[str, Decimal]:
        try:
            if self._client is not None:
                response = self._client.get(self.url, timeout=self.timeout)
            else:
                response = httpx.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RateSourceError(f"Could not fetch rates: {exc}") from exc

        raw = body.get("rates") if isinstance(body, dict) else None
        if not isinstance(raw, dict):
            raise RateSourceError("Rate source response has no 'rates' object")

        rates = {}
        for code, value in raw.items():
            try:
                rate = Decimal(str(value))
            except InvalidOperation:
                logger.warning("Skipping non-numeric rate for %s", code)
                continue
            if rate.is_finite() and rate > 0:
                rates[code] = rate
        return rates


def build_rate_source(config) -> DisabledRateSource | HttpRateSource:
    url = config.get("RATES_SOURCE_URL")
    if not url:
        return DisabledRateSource()
    return HttpRateSource(url, timeout=config.get("RATES_SOURCE_TIMEOUT", 10.0))

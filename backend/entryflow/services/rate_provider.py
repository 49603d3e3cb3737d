"""
Exchange-rate adapter.

Queries a public FX endpoint (``GET {forex_api_url}/{base}`` returning
``{"rates": {QUOTE: rate}}``) with a short timeout and caches successful
quotes. Any failure (network error, non-2xx status, timeout, a missing or
non-finite rate) yields the fixed fallback rate; callers never see an error.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx

from entryflow.config import Settings
from entryflow.exceptions import RateUnavailable

logger = logging.getLogger("entryflow.forex")

FALLBACK_SOURCE = "fallback (market estimate)"


@dataclass(frozen=True)
class RateQuote:
    rate: Decimal
    base_currency: str
    quote_currency: str
    rate_date: str
    source: str
    is_fallback: bool = False


class RateProvider:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.api_url = settings.forex_api_url.rstrip("/")
        self.timeout = settings.forex_timeout_seconds
        self.cache_ttl = settings.forex_cache_ttl_seconds
        self.fallback_rate = Decimal(settings.fallback_exchange_rate)
        self._client = client
        self._cache: dict[tuple[str, str, str], tuple[float, RateQuote]] = {}

    async def get_rate(
        self,
        base_currency: str = "USD",
        quote_currency: str = "PHP",
        rate_date: date | None = None,
    ) -> RateQuote:
        base = base_currency.upper()
        quote = quote_currency.upper()
        as_of = (rate_date or datetime.now(timezone.utc).date()).isoformat()
        key = (base, quote, as_of)

        cached = self._cache.get(key)
        if cached is not None and time.monotonic() - cached[0] < self.cache_ttl:
            return cached[1]

        try:
            rate = await self._fetch(base, quote)
        except RateUnavailable as e:
            logger.warning("Forex rate unavailable (%s/%s): %s", base, quote, e)
            return self._fallback(base, quote, as_of)
        except Exception:
            logger.exception("Unexpected forex failure (%s/%s); using fallback rate", base, quote)
            return self._fallback(base, quote, as_of)

        result = RateQuote(
            rate=rate,
            base_currency=base,
            quote_currency=quote,
            rate_date=as_of,
            source="exchangerate-api.com (live)",
        )
        self._cache[key] = (time.monotonic(), result)
        return result

    def _fallback(self, base: str, quote: str, as_of: str) -> RateQuote:
        return RateQuote(
            rate=self.fallback_rate,
            base_currency=base,
            quote_currency=quote,
            rate_date=as_of,
            source=FALLBACK_SOURCE,
            is_fallback=True,
        )

    async def _fetch(self, base: str, quote: str) -> Decimal:
        url = f"{self.api_url}/{base}"
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RateUnavailable(f"Forex request failed: {e!r}") from e

        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise RateUnavailable(f"Malformed forex response for {base}", {"rates": repr(rates)[:100]})
        rate = rates.get(quote)
        if not isinstance(rate, (int, float)) or isinstance(rate, bool) or not math.isfinite(rate) or rate <= 0:
            raise RateUnavailable(f"No usable {base}->{quote} rate in response", {"rate": rate})

        return Decimal(str(rate))

# services/coingecko_service.py
from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Protocol

import httpx

from services.cache.cache_backend import cache_get, cache_set
from services.errors import PriceFetchError
from utils.common_helpers import safe_json

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"

# Market data only; tickers and community payloads are large and unused.
COIN_QUERY_PARAMS = {
    "localization": "false",
    "tickers": "false",
    "market_data": "true",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}

MAX_ERROR_BODY_CHARS = 300


def _ck_price(coin_id: str) -> str:
    return f"COINGECKO:PRICE:{(coin_id or '').strip().lower()}"


class PriceSource(Protocol):
    async def get_price(self, coin_id: str) -> float: ...


def extract_usd_price(data: Dict[str, Any]) -> Optional[float]:
    """Pull market_data.current_price.usd out of a /coins/{id} payload."""
    market_data = data.get("market_data")
    if not isinstance(market_data, dict):
        return None
    current = market_data.get("current_price")
    if not isinstance(current, dict):
        return None
    usd = current.get("usd")
    # bool is an int subclass; reject it explicitly
    if isinstance(usd, bool) or not isinstance(usd, (int, float)):
        return None
    usd = float(usd)
    if math.isnan(usd) or math.isinf(usd) or usd <= 0:
        return None
    return usd


class CoinGeckoService:
    """
    Async USD price lookup against CoinGecko's /coins/{id} endpoint.

    Every failure mode (transport, non-200, non-JSON, missing price) surfaces
    as PriceFetchError so callers only handle one error type.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        cache_ttl_sec: int = 0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.cache_ttl_sec = max(0, int(cache_ttl_sec))
        self._shared_client = client

    @asynccontextmanager
    async def _client(self):
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as c:
            yield c

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": "kong-bot-backend",
        }
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def get_price(self, coin_id: str) -> float:
        cid = (coin_id or "").strip().lower()
        if not cid:
            raise PriceFetchError(coin_id, "Missing coin id")

        if self.cache_ttl_sec:
            cached = cache_get(_ck_price(cid))
            if cached is not None:
                return cached

        price = await self._fetch_price(cid)

        if self.cache_ttl_sec:
            cache_set(_ck_price(cid), price, ttl_seconds=self.cache_ttl_sec)
        return price

    async def _fetch_price(self, cid: str) -> float:
        url = f"{self.base_url}/coins/{cid}"
        async with self._client() as c:
            try:
                r = await c.get(url, params=COIN_QUERY_PARAMS, headers=self._headers())
            except httpx.HTTPError as e:
                logger.warning("coingecko_request_failed coin=%s error=%s", cid, e)
                raise PriceFetchError(cid, f"HTTP request failed: {e}") from e

        if r.status_code != 200:
            body = (r.text or "")[:MAX_ERROR_BODY_CHARS]
            logger.warning("coingecko_bad_status coin=%s status=%s", cid, r.status_code)
            raise PriceFetchError(cid, f"API error (status {r.status_code}): {body}")

        data = safe_json(r)
        if data is None:
            raise PriceFetchError(cid, "Failed to parse JSON")

        price = extract_usd_price(data)
        if price is None:
            raise PriceFetchError(cid, "Price data not found in response")
        return price

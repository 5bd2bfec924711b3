"""Async HTTP client for the Polymarket Data and Gamma APIs with rate limiting."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from polymarket_whale_tracker.ingestor.models import MonitoredMarket

logger = logging.getLogger(__name__)

# Constants
DEFAULT_DATA_API_URL = "https://data-api.polymarket.com"
DEFAULT_GAMMA_API_URL = "https://gamma-api.polymarket.com"
DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_REQUESTS_PER_SECOND = 10
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


class RateLimiter:
    """Minimum-interval rate limiter for API requests."""

    def __init__(self, max_requests_per_second: float = MAX_REQUESTS_PER_SECOND) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests_per_second: Maximum requests allowed per second.
        """
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                wait_time = self._min_interval - elapsed
                await asyncio.sleep(wait_time)
            self._last_request_time = time.monotonic()


class PolymarketClientError(Exception):
    """Base exception for PolymarketClient errors."""


class PolymarketNotFoundError(PolymarketClientError):
    """Raised when a requested resource does not exist (e.g., 404)."""


class PolymarketTransientError(PolymarketClientError):
    """Raised for retryable/transient errors (e.g., 429/5xx, timeouts, network issues)."""


class PolymarketClient:
    """Thin async wrapper around the Data API and Gamma API.

    Every request carries a timeout so a stalled upstream cannot stall the
    caller. Failures surface as PolymarketClientError subclasses; retrying is
    left to the caller's own cadence.

    Example:
        >>> async with PolymarketClient() as client:
        ...     trades = await client.get_trades(limit=100)
        ...     markets = await client.get_top_markets(limit=50)
    """

    def __init__(
        self,
        *,
        data_api_url: str = DEFAULT_DATA_API_URL,
        gamma_api_url: str = DEFAULT_GAMMA_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        requests_per_second: float = MAX_REQUESTS_PER_SECOND,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            data_api_url: Data API base URL.
            gamma_api_url: Gamma API base URL.
            timeout: Per-request timeout in seconds.
            requests_per_second: Rate limit for API requests.
            http_client: Optional pre-built httpx client (tests inject a MockTransport).
        """
        self._data_api_url = data_api_url.rstrip("/")
        self._gamma_api_url = gamma_api_url.rstrip("/")
        self._timeout = timeout
        self._rate_limiter = RateLimiter(requests_per_second)
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

        logger.info(
            "Initialized PolymarketClient with data_api=%s, gamma_api=%s, timeout=%.1fs",
            self._data_api_url,
            self._gamma_api_url,
            timeout,
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        await self._rate_limiter.acquire()
        try:
            response = await self._http.get(url, params=params, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise PolymarketTransientError(f"Request to {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise PolymarketTransientError(f"Request to {url} failed: {e}") from e

        if response.status_code == 404:
            raise PolymarketNotFoundError(f"{url} returned 404")
        if response.status_code in RETRY_STATUS_CODES:
            raise PolymarketTransientError(f"{url} returned {response.status_code}")
        if response.status_code >= 400:
            raise PolymarketClientError(f"{url} returned {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise PolymarketClientError(f"{url} returned invalid JSON") from e

    async def get_trades(
        self,
        *,
        market: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Fetch the most recent trades, optionally for a single market.

        Args:
            market: Condition ID to filter by.
            limit: Max results.

        Returns:
            Raw Data API trade records, newest first.
        """
        params: dict[str, Any] = {"limit": limit}
        if market:
            params["market"] = market
        data = await self._get_json(f"{self._data_api_url}/trades", params)
        if not isinstance(data, list):
            raise PolymarketClientError("Unexpected trades response shape")
        return [item for item in data if isinstance(item, dict)]

    async def get_markets(
        self,
        *,
        limit: int = 100,
        active: bool = True,
        closed: bool = False,
    ) -> list[dict[str, Any]]:
        """Fetch raw Gamma market records."""
        params = {
            "limit": limit,
            "active": str(active).lower(),
            "closed": str(closed).lower(),
        }
        data = await self._get_json(f"{self._gamma_api_url}/markets", params)
        if not isinstance(data, list):
            raise PolymarketClientError("Unexpected markets response shape")
        return [item for item in data if isinstance(item, dict)]

    async def get_top_markets(self, *, limit: int = 100) -> list[MonitoredMarket]:
        """Fetch active markets sorted by volume (highest first)."""
        raw = await self.get_markets(limit=limit, active=True, closed=False)
        markets = [MonitoredMarket.from_gamma(m) for m in raw]
        markets.sort(key=lambda m: m.volume, reverse=True)
        logger.debug("Fetched %d active markets", len(markets))
        return markets

    async def get_market_title(self, condition_id: str) -> str | None:
        """Look up a market's display title by condition ID.

        Returns:
            The question/title, or None if the market is unknown.
        """
        data = await self._get_json(
            f"{self._gamma_api_url}/markets",
            {"condition_ids": condition_id},
        )
        records = data if isinstance(data, list) else [data]
        for record in records:
            if not isinstance(record, dict):
                continue
            title = record.get("question") or record.get("title")
            if title:
                return str(title)
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> PolymarketClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

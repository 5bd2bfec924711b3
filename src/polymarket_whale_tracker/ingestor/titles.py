"""Market-title resolution with an in-process cache.

Titles are looked up once per market, not once per trade. Known titles are
seeded from the poller's top-market refresh; unknown ones are fetched from
Gamma on first use.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from polymarket_whale_tracker.ingestor.models import MonitoredMarket
from polymarket_whale_tracker.ingestor.polymarket_client import (
    PolymarketClient,
    PolymarketClientError,
    PolymarketNotFoundError,
)

logger = logging.getLogger(__name__)

UNKNOWN_MARKET_TITLES = frozenset({"", "unknown", "unknown market"})


class MarketTitleResolver:
    """Cache-first `title(market_id)` lookup.

    Example:
        ```python
        resolver = MarketTitleResolver(client)
        title = await resolver.resolve("0xabc...")
        if title is None:
            ...  # not actionable
        ```
    """

    def __init__(self, client: PolymarketClient | None) -> None:
        self._client = client
        self._titles: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._titles)

    def remember(self, market_id: str, title: str) -> None:
        """Record a known title (ignored when blank or placeholder)."""
        if market_id and title.strip().lower() not in UNKNOWN_MARKET_TITLES:
            self._titles[market_id] = title

    def remember_markets(self, markets: Iterable[MonitoredMarket]) -> None:
        for market in markets:
            self.remember(market.condition_id, market.title)

    def cached(self, market_id: str) -> str | None:
        return self._titles.get(market_id)

    async def resolve(self, market_id: str) -> str | None:
        """Return the market's title, or None when it cannot be resolved.

        Only found titles are cached. Any failure, including a not-found for a
        market Gamma has not indexed yet, is retried on the market's next trade.
        """
        title = self._titles.get(market_id)
        if title is not None:
            return title
        if self._client is None:
            return None

        async with self._lock:
            title = self._titles.get(market_id)
            if title is not None:
                return title
            try:
                fetched = await self._client.get_market_title(market_id)
            except PolymarketNotFoundError:
                logger.debug("No title yet for market %s", market_id)
                return None
            except PolymarketClientError as e:
                logger.warning("Title lookup failed for market %s: %s", market_id, e)
                return None

            if fetched is None or fetched.strip().lower() in UNKNOWN_MARKET_TITLES:
                return None
            self._titles[market_id] = fetched
            return fetched

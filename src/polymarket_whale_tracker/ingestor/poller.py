"""Timer-driven trade collector for the Data API.

Every poll fetches the most recent global trades plus a small page for each
of the top markets by volume. The per-market pages catch fills on busy
markets that scroll off the global page between polls. The list of top
markets is refreshed on a slower cadence.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from polymarket_whale_tracker.ingestor.models import (
    MonitoredMarket,
    TradeEvent,
    TradeParseError,
)
from polymarket_whale_tracker.ingestor.polymarket_client import (
    PolymarketClient,
    PolymarketClientError,
)
from polymarket_whale_tracker.ingestor.titles import MarketTitleResolver

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0  # seconds
DEFAULT_INITIAL_DELAY = 2.0  # seconds
DEFAULT_MARKET_REFRESH_INTERVAL = 300.0  # seconds
DEFAULT_RECENT_LIMIT = 100
DEFAULT_MARKET_LIMIT = 20
DEFAULT_TOP_MARKETS = 10
DEFAULT_TRACKED_MARKETS = 50
STOP_GRACE_SECONDS = 15.0

TradeCallback = Callable[[TradeEvent], Awaitable[None]]


@dataclass
class PollStats:
    polls: int = 0
    failed_requests: int = 0
    malformed_records: int = 0
    trades_emitted: int = 0
    market_refreshes: int = 0
    last_poll_time: float | None = None
    last_error: str | None = None


class TradePoller:
    """Periodic collector of recent trades.

    Example:
        ```python
        poller = TradePoller(client, on_trade=queue_trade)
        await poller.start()
        ...
        await poller.stop()
        ```
    """

    def __init__(
        self,
        client: PolymarketClient,
        *,
        on_trade: TradeCallback | None = None,
        title_resolver: MarketTitleResolver | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        market_refresh_interval: float = DEFAULT_MARKET_REFRESH_INTERVAL,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        market_limit: int = DEFAULT_MARKET_LIMIT,
        top_markets: int = DEFAULT_TOP_MARKETS,
        tracked_markets: int = DEFAULT_TRACKED_MARKETS,
    ) -> None:
        self._client = client
        self._on_trade = on_trade
        self._titles = title_resolver
        self._poll_interval = poll_interval
        self._initial_delay = initial_delay
        self._market_refresh_interval = market_refresh_interval
        self._recent_limit = recent_limit
        self._market_limit = market_limit
        self._top_markets = top_markets
        self._tracked_markets = tracked_markets

        self._stats = PollStats()
        self._markets: list[MonitoredMarket] = []
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def stats(self) -> PollStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def top_markets(self) -> list[MonitoredMarket]:
        return list(self._markets)

    async def refresh_markets(self) -> list[MonitoredMarket]:
        """Reload the top markets by volume and seed the title cache."""
        try:
            markets = await self._client.get_top_markets(limit=100)
        except PolymarketClientError as e:
            self._stats.failed_requests += 1
            self._stats.last_error = str(e)
            logger.warning("Failed to refresh top markets: %s", e)
            return self.top_markets

        self._markets = markets[: self._tracked_markets]
        self._stats.market_refreshes += 1
        if self._titles is not None:
            self._titles.remember_markets(self._markets)
        logger.info("Tracking %d top markets", len(self._markets))
        return self.top_markets

    async def _fetch(self, *, market: str | None, limit: int) -> list[dict[str, Any]]:
        try:
            return await self._client.get_trades(market=market, limit=limit)
        except PolymarketClientError as e:
            self._stats.failed_requests += 1
            self._stats.last_error = str(e)
            logger.warning("Trade fetch failed (market=%s): %s", market or "*", e)
            return []

    def _parse(self, records: list[dict[str, Any]]) -> list[TradeEvent]:
        trades: list[TradeEvent] = []
        for record in records:
            try:
                trades.append(TradeEvent.from_data_api(record))
            except TradeParseError as e:
                self._stats.malformed_records += 1
                logger.debug("Dropping malformed trade record: %s", e)
        return trades

    async def poll_once(self) -> list[TradeEvent]:
        """Run a single poll cycle and forward every parsed trade to on_trade.

        Returns:
            The global page followed by each top market's page, in that
            order. Duplicates across pages are left to the dedup gate.
        """
        requests = [self._fetch(market=None, limit=self._recent_limit)]
        requests.extend(
            self._fetch(market=m.condition_id, limit=self._market_limit)
            for m in self._markets[: self._top_markets]
            if m.condition_id
        )
        pages = await asyncio.gather(*requests)

        trades: list[TradeEvent] = []
        for page in pages:
            trades.extend(self._parse(page))

        self._stats.polls += 1
        self._stats.last_poll_time = time.time()
        logger.debug("Poll fetched %d trades from %d requests", len(trades), len(pages))

        if self._on_trade:
            for trade in trades:
                await self._on_trade(trade)
                self._stats.trades_emitted += 1
        return trades

    async def _wait(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except TimeoutError:
            return False

    async def _refresh_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.refresh_markets()
            if await self._wait(self._market_refresh_interval):
                break

    async def _poll_loop(self) -> None:
        if await self._wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                self._stats.last_error = str(e)
                logger.exception("Poll cycle failed: %s", e)
            if await self._wait(self._poll_interval):
                break

    async def start(self) -> None:
        """Launch the refresh and poll loops as background tasks."""
        if self._running:
            logger.warning("Trade poller already running")
            return
        self._running = True
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(self._refresh_loop(), name="poller-refresh"),
            asyncio.create_task(self._poll_loop(), name="poller-poll"),
        ]
        logger.info(
            "Trade poller started (interval=%.1fs, refresh=%.0fs)",
            self._poll_interval,
            self._market_refresh_interval,
        )

    async def stop(self) -> None:
        """Stop both loops, letting an in-flight poll finish forwarding its trades."""
        if not self._running:
            return
        self._stop_event.set()
        tasks, self._tasks = self._tasks, []
        _, pending = await asyncio.wait(tasks, timeout=STOP_GRACE_SECONDS)
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._running = False
        logger.info("Trade poller stopped")

"""CLOB market-channel WebSocket client (push trade feed).

Maintains a single streaming session to the market channel, subscribes to the
assets of the top active markets, and turns trade frames into TradeEvents.
Price-change frames carry no fill size and are surfaced only as price updates.

Reconnect policy is a fixed delay with no growth and no retry limit: the
feed is best-effort and the upstream is assumed highly available.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection

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

DEFAULT_PING_INTERVAL = 30  # seconds
DEFAULT_RECONNECT_DELAY = 5  # seconds
DEFAULT_CONNECT_TIMEOUT = 10  # seconds
DEFAULT_SUBSCRIBE_MARKET_LIMIT = 50
DEFAULT_MAX_SUBSCRIBED_ASSETS = 100
HEARTBEAT_MESSAGE = "PING"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class StreamStats:
    trades_received: int = 0
    price_updates_received: int = 0
    messages_dropped: int = 0
    reconnect_count: int = 0
    last_message_time: float | None = None
    connected_since: float | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class PriceUpdate:
    """Aggregate price change on a market (no size, never a trade)."""

    market: str
    changes: tuple[dict[str, Any], ...]


class MarketFeedError(Exception):
    """Base exception for market feed errors."""


class MarketConnectionError(MarketFeedError):
    """Raised when connection to WebSocket fails."""


TradeCallback = Callable[[TradeEvent], Awaitable[None]]
PriceUpdateCallback = Callable[[PriceUpdate], Awaitable[None]]
StateCallback = Callable[[ConnectionState], Awaitable[None]]


class MarketFeedConnector:
    """Reconnecting push client for the CLOB market channel.

    Example:
        ```python
        feed = MarketFeedConnector(host=url, client=client, on_trade=queue_trade)
        task = asyncio.create_task(feed.start())
        ...
        await feed.stop()
        ```
    """

    def __init__(
        self,
        *,
        host: str,
        client: PolymarketClient | None = None,
        title_resolver: MarketTitleResolver | None = None,
        on_trade: TradeCallback | None = None,
        on_price_update: PriceUpdateCallback | None = None,
        on_state_change: StateCallback | None = None,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        subscribe_market_limit: int = DEFAULT_SUBSCRIBE_MARKET_LIMIT,
        max_subscribed_assets: int = DEFAULT_MAX_SUBSCRIBED_ASSETS,
    ) -> None:
        self._host = host
        self._client = client
        self._title_resolver = title_resolver
        self._on_trade = on_trade
        self._on_price_update = on_price_update
        self._on_state_change = on_state_change
        self._ping_interval = ping_interval
        self._reconnect_delay = reconnect_delay
        self._connect_timeout = connect_timeout
        self._subscribe_market_limit = subscribe_market_limit
        self._max_subscribed_assets = max_subscribed_assets

        self._state = ConnectionState.DISCONNECTED
        self._stats = StreamStats()

        self._ws: ClientConnection | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None

        self._subscribed_assets: set[str] = set()
        self._monitored_markets: list[MonitoredMarket] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stats(self) -> StreamStats:
        return self._stats

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def monitored_markets(self) -> list[MonitoredMarket]:
        return list(self._monitored_markets)

    @property
    def subscribed_assets(self) -> frozenset[str]:
        return frozenset(self._subscribed_assets)

    async def _set_state(self, new_state: ConnectionState) -> None:
        if self._state != new_state:
            old = self._state
            self._state = new_state
            logger.info("Market feed state: %s -> %s", old.value, new_state.value)
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:  # pragma: no cover
                    logger.error("Error in state change callback: %s", e)

    async def _load_subscription_assets(self) -> list[str]:
        """Refresh the monitored market list and return the asset ids to subscribe."""
        if self._client is None:
            return sorted(self._subscribed_assets)[: self._max_subscribed_assets]

        markets = await self._client.get_top_markets(limit=self._subscribe_market_limit)
        self._monitored_markets = markets
        if self._title_resolver is not None:
            self._title_resolver.remember_markets(markets)

        asset_ids: list[str] = []
        for market in markets:
            asset_ids.extend(market.token_ids)
        return asset_ids[: self._max_subscribed_assets]

    async def _subscribe(self, ws: ClientConnection) -> None:
        # A fresh session has no subscription state; this runs on every connect.
        try:
            assets = await self._load_subscription_assets()
        except PolymarketClientError as e:
            logger.error("Failed to fetch markets for subscription: %s", e)
            return
        if not assets:
            logger.warning("No assets to subscribe on market feed")
            return

        await ws.send(json.dumps({"assets_ids": assets, "type": "market"}))
        self._subscribed_assets = set(assets)
        logger.info(
            "Subscribed to %d assets from %d markets",
            len(assets),
            len(self._monitored_markets),
        )

    async def _connect(self) -> ClientConnection:
        """Open a session, start its heartbeat and subscribe.

        The socket is tracked as soon as it opens so a failed subscribe still
        closes it.
        """
        await self._set_state(ConnectionState.CONNECTING)
        try:
            # Heartbeats are application-level frames, so library pings are off.
            ws = await websockets.connect(
                self._host,
                open_timeout=self._connect_timeout,
                ping_interval=None,
            )
        except Exception as e:
            self._stats.last_error = str(e)
            raise MarketConnectionError(f"Failed to connect to {self._host}: {e}") from e

        self._ws = ws
        self._stats.connected_since = time.time()
        logger.info("Connected to market feed: %s", self._host)
        await self._set_state(ConnectionState.CONNECTED)
        self._start_heartbeat(ws)
        await self._subscribe(ws)
        return ws

    def _start_heartbeat(self, ws: ClientConnection) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat(ws))

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat(self, ws: ClientConnection) -> None:
        while True:
            await asyncio.sleep(self._ping_interval)
            try:
                await ws.send(HEARTBEAT_MESSAGE)
            except websockets.ConnectionClosed:
                return
            logger.debug("Market feed heartbeat sent")

    async def handle_message(self, message: str) -> None:
        """Parse one raw frame and dispatch any trades or price updates in it."""
        stripped = message.lstrip()
        # Control strings such as "INVALID OPERATION" or "PONG" are not JSON.
        if not stripped.startswith(("{", "[")):
            self._stats.messages_dropped += 1
            return
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            self._stats.messages_dropped += 1
            logger.debug("Dropping unparsable market-feed frame")
            return

        self._stats.last_message_time = time.time()
        events = data if isinstance(data, list) else [data]
        for event in events:
            if isinstance(event, dict):
                await self._process_event(event)
            else:
                self._stats.messages_dropped += 1

    async def _process_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("event_type")
        if event_type in ("trade", "last_trade_price"):
            try:
                trade = TradeEvent.from_websocket_message(event)
            except TradeParseError as e:
                self._stats.messages_dropped += 1
                logger.debug("Dropping malformed trade frame: %s", e)
                return
            self._stats.trades_received += 1
            if self._on_trade:
                await self._on_trade(trade)
            return

        changes = event.get("price_changes")
        if isinstance(changes, list):
            self._stats.price_updates_received += 1
            if self._on_price_update:
                await self._on_price_update(
                    PriceUpdate(
                        market=str(event.get("market", "")),
                        changes=tuple(c for c in changes if isinstance(c, dict)),
                    )
                )
            return

        self._stats.messages_dropped += 1
        logger.debug("Ignoring market-feed event_type=%r", event_type)

    async def _listen(self, ws: ClientConnection) -> None:
        try:
            async for message in ws:
                if not self._running:
                    break
                if isinstance(message, str):
                    await self.handle_message(message)
                else:
                    logger.debug("Ignoring non-text market-feed message")
        except websockets.ConnectionClosed as e:
            logger.warning("Market feed connection closed: %s", e)
            raise

    async def start(self) -> None:
        """Run the connect/listen/reconnect loop until stop() is called."""
        if self._running:
            raise RuntimeError("Market feed already running")
        self._running = True
        self._stop_event = asyncio.Event()

        while self._running and not self._stop_event.is_set():
            try:
                ws = await self._connect()
                await self._listen(ws)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.last_error = str(e)
                logger.warning("Market feed error: %s", e)
            finally:
                self._stop_heartbeat()
                with contextlib.suppress(Exception):
                    if self._ws:
                        await self._ws.close()
                self._ws = None

            if not self._running or self._stop_event.is_set():
                break

            # A dropped link is reported before the retry wait.
            if self._state == ConnectionState.CONNECTED:
                await self._set_state(ConnectionState.DISCONNECTED)

            self._stats.reconnect_count += 1
            await self._set_state(ConnectionState.RECONNECTING)
            logger.info("Reconnecting to market feed in %.1fs", self._reconnect_delay)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._reconnect_delay)

        self._running = False
        await self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        self._stop_heartbeat()
        if self._ws:
            with contextlib.suppress(Exception):
                await self._ws.close()

"""Main pipeline orchestrator for Polymarket Whale Tracker.

This module provides the Pipeline class that wires the two trade feeds to
the deduplicator, the rolling statistics engine and the whale classifier,
and hands whale trades to the persistence and broadcast sinks.

Both producers only enqueue events. A single consumer task takes each event
through dedup -> observe -> classify -> emit before starting the next one,
so a trade's own observation is always visible to its classification.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from polymarket_whale_tracker.alerter.broadcast import RedisBroadcaster
from polymarket_whale_tracker.alerter.formatter import format_whale_log_line
from polymarket_whale_tracker.config import Settings, get_settings
from polymarket_whale_tracker.detector.models import AnomalyResult, WhaleAlert
from polymarket_whale_tracker.detector.whale import WhaleClassifier
from polymarket_whale_tracker.ingestor.baselines import RollingStatisticsEngine
from polymarket_whale_tracker.ingestor.dedup import TradeDeduplicator
from polymarket_whale_tracker.ingestor.market_websocket import ConnectionState, MarketFeedConnector
from polymarket_whale_tracker.ingestor.models import TradeEvent, TradeSource
from polymarket_whale_tracker.ingestor.poller import TradePoller
from polymarket_whale_tracker.ingestor.polymarket_client import PolymarketClient
from polymarket_whale_tracker.ingestor.titles import UNKNOWN_MARKET_TITLES, MarketTitleResolver
from polymarket_whale_tracker.storage.database import DatabaseManager
from polymarket_whale_tracker.storage.sink import TradeSink

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_SECONDS = 30.0


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    trades_received: int = 0
    duplicates: int = 0
    trades_processed: int = 0
    anomalies_detected: int = 0
    alerts_emitted: int = 0
    untitled_dropped: int = 0
    errors: int = 0
    last_trade_time: datetime | None = None
    last_error: str | None = None


class Pipeline:
    """Main pipeline orchestrator for the Polymarket Whale Tracker.

    Pipeline flow:
        Market feed / Trade poller -> Queue -> Dedup -> Baselines -> Classifier -> Sinks

    Example:
        ```python
        from polymarket_whale_tracker.config import get_settings
        from polymarket_whale_tracker.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        client: PolymarketClient | None = None,
        sink: TradeSink | None = None,
        broadcaster: RedisBroadcaster | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, skip the sinks. Overrides settings.dry_run.
            client: Upstream HTTP client. Built from settings on start() if omitted.
            sink: Persistence sink. Built from DATABASE_URL on start() if omitted.
            broadcaster: Broadcast sink. Built from REDIS_URL on start() if omitted.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        detection = self._settings.detection
        self._engine = RollingStatisticsEngine(
            global_window=detection.global_window,
            market_window=detection.market_window,
            min_observations=detection.min_observations,
        )
        self._dedup = TradeDeduplicator(
            max_keys=detection.dedup_max_keys,
            retain_keys=detection.dedup_retain_keys,
        )
        self._classifier = WhaleClassifier(self._engine)

        self._client = client
        self._owns_client = client is None
        self._titles = MarketTitleResolver(client)
        self._sink = sink
        self._broadcaster = broadcaster

        self._feed: MarketFeedConnector | None = None
        self._poller: TradePoller | None = None

        # Synchronization
        self._queue: asyncio.Queue[TradeEvent] | None = None
        self._stop_event: asyncio.Event | None = None
        self._consumer_task: asyncio.Task[None] | None = None
        self._feed_task: asyncio.Task[None] | None = None
        self._sink_tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == PipelineState.RUNNING

    @property
    def engine(self) -> RollingStatisticsEngine:
        return self._engine

    @property
    def titles(self) -> MarketTitleResolver:
        return self._titles

    def get_stats(self) -> dict[str, float | int]:
        """Baseline summary: trades analyzed, markets tracked, mean trade size."""
        engine_stats = self._engine.stats()
        return {
            "global_trade_count": engine_stats.total_observations,
            "market_count": engine_stats.market_count,
            "avg_trade_size": engine_stats.average_value,
        }

    async def start(self) -> None:
        """Start the pipeline.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            self._initialize_components()
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Producers are stopped first, then the queue is drained, then in-flight
        sink calls are awaited, and only then are connections released.
        """
        if self._state in (PipelineState.STOPPED, PipelineState.STOPPING):
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_producers()
        await self._drain_queue()
        await self._wait_for_sinks()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    def _initialize_components(self) -> None:
        settings = self._settings
        self._queue = asyncio.Queue(maxsize=settings.queue_size)

        if self._client is None:
            logger.debug("Initializing Polymarket client...")
            self._client = PolymarketClient(
                data_api_url=settings.polymarket.data_api_url,
                gamma_api_url=settings.polymarket.gamma_api_url,
                timeout=settings.polymarket.request_timeout_seconds,
                requests_per_second=settings.polymarket.requests_per_second,
            )
            self._owns_client = True
            self._titles = MarketTitleResolver(self._client)

        if self._sink is None and settings.database.enabled and not self._dry_run:
            logger.debug("Initializing database sink...")
            self._sink = TradeSink(DatabaseManager(settings.database.url))

        if self._broadcaster is None and settings.redis.enabled and not self._dry_run:
            logger.debug("Initializing Redis broadcaster...")
            self._broadcaster = RedisBroadcaster.from_url(
                settings.redis.url,
                whale_channel=settings.redis.whale_channel,
                status_channel=settings.redis.status_channel,
            )

        if settings.feed.enabled:
            self._feed = MarketFeedConnector(
                host=settings.polymarket.market_ws_url,
                client=self._client,
                title_resolver=self._titles,
                on_trade=self.submit,
                on_state_change=self._on_feed_state_change,
                ping_interval=settings.feed.ping_interval_seconds,
                reconnect_delay=settings.feed.reconnect_delay_seconds,
                connect_timeout=settings.polymarket.request_timeout_seconds,
                subscribe_market_limit=settings.feed.subscribe_market_limit,
                max_subscribed_assets=settings.feed.max_subscribed_assets,
            )

        if settings.poll.enabled:
            self._poller = TradePoller(
                self._client,
                on_trade=self.submit,
                title_resolver=self._titles,
                poll_interval=settings.poll.interval_seconds,
                initial_delay=settings.poll.initial_delay_seconds,
                market_refresh_interval=settings.poll.market_refresh_seconds,
                recent_limit=settings.poll.recent_limit,
                market_limit=settings.poll.market_limit,
                top_markets=settings.poll.top_markets,
                tracked_markets=settings.poll.tracked_markets,
            )

        if self._feed is None and self._poller is None:
            logger.warning("Both trade feeds are disabled; the pipeline will stay idle")

    async def _start_background_services(self) -> None:
        self._consumer_task = asyncio.create_task(self._consume(), name="pipeline-consumer")

        if self._feed:
            logger.debug("Starting market feed...")
            self._feed_task = asyncio.create_task(self._feed.start(), name="market-feed")

        if self._poller:
            logger.debug("Starting trade poller...")
            await self._poller.start()

    async def _stop_producers(self) -> None:
        if self._feed:
            logger.debug("Stopping market feed...")
            await self._feed.stop()

        if self._feed_task:
            self._feed_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._feed_task
            self._feed_task = None

        if self._poller:
            logger.debug("Stopping trade poller...")
            await self._poller.stop()

    async def _drain_queue(self) -> None:
        if self._queue is not None and self._consumer_task is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=DRAIN_TIMEOUT_SECONDS)
            except TimeoutError:
                logger.warning("Timed out draining %d queued trades", self._queue.qsize())

        if self._consumer_task:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None

    async def _wait_for_sinks(self) -> None:
        # A title lookup can schedule sink calls of its own, so loop until idle.
        while self._sink_tasks:
            logger.debug("Waiting for %d in-flight sink calls...", len(self._sink_tasks))
            await asyncio.gather(*list(self._sink_tasks), return_exceptions=True)

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._sink:
            await self._sink.close()
            self._sink = None

        if self._broadcaster:
            await self._broadcaster.close()
            self._broadcaster = None

        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

        self._feed = None
        self._poller = None
        logger.debug("Resources cleaned up")

    async def submit(self, trade: TradeEvent) -> None:
        """Producer entry point: enqueue a trade for processing.

        Waits for queue space when the consumer falls behind.
        """
        if self._queue is None:
            raise RuntimeError("Pipeline is not started")
        self._stats.trades_received += 1
        await self._queue.put(trade)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            trade = await self._queue.get()
            try:
                await self.process_trade(trade)
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("Error processing trade %s: %s", trade.trade_id, e)
            finally:
                self._queue.task_done()

    async def process_trade(self, trade: TradeEvent) -> AnomalyResult | None:
        """Take one trade through dedup, baseline update, classification and emission.

        Returns:
            The classification, or None when the trade is a duplicate.
        """
        if not self._dedup.is_new(trade.trade_id):
            self._stats.duplicates += 1
            logger.debug("Duplicate trade %s", trade.trade_id)
            return None

        notional = float(trade.notional_value)
        self._engine.observe(trade.market_id, notional)
        anomaly = self._classifier.classify(trade)

        self._stats.trades_processed += 1
        self._stats.last_trade_time = datetime.now(UTC)

        if anomaly.is_anomaly:
            self._stats.anomalies_detected += 1
            self._emit(trade, anomaly)
        return anomaly

    def _known_title(self, trade: TradeEvent) -> str | None:
        title = trade.market_title
        if title.strip().lower() not in UNKNOWN_MARKET_TITLES:
            self._titles.remember(trade.market_id, title)
            return title
        return self._titles.cached(trade.market_id)

    def _emit(self, trade: TradeEvent, anomaly: AnomalyResult) -> None:
        if trade.source is TradeSource.PUSH and not self._settings.detection.push_emit_anomalies:
            return

        title = self._known_title(trade)
        if title is not None:
            self._deliver(trade, anomaly, title)
            return
        # Uncached titles are fetched off the consumer so the queue keeps moving.
        self._schedule(self._resolve_and_deliver(trade, anomaly), name=f"title-{trade.trade_id}")

    async def _resolve_and_deliver(self, trade: TradeEvent, anomaly: AnomalyResult) -> None:
        title = await self._titles.resolve(trade.market_id)
        if title is None:
            self._stats.untitled_dropped += 1
            logger.info(
                "Dropping %s whale on market %s: no market title",
                anomaly.severity.value,
                trade.market_id,
            )
            return
        self._deliver(trade, anomaly, title)

    def _deliver(self, trade: TradeEvent, anomaly: AnomalyResult, title: str) -> None:
        alert = WhaleAlert(trade=trade, anomaly=anomaly, market_title=title)
        self._stats.alerts_emitted += 1
        logger.info(format_whale_log_line(trade, anomaly, title))

        if self._dry_run:
            return
        if self._sink:
            self._schedule(
                self._sink.persist(trade, anomaly, market_title=title),
                name=f"persist-{trade.trade_id}",
            )
        if self._broadcaster:
            self._schedule(self._broadcaster.publish(alert), name=f"publish-{trade.trade_id}")

    async def _on_feed_state_change(self, state: ConnectionState) -> None:
        if self._broadcaster is None or self._dry_run:
            return
        if state in (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED):
            self._schedule(
                self._broadcaster.publish_status(connected=state == ConnectionState.CONNECTED),
                name="publish-status",
            )

    def _schedule(self, coro: Coroutine[Any, Any, Any], *, name: str) -> None:
        """Run a sink or title call in the background; failures are logged, never raised."""
        task = asyncio.create_task(coro, name=name)
        self._sink_tasks.add(task)
        task.add_done_callback(self._on_sink_done)

    def _on_sink_done(self, task: asyncio.Task[Any]) -> None:
        self._sink_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._stats.last_error = str(exc)
            logger.error("Sink call %s failed: %s", task.get_name(), exc)

    async def run(self) -> None:
        """Start the pipeline and run until stop() or cancellation.

        Example:
            ```python
            pipeline = Pipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask a running run() call to shut down (safe from signal handlers)."""
        if self._stop_event:
            self._stop_event.set()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()

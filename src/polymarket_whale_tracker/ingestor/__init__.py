"""Data ingestion layer - Polymarket trade feeds and rolling baselines."""

from polymarket_whale_tracker.ingestor.baselines import GLOBAL, RollingStatisticsEngine
from polymarket_whale_tracker.ingestor.dedup import TradeDeduplicator
from polymarket_whale_tracker.ingestor.market_websocket import (
    ConnectionState,
    MarketConnectionError,
    MarketFeedConnector,
    MarketFeedError,
    PriceUpdate,
)
from polymarket_whale_tracker.ingestor.models import (
    MonitoredMarket,
    TradeEvent,
    TradeParseError,
    TradeSource,
)
from polymarket_whale_tracker.ingestor.poller import TradePoller
from polymarket_whale_tracker.ingestor.polymarket_client import (
    PolymarketClient,
    PolymarketClientError,
    PolymarketNotFoundError,
    PolymarketTransientError,
)
from polymarket_whale_tracker.ingestor.titles import MarketTitleResolver

__all__ = [
    "GLOBAL",
    "ConnectionState",
    "MarketConnectionError",
    "MarketFeedConnector",
    "MarketFeedError",
    "MarketTitleResolver",
    "MonitoredMarket",
    "PolymarketClient",
    "PolymarketClientError",
    "PolymarketNotFoundError",
    "PolymarketTransientError",
    "PriceUpdate",
    "RollingStatisticsEngine",
    "TradeDeduplicator",
    "TradeEvent",
    "TradeParseError",
    "TradePoller",
    "TradeSource",
]

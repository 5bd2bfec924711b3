"""Tests for market-title resolution."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_whale_tracker.ingestor.models import MonitoredMarket
from polymarket_whale_tracker.ingestor.polymarket_client import (
    PolymarketClient,
    PolymarketNotFoundError,
    PolymarketTransientError,
)
from polymarket_whale_tracker.ingestor.titles import MarketTitleResolver


@pytest.fixture
def mock_client():
    client = MagicMock(spec=PolymarketClient)
    client.get_market_title = AsyncMock(return_value="Will it rain?")
    return client


class TestResolve:
    @pytest.mark.asyncio
    async def test_fetches_once_then_caches(self, mock_client) -> None:
        resolver = MarketTitleResolver(mock_client)

        assert await resolver.resolve("0xcond") == "Will it rain?"
        assert await resolver.resolve("0xcond") == "Will it rain?"
        mock_client.get_market_title.assert_awaited_once_with("0xcond")
        assert resolver.cached("0xcond") == "Will it rain?"

    @pytest.mark.asyncio
    async def test_remembered_titles_skip_lookup(self, mock_client) -> None:
        resolver = MarketTitleResolver(mock_client)
        resolver.remember("0xcond", "Known title")

        assert await resolver.resolve("0xcond") == "Known title"
        mock_client.get_market_title.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_placeholder_titles_are_ignored(self, mock_client) -> None:
        resolver = MarketTitleResolver(mock_client)
        resolver.remember("0xcond", "Unknown Market")
        assert resolver.cached("0xcond") is None

    @pytest.mark.asyncio
    async def test_not_found_is_retried(self, mock_client) -> None:
        mock_client.get_market_title.side_effect = [
            PolymarketNotFoundError("404"),
            "Will it rain?",
        ]
        resolver = MarketTitleResolver(mock_client)

        assert await resolver.resolve("0xcond") is None
        assert await resolver.resolve("0xcond") == "Will it rain?"
        assert mock_client.get_market_title.await_count == 2

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, mock_client) -> None:
        mock_client.get_market_title.side_effect = [
            PolymarketTransientError("timeout"),
            "Will it rain?",
        ]
        resolver = MarketTitleResolver(mock_client)

        assert await resolver.resolve("0xcond") is None
        assert await resolver.resolve("0xcond") == "Will it rain?"

    @pytest.mark.asyncio
    async def test_unknown_title_from_upstream(self, mock_client) -> None:
        mock_client.get_market_title.return_value = "unknown"
        resolver = MarketTitleResolver(mock_client)
        assert await resolver.resolve("0xcond") is None
        assert resolver.cached("0xcond") is None

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, mock_client) -> None:
        mock_client.get_market_title.return_value = None
        resolver = MarketTitleResolver(mock_client)

        for _ in range(3):
            assert await resolver.resolve("0xcond") is None

        assert mock_client.get_market_title.await_count == 3
        assert len(resolver) == 0

    @pytest.mark.asyncio
    async def test_without_client(self) -> None:
        resolver = MarketTitleResolver(None)
        assert await resolver.resolve("0xcond") is None

    @pytest.mark.asyncio
    async def test_remember_markets(self, mock_client) -> None:
        resolver = MarketTitleResolver(mock_client)
        resolver.remember_markets(
            [
                MonitoredMarket(
                    market_id="1",
                    condition_id="0xa",
                    question="Market A",
                    slug="a",
                    volume=1.0,
                    liquidity=1.0,
                    category="Other",
                )
            ]
        )
        assert len(resolver) == 1
        assert await resolver.resolve("0xa") == "Market A"

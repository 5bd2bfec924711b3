"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

from polymarket_whale_tracker.ingestor.models import TradeEvent, TradeSource


@pytest.fixture
def sample_market_id() -> str:
    """Sample market ID for testing."""
    return "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def make_trade(sample_market_id: str) -> Callable[..., TradeEvent]:
    """Factory for TradeEvents with sensible defaults."""
    counter = iter(range(1_000_000))

    def _make(**overrides: Any) -> TradeEvent:
        n = next(counter)
        fields: dict[str, Any] = {
            "trade_id": f"0x{n:064x}",
            "market_id": sample_market_id,
            "asset_id": "asset_123",
            "side": "BUY",
            "size": Decimal("100"),
            "price": Decimal("0.5"),
            "timestamp": datetime(2026, 1, 1, tzinfo=UTC),
            "source": TradeSource.POLL,
            "wallet_address": "0x" + "b" * 40,
            "market_title": "Will it rain tomorrow?",
        }
        fields.update(overrides)
        return TradeEvent(**fields)

    return _make

"""Persistence sink for classified whale trades."""

from __future__ import annotations

import logging

from polymarket_whale_tracker.alerter.formatter import format_alert_description
from polymarket_whale_tracker.detector.models import AnomalyResult
from polymarket_whale_tracker.ingestor.models import TradeEvent
from polymarket_whale_tracker.storage.database import DatabaseManager
from polymarket_whale_tracker.storage.repos import (
    WhaleAlertDTO,
    WhaleAlertRepository,
    WhaleTradeDTO,
    WhaleTradeRepository,
)

logger = logging.getLogger(__name__)


class TradeSink:
    """Writes whale trades (and alerts for HIGH/EXTREME ones) to the database.

    Example:
        ```python
        sink = TradeSink(DatabaseManager(settings.database.url))
        await sink.persist(trade, anomaly, market_title="Will BTC hit 100k?")
        ```
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def persist(
        self,
        trade: TradeEvent,
        anomaly: AnomalyResult,
        *,
        market_title: str,
    ) -> None:
        """Store one whale trade, plus its alert row when severe enough.

        Both rows are written in the same transaction.
        """
        async with self._db.get_async_session() as session:
            await WhaleTradeRepository(session).upsert(
                WhaleTradeDTO(
                    trade_id=trade.trade_id,
                    market_id=trade.market_id,
                    market_title=market_title,
                    asset_id=trade.asset_id,
                    wallet_address=trade.wallet_address or None,
                    side=trade.side,
                    outcome=trade.outcome or None,
                    source=trade.source.value,
                    price=trade.price,
                    size=trade.size,
                    notional_usdc=trade.notional_value,
                    z_score=anomaly.z_score,
                    percentile=anomaly.percentile,
                    suspicion_score=anomaly.suspicion_score,
                    severity=anomaly.severity.value,
                    ts=trade.timestamp,
                )
            )
            if anomaly.severity.is_alertable:
                await WhaleAlertRepository(session).upsert(
                    WhaleAlertDTO(
                        trade_id=trade.trade_id,
                        market_id=trade.market_id,
                        severity=anomaly.severity.value,
                        score=anomaly.suspicion_score,
                        description=format_alert_description(trade, anomaly, market_title),
                    )
                )
        logger.debug("Persisted whale trade %s", trade.trade_id)

    async def close(self) -> None:
        await self._db.dispose_async()

"""Repository pattern implementations for data access.

This module provides data access abstractions for whale trades and whale
alerts. Writes are upserts keyed by trade id so that at-least-once delivery
from the pipeline stays idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polymarket_whale_tracker.storage.models import WhaleAlertModel, WhaleTradeModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession, model: type[Any]) -> Any:
    """Dialect-specific INSERT that supports ON CONFLICT."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


@dataclass
class WhaleTradeDTO:
    """Data transfer object for whale trades."""

    trade_id: str
    market_id: str
    market_title: str
    side: str
    source: str
    price: Decimal
    size: Decimal
    notional_usdc: Decimal
    z_score: float
    percentile: float
    suspicion_score: float
    severity: str
    ts: datetime
    asset_id: str = ""
    wallet_address: str | None = None
    outcome: str | None = None


class WhaleTradeRepository:
    """Repository for persisted whale trades."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: WhaleTradeDTO) -> WhaleTradeDTO:
        """Upsert a whale trade by trade_id (idempotent ingestion)."""
        values = {
            "trade_id": dto.trade_id,
            "market_id": dto.market_id,
            "market_title": dto.market_title,
            "asset_id": dto.asset_id,
            "wallet_address": dto.wallet_address.lower() if dto.wallet_address else None,
            "side": dto.side,
            "outcome": dto.outcome,
            "source": dto.source,
            "price": dto.price,
            "size": dto.size,
            "notional_usdc": dto.notional_usdc,
            "z_score": dto.z_score,
            "percentile": dto.percentile,
            "suspicion_score": dto.suspicion_score,
            "severity": dto.severity,
            "ts": dto.ts,
        }
        stmt = _insert_for(self.session, WhaleTradeModel).values(
            **values, created_at=datetime.now(UTC)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["trade_id"],
            set_={
                "market_title": stmt.excluded.market_title,
                "wallet_address": stmt.excluded.wallet_address,
                "outcome": stmt.excluded.outcome,
                "z_score": stmt.excluded.z_score,
                "percentile": stmt.excluded.percentile,
                "suspicion_score": stmt.excluded.suspicion_score,
                "severity": stmt.excluded.severity,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto


@dataclass
class WhaleAlertDTO:
    """Data transfer object for whale alerts."""

    trade_id: str
    market_id: str
    severity: str
    score: float
    description: str


class WhaleAlertRepository:
    """Repository for persisted whale alerts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: WhaleAlertDTO) -> WhaleAlertDTO:
        """Insert an alert, replacing the existing one for the same trade."""
        values = {
            "trade_id": dto.trade_id,
            "market_id": dto.market_id,
            "severity": dto.severity,
            "score": dto.score,
            "description": dto.description,
        }
        stmt = _insert_for(self.session, WhaleAlertModel).values(
            **values, created_at=datetime.now(UTC)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["trade_id"],
            set_={
                "severity": stmt.excluded.severity,
                "score": stmt.excluded.score,
                "description": stmt.excluded.description,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto

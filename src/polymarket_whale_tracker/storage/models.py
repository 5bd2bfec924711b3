"""SQLAlchemy models for persistent storage.

This module defines the database schema for classified whale trades and the
alerts raised for the most severe of them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class WhaleTradeModel(Base):
    """An anomalous trade together with the scores it was classified with."""

    __tablename__ = "whale_trades"

    trade_id: Mapped[str] = mapped_column(String(80), primary_key=True)  # tx hash or ws: key
    market_id: Mapped[str] = mapped_column(String(80), nullable=False)
    market_title: Mapped[str] = mapped_column(Text, nullable=False)
    asset_id: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    wallet_address: Mapped[str | None] = mapped_column(String(42), nullable=True)

    side: Mapped[str] = mapped_column(String(4), nullable=False)  # BUY/SELL
    outcome: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(String(8), nullable=False)  # push/poll

    price: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    size: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    notional_usdc: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)

    z_score: Mapped[float] = mapped_column(Float, nullable=False)
    percentile: Mapped[float] = mapped_column(Float, nullable=False)
    suspicion_score: Mapped[float] = mapped_column(Float, nullable=False)
    severity: Mapped[str] = mapped_column(String(8), nullable=False)

    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_whale_trades_ts", "ts"),
        Index("idx_whale_trades_market_ts", "market_id", "ts"),
    )


class WhaleAlertModel(Base):
    """A HIGH or EXTREME severity alert raised for a whale trade."""

    __tablename__ = "whale_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trade_id: Mapped[str] = mapped_column(String(80), nullable=False)
    market_id: Mapped[str] = mapped_column(String(80), nullable=False)
    severity: Mapped[str] = mapped_column(String(8), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("trade_id", name="uq_whale_alerts_trade"),
        Index("idx_whale_alerts_created_at", "created_at"),
    )

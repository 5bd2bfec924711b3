"""Data models for the detector module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from polymarket_whale_tracker.ingestor.models import TradeEvent


class Severity(str, Enum):
    """Ordered severity tiers for an anomalous trade."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"

    @property
    def is_alertable(self) -> bool:
        """Return True for tiers that produce a persisted alert row."""
        return self in (Severity.HIGH, Severity.EXTREME)


@dataclass(frozen=True)
class AnomalyResult:
    """Outcome of classifying one trade against the rolling baselines.

    Attributes:
        is_anomaly: Whether the trade is a whale trade.
        z_score: Weighted combination of the global and market z-scores.
        global_z_score: Z-score against the global window.
        market_z_score: Z-score against the trade's market window.
        percentile: Rank of the trade within the global window (0-100).
        suspicion_score: Composite score in [0, 100].
        severity: Severity tier.
    """

    is_anomaly: bool
    z_score: float
    global_z_score: float
    market_z_score: float
    percentile: float
    suspicion_score: float
    severity: Severity

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_anomaly": self.is_anomaly,
            "z_score": round(self.z_score, 4),
            "global_z_score": round(self.global_z_score, 4),
            "market_z_score": round(self.market_z_score, 4),
            "percentile": round(self.percentile, 2),
            "suspicion_score": round(self.suspicion_score, 2),
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class WhaleAlert:
    """A classified whale trade ready for delivery to sinks."""

    trade: TradeEvent
    anomaly: AnomalyResult
    market_title: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def severity(self) -> Severity:
        return self.anomaly.severity

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dictionary for live subscribers."""
        trade = self.trade.to_dict()
        trade["market_title"] = self.market_title
        return {
            "type": "whale_trade",
            "trade": trade,
            "anomaly": self.anomaly.to_dict(),
            "created_at": self.created_at.isoformat(),
        }

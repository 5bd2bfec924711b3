"""Whale trade classification.

Scores a trade's notional value against the global and per-market rolling
baselines and maps the result to an anomaly flag, a 0-100 suspicion score and
a severity tier.

Scoring:
- combined z = 0.4 * global z + 0.6 * market z
- suspicion = min(40, |z| * 12) + min(30, (percentile - 50) * 0.6) + size bonus,
  clamped to [0, 100]
- anomaly when combined z > 1.5 or notional > $5,000
"""

from __future__ import annotations

import logging

from polymarket_whale_tracker.detector.models import AnomalyResult, Severity
from polymarket_whale_tracker.ingestor.baselines import GLOBAL, RollingStatisticsEngine
from polymarket_whale_tracker.ingestor.models import TradeEvent

logger = logging.getLogger(__name__)

GLOBAL_WEIGHT = 0.4
MARKET_WEIGHT = 0.6

Z_SCORE_FACTOR = 12.0
Z_SCORE_CAP = 40.0
PERCENTILE_FACTOR = 0.6
PERCENTILE_CAP = 30.0

ANOMALY_Z_THRESHOLD = 1.5
ANOMALY_NOTIONAL_THRESHOLD = 5_000.0

# (minimum notional, bonus), checked largest first
SIZE_BONUS_TIERS: tuple[tuple[float, float], ...] = (
    (100_000.0, 30.0),
    (50_000.0, 25.0),
    (25_000.0, 20.0),
    (10_000.0, 15.0),
    (5_000.0, 10.0),
)

# (severity, z threshold, notional threshold), checked highest first
SEVERITY_TIERS: tuple[tuple[Severity, float, float], ...] = (
    (Severity.EXTREME, 4.0, 100_000.0),
    (Severity.HIGH, 3.0, 50_000.0),
    (Severity.MEDIUM, 2.5, 25_000.0),
)


def combine_z_scores(global_z: float, market_z: float) -> float:
    return GLOBAL_WEIGHT * global_z + MARKET_WEIGHT * market_z


def size_bucket_bonus(notional: float) -> float:
    for floor, bonus in SIZE_BONUS_TIERS:
        if notional > floor:
            return bonus
    return 0.0


def calculate_suspicion_score(z_score: float, percentile: float, notional: float) -> float:
    """Composite suspicion score in [0, 100].

    The percentile component is negative below the median, so an ordinary
    trade can score lower than its z-score component alone.
    """
    z_component = min(Z_SCORE_CAP, abs(z_score) * Z_SCORE_FACTOR)
    percentile_component = min(PERCENTILE_CAP, (percentile - 50.0) * PERCENTILE_FACTOR)
    score = z_component + percentile_component + size_bucket_bonus(notional)
    return max(0.0, min(100.0, score))


def classify_severity(z_score: float, notional: float) -> Severity:
    for severity, z_threshold, notional_threshold in SEVERITY_TIERS:
        if z_score > z_threshold or notional > notional_threshold:
            return severity
    return Severity.LOW


def is_anomalous(z_score: float, notional: float) -> bool:
    return z_score > ANOMALY_Z_THRESHOLD or notional > ANOMALY_NOTIONAL_THRESHOLD


class WhaleClassifier:
    """Classifies trades against a RollingStatisticsEngine.

    The classifier only reads the engine. Callers observe the trade first so
    that its own value is part of the baseline it is scored against.

    Example:
        ```python
        engine = RollingStatisticsEngine()
        classifier = WhaleClassifier(engine)

        engine.observe(trade.market_id, float(trade.notional_value))
        result = classifier.classify(trade)
        if result.is_anomaly:
            print(f"Whale! severity={result.severity.value}")
        ```
    """

    def __init__(self, engine: RollingStatisticsEngine) -> None:
        self._engine = engine

    def classify(self, trade: TradeEvent) -> AnomalyResult:
        return self.classify_value(trade.market_id, float(trade.notional_value))

    def classify_value(self, market_id: str, notional: float) -> AnomalyResult:
        """Classify a raw notional value observed on ``market_id``."""
        global_z = self._engine.z_score(GLOBAL, notional)
        market_z = self._engine.z_score(market_id, notional)
        percentile = self._engine.percentile(GLOBAL, notional)

        z_score = combine_z_scores(global_z, market_z)
        result = AnomalyResult(
            is_anomaly=is_anomalous(z_score, notional),
            z_score=z_score,
            global_z_score=global_z,
            market_z_score=market_z,
            percentile=percentile,
            suspicion_score=calculate_suspicion_score(z_score, percentile, notional),
            severity=classify_severity(z_score, notional),
        )

        if result.is_anomaly:
            logger.debug(
                "Anomaly on market %s: notional=%.2f, z=%.2f, pct=%.1f, score=%.1f, severity=%s",
                market_id,
                notional,
                z_score,
                percentile,
                result.suspicion_score,
                result.severity.value,
            )
        return result

"""Tests for whale trade classification."""

from decimal import Decimal

import pytest

from polymarket_whale_tracker.detector.models import AnomalyResult, Severity
from polymarket_whale_tracker.detector.whale import (
    WhaleClassifier,
    calculate_suspicion_score,
    classify_severity,
    combine_z_scores,
    is_anomalous,
    size_bucket_bonus,
)
from polymarket_whale_tracker.ingestor.baselines import GLOBAL, RollingStatisticsEngine


class TestCombineZScores:
    def test_market_weighted_more_heavily(self) -> None:
        assert combine_z_scores(1.0, 0.0) == pytest.approx(0.4)
        assert combine_z_scores(0.0, 1.0) == pytest.approx(0.6)
        assert combine_z_scores(2.0, 3.0) == pytest.approx(2.6)


class TestSizeBucketBonus:
    @pytest.mark.parametrize(
        ("notional", "bonus"),
        [
            (150_000, 30),
            (100_000.01, 30),
            (100_000, 25),
            (60_000, 25),
            (30_000, 20),
            (15_000, 15),
            (6_000, 10),
            (5_000, 0),
            (10, 0),
        ],
    )
    def test_tiers(self, notional, bonus) -> None:
        assert size_bucket_bonus(notional) == bonus


class TestSuspicionScore:
    def test_clamped_at_hundred(self) -> None:
        assert calculate_suspicion_score(5.0, 100.0, 150_000) == 100.0
        assert calculate_suspicion_score(50.0, 100.0, 1_000_000) == 100.0

    def test_components(self) -> None:
        # 1.0 * 12 + (75 - 50) * 0.6 + 15
        assert calculate_suspicion_score(1.0, 75.0, 12_000) == pytest.approx(42.0)

    def test_uses_absolute_z(self) -> None:
        assert calculate_suspicion_score(-2.0, 50.0, 0) == pytest.approx(24.0)

    def test_clamped_at_zero(self) -> None:
        assert calculate_suspicion_score(0.0, 0.0, 10) == 0.0

    def test_small_trade_scores_low(self) -> None:
        score = calculate_suspicion_score(0.2, 70.0, 3_000)
        assert score < 20


class TestClassifySeverity:
    @pytest.mark.parametrize(
        ("z", "notional", "expected"),
        [
            (5.0, 150_000, Severity.EXTREME),
            (4.1, 10, Severity.EXTREME),
            (0.0, 100_001, Severity.EXTREME),
            (3.5, 10, Severity.HIGH),
            (0.0, 50_001, Severity.HIGH),
            (2.6, 10, Severity.MEDIUM),
            (0.0, 25_001, Severity.MEDIUM),
            (2.5, 25_000, Severity.LOW),
            (0.2, 3_000, Severity.LOW),
        ],
    )
    def test_tiers(self, z, notional, expected) -> None:
        assert classify_severity(z, notional) is expected

    def test_alertable(self) -> None:
        assert Severity.EXTREME.is_alertable
        assert Severity.HIGH.is_alertable
        assert not Severity.MEDIUM.is_alertable
        assert not Severity.LOW.is_alertable


class TestIsAnomalous:
    @pytest.mark.parametrize(
        ("z", "notional", "expected"),
        [
            (1.6, 10, True),
            (1.5, 10, False),
            (0.0, 5_001, True),
            (0.0, 5_000, False),
            (0.2, 3_000, False),
            (5.0, 150_000, True),
        ],
    )
    def test_rule(self, z, notional, expected) -> None:
        assert is_anomalous(z, notional) is expected


def _baseline_engine() -> RollingStatisticsEngine:
    engine = RollingStatisticsEngine()
    for i in range(100):
        engine.observe("0xm1", 80.0 + (i % 5) * 10.0)
        engine.observe("0xm2", 200.0 + (i % 3) * 50.0)
    return engine


class TestWhaleClassifier:
    def test_extreme_whale(self, make_trade) -> None:
        engine = _baseline_engine()
        trade = make_trade(market_id="0xm1", size=Decimal("300000"), price=Decimal("0.5"))
        engine.observe(trade.market_id, float(trade.notional_value))

        result = WhaleClassifier(engine).classify(trade)

        assert result.is_anomaly
        assert result.severity is Severity.EXTREME
        assert result.z_score == pytest.approx(
            0.4 * result.global_z_score + 0.6 * result.market_z_score
        )
        assert result.z_score > 4
        assert 0 <= result.suspicion_score <= 100
        assert result.suspicion_score > 95
        assert result.percentile > 99

    def test_ordinary_trade(self, make_trade) -> None:
        engine = _baseline_engine()
        trade = make_trade(market_id="0xm1", size=Decimal("200"), price=Decimal("0.5"))
        engine.observe(trade.market_id, float(trade.notional_value))

        result = WhaleClassifier(engine).classify(trade)

        assert not result.is_anomaly
        assert result.severity is Severity.LOW
        assert result.suspicion_score < 20

    def test_cold_windows_still_flag_large_notional(self, make_trade) -> None:
        engine = RollingStatisticsEngine()
        trade = make_trade(size=Decimal("20000"), price=Decimal("0.5"))
        engine.observe(trade.market_id, float(trade.notional_value))

        result = WhaleClassifier(engine).classify(trade)

        assert result.z_score == 0.0
        assert result.percentile == 0.0
        assert result.is_anomaly
        assert result.severity is Severity.LOW

    def test_deterministic(self, make_trade) -> None:
        engine = _baseline_engine()
        trade = make_trade(market_id="0xm2", size=Decimal("4000"), price=Decimal("0.9"))
        engine.observe(trade.market_id, float(trade.notional_value))
        classifier = WhaleClassifier(engine)

        first = classifier.classify(trade)
        second = classifier.classify(trade)

        assert first == second

    def test_reads_engine_only(self, make_trade) -> None:
        engine = _baseline_engine()
        before = engine.window_size(GLOBAL)
        WhaleClassifier(engine).classify(make_trade(market_id="0xm1"))
        assert engine.window_size(GLOBAL) == before


class TestAnomalyResult:
    def test_to_dict(self) -> None:
        result = AnomalyResult(
            is_anomaly=True,
            z_score=5.123456,
            global_z_score=4.0,
            market_z_score=5.87,
            percentile=99.5,
            suspicion_score=100.0,
            severity=Severity.EXTREME,
        )
        data = result.to_dict()
        assert data["severity"] == "EXTREME"
        assert data["z_score"] == 5.1235
        assert data["is_anomaly"] is True

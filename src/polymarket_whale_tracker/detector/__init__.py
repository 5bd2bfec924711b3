"""Anomaly detection layer - Whale trade classification."""

from polymarket_whale_tracker.detector.models import AnomalyResult, Severity, WhaleAlert
from polymarket_whale_tracker.detector.whale import (
    WhaleClassifier,
    calculate_suspicion_score,
    classify_severity,
    combine_z_scores,
    is_anomalous,
    size_bucket_bonus,
)

__all__ = [
    "AnomalyResult",
    "Severity",
    "WhaleAlert",
    "WhaleClassifier",
    "calculate_suspicion_score",
    "classify_severity",
    "combine_z_scores",
    "is_anomalous",
    "size_bucket_bonus",
]

"""Health trend and anomaly rate over recent snapshot history."""

from __future__ import annotations

from typing import Sequence

from app.schemas import HealthTrend, TrustStatus
from models.records import TrendSummary


def score_slope(scores: Sequence[float]) -> float:
    """Least-squares slope of ``scores`` against evaluation order (oldest first)."""
    count = len(scores)
    if count < 2:
        return 0.0
    mean_x = (count - 1) / 2
    mean_y = sum(scores) / count
    numerator = sum((index - mean_x) * (score - mean_y) for index, score in enumerate(scores))
    denominator = sum((index - mean_x) ** 2 for index in range(count))
    return numerator / denominator


def trend_for_slope(slope: float, epsilon: float) -> HealthTrend:
    if slope > epsilon:
        return HealthTrend.improving
    if slope < -epsilon:
        return HealthTrend.degrading
    return HealthTrend.stable


def summarize_trend(
    scores: Sequence[float],
    statuses: Sequence[TrustStatus],
    epsilon: float,
) -> TrendSummary:
    """Fold a window of scores and statuses, both ordered oldest first."""
    slope = round(score_slope(scores), 6)
    if statuses:
        unhealthy = sum(1 for status in statuses if status != TrustStatus.healthy)
        anomaly_rate = round(unhealthy / len(statuses), 6)
    else:
        anomaly_rate = 0.0
    return TrendSummary(
        trend=trend_for_slope(slope, epsilon),
        slope=slope,
        anomaly_rate=anomaly_rate,
    )

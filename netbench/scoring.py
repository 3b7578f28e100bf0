"""
Scoring: maps aggregated metrics to points, a 0-100 score and a tier.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from netbench.metrics import AggregatedMetric, MetricKind

MAX_SCORE = 100
BANDWIDTH_CAP = 50


class ClassificationTier(str, Enum):
    ENTERPRISE_GRADE = "Enterprise-Grade"
    EXCELLENT = "Excellent"
    VERY_GOOD = "Very Good"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


# Lower bounds, inclusive, checked top-down
TIER_THRESHOLDS = (
    (90, ClassificationTier.ENTERPRISE_GRADE),
    (75, ClassificationTier.EXCELLENT),
    (60, ClassificationTier.VERY_GOOD),
    (45, ClassificationTier.GOOD),
    (30, ClassificationTier.FAIR),
)


def classify(score: int) -> ClassificationTier:
    """Map a score to its tier."""
    for lower_bound, tier in TIER_THRESHOLDS:
        if score >= lower_bound:
            return tier
    return ClassificationTier.POOR


@dataclass(frozen=True)
class ThresholdBand:
    """Awards ``points`` when a value is strictly below ``upper``."""

    upper: float
    points: int


@dataclass(frozen=True)
class ScoringRule:
    metric_kind: MetricKind
    bands: tuple[ThresholdBand, ...]
    cap: int

    def points_for(self, value: float) -> int:
        for band in self.bands:
            if value < band.upper:
                return min(band.points, self.cap)
        return 0


# Thresholds are in each metric's native unit (DNS/TCP seconds, latency ms)
DEFAULT_RULES = (
    ScoringRule(
        MetricKind.DNS,
        (ThresholdBand(0.050, 15), ThresholdBand(0.100, 10), ThresholdBand(0.200, 5)),
        cap=15,
    ),
    ScoringRule(
        MetricKind.LATENCY,
        (ThresholdBand(20, 20), ThresholdBand(50, 15), ThresholdBand(100, 10)),
        cap=20,
    ),
    ScoringRule(
        MetricKind.TCP_CONNECT,
        (ThresholdBand(0.100, 15), ThresholdBand(0.300, 10), ThresholdBand(0.500, 5)),
        cap=15,
    ),
)

# Download Mbps lower bounds, inclusive
BANDWIDTH_BANDS = (
    (500.0, 50),
    (250.0, 45),
    (100.0, 40),
    (50.0, 30),
    (25.0, 20),
    (10.0, 10),
)


def bandwidth_points(mbps: float | None) -> int:
    """Points for the session's averaged download throughput, 0-50.

    Applied by the orchestrator to the merged cross-stream figure rather
    than through the per-metric rules.
    """
    if mbps is None or not math.isfinite(mbps) or mbps <= 0:
        return 0
    for lower_bound, points in BANDWIDTH_BANDS:
        if mbps >= lower_bound:
            return min(points, BANDWIDTH_CAP)
    return 5


class ScoringEngine:
    """Additive point model over threshold bands."""

    def __init__(self, rules: tuple[ScoringRule, ...] = DEFAULT_RULES):
        self.rules = rules

    def points(self, metric: AggregatedMetric | None, rule: ScoringRule) -> int:
        """Points for one metric. Missing, failed or nonsensical data scores 0."""
        if metric is None or metric.all_failed or metric.mean_value is None:
            return 0
        value = metric.mean_value
        if not math.isfinite(value) or value < 0:
            return 0
        return rule.points_for(value)

    def breakdown(self, metrics: Mapping[MetricKind, AggregatedMetric]) -> dict[MetricKind, int]:
        return {rule.metric_kind: self.points(metrics.get(rule.metric_kind), rule) for rule in self.rules}

    def score(
        self,
        metrics: Mapping[MetricKind, AggregatedMetric],
        bandwidth_points: int = 0,
    ) -> tuple[int, ClassificationTier]:
        total = sum(self.breakdown(metrics).values())
        total += min(max(bandwidth_points, 0), BANDWIDTH_CAP)
        total = min(max(total, 0), MAX_SCORE)
        return total, classify(total)

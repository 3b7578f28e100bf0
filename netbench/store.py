"""
Session persistence and before/after comparison.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import database
from config import get_results_path
from netbench.errors import PersistenceError, SessionNotFoundError
from netbench.metrics import MetricKind

if TYPE_CHECKING:
    from netbench.session import BenchmarkSession

logger = logging.getLogger(__name__)


@dataclass
class SessionReport:
    """Durable, JSON-native snapshot of a completed session."""

    session_id: str
    timestamp: str
    end_time: str
    duration_budget_s: float
    concurrency: int
    comprehensive: bool
    score: int
    classification: str
    average_download_mbps: float | None
    error_rate_percent: float | None
    points: dict[str, int] = field(default_factory=dict)
    metrics: dict[str, dict[str, Any]] = field(default_factory=dict)
    worker_results: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_session(cls, session: BenchmarkSession) -> SessionReport:
        return cls(
            session_id=session.session_id,
            timestamp=session.start_time.isoformat(),
            end_time=session.end_time.isoformat(),
            duration_budget_s=session.duration_budget_s,
            concurrency=session.concurrency,
            comprehensive=session.comprehensive,
            score=session.score,
            classification=session.tier.value,
            average_download_mbps=session.average_download_mbps,
            error_rate_percent=session.error_rate_percent,
            points=dict(session.points),
            metrics={kind.value: metric.to_dict() for kind, metric in session.aggregated_metrics.items()},
            worker_results=[r.to_dict() for r in session.worker_results],
        )

    def metric_mean(self, kind: MetricKind) -> float | None:
        """Raw mean of a metric, or None if it is missing or all probes failed."""
        metric = self.metrics.get(kind.value)
        if not metric or metric.get("allFailed"):
            return None
        return metric.get("meanValue")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "sessionId": self.session_id,
            "timestamp": self.timestamp,
            "endTime": self.end_time,
            "durationBudgetSeconds": self.duration_budget_s,
            "concurrency": self.concurrency,
            "comprehensive": self.comprehensive,
            "score": self.score,
            "classification": self.classification,
            "averageDownloadMbps": self.average_download_mbps,
            "errorRatePercent": self.error_rate_percent,
            "points": self.points,
            "metrics": self.metrics,
            "workerResults": self.worker_results,
        }

    def to_json(self) -> str:
        """Canonical JSON text; identical reports give identical bytes."""
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionReport:
        return cls(
            session_id=data["sessionId"],
            timestamp=data["timestamp"],
            end_time=data["endTime"],
            duration_budget_s=data["durationBudgetSeconds"],
            concurrency=data["concurrency"],
            comprehensive=data["comprehensive"],
            score=data["score"],
            classification=data["classification"],
            average_download_mbps=data["averageDownloadMbps"],
            error_rate_percent=data["errorRatePercent"],
            points=data.get("points", {}),
            metrics=data.get("metrics", {}),
            worker_results=data.get("workerResults", []),
        )

    @classmethod
    def from_json(cls, text: str) -> SessionReport:
        return cls.from_dict(json.loads(text))


class ImprovementStatus(str, Enum):
    IMPROVED = "improved"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class MetricComparison:
    metric: str
    before_value: float | None
    after_value: float | None
    percent_improvement: float
    status: ImprovementStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "beforeValue": self.before_value,
            "afterValue": self.after_value,
            "percentImprovement": self.percent_improvement,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class ComparisonResult:
    before_id: str
    after_id: str
    metrics: tuple[MetricComparison, ...]
    overall_improvement: float
    score_delta: int
    recommendation: str

    def get(self, metric: str) -> MetricComparison:
        for row in self.metrics:
            if row.metric == metric:
                return row
        raise KeyError(metric)

    def to_dict(self) -> dict[str, Any]:
        return {
            "beforeId": self.before_id,
            "afterId": self.after_id,
            "metrics": [row.to_dict() for row in self.metrics],
            "overallImprovement": self.overall_improvement,
            "scoreDelta": self.score_delta,
            "recommendation": self.recommendation,
        }


def percent_improvement(before: float | None, after: float | None, higher_is_better: bool) -> float:
    """Signed improvement in percent of the before value.

    Returns 0 when there is no usable baseline (missing or zero).
    """
    if before is None or after is None or before == 0:
        return 0.0
    if higher_is_better:
        return (after - before) / before * 100
    return (before - after) / before * 100


def compare_metric(name: str, before: float | None, after: float | None, higher_is_better: bool) -> MetricComparison:
    pct = percent_improvement(before, after, higher_is_better)
    status = ImprovementStatus.IMPROVED if pct > 0 else ImprovementStatus.DEGRADED
    return MetricComparison(name, before, after, pct, status)


def compare(before: SessionReport, after: SessionReport) -> ComparisonResult:
    """Compare two sessions on response time, bandwidth and error rate."""
    rows = (
        compare_metric(
            "response_time",
            before.metric_mean(MetricKind.LATENCY),
            after.metric_mean(MetricKind.LATENCY),
            higher_is_better=False,
        ),
        compare_metric(
            "bandwidth",
            before.average_download_mbps,
            after.average_download_mbps,
            higher_is_better=True,
        ),
        compare_metric(
            "error_rate",
            before.error_rate_percent,
            after.error_rate_percent,
            higher_is_better=False,
        ),
    )
    overall = sum(row.percent_improvement for row in rows) / len(rows)

    if rows[0].percent_improvement + rows[1].percent_improvement > 20:
        recommendation = "Optimization successful - significant improvements detected"
    else:
        recommendation = "Optimization had limited impact - consider additional tuning"

    return ComparisonResult(
        before_id=before.session_id,
        after_id=after.session_id,
        metrics=rows,
        overall_improvement=overall,
        score_delta=after.score - before.score,
        recommendation=recommendation,
    )


class SessionStore:
    """SQLite-backed store of session reports.

    The latest saved report is also written as JSON to a well-known path so
    other tooling can read it without touching the database.
    """

    def __init__(self, db_path: Path | None = None, results_path: Path | None = None):
        self.db_path = db_path or database.DB_PATH
        self.results_path = results_path or get_results_path()
        try:
            database.init_database(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cannot initialize session store at {self.db_path}: {e}") from e

    def save(self, report: SessionReport) -> None:
        text = report.to_json()
        try:
            with database.db_transaction(self.db_path) as conn:
                database.insert_session_record(
                    conn,
                    report.session_id,
                    report.score,
                    report.classification,
                    report.average_download_mbps,
                    text,
                )
            self.results_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.results_path, "w") as f:
                f.write(text)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Failed to save session {report.session_id}: {e}", report=report) from e
        logger.info(f"Saved session {report.session_id} (latest report at {self.results_path})")

    def load(self, session_id: str) -> SessionReport:
        try:
            row = database.find_session(session_id, self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read session {session_id}: {e}") from e
        if row is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return SessionReport.from_json(row["report_json"])

    def list_sessions(self, limit: int = 20) -> list[dict]:
        try:
            return database.list_sessions(limit, self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list sessions: {e}") from e

    def compare_ids(self, before_id: str, after_id: str) -> ComparisonResult:
        return compare(self.load(before_id), self.load(after_id))

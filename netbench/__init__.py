"""
Network benchmarking and scoring engine.

Measures DNS resolution, round-trip latency, TCP connect time and
multi-stream bandwidth within a fixed time budget, folds the results into
a 0-100 score and classification tier, and persists each session so two
runs can be compared.

Usage:
    python -m netbench run
    python -m netbench run --quick --output ./results
    python -m netbench compare BEFORE_ID AFTER_ID
"""

from netbench.timing import TimingRecord, TimingContext, Deadline
from netbench.catalog import Target, TargetKind, EndpointCatalog, default_catalog, load_catalog
from netbench.metrics import (
    MetricKind,
    Measurement,
    SampleStats,
    AggregatedMetric,
    MetricCollector,
    InterfaceStatsCollector,
)
from netbench.probes import ProbeRunner, ProbeSettings
from netbench.worker import WorkerResult, WorkerStream, merge_worker_results
from netbench.scoring import ClassificationTier, ScoringEngine, ScoringRule, classify, bandwidth_points
from netbench.session import BenchmarkConfig, BenchmarkSession, BenchmarkOrchestrator
from netbench.store import SessionReport, SessionStore, ComparisonResult, compare
from netbench.engine import run_benchmark, compare_sessions
from netbench.errors import NetBenchError, SessionLaunchError, PersistenceError, SessionNotFoundError
from netbench.report import ReportGenerator

__all__ = [
    # Timing primitives
    "TimingRecord",
    "TimingContext",
    "Deadline",
    # Endpoints
    "Target",
    "TargetKind",
    "EndpointCatalog",
    "default_catalog",
    "load_catalog",
    # Metrics
    "MetricKind",
    "Measurement",
    "SampleStats",
    "AggregatedMetric",
    "MetricCollector",
    "InterfaceStatsCollector",
    # Probing
    "ProbeRunner",
    "ProbeSettings",
    "WorkerResult",
    "WorkerStream",
    "merge_worker_results",
    # Scoring
    "ClassificationTier",
    "ScoringEngine",
    "ScoringRule",
    "classify",
    "bandwidth_points",
    # Session management
    "BenchmarkConfig",
    "BenchmarkSession",
    "BenchmarkOrchestrator",
    "SessionReport",
    "SessionStore",
    "ComparisonResult",
    "compare",
    "run_benchmark",
    "compare_sessions",
    # Errors
    "NetBenchError",
    "SessionLaunchError",
    "PersistenceError",
    "SessionNotFoundError",
    # Reporting
    "ReportGenerator",
]

"""
Entry points used by external tooling (readiness checks, impact reporters).
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from config import DEFAULT_CONCURRENCY, DEFAULT_DURATION_S, get_catalog_path
from netbench.catalog import load_catalog
from netbench.errors import PersistenceError
from netbench.session import BenchmarkConfig, BenchmarkOrchestrator
from netbench.store import ComparisonResult, SessionReport, SessionStore

logger = logging.getLogger(__name__)


def run_benchmark(
    duration_s: float = DEFAULT_DURATION_S,
    concurrency: int = DEFAULT_CONCURRENCY,
    comprehensive: bool = True,
    *,
    store: SessionStore | None = None,
    progress_callback: Callable[[int, int, str], None] | None = None,
    cancel_event: threading.Event | None = None,
    **config_overrides: Any,
) -> SessionReport:
    """Run, score and persist one benchmark session.

    Raises:
        SessionLaunchError: if no probing unit could be started.
        PersistenceError: if the report could not be saved; the in-memory
            report is attached as ``error.report``.
    """
    catalog_path = get_catalog_path()
    if catalog_path is not None and "catalog" not in config_overrides:
        config_overrides["catalog"] = load_catalog(catalog_path)

    config = BenchmarkConfig(
        duration_s=duration_s,
        concurrency=concurrency,
        comprehensive=comprehensive,
        **config_overrides,
    )
    orchestrator = BenchmarkOrchestrator(config, progress_callback=progress_callback, cancel_event=cancel_event)
    report = SessionReport.from_session(orchestrator.run())

    try:
        (store or SessionStore()).save(report)
    except PersistenceError as e:
        logger.error(f"Session {report.session_id} completed but could not be saved: {e}")
        e.report = report
        raise
    return report


def compare_sessions(
    before_id: str,
    after_id: str,
    store: SessionStore | None = None,
) -> ComparisonResult:
    """Compare two stored sessions.

    Raises:
        SessionNotFoundError: if either id is unknown.
    """
    result = (store or SessionStore()).compare_ids(before_id, after_id)
    logger.info(
        f"Compared {before_id} -> {after_id}: overall {result.overall_improvement:+.1f}%, "
        f"score {result.score_delta:+d}"
    )
    return result

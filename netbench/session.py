"""
Benchmark session orchestrator.

Launches the standalone collectors and N bandwidth streams concurrently,
joins them, merges their results and scores the session.
"""

from __future__ import annotations

import logging
import tempfile
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable

from config import DEFAULT_CONCURRENCY, DEFAULT_DURATION_S, QUICK_CONCURRENCY, QUICK_DURATION_S
from netbench.catalog import EndpointCatalog, Target, default_catalog
from netbench.errors import SessionLaunchError
from netbench.metrics import AggregatedMetric, InterfaceStatsCollector, MetricCollector, MetricKind
from netbench.probes import ProbeRunner, ProbeSettings, detect_network_capability
from netbench.scoring import ClassificationTier, ScoringEngine, bandwidth_points
from netbench.timing import Deadline
from netbench.worker import WorkerResult, WorkerStream, merge_worker_results

logger = logging.getLogger(__name__)


@dataclass
class BenchmarkConfig:
    """Configuration for a benchmark run."""

    duration_s: float = DEFAULT_DURATION_S
    concurrency: int = DEFAULT_CONCURRENCY
    comprehensive: bool = True

    probes: ProbeSettings = field(default_factory=ProbeSettings)
    catalog: EndpointCatalog = field(default_factory=default_catalog)
    scratch_dir: Path | None = None

    # Injection points, mainly for tests
    capability_check: Callable[[], bool] = detect_network_capability
    runner_factory: Callable[..., Any] | None = None

    def __post_init__(self) -> None:
        if self.duration_s <= 0:
            raise ValueError(f"duration_s must be positive, got {self.duration_s}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if isinstance(self.scratch_dir, str):
            self.scratch_dir = Path(self.scratch_dir)

    @classmethod
    def quick(cls, **overrides: Any) -> BenchmarkConfig:
        """Short, download-only assessment used by readiness checks."""
        params = {
            "duration_s": QUICK_DURATION_S,
            "concurrency": QUICK_CONCURRENCY,
            "comprehensive": False,
        }
        params.update(overrides)
        return cls(**params)

    @property
    def join_ceiling_s(self) -> float:
        """Hard bound on how long the orchestrator waits for its units."""
        return self.duration_s + self.probes.max_timeout_s


@dataclass(frozen=True)
class BenchmarkSession:
    """A completed, immutable benchmark run."""

    session_id: str
    start_time: datetime
    end_time: datetime
    duration_budget_s: float
    concurrency: int
    comprehensive: bool
    aggregated_metrics: dict[MetricKind, AggregatedMetric]
    worker_results: tuple[WorkerResult, ...]
    average_download_mbps: float | None
    error_rate_percent: float | None
    points: dict[str, int]
    score: int
    tier: ClassificationTier

    @property
    def wall_time_s(self) -> float:
        """Total wall clock time in seconds."""
        return (self.end_time - self.start_time).total_seconds()


def new_session_id(start_time: datetime) -> str:
    """Timestamp-keyed id with a short suffix to keep concurrent runs apart."""
    return f"{start_time:%Y%m%dT%H%M%S}Z-{uuid.uuid4().hex[:6]}"


def compute_error_rate(
    metrics: dict[MetricKind, AggregatedMetric],
    worker_results: tuple[WorkerResult, ...],
) -> float | None:
    """Percentage of failed probes across collectors and streams."""
    attempted = 0
    failed = 0
    for kind, metric in metrics.items():
        if kind == MetricKind.DOWNLOAD:
            continue
        attempted += metric.attempt_count
        failed += metric.failure_count
    for result in worker_results:
        attempted += result.attempted_tests
        failed += result.attempted_tests - result.successful_tests
    if attempted == 0:
        return None
    return failed / attempted * 100


class BenchmarkOrchestrator:
    """Runs one benchmark session as a fork/join over worker threads."""

    def __init__(
        self,
        config: BenchmarkConfig,
        progress_callback: Callable[[int, int, str], None] | None = None,
        cancel_event: threading.Event | None = None,
        scoring_engine: ScoringEngine | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Benchmark configuration
            progress_callback: Optional callback for progress updates.
                              Called with (completed_units, total_units, message).
            cancel_event: Optional event shared with the caller; setting it
                          stops every unit before its next probe.
            scoring_engine: Scoring engine override
        """
        self.config = config
        self.scoring_engine = scoring_engine or ScoringEngine()
        self._cancel_event = cancel_event or threading.Event()
        self._progress_callback = progress_callback
        self._runner_factory = config.runner_factory or partial(ProbeRunner, config.probes)

    def _report_progress(self, current: int, total: int, message: str) -> None:
        """Report progress if callback is set."""
        if self._progress_callback:
            self._progress_callback(current, total, message)

    def cancel(self) -> None:
        """Operator abort: units stop before starting their next probe."""
        logger.info("Cancellation requested")
        self._cancel_event.set()

    def _run_collector(
        self,
        kind: MetricKind,
        targets: tuple[Target, ...] | None,
        deadline: Deadline,
    ) -> AggregatedMetric:
        timeout = self.config.probes.timeout_for(kind)
        with tempfile.TemporaryDirectory(prefix=f"netbench-{kind.value}-", dir=self.config.scratch_dir) as scratch:
            with self._runner_factory(scratch_dir=Path(scratch)) as runner:
                if kind == MetricKind.INTERFACE_STATS:
                    return InterfaceStatsCollector(runner, deadline).collect(timeout=timeout)
                return MetricCollector(runner, deadline).collect(targets, kind, timeout)

    def _run_stream(self, stream_id: int, deadline: Deadline) -> WorkerResult:
        stream = WorkerStream(
            stream_id=stream_id,
            endpoints=self.config.catalog.download,
            deadline=deadline,
            runner_factory=self._runner_factory,
            timeout=self.config.probes.download_timeout_s,
            scratch_root=self.config.scratch_dir,
        )
        return stream.run()

    def _plan_collectors(self) -> list[tuple[MetricKind, tuple[Target, ...] | None]]:
        catalog = self.config.catalog
        plan: list[tuple[MetricKind, tuple[Target, ...] | None]] = [
            (MetricKind.DNS, catalog.dns),
            (MetricKind.LATENCY, catalog.latency),
            (MetricKind.TCP_CONNECT, catalog.tcp),
        ]
        if self.config.comprehensive:
            plan.append((MetricKind.UPLOAD, catalog.upload))
            plan.append((MetricKind.INTERFACE_STATS, None))
        return plan

    def run(self) -> BenchmarkSession:
        """Execute the full benchmark.

        Returns:
            The completed BenchmarkSession.

        Raises:
            SessionLaunchError: if no probing unit could be started.
        """
        config = self.config
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        session_id = new_session_id(start_time)
        deadline = Deadline(config.duration_s, self._cancel_event)

        logger.info(
            f"Starting session {session_id}: {config.duration_s}s budget, "
            f"{config.concurrency} streams, comprehensive={config.comprehensive}"
        )

        if not config.capability_check():
            raise SessionLaunchError("No network capability detected: no active non-loopback interface")

        collector_plan = self._plan_collectors()
        total_units = len(collector_plan) + config.concurrency
        executor = ThreadPoolExecutor(max_workers=total_units, thread_name_prefix="netbench")

        collector_futures: dict[Future, MetricKind] = {}
        stream_futures: dict[Future, int] = {}
        try:
            for kind, targets in collector_plan:
                try:
                    collector_futures[executor.submit(self._run_collector, kind, targets, deadline)] = kind
                except RuntimeError as e:
                    logger.error(f"Could not launch {kind.value} collector: {e}")
            for stream_id in range(config.concurrency):
                try:
                    stream_futures[executor.submit(self._run_stream, stream_id, deadline)] = stream_id
                except RuntimeError as e:
                    logger.error(f"Could not launch stream {stream_id}: {e}")

            if not collector_futures and not stream_futures:
                raise SessionLaunchError("Could not start any probing unit")

            pending = self._join(set(collector_futures) | set(stream_futures), total_units, started, deadline)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        aggregated: dict[MetricKind, AggregatedMetric] = {}
        for future, kind in collector_futures.items():
            aggregated[kind] = self._collector_result(future, kind, pending)

        results: list[WorkerResult] = []
        for future, stream_id in sorted(stream_futures.items(), key=lambda item: item[1]):
            result = self._stream_result(future, stream_id, pending)
            if result is not None:
                results.append(result)
        worker_results = tuple(results)

        download = merge_worker_results(worker_results)
        aggregated[MetricKind.DOWNLOAD] = download

        bw_points = bandwidth_points(download.mean_value)
        breakdown = self.scoring_engine.breakdown(aggregated)
        score, tier = self.scoring_engine.score(aggregated, bw_points)
        points = {kind.value: pts for kind, pts in breakdown.items()}
        points["bandwidth"] = bw_points

        end_time = datetime.now(timezone.utc)
        session = BenchmarkSession(
            session_id=session_id,
            start_time=start_time,
            end_time=end_time,
            duration_budget_s=config.duration_s,
            concurrency=config.concurrency,
            comprehensive=config.comprehensive,
            aggregated_metrics=aggregated,
            worker_results=worker_results,
            average_download_mbps=download.mean_value,
            error_rate_percent=compute_error_rate(aggregated, worker_results),
            points=points,
            score=score,
            tier=tier,
        )

        avg = f"{download.mean_value:.1f}" if download.mean_value is not None else "n/a"
        logger.info(f"Session {session_id} completed in {session.wall_time_s:.2f}s")
        logger.info(f"Average bandwidth: {avg} Mbps across {download.sample_count} streams")
        logger.info(f"Network performance score: {score}/100 ({tier.value})")
        return session

    def _join(self, futures: set[Future], total_units: int, started: float, deadline: Deadline) -> set[Future]:
        """Wait for all units up to the hard ceiling. Returns the abandoned ones."""
        pending = set(futures)
        ceiling = started + self.config.join_ceiling_s
        self._report_progress(0, total_units, "Probing network...")
        try:
            while pending:
                remaining = ceiling - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                completed = total_units - len(pending)
                self._report_progress(completed, total_units, f"{completed}/{total_units} units complete")
        except KeyboardInterrupt:
            self.cancel()
            raise

        if pending:
            logger.warning(f"Abandoning {len(pending)} unit(s) still running past the {self.config.join_ceiling_s:.1f}s ceiling")
            deadline.cancel()
            for future in pending:
                future.cancel()
        return pending

    def _collector_result(self, future: Future, kind: MetricKind, pending: set[Future]) -> AggregatedMetric:
        if future in pending:
            return AggregatedMetric.empty(kind)
        try:
            return future.result()
        except Exception:
            logger.exception(f"{kind.value} collector crashed; treating metric as failed")
            return AggregatedMetric.empty(kind)

    def _stream_result(self, future: Future, stream_id: int, pending: set[Future]) -> WorkerResult | None:
        if future in pending:
            return None
        try:
            return future.result()
        except Exception:
            logger.exception(f"Stream {stream_id} crashed; excluding it from bandwidth")
            return None

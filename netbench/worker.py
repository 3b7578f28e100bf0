"""
Bandwidth worker streams.

N streams run in parallel during a session, each downloading from the shared
endpoint catalog until the catalog is exhausted or the deadline passes.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from netbench.catalog import Target
from netbench.metrics import AggregatedMetric, MetricKind, SampleStats
from netbench.timing import Deadline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerResult:
    """Outcome of one stream. Each stream owns its own result."""

    stream_id: int
    successful_tests: int
    attempted_tests: int
    mean_throughput_mbps: float | None

    @property
    def has_data(self) -> bool:
        return self.successful_tests > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "streamId": self.stream_id,
            "successfulTests": self.successful_tests,
            "attemptedTests": self.attempted_tests,
            "meanThroughputMbps": self.mean_throughput_mbps,
        }


class WorkerStream:
    """Drives download probes across the endpoint catalog for one stream.

    Streams never share a cursor: stream ``i`` walks the whole catalog once,
    starting at offset ``i``. Overlap between streams is intended, since the
    point is to measure concurrent throughput.
    """

    def __init__(
        self,
        stream_id: int,
        endpoints: Sequence[Target],
        deadline: Deadline,
        runner_factory: Callable[..., Any],
        timeout: float,
        scratch_root: Path | None = None,
    ):
        self.stream_id = stream_id
        self.endpoints = tuple(endpoints)
        self.deadline = deadline
        self.runner_factory = runner_factory
        self.timeout = timeout
        self.scratch_root = scratch_root

    def _schedule(self) -> list[Target]:
        if not self.endpoints:
            return []
        offset = self.stream_id % len(self.endpoints)
        return list(self.endpoints[offset:] + self.endpoints[:offset])

    def run(self) -> WorkerResult:
        total_mbps = 0.0
        successful = 0
        attempted = 0

        with tempfile.TemporaryDirectory(
            prefix=f"netbench-stream{self.stream_id}-", dir=self.scratch_root,
        ) as scratch:
            with self.runner_factory(scratch_dir=Path(scratch)) as runner:
                for endpoint in self._schedule():
                    if self.deadline.expired():
                        logger.debug(f"Stream {self.stream_id}: deadline reached after {attempted} probes")
                        break

                    attempted += 1
                    measurement = runner.probe(endpoint, MetricKind.DOWNLOAD, self.timeout)
                    if measurement.success:
                        total_mbps += measurement.value
                        successful += 1
                        logger.debug(f"Stream {self.stream_id}: {measurement.value:.2f} Mbps from {endpoint.label}")
                    else:
                        logger.debug(f"Stream {self.stream_id}: {endpoint.label} failed ({measurement.error})")

        mean = total_mbps / successful if successful else None
        logger.info(
            f"Stream {self.stream_id} finished: {successful}/{attempted} successful"
            + (f", {mean:.1f} Mbps average" if mean is not None else "")
        )
        return WorkerResult(self.stream_id, successful, attempted, mean)


def merge_worker_results(results: Sequence[WorkerResult]) -> AggregatedMetric:
    """Average throughput across streams that produced data.

    Streams with no successful probe are excluded from the denominator as
    well as the numerator; they are absent, not zero.
    """
    values = [r.mean_throughput_mbps for r in results if r.has_data]
    if not values:
        return AggregatedMetric.empty(MetricKind.DOWNLOAD, attempt_count=len(results))

    return AggregatedMetric(
        metric_kind=MetricKind.DOWNLOAD,
        sample_count=len(values),
        attempt_count=len(results),
        mean_value=sum(values) / len(values),
        all_failed=False,
        unit=MetricKind.DOWNLOAD.unit,
        stats=SampleStats.from_values(values),
    )

"""
Measurement types and per-metric aggregation.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Sequence

import psutil

from netbench.catalog import Target

if TYPE_CHECKING:
    from netbench.probes import ProbeRunner
    from netbench.timing import Deadline

logger = logging.getLogger(__name__)


class MetricKind(str, Enum):
    DNS = "dns_latency"
    LATENCY = "latency"
    TCP_CONNECT = "tcp_connect"
    DOWNLOAD = "download"
    UPLOAD = "upload_speed"
    INTERFACE_STATS = "interface_stats"

    @property
    def unit(self) -> str:
        return _UNITS[self]


_UNITS = {
    MetricKind.DNS: "s",
    MetricKind.LATENCY: "ms",
    MetricKind.TCP_CONNECT: "s",
    MetricKind.DOWNLOAD: "Mbps",
    MetricKind.UPLOAD: "Mbps",
    MetricKind.INTERFACE_STATS: "%",
}


@dataclass
class Measurement:
    """Result of one probe invocation.

    ``value`` is None whenever ``success`` is False; callers must branch on
    ``success`` rather than on the value.
    """

    metric_kind: MetricKind
    target: Target
    success: bool
    value: float | None
    unit: str
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, kind: MetricKind, target: Target, value: float, **metadata: Any) -> Measurement:
        return cls(kind, target, True, value, kind.unit, None, metadata)

    @classmethod
    def failed(cls, kind: MetricKind, target: Target, error: str, **metadata: Any) -> Measurement:
        return cls(kind, target, False, None, kind.unit, error, metadata)


@dataclass
class SampleStats:
    """Statistical summary over the successful values of one metric."""

    mean: float
    std: float
    min: float
    max: float
    p50: float
    p95: float
    count: int

    @classmethod
    def from_values(cls, values: Sequence[float]) -> SampleStats | None:
        """Create stats from a list of values, or None if there are none."""
        if not values:
            return None

        ordered = sorted(values)

        def percentile(data: list[float], p: float) -> float:
            k = (len(data) - 1) * p / 100
            f = int(k)
            c = f + 1 if f + 1 < len(data) else f
            return data[f] + (k - f) * (data[c] - data[f]) if c != f else data[f]

        return cls(
            mean=statistics.mean(values),
            std=statistics.stdev(values) if len(values) > 1 else 0.0,
            min=ordered[0],
            max=ordered[-1],
            p50=percentile(ordered, 50),
            p95=percentile(ordered, 95),
            count=len(values),
        )


@dataclass(frozen=True)
class AggregatedMetric:
    """One metric's reduced value for a session.

    ``all_failed`` is the only legal "no data" state: ``mean_value`` is then
    None and must not be read as a number.
    """

    metric_kind: MetricKind
    sample_count: int
    attempt_count: int
    mean_value: float | None
    all_failed: bool
    unit: str
    stats: SampleStats | None = None

    @classmethod
    def empty(cls, kind: MetricKind, attempt_count: int = 0) -> AggregatedMetric:
        return cls(kind, 0, attempt_count, None, True, kind.unit)

    @property
    def failure_count(self) -> int:
        return self.attempt_count - self.sample_count

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "metricKind": self.metric_kind.value,
            "sampleCount": self.sample_count,
            "attemptCount": self.attempt_count,
            "meanValue": self.mean_value,
            "allFailed": self.all_failed,
            "unit": self.unit,
            "stats": asdict(self.stats) if self.stats else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AggregatedMetric:
        stats = data.get("stats")
        return cls(
            metric_kind=MetricKind(data["metricKind"]),
            sample_count=data["sampleCount"],
            attempt_count=data["attemptCount"],
            mean_value=data["meanValue"],
            all_failed=data["allFailed"],
            unit=data["unit"],
            stats=SampleStats(**stats) if stats else None,
        )


def aggregate(kind: MetricKind, measurements: Iterable[Measurement]) -> AggregatedMetric:
    """Reduce measurements to their mean over successful probes only."""
    measurements = list(measurements)
    values = [
        m.value for m in measurements
        if m.success and m.value is not None and math.isfinite(m.value)
    ]
    if not values:
        return AggregatedMetric.empty(kind, attempt_count=len(measurements))

    return AggregatedMetric(
        metric_kind=kind,
        sample_count=len(values),
        attempt_count=len(measurements),
        mean_value=sum(values) / len(values),
        all_failed=False,
        unit=kind.unit,
        stats=SampleStats.from_values(values),
    )


class MetricCollector:
    """Runs one metric's probes sequentially over a target list.

    The deadline is checked before each probe; a probe already in flight
    runs to its own timeout.
    """

    def __init__(self, runner: ProbeRunner, deadline: Deadline | None = None) -> None:
        self.runner = runner
        self.deadline = deadline

    def collect(
        self,
        targets: Sequence[Target],
        metric_kind: MetricKind,
        timeout: float,
    ) -> AggregatedMetric:
        measurements: list[Measurement] = []
        for target in targets:
            if self.deadline is not None and self.deadline.expired():
                logger.debug(
                    f"{metric_kind.value}: deadline reached after {len(measurements)}/{len(targets)} targets"
                )
                break
            measurement = self.runner.probe(target, metric_kind, timeout)
            measurements.append(measurement)
            if measurement.success:
                logger.debug(f"{metric_kind.value} {target.label}: {measurement.value:.3f} {measurement.unit}")
            else:
                logger.debug(f"{metric_kind.value} {target.label}: failed ({measurement.error})")

        result = aggregate(metric_kind, measurements)
        if result.all_failed:
            logger.warning(f"All {metric_kind.value} probes failed ({result.attempt_count} attempted)")
        return result


class InterfaceStatsCollector(MetricCollector):
    """Collects error/drop rates for every active non-loopback interface."""

    def discover_targets(self) -> list[Target]:
        stats = psutil.net_if_stats()
        return [
            Target.interface(name)
            for name, st in sorted(stats.items())
            if st.isup and not _is_loopback(name)
        ]

    def collect(
        self,
        targets: Sequence[Target] | None = None,
        metric_kind: MetricKind = MetricKind.INTERFACE_STATS,
        timeout: float = 1.0,
    ) -> AggregatedMetric:
        if targets is None:
            targets = self.discover_targets()
        return super().collect(targets, metric_kind, timeout)


def _is_loopback(name: str) -> bool:
    return name.startswith("lo") or "loopback" in name.lower()

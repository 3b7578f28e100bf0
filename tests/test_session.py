import threading
import time

import pytest

from netbench.catalog import EndpointCatalog, Target
from netbench.errors import SessionLaunchError
from netbench.metrics import Measurement, MetricKind
from netbench.probes import ProbeSettings
from netbench.scoring import ClassificationTier
from netbench.session import BenchmarkConfig, BenchmarkOrchestrator, compute_error_rate, new_session_id
from netbench.worker import WorkerResult

FAST_VALUES = {
    MetricKind.DNS: 0.020,
    MetricKind.LATENCY: 15.0,
    MetricKind.TCP_CONNECT: 0.050,
    MetricKind.DOWNLOAD: 300.0,
    MetricKind.UPLOAD: 80.0,
    MetricKind.INTERFACE_STATS: 0.1,
}

CATALOG = EndpointCatalog(
    dns=(Target.resolver("1.1.1.1", "example.com"), Target.resolver("8.8.8.8", "example.com")),
    latency=(Target.host("1.1.1.1"),),
    tcp=(Target.host_port("example.com", 443),),
    download=tuple(Target.url(f"https://cdn{i}.example/f") for i in range(3)),
    upload=(Target.url("https://upload.example/post"),),
)


class FakeRunner:
    def __init__(self, values=None, delay_s=0.0, scratch_dir=None):
        self.values = values or {}
        self.delay_s = delay_s
        self.scratch_dir = scratch_dir

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass

    def probe(self, target, metric_kind, timeout):
        if self.delay_s:
            time.sleep(min(self.delay_s, timeout))
        value = self.values.get(metric_kind)
        if value is None:
            return Measurement.failed(metric_kind, target, "simulated failure")
        return Measurement.ok(metric_kind, target, value)


def fake_factory(values=None, delay_s=0.0):
    def make(scratch_dir=None):
        return FakeRunner(values, delay_s, scratch_dir)
    return make


def _config(**overrides) -> BenchmarkConfig:
    params = {
        "duration_s": 2.0,
        "concurrency": 2,
        "catalog": CATALOG,
        "capability_check": lambda: True,
        "runner_factory": fake_factory(FAST_VALUES),
        "probes": ProbeSettings(
            dns_timeout_s=0.5, latency_timeout_s=0.5, tcp_timeout_s=0.5,
            download_timeout_s=0.5, upload_timeout_s=0.5, interface_timeout_s=0.5,
        ),
    }
    params.update(overrides)
    return BenchmarkConfig(**params)


def test_config_validation():
    with pytest.raises(ValueError):
        BenchmarkConfig(duration_s=0)
    with pytest.raises(ValueError):
        BenchmarkConfig(concurrency=0)


def test_quick_config():
    config = BenchmarkConfig.quick()
    assert config.duration_s == 8.0
    assert config.concurrency == 2
    assert not config.comprehensive


def test_session_id_format():
    from datetime import datetime, timezone

    sid = new_session_id(datetime(2026, 10, 18, 9, 30, 5, tzinfo=timezone.utc))
    assert sid.startswith("20261018T093005Z-")
    assert len(sid.split("-")[1]) == 6


def test_fast_network_session():
    session = BenchmarkOrchestrator(_config()).run()

    assert session.score == 95
    assert session.tier == ClassificationTier.ENTERPRISE_GRADE
    assert session.average_download_mbps == 300.0
    assert session.error_rate_percent == 0.0
    assert session.points == {"dns_latency": 15, "latency": 20, "tcp_connect": 15, "bandwidth": 45}
    assert [r.stream_id for r in session.worker_results] == [0, 1]
    assert set(session.aggregated_metrics) == set(MetricKind)


def test_non_comprehensive_skips_upload_and_interfaces():
    session = BenchmarkOrchestrator(_config(comprehensive=False)).run()

    assert MetricKind.UPLOAD not in session.aggregated_metrics
    assert MetricKind.INTERFACE_STATS not in session.aggregated_metrics
    assert MetricKind.DOWNLOAD in session.aggregated_metrics


def test_all_failing_network_finishes_within_ceiling():
    """Every probe fails slowly; the session still ends within duration plus one probe timeout."""
    config = _config(duration_s=1.0, concurrency=4, runner_factory=fake_factory({}, delay_s=0.3))

    start = time.monotonic()
    session = BenchmarkOrchestrator(config).run()
    elapsed = time.monotonic() - start

    assert elapsed <= config.duration_s + config.probes.max_timeout_s + 0.5
    assert session.score == 0
    assert session.tier == ClassificationTier.POOR
    assert session.average_download_mbps is None
    assert session.error_rate_percent == 100.0
    for metric in session.aggregated_metrics.values():
        assert metric.all_failed


def test_hung_unit_is_abandoned_at_ceiling():
    """A unit that ignores its timeout is abandoned, not waited on."""
    release = threading.Event()

    class HangingRunner(FakeRunner):
        def probe(self, target, metric_kind, timeout):
            if metric_kind == MetricKind.TCP_CONNECT:
                release.wait(10)
            return super().probe(target, metric_kind, timeout)

    def factory(scratch_dir=None):
        return HangingRunner(FAST_VALUES, scratch_dir=scratch_dir)

    config = _config(duration_s=0.5, runner_factory=factory)
    start = time.monotonic()
    try:
        session = BenchmarkOrchestrator(config).run()
    finally:
        release.set()
    elapsed = time.monotonic() - start

    assert elapsed < config.join_ceiling_s + 1.0
    assert session.aggregated_metrics[MetricKind.TCP_CONNECT].all_failed
    assert session.points["tcp_connect"] == 0
    assert session.points["dns_latency"] == 15


def test_crashing_collector_counts_as_failed():
    class BrokenRunner(FakeRunner):
        def probe(self, target, metric_kind, timeout):
            if metric_kind == MetricKind.DNS:
                raise RuntimeError("resolver exploded")
            return super().probe(target, metric_kind, timeout)

    def factory(scratch_dir=None):
        return BrokenRunner(FAST_VALUES, scratch_dir=scratch_dir)

    session = BenchmarkOrchestrator(_config(runner_factory=factory)).run()

    assert session.aggregated_metrics[MetricKind.DNS].all_failed
    assert session.points["dns_latency"] == 0
    assert session.score == 80


def test_no_network_raises_launch_error():
    with pytest.raises(SessionLaunchError):
        BenchmarkOrchestrator(_config(capability_check=lambda: False)).run()


def test_cancel_stops_units_early():
    cancel = threading.Event()
    config = _config(duration_s=30.0, runner_factory=fake_factory(FAST_VALUES, delay_s=0.2))
    orchestrator = BenchmarkOrchestrator(config, cancel_event=cancel)

    timer = threading.Timer(0.3, orchestrator.cancel)
    timer.start()
    start = time.monotonic()
    session = orchestrator.run()
    timer.cancel()

    assert time.monotonic() - start < 5.0
    assert session.worker_results


def test_progress_callback_reaches_total():
    calls = []
    BenchmarkOrchestrator(_config(), progress_callback=lambda c, t, m: calls.append((c, t))).run()

    assert calls[0][0] == 0
    assert calls[-1][0] == calls[-1][1]


def test_compute_error_rate():
    from netbench.metrics import AggregatedMetric

    metrics = {
        MetricKind.DNS: AggregatedMetric(MetricKind.DNS, 3, 4, 0.02, False, "s"),
        MetricKind.DOWNLOAD: AggregatedMetric(MetricKind.DOWNLOAD, 1, 2, 10.0, False, "Mbps"),
    }
    workers = (WorkerResult(0, 2, 4, 10.0), WorkerResult(1, 0, 2, None))

    # 1 failed DNS probe + 4 failed downloads out of 4 + 6 attempts
    assert compute_error_rate(metrics, workers) == pytest.approx(50.0)
    assert compute_error_rate({}, ()) is None

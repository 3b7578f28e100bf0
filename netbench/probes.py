"""
Probe runner: one bounded network measurement against one target.

Measures DNS resolution, echo latency, TCP handshake, HTTP download and
upload throughput, and interface error rates.
"""

from __future__ import annotations

import logging
import re
import socket
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

import dns.exception
import dns.resolver
import httpx
import psutil

from netbench.catalog import Target
from netbench.metrics import Measurement, MetricKind, _is_loopback
from netbench.timing import TimingContext

logger = logging.getLogger(__name__)

USER_AGENT = "netbench/0.1"

# Errors that mark a single probe as failed instead of propagating
PROBE_ERRORS = (
    httpx.HTTPError,
    httpx.InvalidURL,
    httpx.StreamError,
    dns.exception.DNSException,
    subprocess.SubprocessError,
    OSError,
    ValueError,
)

_UNIX_PING_AVG = re.compile(r"=\s*[\d.]+/([\d.]+)/")
_WINDOWS_PING_AVG = re.compile(r"Average\s*=\s*(\d+)\s*ms")


@dataclass
class ProbeSettings:
    """Per-probe timeouts and transfer sizes."""

    dns_timeout_s: float = 2.0
    latency_timeout_s: float = 10.0
    tcp_timeout_s: float = 5.0
    download_timeout_s: float = 15.0
    upload_timeout_s: float = 10.0
    interface_timeout_s: float = 1.0

    connect_timeout_s: float = 5.0
    ping_count: int = 4
    ping_wait_s: float = 2.0

    download_max_bytes: int = 50 * 1024 * 1024
    # Slower transfers are treated as failed probes
    min_download_bytes_per_s: float = 100_000
    upload_bytes: int = 1024 * 1024

    def timeout_for(self, kind: MetricKind) -> float:
        return {
            MetricKind.DNS: self.dns_timeout_s,
            MetricKind.LATENCY: self.latency_timeout_s,
            MetricKind.TCP_CONNECT: self.tcp_timeout_s,
            MetricKind.DOWNLOAD: self.download_timeout_s,
            MetricKind.UPLOAD: self.upload_timeout_s,
            MetricKind.INTERFACE_STATS: self.interface_timeout_s,
        }[kind]

    @property
    def max_timeout_s(self) -> float:
        return max(self.timeout_for(kind) for kind in MetricKind)


def throughput_mbps(num_bytes: int, elapsed_s: float) -> float:
    """Convert a transfer to megabits per second."""
    if elapsed_s <= 0:
        raise ValueError("elapsed time must be positive")
    return num_bytes * 8 / elapsed_s / 1_000_000


def ping_command(host: str, count: int, wait_s: float, platform: str = sys.platform) -> list[str]:
    """Build the platform's ping invocation."""
    if platform.startswith("win"):
        return ["ping", "-n", str(count), "-w", str(int(wait_s * 1000)), host]
    if platform == "darwin":
        # macOS takes the per-reply wait in milliseconds
        return ["ping", "-c", str(count), "-W", str(int(wait_s * 1000)), host]
    return ["ping", "-c", str(count), "-W", str(max(1, int(wait_s))), host]


def parse_ping_average(output: str) -> float | None:
    """Extract the average round-trip time in ms from ping output."""
    match = _UNIX_PING_AVG.search(output) or _WINDOWS_PING_AVG.search(output)
    return float(match.group(1)) if match else None


def detect_network_capability() -> bool:
    """Check that at least one non-loopback interface is up."""
    try:
        stats = psutil.net_if_stats()
    except OSError as e:
        logger.error(f"Cannot enumerate network interfaces: {e}")
        return False
    return any(st.isup and not _is_loopback(name) for name, st in stats.items())


class ProbeRunner:
    """Executes single probes. Never raises for network failures.

    Each probing unit owns its own runner, and with it its own HTTP
    connection pool and scratch directory. Use as a context manager.
    """

    def __init__(
        self,
        settings: ProbeSettings | None = None,
        scratch_dir: Path | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or ProbeSettings()
        self.scratch_dir = scratch_dir
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> ProbeRunner:
        self._client = httpx.Client(
            timeout=httpx.Timeout(self.settings.download_timeout_s, connect=self.settings.connect_timeout_s),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        )
        return self

    def __exit__(self, *args) -> None:
        if self._client:
            self._client.close()
            self._client = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            raise RuntimeError("Runner not initialized. Use 'with' context manager.")
        return self._client

    def probe(self, target: Target, metric_kind: MetricKind, timeout: float) -> Measurement:
        """Run one probe, returning a failed Measurement on timeout or transport error."""
        handlers = {
            MetricKind.DNS: self._probe_dns,
            MetricKind.LATENCY: self._probe_latency,
            MetricKind.TCP_CONNECT: self._probe_tcp_connect,
            MetricKind.DOWNLOAD: self._probe_download,
            MetricKind.UPLOAD: self._probe_upload,
            MetricKind.INTERFACE_STATS: self._probe_interface,
        }
        try:
            return handlers[metric_kind](target, timeout)
        except PROBE_ERRORS as e:
            return Measurement.failed(metric_kind, target, f"{type(e).__name__}: {e}")

    def _probe_dns(self, target: Target, timeout: float) -> Measurement:
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = [target.address]
        resolver.lifetime = timeout
        resolver.timeout = timeout

        with TimingContext("dns", target=target.label) as ctx:
            answer = resolver.resolve(target.domain, "A")

        return Measurement.ok(
            MetricKind.DNS, target, ctx.record.duration_s,
            address=str(answer[0]),
        )

    def _probe_latency(self, target: Target, timeout: float) -> Measurement:
        cmd = ping_command(target.address, self.settings.ping_count, self.settings.ping_wait_s)
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)

        avg_ms = parse_ping_average(result.stdout)
        if avg_ms is None:
            return Measurement.failed(
                MetricKind.LATENCY, target,
                f"no replies (exit {result.returncode})",
            )
        return Measurement.ok(MetricKind.LATENCY, target, avg_ms)

    def _probe_tcp_connect(self, target: Target, timeout: float) -> Measurement:
        with TimingContext("tcp_connect", target=target.label) as ctx:
            sock = socket.create_connection((target.hostname, target.port), timeout=timeout)
        sock.close()
        return Measurement.ok(MetricKind.TCP_CONNECT, target, ctx.record.duration_s)

    def _probe_download(self, target: Target, timeout: float) -> Measurement:
        """Stream the body into a private temp file and time the transfer."""
        received = 0
        truncated = False

        with tempfile.TemporaryFile(dir=self.scratch_dir, prefix="download-") as sink:
            with TimingContext("download", target=target.label) as ctx:
                with self.client.stream(
                    "GET", target.address,
                    timeout=httpx.Timeout(timeout, connect=min(timeout, self.settings.connect_timeout_s)),
                ) as response:
                    response.raise_for_status()
                    for chunk in response.iter_bytes():
                        sink.write(chunk)
                        received += len(chunk)
                        if received >= self.settings.download_max_bytes:
                            truncated = True
                            break
                        if ctx.elapsed_s > timeout:
                            return Measurement.failed(
                                MetricKind.DOWNLOAD, target,
                                f"transfer exceeded {timeout}s after {received} bytes",
                            )

        elapsed_s = ctx.record.duration_s
        if received == 0 or elapsed_s <= 0 or received / elapsed_s < self.settings.min_download_bytes_per_s:
            return Measurement.failed(
                MetricKind.DOWNLOAD, target,
                f"throughput below floor ({received} bytes in {elapsed_s:.2f}s)",
            )

        return Measurement.ok(
            MetricKind.DOWNLOAD, target, throughput_mbps(received, elapsed_s),
            bytes=received, elapsed_s=elapsed_s, truncated=truncated,
        )

    def _probe_upload(self, target: Target, timeout: float) -> Measurement:
        size = self.settings.upload_bytes

        with tempfile.TemporaryFile(dir=self.scratch_dir, prefix="upload-") as payload:
            payload.write(b"\0" * size)
            payload.seek(0)

            with TimingContext("upload", target=target.label) as ctx:
                response = self.client.post(
                    target.address,
                    files={"file": ("upload_test_file", payload, "application/octet-stream")},
                    timeout=httpx.Timeout(timeout, connect=min(timeout, self.settings.connect_timeout_s)),
                )
            response.raise_for_status()

        elapsed_s = ctx.record.duration_s
        return Measurement.ok(
            MetricKind.UPLOAD, target, throughput_mbps(size, elapsed_s),
            bytes=size, elapsed_s=elapsed_s,
        )

    def _probe_interface(self, target: Target, timeout: float) -> Measurement:
        counters = psutil.net_io_counters(pernic=True).get(target.address)
        if counters is None:
            return Measurement.failed(MetricKind.INTERFACE_STATS, target, "interface not found")

        packets = counters.packets_sent + counters.packets_recv
        errors = counters.errin + counters.errout + counters.dropin + counters.dropout
        error_rate = errors / packets * 100 if packets > 0 else 0.0

        return Measurement.ok(
            MetricKind.INTERFACE_STATS, target, error_rate,
            packets_sent=counters.packets_sent,
            packets_recv=counters.packets_recv,
            errin=counters.errin,
            errout=counters.errout,
            dropin=counters.dropin,
            dropout=counters.dropout,
        )

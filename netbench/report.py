"""
Report generation for benchmark results.
"""

from __future__ import annotations

import html
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from netbench.store import ComparisonResult, SessionReport

logger = logging.getLogger(__name__)

METRIC_LABELS = {
    "dns_latency": "DNS Resolution",
    "latency": "Latency (RTT)",
    "tcp_connect": "TCP Connect",
    "download": "Download",
    "upload_speed": "Upload",
    "interface_stats": "Interface Errors",
}


def write_comparison_json(path: Path, comparison: ComparisonResult) -> None:
    """Write a before/after comparison to disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump({"performance_comparison": comparison.to_dict()}, f, indent=2)
    logger.info(f"Wrote comparison to {path}")


class ReportGenerator:
    """Generates session report artifacts in an output directory."""

    def __init__(self, output_dir: Path, report: SessionReport):
        self.output_dir = output_dir
        self.report = report

    def generate_all(self) -> None:
        """Generate all report artifacts."""
        logger.info("Generating benchmark reports...")
        (self.output_dir / "charts").mkdir(parents=True, exist_ok=True)

        self.generate_summary_json()
        self.generate_throughput_chart()
        self.generate_html_report()

        logger.info("Report generation complete")

    def generate_summary_json(self) -> None:
        """Write the canonical report to summary.json."""
        path = self.output_dir / "summary.json"
        with open(path, "w") as f:
            f.write(self.report.to_json())
        logger.info(f"Wrote summary to {path}")

    def generate_throughput_chart(self) -> None:
        """Per-stream throughput next to the points earned per category."""
        try:
            import matplotlib
            matplotlib.use('Agg')  # Non-interactive backend
            import matplotlib.pyplot as plt
        except ImportError:
            logger.warning("matplotlib not available, skipping throughput chart")
            return

        streams = [w for w in self.report.worker_results if w["meanThroughputMbps"] is not None]

        fig, (ax_streams, ax_points) = plt.subplots(1, 2, figsize=(12, 5))

        if streams:
            labels = [f"Stream {w['streamId']}" for w in streams]
            values = [w["meanThroughputMbps"] for w in streams]
            ax_streams.bar(labels, values, color='#3498db')
            if self.report.average_download_mbps is not None:
                ax_streams.axhline(
                    self.report.average_download_mbps,
                    color='#e74c3c', linestyle='--', linewidth=2,
                    label=f'Average: {self.report.average_download_mbps:.1f} Mbps',
                )
                ax_streams.legend()
        else:
            ax_streams.text(0.5, 0.5, "No stream produced data", ha='center', va='center')
        ax_streams.set_ylabel('Throughput (Mbps)')
        ax_streams.set_title('Download Throughput by Stream')

        categories = list(self.report.points)
        ax_points.barh(
            [METRIC_LABELS.get(c, c.title()) for c in categories],
            [self.report.points[c] for c in categories],
            color='#2ecc71',
        )
        ax_points.set_xlim(0, 50)
        ax_points.set_xlabel('Points')
        ax_points.set_title(f'Score {self.report.score}/100 ({self.report.classification})')

        plt.tight_layout()
        chart_path = self.output_dir / "charts" / "stream_throughput.png"
        plt.savefig(chart_path, dpi=150)
        plt.close(fig)
        logger.info(f"Saved throughput chart to {chart_path}")

    def _render_metric_rows(self) -> str:
        rows = ""
        for name, metric in self.report.metrics.items():
            if metric["allFailed"]:
                value = "all probes failed"
            else:
                value = f"{metric['meanValue']:.3f} {metric['unit']}"
            points = self.report.points.get("bandwidth" if name == "download" else name, "-")
            rows += f"""
            <tr>
                <td>{html.escape(METRIC_LABELS.get(name, name))}</td>
                <td>{value}</td>
                <td>{metric['sampleCount']}/{metric['attemptCount']}</td>
                <td>{points}</td>
            </tr>
            """
        return rows

    def _render_stream_rows(self) -> str:
        rows = ""
        for w in self.report.worker_results:
            mbps = w["meanThroughputMbps"]
            rows += f"""
            <tr>
                <td>{w['streamId']}</td>
                <td>{w['successfulTests']}/{w['attemptedTests']}</td>
                <td>{f'{mbps:.2f}' if mbps is not None else 'excluded'}</td>
            </tr>
            """
        return rows

    def generate_html_report(self) -> None:
        """Generate a standalone HTML report."""
        r = self.report
        chart_exists = (self.output_dir / "charts" / "stream_throughput.png").exists()
        avg = f"{r.average_download_mbps:.1f} Mbps" if r.average_download_mbps is not None else "n/a"
        err = f"{r.error_rate_percent:.1f}%" if r.error_rate_percent is not None else "n/a"

        page = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Network Benchmark - {html.escape(r.session_id)}</title>
    <style>
        body {{ font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #1a1a2e; color: #eee; padding: 40px; }}
        h1 {{ color: #e94560; }}
        h2 {{ border-bottom: 2px solid #e94560; padding-bottom: 8px; }}
        .cards {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 20px; }}
        .card {{ background: #0f3460; border-radius: 12px; padding: 20px; text-align: center; }}
        .card-value {{ font-size: 2rem; font-weight: bold; color: #e94560; }}
        table {{ width: 100%; border-collapse: collapse; background: #16213e; margin: 20px 0; }}
        th, td {{ padding: 10px 14px; text-align: left; border-bottom: 1px solid #333; }}
        th {{ background: #0f3460; color: #e94560; }}
        img {{ max-width: 100%; }}
    </style>
</head>
<body>
    <h1>Network Benchmark Report</h1>
    <p>Session {html.escape(r.session_id)} &middot; {html.escape(r.timestamp)} &middot;
       {r.duration_budget_s:g}s budget, {r.concurrency} streams{', comprehensive' if r.comprehensive else ''}</p>

    <h2>Summary</h2>
    <div class="cards">
        <div class="card"><div class="card-value">{r.score}</div><div>Score / 100</div></div>
        <div class="card"><div class="card-value">{html.escape(r.classification)}</div><div>Classification</div></div>
        <div class="card"><div class="card-value">{avg}</div><div>Average Download</div></div>
        <div class="card"><div class="card-value">{err}</div><div>Failed Probes</div></div>
    </div>

    <h2>Metrics</h2>
    <table>
        <thead><tr><th>Metric</th><th>Mean</th><th>Successful</th><th>Points</th></tr></thead>
        <tbody>{self._render_metric_rows()}</tbody>
    </table>

    <h2>Bandwidth Streams</h2>
    <table>
        <thead><tr><th>Stream</th><th>Successful</th><th>Mean (Mbps)</th></tr></thead>
        <tbody>{self._render_stream_rows()}</tbody>
    </table>

    {"<h2>Throughput</h2><img src='charts/stream_throughput.png' alt='Stream throughput chart'>" if chart_exists else ""}

    <p><a href="summary.json" style="color: #e94560;">Summary JSON</a></p>
</body>
</html>
"""

        report_path = self.output_dir / "report.html"
        with open(report_path, "w") as f:
            f.write(page)
        logger.info(f"Generated HTML report at {report_path}")

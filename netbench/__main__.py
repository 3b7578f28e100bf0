#!/usr/bin/env python3
"""
CLI entry point for the network benchmark.

Usage:
    python -m netbench run
    python -m netbench run --quick
    python -m netbench compare BEFORE_ID AFTER_ID
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DURATION_S,
    QUICK_CONCURRENCY,
    QUICK_DURATION_S,
)
from netbench.engine import compare_sessions, run_benchmark
from netbench.errors import PersistenceError, SessionLaunchError, SessionNotFoundError
from netbench.report import ReportGenerator, write_comparison_json
from netbench.store import SessionReport, SessionStore

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_LAUNCH_FAILED = 2
EXIT_NOT_SAVED = 3
EXIT_INTERRUPTED = 130


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure logging for the benchmark run."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logging.getLogger().addHandler(file_handler)


def create_progress_callback():
    """Create a rich progress bar driven by orchestrator callbacks."""
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=Console(stderr=True),
    )

    task_id = None
    started = False

    def callback(current: int, total: int, message: str) -> None:
        nonlocal task_id, started

        if not started:
            progress.start()
            task_id = progress.add_task(message, total=total)
            started = True
        else:
            progress.update(task_id, completed=current, description=message)

        if current >= total:
            progress.stop()

    return callback, lambda: progress.stop() if started else None


def print_report(report: SessionReport) -> None:
    print()
    print("=" * 60)
    print("Network Benchmark Complete")
    print("=" * 60)
    print(f"  Session:          {report.session_id}")
    print(f"  Score:            {report.score}/100")
    print(f"  Classification:   {report.classification}")
    if report.average_download_mbps is not None:
        print(f"  Download:         {report.average_download_mbps:.1f} Mbps")
    else:
        print("  Download:         no stream produced data")
    if report.error_rate_percent is not None:
        print(f"  Failed probes:    {report.error_rate_percent:.1f}%")
    print()
    print("Metrics (mean of successful probes):")
    for name, metric in report.metrics.items():
        if metric["allFailed"]:
            value = "all probes failed"
        else:
            value = f"{metric['meanValue']:.3f} {metric['unit']}"
        print(f"  {name:<16} {value:>20}  ({metric['sampleCount']}/{metric['attemptCount']} ok)")
    print()
    print("Points:")
    for name, points in report.points.items():
        print(f"  {name:<16} {points:>3}")
    print("=" * 60)


def cmd_run(args: argparse.Namespace) -> int:
    duration = args.duration
    concurrency = args.concurrency
    comprehensive = not args.no_comprehensive
    if args.quick:
        comprehensive = False
    if duration is None:
        duration = QUICK_DURATION_S if args.quick else DEFAULT_DURATION_S
    if concurrency is None:
        concurrency = QUICK_CONCURRENCY if args.quick else DEFAULT_CONCURRENCY

    config_overrides = {}
    if args.scratch_dir:
        config_overrides["scratch_dir"] = args.scratch_dir

    print("=" * 60)
    print("Network Performance Benchmark")
    print("=" * 60)
    print(f"  Duration:      {duration:g}s")
    print(f"  Streams:       {concurrency}")
    print(f"  Comprehensive: {comprehensive}")
    print("=" * 60)

    progress_callback, cleanup = create_progress_callback()
    cancel_event = threading.Event()

    exit_code = EXIT_OK
    try:
        report = run_benchmark(
            duration,
            concurrency,
            comprehensive,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
            **config_overrides,
        )
    except PersistenceError as e:
        if e.report is None:
            raise
        print(f"\nWarning: results could not be saved: {e}", file=sys.stderr)
        report = e.report
        exit_code = EXIT_NOT_SAVED
    finally:
        cleanup()

    print_report(report)

    if args.output:
        ReportGenerator(args.output, report).generate_all()
        print(f"Results saved to: {args.output}")
        print(f"  - HTML Report:  {args.output / 'report.html'}")
        print(f"  - Summary JSON: {args.output / 'summary.json'}")

    return exit_code


def cmd_compare(args: argparse.Namespace) -> int:
    result = compare_sessions(args.before, args.after)

    print()
    print("=" * 60)
    print("Performance Comparison")
    print("=" * 60)
    for row in result.metrics:
        before = "n/a" if row.before_value is None else f"{row.before_value:.2f}"
        after = "n/a" if row.after_value is None else f"{row.after_value:.2f}"
        print(f"  {row.metric:<14} {before:>10} -> {after:>10}  {row.percent_improvement:+7.1f}%  {row.status.value}")
    print()
    print(f"  Overall improvement: {result.overall_improvement:+.1f}%")
    print(f"  Score change:        {result.score_delta:+d}")
    print(f"  {result.recommendation}")
    print("=" * 60)

    if args.output:
        write_comparison_json(args.output / "performance_comparison.json", result)
    return EXIT_OK


def cmd_list(args: argparse.Namespace) -> int:
    sessions = SessionStore().list_sessions(args.limit)
    if not sessions:
        print("No stored sessions")
        return EXIT_OK
    for s in sessions:
        mbps = s["average_download_mbps"]
        speed = f"{mbps:.1f} Mbps" if mbps is not None else "n/a"
        print(f"{s['session_id']}  {s['score']:>3}/100  {s['classification']:<17} {speed}")
    return EXIT_OK


def cmd_show(args: argparse.Namespace) -> int:
    report = SessionStore().load(args.session_id)
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netbench",
        description="Benchmark and score this host's network",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Full 15 second assessment with 3 bandwidth streams
    python -m netbench run

    # Quick readiness check
    python -m netbench run --quick

    # Write summary.json, report.html and charts
    python -m netbench run -o ./network_results

    # Measure the impact of a change
    python -m netbench compare 20261018T101500Z-a1b2c3 20261018T103000Z-d4e5f6
        """,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a benchmark session")
    run.add_argument(
        "--duration",
        type=float,
        default=None,
        help=f"Session time budget in seconds (default: {DEFAULT_DURATION_S:g}, quick: {QUICK_DURATION_S:g})",
    )
    run.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help=f"Parallel bandwidth streams (default: {DEFAULT_CONCURRENCY}, quick: {QUICK_CONCURRENCY})",
    )
    run.add_argument(
        "--quick",
        action="store_true",
        help="Quick mode: shorter budget, fewer streams, no upload/interface checks",
    )
    run.add_argument(
        "--no-comprehensive",
        action="store_true",
        help="Skip upload and interface statistics collectors",
    )
    run.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Directory for report artifacts (summary.json, report.html, charts)",
    )
    run.add_argument(
        "--scratch-dir",
        type=Path,
        default=None,
        help="Directory for temporary transfer files (default: system temp)",
    )
    run.set_defaults(func=cmd_run)

    compare = sub.add_parser("compare", help="Compare two stored sessions")
    compare.add_argument("before", help="Session id of the baseline run")
    compare.add_argument("after", help="Session id of the run to evaluate")
    compare.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Directory to write performance_comparison.json into",
    )
    compare.set_defaults(func=cmd_compare)

    list_cmd = sub.add_parser("list", help="List stored sessions")
    list_cmd.add_argument("--limit", type=int, default=20, help="Maximum sessions to list (default: 20)")
    list_cmd.set_defaults(func=cmd_list)

    show = sub.add_parser("show", help="Print a stored session report")
    show.add_argument("session_id")
    show.set_defaults(func=cmd_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the benchmark CLI."""
    args = build_parser().parse_args(argv)

    output = getattr(args, "output", None)
    log_file = output / "logs" / "netbench.log" if output and args.command == "run" else None
    setup_logging(args.verbose, log_file)

    try:
        return args.func(args)

    except KeyboardInterrupt:
        print("\nBenchmark interrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED

    except SessionLaunchError as e:
        print(f"\nError: cannot start benchmark: {e}", file=sys.stderr)
        return EXIT_LAUNCH_FAILED

    except SessionNotFoundError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return EXIT_ERROR

    except Exception as e:
        logging.exception("Command failed with error")
        print(f"\nError: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())

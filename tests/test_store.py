import json
import sqlite3
import threading

import pytest

from netbench.errors import PersistenceError, SessionNotFoundError
from netbench.store import (
    ImprovementStatus,
    SessionReport,
    SessionStore,
    compare,
    percent_improvement,
)


def make_report(
    session_id: str = "20261018T090000Z-aaaaaa",
    latency: float | None = 50.0,
    download: float | None = 100.0,
    error_rate: float | None = 10.0,
    score: int = 60,
) -> SessionReport:
    latency_metric = {
        "metricKind": "latency",
        "sampleCount": 0 if latency is None else 3,
        "attemptCount": 3,
        "meanValue": latency,
        "allFailed": latency is None,
        "unit": "ms",
        "stats": None,
    }
    return SessionReport(
        session_id=session_id,
        timestamp="2026-10-18T09:00:00+00:00",
        end_time="2026-10-18T09:00:15+00:00",
        duration_budget_s=15.0,
        concurrency=3,
        comprehensive=True,
        score=score,
        classification="Very Good",
        average_download_mbps=download,
        error_rate_percent=error_rate,
        points={"dns_latency": 10, "latency": 10, "tcp_connect": 10, "bandwidth": 40},
        metrics={"latency": latency_metric},
        worker_results=[
            {"streamId": 0, "successfulTests": 2, "attemptedTests": 3, "meanThroughputMbps": download},
        ],
    )


def test_schema_created(store):
    conn = sqlite3.connect(store.db_path)
    try:
        cursor = conn.execute("PRAGMA table_info(sessions)")
        columns = {row[1] for row in cursor.fetchall()}
    finally:
        conn.close()
    assert columns == {
        "session_id", "created_at", "score", "classification", "average_download_mbps", "report_json",
    }


def test_save_and_load_round_trip(store):
    report = make_report()
    store.save(report)

    loaded = store.load(report.session_id)
    assert loaded == report
    assert loaded.to_json() == report.to_json()


def test_save_writes_latest_results_file(store):
    report = make_report()
    store.save(report)

    data = json.loads(store.results_path.read_text())
    assert data["sessionId"] == report.session_id
    assert data["averageDownloadMbps"] == 100.0


def test_load_unknown_session(store):
    with pytest.raises(SessionNotFoundError):
        store.load("does-not-exist")


def test_not_found_is_a_persistence_error(store):
    with pytest.raises(PersistenceError):
        store.load("does-not-exist")


def test_duplicate_save_raises_with_report(store):
    report = make_report()
    store.save(report)

    with pytest.raises(PersistenceError) as exc_info:
        store.save(report)
    assert exc_info.value.report is report


def test_list_sessions_newest_first(store):
    for i in range(3):
        store.save(make_report(session_id=f"20261018T09000{i}Z-abcdef", score=40 + i))

    sessions = store.list_sessions(limit=2)
    assert [s["session_id"] for s in sessions] == ["20261018T090002Z-abcdef", "20261018T090001Z-abcdef"]
    assert sessions[0]["score"] == 42


def test_concurrent_saves(store):
    errors = []

    def save(i: int):
        try:
            store.save(make_report(session_id=f"concurrent-{i}"))
        except PersistenceError as e:
            errors.append(e)

    threads = [threading.Thread(target=save, args=(i,)) for i in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(store.list_sessions(limit=50)) == 10


def test_unwritable_store_raises_persistence_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    with pytest.raises(PersistenceError):
        SessionStore(db_path=blocker / "sessions.db", results_path=tmp_path / "latest.json")


@pytest.mark.parametrize("before, after, higher, expected", [
    (50.0, 25.0, False, 50.0),
    (50.0, 75.0, False, -50.0),
    (100.0, 150.0, True, 50.0),
    (100.0, 50.0, True, -50.0),
    (0.0, 10.0, True, 0.0),
    (0.0, 10.0, False, 0.0),
    (None, 10.0, True, 0.0),
    (10.0, None, False, 0.0),
])
def test_percent_improvement(before, after, higher, expected):
    assert percent_improvement(before, after, higher) == pytest.approx(expected)


def test_compare_improvement():
    before = make_report("before", latency=50.0, download=100.0, error_rate=10.0, score=60)
    after = make_report("after", latency=25.0, download=150.0, error_rate=5.0, score=75)

    result = compare(before, after)

    assert result.get("response_time").percent_improvement == pytest.approx(50.0)
    assert result.get("bandwidth").percent_improvement == pytest.approx(50.0)
    assert result.get("error_rate").percent_improvement == pytest.approx(50.0)
    assert all(row.status == ImprovementStatus.IMPROVED for row in result.metrics)
    assert result.overall_improvement == pytest.approx(50.0)
    assert result.score_delta == 15
    assert result.recommendation.startswith("Optimization successful")


def test_compare_zero_baseline_is_degraded():
    before = make_report("before", error_rate=0.0)
    after = make_report("after", error_rate=5.0)

    row = compare(before, after).get("error_rate")
    assert row.percent_improvement == 0.0
    assert row.status == ImprovementStatus.DEGRADED


def test_compare_all_failed_latency():
    before = make_report("before", latency=None)
    after = make_report("after", latency=20.0)

    row = compare(before, after).get("response_time")
    assert row.before_value is None
    assert row.percent_improvement == 0.0
    assert row.status == ImprovementStatus.DEGRADED


def test_compare_limited_impact():
    before = make_report("before", latency=50.0, download=100.0)
    after = make_report("after", latency=49.0, download=101.0)

    result = compare(before, after)
    assert result.recommendation.startswith("Optimization had limited impact")


def test_compare_ids(store):
    store.save(make_report("before", download=100.0))
    store.save(make_report("after", download=200.0))

    result = store.compare_ids("before", "after")
    assert result.before_id == "before"
    assert result.get("bandwidth").percent_improvement == pytest.approx(100.0)

    with pytest.raises(SessionNotFoundError):
        store.compare_ids("before", "missing")


def test_comparison_dict():
    data = compare(make_report("a"), make_report("b")).to_dict()
    assert data["beforeId"] == "a"
    assert [row["metric"] for row in data["metrics"]] == ["response_time", "bandwidth", "error_rate"]

import httpx

from netbench.store import SessionStore
from test_store import make_report


def test_get_unknown_session_returns_404(api_server):
    resp = httpx.get(f"{api_server}/sessions/no-such-session", timeout=10)
    assert resp.status_code == 404


def test_stored_session_is_served(api_server):
    report = make_report(session_id="api-stored-session")
    SessionStore().save(report)

    resp = httpx.get(f"{api_server}/sessions/{report.session_id}", timeout=10)
    assert resp.status_code == 200
    assert resp.json() == report.to_dict()

    listing = httpx.get(f"{api_server}/sessions", params={"limit": 100}, timeout=10).json()
    assert report.session_id in [s["session_id"] for s in listing["sessions"]]


def test_compare_endpoint(api_server):
    store = SessionStore()
    store.save(make_report(session_id="api-before", download=100.0))
    store.save(make_report(session_id="api-after", download=125.0))

    resp = httpx.get(f"{api_server}/compare", params={"before": "api-before", "after": "api-after"}, timeout=10)
    assert resp.status_code == 200

    comparison = resp.json()["performance_comparison"]
    bandwidth = next(row for row in comparison["metrics"] if row["metric"] == "bandwidth")
    assert bandwidth["percentImprovement"] == 25.0
    assert bandwidth["status"] == "improved"


def test_compare_unknown_session_returns_404(api_server):
    resp = httpx.get(f"{api_server}/compare", params={"before": "nope", "after": "nada"}, timeout=10)
    assert resp.status_code == 404


def test_run_request_validation(api_server):
    resp = httpx.post(f"{api_server}/sessions", json={"duration_s": -1}, timeout=10)
    assert resp.status_code == 422

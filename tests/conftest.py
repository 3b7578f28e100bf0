import os
import sys
import time
import socket
import subprocess
import shutil
from contextlib import closing
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).parent


def pytest_configure(config):
    """
    Hook that runs before test collection.
    Set NETBENCH_DATA_DIR environment variable for all tests.
    """
    temp_dir = Path("pytest-data-tmp")

    # Clean up if it exists from a previous run
    if temp_dir.exists():
        shutil.rmtree(temp_dir)

    temp_dir.mkdir(parents=True, exist_ok=True)

    # Set environment variable BEFORE any test code imports config
    os.environ["NETBENCH_DATA_DIR"] = str(temp_dir)
    os.environ.pop("NETBENCH_CATALOG", None)


def pytest_unconfigure(config):
    """
    Hook that runs after all tests complete.
    Clean up temporary data directory.
    """
    temp_dir = Path("pytest-data-tmp")
    if temp_dir.exists():
        shutil.rmtree(temp_dir)


def _wait_for_port(host: str, port: int, timeout: float = 10.0) -> bool:
    """Wait until a TCP port is accepting connections or timeout."""
    end = time.time() + timeout
    while time.time() < end:
        try:
            with closing(socket.create_connection((host, port), timeout=0.5)):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _launch_uvicorn(app: str, host: str, port: int, app_dir: Path | None = None):
    """Start uvicorn in a subprocess and yield its base URL until teardown."""
    cmd = [sys.executable, "-m", "uvicorn", app, "--host", host, "--port", str(port)]
    if app_dir is not None:
        cmd += ["--app-dir", str(app_dir)]

    proc = subprocess.Popen(
        cmd,
        cwd=os.getcwd(),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=os.environ.copy(),
    )

    if not _wait_for_port(host, port, timeout=15.0):
        try:
            out, err = proc.communicate(timeout=1.0)
        except subprocess.TimeoutExpired:
            proc.kill()
            out, err = b"", b""
        raise RuntimeError(
            f"Server {app} failed to start (port {port} not open). "
            f"stdout:\n{out.decode(errors='ignore')}\nstderr:\n{err.decode(errors='ignore')}"
        )

    try:
        yield f"http://{host}:{port}"
    finally:
        proc.terminate()
        try:
            proc.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


@pytest.fixture(scope="session")
def api_server():
    """
    Start the FastAPI app from `main:app` in a subprocess using uvicorn.

    Yields the base URL (e.g. http://127.0.0.1:8787) to run tests against.
    """
    host = os.environ.get("API_HOST", "127.0.0.1")
    port = int(os.environ.get("API_PORT", "8787"))
    yield from _launch_uvicorn("main:app", host, port)


@pytest.fixture(scope="session")
def speed_server():
    """
    Start the local speed test server from tests/speed_app.py.

    Serves /bytes/{n} for downloads and /upload for uploads.
    """
    host = "127.0.0.1"
    port = int(os.environ.get("SPEED_PORT", "8788"))
    yield from _launch_uvicorn("speed_app:app", host, port, app_dir=TESTS_DIR)


@pytest.fixture
def store(tmp_path):
    """A session store isolated in the test's temp directory."""
    from netbench.store import SessionStore

    return SessionStore(db_path=tmp_path / "sessions.db", results_path=tmp_path / "latest.json")

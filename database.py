import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path

from config import get_db_path

DB_PATH = get_db_path()


def _get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    """Create a new database connection."""
    conn = sqlite3.connect(db_path or DB_PATH, timeout=10.0)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path | None = None):
    """Initialize database schema. Call on app startup."""
    path = db_path or DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = _get_connection(path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                created_at REAL NOT NULL,
                score INTEGER NOT NULL,
                classification TEXT NOT NULL,
                average_download_mbps REAL,
                report_json TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_created_at ON sessions(created_at)")
        conn.commit()
    finally:
        conn.close()


@contextmanager
def db_transaction(db_path: Path | None = None):
    """Context manager for database transactions with IMMEDIATE locking."""
    conn = _get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def find_session(session_id: str, db_path: Path | None = None) -> dict | None:
    """Look up a stored session by id. Returns dict with the row or None."""
    conn = _get_connection(db_path)
    try:
        cursor = conn.execute(
            "SELECT session_id, created_at, score, classification, average_download_mbps, report_json "
            "FROM sessions WHERE session_id = ?",
            (session_id,)
        )
        row = cursor.fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def list_sessions(limit: int = 20, db_path: Path | None = None) -> list[dict]:
    """Return session summaries, newest first."""
    conn = _get_connection(db_path)
    try:
        cursor = conn.execute(
            "SELECT session_id, created_at, score, classification, average_download_mbps "
            "FROM sessions ORDER BY created_at DESC, session_id DESC LIMIT ?",
            (limit,)
        )
        return [dict(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def insert_session_record(
    conn: sqlite3.Connection,
    session_id: str,
    score: int,
    classification: str,
    average_download_mbps: float | None,
    report_json: str,
) -> None:
    """Insert a new session record within a transaction."""
    conn.execute(
        "INSERT INTO sessions (session_id, created_at, score, classification, average_download_mbps, report_json) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (session_id, time.time(), score, classification, average_download_mbps, report_json)
    )

import os
from pathlib import Path

# Read from environment, default to "data" for production
DATA_DIR = Path(os.environ.get("NETBENCH_DATA_DIR", "data"))

# Optional JSON endpoint catalog overriding the built-in one
CATALOG_PATH = os.environ.get("NETBENCH_CATALOG")

# Full assessment
DEFAULT_DURATION_S = 15.0
DEFAULT_CONCURRENCY = 3

# Quick mode used by the host readiness check
QUICK_DURATION_S = 8.0
QUICK_CONCURRENCY = 2


def get_data_dir() -> Path:
    """Get the configured data directory path."""
    return DATA_DIR


def get_db_path() -> Path:
    """Get the session database file path within the data directory."""
    return DATA_DIR / "sessions.db"


def get_results_path() -> Path:
    """Get the well-known path of the latest session report."""
    return DATA_DIR / "network_analysis_results.json"


def get_catalog_path() -> Path | None:
    """Get the endpoint catalog override, if one is configured."""
    return Path(CATALOG_PATH) if CATALOG_PATH else None

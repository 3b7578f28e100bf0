"""
Error types surfaced by the benchmarking engine.

Individual probe failures are never raised; they are carried as failed
measurements. Only the conditions below reach the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from netbench.store import SessionReport


class NetBenchError(Exception):
    """Base class for engine errors."""


class SessionLaunchError(NetBenchError):
    """No probing unit could be started, so no session was produced."""


class PersistenceError(NetBenchError):
    """Reading or writing the session store failed.

    When raised after a successful benchmark, ``report`` holds the in-memory
    report so the caller can still use it.
    """

    def __init__(self, message: str, report: SessionReport | None = None):
        super().__init__(message)
        self.report = report


class SessionNotFoundError(PersistenceError):
    """The requested session id is not in the store."""

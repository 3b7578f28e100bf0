"""
Core timing primitives for the benchmarking system.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TimingRecord:
    """A single timing measurement."""

    name: str
    start_ns: int
    end_ns: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ns(self) -> int:
        """Duration in nanoseconds."""
        return self.end_ns - self.start_ns

    @property
    def duration_s(self) -> float:
        """Duration in seconds."""
        return self.duration_ns / 1_000_000_000


class TimingContext:
    """Context manager for timing code blocks.

    Usage:
        with TimingContext("dns", target="1.1.1.1") as ctx:
            # code to time
            pass
        elapsed = ctx.record.duration_s

    The record is produced even when the block raises, so callers that
    swallow the error can still see how long the attempt took.
    """

    def __init__(self, name: str, **metadata: Any):
        self.name = name
        self.metadata = metadata
        self._start_ns: int = 0
        self._record: TimingRecord | None = None

    def __enter__(self) -> TimingContext:
        self._start_ns = time.perf_counter_ns()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._record = TimingRecord(
            name=self.name,
            start_ns=self._start_ns,
            end_ns=time.perf_counter_ns(),
            metadata=self.metadata,
        )

    @property
    def elapsed_s(self) -> float:
        """Seconds since entering the block (live while inside it)."""
        if self._record is not None:
            return self._record.duration_s
        return (time.perf_counter_ns() - self._start_ns) / 1_000_000_000

    @property
    def record(self) -> TimingRecord | None:
        """Get the timing record after context exit."""
        return self._record


class Deadline:
    """Shared wall-clock deadline plus operator cancellation signal.

    Every probing unit checks ``expired()`` before starting its next probe.
    Safe to share between threads.
    """

    def __init__(
        self,
        budget_s: float,
        cancel_event: threading.Event | None = None,
        clock=time.monotonic,
    ):
        self._clock = clock
        self.budget_s = budget_s
        self.expires_at = clock() + budget_s
        self._cancel_event = cancel_event or threading.Event()

    def expired(self) -> bool:
        return self.cancelled or self._clock() >= self.expires_at

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

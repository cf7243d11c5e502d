"""Wall-clock and monotonic timestamps, and millisecond sleeps."""

from __future__ import annotations

import time

__all__ = ["time_ms", "time_ns", "mono_ms", "mono_ns", "sleep"]

_NS_PER_MS = 1_000_000


def time_ms() -> int:
    """Return the wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // _NS_PER_MS


def time_ns() -> int:
    """Return the wall-clock time in nanoseconds since the epoch."""
    return time.time_ns()


def mono_ms() -> int:
    """Return a monotonic timestamp in milliseconds."""
    return time.monotonic_ns() // _NS_PER_MS


def mono_ns() -> int:
    """Return a monotonic timestamp in nanoseconds."""
    return time.monotonic_ns()


def sleep(millis: int) -> None:
    """Sleep for ``millis`` milliseconds, resuming after signal interruptions.

    Raises ValueError for a negative duration.
    """
    if millis < 0:
        raise ValueError(f"sleep duration must not be negative: {millis}")
    time.sleep(millis / 1000)
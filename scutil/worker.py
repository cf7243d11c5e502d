"""A joinable worker thread that runs one function and keeps its result."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

__all__ = ["ThreadError", "Worker"]


class ThreadError(Exception):
    """Raised when a worker thread cannot be started or its function fails."""


class Worker:
    """Runs ``fn(arg)`` on a separate thread and hands back its return value."""

    def __init__(self) -> None:
        self._thread: threading.Thread | None = None
        self._result: Any = None
        self._error: BaseException | None = None

    def _run(self, fn: Callable[[Any], Any], arg: Any) -> None:
        try:
            self._result = fn(arg)
        except BaseException as exc:  # handed over to the joining thread
            self._error = exc

    def start(self, fn: Callable[[Any], Any], arg: Any) -> None:
        """Start a thread running ``fn(arg)``.

        Raises ThreadError if the worker is already running or the thread
        cannot be created.
        """
        if self._thread is not None:
            raise ThreadError("worker is already started")
        self._result = None
        self._error = None
        thread = threading.Thread(target=self._run, args=(fn, arg))
        try:
            thread.start()
        except RuntimeError as exc:
            raise ThreadError(f"cannot start thread: {exc}") from exc
        self._thread = thread

    def join(self) -> Any:
        """Wait for the thread and return what its function returned.

        Returns None if no thread is running. Raises ThreadError, chained to
        the original exception, if the function raised.
        """
        thread = self._thread
        if thread is None:
            return None
        thread.join()
        self._thread = None
        result, error = self._result, self._error
        self._result = None
        self._error = None
        if error is not None:
            raise ThreadError(f"worker function raised {error!r}") from error
        return result

    def term(self) -> None:
        """Wait for the thread, discarding its result."""
        self.join()
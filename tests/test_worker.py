import threading
from unittest import mock

import pytest

from scutil.worker import ThreadError, Worker


def echo(arg):
    return arg


def test_join_returns_function_result():
    worker = Worker()
    worker.start(echo, "first")
    assert worker.join() == "first"


def test_term_twice_after_join():
    worker = Worker()
    worker.start(echo, "first")
    assert worker.join() == "first"
    assert worker.term() is None
    assert worker.term() is None
    assert worker.join() is None


def test_start_then_term():
    seen = []
    worker = Worker()
    worker.start(seen.append, "first")
    worker.term()
    assert seen == ["first"]


def test_join_without_start_returns_none():
    assert Worker().join() is None


def test_runs_on_another_thread():
    worker = Worker()
    worker.start(lambda _: threading.get_ident(), None)
    ident = worker.join()
    assert isinstance(ident, int)
    assert ident != threading.get_ident()


def test_start_while_running_raises():
    gate = threading.Event()
    worker = Worker()
    worker.start(lambda _: gate.wait(5), None)
    try:
        with pytest.raises(ThreadError, match="already started"):
            worker.start(echo, "second")
    finally:
        gate.set()
    assert worker.join() is True


def test_worker_reusable_after_join():
    worker = Worker()
    worker.start(echo, 1)
    assert worker.join() == 1
    worker.start(echo, 2)
    assert worker.join() == 2


def test_function_exception_is_raised_on_join():
    def boom(_):
        raise ValueError("bad")

    worker = Worker()
    worker.start(boom, None)
    with pytest.raises(ThreadError) as info:
        worker.join()
    assert isinstance(info.value.__cause__, ValueError)
    assert worker.join() is None


def test_start_failure_raises_thread_error():
    worker = Worker()
    with mock.patch(
        "threading.Thread.start", side_effect=RuntimeError("can't start new thread")
    ):
        with pytest.raises(ThreadError, match="can't start new thread"):
            worker.start(echo, "first")
    worker.start(echo, "first")
    assert worker.join() == "first"
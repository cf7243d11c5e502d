import pytest

from scutil import clock
from scutil.pipe import Pipe
from scutil.poll import Poll, PollError
from scutil.sock import ConnectionClosed, EventMask, Family, Sock
from scutil.worker import Worker

R = EventMask.READ
W = EventMask.WRITE
E = EventMask.EDGE
NONE = EventMask.NONE


def _listener(blocking=False):
    srv = Sock(0, blocking, Family.INET)
    srv.listen("127.0.0.1", "0")
    port = srv.local_str().rsplit(":", 1)[1]
    return srv, port


def _collect(events):
    found = {}
    for ev, data in events:
        found[id(data)] = found.get(id(data), NONE) | ev
    return found


@pytest.fixture
def poll():
    p = Poll()
    yield p
    p.close()


@pytest.fixture
def connected():
    srv, port = _listener(blocking=True)
    clt = Sock(0, True, Family.INET)
    assert clt.connect("127.0.0.1", port) is True
    acc = srv.accept()
    yield srv, clt, acc
    for s in (acc, clt, srv):
        s.close()


def test_wait_on_empty_poll_returns_nothing(poll):
    assert poll.wait(10) == []


def test_close_twice_and_wait_after_close():
    p = Poll()
    p.close()
    p.close()
    assert p.closed is True
    with pytest.raises(PollError) as info:
        p.wait(100)
    assert "terminated" in str(info.value)


def test_add_after_close_raises():
    p = Poll()
    p.close()
    with Pipe() as pipe:
        with pytest.raises(PollError):
            p.add(pipe.fdt, R, None)
        assert pipe.fdt.op == NONE


def test_context_manager_closes():
    with Poll() as p:
        assert p.wait(0) == []
    with pytest.raises(PollError):
        p.wait(0)


def test_add_invalid_descriptor_rolls_back(poll):
    sock = Sock(0, True, Family.INET)
    with pytest.raises(PollError):
        poll.add(sock.fdt, R, None)
    assert sock.fdt.op == NONE


def test_delete_invalid_descriptor_rolls_back(poll):
    sock = Sock(0, True, Family.INET)
    sock.fdt.op = R
    with pytest.raises(PollError):
        poll.delete(sock.fdt, R, None)
    assert sock.fdt.op == R


def test_pipe_readiness_reports_data(poll):
    with Pipe() as pipe:
        poll.add(pipe.fdt, R, "reader")
        assert poll.wait(10) == []
        pipe.write(b"x")
        assert poll.wait(1000) == [(R, "reader")]
        assert pipe.read(1) == b"x"
        poll.delete(pipe.fdt, R, None)
        pipe.write(b"y")
        assert poll.wait(10) == []


@pytest.mark.parametrize(
    "added, removals",
    [
        (R, [R]),
        (R | W, [R, W]),
        (R | W, [W, R]),
        (W, [W, R]),
    ],
)
def test_poll_mass(added, removals):
    p = Poll()
    pipes = [Pipe() for _ in range(100)]
    for pipe in pipes:
        p.add(pipe.fdt, added, None)
        assert pipe.fdt.op == added
    for pipe in pipes:
        for mask in removals:
            p.delete(pipe.fdt, mask, None)
        assert pipe.fdt.op == NONE
        pipe.close()
        pipe.close()
        assert pipe.closed
    p.close()
    p.close()
    assert p.closed


def test_poll_mask(poll):
    srv, _ = _listener(blocking=True)
    try:
        poll.add(srv.fdt, R, srv)
        poll.add(srv.fdt, R, srv)
        assert srv.fdt.op == R
        poll.delete(srv.fdt, R, srv)
        assert srv.fdt.op == NONE
        poll.add(srv.fdt, E, srv)
        assert srv.fdt.op == NONE
        assert poll.wait(1) == []
        poll.delete(srv.fdt, R | E, srv)
        assert srv.fdt.op == NONE
    finally:
        srv.close()


def test_mask_transitions(poll, connected):
    _, clt, acc = connected
    poll.add(acc.fdt, R | W | E, acc)
    assert acc.fdt.op == R | W | E
    poll.delete(acc.fdt, R | E, None)
    assert acc.fdt.op == W
    poll.add(acc.fdt, E, None)
    assert acc.fdt.op == W | E
    poll.delete(acc.fdt, W, None)
    assert acc.fdt.op == NONE

    poll.add(clt.fdt, R | W | E, clt)
    assert clt.fdt.op == R | W | E
    poll.delete(clt.fdt, E, None)
    assert clt.fdt.op == R | W
    poll.delete(clt.fdt, R | W, None)
    assert clt.fdt.op == NONE

    poll.add(acc.fdt, R, None)
    poll.add(acc.fdt, W, None)
    poll.add(acc.fdt, E, None)
    assert acc.fdt.op == R | W | E
    poll.delete(acc.fdt, R, None)
    assert acc.fdt.op == W | E


def test_accept_and_stream(poll):
    srv, port = _listener(blocking=False)
    clt = Sock(0, True, Family.INET)
    try:
        poll.add(srv.fdt, R, srv)
        assert clt.connect("127.0.0.1", port) is True
        for _ in range(10000):
            assert clt.send(b"d") == 1
        clt.close()

        events = poll.wait(2000)
        assert _collect(events) == {id(srv): R}
        acc = srv.accept()
        poll.delete(srv.fdt, R, srv)
        poll.add(acc.fdt, R, acc)

        received = 0
        done = False
        while not done:
            events = poll.wait(2000)
            assert events
            for ev, data in events:
                assert data is acc
                assert ev & R
                try:
                    byte = acc.recv(1)
                except ConnectionClosed:
                    poll.delete(acc.fdt, R | W, acc)
                    done = True
                    break
                assert byte == b"d"
                received += 1
        assert received == 10000
        assert acc.fdt.op == NONE
        acc.close()
    finally:
        clt.close()
        srv.close()


def test_edge_triggered_reports_each_change_once(poll):
    srv, port = _listener(blocking=False)
    clt = Sock(0, False, Family.INET)
    try:
        poll.add(srv.fdt, R, srv)
        clt.connect("127.0.0.1", port)
        poll.add(clt.fdt, R | W | E, clt)

        clock.sleep(250)
        found = _collect(poll.wait(100))
        assert found[id(srv)] == R
        assert found[id(clt)] & W
        assert not found[id(clt)] & R

        acc = srv.accept()
        clt.finish_connect()
        clock.sleep(50)
        assert _collect(poll.wait(50)) == {}

        assert acc.send(b"blaBLA") == 6
        clock.sleep(100)
        found = _collect(poll.wait(100))
        assert found[id(clt)] & R
        assert id(clt) not in _collect(poll.wait(50))
        acc.close()
    finally:
        clt.close()
        srv.close()


def _late_add(args):
    poll, pipe = args
    clock.sleep(300)
    pipe.write(b"x")
    poll.add(pipe.fdt, R, "late")
    return "added"


def test_add_from_other_thread_while_waiting(poll):
    with Pipe() as pipe:
        worker = Worker()
        worker.start(_late_add, (poll, pipe))
        events = poll.wait(5000)
        assert worker.join() == "added"
        assert events == [(R, "late")]
        assert pipe.fdt.op == R


def test_same_listener_in_several_polls():
    srv, port = _listener(blocking=False)
    polls = [Poll() for _ in range(4)]
    clt = Sock(0, True, Family.INET)
    try:
        for p in polls:
            srv.fdt.op = NONE
            p.add(srv.fdt, R, srv)
        assert clt.connect("127.0.0.1", port) is True
        clock.sleep(100)
        for p in polls:
            assert p.wait(1000) == [(R, srv)]
        acc = srv.accept()
        acc.close()
        with pytest.raises(BlockingIOError):
            srv.accept()
    finally:
        clt.close()
        for p in polls:
            p.close()
        srv.close()
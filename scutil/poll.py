"""Readiness polling for sockets and pipes, with optional edge triggering."""

from __future__ import annotations

import errno
import os
import select
import threading
from typing import Any

from .pipe import Pipe
from .sock import EventMask, SockFd

__all__ = ["PollError", "Poll", "MAX_EVENTS"]

MAX_EVENTS = 1024

_NONE = EventMask.NONE
_READ = EventMask.READ
_WRITE = EventMask.WRITE
_EDGE = EventMask.EDGE
_BOTH = EventMask.READ | EventMask.WRITE

_MISSING = object()


class PollError(OSError):
    """Raised when a poller operation fails."""


def _failure(action: str, exc: BaseException) -> PollError:
    reason = getattr(exc, "strerror", None) or str(exc)
    code = getattr(exc, "errno", None) or errno.EINVAL
    return PollError(code, f"{action} : {reason}")


def _seconds(timeout: int) -> float | None:
    return None if timeout < 0 else timeout / 1000


class _EpollBackend:
    name = "epoll"

    def __init__(self) -> None:
        self._ep = select.epoll()
        self._data: dict[int, Any] = {}

    @staticmethod
    def _bits(mask: EventMask) -> int:
        bits = select.EPOLLERR | select.EPOLLHUP | getattr(select, "EPOLLRDHUP", 0x2000)
        if mask & _READ:
            bits |= select.EPOLLIN
        if mask & _WRITE:
            bits |= select.EPOLLOUT
        if mask & _EDGE:
            bits |= select.EPOLLET
        return bits

    def _restore(self, fd: int, previous: Any) -> None:
        if previous is _MISSING:
            self._data.pop(fd, None)
        else:
            self._data[fd] = previous

    def add(self, fd: int, old: EventMask, new: EventMask,
            events: EventMask, data: Any) -> None:
        # Publish the data before the kernel can report the descriptor.
        previous = self._data.get(fd, _MISSING)
        self._data[fd] = data
        try:
            if old == _NONE:
                self._ep.register(fd, self._bits(new))
            else:
                self._ep.modify(fd, self._bits(new))
        except BaseException:
            self._restore(fd, previous)
            raise

    def delete(self, fd: int, old: EventMask, new: EventMask,
               events: EventMask, data: Any) -> None:
        if new == _NONE:
            self._ep.unregister(fd)
            self._data.pop(fd, None)
            return
        previous = self._data.get(fd, _MISSING)
        self._data[fd] = data
        try:
            self._ep.modify(fd, self._bits(new))
        except BaseException:
            self._restore(fd, previous)
            raise

    @staticmethod
    def _events(bits: int) -> EventMask:
        ev = _NONE
        if bits & select.EPOLLIN:
            ev |= _READ
        if bits & select.EPOLLOUT:
            ev |= _WRITE
        closed = select.EPOLLHUP | select.EPOLLERR | getattr(select, "EPOLLRDHUP", 0x2000)
        if bits & closed:
            ev = _BOTH
        return ev

    def wait(self, timeout: int) -> list[tuple[EventMask, Any]]:
        ready = self._ep.poll(_seconds(timeout), MAX_EVENTS)
        return [(self._events(bits), self._data.get(fd)) for fd, bits in ready]

    def close(self) -> None:
        self._data.clear()
        self._ep.close()


class _KqueueBackend:
    name = "kevent"

    def __init__(self) -> None:
        self._kq = select.kqueue()
        self._data: dict[int, Any] = {}

    def _apply(self, fd: int, changes: list, data: Any, keep: bool) -> None:
        previous = self._data.get(fd, _MISSING)
        if keep:
            self._data[fd] = data
        try:
            self._kq.control(changes, 0, 0)
        except BaseException:
            if previous is _MISSING:
                self._data.pop(fd, None)
            else:
                self._data[fd] = previous
            raise
        if not keep:
            self._data.pop(fd, None)

    def add(self, fd: int, old: EventMask, new: EventMask,
            events: EventMask, data: Any) -> None:
        flags = select.KQ_EV_ADD
        if new & _EDGE:
            flags |= select.KQ_EV_CLEAR
        changes = []
        if new & _WRITE:
            changes.append(select.kevent(fd, select.KQ_FILTER_WRITE, flags))
        if new & _READ:
            changes.append(select.kevent(fd, select.KQ_FILTER_READ, flags))
        self._apply(fd, changes, data, keep=True)

    def delete(self, fd: int, old: EventMask, new: EventMask,
               events: EventMask, data: Any) -> None:
        removed = old & events
        changes = []
        for flag, kfilter in ((_READ, select.KQ_FILTER_READ),
                              (_WRITE, select.KQ_FILTER_WRITE)):
            if removed & flag:
                changes.append(select.kevent(fd, kfilter, select.KQ_EV_DELETE))
            elif removed & _EDGE and old & flag:
                changes.append(select.kevent(fd, kfilter, select.KQ_EV_ADD))
        self._apply(fd, changes, data, keep=new != _NONE)

    def wait(self, timeout: int) -> list[tuple[EventMask, Any]]:
        results = []
        for kev in self._kq.control(None, MAX_EVENTS, _seconds(timeout)):
            if kev.flags & select.KQ_EV_EOF:
                ev = _BOTH
            elif kev.filter == select.KQ_FILTER_READ:
                ev = _READ
            elif kev.filter == select.KQ_FILTER_WRITE:
                ev = _WRITE
            else:
                ev = _NONE
            results.append((ev, self._data.get(kev.ident)))
        return results

    def close(self) -> None:
        self._data.clear()
        self._kq.close()


class _SelectBackend:
    """Portable fallback; edge triggering reports only newly gained readiness."""

    name = "select"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, tuple[EventMask, Any]] = {}
        self._fired: dict[int, EventMask] = {}
        self._polling = False
        self._wakeup = Pipe()

    @staticmethod
    def _check(fd: int) -> None:
        if fd < 0:
            raise OSError(errno.EBADF, os.strerror(errno.EBADF))

    def _update(self, fd: int, new: EventMask, data: Any) -> None:
        self._check(fd)
        with self._lock:
            if new == _NONE:
                self._entries.pop(fd, None)
                self._fired.pop(fd, None)
            else:
                self._entries[fd] = (new, data)
                if not new & _EDGE:
                    self._fired.pop(fd, None)
            wake = self._polling
        if wake:
            self._wakeup.write(b"W")

    def add(self, fd: int, old: EventMask, new: EventMask,
            events: EventMask, data: Any) -> None:
        self._update(fd, new, data)

    def delete(self, fd: int, old: EventMask, new: EventMask,
               events: EventMask, data: Any) -> None:
        self._update(fd, new, data)

    def _wait_once(self, seconds: float | None) -> list[tuple[EventMask, Any]]:
        with self._lock:
            if self._polling:
                raise OSError(errno.EBUSY,
                              "polling is already in progress in a parallel thread")
            self._polling = True
            snapshot = {fd: mask for fd, (mask, _) in self._entries.items()}

        wake_fd = self._wakeup.fds[0]
        readers = [fd for fd, mask in snapshot.items() if mask & _READ] + [wake_fd]
        writers = [fd for fd, mask in snapshot.items() if mask & _WRITE]
        failure: BaseException | None = None
        try:
            rlist, wlist, xlist = select.select(readers, writers, list(snapshot), seconds)
        except (OSError, ValueError) as exc:
            failure = exc
            rlist, wlist, xlist = [], [], []

        rset, wset, xset = set(rlist), set(wlist), set(xlist)
        if wake_fd in rset:
            self._wakeup.read(16)

        results: list[tuple[EventMask, Any]] = []
        with self._lock:
            self._polling = False
            if failure is not None:
                current = {fd: mask for fd, (mask, _) in self._entries.items()}
                if current == snapshot:
                    raise failure
                # A descriptor was removed while waiting; the next wait will succeed.
                return results
            for fd in snapshot:
                entry = self._entries.get(fd)
                if entry is None:
                    continue
                mask, data = entry
                ev = _NONE
                if fd in rset:
                    ev |= _READ
                if fd in wset:
                    ev |= _WRITE
                if fd in xset:
                    ev = _BOTH
                ev &= mask | (_BOTH if fd in xset else _NONE)
                if mask & _EDGE:
                    previous = self._fired.get(fd, _NONE)
                    self._fired[fd] = ev
                    ev &= ~previous
                if ev:
                    results.append((ev, data))
                    if len(results) == MAX_EVENTS:
                        break
        return results

    def wait(self, timeout: int) -> list[tuple[EventMask, Any]]:
        seconds = _seconds(timeout)
        while True:
            results = self._wait_once(seconds)
            if results or seconds is not None:
                return results

    def close(self) -> None:
        with self._lock:
            self._entries.clear()
            self._fired.clear()
        self._wakeup.close()


def _make_backend() -> _EpollBackend | _KqueueBackend | _SelectBackend:
    if hasattr(select, "epoll"):
        return _EpollBackend()
    if hasattr(select, "kqueue"):
        return _KqueueBackend()
    return _SelectBackend()


class Poll:
    """Watches descriptors for readiness and reports them with their user data.

    Descriptors may be added and removed from other threads while one thread
    is waiting.
    """

    def __init__(self) -> None:
        try:
            self._backend: Any = _make_backend()
        except OSError as exc:
            raise _failure("poll init", exc) from exc

    @property
    def closed(self) -> bool:
        """True once the poller has been closed."""
        return self._backend is None

    def _require(self) -> Any:
        backend = self._backend
        if backend is None:
            raise PollError(errno.EBADF,
                            "poll : poller is not initialized or already terminated")
        return backend

    def add(self, fdt: SockFd, events: int, data: Any = None) -> None:
        """Watch ``fdt`` for ``events`` in addition to those already watched.

        Adding EDGE switches the descriptor to edge-triggered mode. ``fdt.op``
        is left unchanged if the poller rejects the change.
        """
        backend = self._require()
        events = EventMask(events)
        old = EventMask(fdt.op)
        new = old | events
        if new == _EDGE:
            new = _NONE
        if new == old:
            return
        # Update fdt before the poller can report it to another thread.
        fdt.op = new
        try:
            backend.add(fdt.fd, old, new, events, data)
        except (OSError, ValueError) as exc:
            fdt.op = old
            raise _failure(backend.name, exc) from exc

    def delete(self, fdt: SockFd, events: int, data: Any = None) -> None:
        """Stop watching ``fdt`` for ``events``; removing EDGE cancels edge mode.

        Once nothing is left to watch the descriptor is removed entirely.
        """
        backend = self._require()
        events = EventMask(events)
        old = EventMask(fdt.op)
        new = old & ~events
        if new == _EDGE:
            new = _NONE
        if new == old:
            return
        fdt.op = new
        try:
            backend.delete(fdt.fd, old, new, events, data)
        except (OSError, ValueError) as exc:
            fdt.op = old
            raise _failure(backend.name, exc) from exc

    def wait(self, timeout: int = -1) -> list[tuple[EventMask, Any]]:
        """Wait up to ``timeout`` milliseconds (-1 for ever) for readiness.

        Returns ``(events, data)`` pairs. A closed descriptor is reported as
        READ | WRITE so that reading or writing it shows the closure.
        """
        backend = self._require()
        try:
            return backend.wait(timeout)
        except (OSError, ValueError) as exc:
            raise _failure(f"{backend.name} wait", exc) from exc

    def close(self) -> None:
        """Release the poller; closing an already closed poller does nothing."""
        backend, self._backend = self._backend, None
        if backend is None:
            return
        try:
            backend.close()
        except OSError as exc:
            raise _failure(f"{backend.name} close", exc) from exc

    def __enter__(self) -> "Poll":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
"""A one-way, in-process byte pipe whose read end can be polled."""

from __future__ import annotations

import errno
import os
import socket
import sys
from typing import Any

from .sock import EventMask, SockFd

__all__ = ["PipeError", "Pipe"]

# Windows can only poll sockets, so a connected socket pair stands in there.
_USE_SOCKETS = sys.platform == "win32"


class PipeError(OSError):
    """Raised when a pipe cannot be created, written, read or closed."""


def _pipe_error(action: str, exc: OSError) -> PipeError:
    reason = exc.strerror or str(exc)
    return PipeError(exc.errno, f"{action} : {reason}")


class Pipe:
    """A pipe: bytes written to one end are read from the other.

    ``fdt`` describes the read end so the pipe can be registered with a poller.
    """

    def __init__(self, tag: Any = 0) -> None:
        self.fdt = SockFd(tag=tag)
        self._read_end: int | socket.socket | None = None
        self._write_end: int | socket.socket | None = None
        try:
            if _USE_SOCKETS:
                reader, writer = socket.socketpair()
                try:
                    writer.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                except OSError:
                    reader.close()
                    writer.close()
                    raise
                self._read_end, self._write_end = reader, writer
            else:
                self._read_end, self._write_end = os.pipe()
        except OSError as exc:
            raise _pipe_error("pipe()", exc) from exc
        self.fdt.fd = self.fds[0]
        self.fdt.op = EventMask.NONE

    @staticmethod
    def _fileno(end: int | socket.socket | None) -> int:
        if end is None:
            return -1
        if isinstance(end, socket.socket):
            return end.fileno()
        return end

    @property
    def fds(self) -> tuple[int, int]:
        """The descriptors of the read and write ends, ``-1`` once closed."""
        return self._fileno(self._read_end), self._fileno(self._write_end)

    @property
    def closed(self) -> bool:
        """True once the pipe has been closed."""
        return self._read_end is None

    def __repr__(self) -> str:
        read_fd, write_fd = self.fds
        return f"Pipe(read={read_fd}, write={write_fd})"

    def write(self, data: bytes) -> int:
        """Write ``data`` to the pipe and return the number of bytes written."""
        end = self._write_end
        if end is None:
            raise PipeError(errno.EBADF, "pipe write() : pipe is closed")
        try:
            if isinstance(end, socket.socket):
                return end.send(data)
            return os.write(end, data)
        except OSError as exc:
            raise _pipe_error("pipe write()", exc) from exc

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes, blocking until some are available."""
        end = self._read_end
        if end is None:
            raise PipeError(errno.EBADF, "pipe read() : pipe is closed")
        if size <= 0:
            return b""
        try:
            if isinstance(end, socket.socket):
                return end.recv(size)
            return os.read(end, size)
        except OSError as exc:
            raise _pipe_error("pipe read()", exc) from exc

    def close(self) -> None:
        """Close both ends; closing an already closed pipe does nothing.

        Both ends are released even if closing one of them fails, after which
        the first failure is raised as PipeError.
        """
        if self._read_end is None:
            return
        ends = (self._read_end, self._write_end)
        self._read_end = None
        self._write_end = None
        self.fdt.fd = -1

        failure: OSError | None = None
        for end in ends:
            if end is None:
                continue
            try:
                if isinstance(end, socket.socket):
                    end.close()
                else:
                    os.close(end)
            except OSError as exc:
                if failure is None:
                    failure = exc
        if failure is not None:
            raise _pipe_error("pipe close()", failure) from failure

    def __enter__(self) -> "Pipe":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
"""TCP and unix-domain stream sockets with a small, uniform interface."""

from __future__ import annotations

import enum
import errno
import os
import socket
import struct
import sys
from dataclasses import dataclass
from typing import Any

__all__ = [
    "SockError",
    "ConnectionClosed",
    "EventMask",
    "Family",
    "SockFd",
    "Sock",
]

_LISTEN_BACKLOG = 4096
# sun_path holds 108 bytes including its terminator.
_SUN_PATH_SIZE = 108

_IN_PROGRESS = {
    code
    for code in (
        errno.EINPROGRESS,
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        getattr(errno, "WSAEWOULDBLOCK", None),
        getattr(errno, "WSAEINPROGRESS", None),
    )
    if code is not None
}


class SockError(OSError):
    """Raised when a socket operation fails."""


class ConnectionClosed(SockError):
    """Raised by a receive when the peer has closed the connection."""


class EventMask(enum.IntFlag):
    """Readiness events a descriptor can be polled for."""

    NONE = 0
    READ = 1
    WRITE = 2
    EDGE = 4


class Family(enum.IntEnum):
    """Address families a socket can use."""

    INET = socket.AF_INET
    INET6 = socket.AF_INET6
    UNIX = getattr(socket, "AF_UNIX", 1)


@dataclass
class SockFd:
    """A pollable descriptor: its number, its registered events and a user tag."""

    fd: int = -1
    op: EventMask = EventMask.NONE
    tag: Any = 0


def _wrap(exc: BaseException | None) -> SockError:
    if exc is None:
        return SockError(errno.EADDRNOTAVAIL, "no usable address")
    if isinstance(exc, SockError):
        return exc
    if isinstance(exc, OSError):
        message = exc.strerror or str(exc)
        return SockError(exc.errno, message)
    return SockError(errno.EINVAL, str(exc))


def _format_address(family: int, address: Any) -> str:
    if family == socket.AF_INET:
        host, port = address[:2]
        return f"{host}:{port}"
    if family == socket.AF_INET6:
        host = address[0].split("%", 1)[0]
        return f"{host}:{address[1]}"
    if family == Family.UNIX:
        if isinstance(address, bytes):
            return os.fsdecode(address.split(b"\0", 1)[0])
        return str(address).split("\0", 1)[0]
    return ""


def _timeval(ms: int) -> bytes:
    if ms < 0:
        raise ValueError(f"timeout must not be negative: {ms}")
    if sys.platform == "win32":
        return struct.pack("I", ms)
    seconds, millis = divmod(ms, 1000)
    return struct.pack("ll", seconds, millis * 1000)


class Sock:
    """A stream socket that can listen, accept, connect, send and receive."""

    def __init__(self, tag: Any = 0, blocking: bool = True,
                 family: int = Family.INET) -> None:
        self.fdt = SockFd(tag=tag)
        self.blocking = bool(blocking)
        self.family = Family(int(family))
        self._sock: socket.socket | None = None

    def __repr__(self) -> str:
        return (
            f"Sock(fd={self.fdt.fd}, family={self.family.name}, "
            f"blocking={self.blocking})"
        )

    # -- internal helpers -------------------------------------------------

    def _attach(self, sock: socket.socket) -> None:
        self._sock = sock
        self.fdt.fd = sock.fileno()

    def _drop(self) -> None:
        sock, self._sock = self._sock, None
        self.fdt.fd = -1
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

    def _require(self) -> socket.socket:
        if self._sock is None:
            raise SockError(errno.EBADF, "socket is not open")
        return self._sock

    def _bind_unix(self, host: str) -> None:
        path = os.fsencode(host)[: _SUN_PATH_SIZE - 1]
        try:
            sock = socket.socket(Family.UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise _wrap(exc) from exc
        self._attach(sock)
        try:
            os.unlink(path)
        except OSError:
            pass
        try:
            sock.bind(path)
        except OSError as exc:
            self._drop()
            raise _wrap(exc) from exc

    def _bind_inet(self, host: str | None, port: str | int | None) -> None:
        try:
            infos = socket.getaddrinfo(host, port, self.family, socket.SOCK_STREAM)
        except (OSError, UnicodeError, OverflowError) as exc:
            raise _wrap(exc) from exc

        last: BaseException | None = None
        for fam, kind, proto, _, address in infos:
            try:
                sock = socket.socket(fam, kind, proto)
            except OSError as exc:
                last = exc
                continue
            self._attach(sock)
            try:
                if self.family == Family.INET6:
                    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                sock.setblocking(self.blocking)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                sock.bind(address)
            except OSError as exc:
                self._drop()
                raise _wrap(exc) from exc
            return
        raise _wrap(last)

    def _bind_source(self, addr: str | None, port: str | int | None) -> None:
        sock = self._require()
        try:
            infos = socket.getaddrinfo(addr, port, socket.AF_UNSPEC,
                                       socket.SOCK_STREAM)
        except (OSError, UnicodeError, OverflowError) as exc:
            self._drop()
            raise _wrap(exc) from exc

        last: BaseException | None = None
        for *_, address in infos:
            try:
                sock.bind(address)
            except OSError as exc:
                last = exc
                continue
            return
        self._drop()
        raise _wrap(last)

    def _connect_unix(self, addr: str) -> None:
        try:
            sock = socket.socket(Family.UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise _wrap(exc) from exc
        self._attach(sock)
        path = os.fsencode(addr)
        if len(path) >= _SUN_PATH_SIZE:
            self._drop()
            raise SockError(errno.EINVAL, f"unix socket path is too long: {addr!r}")
        try:
            sock.connect(path)
        except OSError as exc:
            self._drop()
            raise _wrap(exc) from exc

    # -- public interface -------------------------------------------------

    def listen(self, host: str | None, port: str | int | None = None) -> None:
        """Bind to ``host``/``port`` (a path for unix sockets) and listen."""
        self.close()
        if self.family == Family.UNIX:
            self._bind_unix(host or "")
        else:
            self._bind_inet(host, port)
        try:
            self._require().listen(_LISTEN_BACKLOG)
        except OSError as exc:
            self._drop()
            raise _wrap(exc) from exc

    def accept(self) -> "Sock":
        """Accept a pending connection and return it as a new socket.

        A non-blocking socket with nothing pending raises BlockingIOError.
        """
        sock = self._require()
        try:
            conn, _ = sock.accept()
        except BlockingIOError as exc:
            if not self.blocking:
                raise
            raise _wrap(exc) from exc
        except OSError as exc:
            raise _wrap(exc) from exc

        incoming = Sock(0, self.blocking, self.family)
        incoming._attach(conn)
        try:
            if incoming.family != Family.UNIX:
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            conn.setblocking(self.blocking)
        except OSError as exc:
            incoming._drop()
            raise _wrap(exc) from exc
        return incoming

    def connect(self, dst_addr: str, dst_port: str | int | None = None,
                src_addr: str | None = None,
                src_port: str | int | None = None) -> bool:
        """Connect to ``dst_addr``/``dst_port``, optionally from a source address.

        Addresses of the socket's own family are tried first. Returns True
        once connected, or False for a non-blocking connect still in progress
        (call finish_connect() when the socket becomes writable).
        """
        self.close()
        if self.family == Family.UNIX:
            self._connect_unix(dst_addr)
            return True

        try:
            infos = socket.getaddrinfo(dst_addr, dst_port, socket.AF_UNSPEC,
                                       socket.SOCK_STREAM)
        except (OSError, UnicodeError, OverflowError) as exc:
            raise _wrap(exc) from exc

        preferred = [info for info in infos if info[0] == self.family]
        others = [info for info in infos if info[0] != self.family]

        last: BaseException | None = None
        for fam, kind, proto, _, address in preferred + others:
            try:
                sock = socket.socket(fam, kind, proto)
            except OSError as exc:
                last = exc
                continue
            self.family = Family(int(fam))
            self._attach(sock)
            try:
                sock.setblocking(self.blocking)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as exc:
                self._drop()
                raise _wrap(exc) from exc

            if src_addr is not None or src_port is not None:
                self._bind_source(src_addr, src_port)

            try:
                code = sock.connect_ex(address)
            except OSError as exc:
                code = exc.errno or errno.EINVAL
            if code == 0:
                return True
            if not self.blocking and code in _IN_PROGRESS:
                return False
            last = OSError(code, os.strerror(code))
            self._drop()
        raise _wrap(last)

    def finish_connect(self) -> None:
        """Complete a non-blocking connect; raises SockError if it failed."""
        sock = self._require()
        try:
            code = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise _wrap(exc) from exc
        if code != 0:
            raise SockError(code, os.strerror(code))

    def set_blocking(self, blocking: bool) -> None:
        """Switch the open socket between blocking and non-blocking mode."""
        sock = self._require()
        try:
            sock.setblocking(bool(blocking))
        except OSError as exc:
            raise _wrap(exc) from exc

    def _set_timeout(self, option: int, ms: int) -> None:
        sock = self._require()
        try:
            sock.setsockopt(socket.SOL_SOCKET, option, _timeval(ms))
        except OSError as exc:
            raise _wrap(exc) from exc

    def set_rcvtimeo(self, ms: int) -> None:
        """Set the receive timeout in milliseconds."""
        self._set_timeout(socket.SO_RCVTIMEO, ms)

    def set_sndtimeo(self, ms: int) -> None:
        """Set the send timeout in milliseconds."""
        self._set_timeout(socket.SO_SNDTIMEO, ms)

    def send(self, data: bytes, flags: int = 0) -> int:
        """Send ``data`` and return the number of bytes sent.

        Raises BlockingIOError when the socket would block.
        """
        if not data:
            return 0
        sock = self._require()
        try:
            return sock.send(data, flags)
        except BlockingIOError:
            raise
        except OSError as exc:
            raise _wrap(exc) from exc

    def recv(self, size: int, flags: int = 0) -> bytes:
        """Receive up to ``size`` bytes.

        Raises ConnectionClosed when the peer has closed the connection and
        BlockingIOError when the socket would block.
        """
        if size <= 0:
            return b""
        sock = self._require()
        try:
            data = sock.recv(size, flags)
        except BlockingIOError:
            raise
        except OSError as exc:
            raise _wrap(exc) from exc
        if not data:
            raise ConnectionClosed("connection closed by peer")
        return data

    def local_str(self) -> str:
        """Return the local address as ``host:port``, or the path for unix sockets."""
        sock = self._require()
        try:
            address = sock.getsockname()
        except OSError as exc:
            raise _wrap(exc) from exc
        return _format_address(sock.family, address)

    def remote_str(self) -> str:
        """Return the peer address as ``host:port``, or the path for unix sockets."""
        sock = self._require()
        try:
            address = sock.getpeername()
        except OSError as exc:
            raise _wrap(exc) from exc
        return _format_address(sock.family, address)

    def describe(self) -> str:
        """Return ``"Local(<addr>), Remote(<addr>) "``, empty where unknown."""
        try:
            local = self.local_str()
        except SockError:
            local = ""
        try:
            remote = self.remote_str()
        except SockError:
            remote = ""
        return f"Local({local}), Remote({remote}) "

    def close(self) -> None:
        """Close the socket; closing an already closed socket does nothing."""
        sock, self._sock = self._sock, None
        self.fdt.fd = -1
        if sock is None:
            return
        try:
            sock.close()
        except OSError as exc:
            raise _wrap(exc) from exc

    def __enter__(self) -> "Sock":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
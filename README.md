# scutil

A small set of building blocks for systems code, using only the standard library.

- `scutil.clock`: `time_ms()`, `time_ns()` for wall-clock time, `mono_ms()`, `mono_ns()` for a monotonic clock, and `sleep(millis)`, which raises `ValueError` for a negative duration.
- `scutil.strbuf`: `StrBuf`, a length-limited mutable string with `set`, `set_fmt`, `append`, `trim`, `substring`, `replace` and `tokens`; `StrBuf.from_fmt(fmt, *args)` builds one from a `%`-style format. `tokenize(text, delims)` splits text on any of the delimiter characters, keeping empty tokens.
- `scutil.worker`: `Worker`, which runs `fn(arg)` on a thread; `join()` returns the function's result, and raises `ThreadError` if the function raised.
- `scutil.sock`: `Sock`, a TCP (IPv4/IPv6) or Unix stream socket with `listen`, `accept`, `connect`, `finish_connect`, `send`, `recv`, timeouts, and address strings via `local_str`, `remote_str` and `describe`. `EventMask`, `Family` and `SockFd` are defined here too.
- `scutil.pipe`: `Pipe`, a byte pipe whose read end (`pipe.fdt`) can be watched by a poller.
- `scutil.poll`: `Poll`, a readiness poller (epoll, kqueue, or a `select` fallback) with level- and edge-triggered modes.

## Install

```
pip install .
```

## Examples

```python
from scutil.strbuf import StrBuf

s = StrBuf("*-hello-*")
s.trim("*-")              # "hello"
s.append("2")             # "hello2"
s.replace("2", " world!") # "hello world!"
s.substring(0, 5)         # "hello"
print(s)
```

```python
from scutil.sock import Sock, Family

with Sock(0, True, Family.INET) as server:
    server.listen("127.0.0.1", "8004")
    print(server.describe())   # Local(127.0.0.1:8004), Remote()
```

`connect()` returns `True` once connected, or `False` when a non-blocking connect is still in progress; call `finish_connect()` when the socket becomes writable. `recv()` raises `ConnectionClosed` when the peer has closed, and a non-blocking socket that would block raises `BlockingIOError`.

```python
from scutil.pipe import Pipe
from scutil.poll import Poll
from scutil.sock import EventMask

with Poll() as poller, Pipe() as pipe:
    poller.add(pipe.fdt, EventMask.READ, pipe)
    pipe.write(b"ping")
    for events, data in poller.wait(100):
        if events & EventMask.READ:
            print(data.read(4))
    poller.delete(pipe.fdt, EventMask.READ)
```

`Poll.wait(timeout)` waits up to `timeout` milliseconds (`-1` waits for ever) and returns `(events, data)` pairs, at most 1024 per call. A closed descriptor is reported as `READ | WRITE`. Adding `EventMask.EDGE` switches a descriptor to edge-triggered mode; deleting it switches back.

Failures are raised as exceptions (`SockError`, `PipeError`, `PollError`, `ThreadError`) carrying a message that describes the cause.

## What it does not do

The package has no command-line tools and runs no servers of its own. It does not send readiness or status notifications to a service manager.

## Tests

```
pip install .[test]
pytest
```
"""Clocks, string buffers, worker threads, sockets, pipes and an event poller."""

__version__ = "2.0.0"
__all__ = ["clock", "strbuf", "worker", "sock", "pipe", "poll"]
"""Coroutine tasks, synchronisation primitives, thread pools, an I/O scheduler and UDP peers."""

__version__ = "0.1.0"
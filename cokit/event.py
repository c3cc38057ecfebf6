"""A one-shot event that coroutines can await."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Generator

from cokit.coroutine import Awaiter


class ResumeOrderPolicy(Enum):
    """Order in which waiters are resumed when an event is set."""

    LIFO = "lifo"
    FIFO = "fifo"


class Event:
    """Coroutines awaiting an unset event suspend until :meth:`set` is called.

    Waiters are resumed inline on the thread that sets the event.
    """

    def __init__(self, initially_set: bool = False) -> None:
        self._lock = threading.Lock()
        self._set = initially_set
        self._waiters: list[Any] = []

    def __await__(self) -> Generator[Awaiter, None, None]:
        return _EventAwaiter(self).__await__()

    def is_set(self) -> bool:
        """True if the event is currently set."""
        return self._set

    def set(self, policy: ResumeOrderPolicy = ResumeOrderPolicy.LIFO) -> None:
        """Set the event and resume every waiter in the order the policy asks for."""
        with self._lock:
            if self._set:
                return
            self._set = True
            waiters, self._waiters = self._waiters, []
        ordered = waiters if policy is ResumeOrderPolicy.FIFO else reversed(waiters)
        for handle in ordered:
            handle.resume()

    def reset(self) -> None:
        """Return a set event to the unset state; has no effect otherwise."""
        with self._lock:
            if self._set:
                self._set = False


class _EventAwaiter(Awaiter):
    def __init__(self, event: Event) -> None:
        self._event = event

    def await_ready(self) -> bool:
        return self._event.is_set()

    def await_suspend(self, handle: Any) -> bool:
        event = self._event
        with event._lock:
            if event._set:
                return False
            event._waiters.append(handle)
            return True
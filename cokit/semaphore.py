"""A counting semaphore for coroutines that can be stopped."""

from __future__ import annotations

import threading
from collections import deque
from enum import Enum
from typing import Any

from cokit.coroutine import Awaiter


class AcquireResult(Enum):
    """Outcome of awaiting :meth:`Semaphore.acquire`."""

    ACQUIRED = "acquired"
    SEMAPHORE_STOPPED = "semaphore_stopped"

    def __str__(self) -> str:
        return self.value


class Semaphore:
    """Hands out up to ``least_max_value`` resources to coroutines.

    Waiting acquirers are served first come, first served and are resumed on the
    thread that releases a resource.  Once :meth:`notify_waiters` is called the
    semaphore is stopped for good.
    """

    def __init__(self, least_max_value: int, starting_value: int | None = None) -> None:
        if starting_value is None:
            starting_value = least_max_value
        if least_max_value < 0:
            raise ValueError("least_max_value must not be negative")
        if not 0 <= starting_value <= least_max_value:
            raise ValueError("starting_value must lie between 0 and least_max_value")
        self._max = least_max_value
        self._counter = starting_value
        self._lock = threading.Lock()
        self._waiters: deque[_AcquireOperation] = deque()
        self._stopped = False

    def acquire(self) -> Awaiter:
        """Return an awaitable that yields an :class:`AcquireResult`."""
        return _AcquireOperation(self)

    def try_acquire(self) -> bool:
        """Take a resource if one is available right now."""
        with self._lock:
            if self._stopped or self._counter == 0:
                return False
            self._counter -= 1
            return True

    def release(self) -> None:
        """Return a resource, handing it straight to a waiter if there is one."""
        with self._lock:
            if self._stopped:
                return
            if not self._waiters:
                if self._counter >= self._max:
                    raise ValueError("semaphore released beyond its maximum")
                self._counter += 1
                return
            operation = self._waiters.popleft()
        operation.result = AcquireResult.ACQUIRED
        operation.handle.resume()

    def max(self) -> int:
        """The maximum number of resources the semaphore holds."""
        return self._max

    def value(self) -> int:
        """The number of resources currently available."""
        return self._counter

    def notify_waiters(self) -> None:
        """Stop the semaphore and wake every waiter with ``SEMAPHORE_STOPPED``."""
        with self._lock:
            self._stopped = True
            waiters = list(self._waiters)
            self._waiters.clear()
        for operation in waiters:
            operation.result = AcquireResult.SEMAPHORE_STOPPED
            operation.handle.resume()


class _AcquireOperation(Awaiter):
    def __init__(self, semaphore: Semaphore) -> None:
        self._semaphore = semaphore
        self.handle: Any = None
        self.result = AcquireResult.SEMAPHORE_STOPPED

    def await_suspend(self, handle: Any) -> bool:
        sem = self._semaphore
        with sem._lock:
            if sem._stopped:
                self.result = AcquireResult.SEMAPHORE_STOPPED
                return False
            if sem._counter > 0:
                sem._counter -= 1
                self.result = AcquireResult.ACQUIRED
                return False
            self.handle = handle
            sem._waiters.append(self)
            return True

    def await_resume(self) -> AcquireResult:
        return self.result
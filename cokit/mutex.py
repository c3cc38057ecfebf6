"""A coroutine mutex whose lock is awaited rather than blocked on."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from cokit.coroutine import Awaiter


class ScopedLock:
    """Holds a locked :class:`Mutex`; releases it once on unlock or context exit."""

    def __init__(self, mutex: Mutex) -> None:
        self._mutex: Mutex | None = mutex

    def unlock(self) -> None:
        """Release the mutex; later calls do nothing."""
        mutex, self._mutex = self._mutex, None
        if mutex is not None:
            mutex.unlock()

    def __enter__(self) -> ScopedLock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unlock()


class Mutex:
    """A mutual-exclusion lock for coroutines.

    ``await mutex.lock()`` yields a :class:`ScopedLock`.  On unlock the lock is
    handed straight to a waiter, which is resumed on the unlocking thread.
    Waiters queued since the last hand-off are served most recent first.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locked = False
        self._waiters: list[Any] = []
        self._internal: deque[Any] = deque()

    def lock(self) -> Awaiter:
        """Return an awaitable that acquires the mutex."""
        return _LockOperation(self)

    def try_lock(self) -> bool:
        """Acquire the mutex if it is free; return whether it was acquired."""
        with self._lock:
            if self._locked:
                return False
            self._locked = True
            return True

    def unlock(self) -> None:
        """Release the mutex, passing it to the next waiter if there is one."""
        with self._lock:
            if not self._locked:
                raise RuntimeError("mutex is not locked")
            if not self._internal:
                if not self._waiters:
                    self._locked = False
                    return
                self._internal.extend(reversed(self._waiters))
                self._waiters.clear()
            handle = self._internal.popleft()
        handle.resume()


class _LockOperation(Awaiter):
    def __init__(self, mutex: Mutex) -> None:
        self._mutex = mutex

    def await_ready(self) -> bool:
        return self._mutex.try_lock()

    def await_suspend(self, handle: Any) -> bool:
        mutex = self._mutex
        with mutex._lock:
            if not mutex._locked:
                mutex._locked = True
                return False
            mutex._waiters.append(handle)
            return True

    def await_resume(self) -> ScopedLock:
        return ScopedLock(self._mutex)
"""A reader/writer mutex for coroutines that does not starve writers."""

from __future__ import annotations

import threading
from collections import deque
from enum import Enum
from typing import Any

from cokit.coroutine import Awaiter


class _State(Enum):
    UNLOCKED = "unlocked"
    LOCKED_SHARED = "locked_shared"
    LOCKED_EXCLUSIVE = "locked_exclusive"


class SharedScopedLock:
    """Holds a :class:`SharedMutex` in shared or exclusive mode until unlocked."""

    def __init__(self, mutex: SharedMutex, exclusive: bool) -> None:
        self._mutex: SharedMutex | None = mutex
        self.exclusive = exclusive

    def unlock(self) -> None:
        """Release the mode it was acquired in; later calls do nothing."""
        mutex, self._mutex = self._mutex, None
        if mutex is None:
            return
        if self.exclusive:
            mutex.unlock()
        else:
            mutex.unlock_shared()

    def __enter__(self) -> SharedScopedLock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unlock()


class SharedMutex:
    """Many shared holders or one exclusive holder.

    Once an exclusive waiter is queued, new shared acquirers wait too.  A
    released exclusive lock passes straight to a waiting writer, resumed on the
    releasing thread; a run of shared waiters is resumed through ``executor``.
    """

    def __init__(self, executor: Any) -> None:
        if executor is None:
            raise ValueError("shared_mutex cannot have a None executor")
        self._executor = executor
        self._lock = threading.Lock()
        self._state = _State.UNLOCKED
        self._shared_users = 0
        self._exclusive_waiters = 0
        self._waiters: deque[_LockOperation] = deque()

    def lock(self) -> Awaiter:
        """Return an awaitable that acquires the mutex exclusively."""
        return _LockOperation(self, True)

    def lock_shared(self) -> Awaiter:
        """Return an awaitable that acquires the mutex in shared mode."""
        return _LockOperation(self, False)

    def try_lock(self) -> bool:
        """Acquire exclusively if the mutex is unlocked."""
        with self._lock:
            return self._try_lock_locked()

    def try_lock_shared(self) -> bool:
        """Acquire in shared mode if unlocked or shared with no writer waiting."""
        with self._lock:
            return self._try_lock_shared_locked()

    def unlock_shared(self) -> None:
        """Release one shared hold, waking waiters when the last one leaves."""
        with self._lock:
            if self._state is not _State.LOCKED_SHARED or self._shared_users == 0:
                raise RuntimeError("shared_mutex is not locked shared")
            self._shared_users -= 1
            if self._shared_users != 0:
                return
            if not self._waiters:
                self._state = _State.UNLOCKED
                return
            direct = self._wake_waiters_locked()
        if direct is not None:
            direct.resume()

    def unlock(self) -> None:
        """Release the exclusive hold, passing the lock on to waiters."""
        with self._lock:
            if self._state is not _State.LOCKED_EXCLUSIVE:
                raise RuntimeError("shared_mutex is not locked exclusively")
            if not self._waiters:
                self._state = _State.UNLOCKED
                return
            direct = self._wake_waiters_locked()
        if direct is not None:
            direct.resume()

    def _try_lock_locked(self) -> bool:
        if self._state is _State.UNLOCKED:
            self._state = _State.LOCKED_EXCLUSIVE
            return True
        return False

    def _try_lock_shared_locked(self) -> bool:
        if self._state is _State.UNLOCKED:
            self._state = _State.LOCKED_SHARED
            self._shared_users += 1
            return True
        if self._state is _State.LOCKED_SHARED and self._exclusive_waiters == 0:
            self._shared_users += 1
            return True
        return False

    def _wake_waiters_locked(self) -> Any:
        """Hand the lock to the head waiters; return a handle to resume inline."""
        head = self._waiters[0]
        if head.exclusive:
            self._waiters.popleft()
            self._state = _State.LOCKED_EXCLUSIVE
            self._exclusive_waiters -= 1
            return head.handle
        self._state = _State.LOCKED_SHARED
        while self._waiters and not self._waiters[0].exclusive:
            operation = self._waiters.popleft()
            self._shared_users += 1
            self._executor.resume(operation.handle)
        return None


class _LockOperation(Awaiter):
    def __init__(self, mutex: SharedMutex, exclusive: bool) -> None:
        self._mutex = mutex
        self.exclusive = exclusive
        self.handle: Any = None

    def await_ready(self) -> bool:
        if self.exclusive:
            return self._mutex.try_lock()
        return self._mutex.try_lock_shared()

    def await_suspend(self, handle: Any) -> bool:
        mutex = self._mutex
        with mutex._lock:
            acquired = mutex._try_lock_locked() if self.exclusive else mutex._try_lock_shared_locked()
            if acquired:
                return False
            self.handle = handle
            mutex._waiters.append(self)
            if self.exclusive:
                mutex._exclusive_waiters += 1
            return True

    def await_resume(self) -> SharedScopedLock:
        return SharedScopedLock(self._mutex, self.exclusive)
"""A FIFO thread pool that resumes suspended coroutines on worker threads."""

from __future__ import annotations

import os
import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from cokit.coroutine import Awaiter, Task


def _default_thread_count() -> int:
    return os.cpu_count() or 1


@dataclass
class ThreadPoolOptions:
    """Configuration for a :class:`ThreadPool`.

    The start and stop callbacks are called on each worker thread with the
    worker's index.
    """

    thread_count: int = 0
    on_thread_start: Callable[[int], None] | None = None
    on_thread_stop: Callable[[int], None] | None = None

    def __post_init__(self) -> None:
        if self.thread_count == 0:
            self.thread_count = _default_thread_count()
        if self.thread_count < 1:
            raise ValueError("thread_count must be at least 1")


class ThreadPool:
    """Executes scheduled coroutines in FIFO order on a set of worker threads.

    After :meth:`shutdown` no new work may be scheduled, but everything queued
    before the request still runs to completion.
    """

    def __init__(self, options: ThreadPoolOptions | None = None) -> None:
        self._options = options if options is not None else ThreadPoolOptions()
        self._cv = threading.Condition()
        self._queue: deque[Any] = deque()
        self._size = 0
        self._shutdown_requested = False
        self._threads = [
            threading.Thread(target=self._executor, args=(idx,), daemon=True, name=f"cokit-pool-{idx}")
            for idx in range(self._options.thread_count)
        ]
        for thread in self._threads:
            thread.start()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def thread_count(self) -> int:
        """The number of worker threads."""
        return len(self._threads)

    def schedule(self) -> Awaiter:
        """Return an awaitable that moves the awaiting coroutine onto the pool.

        Raises RuntimeError if the pool has been shut down.
        """
        if self._shutdown_requested:
            raise RuntimeError("thread pool is shut down, unable to schedule new tasks")
        return _ScheduleOperation(self)

    def run(self, func: Callable[..., Any], *args: Any) -> Task:
        """Return a task that calls ``func(*args)`` on the pool and yields its result."""

        async def _call() -> Any:
            await self.schedule()
            return func(*args)

        return Task(_call())

    def resume(self, handle: Any) -> None:
        """Queue a suspended handle to be resumed on a worker thread."""
        if handle is None:
            return
        with self._cv:
            self._size += 1
            self._queue.append(handle)
            self._cv.notify()

    def resume_many(self, handles: Iterable[Any]) -> None:
        """Queue every non-None handle to be resumed on the pool."""
        with self._cv:
            added = 0
            for handle in handles:
                if handle is not None:
                    self._queue.append(handle)
                    added += 1
            self._size += added
            if added:
                self._cv.notify_all()

    def yield_(self) -> Awaiter:
        """Reschedule the awaiting coroutine at the back of the queue."""
        return self.schedule()

    def shutdown(self) -> None:
        """Stop accepting work and wait for queued work to finish."""
        with self._cv:
            self._shutdown_requested = True
            self._cv.notify_all()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join()

    def size(self) -> int:
        """Queued plus currently executing tasks."""
        return self._size

    def empty(self) -> bool:
        """True when nothing is queued or executing."""
        return self.size() == 0

    def queue_size(self) -> int:
        """The number of tasks waiting in the queue."""
        return len(self._queue)

    def queue_empty(self) -> bool:
        """True when the queue holds no waiting tasks."""
        return self.queue_size() == 0

    def _executor(self, idx: int) -> None:
        if self._options.on_thread_start is not None:
            self._options.on_thread_start(idx)
        while True:
            with self._cv:
                while not self._queue and not self._shutdown_requested:
                    self._cv.wait()
                if not self._queue:
                    break
                handle = self._queue.popleft()
            try:
                handle.resume()
            finally:
                with self._cv:
                    self._size -= 1
        if self._options.on_thread_stop is not None:
            self._options.on_thread_stop(idx)


class _ScheduleOperation(Awaiter):
    def __init__(self, pool: ThreadPool) -> None:
        self._pool = pool

    def await_suspend(self, handle: Any) -> None:
        self._pool.resume(handle)
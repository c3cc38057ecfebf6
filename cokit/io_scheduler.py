"""An I/O scheduler that drives coroutines from a selector-based event loop.

Coroutines await :meth:`IoScheduler.schedule`, timed waits, or readiness of a
file descriptor.  An event loop runs on a dedicated thread, or on whichever
thread calls :meth:`IoScheduler.process_events`.  Each woken coroutine is then
resumed either on that event loop thread or on a :class:`ThreadPool`.
"""

from __future__ import annotations

import os
import selectors
import socket
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cokit.coroutine import Awaiter, Task
from cokit.poll import PollInfo, PollOp, PollStatus, TimerQueue, TimerToken
from cokit.thread_pool import ThreadPool, ThreadPoolOptions

_WAKE = object()
_DEFAULT_TIMEOUT = 1.0
_DRAIN_TIMEOUT = 0.01


class ThreadStrategy(Enum):
    """Who runs the event loop."""

    SPAWN = "spawn"
    """A dedicated background thread runs the event loop."""
    MANUAL = "manual"
    """The user drives the loop by calling ``process_events()``."""


class ExecutionStrategy(Enum):
    """Where woken coroutines are resumed."""

    PROCESS_TASKS_ON_THREAD_POOL = "process_tasks_on_thread_pool"
    """Resume on a thread pool; better latency for long, CPU-heavy tasks."""
    PROCESS_TASKS_INLINE = "process_tasks_inline"
    """Resume on the event loop thread; better throughput for short tasks."""


def _default_pool_options() -> ThreadPoolOptions:
    count = os.cpu_count() or 1
    return ThreadPoolOptions(thread_count=count - 1 if count > 1 else 1)


@dataclass
class IoSchedulerOptions:
    """Configuration for an :class:`IoScheduler`."""

    thread_strategy: ThreadStrategy = ThreadStrategy.SPAWN
    on_io_thread_start: Callable[[], None] | None = None
    on_io_thread_stop: Callable[[], None] | None = None
    pool: ThreadPoolOptions = field(default_factory=_default_pool_options)
    execution_strategy: ExecutionStrategy = ExecutionStrategy.PROCESS_TASKS_ON_THREAD_POOL


class IoScheduler:
    """Schedules coroutines, timed waits and file descriptor polls.

    Times are in seconds; absolute time points use :func:`time.monotonic`.
    """

    def __init__(self, options: IoSchedulerOptions | None = None) -> None:
        self._options = options if options is not None else IoSchedulerOptions()
        self._inline = self._options.execution_strategy is ExecutionStrategy.PROCESS_TASKS_INLINE
        self._pool: ThreadPool | None = None if self._inline else ThreadPool(self._options.pool)

        self._selector = selectors.DefaultSelector()
        self._wake_recv, self._wake_send = socket.socketpair()
        self._wake_recv.setblocking(False)
        self._wake_send.setblocking(False)
        self._selector.register(self._wake_recv, selectors.EVENT_READ, _WAKE)

        self._timers = TimerQueue()
        self._size_lock = threading.Lock()
        self._size = 0

        self._scheduled_lock = threading.Lock()
        self._scheduled: list[Any] = []
        self._schedule_triggered = False

        self._owned_lock = threading.Lock()
        self._owned: list[Task] = []

        self._shutdown_lock = threading.Lock()
        self._shutdown_requested = False
        self._processing = threading.Lock()
        self._closed = False

        self._io_thread: threading.Thread | None = None
        if self._options.thread_strategy is ThreadStrategy.SPAWN:
            self._io_thread = threading.Thread(
                target=self._process_events_dedicated_thread, daemon=True, name="cokit-io"
            )
            self._io_thread.start()

    def __enter__(self) -> IoScheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
        self._close()

    def process_events(self, timeout: float | None = 0.0) -> int:
        """Process ready events, waiting up to ``timeout`` seconds for some.

        A timeout of zero only handles what is ready now; a negative timeout or
        None blocks until something happens.  Returns :meth:`size`.
        """
        if timeout is not None and timeout < 0:
            timeout = None
        if self._processing.acquire(blocking=False):
            try:
                self._process_events_execute(timeout)
            finally:
                self._processing.release()
        return self.size()

    def schedule(self) -> Awaiter:
        """Return an awaitable that moves the awaiting coroutine onto this scheduler."""
        return _ScheduleOperation(self)

    def spawn(self, coro: Any) -> Task:
        """Hand ownership of a coroutine to the scheduler and start it there."""
        self.garbage_collect()
        task = Task(self._run_owned(coro))
        with self._owned_lock:
            self._owned.append(task)
        task.resume()
        return task

    async def schedule_after(self, amount: float) -> None:
        """Resume after ``amount`` seconds; zero or less behaves like :meth:`schedule`."""
        await self.yield_for(amount)

    async def schedule_at(self, time: float) -> None:
        """Resume at a monotonic time point; a past point behaves like :meth:`schedule`."""
        await self.yield_until(time)

    def yield_(self) -> Awaiter:
        """Put the awaiting coroutine at the back of the queue of waiting work."""
        return _ScheduleOperation(self)

    async def yield_for(self, amount: float) -> None:
        """Suspend for ``amount`` seconds; zero or less behaves like :meth:`yield_`."""
        if amount <= 0:
            await self.schedule()
            return
        await self._wait_until(time.monotonic() + amount)

    async def yield_until(self, time: float) -> None:
        """Suspend until a monotonic time point; a past point behaves like :meth:`yield_`."""
        if time <= _now():
            await self.schedule()
            return
        await self._wait_until(time)

    async def poll(self, fd: Any, op: PollOp, timeout: float = 0.0) -> PollStatus:
        """Wait until ``fd`` is ready for ``op``.

        ``fd`` is a descriptor number or an object with ``fileno()``.  A timeout
        of zero waits indefinitely; otherwise ``PollStatus.TIMEOUT`` is returned
        once it elapses.
        """
        fileno = fd if isinstance(fd, int) else fd.fileno()
        info = PollInfo(fileno)
        self._adjust_size(1)
        try:
            if timeout > 0:
                info.timer_token = self._add_timer(time.monotonic() + timeout, info)
            try:
                self._selector.register(fileno, op, info)
            except (KeyError, ValueError):
                if info.timer_token is not None:
                    self._remove_timer(info.timer_token)
                raise
            self._wake()
            return await info
        finally:
            self._adjust_size(-1)

    def resume(self, handle: Any) -> None:
        """Resume a suspended handle on this scheduler."""
        if self._inline:
            self._adjust_size(1)
            self._enqueue(handle)
        else:
            self._pool.resume(handle)

    def size(self) -> int:
        """Tasks waiting in the queue or on events plus those executing."""
        if self._inline:
            return self._size
        return self._size + self._pool.size()

    def empty(self) -> bool:
        """True when no task is queued, waiting or executing."""
        return self.size() == 0

    def shutdown(self) -> None:
        """Stop the scheduler once all pending and executing tasks complete.

        Blocks until the event loop thread and the thread pool have finished.
        """
        with self._shutdown_lock:
            if self._shutdown_requested:
                return
            self._shutdown_requested = True
        self._wake()
        if self._io_thread is not None and self._io_thread is not threading.current_thread():
            self._io_thread.join()
        if self._pool is not None:
            self._pool.shutdown()

    def garbage_collect(self) -> None:
        """Drop owned tasks that have completed."""
        with self._owned_lock:
            self._owned = [task for task in self._owned if not task.is_ready()]

    async def _run_owned(self, coro: Any) -> Any:
        await self.schedule()
        return await coro

    async def _wait_until(self, deadline: float) -> None:
        self._adjust_size(1)
        try:
            info = PollInfo()
            self._add_timer(deadline, info)
            await info
        finally:
            self._adjust_size(-1)

    def _adjust_size(self, delta: int) -> None:
        with self._size_lock:
            self._size += delta

    def _enqueue(self, handle: Any) -> None:
        with self._scheduled_lock:
            self._scheduled.append(handle)
            trigger = not self._schedule_triggered
            self._schedule_triggered = True
        if trigger:
            self._wake()

    def _wake(self) -> None:
        try:
            self._wake_send.send(b"\x01")
        except (BlockingIOError, OSError):
            pass

    def _drain_wake(self) -> None:
        while True:
            try:
                if not self._wake_recv.recv(4096):
                    return
            except (BlockingIOError, OSError):
                return

    def _add_timer(self, deadline: float, info: PollInfo) -> TimerToken:
        token = self._timers.add(deadline, info)
        if self._timers.next_deadline() == deadline:
            self._wake()
        return token

    def _remove_timer(self, token: TimerToken) -> None:
        self._timers.remove(token)

    def _process_events_dedicated_thread(self) -> None:
        if self._options.on_io_thread_start is not None:
            self._options.on_io_thread_start()
        with self._processing:
            while not self._shutdown_requested or self.size() > 0:
                timeout = _DRAIN_TIMEOUT if self._shutdown_requested else _DEFAULT_TIMEOUT
                self._process_events_execute(timeout)
        if self._options.on_io_thread_stop is not None:
            self._options.on_io_thread_stop()

    def _process_events_execute(self, timeout: float | None) -> None:
        deadline = self._timers.next_deadline()
        if deadline is not None:
            wait = max(0.0, deadline - time.monotonic())
            timeout = wait if timeout is None else min(timeout, wait)

        to_resume: list[Any] = []
        for key, mask in self._selector.select(timeout):
            if key.data is _WAKE:
                self._drain_wake()
                self._process_scheduled_execute_inline()
            else:
                self._process_event_execute(key.data, _event_to_status(mask), to_resume)
        self._process_timeout_execute(to_resume)

        # Resume only after the whole batch is accounted for, so an event and
        # its timeout arriving together cannot both wake the same coroutine.
        if to_resume:
            if self._inline:
                for handle in to_resume:
                    handle.resume()
            else:
                self._pool.resume_many(to_resume)

    def _process_scheduled_execute_inline(self) -> None:
        with self._scheduled_lock:
            tasks, self._scheduled = self._scheduled, []
            self._schedule_triggered = False
        for handle in tasks:
            handle.resume()
        if tasks:
            self._adjust_size(-len(tasks))

    def _unregister(self, fd: int) -> None:
        if fd == -1:
            return
        try:
            self._selector.unregister(fd)
        except (KeyError, ValueError):
            pass

    def _process_event_execute(self, info: PollInfo, status: PollStatus, to_resume: list[Any]) -> None:
        if info.processed:
            return
        info.processed = True
        self._unregister(info.fd)
        if info.timer_token is not None:
            self._remove_timer(info.timer_token)
        info.status = status
        info.suspended.wait()
        to_resume.append(info.handle)

    def _process_timeout_execute(self, to_resume: list[Any]) -> None:
        for info in self._timers.pop_expired(time.monotonic()):
            if info.processed:
                continue
            info.processed = True
            self._unregister(info.fd)
            info.status = PollStatus.TIMEOUT
            info.suspended.wait()
            to_resume.append(info.handle)

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._selector.close()
        self._wake_recv.close()
        self._wake_send.close()


def _now() -> float:
    return time.monotonic()


def _event_to_status(mask: int) -> PollStatus:
    if mask & (selectors.EVENT_READ | selectors.EVENT_WRITE):
        return PollStatus.EVENT
    raise RuntimeError("invalid poll state")


class _ScheduleOperation(Awaiter):
    def __init__(self, scheduler: IoScheduler) -> None:
        self._scheduler = scheduler

    def await_suspend(self, handle: Any) -> None:
        self._scheduler.resume(handle)
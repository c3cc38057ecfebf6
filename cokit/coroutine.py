"""Core coroutine machinery: awaiters, lazily started tasks, sync_wait and when_all.

Coroutines are ordinary ``async def`` functions.  They are driven by :class:`Task`
rather than by an event loop: every suspension point yields an :class:`Awaiter`,
whose ``await_suspend`` receives the task as a resumable handle.  Whoever holds
that handle decides when and on which thread the coroutine continues.
"""

from __future__ import annotations

import abc
import inspect
import threading
from collections.abc import Iterable
from typing import Any, Generator


class Awaiter(abc.ABC):
    """An awaitable with explicit ready / suspend / resume steps.

    ``await_suspend`` is called once the awaiting coroutine is suspended.  It
    receives a handle with a ``resume()`` method.  Returning ``False`` continues
    the coroutine immediately; any other value leaves it suspended until the
    handle is resumed.
    """

    def await_ready(self) -> bool:
        """Return True to skip suspension entirely."""
        return False

    @abc.abstractmethod
    def await_suspend(self, handle: Any) -> bool | None:
        """Take ownership of the suspended coroutine's handle."""

    def await_resume(self) -> Any:
        """Produce the value of the ``await`` expression."""
        return None

    def __await__(self) -> Generator[Awaiter, None, Any]:
        if not self.await_ready():
            yield self
        return self.await_resume()


class Task:
    """A lazily started coroutine that can be resumed, awaited or waited on."""

    def __init__(self, coro: Any) -> None:
        if not inspect.iscoroutine(coro):
            raise TypeError(f"Task requires a coroutine object, got {type(coro).__name__}")
        self._coro = coro
        self._lock = threading.Lock()
        self._started = False
        self._done = False
        self._value: Any = None
        self._exception: BaseException | None = None
        self._continuation: Any = None
        self._starter_active = False

    def __repr__(self) -> str:
        state = "done" if self._done else ("running" if self._started else "pending")
        return f"<Task {self._coro.__qualname__} {state}>"

    def resume(self) -> None:
        """Run the coroutine until its next real suspension or completion."""
        if self._done:
            raise RuntimeError("task has already completed")
        self._started = True
        while True:
            try:
                awaiter = self._coro.send(None)
            except StopIteration as stop:
                self._finish(stop.value, None)
                return
            except Exception as exc:  # noqa: BLE001 - stored and re-raised by result()
                self._finish(None, exc)
                return
            suspend = getattr(awaiter, "await_suspend", None)
            if suspend is None:
                self._coro.close()
                self._finish(
                    None,
                    TypeError(f"coroutine yielded an unsupported object: {awaiter!r}"),
                )
                return
            if suspend(self) is False:
                continue
            return

    def is_ready(self) -> bool:
        """True once the coroutine has returned or raised."""
        return self._done

    def result(self) -> Any:
        """Return the coroutine's value, or raise the exception it raised."""
        if not self._done:
            raise RuntimeError("task has not completed")
        if self._exception is not None:
            raise self._exception
        return self._value

    def __await__(self) -> Generator[Awaiter, None, Any]:
        return _TaskAwaiter(self).__await__()

    def _finish(self, value: Any, exc: BaseException | None) -> None:
        with self._lock:
            self._value = value
            self._exception = exc
            self._done = True
            if self._starter_active:
                return
            continuation = self._continuation
        if continuation is not None:
            continuation.resume()

    def _start_with(self, continuation: Any) -> bool:
        """Register a continuation, starting the task if needed.

        Returns True if the caller must stay suspended (the continuation will be
        resumed later) and False if the task already completed.
        """
        with self._lock:
            if self._done:
                return False
            self._continuation = continuation
            if self._started:
                return True
            self._starter_active = True
        self.resume()
        with self._lock:
            self._starter_active = False
            return not self._done


class _TaskAwaiter(Awaiter):
    def __init__(self, task: Task) -> None:
        self._task = task

    def await_ready(self) -> bool:
        return self._task.is_ready()

    def await_suspend(self, handle: Any) -> bool:
        return self._task._start_with(handle)

    def await_resume(self) -> Any:
        return self._task.result()


class _Signal:
    """A continuation that wakes a blocked thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def resume(self) -> None:
        self._event.set()

    def wait(self) -> None:
        self._event.wait()


def _is_awaitable(obj: Any) -> bool:
    return isinstance(obj, Task) or inspect.iscoroutine(obj) or hasattr(obj, "__await__")


async def _await_one(awaitable: Any) -> Any:
    return await awaitable


def _as_task(awaitable: Any) -> Task:
    if isinstance(awaitable, Task):
        return awaitable
    if inspect.iscoroutine(awaitable):
        return Task(awaitable)
    if hasattr(awaitable, "__await__"):
        return Task(_await_one(awaitable))
    raise TypeError(f"object is not awaitable: {awaitable!r}")


def sync_wait(awaitable: Any) -> Any:
    """Start ``awaitable`` and block the calling thread until it completes."""
    task = _as_task(awaitable)
    signal = _Signal()
    if task._start_with(signal):
        signal.wait()
    return task.result()


class _WhenAllAwaiter(Awaiter):
    def __init__(self, tasks: list[Task]) -> None:
        self._tasks = tasks
        self._lock = threading.Lock()
        self._remaining = len(tasks) + 1
        self._handle: Any = None

    def await_ready(self) -> bool:
        return not self._tasks

    def _count_down(self) -> bool:
        with self._lock:
            self._remaining -= 1
            return self._remaining == 0

    def resume(self) -> None:
        if self._count_down():
            self._handle.resume()

    def await_suspend(self, handle: Any) -> bool:
        self._handle = handle
        for task in self._tasks:
            if not task._start_with(self):
                self._count_down()
        return not self._count_down()


async def _gather(tasks: list[Task], as_list: bool) -> Any:
    await _WhenAllAwaiter(tasks)
    results = [task.result() for task in tasks]
    return results if as_list else tuple(results)


def when_all(*args: Any) -> Task:
    """Return a task that runs every awaitable and completes when all have.

    Given several awaitables the result is a tuple of their values; given a
    single iterable of awaitables the result is a list.  If any of them raised,
    the first such exception (in argument order) is raised.
    """
    if len(args) == 1 and not _is_awaitable(args[0]) and isinstance(args[0], Iterable):
        return Task(_gather([_as_task(a) for a in args[0]], True))
    return Task(_gather([_as_task(a) for a in args], False))
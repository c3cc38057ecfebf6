"""Poll operations, their outcomes and the timer bookkeeping behind timed waits."""

from __future__ import annotations

import heapq
import itertools
import selectors
import threading
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any

from cokit.coroutine import Awaiter


class PollOp(IntFlag):
    """The readiness a poll waits for."""

    READ = selectors.EVENT_READ
    WRITE = selectors.EVENT_WRITE
    READ_WRITE = selectors.EVENT_READ | selectors.EVENT_WRITE


class PollStatus(Enum):
    """How a poll operation finished."""

    EVENT = "event"
    TIMEOUT = "timeout"
    ERROR = "error"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


class PollInfo(Awaiter):
    """Everything about one poll: its fd, its paired timeout and its waiter.

    The event and its timeout may both fire before the waiter runs again, so
    whichever is handled first sets ``processed`` and the other is ignored.
    Awaiting a ``PollInfo`` always suspends and yields its ``status``.
    """

    def __init__(self, fd: int = -1) -> None:
        self.fd = fd
        self.timer_token: TimerToken | None = None
        self.handle: Any = None
        self.status = PollStatus.ERROR
        self.processed = False
        self.suspended = threading.Event()

    def __repr__(self) -> str:
        return f"<PollInfo fd={self.fd} status={self.status} processed={self.processed}>"

    def await_ready(self) -> bool:
        return False

    def await_suspend(self, handle: Any) -> None:
        self.handle = handle
        self.suspended.set()

    def await_resume(self) -> PollStatus:
        return self.status


@dataclass(order=True)
class TimerToken:
    """A scheduled timeout; returned by :meth:`TimerQueue.add` to cancel it later."""

    deadline: float
    sequence: int
    info: PollInfo = field(compare=False)
    active: bool = field(default=True, compare=False)


class TimerQueue:
    """Deadlines mapped to poll infos, ordered by deadline then insertion.

    All methods are safe to call from several threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._heap: list[TimerToken] = []
        self._counter = itertools.count()
        self._active = 0

    def __len__(self) -> int:
        return self._active

    def add(self, deadline: float, info: PollInfo) -> TimerToken:
        """Schedule ``info`` to time out at ``deadline``; return its token."""
        with self._lock:
            token = TimerToken(deadline, next(self._counter), info)
            heapq.heappush(self._heap, token)
            self._active += 1
            return token

    def remove(self, token: TimerToken) -> bool:
        """Cancel a scheduled timeout; return False if it had already gone."""
        with self._lock:
            if not token.active:
                return False
            token.active = False
            self._active -= 1
            self._discard_inactive()
            return True

    def pop_expired(self, now: float) -> list[PollInfo]:
        """Remove and return every poll info whose deadline is at or before ``now``."""
        expired: list[PollInfo] = []
        with self._lock:
            self._discard_inactive()
            while self._heap and self._heap[0].deadline <= now:
                token = heapq.heappop(self._heap)
                token.active = False
                self._active -= 1
                expired.append(token.info)
                self._discard_inactive()
        return expired

    def next_deadline(self) -> float | None:
        """The earliest pending deadline, or None if nothing is scheduled."""
        with self._lock:
            self._discard_inactive()
            return self._heap[0].deadline if self._heap else None

    def empty(self) -> bool:
        """True when no timeout is scheduled."""
        return self._active == 0

    def _discard_inactive(self) -> None:
        while self._heap and not self._heap[0].active:
            heapq.heappop(self._heap)
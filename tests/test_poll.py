import selectors

import pytest

from cokit.coroutine import Task
from cokit.poll import PollInfo, PollOp, PollStatus, TimerQueue


def test_poll_op_values_follow_selectors():
    assert PollOp(selectors.EVENT_READ) is PollOp.READ
    assert PollOp(selectors.EVENT_WRITE) is PollOp.WRITE
    combined = PollOp(selectors.EVENT_READ | selectors.EVENT_WRITE)
    assert combined == PollOp.READ | PollOp.WRITE
    assert combined == PollOp.READ_WRITE


@pytest.mark.parametrize(
    "status, text",
    [(PollStatus.TIMEOUT, "timeout"), (PollStatus.EVENT, "event")],
)
def test_poll_status_str(status, text):
    info = PollInfo(fd=5)

    async def waiter():
        return await info

    task = Task(waiter())
    task.resume()
    info.status = status
    info.handle.resume()
    assert str(task.result()) == text


def test_poll_info_defaults():
    info = PollInfo()
    assert info.fd == -1
    assert info.status is PollStatus.ERROR
    assert info.processed is False
    assert info.timer_token is None
    assert info.handle is None


def test_poll_info_suspends_and_returns_status():
    info = PollInfo(fd=7)

    async def waiter():
        return await info

    task = Task(waiter())
    task.resume()
    assert not task.is_ready()
    assert info.handle is task
    assert info.suspended.is_set()

    info.status = PollStatus.CLOSED
    info.handle.resume()
    assert task.is_ready()
    assert task.result() is PollStatus.CLOSED


def test_timer_queue_empty_initially():
    queue = TimerQueue()
    assert queue.empty()
    assert queue.next_deadline() is None
    assert queue.pop_expired(1e9) == []
    assert len(queue) == 0


def test_pop_expired_in_deadline_order():
    queue = TimerQueue()
    late, early, middle = PollInfo(), PollInfo(), PollInfo()
    queue.add(30.0, late)
    queue.add(10.0, early)
    queue.add(20.0, middle)
    assert queue.next_deadline() == 10.0
    assert queue.pop_expired(25.0) == [early, middle]
    assert queue.next_deadline() == 30.0
    assert len(queue) == 1
    assert queue.pop_expired(30.0) == [late]
    assert queue.empty()


def test_equal_deadlines_keep_insertion_order():
    queue = TimerQueue()
    infos = [PollInfo(fd=i) for i in range(5)]
    for info in infos:
        queue.add(5.0, info)
    assert queue.pop_expired(5.0) == infos


def test_nothing_expires_before_deadline():
    queue = TimerQueue()
    info = PollInfo()
    queue.add(10.0, info)
    assert queue.pop_expired(9.999) == []
    assert not queue.empty()


def test_remove_cancels_timer():
    queue = TimerQueue()
    first, second = PollInfo(), PollInfo()
    token_first = queue.add(1.0, first)
    queue.add(2.0, second)
    assert queue.remove(token_first) is True
    assert queue.next_deadline() == 2.0
    assert queue.pop_expired(100.0) == [second]
    assert queue.empty()


def test_remove_twice_or_after_expiry_returns_false():
    queue = TimerQueue()
    info = PollInfo()
    token = queue.add(1.0, info)
    assert queue.remove(token) is True
    assert queue.remove(token) is False

    other = PollInfo()
    token_other = queue.add(1.0, other)
    assert queue.pop_expired(1.0) == [other]
    assert queue.remove(token_other) is False
    assert queue.empty()


def test_token_carries_deadline_and_info():
    queue = TimerQueue()
    info = PollInfo(fd=3)
    token = queue.add(4.5, info)
    assert token.deadline == 4.5
    assert token.info is info
    assert token.active


@pytest.mark.parametrize("count", [1, 10, 100])
def test_len_tracks_active_timers(count):
    queue = TimerQueue()
    tokens = [queue.add(float(i), PollInfo()) for i in range(count)]
    assert len(queue) == count
    for token in tokens[::2]:
        queue.remove(token)
    assert len(queue) == count - len(tokens[::2])
    expired = queue.pop_expired(float(count))
    assert len(expired) == count - len(tokens[::2])
    assert queue.empty()
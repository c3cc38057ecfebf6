import pytest

from cokit.coroutine import Task, sync_wait, when_all
from cokit.shared_mutex import SharedMutex
from cokit.thread_pool import ThreadPool, ThreadPoolOptions


class CollectingExecutor:
    def __init__(self):
        self.handles = []

    def resume(self, handle):
        self.handles.append(handle)

    def run_all(self):
        handles, self.handles = self.handles, []
        for handle in handles:
            handle.resume()
        return len(handles)


@pytest.fixture
def pool():
    tp = ThreadPool(ThreadPoolOptions(thread_count=1))
    yield tp
    tp.shutdown()


def test_single_waiter_not_locked_exclusive(pool):
    output = []
    m = SharedMutex(pool)
    checks = {}

    async def emplace():
        with await m.lock():
            checks["try_lock"] = m.try_lock()
            checks["try_lock_shared"] = m.try_lock_shared()
            output.append(1)
        checks["after"] = m.try_lock()
        m.unlock()

    sync_wait(emplace())
    assert checks == {"try_lock": False, "try_lock_shared": False, "after": True}
    assert m.try_lock()
    m.unlock()
    assert output == [1]


def test_single_waiter_not_locked_shared(pool):
    values = [1, 2, 3]
    m = SharedMutex(pool)
    checks = {}

    async def emplace():
        with await m.lock_shared():
            checks["try_lock"] = m.try_lock()
            checks["try_lock_shared"] = m.try_lock_shared()
            checks["sum"] = sum(values)
            m.unlock_shared()
        checks["after"] = m.try_lock()
        m.unlock()

    sync_wait(emplace())
    assert checks == {"try_lock": False, "try_lock_shared": True, "sum": 6, "after": True}
    assert m.try_lock_shared()
    m.unlock_shared()
    assert m.try_lock()
    m.unlock()


def test_none_executor_rejected():
    with pytest.raises(ValueError):
        SharedMutex(None)


def test_exclusive_waiter_blocks_new_shared():
    executor = CollectingExecutor()
    m = SharedMutex(executor)
    assert m.try_lock_shared()

    async def writer():
        lk = await m.lock()
        lk.unlock()
        return "wrote"

    task = Task(writer())
    task.resume()
    assert not task.is_ready()
    assert not m.try_lock_shared()
    m.unlock_shared()
    assert task.is_ready()
    assert task.result() == "wrote"
    assert m.try_lock_shared()
    m.unlock_shared()


def test_shared_waiters_resumed_through_executor():
    executor = CollectingExecutor()
    m = SharedMutex(executor)
    assert m.try_lock()

    async def reader(n):
        with await m.lock_shared():
            return n

    async def writer():
        with await m.lock():
            return "w"

    readers = [Task(reader(i)) for i in range(3)]
    w = Task(writer())
    late_reader = Task(reader(9))
    for task in [*readers, w, late_reader]:
        task.resume()
    assert not any(t.is_ready() for t in [*readers, w, late_reader])

    m.unlock()
    assert len(executor.handles) == 3
    assert executor.run_all() == 3
    assert [t.result() for t in readers] == [0, 1, 2]
    # the last reader released, handing the lock to the writer inline
    assert w.result() == "w"
    assert executor.run_all() == 1
    assert late_reader.result() == 9
    assert m.try_lock()
    m.unlock()


def test_unlock_when_not_locked_raises():
    m = SharedMutex(CollectingExecutor())
    with pytest.raises(RuntimeError):
        m.unlock()
    with pytest.raises(RuntimeError):
        m.unlock_shared()


def test_scoped_lock_unlocks_once():
    m = SharedMutex(CollectingExecutor())

    async def f():
        lk = await m.lock()
        lk.unlock()
        lk.unlock()
        return m.try_lock()

    assert sync_wait(f()) is True
    m.unlock()


def test_many_shared_and_exclusive_on_pool():
    tp = ThreadPool(ThreadPoolOptions(thread_count=8))
    m = SharedMutex(tp)
    state = {"value": 0}

    async def reader():
        await tp.schedule()
        with await m.lock_shared():
            return state["value"]

    async def writer():
        await tp.schedule()
        with await m.lock():
            current = state["value"]
            state["value"] = current + 1
        return None

    tasks = [writer() if i % 3 == 0 else reader() for i in range(60)]
    results = sync_wait(when_all(tasks))
    tp.shutdown()
    assert state["value"] == 20
    assert all(r is None or 0 <= r <= 20 for r in results)
    assert m.try_lock()
    m.unlock()
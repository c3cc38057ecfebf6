import threading
import time

import pytest

from cokit.coroutine import Task, sync_wait, when_all
from cokit.event import Event
from cokit.thread_pool import ThreadPool, ThreadPoolOptions


@pytest.fixture
def pool():
    tp = ThreadPool(ThreadPoolOptions(thread_count=1))
    yield tp
    tp.shutdown()


def test_one_worker_one_task(pool):
    async def func():
        await pool.schedule()
        return 42

    assert sync_wait(func()) == 42


def test_one_worker_many_tasks_tuple(pool):
    async def f():
        await pool.schedule()
        return 50

    results = sync_wait(when_all(f(), f(), f(), f(), f()))
    assert len(results) == 5
    assert isinstance(results, tuple)
    assert sum(results) == 250


def test_one_worker_many_tasks_vector(pool):
    async def f():
        await pool.schedule()
        return 50

    results = sync_wait(when_all([f(), f(), f()]))
    assert len(results) == 3
    assert sum(results) == 150


def test_n_workers_100k_tasks():
    iterations = 100_000
    tp = ThreadPool()

    async def make_task():
        await tp.schedule()
        return 1

    results = sync_wait(when_all([make_task() for _ in range(iterations)]))
    tp.shutdown()
    assert len(results) == iterations
    assert sum(results) == iterations


def test_task_spawns_another_task(pool):
    async def f2():
        await pool.schedule()
        return 5

    async def f1():
        await pool.schedule()
        return 1 + await f2()

    assert sync_wait(f1()) == 6


def test_shutdown_rejects_schedule(pool):
    async def f():
        try:
            await pool.schedule()
        except RuntimeError:
            return True
        return False

    pool.shutdown()
    assert sync_wait(f()) is True


def test_schedule_functor(pool):
    result = sync_wait(pool.run(lambda: 1))
    assert result == 1

    pool.shutdown()
    with pytest.raises(RuntimeError):
        sync_wait(pool.run(lambda: 1))


def test_schedule_functor_returning_none(pool):
    counter = [0]

    def f(c):
        c[0] += 1

    assert sync_wait(pool.run(f, counter)) is None
    assert counter[0] == 1

    pool.shutdown()
    with pytest.raises(RuntimeError):
        sync_wait(pool.run(f, counter))
    assert counter[0] == 1


def test_event_jump_threads():
    tp1 = ThreadPool(ThreadPoolOptions(thread_count=1))
    tp2 = ThreadPool(ThreadPoolOptions(thread_count=1))
    e = Event()

    async def tp1_task():
        await tp1.schedule()
        before = threading.get_ident()
        await e
        after = threading.get_ident()
        return before, after

    async def tp2_task():
        await tp2.schedule()
        time.sleep(0.01)
        e.set()
        return threading.get_ident()

    (before, after), setter = sync_wait(when_all(tp1_task(), tp2_task()))
    tp1.shutdown()
    tp2.shutdown()
    assert before != after
    assert after == setter


def test_thread_callbacks_and_count():
    started, stopped = [], []
    lock = threading.Lock()

    def on_start(idx):
        with lock:
            started.append(idx)

    def on_stop(idx):
        with lock:
            stopped.append(idx)

    tp = ThreadPool(ThreadPoolOptions(thread_count=3, on_thread_start=on_start, on_thread_stop=on_stop))
    assert tp.thread_count() == 3
    tp.shutdown()
    assert sorted(started) == [0, 1, 2]
    assert sorted(stopped) == [0, 1, 2]


def test_invalid_thread_count():
    with pytest.raises(ValueError):
        ThreadPoolOptions(thread_count=-1)


def test_size_and_queue_size_track_work():
    tp = ThreadPool(ThreadPoolOptions(thread_count=1))
    gate = threading.Event()
    entered = threading.Event()

    async def blocker():
        await tp.schedule()
        entered.set()
        gate.wait()
        return "blocked"

    async def quick():
        await tp.schedule()
        return "quick"

    t1 = Task(blocker())
    t1.resume()
    entered.wait()
    t2 = Task(quick())
    t2.resume()
    assert tp.size() == 2
    assert tp.queue_size() == 1
    assert not tp.empty()
    gate.set()
    tp.shutdown()
    assert tp.empty()
    assert tp.queue_empty()
    assert t1.result() == "blocked"
    assert t2.result() == "quick"


def test_resume_many_skips_none():
    tp = ThreadPool(ThreadPoolOptions(thread_count=2))
    done = []
    lock = threading.Lock()

    class Handle:
        def __init__(self, n):
            self.n = n

        def resume(self):
            with lock:
                done.append(self.n)

    tp.resume_many([Handle(1), None, Handle(2), None, Handle(3)])
    tp.shutdown()
    assert sorted(done) == [1, 2, 3]
    assert tp.size() == 0


def test_yield_runs_again(pool):
    async def f():
        await pool.schedule()
        total = 0
        for _ in range(3):
            await pool.yield_()
            total += 1
        return total

    assert sync_wait(f()) == 3
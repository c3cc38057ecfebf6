# cokit

Building blocks for coroutine-based programs. Coroutines are plain `async def`
functions; they are driven by `cokit.coroutine.Task` and the schedulers below,
not by an `asyncio` event loop.

## What is in the box

| Module                | Provides                                                                   |
|-----------------------|----------------------------------------------------------------------------|
| `cokit.coroutine`     | `Task`, `Awaiter`, `sync_wait`, `when_all`                                 |
| `cokit.event`         | `Event`, `ResumeOrderPolicy`                                               |
| `cokit.mutex`         | `Mutex` and the `ScopedLock` it hands out                                  |
| `cokit.semaphore`     | `Semaphore`, `AcquireResult`                                               |
| `cokit.thread_pool`   | `ThreadPool`, `ThreadPoolOptions`                                          |
| `cokit.shared_mutex`  | `SharedMutex` (readers/writer lock), `SharedScopedLock`                    |
| `cokit.poll`          | `PollOp`, `PollStatus`, `PollInfo`, `TimerQueue`                           |
| `cokit.io_scheduler`  | `IoScheduler`, `IoSchedulerOptions`, `ThreadStrategy`, `ExecutionStrategy` |
| `cokit.udp_peer`      | `UdpPeer`, `PeerInfo`, `UdpNotBoundError`                                  |

## Installing

```
pip install .
```

There are no runtime dependencies beyond the standard library.

## Tasks

- `Task(coro)` wraps a coroutine object without starting it. `resume()` runs it
  to its next suspension, `is_ready()` tells whether it has finished, and
  `result()` returns its value or raises the exception it raised.
- `sync_wait(awaitable)` starts an awaitable and blocks the calling thread until
  it completes, returning its result.
- `when_all(a, b, c)` returns a task whose result is a tuple of the values;
  `when_all(iterable)` gives a list. If any of them raised, the first exception
  in argument order is raised.
- `Awaiter` is the base for custom awaitables: `await_ready()`,
  `await_suspend(handle)` (return `False` to continue at once) and
  `await_resume()`.

```python
from cokit.coroutine import sync_wait, when_all
from cokit.thread_pool import ThreadPool, ThreadPoolOptions

with ThreadPool(ThreadPoolOptions(thread_count=1)) as pool:
    async def value(n):
        await pool.schedule()   # continue on a pool thread
        return n

    print(sync_wait(when_all(value(1), value(2))))   # (1, 2)
```

## Thread pool

`ThreadPool` resumes scheduled coroutines in FIFO order on its worker threads
(`ThreadPoolOptions.thread_count`, default: the number of CPUs; optional
`on_thread_start` / `on_thread_stop` callbacks get the worker index).

- `schedule()` / `yield_()` return an awaitable that moves the coroutine onto
  the pool.
- `run(func, *args)` returns a task that calls `func(*args)` on the pool.
- `resume(handle)` and `resume_many(handles)` queue suspended handles.
- `size()`, `empty()`, `queue_size()`, `queue_empty()`, `thread_count()`.
- `shutdown()` waits for queued work to finish. Afterwards `schedule()` raises
  `RuntimeError`, so does waiting on a task from `run()`.

## Synchronisation

- `Event(initially_set=False)`: awaiting an unset event suspends until `set()`.
  `set(ResumeOrderPolicy.LIFO | FIFO)` resumes the waiters on the setting thread
  in that order; `reset()` unsets it; `is_set()` reports the state.
- `Mutex`: `await mutex.lock()` yields a `ScopedLock`, released by its
  `unlock()` or by leaving a `with` block. `try_lock()` never waits; `unlock()`
  hands the lock straight to a waiter.

  ```python
  async def critical(mutex):
      with await mutex.lock():
          ...
  ```
- `SharedMutex(executor)`: `lock()` for exclusive access, `lock_shared()` for
  shared access, plus `try_lock()`, `try_lock_shared()`, `unlock()` and
  `unlock_shared()`. Once a writer is waiting, new readers wait too. A run of
  readers woken together is resumed through `executor.resume(...)` (for example
  a `ThreadPool` or an `IoScheduler`).
- `Semaphore(least_max_value, starting_value=None)`: `await sem.acquire()`
  returns an `AcquireResult`; `try_acquire()`, `release()`, `max()` and
  `value()`. Releasing beyond the maximum raises `ValueError`. After
  `notify_waiters()` the semaphore is stopped: all current and future acquirers
  get `AcquireResult.SEMAPHORE_STOPPED`.

## I/O scheduling

`IoScheduler(IoSchedulerOptions(...))` resumes coroutines when a descriptor is
ready, when a timer expires, or when they ask to be scheduled. Times are in
seconds; absolute points use `time.monotonic()`.

- `ThreadStrategy.SPAWN` runs the event loop on its own thread;
  `ThreadStrategy.MANUAL` requires calling `process_events(timeout)`, which
  returns `size()`.
- `ExecutionStrategy.PROCESS_TASKS_ON_THREAD_POOL` resumes woken coroutines on a
  thread pool (configured by `pool`); `PROCESS_TASKS_INLINE` resumes them on the
  event loop thread.
- `schedule()` / `yield_()`, `yield_for(seconds)`, `yield_until(time)`,
  `schedule_after(seconds)`, `schedule_at(time)`.
- `poll(fd, op, timeout=0.0)` waits for `PollOp.READ`, `WRITE` or `READ_WRITE`
  on a descriptor or an object with `fileno()`. It returns `PollStatus.EVENT`,
  or `PollStatus.TIMEOUT` when a non-zero timeout elapses first.
- `spawn(coro)` hands a coroutine to the scheduler; `garbage_collect()` drops
  finished ones. `resume(handle)`, `size()`, `empty()`.
- `shutdown()` waits for pending work; using the scheduler as a context manager
  also closes its resources.

```python
from cokit.coroutine import sync_wait
from cokit.io_scheduler import IoScheduler

with IoScheduler() as scheduler:
    async def nap():
        await scheduler.schedule()
        await scheduler.yield_for(0.05)
        return "done"

    print(sync_wait(nap()))
```

`UdpPeer(scheduler, bind=None, family=socket.AF_INET)` is a non-blocking UDP
socket. `sendto(peer_info, data)` returns the bytes not sent;
`recvfrom(size)` returns `(PeerInfo, bytes)` and raises `UdpNotBoundError` on a
peer created without `bind`; `poll(op, timeout)` waits through the scheduler;
`close()` closes the socket. `PeerInfo(address, port)` defaults to
`127.0.0.1:8080`.

## What it does not do

There are no TCP clients or servers, no DNS resolution and no TLS support;
networking is limited to `UdpPeer` and polling descriptors you open yourself.
The scheduler never reports `PollStatus.ERROR` or `PollStatus.CLOSED`; the
enumeration lists them but only `EVENT` and `TIMEOUT` are produced.

## Running the tests

```
pip install .[test]
pytest
```
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import asyncio
import threading

import pytest

from hostparser import pool as pool_mod
from hostparser.pool import ExecutionPool, PoolError


def test_spawn_runs_on_pool_threads():
    async def where():
        await asyncio.sleep(0)
        return threading.current_thread().name

    with ExecutionPool(3, name="test") as pool:
        names = {pool.spawn(where()).result(timeout=5) for _ in range(9)}
    assert names == {"test-0", "test-1", "test-2"}


def test_shutdown_joins_threads():
    pool = ExecutionPool(2)
    pool.start()
    threads = list(pool._threads)
    pool.shutdown()
    assert not any(t.is_alive() for t in threads)
    with pytest.raises(RuntimeError):
        pool.spawn(asyncio.sleep(0))


def test_rejects_empty_pool():
    with pytest.raises(ValueError):
        ExecutionPool(0)


def test_thread_start_failure_raises_pool_error(monkeypatch):
    real_thread = threading.Thread
    started = []

    class LimitedThread(real_thread):
        def start(self):
            if len(started) >= 2:
                raise RuntimeError("can't start new thread")
            started.append(self)
            super().start()

    monkeypatch.setattr(pool_mod.threading, "Thread", LimitedThread)
    pool = ExecutionPool(5)
    with pytest.raises(PoolError, match="thread 3 of 5"):
        pool.start()
    for t in started:
        t.join(timeout=5)
    assert not any(t.is_alive() for t in started)

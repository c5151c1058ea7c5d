"""Fixed set of execution threads, each hosting its own event loop."""

import asyncio
import concurrent.futures
import itertools
import logging
import threading
from typing import Any, Coroutine

from . import HostparserError

logger = logging.getLogger(__name__)


class PoolError(HostparserError):
    """Raised when the execution threads cannot be started."""


class ExecutionPool:
    """Run coroutines cooperatively on ``size`` background threads.

    Every thread runs one asyncio event loop until :meth:`shutdown`.
    :meth:`spawn` places coroutines on the loops round-robin, so many tasks
    share a thread and the thread count is independent of the task count.
    """

    def __init__(self, size: int, name: str = "hostparser") -> None:
        if size < 1:
            raise ValueError("pool needs at least one thread")
        self.size = size
        self.name = name
        self._loops: list[asyncio.AbstractEventLoop] = []
        self._threads: list[threading.Thread] = []
        self._next = itertools.count()

    def __enter__(self) -> "ExecutionPool":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=exc_type is None)

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            try:
                loop.run_until_complete(loop.shutdown_asyncgens())
                loop.run_until_complete(loop.shutdown_default_executor())
            finally:
                loop.close()

    def start(self) -> None:
        """Start the threads. Failing to create one raises :class:`PoolError`."""
        if self._threads:
            return
        for i in range(self.size):
            try:
                loop = asyncio.new_event_loop()
            except OSError as e:
                self.shutdown(wait=False)
                raise PoolError(f"could not create event loop {i + 1} of {self.size}: {e}") from e
            ready = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(loop, ready),
                name=f"{self.name}-{i}",
                daemon=True,
            )
            try:
                thread.start()
            except RuntimeError as e:
                loop.close()
                self.shutdown(wait=False)
                raise PoolError(f"could not start execution thread {i + 1} of {self.size}: {e}") from e
            ready.wait()
            self._loops.append(loop)
            self._threads.append(thread)
        logger.debug(f"Started {self.size} execution threads")

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        """Schedule ``coro`` on the next loop and return a thread-safe future."""
        if not self._loops:
            coro.close()
            raise RuntimeError("execution pool is not running")
        loop = self._loops[next(self._next) % len(self._loops)]
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def shutdown(self, wait: bool = True) -> None:
        """Stop every loop. With ``wait`` the threads are joined."""
        loops, threads = self._loops, self._threads
        self._loops, self._threads = [], []
        for loop in loops:
            if not loop.is_closed():
                loop.call_soon_threadsafe(loop.stop)
        if wait:
            for thread in threads:
                thread.join()
        logger.debug(f"Stopped {len(threads)} execution threads")

"""Single producer, multi consumer job channel.

Consumers may live on different event loops (one per execution thread), so
the queue cannot be an ``asyncio.Queue``. State is guarded by a
``threading.Lock`` and a consumer waiting on an empty queue parks a future
bound to its own loop. ``send`` hands an item straight to one parked future
through ``call_soon_threadsafe``; each item reaches exactly one consumer.
"""

import asyncio
import contextlib
import logging
import threading
from collections import deque
from typing import Generic, Iterator, TypeVar

from . import HostparserError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_Waiter = tuple[asyncio.AbstractEventLoop, asyncio.Future]


class QueueClosed(HostparserError):
    """Raised by ``send`` without consumers and by ``receive`` once drained."""


class JobQueue(Generic[T]):
    """Unbounded work distribution queue."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: deque[T] = deque()
        self._waiters: deque[_Waiter] = deque()
        self._closed = False
        self._consumers = 0
        self._attached = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consumers(self) -> int:
        return self._consumers

    # --- consumer registration --- #
    def attach(self) -> None:
        with self._lock:
            self._consumers += 1
            self._attached = True

    def detach(self) -> None:
        with self._lock:
            self._consumers -= 1

    @contextlib.contextmanager
    def consumer(self) -> Iterator["JobQueue[T]"]:
        """Register the caller as a live consumer for the duration of the block."""
        self.attach()
        try:
            yield self
        finally:
            self.detach()

    # --- producer side --- #
    def send(self, item: T) -> None:
        """Enqueue ``item`` for exactly one consumer.

        Raises:
            QueueClosed: if the queue was closed, or every consumer that
                attached has since gone away.
        """
        with self._lock:
            if self._closed:
                raise QueueClosed("queue is closed")
            if self._attached and self._consumers <= 0:
                raise QueueClosed("no consumers left")
            waiter = self._pop_waiter()
            if waiter is None:
                self._items.append(item)
                return
        loop, fut = waiter
        loop.call_soon_threadsafe(self._deliver, fut, item)

    def close(self) -> None:
        """Mark the end of input. Parked consumers are woken up."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            # waiters only exist while the buffer is empty
            waiters = list(self._waiters)
            self._waiters.clear()
        logger.debug(f"Job queue closed, waking {len(waiters)} idle consumers")
        for loop, fut in waiters:
            loop.call_soon_threadsafe(_wake_closed, fut)

    # --- consumer side --- #
    async def receive(self) -> T:
        """Return the next item, waiting while the queue is empty.

        Raises:
            QueueClosed: once the queue is closed and drained.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._items:
                return self._items.popleft()
            if self._closed:
                raise QueueClosed("queue is closed and drained")
            fut = loop.create_future()
            self._waiters.append((loop, fut))
        try:
            return await fut
        except asyncio.CancelledError:
            with self._lock:
                with contextlib.suppress(ValueError):
                    self._waiters.remove((loop, fut))
            if fut.done() and not fut.cancelled() and fut.exception() is None:
                self._put_back(fut.result())
            raise

    # --- internals --- #
    def _pop_waiter(self) -> _Waiter | None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter[1].done():
                return waiter
        return None

    def _deliver(self, fut: asyncio.Future, item: T) -> None:
        # runs on the consumer's loop
        if not fut.done():
            fut.set_result(item)
        else:
            self._put_back(item)

    def _put_back(self, item: T) -> None:
        """Return an undelivered item to the head of the queue."""
        with self._lock:
            waiter = self._pop_waiter()
            if waiter is None:
                self._items.appendleft(item)
                return
        loop, fut = waiter
        loop.call_soon_threadsafe(self._deliver, fut, item)


def _wake_closed(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_exception(QueueClosed("queue is closed and drained"))

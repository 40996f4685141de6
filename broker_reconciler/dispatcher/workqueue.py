"""A deduplicating, rate limited work queue for reconciliation keys.

Keys added while pending are merged. A key handed out by `get` is not handed
out again until `done` is called for it; if it was re-added in the meantime
it is queued again at that point. This makes processing of a single key
single-flight across any number of workers.
"""

import asyncio
from collections import deque
from collections.abc import Hashable
from dataclasses import dataclass
import logging
from typing import Generic, TypeVar

from broker_reconciler.exceptions import QueueShutdownError

__all__ = [
    "WorkQueue",
    "WorkQueueConfig",
]

_LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


@dataclass
class WorkQueueConfig:
    """Configuration for the per key exponential backoff."""

    base_delay: float = 0.005
    """Delay in seconds before the first retry of a failed key."""

    max_delay: float = 1000.0
    """Upper bound for the delay in seconds between retries."""


class WorkQueue(Generic[K]):
    """Work queue with dedup, single-flight processing and backoff."""

    def __init__(self, config: WorkQueueConfig | None = None, name: str = "") -> None:
        """Initialize the WorkQueue."""
        self._config = config or WorkQueueConfig()
        self._name = name
        self._queue: deque[K] = deque()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._failures: dict[K, int] = {}
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._timers: set[asyncio.TimerHandle] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._shutting_down = False

    def __len__(self) -> int:
        """Return the number of keys waiting to be processed."""
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: K) -> None:
        """Queue a key unless it is already pending."""
        if self._shutting_down:
            _LOGGER.debug("Queue %s shutting down, dropping %s", self._name, key)
            return
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            # Queued again when the current processing is done
            return
        self._queue.append(key)
        self._idle.clear()
        self._wake_one()

    def add_after(self, key: K, delay: float) -> None:
        """Queue a key once the delay in seconds has passed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    def add_rate_limited(self, key: K) -> None:
        """Queue a key after its exponential backoff delay."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(
            self._config.base_delay * (2**failures), self._config.max_delay
        )
        _LOGGER.debug("Requeue %s after %.3fs (attempt %d)", key, delay, failures + 1)
        self.add_after(key, delay)

    def forget(self, key: K) -> None:
        """Reset the backoff of a key."""
        self._failures.pop(key, None)

    def num_requeues(self, key: K) -> int:
        """Return how many times the key was requeued with backoff."""
        return self._failures.get(key, 0)

    async def get(self) -> K:
        """Wait for the next key and mark it as being processed.

        Raises:
            QueueShutdownError: If the queue was shut down and is empty.
        """
        while not self._queue:
            if self._shutting_down:
                raise QueueShutdownError(f"Queue {self._name} is shut down")
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                # Hand a wakeup we received but cannot use to another consumer
                if waiter.done() and not waiter.cancelled() and self._queue:
                    self._wake_one()
                raise
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: K) -> None:
        """Mark a key returned by `get` as processed."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._wake_one()
        self._update_idle()

    def shutdown(self) -> None:
        """Stop accepting keys and wake every waiting consumer."""
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
        self._update_idle()

    async def wait_idle(self) -> None:
        """Wait until no key is pending or being processed.

        Keys scheduled with a delay are not waited for.
        """
        await self._idle.wait()

    def _wake_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

    def _update_idle(self) -> None:
        if not self._queue and not self._processing:
            self._idle.set()
        elif self._shutting_down and not self._processing:
            self._idle.set()

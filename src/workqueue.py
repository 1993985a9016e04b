"""
Work Queue - De-duplicating, rate-limited queue of keys to reconcile.

A key is held at most once in the queue and is never handed to two workers
at the same time: adding a key that is being processed marks it dirty, and
it is queued again when the worker calls done().
"""

import asyncio
import logging
import random
from collections import deque
from typing import Deque, Dict, Optional, Set

from models import ResourceKey

logger = logging.getLogger(__name__)


class WorkQueue:
    """Asyncio work queue with exponential backoff for failed keys."""

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 300.0,
        jitter_factor: float = 0.1,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_factor = jitter_factor

        self._queue: Deque[ResourceKey] = deque()
        # Keys waiting to be processed (queued, or re-added while processing)
        self._dirty: Set[ResourceKey] = set()
        self._processing: Set[ResourceKey] = set()
        self._failures: Dict[ResourceKey, int] = {}
        self._timers: Set[asyncio.TimerHandle] = set()
        self._not_empty = asyncio.Event()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: ResourceKey) -> None:
        """Queue ``key`` unless it is already waiting."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._not_empty.set()

    def add_after(self, key: ResourceKey, delay: float) -> None:
        """Queue ``key`` once ``delay`` seconds have passed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    def backoff_delay(self, failures: int) -> float:
        """
        Delay before the next retry of a key that has failed ``failures`` times.

        Exponential in the failure count, capped at max_delay, with
        ±jitter_factor applied to spread retries out.
        """
        delay = min(self.base_delay * (2 ** min(failures, 10)), self.max_delay)
        return delay * (1 + (random.random() * 2 - 1) * self.jitter_factor)

    def add_rate_limited(self, key: ResourceKey) -> None:
        """Queue ``key`` after a backoff delay that grows with each failure."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = self.backoff_delay(failures)
        logger.debug(f"Requeueing {key} in {delay:.2f}s (failure {failures + 1})")
        self.add_after(key, delay)

    def forget(self, key: ResourceKey) -> None:
        """Clear the failure history of ``key``."""
        self._failures.pop(key, None)

    def num_requeues(self, key: ResourceKey) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> Optional[ResourceKey]:
        """
        Wait for the next key and mark it as being processed.

        Returns:
            The key, or None once the queue is shut down.
        """
        while True:
            if self._shutting_down:
                return None
            if self._queue:
                key = self._queue.popleft()
                self._dirty.discard(key)
                self._processing.add(key)
                if not self._queue:
                    self._not_empty.clear()
                return key
            self._not_empty.clear()
            await self._not_empty.wait()

    def done(self, key: ResourceKey) -> None:
        """Mark ``key`` as processed, re-queueing it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._not_empty.set()

    def shutdown(self) -> None:
        """Stop handing out keys and wake every waiting getter."""
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        self._not_empty.set()

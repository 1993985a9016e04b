"""Unit tests for workqueue.py - De-duplicating rate-limited queue."""

import asyncio

import pytest

from models import ResourceKey
from workqueue import WorkQueue

KEY = ResourceKey("default", "demo")
OTHER = ResourceKey("default", "other")


class TestBackoff:
    """Tests for the backoff delay calculation."""

    def test_exponential_without_jitter(self):
        """Test that the delay doubles per failure."""
        queue = WorkQueue(base_delay=1.0, max_delay=300.0, jitter_factor=0.0)
        assert [queue.backoff_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_capped_at_max_delay(self):
        """Test that the delay stops at the maximum."""
        queue = WorkQueue(base_delay=1.0, max_delay=300.0, jitter_factor=0.0)
        assert queue.backoff_delay(9) == 300.0
        assert queue.backoff_delay(50) == 300.0

    def test_jitter_bounds(self):
        """Test that jitter stays within its factor."""
        queue = WorkQueue(base_delay=10.0, max_delay=300.0, jitter_factor=0.1)
        for _ in range(50):
            assert 9.0 <= queue.backoff_delay(0) <= 11.0

    def test_forget_clears_failures(self):
        """Test that forget resets the failure count."""
        queue = WorkQueue()
        assert queue.num_requeues(KEY) == 0

        queue._failures[KEY] = 2
        queue.forget(KEY)
        assert queue.num_requeues(KEY) == 0

    def test_forget_unknown_key(self):
        """Test forgetting a key that never failed."""
        WorkQueue().forget(KEY)


@pytest.mark.asyncio
class TestWorkQueue:
    """Tests for WorkQueue add/get/done."""

    async def test_add_and_get(self):
        """Test handing out a queued key."""
        queue = WorkQueue()
        queue.add(KEY)

        assert len(queue) == 1
        assert await queue.get() == KEY
        assert len(queue) == 0

    async def test_duplicate_adds_are_collapsed(self):
        """Test that a waiting key is queued once."""
        queue = WorkQueue()
        queue.add(KEY)
        queue.add(KEY)
        queue.add(OTHER)

        assert len(queue) == 2
        assert await queue.get() == KEY
        assert await queue.get() == OTHER

    async def test_key_added_while_processing_waits_for_done(self):
        """Test that a key in flight is queued again only after done."""
        queue = WorkQueue()
        queue.add(KEY)
        key = await queue.get()

        queue.add(KEY)
        assert len(queue) == 0

        queue.done(key)
        assert len(queue) == 1
        assert await queue.get() == KEY

    async def test_done_without_readd(self):
        """Test done for a key not added again."""
        queue = WorkQueue()
        queue.add(KEY)
        key = await queue.get()

        queue.done(key)

        assert len(queue) == 0

    async def test_get_waits_for_add(self):
        """Test that get blocks until a key arrives."""
        queue = WorkQueue()
        getter = asyncio.create_task(queue.get())
        await asyncio.sleep(0)
        assert not getter.done()

        queue.add(KEY)

        assert await asyncio.wait_for(getter, timeout=1) == KEY

    async def test_get_after_shutdown_returns_none(self):
        """Test that get returns None after shutdown."""
        queue = WorkQueue()
        queue.add(KEY)
        queue.shutdown()

        assert queue.shutting_down is True
        assert await queue.get() is None

    async def test_shutdown_wakes_waiting_getters(self):
        """Test that shutdown releases every waiting getter."""
        queue = WorkQueue()
        getters = [asyncio.create_task(queue.get()) for _ in range(3)]
        await asyncio.sleep(0)

        queue.shutdown()

        assert await asyncio.wait_for(asyncio.gather(*getters), timeout=1) == [
            None,
            None,
            None,
        ]

    async def test_add_ignored_after_shutdown(self):
        """Test that adds after shutdown are dropped."""
        queue = WorkQueue()
        queue.shutdown()
        queue.add(KEY)
        assert len(queue) == 0

    async def test_add_after_fires(self):
        """Test that a delayed add arrives after its delay."""
        queue = WorkQueue()
        queue.add_after(KEY, 0.01)
        assert len(queue) == 0

        assert await asyncio.wait_for(queue.get(), timeout=1) == KEY
        assert queue._timers == set()

    async def test_add_after_zero_is_immediate(self):
        """Test that a zero delay adds at once."""
        queue = WorkQueue()
        queue.add_after(KEY, 0)
        assert len(queue) == 1

    async def test_shutdown_cancels_timers(self):
        """Test that shutdown cancels pending delayed adds."""
        queue = WorkQueue()
        queue.add_after(KEY, 60)
        assert len(queue._timers) == 1

        queue.shutdown()

        assert queue._timers == set()

    async def test_add_rate_limited(self):
        """Test that a rate limited add counts a failure and fires later."""
        queue = WorkQueue(base_delay=0.01, max_delay=0.05, jitter_factor=0.0)

        queue.add_rate_limited(KEY)
        assert queue.num_requeues(KEY) == 1
        assert len(queue) == 0

        assert await asyncio.wait_for(queue.get(), timeout=1) == KEY

    async def test_add_rate_limited_grows(self):
        """Test that each rate limited add waits longer."""
        queue = WorkQueue(base_delay=10.0, max_delay=300.0, jitter_factor=0.0)
        loop = asyncio.get_running_loop()

        queue.add_rate_limited(KEY)
        queue.add_rate_limited(KEY)
        queue.add_rate_limited(KEY)

        assert queue.num_requeues(KEY) == 3
        delays = sorted(handle.when() - loop.time() for handle in queue._timers)
        assert 9.5 < delays[0] < 10.5
        assert 19.5 < delays[1] < 20.5
        assert 39.5 < delays[2] < 40.5
        queue.shutdown()

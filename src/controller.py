"""
MyApp Controller - Work queue, watchers and reconcile workers.

Similar to a controller-runtime manager: watches MyApps and the children they
own, queues the affected keys, and runs reconcile passes on a fixed pool of
workers. A key is never reconciled by two workers at once.
"""

import asyncio
import logging
from typing import List, Optional

from client import ClusterClient
from config import ControllerConfig
from entrypoint import ReconcileEntrypoint
from models import DEPLOYMENT, DISRUPTION_BUDGET, KIND, ResourceKey
from watcher import Watcher
from workqueue import WorkQueue

logger = logging.getLogger(__name__)

WATCHED_KINDS = (KIND, DEPLOYMENT, DISRUPTION_BUDGET)


class Controller:
    """
    Main controller that runs the reconcile workers.

    Keys come from three sources: the watchers, a periodic resync of every
    MyApp, and manual triggers. Each worker hands a key to the entrypoint and
    applies its (requeue, error) answer to the queue.
    """

    def __init__(
        self,
        client: ClusterClient,
        entrypoint: ReconcileEntrypoint,
        config: Optional[ControllerConfig] = None,
        namespace: Optional[str] = None,
        watch_timeout_seconds: int = 300,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        self.client = client
        self.entrypoint = entrypoint
        self.config = config or ControllerConfig()
        self.namespace = namespace
        self.max_concurrent_reconciles = self.config.max_concurrent_reconciles
        self.queue = WorkQueue(
            base_delay=self.config.backoff_base_delay,
            max_delay=self.config.backoff_max_delay,
            jitter_factor=self.config.backoff_jitter_factor,
        )
        self.watchers = [
            Watcher(
                client,
                self.queue,
                kind,
                namespace=namespace,
                timeout_seconds=watch_timeout_seconds,
            )
            for kind in WATCHED_KINDS
        ]
        self.running = False

        self._shutdown_event = shutdown_event or asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._workers: List[asyncio.Task] = []

    @property
    def shutdown_event(self) -> asyncio.Event:
        return self._shutdown_event

    async def start(self):
        """Start watchers, the resync loop and the reconcile workers."""
        logger.info(
            f"Starting MyApp controller with {self.max_concurrent_reconciles} workers"
        )
        self.running = True
        self._shutdown_event.clear()

        self._tasks = [
            asyncio.create_task(watcher.run(self._shutdown_event))
            for watcher in self.watchers
        ]
        self._tasks.append(asyncio.create_task(self._resync_loop()))
        self._workers = [
            asyncio.create_task(self._worker(worker_id))
            for worker_id in range(self.max_concurrent_reconciles)
        ]
        self._tasks.extend(self._workers)

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Controller tasks cancelled")
        except Exception as e:
            logger.error(f"Controller error: {e}")
            raise

    async def stop(self):
        """Stop the controller gracefully."""
        logger.info("Stopping MyApp controller")
        self.running = False
        self._shutdown_event.set()
        self.queue.shutdown()

        for watcher in self.watchers:
            watcher.stop()

        # In-flight passes see the shutdown event at their next cluster call
        busy = [task for task in self._workers if not task.done()]
        if busy:
            _, pending = await asyncio.wait(
                busy, timeout=self.config.shutdown_timeout
            )
            if pending:
                logger.warning(
                    f"{len(pending)} workers still busy after "
                    f"{self.config.shutdown_timeout}s, cancelling"
                )

        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()
        self._workers = []

    async def _resync_loop(self):
        """Periodically queue every MyApp, catching changes a watch missed."""
        while self.running:
            try:
                await self.enqueue_all()
            except Exception as e:
                logger.error(f"Error in resync loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.config.resync_period
                )
            except asyncio.TimeoutError:
                pass

    async def enqueue_all(self) -> int:
        """
        Queue every MyApp in the watched namespace(s).

        Returns:
            Number of keys queued.
        """
        objects = await self.client.list_desired_states(self.namespace)
        count = 0
        for obj in objects:
            metadata = obj.get("metadata") or {}
            if not metadata.get("namespace") or not metadata.get("name"):
                continue
            self.queue.add(
                ResourceKey(namespace=metadata["namespace"], name=metadata["name"])
            )
            count += 1
        logger.info(
            f"Resync queued {count} {KIND} resources ({len(self.queue)} waiting)"
        )
        return count

    async def _worker(self, worker_id: int):
        """Take keys off the queue until it is shut down."""
        logger.debug(f"Worker {worker_id} started")
        while True:
            key = await self.queue.get()
            if key is None:
                break
            try:
                await self.process(key)
            except Exception as e:
                logger.error(f"Worker {worker_id} error on {key}: {e}", exc_info=True)
                self.queue.add_rate_limited(key)
            finally:
                self.queue.done(key)
        logger.debug(f"Worker {worker_id} stopped")

    async def process(self, key: ResourceKey) -> None:
        """
        Run one pass for ``key`` and apply the result to the queue.

        Errors are retried with backoff, requeue requests are retried at
        once, and anything else clears the key's failure history.
        """
        requeue, error = await self.entrypoint.on_trigger(key)

        if error is not None:
            if self.queue.shutting_down:
                logger.info(f"Not retrying {key} during shutdown: {error}")
                return
            self.queue.add_rate_limited(key)
            logger.info(
                f"Retrying {key} with backoff "
                f"(attempt {self.queue.num_requeues(key)}): {error}"
            )
        elif requeue:
            self.queue.forget(key)
            self.queue.add(key)
        else:
            self.queue.forget(key)

    async def trigger_reconciliation(self, key: ResourceKey):
        """Manually trigger reconciliation for a specific MyApp."""
        logger.info(f"Manually triggering reconciliation for {key}")
        self.queue.add(key)

"""
Watcher - Streams cluster changes for one kind into the work queue.

Each restart of the stream begins with a fresh list, so every existing
object is seen again as ADDED; reconciliation is level-triggered and this
only causes extra no-op passes.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from kubernetes_asyncio import watch

from client import ClusterClient
from events import EventType, WatchEvent, keys_for_event
from models import ResourceKey
from workqueue import WorkQueue

logger = logging.getLogger(__name__)


class Watcher:
    """Watches one kind and enqueues the MyApp keys its events map to."""

    def __init__(
        self,
        client: ClusterClient,
        queue: WorkQueue,
        kind: str,
        namespace: Optional[str] = None,
        timeout_seconds: int = 300,
        retry_delay: float = 5.0,
    ):
        self.client = client
        self.queue = queue
        self.kind = kind
        self.namespace = namespace
        self.timeout_seconds = timeout_seconds
        self.retry_delay = retry_delay
        self._watch: Optional[watch.Watch] = None

    def handle(self, raw: Dict[str, Any]) -> List[ResourceKey]:
        """
        Enqueue the keys for one raw watch entry.

        Returns:
            The keys that were added to the queue.
        """
        event = WatchEvent.from_raw(self.kind, raw)
        keys = keys_for_event(event)
        for key in keys:
            logger.debug(
                f"{event.event_type.value} {self.kind} "
                f"{event.metadata.get('namespace')}/{event.metadata.get('name')} "
                f"(rv {event.resource_version}) -> {key}"
            )
            self.queue.add(key)
        return keys

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Watch until ``shutdown_event`` is set, restarting the stream as needed."""
        scope = self.namespace or "all namespaces"
        logger.info(f"Watching {self.kind} in {scope}")

        while not shutdown_event.is_set():
            list_func, args = self.client.list_function(self.kind, self.namespace)
            self._watch = watch.Watch()
            try:
                async for raw in self._watch.stream(
                    list_func, *args, timeout_seconds=self.timeout_seconds
                ):
                    if raw.get("type") == EventType.ERROR.value:
                        logger.warning(
                            f"Watch on {self.kind} returned an error, restarting: "
                            f"{raw.get('raw_object') or raw.get('object')}"
                        )
                        break
                    self.handle(raw)
                    if shutdown_event.is_set():
                        break
                continue
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Watch on {self.kind} failed: {e}", exc_info=True)
            finally:
                self._watch.stop()

            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.retry_delay)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Stopped watching {self.kind}")

    def stop(self) -> None:
        """Ask the current stream to end after its next event."""
        if self._watch is not None:
            self._watch.stop()

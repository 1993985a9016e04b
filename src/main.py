"""
Main entry point for the MyApp controller.

Wires the cluster client, convergence engine, metrics, work queue and
health server together and runs them until a shutdown signal arrives.
"""

import asyncio
import logging
import signal
from typing import Optional

from client import ClusterClient
from config import get_config
from controller import Controller
from entrypoint import ReconcileEntrypoint
from metrics import InstrumentedReconciler, ReconcileMetrics
from reconciler import ConvergenceEngine
from server import MetricsServer

logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates the controller and its server."""

    def __init__(self):
        self.config = get_config()
        self.client: Optional[ClusterClient] = None
        self.metrics: Optional[ReconcileMetrics] = None
        self.controller: Optional[Controller] = None
        self.server: Optional[MetricsServer] = None
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing MyApp controller")

        cluster_config = self.config.cluster
        self.client = ClusterClient(kubeconfig=cluster_config.kubeconfig)
        await self.client.connect()

        self.metrics = ReconcileMetrics()
        shutdown_event = asyncio.Event()
        engine = ConvergenceEngine(self.client)
        entrypoint = ReconcileEntrypoint(
            InstrumentedReconciler(engine, self.metrics),
            cancel=shutdown_event,
        )

        self.controller = Controller(
            client=self.client,
            entrypoint=entrypoint,
            config=self.config.controller,
            namespace=cluster_config.namespace,
            watch_timeout_seconds=cluster_config.watch_timeout_seconds,
            shutdown_event=shutdown_event,
        )

        server_config = self.config.server
        if server_config.enabled:
            self.server = MetricsServer(
                self.metrics,
                controller=self.controller,
                host=server_config.host,
                port=server_config.port,
                log_level=server_config.log_level,
            )

        logger.info("All components initialized")

    async def start(self):
        """Start the application."""
        if not self.controller:
            await self.initialize()

        self.running = True
        logger.info("Starting MyApp controller")

        tasks = [asyncio.create_task(self.controller.start())]
        if self.server:
            tasks.append(asyncio.create_task(self.server.start()))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        logger.info("Stopping MyApp controller")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.server:
            await self.server.stop()

        if self.client:
            await self.client.close()

        logger.info("MyApp controller stopped")


async def main():
    """Main entry point."""
    config = get_config()
    logging.basicConfig(
        level=config.server.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

"""
Health and Metrics Server - Health endpoints and Prometheus exposition.

Serves /healthz, /readyz and /metrics with FastAPI under uvicorn.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from metrics import ReconcileMetrics

logger = logging.getLogger(__name__)


def create_app(metrics: ReconcileMetrics, controller=None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        metrics: The metrics whose registry /metrics exposes.
        controller: The controller whose ``running`` flag gates /readyz.

    Returns:
        The configured FastAPI application.
    """
    app = FastAPI(title="MyApp Controller", docs_url=None, redoc_url=None)

    @app.get("/healthz")
    async def healthz():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz():
        """Readiness check: ready once the controller is running."""
        if controller is None or not controller.running:
            raise HTTPException(status_code=503, detail="Controller not running")
        return {"status": "ok"}

    @app.get("/metrics")
    async def prometheus_metrics():
        """Prometheus text exposition."""
        return Response(
            content=metrics.exposition(), media_type=ReconcileMetrics.content_type
        )

    return app


class MetricsServer:
    """Runs the health and metrics app on uvicorn."""

    def __init__(
        self,
        metrics: ReconcileMetrics,
        controller=None,
        host: str = "0.0.0.0",
        port: int = 8080,
        log_level: str = "info",
    ):
        self.host = host
        self.port = port
        self.log_level = log_level.lower()
        self.app = create_app(metrics, controller)
        self.server: Optional[uvicorn.Server] = None

    async def start(self) -> None:
        """Start the HTTP server."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level,
        )
        self.server = uvicorn.Server(config)

        logger.info(f"Starting health and metrics server on {self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        logger.info("Stopping health and metrics server")
        if self.server:
            self.server.should_exit = True

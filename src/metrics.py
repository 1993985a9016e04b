"""
Reconcile Metrics - Attempt counts and pass durations.

Metrics are held on an explicitly constructed CollectorRegistry so each
process (and each test) owns its own set. Recording never affects the
outcome of a pass: sink failures are logged and dropped.
"""

import asyncio
import logging
import time
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from models import ResourceKey
from reconciler import Outcome, OutcomeType, Reconciler

logger = logging.getLogger(__name__)

RESULT_SUCCESS = "success"
RESULT_ERROR = "error"
RESULT_SKIPPED = "skipped"
RESULTS = (RESULT_SUCCESS, RESULT_ERROR, RESULT_SKIPPED)

DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


def classify_outcome(outcome: Outcome) -> str:
    """Map an Outcome onto its reporting bucket."""
    if outcome.type == OutcomeType.FAILED:
        return RESULT_ERROR
    return RESULT_SUCCESS


class ReconcileMetrics:
    """Prometheus metrics for reconcile passes."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.attempts = Counter(
            "myapp_reconcile_attempts",
            "Reconcile passes started, per MyApp",
            ["namespace", "name"],
            registry=self.registry,
        )
        self.duration = Histogram(
            "myapp_reconcile_duration_seconds",
            "Wall-clock duration of reconcile passes, by result",
            ["result"],
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )
        # Expose every result series from the start, including unused ones
        for result in RESULTS:
            self.duration.labels(result=result)

    def record_attempt(self, key: ResourceKey) -> None:
        self.attempts.labels(namespace=key.namespace, name=key.name).inc()

    def observe_duration(self, result: str, seconds: float) -> None:
        if result not in RESULTS:
            raise ValueError(f"Unknown reconcile result label: {result}")
        self.duration.labels(result=result).observe(seconds)

    def exposition(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)


class InstrumentedReconciler(Reconciler):
    """
    Wraps a Reconciler with attempt and duration metrics.

    The attempt counter is incremented before the pass starts, so it moves
    exactly once per pass whatever the outcome.
    """

    def __init__(self, inner: Reconciler, metrics: ReconcileMetrics):
        self.inner = inner
        self.metrics = metrics

    async def reconcile(
        self, key: ResourceKey, cancel: Optional[asyncio.Event] = None
    ) -> Outcome:
        try:
            self.metrics.record_attempt(key)
        except Exception as e:
            logger.warning(f"Failed to record reconcile attempt for {key}: {e}")

        start_time = time.monotonic()
        try:
            outcome = await self.inner.reconcile(key, cancel)
        except BaseException:
            # Cancellation included, so every counted attempt is also observed
            self._observe(key, RESULT_ERROR, time.monotonic() - start_time)
            raise

        self._observe(key, classify_outcome(outcome), time.monotonic() - start_time)
        return outcome

    def _observe(self, key: ResourceKey, result: str, seconds: float) -> None:
        try:
            self.metrics.observe_duration(result, seconds)
        except Exception as e:
            logger.warning(f"Failed to record reconcile duration for {key}: {e}")

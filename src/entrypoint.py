"""
Reconcile Entrypoint - The boundary between the work queue and the engine.

Translates a pass Outcome into the work queue contract of (requeue, error)
and logs one line per pass.
"""

import asyncio
import logging
import time
from typing import Optional, Tuple

from models import ResourceKey
from reconciler import OutcomeType, Reconciler

logger = logging.getLogger(__name__)


class ReconcileEntrypoint:
    """Runs one reconcile pass per trigger."""

    def __init__(
        self,
        reconciler: Reconciler,
        cancel: Optional[asyncio.Event] = None,
    ):
        self.reconciler = reconciler
        self.cancel = cancel

    async def on_trigger(self, key: ResourceKey) -> Tuple[bool, Optional[Exception]]:
        """
        Reconcile ``key`` once.

        Args:
            key: Namespace/name of the MyApp that was triggered.

        Returns:
            Tuple of (requeue, error). A created child asks for an immediate
            requeue; a failure returns its cause so the caller can back off.
            Steady state and a missing MyApp return (False, None).
        """
        start_time = time.monotonic()
        try:
            outcome = await self.reconciler.reconcile(key, self.cancel)
        except asyncio.CancelledError:
            duration = time.monotonic() - start_time
            logger.warning(f"Reconcile {key} interrupted after {duration:.3f}s")
            raise
        except Exception as e:
            duration = time.monotonic() - start_time
            logger.error(
                f"Reconcile {key} raised after {duration:.3f}s: {e}", exc_info=True
            )
            return False, e

        duration = time.monotonic() - start_time
        if outcome.type == OutcomeType.FAILED:
            logger.error(f"Reconcile {key}: {outcome} ({duration:.3f}s)")
            return False, outcome.error

        logger.info(f"Reconcile {key}: {outcome} ({duration:.3f}s)")
        return outcome.requeue, None

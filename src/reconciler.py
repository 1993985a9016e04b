"""
Convergence Engine - Drives a MyApp toward its declared children.

Each pass reads the MyApp, then checks its children in a fixed order
(Deployment, then PodDisruptionBudget) and creates the first one missing.
A pass performs at most one successful create and asks to be requeued so the
next pass can check the next child.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from builder import BUILDERS
from client import ClusterClient
from errors import (
    AlreadyExistsError,
    DesiredStateNotFound,
    ReconcileCancelled,
    ReconcileError,
)
from models import DEPLOYMENT, DISRUPTION_BUDGET, KIND, DesiredState, ResourceKey

logger = logging.getLogger(__name__)

# Children are checked, and created, in this order
CHILD_KINDS = (DEPLOYMENT, DISRUPTION_BUDGET)


class OutcomeType(Enum):
    """Result category of a single reconcile pass."""

    CREATED = "created"
    SYNCED = "synced"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """Result of a reconcile pass."""

    type: OutcomeType
    kind: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def created(cls, kind: str) -> "Outcome":
        return cls(OutcomeType.CREATED, kind=kind)

    @classmethod
    def synced(cls) -> "Outcome":
        return cls(OutcomeType.SYNCED)

    @classmethod
    def not_found(cls) -> "Outcome":
        return cls(OutcomeType.NOT_FOUND)

    @classmethod
    def failed(cls, error: Exception) -> "Outcome":
        return cls(OutcomeType.FAILED, error=error)

    @property
    def requeue(self) -> bool:
        """Whether the pass should be re-run immediately."""
        return self.type == OutcomeType.CREATED

    def __str__(self) -> str:
        if self.type == OutcomeType.CREATED:
            return f"created {self.kind}"
        if self.type == OutcomeType.FAILED:
            return f"failed: {self.error}"
        return self.type.value


class Reconciler(ABC):
    """Anything that can run a reconcile pass for a key."""

    @abstractmethod
    async def reconcile(
        self, key: ResourceKey, cancel: Optional[asyncio.Event] = None
    ) -> Outcome:
        """
        Run one reconcile pass.

        Args:
            key: Namespace/name of the MyApp to reconcile.
            cancel: Optional event; once set, the pass stops before its next
                cluster call.

        Returns:
            The Outcome of the pass. Failures are returned, not raised.
        """
        pass


class ConvergenceEngine(Reconciler):
    """
    Creates the missing children of a MyApp, one per pass.

    Cluster state is the only source of truth: nothing about child
    existence is remembered between passes.
    """

    def __init__(self, client: ClusterClient):
        self.client = client

    async def reconcile(
        self, key: ResourceKey, cancel: Optional[asyncio.Event] = None
    ) -> Outcome:
        try:
            return await self._reconcile(key, cancel)
        except DesiredStateNotFound:
            logger.debug(f"{KIND} {key} not found, nothing to reconcile")
            return Outcome.not_found()
        except ReconcileError as e:
            return Outcome.failed(e)

    def _check_cancelled(
        self, cancel: Optional[asyncio.Event], key: ResourceKey, kind: str
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled(
                f"Reconcile of {key} cancelled before {kind} call",
                kind=kind,
                namespace=key.namespace,
                name=key.name,
            )

    async def _reconcile(
        self, key: ResourceKey, cancel: Optional[asyncio.Event]
    ) -> Outcome:
        self._check_cancelled(cancel, key, KIND)
        obj, found = await self.client.get(KIND, key.namespace, key.name)
        if not found:
            raise DesiredStateNotFound(
                f"{KIND} {key} not found",
                kind=KIND,
                namespace=key.namespace,
                name=key.name,
            )

        desired = DesiredState.from_object(obj)

        for kind in CHILD_KINDS:
            self._check_cancelled(cancel, key, kind)
            _, exists = await self.client.get(kind, key.namespace, key.name)
            if exists:
                continue

            if await self._create_child(desired, kind, cancel):
                return Outcome.created(kind)

        return Outcome.synced()

    async def _create_child(
        self, desired: DesiredState, kind: str, cancel: Optional[asyncio.Event]
    ) -> bool:
        """
        Build, own and create one child.

        Returns:
            True if this pass created the child, False if another writer got
            there first.
        """
        child = BUILDERS[kind](desired)
        self.client.set_owner_reference(desired, child)

        self._check_cancelled(cancel, desired.key, kind)
        try:
            await self.client.create(child)
        except AlreadyExistsError:
            logger.info(
                f"{kind} {desired.key} was created concurrently, treating as present"
            )
            return False
        return True

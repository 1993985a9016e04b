"""
Reconcile Errors - Failure taxonomy for reconciliation passes.

Only AlreadyExistsError is recovered by the engine. Every other error is
returned to the caller, which owns retry and backoff scheduling.
"""

from typing import Optional


class ReconcileError(Exception):
    """Base class for failures raised during a reconcile pass."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
    ):
        self.message = message
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(message)


class DesiredStateNotFound(ReconcileError):
    """The custom resource no longer exists."""


class InvalidDesiredState(ReconcileError):
    """The custom resource could not be parsed into a DesiredState."""


class ClientReadError(ReconcileError):
    """A read against the cluster failed for a reason other than 404."""


class ClientCreateError(ReconcileError):
    """A create against the cluster failed."""


class AlreadyExistsError(ClientCreateError):
    """A create was rejected because the object already exists."""


class OwnershipError(ReconcileError):
    """An owner reference could not be attached to a child object."""


class ReconcileCancelled(ReconcileError):
    """The pass observed a cancellation signal before a blocking call."""

"""Pytest configuration and fixtures."""

import asyncio
import copy
from typing import Dict, List, Optional, Tuple

import pytest

from client import ClusterClient
from errors import AlreadyExistsError
from metrics import ReconcileMetrics
from models import API_VERSION, KIND, DesiredState


class FakeClusterClient(ClusterClient):
    """
    In-memory cluster for reconcile tests.

    Every call yields to the event loop once so concurrent passes interleave.
    Owner references go through the real ClusterClient.set_owner_reference.
    """

    def __init__(self):
        super().__init__()
        self.objects: Dict[Tuple[str, str, str], dict] = {}
        self.get_calls: List[Tuple[str, str, str]] = []
        self.create_attempts: List[dict] = []
        self.conflicts: List[dict] = []
        self.read_errors: Dict[str, Exception] = {}
        self.create_errors: Dict[str, Exception] = {}
        # When set, creates wait on this event before touching state
        self.create_gate: Optional[asyncio.Event] = None
        self.pending_creates = 0

    def add_object(self, kind: str, obj: dict) -> None:
        metadata = obj["metadata"]
        self.objects[(kind, metadata["namespace"], metadata["name"])] = obj

    def has(self, kind: str, namespace: str, name: str) -> bool:
        return (kind, namespace, name) in self.objects

    def stored(self, kind: str, namespace: str, name: str) -> dict:
        return self.objects[(kind, namespace, name)]

    async def get(self, kind, namespace, name):
        self.get_calls.append((kind, namespace, name))
        await asyncio.sleep(0)
        if kind in self.read_errors:
            raise self.read_errors[kind]
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            return None, False
        return copy.deepcopy(obj), True

    async def create(self, obj):
        self.create_attempts.append(obj)
        self.pending_creates += 1
        if self.create_gate is not None:
            await self.create_gate.wait()
        await asyncio.sleep(0)

        kind = obj["kind"]
        namespace = obj["metadata"]["namespace"]
        name = obj["metadata"]["name"]
        if kind in self.create_errors:
            raise self.create_errors[kind]
        if (kind, namespace, name) in self.objects:
            self.conflicts.append(obj)
            raise AlreadyExistsError(
                f"{kind} {namespace}/{name} already exists",
                kind=kind,
                namespace=namespace,
                name=name,
            )
        self.objects[(kind, namespace, name)] = copy.deepcopy(obj)

    async def list_desired_states(self, namespace=None):
        return [
            copy.deepcopy(obj)
            for (kind, ns, _), obj in sorted(self.objects.items())
            if kind == KIND and (namespace is None or ns == namespace)
        ]

    def created_kinds(self) -> List[str]:
        return [obj["kind"] for obj in self.create_attempts]


def make_myapp(
    name: str = "demo",
    namespace: str = "default",
    image: str = "nginx:1.25",
    replicas: Optional[int] = 3,
    args: Optional[List[str]] = None,
    uid: Optional[str] = "0b7c1f52-6a5d-4c1e-9d3e-1f1f7a0e2c11",
) -> dict:
    """Build a MyApp custom object as the API would return it."""
    spec = {"image": image}
    if replicas is not None:
        spec["replicas"] = replicas
    if args is not None:
        spec["args"] = args
    metadata = {"name": name, "namespace": namespace}
    if uid is not None:
        metadata["uid"] = uid
    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": metadata,
        "spec": spec,
    }


@pytest.fixture
def fake_client():
    """Create an empty in-memory cluster."""
    return FakeClusterClient()


@pytest.fixture
def myapp_factory():
    """Factory for MyApp custom objects."""
    return make_myapp


@pytest.fixture
def myapp():
    """The default/demo MyApp object."""
    return make_myapp()


@pytest.fixture
def desired(myapp):
    """DesiredState parsed from the default/demo MyApp."""
    return DesiredState.from_object(myapp)


@pytest.fixture
def metrics():
    """Metrics on a fresh registry."""
    return ReconcileMetrics()

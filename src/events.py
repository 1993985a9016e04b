"""
Watch Events - Cluster change notifications and the keys they trigger.

A change to a MyApp triggers that MyApp. A change to a Deployment or
PodDisruptionBudget triggers the MyApp named by its controller owner
reference, if any.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from models import API_VERSION, KIND, ResourceKey

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of watch events."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass
class WatchEvent:
    """A single event from a watch stream."""

    event_type: EventType
    kind: str
    object: Dict[str, Any]

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.object.get("metadata") or {}

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get("resourceVersion")

    @classmethod
    def from_raw(cls, kind: str, raw: Dict[str, Any]) -> "WatchEvent":
        """
        Create an event from a raw watch stream entry.

        Args:
            kind: The kind being watched.
            raw: Entry yielded by ``Watch.stream``; typed objects carry their
                JSON form under ``raw_object``.

        Returns:
            A new WatchEvent instance.

        Raises:
            ValueError: If the event type is unknown.
        """
        obj = raw.get("raw_object")
        if obj is None:
            obj = raw.get("object")
        if not isinstance(obj, dict):
            obj = {}
        return cls(event_type=EventType(raw.get("type")), kind=kind, object=obj)


def controller_owner(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the owner reference marked as controller, if there is one."""
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None


def keys_for_event(event: WatchEvent) -> List[ResourceKey]:
    """
    Map a watch event onto the MyApp keys it should trigger.

    Args:
        event: The watch event.

    Returns:
        Zero or one keys.
    """
    if event.event_type in (EventType.ERROR, EventType.BOOKMARK):
        return []

    namespace = event.metadata.get("namespace")
    name = event.metadata.get("name")
    if not namespace or not name:
        return []

    if event.kind == KIND:
        return [ResourceKey(namespace=namespace, name=name)]

    owner = controller_owner(event.object)
    if owner is None:
        return []
    if owner.get("kind") != KIND or owner.get("apiVersion") != API_VERSION:
        return []
    return [ResourceKey(namespace=namespace, name=owner["name"])]

"""
Resource Models - The MyApp custom resource and identity types.

DesiredState is parsed from the MyApp custom object as stored in the cluster.
The controller never writes it back.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt, ValidationError, field_validator

from errors import InvalidDesiredState

# MyApp custom resource definition coordinates
GROUP = "example.com"
VERSION = "v1"
API_VERSION = f"{GROUP}/{VERSION}"
KIND = "MyApp"
PLURAL = "myapps"

# Child kinds, in the order the engine checks them
DEPLOYMENT = "Deployment"
DISRUPTION_BUDGET = "PodDisruptionBudget"


@dataclass(frozen=True)
class ResourceKey:
    """Namespace/name identity of a MyApp and of each of its children."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "ResourceKey":
        """
        Parse a ``namespace/name`` string.

        Raises:
            ValueError: If the value is not of the form namespace/name.
        """
        namespace, sep, name = value.partition("/")
        if not sep or not namespace or not name or "/" in name:
            raise ValueError(f"Expected namespace/name, got '{value}'")
        return cls(namespace=namespace, name=name)


class DesiredState(BaseModel):
    """Desired state declared by a MyApp object."""

    model_config = {"frozen": True}

    namespace: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    uid: Optional[str] = None
    image: str = Field(..., min_length=1, description="Container image reference")
    replicas: Optional[StrictInt] = Field(
        None, ge=0, description="Unset keeps the default"
    )
    args: List[str] = Field(default_factory=list)

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if v.strip() != v or " " in v:
            raise ValueError("image must not contain whitespace")
        return v

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(namespace=self.namespace, name=self.name)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "DesiredState":
        """
        Build a DesiredState from a MyApp custom object dict.

        Args:
            obj: The custom object as returned by the cluster API.

        Returns:
            The parsed DesiredState.

        Raises:
            InvalidDesiredState: If the object does not match the schema.
        """
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        try:
            return cls(
                namespace=metadata.get("namespace", ""),
                name=metadata.get("name", ""),
                uid=metadata.get("uid"),
                image=spec.get("image", ""),
                replicas=spec.get("replicas"),
                args=spec.get("args") or [],
            )
        except ValidationError as e:
            raise InvalidDesiredState(
                f"Invalid {KIND} {metadata.get('namespace')}/{metadata.get('name')}: "
                f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}",
                kind=KIND,
                namespace=metadata.get("namespace"),
                name=metadata.get("name"),
            )

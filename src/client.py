"""
Cluster Client - Typed get/create access to the Kubernetes API.

Wraps kubernetes_asyncio for the three kinds this controller touches: the
MyApp custom resource and its Deployment and PodDisruptionBudget children.
Reads distinguish "not found" from every other failure, and creates
distinguish "already exists" from every other failure.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from kubernetes_asyncio import client, config
from kubernetes_asyncio.client.api_client import ApiClient
from kubernetes_asyncio.client.exceptions import ApiException

from builder import owner_reference_for
from errors import (
    AlreadyExistsError,
    ClientCreateError,
    ClientReadError,
    OwnershipError,
)
from models import (
    DEPLOYMENT,
    DISRUPTION_BUDGET,
    GROUP,
    KIND,
    PLURAL,
    VERSION,
    DesiredState,
)

logger = logging.getLogger(__name__)


class ClusterClient:
    """Manages the Kubernetes API connection for the controller."""

    def __init__(self, kubeconfig: Optional[str] = None):
        self.kubeconfig = kubeconfig
        self.api_client: Optional[ApiClient] = None
        self.apps_v1: Optional[client.AppsV1Api] = None
        self.policy_v1: Optional[client.PolicyV1Api] = None
        self.custom_objects: Optional[client.CustomObjectsApi] = None

    async def connect(self) -> None:
        """
        Load cluster credentials and create the API clients.

        An explicit kubeconfig path wins; otherwise the in-cluster service
        account is tried before the default kubeconfig.
        """
        if self.kubeconfig:
            await config.load_kube_config(config_file=self.kubeconfig)
            source = self.kubeconfig
        else:
            try:
                config.load_incluster_config()
                source = "in-cluster"
            except config.ConfigException:
                await config.load_kube_config()
                source = "default kubeconfig"

        self.api_client = ApiClient()
        self.apps_v1 = client.AppsV1Api(self.api_client)
        self.policy_v1 = client.PolicyV1Api(self.api_client)
        self.custom_objects = client.CustomObjectsApi(self.api_client)
        logger.info(f"Connected to Kubernetes API ({source})")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self.api_client:
            await self.api_client.close()
            self.api_client = None
            logger.info("Closed Kubernetes API connection")

    def _ensure_connected(self) -> None:
        """Ensure the API clients have been created."""
        if self.api_client is None:
            raise RuntimeError(
                "Cluster client not connected. Call connect() before performing operations."
            )

    def _to_dict(self, obj: Any) -> Dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    # ==================== Reads ====================

    def _reader(self, kind: str) -> Callable:
        if kind == KIND:

            async def read_custom_object(name, namespace):
                return await self.custom_objects.get_namespaced_custom_object(
                    GROUP, VERSION, namespace, PLURAL, name
                )

            return read_custom_object
        if kind == DEPLOYMENT:
            return self.apps_v1.read_namespaced_deployment
        if kind == DISRUPTION_BUDGET:
            return self.policy_v1.read_namespaced_pod_disruption_budget
        raise ValueError(f"Unsupported kind: {kind}")

    async def get(
        self, kind: str, namespace: str, name: str
    ) -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Read an object.

        Args:
            kind: One of MyApp, Deployment, PodDisruptionBudget.
            namespace: Object namespace.
            name: Object name.

        Returns:
            Tuple of (object dict, found). A 404 yields (None, False).

        Raises:
            ClientReadError: On any API failure other than 404.
        """
        self._ensure_connected()
        reader = self._reader(kind)
        try:
            obj = await reader(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None, False
            raise ClientReadError(
                f"Failed to read {kind} {namespace}/{name}: {e.status} {e.reason}",
                kind=kind,
                namespace=namespace,
                name=name,
            ) from e
        except Exception as e:
            raise ClientReadError(
                f"Failed to read {kind} {namespace}/{name}: {e}",
                kind=kind,
                namespace=namespace,
                name=name,
            ) from e
        return self._to_dict(obj), True

    async def list_desired_states(
        self, namespace: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        List MyApp objects in one namespace, or in all namespaces.

        Raises:
            ClientReadError: If the list call fails.
        """
        self._ensure_connected()
        try:
            if namespace:
                result = await self.custom_objects.list_namespaced_custom_object(
                    GROUP, VERSION, namespace, PLURAL
                )
            else:
                result = await self.custom_objects.list_cluster_custom_object(
                    GROUP, VERSION, PLURAL
                )
        except ApiException as e:
            raise ClientReadError(
                f"Failed to list {KIND}: {e.status} {e.reason}",
                kind=KIND,
                namespace=namespace,
            ) from e
        return result.get("items", [])

    def list_function(
        self, kind: str, namespace: Optional[str] = None
    ) -> Tuple[Callable, tuple]:
        """
        Return the list call and its positional arguments for watching a kind.

        Args:
            kind: One of MyApp, Deployment, PodDisruptionBudget.
            namespace: Limit to one namespace; None watches all namespaces.

        Returns:
            Tuple of (list function, args) suitable for ``Watch.stream``.
        """
        self._ensure_connected()
        if kind == KIND:
            if namespace:
                return (
                    self.custom_objects.list_namespaced_custom_object,
                    (GROUP, VERSION, namespace, PLURAL),
                )
            return self.custom_objects.list_cluster_custom_object, (
                GROUP,
                VERSION,
                PLURAL,
            )
        if kind == DEPLOYMENT:
            if namespace:
                return self.apps_v1.list_namespaced_deployment, (namespace,)
            return self.apps_v1.list_deployment_for_all_namespaces, ()
        if kind == DISRUPTION_BUDGET:
            if namespace:
                return self.policy_v1.list_namespaced_pod_disruption_budget, (
                    namespace,
                )
            return self.policy_v1.list_pod_disruption_budget_for_all_namespaces, ()
        raise ValueError(f"Unsupported kind: {kind}")

    # ==================== Writes ====================

    async def create(self, obj: Dict[str, Any]) -> None:
        """
        Create a child object.

        Args:
            obj: A Deployment or PodDisruptionBudget manifest.

        Raises:
            AlreadyExistsError: If the API answers 409 Conflict.
            ClientCreateError: On any other failure.
        """
        self._ensure_connected()
        kind = obj.get("kind")
        metadata = obj.get("metadata", {})
        namespace = metadata.get("namespace")
        name = metadata.get("name")

        if kind == DEPLOYMENT:
            creator = self.apps_v1.create_namespaced_deployment
        elif kind == DISRUPTION_BUDGET:
            creator = self.policy_v1.create_namespaced_pod_disruption_budget
        else:
            raise ClientCreateError(
                f"Unsupported kind for create: {kind}",
                kind=kind,
                namespace=namespace,
                name=name,
            )

        try:
            await creator(namespace, obj)
        except ApiException as e:
            if e.status == 409:
                raise AlreadyExistsError(
                    f"{kind} {namespace}/{name} already exists",
                    kind=kind,
                    namespace=namespace,
                    name=name,
                ) from e
            raise ClientCreateError(
                f"Failed to create {kind} {namespace}/{name}: {e.status} {e.reason}",
                kind=kind,
                namespace=namespace,
                name=name,
            ) from e
        except Exception as e:
            raise ClientCreateError(
                f"Failed to create {kind} {namespace}/{name}: {e}",
                kind=kind,
                namespace=namespace,
                name=name,
            ) from e
        logger.info(f"Created {kind} {namespace}/{name}")

    def set_owner_reference(self, owner: DesiredState, child: Dict[str, Any]) -> None:
        """
        Record ``owner`` as the controller of ``child``.

        The reference is stored on the child manifest as identity fields
        (apiVersion, kind, name, uid); an existing reference to the same
        owner is replaced.

        Raises:
            OwnershipError: If the owner has no uid, lives in another
                namespace, or the child is controlled by a different owner.
        """
        metadata = child.setdefault("metadata", {})
        child_kind = child.get("kind")
        if not owner.uid:
            raise OwnershipError(
                f"{KIND} {owner.key} has no uid",
                kind=child_kind,
                namespace=owner.namespace,
                name=metadata.get("name"),
            )
        if metadata.get("namespace", owner.namespace) != owner.namespace:
            raise OwnershipError(
                f"Cross-namespace owner references are not allowed: "
                f"{owner.key} cannot own {metadata.get('namespace')}/{metadata.get('name')}",
                kind=child_kind,
                namespace=metadata.get("namespace"),
                name=metadata.get("name"),
            )

        refs = [
            ref
            for ref in metadata.get("ownerReferences") or []
            if ref.get("uid") != owner.uid
        ]
        for ref in refs:
            if ref.get("controller"):
                raise OwnershipError(
                    f"{child_kind} {owner.namespace}/{metadata.get('name')} is already "
                    f"controlled by {ref.get('kind')} {ref.get('name')}",
                    kind=child_kind,
                    namespace=owner.namespace,
                    name=metadata.get("name"),
                )
        refs.append(owner_reference_for(owner))
        metadata["ownerReferences"] = refs

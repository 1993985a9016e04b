"""
Resource Builder - Child manifests owned by a MyApp.

Pure functions: no I/O, and each call returns freshly built dicts so callers
may mutate the result (e.g. to attach owner references) without affecting
later builds.
"""

from typing import Any, Dict

from models import API_VERSION, DEPLOYMENT, DISRUPTION_BUDGET, KIND, DesiredState

# Static resource policy applied to every workload container
RESOURCE_REQUESTS = {"cpu": "100m", "memory": "128Mi"}
RESOURCE_LIMITS = {"cpu": "200m", "memory": "256Mi"}

MAX_UNAVAILABLE = 1


def labels_for(name: str) -> Dict[str, str]:
    """Return the labels that select the pods belonging to a MyApp."""
    return {"app": name}


def _metadata(desired: DesiredState) -> Dict[str, Any]:
    return {"name": desired.name, "namespace": desired.namespace}


def build_deployment(desired: DesiredState) -> Dict[str, Any]:
    """
    Build the Deployment manifest for a MyApp.

    Replicas are passed through unchanged; when unset the field is omitted
    and the cluster default applies.

    Args:
        desired: The MyApp desired state.

    Returns:
        An ``apps/v1`` Deployment manifest.
    """
    container: Dict[str, Any] = {
        "name": desired.name,
        "image": desired.image,
        "resources": {
            "requests": dict(RESOURCE_REQUESTS),
            "limits": dict(RESOURCE_LIMITS),
        },
    }
    if desired.args:
        container["args"] = list(desired.args)

    spec: Dict[str, Any] = {
        "selector": {"matchLabels": labels_for(desired.name)},
        "template": {
            "metadata": {"labels": labels_for(desired.name)},
            "spec": {"containers": [container]},
        },
    }
    if desired.replicas is not None:
        spec["replicas"] = desired.replicas

    return {
        "apiVersion": "apps/v1",
        "kind": DEPLOYMENT,
        "metadata": _metadata(desired),
        "spec": spec,
    }


def build_disruption_budget(desired: DesiredState) -> Dict[str, Any]:
    """
    Build the PodDisruptionBudget manifest for a MyApp.

    Args:
        desired: The MyApp desired state.

    Returns:
        A ``policy/v1`` PodDisruptionBudget manifest.
    """
    return {
        "apiVersion": "policy/v1",
        "kind": DISRUPTION_BUDGET,
        "metadata": _metadata(desired),
        "spec": {
            "maxUnavailable": MAX_UNAVAILABLE,
            "selector": {"matchLabels": labels_for(desired.name)},
        },
    }


def owner_reference_for(desired: DesiredState) -> Dict[str, Any]:
    """Return the controller owner reference pointing at a MyApp."""
    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "name": desired.name,
        "uid": desired.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


BUILDERS = {
    DEPLOYMENT: build_deployment,
    DISRUPTION_BUDGET: build_disruption_budget,
}

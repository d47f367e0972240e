"""Kubernetes API access for the orchestrator.

``YaksClient`` bundles the typed API objects the orchestrator needs and the
one-time cluster flavor check. Components receive a client instance and only
touch the API through it, which keeps them testable with mocked APIs.

Example:
    >>> client = YaksClient.from_kubeconfig(context="kind-yaks")
    >>> client.flavor
    <ClusterFlavor.GENERIC: 'Kubernetes'>
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes import utils as k8s_utils
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from yaks_core.errors import ResourceError

OPENSHIFT_PROJECT_GROUP = "project.openshift.io"
DEFAULT_NAMESPACE = "default"


class ClusterFlavor(str, Enum):
    """Cluster flavor, selecting how namespaces are created and removed."""

    GENERIC = "Kubernetes"
    PROJECT_BASED = "OpenShift"


class YaksClient:
    """Typed Kubernetes API access plus cluster capability probing.

    Attributes:
        api_client: Underlying kubernetes ApiClient.
        core: CoreV1Api (namespaces, pods, logs).
        custom: CustomObjectsApi (Test, Instance, ProjectRequest, Route).
        apis: ApisApi used for the capability check.
        namespace: Default namespace of the invocation.
    """

    def __init__(
        self,
        api_client: Any = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        core: Any = None,
        custom: Any = None,
        apis: Any = None,
    ) -> None:
        self.api_client = api_client
        self.namespace = namespace
        self.core = core if core is not None else k8s_client.CoreV1Api(api_client)
        self.custom = custom if custom is not None else k8s_client.CustomObjectsApi(api_client)
        self.apis = apis if apis is not None else k8s_client.ApisApi(api_client)
        self._flavor: ClusterFlavor | None = None

    @classmethod
    def from_kubeconfig(
        cls,
        kubeconfig: Path | None = None,
        context: str | None = None,
        namespace: str | None = None,
    ) -> YaksClient:
        """Load cluster credentials and build a client.

        Attempts to load configuration in this order:
        1. Explicit kubeconfig path
        2. Default kubeconfig (~/.kube/config) when a context is named
        3. In-cluster configuration
        4. Default kubeconfig

        The default namespace comes from ``namespace`` or the active
        kubeconfig context.

        Raises:
            ResourceError: If no usable configuration is found.
        """
        try:
            if kubeconfig:
                k8s_config.load_kube_config(config_file=str(kubeconfig), context=context)
            elif context:
                k8s_config.load_kube_config(context=context)
            else:
                try:
                    k8s_config.load_incluster_config()
                except k8s_config.ConfigException:
                    k8s_config.load_kube_config()
        except (k8s_config.ConfigException, OSError) as e:
            raise ResourceError(
                "load", "kubeconfig", reason="ConfigException", detail=str(e)
            ) from e

        resolved = namespace or _context_namespace(kubeconfig, context) or DEFAULT_NAMESPACE
        return cls(k8s_client.ApiClient(), namespace=resolved)

    @property
    def flavor(self) -> ClusterFlavor:
        """Cluster flavor, checked once per client."""
        if self._flavor is None:
            self._flavor = self._detect_flavor()
        return self._flavor

    def _detect_flavor(self) -> ClusterFlavor:
        try:
            groups = self.apis.get_api_versions().groups or []
        except ApiException as e:
            raise ResourceError.from_api_exception(e, "list", "APIGroup") from e
        except TransportError as e:
            raise ResourceError.from_transport_error(e, "list", "APIGroup") from e
        if any(group.name == OPENSHIFT_PROJECT_GROUP for group in groups):
            return ClusterFlavor.PROJECT_BASED
        return ClusterFlavor.GENERIC

    def apply_manifest(self, document: dict[str, Any], namespace: str | None = None) -> bool:
        """Create a single manifest document, tolerating "already exists".

        Returns:
            True if the object was created, False if it already existed.

        Raises:
            ResourceError: On any other API failure.
        """
        kind = document.get("kind", "object")
        name = document.get("metadata", {}).get("name", "")
        try:
            k8s_utils.create_from_dict(self.api_client, document, namespace=namespace)
        except k8s_utils.FailToCreateError as e:
            failures = [exc for exc in e.api_exceptions if getattr(exc, "status", None) != 409]
            if failures:
                raise ResourceError.from_api_exception(failures[0], "create", kind, name) from e
            return False
        except TransportError as e:
            raise ResourceError.from_transport_error(e, "create", kind, name) from e
        return True


def _context_namespace(kubeconfig: Path | None, context: str | None) -> str | None:
    try:
        contexts, active = k8s_config.list_kube_config_contexts(
            config_file=str(kubeconfig) if kubeconfig else None
        )
    except (k8s_config.ConfigException, OSError):
        return None

    selected = active
    if context:
        selected = next((c for c in contexts if c.get("name") == context), active)
    if not selected:
        return None
    return selected.get("context", {}).get("namespace")


def is_not_found(exc: ApiException) -> bool:
    """Return True for HTTP 404 API errors."""
    return exc.status == 404


def is_already_exists(exc: ApiException) -> bool:
    """Return True for HTTP 409 errors raised by a create call."""
    return exc.status == 409


__all__ = [
    "ClusterFlavor",
    "DEFAULT_NAMESPACE",
    "YaksClient",
    "is_already_exists",
    "is_not_found",
]

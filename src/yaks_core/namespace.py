"""Ephemeral namespace lifecycle.

Temporary namespaces are created with a unique ``yaks-<uuid>`` name. The
creation strategy depends on the cluster flavor: a core ``Namespace`` on
generic Kubernetes, a ``ProjectRequest`` on project-based (OpenShift)
clusters. Removal failures are only logged; a leaked namespace is accepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import IO, TYPE_CHECKING

import click
from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from yaks_core.cluster import ClusterFlavor
from yaks_core.errors import ResourceError
from yaks_core.naming import temporary_namespace_name

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from yaks_core.cluster import YaksClient
    from yaks_core.schemas.run_config import RunConfig

PROJECT_GROUP = "project.openshift.io"
PROJECT_VERSION = "v1"


@dataclass(frozen=True)
class NamespaceHandle:
    """A namespace the run executes in.

    Attributes:
        name: Namespace name.
        temporary: True if the namespace was created for this run.
        flavor: Strategy used to create it (None if nothing was created).
    """

    name: str
    temporary: bool = False
    flavor: ClusterFlavor | None = None


class _GenericStrategy:
    """Core v1 Namespace objects."""

    def create(self, client: YaksClient, name: str) -> None:
        body = k8s_client.V1Namespace(metadata=k8s_client.V1ObjectMeta(name=name))
        client.core.create_namespace(body=body)

    def delete(self, client: YaksClient, name: str) -> None:
        client.core.delete_namespace(name=name)


class _ProjectStrategy:
    """OpenShift ProjectRequest / Project objects."""

    def create(self, client: YaksClient, name: str) -> None:
        body = {
            "apiVersion": f"{PROJECT_GROUP}/{PROJECT_VERSION}",
            "kind": "ProjectRequest",
            "metadata": {"name": name},
        }
        client.custom.create_cluster_custom_object(
            group=PROJECT_GROUP,
            version=PROJECT_VERSION,
            plural="projectrequests",
            body=body,
        )

    def delete(self, client: YaksClient, name: str) -> None:
        client.custom.delete_cluster_custom_object(
            group=PROJECT_GROUP,
            version=PROJECT_VERSION,
            plural="projects",
            name=name,
        )


_STRATEGIES = {
    ClusterFlavor.GENERIC: _GenericStrategy(),
    ClusterFlavor.PROJECT_BASED: _ProjectStrategy(),
}


class NamespaceManager:
    """Creates and removes the namespaces test runs execute in."""

    def __init__(
        self,
        client: YaksClient,
        logger: FilteringBoundLogger,
        out: IO[str] | None = None,
    ) -> None:
        self._client = client
        self._logger = logger
        self._out = out

    def ensure_namespace(self, config: RunConfig, *, dry_run: bool = False) -> NamespaceHandle:
        """Return the namespace for ``config``, creating a temporary one if requested.

        Args:
            config: Resolved run configuration.
            dry_run: Generate the temporary name without creating anything.

        Returns:
            Handle of the namespace to run in.

        Raises:
            ResourceError: If the temporary namespace cannot be created.
        """
        if not config.config.namespace.temporary:
            return NamespaceHandle(name=config.namespace)

        name = temporary_namespace_name()
        if dry_run:
            return NamespaceHandle(name=name)

        flavor = self._client.flavor
        click.echo(f"Creating new test namespace {name}", file=self._out)
        self._logger.info("namespace.creating", namespace=name, flavor=flavor.value)
        try:
            _STRATEGIES[flavor].create(self._client, name)
        except ApiException as e:
            self._logger.error("namespace.create_failed", namespace=name, status=e.status)
            raise ResourceError.from_api_exception(e, "create", "Namespace", name) from e
        except TransportError as e:
            self._logger.error("namespace.create_failed", namespace=name, error=str(e))
            raise ResourceError.from_transport_error(e, "create", "Namespace", name) from e

        self._logger.info("namespace.created", namespace=name)
        return NamespaceHandle(name=name, temporary=True, flavor=flavor)

    def remove_namespace(self, handle: NamespaceHandle) -> bool:
        """Delete a temporary namespace.

        Failures are logged as warnings and never raised.

        Returns:
            True if the namespace was deleted.
        """
        if not handle.temporary or handle.flavor is None:
            return False

        try:
            _STRATEGIES[handle.flavor].delete(self._client, handle.name)
        except (ApiException, TransportError) as e:
            self._logger.warning("namespace.remove_failed", namespace=handle.name, error=str(e))
            click.echo(f"WARN: Failed to AutoRemove namespace {handle.name}", err=True)
            return False

        click.echo(f"AutoRemove namespace {handle.name}", file=self._out)
        self._logger.info("namespace.removed", namespace=handle.name)
        return True


__all__ = ["NamespaceHandle", "NamespaceManager"]

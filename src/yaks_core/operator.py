"""Operator bootstrapping for temporary namespaces.

A temporary namespace needs a YAKS operator that reconciles its Test
resources. A global operator anywhere in the cluster is reused; otherwise a
namespace-local operator is installed from the manifests shipped under
``yaks_core/deploy``.

Example:
    >>> bootstrapper = OperatorBootstrapper(client, logger)
    >>> bootstrapper.ensure_operator(config)
    False
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from yaks_core.cluster import is_already_exists, is_not_found
from yaks_core.config import resolve_path
from yaks_core.errors import ConfigError, ResourceError
from yaks_core.schemas.test import (
    GROUP,
    INSTANCE_KIND,
    INSTANCE_NAME,
    INSTANCE_PLURAL,
    VERSION,
    Instance,
    InstanceSpec,
    ObjectMeta,
    OperatorSpec,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from yaks_core.cluster import YaksClient
    from yaks_core.schemas.run_config import RunConfig

DEPLOY_DIR = Path(__file__).parent / "deploy"
DEFAULT_OPERATOR_IMAGE = "docker.io/citrusframework/yaks:0.1.0"

# Cluster-scoped resources first, the Deployment last.
CLUSTER_MANIFESTS = ("crd_test.yaml", "crd_instance.yaml", "user_cluster_role.yaml")
NAMESPACED_MANIFESTS = (
    "service_account.yaml",
    "role.yaml",
    "role_binding.yaml",
    "operator.yaml",
)


def load_manifest(name: str) -> list[dict[str, Any]]:
    """Load the YAML documents of a bundled manifest."""
    with (DEPLOY_DIR / name).open(encoding="utf-8") as f:
        return [doc for doc in yaml.safe_load_all(f) if doc]


class OperatorBootstrapper:
    """Makes sure an operator instance reconciles a namespace.

    Attributes:
        operator_image: Container image of a namespace-local operator.
    """

    def __init__(
        self,
        client: YaksClient,
        logger: FilteringBoundLogger,
        operator_image: str = DEFAULT_OPERATOR_IMAGE,
    ) -> None:
        self._client = client
        self._logger = logger
        self.operator_image = operator_image

    def ensure_operator(self, config: RunConfig) -> bool:
        """Install a namespace-local operator unless a usable one exists.

        Args:
            config: Run configuration targeting the temporary namespace.

        Returns:
            True if an operator was installed, False if an existing global
            operator covers the namespace.

        Raises:
            ResourceError: On any API failure other than NotFound.
            ConfigError: If an operator role file cannot be read.
        """
        instance = self.find_instance(self._client.namespace)
        if instance is not None:
            if instance.is_global:
                self._logger.debug("operator.global_found", namespace=self._client.namespace)
                return False
        else:
            instances = self.list_instances()
            for candidate in instances:
                if candidate.is_global:
                    self._logger.debug(
                        "operator.global_found", namespace=candidate.metadata.namespace
                    )
                    return False
            if not instances:
                self._logger.info("operator.not_found", namespace=config.namespace)

        roles = [resolve_path(config, role) for role in config.config.operator.roles]
        self.install_operator(config.namespace, roles)
        return True

    def find_instance(self, namespace: str) -> Instance | None:
        """Return the ``yaks`` Instance of ``namespace``, or None if absent.

        Raises:
            ResourceError: On any API failure other than NotFound.
        """
        try:
            obj = self._client.custom.get_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=namespace,
                plural=INSTANCE_PLURAL,
                name=INSTANCE_NAME,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise ResourceError.from_api_exception(e, "get", INSTANCE_KIND, INSTANCE_NAME) from e
        except TransportError as e:
            raise ResourceError.from_transport_error(e, "get", INSTANCE_KIND, INSTANCE_NAME) from e
        return Instance.model_validate(obj)

    def list_instances(self) -> list[Instance]:
        """Return the Instances of all namespaces.

        Raises:
            ResourceError: If the instances cannot be listed.
        """
        try:
            result = self._client.custom.list_cluster_custom_object(
                group=GROUP,
                version=VERSION,
                plural=INSTANCE_PLURAL,
            )
        except ApiException as e:
            raise ResourceError.from_api_exception(e, "list", INSTANCE_KIND) from e
        except TransportError as e:
            raise ResourceError.from_transport_error(e, "list", INSTANCE_KIND) from e
        return [Instance.model_validate(item) for item in result.get("items", [])]

    def install_operator(self, namespace: str, roles: list[str] | None = None) -> None:
        """Install a namespace-local operator.

        Every step tolerates already existing resources so repeated installs
        are safe.

        Args:
            namespace: Namespace to install into.
            roles: Paths of additional Role/RoleBinding manifests.

        Raises:
            ResourceError: If a resource cannot be created.
            ConfigError: If a role file cannot be read.
        """
        flavor = self._client.flavor
        self._logger.info("operator.installing", namespace=namespace, flavor=flavor.value)

        for name in CLUSTER_MANIFESTS:
            for doc in load_manifest(name):
                self._client.apply_manifest(doc)

        for name in NAMESPACED_MANIFESTS:
            for doc in load_manifest(name):
                self._client.apply_manifest(
                    self._customize(doc, namespace, flavor.value), namespace=namespace
                )

        self._create_instance(namespace)

        for role in roles or []:
            for doc in self._load_role(role):
                self._client.apply_manifest(doc, namespace=namespace)
                self._logger.debug("operator.role_applied", namespace=namespace, role=role)

        self._logger.info("operator.installed", namespace=namespace)

    def _customize(self, doc: dict[str, Any], namespace: str, cluster_type: str) -> dict[str, Any]:
        doc = copy.deepcopy(doc)
        kind = doc.get("kind")
        if kind == "RoleBinding":
            for subject in doc.get("subjects", []):
                if subject.get("kind") == "ServiceAccount":
                    subject["namespace"] = namespace
        elif kind == "Deployment":
            containers = doc["spec"]["template"]["spec"]["containers"]
            for container in containers:
                container["image"] = self.operator_image
                env = container.setdefault("env", [])
                env.append({"name": "YAKS_CLUSTER_TYPE", "value": cluster_type})
        return doc

    def _create_instance(self, namespace: str) -> None:
        instance = Instance(
            metadata=ObjectMeta(name=INSTANCE_NAME, namespace=namespace),
            spec=InstanceSpec(operator=OperatorSpec(global_=False, namespace=namespace)),
        )
        try:
            self._client.custom.create_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=namespace,
                plural=INSTANCE_PLURAL,
                body=instance.to_body(),
            )
        except ApiException as e:
            if not is_already_exists(e):
                raise ResourceError.from_api_exception(
                    e, "create", INSTANCE_KIND, INSTANCE_NAME
                ) from e
        except TransportError as e:
            raise ResourceError.from_transport_error(
                e, "create", INSTANCE_KIND, INSTANCE_NAME
            ) from e

    def _load_role(self, path: str) -> list[dict[str, Any]]:
        try:
            with open(path, encoding="utf-8") as f:
                return [doc for doc in yaml.safe_load_all(f) if doc]
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load operator role: {e}", path=path) from e


__all__ = ["DEFAULT_OPERATOR_IMAGE", "OperatorBootstrapper", "load_manifest"]

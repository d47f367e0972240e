"""Shared fixtures for yaks-core unit tests.

The Kubernetes API is never contacted: ``mock_client`` is a real
``YaksClient`` whose CoreV1Api, CustomObjectsApi and ApisApi are MagicMocks.

Fixtures:
    - logger: MagicMock standing in for the bound structlog logger
    - out: StringIO capturing user-facing output
    - mock_client: YaksClient with mocked APIs (generic Kubernetes flavor)
    - api_exception: Factory for kubernetes ApiException instances
"""

from __future__ import annotations

import io
import json
from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException

from yaks_core.cluster import YaksClient


@pytest.fixture
def logger() -> MagicMock:
    """Create a mocked bound logger.

    Returns:
        MagicMock accepting ``debug/info/warning/error`` events.
    """
    return MagicMock()


@pytest.fixture
def out() -> io.StringIO:
    """Capture user-facing output."""
    return io.StringIO()


@pytest.fixture
def mock_client() -> YaksClient:
    """Create a YaksClient with mocked APIs on a generic Kubernetes cluster.

    Returns:
        YaksClient whose ``core``, ``custom`` and ``apis`` are MagicMocks.
    """
    apis = MagicMock()
    apis.get_api_versions.return_value = SimpleNamespace(
        groups=[SimpleNamespace(name="apps"), SimpleNamespace(name="yaks.dev")]
    )
    return YaksClient(
        MagicMock(),
        namespace="default",
        core=MagicMock(),
        custom=MagicMock(),
        apis=apis,
    )


@pytest.fixture
def openshift_client(mock_client: YaksClient) -> YaksClient:
    """Create a YaksClient that detects a project-based (OpenShift) cluster."""
    mock_client.apis.get_api_versions.return_value = SimpleNamespace(
        groups=[SimpleNamespace(name="project.openshift.io")]
    )
    return mock_client


@pytest.fixture
def api_exception() -> Callable[..., ApiException]:
    """Factory for ApiException with a Kubernetes Status body.

    Example:
        >>> exc = api_exception(409, "AlreadyExists")
        >>> exc.status
        409
    """

    def _make(status: int, reason: str = "Error", message: str = "") -> ApiException:
        exc = ApiException(status=status, reason=reason)
        exc.body = json.dumps(
            {"kind": "Status", "status": "Failure", "reason": reason, "message": message}
        )
        return exc

    return _make

"""Test and Instance custom resource models (``yaks.dev/v1alpha1``).

The cluster holds the canonical copy of a Test; the models here are request
and observation snapshots. ``to_body()`` renders the wire representation with
unset fields omitted.

Example:
    >>> test = Test.new("default", "hello", SourceSpec(name="hello.feature", content="..."))
    >>> test.to_body()["kind"]
    'Test'
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from yaks_core.schemas.results import TestSuite

GROUP = "yaks.dev"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"
TEST_KIND = "Test"
TEST_PLURAL = "tests"
INSTANCE_KIND = "Instance"
INSTANCE_PLURAL = "instances"
INSTANCE_NAME = "yaks"
LANGUAGE_GHERKIN = "feature"

_MODEL_CONFIG = ConfigDict(
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


class TestPhase(str, Enum):
    """Lifecycle phase of a Test resource.

    ``UPDATING`` is set only by this client while re-applying a test.
    """

    __test__ = False

    NONE = ""
    NEW = "New"
    UPDATING = "Updating"
    RUNNING = "Running"
    PASSED = "Passed"
    FAILED = "Failed"
    ERROR = "Error"
    DELETING = "Deleting"

    @property
    def is_terminal(self) -> bool:
        """Return True if no further controller transition is expected."""
        return self in _TERMINAL_PHASES

    def as_error(self, name: str) -> str | None:
        """Return the failure message for phases that signal a failed test."""
        if self in (TestPhase.FAILED, TestPhase.ERROR):
            return f"Test '{name}' finished with status: {self.value}"
        return None


_TERMINAL_PHASES = frozenset(
    {TestPhase.PASSED, TestPhase.FAILED, TestPhase.ERROR, TestPhase.DELETING}
)


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata used by this client."""

    model_config = _MODEL_CONFIG

    name: str
    namespace: str | None = None
    resource_version: str | None = None


class SourceSpec(BaseModel):
    """Test source (feature file) content."""

    model_config = _MODEL_CONFIG

    name: str
    content: str
    language: str = LANGUAGE_GHERKIN


class ResourceSpec(BaseModel):
    """Additional file made available to the test runtime."""

    model_config = _MODEL_CONFIG

    name: str
    content: str


class SettingsSpec(BaseModel):
    """Runtime settings file."""

    model_config = _MODEL_CONFIG

    name: str
    content: str


class SeleniumSpec(BaseModel):
    """Selenium sidecar."""

    model_config = _MODEL_CONFIG

    image: str


class KubeDockSpec(BaseModel):
    """KubeDock sidecar used for Testcontainers support."""

    model_config = _MODEL_CONFIG

    image: str


class TestSpec(BaseModel):
    """Desired state of a Test."""

    __test__ = False

    model_config = _MODEL_CONFIG

    source: SourceSpec
    resources: list[ResourceSpec] | None = None
    settings: SettingsSpec | None = None
    env: list[str] | None = None
    secret: str | None = None
    selenium: SeleniumSpec | None = None
    kubedock: KubeDockSpec | None = None
    dev: bool | None = None


class TestStatus(BaseModel):
    """Observed state of a Test, written by the controller."""

    __test__ = False

    model_config = _MODEL_CONFIG

    phase: TestPhase = TestPhase.NONE
    results: TestSuite | None = None
    errors: str | None = None

    @field_validator("phase", mode="before")
    @classmethod
    def unknown_phase_as_none(cls, value: Any) -> Any:
        """Treat a missing or unrecognised phase as NONE."""
        if value is None:
            return TestPhase.NONE
        if isinstance(value, str) and value not in {p.value for p in TestPhase}:
            return TestPhase.NONE
        return value


class Test(BaseModel):
    """A ``yaks.dev/v1alpha1`` Test resource."""

    __test__ = False

    model_config = _MODEL_CONFIG

    api_version: str = API_VERSION
    kind: str = TEST_KIND
    metadata: ObjectMeta
    spec: TestSpec
    status: TestStatus | None = None

    @classmethod
    def new(cls, namespace: str, name: str, source: SourceSpec) -> Test:
        """Create a request snapshot for ``(namespace, name)``."""
        return cls(
            metadata=ObjectMeta(name=name, namespace=namespace),
            spec=TestSpec(source=source),
        )

    @property
    def name(self) -> str:
        """Resource name."""
        return self.metadata.name

    @property
    def namespace(self) -> str:
        """Resource namespace."""
        return self.metadata.namespace or ""

    @property
    def phase(self) -> TestPhase:
        """Current phase (NONE when no status was observed)."""
        return self.status.phase if self.status else TestPhase.NONE

    def to_body(self) -> dict[str, Any]:
        """Render the wire representation (camelCase keys, unset fields omitted)."""
        body = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if self.status is not None:
            body["status"] = self.status.model_dump(
                by_alias=True, exclude_none=True, exclude_defaults=True, mode="json"
            )
        return body


class OperatorSpec(BaseModel):
    """Operator settings of an Instance."""

    model_config = _MODEL_CONFIG

    global_: bool = Field(default=False, alias="global")
    namespace: str | None = None


class InstanceSpec(BaseModel):
    """Desired state of an Instance."""

    model_config = _MODEL_CONFIG

    operator: OperatorSpec = Field(default_factory=OperatorSpec)


class Instance(BaseModel):
    """A deployed YAKS operator (``yaks.dev/v1alpha1`` Instance)."""

    model_config = _MODEL_CONFIG

    api_version: str = API_VERSION
    kind: str = INSTANCE_KIND
    metadata: ObjectMeta
    spec: InstanceSpec = Field(default_factory=InstanceSpec)

    @property
    def is_global(self) -> bool:
        """Return True if this operator manages all namespaces."""
        return self.spec.operator.global_

    def to_body(self) -> dict[str, Any]:
        """Render the wire representation."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


__all__ = [
    "API_VERSION",
    "GROUP",
    "INSTANCE_KIND",
    "INSTANCE_NAME",
    "INSTANCE_PLURAL",
    "LANGUAGE_GHERKIN",
    "TEST_KIND",
    "TEST_PLURAL",
    "VERSION",
    "Instance",
    "InstanceSpec",
    "KubeDockSpec",
    "ObjectMeta",
    "OperatorSpec",
    "ResourceSpec",
    "SeleniumSpec",
    "SettingsSpec",
    "SourceSpec",
    "Test",
    "TestPhase",
    "TestSpec",
    "TestStatus",
]

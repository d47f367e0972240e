"""Run configuration models (``yaks-config.yaml``).

The configuration is loaded once per source and never mutated in place;
the coordinator derives updated copies (e.g. once a temporary namespace
has been created) with ``model_copy``.

Example:
    >>> config = RunConfig.model_validate(
    ...     {"config": {"namespace": {"temporary": True}}, "pre": [{"run": "echo hi"}]}
    ... )
    >>> config.config.namespace.auto_remove
    True
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel

from yaks_core.conditions import Predicate, parse_condition

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


class StepConfig(BaseModel):
    """A single pre/post lifecycle step.

    Attributes:
        name: Step name used in output.
        script: Path of a script file to execute (relative to the base dir).
        run: Inline, possibly multi-line, shell command text.
        if_: Conjunctive condition (``os=linux && env:FOO=bar``).
        timeout: Go-style duration bounding the step (default: 30m).
    """

    model_config = _MODEL_CONFIG

    name: str = ""
    script: str = ""
    run: str = ""
    if_: str = Field(default="", alias="if")
    timeout: str = ""

    _condition: tuple[Predicate, ...] = PrivateAttr(default=())

    @model_validator(mode="after")
    def _parse_condition(self) -> StepConfig:
        """Parse the ``if`` text; an unsupported clause fails validation."""
        self._condition = parse_condition(self.if_)
        return self

    @property
    def condition(self) -> tuple[Predicate, ...]:
        """Predicates that must all hold for the step to run."""
        return self._condition


class NamespaceConfig(BaseModel):
    """Target namespace settings."""

    model_config = _MODEL_CONFIG

    name: str = ""
    temporary: bool = False
    auto_remove: bool = True
    recursive: bool = False


class OperatorConfig(BaseModel):
    """Additional operator permissions."""

    model_config = _MODEL_CONFIG

    roles: tuple[str, ...] = ()


class EnvConfig(BaseModel):
    """A static environment variable for the test runtime."""

    model_config = _MODEL_CONFIG

    name: str
    value: str = ""


class SeleniumConfig(BaseModel):
    """Selenium sidecar settings."""

    model_config = _MODEL_CONFIG

    image: str = ""


class TestContainersConfig(BaseModel):
    """Testcontainers (KubeDock) support."""

    __test__ = False

    model_config = _MODEL_CONFIG

    enabled: bool = False


class RepositoryPolicy(BaseModel):
    """Maven repository release/snapshot policy."""

    model_config = _MODEL_CONFIG

    enabled: bool | None = None
    update_policy: str | None = None


class Repository(BaseModel):
    """Maven repository added to the test runtime."""

    model_config = _MODEL_CONFIG

    id: str
    name: str | None = None
    url: str
    releases: RepositoryPolicy | None = None
    snapshots: RepositoryPolicy | None = None


class Dependency(BaseModel):
    """Maven dependency loaded into the test runtime."""

    model_config = _MODEL_CONFIG

    group_id: str
    artifact_id: str
    version: str


class Logger(BaseModel):
    """Log level setting for the test runtime."""

    model_config = _MODEL_CONFIG

    name: str
    level: str


class SettingsConfig(BaseModel):
    """Runtime settings synthesized into ``yaks.settings.yaml``."""

    model_config = _MODEL_CONFIG

    repositories: tuple[Repository, ...] = ()
    dependencies: tuple[Dependency, ...] = ()
    loggers: tuple[Logger, ...] = ()

    def is_empty(self) -> bool:
        """Return True when no repository, dependency or logger is declared."""
        return not (self.repositories or self.dependencies or self.loggers)


class CucumberConfig(BaseModel):
    """Cucumber runtime options."""

    model_config = _MODEL_CONFIG

    tags: tuple[str, ...] = ()
    glue: tuple[str, ...] = ()
    options: str = ""


class RuntimeConfig(BaseModel):
    """Test runtime settings."""

    model_config = _MODEL_CONFIG

    resources: tuple[str, ...] = ()
    env: tuple[EnvConfig, ...] = ()
    secret: str = ""
    selenium: SeleniumConfig = Field(default_factory=SeleniumConfig)
    testcontainers: TestContainersConfig = Field(default_factory=TestContainersConfig)
    settings: SettingsConfig = Field(default_factory=SettingsConfig)
    cucumber: CucumberConfig = Field(default_factory=CucumberConfig)


class Config(BaseModel):
    """The ``config`` section of ``yaks-config.yaml``."""

    model_config = _MODEL_CONFIG

    recursive: bool = False
    timeout: str = ""
    namespace: NamespaceConfig = Field(default_factory=NamespaceConfig)
    operator: OperatorConfig = Field(default_factory=OperatorConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)


class RunConfig(BaseModel):
    """Root run configuration for one source.

    Attributes:
        config: Namespace, operator, runtime and timeout settings.
        pre: Steps run before the test.
        post: Steps always run after the test.
        base_dir: Directory relative paths are resolved against.
    """

    model_config = _MODEL_CONFIG

    config: Config = Field(default_factory=Config)
    pre: tuple[StepConfig, ...] = ()
    post: tuple[StepConfig, ...] = ()
    base_dir: str = ""

    @property
    def namespace(self) -> str:
        """Resolved target namespace name."""
        return self.config.namespace.name

    @property
    def recursive(self) -> bool:
        """Whether group runs descend into sub-directories."""
        return self.config.recursive or self.config.namespace.recursive

    def with_namespace(self, name: str) -> RunConfig:
        """Return a copy targeting namespace ``name``."""
        namespace = self.config.namespace.model_copy(update={"name": name})
        config = self.config.model_copy(update={"namespace": namespace})
        return self.model_copy(update={"config": config})


__all__ = [
    "Config",
    "CucumberConfig",
    "Dependency",
    "EnvConfig",
    "Logger",
    "NamespaceConfig",
    "OperatorConfig",
    "Repository",
    "RepositoryPolicy",
    "RunConfig",
    "RuntimeConfig",
    "SeleniumConfig",
    "SettingsConfig",
    "StepConfig",
    "TestContainersConfig",
]

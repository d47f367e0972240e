"""Test resource construction and create-or-update.

``TestReconciler.build_test`` assembles a ``Test`` from the source file, the
run configuration and the invocation options. ``create_or_update`` submits it:
a first submission creates the resource, a re-submission of the same source
updates it in place with a compare-and-set that pauses the controller while
the resource spec is replaced.

Example:
    >>> reconciler = TestReconciler(client, logger)
    >>> test = reconciler.create_or_update("tests/hello.feature", config, options)
    Test 'hello' created
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

import click
import httpx
import yaml
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from yaks_core.cluster import is_already_exists
from yaks_core.config import is_remote, resolve_path
from yaks_core.errors import ConfigError, FormatError, ResourceError
from yaks_core.naming import sanitize_file_name, sanitize_name
from yaks_core.schemas.test import (
    GROUP,
    TEST_KIND,
    TEST_PLURAL,
    VERSION,
    KubeDockSpec,
    ResourceSpec,
    SeleniumSpec,
    SettingsSpec,
    SourceSpec,
    Test,
    TestPhase,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from yaks_core.cluster import YaksClient
    from yaks_core.schemas.options import RunOptions
    from yaks_core.schemas.run_config import RunConfig

NAMESPACE_ENV = "YAKS_NAMESPACE"
REPOSITORIES_ENV = "YAKS_REPOSITORIES"
DEPENDENCIES_ENV = "YAKS_DEPENDENCIES"
LOGGERS_ENV = "YAKS_LOGGERS"
CUCUMBER_OPTIONS_ENV = "CUCUMBER_OPTIONS"
CUCUMBER_GLUE_ENV = "CUCUMBER_GLUE"
CUCUMBER_FEATURES_ENV = "CUCUMBER_FEATURES"
CUCUMBER_FILTER_TAGS_ENV = "CUCUMBER_FILTER_TAGS"

SETTINGS_FILE = "yaks.settings.yaml"
KUBEDOCK_IMAGE = "joyrex2001/kubedock:0.7.0"
DUMP_FORMATS = ("yaml", "json")
HTTP_TIMEOUT = 30.0


def load_data(path: str) -> str:
    """Read a local file or fetch an ``http(s)://`` URL.

    Raises:
        ConfigError: If the content cannot be read.
    """
    if is_remote(path):
        try:
            response = httpx.get(path, follow_redirects=True, timeout=HTTP_TIMEOUT)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ConfigError(f"Failed to fetch {path}: {e}") from e
        return response.text

    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read file: {e.strerror or e}", path=path) from e


def dump_test(test: Test, fmt: str) -> str:
    """Serialize ``test`` as YAML or JSON.

    Raises:
        FormatError: If ``fmt`` is neither ``yaml`` nor ``json``.
    """
    body = test.to_body()
    if fmt == "yaml":
        return yaml.safe_dump(body, sort_keys=False)
    if fmt == "json":
        return json.dumps(body, indent=2) + "\n"
    raise FormatError(fmt)


def build_env(config: RunConfig, options: RunOptions) -> list[str]:
    """Build the ``KEY=VALUE`` environment of the test runtime.

    Entries are ordered by first occurrence of their key; a later entry with
    the same key replaces the value, so ``--env`` flags win over everything.
    """
    cucumber = config.config.runtime.cucumber
    entries: list[tuple[str, str]] = [(NAMESPACE_ENV, config.namespace)]

    tags = options.tags or cucumber.tags
    if tags:
        entries.append((CUCUMBER_FILTER_TAGS_ENV, ",".join(tags)))
    if options.features:
        entries.append((CUCUMBER_FEATURES_ENV, ",".join(options.features)))
    glue = options.glue or cucumber.glue
    if glue:
        entries.append((CUCUMBER_GLUE_ENV, ",".join(glue)))
    cucumber_options = options.options or cucumber.options
    if cucumber_options:
        entries.append((CUCUMBER_OPTIONS_ENV, cucumber_options))
    if options.repositories:
        entries.append((REPOSITORIES_ENV, ",".join(options.repositories)))
    if options.dependencies:
        entries.append((DEPENDENCIES_ENV, ",".join(options.dependencies)))
    if options.loggers:
        entries.append((LOGGERS_ENV, ",".join(options.loggers)))

    for env in config.config.runtime.env:
        entries.append((env.name, env.value))
    for item in options.env:
        key, _, value = item.partition("=")
        entries.append((key, value))

    merged: dict[str, str] = {}
    for key, value in entries:
        merged[key] = value
    return [f"{key}={value}" for key, value in merged.items()]


class TestReconciler:
    """Builds Test resources and submits them to the cluster."""

    __test__ = False

    def __init__(
        self,
        client: YaksClient,
        logger: FilteringBoundLogger,
        out: IO[str] | None = None,
    ) -> None:
        self._client = client
        self._logger = logger
        self._out = out

    def build_test(self, source: str, config: RunConfig, options: RunOptions) -> Test:
        """Assemble the Test resource for ``source``.

        Raises:
            ConfigError: If the name cannot be derived or a file cannot be read.
        """
        name = sanitize_name(source)
        if not name:
            raise ConfigError("unable to determine test name", path=source)

        source_spec = SourceSpec(name=sanitize_file_name(source), content=load_data(source))
        test = Test.new(config.namespace, name, source_spec)
        spec = test.spec
        runtime = config.config.runtime

        if options.dev:
            spec.dev = True

        resources = [
            *runtime.resources,
            *options.resources,
            *options.property_files,
        ]
        if resources:
            spec.resources = [
                ResourceSpec(
                    name=Path(resource).name,
                    content=load_data(resolve_path(config, resource)),
                )
                for resource in resources
            ]

        spec.settings = self._settings(config, options)
        spec.env = build_env(config, options)

        if runtime.secret:
            spec.secret = runtime.secret
        if runtime.selenium.image:
            spec.selenium = SeleniumSpec(image=runtime.selenium.image)
        if runtime.testcontainers.enabled:
            spec.kubedock = KubeDockSpec(image=KUBEDOCK_IMAGE)

        return test

    def create_or_update(
        self, source: str, config: RunConfig, options: RunOptions
    ) -> Test | None:
        """Create or update the Test resource for ``source``.

        In dump mode the resource is printed and nothing is submitted.

        Returns:
            The submitted Test, or None in dump mode.

        Raises:
            FormatError: If the dump format is not supported.
            ConfigError: If the resource cannot be built.
            ResourceError: If the cluster rejects the resource.
        """
        if options.dump and options.dump not in DUMP_FORMATS:
            raise FormatError(options.dump)

        test = self.build_test(source, config, options)

        if options.dump:
            click.echo(dump_test(test, options.dump), file=self._out, nl=False)
            return None

        existed = self._submit(test)
        if existed:
            click.echo(f"Test '{test.name}' updated", file=self._out)
        else:
            click.echo(f"Test '{test.name}' created", file=self._out)
        return test

    def _settings(self, config: RunConfig, options: RunOptions) -> SettingsSpec | None:
        if options.settings:
            return SettingsSpec(
                name=sanitize_file_name(options.settings),
                content=load_data(resolve_path(config, options.settings)),
            )

        settings = config.config.runtime.settings
        if settings.is_empty():
            return None
        content = yaml.safe_dump(
            settings.model_dump(by_alias=True, exclude_none=True, mode="json"),
            sort_keys=False,
        )
        return SettingsSpec(name=SETTINGS_FILE, content=content)

    def _submit(self, test: Test) -> bool:
        """Create ``test``; on AlreadyExists run the compare-and-set update.

        Returns:
            True if an existing resource was updated.
        """
        custom = self._client.custom
        try:
            custom.create_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=test.namespace,
                plural=TEST_PLURAL,
                body=test.to_body(),
            )
            self._logger.debug("reconciler.created", test=test.name, namespace=test.namespace)
            return False
        except ApiException as e:
            if not is_already_exists(e):
                raise ResourceError.from_api_exception(e, "create", TEST_KIND, test.name) from e
        except TransportError as e:
            raise ResourceError.from_transport_error(e, "create", TEST_KIND, test.name) from e

        # A resourceVersion conflict restarts the sequence once.
        for attempt in (1, 2):
            try:
                self._compare_and_set(test)
            except ApiException as e:
                if e.status == 409 and attempt == 1:
                    self._logger.info("reconciler.conflict_retry", test=test.name)
                    continue
                raise ResourceError.from_api_exception(e, "update", TEST_KIND, test.name) from e
            except TransportError as e:
                raise ResourceError.from_transport_error(e, "update", TEST_KIND, test.name) from e
            break

        self._logger.debug("reconciler.updated", test=test.name, namespace=test.namespace)
        return True

    def _compare_and_set(self, test: Test) -> None:
        custom = self._client.custom
        key: dict[str, Any] = {
            "group": GROUP,
            "version": VERSION,
            "namespace": test.namespace,
            "plural": TEST_PLURAL,
            "name": test.name,
        }

        current = custom.get_namespaced_custom_object(**key)

        # Hold the resource from the controller while its spec is replaced.
        current.setdefault("status", {})["phase"] = TestPhase.UPDATING.value
        current = custom.replace_namespaced_custom_object_status(**key, body=current)

        body = test.to_body()
        body["metadata"]["resourceVersion"] = current["metadata"]["resourceVersion"]
        updated = custom.replace_namespaced_custom_object(**key, body=body)

        updated["status"] = {}
        custom.replace_namespaced_custom_object_status(**key, body=updated)


__all__ = [
    "DUMP_FORMATS",
    "KUBEDOCK_IMAGE",
    "SETTINGS_FILE",
    "TestReconciler",
    "build_env",
    "dump_test",
    "load_data",
]

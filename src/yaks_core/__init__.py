"""yaks-core: client-side orchestrator for YAKS tests on Kubernetes.

Given a feature file or a directory of feature files, the orchestrator
provisions the namespace and operator a test needs, runs pre/post hooks,
submits a ``Test`` custom resource and waits for the cluster-side controller
to drive it to a terminal phase.

Example:
    >>> from yaks_core.runner import Runner, RunOptions
    >>> runner = Runner(client, RunOptions(namespace="default"), logger=logger)
    >>> results = runner.run("tests/hello.feature")
    >>> results.has_errors()
    False
"""

from __future__ import annotations

__version__ = "0.1.0"

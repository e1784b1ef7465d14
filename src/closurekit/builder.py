# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Artifact builder: two-stage builds keyed on filtered trees.

For a package ``P`` with closure ``C``::

    tree     = filter_tree({P} ∪ C)
    skeleton = dependency_skeleton(tree)

    DEPS_ONLY: executor.build_artifact(skeleton, spec(P, C, externals))
    FULL:      executor.build_artifact(tree, spec(..., deps_key=DEPS_ONLY.key))

``build_all`` runs packages through the :class:`~closurekit.scheduler.Scheduler`
in dependency order. A failure is reported once, at the failing package;
everything that depends on it is reported as blocked and never attempted.
"""

from __future__ import annotations

import asyncio
import fnmatch
from collections.abc import Iterable
from dataclasses import dataclass, field

from closurekit.artifacts import Artifact, Stage, StageSpec
from closurekit.backends.executor import BuildExecutor
from closurekit.errors import BuildError, CyclicDependencyError, E
from closurekit.filter import FilteredTree, SourceFilter
from closurekit.graph import build_graph, detect_cycles, reverse_deps
from closurekit.logging import get_logger, package_context
from closurekit.scheduler import Scheduler

logger = get_logger(__name__)


@dataclass(frozen=True)
class BuildInputs:
    """Everything needed to build one package, computed without building.

    Attributes:
        package: The package.
        closure: Its local dependency closure.
        external_dependencies: External crates of the package and closure.
        tree: Filtered tree over ``{package} ∪ closure``.
        skeleton: Dependency skeleton of ``tree``.
    """

    package: str
    closure: frozenset[str]
    external_dependencies: frozenset[str]
    tree: FilteredTree
    skeleton: FilteredTree

    def deps_spec(self) -> StageSpec:
        """Spec of the ``DEPS_ONLY`` stage."""
        return StageSpec(
            stage=Stage.DEPS_ONLY,
            package=self.package,
            closure=self.closure,
            external_dependencies=self.external_dependencies,
        )

    def full_spec(self, deps: Artifact) -> StageSpec:
        """Spec of the ``FULL`` stage, seeded with ``deps``."""
        return StageSpec(
            stage=Stage.FULL,
            package=self.package,
            closure=self.closure,
            external_dependencies=self.external_dependencies,
            deps_key=deps.key,
            deps_artifact=deps,
        )


@dataclass
class BuildReport:
    """Outcome of :meth:`ArtifactBuilder.build_all`.

    Attributes:
        built: Package name to its ``FULL`` artifact.
        failed: Package name to error message.
        blocked: Package name to the failed package that blocked it.
    """

    built: dict[str, Artifact] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    blocked: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Return True if every selected package was built."""
        return not self.failed and not self.blocked

    def errors(self) -> list[BuildError]:
        """One :class:`BuildError` per failed or blocked package."""
        errs = [BuildError(message=msg, package=name) for name, msg in sorted(self.failed.items())]
        errs.extend(
            BuildError(
                message=f"'{name}' was not built because '{cause}' failed",
                hint=f"Fix '{cause}' first.",
                package=name,
                code=E.BUILD_BLOCKED,
            )
            for name, cause in sorted(self.blocked.items())
        )
        return errs


class ArtifactBuilder:
    """Drives two-stage builds through a :class:`BuildExecutor`.

    Args:
        source_filter: Produces trees and skeletons; its resolver supplies
            closures and external dependencies.
        executor: Compiles stages.
    """

    def __init__(self, source_filter: SourceFilter, executor: BuildExecutor) -> None:
        """Initialize with a filter and an executor."""
        self.filter = source_filter
        self.resolver = source_filter.resolver
        self.executor = executor

    def prepare(self, name: str) -> BuildInputs:
        """Resolve, filter and skeletonize ``name`` without building.

        Raises:
            ConfigurationError: If ``name`` is unknown.
            CyclicDependencyError: If its closure contains a cycle.
            ManifestParseError: If a reachable manifest is malformed.
        """
        closure = self.resolver.resolve_closure(name)
        members = closure | {name}
        tree = self.filter.filter_tree(members)
        return BuildInputs(
            package=name,
            closure=closure,
            external_dependencies=self.resolver.external_dependencies(members),
            tree=tree,
            skeleton=self.filter.dependency_skeleton(tree),
        )

    async def build(self, name: str) -> Artifact:
        """Build ``name`` through both stages and return the ``FULL`` artifact.

        Raises:
            BuildError: If either stage fails.
        """
        with package_context(name):
            inputs = await asyncio.to_thread(self.prepare, name)
            logger.info(
                'build_start',
                closure=sorted(inputs.closure),
                externals=len(inputs.external_dependencies),
                tree=inputs.tree.content_hash[:12],
            )
            deps = await self.executor.build_artifact(inputs.skeleton, inputs.deps_spec())
            logger.debug('deps_only_built', artifact=str(deps.key), cached=deps.cached)
            full = await self.executor.build_artifact(inputs.tree, inputs.full_spec(deps))
            logger.info('build_done', artifact=str(full.key), cached=full.cached)
            return full

    def select(self, names: Iterable[str] | None = None) -> set[str]:
        """Packages ``build_all`` would build.

        Explicit ``names`` are taken as is (and must exist); otherwise every
        package not matched by a ``exclude`` glob.
        """
        index = self.resolver.index
        if names is not None:
            return {index.get(n).name for n in names}
        exclude = self.resolver.config.exclude
        return {n for n in index.names() if not any(fnmatch.fnmatchcase(n, pat) for pat in exclude)}

    async def build_all(self, names: Iterable[str] | None = None) -> BuildReport:
        """Build the selected packages, dependencies first.

        Packages with unreadable manifests or on a cycle fail up front;
        their dependents are blocked.
        """
        selected = self.select(names)
        graph = build_graph(self.resolver)
        report = BuildReport()

        for name in sorted(selected & set(graph.errors)):
            report.failed[name] = str(graph.errors[name])
        for cycle in detect_cycles(graph):
            for name in cycle:
                if name in selected and name not in report.failed:
                    report.failed[name] = str(CyclicDependencyError(cycle))
        for name in sorted(report.failed):
            for dependent in sorted(reverse_deps(graph, name) & selected):
                if dependent not in report.failed:
                    report.blocked.setdefault(dependent, name)

        runnable = selected - set(report.failed) - set(report.blocked)

        async def build_one(name: str) -> None:
            report.built[name] = await self.build(name)

        scheduler = Scheduler.from_graph(graph, runnable, concurrency=self.resolver.config.concurrency)
        result = await scheduler.run(build_one)
        report.failed.update(result.failed)
        report.blocked.update(result.blocked)

        logger.info(
            'build_all_complete',
            built=sorted(report.built),
            failed=sorted(report.failed),
            blocked=sorted(report.blocked),
        )
        return report


__all__ = [
    'ArtifactBuilder',
    'BuildInputs',
    'BuildReport',
]

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

"""Programmatic Python API for closurekit.

The entry point for CI drivers and scripts.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ ClosureKit              │ The main entry point. Create one per        │
    │                         │ workspace, call resolve / filter / build.   │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Run                     │ Every call re-reads the manifests. Nothing │
    │                         │ learned in one call leaks into the next.    │
    └─────────────────────────┴─────────────────────────────────────────────┘

Usage::

    from closurekit.api import ClosureKit

    ck = ClosureKit('/path/to/workspace')
    ck.resolve('pkg-b')                    # frozenset({'pkg-a'})
    tree = ck.filter({'pkg-b', 'pkg-a'})
    artifact = await ck.build('pkg-b')
    report = await ck.build_all()
    print(ck.plan().format_table())
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from closurekit.artifacts import Artifact
from closurekit.backends.executor import BuildExecutor, CargoExecutor
from closurekit.builder import ArtifactBuilder, BuildReport
from closurekit.config import BuildConfig, load_config
from closurekit.filter import FilteredTree, SourceFilter
from closurekit.graph import ClosureResolver
from closurekit.logging import get_logger
from closurekit.plan import BuildPlan, build_plan
from closurekit.workspace import Package

logger = get_logger(__name__)


class ClosureKit:
    """High-level API over one Cargo workspace.

    Args:
        workspace_root: Directory holding the workspace ``Cargo.toml``.
        config: Configuration; loaded from ``closurekit.toml`` if omitted.
        executor: Build executor; a :class:`CargoExecutor` per run if
            omitted.
        dry_run: Passed to the default executor.
    """

    def __init__(
        self,
        workspace_root: str | Path,
        *,
        config: BuildConfig | None = None,
        executor: BuildExecutor | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize with the workspace root."""
        self.root = Path(workspace_root).resolve()
        self._config = config
        self._executor = executor
        self._dry_run = dry_run

    @property
    def config(self) -> BuildConfig:
        """Loaded configuration (lazy)."""
        if self._config is None:
            self._config = load_config(self.root)
        return self._config

    def _resolver(self) -> ClosureResolver:
        return ClosureResolver.from_workspace(self.root, config=self.config)

    def _builder(self) -> ArtifactBuilder:
        source_filter = SourceFilter(self._resolver())
        executor = self._executor or CargoExecutor.from_config(source_filter, dry_run=self._dry_run)
        return ArtifactBuilder(source_filter, executor)

    def packages(self) -> list[Package]:
        """Every workspace package, sorted by name."""
        return self._resolver().index.list_packages()

    def resolve(self, name: str) -> frozenset[str]:
        """Return the local dependency closure of ``name``.

        Raises:
            ConfigurationError: If ``name`` is unknown.
            CyclicDependencyError: If a cycle is reachable from ``name``.
        """
        return self._resolver().resolve_closure(name)

    def filter(self, packages: Iterable[str]) -> FilteredTree:
        """Return the filtered tree for a package set."""
        return SourceFilter(self._resolver()).filter_tree(packages)

    async def build(self, name: str) -> Artifact:
        """Build ``name`` (deps-only, then full) and return the full artifact."""
        return await self._builder().build(name)

    async def build_all(self, names: Iterable[str] | None = None) -> BuildReport:
        """Build every selected package in dependency order."""
        return await self._builder().build_all(names)

    def plan(self, names: Iterable[str] | None = None) -> BuildPlan:
        """Compute artifact keys for every package without building."""
        return build_plan(self._builder(), names)


__all__ = [
    'ClosureKit',
]

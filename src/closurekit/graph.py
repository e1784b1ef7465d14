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

"""Dependency graph and closure resolution for workspace packages.

The graph is derived from package manifests on every run. Nothing here is
persisted: a :class:`ClosureResolver` caches manifests and closures for
its own lifetime only, so one run never sees another run's view.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Closure                 │ Everything a package needs from the        │
    │                         │ workspace, directly or through others.     │
    │                         │ If B needs A and A needs X, B's closure    │
    │                         │ is {A, X}.                                 │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Path stack              │ The chain of packages we walked through to │
    │                         │ get here. Seeing a name already on it      │
    │                         │ means we went in a circle.                 │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Memoization             │ Once D's closure is known, anyone else who │
    │                         │ reaches D reuses it instead of walking     │
    │                         │ D's dependencies again.                    │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Levels                  │ Groups of packages that can build at the   │
    │                         │ same time. Level 0 has no local deps.      │
    └─────────────────────────┴─────────────────────────────────────────────┘

Edge direction::

    Forward edges (``edges``): dependent → dependency (who needs what)
    Reverse edges (``reverse_edges``): dependency → dependent (who uses me)

    pkg-b ──→ pkg-a ←── pkg-c

    edges["pkg-b"] = ["pkg-a"]
    reverse_edges["pkg-a"] = ["pkg-b", "pkg-c"]

Usage::

    from closurekit.graph import ClosureResolver, build_graph, topo_sort

    resolver = ClosureResolver.from_workspace(Path('.'))
    resolver.resolve_closure('pkg-b')  # frozenset({'pkg-a'})
    levels = topo_sort(build_graph(resolver))
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from closurekit.config import BuildConfig
from closurekit.errors import ClosureKitError, CyclicDependencyError
from closurekit.logging import get_logger
from closurekit.manifest import PackageManifest, read_manifest, workspace_dependencies
from closurekit.workspace import Package, WorkspaceIndex, read_workspace_manifest

logger = get_logger(__name__)


class ClosureResolver:
    """Computes transitive local-dependency closures for one run.

    Manifests are read lazily, once per package. A malformed manifest
    therefore only fails the resolutions that actually reach it.

    Args:
        index: The workspace index.
        config: Build configuration (dependency tables, manifest name).
        inherited: The root ``[workspace.dependencies]`` table.
    """

    def __init__(
        self,
        index: WorkspaceIndex,
        *,
        config: BuildConfig | None = None,
        inherited: dict[str, Any] | None = None,  # noqa: ANN401 - raw TOML values
    ) -> None:
        """Initialize with an index; nothing is read yet."""
        self.index = index
        self.config = config or BuildConfig()
        self._inherited = inherited or {}
        self._manifests: dict[str, PackageManifest] = {}
        self._closures: dict[str, frozenset[str]] = {}

    @classmethod
    def from_workspace(cls, root: Path | str, *, config: BuildConfig | None = None) -> ClosureResolver:
        """Create a resolver for the workspace whose manifest lives at ``root``."""
        config = config or BuildConfig()
        index = WorkspaceIndex.from_manifest(root, manifest_name=config.manifest_name)
        root_doc = read_workspace_manifest(index.root, config.manifest_name).unwrap()
        return cls(index, config=config, inherited=workspace_dependencies(root_doc))

    def manifest(self, name: str) -> PackageManifest:
        """Return the parsed manifest of ``name``, reading it on first use.

        Raises:
            ConfigurationError: If the package is unknown or has no manifest.
            ManifestParseError: If its manifest is not valid TOML.
        """
        cached = self._manifests.get(name)
        if cached is not None:
            return cached
        pkg = self.index.get(name)
        manifest = read_manifest(
            pkg.root,
            package=pkg.name,
            known_packages=self.index.names(),
            inherited=self._inherited,
            tables=self.config.dependency_tables,
            manifest_name=self.config.manifest_name,
        )
        self._manifests[name] = manifest
        return manifest

    def direct_dependencies(self, name: str) -> list[str]:
        """Sorted names of the local packages ``name`` declares directly."""
        return sorted(self.manifest(name).local_dependencies)

    def resolve_closure(self, name: str) -> frozenset[str]:
        """Return every workspace package reachable from ``name``.

        Depth-first over local dependency edges with an explicit path stack.
        ``name`` itself is never part of the result.

        Raises:
            ConfigurationError: If ``name`` is not a workspace package.
            CyclicDependencyError: If a cycle is reachable from ``name``.
            ManifestParseError: If a reachable manifest is malformed.
        """
        self.index.get(name)
        cached = self._closures.get(name)
        if cached is not None:
            return cached

        path: list[str] = [name]
        on_path: set[str] = {name}
        stack: list[tuple[str, Iterator[str]]] = [(name, iter(self.direct_dependencies(name)))]

        while stack:
            node, pending = stack[-1]
            descended = False
            for dep in pending:
                if dep in on_path:
                    cycle = [*path[path.index(dep) :], dep]
                    logger.error('dependency_cycle', cycle=cycle)
                    raise CyclicDependencyError(cycle)
                if dep in self._closures:
                    continue
                path.append(dep)
                on_path.add(dep)
                stack.append((dep, iter(self.direct_dependencies(dep))))
                descended = True
                break
            if descended:
                continue

            stack.pop()
            path.pop()
            on_path.discard(node)
            closure: set[str] = set()
            for dep in self.direct_dependencies(node):
                closure.add(dep)
                closure |= self._closures[dep]
            self._closures[node] = frozenset(closure)

        result = self._closures[name]
        logger.debug('closure_resolved', package=name, closure=sorted(result))
        return result

    def external_dependencies(self, names: Iterable[str]) -> frozenset[str]:
        """Union of the external dependency names of ``names``."""
        externals: set[str] = set()
        for name in names:
            externals |= self.manifest(name).external_dependencies
        return frozenset(externals)


@dataclass
class DependencyGraph:
    """A directed graph of workspace package dependencies.

    Edges point from dependents to their dependencies: if ``A`` depends
    on ``B``, there is an edge ``A → B`` in :attr:`edges` and a reverse
    edge ``B → A`` in :attr:`reverse_edges`.

    Attributes:
        packages: Mapping from package name to :class:`Package`.
        edges: Forward adjacency list (dependent → list of dependencies).
        reverse_edges: Reverse adjacency list (dependency → list of dependents).
        errors: Packages whose manifest could not be read, with the error.
            They appear as nodes without outgoing edges.
    """

    packages: dict[str, Package] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)
    errors: dict[str, ClosureKitError] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        """Sorted list of all package names in the graph."""
        return sorted(self.packages)

    def __len__(self) -> int:
        """Return the number of packages in the graph."""
        return len(self.packages)


def build_graph(resolver: ClosureResolver) -> DependencyGraph:
    """Build the whole-workspace graph from the resolver's manifests.

    Manifest errors are recorded in :attr:`DependencyGraph.errors` instead
    of aborting, so sibling packages still get their edges.
    """
    graph = DependencyGraph()
    packages = resolver.index.list_packages()
    for pkg in packages:
        graph.packages[pkg.name] = pkg
        graph.edges[pkg.name] = []
        graph.reverse_edges[pkg.name] = []

    for pkg in packages:
        try:
            deps = resolver.direct_dependencies(pkg.name)
        except ClosureKitError as exc:
            logger.warning('manifest_unreadable', package=pkg.name, error=str(exc))
            graph.errors[pkg.name] = exc
            continue
        for dep in deps:
            graph.edges[pkg.name].append(dep)
            graph.reverse_edges[dep].append(pkg.name)

    for name in graph.reverse_edges:
        graph.reverse_edges[name].sort()

    logger.debug(
        'built_dependency_graph',
        packages=len(packages),
        edges=sum(len(deps) for deps in graph.edges.values()),
        errors=sorted(graph.errors),
    )
    return graph


def detect_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Detect cycles in the dependency graph.

    Iterative three-color DFS. Each back edge yields one closed cycle
    (``['a', 'b', 'a']``).

    Returns:
        A list of cycles. Empty list if acyclic.
    """
    _white, _gray, _black = 0, 1, 2
    color: dict[str, int] = dict.fromkeys(graph.packages, _white)
    cycles: list[list[str]] = []

    for start in sorted(graph.packages):
        if color[start] != _white:
            continue
        path: list[str] = [start]
        color[start] = _gray
        stack: list[Iterator[str]] = [iter(graph.edges.get(start, []))]
        while stack:
            advanced = False
            for neighbor in stack[-1]:
                if color[neighbor] == _gray:
                    cycles.append([*path[path.index(neighbor) :], neighbor])
                elif color[neighbor] == _white:
                    color[neighbor] = _gray
                    path.append(neighbor)
                    stack.append(iter(graph.edges.get(neighbor, [])))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                color[path.pop()] = _black

    if cycles:
        logger.warning('cycles_detected', count=len(cycles))
    else:
        logger.debug('no_cycles_detected')
    return cycles


def topo_sort(graph: DependencyGraph) -> list[list[Package]]:
    """Topological sort with level grouping (Kahn's algorithm).

    Level 0 contains all packages with no local dependencies, level 1
    packages that depend only on level 0, and so on. Packages in the same
    level can build in parallel.

    Raises:
        CyclicDependencyError: If the graph contains a cycle.
    """
    in_degree = {name: len(graph.edges[name]) for name in graph.packages}
    queue: deque[str] = deque(name for name in sorted(graph.packages) if in_degree[name] == 0)

    levels: list[list[Package]] = []
    processed = 0
    while queue:
        level_names = sorted(queue)
        queue.clear()
        levels.append([graph.packages[name] for name in level_names])
        processed += len(level_names)
        for name in level_names:
            for dependent in graph.reverse_edges.get(name, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

    if processed != len(graph.packages):
        raise CyclicDependencyError(detect_cycles(graph)[0])

    logger.debug('topo_sort_complete', levels=len(levels), packages=processed)
    return levels


def reverse_deps(graph: DependencyGraph, name: str) -> set[str]:
    """Return all transitive dependents of a package (BFS).

    If B depends on A, and C depends on B, then ``reverse_deps("A")``
    returns ``{"B", "C"}``.
    """
    visited: set[str] = set()
    queue: deque[str] = deque(graph.reverse_edges.get(name, []))
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        queue.extend(graph.reverse_edges.get(current, []))
    return visited


__all__ = [
    'ClosureResolver',
    'DependencyGraph',
    'build_graph',
    'detect_cycles',
    'reverse_deps',
    'topo_sort',
]

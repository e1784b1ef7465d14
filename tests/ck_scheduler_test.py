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

"""Tests for closurekit.scheduler: dependency-triggered build scheduler."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from closurekit.graph import DependencyGraph
from closurekit.scheduler import PackageNode, Scheduler, SchedulerResult
from closurekit.workspace import Package


def _make_graph(edges: dict[str, list[str]]) -> DependencyGraph:
    """Build an in-memory graph from dependent → dependencies."""
    graph = DependencyGraph()
    for name in edges:
        root = Path(f'/fake/crates/{name}')
        graph.packages[name] = Package(
            name=name,
            path=f'crates/{name}',
            root=root,
            manifest_path=root / 'Cargo.toml',
        )
        graph.edges[name] = list(edges[name])
        graph.reverse_edges.setdefault(name, [])
    for name, deps in edges.items():
        for dep in deps:
            graph.reverse_edges[dep].append(name)
    return graph


class TestSchedulerResult:
    """Tests for SchedulerResult dataclass."""

    def test_ok_when_no_failures(self) -> None:
        """Result is ok when nothing failed or was blocked."""
        result = SchedulerResult(built=['a', 'b'])
        if not result.ok:
            raise AssertionError('Expected ok=True with no failures')

    def test_not_ok_when_blocked(self) -> None:
        """A blocked package makes the result not ok."""
        result = SchedulerResult(blocked={'b': 'a'})
        if result.ok:
            raise AssertionError('Expected ok=False with blocked packages')


class TestSchedulerFromGraph:
    """Tests for Scheduler.from_graph factory method."""

    def test_linear_chain(self) -> None:
        """a → b → c: each node counts its selected deps."""
        sched = Scheduler.from_graph(_make_graph({'a': ['b'], 'b': ['c'], 'c': []}), selected={'a', 'b', 'c'})
        counts = {name: node.remaining_deps for name, node in sched.nodes.items()}
        if counts != {'a': 1, 'b': 1, 'c': 0}:
            raise AssertionError(f'Unexpected remaining deps: {counts}')
        if sched.nodes['c'].dependents != ['b']:
            raise AssertionError(f'Expected c dependents [b], got {sched.nodes["c"].dependents}')

    def test_unselected_deps_not_waited_for(self) -> None:
        """Dependencies outside the selection do not count."""
        sched = Scheduler.from_graph(_make_graph({'a': ['b'], 'b': []}), selected={'a'})
        if sched.nodes['a'].remaining_deps != 0:
            raise AssertionError(f'Expected 0 remaining, got {sched.nodes["a"].remaining_deps}')
        if 'b' in sched.nodes:
            raise AssertionError('Unselected package should not be a node')


class TestMarkDone:
    """Tests for Scheduler.mark_done()."""

    def test_enqueues_ready_dependents(self) -> None:
        """A dependent is enqueued once all its deps are done."""
        graph = _make_graph({'top': ['l', 'r'], 'l': [], 'r': []})
        sched = Scheduler.from_graph(graph, selected={'top', 'l', 'r'})
        if sched.mark_done('l'):
            raise AssertionError('top still waits for r')
        if sched.mark_done('r') != ['top']:
            raise AssertionError('top should be ready after l and r')

    def test_duplicate_ignored(self) -> None:
        """Marking the same package twice does not double-decrement."""
        graph = _make_graph({'top': ['l', 'r'], 'l': [], 'r': []})
        sched = Scheduler.from_graph(graph, selected={'top', 'l', 'r'})
        sched.mark_done('l')
        sched.mark_done('l')
        if sched.nodes['top'].remaining_deps != 1:
            raise AssertionError(f'Expected 1 remaining, got {sched.nodes["top"].remaining_deps}')


class TestSchedulerRun:
    """Tests for Scheduler.run()."""

    @pytest.mark.asyncio
    async def test_dependencies_first(self) -> None:
        """Every package starts after its dependencies finished."""
        graph = _make_graph({'a': [], 'b': ['a'], 'c': ['a'], 'd': ['b', 'c']})
        finished: list[str] = []

        async def build(name: str) -> None:
            for dep in graph.edges[name]:
                if dep not in finished:
                    raise AssertionError(f'{name} started before {dep}')
            await asyncio.sleep(0)
            finished.append(name)

        result = await Scheduler.from_graph(graph, selected={'a', 'b', 'c', 'd'}).run(build)
        if not result.ok:
            raise AssertionError(f'Unexpected failures: {result.failed}')
        if sorted(result.built) != ['a', 'b', 'c', 'd'] or result.built[-1] != 'd':
            raise AssertionError(f'Unexpected order: {result.built}')

    @pytest.mark.asyncio
    async def test_failure_blocks_transitive_dependents(self) -> None:
        """A failure blocks dependents transitively; siblings still build."""
        graph = _make_graph({'a': [], 'b': ['a'], 'c': ['b'], 'd': []})
        attempted: list[str] = []

        async def build(name: str) -> None:
            attempted.append(name)
            if name == 'a':
                raise RuntimeError('compile error')

        result = await Scheduler.from_graph(graph, selected={'a', 'b', 'c', 'd'}).run(build)
        if 'compile error' not in result.failed.get('a', ''):
            raise AssertionError(f'Expected a to fail, got {result.failed}')
        if result.blocked != {'b': 'a', 'c': 'a'}:
            raise AssertionError(f'Unexpected blocked: {result.blocked}')
        if result.built != ['d']:
            raise AssertionError(f'Expected only d built, got {result.built}')
        if 'b' in attempted or 'c' in attempted:
            raise AssertionError(f'Blocked packages must not be attempted: {attempted}')

    @pytest.mark.asyncio
    async def test_no_retries(self) -> None:
        """A failing package is attempted exactly once."""
        calls: list[str] = []

        async def build(name: str) -> None:
            calls.append(name)
            raise RuntimeError('flaky')

        await Scheduler.from_graph(_make_graph({'a': []}), selected={'a'}).run(build)
        if calls != ['a']:
            raise AssertionError(f'Expected one attempt, got {calls}')

    @pytest.mark.asyncio
    async def test_concurrency_limit(self) -> None:
        """No more than ``concurrency`` builds run at once."""
        graph = _make_graph({name: [] for name in 'abcdefgh'})
        running = 0
        peak = 0

        async def build(name: str) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        result = await Scheduler.from_graph(graph, selected=set('abcdefgh'), concurrency=3).run(build)
        if len(result.built) != 8:
            raise AssertionError(f'Expected 8 built, got {result.built}')
        if peak > 3:
            raise AssertionError(f'Peak concurrency {peak} exceeds 3')

    @pytest.mark.asyncio
    async def test_all_waiting_returns_empty(self) -> None:
        """If no package is ready (a cycle), nothing runs."""
        graph = _make_graph({'a': ['b'], 'b': ['a']})

        async def build(name: str) -> None:
            raise AssertionError('should not be called')

        result = await Scheduler.from_graph(graph, selected={'a', 'b'}).run(build)
        if result.built or result.failed:
            raise AssertionError(f'Expected empty result, got {result}')

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        """An empty selection finishes immediately."""

        async def build(name: str) -> None:
            raise AssertionError('should not be called')

        result = await Scheduler(nodes={}).run(build)
        if not result.ok or result.built:
            raise AssertionError(f'Expected empty ok result, got {result}')


class TestPackageNode:
    """Tests for PackageNode dataclass."""

    def test_defaults(self) -> None:
        """PackageNode starts with no dependents."""
        node = PackageNode(name='a', remaining_deps=0)
        if node.dependents:
            raise AssertionError(f'Expected no dependents, got {node.dependents}')

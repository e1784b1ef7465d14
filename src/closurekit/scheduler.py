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

"""Dependency-triggered build scheduler.

A package starts building as soon as every local dependency it has in the
selected set finished, without waiting for a whole topological level.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ PackageNode             │ One package with a countdown of how many    │
    │                         │ deps it still waits for.                    │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Scheduler               │ When a dep finishes, decrement the          │
    │                         │ countdown of everyone waiting on it and     │
    │                         │ enqueue those that reach zero.              │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Blocked                 │ A package whose dependency failed. It is    │
    │                         │ never attempted.                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ SchedulerResult         │ Collects built / failed / blocked.          │
    └─────────────────────────┴─────────────────────────────────────────────┘

Worker pool::

    from_graph() ──▶ seed zero-dep nodes ──▶ Queue
                                               │
                        Semaphore(N)           ▼
                   ┌────────┐ ┌────────┐ ... ┌────────┐
                   │Worker 0│ │Worker 1│     │Worker N│
                   └───┬────┘ └───┬────┘     └───┬────┘
                       └──────────┴─────┬────────┘
                                  build_fn(name)
                                        │
                       ok ──▶ mark_done ──▶ enqueue ready dependents
                       error ──▶ record failure ──▶ block dependents

There are no retries at this layer; the executor owns retry policy.

Usage::

    scheduler = Scheduler.from_graph(graph, selected={'pkg-a', 'pkg-b'}, concurrency=4)

    async def build_one(name: str) -> None:
        ...

    result = await scheduler.run(build_one)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from closurekit.graph import DependencyGraph
from closurekit.logging import get_logger

logger = get_logger(__name__)

BuildFn = Callable[[str], Coroutine[Any, Any, None]]


@dataclass
class PackageNode:
    """A node in the dependency-aware scheduler.

    Attributes:
        name: Package name.
        remaining_deps: Count of selected deps not yet built. The node is
            enqueued when it hits zero.
        dependents: Selected packages that depend on this one.
    """

    name: str
    remaining_deps: int
    dependents: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SchedulerResult:
    """Result of a scheduler run.

    Attributes:
        built: Successfully built packages, in completion order.
        failed: Failed package name to error message.
        blocked: Blocked package name to the failed package that blocked it.
    """

    built: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    blocked: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Return True if nothing failed or was blocked."""
        return not self.failed and not self.blocked


class Scheduler:
    """Dependency-triggered task scheduler.

    The scheduler calls a caller-provided ``build_fn(name)`` coroutine and
    knows nothing about builds itself. All state is mutated from
    coroutines on one event loop, so no locks are needed.

    Args:
        nodes: Mapping of package name to :class:`PackageNode`.
        concurrency: Maximum number of concurrent ``build_fn`` calls.
    """

    def __init__(self, nodes: dict[str, PackageNode], concurrency: int = 4) -> None:
        """Initialize the scheduler."""
        self._nodes = nodes
        self._concurrency = concurrency
        self._queue: asyncio.Queue[PackageNode] = asyncio.Queue()
        self._semaphore = asyncio.Semaphore(concurrency)
        self._result = SchedulerResult()
        self._enqueued: set[str] = set()
        self._done: set[str] = set()

    @property
    def nodes(self) -> dict[str, PackageNode]:
        """Read-only access to the scheduler's nodes."""
        return self._nodes

    @classmethod
    def from_graph(cls, graph: DependencyGraph, selected: set[str], concurrency: int = 4) -> Scheduler:
        """Build a scheduler for ``selected`` packages of ``graph``.

        Dependencies outside ``selected`` are not waited for.
        """
        nodes: dict[str, PackageNode] = {}
        for name in selected:
            deps = [d for d in graph.edges.get(name, []) if d in selected]
            dependents = [d for d in graph.reverse_edges.get(name, []) if d in selected]
            nodes[name] = PackageNode(name=name, remaining_deps=len(deps), dependents=sorted(dependents))
        return cls(nodes=nodes, concurrency=concurrency)

    def _seed_queue(self) -> int:
        """Enqueue all packages with zero remaining deps."""
        seeded = 0
        for node in sorted(self._nodes.values(), key=lambda n: n.name):
            if node.remaining_deps == 0 and node.name not in self._enqueued:
                self._queue.put_nowait(node)
                self._enqueued.add(node.name)
                seeded += 1
                logger.debug('scheduler_seed', package=node.name)
        return seeded

    def mark_done(self, name: str) -> list[str]:
        """Mark a package as built and enqueue dependents that became ready.

        Duplicate calls for the same ``name`` are ignored.

        Returns:
            Dependents that were newly enqueued.
        """
        if name in self._done:
            logger.debug('scheduler_duplicate_done', package=name)
            return []
        self._done.add(name)
        newly_ready: list[str] = []
        for dep_name in self._nodes[name].dependents:
            dep_node = self._nodes.get(dep_name)
            if dep_node is None:
                continue
            dep_node.remaining_deps -= 1
            if dep_node.remaining_deps == 0 and dep_name not in self._enqueued:
                self._queue.put_nowait(dep_node)
                self._enqueued.add(dep_name)
                newly_ready.append(dep_name)
                logger.debug('scheduler_enqueue', package=dep_name, triggered_by=name)
        return newly_ready

    def _block_dependents(self, failed_name: str) -> None:
        """Mark every transitive dependent of ``failed_name`` as blocked."""
        pending = list(self._nodes[failed_name].dependents)
        while pending:
            dep_name = pending.pop()
            if dep_name in self._done:
                continue
            self._done.add(dep_name)
            self._result.blocked[dep_name] = failed_name
            logger.info('scheduler_package_blocked', package=dep_name, blocked_by=failed_name)
            pending.extend(self._nodes[dep_name].dependents)

    async def run(self, build_fn: BuildFn) -> SchedulerResult:
        """Run until every package is built, failed or blocked.

        If ``build_fn`` raises, the package is recorded as failed and its
        dependents are never enqueued.
        """
        seeded = self._seed_queue()
        if seeded == 0 and self._nodes:
            logger.warning('scheduler_no_seeds', hint='Every package waits on another. Check for cycles.')
            return self._result

        logger.info('scheduler_start', total=len(self._nodes), seeded=seeded, concurrency=self._concurrency)

        async def worker(worker_id: int) -> None:
            while True:
                node = await self._queue.get()
                try:
                    async with self._semaphore:
                        logger.info('scheduler_build_start', package=node.name, worker=worker_id)
                        try:
                            await build_fn(node.name)
                        except Exception as exc:  # noqa: BLE001 - any failure blocks dependents
                            self._result.failed[node.name] = str(exc)
                            self._done.add(node.name)
                            logger.error('scheduler_build_failed', package=node.name, error=str(exc))
                            self._block_dependents(node.name)
                        else:
                            self._result.built.append(node.name)
                            self.mark_done(node.name)
                            logger.info('scheduler_build_done', package=node.name, worker=worker_id)
                finally:
                    self._queue.task_done()

        workers = [
            asyncio.create_task(worker(i), name=f'scheduler-worker-{i}')
            for i in range(min(self._concurrency, len(self._nodes)))
        ]
        try:
            await self._queue.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        logger.info(
            'scheduler_complete',
            built=len(self._result.built),
            failed=len(self._result.failed),
            blocked=len(self._result.blocked),
        )
        return self._result


__all__ = [
    'BuildFn',
    'PackageNode',
    'Scheduler',
    'SchedulerResult',
]

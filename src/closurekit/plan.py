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

"""Build plan: the artifact keys every package would build with.

Computing a plan resolves closures and filters trees but never calls an
executor, so it answers "what would rebuild?" without building anything.
Comparing two plans taken before and after an edit shows exactly which
caches the edit invalidates.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ BuildPlan           │ A list of every package with the two cache    │
    │                     │ keys it would build under.                    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PlanDiff            │ Which packages got new keys between two       │
    │                     │ plans. New key = cache miss = rebuild.        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Format              │ Table (rich, for humans) or JSON (for CI).    │
    └─────────────────────┴────────────────────────────────────────────────┘

Usage::

    before = build_plan(builder)
    # ... edit crates/pkg-a/src/lib.rs ...
    after = build_plan(builder_for_new_run)
    diff_plans(before, after).full_changed  # ['pkg-a', 'pkg-b', 'pkg-c']
"""

from __future__ import annotations

import io
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from closurekit.artifacts import ArtifactKey, Stage
from closurekit.errors import ClosureKitError, CyclicDependencyError
from closurekit.graph import build_graph, topo_sort
from closurekit.logging import get_logger

if TYPE_CHECKING:
    from closurekit.builder import ArtifactBuilder

logger = get_logger(__name__)


class PlanStatus(str, Enum):
    """Status of a package in the build plan."""

    INCLUDED = 'included'
    EXCLUDED = 'excluded'
    ERROR = 'error'


_STATUS_STYLE: dict[PlanStatus, str] = {
    PlanStatus.INCLUDED: 'green',
    PlanStatus.EXCLUDED: 'dim',
    PlanStatus.ERROR: 'red',
}


@dataclass(frozen=True)
class PlanEntry:
    """One row of the build plan.

    Attributes:
        name: Package name.
        level: Topological level (0 = no local deps).
        closure: Sorted local dependency closure.
        external_dependencies: Sorted external crates of package and closure.
        deps_key: Key of the ``DEPS_ONLY`` artifact.
        full_key: Key of the ``FULL`` artifact.
        status: Whether the package would be built.
        reason: Why it is excluded or failed.
    """

    name: str
    level: int = 0
    closure: tuple[str, ...] = ()
    external_dependencies: tuple[str, ...] = ()
    deps_key: ArtifactKey | None = None
    full_key: ArtifactKey | None = None
    status: PlanStatus = PlanStatus.INCLUDED
    reason: str = ''

    def to_dict(self) -> dict[str, object]:
        """Plain-value form for JSON output."""
        return {
            'name': self.name,
            'level': self.level,
            'closure': list(self.closure),
            'external_dependencies': list(self.external_dependencies),
            'deps_key': self.deps_key.to_dict() if self.deps_key else None,
            'full_key': self.full_key.to_dict() if self.full_key else None,
            'status': self.status.value,
            'reason': self.reason,
        }


@dataclass
class BuildPlan:
    """Per-package artifact keys for one workspace state.

    Attributes:
        entries: Entries ordered by level, then name.
    """

    entries: list[PlanEntry] = field(default_factory=list)

    def entry(self, name: str) -> PlanEntry | None:
        """Return the entry for ``name``, if planned."""
        for e in self.entries:
            if e.name == name:
                return e
        return None

    def summary(self) -> dict[str, int]:
        """Return a count of entries by status."""
        counts: dict[str, int] = {}
        for entry in self.entries:
            counts[entry.status.value] = counts.get(entry.status.value, 0) + 1
        return counts

    def format_table(self, *, width: int = 120) -> str:
        """Render the plan as a rich table (plain text, no color codes)."""
        if not self.entries:
            return 'No packages in the build plan.'
        table = Table(title='Build plan')
        table.add_column('Level', justify='right')
        table.add_column('Package')
        table.add_column('Closure')
        table.add_column('Externals', justify='right')
        table.add_column('Deps key')
        table.add_column('Full key')
        table.add_column('Status')
        for e in self.entries:
            table.add_row(
                str(e.level),
                e.name,
                ', '.join(e.closure) or '-',
                str(len(e.external_dependencies)),
                e.deps_key.tree_hash[:12] if e.deps_key else '-',
                e.full_key.tree_hash[:12] if e.full_key else '-',
                f'[{_STATUS_STYLE[e.status]}]{e.status.value}[/]' + (f' ({e.reason})' if e.reason else ''),
            )
        buf = io.StringIO()
        console = Console(file=buf, width=width, force_terminal=False, color_system=None)
        console.print(table)
        parts = [f'{count} {status}' for status, count in sorted(self.summary().items())]
        console.print(f'Total: {len(self.entries)} packages ({", ".join(parts)})')
        return buf.getvalue()

    def format_json(self) -> str:
        """Render the plan as JSON."""
        return json.dumps(
            {'summary': self.summary(), 'entries': [e.to_dict() for e in self.entries]},
            indent=2,
        )


@dataclass(frozen=True)
class PlanDiff:
    """Packages whose artifact keys differ between two plans.

    Attributes:
        deps_changed: Packages with a new ``DEPS_ONLY`` key.
        full_changed: Packages with a new ``FULL`` key.
        added: Packages only in the second plan.
        removed: Packages only in the first plan.
    """

    deps_changed: list[str] = field(default_factory=list)
    full_changed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def unchanged(self) -> bool:
        """Return True if no key changed and no package came or went."""
        return not (self.deps_changed or self.full_changed or self.added or self.removed)

    def changed(self, stage: Stage) -> list[str]:
        """Packages whose key for ``stage`` changed."""
        return self.deps_changed if stage is Stage.DEPS_ONLY else self.full_changed


def build_plan(builder: ArtifactBuilder, names: Iterable[str] | None = None) -> BuildPlan:
    """Compute the build plan without building.

    Packages outside the selection are listed as excluded. Packages whose
    closure cannot be resolved are listed with status ``error``.
    """
    resolver = builder.resolver
    selected = builder.select(names)
    graph = build_graph(resolver)
    try:
        levels = topo_sort(graph)
        level_map = {pkg.name: i for i, level in enumerate(levels) for pkg in level}
    except CyclicDependencyError:
        level_map = {}

    entries: list[PlanEntry] = []
    for name in graph.names:
        level = level_map.get(name, 0)
        if name not in selected:
            entries.append(PlanEntry(name=name, level=level, status=PlanStatus.EXCLUDED, reason='not selected'))
            continue
        try:
            inputs = builder.prepare(name)
        except ClosureKitError as exc:
            entries.append(PlanEntry(name=name, level=level, status=PlanStatus.ERROR, reason=exc.code.value))
            continue
        entries.append(
            PlanEntry(
                name=name,
                level=level,
                closure=tuple(sorted(inputs.closure)),
                external_dependencies=tuple(sorted(inputs.external_dependencies)),
                deps_key=ArtifactKey(package=name, stage=Stage.DEPS_ONLY, tree_hash=inputs.skeleton.content_hash),
                full_key=ArtifactKey(package=name, stage=Stage.FULL, tree_hash=inputs.tree.content_hash),
            )
        )

    entries.sort(key=lambda e: (e.level, e.name))
    plan = BuildPlan(entries=entries)
    logger.info('plan_built', total=len(entries), **plan.summary())
    return plan


def diff_plans(before: BuildPlan, after: BuildPlan) -> PlanDiff:
    """Report which packages' artifact keys changed between two plans."""
    old = {e.name: e for e in before.entries}
    new = {e.name: e for e in after.entries}
    common = sorted(old.keys() & new.keys())
    diff = PlanDiff(
        deps_changed=[n for n in common if old[n].deps_key != new[n].deps_key],
        full_changed=[n for n in common if old[n].full_key != new[n].full_key],
        added=sorted(new.keys() - old.keys()),
        removed=sorted(old.keys() - new.keys()),
    )
    logger.debug(
        'plans_diffed',
        deps_changed=diff.deps_changed,
        full_changed=diff.full_changed,
        added=diff.added,
        removed=diff.removed,
    )
    return diff


__all__ = [
    'BuildPlan',
    'PlanDiff',
    'PlanEntry',
    'PlanStatus',
    'build_plan',
    'diff_plans',
]

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

"""Build stages, stage specs and artifact keys.

Every package builds in two stages::

    ┌──────────────┐   skeleton of tree    ┌──────────────────────────┐
    │ DEPS_ONLY    │──────────────────────→│ external crates compiled │
    └──────┬───────┘                       └──────────────────────────┘
           │ seeds target dir
           ▼
    ┌──────────────┐   full filtered tree  ┌──────────────────────────┐
    │ FULL         │──────────────────────→│ package compiled         │
    └──────────────┘                       └──────────────────────────┘

An artifact is identified by ``(package, stage, tree_hash)``. Two builds
with equal keys and equal :class:`StageSpec` are interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class Stage(str, Enum):
    """Build stage."""

    DEPS_ONLY = 'deps-only'
    FULL = 'full'


@dataclass(frozen=True)
class ArtifactKey:
    """Cache identity of an artifact.

    Attributes:
        package: The package the artifact belongs to.
        stage: Which stage produced it.
        tree_hash: Content hash of the tree it was built from (the
            dependency skeleton for ``DEPS_ONLY``).
    """

    package: str
    stage: Stage
    tree_hash: str

    def __str__(self) -> str:
        return f'{self.package}/{self.stage.value}/{self.tree_hash[:12]}'

    def to_dict(self) -> dict[str, str]:
        """Plain-value form for JSON output."""
        return {'package': self.package, 'stage': self.stage.value, 'tree_hash': self.tree_hash}


@dataclass(frozen=True)
class Artifact:
    """Output of one build stage.

    Attributes:
        key: The artifact's cache identity.
        path: Where the executor stored the output, if on disk.
        built_from: For ``FULL`` artifacts, the ``DEPS_ONLY`` key it was
            seeded with.
        cached: Whether the executor reused an existing output.
    """

    key: ArtifactKey
    path: Path | None = field(default=None, compare=False)
    built_from: ArtifactKey | None = None
    cached: bool = field(default=False, compare=False)

    @property
    def package(self) -> str:
        return self.key.package

    @property
    def stage(self) -> Stage:
        return self.key.stage

    def to_dict(self) -> dict[str, Any]:  # noqa: ANN401 - JSON values
        """Plain-value form for ``artifact.json`` records."""
        return {
            **self.key.to_dict(),
            'path': str(self.path) if self.path else None,
            'built_from': self.built_from.to_dict() if self.built_from else None,
        }


@dataclass(frozen=True)
class StageSpec:
    """What a build executor should compile.

    Attributes:
        stage: Which stage to run.
        package: The package being built.
        closure: Its local dependency closure.
        external_dependencies: External crates needed by the package and
            its closure. ``DEPS_ONLY`` compiles exactly these.
        deps_key: For ``FULL``, the key of the ``DEPS_ONLY`` artifact the
            build starts from.
        deps_artifact: The ``DEPS_ONLY`` artifact itself. Not part of the
            spec's identity.
    """

    stage: Stage
    package: str
    closure: frozenset[str] = frozenset()
    external_dependencies: frozenset[str] = frozenset()
    deps_key: ArtifactKey | None = None
    deps_artifact: Artifact | None = field(default=None, compare=False)

    @property
    def packages(self) -> frozenset[str]:
        """The package together with its closure."""
        return self.closure | {self.package}


__all__ = [
    'Artifact',
    'ArtifactKey',
    'Stage',
    'StageSpec',
]

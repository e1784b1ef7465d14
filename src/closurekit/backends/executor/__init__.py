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

"""Build executor protocol for closurekit.

The :class:`BuildExecutor` compiles a filtered tree for one stage and owns
its artifact cache. closurekit only promises that identical
``(tree.content_hash, spec)`` pairs may share a cached artifact.
Implementations:

- :class:`~closurekit.backends.executor.cargo.CargoExecutor`: ``cargo build``
  in a materialized tree.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from closurekit.artifacts import Artifact, StageSpec
from closurekit.backends.executor.cargo import CargoExecutor as CargoExecutor
from closurekit.filter import FilteredTree

__all__ = [
    'BuildExecutor',
    'CargoExecutor',
]


@runtime_checkable
class BuildExecutor(Protocol):
    """Protocol for running one build stage."""

    async def build_artifact(self, tree: FilteredTree, spec: StageSpec) -> Artifact:
        """Build ``spec`` from ``tree``.

        Args:
            tree: The source snapshot. For ``DEPS_ONLY`` this is the
                dependency skeleton.
            spec: Stage, package, closure and external dependency set.

        Returns:
            The produced (or cached) artifact.

        Raises:
            BuildError: If the build fails or times out.
        """
        ...

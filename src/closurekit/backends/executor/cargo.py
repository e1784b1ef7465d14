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

"""Cargo build executor.

Runs ``cargo build --profile <p> -p <package> --target-dir <dir>`` inside a
checkout of the filtered tree. Outputs live under the cache directory::

    <cache_dir>/
    ├── trees/<tree-hash>/                      ← materialized trees
    └── artifacts/<stage>/<package>/<tree-hash>/
        ├── target/                             ← cargo target dir
        └── artifact.json                       ← written last

An artifact directory with an ``artifact.json`` is a finished build and is
returned as is. The full stage copies the deps-only target directory first,
so cargo only compiles the package and its closure.

All methods are async; the blocking cargo call runs in
``asyncio.to_thread()``.
"""

from __future__ import annotations

import asyncio
import json
import shutil
from collections.abc import Sequence
from pathlib import Path

import aiofiles

from closurekit.artifacts import Artifact, ArtifactKey, Stage, StageSpec
from closurekit.backends._run import TimeoutExpired, run_command
from closurekit.errors import BuildError, E
from closurekit.filter import FilteredTree, SourceFilter
from closurekit.logging import get_logger

log = get_logger('closurekit.backends.executor.cargo')

ARTIFACT_RECORD = 'artifact.json'


def _key_from_dict(data: dict[str, str] | None) -> ArtifactKey | None:
    if not data:
        return None
    return ArtifactKey(package=data['package'], stage=Stage(data['stage']), tree_hash=data['tree_hash'])


class CargoExecutor:
    """:class:`~closurekit.backends.executor.BuildExecutor` backed by cargo.

    Args:
        source_filter: Materializes trees into the cache directory.
        profile: Cargo profile name.
        extra_args: Extra arguments appended to ``cargo build``.
        timeout: Seconds a single stage may run.
        dry_run: Log cargo commands without running them.
        cargo: The cargo binary.
    """

    def __init__(
        self,
        source_filter: SourceFilter,
        *,
        profile: str = 'release',
        extra_args: Sequence[str] = (),
        timeout: int = 1800,
        dry_run: bool = False,
        cargo: str = 'cargo',
    ) -> None:
        """Initialize with the filter whose cache directory holds outputs."""
        self._filter = source_filter
        self.profile = profile
        self.extra_args = tuple(extra_args)
        self.timeout = timeout
        self.dry_run = dry_run
        self.cargo = cargo
        self.artifacts_dir = source_filter.root / source_filter.config.cache_dir / 'artifacts'

    @classmethod
    def from_config(cls, source_filter: SourceFilter, *, dry_run: bool = False) -> CargoExecutor:
        """Build an executor from the filter's :class:`BuildConfig`."""
        config = source_filter.config
        return cls(
            source_filter,
            profile=config.cargo_profile,
            extra_args=config.cargo_extra_args,
            timeout=config.build_timeout,
            dry_run=dry_run,
        )

    def artifact_dir(self, key: ArtifactKey) -> Path:
        """Directory holding the output for ``key``."""
        return self.artifacts_dir / key.stage.value / key.package / key.tree_hash

    def command(self, spec: StageSpec, target_dir: Path) -> list[str]:
        """The cargo command line for ``spec``."""
        return [
            self.cargo,
            'build',
            '--profile',
            self.profile,
            '-p',
            spec.package,
            '--target-dir',
            str(target_dir),
            *self.extra_args,
        ]

    async def build_artifact(self, tree: FilteredTree, spec: StageSpec) -> Artifact:
        """Build one stage of ``spec.package`` from ``tree``.

        Raises:
            BuildError: If cargo exits non-zero or exceeds the timeout.
        """
        key = ArtifactKey(package=spec.package, stage=spec.stage, tree_hash=tree.content_hash)
        out_dir = self.artifact_dir(key)
        record = out_dir / ARTIFACT_RECORD

        cached = await self._read_record(record)
        if cached is not None:
            log.info('artifact_cached', artifact=str(key))
            return cached

        checkout = await asyncio.to_thread(self._filter.checkout, tree)
        target_dir = out_dir / 'target'
        if spec.stage is Stage.FULL and spec.deps_artifact is not None and spec.deps_artifact.path is not None:
            seed = spec.deps_artifact.path / 'target'
            if seed.is_dir() and not target_dir.exists():
                await asyncio.to_thread(shutil.copytree, seed, target_dir, symlinks=True)

        cmd = self.command(spec, target_dir)
        log.info('cargo_build', package=spec.package, stage=spec.stage.value, tree=tree.content_hash[:12])
        try:
            result = await asyncio.to_thread(
                run_command,
                cmd,
                cwd=checkout,
                timeout=self.timeout,
                dry_run=self.dry_run,
            )
        except TimeoutExpired as exc:
            raise BuildError(
                message=f'cargo build of {spec.package} ({spec.stage.value}) timed out after {self.timeout}s',
                hint='Raise build_timeout in closurekit.toml.',
                package=spec.package,
                stage=spec.stage.value,
                code=E.BUILD_TIMEOUT,
            ) from exc

        if not result.ok:
            raise BuildError(
                message=f'cargo build of {spec.package} ({spec.stage.value}) exited with {result.return_code}:\n'
                f'{result.stderr_tail()}',
                hint=f'Reproduce with: cd {checkout} && {result.command_str}',
                package=spec.package,
                stage=spec.stage.value,
            )

        artifact = Artifact(key=key, path=out_dir, built_from=spec.deps_key)
        if not self.dry_run:
            await self._write_record(record, artifact)
        return artifact

    async def _read_record(self, record: Path) -> Artifact | None:
        if not record.is_file():
            return None
        async with aiofiles.open(record, encoding='utf-8') as f:
            data = json.loads(await f.read())
        key = _key_from_dict(data)
        if key is None:
            return None
        return Artifact(key=key, path=record.parent, built_from=_key_from_dict(data.get('built_from')), cached=True)

    async def _write_record(self, record: Path, artifact: Artifact) -> None:
        record.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(record, mode='w', encoding='utf-8') as f:
            await f.write(json.dumps(artifact.to_dict(), indent=2, sort_keys=True) + '\n')


__all__ = [
    'ARTIFACT_RECORD',
    'CargoExecutor',
]

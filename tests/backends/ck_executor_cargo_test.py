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

"""Tests for closurekit.backends.executor.cargo module.

``run_command`` is replaced by a recorder, so no cargo toolchain is needed.
"""

from __future__ import annotations

import json
import subprocess  # noqa: S404 - only for TimeoutExpired
from pathlib import Path

import pytest
from closurekit.artifacts import Artifact, ArtifactKey, Stage
from closurekit.backends._run import CommandResult
from closurekit.backends.executor import BuildExecutor
from closurekit.backends.executor.cargo import ARTIFACT_RECORD, CargoExecutor
from closurekit.builder import ArtifactBuilder, BuildInputs
from closurekit.config import BuildConfig
from closurekit.errors import BuildError, E
from closurekit.filter import SourceFilter
from closurekit.graph import ClosureResolver

from tests._fakes import FakeExecutor, make_reference_workspace

_RUN = 'closurekit.backends.executor.cargo.run_command'


class _Recorder:
    """Stands in for run_command and records each call."""

    def __init__(self, return_code: int = 0, stderr: str = '', timeout: bool = False) -> None:
        self.return_code = return_code
        self.stderr = stderr
        self.timeout = timeout
        self.calls: list[tuple[list[str], Path]] = []

    def __call__(self, cmd: list[str], *, cwd: Path, timeout: int, dry_run: bool = False) -> CommandResult:
        self.calls.append((cmd, Path(cwd)))
        if self.timeout:
            raise subprocess.TimeoutExpired(cmd, timeout)
        return CommandResult(command=cmd, return_code=self.return_code, stderr=self.stderr)


def _setup(root: Path, config: BuildConfig | None = None, **kwargs: object) -> tuple[CargoExecutor, BuildInputs]:
    source_filter = SourceFilter(ClosureResolver.from_workspace(root, config=config))
    inputs = ArtifactBuilder(source_filter, FakeExecutor()).prepare('pkg-b')
    return CargoExecutor(source_filter, **kwargs), inputs  # type: ignore[arg-type]


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """The reference workspace."""
    return make_reference_workspace(tmp_path)


class TestCommand:
    """The cargo command line."""

    def test_command(self, workspace: Path) -> None:
        """profile, package, target dir and extra args are passed."""
        executor, inputs = _setup(workspace, profile='dev', extra_args=['--locked'])
        cmd = executor.command(inputs.deps_spec(), Path('/t'))
        assert cmd == ['cargo', 'build', '--profile', 'dev', '-p', 'pkg-b', '--target-dir', '/t', '--locked'], cmd

    def test_from_config(self, workspace: Path) -> None:
        """from_config reads profile, extra args and timeout."""
        config = BuildConfig(cargo_profile='ci', cargo_extra_args=('--frozen',), build_timeout=42)
        source_filter = SourceFilter(ClosureResolver.from_workspace(workspace, config=config))
        executor = CargoExecutor.from_config(source_filter)
        assert executor.profile == 'ci'
        assert executor.extra_args == ('--frozen',)
        assert executor.timeout == 42
        assert isinstance(executor, BuildExecutor)

    def test_artifact_dir(self, workspace: Path) -> None:
        """Artifacts live under <cache_dir>/artifacts/<stage>/<package>/<hash>."""
        executor, _ = _setup(workspace)
        key = ArtifactKey(package='pkg-b', stage=Stage.FULL, tree_hash='ab' * 32)
        expected = workspace.resolve() / '.closurekit' / 'artifacts' / 'full' / 'pkg-b' / ('ab' * 32)
        assert executor.artifact_dir(key) == expected


class TestBuildArtifact:
    """CargoExecutor.build_artifact()."""

    @pytest.mark.asyncio
    async def test_builds_in_checkout(self, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """cargo runs inside the materialized tree and a record is written."""
        recorder = _Recorder()
        monkeypatch.setattr(_RUN, recorder)
        executor, inputs = _setup(workspace)

        artifact = await executor.build_artifact(inputs.skeleton, inputs.deps_spec())

        assert len(recorder.calls) == 1
        cmd, cwd = recorder.calls[0]
        assert cwd == workspace.resolve() / '.closurekit' / 'trees' / inputs.skeleton.content_hash
        assert (cwd / 'crates/pkg-b/src/main.rs').is_file()
        assert not (cwd / 'crates/pkg-b/src/util.rs').exists()
        assert str(executor.artifact_dir(artifact.key) / 'target') in cmd
        assert not artifact.cached
        record = json.loads((artifact.path / ARTIFACT_RECORD).read_text(encoding='utf-8'))
        assert record['tree_hash'] == inputs.skeleton.content_hash
        assert record['stage'] == 'deps-only'

    @pytest.mark.asyncio
    async def test_cached_record_reused(self, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A finished artifact is returned without running cargo again."""
        recorder = _Recorder()
        monkeypatch.setattr(_RUN, recorder)
        executor, inputs = _setup(workspace)
        first = await executor.build_artifact(inputs.tree, inputs.deps_spec())
        second = await executor.build_artifact(inputs.tree, inputs.deps_spec())
        assert len(recorder.calls) == 1
        assert second.cached
        assert second.key == first.key

    @pytest.mark.asyncio
    async def test_full_stage_seeded(self, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """The FULL stage starts from a copy of the deps-only target dir."""
        monkeypatch.setattr(_RUN, _Recorder())
        executor, inputs = _setup(workspace)
        deps = await executor.build_artifact(inputs.skeleton, inputs.deps_spec())
        assert deps.path is not None
        (deps.path / 'target' / 'release').mkdir(parents=True)
        (deps.path / 'target' / 'release' / 'libonce_cell.rlib').write_text('compiled', encoding='utf-8')

        full = await executor.build_artifact(inputs.tree, inputs.full_spec(deps))

        assert full.built_from == deps.key
        assert full.path is not None
        assert (full.path / 'target' / 'release' / 'libonce_cell.rlib').read_text(encoding='utf-8') == 'compiled'

    @pytest.mark.asyncio
    async def test_failure(self, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A non-zero exit raises BuildError with the stderr tail."""
        monkeypatch.setattr(_RUN, _Recorder(return_code=101, stderr='error[E0425]: cannot find value'))
        executor, inputs = _setup(workspace)
        with pytest.raises(BuildError) as exc_info:
            await executor.build_artifact(inputs.tree, inputs.deps_spec())
        assert exc_info.value.code is E.BUILD_FAILED
        assert 'E0425' in str(exc_info.value)
        assert exc_info.value.package == 'pkg-b'
        assert not list(executor.artifacts_dir.rglob(ARTIFACT_RECORD))

    @pytest.mark.asyncio
    async def test_timeout(self, workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A timeout raises BuildError with CK-BUILD-TIMEOUT."""
        monkeypatch.setattr(_RUN, _Recorder(timeout=True))
        executor, inputs = _setup(workspace, timeout=5)
        with pytest.raises(BuildError) as exc_info:
            await executor.build_artifact(inputs.tree, inputs.deps_spec())
        assert exc_info.value.code is E.BUILD_TIMEOUT

    @pytest.mark.asyncio
    async def test_dry_run(self, workspace: Path) -> None:
        """A dry run executes nothing and records nothing."""
        executor, inputs = _setup(workspace, dry_run=True, cargo='definitely-not-cargo')
        artifact = await executor.build_artifact(inputs.tree, inputs.deps_spec())
        assert isinstance(artifact, Artifact)
        assert artifact.path is not None
        assert not (artifact.path / ARTIFACT_RECORD).exists()

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

"""Tests for closurekit.backends._run module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from closurekit.backends._run import CommandResult, TimeoutExpired, run_command


class TestCommandResult:
    """Tests for CommandResult."""

    def test_ok(self) -> None:
        """Exit status 0 is ok."""
        assert CommandResult(command=['true'], return_code=0).ok
        assert not CommandResult(command=['false'], return_code=1).ok

    def test_command_str(self) -> None:
        """command_str joins the argv."""
        result = CommandResult(command=['cargo', 'build', '-p', 'pkg-a'], return_code=0)
        assert result.command_str == 'cargo build -p pkg-a'

    def test_stderr_tail(self) -> None:
        """stderr_tail keeps the last lines."""
        stderr = '\n'.join(f'line {i}' for i in range(50))
        tail = CommandResult(command=['x'], return_code=1, stderr=stderr).stderr_tail(3)
        assert tail == 'line 47\nline 48\nline 49'


class TestRunCommand:
    """Tests for run_command()."""

    def test_dry_run(self, tmp_path: Path) -> None:
        """Dry runs never execute."""
        marker = tmp_path / 'marker'
        result = run_command([sys.executable, '-c', f'open({str(marker)!r}, "w")'], dry_run=True)
        assert result.ok and result.dry_run
        assert not marker.exists()

    def test_success_captures_output(self, tmp_path: Path) -> None:
        """stdout is captured and cwd is honored."""
        result = run_command([sys.executable, '-c', 'import os; print(os.getcwd())'], cwd=tmp_path)
        assert result.ok
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    def test_failure_is_not_an_exception(self) -> None:
        """A non-zero exit is reported, not raised."""
        result = run_command([sys.executable, '-c', 'import sys; sys.stderr.write("boom"); sys.exit(3)'])
        assert result.return_code == 3
        assert 'boom' in result.stderr

    def test_env_overrides(self) -> None:
        """Extra environment variables reach the process."""
        result = run_command(
            [sys.executable, '-c', 'import os; print(os.environ["CK_TEST_VAR"])'],
            env={'CK_TEST_VAR': 'hello'},
        )
        assert result.stdout.strip() == 'hello'
        assert result.env_overrides == {'CK_TEST_VAR': 'hello'}

    def test_timeout_raises(self) -> None:
        """A command over its timeout raises TimeoutExpired."""
        with pytest.raises(TimeoutExpired):
            run_command([sys.executable, '-c', 'import time; time.sleep(5)'], timeout=1)

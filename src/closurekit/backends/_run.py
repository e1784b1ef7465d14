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

"""Subprocess entry point for closurekit executors.

Every ``cargo`` invocation goes through :func:`run_command`, which logs
the call, supports dry runs, enforces a timeout and returns a
:class:`CommandResult`. Async callers dispatch it with
``asyncio.to_thread``.
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - running the toolchain is this module's job
import time
from dataclasses import dataclass, field
from pathlib import Path

from closurekit.logging import get_logger

log = get_logger('closurekit.backends.run')

DEFAULT_TIMEOUT_SECONDS = 1800


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed.
        return_code: Process exit code (0 = success).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration: Wall-clock duration in milliseconds.
        dry_run: Whether the command was only logged.
        env_overrides: Extra environment variables passed to the process.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0
    dry_run: bool = False
    env_overrides: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single shell-style string."""
        return ' '.join(self.command)

    def stderr_tail(self, lines: int = 20) -> str:
        """Last ``lines`` lines of stderr, for error messages."""
        return '\n'.join(self.stderr.splitlines()[-lines:])


def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    dry_run: bool = False,
    capture: bool = True,
) -> CommandResult:
    """Run ``cmd`` and return its result.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Extra environment variables, merged over the current ones.
        timeout: Seconds before the process is killed.
        dry_run: Log the command and return a synthetic success.
        capture: Capture stdout and stderr.

    Returns:
        A :class:`CommandResult`. A non-zero exit is not an exception.

    Raises:
        subprocess.TimeoutExpired: If the command exceeds ``timeout``.
    """
    cmd_str = ' '.join(cmd)
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'), dry_run=dry_run)

    if dry_run:
        log.info('dry_run', cmd=cmd_str)
        return CommandResult(command=cmd, return_code=0, dry_run=True, env_overrides=env or {})

    full_env = {**os.environ, **env} if env else None
    start = time.monotonic()
    try:
        proc = subprocess.run(  # noqa: S603 - commands are built by executors, never from user strings
            cmd,
            cwd=cwd,
            env=full_env,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        log.error('command_timeout', cmd=cmd_str, timeout=timeout, duration=(time.monotonic() - start) * 1000)
        raise

    duration = (time.monotonic() - start) * 1000
    result = CommandResult(
        command=cmd,
        return_code=proc.returncode,
        stdout=proc.stdout if capture else '',
        stderr=proc.stderr if capture else '',
        duration=duration,
        env_overrides=env or {},
    )
    if result.ok:
        log.debug('command_ok', cmd=cmd_str, duration=duration)
    else:
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=proc.returncode,
            stderr=result.stderr[:500],
            duration=duration,
        )
    return result


# Re-exported so callers need not import subprocess.
TimeoutExpired = subprocess.TimeoutExpired

__all__ = [
    'DEFAULT_TIMEOUT_SECONDS',
    'CommandResult',
    'TimeoutExpired',
    'run_command',
]

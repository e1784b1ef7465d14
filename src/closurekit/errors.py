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

"""Structured error system for closurekit.

Every error has a unique ``CK-NAMED-KEY`` code, a human-readable message,
an optional hint with a suggested fix, and the names of the packages it
concerns.

Taxonomy::

    ┌────────────────────────┬────────────────────────────────────────────────┐
    │ Exception              │ Policy                                         │
    ├────────────────────────┼────────────────────────────────────────────────┤
    │ ConfigurationError     │ Missing or ambiguous package, missing          │
    │                        │ manifest, bad closurekit.toml. Fatal.          │
    ├────────────────────────┼────────────────────────────────────────────────┤
    │ ManifestParseError     │ Malformed Cargo.toml. Fatal for that package   │
    │                        │ only; unrelated packages keep resolving.       │
    ├────────────────────────┼────────────────────────────────────────────────┤
    │ CyclicDependencyError  │ A cycle reachable from the requested package.  │
    │                        │ Carries the full cycle, e.g. [a, b, c, a].     │
    ├────────────────────────┼────────────────────────────────────────────────┤
    │ BuildError             │ Raised by the build executor. Dependents are   │
    │                        │ marked blocked, never retried.                 │
    └────────────────────────┴────────────────────────────────────────────────┘

Code categories::

    CK-CONFIG-*       closurekit.toml errors
    CK-WORKSPACE-*    Workspace index errors
    CK-MANIFEST-*     Package manifest errors
    CK-GRAPH-*        Dependency graph errors
    CK-FILTER-*       Source filter errors
    CK-BUILD-*        Build executor errors

Usage::

    from closurekit.errors import ConfigurationError, E

    raise ConfigurationError(
        code=E.WORKSPACE_MEMBER_NOT_FOUND,
        message="Member path 'crates/missing' does not exist",
        hint='Fix [workspace].members in Cargo.toml.',
    )
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of all closurekit diagnostic codes."""

    # Configuration
    CONFIG_NOT_FOUND = 'CK-CONFIG-NOT-FOUND'
    CONFIG_INVALID_KEY = 'CK-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'CK-CONFIG-INVALID-VALUE'

    # Workspace index
    WORKSPACE_NOT_FOUND = 'CK-WORKSPACE-NOT-FOUND'
    WORKSPACE_NO_MEMBERS = 'CK-WORKSPACE-NO-MEMBERS'
    WORKSPACE_MEMBER_NOT_FOUND = 'CK-WORKSPACE-MEMBER-NOT-FOUND'
    WORKSPACE_ROOT_MEMBER = 'CK-WORKSPACE-ROOT-MEMBER'
    WORKSPACE_DUPLICATE_PACKAGE = 'CK-WORKSPACE-DUPLICATE-PACKAGE'
    WORKSPACE_UNKNOWN_PACKAGE = 'CK-WORKSPACE-UNKNOWN-PACKAGE'

    # Package manifests
    MANIFEST_NOT_FOUND = 'CK-MANIFEST-NOT-FOUND'
    MANIFEST_PARSE_ERROR = 'CK-MANIFEST-PARSE-ERROR'
    MANIFEST_SHADOWED_NAME = 'CK-MANIFEST-SHADOWED-NAME'

    # Dependency graph
    GRAPH_CYCLE_DETECTED = 'CK-GRAPH-CYCLE-DETECTED'

    # Source filter
    FILTER_EMPTY_TARGET = 'CK-FILTER-EMPTY-TARGET'

    # Build
    BUILD_FAILED = 'CK-BUILD-FAILED'
    BUILD_TIMEOUT = 'CK-BUILD-TIMEOUT'
    BUILD_BLOCKED = 'CK-BUILD-BLOCKED'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``CK-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class ClosureKitError(Exception):
    """Base exception for all closurekit errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
        packages: Names of the packages the error concerns.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        hint: str = '',
        *,
        packages: Iterable[str] = (),
    ) -> None:
        """Initialize with an error code, message, hint and packages."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        self.packages: tuple[str, ...] = tuple(packages)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


class ConfigurationError(ClosureKitError):
    """Missing or ambiguous package, missing manifest, or invalid config."""


class ManifestParseError(ClosureKitError):
    """A package manifest exists but is not valid TOML."""

    def __init__(self, message: str, hint: str = '', *, package: str = '') -> None:
        """Initialize for the package whose manifest failed to parse."""
        super().__init__(
            code=E.MANIFEST_PARSE_ERROR,
            message=message,
            hint=hint,
            packages=(package,) if package else (),
        )
        self.package = package


class CyclicDependencyError(ClosureKitError):
    """A dependency cycle was found while walking local dependencies.

    Attributes:
        cycle: The cycle as a closed path, first and last element equal
            (``['a', 'b', 'c', 'a']``). A self-dependency is ``['a', 'a']``.
    """

    def __init__(self, cycle: list[str]) -> None:
        """Initialize with the closed cycle path."""
        self.cycle = list(cycle)
        super().__init__(
            code=E.GRAPH_CYCLE_DETECTED,
            message=f'Circular dependency: {" → ".join(self.cycle)}',
            hint='Remove one of the path dependencies that closes the loop.',
            packages=sorted(set(self.cycle)),
        )


class BuildError(ClosureKitError):
    """A build executor failed to produce an artifact.

    Attributes:
        package: The package whose build failed.
        stage: The build stage (``'deps-only'`` or ``'full'``), if known.
    """

    def __init__(
        self,
        message: str,
        hint: str = '',
        *,
        package: str,
        stage: str = '',
        code: ErrorCode = E.BUILD_FAILED,
    ) -> None:
        """Initialize for a failed build of ``package``."""
        super().__init__(code=code, message=message, hint=hint, packages=(package,))
        self.package = package
        self.stage = stage


class ClosureKitWarning(UserWarning):
    """Base warning for all closurekit warnings.

    Same structure as :class:`ClosureKitError` but emitted via
    :func:`warnings.warn` instead of being raised.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for addressing this warning, or empty string."""
        return self.info.hint


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.WORKSPACE_NOT_FOUND: ErrorInfo(
        code=E.WORKSPACE_NOT_FOUND,
        message='No Cargo.toml with a [workspace] section found at the workspace root.',
        hint='Point closurekit at the directory holding the workspace Cargo.toml.',
    ),
    E.WORKSPACE_MEMBER_NOT_FOUND: ErrorInfo(
        code=E.WORKSPACE_MEMBER_NOT_FOUND,
        message='A [workspace].members entry names a path that does not exist.',
        hint='Create the directory or remove the entry from [workspace].members.',
    ),
    E.WORKSPACE_ROOT_MEMBER: ErrorInfo(
        code=E.WORKSPACE_ROOT_MEMBER,
        message='The workspace root itself is listed as a member.',
        hint='Move the root package into its own directory; every member needs a directory of its own.',
    ),
    E.WORKSPACE_DUPLICATE_PACKAGE: ErrorInfo(
        code=E.WORKSPACE_DUPLICATE_PACKAGE,
        message='Two workspace members resolve to the same package name.',
        hint='Package names come from directory basenames; rename one directory.',
    ),
    E.MANIFEST_NOT_FOUND: ErrorInfo(
        code=E.MANIFEST_NOT_FOUND,
        message='A workspace member has no Cargo.toml.',
        hint='Add a Cargo.toml to the member or drop it from [workspace].members.',
    ),
    E.MANIFEST_PARSE_ERROR: ErrorInfo(
        code=E.MANIFEST_PARSE_ERROR,
        message='A package Cargo.toml is not valid TOML.',
        hint='Fix the syntax error reported next to the file path.',
    ),
    E.MANIFEST_SHADOWED_NAME: ErrorInfo(
        code=E.MANIFEST_SHADOWED_NAME,
        message='A registry dependency has the same name as a workspace package.',
        hint='It is treated as external. Add path = "..." if the local package was meant.',
    ),
    E.GRAPH_CYCLE_DETECTED: ErrorInfo(
        code=E.GRAPH_CYCLE_DETECTED,
        message='Circular path dependency detected between workspace packages.',
        hint='The error message lists the full cycle; break one edge of it.',
    ),
    E.BUILD_BLOCKED: ErrorInfo(
        code=E.BUILD_BLOCKED,
        message='A package was not built because one of its dependencies failed.',
        hint='Fix the failing dependency; blocked packages are never retried.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"CK-GRAPH-CYCLE-DETECTED"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def _render(kind: str, color: str, code: ErrorCode, message: str, hint: str, out: TextIO) -> None:
    if out.isatty():
        console = Console(file=out, highlight=False)
        console.print(
            f'[bold {color}]{kind}[/bold {color}][bold {color}]\\[{code.value}][/bold {color}]'
            f'[bold]: {rich_escape(message)}[/bold]',
        )
        if hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(hint)}')
        console.print()
    else:
        print(f'{kind}[{code.value}]: {message}', file=out)  # noqa: T201 - diagnostic output
        if hint:
            print('  |', file=out)  # noqa: T201 - diagnostic output
            print(f'  = hint: {hint}', file=out)  # noqa: T201 - diagnostic output
        print(file=out)  # noqa: T201 - diagnostic output


def render_error(exc: ClosureKitError, *, file: TextIO | None = None) -> None:
    """Render an error in Rust-compiler style with color.

    Output format::

        error[CK-GRAPH-CYCLE-DETECTED]: Circular dependency: a → b → a
          |
          = hint: Remove one of the path dependencies that closes the loop.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    _render('error', 'red', exc.code, exc.info.message, exc.hint, file or sys.stderr)


def render_warning(exc: ClosureKitWarning, *, file: TextIO | None = None) -> None:
    """Render a warning in the same style as :func:`render_error`."""
    _render('warning', 'yellow', exc.code, exc.info.message, exc.hint, file or sys.stderr)


__all__ = [
    'E',
    'ERRORS',
    'BuildError',
    'ClosureKitError',
    'ClosureKitWarning',
    'ConfigurationError',
    'CyclicDependencyError',
    'ErrorCode',
    'ErrorInfo',
    'ManifestParseError',
    'explain',
    'render_error',
    'render_warning',
]

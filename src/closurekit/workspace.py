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

"""Workspace index: enumerate the packages of a Cargo workspace.

Cargo workspace layout (directory name is arbitrary)::

    rust/
    ├── Cargo.toml       ← workspace root ([workspace] with members)
    ├── Cargo.lock       ← shared lockfile
    └── crates/
        ├── pkg-a/
        │   └── Cargo.toml   ← package: pkg-a
        ├── pkg-b/
        │   └── Cargo.toml   ← package: pkg-b (path dep on pkg-a)
        └── pkg-c/
            └── Cargo.toml   ← package: pkg-c

Member patterns are either explicit relative paths (``"tools/xtask"``) or
``<dir>/*`` globs. A glob expands to every immediate, non-hidden
subdirectory of ``<dir>``. Every package is named after the basename of its
directory, not the ``[package].name`` in its manifest, so the index never
has to open member manifests.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Member pattern      │ A line in [workspace].members. Either one     │
    │                     │ folder, or "every folder inside this one".     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Package             │ One folder that holds a crate. Its name is     │
    │                     │ the folder's name.                             │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Ancestor directory  │ A folder that only holds packages, like        │
    │                     │ crates/. Filtered trees must keep it.          │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import tomlkit
import tomlkit.exceptions

from closurekit.errors import ConfigurationError, E, ManifestParseError
from closurekit.logging import get_logger

logger = get_logger(__name__)

_GLOB_CHARS = frozenset('*?[')


@dataclass(frozen=True)
class Package:
    """A single package discovered in the workspace.

    Attributes:
        name: Package name, the basename of its directory.
        path: Directory relative to the workspace root, POSIX form
            (``"crates/pkg-a"``).
        root: Absolute path to the package directory.
        manifest_path: Absolute path to the package's ``Cargo.toml``.
    """

    name: str
    path: str
    root: Path
    manifest_path: Path


def read_workspace_manifest(root: Path, manifest_name: str = 'Cargo.toml') -> tomlkit.TOMLDocument:
    """Parse the root manifest and check it declares a ``[workspace]``.

    Raises:
        ConfigurationError: If the manifest is missing or has no
            ``[workspace]`` table.
        ManifestParseError: If the manifest is not valid TOML.
    """
    manifest = root / manifest_name
    if not manifest.is_file():
        raise ConfigurationError(
            code=E.WORKSPACE_NOT_FOUND,
            message=f'No {manifest_name} found at {root}',
            hint='Point closurekit at the directory holding the workspace manifest.',
        )
    try:
        doc = tomlkit.parse(manifest.read_text(encoding='utf-8'))
    except tomlkit.exceptions.TOMLKitError as exc:
        raise ManifestParseError(
            message=f'Failed to parse {manifest}: {exc}',
            hint='Fix the TOML syntax of the workspace manifest.',
        ) from exc
    if 'workspace' not in doc:
        raise ConfigurationError(
            code=E.WORKSPACE_NOT_FOUND,
            message=f'{manifest} has no [workspace] table',
            hint='closurekit only handles Cargo workspaces.',
        )
    return doc


class WorkspaceIndex:
    """Enumerates workspace packages from member patterns.

    Args:
        root: Workspace root directory.
        members: Member patterns, relative to ``root``.
        exclude: Relative paths dropped from glob expansion, as Cargo's
            ``[workspace].exclude`` does.
        manifest_name: File name of package manifests.
    """

    def __init__(
        self,
        root: Path | str,
        members: Sequence[str],
        *,
        exclude: Sequence[str] = (),
        manifest_name: str = 'Cargo.toml',
    ) -> None:
        """Initialize from a root and its member patterns."""
        self.root = Path(root).resolve()
        self.members: tuple[str, ...] = tuple(members)
        self.exclude: frozenset[str] = frozenset(_normalize(p) for p in exclude)
        self.manifest_name = manifest_name
        self._packages: list[Package] | None = None

    @classmethod
    def from_manifest(cls, root: Path | str, *, manifest_name: str = 'Cargo.toml') -> WorkspaceIndex:
        """Build an index from the root manifest's ``[workspace]`` table.

        Raises:
            ConfigurationError: If the manifest or its members are missing.
            ManifestParseError: If the root manifest is not valid TOML.
        """
        root = Path(root).resolve()
        doc = read_workspace_manifest(root, manifest_name)
        workspace = doc.unwrap()['workspace']
        members = workspace.get('members') if isinstance(workspace, dict) else None
        if not members:
            raise ConfigurationError(
                code=E.WORKSPACE_NO_MEMBERS,
                message=f'[workspace].members is empty in {root / manifest_name}',
                hint='List the workspace packages, e.g. members = ["crates/*"].',
            )
        exclude = workspace.get('exclude') or []
        return cls(root, [str(m) for m in members], exclude=[str(e) for e in exclude], manifest_name=manifest_name)

    def list_packages(self) -> list[Package]:
        """Expand member patterns into packages, sorted by name.

        Returns:
            Every package of the workspace.

        Raises:
            ConfigurationError: If an explicit member path (or a glob's base
                directory) does not exist, or two members share a name.
        """
        if self._packages is not None:
            return list(self._packages)

        by_name: dict[str, Package] = {}
        for pattern in self.members:
            for relpath in self._expand(pattern):
                name = PurePosixPath(relpath).name
                existing = by_name.get(name)
                if existing is not None:
                    if existing.path == relpath:
                        continue
                    raise ConfigurationError(
                        code=E.WORKSPACE_DUPLICATE_PACKAGE,
                        message=f"Package name '{name}' is used by both '{existing.path}' and '{relpath}'",
                        hint='Package names come from directory names; rename one of the directories.',
                        packages=(name,),
                    )
                pkg_root = self.root / relpath
                by_name[name] = Package(
                    name=name,
                    path=relpath,
                    root=pkg_root,
                    manifest_path=pkg_root / self.manifest_name,
                )

        self._packages = sorted(by_name.values(), key=lambda p: p.name)
        logger.debug(
            'workspace_indexed',
            root=str(self.root),
            count=len(self._packages),
            packages=[p.name for p in self._packages],
        )
        return list(self._packages)

    def _expand(self, pattern: str) -> list[str]:
        pattern = _normalize(pattern)
        if pattern in ('', '.'):
            # Packages are named and filtered by their own directory.
            raise ConfigurationError(
                code=E.WORKSPACE_ROOT_MEMBER,
                message=f'The workspace root {self.root} is listed in [workspace].members',
                hint='Move the root package into its own directory, e.g. crates/<name>.',
            )
        if not any(ch in pattern for ch in _GLOB_CHARS):
            if not (self.root / pattern).is_dir():
                raise ConfigurationError(
                    code=E.WORKSPACE_MEMBER_NOT_FOUND,
                    message=f"Workspace member '{pattern}' does not exist under {self.root}",
                    hint='Create the directory or remove it from [workspace].members.',
                )
            return [pattern]

        base, _, leaf = pattern.rpartition('/')
        base_dir = self.root / base if base else self.root
        if not base_dir.is_dir():
            raise ConfigurationError(
                code=E.WORKSPACE_MEMBER_NOT_FOUND,
                message=f"Directory '{base or '.'}' of member pattern '{pattern}' does not exist",
                hint='Create the directory or remove the pattern from [workspace].members.',
            )
        found: list[str] = []
        for child in sorted(base_dir.iterdir()):
            if not child.is_dir() or child.name.startswith('.'):
                continue
            if not fnmatch.fnmatchcase(child.name, leaf):
                continue
            relpath = f'{base}/{child.name}' if base else child.name
            if relpath in self.exclude:
                logger.debug('member_excluded', path=relpath)
                continue
            found.append(relpath)
        return found

    def names(self) -> list[str]:
        """Return every package name, sorted."""
        return [p.name for p in self.list_packages()]

    def get(self, name: str) -> Package:
        """Return the package called ``name``.

        Raises:
            ConfigurationError: If no such package exists.
        """
        for pkg in self.list_packages():
            if pkg.name == name:
                return pkg
        raise ConfigurationError(
            code=E.WORKSPACE_UNKNOWN_PACKAGE,
            message=f"Unknown package '{name}'",
            hint=f'Known packages: {", ".join(self.names()) or "(none)"}',
            packages=(name,),
        )

    def __contains__(self, name: object) -> bool:
        return any(p.name == name for p in self.list_packages())

    def package_for_path(self, relpath: str) -> Package | None:
        """Return the package whose directory contains ``relpath``.

        ``relpath`` is relative to the workspace root. A package directory
        itself belongs to its package. Nested package directories resolve to
        the innermost one.
        """
        relpath = _normalize(relpath)
        best: Package | None = None
        for pkg in self.list_packages():
            if relpath == pkg.path or relpath.startswith(pkg.path + '/'):
                if best is None or len(pkg.path) > len(best.path):
                    best = pkg
        return best

    def ancestor_dirs(self, names: Iterable[str]) -> frozenset[str]:
        """Return the strict ancestor directories of the named packages.

        For ``crates/pkg-a`` this is ``{"crates"}``. The workspace root is
        not included.
        """
        dirs: set[str] = set()
        for name in names:
            parts = PurePosixPath(self.get(name).path).parts
            for i in range(1, len(parts)):
                dirs.add('/'.join(parts[:i]))
        return frozenset(dirs)


def _normalize(path: str) -> str:
    """Normalize a member path to POSIX form without ``./`` or trailing ``/``."""
    text = path.replace('\\', '/').strip()
    while text.startswith('./'):
        text = text[2:]
    return text.rstrip('/')


__all__ = [
    'Package',
    'WorkspaceIndex',
    'read_workspace_manifest',
]

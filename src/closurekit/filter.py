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

"""Source filter: minimal source trees for a set of packages.

A :class:`FilteredTree` is a pure function of the workspace contents and a
target package set. Every entry relative to the workspace root goes
through these rules, first match wins::

    ┌───┬──────────────────────────────────────────┬──────────────────────┐
    │ # │ Entry                                    │ Decision             │
    ├───┼──────────────────────────────────────────┼──────────────────────┤
    │ - │ VCS metadata, cache dir, ignore globs    │ drop (and children)  │
    │ 1 │ inside a package NOT in the target set   │ drop (and children)  │
    │ 2 │ root-level file other than the manifest  │ keep verbatim        │
    │ 3 │ strict ancestor dir of a target package  │ keep, descend        │
    │ 4 │ anything else                            │ SourceRules.keep     │
    └───┴──────────────────────────────────────────┴──────────────────────┘

The root manifest is replaced by a synthesized one whose
``[workspace].members`` (and ``default-members``) lists exactly the target
packages. Everything else in it passes through with formatting intact.

Content hash::

    sha256( for entry in sorted(entries):
                kind \\0 relpath \\0 exec-bit \\0 sha256(content) \\n )

Files of packages outside the target set are never read, so editing them
cannot change the hash.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import stat
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path, PurePosixPath

import tomlkit

from closurekit.config import BuildConfig
from closurekit.errors import ConfigurationError, E
from closurekit.graph import ClosureResolver
from closurekit.logging import get_logger
from closurekit.sources import SourceRules
from closurekit.workspace import read_workspace_manifest

logger = get_logger(__name__)

KIND_DIR = 'dir'
KIND_FILE = 'file'
KIND_SYMLINK = 'symlink'

# Crate roots in the dependency skeleton are replaced with this stub.
DUMMY_SOURCE = b'#![allow(clippy::all)]\n#![allow(dead_code)]\npub fn main() {}\n'

# Auto-discovered Cargo target roots, relative to a package root.
_DEFAULT_TARGET_ROOTS = ('src/lib.rs', 'src/main.rs', 'build.rs')
_TARGET_DIRS = ('src/bin', 'benches', 'examples', 'tests')

_CHUNK = 1 << 16


def _file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open('rb') as f:
        while chunk := f.read(_CHUNK):
            h.update(chunk)
    return h.hexdigest()


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a filtered tree.

    Attributes:
        relpath: Path relative to the tree root, POSIX form.
        kind: ``'dir'``, ``'file'`` or ``'symlink'``.
        executable: Whether the file has an executable bit set.
        digest: sha256 of the file content (or link target); empty for
            directories.
        source: The workspace file the content is copied from.
        data: Literal content, used instead of ``source`` for synthesized
            and stubbed files.
    """

    relpath: str
    kind: str
    executable: bool = False
    digest: str = ''
    source: Path | None = field(default=None, compare=False)
    data: bytes | None = field(default=None, compare=False)

    @classmethod
    def synthesized(cls, relpath: str, data: bytes) -> TreeEntry:
        """An entry whose content is ``data`` rather than a workspace file."""
        return cls(relpath=relpath, kind=KIND_FILE, digest=hashlib.sha256(data).hexdigest(), data=data)


@dataclass(frozen=True)
class FilteredTree:
    """A read-only, content-addressed view of part of the workspace.

    Attributes:
        packages: The target package set.
        entries: Selected entries, sorted by relative path.
        manifest_name: File name of the synthesized workspace manifest.
    """

    packages: frozenset[str]
    entries: tuple[TreeEntry, ...]
    manifest_name: str = 'Cargo.toml'

    @cached_property
    def content_hash(self) -> str:
        """sha256 over every entry's kind, path, exec bit and digest."""
        h = hashlib.sha256()
        for entry in self.entries:
            h.update(f'{entry.kind}\0{entry.relpath}\0{int(entry.executable)}\0{entry.digest}\n'.encode())
        return h.hexdigest()

    @property
    def paths(self) -> list[str]:
        """Relative paths of every entry."""
        return [e.relpath for e in self.entries]

    def entry(self, relpath: str) -> TreeEntry | None:
        """Return the entry at ``relpath``, if present."""
        for e in self.entries:
            if e.relpath == relpath:
                return e
        return None

    @property
    def manifest_text(self) -> str:
        """The synthesized workspace manifest."""
        entry = self.entry(self.manifest_name)
        if entry is None or entry.data is None:
            return ''
        return entry.data.decode('utf-8')

    def materialize(self, dest: Path) -> Path:
        """Write the tree into ``dest``, which must not exist yet.

        Files are copied byte for byte with their executable bit,
        symlinks are recreated, and synthesized files are written out.

        Returns:
            ``dest``.
        """
        dest.mkdir(parents=True)
        for entry in self.entries:
            target = dest / entry.relpath
            if entry.kind == KIND_DIR:
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if entry.kind == KIND_SYMLINK:
                assert entry.source is not None  # noqa: S101 - symlinks always come from the workspace
                os.symlink(os.readlink(entry.source), target)
            elif entry.data is not None:
                target.write_bytes(entry.data)
            else:
                assert entry.source is not None  # noqa: S101 - workspace file entries carry their source
                shutil.copyfile(entry.source, target)
            if entry.executable:
                target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.debug('tree_materialized', dest=str(dest), entries=len(self.entries), hash=self.content_hash)
        return dest


class SourceFilter:
    """Derives filtered trees from the workspace.

    Args:
        resolver: Supplies the workspace index, configuration and (for the
            dependency skeleton) package manifests.
    """

    def __init__(self, resolver: ClosureResolver) -> None:
        """Initialize with a closure resolver."""
        self.resolver = resolver
        self.index = resolver.index
        self.config: BuildConfig = resolver.config
        self.rules = SourceRules(self.config)
        self._root_manifest_text: str | None = None

    @property
    def root(self) -> Path:
        """The workspace root."""
        return self.index.root

    def synthesize_manifest(self, packages: Iterable[str]) -> str:
        """Return the root manifest with members narrowed to ``packages``."""
        if self._root_manifest_text is None:
            self._root_manifest_text = tomlkit.dumps(read_workspace_manifest(self.root, self.config.manifest_name))
        doc = tomlkit.parse(self._root_manifest_text)
        workspace = doc['workspace']
        member_paths = sorted(self.index.get(name).path for name in packages)
        workspace['members'] = member_paths
        if 'default-members' in workspace:
            keep = set(member_paths)
            workspace['default-members'] = [str(m) for m in workspace['default-members'] if str(m) in keep]
        return tomlkit.dumps(doc)

    def filter_tree(self, packages: Iterable[str]) -> FilteredTree:
        """Compute the filtered tree for a target package set.

        Raises:
            ConfigurationError: If the set is empty or names an unknown
                package.
        """
        target = frozenset(packages)
        if not target:
            raise ConfigurationError(
                code=E.FILTER_EMPTY_TARGET,
                message='Cannot filter the workspace for an empty package set',
                hint='Pass at least one package name.',
            )
        for name in sorted(target):
            self.index.get(name)
        ancestors = self.index.ancestor_dirs(target)
        manifest_name = self.config.manifest_name

        entries: list[TreeEntry] = [
            TreeEntry.synthesized(manifest_name, self.synthesize_manifest(target).encode('utf-8')),
        ]
        pending: list[str] = ['']
        while pending:
            current = pending.pop()
            with os.scandir(self.root / current) as it:
                children = sorted(it, key=lambda d: d.name)
            for child in children:
                relpath = f'{current}/{child.name}' if current else child.name
                is_dir = child.is_dir(follow_symlinks=False)
                if self.rules.is_ignored(relpath, is_dir=is_dir):
                    continue

                owner = self.index.package_for_path(relpath)
                if owner is not None and owner.name not in target:
                    continue
                # Root symlinks (e.g. nix `result` links) go through the source rules.
                if not current and child.is_file(follow_symlinks=False):
                    if relpath != manifest_name:
                        entries.append(self._entry(relpath, child))
                    continue
                if is_dir and relpath in ancestors:
                    entries.append(TreeEntry(relpath=relpath, kind=KIND_DIR))
                    pending.append(relpath)
                    continue
                if not self.rules.keep(relpath, is_dir=is_dir):
                    continue
                if is_dir:
                    entries.append(TreeEntry(relpath=relpath, kind=KIND_DIR))
                    pending.append(relpath)
                else:
                    entries.append(self._entry(relpath, child))

        entries.sort(key=lambda e: e.relpath)
        tree = FilteredTree(packages=target, entries=tuple(entries), manifest_name=manifest_name)
        logger.debug(
            'tree_filtered',
            packages=sorted(target),
            entries=len(tree.entries),
            hash=tree.content_hash,
        )
        return tree

    def _entry(self, relpath: str, dirent: os.DirEntry[str]) -> TreeEntry:
        path = Path(dirent.path)
        if dirent.is_symlink():
            link = os.readlink(path)
            return TreeEntry(
                relpath=relpath,
                kind=KIND_SYMLINK,
                digest=hashlib.sha256(link.encode()).hexdigest(),
                source=path,
            )
        mode = dirent.stat(follow_symlinks=False).st_mode
        return TreeEntry(
            relpath=relpath,
            kind=KIND_FILE,
            executable=bool(mode & 0o111),
            digest=_file_digest(path),
            source=path,
        )

    async def filter_many(self, package_sets: Iterable[Iterable[str]]) -> list[FilteredTree]:
        """Filter several target sets concurrently in worker threads."""
        return list(await asyncio.gather(*(asyncio.to_thread(self.filter_tree, list(s)) for s in package_sets)))

    def _target_roots(self, name: str, tree_paths: set[str]) -> set[str]:
        pkg_path = self.index.get(name).path
        candidates = {f'{pkg_path}/{root}' for root in _DEFAULT_TARGET_ROOTS}
        candidates.update(f'{pkg_path}/{t}' for t in self.resolver.manifest(name).declared_targets)
        for target_dir in _TARGET_DIRS:
            prefix = f'{pkg_path}/{target_dir}/'
            for path in tree_paths:
                if not path.startswith(prefix) or not path.endswith('.rs'):
                    continue
                rest = path[len(prefix) :]
                # Direct children, or <name>/main.rs for multi-file targets.
                if '/' not in rest or (rest.count('/') == 1 and rest.endswith('/main.rs')):
                    candidates.add(path)
        return {str(PurePosixPath(c)) for c in candidates} & tree_paths

    def dependency_skeleton(self, tree: FilteredTree) -> FilteredTree:
        """Return the deps-only view of ``tree``.

        Keeps manifests, the lockfile, Cargo config and toolchain files,
        and replaces every crate root with :data:`DUMMY_SOURCE`. Other
        sources are dropped, so the skeleton's hash only moves when
        dependency declarations or target layout change.
        """
        file_paths = {e.relpath for e in tree.entries if e.kind != KIND_DIR}
        stubbed: set[str] = set()
        for name in tree.packages:
            stubbed |= self._target_roots(name, file_paths)

        kept: list[TreeEntry] = []
        for entry in tree.entries:
            if entry.kind == KIND_DIR:
                continue
            if entry.relpath in stubbed:
                kept.append(TreeEntry.synthesized(entry.relpath, DUMMY_SOURCE))
            elif self.rules.is_dependency_input(entry.relpath, manifest_name=tree.manifest_name):
                kept.append(entry)

        dirs: set[str] = set()
        for entry in kept:
            parts = PurePosixPath(entry.relpath).parts
            for i in range(1, len(parts)):
                dirs.add('/'.join(parts[:i]))
        kept.extend(TreeEntry(relpath=d, kind=KIND_DIR) for d in dirs)
        kept.sort(key=lambda e: e.relpath)

        skeleton = FilteredTree(packages=tree.packages, entries=tuple(kept), manifest_name=tree.manifest_name)
        logger.debug(
            'dependency_skeleton',
            packages=sorted(tree.packages),
            stubbed=len(stubbed),
            hash=skeleton.content_hash,
        )
        return skeleton

    def checkout(self, tree: FilteredTree) -> Path:
        """Materialize ``tree`` under ``<cache_dir>/trees/<hash>``.

        An existing checkout of the same hash is reused as is.
        """
        trees_dir = self.root / self.config.cache_dir / 'trees'
        dest = trees_dir / tree.content_hash
        if dest.is_dir():
            logger.debug('tree_checkout_reused', dest=str(dest))
            return dest
        staging = trees_dir / f'.{tree.content_hash}.{uuid.uuid4().hex}'
        tree.materialize(staging)
        try:
            staging.rename(dest)
        except OSError:
            # Another worker finished the same checkout first.
            shutil.rmtree(staging, ignore_errors=True)
            if not dest.is_dir():
                raise
        logger.info('tree_checkout', packages=sorted(tree.packages), dest=str(dest))
        return dest


__all__ = [
    'DUMMY_SOURCE',
    'FilteredTree',
    'SourceFilter',
    'TreeEntry',
]

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

"""Ordinary source rules applied by the build executor.

These are the rules a Cargo build applies to any source tree, independent
of which packages are being built:

- :meth:`SourceRules.is_ignored` drops entries that are never part of a
  workspace snapshot: version-control metadata, the closurekit cache
  directory, and user ``ignore`` globs. It runs before every other rule.
- :meth:`SourceRules.keep` decides the remaining entries: directories are
  kept (except build output and ``result`` links), files are kept when
  they are Rust or TOML sources, ``Cargo.lock``, ``.cargo/config*``, or
  match an ``extra_sources`` glob. Editor backups are dropped.
"""

from __future__ import annotations

import fnmatch
import re
from pathlib import PurePosixPath

from closurekit.config import BuildConfig

VCS_DIRS: frozenset[str] = frozenset({'.git', '.hg', '.svn', '.bzr', '.jj', 'CVS'})

# Build output directories and Nix result links.
BUILD_OUTPUT_DIRS: frozenset[str] = frozenset({'target'})
_RESULT_RE = re.compile(r'^result(-.*)?$')

# Emacs/vim backups, swap files and compiled objects.
_BACKUP_RE = re.compile(r'(^#.*#$|~$|^\.?.*\.sw[a-z]$|\.o$|\.so$)')

CARGO_LOCK = 'Cargo.lock'
CARGO_CONFIG_NAMES: frozenset[str] = frozenset({'config', 'config.toml'})
TOOLCHAIN_FILES: frozenset[str] = frozenset({'rust-toolchain', 'rust-toolchain.toml'})


def _matches(relpath: str, patterns: tuple[str, ...]) -> bool:
    name = PurePosixPath(relpath).name
    return any(fnmatch.fnmatchcase(relpath, pat) or fnmatch.fnmatchcase(name, pat) for pat in patterns)


class SourceRules:
    """Decides which workspace entries count as build source.

    Args:
        config: Supplies ``source_suffixes``, ``extra_sources``, ``ignore``
            and ``cache_dir``.
    """

    def __init__(self, config: BuildConfig | None = None) -> None:
        """Initialize from a build configuration."""
        self.config = config or BuildConfig()
        self._cache_dir = self.config.cache_dir.replace('\\', '/').strip('/')

    def is_ignored(self, relpath: str, *, is_dir: bool) -> bool:
        """Whether ``relpath`` is outside any workspace snapshot."""
        name = PurePosixPath(relpath).name
        if is_dir and name in VCS_DIRS:
            return True
        if relpath == self._cache_dir:
            return True
        return _matches(relpath, self.config.ignore)

    def keep(self, relpath: str, *, is_dir: bool) -> bool:
        """Whether the executor treats ``relpath`` as source."""
        path = PurePosixPath(relpath)
        name = path.name
        if is_dir:
            return name not in BUILD_OUTPUT_DIRS and not _RESULT_RE.match(name)
        if _BACKUP_RE.search(name) or _RESULT_RE.match(name):
            return False
        if name == CARGO_LOCK:
            return True
        if path.parent.name == '.cargo' and name in CARGO_CONFIG_NAMES:
            return True
        if any(name.endswith(suffix) for suffix in self.config.source_suffixes):
            return True
        return _matches(relpath, self.config.extra_sources)

    def is_dependency_input(self, relpath: str, *, manifest_name: str = 'Cargo.toml') -> bool:
        """Whether a kept file is needed to build external dependencies.

        True for package manifests, the lockfile, Cargo config and
        toolchain files. Crate sources are never dependency inputs.
        """
        path = PurePosixPath(relpath)
        name = path.name
        if name in (manifest_name, CARGO_LOCK):
            return True
        if path.parent.name == '.cargo' and name in CARGO_CONFIG_NAMES:
            return True
        return len(path.parts) == 1 and name in TOOLCHAIN_FILES


__all__ = [
    'BUILD_OUTPUT_DIRS',
    'CARGO_CONFIG_NAMES',
    'CARGO_LOCK',
    'TOOLCHAIN_FILES',
    'VCS_DIRS',
    'SourceRules',
]

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

"""Manifest reader: dependency declarations of one package.

Parses a package ``Cargo.toml`` with ``tomlkit`` and inspects only the
dependency tables (``[dependencies]``, ``[dev-dependencies]``,
``[build-dependencies]`` and their ``[target.<cfg>.*]`` variants).

A dependency is **local** only when both hold:

1. Its spec carries a local-path marker: ``path = "..."`` directly, or
   ``workspace = true`` where the root ``[workspace.dependencies]`` entry
   has a ``path``.
2. Its name (``package = "..."`` when renamed, else the key) is a known
   workspace package.

Everything else is external, including a registry dependency that happens
to share its name with a workspace package::

    [dependencies]
    pkg-a = { path = "../pkg-a" }       ← local
    once_cell = "1"                      ← external
    core = { package = "pkg-c", path = "../pkg-c" }  ← local, name pkg-c
    pkg-d = "0.3"                        ← external (no path marker)
"""

from __future__ import annotations

import warnings
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from closurekit.config import DEFAULT_DEPENDENCY_TABLES
from closurekit.errors import ClosureKitWarning, ConfigurationError, E, ManifestParseError
from closurekit.logging import get_logger

logger = get_logger(__name__)


class DependencyKind(str, Enum):
    """Which dependency table a declaration came from."""

    NORMAL = 'normal'
    DEV = 'dev'
    BUILD = 'build'


_TABLE_KINDS: dict[str, DependencyKind] = {
    'dependencies': DependencyKind.NORMAL,
    'dev-dependencies': DependencyKind.DEV,
    'build-dependencies': DependencyKind.BUILD,
}

# Target tables whose entries may carry an explicit ``path``.
_TARGET_ARRAYS = ('bin', 'example', 'test', 'bench')


@dataclass(frozen=True)
class DependencyDeclaration:
    """One entry of a dependency table.

    Attributes:
        name: The depended-on package name (the ``package`` field for
            renamed dependencies, else the key).
        is_local: Whether this is a path dependency on a workspace package.
        kind: Which table the entry came from.
        path: The local path marker, if any.
        target: The ``cfg(...)`` or triple of a ``[target.*]`` table.
        key: The key used in the manifest (differs from ``name`` when
            the dependency is renamed).
    """

    name: str
    is_local: bool
    kind: DependencyKind = DependencyKind.NORMAL
    path: str | None = None
    target: str | None = None
    key: str = ''


@dataclass(frozen=True)
class PackageManifest:
    """The parts of a package manifest closurekit cares about.

    Attributes:
        package: Package name (the directory basename).
        manifest_path: The file that was parsed.
        dependencies: Every dependency declaration, in manifest order.
        declared_targets: Source paths (relative to the package root) named
            by ``[lib]``, ``[[bin]]``, ``[[example]]``, ``[[test]]``,
            ``[[bench]]`` or ``package.build``.
    """

    package: str
    manifest_path: Path
    dependencies: tuple[DependencyDeclaration, ...] = ()
    declared_targets: tuple[str, ...] = ()

    @property
    def local_dependencies(self) -> frozenset[str]:
        """Names of workspace packages this package depends on."""
        return frozenset(d.name for d in self.dependencies if d.is_local)

    @property
    def external_dependencies(self) -> frozenset[str]:
        """Names of non-workspace dependencies."""
        return frozenset(d.name for d in self.dependencies if not d.is_local)


def workspace_dependencies(root_doc: Mapping[str, Any]) -> dict[str, Any]:  # noqa: ANN401 - raw TOML values
    """Return the root ``[workspace.dependencies]`` table as plain values."""
    workspace = root_doc.get('workspace')
    if not isinstance(workspace, Mapping):
        return {}
    deps = workspace.get('dependencies')
    return dict(deps) if isinstance(deps, Mapping) else {}


def _declaration(
    key: str,
    spec: Any,  # noqa: ANN401 - raw TOML value
    *,
    kind: DependencyKind,
    target: str | None,
    known: frozenset[str],
    inherited: Mapping[str, Any],
    package: str,
) -> DependencyDeclaration:
    path: str | None = None
    name = key
    if isinstance(spec, Mapping):
        if spec.get('workspace') is True:
            root_spec = inherited.get(key)
            if isinstance(root_spec, Mapping):
                path = root_spec.get('path')
                name = root_spec.get('package', name)
        if 'path' in spec:
            path = spec['path']
        name = spec.get('package', name)

    is_local = path is not None and name in known
    if path is None and name in known:
        logger.info('registry_dependency_shadows_package', package=package, dependency=name)
        warnings.warn(
            ClosureKitWarning(
                code=E.MANIFEST_SHADOWED_NAME,
                message=f"'{package}' depends on '{name}' without a path; treating it as external",
                hint=f'Add path = "..." to the {name} entry if the workspace package was meant.',
            ),
            stacklevel=4,
        )
    return DependencyDeclaration(
        name=str(name),
        is_local=is_local,
        kind=kind,
        path=str(path) if path is not None else None,
        target=target,
        key=key,
    )


def parse_dependencies(
    doc: Mapping[str, Any],  # noqa: ANN401 - raw TOML values
    *,
    known_packages: Iterable[str] = (),
    inherited: Mapping[str, Any] | None = None,  # noqa: ANN401 - raw TOML values
    tables: Iterable[str] = DEFAULT_DEPENDENCY_TABLES,
    package: str = '',
) -> list[DependencyDeclaration]:
    """Extract dependency declarations from a parsed manifest.

    Args:
        doc: The manifest as plain Python values.
        known_packages: Names of workspace packages.
        inherited: The root ``[workspace.dependencies]`` table, used for
            ``workspace = true`` entries.
        tables: Dependency tables to scan.
        package: Name of the package being read, for diagnostics.

    Returns:
        Declarations in table order, then ``[target.*]`` tables.
    """
    known = frozenset(known_packages)
    inherited = inherited or {}
    table_names = list(tables)
    decls: list[DependencyDeclaration] = []

    def scan(container: Mapping[str, Any], target: str | None) -> None:  # noqa: ANN401
        for table_name in table_names:
            table = container.get(table_name)
            if not isinstance(table, Mapping):
                continue
            for key, spec in table.items():
                decls.append(
                    _declaration(
                        str(key),
                        spec,
                        kind=_TABLE_KINDS[table_name],
                        target=target,
                        known=known,
                        inherited=inherited,
                        package=package,
                    )
                )

    scan(doc, None)
    targets = doc.get('target')
    if isinstance(targets, Mapping):
        for target_name, target_table in targets.items():
            if isinstance(target_table, Mapping):
                scan(target_table, str(target_name))
    return decls


def _declared_targets(doc: Mapping[str, Any]) -> tuple[str, ...]:  # noqa: ANN401
    paths: list[str] = []
    lib = doc.get('lib')
    if isinstance(lib, Mapping) and isinstance(lib.get('path'), str):
        paths.append(lib['path'])
    for array in _TARGET_ARRAYS:
        entries = doc.get(array)
        if isinstance(entries, list):
            paths.extend(e['path'] for e in entries if isinstance(e, Mapping) and isinstance(e.get('path'), str))
    pkg = doc.get('package')
    if isinstance(pkg, Mapping) and isinstance(pkg.get('build'), str):
        paths.append(pkg['build'])
    return tuple(p.replace('\\', '/').removeprefix('./') for p in paths)


def read_manifest(
    package_root: Path,
    *,
    package: str | None = None,
    known_packages: Iterable[str] = (),
    inherited: Mapping[str, Any] | None = None,  # noqa: ANN401 - raw TOML values
    tables: Iterable[str] = DEFAULT_DEPENDENCY_TABLES,
    manifest_name: str = 'Cargo.toml',
) -> PackageManifest:
    """Read and parse ``<package_root>/Cargo.toml``.

    Args:
        package_root: The package directory.
        package: Package name; defaults to the directory basename.
        known_packages: Names of workspace packages.
        inherited: The root ``[workspace.dependencies]`` table.
        tables: Dependency tables to scan.
        manifest_name: Manifest file name.

    Returns:
        The parsed :class:`PackageManifest`.

    Raises:
        ConfigurationError: If the manifest does not exist.
        ManifestParseError: If the manifest is not valid TOML.
    """
    name = package or package_root.name
    manifest_path = package_root / manifest_name
    if not manifest_path.is_file():
        raise ConfigurationError(
            code=E.MANIFEST_NOT_FOUND,
            message=f"Package '{name}' has no {manifest_name} at {manifest_path}",
            hint=f'Add a {manifest_name} or remove the directory from [workspace].members.',
            packages=(name,),
        )
    try:
        doc = tomlkit.parse(manifest_path.read_text(encoding='utf-8')).unwrap()
    except tomlkit.exceptions.TOMLKitError as exc:
        raise ManifestParseError(
            message=f'Failed to parse {manifest_path}: {exc}',
            hint='Fix the TOML syntax; other packages are unaffected.',
            package=name,
        ) from exc

    decls = parse_dependencies(
        doc,
        known_packages=known_packages,
        inherited=inherited,
        tables=tables,
        package=name,
    )
    return PackageManifest(
        package=name,
        manifest_path=manifest_path,
        dependencies=tuple(decls),
        declared_targets=_declared_targets(doc),
    )


def read_dependencies(
    package_root: Path,
    *,
    known_packages: Iterable[str] = (),
    inherited: Mapping[str, Any] | None = None,  # noqa: ANN401 - raw TOML values
    tables: Iterable[str] = DEFAULT_DEPENDENCY_TABLES,
    manifest_name: str = 'Cargo.toml',
) -> list[DependencyDeclaration]:
    """Return the dependency declarations of the package at ``package_root``.

    See :func:`read_manifest` for arguments and errors.
    """
    manifest = read_manifest(
        package_root,
        known_packages=known_packages,
        inherited=inherited,
        tables=tables,
        manifest_name=manifest_name,
    )
    return list(manifest.dependencies)


__all__ = [
    'DependencyDeclaration',
    'DependencyKind',
    'PackageManifest',
    'parse_dependencies',
    'read_dependencies',
    'read_manifest',
    'workspace_dependencies',
]

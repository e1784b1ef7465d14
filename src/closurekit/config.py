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

"""Configuration reader for closurekit.

Reads an optional ``closurekit.toml`` from the workspace root and returns a
validated :class:`BuildConfig`. The file uses flat top-level keys. A
missing file is not an error: every key has a default.

Validation Pipeline::

    closurekit.toml
    ┌──────────────────┐
    │ concurency = 8   │  ← typo!
    └────────┬─────────┘
             │
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 1. Unknown key   │────→│ CK-CONFIG-INVALID-KEY:       │
    │    detection     │     │ hint: "Did you mean          │
    └────────┬─────────┘     │       'concurrency'?"        │
             │               └──────────────────────────────┘
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 2. Type check    │────→│ CK-CONFIG-INVALID-VALUE:     │
    │    each value    │     │ 'concurrency' must be int    │
    └────────┬─────────┘     └──────────────────────────────┘
             │
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 3. Value check   │────→│ CK-CONFIG-INVALID-VALUE:     │
    │    (ranges etc.) │     │ concurrency must be >= 1     │
    └────────┬─────────┘     └──────────────────────────────┘
             │
             ▼
    ┌──────────────────┐
    │ BuildConfig()    │  ← frozen dataclass, ready to use
    └──────────────────┘

Supported keys in ``closurekit.toml``::

    manifest_name     = "Cargo.toml"
    dependency_tables = ["dependencies", "dev-dependencies", "build-dependencies"]
    source_suffixes   = [".rs", ".toml"]
    extra_sources     = ["*.proto"]        # extra globs kept by the filter
    ignore            = ["fixtures/big/*"] # extra globs dropped by the filter
    exclude           = ["xtask"]          # package globs skipped by build_all
    concurrency       = 4
    cache_dir         = ".closurekit"
    build_timeout     = 1800
    cargo_profile     = "release"
    cargo_extra_args  = ["--locked"]
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from closurekit.errors import ConfigurationError, E
from closurekit.logging import get_logger

logger = get_logger(__name__)

# The config file name at the workspace root.
CONFIG_FILENAME = 'closurekit.toml'

DEFAULT_DEPENDENCY_TABLES: tuple[str, ...] = ('dependencies', 'dev-dependencies', 'build-dependencies')
ALLOWED_DEPENDENCY_TABLES: frozenset[str] = frozenset(DEFAULT_DEPENDENCY_TABLES)

VALID_KEYS: frozenset[str] = frozenset({
    'build_timeout',
    'cache_dir',
    'cargo_extra_args',
    'cargo_profile',
    'concurrency',
    'dependency_tables',
    'exclude',
    'extra_sources',
    'ignore',
    'manifest_name',
    'source_suffixes',
})

_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'build_timeout': int,
    'cache_dir': str,
    'cargo_extra_args': list,
    'cargo_profile': str,
    'concurrency': int,
    'dependency_tables': list,
    'exclude': list,
    'extra_sources': list,
    'ignore': list,
    'manifest_name': str,
    'source_suffixes': list,
}


@dataclass(frozen=True)
class BuildConfig:
    """Validated configuration for a closurekit run.

    Attributes:
        manifest_name: File name of package and workspace manifests.
        dependency_tables: Manifest tables whose entries are dependency
            declarations. ``target.<cfg>.<table>`` variants are read too.
        source_suffixes: File suffixes the build executor treats as source.
        extra_sources: Glob patterns (matched against the relative path and
            the basename) of additional files to keep in filtered trees.
        ignore: Glob patterns of files or directories to drop from
            filtered trees, on top of the built-in ignore list.
        exclude: Package-name globs skipped by ``build_all``.
        concurrency: Maximum number of concurrent package builds.
        cache_dir: Directory (relative to the workspace root) where filtered
            trees and artifacts are materialized. Never part of a tree.
        build_timeout: Seconds the Cargo executor waits for one stage.
        cargo_profile: Cargo profile passed to ``cargo build --profile``.
        cargo_extra_args: Extra arguments appended to every cargo call.
        config_path: The file that was loaded, or ``None`` for defaults.
    """

    manifest_name: str = 'Cargo.toml'
    dependency_tables: tuple[str, ...] = DEFAULT_DEPENDENCY_TABLES
    source_suffixes: tuple[str, ...] = ('.rs', '.toml')
    extra_sources: tuple[str, ...] = ()
    ignore: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    concurrency: int = 4
    cache_dir: str = '.closurekit'
    build_timeout: int = 1800
    cargo_profile: str = 'release'
    cargo_extra_args: tuple[str, ...] = ()
    config_path: Path | None = field(default=None, compare=False)


def _suggest_key(unknown: str) -> str | None:
    """Return the closest valid key for a typo, or None."""
    matches = difflib.get_close_matches(unknown, VALID_KEYS, n=1, cutoff=0.6)
    return matches[0] if matches else None


def _validate_value_type(key: str, value: Any) -> None:  # noqa: ANN401 - dynamic config values
    """Raise if a config value has the wrong type."""
    expected = _TYPE_MAP.get(key)
    if expected is None:
        return
    # bool is an int subclass; reject it for numeric keys.
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        type_name = expected.__name__ if isinstance(expected, type) else str(expected)
        raise ConfigurationError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'{key}' must be {type_name}, got {type(value).__name__}",
            hint=f'Check the value of {key} in {CONFIG_FILENAME}.',
        )


def _validate_string_list(key: str, items: list[object]) -> tuple[str, ...]:
    """Raise unless every item is a string; return them as a tuple."""
    for item in items:
        if not isinstance(item, str):
            raise ConfigurationError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'{key}' entries must be strings, got {type(item).__name__}",
                hint=f'Quote every entry of {key} in {CONFIG_FILENAME}.',
            )
    return tuple(str(item) for item in items)


def _validate_positive(key: str, value: int) -> None:
    if value < 1:
        raise ConfigurationError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'{key}' must be >= 1, got {value}",
            hint=f'Set {key} to a positive integer.',
        )


def _validate_dependency_tables(tables: tuple[str, ...]) -> None:
    unknown = sorted(set(tables) - ALLOWED_DEPENDENCY_TABLES)
    if unknown:
        raise ConfigurationError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'Unknown dependency tables: {unknown}',
            hint=f'Allowed tables: {sorted(ALLOWED_DEPENDENCY_TABLES)}',
        )


def _validate_suffixes(suffixes: tuple[str, ...]) -> None:
    bad = [s for s in suffixes if not s.startswith('.')]
    if bad:
        raise ConfigurationError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'source_suffixes entries must start with ".", got {bad}',
            hint='Write suffixes like ".rs", not "rs".',
        )


def load_config(workspace_root: Path) -> BuildConfig:
    """Load and validate configuration from ``closurekit.toml``.

    Args:
        workspace_root: Directory that may contain ``closurekit.toml``.

    Returns:
        A validated :class:`BuildConfig` (defaults when the file is absent).

    Raises:
        ConfigurationError: If the file is unreadable or contains invalid
            keys or values.
    """
    config_path = workspace_root / CONFIG_FILENAME

    if not config_path.is_file():
        logger.debug('no_closurekit_config', path=str(config_path))
        return BuildConfig()

    try:
        text = config_path.read_text(encoding='utf-8')
    except OSError as exc:
        raise ConfigurationError(
            code=E.CONFIG_NOT_FOUND,
            message=f'Failed to read {config_path}: {exc}',
        ) from exc

    try:
        doc = tomlkit.parse(text)
    except tomlkit.exceptions.TOMLKitError as exc:
        raise ConfigurationError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'Failed to parse {config_path}: {exc}',
            hint=f'Check that {config_path} contains valid TOML.',
        ) from exc

    raw: dict[str, Any] = doc.unwrap()  # noqa: ANN401

    for key in raw:
        if key not in VALID_KEYS:
            suggestion = _suggest_key(key)
            raise ConfigurationError(
                code=E.CONFIG_INVALID_KEY,
                message=f"Unknown key '{key}' in {CONFIG_FILENAME}",
                hint=f"Did you mean '{suggestion}'?" if suggestion else f'Valid keys: {sorted(VALID_KEYS)}',
            )

    kwargs: dict[str, Any] = {}  # noqa: ANN401
    for key, value in raw.items():
        _validate_value_type(key, value)
        if isinstance(value, list):
            kwargs[key] = _validate_string_list(key, value)
        else:
            kwargs[key] = value

    for key in ('concurrency', 'build_timeout'):
        if key in kwargs:
            _validate_positive(key, kwargs[key])
    if 'dependency_tables' in kwargs:
        _validate_dependency_tables(kwargs['dependency_tables'])
    if 'source_suffixes' in kwargs:
        _validate_suffixes(kwargs['source_suffixes'])

    config = BuildConfig(config_path=config_path, **kwargs)
    logger.debug('loaded_config', path=str(config_path), keys=sorted(kwargs))
    return config


__all__ = [
    'ALLOWED_DEPENDENCY_TABLES',
    'CONFIG_FILENAME',
    'DEFAULT_DEPENDENCY_TABLES',
    'VALID_KEYS',
    'BuildConfig',
    'load_config',
]

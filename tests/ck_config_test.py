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

"""Tests for closurekit.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
from closurekit.config import CONFIG_FILENAME, DEFAULT_DEPENDENCY_TABLES, BuildConfig, load_config
from closurekit.errors import ConfigurationError, E


def _write_config(root: Path, text: str) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(text, encoding='utf-8')
    return path


class TestDefaults:
    """A missing config file yields the defaults."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """No closurekit.toml returns BuildConfig()."""
        config = load_config(tmp_path)
        assert config == BuildConfig()
        assert config.config_path is None

    def test_default_values(self) -> None:
        """Defaults cover manifests, all dependency tables and Rust sources."""
        config = BuildConfig()
        assert config.manifest_name == 'Cargo.toml'
        assert config.dependency_tables == DEFAULT_DEPENDENCY_TABLES
        assert config.source_suffixes == ('.rs', '.toml')
        assert config.concurrency == 4
        assert config.cache_dir == '.closurekit'


class TestLoadConfig:
    """Valid files are parsed into BuildConfig."""

    def test_all_keys(self, tmp_path: Path) -> None:
        """Every supported key is read and lists become tuples."""
        path = _write_config(
            tmp_path,
            '\n'.join([
                'dependency_tables = ["dependencies"]',
                'source_suffixes = [".rs", ".toml", ".proto"]',
                'extra_sources = ["*.sql"]',
                'ignore = ["fixtures/*"]',
                'exclude = ["xtask"]',
                'concurrency = 8',
                'cache_dir = ".ck-cache"',
                'build_timeout = 60',
                'cargo_profile = "dev"',
                'cargo_extra_args = ["--locked"]',
            ]),
        )
        config = load_config(tmp_path)
        assert config.dependency_tables == ('dependencies',)
        assert config.source_suffixes == ('.rs', '.toml', '.proto')
        assert config.extra_sources == ('*.sql',)
        assert config.ignore == ('fixtures/*',)
        assert config.exclude == ('xtask',)
        assert config.concurrency == 8
        assert config.cache_dir == '.ck-cache'
        assert config.build_timeout == 60
        assert config.cargo_profile == 'dev'
        assert config.cargo_extra_args == ('--locked',)
        assert config.config_path == path

    def test_config_path_not_compared(self, tmp_path: Path) -> None:
        """Two configs with equal values are equal wherever they came from."""
        _write_config(tmp_path, 'concurrency = 4\n')
        assert load_config(tmp_path) == BuildConfig()


class TestValidation:
    """Invalid files raise ConfigurationError with a specific code."""

    def test_unknown_key_suggests_fix(self, tmp_path: Path) -> None:
        """A typo gets a 'Did you mean' hint."""
        _write_config(tmp_path, 'concurency = 8\n')
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.code is E.CONFIG_INVALID_KEY
        assert "Did you mean 'concurrency'?" in exc_info.value.hint, exc_info.value.hint

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Broken TOML is an invalid value."""
        _write_config(tmp_path, 'concurrency = = 3\n')
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.code is E.CONFIG_INVALID_VALUE

    def test_wrong_type(self, tmp_path: Path) -> None:
        """A string where an int belongs is rejected."""
        _write_config(tmp_path, 'concurrency = "many"\n')
        with pytest.raises(ConfigurationError, match='must be int'):
            load_config(tmp_path)

    def test_bool_is_not_int(self, tmp_path: Path) -> None:
        """true is not accepted as a number."""
        _write_config(tmp_path, 'build_timeout = true\n')
        with pytest.raises(ConfigurationError, match='must be int'):
            load_config(tmp_path)

    def test_non_positive_concurrency(self, tmp_path: Path) -> None:
        """concurrency must be at least 1."""
        _write_config(tmp_path, 'concurrency = 0\n')
        with pytest.raises(ConfigurationError, match='>= 1'):
            load_config(tmp_path)

    def test_list_entries_must_be_strings(self, tmp_path: Path) -> None:
        """Non-string list entries are rejected."""
        _write_config(tmp_path, 'ignore = [1, 2]\n')
        with pytest.raises(ConfigurationError, match='entries must be strings'):
            load_config(tmp_path)

    def test_unknown_dependency_table(self, tmp_path: Path) -> None:
        """Only the three Cargo dependency tables are allowed."""
        _write_config(tmp_path, 'dependency_tables = ["dependencies", "peer-dependencies"]\n')
        with pytest.raises(ConfigurationError, match='peer-dependencies'):
            load_config(tmp_path)

    def test_suffix_without_dot(self, tmp_path: Path) -> None:
        """Suffixes must start with a dot."""
        _write_config(tmp_path, 'source_suffixes = ["rs"]\n')
        with pytest.raises(ConfigurationError, match='must start with'):
            load_config(tmp_path)

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

"""Tests for closurekit.errors module."""

from __future__ import annotations

import dataclasses
import io

from closurekit.errors import (
    ERRORS,
    BuildError,
    ClosureKitError,
    ClosureKitWarning,
    ConfigurationError,
    CyclicDependencyError,
    E,
    ErrorCode,
    ErrorInfo,
    ManifestParseError,
    explain,
    render_error,
    render_warning,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_all_codes_have_ck_prefix(self) -> None:
        """Every error code must start with 'CK-'."""
        for code in ErrorCode:
            assert code.value.startswith('CK-'), f'{code.name} does not start with CK-'

    def test_no_duplicate_values(self) -> None:
        """Error code values must be unique."""
        values = [c.value for c in ErrorCode]
        assert len(values) == len(set(values)), 'Duplicate error code values found'

    def test_e_alias(self) -> None:
        """E should be an alias for ErrorCode."""
        assert E is ErrorCode
        assert E.GRAPH_CYCLE_DETECTED is ErrorCode.GRAPH_CYCLE_DETECTED


class TestErrorInfo:
    """Tests for ErrorInfo dataclass."""

    def test_frozen(self) -> None:
        """ErrorInfo instances should be immutable."""
        assert dataclasses.is_dataclass(ErrorInfo)
        info = ErrorInfo(code=E.CONFIG_NOT_FOUND, message='test')
        raised = False
        try:
            info.__setattr__('message', 'changed')
        except AttributeError:
            raised = True
        assert raised, 'ErrorInfo should be frozen'

    def test_catalog_keys_match_codes(self) -> None:
        """Every ERRORS entry is keyed by its own code."""
        for code, info in ERRORS.items():
            assert info.code is code, f'{code} maps to info for {info.code}'


class TestClosureKitError:
    """Tests for the exception hierarchy."""

    def test_str_includes_code(self) -> None:
        """str() is '[CODE] message'."""
        exc = ClosureKitError(E.WORKSPACE_NOT_FOUND, 'no workspace')
        assert str(exc) == '[CK-WORKSPACE-NOT-FOUND] no workspace', str(exc)

    def test_code_hint_and_packages(self) -> None:
        """code, hint and packages are exposed as attributes."""
        exc = ConfigurationError(
            code=E.WORKSPACE_UNKNOWN_PACKAGE,
            message="Unknown package 'x'",
            hint='check spelling',
            packages=['x'],
        )
        assert exc.code is E.WORKSPACE_UNKNOWN_PACKAGE
        assert exc.hint == 'check spelling'
        assert exc.packages == ('x',), exc.packages
        assert isinstance(exc, ClosureKitError)

    def test_manifest_parse_error_names_package(self) -> None:
        """ManifestParseError carries the failing package."""
        exc = ManifestParseError('bad toml', package='pkg-a')
        assert exc.code is E.MANIFEST_PARSE_ERROR
        assert exc.package == 'pkg-a'
        assert exc.packages == ('pkg-a',)

    def test_cycle_error_carries_full_cycle(self) -> None:
        """The cycle is kept verbatim and rendered in the message."""
        exc = CyclicDependencyError(['a', 'b', 'c', 'a'])
        assert exc.cycle == ['a', 'b', 'c', 'a'], exc.cycle
        assert 'a → b → c → a' in str(exc), str(exc)
        assert exc.packages == ('a', 'b', 'c'), exc.packages

    def test_build_error_defaults(self) -> None:
        """BuildError defaults to CK-BUILD-FAILED and records the stage."""
        exc = BuildError('boom', package='pkg-b', stage='full')
        assert exc.code is E.BUILD_FAILED
        assert exc.package == 'pkg-b'
        assert exc.stage == 'full'

    def test_build_error_custom_code(self) -> None:
        """BuildError accepts a more specific code."""
        exc = BuildError('slow', package='pkg-b', code=E.BUILD_TIMEOUT)
        assert exc.code is E.BUILD_TIMEOUT

    def test_warning_is_user_warning(self) -> None:
        """ClosureKitWarning works with the warnings module."""
        w = ClosureKitWarning(E.MANIFEST_SHADOWED_NAME, 'shadowed', hint='add a path')
        assert isinstance(w, UserWarning)
        assert w.code is E.MANIFEST_SHADOWED_NAME
        assert w.hint == 'add a path'


class TestExplain:
    """Tests for explain()."""

    def test_known_code(self) -> None:
        """A catalogued code returns its message and hint."""
        text = explain('CK-GRAPH-CYCLE-DETECTED')
        assert text is not None
        assert text.startswith('CK-GRAPH-CYCLE-DETECTED:'), text
        assert 'Hint:' in text

    def test_code_without_entry(self) -> None:
        """A valid code outside the catalog gets a generic line."""
        text = explain('CK-FILTER-EMPTY-TARGET')
        assert text == 'CK-FILTER-EMPTY-TARGET: No detailed explanation available.', text

    def test_unknown_code(self) -> None:
        """An unknown code returns None."""
        assert explain('CK-NOPE') is None


class TestRender:
    """Tests for render_error() and render_warning() on a non-TTY stream."""

    def test_render_error_plain(self) -> None:
        """Non-TTY output is plain text with the hint."""
        buf = io.StringIO()
        render_error(CyclicDependencyError(['a', 'a']), file=buf)
        out = buf.getvalue()
        assert out.startswith('error[CK-GRAPH-CYCLE-DETECTED]: Circular dependency: a → a'), out
        assert '= hint:' in out

    def test_render_warning_without_hint(self) -> None:
        """A warning without a hint prints no hint line."""
        buf = io.StringIO()
        render_warning(ClosureKitWarning(E.MANIFEST_SHADOWED_NAME, 'shadowed'), file=buf)
        out = buf.getvalue()
        assert out.startswith('warning[CK-MANIFEST-SHADOWED-NAME]: shadowed'), out
        assert 'hint' not in out

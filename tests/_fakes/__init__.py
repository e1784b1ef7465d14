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

"""Shared test fakes for closurekit.

Usage::

    from tests._fakes import FakeExecutor, make_reference_workspace

    root = make_reference_workspace(tmp_path)
    executor = FakeExecutor(fail={'pkg-a'})
"""

from tests._fakes._executor import FakeExecutor as FakeExecutor
from tests._fakes._workspace import (
    append as append,
    crate_manifest as crate_manifest,
    make_reference_workspace as make_reference_workspace,
    make_workspace as make_workspace,
    write as write,
)

__all__ = [
    'FakeExecutor',
    'append',
    'crate_manifest',
    'make_reference_workspace',
    'make_workspace',
    'write',
]

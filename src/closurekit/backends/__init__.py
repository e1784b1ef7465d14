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

"""Protocol-based backends for closurekit.

The toolchain is reached only through injectable interfaces, so tests can
swap in a fake executor:

- :class:`BuildExecutor`: compile one stage of a filtered tree
  (default: :class:`CargoExecutor`).
- :func:`run_command`: the single subprocess entry point.
"""

from closurekit.backends._run import CommandResult, run_command
from closurekit.backends.executor import BuildExecutor, CargoExecutor

__all__ = [
    'BuildExecutor',
    'CargoExecutor',
    'CommandResult',
    'run_command',
]

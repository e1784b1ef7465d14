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

"""Structured logging for closurekit.

Events are structlog key/value records written to stderr, so stdout stays
free for plans and hashes. On a terminal they render as colored lines with
the package being built up front::

    2026-10-18T09:12:03Z [info ] [pkg-b] build_start  closure=['pkg-a'] tree=3f2a91c07b1e

With ``json_log=True`` each event is one JSON object per line, with
``package`` as an ordinary field.

Usage::

    from closurekit.logging import configure_logging, get_logger, package_context

    configure_logging(verbose=True)
    log = get_logger(__name__)
    with package_context('pkg-b'):
        log.info('closure_resolved', size=1)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog


def _level(*, verbose: bool, quiet: bool) -> int:
    if quiet:
        return logging.WARNING
    return logging.DEBUG if verbose else logging.INFO


def tag_package(
    _logger: object,
    _method: str,
    event_dict: MutableMapping[str, Any],  # noqa: ANN401 - structlog event values
) -> MutableMapping[str, Any]:  # noqa: ANN401
    """Move a bound ``package`` into the event text as ``[name] event``.

    Concurrent builds interleave on one stream; the prefix keeps each line
    attributable at a glance.
    """
    package = event_dict.pop('package', None)
    if package:
        event_dict['event'] = f'[{package}] {event_dict.get("event", "")}'
    return event_dict


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
) -> None:
    """Route structlog through a stderr root handler.

    Call once from the driving program before anything logs.

    Args:
        verbose: Include debug events (tree hashes, reused checkouts).
        quiet: Only warnings and errors. Wins over ``verbose``.
        json_log: Emit JSON lines instead of console text.
    """
    logging.basicConfig(format='%(message)s', stream=sys.stderr, level=_level(verbose=verbose, quiet=quiet), force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    render: list[structlog.types.Processor]
    if json_log:
        render = [structlog.processors.JSONRenderer()]
    else:
        render = [tag_package, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *render],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = 'closurekit') -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named ``name``."""
    return structlog.get_logger(name)


@contextmanager
def package_context(package: str, **extra: object) -> Iterator[None]:
    """Tag every log event emitted inside the block with ``package``.

    Uses structlog context variables, so concurrent builds running in
    separate asyncio tasks keep their own tags.

    Usage::

        with package_context('pkg-b', stage='full'):
            log.info('build_start')  # → [pkg-b] build_start stage=full
    """
    with structlog.contextvars.bound_contextvars(package=package, **extra):
        yield


__all__ = [
    'configure_logging',
    'get_logger',
    'package_context',
    'tag_package',
]

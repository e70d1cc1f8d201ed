# Copyright 2026 Firefly Software Solutions Inc.
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
"""Process-level diagnostics for backend errors that escape their tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from punchclock.errors.classifier import ErrorClassifier

_logger = logging.getLogger(__name__)


def install_unhandled_error_logger(
    loop: asyncio.AbstractEventLoop | None = None,
    classifier: ErrorClassifier | None = None,
) -> Callable[[], None]:
    """Log retryable backend errors that nobody awaited.

    The handler only logs. Recovery happens inside retried operations and
    the session monitor, never here. Every exception is then passed on to
    the handler that was installed before (or the loop's default).

    Returns:
        A callable restoring the previous handler.
    """
    loop = loop or asyncio.get_running_loop()
    classifier = classifier or ErrorClassifier()
    previous = loop.get_exception_handler()

    def handler(event_loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is not None and classifier.is_backend_error(exc):
            classified = classifier.classify(exc)
            if classified.retryable:
                _logger.warning(
                    "Detected retryable backend error in unhandled task failure: [%s] %s",
                    classified.code,
                    classified.message,
                )
        if previous is not None:
            previous(event_loop, context)
        else:
            event_loop.default_exception_handler(context)

    loop.set_exception_handler(handler)

    def uninstall() -> None:
        loop.set_exception_handler(previous)

    return uninstall

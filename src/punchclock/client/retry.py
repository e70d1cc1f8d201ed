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
"""Session-aware retry for remote data operations."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

from punchclock.errors.classifier import ClassifiedError, ErrorClassifier, ErrorKind
from punchclock.kernel.exceptions import BackendOperationException, SessionExpiredException

_logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_EXPIRED_CODE = "PGRST301"
SESSION_EXPIRED_MESSAGE = "Session expired. Please refresh the page and try again."


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """``{data, error}`` outcome of a remote operation."""

    data: T | None = None
    error: ClassifiedError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> T | None:
        """Return ``data``, or raise if the operation failed.

        Session expiry raises :class:`SessionExpiredException`; every other
        failure raises :class:`BackendOperationException`.
        """
        if self.error is not None:
            if self.error.kind is ErrorKind.SESSION_EXPIRED:
                raise SessionExpiredException(self.error)
            raise BackendOperationException(self.error)
        return self.data


Operation = Callable[[], Awaitable[Any]]


class SessionPrecondition(Protocol):
    async def ensure_valid(self) -> bool: ...


@dataclass(frozen=True)
class RetryOptions:
    """Retry budget and policy.

    Args:
        max_retries: Retries after the first attempt; at most ``max_retries + 1`` calls.
        retry_delay: Seconds to wait before the first retry.
        backoff_multiplier: Delay growth per attempt; ``1.0`` keeps it fixed.
        should_retry: Policy deciding whether a classified error is worth
            another attempt. Defaults to retrying session expiry only.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_multiplier: float = 1.0
    should_retry: Callable[[ClassifiedError], bool] | None = None

    def delay_for(self, attempt: int) -> float:
        return self.retry_delay * self.backoff_multiplier**attempt


class AttemptOutcome(Enum):
    OK = "OK"
    RETRYABLE = "RETRYABLE"
    TERMINAL = "TERMINAL"


@dataclass(frozen=True)
class RetryAttempt:
    """One execution of a wrapped operation."""

    index: int
    previous_error: ClassifiedError | None
    elapsed: float


def session_expired_error(details: str) -> ClassifiedError:
    """The error returned when an operation is refused for lack of a usable session."""
    return ClassifiedError(
        kind=ErrorKind.SESSION_EXPIRED,
        code=SESSION_EXPIRED_CODE,
        message=SESSION_EXPIRED_MESSAGE,
        user_message=SESSION_EXPIRED_MESSAGE,
        details=details,
    )


class RetryableOperation:
    """Runs remote operations with bounded, session-aware retry.

    Every run validates the session first and refuses to call the operation
    when it is unusable. Failed attempts are classified; only retryable
    ones (session expiry by default) are retried, and the session is
    re-validated before each retry so no attempt is spent on a session that
    cannot be recovered.

    Usage::

        retry = RetryableOperation(guard)
        result = await retry.execute(lambda: data.select("employees"), "load employees")
        if not result.ok:
            show(result.error.user_message)
    """

    def __init__(
        self,
        guard: SessionPrecondition,
        classifier: ErrorClassifier | None = None,
        options: RetryOptions | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._guard = guard
        self._classifier = classifier or ErrorClassifier()
        self._options = options or RetryOptions()
        self._sleep = sleep
        self._clock = clock

    @property
    def options(self) -> RetryOptions:
        return self._options

    async def run(self, operation: Operation, options: RetryOptions | None = None) -> OperationResult[Any]:
        """Execute *operation* under the retry policy.

        *operation* returns an :class:`OperationResult` or a ``{"data", "error"}``
        mapping. An exception raised on the final attempt propagates.
        """
        opts = options or self._options
        started = self._clock()

        if not await self._guard.ensure_valid():
            _logger.error("Session validation failed before operation")
            return OperationResult(error=session_expired_error("Session validation failed"))

        total = opts.max_retries + 1
        last_error: ClassifiedError | None = None
        for index in range(total):
            attempt = RetryAttempt(index=index, previous_error=last_error, elapsed=self._clock() - started)
            _logger.debug("Operation attempt %d/%d (%.3fs elapsed)", attempt.index + 1, total, attempt.elapsed)

            try:
                outcome, result = self._evaluate(await operation(), opts)
            except Exception:
                if index == opts.max_retries:
                    _logger.error("Operation raised on final attempt %d/%d", index + 1, total)
                    raise
                _logger.warning("Operation raised on attempt %d/%d, retrying", index + 1, total, exc_info=True)
                await self._sleep(opts.delay_for(index))
                continue

            if outcome is AttemptOutcome.OK:
                if index > 0:
                    _logger.info("Operation succeeded after %d attempts", index + 1)
                return result

            last_error = result.error
            if outcome is AttemptOutcome.TERMINAL:
                _logger.info("Operation failed with non-retryable error: %s", last_error.message)
                return result
            if index == opts.max_retries:
                break

            delay = opts.delay_for(index)
            _logger.warning("Operation failed, retrying in %.2fs: %s", delay, last_error.message)
            if not await self._guard.ensure_valid():
                _logger.error("Session recovery failed, aborting retries")
                return OperationResult(error=session_expired_error("Session recovery failed"))
            await self._sleep(delay)

        _logger.error("Operation failed after %d attempts", total)
        return OperationResult(error=last_error)

    async def execute(
        self,
        operation: Operation,
        name: str = "database operation",
        options: RetryOptions | None = None,
    ) -> OperationResult[Any]:
        """:meth:`run` with start and completion logging under *name*."""
        _logger.info("Starting %s", name)
        result = await self.run(operation, options)
        if result.error is not None:
            _logger.error("%s failed: %s", name, result.error.message)
        else:
            _logger.info("%s completed successfully", name)
        return result

    def wrap(
        self,
        func: Callable[..., Awaitable[Any]],
        name: str | None = None,
        options: RetryOptions | None = None,
    ) -> Callable[..., Awaitable[OperationResult[Any]]]:
        """Return a coroutine function that runs *func* under the retry policy."""
        operation_name = name or getattr(func, "__name__", "database operation")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> OperationResult[Any]:
            return await self.execute(lambda: func(*args, **kwargs), operation_name, options)

        return wrapper

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evaluate(self, raw: Any, opts: RetryOptions) -> tuple[AttemptOutcome, OperationResult[Any]]:
        result = self._normalize(raw)
        if result.error is None:
            return AttemptOutcome.OK, result
        should_retry = opts.should_retry or (lambda error: error.retryable)
        if should_retry(result.error):
            return AttemptOutcome.RETRYABLE, result
        return AttemptOutcome.TERMINAL, result

    def _normalize(self, raw: Any) -> OperationResult[Any]:
        if isinstance(raw, OperationResult):
            return raw
        if isinstance(raw, Mapping) and ("data" in raw or "error" in raw):
            error = raw.get("error")
            return OperationResult(
                data=raw.get("data"),
                error=self._classifier.classify(error) if error is not None else None,
            )
        return OperationResult(data=raw)

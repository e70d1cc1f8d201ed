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
"""Unified exception hierarchy for Punchclock.

All library exceptions inherit from PunchclockException, enabling unified
error handling across modules.

Categories:
- SecurityException: Authentication and session errors
- StorageException: Durable key-value tier failures
- InfrastructureException: Backend and network failures
- ConfigurationException: Invalid or missing configuration
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from punchclock.errors.classifier import ClassifiedError


# =============================================================================
# Base Exception
# =============================================================================


class PunchclockException(Exception):
    """Base exception for all Punchclock errors.

    Carries an optional error code and context dict for structured error data.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "PGRST301").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Security Exceptions
# =============================================================================


class SecurityException(PunchclockException):
    """Authentication and authorization errors."""


class SessionExpiredException(SecurityException):
    """A data operation was refused because the session is gone."""

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error.user_message, code=error.code, context={"kind": error.kind.value})
        self.error = error


# =============================================================================
# Storage Exceptions
# =============================================================================


class StorageException(PunchclockException):
    """Durable key-value tier failure."""


class StorageQuotaExceededException(StorageException):
    """The durable tier is out of space (browser ``QuotaExceededError``)."""


class StorageSecurityException(StorageException):
    """The durable tier refuses access (private mode, ``SecurityError``)."""


# =============================================================================
# Infrastructure Exceptions
# =============================================================================


class InfrastructureException(PunchclockException):
    """Infrastructure failures: backend, network."""


class BackendOperationException(InfrastructureException):
    """A data operation finished with a classified backend error."""

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error.user_message, code=error.code, context={"kind": error.kind.value})
        self.error = error


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationException(PunchclockException):
    """Configuration is missing or invalid."""

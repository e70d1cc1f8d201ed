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
"""Backend error decoding and classification.

Raw backend failures arrive in several shapes: PostgREST JSON payloads
(``{"code", "message", "details", "hint"}``), httpx exceptions, and plain
Python exceptions. :meth:`ErrorClassifier.decode` turns every shape into a
:class:`BackendError` exactly once; :meth:`ErrorClassifier.classify` maps that
onto the closed :class:`ErrorKind` taxonomy and a user-facing message.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from punchclock.kernel.exceptions import (
    BackendOperationException,
    PunchclockException,
    SessionExpiredException,
    StorageException,
)
from punchclock.storage.types import StorageFailure, classify_storage_failure

_logger = logging.getLogger(__name__)

SESSION_EXPIRED_CODES: frozenset[str] = frozenset({
    "PGRST301",  # JWT expired
    "PGRST300",  # JWT invalid
    "PGRST302",  # JWT malformed
    "401",
    "403",
})

SESSION_EXPIRED_MESSAGES: tuple[str, ...] = (
    "jwt expired",
    "invalid claim",
    "session expired",
    "authentication required",
    "token expired",
)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INSUFFICIENT_PRIVILEGE = "42501"
NO_ROWS = "PGRST116"


class ErrorKind(Enum):
    """Closed taxonomy of backend failures."""

    SESSION_EXPIRED = "SessionExpired"
    CONFLICT = "Conflict"
    REFERENTIAL_CONSTRAINT = "ReferentialConstraint"
    PERMISSION_DENIED = "PermissionDenied"
    NOT_FOUND = "NotFound"
    STORAGE_RESTRICTED = "StorageRestricted"
    UNKNOWN = "Unknown"


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.SESSION_EXPIRED: "Your session has expired. Please refresh the page and try again.",
    ErrorKind.CONFLICT: "This record already exists. Please check your data and try again.",
    ErrorKind.REFERENTIAL_CONSTRAINT: "Cannot perform this action due to related data constraints.",
    ErrorKind.PERMISSION_DENIED: "You do not have permission to perform this action.",
    ErrorKind.NOT_FOUND: "No matching record found.",
    ErrorKind.STORAGE_RESTRICTED: "Browser storage is restricted. You may need to sign in again after reloading.",
}

_AUTHENTICATION_ERROR = "Authentication error. Please refresh the page and try again."


@dataclass(frozen=True)
class BackendError:
    """A backend failure decoded from its wire shape."""

    code: str
    message: str
    details: str | None = None
    hint: str | None = None


@dataclass(frozen=True)
class ClassifiedError:
    """A backend failure placed in the taxonomy, with text safe to show users."""

    kind: ErrorKind
    code: str
    message: str
    user_message: str
    details: str | None = None

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.SESSION_EXPIRED


class ErrorClassifier:
    """Decodes and classifies backend errors.

    Args:
        retryable_codes: Codes treated as session expiry (retryable).
        retryable_messages: Case-insensitive message fragments treated as
            session expiry when the code is not recognised.
    """

    def __init__(
        self,
        retryable_codes: Iterable[str] = SESSION_EXPIRED_CODES,
        retryable_messages: Iterable[str] = SESSION_EXPIRED_MESSAGES,
    ) -> None:
        self._retryable_codes = frozenset(retryable_codes)
        self._retryable_messages = tuple(m.lower() for m in retryable_messages)

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode(self, raw: Any) -> BackendError:
        """Decode any supported error shape into a :class:`BackendError`."""
        if isinstance(raw, BackendError):
            return raw
        if isinstance(raw, ClassifiedError):
            return BackendError(code=raw.code, message=raw.message, details=raw.details)
        if isinstance(raw, (BackendOperationException, SessionExpiredException)):
            return self.decode(raw.error)
        if isinstance(raw, Mapping):
            return self._decode_payload(raw)
        if isinstance(raw, httpx.HTTPStatusError):
            return self.decode_response(raw.response)
        if isinstance(raw, httpx.RequestError):
            return BackendError(code="", message=str(raw) or type(raw).__name__)
        if isinstance(raw, BaseException):
            code = getattr(raw, "code", None)
            return BackendError(code=str(code) if code is not None else "", message=str(raw))
        return BackendError(code="", message=str(raw))

    def decode_response(self, response: httpx.Response) -> BackendError:
        """Decode a failed HTTP response, preferring a PostgREST JSON body."""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, Mapping) and payload.get("code"):
            return self._decode_payload(payload)

        message = ""
        if isinstance(payload, Mapping):
            message = str(payload.get("message") or payload.get("msg") or payload.get("error_description") or "")
        return BackendError(code=str(response.status_code), message=message or response.reason_phrase)

    @staticmethod
    def _decode_payload(payload: Mapping[str, Any]) -> BackendError:
        details = payload.get("details")
        hint = payload.get("hint")
        return BackendError(
            code=str(payload.get("code") or ""),
            message=str(payload.get("message") or payload.get("msg") or ""),
            details=str(details) if details is not None else None,
            hint=str(hint) if hint is not None else None,
        )

    def is_backend_error(self, raw: Any) -> bool:
        """Whether *raw* carries a backend error code."""
        if isinstance(
            raw,
            (BackendError, ClassifiedError, BackendOperationException, SessionExpiredException, httpx.HTTPStatusError),
        ):
            return True
        if isinstance(raw, Mapping):
            return "code" in raw
        if isinstance(raw, PunchclockException):
            return raw.code is not None
        return getattr(raw, "code", None) is not None

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, raw: Any, operation: str = "database operation") -> ClassifiedError:
        """Place *raw* in the taxonomy."""
        if isinstance(raw, ClassifiedError):
            return raw
        if isinstance(raw, StorageException) and classify_storage_failure(raw) is StorageFailure.SECURITY_RESTRICTED:
            return ClassifiedError(
                kind=ErrorKind.STORAGE_RESTRICTED,
                code=raw.code or "",
                message=str(raw),
                user_message=_USER_MESSAGES[ErrorKind.STORAGE_RESTRICTED],
            )

        error = self.decode(raw)
        kind = self._kind_of(error)
        if kind is ErrorKind.UNKNOWN:
            user_message = self._unknown_message(error, operation)
        else:
            user_message = _USER_MESSAGES[kind]
        return ClassifiedError(
            kind=kind,
            code=error.code,
            message=error.message,
            user_message=user_message,
            details=error.details,
        )

    def is_retryable(self, raw: Any) -> bool:
        """Default retry policy: only session expiry is worth retrying."""
        return self.classify(raw).retryable

    def describe(self, raw: Any, operation: str) -> str:
        """User-facing text for a failure raised by *operation*."""
        if isinstance(raw, BaseException) and not self.is_backend_error(raw):
            _logger.error("Unexpected error in %s: %s", operation, raw)
            return f"Unexpected error in {operation}"
        classified = self.classify(raw, operation)
        _logger.error("Database error in %s: [%s] %s", operation, classified.code, classified.message)
        return classified.user_message

    def _kind_of(self, error: BackendError) -> ErrorKind:
        if error.code in self._retryable_codes:
            return ErrorKind.SESSION_EXPIRED
        lowered = error.message.lower()
        if any(fragment in lowered for fragment in self._retryable_messages):
            return ErrorKind.SESSION_EXPIRED
        if error.code == UNIQUE_VIOLATION:
            return ErrorKind.CONFLICT
        if error.code == FOREIGN_KEY_VIOLATION:
            return ErrorKind.REFERENTIAL_CONSTRAINT
        if error.code == INSUFFICIENT_PRIVILEGE:
            return ErrorKind.PERMISSION_DENIED
        if error.code == NO_ROWS:
            return ErrorKind.NOT_FOUND
        return ErrorKind.UNKNOWN

    @staticmethod
    def _unknown_message(error: BackendError, operation: str) -> str:
        if "jwt" in error.message.lower():
            return _AUTHENTICATION_ERROR
        if error.message:
            return f"Error in {operation}: {error.message}"
        return f"Database error in {operation}"

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
"""Storage types: change notifications, failure taxonomy, diagnostics, entry parsing."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from punchclock.kernel.exceptions import StorageQuotaExceededException, StorageSecurityException


@dataclass(frozen=True)
class StorageChange:
    """A durable-tier change made by another storage context (tab, process).

    ``new_value`` is ``None`` when the key was removed.
    """

    key: str
    new_value: str | None
    origin: str | None = None


ChangeListener = Callable[[StorageChange], None]
Unsubscribe = Callable[[], None]


class StorageFailure(Enum):
    """Why a durable-tier write failed."""

    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SECURITY_RESTRICTED = "SECURITY_RESTRICTED"
    UNKNOWN = "UNKNOWN"


def classify_storage_failure(exc: BaseException) -> StorageFailure:
    """Map a durable-tier exception to a :class:`StorageFailure`.

    Typed storage exceptions are trusted first; anything else is matched on
    its text the way browsers report ``QuotaExceededError``/``SecurityError``.
    """
    if isinstance(exc, StorageQuotaExceededException):
        return StorageFailure.QUOTA_EXCEEDED
    if isinstance(exc, StorageSecurityException):
        return StorageFailure.SECURITY_RESTRICTED
    text = f"{type(exc).__name__}: {exc}"
    if "QuotaExceededError" in text or "quota" in text.lower():
        return StorageFailure.QUOTA_EXCEEDED
    if "SecurityError" in text:
        return StorageFailure.SECURITY_RESTRICTED
    return StorageFailure.UNKNOWN


@dataclass(frozen=True)
class StorageDiagnostics:
    """Read-only snapshot of the storage tiers."""

    is_durable_available: bool
    is_private_mode_suspected: bool
    memory_entry_count: int
    durable_entry_count: int


class CorruptEntryError(ValueError):
    """A namespaced value could not be deserialized."""


def embedded_expiry(value: str) -> float | None:
    """Return the ``expires_at`` epoch seconds carried by a serialized value.

    Raises:
        CorruptEntryError: If *value* is not valid JSON.
    """
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError) as exc:
        raise CorruptEntryError(str(exc)) from exc

    if not isinstance(parsed, dict):
        return None
    expires_at = parsed.get("expires_at")
    if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
        return None
    return float(expires_at)

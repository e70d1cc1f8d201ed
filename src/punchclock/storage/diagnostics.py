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
"""Passive storage notices for diagnostic banners."""

from __future__ import annotations

from dataclasses import dataclass

from punchclock.storage.types import StorageDiagnostics


@dataclass(frozen=True)
class StorageNotice:
    """A non-fatal storage condition worth showing to the user."""

    issue: str
    message: str


PRIVATE_MODE = StorageNotice(
    issue="private_mode",
    message=(
        "Private browsing is limiting storage. You will stay signed in until "
        "this window is closed, but your session will not be remembered."
    ),
)

STORAGE_RESTRICTED = StorageNotice(
    issue="storage_restricted",
    message=(
        "Browser storage is restricted. The app keeps working, but you may "
        "need to sign in again after reloading."
    ),
)


def describe_storage_issue(diagnostics: StorageDiagnostics) -> StorageNotice | None:
    """Return the notice to show for *diagnostics*, or ``None`` when storage is healthy."""
    if diagnostics.is_private_mode_suspected:
        return PRIVATE_MODE
    if not diagnostics.is_durable_available:
        return STORAGE_RESTRICTED
    return None

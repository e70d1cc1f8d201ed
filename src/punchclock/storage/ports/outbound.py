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
"""Durable key-value tier protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from punchclock.storage.types import ChangeListener, Unsubscribe


@runtime_checkable
class DurableStore(Protocol):
    """Best-effort persistent string store backing the StorageAdapter.

    Implementations may raise ``StorageQuotaExceededException`` or
    ``StorageSecurityException`` (or any exception whose text names
    ``QuotaExceededError``/``SecurityError``); the adapter absorbs them.

    ``subscribe`` delivers changes made by *other* contexts sharing the same
    durable storage, never the subscriber's own writes.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def keys(self) -> list[str]: ...

    def subscribe(self, listener: ChangeListener) -> Unsubscribe: ...

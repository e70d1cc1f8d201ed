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
"""In-memory durable store shared between storage contexts."""

from __future__ import annotations

import uuid

from punchclock.kernel.exceptions import StorageQuotaExceededException, StorageSecurityException
from punchclock.storage.types import ChangeListener, StorageChange, Unsubscribe


class MemoryBacking:
    """Origin-wide storage shared by every context created on it.

    Plays the role of one browser origin's ``localStorage``: all contexts
    see the same entries and are told about each other's writes.
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.entries: dict[str, str] = {}
        self.quota_bytes = quota_bytes
        self._listeners: list[tuple[str, ChangeListener]] = []

    def used_bytes(self) -> int:
        return sum(len(k) + len(v) for k, v in self.entries.items())

    def add_listener(self, context_id: str, listener: ChangeListener) -> Unsubscribe:
        registration = (context_id, listener)
        self._listeners.append(registration)

        def unsubscribe() -> None:
            if registration in self._listeners:
                self._listeners.remove(registration)

        return unsubscribe

    def broadcast(self, origin: str, key: str, new_value: str | None) -> None:
        change = StorageChange(key=key, new_value=new_value, origin=origin)
        for context_id, listener in list(self._listeners):
            if context_id != origin:
                listener(change)


class InMemoryDurableStore:
    """Durable-store adapter over a :class:`MemoryBacking`.

    Suitable for tests and single-process use. ``restricted=True`` makes
    every call fail with ``SecurityError`` (private browsing); a backing
    with ``quota_bytes`` rejects writes that would exceed it.
    """

    def __init__(self, backing: MemoryBacking | None = None, restricted: bool = False) -> None:
        self._backing = backing or MemoryBacking()
        self._context_id = uuid.uuid4().hex
        self.restricted = restricted

    @property
    def backing(self) -> MemoryBacking:
        return self._backing

    def sibling(self) -> InMemoryDurableStore:
        """Another context (tab) on the same backing."""
        return InMemoryDurableStore(self._backing, restricted=self.restricted)

    def _check_access(self) -> None:
        if self.restricted:
            raise StorageSecurityException("SecurityError: the operation is insecure")

    async def get(self, key: str) -> str | None:
        self._check_access()
        return self._backing.entries.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check_access()
        quota = self._backing.quota_bytes
        if quota is not None:
            current = self._backing.entries.get(key)
            projected = self._backing.used_bytes() + len(key) + len(value)
            if current is not None:
                projected -= len(key) + len(current)
            if projected > quota:
                raise StorageQuotaExceededException(
                    "QuotaExceededError: the quota has been exceeded",
                    context={"quota_bytes": quota, "projected_bytes": projected},
                )
        self._backing.entries[key] = value
        self._backing.broadcast(self._context_id, key, value)

    async def remove(self, key: str) -> None:
        self._check_access()
        if self._backing.entries.pop(key, None) is not None:
            self._backing.broadcast(self._context_id, key, None)

    async def keys(self) -> list[str]:
        self._check_access()
        return list(self._backing.entries)

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        return self._backing.add_listener(self._context_id, listener)

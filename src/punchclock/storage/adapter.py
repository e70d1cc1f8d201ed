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
"""Tiered key-value storage: authoritative memory tier over a best-effort durable tier."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from punchclock.storage.ports.outbound import DurableStore
from punchclock.storage.types import (
    CorruptEntryError,
    StorageChange,
    StorageDiagnostics,
    StorageFailure,
    Unsubscribe,
    classify_storage_failure,
    embedded_expiry,
)

_logger = logging.getLogger(__name__)

_AVAILABILITY_PROBE_KEY = "__punchclock_storage_test__"
_PRIVATE_MODE_PROBE_KEY = "__punchclock_private_test__"
_PROBE_VALUE = "test"


class StorageAdapter:
    """Key-value store that keeps working when durable storage does not.

    Reads hit the in-process memory tier first and fall back to the durable
    tier, caching what they find. Writes always land in memory and are
    mirrored to the durable tier when it accepts them. Durable failures are
    logged and absorbed:

    - quota exhaustion purges expired or corrupt namespaced entries from the
      durable tier (the failed write is not retried in the same call);
    - a security restriction switches the durable tier off for the rest of
      the process.

    Values under the namespace *prefix* are serialized session data: they
    must parse as JSON, and an ``expires_at`` in the past makes them stale.
    Stale or corrupt entries are evicted from both tiers instead of being
    returned.

    Usage::

        storage = StorageAdapter(FileDurableStore("state.json"), prefix="sb-")
        await storage.start()
        await storage.set("sb-local-auth-token", session_json)
        ...
        await storage.stop()   # flushes namespaced entries
    """

    def __init__(
        self,
        durable: DurableStore | None = None,
        prefix: str = "sb-",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._memory: dict[str, str] = {}
        self._durable = durable
        self._prefix = prefix
        self._clock = clock
        self._durable_available = durable is not None
        self._unsubscribe: Unsubscribe | None = None

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def is_durable_available(self) -> bool:
        return self._durable_available

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Probe the durable tier and follow changes made by other contexts."""
        if self._durable is None:
            return
        self._durable_available = await self._probe_availability()
        if not self._durable_available:
            _logger.warning("Durable storage unavailable, using memory storage only")
            return
        if self._unsubscribe is None:
            self._unsubscribe = self._durable.subscribe(self._on_external_change)

    async def stop(self) -> None:
        """Flush namespaced entries to the durable tier and stop following changes."""
        await self.flush()
        self._detach()

    # ------------------------------------------------------------------
    # Key-value operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Return the live value for *key*, or ``None``. Never raises."""
        value = self._memory.get(key)
        if value is not None:
            if await self._is_stale(key, value):
                return None
            return value

        if self._durable is None or not self._durable_available:
            return None
        try:
            value = await self._durable.get(key)
        except Exception:
            _logger.warning("Failed to read '%s' from durable storage", key, exc_info=True)
            return None
        if value is None or await self._is_stale(key, value):
            return None

        self._memory[key] = value
        return value

    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*. Never raises."""
        self._memory[key] = value

        if self._durable is None or not self._durable_available:
            return
        try:
            await self._durable.set(key, value)
        except Exception as exc:
            await self._handle_write_failure(key, exc)

    async def remove(self, key: str) -> None:
        """Remove *key* from both tiers. Never raises."""
        self._memory.pop(key, None)
        await self._remove_durable(key)

    # ------------------------------------------------------------------
    # Diagnostics and synchronisation
    # ------------------------------------------------------------------

    async def get_diagnostics(self) -> StorageDiagnostics:
        """Snapshot both tiers.

        The only write is a disposable probe entry used to detect private
        browsing restrictions.
        """
        private_mode = await self._probe_private_mode()
        durable_count = 0
        if self._durable is not None and self._durable_available:
            try:
                durable_count = len(await self._durable.keys())
            except Exception:
                _logger.debug("Failed to count durable entries", exc_info=True)
        return StorageDiagnostics(
            is_durable_available=self._durable_available,
            is_private_mode_suspected=private_mode,
            memory_entry_count=len(self._memory),
            durable_entry_count=durable_count,
        )

    async def sync_from_durable(self) -> int:
        """Copy namespaced durable entries into the memory tier.

        Used when a context becomes active again after being hidden. Returns
        the number of entries copied.
        """
        if self._durable is None or not self._durable_available:
            return 0
        copied = 0
        try:
            for key in await self._durable.keys():
                if not key.startswith(self._prefix):
                    continue
                value = await self._durable.get(key)
                if value:
                    self._memory[key] = value
                    copied += 1
        except Exception:
            _logger.warning("Failed to sync from durable storage", exc_info=True)
        return copied

    async def flush(self) -> int:
        """Best-effort copy of namespaced memory entries into the durable tier."""
        if self._durable is None or not self._durable_available:
            return 0
        flushed = 0
        for key, value in list(self._memory.items()):
            if not key.startswith(self._prefix):
                continue
            try:
                await self._durable.set(key, value)
            except Exception:
                _logger.warning("Failed to persist '%s' during flush", key, exc_info=True)
                break
            flushed += 1
        return flushed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_external_change(self, change: StorageChange) -> None:
        if not change.key.startswith(self._prefix):
            return
        if change.new_value is None:
            self._memory.pop(change.key, None)
        else:
            self._memory[change.key] = change.new_value
        _logger.debug("Applied storage change for '%s' from another context", change.key)

    async def _is_stale(self, key: str, value: str) -> bool:
        """Evict and report namespaced entries that are corrupt or expired."""
        if not key.startswith(self._prefix):
            return False
        try:
            expires_at = embedded_expiry(value)
        except CorruptEntryError:
            _logger.warning("Removing corrupted storage entry '%s'", key)
            await self._evict(key)
            return True
        if expires_at is not None and expires_at <= self._clock():
            _logger.debug("Evicting expired storage entry '%s'", key)
            await self._evict(key)
            return True
        return False

    async def _evict(self, key: str) -> None:
        self._memory.pop(key, None)
        await self._remove_durable(key)

    async def _remove_durable(self, key: str) -> None:
        if self._durable is None or not self._durable_available:
            return
        try:
            await self._durable.remove(key)
        except Exception:
            _logger.debug("Failed to remove '%s' from durable storage", key, exc_info=True)

    async def _handle_write_failure(self, key: str, exc: Exception) -> None:
        failure = classify_storage_failure(exc)
        if failure is StorageFailure.QUOTA_EXCEEDED:
            _logger.warning("Durable storage quota exceeded writing '%s', purging stale entries", key)
            purged = await self._purge_stale_durable()
            _logger.info("Purged %d stale durable entries", purged)
        elif failure is StorageFailure.SECURITY_RESTRICTED:
            _logger.warning("Durable storage restricted, falling back to memory storage only")
            self._durable_available = False
            self._detach()
        else:
            _logger.warning("Failed to write '%s' to durable storage", key, exc_info=exc)

    async def _purge_stale_durable(self) -> int:
        """Remove expired or corrupt namespaced entries from the durable tier only."""
        if self._durable is None:
            return 0
        purged = 0
        now = self._clock()
        try:
            keys = await self._durable.keys()
        except Exception:
            _logger.warning("Failed to list durable entries for cleanup", exc_info=True)
            return 0
        for key in keys:
            if not key.startswith(self._prefix):
                continue
            try:
                value = await self._durable.get(key)
                if value is None:
                    continue
                try:
                    expires_at = embedded_expiry(value)
                except CorruptEntryError:
                    expires_at = float("-inf")
                if expires_at is not None and expires_at <= now:
                    await self._durable.remove(key)
                    purged += 1
            except Exception:
                _logger.debug("Failed to inspect durable entry '%s'", key, exc_info=True)
        return purged

    async def _probe_availability(self) -> bool:
        assert self._durable is not None
        try:
            await self._durable.set(_AVAILABILITY_PROBE_KEY, _PROBE_VALUE)
            retrieved = await self._durable.get(_AVAILABILITY_PROBE_KEY)
            await self._durable.remove(_AVAILABILITY_PROBE_KEY)
        except Exception:
            _logger.debug("Durable storage probe failed", exc_info=True)
            return False
        return retrieved == _PROBE_VALUE

    async def _probe_private_mode(self) -> bool:
        if self._durable is None:
            return False
        try:
            await self._durable.set(_PRIVATE_MODE_PROBE_KEY, _PROBE_VALUE)
            await self._durable.remove(_PRIVATE_MODE_PROBE_KEY)
        except Exception:
            return True
        return False

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

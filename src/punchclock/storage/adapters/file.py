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
"""JSON-file durable store."""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import os
import tempfile
from pathlib import Path

from punchclock.kernel.exceptions import StorageQuotaExceededException, StorageSecurityException
from punchclock.storage.types import ChangeListener, Unsubscribe

_logger = logging.getLogger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC), errno.EFBIG}


class FileDurableStore:
    """Durable store persisting all entries in one JSON object on disk.

    Writes replace the file atomically. File I/O runs in a worker thread.
    The store has no change feed; ``subscribe`` is accepted and never fires.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get(self, key: str) -> str | None:
        entries = await self._read()
        return entries.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            entries = await self._read()
            entries[key] = value
            await self._write(entries)

    async def remove(self, key: str) -> None:
        async with self._lock:
            entries = await self._read()
            if entries.pop(key, None) is not None:
                await self._write(entries)

    async def keys(self) -> list[str]:
        return list(await self._read())

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        return lambda: None

    async def _read(self) -> dict[str, str]:
        try:
            raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            self._raise_translated(exc)
            raise

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Durable storage file %s is unreadable, starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    async def _write(self, entries: dict[str, str]) -> None:
        try:
            await asyncio.to_thread(self._write_sync, json.dumps(entries))
        except OSError as exc:
            self._raise_translated(exc)
            raise

    def _write_sync(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".punchclock-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _raise_translated(self, exc: OSError) -> None:
        if isinstance(exc, PermissionError):
            raise StorageSecurityException(f"SecurityError: {exc}", context={"path": str(self._path)}) from exc
        if exc.errno in _QUOTA_ERRNOS:
            raise StorageQuotaExceededException(
                f"QuotaExceededError: {exc}", context={"path": str(self._path)}
            ) from exc

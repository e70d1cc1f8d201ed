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
"""Redis-backed durable store with a pub/sub change feed."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any

from punchclock.kernel.exceptions import StorageQuotaExceededException, StorageSecurityException
from punchclock.storage.types import ChangeListener, StorageChange, Unsubscribe

_logger = logging.getLogger(__name__)

_KEY_PREFIX = "punchclock:durable:"

_QUOTA_MARKERS = ("OOM", "maxmemory")
_SECURITY_MARKERS = ("NOPERM", "NOAUTH", "WRONGPASS", "Authentication")


class RedisDurableStore:
    """Durable store backed by a ``redis.asyncio.Redis``-like client.

    Keys are prefixed with ``punchclock:durable:`` for namespace isolation.
    Every write is announced on *channel* tagged with this store's origin id;
    subscribers receive changes from other origins only, which is how two
    processes sharing one Redis converge like two browser tabs.
    """

    def __init__(self, client: Any, channel: str = "punchclock:storage", origin: str | None = None) -> None:
        self._client = client
        self._channel = channel
        self._origin = origin or uuid.uuid4().hex
        self._listeners: list[ChangeListener] = []
        self._listen_task: asyncio.Task[None] | None = None

    @property
    def origin(self) -> str:
        return self._origin

    def _key(self, key: str) -> str:
        return f"{_KEY_PREFIX}{key}"

    async def get(self, key: str) -> str | None:
        try:
            raw = await self._client.get(self._key(key))
        except Exception as exc:
            self._raise_translated(exc)
            raise
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else str(raw)

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(self._key(key), value.encode())
        except Exception as exc:
            self._raise_translated(exc)
            raise
        await self._announce(key, value)

    async def remove(self, key: str) -> None:
        try:
            count = await self._client.delete(self._key(key))
        except Exception as exc:
            self._raise_translated(exc)
            raise
        if count:
            await self._announce(key, None)

    async def keys(self) -> list[str]:
        keys: list[str] = []
        try:
            async for raw in self._client.scan_iter(match=f"{_KEY_PREFIX}*"):
                name = raw.decode() if isinstance(raw, bytes) else str(raw)
                keys.append(name.removeprefix(_KEY_PREFIX))
        except Exception as exc:
            self._raise_translated(exc)
            raise
        return keys

    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        """Register *listener*; the first registration starts the pub/sub reader.

        Must be called from a running event loop.
        """
        self._listeners.append(listener)
        if self._listen_task is None or self._listen_task.done():
            self._listen_task = asyncio.get_running_loop().create_task(self._listen())
            self._listen_task.add_done_callback(self._listen_done_callback)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners and self._listen_task is not None:
                self._listen_task.cancel()
                self._listen_task = None

        return unsubscribe

    async def start(self) -> None:
        """No-op: the client connects lazily on first command."""

    async def stop(self) -> None:
        """Stop the pub/sub reader and close the client."""
        self._listeners.clear()
        if self._listen_task is not None:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None
        await self._client.aclose()

    async def _announce(self, key: str, value: str | None) -> None:
        message = json.dumps({"key": key, "value": value, "origin": self._origin})
        try:
            await self._client.publish(self._channel, message)
        except Exception:
            _logger.warning("Failed to announce durable change for key '%s'", key, exc_info=True)

    async def _listen(self) -> None:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    self.dispatch(message.get("data"))
        finally:
            with contextlib.suppress(Exception):
                await pubsub.unsubscribe(self._channel)
                await pubsub.aclose()

    @staticmethod
    def _listen_done_callback(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Storage change listener failed: %s", exc, exc_info=exc)

    def dispatch(self, data: Any) -> None:
        """Deliver one raw pub/sub payload to listeners unless it is our own."""
        if isinstance(data, bytes):
            data = data.decode()
        try:
            payload = json.loads(data)
            change = StorageChange(key=payload["key"], new_value=payload.get("value"), origin=payload.get("origin"))
        except (json.JSONDecodeError, TypeError, KeyError):
            _logger.warning("Ignoring malformed storage change message")
            return
        if change.origin == self._origin:
            return
        for listener in list(self._listeners):
            listener(change)

    @staticmethod
    def _raise_translated(exc: Exception) -> None:
        text = str(exc)
        if any(marker in text for marker in _QUOTA_MARKERS):
            raise StorageQuotaExceededException(f"QuotaExceededError: {text}") from exc
        if any(marker in text for marker in _SECURITY_MARKERS):
            raise StorageSecurityException(f"SecurityError: {text}") from exc

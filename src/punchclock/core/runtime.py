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
"""SessionRuntime — the service object wiring the session subsystem together."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from punchclock.auth.adapters.gotrue import GoTrueAuthProvider
from punchclock.auth.events import AuthEventBus
from punchclock.auth.guard import SessionGuard
from punchclock.auth.state import AuthState
from punchclock.client.data_client import RestDataClient
from punchclock.client.retry import RetryableOperation, RetryOptions
from punchclock.config.properties.backend import BackendProperties
from punchclock.config.properties.retry import RetryProperties
from punchclock.config.properties.session import SessionProperties
from punchclock.config.properties.storage import StorageProperties
from punchclock.core.config import Config
from punchclock.errors.classifier import ErrorClassifier
from punchclock.errors.handler import install_unhandled_error_logger
from punchclock.kernel.exceptions import ConfigurationException
from punchclock.kernel.lifecycle import Lifecycle
from punchclock.monitor.session_monitor import SessionMonitor
from punchclock.storage.adapter import StorageAdapter
from punchclock.storage.adapters.file import FileDurableStore
from punchclock.storage.adapters.memory import InMemoryDurableStore
from punchclock.storage.adapters.redis import RedisDurableStore
from punchclock.storage.ports.outbound import DurableStore

_logger = logging.getLogger(__name__)


def build_durable_store(properties: StorageProperties) -> DurableStore:
    """Create the durable tier selected by ``punchclock.storage.backend``."""
    backend = properties.backend.lower()
    if backend == "memory":
        return InMemoryDurableStore()
    if backend == "file":
        return FileDurableStore(properties.path)
    if backend == "redis":
        import redis.asyncio as aioredis

        client = aioredis.from_url(properties.redis_url)
        return RedisDurableStore(client, channel=properties.redis_channel)
    raise ConfigurationException(
        f"Unknown storage backend '{properties.backend}'",
        context={"supported": ["memory", "file", "redis"]},
    )


class SessionRuntime:
    """Builds and owns every session component for one client instance.

    Construct once at process start and hand the components to consumers.
    :meth:`start` brings them up in dependency order; :meth:`stop` tears
    them down in reverse, flushing storage last.

    Usage::

        async with SessionRuntime(Config.from_sources(".")) as runtime:
            await runtime.auth.sign_in(email, password)
            result = await runtime.retry.execute(
                lambda: runtime.data.select("time_entries"), "load time entries"
            )
    """

    def __init__(
        self,
        config: Config | None = None,
        durable: DurableStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or Config.defaults()
        session_props = self.config.bind(SessionProperties)
        retry_props = self.config.bind(RetryProperties)
        storage_props = self.config.bind(StorageProperties)
        backend_props = self.config.bind(BackendProperties)

        self.durable = durable if durable is not None else build_durable_store(storage_props)
        self.storage = StorageAdapter(self.durable, prefix=storage_props.prefix, clock=clock)
        self.classifier = ErrorClassifier()
        self.events = AuthEventBus()
        self.auth_provider = GoTrueAuthProvider(
            self.storage,
            url=backend_props.url,
            anon_key=backend_props.anon_key,
            storage_key=f"{storage_props.prefix}{backend_props.storage_key}",
            timeout=backend_props.timeout,
            events=self.events,
            clock=clock,
            transport=transport,
        )
        self.guard = SessionGuard(self.auth_provider, safety_margin=session_props.safety_margin, clock=clock)
        self.auth = AuthState(self.auth_provider)
        self.retry = RetryableOperation(
            self.guard,
            classifier=self.classifier,
            options=RetryOptions(
                max_retries=retry_props.max_retries,
                retry_delay=retry_props.retry_delay,
                backoff_multiplier=retry_props.backoff_multiplier,
            ),
            sleep=sleep,
        )
        self.data = RestDataClient(
            backend_props.url,
            backend_props.anon_key,
            self.auth_provider,
            timeout=backend_props.timeout,
            classifier=self.classifier,
            transport=transport,
        )
        self.monitor = SessionMonitor(
            self.auth,
            self.auth_provider,
            self.guard,
            poll_interval=session_props.poll_interval,
            warning_window=session_props.warning_window,
            banner_warning=session_props.banner_warning,
            clock=clock,
            sleep=sleep,
        )

        self._components: list[Lifecycle] = []
        if isinstance(self.durable, Lifecycle):
            self._components.append(self.durable)
        self._components += [self.storage, self.auth_provider, self.data, self.auth, self.monitor]
        self._started: list[Lifecycle] = []
        self._uninstall_error_logger: Callable[[], None] | None = None

    @property
    def is_started(self) -> bool:
        return bool(self._started)

    async def start(self) -> None:
        try:
            for component in self._components:
                await component.start()
                self._started.append(component)
        except Exception:
            _logger.error("Session runtime failed to start, stopping %d started components", len(self._started))
            await self.stop()
            raise
        self._uninstall_error_logger = install_unhandled_error_logger(classifier=self.classifier)
        _logger.debug("Session runtime started with %d components", len(self._started))

    async def stop(self) -> None:
        if self._uninstall_error_logger is not None:
            self._uninstall_error_logger()
            self._uninstall_error_logger = None
        for component in reversed(self._started):
            try:
                await component.stop()
            except Exception:
                _logger.warning("Failed to stop %s", type(component).__name__, exc_info=True)
        self._started.clear()

    async def resume(self) -> int:
        """Re-read durable storage after the client was suspended or hidden."""
        copied = await self.storage.sync_from_durable()
        _logger.debug("Resumed session runtime, %d entries synced from durable storage", copied)
        return copied

    async def __aenter__(self) -> SessionRuntime:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

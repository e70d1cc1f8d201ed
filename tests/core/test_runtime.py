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
"""Tests for SessionRuntime wiring and lifecycle."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from punchclock.config.properties import StorageProperties
from punchclock.core.config import Config
from punchclock.core.runtime import SessionRuntime, build_durable_store
from punchclock.kernel.exceptions import ConfigurationException
from punchclock.storage.adapters.file import FileDurableStore
from punchclock.storage.adapters.memory import InMemoryDurableStore
from punchclock.storage.adapters.redis import RedisDurableStore

NOW = 1_700_000_000.0


class FakeBackend:
    """Serves just enough of the auth and REST APIs for a sign-in and a select."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/auth/v1/token":
            return httpx.Response(
                200,
                json={
                    "access_token": "access-1",
                    "refresh_token": "refresh-1",
                    "expires_in": 3600,
                    "user": {"id": "user-1", "email": "ada@example.com"},
                },
            )
        if request.url.path == "/auth/v1/logout":
            return httpx.Response(204)
        if request.url.path == "/rest/v1/time_entries":
            return httpx.Response(200, json=[{"id": 1, "minutes": 90}])
        return httpx.Response(404)


class LifecycleStore(InMemoryDurableStore):
    def __init__(self, fail_stop: bool = False) -> None:
        super().__init__()
        self.events: list[str] = []
        self.fail_stop = fail_stop

    async def start(self) -> None:
        self.events.append("start")

    async def stop(self) -> None:
        self.events.append("stop")
        if self.fail_stop:
            raise RuntimeError("connection already closed")


async def never(_: float) -> None:
    await asyncio.Event().wait()


def make_config() -> Config:
    return Config(
        {
            "punchclock": {
                "backend": {"url": "https://backend.test", "anon-key": "anon", "project-ref": "test"},
                "retry": {"retry-delay": 0},
            }
        }
    )


def make_runtime(backend: FakeBackend, durable: InMemoryDurableStore | None = None) -> SessionRuntime:
    return SessionRuntime(
        make_config(),
        durable=durable or InMemoryDurableStore(),
        transport=httpx.MockTransport(backend),
        clock=lambda: NOW,
        sleep=never,
    )


class TestBuildDurableStore:
    def test_memory(self):
        assert isinstance(build_durable_store(StorageProperties(backend="memory")), InMemoryDurableStore)

    def test_file(self, tmp_path: Path):
        store = build_durable_store(StorageProperties(backend="FILE", path=str(tmp_path / "storage.json")))
        assert isinstance(store, FileDurableStore)
        assert store.path == tmp_path / "storage.json"

    def test_redis(self):
        store = build_durable_store(StorageProperties(backend="redis", redis_channel="tabs"))
        assert isinstance(store, RedisDurableStore)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationException, match="Unknown storage backend 'sqlite'"):
            build_durable_store(StorageProperties(backend="sqlite"))


class TestWiring:
    def test_storage_key_is_namespaced(self):
        runtime = make_runtime(FakeBackend())
        assert runtime.auth_provider.storage_key == "sb-test-auth-token"
        assert runtime.storage.prefix == "sb-"

    def test_retry_options_come_from_config(self):
        runtime = make_runtime(FakeBackend())
        assert runtime.retry.options.max_retries == 3
        assert runtime.retry.options.retry_delay == 0.0

    def test_defaults_without_config(self):
        runtime = SessionRuntime(durable=InMemoryDurableStore())
        assert runtime.guard.safety_margin == 60.0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_sign_in_then_query(self):
        backend = FakeBackend()
        durable = InMemoryDurableStore()

        async with make_runtime(backend, durable) as runtime:
            assert runtime.is_started
            assert runtime.monitor.is_running

            signed_in = await runtime.auth.sign_in("ada@example.com", "secret")
            assert signed_in.success
            assert runtime.auth.is_authenticated
            assert runtime.auth.user_id == "user-1"

            result = await runtime.retry.execute(lambda: runtime.data.select("time_entries"), "load time entries")

        assert result.data == [{"id": 1, "minutes": 90}]
        assert backend.requests[-1].headers["Authorization"] == "Bearer access-1"
        stored = json.loads(durable.backing.entries["sb-test-auth-token"])
        assert stored["access_token"] == "access-1"
        assert runtime.is_started is False
        assert runtime.monitor.is_running is False

    @pytest.mark.asyncio
    async def test_components_start_and_stop_in_order(self):
        durable = LifecycleStore()
        runtime = make_runtime(FakeBackend(), durable)

        await runtime.start()
        assert durable.events == ["start"]
        await runtime.stop()

        assert durable.events == ["start", "stop"]

    @pytest.mark.asyncio
    async def test_stop_failure_does_not_block_other_components(self):
        durable = LifecycleStore(fail_stop=True)
        runtime = make_runtime(FakeBackend(), durable)
        await runtime.start()

        await runtime.stop()

        assert runtime.is_started is False
        assert runtime.monitor.is_running is False

    @pytest.mark.asyncio
    async def test_failed_start_stops_components_already_started(self):
        durable = LifecycleStore()
        runtime = make_runtime(FakeBackend(), durable)
        loop = asyncio.get_running_loop()
        previous = loop.get_exception_handler()

        async def refuse() -> None:
            raise RuntimeError("data client unavailable")

        runtime.data.start = refuse
        with pytest.raises(RuntimeError, match="data client unavailable"):
            await runtime.start()

        assert durable.events == ["start", "stop"]
        assert runtime.is_started is False
        assert runtime.monitor.is_running is False
        assert loop.get_exception_handler() is previous

    @pytest.mark.asyncio
    async def test_error_logger_installed_while_running(self):
        loop = asyncio.get_running_loop()
        previous = loop.get_exception_handler()
        runtime = make_runtime(FakeBackend())

        await runtime.start()
        assert loop.get_exception_handler() is not previous
        await runtime.stop()

        assert loop.get_exception_handler() is previous

    @pytest.mark.asyncio
    async def test_resume_syncs_durable_entries(self):
        durable = InMemoryDurableStore()
        async with make_runtime(FakeBackend(), durable) as runtime:
            durable.backing.entries["sb-preferences"] = json.dumps({"week_start": "monday"})

            copied = await runtime.resume()

            assert copied == 1
            assert await runtime.storage.get("sb-preferences") == json.dumps({"week_start": "monday"})

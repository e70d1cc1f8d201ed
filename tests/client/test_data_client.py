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
"""Tests for RestDataClient."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from punchclock.auth.ports.outbound import AuthResult
from punchclock.auth.session import Session
from punchclock.client.data_client import RestDataClient
from punchclock.client.retry import RetryableOperation, RetryOptions
from punchclock.errors.classifier import ErrorKind

URL = "https://project.example.test"
ANON = "anon-key"


class FakeAuth:
    def __init__(self, session: Session | None = None) -> None:
        self.session = session

    async def get_session(self) -> AuthResult:
        return AuthResult(session=self.session)


class FakeGuard:
    async def ensure_valid(self) -> bool:
        return True


class RecordingBackend:
    """MockTransport handler replaying scripted responses."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_client(backend: RecordingBackend, session: Session | None = None) -> RestDataClient:
    return RestDataClient(URL, ANON, FakeAuth(session), transport=httpx.MockTransport(backend))


def signed_in() -> Session:
    return Session(user_id="u-1", access_token="access-1", refresh_token="refresh-1", expires_at=2e9, issued_at=1e9)


class TestSelect:
    @pytest.mark.asyncio
    async def test_builds_postgrest_query(self):
        backend = RecordingBackend(httpx.Response(200, json=[{"id": 7}]))
        client = make_client(backend)

        result = await client.select(
            "shifts",
            columns="id,starts_at",
            filters={"employee_id": 7, "starts_at": ("gte", "2024-01-01"), "ended_at": None, "approved": True},
            order="starts_at.desc",
            limit=10,
        )

        assert result.ok
        assert result.data == [{"id": 7}]
        request = backend.last
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/shifts"
        assert dict(request.url.params) == {
            "select": "id,starts_at",
            "employee_id": "eq.7",
            "starts_at": "gte.2024-01-01",
            "ended_at": "is.null",
            "approved": "eq.true",
            "order": "starts_at.desc",
            "limit": "10",
        }

    @pytest.mark.asyncio
    async def test_anon_key_used_without_session(self):
        backend = RecordingBackend(httpx.Response(200, json=[]))
        await make_client(backend).select("employees")

        assert backend.last.headers["Authorization"] == f"Bearer {ANON}"
        assert backend.last.headers["apikey"] == ANON

    @pytest.mark.asyncio
    async def test_session_token_used_when_signed_in(self):
        backend = RecordingBackend(httpx.Response(200, json=[]))
        await make_client(backend, signed_in()).select("employees")

        assert backend.last.headers["Authorization"] == "Bearer access-1"

    @pytest.mark.asyncio
    async def test_single_returns_the_row(self):
        backend = RecordingBackend(httpx.Response(200, json=[{"id": 1}]))
        result = await make_client(backend).select("employees", filters={"id": 1}, single=True)
        assert result.data == {"id": 1}

    @pytest.mark.parametrize("rows", [[], [{"id": 1}, {"id": 2}]])
    @pytest.mark.asyncio
    async def test_single_requires_exactly_one_row(self, rows: list[dict[str, Any]]):
        backend = RecordingBackend(httpx.Response(200, json=rows))
        result = await make_client(backend).select("employees", single=True)

        assert result.error.code == "PGRST116"
        assert result.error.kind is ErrorKind.NOT_FOUND
        assert result.error.user_message == "No matching record found."


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_posts_rows(self):
        backend = RecordingBackend(httpx.Response(201, json=[{"id": 9, "name": "Ada"}]))
        result = await make_client(backend).insert("employees", {"name": "Ada"})

        assert result.data == [{"id": 9, "name": "Ada"}]
        assert backend.last.method == "POST"
        assert json.loads(backend.last.content) == [{"name": "Ada"}]
        assert backend.last.headers["Prefer"] == "return=representation"

    @pytest.mark.asyncio
    async def test_duplicate_insert_is_a_conflict(self):
        backend = RecordingBackend(
            httpx.Response(409, json={"code": "23505", "message": "duplicate key value violates unique constraint"})
        )
        result = await make_client(backend).insert("employees", [{"name": "Ada"}])

        assert result.error.kind is ErrorKind.CONFLICT
        assert result.error.retryable is False

    @pytest.mark.asyncio
    async def test_update_patches_filtered_rows(self):
        backend = RecordingBackend(httpx.Response(200, json=[{"id": 3, "approved": True}]))
        result = await make_client(backend).update("shifts", {"approved": True}, {"id": 3})

        assert result.ok
        assert backend.last.method == "PATCH"
        assert dict(backend.last.url.params) == {"id": "eq.3"}
        assert json.loads(backend.last.content) == {"approved": True}

    @pytest.mark.asyncio
    async def test_delete_with_empty_body(self):
        backend = RecordingBackend(httpx.Response(204))
        result = await make_client(backend).delete("shifts", {"id": 3})

        assert result.ok
        assert result.data is None
        assert backend.last.method == "DELETE"


class TestFailures:
    @pytest.mark.asyncio
    async def test_expired_jwt_is_retryable(self):
        backend = RecordingBackend(httpx.Response(401, json={"code": "PGRST301", "message": "JWT expired"}))
        result = await make_client(backend).select("employees")

        assert result.error.kind is ErrorKind.SESSION_EXPIRED
        assert result.error.retryable is True

    @pytest.mark.asyncio
    async def test_status_without_postgrest_body(self):
        backend = RecordingBackend(httpx.Response(403, text="Forbidden"))
        result = await make_client(backend).select("employees")

        assert result.error.code == "403"
        assert result.error.kind is ErrorKind.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_transport_error_becomes_result(self):
        backend = RecordingBackend(httpx.ConnectError("connection refused"))
        result = await make_client(backend).select("employees")

        assert result.error.kind is ErrorKind.UNKNOWN
        assert "connection refused" in result.error.message

    @pytest.mark.asyncio
    async def test_non_json_success_body_becomes_unknown_error(self):
        backend = RecordingBackend(httpx.Response(200, text="<html>gateway</html>"))
        result = await make_client(backend).select("employees")

        assert result.data is None
        assert result.error.kind is ErrorKind.UNKNOWN
        assert result.error.retryable is False


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_expired_token_then_success(self):
        backend = RecordingBackend(
            httpx.Response(401, json={"code": "PGRST301", "message": "JWT expired"}),
            httpx.Response(200, json=[{"id": 1}]),
        )
        client = make_client(backend, signed_in())
        delays: list[float] = []

        async def sleep(delay: float) -> None:
            delays.append(delay)

        retry = RetryableOperation(FakeGuard(), options=RetryOptions(max_retries=3), sleep=sleep)
        result = await retry.execute(lambda: client.select("employees"), "load employees")

        assert result.data == [{"id": 1}]
        assert len(backend.requests) == 2
        assert delays == [1.0]
        await client.stop()

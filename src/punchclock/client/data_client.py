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
"""PostgREST data client returning ``OperationResult`` values."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from punchclock.auth.ports.outbound import AuthProvider
from punchclock.client.retry import OperationResult
from punchclock.errors.classifier import BackendError, ErrorClassifier

_logger = logging.getLogger(__name__)

Filters = Mapping[str, Any]

_NOT_SINGLE = "JSON object requested, multiple (or no) rows returned"


def _filter_params(filters: Filters | None) -> dict[str, str]:
    """Translate ``{"id": 7, "day": ("gte", "2024-01-01")}`` into PostgREST query params."""
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if isinstance(value, tuple):
            operator, operand = value
            params[column] = f"{operator}.{operand}"
        elif value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


class RestDataClient:
    """Table operations against a PostgREST endpoint (``/rest/v1``).

    Requests carry the current session's access token, or the anon key when
    signed out. Failures never raise: they come back as classified errors in
    the result, ready for :class:`~punchclock.client.retry.RetryableOperation`.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        auth: AuthProvider,
        timeout: float = 30.0,
        classifier: ErrorClassifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._anon_key = anon_key
        self._auth = auth
        self._classifier = classifier or ErrorClassifier()
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/"),
            timeout=timeout,
            headers={"apikey": anon_key},
            transport=transport,
        )

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        limit: int | None = None,
        single: bool = False,
    ) -> OperationResult[Any]:
        params = {"select": columns, **_filter_params(filters)}
        if order is not None:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)

        result = await self._request("GET", table, f"select from {table}", params=params)
        if not single or result.error is not None:
            return result
        rows = result.data or []
        if len(rows) != 1:
            error = BackendError(code="PGRST116", message=_NOT_SINGLE, details=f"The result contains {len(rows)} rows")
            return OperationResult(error=self._classifier.classify(error, f"select from {table}"))
        return OperationResult(data=rows[0])

    async def insert(self, table: str, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> OperationResult[Any]:
        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(row) for row in rows]
        return await self._request(
            "POST", table, f"insert into {table}", json=payload, headers={"Prefer": "return=representation"}
        )

    async def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> OperationResult[Any]:
        return await self._request(
            "PATCH",
            table,
            f"update {table}",
            params=_filter_params(filters),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )

    async def delete(self, table: str, filters: Filters) -> OperationResult[Any]:
        return await self._request(
            "DELETE",
            table,
            f"delete from {table}",
            params=_filter_params(filters),
            headers={"Prefer": "return=representation"},
        )

    async def start(self) -> None:
        """No-op: the HTTP client is ready after construction."""

    async def stop(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        operation: str,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> OperationResult[Any]:
        session = (await self._auth.get_session()).session
        token = session.access_token if session is not None else self._anon_key
        request_headers = {"Authorization": f"Bearer {token}", **(headers or {})}

        try:
            response = await self._client.request(
                method, f"/rest/v1/{table}", params=params, json=json, headers=request_headers
            )
        except httpx.HTTPError as exc:
            _logger.warning("%s failed: %s", operation, exc)
            return OperationResult(error=self._classifier.classify(exc, operation))

        if response.is_error:
            error = self._classifier.decode_response(response)
            _logger.debug("%s rejected: [%s] %s", operation, error.code, error.message)
            return OperationResult(error=self._classifier.classify(error, operation))

        if not response.content:
            return OperationResult(data=None)
        try:
            data = response.json()
        except ValueError as exc:
            _logger.warning("%s returned a non-JSON body: %s", operation, exc)
            return OperationResult(error=self._classifier.classify(exc, operation))
        return OperationResult(data=data)

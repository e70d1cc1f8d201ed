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
"""GoTrue (Supabase Auth) provider over HTTP."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from punchclock.auth.events import (
    AuthEvent,
    AuthEventBus,
    AuthEventHandler,
    SessionCleared,
    SessionEstablished,
    SessionRefreshed,
    Unsubscribe,
)
from punchclock.auth.ports.outbound import AuthResult
from punchclock.auth.session import Session
from punchclock.errors.classifier import BackendError, ErrorClassifier
from punchclock.storage.adapter import StorageAdapter

_logger = logging.getLogger(__name__)

_MISSING_SESSION = BackendError(code="session_not_found", message="Auth session missing")


class GoTrueAuthProvider:
    """Auth provider speaking the GoTrue REST API.

    The session is persisted as JSON (``expires_at`` in epoch seconds) under
    *storage_key* in the :class:`StorageAdapter`, so ``get_session`` never
    leaves the process. Refresh tokens are also kept in memory: storage
    evicts an expired session, yet it must still be refreshable.

    Args:
        storage: Tiered storage holding the serialized session.
        url: Backend base URL (``https://<project>.supabase.co``).
        anon_key: Public API key sent as ``apikey``.
        storage_key: Full storage key, e.g. ``"sb-local-auth-token"``.
        timeout: HTTP timeout in seconds.
        events: Bus receiving session events. A private one is created if omitted.
        clock: Epoch-seconds clock.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        storage: StorageAdapter,
        url: str,
        anon_key: str,
        storage_key: str = "sb-local-auth-token",
        timeout: float = 30.0,
        events: AuthEventBus | None = None,
        clock: Callable[[], float] = time.time,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._events = events or AuthEventBus()
        self._clock = clock
        self._classifier = ErrorClassifier()
        self._session: Session | None = None
        self._refresh_token: str | None = None
        self._refresh_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/"),
            timeout=timeout,
            headers={"apikey": anon_key, "Authorization": f"Bearer {anon_key}"},
            transport=transport,
        )

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def events(self) -> AuthEventBus:
        return self._events

    def subscribe(self, handler: AuthEventHandler) -> Unsubscribe:
        return self._events.subscribe(handler)

    # ------------------------------------------------------------------
    # Provider contract
    # ------------------------------------------------------------------

    async def get_session(self) -> AuthResult:
        """Return the current session from storage.

        A session that storage has already evicted as expired is still
        returned from memory, so callers can see it expired and refresh it.
        A session that vanished from storage while still valid was removed
        by another context and is reported absent.
        """
        raw = await self._storage.get(self._storage_key)
        if raw is not None:
            try:
                session = Session.from_json(raw)
            except ValueError:
                _logger.warning("Discarding unreadable session under '%s'", self._storage_key)
                await self._storage.remove(self._storage_key)
            else:
                self._remember(session)
                return AuthResult(session=session)

        cached = self._session
        if cached is not None and cached.time_until_expiry(self._clock()) <= 0:
            return AuthResult(session=cached)
        return AuthResult()

    async def refresh_session(self) -> AuthResult:
        """Exchange the refresh token for a new session.

        Refreshes are serialized: a caller that waited while another one
        rotated the token gets the rotated session without a second grant.
        A rejected refresh token ends the session locally, unless the token
        was rotated meanwhile; network failures leave it untouched so a later
        attempt can succeed.
        """
        if self._refresh_token is None:
            await self.get_session()
        token = self._refresh_token
        if token is None:
            return AuthResult(error=_MISSING_SESSION)

        async with self._refresh_lock:
            if self._refresh_token != token and self._session is not None:
                _logger.debug("Refresh token already rotated, reusing the current session")
                return AuthResult(session=self._session)

            result, rejected = await self._grant("refresh_token", {"refresh_token": token})
            if result.session is not None:
                await self._store(result.session, SessionRefreshed(result.session))
                _logger.debug("Session refreshed for user %s", result.session.user_id)
            elif rejected:
                if self._refresh_token != token and self._session is not None:
                    _logger.info("Stale refresh token rejected, keeping the rotated session")
                    return AuthResult(session=self._session)
                await self._clear("refresh_failed")
            return result

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        result, _ = await self._grant("password", {"email": email, "password": password})
        if result.session is not None:
            await self._store(result.session, SessionEstablished(result.session))
            _logger.info("Signed in user %s", result.session.user_id)
        return result

    async def sign_out(self) -> AuthResult:
        """Revoke the session server-side and always clear it locally."""
        error: BackendError | None = None
        session = self._session
        if session is None:
            session = (await self.get_session()).session
        if session is not None:
            try:
                response = await self._client.post(
                    "/auth/v1/logout",
                    headers={"Authorization": f"Bearer {session.access_token}"},
                )
                if response.is_error:
                    error = self._classifier.decode_response(response)
            except httpx.HTTPError as exc:
                error = self._classifier.decode(exc)
            if error is not None:
                _logger.warning("Server-side sign-out failed: [%s] %s", error.code, error.message)
        await self._clear("signed_out")
        return AuthResult(error=error)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """No-op: the HTTP client is ready after construction."""

    async def stop(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _grant(self, grant_type: str, body: dict[str, Any]) -> tuple[AuthResult, bool]:
        """POST a token grant. The flag is set when the server rejected the grant (4xx)."""
        try:
            response = await self._client.post(
                "/auth/v1/token", params={"grant_type": grant_type}, json=body
            )
        except httpx.HTTPError as exc:
            _logger.warning("Auth request '%s' failed: %s", grant_type, exc)
            return AuthResult(error=self._classifier.decode(exc)), False

        if response.is_error:
            error = self._classifier.decode_response(response)
            _logger.warning("Auth grant '%s' rejected: [%s] %s", grant_type, error.code, error.message)
            return AuthResult(error=error), response.status_code < 500

        try:
            session = Session.from_token_response(response.json(), now=self._clock())
        except ValueError as exc:
            return AuthResult(error=BackendError(code="invalid_response", message=str(exc))), False
        return AuthResult(session=session), False

    def _remember(self, session: Session) -> None:
        self._session = session
        self._refresh_token = session.refresh_token

    async def _store(self, session: Session, event: AuthEvent) -> None:
        self._remember(session)
        await self._storage.set(self._storage_key, session.to_json())
        await self._events.publish(event)

    async def _clear(self, reason: str) -> None:
        had_session = self._session is not None or self._refresh_token is not None
        self._session = None
        self._refresh_token = None
        await self._storage.remove(self._storage_key)
        if had_session:
            await self._events.publish(SessionCleared(reason=reason))

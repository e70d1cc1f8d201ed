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
"""Reactive authentication state and user-facing auth actions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from punchclock.auth.events import AuthEvent, SessionCleared, SessionEstablished, SessionRefreshed, Unsubscribe
from punchclock.auth.ports.outbound import AuthProvider
from punchclock.errors.classifier import BackendError, ErrorClassifier

_logger = logging.getLogger(__name__)

AuthStateListener = Callable[[bool], None]


@dataclass(frozen=True)
class AuthActionResult:
    success: bool
    error: BackendError | None = None


class AuthState:
    """Tracks who is signed in by following the provider's auth events.

    ``is_authenticated`` flips only on events (or the initial session read in
    :meth:`start`). A session that silently disappears from storage leaves
    the flag set, which is exactly the inconsistency the session monitor
    looks for.
    """

    def __init__(self, provider: AuthProvider) -> None:
        self._provider = provider
        self._classifier = ErrorClassifier()
        self._is_authenticated = False
        self._user_id: str | None = None
        self._user_email: str | None = None
        self._listeners: list[AuthStateListener] = []
        self._unsubscribe: Unsubscribe | None = None

    @property
    def is_authenticated(self) -> bool:
        return self._is_authenticated

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def user_email(self) -> str | None:
        return self._user_email

    def on_change(self, listener: AuthStateListener) -> Unsubscribe:
        """Call *listener* with the new flag whenever ``is_authenticated`` flips."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._provider.subscribe(self._on_event)
        result = await self._provider.get_session()
        if result.session is not None:
            self._set_user(result.session.user_id, result.session.email)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthActionResult:
        try:
            result = await self._provider.sign_in_with_password(email, password)
        except Exception as exc:
            _logger.error("Sign-in failed", exc_info=True)
            return AuthActionResult(success=False, error=self._classifier.decode(exc))
        if result.session is None:
            return AuthActionResult(success=False, error=result.error)
        return AuthActionResult(success=True)

    async def sign_out(self) -> AuthActionResult:
        try:
            result = await self._provider.sign_out()
        except Exception as exc:
            _logger.error("Sign-out failed", exc_info=True)
            return AuthActionResult(success=False, error=self._classifier.decode(exc))
        return AuthActionResult(success=result.error is None, error=result.error)

    async def recover_session(self) -> AuthActionResult:
        """Try to get a fresh session after it was lost or expired."""
        try:
            result = await self._provider.refresh_session()
        except Exception as exc:
            _logger.error("Session recovery raised", exc_info=True)
            return AuthActionResult(success=False, error=self._classifier.decode(exc))
        if result.session is None:
            _logger.warning("Session recovery failed")
            return AuthActionResult(success=False, error=result.error)
        _logger.info("Session recovered for user %s", result.session.user_id)
        return AuthActionResult(success=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _on_event(self, event: AuthEvent) -> None:
        if isinstance(event, (SessionEstablished, SessionRefreshed)):
            self._set_user(event.session.user_id, event.session.email)
        elif isinstance(event, SessionCleared):
            self._clear_user()

    def _set_user(self, user_id: str, email: str | None) -> None:
        was_authenticated = self._is_authenticated
        self._user_id = user_id
        self._user_email = email
        self._is_authenticated = True
        if not was_authenticated:
            self._notify()

    def _clear_user(self) -> None:
        was_authenticated = self._is_authenticated
        self._user_id = None
        self._user_email = None
        self._is_authenticated = False
        if was_authenticated:
            self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._is_authenticated)

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
"""Session precondition for remote operations."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from punchclock.auth.ports.outbound import AuthProvider
from punchclock.auth.session import SessionState

_logger = logging.getLogger(__name__)


class SessionGuard:
    """Decides whether the current session may be used for a remote call.

    A session with more than *safety_margin* seconds left is accepted without
    any network traffic. A session inside the margin, or already expired, is
    refreshed first and accepted only if the refresh succeeds.

    Concurrent callers are not serialized: two callers near expiry may both
    refresh, which the backend tolerates.
    """

    def __init__(
        self,
        provider: AuthProvider,
        safety_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provider = provider
        self._safety_margin = safety_margin
        self._clock = clock
        self._state = SessionState.NONE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def safety_margin(self) -> float:
        return self._safety_margin

    async def ensure_valid(self) -> bool:
        """Return ``True`` when the session is usable, refreshing it if needed.

        Never raises; provider failures yield ``False``.
        """
        try:
            result = await self._provider.get_session()
        except Exception:
            _logger.warning("Session validation failed", exc_info=True)
            return False

        if result.error is not None:
            _logger.warning("Session validation error: [%s] %s", result.error.code, result.error.message)
            return False
        session = result.session
        if session is None:
            _logger.warning("No active session found")
            self._state = SessionState.NONE
            return False

        self._state = session.state_at(self._clock(), self._safety_margin)
        if self._state is SessionState.VALID:
            return True

        _logger.info("Session expiring, refreshing")
        return await self.refresh()

    async def refresh(self) -> bool:
        """Refresh unconditionally. Returns whether a new session was obtained."""
        self._state = SessionState.REFRESHING
        try:
            result = await self._provider.refresh_session()
        except Exception:
            _logger.error("Session refresh raised", exc_info=True)
            self._state = SessionState.EXPIRED
            return False

        if result.error is not None or result.session is None:
            code = result.error.code if result.error is not None else ""
            _logger.error("Session refresh failed: %s", code or "no session returned")
            self._state = SessionState.EXPIRED
            return False

        _logger.debug("Session refreshed successfully")
        self._state = SessionState.VALID
        return True

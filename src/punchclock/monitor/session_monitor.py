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
"""Background session monitor."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from punchclock.auth.events import Unsubscribe
from punchclock.auth.guard import SessionGuard
from punchclock.auth.ports.outbound import AuthProvider
from punchclock.auth.state import AuthState
from punchclock.monitor.health import (
    SESSION_EXPIRED_BANNER,
    SESSION_EXPIRING_BANNER,
    SESSION_REFRESH_FAILED_BANNER,
    SESSION_UNVERIFIED_BANNER,
    HealthAction,
    SessionBanner,
    SessionHealthCheck,
)

_logger = logging.getLogger(__name__)

HealthListener = Callable[[SessionHealthCheck], None]


class SessionMonitor:
    """Catches session decay between explicit operations.

    While the user is authenticated, the monitor polls the session every
    *poll_interval* seconds:

    - a session missing while the user is still marked authenticated gets
      one recovery attempt per poll; a failed recovery only raises the
      banner, nothing is torn down;
    - a session inside *warning_window* is refreshed proactively;
    - a session inside *banner_warning* that could not be refreshed raises
      the "will expire soon" banner.

    Polling pauses while signed out and resumes on the next sign-in. The
    poll loop is a task owned by the monitor; :meth:`stop` cancels it.

    Usage::

        monitor = SessionMonitor(auth_state, provider, guard)
        await monitor.start()
        ...
        if monitor.banner.visible:
            render(monitor.banner.message)
        await monitor.stop()
    """

    def __init__(
        self,
        auth_state: AuthState,
        provider: AuthProvider,
        guard: SessionGuard,
        poll_interval: float = 60.0,
        warning_window: float = 300.0,
        banner_warning: float = 120.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._auth = auth_state
        self._provider = provider
        self._guard = guard
        self._poll_interval = poll_interval
        self._warning_window = warning_window
        self._banner_warning = banner_warning
        self._clock = clock
        self._sleep = sleep
        self._banner = SessionBanner()
        self._last_check: SessionHealthCheck | None = None
        self._listeners: list[HealthListener] = []
        self._authenticated = asyncio.Event()
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._auth_unsubscribe: Unsubscribe | None = None

    @property
    def banner(self) -> SessionBanner:
        if not self._auth.is_authenticated:
            return SessionBanner()
        return self._banner

    @property
    def last_check(self) -> SessionHealthCheck | None:
        return self._last_check

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: HealthListener) -> Unsubscribe:
        """Receive every :class:`SessionHealthCheck` the monitor produces."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None:
            return
        self._running = True
        self._auth_unsubscribe = self._auth.on_change(self._on_auth_change)
        if self._auth.is_authenticated:
            self._authenticated.set()
        self._task = asyncio.create_task(self._run())
        self._task.add_done_callback(self._loop_done_callback)

    async def stop(self) -> None:
        self._running = False
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> SessionHealthCheck:
        """Run a single poll cycle and return what it found and did."""
        now = self._clock()
        try:
            result = await self._provider.get_session()
        except Exception:
            _logger.error("Session check error", exc_info=True)
            self._raise_banner(SESSION_UNVERIFIED_BANNER)
            return self._record(SessionHealthCheck(False, None, checked_at=now))

        session = result.session
        if session is None:
            if result.error is not None:
                _logger.warning("Session check returned error: [%s] %s", result.error.code, result.error.message)
            return self._record(await self._handle_missing(now))

        remaining = session.time_until_expiry(now)
        if remaining <= 0:
            self._raise_banner(SESSION_EXPIRED_BANNER)
            recovered = await self._recover()
            return self._record(
                SessionHealthCheck(True, remaining, HealthAction.RECOVERY_ATTEMPTED, recovered, now)
            )

        if remaining <= self._warning_window:
            _logger.info("Session expires in %.0fs, refreshing proactively", remaining)
            refreshed = await self._guard.refresh()
            if refreshed:
                self._clear_banner()
            elif remaining <= self._banner_warning:
                self._raise_banner(SESSION_EXPIRING_BANNER)
            return self._record(
                SessionHealthCheck(True, remaining, HealthAction.PROACTIVE_REFRESH, refreshed, now)
            )

        self._clear_banner()
        return self._record(SessionHealthCheck(True, remaining, checked_at=now))

    # ------------------------------------------------------------------
    # Banner actions
    # ------------------------------------------------------------------

    def dismiss(self) -> None:
        """Hide the banner until the next poll that finds an issue."""
        self._banner = replace(self._banner, dismissed=True)

    async def refresh(self) -> bool:
        """Manual "Refresh Session": run the recovery procedure now."""
        self._banner = replace(self._banner, refreshing=True)
        result = await self._auth.recover_session()
        if result.success:
            self._banner = SessionBanner()
        else:
            _logger.error("Manual session refresh failed")
            self._banner = SessionBanner(message=SESSION_REFRESH_FAILED_BANNER)
        return result.success

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while self._running:
            if not self._auth.is_authenticated:
                self._authenticated.clear()
                await self._authenticated.wait()
                continue
            await self._sleep(self._poll_interval)
            if not (self._running and self._auth.is_authenticated):
                continue
            try:
                await self.poll_once()
            except Exception:
                _logger.exception("Session poll failed")

    async def _handle_missing(self, now: float) -> SessionHealthCheck:
        if not self._auth.is_authenticated:
            return SessionHealthCheck(False, None, checked_at=now)
        _logger.warning("Session lost while authenticated, attempting recovery")
        self._raise_banner(SESSION_EXPIRED_BANNER)
        recovered = await self._recover()
        return SessionHealthCheck(False, None, HealthAction.RECOVERY_ATTEMPTED, recovered, now)

    async def _recover(self) -> bool:
        result = await self._auth.recover_session()
        if result.success:
            self._clear_banner()
        return result.success

    def _on_auth_change(self, authenticated: bool) -> None:
        if authenticated:
            self._authenticated.set()
        else:
            self._authenticated.clear()
            self._banner = SessionBanner()

    def _raise_banner(self, message: str) -> None:
        self._banner = SessionBanner(message=message)

    def _clear_banner(self) -> None:
        if self._banner.message is not None:
            self._banner = SessionBanner()

    def _record(self, check: SessionHealthCheck) -> SessionHealthCheck:
        self._last_check = check
        for listener in list(self._listeners):
            listener(check)
        return check

    @staticmethod
    def _loop_done_callback(task: asyncio.Task[None]) -> None:
        if not task.cancelled():
            exc = task.exception()
            if exc is not None:
                _logger.error("Session monitor loop failed: %s", exc, exc_info=exc)

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
"""Tests for SessionMonitor."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from punchclock.auth.ports.outbound import AuthResult
from punchclock.auth.session import Session
from punchclock.auth.state import AuthActionResult
from punchclock.errors.classifier import BackendError
from punchclock.monitor.health import (
    SESSION_EXPIRED_BANNER,
    SESSION_EXPIRING_BANNER,
    SESSION_REFRESH_FAILED_BANNER,
    SESSION_UNVERIFIED_BANNER,
    HealthAction,
    SessionHealthCheck,
)
from punchclock.monitor.session_monitor import SessionMonitor

NOW = 1_700_000_000.0


class FakeAuthState:
    def __init__(self, authenticated: bool = True, recovers: bool = False) -> None:
        self.is_authenticated = authenticated
        self.recovers = recovers
        self.recover_calls = 0
        self.listeners: list[Callable[[bool], None]] = []

    def on_change(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def flip(self, authenticated: bool) -> None:
        self.is_authenticated = authenticated
        for listener in list(self.listeners):
            listener(authenticated)

    async def recover_session(self) -> AuthActionResult:
        self.recover_calls += 1
        if self.recovers:
            return AuthActionResult(success=True)
        return AuthActionResult(
            success=False, error=BackendError(code="session_not_found", message="Refresh Token Not Found")
        )


class FakeProvider:
    def __init__(self, session: Session | None = None) -> None:
        self.session = session
        self.error: Exception | None = None
        self.calls = 0

    async def get_session(self) -> AuthResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return AuthResult(session=self.session)


class FakeGuard:
    def __init__(self, refreshes: bool = True) -> None:
        self.refreshes = refreshes
        self.refresh_calls = 0

    async def refresh(self) -> bool:
        self.refresh_calls += 1
        return self.refreshes


def session_expiring_in(seconds: float) -> Session:
    return Session(user_id="u-1", access_token="a", refresh_token="r", expires_at=NOW + seconds, issued_at=NOW - 3600)


def make_monitor(
    auth: FakeAuthState | None = None,
    provider: FakeProvider | None = None,
    guard: FakeGuard | None = None,
    sleep=None,
) -> SessionMonitor:
    async def no_sleep(_: float) -> None:
        await asyncio.sleep(0)

    return SessionMonitor(
        auth or FakeAuthState(),
        provider or FakeProvider(),
        guard or FakeGuard(),
        poll_interval=60,
        warning_window=300,
        banner_warning=120,
        clock=lambda: NOW,
        sleep=sleep or no_sleep,
    )


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_healthy_session_needs_no_action(self):
        guard = FakeGuard()
        monitor = make_monitor(provider=FakeProvider(session_expiring_in(3600)), guard=guard)

        check = await monitor.poll_once()

        assert check == SessionHealthCheck(True, 3600, HealthAction.NONE, None, NOW)
        assert guard.refresh_calls == 0
        assert monitor.banner.visible is False

    @pytest.mark.asyncio
    async def test_session_inside_warning_window_is_refreshed(self):
        guard = FakeGuard(refreshes=True)
        monitor = make_monitor(provider=FakeProvider(session_expiring_in(200)), guard=guard)

        check = await monitor.poll_once()

        assert check.action is HealthAction.PROACTIVE_REFRESH
        assert check.succeeded is True
        assert guard.refresh_calls == 1
        assert monitor.banner.visible is False

    @pytest.mark.asyncio
    async def test_failed_refresh_outside_banner_window_stays_quiet(self):
        monitor = make_monitor(provider=FakeProvider(session_expiring_in(200)), guard=FakeGuard(refreshes=False))

        check = await monitor.poll_once()

        assert check.succeeded is False
        assert monitor.banner.visible is False

    @pytest.mark.asyncio
    async def test_failed_refresh_near_expiry_raises_banner(self):
        monitor = make_monitor(provider=FakeProvider(session_expiring_in(90)), guard=FakeGuard(refreshes=False))

        await monitor.poll_once()

        assert monitor.banner.visible
        assert monitor.banner.message == SESSION_EXPIRING_BANNER

    @pytest.mark.asyncio
    async def test_expired_session_attempts_recovery(self):
        auth = FakeAuthState(recovers=False)
        monitor = make_monitor(auth, FakeProvider(session_expiring_in(-5)))

        check = await monitor.poll_once()

        assert check.action is HealthAction.RECOVERY_ATTEMPTED
        assert check.succeeded is False
        assert auth.recover_calls == 1
        assert monitor.banner.message == SESSION_EXPIRED_BANNER

    @pytest.mark.asyncio
    async def test_missing_session_while_authenticated_retries_once_per_poll(self):
        auth = FakeAuthState(authenticated=True, recovers=False)
        monitor = make_monitor(auth, FakeProvider(None))

        for _ in range(3):
            check = await monitor.poll_once()
            assert check.action is HealthAction.RECOVERY_ATTEMPTED

        assert auth.recover_calls == 3
        assert auth.is_authenticated is True
        assert monitor.banner.message == SESSION_EXPIRED_BANNER

    @pytest.mark.asyncio
    async def test_successful_recovery_clears_banner(self):
        auth = FakeAuthState(recovers=False)
        monitor = make_monitor(auth, FakeProvider(None))
        await monitor.poll_once()
        assert monitor.banner.visible

        auth.recovers = True
        check = await monitor.poll_once()

        assert check.succeeded is True
        assert monitor.banner.visible is False

    @pytest.mark.asyncio
    async def test_missing_session_while_signed_out_is_ignored(self):
        auth = FakeAuthState(authenticated=False)
        monitor = make_monitor(auth, FakeProvider(None))

        check = await monitor.poll_once()

        assert check.action is HealthAction.NONE
        assert auth.recover_calls == 0

    @pytest.mark.asyncio
    async def test_provider_failure_raises_unverified_banner(self):
        provider = FakeProvider()
        provider.error = RuntimeError("network down")
        monitor = make_monitor(provider=provider)

        check = await monitor.poll_once()

        assert check.session_present is False
        assert monitor.banner.message == SESSION_UNVERIFIED_BANNER

    @pytest.mark.asyncio
    async def test_listeners_receive_checks(self):
        monitor = make_monitor(provider=FakeProvider(session_expiring_in(3600)))
        seen: list[SessionHealthCheck] = []
        unsubscribe = monitor.subscribe(seen.append)

        await monitor.poll_once()
        unsubscribe()
        await monitor.poll_once()

        assert len(seen) == 1
        assert monitor.last_check is not None

    @pytest.mark.asyncio
    async def test_provider_error_result_counts_as_missing(self):
        class ErroringProvider(FakeProvider):
            async def get_session(self) -> AuthResult:
                return AuthResult(error=BackendError(code="500", message="boom"))

        auth = FakeAuthState(recovers=True)
        monitor = make_monitor(auth, ErroringProvider())

        check = await monitor.poll_once()

        assert check.action is HealthAction.RECOVERY_ATTEMPTED
        assert auth.recover_calls == 1


class TestBanner:
    @pytest.mark.asyncio
    async def test_dismiss_hides_until_next_failing_poll(self):
        provider = FakeProvider(None)
        monitor = make_monitor(FakeAuthState(recovers=False), provider)
        await monitor.poll_once()
        assert monitor.banner.message == SESSION_EXPIRED_BANNER

        monitor.dismiss()
        assert monitor.banner.visible is False

        await monitor.poll_once()
        assert monitor.banner.visible is True
        assert monitor.banner.message == SESSION_EXPIRED_BANNER

        monitor.dismiss()

        provider.error = RuntimeError("unreachable")
        await monitor.poll_once()
        assert monitor.banner.visible is True
        assert monitor.banner.message == SESSION_UNVERIFIED_BANNER

    @pytest.mark.asyncio
    async def test_manual_refresh_success_clears_banner(self):
        auth = FakeAuthState(recovers=False)
        monitor = make_monitor(auth, FakeProvider(None))
        await monitor.poll_once()

        auth.recovers = True
        assert await monitor.refresh() is True
        assert monitor.banner.visible is False

    @pytest.mark.asyncio
    async def test_manual_refresh_failure_shows_reload_message(self):
        monitor = make_monitor(FakeAuthState(recovers=False))

        assert await monitor.refresh() is False
        assert monitor.banner.message == SESSION_REFRESH_FAILED_BANNER
        assert monitor.banner.refreshing is False

    @pytest.mark.asyncio
    async def test_banner_hidden_when_signed_out(self):
        auth = FakeAuthState(recovers=False)
        monitor = make_monitor(auth, FakeProvider(None))
        await monitor.poll_once()

        auth.is_authenticated = False

        assert monitor.banner.visible is False


class TestLoop:
    @pytest.mark.asyncio
    async def test_polls_while_authenticated_and_stops(self):
        provider = FakeProvider(session_expiring_in(3600))
        delays: list[float] = []

        async def sleep(delay: float) -> None:
            delays.append(delay)
            await asyncio.sleep(0)

        monitor = make_monitor(provider=provider, sleep=sleep)
        await monitor.start()
        for _ in range(10):
            await asyncio.sleep(0)

        assert monitor.is_running
        assert provider.calls > 0
        assert set(delays) == {60}

        await monitor.stop()
        assert monitor.is_running is False

    @pytest.mark.asyncio
    async def test_pauses_while_signed_out(self):
        auth = FakeAuthState(authenticated=False)
        provider = FakeProvider(session_expiring_in(3600))
        monitor = make_monitor(auth, provider)
        await monitor.start()
        for _ in range(5):
            await asyncio.sleep(0)
        assert provider.calls == 0

        auth.flip(True)
        for _ in range(10):
            await asyncio.sleep(0)
        assert provider.calls > 0

        await monitor.stop()
        assert auth.listeners == []

    @pytest.mark.asyncio
    async def test_sign_out_clears_banner(self):
        auth = FakeAuthState(recovers=False)
        monitor = make_monitor(auth, FakeProvider(None), sleep=lambda _: asyncio.Event().wait())
        await monitor.start()
        await monitor.poll_once()
        assert monitor.banner.visible

        auth.flip(False)
        auth.flip(True)

        assert monitor.banner.visible is False
        await monitor.stop()

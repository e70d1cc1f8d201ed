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
"""Outbound port: the remote authentication provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from punchclock.auth.events import AuthEventHandler, Unsubscribe
from punchclock.auth.session import Session
from punchclock.errors.classifier import BackendError


@dataclass(frozen=True)
class AuthResult:
    """Outcome of an auth call: a session, an error, or neither."""

    session: Session | None = None
    error: BackendError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class AuthProvider(Protocol):
    """Remote auth provider contract.

    Errors are returned in :class:`AuthResult`, not raised.
    """

    async def get_session(self) -> AuthResult: ...

    async def refresh_session(self) -> AuthResult: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult: ...

    async def sign_out(self) -> AuthResult: ...

    def subscribe(self, handler: AuthEventHandler) -> Unsubscribe: ...

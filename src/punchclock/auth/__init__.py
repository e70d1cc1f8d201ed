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
"""Punchclock Auth — sessions, auth events, the session guard and auth state."""

from punchclock.auth.adapters.gotrue import GoTrueAuthProvider
from punchclock.auth.events import (
    AuthEvent,
    AuthEventBus,
    AuthEventHandler,
    SessionCleared,
    SessionEstablished,
    SessionRefreshed,
    Unsubscribe,
)
from punchclock.auth.guard import SessionGuard
from punchclock.auth.ports.outbound import AuthProvider, AuthResult
from punchclock.auth.session import Session, SessionState
from punchclock.auth.state import AuthActionResult, AuthState

__all__ = [
    "AuthActionResult",
    "AuthEvent",
    "AuthEventBus",
    "AuthEventHandler",
    "AuthProvider",
    "AuthResult",
    "AuthState",
    "GoTrueAuthProvider",
    "Session",
    "SessionCleared",
    "SessionEstablished",
    "SessionGuard",
    "SessionRefreshed",
    "SessionState",
    "Unsubscribe",
]

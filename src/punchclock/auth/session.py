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
"""Session model and lifecycle states."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SessionState(Enum):
    """Where the current session sits in its lifetime.

    ``NONE -> VALID -> NEAR_EXPIRY -> (REFRESHING -> VALID) | EXPIRED``.
    Passive time moves a session from ``VALID`` towards ``EXPIRED``; only
    an explicit validation moves it out of ``NEAR_EXPIRY`` or ``EXPIRED``.
    """

    NONE = "NONE"
    VALID = "VALID"
    NEAR_EXPIRY = "NEAR_EXPIRY"
    REFRESHING = "REFRESHING"
    EXPIRED = "EXPIRED"


@dataclass
class Session:
    """Credential state of the authenticated principal.

    Tokens are excluded from ``repr`` so sessions can be logged safely.
    """

    user_id: str
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_at: float
    issued_at: float
    email: str | None = None

    def time_until_expiry(self, now: float) -> float:
        """Seconds left before expiry; negative once expired."""
        return self.expires_at - now

    def state_at(self, now: float, safety_margin: float) -> SessionState:
        remaining = self.time_until_expiry(now)
        if remaining <= 0:
            return SessionState.EXPIRED
        if remaining <= safety_margin:
            return SessionState.NEAR_EXPIRY
        return SessionState.VALID

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "bearer",
            "expires_at": self.expires_at,
            "issued_at": self.issued_at,
            "user": {"id": self.user_id, "email": self.email},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Session:
        """Build a session from its stored form.

        Raises:
            ValueError: If a required field is missing or malformed.
        """
        user = data.get("user") or {}
        try:
            expires_at = float(data["expires_at"])
            issued_at = float(data.get("issued_at", expires_at))
            return cls(
                user_id=str(user["id"]),
                email=user.get("email"),
                access_token=str(data["access_token"]),
                refresh_token=str(data["refresh_token"]),
                expires_at=expires_at,
                issued_at=issued_at,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed session data: {exc}") from exc

    @classmethod
    def from_json(cls, raw: str) -> Session:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Malformed session data: {exc}") from exc
        if not isinstance(data, Mapping):
            raise ValueError("Malformed session data: not an object")
        return cls.from_dict(data)

    @classmethod
    def from_token_response(cls, payload: Mapping[str, Any], now: float) -> Session:
        """Build a session from an auth server token grant.

        ``expires_at`` is taken from the payload when present, otherwise
        derived from ``expires_in``.
        """
        expires_at = payload.get("expires_at")
        if expires_at is None:
            expires_at = now + float(payload.get("expires_in", 3600))
        return cls.from_dict({**payload, "expires_at": expires_at, "issued_at": now})

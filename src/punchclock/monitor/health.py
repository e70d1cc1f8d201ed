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
"""Session health records and banner state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SESSION_EXPIRED_BANNER = "Your session has expired or is invalid."
SESSION_EXPIRING_BANNER = "Your session will expire soon. Click refresh to extend it."
SESSION_UNVERIFIED_BANNER = "Unable to verify session status."
SESSION_REFRESH_FAILED_BANNER = "Session refresh failed. Please reload the page."


class HealthAction(Enum):
    """What a poll did about the session it found."""

    NONE = "none"
    PROACTIVE_REFRESH = "proactive_refresh"
    RECOVERY_ATTEMPTED = "recovery_attempted"


@dataclass(frozen=True)
class SessionHealthCheck:
    """Result of one monitor poll.

    ``time_until_expiry`` is ``None`` when no session was found and negative
    once the session has expired. ``succeeded`` reports the outcome of the
    action, and is ``None`` when no action was taken.
    """

    session_present: bool
    time_until_expiry: float | None
    action: HealthAction = HealthAction.NONE
    succeeded: bool | None = None
    checked_at: float = 0.0


@dataclass(frozen=True)
class SessionBanner:
    message: str | None = None
    dismissed: bool = False
    refreshing: bool = False

    @property
    def visible(self) -> bool:
        return self.message is not None and not self.dismissed

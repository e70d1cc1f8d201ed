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
"""Typed auth events and an in-process publish/subscribe bus."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Union

from punchclock.auth.session import Session

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionEstablished:
    """A user signed in."""

    session: Session = field(repr=False)

    @property
    def user_id(self) -> str:
        return self.session.user_id


@dataclass(frozen=True)
class SessionRefreshed:
    """Tokens were rotated and the expiry extended."""

    session: Session = field(repr=False)

    @property
    def user_id(self) -> str:
        return self.session.user_id


@dataclass(frozen=True)
class SessionCleared:
    """The session ended: sign-out, terminal refresh failure or external removal."""

    reason: str = "signed_out"


AuthEvent = Union[SessionEstablished, SessionRefreshed, SessionCleared]
AuthEventHandler = Callable[[AuthEvent], Awaitable[None]]
Unsubscribe = Callable[[], None]


class AuthEventBus:
    """Delivers auth events to subscribers in subscription order.

    A failing handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: list[AuthEventHandler] = []

    def subscribe(self, handler: AuthEventHandler) -> Unsubscribe:
        """Subscribe *handler*; call the returned function to unsubscribe."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: AuthEvent) -> None:
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                _logger.exception("Auth event handler failed for %s", type(event).__name__)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

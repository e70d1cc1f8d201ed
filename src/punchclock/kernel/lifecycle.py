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
"""Unified lifecycle protocol for components owning background work or connections."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Lifecycle(Protocol):
    """Standard lifecycle for adapters and services.

    Components that own connections, subscriptions or background tasks
    implement this protocol. ``SessionRuntime`` calls start() in construction
    order and stop() in reverse order.
    """

    async def start(self) -> None:
        """Acquire connections and subscriptions.

        Raise on failure; the runtime does not start half-initialized.
        """
        ...

    async def stop(self) -> None:
        """Release resources.

        Best-effort cleanup -- exceptions are logged but do not prevent the
        shutdown of other components.
        """
        ...

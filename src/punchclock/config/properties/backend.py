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
"""Hosted backend configuration properties."""

from __future__ import annotations

from dataclasses import dataclass

from punchclock.core.config import config_properties


@config_properties(prefix="punchclock.backend")
@dataclass
class BackendProperties:
    """Connection settings for the hosted auth and data backend (punchclock.backend.*)."""

    url: str = "http://localhost:54321"
    anon_key: str = ""
    project_ref: str = "local"
    timeout: float = 30.0

    @property
    def storage_key(self) -> str:
        """Name (without namespace prefix) the auth session is stored under."""
        return f"{self.project_ref}-auth-token"

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
"""Storage subsystem configuration properties."""

from __future__ import annotations

from dataclasses import dataclass

from punchclock.core.config import config_properties


@config_properties(prefix="punchclock.storage")
@dataclass
class StorageProperties:
    """Configuration for the tiered storage adapter (punchclock.storage.*)."""

    prefix: str = "sb-"
    backend: str = "memory"
    path: str = ".punchclock/storage.json"
    redis_url: str = "redis://localhost:6379/0"
    redis_channel: str = "punchclock:storage"

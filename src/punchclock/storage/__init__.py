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
"""Punchclock Storage — tiered key-value storage with durable-tier fallbacks."""

from punchclock.storage.adapter import StorageAdapter
from punchclock.storage.adapters import FileDurableStore, InMemoryDurableStore, MemoryBacking, RedisDurableStore
from punchclock.storage.diagnostics import StorageNotice, describe_storage_issue
from punchclock.storage.ports.outbound import DurableStore
from punchclock.storage.types import StorageChange, StorageDiagnostics, StorageFailure, classify_storage_failure

__all__ = [
    "DurableStore",
    "FileDurableStore",
    "InMemoryDurableStore",
    "MemoryBacking",
    "RedisDurableStore",
    "StorageAdapter",
    "StorageChange",
    "StorageDiagnostics",
    "StorageFailure",
    "StorageNotice",
    "classify_storage_failure",
    "describe_storage_issue",
]

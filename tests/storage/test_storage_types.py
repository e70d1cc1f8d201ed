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
"""Tests for storage failure classification and storage notices."""

from __future__ import annotations

import json

import pytest

from punchclock.kernel.exceptions import StorageQuotaExceededException, StorageSecurityException
from punchclock.storage.diagnostics import PRIVATE_MODE, STORAGE_RESTRICTED, describe_storage_issue
from punchclock.storage.types import (
    CorruptEntryError,
    StorageDiagnostics,
    StorageFailure,
    classify_storage_failure,
    embedded_expiry,
)


class TestClassifyStorageFailure:
    def test_typed_exceptions(self):
        assert classify_storage_failure(StorageQuotaExceededException("full")) is StorageFailure.QUOTA_EXCEEDED
        assert classify_storage_failure(StorageSecurityException("denied")) is StorageFailure.SECURITY_RESTRICTED

    def test_text_markers(self):
        assert classify_storage_failure(Exception("QuotaExceededError: too big")) is StorageFailure.QUOTA_EXCEEDED
        assert classify_storage_failure(Exception("Storage quota reached")) is StorageFailure.QUOTA_EXCEEDED
        assert classify_storage_failure(Exception("SecurityError: blocked")) is StorageFailure.SECURITY_RESTRICTED

    def test_unknown(self):
        assert classify_storage_failure(RuntimeError("boom")) is StorageFailure.UNKNOWN


class TestEmbeddedExpiry:
    def test_reads_expires_at(self):
        assert embedded_expiry(json.dumps({"expires_at": 42})) == 42.0

    def test_missing_or_non_numeric_expiry(self):
        assert embedded_expiry(json.dumps({"user": "x"})) is None
        assert embedded_expiry(json.dumps({"expires_at": "soon"})) is None
        assert embedded_expiry(json.dumps({"expires_at": True})) is None
        assert embedded_expiry(json.dumps([1, 2])) is None

    def test_invalid_json_is_corrupt(self):
        with pytest.raises(CorruptEntryError):
            embedded_expiry("{oops")


class TestDescribeStorageIssue:
    def test_healthy(self):
        diagnostics = StorageDiagnostics(True, False, 1, 1)
        assert describe_storage_issue(diagnostics) is None

    def test_private_mode(self):
        diagnostics = StorageDiagnostics(False, True, 1, 0)
        notice = describe_storage_issue(diagnostics)
        assert notice is PRIVATE_MODE
        assert notice.issue == "private_mode"

    def test_restricted_without_private_mode(self):
        diagnostics = StorageDiagnostics(False, False, 0, 0)
        assert describe_storage_issue(diagnostics) is STORAGE_RESTRICTED

"""
Tests for the access controller and error hierarchy.
"""

import sys

sys.path.insert(0, "src")

import pytest

from access_control import LedgerAction, authorize, is_authority
from ledger_errors import (
    LedgerError,
    NotImplementedModelError,
    TransferFailedError,
    UnauthorizedError,
)


class TestIsAuthority:
    """Tests for identity comparison."""

    def test_matching_identity(self):
        assert is_authority("ops-authority", "ops-authority") is True

    def test_different_identity(self):
        assert is_authority("mallory", "ops-authority") is False

    @pytest.mark.parametrize("caller", [None, "", 42])
    def test_missing_or_malformed_caller(self, caller):
        assert is_authority(caller, "ops-authority") is False


class TestAuthorize:
    """Tests for authorize()."""

    def test_authority_passes(self):
        authorize("ops-authority", "ops-authority", LedgerAction.DISTRIBUTE_PAYMENT)

    def test_other_caller_rejected(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            authorize("mallory", "ops-authority", LedgerAction.REGISTER_COLLECTION)

        error = exc_info.value
        assert error.action == "register_collection"
        assert error.caller == "mallory"
        assert error.http_status == 403

    def test_rejection_is_logged(self, caplog):
        with caplog.at_level("WARNING"):
            with pytest.raises(UnauthorizedError):
                authorize(None, "ops-authority", LedgerAction.DISTRIBUTE_BATCH)
        assert "Access denied" in caplog.text


class TestLedgerErrors:
    """Tests for structured errors."""

    def test_to_dict(self):
        error = UnauthorizedError("mallory", action="distribute_payment")
        data = error.to_dict()

        assert data["error_code"] == "Unauthorized"
        assert data["action"] == "distribute_payment"
        assert data["details"] == {"caller": "mallory"}

    def test_cause_is_chained(self):
        cause = RuntimeError("rejected by host")
        error = TransferFailedError("treasury", "alice", 10, index=2, cause=cause)

        assert error.__cause__ is cause
        assert error.index == 2
        assert error.to_dict()["cause"]["type"] == "RuntimeError"
        assert "caused by" in str(error)

    def test_hierarchy(self):
        assert issubclass(NotImplementedModelError, LedgerError)
        assert NotImplementedModelError("weighted").http_status == 501

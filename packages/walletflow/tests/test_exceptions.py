"""
Tests for walletflow.exceptions.

Tests cover:
- Exception payloads
- Provider error normalization by code and by message
- Kind -> reason translation for connection and distribution errors
"""
from __future__ import annotations

import pytest

from walletflow.exceptions import (
    ConnectError,
    ConnectErrorReason,
    DistributionError,
    DistributionErrorReason,
    NetworkMismatchError,
    ProviderError,
    ProviderErrorKind,
    ProviderUnavailableError,
    UnsupportedOperationError,
    UserRejectedError,
    WalletflowException,
    WalletflowValidationError,
    exception_from_provider_error,
)
from walletflow.models import DistributionStep, StepStatus, TransactionState, TransactionStatus

from conftest import ProviderRPCError


class TestWalletflowException:
    """Tests for the base exception payload."""

    def test_to_dict(self):
        exc = WalletflowException("boom", error_code="X", details={"a": 1})
        assert exc.to_dict() == {"error": "X", "message": "boom", "details": {"a": 1}}

    def test_validation_error_records_field(self):
        exc = WalletflowValidationError("bad", field="amount")
        assert exc.error_code == "VALIDATION_ERROR"
        assert exc.details == {"field": "amount"}

    def test_provider_error_code_is_kind(self):
        exc = UserRejectedError("no", wallet="metamask", provider_code=4001)
        assert exc.error_code == "UserRejected"
        assert exc.details == {"wallet": "metamask", "provider_code": 4001}
        assert isinstance(exc, ProviderError)

    def test_network_mismatch_details(self):
        exc = NetworkMismatchError("wrong", expected="0x61", actual="0x1")
        assert exc.kind == ProviderErrorKind.NETWORK_MISMATCH
        assert exc.details["expected"] == "0x61"
        assert exc.details["actual"] == "0x1"


class TestExceptionFromProviderError:
    """Tests for normalizing raw provider failures."""

    @pytest.mark.parametrize("code,expected", [
        (4001, UserRejectedError),
        (4100, ProviderUnavailableError),
        (4200, UnsupportedOperationError),
        (4900, ProviderUnavailableError),
        (4902, NetworkMismatchError),
        (-32000, UserRejectedError),
        (-32601, UnsupportedOperationError),
    ])
    def test_known_codes(self, code, expected):
        error = exception_from_provider_error(ProviderRPCError(code, "failed"), wallet="w")
        assert type(error) is expected
        assert error.provider_code == code
        assert error.message == "failed"

    def test_error_payload_mapping(self):
        """Errors returned in JSON-RPC envelopes are normalized too."""
        error = exception_from_provider_error(
            {"code": -32000, "message": "User rejected the request"}, method="sendTransfer",
        )
        assert isinstance(error, UserRejectedError)
        assert error.details["method"] == "sendTransfer"

    def test_message_patterns(self):
        error = exception_from_provider_error(Exception("User denied transaction signature"))
        assert isinstance(error, UserRejectedError)

        error = exception_from_provider_error(Exception("Method not supported"))
        assert isinstance(error, UnsupportedOperationError)

    def test_unknown_becomes_unavailable(self):
        error = exception_from_provider_error(RuntimeError("socket closed"))
        assert isinstance(error, ProviderUnavailableError)
        assert error.message == "socket closed"

    def test_code_wins_over_message(self):
        error = exception_from_provider_error(ProviderRPCError(4001, "method not found"))
        assert isinstance(error, UserRejectedError)

    def test_already_normalized_is_returned_unchanged(self):
        original = UnsupportedOperationError("nope")
        assert exception_from_provider_error(original) is original


class TestReasonTranslation:
    """Tests for kind -> reason translation."""

    def test_connect_error_from_provider_error(self):
        error = ConnectError.from_provider_error(
            UserRejectedError("rejected", provider_code=4001), wallet="metamask",
        )
        assert error.reason == ConnectErrorReason.USER_REJECTED
        assert error.error_code == "UserRejected"
        assert error.details["wallet"] == "metamask"

    def test_distribution_error_partially_applied(self):
        state = TransactionState(
            status=TransactionStatus.ERROR,
            steps=(
                DistributionStep("a", "1", StepStatus.CONFIRMED, step_hash="0x1"),
                DistributionStep("b", "1", StepStatus.FAILED, error="UserRejected"),
            ),
            error="UserRejected",
            failed_step=1,
        )
        error = DistributionError(
            "rejected", reason=DistributionErrorReason.USER_REJECTED, step_index=1, result=state,
        )
        assert error.partially_applied is True
        assert error.details["step_index"] == 1

    def test_distribution_error_without_result(self):
        error = DistributionError("no wallet", reason=DistributionErrorReason.NOT_CONNECTED)
        assert error.partially_applied is False
        assert error.step_index is None

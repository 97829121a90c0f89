"""Unified exception hierarchy for walletflow.

All walletflow exceptions inherit from WalletflowException, enabling:
- One place to catch everything the core raises
- Structured error payloads with machine-readable codes
- Provider error normalization at the adapter boundary

Usage:
    from walletflow.exceptions import (
        ProviderError,
        ConnectError,
        DistributionError,
        exception_from_provider_error,
    )

    try:
        accounts = await handle.request({"method": "eth_requestAccounts"})
    except Exception as e:
        raise exception_from_provider_error(e, wallet="metamask") from e

Provider errors are normalized exactly once, inside the adapters. Upstream
components only translate a ProviderError's kind into their own reason codes.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Type

if TYPE_CHECKING:
    from .models import TransactionState

logger = logging.getLogger(__name__)


class WalletflowException(Exception):
    """Base exception for all walletflow errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "UserRejected")
        details: Optional additional context
    """

    error_code: str = "WALLETFLOW_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable payload."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Validation & Configuration Errors
# =============================================================================

class WalletflowValidationError(WalletflowException):
    """Invalid input data or parameters."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class WalletflowConfigurationError(WalletflowException):
    """Service configuration error."""

    error_code = "CONFIGURATION_ERROR"


# =============================================================================
# Provider Errors (raised only by adapters)
# =============================================================================

class ProviderErrorKind(str, Enum):
    """Normalized provider failure kinds."""
    USER_REJECTED = "UserRejected"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    NETWORK_MISMATCH = "NetworkMismatch"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"


class ProviderError(WalletflowException):
    """Base class for normalized provider errors."""

    kind: ProviderErrorKind = ProviderErrorKind.PROVIDER_UNAVAILABLE

    def __init__(
        self,
        message: str,
        wallet: Optional[str] = None,
        provider_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if wallet:
            details["wallet"] = wallet
        if provider_code is not None:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=self.kind.value, details=details)
        self.provider_code = provider_code


class UserRejectedError(ProviderError):
    """The user declined the request in the provider's own prompt."""

    kind = ProviderErrorKind.USER_REJECTED


class UnsupportedOperationError(ProviderError):
    """The provider does not expose the requested capability."""

    kind = ProviderErrorKind.UNSUPPORTED_OPERATION


class NetworkMismatchError(ProviderError):
    """The provider is on a different network than the one configured."""

    kind = ProviderErrorKind.NETWORK_MISMATCH

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        wallet: Optional[str] = None,
        provider_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual
        super().__init__(message, wallet=wallet, provider_code=provider_code, details=details)
        self.expected = expected
        self.actual = actual


class ProviderUnavailableError(ProviderError):
    """The provider is missing, locked, disconnected or failed unexpectedly."""

    kind = ProviderErrorKind.PROVIDER_UNAVAILABLE


PROVIDER_ERROR_CLASSES: dict[ProviderErrorKind, Type[ProviderError]] = {
    ProviderErrorKind.USER_REJECTED: UserRejectedError,
    ProviderErrorKind.UNSUPPORTED_OPERATION: UnsupportedOperationError,
    ProviderErrorKind.NETWORK_MISMATCH: NetworkMismatchError,
    ProviderErrorKind.PROVIDER_UNAVAILABLE: ProviderUnavailableError,
}


# =============================================================================
# Connection Errors
# =============================================================================

class ConnectErrorReason(str, Enum):
    """Why a connection attempt ended in Disconnected."""
    USER_REJECTED = "UserRejected"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    NETWORK_MISMATCH = "NetworkMismatch"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    ALREADY_CONNECTING = "AlreadyConnecting"
    ALREADY_CONNECTED = "AlreadyConnected"
    CANCELLED = "Cancelled"


class ConnectError(WalletflowException):
    """A connection attempt failed; the connection is Disconnected."""

    error_code = "CONNECT_ERROR"

    def __init__(
        self,
        message: str,
        reason: ConnectErrorReason,
        wallet: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if wallet:
            details["wallet"] = wallet
        super().__init__(message, error_code=reason.value, details=details)
        self.reason = reason

    @classmethod
    def from_provider_error(cls, error: ProviderError, wallet: Optional[str] = None) -> "ConnectError":
        """Translate a normalized provider error into a connection failure."""
        return cls(
            error.message,
            reason=ConnectErrorReason(error.kind.value),
            wallet=wallet,
            details=dict(error.details),
        )


# =============================================================================
# Distribution Errors
# =============================================================================

class DistributionErrorReason(str, Enum):
    """Why a distribution did not (fully) happen."""
    NOT_CONNECTED = "NotConnected"
    STEP_FAILED = "StepFailed"
    USER_REJECTED = "UserRejected"
    ALREADY_PROCESSING = "AlreadyProcessing"
    INVALID_RECIPIENTS = "InvalidRecipients"


class DistributionError(WalletflowException):
    """A distribution could not start or stopped at a failing step.

    ``step_index`` is None when nothing was attempted. ``result`` carries the
    snapshot of the attempt when one exists, so callers can tell which steps
    already went through.
    """

    error_code = "DISTRIBUTION_ERROR"

    def __init__(
        self,
        message: str,
        reason: DistributionErrorReason,
        step_index: Optional[int] = None,
        result: Optional["TransactionState"] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if step_index is not None:
            details["step_index"] = step_index
        super().__init__(message, error_code=reason.value, details=details)
        self.reason = reason
        self.step_index = step_index
        self.result = result

    @property
    def partially_applied(self) -> bool:
        """True when at least one step was confirmed before the failure."""
        return bool(self.result and self.result.confirmed_count)


class ReconciliationError(WalletflowException):
    """Post-distribution balance refresh failed. Never fatal."""

    error_code = "RECONCILIATION_ERROR"


# =============================================================================
# Error Mapping Utilities
# =============================================================================

# EIP-1193 / JSON-RPC / sats-connect error codes
PROVIDER_ERROR_CODES: dict[int, ProviderErrorKind] = {
    4001: ProviderErrorKind.USER_REJECTED,
    4100: ProviderErrorKind.PROVIDER_UNAVAILABLE,  # unauthorized
    4200: ProviderErrorKind.UNSUPPORTED_OPERATION,
    4900: ProviderErrorKind.PROVIDER_UNAVAILABLE,  # disconnected
    4901: ProviderErrorKind.NETWORK_MISMATCH,  # chain disconnected
    4902: ProviderErrorKind.NETWORK_MISMATCH,  # unrecognized chain
    -32000: ProviderErrorKind.USER_REJECTED,  # sats-connect user rejection
    -32002: ProviderErrorKind.PROVIDER_UNAVAILABLE,  # request already pending
    -32601: ProviderErrorKind.UNSUPPORTED_OPERATION,  # method not found
}

PROVIDER_ERROR_PATTERNS: dict[str, ProviderErrorKind] = {
    "user rejected": ProviderErrorKind.USER_REJECTED,
    "user denied": ProviderErrorKind.USER_REJECTED,
    "rejected by user": ProviderErrorKind.USER_REJECTED,
    "user cancel": ProviderErrorKind.USER_REJECTED,
    "method not found": ProviderErrorKind.UNSUPPORTED_OPERATION,
    "not supported": ProviderErrorKind.UNSUPPORTED_OPERATION,
    "unsupported": ProviderErrorKind.UNSUPPORTED_OPERATION,
    "unrecognized chain": ProviderErrorKind.NETWORK_MISMATCH,
    "wrong network": ProviderErrorKind.NETWORK_MISMATCH,
    "chain mismatch": ProviderErrorKind.NETWORK_MISMATCH,
}


def _extract_code_and_message(error: Any) -> tuple[Optional[int], str]:
    """Pull a provider code and message out of an exception or error payload."""
    payload = error
    if isinstance(error, BaseException):
        code = getattr(error, "code", None)
        message = getattr(error, "message", None)
        if code is None and error.args and isinstance(error.args[0], Mapping):
            payload = error.args[0]
        else:
            return (code if isinstance(code, int) else None), str(message or error)

    if isinstance(payload, Mapping):
        code = payload.get("code")
        message = payload.get("message") or str(payload)
        return (code if isinstance(code, int) else None), str(message)

    return None, str(payload)


def exception_from_provider_error(
    error: Any,
    wallet: Optional[str] = None,
    method: Optional[str] = None,
) -> ProviderError:
    """Convert a raw provider failure into a normalized ProviderError.

    Accepts exceptions raised by a provider handle as well as error payloads
    returned inside JSON-RPC style envelopes. Known codes win over message
    patterns; anything unrecognized becomes ProviderUnavailable with the
    provider's message preserved.
    """
    if isinstance(error, ProviderError):
        return error

    code, message = _extract_code_and_message(error)
    kind = PROVIDER_ERROR_CODES.get(code) if code is not None else None

    if kind is None:
        lowered = message.lower()
        for pattern, pattern_kind in PROVIDER_ERROR_PATTERNS.items():
            if pattern in lowered:
                kind = pattern_kind
                break

    if kind is None:
        kind = ProviderErrorKind.PROVIDER_UNAVAILABLE

    details: dict[str, Any] = {}
    if method:
        details["method"] = method

    logger.debug(
        "Normalized provider error for %s (%s): code=%s kind=%s",
        wallet or "unknown", method or "-", code, kind.value,
    )
    return PROVIDER_ERROR_CLASSES[kind](
        message,
        wallet=wallet,
        provider_code=code,
        details=details,
    )

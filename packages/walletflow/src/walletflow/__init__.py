"""Wallet detection, connection and distribution orchestration exports."""

from .config import (
    NETWORKS,
    DistributionPolicy,
    LoggingConfig,
    NetworkConfig,
    RecipientConfig,
    TokenRef,
    WalletflowSettings,
    load_settings,
)
from .connection import ConnectionManager
from .detector import DEFAULT_PROBES, WalletDetector, WalletProbe, WalletRegistry
from .exceptions import (
    ConnectError,
    ConnectErrorReason,
    DistributionError,
    DistributionErrorReason,
    NetworkMismatchError,
    ProviderError,
    ProviderErrorKind,
    ProviderUnavailableError,
    ReconciliationError,
    UnsupportedOperationError,
    UserRejectedError,
    WalletflowConfigurationError,
    WalletflowException,
    WalletflowValidationError,
)
from .logging_utils import FlowLogger, OperationType, setup_logging
from .models import (
    ConnectionState,
    ConnectionStatus,
    DistributionStep,
    Recipient,
    StepStatus,
    TransactionState,
    TransactionStatus,
    WalletDescriptor,
    WalletFamily,
)
from .orchestrator import DistributionOrchestrator
from .reconciliation import BalanceReconciler
from .service import WalletService

__all__ = [
    "NETWORKS",
    "DistributionPolicy",
    "LoggingConfig",
    "NetworkConfig",
    "RecipientConfig",
    "TokenRef",
    "WalletflowSettings",
    "load_settings",
    "ConnectionManager",
    "DEFAULT_PROBES",
    "WalletDetector",
    "WalletProbe",
    "WalletRegistry",
    "ConnectError",
    "ConnectErrorReason",
    "DistributionError",
    "DistributionErrorReason",
    "NetworkMismatchError",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderUnavailableError",
    "ReconciliationError",
    "UnsupportedOperationError",
    "UserRejectedError",
    "WalletflowConfigurationError",
    "WalletflowException",
    "WalletflowValidationError",
    "FlowLogger",
    "OperationType",
    "setup_logging",
    "ConnectionState",
    "ConnectionStatus",
    "DistributionStep",
    "Recipient",
    "StepStatus",
    "TransactionState",
    "TransactionStatus",
    "WalletDescriptor",
    "WalletFamily",
    "DistributionOrchestrator",
    "BalanceReconciler",
    "WalletService",
]

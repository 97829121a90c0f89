"""Wallet connection and distribution data models.

Every state type here is an immutable snapshot. Owners publish a new snapshot
for each transition; readers (the presentation layer) never see partial
updates.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .amounts import ZERO_BALANCE
from .exceptions import DistributionError, DistributionErrorReason, ProviderErrorKind


class WalletFamily(str, Enum):
    """Wallet families, each served by one adapter implementation."""
    EVM = "evm"
    BITCOIN = "bitcoin"
    SOLANA = "solana"


def names_match(left: str, right: str) -> bool:
    """Fuzzy wallet-name match: case-insensitive substring in either direction."""
    a, b = left.lower(), right.lower()
    return a in b or b in a


@dataclass(frozen=True)
class WalletDescriptor:
    """A wallet found (or known to be missing) in the environment."""
    name: str
    icon: str
    id: str
    family: WalletFamily
    # Back reference to the environment's provider object; never copied
    capability_handle: Any = field(default=None, compare=False, repr=False)
    is_installed: bool = True

    def matches(self, other: "WalletDescriptor") -> bool:
        return names_match(self.name, other.name)


class ConnectionStatus(str, Enum):
    """Connection state machine states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ConnectionState:
    """The single active wallet connection."""
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    address: Optional[str] = None
    chain_id: Optional[str] = None
    wallet_name: Optional[str] = None
    wallet_id: Optional[str] = None
    family: Optional[WalletFamily] = None
    native_balance: str = ZERO_BALANCE
    token_balance: str = ZERO_BALANCE

    def __post_init__(self) -> None:
        if self.status == ConnectionStatus.CONNECTED:
            if not self.address or not self.chain_id:
                raise ValueError("A connected state requires an address and a chain id")
        elif any(v is not None for v in (self.address, self.chain_id, self.wallet_name)):
            raise ValueError("A state that is not connected cannot carry connection details")

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def with_balances(
        self,
        native_balance: Optional[str] = None,
        token_balance: Optional[str] = None,
    ) -> "ConnectionState":
        """Copy with the given balances replaced; None keeps the current value."""
        return replace(
            self,
            native_balance=self.native_balance if native_balance is None else native_balance,
            token_balance=self.token_balance if token_balance is None else token_balance,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_connected": self.is_connected,
            "status": self.status.value,
            "address": self.address,
            "chain_id": self.chain_id,
            "wallet_name": self.wallet_name,
            "native_balance": self.native_balance,
            "token_balance": self.token_balance,
        }


INITIAL_CONNECTION_STATE = ConnectionState()


@dataclass(frozen=True)
class Recipient:
    """One transfer of a distribution."""
    address: str
    amount: str


class StepStatus(str, Enum):
    """Distribution step status."""
    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class DistributionStep:
    """Outcome of one recipient transfer."""
    recipient: str
    amount: str
    status: StepStatus = StepStatus.PENDING
    step_hash: Optional[str] = None
    error: Optional[str] = None
    error_message: Optional[str] = None


class TransactionStatus(str, Enum):
    """Aggregate distribution status."""
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class TransactionState:
    """Snapshot of one distribution attempt."""
    is_processing: bool = False
    hash: Optional[str] = None
    status: TransactionStatus = TransactionStatus.IDLE
    error: Optional[str] = None
    error_message: Optional[str] = None
    failed_step: Optional[int] = None
    steps: Tuple[DistributionStep, ...] = ()
    attempt_id: Optional[str] = None
    session_id: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def begin(cls, steps: Tuple[DistributionStep, ...], session_id: int) -> "TransactionState":
        return cls(
            is_processing=True,
            status=TransactionStatus.PENDING,
            steps=steps,
            attempt_id=f"dist_{uuid.uuid4().hex[:16]}",
            session_id=session_id,
            started_at=datetime.now(timezone.utc),
        )

    @property
    def confirmed_count(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.CONFIRMED)

    @property
    def is_partial(self) -> bool:
        """Some but not all steps went through."""
        return self.status == TransactionStatus.ERROR and self.confirmed_count > 0

    @property
    def last_confirmed_hash(self) -> Optional[str]:
        for step in reversed(self.steps):
            if step.status == StepStatus.CONFIRMED:
                return step.step_hash
        return None

    def raise_for_status(self) -> None:
        """Raise DistributionError if this attempt ended in Error."""
        if self.status != TransactionStatus.ERROR:
            return
        reason = (
            DistributionErrorReason.USER_REJECTED
            if self.error == ProviderErrorKind.USER_REJECTED.value
            else DistributionErrorReason.STEP_FAILED
        )
        raise DistributionError(
            self.error_message or self.error or "Distribution failed",
            reason=reason,
            step_index=self.failed_step,
            result=self,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_processing": self.is_processing,
            "hash": self.hash,
            "status": self.status.value,
            "error": self.error,
            "error_message": self.error_message,
            "failed_step": self.failed_step,
            "attempt_id": self.attempt_id,
            "steps": [
                {
                    "recipient": s.recipient,
                    "amount": s.amount,
                    "status": s.status.value,
                    "hash": s.step_hash,
                    "error": s.error,
                }
                for s in self.steps
            ],
        }


IDLE_TRANSACTION_STATE = TransactionState()

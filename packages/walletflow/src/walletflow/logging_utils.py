"""
Logging utilities for wallet operations.

Features:
- Structured logging for connect, transfer and reconciliation operations
- Distribution step lifecycle logging
- Audit trail support
- Address masking
"""
from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import LoggingConfig

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Types of wallet operations."""
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    NETWORK_SWITCH = "network_switch"
    DISTRIBUTION = "distribution"
    RECONCILIATION = "reconciliation"


@dataclass
class OperationContext:
    """One operation against a wallet, timed from entry to exit."""
    operation_id: str
    operation_type: OperationType
    wallet: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.duration_ms is not None and self.error is None

    def finish(self, error: Optional[BaseException] = None) -> None:
        elapsed = datetime.now(timezone.utc) - self.started_at
        self.duration_ms = elapsed.total_seconds() * 1000
        self.error = str(error) if error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.operation_id,
            "type": self.operation_type.value,
            "wallet": self.wallet,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            **self.metadata,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def mask_address(address: Optional[str]) -> str:
    """Mask middle portion of address for privacy."""
    if not address or len(address) < 10:
        return address or ""
    return f"{address[:6]}...{address[-4:]}"


class FlowLogger:
    """
    Logger for wallet connection and distribution operations.

    Provides structured logging with:
    - Operation context tracking
    - Distribution step lifecycle logging
    - Audit trail support
    """

    def __init__(
        self,
        name: str = "walletflow",
        config: Optional[LoggingConfig] = None,
    ):
        self._logger = logging.getLogger(name)
        self._config = config or LoggingConfig()
        self._operation_counter = 0

    def _generate_operation_id(self) -> str:
        """Generate a unique operation ID."""
        self._operation_counter += 1
        timestamp = int(time.time() * 1000)
        return f"op_{timestamp}_{self._operation_counter}"

    def _address(self, address: Optional[str]) -> str:
        return mask_address(address) if self._config.mask_addresses else (address or "")

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        wallet: str,
        **metadata,
    ):
        """
        Context manager for tracking an operation.

        Usage:
            async with flow_logger.operation_context(OperationType.CONNECT, "metamask") as ctx:
                address = await adapter.connect()
                ctx.metadata["address"] = address
        """
        ctx = OperationContext(
            operation_id=self._generate_operation_id(),
            operation_type=operation_type,
            wallet=wallet,
            metadata=metadata,
        )

        self._logger.debug(
            f"Starting {operation_type.value} with {wallet}",
            extra={"operation": ctx.to_dict()},
        )

        try:
            yield ctx
        except BaseException as e:
            ctx.finish(error=e)
            raise
        else:
            ctx.finish()
        finally:
            level = logging.WARNING if not ctx.success else logging.INFO
            self._logger.log(
                level,
                f"Completed {operation_type.value} with {wallet} in {ctx.duration_ms:.0f}ms "
                f"(success={ctx.success})",
                extra={"operation": ctx.to_dict()},
            )

    def log_step_submitted(self, attempt_id: str, index: int, recipient: str, amount: str) -> None:
        """Log a transfer handed to the provider."""
        self._logger.info(
            f"Step {index} of {attempt_id} submitted: {amount} -> {self._address(recipient)}",
            extra={"step": {"attempt_id": attempt_id, "index": index, "amount": amount}},
        )

    def log_step_confirmed(self, attempt_id: str, index: int, step_hash: str) -> None:
        """Log a transfer accepted by the provider."""
        self._logger.info(
            f"Step {index} of {attempt_id} confirmed: {step_hash}",
            extra={"step": {"attempt_id": attempt_id, "index": index, "hash": step_hash}},
        )

    def log_step_failed(self, attempt_id: str, index: int, error_kind: str, message: str) -> None:
        """Log a transfer the provider refused or failed."""
        self._logger.warning(
            f"Step {index} of {attempt_id} failed: {error_kind} - {message}",
            extra={"step": {"attempt_id": attempt_id, "index": index, "error": error_kind}},
        )

    def log_distribution_result(self, snapshot: Any) -> None:
        """Log the aggregate outcome of a distribution and audit it."""
        data = snapshot.to_dict()
        if self._config.mask_addresses:
            for step in data["steps"]:
                step["recipient"] = mask_address(step["recipient"])

        level = logging.INFO if data["status"] == "success" else logging.ERROR
        self._logger.log(
            level,
            f"Distribution {data['attempt_id']} finished with status={data['status']} "
            f"({snapshot.confirmed_count}/{len(data['steps'])} steps confirmed)",
            extra={"distribution": data},
        )

        if self._config.audit_log_enabled:
            self._write_audit_log("distribution_finished", data)

    def _write_audit_log(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write to audit log."""
        audit_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "data": data,
        }

        if self._config.audit_log_path:
            try:
                with open(self._config.audit_log_path, "a") as f:
                    f.write(json.dumps(audit_entry, default=str) + "\n")
            except OSError as e:
                self._logger.error(f"Failed to write audit log: {e}")
        else:
            self._logger.info(
                f"AUDIT: {event_type}",
                extra={"audit": audit_entry},
            )


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure process logging from a LoggingConfig: plain text or one JSON object per line."""
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)
    if config.json_format:
        fmt = '{"ts": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "msg": "%(message)s"}'
    else:
        fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

    logging.basicConfig(level=level, format=fmt)
    logging.getLogger("walletflow").setLevel(level)
    for noisy in ("httpx", "httpcore", "web3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

"""
Wallet service facade.

Composes detection, connection, distribution and reconciliation into the
operations a presentation layer calls. Construct one per environment and
pass it around; there is no module-level instance.

Usage:
    async with WalletService(settings, environment=window) as service:
        wallets = service.detect_wallets()
        await service.connect_wallet(wallets[0])
        result = await service.execute_distribution()
"""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .config import WalletflowSettings, load_settings
from .connection import ConnectionListener, ConnectionManager
from .detector import WalletDetector, WalletRegistry
from .exceptions import WalletflowConfigurationError
from .logging_utils import FlowLogger
from .models import (
    ConnectionState,
    Recipient,
    TransactionState,
    TransactionStatus,
    WalletDescriptor,
)
from .orchestrator import DistributionOrchestrator, TransactionListener
from .providers.registry import AdapterRegistry, build_default_registry
from .providers.solana import SolanaRPCClient
from .reconciliation import BalanceReconciler

logger = logging.getLogger(__name__)


class WalletService:
    """Presentation-facing entry point for wallet connection and distributions."""

    def __init__(
        self,
        settings: Optional[WalletflowSettings] = None,
        environment: Any = None,
        detector: Optional[WalletDetector] = None,
        adapter_registry: Optional[AdapterRegistry] = None,
        solana_rpc: Optional[SolanaRPCClient] = None,
        fallback_wallets: Sequence[WalletDescriptor] = (),
        flow_logger: Optional[FlowLogger] = None,
    ):
        self.settings = settings or load_settings()
        self._flow_logger = flow_logger or FlowLogger(config=self.settings.logging)

        if detector is None:
            detector = WalletDetector(
                environment if environment is not None else {},
                include_uninstalled=self.settings.include_uninstalled,
                fallback_wallets=fallback_wallets,
            )
        self.wallet_registry = WalletRegistry(
            detector, interval_seconds=self.settings.detect_interval_seconds,
        )

        # Only close the RPC client this service created itself
        self._owns_solana_rpc = solana_rpc is None and adapter_registry is None
        if adapter_registry is None:
            if solana_rpc is None:
                solana_rpc = SolanaRPCClient(
                    self.settings.resolved_solana_rpc_url,
                    commitment=self.settings.solana_commitment,
                    timeout=self.settings.http_timeout_seconds,
                )
            adapter_registry = build_default_registry(self.settings, solana_rpc=solana_rpc)
        self._solana_rpc = solana_rpc
        self.adapter_registry = adapter_registry

        self.connection = ConnectionManager(
            adapter_registry, self.settings, flow_logger=self._flow_logger,
        )
        self.orchestrator = DistributionOrchestrator(
            self.connection, self.settings, flow_logger=self._flow_logger,
        )
        self.reconciler = BalanceReconciler(
            self.connection, self.settings, flow_logger=self._flow_logger,
        )

    # -- state ---------------------------------------------------------------

    @property
    def wallets(self) -> Tuple[WalletDescriptor, ...]:
        return self.wallet_registry.wallets

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    @property
    def transaction_state(self) -> TransactionState:
        return self.orchestrator.state

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        self.connection.add_listener(listener)

    def add_transaction_listener(self, listener: TransactionListener) -> None:
        self.orchestrator.add_listener(listener)

    def add_wallets_listener(self, listener: Callable[[Tuple[WalletDescriptor, ...]], None]) -> None:
        self.wallet_registry.add_callback(listener)

    # -- operations ----------------------------------------------------------

    def detect_wallets(self) -> List[WalletDescriptor]:
        """Detect wallets now and return the current list."""
        return list(self.wallet_registry.refresh())

    async def connect_wallet(self, descriptor: WalletDescriptor) -> ConnectionState:
        """
        Connect a detected wallet.

        Raises:
            ConnectError: the connection failed or was refused
        """
        if self.connection.is_connected and self.settings.connect_policy == "replace":
            self.reconciler.cancel()
            self.orchestrator.reset()
        return await self.connection.connect(descriptor)

    async def disconnect(self) -> None:
        """Disconnect and drop pending reconciliation and the last distribution."""
        self.reconciler.cancel()
        await self.connection.disconnect()
        self.orchestrator.reset()

    def _default_recipients(self) -> List[Recipient]:
        recipients = self.settings.distribution.to_recipients()
        if not recipients:
            raise WalletflowConfigurationError(
                "No distribution recipients configured (WALLETFLOW_DISTRIBUTION__RECIPIENTS)"
            )
        return recipients

    def _finish(self, result: TransactionState) -> TransactionState:
        if result.status == TransactionStatus.SUCCESS:
            self.reconciler.schedule()
        result.raise_for_status()
        return result

    async def execute_distribution(
        self,
        recipients: Optional[Sequence[Recipient]] = None,
    ) -> TransactionState:
        """
        Run a distribution, by default the configured one.

        Returns:
            The Success snapshot; balances are refreshed after the settlement delay

        Raises:
            DistributionError: nothing could be submitted, or a step failed
                (``result`` carries the snapshot with the confirmed steps)
            WalletflowConfigurationError: no recipients given or configured
        """
        if recipients is None:
            recipients = self._default_recipients()
        result = await self.orchestrator.execute(recipients)
        return self._finish(result)

    async def retry_distribution(self) -> TransactionState:
        """Resume the last failed distribution from its failed step."""
        result = await self.orchestrator.resume()
        return self._finish(result)

    async def get_native_balance(self, address: Optional[str] = None) -> str:
        """Native balance of an address (default: the connected one)."""
        adapter = self.connection.adapter
        return await adapter.get_native_balance(address or self.connection.state.address)

    async def get_token_balance(self, address: Optional[str] = None) -> str:
        """
        Balance of the distributed token for an address (default: the connected one).

        Raises:
            WalletflowConfigurationError: the connected family has no token configured
        """
        adapter = self.connection.adapter
        token = self.settings.token_for(adapter.family)
        if token is None:
            raise WalletflowConfigurationError(
                f"No token configured for {adapter.family.value} wallets"
            )
        return await adapter.get_token_balance(address or self.connection.state.address, token)

    async def refresh_balances(self) -> bool:
        """Re-read the connected wallet's balances now."""
        return await self.reconciler.refresh()

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Start periodic wallet detection."""
        await self.wallet_registry.start()

    async def stop(self) -> None:
        """Stop detection, cancel pending refreshes and release clients."""
        await self.wallet_registry.stop()
        self.reconciler.cancel()
        await self.reconciler.drain()
        if self._owns_solana_rpc and self._solana_rpc is not None:
            await self._solana_rpc.close()

    async def __aenter__(self) -> "WalletService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

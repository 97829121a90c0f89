"""
Connection state machine.

Owns the one live ConnectionState and moves it through
Disconnected -> Connecting -> Connected -> Disconnected. Every transition
publishes a new immutable snapshot; the session id changes on every connect
and disconnect so late asynchronous results can be recognized as stale.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional

from .config import WalletflowSettings
from .exceptions import (
    ConnectError,
    ConnectErrorReason,
    DistributionError,
    DistributionErrorReason,
    ProviderError,
)
from .logging_utils import FlowLogger, OperationType
from .models import (
    INITIAL_CONNECTION_STATE,
    ConnectionState,
    ConnectionStatus,
    WalletDescriptor,
)
from .providers.base import ProviderAdapter
from .providers.registry import AdapterRegistry
from .reconciliation import fetch_balances

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[ConnectionState], None]


class ConnectionManager:
    """Single active wallet connection.

    connect() is only accepted from Disconnected (or from Connected when the
    connect policy is "replace"); a second attempt while one is in flight is
    rejected. disconnect() always restores the initial state.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: WalletflowSettings,
        flow_logger: Optional[FlowLogger] = None,
    ):
        self._registry = registry
        self._settings = settings
        self._flow_logger = flow_logger or FlowLogger(config=settings.logging)
        self._state: ConnectionState = INITIAL_CONNECTION_STATE
        self._adapter: Optional[ProviderAdapter] = None
        self._descriptor: Optional[WalletDescriptor] = None
        self._session_id = 0
        self._listeners: List[ConnectionListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def descriptor(self) -> Optional[WalletDescriptor]:
        """Descriptor of the connected (or connecting) wallet."""
        return self._descriptor

    @property
    def adapter(self) -> ProviderAdapter:
        """Adapter of the connected wallet."""
        if not self.is_connected or self._adapter is None:
            raise DistributionError(
                "No wallet connected",
                reason=DistributionErrorReason.NOT_CONNECTED,
            )
        return self._adapter

    def add_listener(self, listener: ConnectionListener) -> None:
        """Receive every new ConnectionState snapshot."""
        self._listeners.append(listener)

    def _publish(self, state: ConnectionState) -> None:
        self._state = state
        for listener in self._listeners:
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Connection listener failed: {e}")

    def _reset(self) -> None:
        self._session_id += 1
        self._adapter = None
        self._descriptor = None
        self._publish(INITIAL_CONNECTION_STATE)

    async def connect(self, descriptor: WalletDescriptor) -> ConnectionState:
        """
        Connect to the wallet behind a descriptor.

        Returns:
            The Connected state

        Raises:
            ConnectError: the attempt failed or was refused; the state is
                Disconnected (or unchanged when refused while busy)
        """
        if self.status == ConnectionStatus.CONNECTING:
            raise ConnectError(
                "A connection attempt is already in progress",
                reason=ConnectErrorReason.ALREADY_CONNECTING,
                wallet=descriptor.id,
            )
        if self.status == ConnectionStatus.CONNECTED:
            if self._settings.connect_policy != "replace":
                raise ConnectError(
                    f"Already connected to {self._state.wallet_name}; disconnect first",
                    reason=ConnectErrorReason.ALREADY_CONNECTED,
                    wallet=descriptor.id,
                )
            logger.info(
                "Replacing connection to %s with %s",
                self._state.wallet_name, descriptor.name,
            )
            await self.disconnect()

        self._session_id += 1
        session_id = self._session_id
        self._descriptor = descriptor
        self._publish(replace(INITIAL_CONNECTION_STATE, status=ConnectionStatus.CONNECTING))

        try:
            async with self._flow_logger.operation_context(
                OperationType.CONNECT, descriptor.id, family=descriptor.family.value,
            ) as ctx:
                adapter = self._registry.create(descriptor)
                address = await adapter.connect()
                if self._settings.enforce_network:
                    async with self._flow_logger.operation_context(
                        OperationType.NETWORK_SWITCH, descriptor.id,
                        expected=adapter.expected_chain_id,
                    ):
                        chain_id = await adapter.ensure_network()
                else:
                    chain_id = await adapter.get_chain_id()
                ctx.metadata["chain_id"] = chain_id
                native_balance, token_balance = None, None
                if self._settings.load_balances_on_connect:
                    native_balance, token_balance = await fetch_balances(
                        adapter, address, self._settings.token_for(descriptor.family),
                    )
                connected = ConnectionState(
                    status=ConnectionStatus.CONNECTED,
                    address=address,
                    chain_id=chain_id,
                    wallet_name=descriptor.name,
                    wallet_id=descriptor.id,
                    family=descriptor.family,
                ).with_balances(native_balance, token_balance)
        except ProviderError as e:
            if session_id != self._session_id:
                raise ConnectError(
                    f"Connection to {descriptor.name} was cancelled",
                    reason=ConnectErrorReason.CANCELLED,
                    wallet=descriptor.id,
                ) from e
            self._reset()
            raise ConnectError.from_provider_error(e, wallet=descriptor.id) from e
        except BaseException:
            if session_id == self._session_id:
                self._reset()
            raise

        if session_id != self._session_id:
            raise ConnectError(
                f"Connection to {descriptor.name} was cancelled",
                reason=ConnectErrorReason.CANCELLED,
                wallet=descriptor.id,
            )

        self._adapter = adapter
        self._publish(connected)
        logger.info("Connected to %s on %s", descriptor.name, chain_id)
        return self._state

    async def disconnect(self) -> ConnectionState:
        """Drop the connection and restore the initial state.

        The provider's own disconnect is advisory: its failure is logged and
        the local state is reset regardless.
        """
        adapter = self._adapter
        wallet = self._descriptor.id if self._descriptor else "none"
        self._reset()

        if adapter is not None:
            try:
                async with self._flow_logger.operation_context(OperationType.DISCONNECT, wallet):
                    await adapter.disconnect()
            except ProviderError as e:
                logger.warning(f"Provider disconnect for {wallet} failed: {e}")
        return self._state

    def apply_balances(
        self,
        session_id: int,
        native_balance: Optional[str] = None,
        token_balance: Optional[str] = None,
    ) -> bool:
        """Update balances of the live session; stale sessions are discarded."""
        if session_id != self._session_id or not self.is_connected:
            logger.debug("Discarding balances for stale session %s", session_id)
            return False
        if native_balance is None and token_balance is None:
            return False
        self._publish(self._state.with_balances(native_balance, token_balance))
        return True


"""Family tag -> adapter factory registry."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from walletflow.config import WalletflowSettings
from walletflow.exceptions import ProviderUnavailableError, UnsupportedOperationError
from walletflow.models import WalletDescriptor, WalletFamily
from walletflow.providers.base import ProviderAdapter
from walletflow.providers.bitcoin import BitcoinProviderAdapter
from walletflow.providers.evm import EVMProviderAdapter
from walletflow.providers.solana import SolanaProviderAdapter, SolanaRPCClient

logger = logging.getLogger(__name__)

# (capability handle, wallet id) -> adapter
AdapterFactory = Callable[[Any, str], ProviderAdapter]


class AdapterRegistry:
    """Selects the adapter for a descriptor by its family tag."""

    def __init__(self) -> None:
        self._factories: Dict[WalletFamily, AdapterFactory] = {}

    def register(self, family: WalletFamily, factory: AdapterFactory) -> None:
        """Register the adapter factory for a wallet family."""
        self._factories[family] = factory
        logger.debug("Registered adapter factory for %s", family.value)

    def unregister(self, family: WalletFamily) -> bool:
        """Unregister a wallet family."""
        return self._factories.pop(family, None) is not None

    @property
    def families(self) -> List[WalletFamily]:
        return list(self._factories)

    def create(self, descriptor: WalletDescriptor) -> ProviderAdapter:
        """Build the adapter bound to a descriptor's capability handle."""
        if not descriptor.is_installed or descriptor.capability_handle is None:
            raise ProviderUnavailableError(
                f"{descriptor.name} is not installed",
                wallet=descriptor.id,
            )
        factory = self._factories.get(descriptor.family)
        if factory is None:
            raise UnsupportedOperationError(
                f"No adapter registered for {descriptor.family.value} wallets",
                wallet=descriptor.id,
            )
        return factory(descriptor.capability_handle, descriptor.id)


def build_default_registry(
    settings: WalletflowSettings,
    solana_rpc: Optional[SolanaRPCClient] = None,
) -> AdapterRegistry:
    """Registry with the EVM, Bitcoin and Solana adapters wired to settings."""
    registry = AdapterRegistry()
    network = settings.network

    registry.register(
        WalletFamily.EVM,
        lambda handle, wallet: EVMProviderAdapter(handle, network, wallet=wallet),
    )
    registry.register(
        WalletFamily.BITCOIN,
        lambda handle, wallet: BitcoinProviderAdapter(
            handle, network=settings.bitcoin_network, wallet=wallet,
        ),
    )

    if solana_rpc is None:
        solana_rpc = SolanaRPCClient(
            settings.resolved_solana_rpc_url,
            commitment=settings.solana_commitment,
            timeout=settings.http_timeout_seconds,
        )
    registry.register(
        WalletFamily.SOLANA,
        lambda handle, wallet: SolanaProviderAdapter(
            handle, solana_rpc, cluster=settings.solana_cluster, wallet=wallet,
        ),
    )
    return registry

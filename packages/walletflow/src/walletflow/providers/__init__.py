"""Provider adapter implementations."""
from walletflow.providers.base import ProviderAdapter, get_capability, resolve_path
from walletflow.providers.bitcoin import BitcoinProviderAdapter
from walletflow.providers.evm import (
    EVMProviderAdapter,
    encode_erc20_balance_of,
    encode_erc20_transfer,
    normalize_chain_id,
)
from walletflow.providers.registry import AdapterRegistry, build_default_registry
from walletflow.providers.solana import SolanaProviderAdapter, SolanaRPCClient, SolanaRPCError

__all__ = [
    "ProviderAdapter",
    "get_capability",
    "resolve_path",
    "BitcoinProviderAdapter",
    "EVMProviderAdapter",
    "encode_erc20_balance_of",
    "encode_erc20_transfer",
    "normalize_chain_id",
    "AdapterRegistry",
    "build_default_registry",
    "SolanaProviderAdapter",
    "SolanaRPCClient",
    "SolanaRPCError",
]

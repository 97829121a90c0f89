"""
Configuration management for walletflow.

Provides centralized configuration for:
- Detection and settlement timing
- Target networks per wallet family
- Distribution token references
- The distribution policy (ordered recipients and declared total)
- Logging configuration

Settings load from environment variables with prefix WALLETFLOW_ (nested
fields use "__", e.g. WALLETFLOW_LOGGING__LEVEL=DEBUG) and an optional .env file.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from .amounts import parse_positive_amount
from .exceptions import WalletflowValidationError
from .models import Recipient, WalletFamily

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkConfig:
    """Configuration for an EVM network a wallet can be switched to."""
    chain_id: int
    name: str
    display_name: str
    rpc_urls: List[str] = field(default_factory=list)
    native_symbol: str = "ETH"
    native_decimals: int = 18
    explorer_url: str = ""
    is_testnet: bool = False

    @property
    def chain_id_hex(self) -> str:
        """Chain ID in the 0x-prefixed form EIP-1193 providers report."""
        return hex(self.chain_id)

    def to_add_chain_params(self) -> Dict[str, Any]:
        """Parameters for wallet_addEthereumChain (EIP-3085)."""
        params: Dict[str, Any] = {
            "chainId": self.chain_id_hex,
            "chainName": self.display_name,
            "nativeCurrency": {
                "name": self.native_symbol,
                "symbol": self.native_symbol,
                "decimals": self.native_decimals,
            },
            "rpcUrls": list(self.rpc_urls),
        }
        if self.explorer_url:
            params["blockExplorerUrls"] = [self.explorer_url]
        return params


def _network(
    chain_id: int,
    name: str,
    display_name: str,
    rpc_urls: List[str],
    native_symbol: str,
    explorer_url: str,
    is_testnet: bool = False,
) -> NetworkConfig:
    return NetworkConfig(
        chain_id=chain_id,
        name=name,
        display_name=display_name,
        rpc_urls=rpc_urls,
        native_symbol=native_symbol,
        explorer_url=explorer_url,
        is_testnet=is_testnet,
    )


NETWORKS: Dict[str, NetworkConfig] = {
    "bsc_testnet": _network(
        97, "bsc_testnet", "BNB Smart Chain Testnet",
        ["https://data-seed-prebsc-1-s1.binance.org:8545"],
        "tBNB", "https://testnet.bscscan.com", is_testnet=True,
    ),
    "bsc": _network(
        56, "bsc", "BNB Smart Chain",
        ["https://bsc-dataseed.binance.org"],
        "BNB", "https://bscscan.com",
    ),
    "ethereum": _network(
        1, "ethereum", "Ethereum",
        ["https://eth.llamarpc.com", "https://ethereum-rpc.publicnode.com"],
        "ETH", "https://etherscan.io",
    ),
    "ethereum_sepolia": _network(
        11155111, "ethereum_sepolia", "Ethereum Sepolia",
        ["https://rpc.sepolia.org"],
        "ETH", "https://sepolia.etherscan.io", is_testnet=True,
    ),
    "base": _network(
        8453, "base", "Base",
        ["https://mainnet.base.org"],
        "ETH", "https://basescan.org",
    ),
    "base_sepolia": _network(
        84532, "base_sepolia", "Base Sepolia",
        ["https://sepolia.base.org"],
        "ETH", "https://sepolia.basescan.org", is_testnet=True,
    ),
    "polygon": _network(
        137, "polygon", "Polygon",
        ["https://polygon-rpc.com"],
        "MATIC", "https://polygonscan.com",
    ),
}

SOLANA_RPC_URLS: Dict[str, str] = {
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
}


class TokenRef(BaseModel):
    """Reference to the token a distribution moves (contract or mint)."""
    address: str
    symbol: str = "USDT"
    decimals: int = 18

    model_config = {"frozen": True}


class RecipientConfig(BaseModel):
    """One configured distribution recipient."""
    address: str
    amount: str

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        """Keep amounts as positive decimal strings."""
        try:
            return str(parse_positive_amount(str(v)))
        except WalletflowValidationError as e:
            raise ValueError(e.message) from e


class DistributionPolicy(BaseModel):
    """Ordered recipients and the declared total they must add up to."""
    total: Optional[str] = None
    recipients: List[RecipientConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_total(self) -> "DistributionPolicy":
        if self.total is not None and self.recipients:
            try:
                declared = parse_positive_amount(self.total, field="total")
            except WalletflowValidationError as e:
                raise ValueError(e.message) from e
            summed = sum((Decimal(r.amount) for r in self.recipients), Decimal("0"))
            if summed != declared:
                raise ValueError(
                    f"Distribution recipients sum to {summed}, declared total is {declared}"
                )
        return self

    def to_recipients(self) -> List[Recipient]:
        """Recipients in execution order."""
        return [Recipient(address=r.address, amount=r.amount) for r in self.recipients]


class LoggingConfig(BaseSettings):
    """Logging configuration for wallet operations."""
    level: str = "INFO"
    json_format: bool = False

    # Sensitive data handling
    mask_addresses: bool = False

    # Audit logging
    audit_log_enabled: bool = True
    audit_log_path: Optional[str] = None  # None = use default logger


class WalletflowSettings(BaseSettings):
    """Main walletflow configuration."""

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"

    # Detection: installed-extension state can change after start-up
    detect_interval_seconds: float = 2.0
    include_uninstalled: bool = False

    # Reconciliation
    settlement_delay_seconds: float = 5.0

    # Connection behavior
    connect_policy: Literal["reject", "replace"] = "reject"
    enforce_network: bool = True
    load_balances_on_connect: bool = True

    # EVM family
    evm_network: str = "bsc_testnet"
    evm_token: Optional[TokenRef] = Field(default_factory=lambda: TokenRef(
        address="0x337610d27c682E347C9cD60BD4b3b107C9d34dDd",
        symbol="USDT",
        decimals=18,
    ))

    # Bitcoin family
    bitcoin_network: str = "mainnet"

    # Solana family
    solana_cluster: str = "mainnet-beta"
    solana_rpc_url: str = ""
    solana_commitment: str = "confirmed"
    solana_token: Optional[TokenRef] = Field(default_factory=lambda: TokenRef(
        address="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
        symbol="USDT",
        decimals=6,
    ))

    http_timeout_seconds: float = 30.0

    # Distribution policy
    distribution: DistributionPolicy = Field(default_factory=DistributionPolicy)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        env_prefix = "WALLETFLOW_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"

    @field_validator("evm_network")
    @classmethod
    def validate_evm_network(cls, v: str) -> str:
        if v not in NETWORKS:
            raise ValueError(f"Unknown EVM network: {v}. Known: {', '.join(sorted(NETWORKS))}")
        return v

    @field_validator("detect_interval_seconds", "settlement_delay_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Intervals must not be negative")
        return v

    @property
    def network(self) -> NetworkConfig:
        """The EVM network wallets are expected to be on."""
        return NETWORKS[self.evm_network]

    @property
    def resolved_solana_rpc_url(self) -> str:
        return self.solana_rpc_url or SOLANA_RPC_URLS.get(
            self.solana_cluster, SOLANA_RPC_URLS["mainnet-beta"]
        )

    def token_for(self, family: WalletFamily) -> Optional[TokenRef]:
        """Token moved by a distribution for a wallet family (None = native asset)."""
        if family == WalletFamily.EVM:
            return self.evm_token
        if family == WalletFamily.SOLANA:
            return self.solana_token
        return None


@lru_cache
def load_settings(env_file: str | None = None) -> WalletflowSettings:
    """Load WalletflowSettings once per process to keep services consistent."""
    env_path = Path(env_file) if env_file else None
    return WalletflowSettings(_env_file=env_path)

"""EIP-1193 provider adapter (MetaMask, Trust Wallet, SafePal, Coinbase Wallet)."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from eth_abi import encode
from web3 import Web3

from walletflow.amounts import to_minor_units
from walletflow.config import NetworkConfig, TokenRef
from walletflow.exceptions import (
    NetworkMismatchError,
    ProviderUnavailableError,
    WalletflowValidationError,
)
from walletflow.models import WalletFamily
from walletflow.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

# ERC-20 function selectors
_TRANSFER_SELECTOR = bytes(Web3.keccak(text="transfer(address,uint256)")[:4])
_BALANCE_OF_SELECTOR = bytes(Web3.keccak(text="balanceOf(address)")[:4])


def encode_erc20_transfer(to_address: str, amount: int) -> bytes:
    """Encode ERC20 transfer(address,uint256) calldata."""
    return _TRANSFER_SELECTOR + encode(
        ["address", "uint256"],
        [Web3.to_checksum_address(to_address), amount],
    )


def encode_erc20_balance_of(owner: str) -> bytes:
    """Encode ERC20 balanceOf(address) calldata."""
    return _BALANCE_OF_SELECTOR + encode(["address"], [Web3.to_checksum_address(owner)])


def normalize_chain_id(raw: Any) -> str:
    """Normalize a reported chain id (hex string, decimal string or int) to 0x-hex."""
    if isinstance(raw, int):
        return hex(raw)
    text = str(raw).strip().lower()
    if text.startswith("0x"):
        return hex(int(text, 16))
    return hex(int(text))


def _hex_to_int(value: Optional[str]) -> int:
    if not value or value == "0x":
        return 0
    return int(value, 16)


class EVMProviderAdapter(ProviderAdapter):
    """Adapter for injected EIP-1193 providers."""

    family = WalletFamily.EVM

    def __init__(self, handle: Any, network: NetworkConfig, wallet: str = ""):
        super().__init__(handle, wallet=wallet)
        self._network = network

    @property
    def network(self) -> NetworkConfig:
        return self._network

    @property
    def expected_chain_id(self) -> str:
        return self._network.chain_id_hex

    async def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """EIP-1193 request({method, params})."""
        return await self._invoke("request", {"method": method, "params": params or []})

    async def connect(self) -> str:
        accounts = await self._request("eth_requestAccounts")
        if not accounts:
            raise ProviderUnavailableError(
                f"{self.wallet} returned no accounts",
                wallet=self.wallet,
            )
        return self._account_address(accounts[0], Web3.to_checksum_address)

    @property
    def native_decimals(self) -> int:
        return self._network.native_decimals

    async def get_chain_id(self) -> str:
        raw = await self._request("eth_chainId")
        try:
            return normalize_chain_id(raw)
        except (TypeError, ValueError) as e:
            raise NetworkMismatchError(
                f"{self.wallet} reported an unparseable chain id: {raw!r}",
                expected=self.expected_chain_id,
                actual=str(raw),
                wallet=self.wallet,
            ) from e

    async def ensure_network(self) -> str:
        """Switch the wallet to the configured network, adding it if unknown."""
        chain_id = await self.get_chain_id()
        if chain_id == self.expected_chain_id:
            return chain_id

        logger.info(
            "Switching %s from %s to %s (%s)",
            self.wallet, chain_id, self.expected_chain_id, self._network.display_name,
        )
        try:
            await self._request(
                "wallet_switchEthereumChain",
                [{"chainId": self.expected_chain_id}],
            )
        except NetworkMismatchError as e:
            # 4902: the wallet does not know the chain yet
            if e.provider_code != 4902:
                raise
            await self._request(
                "wallet_addEthereumChain",
                [self._network.to_add_chain_params()],
            )

        chain_id = await self.get_chain_id()
        if chain_id != self.expected_chain_id:
            raise NetworkMismatchError(
                f"{self.wallet} stayed on {chain_id} after switching to {self._network.display_name}",
                expected=self.expected_chain_id,
                actual=chain_id,
                wallet=self.wallet,
            )
        return chain_id

    async def request_transfer(
        self,
        sender: str,
        recipient: str,
        amount: str,
        token: Optional[TokenRef] = None,
    ) -> str:
        if not self.is_valid_address(recipient):
            raise WalletflowValidationError(f"Invalid EVM address: {recipient}", field="recipient")

        if token is None:
            tx = {
                "from": sender,
                "to": Web3.to_checksum_address(recipient),
                "value": hex(to_minor_units(amount, self._network.native_decimals)),
            }
        else:
            data = encode_erc20_transfer(recipient, to_minor_units(amount, token.decimals))
            tx = {
                "from": sender,
                "to": Web3.to_checksum_address(token.address),
                "value": "0x0",
                "data": "0x" + data.hex(),
            }

        tx_hash = await self._request("eth_sendTransaction", [tx])
        return str(tx_hash)

    async def get_native_balance(self, address: str) -> str:
        result = await self._request("eth_getBalance", [address, "latest"])
        return self._balance(result, self._network.native_decimals, parse=_hex_to_int)

    async def get_token_balance(self, address: str, token: TokenRef) -> str:
        call = {
            "to": Web3.to_checksum_address(token.address),
            "data": "0x" + encode_erc20_balance_of(address).hex(),
        }
        result = await self._request("eth_call", [call, "latest"])
        return self._balance(result, token.decimals, parse=_hex_to_int)

    def is_valid_address(self, address: str) -> bool:
        return bool(address) and Web3.is_address(address)

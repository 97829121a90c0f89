"""
Tests for the EIP-1193 provider adapter.

Tests cover:
- Account access and chain id normalization
- Network switching, including adding an unknown chain
- Native and ERC-20 transfer requests
- Balance reads
- Error normalization at the adapter boundary
"""
from __future__ import annotations

import pytest
from web3 import Web3

from walletflow.config import NETWORKS, TokenRef
from walletflow.exceptions import (
    NetworkMismatchError,
    ProviderUnavailableError,
    UnsupportedOperationError,
    UserRejectedError,
    WalletflowValidationError,
)
from walletflow.providers.evm import (
    EVMProviderAdapter,
    encode_erc20_balance_of,
    encode_erc20_transfer,
    normalize_chain_id,
)

from conftest import EVM_RECIPIENTS, EVM_SENDER, FakeEIP1193Provider, ProviderRPCError

USDT = TokenRef(address="0x337610d27c682E347C9cD60BD4b3b107C9d34dDd", symbol="USDT", decimals=18)


@pytest.fixture
def adapter(evm_provider):
    return EVMProviderAdapter(evm_provider, NETWORKS["bsc_testnet"], wallet="metamask")


class TestEncoding:
    """Tests for ERC-20 calldata helpers."""

    def test_transfer_calldata(self):
        data = encode_erc20_transfer(EVM_RECIPIENTS[0], 10**17)
        assert data[:4].hex() == "a9059cbb"
        assert len(data) == 4 + 32 + 32
        assert data[-32:] == (10**17).to_bytes(32, "big")

    def test_balance_of_calldata(self):
        data = encode_erc20_balance_of(EVM_SENDER)
        assert data[:4].hex() == "70a08231"
        assert data[-20:] == bytes.fromhex(EVM_SENDER[2:])

    @pytest.mark.parametrize("raw,expected", [
        ("0x61", "0x61"),
        ("0x0061", "0x61"),
        ("97", "0x61"),
        (97, "0x61"),
    ])
    def test_normalize_chain_id(self, raw, expected):
        assert normalize_chain_id(raw) == expected


class TestEVMProviderAdapter:
    """Tests for EVMProviderAdapter."""

    def test_missing_handle_is_unavailable(self):
        with pytest.raises(ProviderUnavailableError):
            EVMProviderAdapter(None, NETWORKS["bsc_testnet"])

    @pytest.mark.asyncio
    async def test_connect_returns_checksum_address(self, adapter):
        address = await adapter.connect()
        assert address == Web3.to_checksum_address(EVM_SENDER)

    @pytest.mark.asyncio
    async def test_connect_without_accounts(self):
        adapter = EVMProviderAdapter(FakeEIP1193Provider(accounts=[]), NETWORKS["bsc_testnet"])
        with pytest.raises(ProviderUnavailableError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_connect_malformed_account(self):
        adapter = EVMProviderAdapter(FakeEIP1193Provider(accounts=["not-an-address"]), NETWORKS["bsc_testnet"])
        with pytest.raises(ProviderUnavailableError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_unparseable_chain_id(self, adapter, evm_provider):
        evm_provider.chain_id = "bsc-testnet"
        with pytest.raises(NetworkMismatchError) as exc_info:
            await adapter.get_chain_id()
        assert exc_info.value.expected == "0x61"

    @pytest.mark.asyncio
    async def test_malformed_balance(self, adapter, evm_provider):
        evm_provider.balance = "garbage"
        with pytest.raises(ProviderUnavailableError):
            await adapter.get_native_balance(EVM_SENDER)

    def test_decimals(self, adapter):
        assert adapter.decimals_for(None) == 18
        assert adapter.decimals_for(TokenRef(address="0x1", decimals=6)) == 6

    @pytest.mark.asyncio
    async def test_connect_rejected(self, adapter, evm_provider):
        """A 4001 from the provider prompt becomes UserRejected."""
        evm_provider.errors["eth_requestAccounts"] = ProviderRPCError(4001, "User rejected the request.")
        with pytest.raises(UserRejectedError) as exc_info:
            await adapter.connect()
        assert exc_info.value.provider_code == 4001
        assert exc_info.value.details["wallet"] == "metamask"

    @pytest.mark.asyncio
    async def test_ensure_network_already_on_chain(self, adapter, evm_provider):
        assert await adapter.ensure_network() == "0x61"
        assert "wallet_switchEthereumChain" not in evm_provider.calls

    @pytest.mark.asyncio
    async def test_ensure_network_switches(self, evm_provider):
        evm_provider.chain_id = "0x1"
        adapter = EVMProviderAdapter(evm_provider, NETWORKS["bsc_testnet"])

        assert await adapter.ensure_network() == "0x61"
        assert "wallet_switchEthereumChain" in evm_provider.calls
        assert "wallet_addEthereumChain" not in evm_provider.calls

    @pytest.mark.asyncio
    async def test_ensure_network_adds_unknown_chain(self, evm_provider):
        """A 4902 on switch adds the chain to the wallet."""
        evm_provider.chain_id = "0x1"
        evm_provider.known_chains = {"0x1"}
        adapter = EVMProviderAdapter(evm_provider, NETWORKS["bsc_testnet"])

        assert await adapter.ensure_network() == "0x61"
        assert evm_provider.calls.count("wallet_addEthereumChain") == 1

    @pytest.mark.asyncio
    async def test_ensure_network_switch_rejected(self, evm_provider):
        evm_provider.chain_id = "0x1"
        evm_provider.errors["wallet_switchEthereumChain"] = ProviderRPCError(4001, "User rejected")
        adapter = EVMProviderAdapter(evm_provider, NETWORKS["bsc_testnet"])

        with pytest.raises(UserRejectedError):
            await adapter.ensure_network()

    @pytest.mark.asyncio
    async def test_ensure_network_wallet_ignores_switch(self, evm_provider):
        """A wallet that accepts the switch but stays put is a mismatch."""
        class StubbornProvider(FakeEIP1193Provider):
            async def request(self, args):
                if args["method"] == "wallet_switchEthereumChain":
                    return None
                return await super().request(args)

        provider = StubbornProvider(chain_id="0x1")
        adapter = EVMProviderAdapter(provider, NETWORKS["bsc_testnet"])

        with pytest.raises(NetworkMismatchError) as exc_info:
            await adapter.ensure_network()
        assert exc_info.value.expected == "0x61"
        assert exc_info.value.actual == "0x1"

    @pytest.mark.asyncio
    async def test_native_transfer(self, adapter, evm_provider):
        tx_hash = await adapter.request_transfer(EVM_SENDER, EVM_RECIPIENTS[0], "0.5")

        assert tx_hash == "0x" + f"{1:064x}"
        tx = evm_provider.sent[0]
        assert tx["to"] == Web3.to_checksum_address(EVM_RECIPIENTS[0])
        assert tx["value"] == hex(5 * 10**17)
        assert "data" not in tx

    @pytest.mark.asyncio
    async def test_token_transfer(self, adapter, evm_provider):
        await adapter.request_transfer(EVM_SENDER, EVM_RECIPIENTS[1], "0.10", token=USDT)

        tx = evm_provider.sent[0]
        assert tx["to"] == USDT.address
        assert tx["value"] == "0x0"
        assert tx["data"] == "0x" + encode_erc20_transfer(EVM_RECIPIENTS[1], 10**17).hex()

    @pytest.mark.asyncio
    async def test_transfer_invalid_recipient(self, adapter, evm_provider):
        with pytest.raises(WalletflowValidationError):
            await adapter.request_transfer(EVM_SENDER, "not-an-address", "0.10")
        assert "eth_sendTransaction" not in evm_provider.calls

    @pytest.mark.asyncio
    async def test_balances(self, adapter):
        assert await adapter.get_native_balance(EVM_SENDER) == "1.00"
        assert await adapter.get_token_balance(EVM_SENDER, USDT) == "0.50"

    @pytest.mark.asyncio
    async def test_empty_eth_call_result_is_zero(self, adapter, evm_provider):
        evm_provider.token_balance = "0x"
        assert await adapter.get_token_balance(EVM_SENDER, USDT) == "0.00"

    @pytest.mark.asyncio
    async def test_unsupported_method(self, adapter, evm_provider):
        evm_provider.errors["eth_getBalance"] = ProviderRPCError(-32601, "Method not found")
        with pytest.raises(UnsupportedOperationError):
            await adapter.get_native_balance(EVM_SENDER)

    @pytest.mark.asyncio
    async def test_handle_without_request(self):
        adapter = EVMProviderAdapter(object(), NETWORKS["bsc_testnet"])
        with pytest.raises(UnsupportedOperationError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_disconnect_is_noop_without_capability(self, adapter):
        await adapter.disconnect()

    def test_is_valid_address(self, adapter):
        assert adapter.is_valid_address(EVM_RECIPIENTS[0])
        assert not adapter.is_valid_address("")
        assert not adapter.is_valid_address("0x123")

"""
Tests for the sats-connect style Bitcoin provider adapter.
"""
from __future__ import annotations

import pytest

from walletflow.config import TokenRef
from walletflow.exceptions import (
    NetworkMismatchError,
    ProviderUnavailableError,
    UnsupportedOperationError,
    UserRejectedError,
)
from walletflow.providers.bitcoin import BitcoinProviderAdapter

from conftest import BTC_ADDRESS, BTC_RECIPIENT


@pytest.fixture
def adapter(bitcoin_provider):
    return BitcoinProviderAdapter(bitcoin_provider, network="mainnet", wallet="xverse")


class TestBitcoinProviderAdapter:
    """Tests for BitcoinProviderAdapter."""

    @pytest.mark.asyncio
    async def test_connect_picks_payment_address(self, adapter, bitcoin_provider):
        assert await adapter.connect() == BTC_ADDRESS
        method, params = bitcoin_provider.calls[0]
        assert method == "getAddresses"
        assert params["purposes"] == ["payment"]

    @pytest.mark.asyncio
    async def test_connect_rejected(self, adapter, bitcoin_provider):
        """-32000 in the response envelope is a user rejection."""
        bitcoin_provider.errors["getAddresses"] = {"code": -32000, "message": "User rejected"}
        with pytest.raises(UserRejectedError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_connect_without_addresses(self, adapter, bitcoin_provider):
        async def empty(method, params=None):
            return {"status": "success", "result": {"addresses": []}}

        bitcoin_provider.request = empty
        with pytest.raises(ProviderUnavailableError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_chain_id(self, adapter):
        assert adapter.expected_chain_id == "bitcoin:mainnet"
        assert await adapter.ensure_network() == "bitcoin:mainnet"

    @pytest.mark.asyncio
    async def test_chain_id_falls_back_when_unsupported(self, adapter, bitcoin_provider):
        bitcoin_provider.errors["wallet_getNetwork"] = {"code": -32601, "message": "Method not found"}
        assert await adapter.get_chain_id() == "bitcoin:mainnet"

    @pytest.mark.asyncio
    async def test_network_mismatch(self, bitcoin_provider):
        bitcoin_provider.network = "Testnet"
        adapter = BitcoinProviderAdapter(bitcoin_provider, network="mainnet")
        with pytest.raises(NetworkMismatchError) as exc_info:
            await adapter.ensure_network()
        assert exc_info.value.actual == "bitcoin:testnet"

    @pytest.mark.asyncio
    async def test_transfer_in_satoshis(self, adapter, bitcoin_provider):
        txid = await adapter.request_transfer(BTC_ADDRESS, BTC_RECIPIENT, "0.0015")

        assert txid == "ab" * 32
        method, params = bitcoin_provider.calls[-1]
        assert method == "sendTransfer"
        assert params["recipients"] == [{"address": BTC_RECIPIENT, "amount": 150_000}]

    @pytest.mark.asyncio
    async def test_token_transfer_unsupported(self, adapter):
        token = TokenRef(address="x", symbol="USDT", decimals=6)
        with pytest.raises(UnsupportedOperationError):
            await adapter.request_transfer(BTC_ADDRESS, BTC_RECIPIENT, "1", token=token)

    @pytest.mark.asyncio
    async def test_transfer_rejected(self, adapter, bitcoin_provider):
        bitcoin_provider.errors["sendTransfer"] = {"code": -32000, "message": "User rejected the request"}
        with pytest.raises(UserRejectedError):
            await adapter.request_transfer(BTC_ADDRESS, BTC_RECIPIENT, "0.0015")

    @pytest.mark.asyncio
    async def test_native_balance(self, adapter):
        assert await adapter.get_native_balance(BTC_ADDRESS) == "0.0015"

    @pytest.mark.asyncio
    async def test_token_balance_unsupported(self, adapter):
        with pytest.raises(UnsupportedOperationError):
            await adapter.get_token_balance(BTC_ADDRESS, TokenRef(address="x"))

    def test_is_valid_address(self, adapter):
        assert adapter.is_valid_address(BTC_RECIPIENT)
        assert adapter.is_valid_address("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2")
        assert not adapter.is_valid_address("0x" + "ab" * 20)
        assert not adapter.is_valid_address("")

    @pytest.mark.asyncio
    async def test_connect_blank_address(self, adapter, bitcoin_provider):
        bitcoin_provider.address = ""
        with pytest.raises(ProviderUnavailableError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_chain_id_with_unstructured_result(self, adapter, bitcoin_provider):
        async def bare(method, params=None):
            return {"status": "success", "result": "Mainnet"}

        bitcoin_provider.request = bare
        assert await adapter.get_chain_id() == "bitcoin:mainnet"

    @pytest.mark.asyncio
    async def test_malformed_balance(self, adapter, bitcoin_provider):
        async def broken(method, params=None):
            return {"status": "success", "result": {"total": "n/a"}}

        bitcoin_provider.request = broken
        with pytest.raises(ProviderUnavailableError):
            await adapter.get_native_balance(BTC_ADDRESS)

    def test_decimals(self, adapter):
        assert adapter.decimals_for(None) == 8

"""
Pytest configuration for walletflow tests.

Provider handles here are in-memory stand-ins for the objects wallet
extensions inject into the environment.
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

from walletflow.config import (  # noqa: E402
    DistributionPolicy,
    LoggingConfig,
    RecipientConfig,
    WalletflowSettings,
)

EVM_SENDER = "0x" + "ab" * 20
EVM_RECIPIENTS = ["0x" + "a1" * 20, "0x" + "b2" * 20, "0x" + "c3" * 20]
BTC_ADDRESS = "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"
BTC_RECIPIENT = "bc1q9vza2e8x573nczrlzms0wvx3gsqjx7vavgkx0l"
SOL_ADDRESS = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
SOL_RECIPIENT = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"
SOL_BLOCKHASH = "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N"


class ProviderRPCError(Exception):
    """Error shape EIP-1193 providers throw."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class FakeEIP1193Provider:
    """Injected EVM provider answering request({method, params})."""

    def __init__(
        self,
        accounts: Optional[List[str]] = None,
        chain_id: str = "0x61",
        known_chains: Optional[set] = None,
        is_metamask: bool = True,
    ):
        self.isMetaMask = is_metamask
        self.accounts = accounts if accounts is not None else [EVM_SENDER]
        self.chain_id = chain_id
        self.known_chains = set(known_chains or {"0x1", "0x61"})
        self.balance = hex(10**18)
        self.token_balance = hex(5 * 10**17)
        self.errors: Dict[str, Exception] = {}
        self.transfer_errors: Dict[int, Exception] = {}
        self.calls: List[str] = []
        self.sent: List[Dict[str, Any]] = []
        self.connect_gate: Optional[asyncio.Event] = None
        self.send_gate: Optional[asyncio.Event] = None
        self.send_started = asyncio.Event()
        self._transfer_attempts = 0

    async def request(self, args: Dict[str, Any]) -> Any:
        method = args["method"]
        params = args.get("params") or []
        self.calls.append(method)
        if method in self.errors:
            raise self.errors[method]

        if method == "eth_requestAccounts":
            if self.connect_gate is not None:
                await self.connect_gate.wait()
            return list(self.accounts)
        if method == "eth_chainId":
            return self.chain_id
        if method == "wallet_switchEthereumChain":
            target = params[0]["chainId"]
            if target not in self.known_chains:
                raise ProviderRPCError(4902, f"Unrecognized chain ID {target}")
            self.chain_id = target
            return None
        if method == "wallet_addEthereumChain":
            self.known_chains.add(params[0]["chainId"])
            self.chain_id = params[0]["chainId"]
            return None
        if method == "eth_sendTransaction":
            index = self._transfer_attempts
            self._transfer_attempts += 1
            self.send_started.set()
            if self.send_gate is not None:
                await self.send_gate.wait()
            if index in self.transfer_errors:
                raise self.transfer_errors[index]
            self.sent.append(params[0])
            return "0x" + f"{index + 1:064x}"
        if method == "eth_getBalance":
            return self.balance
        if method == "eth_call":
            return self.token_balance
        raise ProviderRPCError(-32601, f"The method {method} does not exist")


class FakeBitcoinProvider:
    """sats-connect style provider answering request(method, params) with envelopes."""

    def __init__(self, address: str = BTC_ADDRESS, network: str = "Mainnet", balance_sats: int = 150_000):
        self.address = address
        self.network = network
        self.balance_sats = balance_sats
        self.errors: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append((method, params))
        if method in self.errors:
            return {"status": "error", "error": self.errors[method]}

        if method == "getAddresses":
            return {"status": "success", "result": {"addresses": [
                {"address": "bc1pordinalsaddressxxxxxxxxxxxxxxxxxxxx", "purpose": "ordinals"},
                {"address": self.address, "purpose": "payment"},
            ]}}
        if method == "wallet_getNetwork":
            return {"status": "success", "result": {"bitcoin": {"name": self.network}}}
        if method == "sendTransfer":
            return {"status": "success", "result": {"txid": "ab" * 32}}
        if method == "getBalance":
            return {"status": "success", "result": {
                "confirmed": str(self.balance_sats),
                "unconfirmed": "0",
                "total": str(self.balance_sats),
            }}
        return {"status": "error", "error": {"code": -32601, "message": "Method not found"}}


class FakePhantomProvider:
    """Phantom-style provider with connect / signAndSendTransaction / disconnect."""

    isPhantom = True

    def __init__(self, public_key: str = SOL_ADDRESS):
        self._public_key = public_key
        self.publicKey = None
        self.connect_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.sent: List[Dict[str, Any]] = []
        self.disconnected = False

    async def connect(self) -> Dict[str, Any]:
        if self.connect_error is not None:
            raise self.connect_error
        self.publicKey = self._public_key
        return {"publicKey": self._public_key}

    async def signAndSendTransaction(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(tx)
        return {"signature": f"5sig{len(self.sent)}"}

    async def disconnect(self) -> None:
        self.disconnected = True


def make_solana_rpc(lamports: int = 2_500_000_000, token_amount: str = "1500000") -> Mock:
    """Solana RPC client double with AsyncMock read methods."""
    rpc = Mock()
    rpc.get_balance = AsyncMock(return_value=lamports)
    rpc.get_latest_blockhash = AsyncMock(return_value=SOL_BLOCKHASH)
    rpc.get_token_accounts_by_owner = AsyncMock(return_value=[{
        "pubkey": "TokenAccount1111111111111111111111111111111",
        "account": {"data": {"parsed": {"info": {"tokenAmount": {"amount": token_amount}}}}},
    }])
    rpc.close = AsyncMock()
    return rpc


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def evm_provider():
    return FakeEIP1193Provider()


@pytest.fixture
def bitcoin_provider():
    return FakeBitcoinProvider()


@pytest.fixture
def phantom_provider():
    return FakePhantomProvider()


@pytest.fixture
def solana_rpc():
    return make_solana_rpc()


@pytest.fixture
def environment(evm_provider, bitcoin_provider, phantom_provider):
    """Environment with MetaMask, Xverse and Phantom injected."""
    return {
        "ethereum": evm_provider,
        "XverseProviders": {"BitcoinProvider": bitcoin_provider},
        "phantom": {"solana": phantom_provider},
    }


@pytest.fixture
def distribution_policy():
    """Reference deployment: 3 recipients x 0.10 = 0.30 USDT."""
    return DistributionPolicy(
        total="0.30",
        recipients=[RecipientConfig(address=a, amount="0.10") for a in EVM_RECIPIENTS],
    )


@pytest.fixture
def settings(distribution_policy):
    """Settings with no settlement delay and no initial balance load."""
    return WalletflowSettings(
        settlement_delay_seconds=0,
        detect_interval_seconds=0.01,
        load_balances_on_connect=False,
        distribution=distribution_policy,
        logging=LoggingConfig(audit_log_enabled=False),
    )

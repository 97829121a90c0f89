"""Solana provider adapter (Phantom) and the JSON-RPC client it reads through."""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Optional

import httpx

from walletflow.amounts import from_minor_units, to_minor_units
from walletflow.config import TokenRef
from walletflow.exceptions import (
    ProviderUnavailableError,
    UnsupportedOperationError,
)
from walletflow.models import WalletFamily
from walletflow.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

LAMPORT_DECIMALS = 9

# Solana program IDs
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

_PUBKEY_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class SolanaRPCError(Exception):
    """Solana RPC error."""
    def __init__(self, message: str, error_data: dict[str, Any] | None = None):
        super().__init__(message)
        self.error_data = error_data or {}


class SolanaRPCClient:
    """Async Solana JSON-RPC client.

    Uses raw httpx; only the read methods a connected wallet cannot answer
    itself (balances, token accounts, blockhash) are implemented.
    """

    def __init__(self, rpc_url: str, commitment: str = "confirmed", timeout: float = 30.0) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self._client = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call to Solana."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        resp = await self._client.post(self.rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            raise SolanaRPCError(data["error"].get("message", "Unknown RPC error"), data["error"])
        return data.get("result")

    async def get_balance(self, pubkey: str) -> int:
        """Get SOL balance in lamports."""
        result = await self._rpc("getBalance", [pubkey, {"commitment": self.commitment}])
        return result["value"]

    async def get_token_accounts_by_owner(
        self, owner: str, mint: str
    ) -> list[dict[str, Any]]:
        """Get all token accounts for an owner and mint."""
        result = await self._rpc(
            "getTokenAccountsByOwner",
            [
                owner,
                {"mint": mint},
                {"encoding": "jsonParsed", "commitment": self.commitment},
            ],
        )
        return result.get("value", [])

    async def get_latest_blockhash(self) -> str:
        """Get latest blockhash for transaction building."""
        result = await self._rpc(
            "getLatestBlockhash", [{"commitment": self.commitment}]
        )
        return result["value"]["blockhash"]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def _token_amount(account: dict[str, Any]) -> int:
    info = account["account"]["data"]["parsed"]["info"]
    return int(info["tokenAmount"]["amount"])


class SolanaProviderAdapter(ProviderAdapter):
    """Adapter for Phantom-style providers.

    The provider signs and broadcasts; cluster reads go through SolanaRPCClient
    because the provider object exposes no balance or blockhash queries.
    """

    family = WalletFamily.SOLANA
    native_decimals = LAMPORT_DECIMALS

    def __init__(
        self,
        handle: Any,
        rpc: SolanaRPCClient,
        cluster: str = "mainnet-beta",
        wallet: str = "",
    ):
        super().__init__(handle, wallet=wallet)
        self._rpc = rpc
        self._cluster = cluster

    @property
    def expected_chain_id(self) -> str:
        return f"solana:{self._cluster}"

    async def _read(self, coro_factory, what: str) -> Any:
        """Run an RPC read, normalizing transport and RPC failures."""
        try:
            return await coro_factory()
        except (httpx.HTTPError, SolanaRPCError, KeyError, TypeError) as e:
            raise ProviderUnavailableError(
                f"Solana RPC {what} failed: {e}",
                wallet=self.wallet,
            ) from e

    async def connect(self) -> str:
        response = await self._invoke("connect")
        public_key = None
        if isinstance(response, Mapping):
            public_key = response.get("publicKey")
        elif response is not None:
            public_key = getattr(response, "publicKey", None)
        if public_key is None:
            public_key = getattr(self.handle, "publicKey", None)
        if public_key is None:
            raise ProviderUnavailableError(
                f"{self.wallet} returned no public key",
                wallet=self.wallet,
            )
        return self._account_address(public_key)

    async def get_chain_id(self) -> str:
        # Phantom does not report its cluster; the configured one is authoritative
        return self.expected_chain_id

    async def _build_transfer(
        self,
        sender: str,
        recipient: str,
        amount: str,
        token: Optional[TokenRef],
    ) -> dict[str, Any]:
        blockhash = await self._read(self._rpc.get_latest_blockhash, "getLatestBlockhash")

        if token is None:
            return {
                "type": "sol_transfer",
                "sender": sender,
                "recipient": recipient,
                "lamports": to_minor_units(amount, LAMPORT_DECIMALS),
                "blockhash": blockhash,
                "programs": {"system": SYSTEM_PROGRAM_ID},
            }

        sender_accounts = await self._read(
            lambda: self._rpc.get_token_accounts_by_owner(sender, token.address),
            "getTokenAccountsByOwner",
        )
        if not sender_accounts:
            raise ProviderUnavailableError(
                f"{sender} holds no {token.symbol} token account",
                wallet=self.wallet,
            )
        recipient_accounts = await self._read(
            lambda: self._rpc.get_token_accounts_by_owner(recipient, token.address),
            "getTokenAccountsByOwner",
        )

        return {
            "type": "spl_transfer",
            "sender": sender,
            "sender_ata": sender_accounts[0]["pubkey"],
            "recipient": recipient,
            "recipient_ata": recipient_accounts[0]["pubkey"] if recipient_accounts else None,
            "create_recipient_ata": not recipient_accounts,
            "mint": token.address,
            "amount": to_minor_units(amount, token.decimals),
            "decimals": token.decimals,
            "blockhash": blockhash,
            "programs": {
                "token": TOKEN_PROGRAM_ID,
                "ata": ASSOCIATED_TOKEN_PROGRAM_ID,
                "system": SYSTEM_PROGRAM_ID,
            },
        }

    async def request_transfer(
        self,
        sender: str,
        recipient: str,
        amount: str,
        token: Optional[TokenRef] = None,
    ) -> str:
        tx = await self._build_transfer(sender, recipient, amount, token)
        logger.info(
            "Requesting %s from %s: %s -> %s",
            tx["type"], self.wallet, amount, recipient,
        )
        result = await self._invoke("signAndSendTransaction", tx)
        signature = result.get("signature") if isinstance(result, Mapping) else result
        if not signature:
            raise ProviderUnavailableError(
                f"{self.wallet} did not return a signature",
                wallet=self.wallet,
            )
        return str(signature)

    async def get_native_balance(self, address: str) -> str:
        lamports = await self._read(lambda: self._rpc.get_balance(address), "getBalance")
        return self._balance(lamports, LAMPORT_DECIMALS)

    async def get_token_balance(self, address: str, token: TokenRef) -> str:
        accounts = await self._read(
            lambda: self._rpc.get_token_accounts_by_owner(address, token.address),
            "getTokenAccountsByOwner",
        )
        try:
            total = sum(_token_amount(a) for a in accounts)
        except (KeyError, TypeError, ValueError) as e:
            raise UnsupportedOperationError(
                f"Unparseable token account data for {token.symbol}",
                wallet=self.wallet,
            ) from e
        return from_minor_units(total, token.decimals)

    def is_valid_address(self, address: str) -> bool:
        return bool(address) and bool(_PUBKEY_RE.match(address))

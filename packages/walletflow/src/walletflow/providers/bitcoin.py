"""sats-connect style Bitcoin provider adapter (Xverse)."""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Optional

from walletflow.amounts import to_minor_units
from walletflow.config import TokenRef
from walletflow.exceptions import (
    ProviderUnavailableError,
    UnsupportedOperationError,
    exception_from_provider_error,
)
from walletflow.models import WalletFamily
from walletflow.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

SATOSHI_DECIMALS = 8

_BECH32_RE = re.compile(r"^(bc1|tb1|bcrt1)[02-9ac-hj-np-z]{11,87}$", re.IGNORECASE)
_BASE58_RE = re.compile(r"^[123mn][1-9A-HJ-NP-Za-km-z]{25,34}$")


class BitcoinProviderAdapter(ProviderAdapter):
    """Adapter for providers exposing request(method, params) with JSON-RPC envelopes."""

    family = WalletFamily.BITCOIN
    native_decimals = SATOSHI_DECIMALS

    def __init__(self, handle: Any, network: str = "mainnet", wallet: str = ""):
        super().__init__(handle, wallet=wallet)
        self._network = network.lower()

    @property
    def expected_chain_id(self) -> str:
        return f"bitcoin:{self._network}"

    async def _request(self, method: str, params: Optional[dict] = None) -> Any:
        """Call request(method, params) and unwrap the response envelope."""
        response = await self._invoke("request", method, params)
        if isinstance(response, Mapping):
            if response.get("error"):
                raise exception_from_provider_error(
                    response["error"], wallet=self.wallet, method=method,
                )
            if "result" in response:
                return response["result"]
        return response

    async def connect(self) -> str:
        result = await self._request(
            "getAddresses",
            {"purposes": ["payment"], "message": "Connect to distribute funds"},
        )
        addresses = (result or {}).get("addresses", []) if isinstance(result, Mapping) else result or []
        if not addresses:
            raise ProviderUnavailableError(
                f"{self.wallet} returned no addresses",
                wallet=self.wallet,
            )
        entries = [a for a in addresses if isinstance(a, Mapping)]
        payment = next(
            (a for a in entries if a.get("purpose") == "payment"),
            entries[0] if entries else {},
        )
        return self._account_address(payment.get("address"))

    async def get_chain_id(self) -> str:
        try:
            result = await self._request("wallet_getNetwork")
        except UnsupportedOperationError:
            logger.debug("%s cannot report its network; assuming %s", self.wallet, self._network)
            return self.expected_chain_id
        bitcoin = result.get("bitcoin") if isinstance(result, Mapping) else None
        name = (bitcoin.get("name") if isinstance(bitcoin, Mapping) else None) or self._network
        return f"bitcoin:{str(name).lower()}"

    async def request_transfer(
        self,
        sender: str,
        recipient: str,
        amount: str,
        token: Optional[TokenRef] = None,
    ) -> str:
        if token is not None:
            raise UnsupportedOperationError(
                f"{self.wallet} cannot transfer {token.symbol}",
                wallet=self.wallet,
            )
        result = await self._request(
            "sendTransfer",
            {"recipients": [{"address": recipient, "amount": to_minor_units(amount, SATOSHI_DECIMALS)}]},
        )
        txid = result.get("txid") if isinstance(result, Mapping) else result
        if not txid:
            raise ProviderUnavailableError(
                f"{self.wallet} did not return a transaction id",
                wallet=self.wallet,
            )
        return str(txid)

    async def get_native_balance(self, address: str) -> str:
        # The provider reports the balance of its own connected account
        result = await self._request("getBalance")
        total = result.get("total", "0") if isinstance(result, Mapping) else result
        return self._balance(total, SATOSHI_DECIMALS)

    async def get_token_balance(self, address: str, token: TokenRef) -> str:
        raise UnsupportedOperationError(
            f"{self.wallet} has no token balances",
            wallet=self.wallet,
        )

    def is_valid_address(self, address: str) -> bool:
        return bool(address) and bool(_BECH32_RE.match(address) or _BASE58_RE.match(address))

"""Base provider adapter interface."""
from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable, Optional

from walletflow.amounts import from_minor_units
from walletflow.config import TokenRef
from walletflow.exceptions import (
    NetworkMismatchError,
    ProviderUnavailableError,
    UnsupportedOperationError,
    exception_from_provider_error,
)
from walletflow.models import WalletFamily

logger = logging.getLogger(__name__)


def resolve_path(root: Any, path: str) -> Any:
    """Walk a dotted path through mappings or attributes; None if any hop is missing."""
    current = root
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def get_capability(handle: Any, name: str) -> Optional[Any]:
    """Return a callable capability of a provider handle, or None."""
    capability = resolve_path(handle, name)
    return capability if callable(capability) else None


class ProviderAdapter(ABC):
    """Uniform capability surface over one wallet family's provider object.

    Adapters hold a handle and configuration only; every call is a stateless
    bridge to the provider. Raw provider failures are converted into
    ProviderError subclasses here and nowhere else.
    """

    family: WalletFamily
    native_decimals: int

    def __init__(self, handle: Any, wallet: str = ""):
        self._wallet = wallet or self.family.value
        if handle is None:
            raise ProviderUnavailableError(
                f"{self._wallet} is not available in this environment",
                wallet=self._wallet,
            )
        self._handle = handle

    @property
    def wallet(self) -> str:
        return self._wallet

    @property
    def handle(self) -> Any:
        return self._handle

    async def _invoke(self, method_name: str, *args: Any) -> Any:
        """Call a provider method, awaiting it if needed, normalizing failures."""
        method = get_capability(self._handle, method_name)
        if method is None:
            raise UnsupportedOperationError(
                f"{self._wallet} does not support {method_name}",
                wallet=self._wallet,
                details={"method": method_name},
            )
        try:
            result = method(*args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise exception_from_provider_error(e, wallet=self._wallet, method=method_name) from e
        return result

    def _account_address(self, raw: Any, normalize: Callable[[str], str] = str) -> str:
        """Validate the account address a provider reported on connect."""
        address = str(raw).strip() if raw is not None else ""
        if not self.is_valid_address(address):
            raise ProviderUnavailableError(
                f"{self._wallet} reported an invalid account address: {raw!r}",
                wallet=self._wallet,
            )
        try:
            return normalize(address)
        except (TypeError, ValueError) as e:
            raise ProviderUnavailableError(
                f"{self._wallet} reported an invalid account address: {raw!r}",
                wallet=self._wallet,
            ) from e

    def _balance(self, raw: Any, decimals: int, parse: Callable[[Any], int] = int) -> str:
        """Format a raw minor-unit balance; malformed payloads are provider failures."""
        try:
            value = parse(raw)
        except (TypeError, ValueError) as e:
            raise ProviderUnavailableError(
                f"{self._wallet} returned a malformed balance: {raw!r}",
                wallet=self._wallet,
            ) from e
        return from_minor_units(value, decimals)

    def decimals_for(self, token: Optional[TokenRef]) -> int:
        """Decimal places of the asset a transfer of `token` moves."""
        return token.decimals if token is not None else self.native_decimals

    @property
    @abstractmethod
    def expected_chain_id(self) -> str:
        """Chain identifier the deployment expects this family to be on."""
        pass

    @abstractmethod
    async def connect(self) -> str:
        """
        Ask the provider for access and return the active account address.

        May open the provider's own approval prompt.
        """
        pass

    @abstractmethod
    async def get_chain_id(self) -> str:
        """Return the provider's active network identifier."""
        pass

    @abstractmethod
    async def request_transfer(
        self,
        sender: str,
        recipient: str,
        amount: str,
        token: Optional[TokenRef] = None,
    ) -> str:
        """
        Ask the provider to sign and broadcast one transfer.

        Args:
            sender: Connected account address
            recipient: Destination address
            amount: Decimal amount string
            token: Token to move; None moves the family's native asset

        Returns:
            Transaction hash (or signature) reported by the provider
        """
        pass

    @abstractmethod
    async def get_native_balance(self, address: str) -> str:
        """Native asset balance as a decimal string."""
        pass

    @abstractmethod
    async def get_token_balance(self, address: str, token: TokenRef) -> str:
        """Token balance as a decimal string."""
        pass

    @abstractmethod
    def is_valid_address(self, address: str) -> bool:
        """Whether an address is a valid recipient for this family."""
        pass

    async def ensure_network(self) -> str:
        """Verify the provider is on the expected network and return its chain id."""
        chain_id = await self.get_chain_id()
        if chain_id != self.expected_chain_id:
            raise NetworkMismatchError(
                f"{self._wallet} is on {chain_id}, expected {self.expected_chain_id}",
                expected=self.expected_chain_id,
                actual=chain_id,
                wallet=self._wallet,
            )
        return chain_id

    async def disconnect(self) -> None:
        """Advisory disconnect; a no-op for providers without one."""
        if get_capability(self._handle, "disconnect") is None:
            logger.debug("%s exposes no disconnect; releasing handle locally", self._wallet)
            return
        await self._invoke("disconnect")

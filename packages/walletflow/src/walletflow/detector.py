"""
Wallet detection for walletflow.

Probes well-known injection points of the execution environment for wallet
providers and keeps the current, deduplicated list of descriptors fresh.
Extensions can be installed after start-up and the environment sends no
notification for it, so the registry re-probes on a fixed interval.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .models import WalletDescriptor, WalletFamily
from .providers.base import resolve_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletProbe:
    """A well-known injection point and the marker proving which wallet owns it."""
    id: str
    name: str
    icon: str
    family: WalletFamily
    path: str
    marker: Optional[str] = None

    def resolve(self, environment: Any) -> Optional[Any]:
        """Return the provider handle if the injection point is present."""
        provider = resolve_path(environment, self.path)
        if provider is None:
            return None
        if self.marker and not resolve_path(provider, self.marker):
            return None
        return provider


DEFAULT_PROBES: Tuple[WalletProbe, ...] = (
    WalletProbe("metamask", "MetaMask", "🦊", WalletFamily.EVM, "ethereum", "isMetaMask"),
    WalletProbe("trustwallet", "Trust Wallet", "🔷", WalletFamily.EVM, "ethereum", "isTrust"),
    WalletProbe("xverse", "Xverse", "⚡", WalletFamily.BITCOIN, "XverseProviders.BitcoinProvider"),
    WalletProbe("safepal", "SafePal", "🛡️", WalletFamily.EVM, "safepalProvider"),
    WalletProbe("phantom", "Phantom", "👻", WalletFamily.SOLANA, "phantom.solana"),
    WalletProbe("coinbase", "Coinbase Wallet", "🔵", WalletFamily.EVM, "ethereum", "isCoinbaseWallet"),
)

FALLBACK_ICON = "🔗"


def wallet_id_from_name(name: str) -> str:
    return "".join(name.lower().split())


def dedupe_descriptors(descriptors: Sequence[WalletDescriptor]) -> List[WalletDescriptor]:
    """Collapse fuzzy name matches, keeping the first installed match."""
    result: List[WalletDescriptor] = []
    for candidate in descriptors:
        for i, kept in enumerate(result):
            if kept.matches(candidate):
                if not kept.is_installed and candidate.is_installed:
                    result[i] = candidate
                break
        else:
            result.append(candidate)
    return result


class WalletDetector:
    """Produces the wallets available in an environment. Never raises for absence."""

    def __init__(
        self,
        environment: Any,
        probes: Sequence[WalletProbe] = DEFAULT_PROBES,
        include_uninstalled: bool = False,
        fallback_wallets: Sequence[WalletDescriptor] = (),
    ):
        self._environment = environment
        self._probes = tuple(probes)
        self._include_uninstalled = include_uninstalled
        self._fallback_wallets = tuple(fallback_wallets)

    @property
    def environment(self) -> Any:
        return self._environment

    def detect(self) -> List[WalletDescriptor]:
        """Probe every injection point and return the deduplicated descriptors."""
        detected: List[WalletDescriptor] = []
        for probe in self._probes:
            handle = probe.resolve(self._environment)
            if handle is None and not self._include_uninstalled:
                continue
            detected.append(WalletDescriptor(
                name=probe.name,
                icon=probe.icon,
                id=probe.id,
                family=probe.family,
                capability_handle=handle,
                is_installed=handle is not None,
            ))

        # Declared wallets fill gaps the probes missed
        for wallet in self._fallback_wallets:
            if wallet.capability_handle is None:
                continue
            if any(d.matches(wallet) and d.is_installed for d in detected):
                continue
            detected.append(WalletDescriptor(
                name=wallet.name,
                icon=wallet.icon or FALLBACK_ICON,
                id=wallet.id or wallet_id_from_name(wallet.name),
                family=wallet.family,
                capability_handle=wallet.capability_handle,
                is_installed=True,
            ))

        return dedupe_descriptors(detected)


class WalletRegistry:
    """
    Holds the current wallet list and refreshes it periodically.

    Features:
    - Fixed-interval re-detection in a background task
    - Listeners notified only when the list changes
    - Never touches connection or transaction state
    """

    def __init__(self, detector: WalletDetector, interval_seconds: float = 2.0):
        self._detector = detector
        self._interval = interval_seconds
        self._wallets: Tuple[WalletDescriptor, ...] = ()
        self._callbacks: List[Callable[[Tuple[WalletDescriptor, ...]], None]] = []
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def wallets(self) -> Tuple[WalletDescriptor, ...]:
        return self._wallets

    @property
    def is_running(self) -> bool:
        return self._running

    def add_callback(self, callback: Callable[[Tuple[WalletDescriptor, ...]], None]) -> None:
        """Add a callback for wallet list changes."""
        self._callbacks.append(callback)

    def get(self, wallet_id: str) -> Optional[WalletDescriptor]:
        """Look up a descriptor of the current list by id."""
        return next((w for w in self._wallets if w.id == wallet_id), None)

    def refresh(self) -> Tuple[WalletDescriptor, ...]:
        """Run detection once and publish the result if it changed."""
        wallets = tuple(self._detector.detect())
        if wallets != self._wallets:
            logger.info(
                "Wallets changed: %s",
                ", ".join(w.name for w in wallets if w.is_installed) or "none installed",
            )
            self._wallets = wallets
            for callback in self._callbacks:
                try:
                    callback(wallets)
                except Exception as e:
                    logger.error(f"Wallet list callback failed: {e}")
        else:
            # Same wallets; pick up fresh handles without notifying
            self._wallets = wallets
        return self._wallets

    async def start(self) -> None:
        """Start periodic detection."""
        if self._running:
            return

        self.refresh()
        self._running = True
        self._task = asyncio.create_task(self._detect_loop())
        logger.info("Wallet detection started (every %.1fs)", self._interval)

    async def stop(self) -> None:
        """Stop periodic detection."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Wallet detection stopped")

    async def _detect_loop(self) -> None:
        """Main detection loop."""
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Error in wallet detection: {e}")

"""
Post-distribution balance reconciliation.

Transfers change balances only once the network settles them, so after a
successful distribution the balances are re-read after a fixed delay. A
refresh never alters the distribution outcome: failures are logged and the
previous balance for that field is kept.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Set, Tuple

from .config import TokenRef, WalletflowSettings
from .exceptions import ProviderError, ReconciliationError
from .logging_utils import FlowLogger, OperationType
from .providers.base import ProviderAdapter

if TYPE_CHECKING:
    from .connection import ConnectionManager

logger = logging.getLogger(__name__)


def _balance_failure(adapter: ProviderAdapter, what: str, error: Exception) -> None:
    if isinstance(error, ProviderError):
        kind, message = error.kind.value, error.message
    else:
        kind, message = type(error).__name__, str(error)
    failure = ReconciliationError(
        f"{what} balance query failed: {message}",
        details={"wallet": adapter.wallet, "kind": kind},
    )
    logger.warning(f"{failure.message} ({adapter.wallet})")


async def fetch_balances(
    adapter: ProviderAdapter,
    address: str,
    token: Optional[TokenRef],
) -> Tuple[Optional[str], Optional[str]]:
    """
    Read native and token balances, one field at a time.

    Returns:
        (native, token) where a field is None if its query failed or no token
        is configured
    """
    native_balance: Optional[str] = None
    token_balance: Optional[str] = None

    try:
        native_balance = await adapter.get_native_balance(address)
    except Exception as e:
        _balance_failure(adapter, "Native", e)

    if token is not None:
        try:
            token_balance = await adapter.get_token_balance(address, token)
        except Exception as e:
            _balance_failure(adapter, token.symbol, e)

    return native_balance, token_balance


class BalanceReconciler:
    """
    Refreshes the connected wallet's balances.

    Features:
    - One-shot deferred refresh after a settlement delay
    - Results keyed to the connection session; stale ones are discarded
    - Pending refreshes cancelled on disconnect
    """

    def __init__(
        self,
        connection: "ConnectionManager",
        settings: WalletflowSettings,
        delay_seconds: Optional[float] = None,
        flow_logger: Optional[FlowLogger] = None,
    ):
        self._connection = connection
        self._settings = settings
        self._delay = settings.settlement_delay_seconds if delay_seconds is None else delay_seconds
        self._flow_logger = flow_logger or FlowLogger(config=settings.logging)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def delay_seconds(self) -> float:
        return self._delay

    @property
    def pending(self) -> int:
        """Number of scheduled refreshes not yet finished."""
        return sum(1 for t in self._tasks if not t.done())

    def schedule(self) -> Optional[asyncio.Task]:
        """Schedule a refresh of the current session after the settlement delay."""
        if not self._connection.is_connected:
            logger.debug("Not connected; skipping reconciliation")
            return None

        session_id = self._connection.session_id
        task = asyncio.create_task(self._delayed_refresh(session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(
            "Reconciliation scheduled in %.1fs for session %s", self._delay, session_id,
        )
        return task

    async def _delayed_refresh(self, session_id: int) -> bool:
        await asyncio.sleep(self._delay)
        return await self.refresh(session_id)

    async def refresh(self, session_id: Optional[int] = None) -> bool:
        """
        Query balances now and apply them to the connection.

        Args:
            session_id: Session the refresh belongs to (default: current)

        Returns:
            True if any balance was applied
        """
        if session_id is None:
            session_id = self._connection.session_id
        if session_id != self._connection.session_id or not self._connection.is_connected:
            logger.debug("Session %s is stale; skipping reconciliation", session_id)
            return False

        adapter = self._connection.adapter
        state = self._connection.state
        token = self._settings.token_for(state.family) if state.family else None

        async with self._flow_logger.operation_context(
            OperationType.RECONCILIATION, adapter.wallet, session_id=session_id,
        ) as ctx:
            native_balance, token_balance = await fetch_balances(adapter, state.address, token)
            ctx.metadata["native_balance"] = native_balance
            ctx.metadata["token_balance"] = token_balance

        return self._connection.apply_balances(session_id, native_balance, token_balance)

    def cancel(self) -> None:
        """Cancel every pending refresh."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            logger.debug("Cancelled %d pending reconciliation(s)", len(self._tasks))

    async def drain(self) -> None:
        """Wait for every pending refresh to finish (cancelled ones included)."""
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)

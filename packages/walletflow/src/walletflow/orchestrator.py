"""
Distribution orchestration.

Runs an ordered list of transfers through the connected wallet as one
user-visible operation:
- Preconditions (connected, idle, valid recipients) checked before any step
- Steps submitted strictly one after another
- Fail-fast: the first failing step stops the run, later steps stay Pending
- Already-confirmed steps are never rolled back; partial completion is
  reported as such
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from .amounts import parse_positive_amount, to_minor_units
from .config import WalletflowSettings
from .connection import ConnectionManager
from .exceptions import (
    DistributionError,
    DistributionErrorReason,
    ProviderError,
    ProviderErrorKind,
    WalletflowValidationError,
)
from .logging_utils import FlowLogger, OperationType
from .models import (
    IDLE_TRANSACTION_STATE,
    DistributionStep,
    Recipient,
    StepStatus,
    TransactionState,
    TransactionStatus,
)
from .providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

TransactionListener = Callable[[TransactionState], None]


class DistributionOrchestrator:
    """
    Executes distributions and owns the TransactionState.

    Each attempt starts from a fresh snapshot; listeners receive a new
    snapshot after every step transition.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        settings: WalletflowSettings,
        flow_logger: Optional[FlowLogger] = None,
    ):
        self._connection = connection
        self._settings = settings
        self._flow_logger = flow_logger or FlowLogger(config=settings.logging)
        self._state: TransactionState = IDLE_TRANSACTION_STATE
        self._listeners: List[TransactionListener] = []

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._state.is_processing

    def add_listener(self, listener: TransactionListener) -> None:
        """Receive every new TransactionState snapshot."""
        self._listeners.append(listener)

    def _publish(self, state: TransactionState) -> None:
        self._state = state
        for listener in self._listeners:
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Transaction listener failed: {e}")

    def reset(self) -> None:
        """Return to the idle snapshot. Ignored while an attempt is running."""
        if self._state.is_processing:
            logger.warning("Distribution in progress; reset ignored")
            return
        self._publish(IDLE_TRANSACTION_STATE)

    def _ready_adapter(self) -> ProviderAdapter:
        if not self._connection.is_connected:
            raise DistributionError(
                "Connect a wallet before starting a distribution",
                reason=DistributionErrorReason.NOT_CONNECTED,
            )
        if self._state.is_processing:
            raise DistributionError(
                "A distribution is already in progress",
                reason=DistributionErrorReason.ALREADY_PROCESSING,
            )
        return self._connection.adapter

    def _validate_recipients(
        self,
        adapter: ProviderAdapter,
        recipients: Sequence[Recipient],
    ) -> Tuple[DistributionStep, ...]:
        if not recipients:
            raise DistributionError(
                "A distribution needs at least one recipient",
                reason=DistributionErrorReason.INVALID_RECIPIENTS,
            )

        token = self._settings.token_for(adapter.family)
        decimals = adapter.decimals_for(token)
        steps = []
        for index, recipient in enumerate(recipients):
            try:
                amount = parse_positive_amount(recipient.amount, field=f"recipients[{index}].amount")
                # Precision beyond the asset's minor unit cannot be submitted
                to_minor_units(amount, decimals)
            except WalletflowValidationError as e:
                raise DistributionError(
                    e.message,
                    reason=DistributionErrorReason.INVALID_RECIPIENTS,
                    step_index=index,
                ) from e
            if not adapter.is_valid_address(recipient.address):
                raise DistributionError(
                    f"Recipient {index} has an invalid {adapter.family.value} address: "
                    f"{recipient.address!r}",
                    reason=DistributionErrorReason.INVALID_RECIPIENTS,
                    step_index=index,
                )
            steps.append(DistributionStep(recipient=recipient.address, amount=str(amount)))
        return tuple(steps)

    async def execute(self, recipients: Sequence[Recipient]) -> TransactionState:
        """
        Run a distribution from step 0.

        Args:
            recipients: Ordered transfers; order is execution order

        Returns:
            Final snapshot: Success, or Error with the failing step recorded

        Raises:
            DistributionError: NotConnected, AlreadyProcessing or
                InvalidRecipients; nothing was submitted
        """
        adapter = self._ready_adapter()
        steps = self._validate_recipients(adapter, recipients)
        state = TransactionState.begin(steps, self._connection.session_id)
        return await self._run(adapter, state, start=0)

    async def resume(self, previous: Optional[TransactionState] = None) -> TransactionState:
        """
        Retry a failed distribution from its failed step.

        Confirmed steps of the previous attempt are carried over untouched;
        only the failed step and the Pending tail are submitted. The previous
        attempt must belong to the current connection session.

        Raises:
            DistributionError: NotConnected or AlreadyProcessing, or the
                previous attempt belongs to another session
            WalletflowValidationError: the previous attempt did not fail
        """
        previous = previous or self._state
        adapter = self._ready_adapter()

        if previous.status != TransactionStatus.ERROR or previous.failed_step is None:
            raise WalletflowValidationError(
                f"Only a failed distribution can be resumed (status={previous.status.value})",
                field="previous",
            )
        if previous.session_id != self._connection.session_id:
            raise DistributionError(
                "The failed distribution belongs to a previous connection; start a new one",
                reason=DistributionErrorReason.NOT_CONNECTED,
                result=previous,
            )

        start = previous.failed_step
        steps = tuple(
            step if index < start else DistributionStep(recipient=step.recipient, amount=step.amount)
            for index, step in enumerate(previous.steps)
        )
        logger.info(
            "Resuming %s at step %d of %d", previous.attempt_id, start, len(steps),
        )
        state = TransactionState.begin(steps, self._connection.session_id)
        return await self._run(adapter, state, start=start)

    def _set_step(self, state: TransactionState, index: int, **changes) -> TransactionState:
        steps = list(state.steps)
        steps[index] = replace(steps[index], **changes)
        state = replace(state, steps=tuple(steps))
        self._publish(state)
        return state

    async def _run(
        self,
        adapter: ProviderAdapter,
        state: TransactionState,
        start: int,
    ) -> TransactionState:
        self._publish(state)
        connection_state = self._connection.state
        sender = connection_state.address
        token = self._settings.token_for(connection_state.family)
        session_id = state.session_id
        failure: Optional[Tuple[int, str, str]] = None

        try:
            async with self._flow_logger.operation_context(
                OperationType.DISTRIBUTION,
                adapter.wallet,
                attempt_id=state.attempt_id,
                steps=len(state.steps),
                start=start,
            ):
                for index in range(start, len(state.steps)):
                    step = state.steps[index]

                    if self._connection.session_id != session_id:
                        message = "Wallet connection changed during the distribution"
                        failure = (index, ProviderErrorKind.PROVIDER_UNAVAILABLE.value, message)
                        state = self._set_step(
                            state, index,
                            status=StepStatus.FAILED,
                            error=failure[1],
                            error_message=message,
                        )
                        self._flow_logger.log_step_failed(state.attempt_id, index, failure[1], message)
                        break

                    state = self._set_step(state, index, status=StepStatus.SUBMITTED)
                    self._flow_logger.log_step_submitted(
                        state.attempt_id, index, step.recipient, step.amount,
                    )

                    try:
                        step_hash = await adapter.request_transfer(
                            sender, step.recipient, step.amount, token,
                        )
                    except (ProviderError, WalletflowValidationError) as e:
                        kind = e.kind.value if isinstance(e, ProviderError) else e.error_code
                        failure = (index, kind, e.message)
                        state = self._set_step(
                            state, index,
                            status=StepStatus.FAILED,
                            error=kind,
                            error_message=e.message,
                        )
                        self._flow_logger.log_step_failed(state.attempt_id, index, kind, e.message)
                        break

                    state = self._set_step(
                        state, index, status=StepStatus.CONFIRMED, step_hash=step_hash,
                    )
                    self._flow_logger.log_step_confirmed(state.attempt_id, index, step_hash)
        except BaseException as e:
            # Anything but a step failure: the run is over, whatever was submitted stays
            interrupted = next(
                (i for i, s in enumerate(state.steps) if s.status != StepStatus.CONFIRMED), None,
            )
            self._publish(replace(
                state,
                is_processing=False,
                status=TransactionStatus.ERROR,
                hash=state.last_confirmed_hash,
                error=ProviderErrorKind.PROVIDER_UNAVAILABLE.value,
                error_message=f"Distribution interrupted: {e!r}",
                failed_step=interrupted,
                completed_at=datetime.now(timezone.utc),
            ))
            raise

        if failure is None:
            state = replace(
                state,
                is_processing=False,
                status=TransactionStatus.SUCCESS,
                hash=state.last_confirmed_hash,
                completed_at=datetime.now(timezone.utc),
            )
        else:
            index, kind, message = failure
            state = replace(
                state,
                is_processing=False,
                status=TransactionStatus.ERROR,
                hash=state.last_confirmed_hash,
                error=kind,
                error_message=message,
                failed_step=index,
                completed_at=datetime.now(timezone.utc),
            )

        self._publish(state)
        self._flow_logger.log_distribution_result(state)
        return state

"""Core snatch orchestrator: timing, retry, and order flow.

One run is a strict state machine over a single PurchaseTask:

    WAITING_FOR_WINDOW -> CREATING_ORDER -> THINK_DELAY -> SUBMITTING_ORDER -> SUCCESS
                               ^                                |
                               +---------- RETRYING <-----------+

Network calls never overlap: an order token is single-use and concurrent
create/submit pairs would race for the same inventory slot. A cancel signal
ends any sleep at once; during a network call it is honoured after the call
returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from tixsnatch.api import GatewayClient
from tixsnatch.errors import TRANSIENT_ERRORS, GatewayError, MalformedRequest, SessionInvalid
from tixsnatch.models import (
    FailureReason,
    OrderToken,
    OutcomeStatus,
    PurchaseTask,
    SnatchOutcome,
)
from tixsnatch.scheduler import PrecisionScheduler

logger = logging.getLogger(__name__)


class SnatchState(Enum):
    WAITING_FOR_WINDOW = "waiting_for_window"
    CREATING_ORDER = "creating_order"
    THINK_DELAY = "think_delay"
    SUBMITTING_ORDER = "submitting_order"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({SnatchState.SUCCESS, SnatchState.FAILED, SnatchState.CANCELLED})


class SnatchOrchestrator:
    """
    Drives one purchase task to exactly one terminal outcome.

    T-x:  sleep until sale_time - priority window + clock offset
    T-0:  create order -> think delay -> submit order
    fail: fixed retry_interval_ms pause, at most retry_count cycles

    ``history`` records every state entered; ``create_calls`` and
    ``submit_calls`` count network calls per run.
    """

    def __init__(
        self,
        client: GatewayClient,
        scheduler: PrecisionScheduler | None = None,
    ) -> None:
        self.client = client
        self.scheduler = scheduler or PrecisionScheduler()
        self.history: list[SnatchState] = []
        self.create_calls = 0
        self.submit_calls = 0

    async def run(
        self, task: PurchaseTask, cancel: asyncio.Event | None = None
    ) -> SnatchOutcome:
        cancel = cancel or asyncio.Event()
        self.history = []
        self.create_calls = 0
        self.submit_calls = 0

        start = time.monotonic()
        remaining = task.retry_count
        attempt = 0
        order_token: OrderToken | None = None
        order_ref: str | None = None
        failure: tuple[FailureReason, str] | None = None

        state = self._enter(SnatchState.WAITING_FOR_WINDOW)

        while state not in TERMINAL_STATES:
            if state is SnatchState.WAITING_FOR_WINDOW:
                target = self.scheduler.window_target_ms(task)
                logger.info(
                    "Snatch target: %s / %s / %s x%d",
                    task.ticket_name or task.ticket_id,
                    task.perform_name or task.perform_id,
                    task.sku_name or task.sku_id,
                    task.quantity,
                )
                if await self.scheduler.wait_until(target, cancel):
                    logger.info("GO! Window open at %d", target)
                    state = self._enter(SnatchState.CREATING_ORDER)
                else:
                    state = self._enter(SnatchState.CANCELLED)

            elif state is SnatchState.CREATING_ORDER:
                attempt += 1
                order_token = None
                self.create_calls += 1
                try:
                    order_token = await self.client.create_order(task)
                except GatewayError as e:
                    state, failure = self._route_failure(e, attempt, "create")
                    if state is SnatchState.RETRYING and cancel.is_set():
                        logger.info("Cancelled after failed create")
                        state = self._enter(SnatchState.CANCELLED)
                    continue
                if cancel.is_set():
                    logger.info("Cancelled after order creation, token discarded")
                    order_token = None
                    state = self._enter(SnatchState.CANCELLED)
                    continue
                logger.info("Attempt %d: order token acquired", attempt)
                state = self._enter(SnatchState.THINK_DELAY)

            elif state is SnatchState.THINK_DELAY:
                if await self.scheduler.sleep(task.think_time_ms, cancel):
                    state = self._enter(SnatchState.SUBMITTING_ORDER)
                else:
                    order_token = None
                    state = self._enter(SnatchState.CANCELLED)

            elif state is SnatchState.SUBMITTING_ORDER:
                assert order_token is not None
                token, order_token = order_token, None  # consumed either way
                self.submit_calls += 1
                try:
                    order_ref = await self.client.submit_order(task, token)
                except GatewayError as e:
                    state, failure = self._route_failure(e, attempt, "submit")
                    if state is SnatchState.RETRYING and cancel.is_set():
                        logger.info("Cancelled after failed submit")
                        state = self._enter(SnatchState.CANCELLED)
                    continue
                state = self._enter(SnatchState.SUCCESS)

            elif state is SnatchState.RETRYING:
                remaining -= 1
                if remaining <= 0:
                    logger.warning("Retry budget exhausted after %d attempts", attempt)
                    failure = (FailureReason.ATTEMPTS_EXHAUSTED, failure[1] if failure else "")
                    state = self._enter(SnatchState.FAILED)
                elif await self.scheduler.sleep(task.retry_interval_ms, cancel):
                    state = self._enter(SnatchState.CREATING_ORDER)
                else:
                    state = self._enter(SnatchState.CANCELLED)

        elapsed = time.monotonic() - start

        if state is SnatchState.SUCCESS:
            logger.info("ORDERED in %.3fs after %d attempts! Ref: %s", elapsed, attempt, order_ref)
            return SnatchOutcome(
                status=OutcomeStatus.SUCCESS,
                order_ref=order_ref,
                attempts=attempt,
                elapsed_seconds=elapsed,
            )
        if state is SnatchState.CANCELLED:
            logger.info("Snatch cancelled after %d attempts", attempt)
            return SnatchOutcome(
                status=OutcomeStatus.CANCELLED,
                attempts=attempt,
                elapsed_seconds=elapsed,
            )
        assert failure is not None
        return SnatchOutcome(
            status=OutcomeStatus.FAILED,
            reason=failure[0],
            detail=failure[1] or None,
            attempts=attempt,
            elapsed_seconds=elapsed,
        )

    def _enter(self, state: SnatchState) -> SnatchState:
        self.history.append(state)
        logger.debug("-> %s", state.value)
        return state

    def _route_failure(
        self, error: GatewayError, attempt: int, step: str
    ) -> tuple[SnatchState, tuple[FailureReason, str]]:
        detail = f"{error.__class__.__name__}: {error}"
        if isinstance(error, MalformedRequest):
            logger.error("Attempt %d: %s rejected as malformed: %s", attempt, step, error)
            return self._enter(SnatchState.FAILED), (FailureReason.FATAL, detail)
        if isinstance(error, SessionInvalid):
            logger.error("Attempt %d: session invalid during %s: %s", attempt, step, error)
            return self._enter(SnatchState.FAILED), (FailureReason.SESSION_INVALID, detail)
        if isinstance(error, TRANSIENT_ERRORS):
            logger.warning("Attempt %d: %s failed: %s", attempt, step, detail)
            return self._enter(SnatchState.RETRYING), (FailureReason.ATTEMPTS_EXHAUSTED, detail)
        # SessionExpired never escapes the client; anything else is a bug
        raise error

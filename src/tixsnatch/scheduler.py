"""Precision timing for snatch execution.

Two-phase waits: coarse cancellable sleep until T-2s, then a spin that
yields to the event loop so the cancel signal is still observed. All times
are epoch milliseconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from tixsnatch.models import PurchaseTask

logger = logging.getLogger(__name__)

PRE_WAKE_MS = 2000


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class PrecisionScheduler:
    """
    Handles timing for snatch execution.

    ``sleep`` and ``wait_until`` return False when the cancel event fired
    before the wake time, True otherwise.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or _epoch_ms
        self._ntp_offset: float | None = None

    @staticmethod
    def window_target_ms(task: PurchaseTask) -> int:
        """
        Moment to start creating orders.

        Example: sale_time=1000000, priority_window_minutes=0,
        clock_offset_ms=50 -> 1000050
        """
        return (
            task.sale_time
            - task.priority_window_minutes * 60_000
            + task.clock_offset_ms
        )

    def now_ms(self) -> int:
        return self._clock()

    async def sleep(self, delay_ms: float, cancel: asyncio.Event | None = None) -> bool:
        if cancel is not None and cancel.is_set():
            return False
        if delay_ms <= 0:
            return True
        if cancel is None:
            await asyncio.sleep(delay_ms / 1000)
            return True
        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            return True
        return False

    async def wait_until(
        self,
        target_ms: int,
        cancel: asyncio.Event | None = None,
        pre_wake_ms: int = PRE_WAKE_MS,
    ) -> bool:
        """Sleep until target, then spin for precision."""
        total_wait = target_ms - self.now_ms()
        if total_wait <= 0:
            logger.info("Target time already passed (%.1fs ago)", -total_wait / 1000)
            return not (cancel is not None and cancel.is_set())

        logger.info("Waiting %.1fs until %d", total_wait / 1000, target_ms)

        # Phase 1: Coarse sleep
        coarse = total_wait - pre_wake_ms
        if coarse > 0 and not await self.sleep(coarse, cancel):
            return False

        # Phase 2: Spin, yielding each pass
        while self.now_ms() < target_ms:
            if cancel is not None and cancel.is_set():
                return False
            await asyncio.sleep(0)
        return not (cancel is not None and cancel.is_set())

    def check_ntp_offset(self) -> float | None:
        """Check system clock offset against NTP. Returns seconds offset or None.

        BLOCKING, use check_ntp_offset_async() in async contexts.
        """
        try:
            import ntplib

            client = ntplib.NTPClient()
            resp = client.request("pool.ntp.org", version=3)
        except Exception as e:
            logger.debug("NTP check failed: %s", e)
            return None
        self._ntp_offset = resp.offset
        return resp.offset

    async def check_ntp_offset_async(self) -> float | None:
        return await asyncio.to_thread(self.check_ntp_offset)

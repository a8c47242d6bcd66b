# Cancellation window countdown shown on the order screen
# Advisory only: the server evaluates the window against its own clock

import asyncio
import math
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from core.state_machine import CANCELLATION_WINDOW_SECONDS, OrderStatus, elapsed_seconds, parse_timestamp

logger = logging.getLogger(__name__)


class CancellationTimer:
    """
    Counts down the cancellation window of one order.

    observe() feeds it every status snapshot; the window closes at once
    when the order is accepted or leaves Pending.
    """

    def __init__(self, created_at, window_seconds: float = CANCELLATION_WINDOW_SECONDS,
                 tick_seconds: float = 1.0,
                 clock: Optional[Callable[[], datetime]] = None,
                 on_tick: Optional[Callable[[int], None]] = None,
                 on_close: Optional[Callable[[str], None]] = None):
        self.created_at = parse_timestamp(created_at)
        self.window_seconds = window_seconds
        self.tick_seconds = tick_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_tick = on_tick
        self.on_close = on_close
        self.closed_reason: Optional[str] = None
        self._stopped = asyncio.Event()

    @property
    def remaining(self) -> float:
        """Seconds left, 0 once closed"""
        if self.closed_reason is not None:
            return 0
        return max(0.0, self.window_seconds - elapsed_seconds(self.created_at, self.clock()))

    @property
    def can_cancel(self) -> bool:
        return self.remaining > 0

    def _close(self, reason: str):
        if self.closed_reason is not None:
            return
        self.closed_reason = reason
        logger.debug(f"Cancellation window closed: {reason}")
        self._stopped.set()
        if self.on_close is not None:
            self.on_close(reason)

    def observe(self, status: str, is_accepted: bool = False):
        """Apply an order status snapshot"""
        if is_accepted:
            self._close("accepted")
        elif OrderStatus(status) != OrderStatus.PENDING:
            self._close(OrderStatus(status).value.lower())

    def stop(self):
        self._close("stopped")

    async def run(self):
        """Tick every second until the window expires or is closed"""
        while self.closed_reason is None:
            remaining = self.remaining
            if remaining <= 0:
                self._close("expired")
                break

            if self.on_tick is not None:
                self.on_tick(math.ceil(remaining))

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=min(self.tick_seconds, remaining))
            except asyncio.TimeoutError:
                pass

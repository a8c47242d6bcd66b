# Order tracking screen logic: status polling plus the cancellation countdown

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from core.errors import StateConflict
from core.state_machine import CANCELLATION_WINDOW_SECONDS
from .api_client import OrderApiClient
from .cancel_timer import CancellationTimer
from .poller import ReconciliationPoller

logger = logging.getLogger(__name__)


class OrderTracker:
    """
    Keeps the latest server snapshot of one order. Every snapshot drives
    the cancellation timer, so the cancel affordance disappears as soon as
    a poll shows the order accepted.
    """

    def __init__(self, api: OrderApiClient, poller: ReconciliationPoller, order_id: str,
                 window_seconds: float = CANCELLATION_WINDOW_SECONDS,
                 clock: Optional[Callable[[], datetime]] = None,
                 on_update: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.api = api
        self.poller = poller
        self.order_id = order_id
        self.window_seconds = window_seconds
        self.clock = clock
        self.on_update = on_update
        self.snapshot: Optional[Dict[str, Any]] = None
        self.timer: Optional[CancellationTimer] = None

    @property
    def can_cancel(self) -> bool:
        return self.timer is not None and self.timer.can_cancel

    def _apply(self, snapshot: Dict[str, Any]):
        self.snapshot = snapshot
        if self.timer is None:
            self.timer = CancellationTimer(snapshot["created_at"], self.window_seconds, clock=self.clock)
        self.timer.observe(snapshot["status"], snapshot.get("is_accepted", False))
        if self.on_update is not None:
            self.on_update(snapshot)

    async def refresh(self) -> Dict[str, Any]:
        snapshot = await self.api.get_order_status(self.order_id)
        self._apply(snapshot)
        return snapshot

    async def run(self) -> Optional[Dict[str, Any]]:
        """
        Track until Delivered/Cancelled or stop()

        Returns:
            terminal snapshot, or None when stopped
        """
        await self.refresh()
        timer_task = asyncio.create_task(self.timer.run())
        try:
            return await self.poller.track(self.order_id, self._apply)
        finally:
            self.timer.stop()
            await timer_task

    async def request_cancel(self, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Ask the server to cancel. On a conflict the authoritative status is
        fetched and applied, and the conflict re-raised; the cancel is never
        retried.
        """
        try:
            order = await self.api.cancel_order(self.order_id, reason)
        except StateConflict as e:
            logger.info(f"Cancel of order {self.order_id} rejected ({e.reason}), refreshing status")
            await self.refresh()
            raise

        self._apply(order)
        logger.info(f"Order {self.order_id} cancelled")
        return order

    def stop(self):
        self.poller.cancel("tracking")
        if self.timer is not None:
            self.timer.stop()

# Reconciliation poller
# Server-authoritative polling of payment and order status. A poll session
# is a cancellable handle; starting a new session of the same kind cancels
# the previous one so two loops never drive the same screen.

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from core.errors import NetworkError, ReconciliationTimeout
from core.state_machine import PaymentStatus, is_terminal

logger = logging.getLogger(__name__)

PAYMENT_POLL_INTERVAL = 2.0
PAYMENT_POLL_MAX_ATTEMPTS = 5
STATUS_POLL_INTERVAL = 5.0

StatusCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class PaymentOutcome(str, Enum):
    PAID = "Paid"
    FAILED = "Failed"


class PollSession:
    """Handle of one polling loop. cancel() is idempotent."""

    def __init__(self, kind: str, order_id: str):
        self.kind = kind
        self.order_id = order_id
        self.attempts = 0
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        if not self._cancelled.is_set():
            logger.debug(f"Cancelling {self.kind} poll for order {self.order_id}")
            self._cancelled.set()

    async def wait(self, seconds: float) -> bool:
        """Sleep between polls. Returns True when cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self.cancelled


class ReconciliationPoller:
    """
    Polls the order API until the server reports a definitive status.

    Args:
        api: OrderApiClient (anything with get_payment_status/get_order_status)
        payment_interval: seconds between payment checks
        payment_max_attempts: payment checks before giving up
        status_interval: seconds between order status checks
    """

    def __init__(self, api, payment_interval: float = PAYMENT_POLL_INTERVAL,
                 payment_max_attempts: int = PAYMENT_POLL_MAX_ATTEMPTS,
                 status_interval: float = STATUS_POLL_INTERVAL):
        self.api = api
        self.payment_interval = payment_interval
        self.payment_max_attempts = payment_max_attempts
        self.status_interval = status_interval
        self._sessions: Dict[str, PollSession] = {}

    def _start(self, kind: str, order_id: str) -> PollSession:
        previous = self._sessions.get(kind)
        if previous is not None:
            previous.cancel()
        session = PollSession(kind, order_id)
        self._sessions[kind] = session
        return session

    def _finish(self, session: PollSession):
        if self._sessions.get(session.kind) is session:
            del self._sessions[session.kind]

    def active_session(self, kind: str) -> Optional[PollSession]:
        return self._sessions.get(kind)

    async def confirm_payment(self, order_id: str) -> Optional[PaymentOutcome]:
        """
        Poll the payment status until Paid or Failed.

        Every attempt counts against the budget, including attempts that
        failed on the network.

        Returns:
            PaymentOutcome, or None when the session was cancelled

        Raises:
            ReconciliationTimeout: budget exhausted without a definitive status
        """
        session = self._start("payment", order_id)
        last_status = None

        try:
            while session.attempts < self.payment_max_attempts:
                if session.cancelled:
                    return None

                session.attempts += 1
                try:
                    status = await self.api.get_payment_status(order_id)
                    last_status = status["payment_status"]
                    logger.debug(f"Payment poll {session.attempts}/{self.payment_max_attempts} "
                                 f"for order {order_id}: {last_status}")
                except NetworkError as e:
                    logger.warning(f"Payment poll {session.attempts} for order {order_id} failed: {e.message}")
                    status = None

                if status is not None and last_status == PaymentStatus.PAID.value:
                    logger.info(f"Payment confirmed for order {order_id} after {session.attempts} poll(s)")
                    return PaymentOutcome.PAID
                if status is not None and last_status == PaymentStatus.FAILED.value:
                    logger.info(f"Payment failed for order {order_id}")
                    return PaymentOutcome.FAILED

                if session.attempts < self.payment_max_attempts:
                    if await session.wait(self.payment_interval):
                        return None

            logger.info(f"Payment for order {order_id} unconfirmed after {session.attempts} poll(s)")
            raise ReconciliationTimeout(order_id, session.attempts, last_status)
        finally:
            self._finish(session)

    async def track(self, order_id: str, on_update: Optional[StatusCallback] = None) -> Optional[Dict[str, Any]]:
        """
        Poll the order status until Delivered or Cancelled.

        Network failures are logged and the loop keeps going.

        Returns:
            the terminal snapshot, or None when the session was cancelled
        """
        session = self._start("tracking", order_id)
        last_status = None

        try:
            while not session.cancelled:
                session.attempts += 1
                try:
                    snapshot = await self.api.get_order_status(order_id)
                except NetworkError as e:
                    logger.warning(f"Status poll for order {order_id} failed: {e.message}")
                    snapshot = None

                if snapshot is not None:
                    if snapshot["status"] != last_status:
                        logger.debug(f"Order {order_id} status: {snapshot['status']}")
                        last_status = snapshot["status"]
                    if on_update is not None:
                        result = on_update(snapshot)
                        if asyncio.iscoroutine(result):
                            await result
                    if is_terminal(snapshot["status"]):
                        logger.info(f"Order {order_id} reached {snapshot['status']}, tracking stopped")
                        return snapshot

                if await session.wait(self.status_interval):
                    break

            return None
        finally:
            self._finish(session)

    def cancel(self, kind: str):
        session = self._sessions.get(kind)
        if session is not None:
            session.cancel()

    def close(self):
        """Cancel every running session (screen left)"""
        for session in list(self._sessions.values()):
            session.cancel()
        self._sessions.clear()

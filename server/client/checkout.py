# Online payment flow
# submit -> open the gateway checkout -> forward any synchronous result ->
# confirm through the poller. Only the poll result decides the outcome.

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from core.errors import GatewayError, OrderError
from .api_client import OrderApiClient
from .poller import PaymentOutcome, ReconciliationPoller

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    """What the checkout widget hands back when it returns in-process"""
    gateway_order_id: str
    payment_id: str
    signature: str


class CheckoutLauncher(Protocol):
    """
    Opens the gateway checkout with the options from the server.

    Returns a CheckoutResult when the payment completes in-process, None
    when the customer was redirected to another app (UPI intent) and the
    result will only arrive server side. Raises GatewayError when the
    customer dismisses the checkout.
    """

    async def open(self, options: Dict[str, Any]) -> Optional[CheckoutResult]:
        ...


@dataclass
class PaymentResult:
    order_id: str
    outcome: PaymentOutcome
    order: Optional[Dict[str, Any]] = None

    @property
    def paid(self) -> bool:
        return self.outcome == PaymentOutcome.PAID


class PaymentFlow:
    def __init__(self, api: OrderApiClient, poller: ReconciliationPoller, launcher: CheckoutLauncher):
        self.api = api
        self.poller = poller
        self.launcher = launcher

    async def pay(self, draft: Dict[str, Any]) -> PaymentResult:
        """
        Submit a Gateway order and see its payment through.

        Raises:
            GatewayError: the server could not open a gateway order
                (details carry the order id for retry_payment)
            ReconciliationTimeout: no definitive status within the poll budget
        """
        submitted = await self.api.submit_order(dict(draft, payment_method="Gateway"))
        order = submitted["order"]
        return await self._complete(order, submitted["checkout"])

    async def retry(self, order_id: str) -> PaymentResult:
        """New gateway checkout for the same order after a failure"""
        restarted = await self.api.retry_payment(order_id)
        return await self._complete(restarted["order"], restarted["checkout"])

    async def _complete(self, order: Dict[str, Any], checkout: Dict[str, Any]) -> PaymentResult:
        order_id = order["order_id"]

        try:
            result = await self.launcher.open(checkout)
        except GatewayError as e:
            # the payment may still have gone through before the dismissal
            logger.info(f"Checkout for order {order_id} closed: {e.message}")
            result = None

        if result is not None:
            try:
                await self.api.verify_payment(order_id, result.gateway_order_id, result.payment_id, result.signature)
            except OrderError as e:
                logger.warning(f"Verification call for order {order_id} failed: {e.message}")

        outcome = await self.poller.confirm_payment(order_id)
        if outcome is None:
            raise GatewayError("Payment confirmation was interrupted", {"order_id": order_id})

        return PaymentResult(order_id=order_id, outcome=outcome, order=order)

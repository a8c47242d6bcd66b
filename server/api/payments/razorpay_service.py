# Razorpay payment gateway adapter
# Runs in mock mode when keys are not configured, so local development and
# tests never reach the real gateway

import logging
import uuid
from typing import Any, Dict, Optional

import razorpay

from core.errors import GatewayError, StateConflict, ValidationError
from core.state_machine import OrderStatus, PaymentMethod, PaymentStatus
from db.core_operations import CoreOperations
from utils.config import Config, is_unresolved

logger = logging.getLogger(__name__)

MOCK_KEY_ID = "rzp_test_mock"
MOCK_KEY_SECRET = "mock-razorpay-secret"
MOCK_WEBHOOK_SECRET = "mock-webhook-secret"

# webhook events that settle the payment axis
WEBHOOK_PAID_EVENTS = {"payment.captured", "order.paid"}
WEBHOOK_FAILED_EVENTS = {"payment.failed"}


class RazorpayGateway:
    """Razorpay order creation, signature checks and payment lookup"""

    def __init__(self, key_id: Optional[str], key_secret: Optional[str],
                 webhook_secret: Optional[str] = None, currency: str = "INR",
                 merchant_name: str = "Bakery"):
        if is_unresolved(key_id) or is_unresolved(key_secret):
            logger.warning("Razorpay keys missing, gateway running in mock mode")
            self.mock_mode = True
            key_id, key_secret = MOCK_KEY_ID, MOCK_KEY_SECRET
        else:
            self.mock_mode = False

        self.key_id = key_id
        self.webhook_secret = MOCK_WEBHOOK_SECRET if is_unresolved(webhook_secret) else webhook_secret
        self.currency = currency
        self.merchant_name = merchant_name
        self.client = razorpay.Client(auth=(key_id, key_secret))

    @classmethod
    def from_config(cls, config: Config) -> "RazorpayGateway":
        return cls(
            key_id=config.get("payments.razorpay_key_id"),
            key_secret=config.get("payments.razorpay_key_secret"),
            webhook_secret=config.get("payments.webhook_secret"),
            currency=config.get("payments.currency", "INR"),
            merchant_name=config.get("payments.merchant_name", "Bakery"),
        )

    def create_order(self, order_id: str, amount_paise: int) -> Dict[str, Any]:
        """
        Open a gateway order for the full order total

        Raises:
            GatewayError: the gateway rejected the request or is unreachable
        """
        if amount_paise <= 0:
            raise ValidationError("Gateway payments need a positive amount", {"field": "total_amount_paise"})

        if self.mock_mode:
            gateway_order = {
                "id": f"order_mock_{uuid.uuid4().hex[:14]}",
                "amount": amount_paise,
                "currency": self.currency,
                "receipt": order_id,
                "status": "created",
            }
            logger.info(f"Mock gateway order {gateway_order['id']} for order {order_id}")
            return gateway_order

        try:
            gateway_order = self.client.order.create({
                "amount": amount_paise,
                "currency": self.currency,
                "receipt": order_id[:40],
                "notes": {"order_id": order_id},
            })
        except Exception as e:
            logger.error(f"Gateway order creation failed for order {order_id}: {str(e)}")
            raise GatewayError("Could not start the online payment, please try again",
                               {"order_id": order_id})

        logger.info(f"Gateway order {gateway_order['id']} created for order {order_id}")
        return gateway_order

    def verify_payment_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": gateway_order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
            return True
        except razorpay.errors.SignatureVerificationError:
            logger.warning(f"Invalid payment signature for gateway order {gateway_order_id}")
            return False

    def verify_webhook_signature(self, body: str, signature: str) -> bool:
        try:
            self.client.utility.verify_webhook_signature(body, signature, self.webhook_secret)
            return True
        except razorpay.errors.SignatureVerificationError:
            logger.warning("Invalid webhook signature")
            return False

    def fetch_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        """
        Payment as the gateway sees it, None in mock mode

        Raises:
            GatewayError: lookup failed
        """
        if self.mock_mode:
            return None
        try:
            return self.client.payment.fetch(payment_id)
        except Exception as e:
            logger.error(f"Gateway payment lookup failed for {payment_id}: {str(e)}")
            raise GatewayError("Could not reach the payment gateway", {"payment_id": payment_id})

    def checkout_options(self, order: Dict[str, Any], gateway_order: Dict[str, Any]) -> Dict[str, Any]:
        """Parameters the customer's checkout widget is opened with"""
        return {
            "key": self.key_id,
            "amount": gateway_order["amount"],
            "currency": gateway_order.get("currency", self.currency),
            "name": self.merchant_name,
            "order_id": gateway_order["id"],
            "prefill": {
                "name": order["customer"]["name"],
                "contact": order["customer"]["phone"],
            },
            "notes": {"order_id": order["order_id"]},
            "mock_mode": self.mock_mode,
        }


def start_gateway_checkout(core_ops: CoreOperations, gateway: RazorpayGateway,
                           order: Dict[str, Any]) -> Dict[str, Any]:
    """
    Open a gateway order for an order record and mark its payment Initiated.

    A gateway failure marks the payment Failed and re-raises GatewayError
    carrying the order id, so the customer can retry on the same order.

    Returns:
        {order, checkout}
    """
    order_id = order["order_id"]

    if order["payment_method"] != PaymentMethod.GATEWAY.value:
        raise ValidationError("Order is not paid online", {"field": "payment_method"})
    if order["payment_status"] == PaymentStatus.PAID.value:
        raise StateConflict(f"Payment for order {order_id} is already confirmed", StateConflict.ALREADY_PAID)
    if order["status"] != OrderStatus.PENDING.value:
        raise StateConflict(f"Order {order_id} is {order['status']}, payment can no longer be started",
                            StateConflict.NOT_PENDING, {"current_status": order["status"]})

    try:
        gateway_order = gateway.create_order(order_id, order["total_amount_paise"])
    except GatewayError as e:
        core_ops.record_payment_status(order_id, PaymentStatus.FAILED.value, "gateway", note=e.message)
        e.details["order_id"] = order_id
        raise

    updated = core_ops.attach_gateway_order(order_id, gateway_order["id"])
    updated.pop("changed", None)
    return {
        "order": updated,
        "checkout": gateway.checkout_options(updated, gateway_order),
    }

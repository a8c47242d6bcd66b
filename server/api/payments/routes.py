# Payment routes: checkout key, synchronous verification, webhook,
# authoritative status and retry

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Path, Request

from .models import VerifyPaymentRequest, PaymentStatusResponse
from .razorpay_service import RazorpayGateway, start_gateway_checkout, WEBHOOK_FAILED_EVENTS, WEBHOOK_PAID_EVENTS
from api.auth.routes import config, get_core_operations
from core.errors import GatewayError, OrderNotFound, ValidationError
from core.state_machine import PaymentStatus
from db.core_operations import CoreOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payments", tags=["Payments"])

_gateway: Optional[RazorpayGateway] = None


def get_gateway() -> RazorpayGateway:
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway.from_config(config)
    return _gateway


@router.get("/key", response_model=Dict[str, Any])
async def get_checkout_key(gateway: RazorpayGateway = Depends(get_gateway)):
    """Public key the checkout widget is initialised with"""
    return create_success_response(data={
        "key_id": gateway.key_id,
        "currency": gateway.currency,
        "merchant_name": gateway.merchant_name,
        "mock_mode": gateway.mock_mode,
    })


@router.post("/verify", response_model=Dict[str, Any])
async def verify_payment(
    verify_request: VerifyPaymentRequest,
    core_ops: CoreOperations = Depends(get_core_operations),
    gateway: RazorpayGateway = Depends(get_gateway)
):
    """
    Verify the checkout widget's synchronous result.

    The signature is checked first; when it does not match, the payment is
    looked up at the gateway. Only the gateway's own captured or failed
    status moves the payment; anything else is audited and left for the
    webhook. A confirmed payment is never downgraded.
    """
    gateway_order_id = verify_request.razorpay_order_id
    payment_id = verify_request.razorpay_payment_id

    order_id = core_ops.query.find_order_id_by_gateway_order(gateway_order_id)
    if order_id is None:
        raise OrderNotFound(verify_request.order_id or gateway_order_id)
    if verify_request.order_id and verify_request.order_id != order_id:
        raise ValidationError("Payment does not belong to this order", {"order_id": verify_request.order_id})

    current = core_ops.query.get_payment_status(order_id)
    if current["payment_status"] == PaymentStatus.PAID.value:
        return create_success_response(data=current, message="Payment already verified")

    if gateway.verify_payment_signature(gateway_order_id, payment_id, verify_request.razorpay_signature):
        core_ops.record_gateway_payment(gateway_order_id, PaymentStatus.PAID.value, "verify", payment_id)
        logger.info(f"Payment {payment_id} verified for order {order_id}")
        return create_success_response(data=core_ops.query.get_payment_status(order_id),
                                       message="Payment verified")

    payment = gateway.fetch_payment(payment_id)
    if payment and payment.get("order_id") == gateway_order_id:
        if payment.get("status") == "captured":
            core_ops.record_gateway_payment(gateway_order_id, PaymentStatus.PAID.value, "gateway", payment_id)
            logger.info(f"Payment {payment_id} confirmed by gateway lookup for order {order_id}")
            return create_success_response(data=core_ops.query.get_payment_status(order_id),
                                           message="Payment verified")
        if payment.get("status") == "failed":
            core_ops.record_gateway_payment(gateway_order_id, PaymentStatus.FAILED.value, "gateway", payment_id)
            raise GatewayError("Payment failed", {"order_id": order_id})

    # unverifiable checkout result: the webhook or an operator settles it
    core_ops.record_payment_rejection(order_id, "verify", payment_id, "signature mismatch")
    raise GatewayError("Payment could not be verified", {"order_id": order_id})


@router.post("/webhook", response_model=Dict[str, Any])
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    core_ops: CoreOperations = Depends(get_core_operations),
    gateway: RazorpayGateway = Depends(get_gateway)
):
    """
    Gateway webhook. Duplicate deliveries are no-ops; a failure reported
    after a capture is ignored.
    """
    body = (await request.body()).decode("utf-8")

    if not x_razorpay_signature or not gateway.verify_webhook_signature(body, x_razorpay_signature):
        raise ValidationError("Invalid webhook signature")

    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        raise ValidationError("Webhook body is not valid JSON")

    event_type = event.get("event")
    payload = event.get("payload", {})
    payment = payload.get("payment", {}).get("entity", {})
    gateway_order_id = payment.get("order_id") or payload.get("order", {}).get("entity", {}).get("id")

    if event_type in WEBHOOK_PAID_EVENTS:
        target = PaymentStatus.PAID.value
    elif event_type in WEBHOOK_FAILED_EVENTS:
        target = PaymentStatus.FAILED.value
    else:
        logger.debug(f"Ignoring webhook event {event_type}")
        return create_success_response(data={"handled": False}, message="Event ignored")

    if not gateway_order_id:
        raise ValidationError(f"Webhook {event_type} carries no gateway order id")

    result = core_ops.record_gateway_payment(gateway_order_id, target, "webhook", payment.get("id"))
    if result is None:
        return create_success_response(data={"handled": False}, message="Unknown gateway order")

    logger.info(f"Webhook {event_type} handled for order {result['order_id']}, changed={result['changed']}")
    return create_success_response(
        data={"handled": True, "order_id": result["order_id"], "payment_status": result["payment_status"],
              "changed": result["changed"]},
        message="Webhook processed"
    )


@router.get("/status/{order_id}", response_model=Dict[str, Any])
async def get_payment_status(
    order_id: str = Path(..., description="Order id"),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Server-authoritative payment status, polled by the reconciliation poller"""
    status = core_ops.query.get_payment_status(order_id)
    response_data = PaymentStatusResponse(**status)
    return create_success_response(data=response_data.model_dump())


@router.post("/{order_id}/retry", response_model=Dict[str, Any])
async def retry_payment(
    order_id: str = Path(..., description="Order id"),
    core_ops: CoreOperations = Depends(get_core_operations),
    gateway: RazorpayGateway = Depends(get_gateway)
):
    """Open a fresh gateway order for a Failed or abandoned payment"""
    order = core_ops.query.get_order(order_id)
    result = start_gateway_checkout(core_ops, gateway, order)
    logger.info(f"Payment retry started for order {order_id}")
    return create_success_response(data=result, message="Payment restarted")

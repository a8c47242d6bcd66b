# Customer-facing order routes
# No login: the opaque order id returned at submission is the tracking capability

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from .models import QuoteRequest, SubmitOrderRequest, CancelOrderRequest, ScreenshotRequest
from api.auth.routes import config, get_core_operations
from api.payments.routes import get_gateway
from api.payments.razorpay_service import RazorpayGateway, start_gateway_checkout
from core.state_machine import PaymentMethod
from db.core_operations import CoreOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("/quote", response_model=Dict[str, Any])
async def quote_order(
    quote_request: QuoteRequest,
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Price breakdown for the cart preview"""
    quote = core_ops.quote_order(
        items=[item.model_dump() for item in quote_request.items],
        order_type=quote_request.order_type,
        delivery_coordinates=quote_request.delivery_coordinates.model_dump()
        if quote_request.delivery_coordinates else None,
        offer_code=quote_request.offer_code
    )
    return create_success_response(data=quote)


@router.post("", response_model=Dict[str, Any], status_code=201)
async def submit_order(
    order_request: SubmitOrderRequest,
    core_ops: CoreOperations = Depends(get_core_operations),
    gateway: RazorpayGateway = Depends(get_gateway)
):
    """
    Submit an order.

    Gateway orders get their gateway order right away and come back with
    the checkout options; payment is then confirmed by verify/webhook and
    read back through the payment status endpoint.
    """
    order = core_ops.submit_order(order_request.model_dump())
    message = order.pop("message")

    if order["payment_method"] != PaymentMethod.GATEWAY.value:
        return create_success_response(data={"order": order, "checkout": None}, message=message)

    result = start_gateway_checkout(core_ops, gateway, order)
    return create_success_response(data=result, message=message)


@router.get("/store-contact", response_model=Dict[str, Any])
async def get_store_contact(core_ops: CoreOperations = Depends(get_core_operations)):
    """Who to call when a payment stays unconfirmed"""
    store = core_ops.support.get_store_config()
    return create_success_response(data={
        "admin_phone": store.get("admin_phone") or config.get("store.admin_phone"),
        "upi_id": store.get("upi_id"),
        "merchant_name": store.get("merchant_name"),
    })


@router.get("/{order_id}", response_model=Dict[str, Any])
async def get_order_status(
    order_id: str = Path(..., description="Order id"),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Tracking view, polled by the order screen"""
    return create_success_response(data=core_ops.query.get_order_status(order_id))


@router.post("/{order_id}/cancel", response_model=Dict[str, Any])
async def cancel_order(
    order_id: str = Path(..., description="Order id"),
    cancel_request: CancelOrderRequest = None,
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """
    Customer cancellation. Allowed while the order is Pending, not yet
    accepted and within the cancellation window (server clock).
    """
    reason = cancel_request.reason if cancel_request else None
    order = core_ops.cancel_order(order_id, reason=reason or "Cancelled by customer", actor="customer")
    message = order.pop("message")
    return create_success_response(data=order, message=message)


@router.post("/{order_id}/payment-screenshot", response_model=Dict[str, Any])
async def upload_payment_screenshot(
    screenshot_request: ScreenshotRequest,
    order_id: str = Path(..., description="Order id"),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.upload_payment_screenshot(order_id, screenshot_request.screenshot_url)
    message = order.pop("message")
    return create_success_response(data=order, message=message)

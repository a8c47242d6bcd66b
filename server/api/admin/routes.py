# Operator dashboard routes (admin token required)

import logging
from datetime import timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query

from .models import (
    UpdateStatusRequest, ManualVerifyRequest, ScreenshotReviewRequest,
    FeeSettingsRequest, StoreSettingsRequest
)
from api.auth.routes import config, get_admin_user, get_core_operations
from api.auth.models import TokenData
from core.errors import ValidationError
from core.state_machine import parse_timestamp
from db.core_operations import CoreOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


def unconfirmed_after_seconds() -> float:
    """How long an open online checkout waits before the board shows it as unconfirmed"""
    ordering = config.get_ordering_config()
    return ordering["payment_poll_interval_seconds"] * ordering["payment_poll_max_attempts"]


@router.get("/orders", response_model=Dict[str, Any])
async def list_orders(
    status: Optional[str] = Query(None, description="Filter by order status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """
    Order board, newest first. Online checkouts still being confirmed by the
    customer are left out; older unresolved ones are flagged payment_unconfirmed.
    """
    board = core_ops.query.list_admin_orders(status=status, offset=offset, limit=limit,
                                             unconfirmed_after_seconds=unconfirmed_after_seconds())
    return create_success_response(data=board)


@router.get("/orders/alerts", response_model=Dict[str, Any])
async def get_pending_alerts(
    since: Optional[str] = Query(None, description="ISO timestamp of the previous check"),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Unaccepted orders that crossed a waiting-time alert mark (since the previous check)"""
    marks = config.get_ordering_config()["pending_alert_minutes"]
    try:
        since_at = parse_timestamp(since) if since else None
    except ValueError:
        raise ValidationError("since must be an ISO 8601 timestamp", {"field": "since"})
    if since_at is not None and since_at.tzinfo is None:
        since_at = since_at.replace(tzinfo=timezone.utc)
    alerts = core_ops.query.get_pending_alerts(marks=marks, since=since_at,
                                               unconfirmed_after_seconds=unconfirmed_after_seconds())
    return create_success_response(data={"alerts": alerts, "count": len(alerts)})


@router.get("/orders/{order_id}", response_model=Dict[str, Any])
async def get_order_detail(
    order_id: str = Path(..., description="Order id"),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Full order record with its payment audit trail and every gateway order it opened"""
    order = core_ops.query.get_order(order_id)
    order["payment_events"] = core_ops.query.list_payment_events(order_id)
    order["gateway_orders"] = core_ops.query.list_gateway_orders(order_id)
    return create_success_response(data=order)


@router.post("/orders/{order_id}/accept", response_model=Dict[str, Any])
async def accept_order(
    order_id: str = Path(..., description="Order id"),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.accept_order(order_id, accepted_by=current_admin.username)
    message = order.pop("message")
    return create_success_response(data=order, message=message)


@router.put("/orders/{order_id}/status", response_model=Dict[str, Any])
async def update_order_status(
    status_request: UpdateStatusRequest,
    order_id: str = Path(..., description="Order id"),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Advance one step along Pending -> Preparing -> Ready -> Delivered"""
    order = core_ops.update_order_status(order_id, status_request.status, actor=current_admin.username)
    message = order.pop("message")
    return create_success_response(data=order, message=message)


@router.post("/orders/{order_id}/verify-payment", response_model=Dict[str, Any])
async def manual_verify_payment(
    verify_request: ManualVerifyRequest = None,
    order_id: str = Path(..., description="Order id"),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Confirm a cash payment, or resolve an unconfirmed online payment by hand"""
    note = verify_request.note if verify_request else None
    order = core_ops.manual_verify_payment(order_id, note=note, verified_by=current_admin.username)
    message = order.pop("message")
    return create_success_response(data=order, message=message)


@router.post("/orders/{order_id}/verify-screenshot", response_model=Dict[str, Any])
async def review_payment_screenshot(
    review_request: ScreenshotReviewRequest,
    order_id: str = Path(..., description="Order id"),
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    order = core_ops.verify_payment_screenshot(order_id, review_request.verified,
                                               verified_by=current_admin.username)
    message = order.pop("message")
    return create_success_response(data=order, message=message)


@router.get("/settings/fees", response_model=Dict[str, Any])
async def get_fee_settings(
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    return create_success_response(data=core_ops.support.get_fee_config().to_dict())


@router.put("/settings/fees", response_model=Dict[str, Any])
async def update_fee_settings(
    fee_request: FeeSettingsRequest,
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    """Applies to orders submitted from now on; existing totals never change"""
    fee_config = core_ops.support.update_fee_config(fee_request.model_dump(exclude_none=True),
                                                    updated_by=current_admin.username)
    logger.info(f"Fee settings updated by {current_admin.username}")
    return create_success_response(data=fee_config.to_dict(), message="Fee settings updated")


@router.get("/settings/store", response_model=Dict[str, Any])
async def get_store_settings(
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    return create_success_response(data=core_ops.support.get_store_config())


@router.put("/settings/store", response_model=Dict[str, Any])
async def update_store_settings(
    store_request: StoreSettingsRequest,
    current_admin: TokenData = Depends(get_admin_user),
    core_ops: CoreOperations = Depends(get_core_operations)
):
    store = core_ops.support.update_store_config(store_request.model_dump(exclude_none=True),
                                                 updated_by=current_admin.username)
    return create_success_response(data=store, message="Store settings updated")

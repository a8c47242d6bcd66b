# Order state machine
# Legal transitions of the fulfillment axis (status) and the payment axis
# (payment_status). Pure guards: persistence applies them under a write lock.

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .errors import StateConflict, InvalidTransition

logger = logging.getLogger(__name__)

CANCELLATION_WINDOW_SECONDS = 30


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    INITIATED = "Initiated"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    GATEWAY = "Gateway"


class OrderType(str, Enum):
    DINE_IN = "DineIn"
    TAKEAWAY = "Takeaway"
    DELIVERY = "Delivery"


# store-driven happy path
NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
}

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# payment axis: Paid is terminal
PAYMENT_TRANSITIONS = {
    PaymentStatus.UNPAID: {PaymentStatus.INITIATED, PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.INITIATED: {PaymentStatus.INITIATED, PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.INITIATED, PaymentStatus.PAID},
    PaymentStatus.PAID: set(),
}


@dataclass(frozen=True)
class OrderSnapshot:
    """The fields the guards look at"""
    order_id: str
    status: OrderStatus
    is_accepted: bool
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    created_at: datetime

    @classmethod
    def from_record(cls, record) -> "OrderSnapshot":
        return cls(
            order_id=record["order_id"],
            status=OrderStatus(record["status"]),
            is_accepted=bool(record["is_accepted"]),
            payment_status=PaymentStatus(record["payment_status"]),
            payment_method=PaymentMethod(record["payment_method"]),
            created_at=parse_timestamp(record["created_at"]),
        )


def parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def elapsed_seconds(created_at: datetime, now: datetime) -> float:
    return (now - created_at).total_seconds()


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def payment_satisfied(order: OrderSnapshot) -> bool:
    """Cash is accepted on trust; everything else needs a confirmed payment"""
    return order.payment_method == PaymentMethod.CASH or order.payment_status == PaymentStatus.PAID


def check_accept(order: OrderSnapshot):
    """Store accepts the order. isAccepted flips exactly once, only while Pending."""
    if order.is_accepted:
        raise StateConflict(
            f"Order {order.order_id} was already accepted",
            StateConflict.ALREADY_ACCEPTED,
            {"current_status": order.status.value},
        )
    if order.status != OrderStatus.PENDING:
        raise StateConflict(
            f"Order {order.order_id} is {order.status.value}, only Pending orders can be accepted",
            StateConflict.NOT_PENDING,
            {"current_status": order.status.value},
        )
    if not payment_satisfied(order):
        raise StateConflict(
            f"Order {order.order_id} payment is {order.payment_status.value}, payment must be confirmed first",
            StateConflict.PAYMENT_REQUIRED,
            {"current_status": order.status.value, "payment_status": order.payment_status.value},
        )


def check_advance(order: OrderSnapshot, requested) -> OrderStatus:
    """
    Store advances the fulfillment status by exactly one step.

    Returns the validated target status. Cancellation is not an advance.
    """
    try:
        target = OrderStatus(requested)
    except ValueError:
        raise InvalidTransition(order.status.value, str(requested))

    expected = NEXT_STATUS.get(order.status)
    if expected is None or target != expected:
        raise InvalidTransition(order.status.value, target.value)

    if order.status == OrderStatus.PENDING and not order.is_accepted:
        raise InvalidTransition(order.status.value, target.value, StateConflict.NOT_ACCEPTED)

    return target


def check_cancel(order: OrderSnapshot, now: datetime,
                 window_seconds: float = CANCELLATION_WINDOW_SECONDS):
    """
    Customer/system cancellation. Valid only from Pending, unaccepted, and
    while elapsed(created_at) <= window (the boundary itself is allowed).
    """
    if order.is_accepted:
        raise StateConflict(
            "Order already accepted, cannot cancel",
            StateConflict.ALREADY_ACCEPTED,
            {"current_status": order.status.value},
        )
    if order.status != OrderStatus.PENDING:
        raise InvalidTransition(order.status.value, OrderStatus.CANCELLED.value)

    elapsed = elapsed_seconds(order.created_at, now)
    if elapsed > window_seconds:
        raise StateConflict(
            "Cancellation window expired",
            StateConflict.WINDOW_EXPIRED,
            {"current_status": order.status.value, "elapsed_seconds": round(elapsed, 3),
             "window_seconds": window_seconds},
        )


def check_payment_update(order: OrderSnapshot, requested) -> Optional[PaymentStatus]:
    """
    Validate a payment-status change.

    Returns the target status, or None when the update is a no-op
    (same terminal value re-reported, e.g. a duplicate webhook).
    Paid is never downgraded.
    """
    target = PaymentStatus(requested)
    current = order.payment_status

    if current == target and current in (PaymentStatus.PAID, PaymentStatus.FAILED):
        return None

    if target not in PAYMENT_TRANSITIONS[current]:
        if current == PaymentStatus.PAID:
            raise StateConflict(
                f"Payment for order {order.order_id} is already confirmed",
                StateConflict.ALREADY_PAID,
                {"payment_status": current.value, "requested_payment_status": target.value},
            )
        raise StateConflict(
            f"Payment cannot move from {current.value} to {target.value}",
            StateConflict.CONCURRENT_UPDATE,
            {"payment_status": current.value, "requested_payment_status": target.value},
        )
    return target

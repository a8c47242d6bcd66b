# Order lifecycle error taxonomy
# Shared by the server (mapped to HTTP status codes in api.main) and the client library

from typing import Any, Dict, Optional


class OrderError(Exception):
    """Base class for every order/payment domain error"""

    code = "order_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {"code": self.code}
        data.update(self.details)
        return data


class ValidationError(OrderError):
    """Malformed or incomplete submission. Never retried automatically."""

    code = "validation_error"
    status_code = 400


class OrderNotFound(OrderError):
    code = "order_not_found"
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", {"order_id": order_id})
        self.order_id = order_id


class StateConflict(OrderError):
    """
    The requested mutation lost a race or violates the transition table.

    Callers must re-fetch the authoritative order status instead of
    retrying the same mutation.
    """

    code = "state_conflict"
    status_code = 409

    ALREADY_ACCEPTED = "alreadyAccepted"
    WINDOW_EXPIRED = "windowExpired"
    NOT_PENDING = "notPending"
    NOT_ACCEPTED = "notAccepted"
    ALREADY_PAID = "alreadyPaid"
    PAYMENT_REQUIRED = "paymentRequired"
    CONCURRENT_UPDATE = "concurrentUpdate"

    def __init__(self, message: str, reason: str, details: Optional[Dict[str, Any]] = None):
        merged = {"reason": reason}
        merged.update(details or {})
        super().__init__(message, merged)
        self.reason = reason


class InvalidTransition(StateConflict):
    code = "invalid_transition"

    def __init__(self, current_status: str, requested_status: str, reason: Optional[str] = None):
        super().__init__(
            f"Cannot move order from {current_status} to {requested_status}",
            reason or StateConflict.NOT_PENDING,
            {"current_status": current_status, "requested_status": requested_status},
        )
        self.current_status = current_status
        self.requested_status = requested_status


class GatewayError(OrderError):
    """Third-party checkout failure or abandoned checkout. Recoverable."""

    code = "gateway_error"
    status_code = 502


class ReconciliationTimeout(OrderError):
    """
    Payment polling budget exhausted without a definitive status.

    The order stays "unconfirmed" until an operator resolves it.
    """

    code = "reconciliation_timeout"
    status_code = 504

    def __init__(self, order_id: str, attempts: int, last_status: Optional[str] = None):
        super().__init__(
            f"Payment for order {order_id} still unconfirmed after {attempts} checks",
            {"order_id": order_id, "attempts": attempts, "last_payment_status": last_status},
        )
        self.order_id = order_id
        self.attempts = attempts
        self.last_status = last_status


class NetworkError(OrderError):
    """Transient transport failure. Status polls tolerate these."""

    code = "network_error"
    status_code = 503


class AuthenticationError(OrderError):
    code = "authentication_error"
    status_code = 401


# code -> class, used by the HTTP client to rebuild server-side errors
ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        OrderError, ValidationError, OrderNotFound, StateConflict, InvalidTransition,
        GatewayError, ReconciliationTimeout, NetworkError, AuthenticationError,
    )
}

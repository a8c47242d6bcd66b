# Order lifecycle domain: errors, pricing, transition guards, urgency

from .errors import (
    OrderError, ValidationError, OrderNotFound, StateConflict, InvalidTransition,
    GatewayError, ReconciliationTimeout, NetworkError, AuthenticationError
)
from .state_machine import OrderStatus, PaymentStatus, PaymentMethod, OrderType
from .pricing import FeeConfig, OfferTerms, Coordinates, PriceBreakdown, compute_total

__all__ = [
    "OrderError",
    "ValidationError",
    "OrderNotFound",
    "StateConflict",
    "InvalidTransition",
    "GatewayError",
    "ReconciliationTimeout",
    "NetworkError",
    "AuthenticationError",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "OrderType",
    "FeeConfig",
    "OfferTerms",
    "Coordinates",
    "PriceBreakdown",
    "compute_total",
]

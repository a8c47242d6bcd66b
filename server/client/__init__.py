# Customer-side client library for the order API

from .api_client import OrderApiClient, error_from_envelope
from .poller import ReconciliationPoller, PollSession, PaymentOutcome
from .cancel_timer import CancellationTimer
from .checkout import CheckoutLauncher, CheckoutResult, PaymentFlow, PaymentResult
from .tracker import OrderTracker

__all__ = [
    "OrderApiClient",
    "error_from_envelope",
    "ReconciliationPoller",
    "PollSession",
    "PaymentOutcome",
    "CancellationTimer",
    "CheckoutLauncher",
    "CheckoutResult",
    "PaymentFlow",
    "PaymentResult",
    "OrderTracker"
]

# Customer-facing order routes

from .routes import router as orders_router
from .models import QuoteRequest, SubmitOrderRequest, CancelOrderRequest, ScreenshotRequest

__all__ = [
    "orders_router",
    "QuoteRequest",
    "SubmitOrderRequest",
    "CancelOrderRequest",
    "ScreenshotRequest"
]

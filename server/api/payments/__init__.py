# Payment gateway routes

from .routes import router as payments_router, get_gateway
from .razorpay_service import RazorpayGateway, start_gateway_checkout

__all__ = [
    "payments_router",
    "get_gateway",
    "RazorpayGateway",
    "start_gateway_checkout"
]

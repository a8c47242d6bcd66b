# Payment request models

from typing import Optional
from pydantic import BaseModel, Field


class VerifyPaymentRequest(BaseModel):
    """Synchronous result handed back by the checkout widget"""
    order_id: Optional[str] = Field(None, description="Order id, checked against the gateway order")
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class PaymentStatusResponse(BaseModel):
    order_id: str
    payment_status: str
    payment_method: str
    total_amount_paise: int
    order_status: str
    payment_verified_at: Optional[str] = None

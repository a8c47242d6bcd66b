# Customer-facing order models

from typing import List, Optional
from pydantic import BaseModel, Field


class CartItem(BaseModel):
    """One cart line, priced by the catalog before checkout"""
    product_ref: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., ge=1, le=99)
    size: Optional[str] = Field(None, max_length=50)
    addons: List[str] = Field(default_factory=list)
    line_total_paise: int = Field(..., ge=0)


class CoordinatesModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DeliveryAddress(BaseModel):
    address: str = Field(..., min_length=1, max_length=500)
    landmark: Optional[str] = Field(None, max_length=200)
    pincode: Optional[str] = Field(None, max_length=10)
    coordinates: CoordinatesModel


class CustomerInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=10, max_length=15)


class QuoteRequest(BaseModel):
    """Cart preview"""
    items: List[CartItem]
    order_type: str = Field("DineIn", description="DineIn / Takeaway / Delivery")
    delivery_coordinates: Optional[CoordinatesModel] = None
    offer_code: Optional[str] = Field(None, max_length=32)


class SubmitOrderRequest(BaseModel):
    """Checkout submission"""
    customer: CustomerInfo
    items: List[CartItem]
    order_type: str = Field("DineIn", description="DineIn / Takeaway / Delivery")
    delivery_address: Optional[DeliveryAddress] = None
    payment_method: str = Field("Cash", description="Cash / Gateway")
    offer_code: Optional[str] = Field(None, max_length=32)
    customer_note: Optional[str] = Field(None, max_length=500)
    expected_total_paise: Optional[int] = Field(None, ge=0, description="Total the customer was shown")


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=200)


class ScreenshotRequest(BaseModel):
    """Manual UPI payment proof"""
    screenshot_url: str = Field(..., min_length=1, max_length=1000)

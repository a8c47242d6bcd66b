# Operator dashboard models

from typing import Optional
from pydantic import BaseModel, Field


class UpdateStatusRequest(BaseModel):
    """Next fulfillment status (Preparing / Ready / Delivered, or Cancelled)"""
    status: str = Field(..., description="Target order status")


class ManualVerifyRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500, description="e.g. cash received at counter")


class ScreenshotReviewRequest(BaseModel):
    verified: bool = Field(..., description="True confirms the payment")


class FeeSettingsRequest(BaseModel):
    """Partial update of the stored fee configuration"""
    tax_rate: Optional[float] = None
    platform_fee_paise: Optional[int] = None
    delivery_fee_base_paise: Optional[int] = None
    delivery_fee_per_km_paise: Optional[int] = None
    free_delivery_threshold_paise: Optional[int] = None
    delivery_radius_km: Optional[float] = None
    store_location: Optional[dict] = None


class StoreSettingsRequest(BaseModel):
    admin_phone: Optional[str] = Field(None, max_length=15)
    upi_id: Optional[str] = Field(None, max_length=100)
    merchant_name: Optional[str] = Field(None, max_length=100)

# Operator dashboard routes

from .routes import router as admin_router
from .models import UpdateStatusRequest, ManualVerifyRequest, ScreenshotReviewRequest, FeeSettingsRequest

__all__ = [
    "admin_router",
    "UpdateStatusRequest",
    "ManualVerifyRequest",
    "ScreenshotReviewRequest",
    "FeeSettingsRequest"
]

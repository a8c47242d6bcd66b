# Admin authentication and shared request dependencies

from .routes import router as auth_router, get_database, get_admin_user, get_clock, get_core_operations
from .models import LoginRequest, LoginResponse, TokenData

__all__ = [
    "auth_router",
    "get_database",
    "get_admin_user",
    "get_clock",
    "get_core_operations",
    "LoginRequest",
    "LoginResponse",
    "TokenData"
]

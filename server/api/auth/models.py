# Admin authentication models

from typing import Optional
from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Admin login request"""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    username: str


class TokenData(BaseModel):
    """Decoded admin token"""
    admin_id: int
    username: str
    exp: Optional[int] = None

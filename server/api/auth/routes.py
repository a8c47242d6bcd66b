# Admin authentication routes and the dependencies shared by every router

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .models import LoginRequest, LoginResponse, TokenData
from core.errors import AuthenticationError
from db.core_operations import CoreOperations
from db.manager import DatabaseManager
from db.supporting_operations import SupportingOperations, utc_now
from utils.config import Config
from utils.security import JWTManager
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["Auth"])

config = Config()
jwt_manager = JWTManager(
    secret_key=config.get("auth.jwt_secret_key"),
    algorithm=config.get("auth.jwt_algorithm", "HS256"),
    access_token_expire_minutes=config.get("auth.access_token_expire_minutes", 720)
)
security = HTTPBearer(auto_error=False)


def get_database():
    """One connection per request"""
    db_config = config.get_database_config()
    db_manager = DatabaseManager(
        db_config["path"],
        auto_connect=True,
        busy_timeout=db_config.get("busy_timeout_seconds", 5)
    )
    try:
        yield db_manager
    finally:
        db_manager.close()


def get_clock() -> Callable[[], datetime]:
    """Server clock used for the cancellation window and audit timestamps"""
    return utc_now


def get_core_operations(
    db: DatabaseManager = Depends(get_database),
    clock: Callable[[], datetime] = Depends(get_clock)
) -> CoreOperations:
    return CoreOperations(
        db,
        clock=clock,
        cancellation_window_seconds=config.get_ordering_config()["cancellation_window_seconds"]
    )


def get_admin_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: DatabaseManager = Depends(get_database)
) -> TokenData:
    """Bearer token of an active admin account"""
    if credentials is None:
        raise AuthenticationError("Admin login required")

    payload = jwt_manager.verify_token(credentials.credentials)
    if not payload or "admin_id" not in payload:
        raise AuthenticationError("Session expired, please log in again")

    admin = SupportingOperations(db).get_admin(payload["admin_id"])
    if not admin or not admin["is_active"]:
        logger.warning(f"Token presented for unknown or disabled admin {payload['admin_id']}")
        raise AuthenticationError("Admin account is disabled")

    return TokenData(admin_id=admin["admin_id"], username=admin["username"], exp=payload.get("exp"))


@router.post("/login", response_model=Dict[str, Any])
async def login(
    login_request: LoginRequest,
    db: DatabaseManager = Depends(get_database)
):
    """Admin username/password login, returns a bearer token"""
    support_ops = SupportingOperations(db)
    try:
        admin = support_ops.authenticate_admin(login_request.username, login_request.password)
    except AuthenticationError:
        logger.warning(f"Failed admin login for '{login_request.username}'")
        raise

    access_token = jwt_manager.create_access_token({
        "admin_id": admin["admin_id"],
        "username": admin["username"],
    })

    logger.info(f"Admin {admin['username']} logged in")

    response_data = LoginResponse(
        access_token=access_token,
        expires_in=jwt_manager.access_token_expire_minutes * 60,
        username=admin["username"]
    )
    return create_success_response(data=response_data.model_dump(), message="Login successful")


@router.get("/me", response_model=Dict[str, Any])
async def get_current_admin(current_admin: TokenData = Depends(get_admin_user)):
    return create_success_response(data=current_admin.model_dump(), message="OK")

# CORS middleware for the storefront and the operator dashboard

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict, Any

from utils.config import is_unresolved

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]


def setup_cors_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Origins come from the `cors` section. Production lists them as
    ${FRONTEND_ORIGIN} placeholders; unset ones are dropped.
    """
    cors_config = config.get('cors', {})

    origins = [origin for origin in cors_config.get('allowed_origins', DEFAULT_ORIGINS)
               if not is_unresolved(origin)]
    if not origins:
        origins = DEFAULT_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allowed_methods', ["*"]),
        allow_headers=cors_config.get('allowed_headers', ["*"]),
        expose_headers=["X-Request-ID"],
    )

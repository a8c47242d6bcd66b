# Security middleware: response headers, request size limit, per-IP rate limit

import time
import logging
from collections import defaultdict
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from typing import Dict, Any

from utils.response import create_error_response

logger = logging.getLogger(__name__)

# never throttled: gateway webhook retries, health checks
RATE_LIMIT_EXEMPT_PATHS = {"/api/payments/webhook", "/health"}


def setup_security_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Args:
        app: FastAPI application
        config: config dict (`security` section)
    """
    security_config = config.get('security', {})
    max_request_size = security_config.get('max_request_size', 1024 * 1024)
    rate_limit = security_config.get('rate_limit', 100)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"

        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        content_length = request.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_request_size:
            logger.warning(f"Rejected {request.url.path}: body of {content_length} bytes "
                           f"exceeds {max_request_size}")
            return JSONResponse(status_code=413, content=create_error_response("Request entity too large"))

        return await call_next(request)

    # requests per (ip, minute), in-process only
    request_counts: Dict[tuple, int] = defaultdict(int)

    @app.middleware("http")
    async def rate_limiting(request: Request, call_next):
        if request.url.path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        current_minute = int(time.time() // 60)
        request_counts[(client_ip, current_minute)] += 1

        for stale in [key for key in request_counts if key[1] < current_minute - 1]:
            del request_counts[stale]

        if request_counts[(client_ip, current_minute)] > rate_limit:
            logger.warning(f"Rate limit exceeded for IP {client_ip} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content=create_error_response("Too many requests, please slow down"),
                headers={"Retry-After": "60"},
            )

        return await call_next(request)

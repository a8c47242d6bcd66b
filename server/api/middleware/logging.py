# Request logging middleware
# Poll endpoints (order tracking, payment status) are hit every few seconds
# per open order screen, so they log at DEBUG unless slow or failing.

import re
import time
import uuid
import logging
from fastapi import FastAPI, Request
from typing import Dict, Any

logger = logging.getLogger(__name__)

POLL_PATHS = [
    re.compile(r"^/api/orders/[0-9a-f]{32}$"),
    re.compile(r"^/api/payments/status/[^/]+$"),
]


def is_poll_request(request: Request) -> bool:
    return request.method == "GET" and any(p.match(request.url.path) for p in POLL_PATHS)


def setup_logging_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Log each request with a short id, echoed back in X-Request-ID

    Args:
        app: FastAPI application
        config: config dict (`logging.slow_request_ms`)
    """
    slow_request_ms = config.get('logging', {}).get('slow_request_ms', 1000)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        poll = is_poll_request(request)
        start_time = time.perf_counter()

        logger.log(
            logging.DEBUG if poll else logging.INFO,
            f"[{request_id}] {request.method} {request.url.path} - "
            f"Client: {request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"[{request_id}] ERROR - {str(e)} - {elapsed_ms:.0f}ms")
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if elapsed_ms > slow_request_ms:
            level = logging.WARNING
        elif poll and response.status_code < 400:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(level, f"[{request_id}] {response.status_code} - {elapsed_ms:.0f}ms")

        response.headers["X-Request-ID"] = request_id
        return response

# Unified API response envelope

from datetime import datetime, timezone
from typing import Any, Dict


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')


def create_success_response(
    data: Any = None,
    message: str = "OK"
) -> Dict[str, Any]:
    """
    Success envelope

    Args:
        data: payload
        message: human readable message
    """
    return {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": _timestamp()
    }


def create_error_response(
    error: str,
    data: Any = None
) -> Dict[str, Any]:
    """
    Error envelope

    Args:
        error: error description shown to the user
        data: machine readable details (code, reason, ...)
    """
    return {
        "success": False,
        "error": error,
        "data": data,
        "timestamp": _timestamp()
    }


def format_amount(paise: int) -> str:
    """Integer paise as a rupee amount for messages, e.g. 52598 -> 525.98"""
    return f"{(paise or 0) // 100}.{(paise or 0) % 100:02d}"

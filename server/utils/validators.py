# Input validators

import re
from typing import Any, Optional
from urllib.parse import urlparse


def validate_phone(phone: str) -> bool:
    """
    Indian mobile number, optionally prefixed with +91 / 91 / 0

    Args:
        phone: phone string

    Returns:
        validation result
    """
    if not phone or not isinstance(phone, str):
        return False

    digits = re.sub(r'[\s-]', '', phone)
    return re.match(r'^(?:\+91|91|0)?[6-9]\d{9}$', digits) is not None


def normalize_phone(phone: str) -> str:
    """Last 10 digits, used as the customer key"""
    digits = re.sub(r'\D', '', phone or '')
    return digits[-10:]


def validate_coordinates(lat: Any, lng: Any) -> bool:
    try:
        lat = float(lat)
        lng = float(lng)
    except (ValueError, TypeError):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def validate_string_length(value: str, min_length: int = 0, max_length: Optional[int] = None) -> bool:
    if not isinstance(value, str):
        return False

    if len(value.strip()) < min_length:
        return False

    if max_length is not None and len(value) > max_length:
        return False

    return True


def validate_url(url: str) -> bool:
    """http(s) URL with a host, e.g. an uploaded payment screenshot"""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

# Async HTTP client for the customer-facing order API

import logging
from typing import Any, Dict, List, Optional

import httpx

from core.errors import (
    ERRORS_BY_CODE, AuthenticationError, GatewayError, InvalidTransition, NetworkError, OrderError,
    OrderNotFound, StateConflict, ValidationError
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def error_from_envelope(status_code: int, body: Dict[str, Any]) -> OrderError:
    """Rebuild the server's domain error from an error envelope"""
    message = body.get("error") or f"Request failed with status {status_code}"
    details = dict(body.get("data") or {})
    code = details.pop("code", None)

    if code == InvalidTransition.code:
        return InvalidTransition(details.get("current_status", ""), details.get("requested_status", ""),
                                 details.get("reason"))
    if code == StateConflict.code:
        reason = details.pop("reason", StateConflict.CONCURRENT_UPDATE)
        return StateConflict(message, reason, details)
    if code == OrderNotFound.code:
        return OrderNotFound(details.get("order_id", ""))

    error_class = ERRORS_BY_CODE.get(code)
    if error_class in (ValidationError, GatewayError, AuthenticationError):
        return error_class(message, details)
    return OrderError(message, details)


class OrderApiClient:
    """
    Thin wrapper over httpx.AsyncClient.

    Transport failures and 5xx responses (other than gateway errors) raise
    NetworkError; error envelopes raise the matching domain exception.
    """

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {type(e).__name__}: {e}")
            raise NetworkError(f"Could not reach the server: {e}", {"path": path})

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success and body is not None:
            return body.get("data")

        if isinstance(body, dict) and body.get("success") is False:
            error = error_from_envelope(response.status_code, body)
            if response.status_code >= 500 and type(error) is OrderError:
                raise NetworkError(error.message, {"path": path, "status_code": response.status_code})
            raise error

        raise NetworkError(f"Unexpected response {response.status_code} from {path}",
                           {"path": path, "status_code": response.status_code})

    async def quote(self, items: List[Dict[str, Any]], order_type: str,
                    delivery_coordinates: Optional[Dict[str, float]] = None,
                    offer_code: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("POST", "/api/orders/quote", json={
            "items": items,
            "order_type": order_type,
            "delivery_coordinates": delivery_coordinates,
            "offer_code": offer_code,
        })

    async def submit_order(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        """Returns {order, checkout}; checkout is None for cash orders"""
        return await self._request("POST", "/api/orders", json=draft)

    async def get_order_status(self, order_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/orders/{order_id}")

    async def get_payment_status(self, order_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/payments/status/{order_id}")

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("POST", f"/api/orders/{order_id}/cancel", json={"reason": reason})

    async def verify_payment(self, order_id: str, gateway_order_id: str, payment_id: str,
                             signature: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/payments/verify", json={
            "order_id": order_id,
            "razorpay_order_id": gateway_order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        })

    async def retry_payment(self, order_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/payments/{order_id}/retry")

    async def upload_screenshot(self, order_id: str, screenshot_url: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/orders/{order_id}/payment-screenshot",
                                   json={"screenshot_url": screenshot_url})

    async def get_store_contact(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/orders/store-contact")

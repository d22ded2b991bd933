"""
Ordering Gateway HTTP Client

Async client used by the table frontend, kitchen display and waiter
tools to call the ordering webhooks.

Retry Policy:
    - Server errors (5xx), 429 and transport failures are retried
    - Up to ``retry_attempts`` extra tries, delay doubling from
      ``retry_delay_seconds`` (1s, 2s, ...)
    - Other 4xx responses are caller errors and raise immediately

Version: 1.0.0
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from tableorder.core.config import get_settings

logger = logging.getLogger(__name__)

ORDER_CREATE = "/webhook/order-create"
KITCHEN_UPDATE = "/webhook/kitchen-update"
ORDER_SERVED = "/webhook/order-served"
GENERATE_BILL = "/webhook/generate-bill"


class ApiError(Exception):
    """Non-retryable error response from the gateway."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class GatewayUnavailable(Exception):
    """Retries exhausted on server errors or transport failures."""


class _RetryableResponse(Exception):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Server error: {status_code}")


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback
    message = body.get("message") or body.get("detail")
    if isinstance(message, list):
        # FastAPI validation detail: [{"loc": [...], "msg": "..."}, ...]
        message = "; ".join(
            str(entry.get("msg", entry)) if isinstance(entry, dict) else str(entry)
            for entry in message
        )
    return str(message) if message else fallback


class OrderingClient:
    """
    Thin async wrapper around the ordering webhooks.

    Usage:
        async with OrderingClient() as client:
            order_id = await client.create_order("T1", "ABC123XYZ789", [
                {"itemId": "MENU001", "name": "Masala Dosa", "qty": 2},
            ])
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        retry_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.retry_attempts = settings.retry_attempts if retry_attempts is None else retry_attempts
        self.retry_delay_seconds = (
            settings.retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.gateway_base_url,
            headers={"X-Webhook-Secret": webhook_secret or settings.webhook_secret},
            timeout=timeout or settings.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "OrderingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _post(self, path: str, payload: dict[str, Any], fallback: str) -> httpx.Response:
        last_error: Optional[Exception] = None
        total = self.retry_attempts + 1

        for attempt in range(total):
            try:
                response = await self._http.post(path, json=payload)
                if response.status_code >= 500 or response.status_code == 429:
                    raise _RetryableResponse(response.status_code)
                if response.is_error:
                    raise ApiError(response.status_code, _error_message(response, fallback))
                return response
            except (httpx.TransportError, _RetryableResponse) as e:
                last_error = e
                logger.warning(f"{path} attempt {attempt + 1}/{total} failed: {e}")
                if attempt < self.retry_attempts:
                    delay = self.retry_delay_seconds * (2 ** attempt)
                    logger.info(f"Retrying in {delay}s...")
                    await self._sleep(delay)

        raise GatewayUnavailable(f"Failed after {total} attempts: {last_error or 'Unknown error'}")

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def create_order(self, table_id: str, token: str, items: Iterable[dict[str, Any]]) -> str:
        response = await self._post(
            ORDER_CREATE,
            {"tableId": table_id, "token": token, "items": list(items)},
            "Failed to create order",
        )
        return response.json()["orderId"]

    async def update_kitchen_status(self, order_id: str, updates: Iterable[dict[str, Any]]) -> None:
        await self._post(
            KITCHEN_UPDATE,
            {"orderId": order_id, "updates": list(updates)},
            "Failed to update kitchen status",
        )

    async def mark_order_served(
        self,
        order_id: str,
        served_items: Iterable[str],
        timestamp: Optional[datetime] = None,
    ) -> None:
        timestamp = timestamp or datetime.now(timezone.utc)
        await self._post(
            ORDER_SERVED,
            {
                "orderId": order_id,
                "servedItems": list(served_items),
                "timestamp": timestamp.isoformat(),
            },
            "Failed to mark order as served",
        )

    async def generate_bill(self, order_id: str) -> str:
        response = await self._post(GENERATE_BILL, {"orderId": order_id}, "Failed to generate bill")
        return response.json()["checkoutUrl"]

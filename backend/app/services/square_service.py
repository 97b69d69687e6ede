"""
CustomTees Backend — Square API Client
========================================

What:  Read-only access to Square Payments and Orders for checkout
       verification.
How:   httpx with Bearer auth and a pinned Square-Version header; GETs are
       retried on transport errors with tenacity.
Who:   PaymentService.

A 404 from Square is "not found" (None), not an error. Every other
failure raises PaymentGatewayError.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"


class SquareService:

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.square_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def configured(self) -> bool:
        return settings.square_configured

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_with_retry(self, url: str) -> httpx.Response:
        client = await self._get_http_client()
        return await client.get(
            url,
            headers={
                "Authorization": f"Bearer {settings.square_access_token}",
                "Content-Type": "application/json",
                "Square-Version": settings.square_api_version,
            },
        )

    async def _get(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Raises:
            PaymentGatewayError: Square unreachable, non-404 error, or bad JSON
        """
        try:
            response = await self._get_with_retry(f"{settings.square_base_url}{path}")
        except httpx.HTTPError as e:
            logger.error("Square GET %s failed: %s", path, str(e))
            raise PaymentGatewayError(f"Square API GET {path} failed: {e}")

        if response.status_code == 404:
            logger.info("Square GET %s -> 404", path)
            return None
        if response.is_error:
            logger.error("Square GET %s -> %d %s", path, response.status_code, response.text[:500])
            raise PaymentGatewayError(
                f"Square API GET {path} failed: {response.status_code}",
                context={"status_code": response.status_code},
            )
        try:
            return response.json()
        except ValueError:
            raise PaymentGatewayError(f"Square API GET {path} returned invalid JSON")

    async def retrieve_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get(f"/v2/payments/{payment_id}")
        return (data or {}).get("payment")

    async def retrieve_order(self, square_order_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get(f"/v2/orders/{square_order_id}")
        return (data or {}).get("order")

    async def find_order_payment(self, square_order_id: str) -> Optional[Dict[str, Any]]:
        """
        Payment behind a Square order's tenders.

        Prefers a COMPLETED payment, else the first one Square still knows.
        """
        square_order = await self.retrieve_order(square_order_id)
        if not square_order:
            return None

        payment_ids: List[str] = []
        for tender in square_order.get("tenders") or []:
            pid = tender.get("payment_id") or tender.get("id")
            if pid and pid not in payment_ids:
                payment_ids.append(pid)

        payments = []
        for pid in payment_ids:
            payment = await self.retrieve_payment(pid)
            if payment is None:
                continue
            if payment.get("status") == COMPLETED:
                return payment
            payments.append(payment)
        return payments[0] if payments else None


# ── Singleton Instance ────────────────────────────────────────────────────
square_service = SquareService()

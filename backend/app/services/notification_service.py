"""
CustomTees Backend — Customer Notification Service
====================================================

What:  Shipping emails: label created, delivered, and tracking milestones.
How:   SendGrid v3 /mail/send over httpx. Without SENDGRID_API_KEY the
       message is logged and treated as sent (local development).
Who:   order_lifecycle.commit_and_notify, on behalf of shipment and tracking flows.

Every message links to <frontend_url>/track/<tracking_number>.
Provider failures raise NotificationError; callers decide whether the
order keeps its "email sent" stamp.
"""

import html
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.exceptions import NotificationError

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"

STATUS_COPY: Dict[str, Dict[str, str]] = {
    "label_created": {
        "subject": "{store} order label created",
        "headline": "Label created",
        "message": "We generated your UPS shipping label. Next stop: UPS pickup.",
    },
    "origin_scan": {
        "subject": "UPS scanned your package",
        "headline": "UPS has your order",
        "message": "UPS scanned your package at their origin facility and it will start moving shortly.",
    },
    "departed_facility": {
        "subject": "Your package departed a UPS facility",
        "headline": "Left the UPS facility",
        "message": "UPS has moved your order to the next sorting facility.",
    },
    "in_transit": {
        "subject": "Your package is in transit",
        "headline": "In transit",
        "message": "UPS is currently transporting your package to the next stop.",
    },
    "out_for_delivery": {
        "subject": "Your package is out for delivery",
        "headline": "Out for delivery",
        "message": "UPS placed your order on a local truck for final delivery today.",
    },
    "fallback": {
        "subject": "{store} tracking update",
        "headline": "Tracking update",
        "message": "We have a new UPS update for your order.",
    },
}

_WRAPPER = '<div style="font-family: Arial, sans-serif; max-width: 640px; margin: 0 auto; color: #111;">{body}</div>'
_CARD = '<div style="background:#f5f5f5;border-radius:12px;padding:16px;margin:20px 0;">{body}</div>'
_BUTTON = (
    '<a href="{url}" style="display:inline-block;margin-top:12px;padding:10px 18px;'
    'background:#111;color:#fff;text-decoration:none;border-radius:8px;">{label}</a>'
)


def tracking_link(tracking_number: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/track/{tracking_number}"


def short_order_ref(order_id: Optional[str]) -> str:
    return f"#{order_id[-6:]}" if order_id else ""


def status_copy(milestone: Optional[str]) -> Dict[str, str]:
    copy = STATUS_COPY.get(milestone or "", STATUS_COPY["fallback"])
    return {key: value.format(store=settings.store_name) for key, value in copy.items()}


def _format_eta(value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.strftime("%a, %b %d")
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%a, %b %d")
    except ValueError:
        return str(value)


class NotificationService:

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
        self._http_client = None

    async def _send(self, to: str, subject: str, body_html: str) -> None:
        """
        Delivers one message.

        Raises:
            NotificationError: SendGrid unreachable or refused the message
        """
        if not settings.sendgrid_api_key:
            logger.info("Email provider not configured; would send '%s' to %s", subject, to)
            return

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": settings.email_from, "name": settings.store_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": body_html}],
        }

        client = await self._get_http_client()
        try:
            response = await client.post(
                SENDGRID_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.sendgrid_api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("SendGrid request failed for '%s': %s", subject, str(e))
            raise NotificationError(f"Failed to send email: {e}")

        if response.status_code not in (200, 202):
            logger.error("SendGrid rejected '%s': %d %s", subject, response.status_code, response.text[:500])
            raise NotificationError(
                f"Failed to send email (status {response.status_code})",
                context={"status_code": response.status_code},
            )
        logger.info("Email '%s' sent to %s", subject, to)

    @staticmethod
    def _require(email: Optional[str], tracking_number: Optional[str]) -> None:
        if not email or not tracking_number:
            raise NotificationError("Missing email or tracking number")

    async def send_tracking_notification(
        self,
        email: str,
        name: Optional[str],
        tracking_number: str,
        order_id: str,
        estimated_delivery: Any = None,
    ) -> None:
        """Label purchased: the package is ready to ship."""
        self._require(email, tracking_number)
        store = html.escape(settings.store_name)
        eta = _format_eta(estimated_delivery)
        card = (
            '<div style="font-size:13px;text-transform:uppercase;color:#666;">Tracking Number</div>'
            f'<div style="font-size:22px;font-weight:700;letter-spacing:1px;margin:8px 0;">{html.escape(tracking_number)}</div>'
            + (f'<div style="font-size:14px;color:#333;">Estimated delivery: <strong>{eta}</strong></div>' if eta else "")
            + _BUTTON.format(url=tracking_link(tracking_number), label="Track Package")
        )
        body = (
            f'<h2 style="color:#111;margin-bottom:8px;">Your {store} order is on the way!</h2>'
            f"<p>Hi {html.escape(name or 'there')},</p>"
            f"<p>We've generated a UPS label for your order {short_order_ref(order_id)}. "
            "Use the tracking number below to follow your package.</p>"
            + _CARD.format(body=card)
            + "<p>We'll keep you posted as UPS scans your shipment.</p>"
        )
        await self._send(email, f"{settings.store_name} order is ready to ship", _WRAPPER.format(body=body))

    async def send_delivery_notification(
        self,
        email: str,
        name: Optional[str],
        tracking_number: str,
        order_id: str,
    ) -> None:
        self._require(email, tracking_number)
        store = html.escape(settings.store_name)
        card = (
            '<div style="font-size:13px;text-transform:uppercase;color:#666;">Tracking Number</div>'
            f'<div style="font-size:20px;font-weight:600;margin:8px 0;">{html.escape(tracking_number)}</div>'
            + _BUTTON.format(url=tracking_link(tracking_number), label="View Delivery Details")
        )
        body = (
            f'<h2 style="color:#111;margin-bottom:8px;">Delivered: Your {store} order</h2>'
            f"<p>Hi {html.escape(name or 'there')},</p>"
            f"<p>UPS has confirmed delivery for order {short_order_ref(order_id)}. "
            "We hope you love your new custom gear!</p>"
            + _CARD.format(body=card)
            + f'<p style="margin-top:32px;font-size:12px;color:#666;">Thank you for choosing {store}.</p>'
        )
        await self._send(email, f"{settings.store_name} order delivered", _WRAPPER.format(body=body))

    async def send_tracking_status_update(
        self,
        email: str,
        name: Optional[str],
        tracking_number: str,
        order_id: str,
        milestone: Optional[str],
        status_text: Optional[str] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        estimated_delivery: Any = None,
    ) -> None:
        """Milestone email; copy comes from STATUS_COPY, unknown milestones use the fallback."""
        self._require(email, tracking_number)
        copy = status_copy(milestone)
        eta = _format_eta(estimated_delivery)
        card = (
            '<div style="font-size:12px;text-transform:uppercase;color:#666;">Latest UPS scan</div>'
            f'<div style="font-size:18px;font-weight:700;margin:4px 0;">'
            f"{html.escape(status_text or description or 'Status update')}</div>"
            + (f'<div style="font-size:13px;color:#555;margin-bottom:8px;">{html.escape(location)}</div>' if location else "")
            + (f'<div style="font-size:13px;color:#333;">Estimated delivery: <strong>{eta}</strong></div>' if eta else "")
            + _BUTTON.format(url=tracking_link(tracking_number), label="View tracking timeline")
        )
        body = (
            f'<p style="margin:0 0 4px 0;">Hi {html.escape(name or "there")},</p>'
            f'<h2 style="margin:0 0 8px 0;color:#111;">{html.escape(copy["headline"])}</h2>'
            f'<p style="margin:0 0 12px 0;">{html.escape(copy["message"])}</p>'
            + _CARD.format(body=card)
            + f'<p style="font-size:12px;color:#666;">Order {short_order_ref(order_id)} · '
            f"Tracking {html.escape(tracking_number)}</p>"
        )
        await self._send(email, copy["subject"], _WRAPPER.format(body=body))


# ── Singleton Instance ────────────────────────────────────────────────────
notification_service = NotificationService()

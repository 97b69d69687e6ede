"""
CustomTees Backend — Tracking Service
=======================================

What:  Normalizes UPS tracking responses, writes them onto orders, and
       emails customers as their package moves.
Who:   routes/tracking.py and the optional background sync task (main.py).

Pipeline:
    UPS trackResponse → extract_activities() → newest-first TrackingEvent list
                      → map_event_to_milestone(latest) → (shipment stage, milestone)
                      → TrackingDetails
    TrackingDetails + Order → persist_tracking_on_order() → history, summary,
                      status pair, delivery/status emails

Milestone mapping (first keyword match on "status description", then code):
    label created                       → pending          / label_created
    origin scan, pickup scan            → label_generated  / origin_scan
    departed ups facility, departure scan → carrier_handoff / departed_facility
    out for delivery                    → in_transit       / out_for_delivery
    in transit, arrival scan            → in_transit       / in_transit
    delivered                           → delivered        / delivered
    code D → delivered, code I → in_transit
"""

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.database import session_scope
from app.exceptions import (
    AuthorizationError,
    CustomTeesError,
    DatabaseError,
    PreconditionError,
    ValidationError,
)
from app.models.columns import utcnow
from app.models.order import Order, OrderStatus, ShipmentStatus
from app.models.user import User
from app.schemas.shipping import SyncResult, TrackingDetails, TrackingEvent
from app.services.notification_service import NotificationService, notification_service
from app.services.order_lifecycle import (
    PendingNotification,
    check_transition,
    commit_and_notify,
    load_order_with_user,
    stage_notification,
)
from app.services.ups_service import UPSService, dig, first_item, ups_service

logger = logging.getLogger(__name__)

MILESTONE_RULES: List[Tuple[Tuple[str, ...], str, str]] = [
    (("label created",), ShipmentStatus.PENDING, "label_created"),
    (("origin scan", "pickup scan"), ShipmentStatus.LABEL_GENERATED, "origin_scan"),
    (("departed ups facility", "departure scan"), ShipmentStatus.CARRIER_HANDOFF, "departed_facility"),
    (("out for delivery",), ShipmentStatus.IN_TRANSIT, "out_for_delivery"),
    (("in transit",), ShipmentStatus.IN_TRANSIT, "in_transit"),
    (("arrival scan",), ShipmentStatus.IN_TRANSIT, "in_transit"),
    (("delivered",), ShipmentStatus.DELIVERED, "delivered"),
]

CODE_RULES = {
    "D": (ShipmentStatus.DELIVERED, "delivered"),
    "I": (ShipmentStatus.IN_TRANSIT, "in_transit"),
}

DEFAULT_SHIPMENT_STATUS = ShipmentStatus.LABEL_GENERATED


# ══════════════════════════════════════════════════════════════════════════
# Normalization
# ══════════════════════════════════════════════════════════════════════════

def _digits(value: Any) -> str:
    return "".join(ch for ch in str(value or "") if ch.isdigit())


def parse_ups_datetime(date_str: Any, time_str: Any = None) -> Optional[datetime]:
    """
    UPS "YYYYMMDD" + "HHMMSS" → aware UTC datetime.

    Missing month/day default to 01 and a missing time to midnight. Returns
    None when the pieces do not form a real date.
    """
    date_digits = _digits(date_str)
    if not date_digits:
        return None
    time_digits = _digits(time_str)

    year = date_digits[0:4]
    month = date_digits[4:6] or "01"
    day = date_digits[6:8] or "01"
    hours = time_digits[0:2] or "00"
    minutes = time_digits[2:4] or "00"
    seconds = time_digits[4:6] or "00"

    try:
        return datetime(
            int(year), int(month), int(day),
            int(hours), int(minutes), int(seconds),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def _first_present(activity: Dict[str, Any], *paths: Tuple[str, ...]) -> Any:
    for path in paths:
        value = dig(activity, *path)
        if value:
            return value
    return None


def normalize_activity(activity: Any) -> Optional[TrackingEvent]:
    """One UPS activity (new camelCase or legacy PascalCase shape) → TrackingEvent."""
    if not isinstance(activity, dict) or not activity:
        return None

    status = _first_present(
        activity,
        ("status", "description"),
        ("Status", "Description"),
        ("description",),
        ("ActivityType", "Description"),
    ) or "Activity"
    code = _first_present(
        activity,
        ("status", "code"),
        ("Status", "Code"),
        ("code",),
        ("ActivityType", "Code"),
    )
    description = _first_present(
        activity,
        ("description",),
        ("Status", "Description"),
        ("status", "description"),
        ("ActivityType", "Description"),
    ) or status

    location_parts = [
        _first_present(activity, ("location", "address", "city"), ("Location", "Address", "City")),
        _first_present(
            activity,
            ("location", "address", "stateProvince"),
            ("Location", "Address", "StateProvinceCode"),
        ),
        _first_present(
            activity,
            ("location", "address", "country"),
            ("Location", "Address", "CountryCode"),
        ),
    ]

    return TrackingEvent(
        status=str(status),
        code=str(code) if code else None,
        description=str(description),
        location=", ".join(str(part) for part in location_parts if part),
        date=parse_ups_datetime(
            activity.get("date") or activity.get("Date"),
            activity.get("time") or activity.get("Time"),
        ),
    )


def _first_package(data: Any) -> Any:
    shipments = (
        dig(data, "trackResponse", "shipment")
        or dig(data, "Shipment")
        or dig(data, "shipments")
    )
    shipment = first_item(shipments)
    if not isinstance(shipment, dict):
        return None
    return first_item(shipment.get("package") or shipment.get("Package"))


def _event_sort_key(event: TrackingEvent) -> float:
    return event.date.timestamp() if event.date else 0.0


def extract_activities(data: Any) -> List[TrackingEvent]:
    """All activities of the first package, newest first (undated last)."""
    package = _first_package(data)
    if not isinstance(package, dict):
        return []
    activities = package.get("activity") or package.get("Activity") or []
    if isinstance(activities, dict):
        activities = [activities]

    events = [e for e in (normalize_activity(a) for a in activities) if e is not None]
    events.sort(key=_event_sort_key, reverse=True)
    return events


def extract_estimated_delivery(data: Any) -> Optional[datetime]:
    package = _first_package(data)
    if not isinstance(package, dict):
        return None
    delivery = first_item(
        package.get("deliveryDate") or package.get("DeliveryDate") or package.get("ScheduledDeliveryDate")
    )
    if not delivery:
        return None
    if isinstance(delivery, dict):
        return parse_ups_datetime(
            delivery.get("date") or delivery.get("Date"),
            delivery.get("time") or delivery.get("Time"),
        )
    return parse_ups_datetime(delivery)


def map_event_to_milestone(event: Optional[TrackingEvent]) -> Tuple[Optional[str], Optional[str]]:
    """(shipment stage, milestone key) for the latest event; (None, None) when unmapped."""
    if event is None:
        return None, None

    haystack = f"{event.status or ''} {event.description or ''}".lower()
    for keywords, stage, milestone in MILESTONE_RULES:
        if any(keyword in haystack for keyword in keywords):
            return stage, milestone

    return CODE_RULES.get((event.code or "").upper(), (None, None))


def build_tracking_details(tracking_number: str, data: Any) -> TrackingDetails:
    events = extract_activities(data)
    latest = events[0] if events else None
    stage, milestone = map_event_to_milestone(latest)
    return TrackingDetails(
        tracking_number=tracking_number,
        shipment_status=stage or DEFAULT_SHIPMENT_STATUS,
        milestone_key=milestone,
        latest_event=latest,
        estimated_delivery=extract_estimated_delivery(data),
        events=events,
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def build_summary(order: Order, details: TrackingDetails) -> Dict[str, Any]:
    """Latest-event summary; each field falls back to the stored summary."""
    previous = order.tracking_summary or {}
    latest = details.latest_event
    return {
        "status": (latest.status if latest else None) or previous.get("status"),
        "description": (latest.description if latest else None) or previous.get("description"),
        "code": (latest.code if latest else None) or previous.get("code"),
        "estimatedDelivery": _iso(details.estimated_delivery) or previous.get("estimatedDelivery"),
        "lastLocation": (latest.location if latest else None) or previous.get("lastLocation"),
        "updatedAt": utcnow().isoformat(),
    }


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

class TrackingService:

    def __init__(
        self,
        carrier: Optional[UPSService] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.carrier = carrier or ups_service
        self.notifier = notifier or notification_service

    async def fetch_tracking_details(self, tracking_number: str) -> TrackingDetails:
        if not tracking_number or not tracking_number.strip():
            raise ValidationError("Tracking number is required", field="tracking_number")
        tracking_number = tracking_number.strip()
        data = await self.carrier.fetch_tracking(tracking_number)
        details = build_tracking_details(tracking_number, data)
        logger.info(
            "Tracking %s: %d events, stage=%s milestone=%s",
            tracking_number,
            len(details.events),
            details.shipment_status,
            details.milestone_key,
        )
        return details

    def _apply_shipment_stage(self, order: Order, details: TrackingDetails) -> None:
        target = details.shipment_status
        if target == ShipmentStatus.DELIVERED:
            requested_status = OrderStatus.DELIVERED
        elif target == order.shipment_status:
            return
        else:
            requested_status = order.status

        try:
            order.status, order.shipment_status = check_transition(order, requested_status, target)
        except PreconditionError as e:
            logger.warning(
                "Ignoring UPS stage '%s' for order %s (%s/%s): %s",
                target,
                order.id,
                order.status,
                order.shipment_status,
                e.message,
            )
            return

        if order.shipment_status == ShipmentStatus.DELIVERED and order.delivered_at is None:
            latest = details.latest_event
            order.delivered_at = (latest.date if latest else None) or utcnow()

    def _stage_emails(self, order: Order, details: TrackingDetails) -> List[PendingNotification]:
        summary = order.tracking_summary or {}
        status_text = summary.get("status")
        user = order.user
        email = user.email if user is not None else None
        name = user.name if user is not None else None

        if order.shipment_status == ShipmentStatus.DELIVERED and order.delivery_email_sent_at is None:
            if not email:
                order.delivery_email_sent_at = utcnow()
                return []
            send = partial(
                self.notifier.send_delivery_notification,
                email=email,
                name=name,
                tracking_number=order.tracking_number,
                order_id=str(order.id),
            )
            stamps = {
                "delivery_email_sent_at": utcnow(),
                "last_tracking_status_notified": status_text or "Delivered",
            }
            return [stage_notification(order, "delivery", stamps, send)]

        milestone = details.milestone_key
        if (
            milestone
            and milestone != "delivered"
            and status_text
            and status_text != order.last_tracking_status_notified
            and email
        ):
            latest = details.latest_event
            send = partial(
                self.notifier.send_tracking_status_update,
                email=email,
                name=name,
                tracking_number=order.tracking_number,
                order_id=str(order.id),
                milestone=milestone,
                status_text=(latest.status if latest else None) or status_text,
                description=summary.get("description"),
                location=summary.get("lastLocation"),
                estimated_delivery=summary.get("estimatedDelivery"),
            )
            return [stage_notification(order, "status_update", {"last_tracking_status_notified": status_text}, send)]

        return []

    async def persist_tracking_on_order(
        self,
        db: AsyncSession,
        order: Order,
        details: TrackingDetails,
        suppress_emails: bool = False,
    ) -> Order:
        """
        Writes a tracking snapshot onto the order and sends at most one email.

        `order.user` must already be loaded. With `suppress_emails` (customer
        viewing their own tracking page) no email is sent and no email
        bookkeeping changes.
        """
        order.last_tracking_sync_at = utcnow()

        if details.events:
            order.tracking_history = [
                event.model_dump(mode="json")
                for event in details.events[: settings.tracking_history_limit]
            ]
        order.tracking_summary = build_summary(order, details)
        self._apply_shipment_stage(order, details)

        pending = [] if suppress_emails else self._stage_emails(order, details)
        await commit_and_notify(db, order, pending)
        return order

    async def get_by_number(self, tracking_number: str) -> TrackingDetails:
        return await self.fetch_tracking_details(tracking_number)

    async def get_for_order(self, db: AsyncSession, order_id: str, user: User) -> TrackingDetails:
        """
        Raises:
            NotFoundError:      unknown order
            PreconditionError:  order has no tracking number yet
            AuthorizationError: caller is neither admin nor the order's owner
        """
        order = await load_order_with_user(db, order_id)
        if not order.tracking_number:
            raise PreconditionError("Order does not have tracking yet", context={"order_id": str(order.id)})
        if not (user.is_admin or order.user_id == user.id):
            raise AuthorizationError(
                "Not authorized to view this tracking info",
                context={"order_id": str(order.id)},
            )

        details = await self.fetch_tracking_details(order.tracking_number)
        await self.persist_tracking_on_order(db, order, details, suppress_emails=True)
        return details

    async def sync_open_shipments(self, db: AsyncSession) -> SyncResult:
        """
        Refreshes the most recently updated undelivered shipments.

        A failure on one order is logged and the batch moves on.
        """
        try:
            result = await db.execute(
                select(Order)
                .options(selectinload(Order.user))
                .where(Order.tracking_number.is_not(None))
                .where(Order.shipment_status != ShipmentStatus.DELIVERED)
                .order_by(Order.updated_at.desc())
                .limit(settings.tracking_sync_batch_size)
            )
            orders = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to load open shipments: %s", str(e), exc_info=True)
            raise DatabaseError()

        # A failed commit rolls back and expires every loaded order: ids and
        # tracking numbers come from the initial load, and the remaining
        # orders are reloaded once a rollback has happened
        targets = [(order.id, order.tracking_number, order) for order in orders]
        rolled_back = False
        synced = 0
        for order_id, tracking_number, order in targets:
            try:
                if rolled_back:
                    order = await load_order_with_user(db, order_id)
                details = await self.fetch_tracking_details(tracking_number)
                await self.persist_tracking_on_order(db, order, details)
                synced += 1
            except DatabaseError as e:
                rolled_back = True
                logger.error("Failed to sync order %s (%s): %s", order_id, tracking_number, e.message)
            except CustomTeesError as e:
                logger.error("Failed to sync order %s (%s): %s", order_id, tracking_number, e.message)

        logger.info("Tracking sync finished: %d/%d orders synced", synced, len(orders))
        return SyncResult(synced=synced)

    async def run_sync_loop(self, interval_minutes: Optional[int] = None) -> None:
        """Background task: sync immediately, then every interval until cancelled."""
        interval = (interval_minutes or settings.tracking_sync_interval_minutes) * 60
        logger.info("Tracking sync loop started (every %d minutes)", interval // 60)
        while True:
            try:
                async with session_scope() as db:
                    await self.sync_open_shipments(db)
            except Exception as e:
                logger.error("Background tracking sync failed: %s", str(e), exc_info=True)
            await asyncio.sleep(interval)


# ── Singleton Instance ────────────────────────────────────────────────────
tracking_service = TrackingService()

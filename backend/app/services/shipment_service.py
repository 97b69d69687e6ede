"""
CustomTees Backend — Shipment Service
=======================================

What:  Admin label purchase and carrier handoff for an order.
Who:   routes/shipments.py (admin only).

Label creation flow:
    1. Validate package fields (missing first, then non-positive/non-numeric)
    2. Load the order with its customer → 404 "Order not found"
    3. No shipping address → 400
    4. Existing label and no `force` → return it (reused=true, no UPS call)
    5. Buy the label from UPS
    6. Set tracking/label fields, status=shipped, shipment_status=label_generated
    7. Stage the tracking email stamp when the customer has not been emailed
    8. Commit once, then send (see order_lifecycle)

Duplicate clicks are not serialized; step 4 is the only guard and two
concurrent requests can both pass it.
"""

import logging
import math
from functools import partial
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidValuesError, MissingFieldsError, PreconditionError
from app.models.columns import utcnow
from app.models.order import Order, OrderStatus, ShipmentStatus
from app.schemas.order import OrderResponse, ShipmentResponse
from app.services.notification_service import NotificationService, notification_service
from app.services.order_lifecycle import (
    PendingNotification,
    apply_state,
    check_transition,
    commit_and_notify,
    load_order_with_user,
    stage_notification,
)
from app.services.ups_service import UPSService, ups_service

logger = logging.getLogger(__name__)

PACKAGE_FIELDS = ("weight", "length", "width", "height")

FALSY_FLAGS = {"", "0", "false", "no", "off"}


def is_truthy_flag(value: Optional[str]) -> bool:
    """Query flags count as set unless absent or spelled false ("0", "false", "no")."""
    if value is None:
        return False
    return value.strip().lower() not in FALSY_FLAGS


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool):
        value = int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and number > 0


def validate_package_info(payload: Mapping[str, Any]) -> None:
    """
    Raises:
        MissingFieldsError: a dimension is absent, null or "" (checked first)
        InvalidValuesError: a dimension is not a finite number > 0
    """
    missing = [f for f in PACKAGE_FIELDS if payload.get(f) is None or payload.get(f) == ""]
    if missing:
        raise MissingFieldsError(missing, label="package fields")

    invalid = [f for f in PACKAGE_FIELDS if not _is_positive_number(payload.get(f))]
    if invalid:
        raise InvalidValuesError(invalid, label="package values")


def can_reuse_label(order: Order) -> bool:
    return order.has_label and (
        order.shipment_status == ShipmentStatus.LABEL_GENERATED
        or order.status == OrderStatus.SHIPPED
    )


class ShipmentService:

    def __init__(
        self,
        carrier: Optional[UPSService] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.carrier = carrier or ups_service
        self.notifier = notifier or notification_service

    def _stage_tracking_email(self, order: Order) -> List[PendingNotification]:
        user = order.user
        if order.tracking_email_sent_at is not None or user is None or not user.email:
            return []
        send = partial(
            self.notifier.send_tracking_notification,
            email=user.email,
            name=user.name,
            tracking_number=order.tracking_number,
            order_id=str(order.id),
        )
        return [stage_notification(order, "tracking", {"tracking_email_sent_at": utcnow()}, send)]

    async def create_label(
        self,
        db: AsyncSession,
        order_id: str,
        package_info: Dict[str, Any],
        force: bool = False,
    ) -> ShipmentResponse:
        validate_package_info(package_info)

        order = await load_order_with_user(db, order_id)
        if not order.shipping_address:
            raise PreconditionError(
                "Order is missing a shipping address", context={"order_id": str(order.id)}
            )

        if not force and can_reuse_label(order):
            logger.info(
                "Order %s already has label %s; returning existing data",
                order.id,
                order.tracking_number,
            )
            return ShipmentResponse(
                tracking_number=order.tracking_number,
                label_url=order.label_url,
                label_public_id=order.label_public_id,
                status=order.status,
                shipment_status=order.shipment_status,
                reused=True,
            )

        # Refuse before paying for a label the order could never use
        check_transition(order, OrderStatus.SHIPPED, ShipmentStatus.LABEL_GENERATED)

        logger.info("Requesting UPS label for order %s (force=%s)", order.id, force)
        label = await self.carrier.create_shipment(order, package_info)

        order.tracking_number = label.tracking_number
        order.label_url = label.label_url
        order.label_public_id = label.label_public_id
        apply_state(order, OrderStatus.SHIPPED, ShipmentStatus.LABEL_GENERATED)

        pending = self._stage_tracking_email(order)
        await commit_and_notify(db, order, pending)
        logger.info(
            "Order %s labelled: tracking=%s status=%s/%s",
            order.id,
            order.tracking_number,
            order.status,
            order.shipment_status,
        )

        return ShipmentResponse(
            tracking_number=order.tracking_number,
            label_url=order.label_url,
            label_public_id=order.label_public_id,
            status=order.status,
            shipment_status=order.shipment_status,
            reused=False,
        )

    async def mark_handoff(self, db: AsyncSession, order_id: str) -> ShipmentResponse:
        """
        Records that the package was handed to UPS.

        Only a `placed` order is promoted (to `shipped`); any other status is
        kept as is.
        """
        order = await load_order_with_user(db, order_id)
        if not order.tracking_number:
            raise PreconditionError(
                "Tracking number missing for this order", context={"order_id": str(order.id)}
            )

        status = OrderStatus.SHIPPED if order.status == OrderStatus.PLACED else order.status
        apply_state(order, status, ShipmentStatus.CARRIER_HANDOFF)
        order.carrier_handoff_at = utcnow()

        pending = self._stage_tracking_email(order)
        await commit_and_notify(db, order, pending)
        logger.info("Order %s handed off to carrier (status=%s)", order.id, order.status)

        return ShipmentResponse(
            tracking_number=order.tracking_number,
            label_url=order.label_url,
            label_public_id=order.label_public_id,
            status=order.status,
            shipment_status=order.shipment_status,
            carrier_handoff_at=order.carrier_handoff_at,
            data=OrderResponse.model_validate(order),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
shipment_service = ShipmentService()

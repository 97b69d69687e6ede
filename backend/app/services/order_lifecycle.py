"""
CustomTees Backend — Order Lifecycle Helpers
==============================================

What:  Shared order plumbing for the shipment, tracking and payment flows:
       loading an order with its customer, the legal (status,
       shipment_status) pairs, and "record intent, commit, then email".
Why:   Three services mutate the same order fields; keeping the rules here
       means an order cannot reach an impossible pair through any of them.

Legal pairs:
    shipment_status   │ allowed status
    ──────────────────┼──────────────────────────────────
    pending           │ placed, processing, cancelled
    label_generated   │ processing, shipped, delivered
    carrier_handoff   │ processing, shipped, delivered
    in_transit        │ processing, shipped, delivered
    delivered         │ delivered

Notification protocol:
    1. stage_notification() writes the "sent" stamp onto the order
    2. commit_and_notify() commits the business fields and the stamp together
    3. the email goes out after the commit
    4. if the provider fails, the stamp is restored in a second commit and
       NotificationError propagates (the business fields stay committed)
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import DatabaseError, NotFoundError, NotificationError, PreconditionError
from app.models.order import Order, OrderStatus, ShipmentStatus

logger = logging.getLogger(__name__)

LEGAL_STATES: Dict[str, frozenset] = {
    ShipmentStatus.PENDING: frozenset({OrderStatus.PLACED, OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    ShipmentStatus.LABEL_GENERATED: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}),
    ShipmentStatus.CARRIER_HANDOFF: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}),
    ShipmentStatus.IN_TRANSIT: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}),
    ShipmentStatus.DELIVERED: frozenset({OrderStatus.DELIVERED}),
}


def is_legal_state(status: str, shipment_status: str) -> bool:
    return status in LEGAL_STATES.get(shipment_status, frozenset())


def check_transition(
    order: Order,
    status: Optional[str] = None,
    shipment_status: Optional[str] = None,
) -> Tuple[str, str]:
    """
    The (status, shipment_status) pair the order would move to.

    Omitted halves keep their current value. Cancelled orders only stay
    cancelled.

    Raises:
        PreconditionError: the move is not allowed
    """
    new_status = status or order.status
    new_shipment = shipment_status or order.shipment_status

    if order.status == OrderStatus.CANCELLED and new_status != OrderStatus.CANCELLED:
        raise PreconditionError(
            message="Order has been cancelled",
            context={"order_id": str(order.id), "requested": [new_status, new_shipment]},
        )

    if not is_legal_state(new_status, new_shipment):
        raise PreconditionError(
            message=(
                f"Order in status '{order.status}' cannot move to "
                f"status '{new_status}' with shipment status '{new_shipment}'"
            ),
            context={
                "order_id": str(order.id),
                "current": [order.status, order.shipment_status],
                "requested": [new_status, new_shipment],
            },
        )
    return new_status, new_shipment


def apply_state(
    order: Order,
    status: Optional[str] = None,
    shipment_status: Optional[str] = None,
) -> None:
    """Moves the order to the checked pair. The order is untouched on PreconditionError."""
    order.status, order.shipment_status = check_transition(order, status, shipment_status)


def parse_order_id(order_id: Any) -> Optional[uuid.UUID]:
    if isinstance(order_id, uuid.UUID):
        return order_id
    try:
        return uuid.UUID(str(order_id))
    except (TypeError, ValueError):
        return None


async def load_order_with_user(db: AsyncSession, order_id: Any) -> Order:
    """
    Order by id with its customer eagerly loaded.

    Raises:
        NotFoundError: unknown or malformed id ("Order not found")
        DatabaseError: query failed
    """
    oid = parse_order_id(order_id)
    if oid is None:
        raise NotFoundError(resource="order", resource_id=str(order_id), message="Order not found")

    try:
        result = await db.execute(
            select(Order).options(selectinload(Order.user)).where(Order.id == oid)
        )
        order = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("Failed to load order %s: %s", oid, str(e), exc_info=True)
        raise DatabaseError(context={"order_id": str(oid)})

    if order is None:
        raise NotFoundError(resource="order", resource_id=str(oid), message="Order not found")
    return order


async def commit(db: AsyncSession, context: Optional[Dict[str, Any]] = None) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Commit failed: %s | %s", str(e), context, exc_info=True)
        raise DatabaseError(context=context)


# ══════════════════════════════════════════════════════════════════════════
# Notification intent
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class PendingNotification:
    name: str
    send: Callable[[], Awaitable[None]]
    # Field values before staging, restored if sending fails
    previous: Dict[str, Any] = field(default_factory=dict)


def stage_notification(
    order: Order,
    name: str,
    stamps: Dict[str, Any],
    send: Callable[[], Awaitable[None]],
) -> PendingNotification:
    """Writes the intent stamps onto the order; nothing is sent yet."""
    previous = {attr: getattr(order, attr) for attr in stamps}
    for attr, value in stamps.items():
        setattr(order, attr, value)
    return PendingNotification(name=name, send=send, previous=previous)


async def commit_and_notify(
    db: AsyncSession,
    order: Order,
    pending: List[PendingNotification],
) -> None:
    """
    Commits the order (business fields and intent stamps in one transaction),
    then sends each staged notification.

    Raises:
        DatabaseError:     the first commit failed; nothing was sent
        NotificationError: a send failed; its stamps were rolled back in a
                           compensating commit, business fields stay saved
    """
    context = {"order_id": str(order.id)}
    await commit(db, context)

    for item in pending:
        try:
            await item.send()
        except NotificationError as e:
            logger.error(
                "Notification '%s' for order %s failed: %s; clearing intent",
                item.name,
                order.id,
                e.message,
            )
            for attr, value in item.previous.items():
                setattr(order, attr, value)
            await commit(db, context)
            raise
        logger.info("Notification '%s' sent for order %s", item.name, order.id)

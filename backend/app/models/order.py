"""
CustomTees Backend — Order SQLAlchemy Model
=============================================

What:  ORM model for the `orders` table.
Why:   Orders are created by checkout (outside this service); the shipment,
       tracking and payment flows read and selectively mutate them.
How:   Scalar columns for everything queried or compared; JSON documents
       for the address, tracking history/summary and payment details.

Field groups touched here:
    - shipment result:  tracking_number, label_url, label_public_id
    - status pair:      status, shipment_status (legal pairs enforced in
                        app.services.order_lifecycle)
    - notification:     tracking_email_sent_at, delivery_email_sent_at,
                        last_tracking_status_notified
    - timestamps:       carrier_handoff_at, delivered_at, last_tracking_sync_at
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.columns import JSONType, utcnow
from app.models.user import User


class OrderStatus:
    PLACED = "placed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    ALL = (PLACED, PROCESSING, SHIPPED, DELIVERED, CANCELLED)


class ShipmentStatus:
    PENDING = "pending"
    LABEL_GENERATED = "label_generated"
    CARRIER_HANDOFF = "carrier_handoff"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"

    ALL = (PENDING, LABEL_GENERATED, CARRIER_HANDOFF, IN_TRANSIT, DELIVERED)


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Order(Base):
    """
    A customer order as seen by fulfilment.

    Query Patterns:
        - By id with user joined (shipment, tracking, payment routes)
        - Open shipments: tracking_number IS NOT NULL AND
          shipment_status != 'delivered' ORDER BY updated_at DESC
          → idx_orders_open_shipments
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    user: Mapped[Optional[User]] = relationship(User, lazy="raise")

    # ── Lifecycle ─────────────────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PLACED,
        server_default=text("'placed'"),
    )
    shipment_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ShipmentStatus.PENDING,
        server_default=text("'pending'"),
    )

    # ── Shipping ──────────────────────────────────────────────────────────
    # {fullName, phone, line1, line2, city, state, postalCode, country}
    shipping_address: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    # UPS service code chosen at checkout ('03' Ground when absent)
    shipping_method: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    shipping_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # cents
    total: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False, default=0)

    # ── Shipment result (set together once UPS succeeds) ──────────────────
    tracking_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    label_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    label_public_id: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    carrier_handoff_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # ── Tracking ──────────────────────────────────────────────────────────
    tracking_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    tracking_summary: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    last_tracking_sync_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # ── Notification bookkeeping ──────────────────────────────────────────
    # At-most-once guards: set before the email goes out, cleared again
    # only if the provider rejects it
    tracking_email_sent_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    delivery_email_sent_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_tracking_status_notified: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Payment ───────────────────────────────────────────────────────────
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    # {provider, status, squareCheckoutId, squareOrderId, squarePaymentId, failureReason}
    payment: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_orders_open_shipments", "shipment_status", updated_at.desc()),
    )

    @property
    def has_label(self) -> bool:
        return bool(self.tracking_number and self.label_url)

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status='{self.status}', "
            f"shipment_status='{self.shipment_status}', tracking='{self.tracking_number}')>"
        )

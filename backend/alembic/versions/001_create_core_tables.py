"""Create users, orders, catalog and template tables

Revision ID: 001
Revises: None
Create Date: 2025-02-01 00:00:00.000000+00:00

What:  Initial schema for the fulfilment backend.
How:   PostgreSQL UUID keys (gen_random_uuid), TIMESTAMP WITH TIME ZONE,
       JSONB documents for addresses, images, tracking and payment details.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "orders",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'placed'")),
        sa.Column(
            "shipment_status",
            sa.String(30),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("shipping_address", postgresql.JSONB(), nullable=True),
        sa.Column("shipping_method", sa.String(10), nullable=True),
        sa.Column("shipping_cost", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("tracking_number", sa.String(64), nullable=True),
        sa.Column("label_url", sa.String(1024), nullable=True),
        sa.Column("label_public_id", sa.String(512), nullable=True),
        sa.Column("carrier_handoff_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "tracking_history",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("tracking_summary", postgresql.JSONB(), nullable=True),
        sa.Column("last_tracking_sync_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("tracking_email_sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("delivery_email_sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_tracking_status_notified", sa.String(255), nullable=True),
        sa.Column("payment_method", sa.String(30), nullable=True),
        sa.Column(
            "payment",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        # Same legal (status, shipment_status) pairs as app.services.order_lifecycle
        sa.CheckConstraint(
            "(shipment_status = 'pending' AND status IN ('placed', 'processing', 'cancelled'))"
            " OR (shipment_status IN ('label_generated', 'carrier_handoff', 'in_transit')"
            " AND status IN ('processing', 'shipped', 'delivered'))"
            " OR (shipment_status = 'delivered' AND status = 'delivered')",
            name="ck_orders_status_pair",
        ),
    )
    op.create_index("ix_orders_tracking_number", "orders", ["tracking_number"])
    # Tracking sync: undelivered shipments, most recently updated first
    op.create_index(
        "idx_orders_open_shipments",
        "orders",
        ["shipment_status", sa.text("updated_at DESC")],
    )

    op.create_table(
        "casual_products",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("colors", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("sizes", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("images", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(
        "idx_casual_products_active_created",
        "casual_products",
        ["is_active", sa.text("created_at DESC")],
    )

    op.create_table(
        "dtf_products",
        _uuid_pk(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cost", sa.Numeric(10, 2), nullable=False),
        sa.Column("image", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(
        "idx_dtf_products_active_created",
        "dtf_products",
        ["is_active", sa.text("created_at DESC")],
    )

    op.create_table(
        "templates",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("image", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("templates")
    op.drop_index("idx_dtf_products_active_created", table_name="dtf_products")
    op.drop_table("dtf_products")
    op.drop_index("idx_casual_products_active_created", table_name="casual_products")
    op.drop_table("casual_products")
    op.drop_index("idx_orders_open_shipments", table_name="orders")
    op.drop_index("ix_orders_tracking_number", table_name="orders")
    op.drop_table("orders")
    op.drop_table("users")

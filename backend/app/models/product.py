"""
CustomTees Backend — Catalog SQLAlchemy Models
================================================

What:  ORM models for `casual_products` and `dtf_products`.
Why:   The two storefront catalogs have different shapes: casual products
       carry a gallery, sizes and colours; DTF transfers carry one image and
       a unit cost.
How:   Image references are stored as JSON {url, public_id} documents so the
       storage backend can change without a schema migration.

Both tables:
    - slug is unique and used by storefront URLs (/slug/{slug})
    - is_active hides a product from list and slug lookups but not from
      get-by-id (admin previews inactive products)
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.columns import JSONType, utcnow


class CasualProduct(Base):
    __tablename__ = "casual_products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)

    colors: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    sizes: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    images: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    # {material, fit, careInstructions}; the column is named "metadata" but
    # the attribute cannot be (DeclarativeBase reserves it)
    details: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

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
        Index("idx_casual_products_active_created", "is_active", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<CasualProduct(id={self.id}, slug='{self.slug}', active={self.is_active})>"


class DTFProduct(Base):
    __tablename__ = "dtf_products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cost: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    image: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

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
        Index("idx_dtf_products_active_created", "is_active", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<DTFProduct(id={self.id}, slug='{self.slug}', active={self.is_active})>"

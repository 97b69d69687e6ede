"""
Catalog schemas: casual products, DTF products, templates.

Create/update requests arrive as multipart forms (images ride along), so the
form models below are built by the routers from Form() fields and handed to
the services. All form values stay raw strings; the services own the
validation messages the admin UI displays.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.schemas.common import APIModel, ImageRef


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════

class ProductMetadata(APIModel):
    material: Optional[str] = None
    fit: Optional[str] = None
    care_instructions: Optional[str] = None


class CasualProductResponse(APIModel):
    id: uuid.UUID
    name: str
    slug: str
    category: str
    description: Optional[str] = None
    price: float
    colors: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    images: List[ImageRef] = Field(default_factory=list)
    is_active: bool = True
    # ORM attribute is `details`; the wire name stays "metadata"
    meta: ProductMetadata = Field(
        default_factory=ProductMetadata,
        validation_alias="details",
        serialization_alias="metadata",
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DTFProductResponse(APIModel):
    id: uuid.UUID
    title: str
    slug: str
    description: Optional[str] = None
    cost: float
    image: Optional[ImageRef] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TemplateResponse(APIModel):
    id: uuid.UUID
    name: str
    image: Optional[ImageRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ══════════════════════════════════════════════════════════════════════════
# Form payloads
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class CasualProductForm:
    name: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    colors: Optional[str] = None
    sizes: Optional[str] = None
    material: Optional[str] = None
    fit: Optional[str] = None
    care_instructions: Optional[str] = None
    is_active: Optional[str] = None
    remove_image_ids: Optional[str] = None


@dataclass
class DTFProductForm:
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    cost: Optional[str] = None
    is_active: Optional[str] = None


@dataclass
class TemplateForm:
    name: Optional[str] = None

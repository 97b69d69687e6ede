"""
CustomTees Backend — Catalog Service
======================================

What:  CRUD for the two storefront catalogs: casual products (gallery of up
       to 12 images) and DTF transfers (one image).
How:   Admin forms arrive as raw strings; this module parses and validates
       them, stores uploads through FileService and commits each write
       before touching the files it replaced.
Who:   routes/casual_products.py, routes/dtf_products.py.

Image bookkeeping:
    - new uploads are stored only after the form validated
    - if the database write fails, the files stored for this request are removed
    - replaced/removed images are destroyed only after the commit succeeded
"""

import json
import logging
import math
import uuid
from typing import Any, Iterable, List, Optional, Type

from fastapi import UploadFile
from slugify import slugify
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import Base
from app.exceptions import DatabaseError, NotFoundError, ValidationError
from app.models.product import CasualProduct, DTFProduct
from app.schemas.catalog import (
    CasualProductForm,
    CasualProductResponse,
    DTFProductForm,
    DTFProductResponse,
)
from app.services.file_service import FileService, file_service

logger = logging.getLogger(__name__)

CASUAL_FOLDER = "casual-products"
DTF_FOLDER = "dtf-products"


# ══════════════════════════════════════════════════════════════════════════
# Form parsing
# ══════════════════════════════════════════════════════════════════════════

def clean(value: Optional[str]) -> str:
    return (value or "").strip()


def parse_list_field(value: Optional[str]) -> List[str]:
    """'Black, White,,Red' → ['Black', 'White', 'Red']"""
    return [entry.strip() for entry in (value or "").split(",") if entry.strip()]


def parse_remove_ids(value: Optional[str]) -> List[str]:
    """JSON array of public ids, or a comma separated list."""
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return parse_list_field(value)
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item).strip()]
    return parse_list_field(str(parsed))


def parse_amount(value: Optional[str], message: str) -> float:
    try:
        amount = float(clean(value))
    except ValueError:
        raise ValidationError(message, context={"value": value})
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(message, context={"value": value})
    return amount


def is_true(value: Optional[str]) -> bool:
    return clean(value).lower() == "true"


def normalize_slug(value: Optional[str]) -> str:
    """Lowercase, runs of non-alphanumerics collapsed to '-', no edge dashes."""
    return slugify(value or "")


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def unique_slug(
    db: AsyncSession,
    model: Type[Base],
    base_slug: str,
    exclude_id: Optional[uuid.UUID] = None,
) -> str:
    """base_slug, or base_slug-1, base_slug-2... whichever is free first."""
    slug = base_slug
    counter = 1
    while True:
        query = select(model.id).where(model.slug == slug)
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        result = await db.execute(query)
        if result.first() is None:
            return slug
        slug = f"{base_slug}-{counter}"
        counter += 1


# ══════════════════════════════════════════════════════════════════════════
# Shared persistence
# ══════════════════════════════════════════════════════════════════════════

class _CatalogBase:
    model: Type[Base]
    not_found_message: str
    resource: str

    def __init__(self, files: Optional[FileService] = None):
        self.files = files or file_service

    async def _load(self, db: AsyncSession, product_id: str, active_only: bool = False):
        pid = parse_uuid(product_id)
        if pid is None:
            raise NotFoundError(resource=self.resource, resource_id=str(product_id), message=self.not_found_message)
        try:
            product = await db.get(self.model, pid)
        except SQLAlchemyError as e:
            logger.error("Failed to load %s %s: %s", self.resource, pid, str(e), exc_info=True)
            raise DatabaseError(context={"id": str(pid)})
        if product is None or (active_only and not product.is_active):
            raise NotFoundError(resource=self.resource, resource_id=str(pid), message=self.not_found_message)
        return product

    async def _list_active(self, db: AsyncSession) -> list:
        try:
            result = await db.execute(
                select(self.model)
                .where(self.model.is_active.is_(True))
                .order_by(self.model.created_at.desc())
            )
        except SQLAlchemyError as e:
            logger.error("Failed to list %s: %s", self.resource, str(e), exc_info=True)
            raise DatabaseError()
        return list(result.scalars().all())

    async def _by_slug(self, db: AsyncSession, slug: str):
        try:
            result = await db.execute(
                select(self.model).where(self.model.slug == slug, self.model.is_active.is_(True))
            )
            product = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load %s by slug %s: %s", self.resource, slug, str(e), exc_info=True)
            raise DatabaseError(context={"slug": slug})
        if product is None:
            raise NotFoundError(resource=self.resource, resource_id=slug, message=self.not_found_message)
        return product

    async def _commit(self, db: AsyncSession, stored_public_ids: Iterable[str], context: dict) -> None:
        """Commits pending changes; on failure rolls back and removes the files stored for this request."""
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to save %s: %s", self.resource, str(e), exc_info=True)
            await self.files.destroy_many(stored_public_ids)
            raise DatabaseError(context=context)

    async def _delete(self, db: AsyncSession, product) -> None:
        try:
            await db.delete(product)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to delete %s %s: %s", self.resource, product.id, str(e), exc_info=True)
            raise DatabaseError(context={"id": str(product.id)})


# ══════════════════════════════════════════════════════════════════════════
# Casual products
# ══════════════════════════════════════════════════════════════════════════

class CasualProductService(_CatalogBase):
    model = CasualProduct
    not_found_message = "Product not found"
    resource = "casual_product"

    async def list_products(self, db: AsyncSession) -> List[CasualProductResponse]:
        products = await self._list_active(db)
        return [CasualProductResponse.model_validate(p) for p in products]

    async def get_product(self, db: AsyncSession, product_id: str) -> CasualProductResponse:
        return CasualProductResponse.model_validate(await self._load(db, product_id))

    async def get_by_slug(self, db: AsyncSession, slug: str) -> CasualProductResponse:
        return CasualProductResponse.model_validate(await self._by_slug(db, slug))

    async def create_product(
        self,
        db: AsyncSession,
        form: CasualProductForm,
        uploads: List[UploadFile],
    ) -> CasualProductResponse:
        """
        Raises:
            ValidationError: name/category/price missing, price not a number,
                             or an upload rejected by FileService
        """
        if not clean(form.name) or not clean(form.category) or not clean(form.price):
            raise ValidationError("Name, category and price are required")
        price = parse_amount(form.price, "Price must be a valid number")

        name = clean(form.name)
        base_slug = normalize_slug(form.slug) or normalize_slug(name)
        slug = await unique_slug(db, CasualProduct, base_slug)

        images = await self.files.store_uploads(uploads, CASUAL_FOLDER)
        product = CasualProduct(
            name=name,
            slug=slug,
            category=clean(form.category),
            description=clean(form.description) or None,
            price=price,
            colors=parse_list_field(form.colors),
            sizes=parse_list_field(form.sizes),
            images=images,
            details={
                "material": clean(form.material) or None,
                "fit": clean(form.fit) or None,
                "careInstructions": clean(form.care_instructions) or None,
            },
            is_active=True,
        )
        db.add(product)
        await self._commit(db, [img["public_id"] for img in images], {"slug": slug})

        logger.info("Casual product created: %s (%s, %d images)", product.id, slug, len(images))
        return CasualProductResponse.model_validate(product)

    async def update_product(
        self,
        db: AsyncSession,
        product_id: str,
        form: CasualProductForm,
        uploads: List[UploadFile],
    ) -> CasualProductResponse:
        """
        Partial update. Fields left out of the form keep their values;
        `removeImageIds` drops gallery images before new uploads are appended.
        """
        product = await self._load(db, product_id)

        price = None
        if form.price is not None:
            price = parse_amount(form.price, "Price must be a valid number")

        remove_ids = set(parse_remove_ids(form.remove_image_ids))
        kept = [img for img in (product.images or []) if img.get("public_id") not in remove_ids]
        removed = [img for img in (product.images or []) if img.get("public_id") in remove_ids]

        limit = settings.gallery_max_images
        if len(kept) + len(uploads) > limit:
            raise ValidationError(
                f"A product can have at most {limit} images",
                field="images",
                context={"existing": len(kept), "uploaded": len(uploads), "limit": limit},
            )

        if clean(form.name):
            product.name = clean(form.name)
        if form.slug is not None:
            candidate = normalize_slug(form.slug)
            if candidate and candidate != product.slug:
                product.slug = await unique_slug(db, CasualProduct, candidate, exclude_id=product.id)
        if clean(form.category):
            product.category = clean(form.category)
        if form.description is not None:
            product.description = clean(form.description)
        if price is not None:
            product.price = price
        if form.is_active is not None:
            product.is_active = is_true(form.is_active)
        if form.colors is not None:
            product.colors = parse_list_field(form.colors)
        if form.sizes is not None:
            product.sizes = parse_list_field(form.sizes)

        details = dict(product.details or {})
        for key, value in (
            ("material", form.material),
            ("fit", form.fit),
            ("careInstructions", form.care_instructions),
        ):
            if value is not None:
                details[key] = clean(value)
        product.details = details

        new_images = await self.files.store_uploads(uploads, CASUAL_FOLDER)
        product.images = kept + new_images
        await self._commit(db, [img["public_id"] for img in new_images], {"id": str(product.id)})

        await self.files.destroy_many(img.get("public_id") for img in removed)
        logger.info(
            "Casual product updated: %s (removed %d, added %d images)",
            product.id,
            len(removed),
            len(new_images),
        )
        return CasualProductResponse.model_validate(product)

    async def delete_product(self, db: AsyncSession, product_id: str) -> None:
        product = await self._load(db, product_id)
        public_ids = [img.get("public_id") for img in (product.images or [])]
        await self._delete(db, product)
        await self.files.destroy_many(public_ids)
        logger.info("Casual product deleted: %s", product.id)


# ══════════════════════════════════════════════════════════════════════════
# DTF products
# ══════════════════════════════════════════════════════════════════════════

class DTFProductService(_CatalogBase):
    model = DTFProduct
    not_found_message = "DTF product not found"
    resource = "dtf_product"

    async def list_products(self, db: AsyncSession) -> List[DTFProductResponse]:
        products = await self._list_active(db)
        return [DTFProductResponse.model_validate(p) for p in products]

    async def get_product(self, db: AsyncSession, product_id: str) -> DTFProductResponse:
        return DTFProductResponse.model_validate(await self._load(db, product_id))

    async def get_by_slug(self, db: AsyncSession, slug: str) -> DTFProductResponse:
        return DTFProductResponse.model_validate(await self._by_slug(db, slug))

    async def create_product(
        self,
        db: AsyncSession,
        form: DTFProductForm,
        upload: Optional[UploadFile],
    ) -> DTFProductResponse:
        if not clean(form.title) or not clean(form.cost):
            raise ValidationError("Title and cost are required")
        if upload is None:
            raise ValidationError("Image is required", field="image")
        cost = parse_amount(form.cost, "Cost must be a valid number")

        title = clean(form.title)
        slug = await unique_slug(db, DTFProduct, normalize_slug(form.slug) or normalize_slug(title))

        image = await self.files.store_upload(upload, DTF_FOLDER)
        product = DTFProduct(
            title=title,
            slug=slug,
            description=clean(form.description) or None,
            cost=cost,
            image=image,
            is_active=True,
        )
        db.add(product)
        await self._commit(db, [image["public_id"]], {"slug": slug})

        logger.info("DTF product created: %s (%s)", product.id, slug)
        return DTFProductResponse.model_validate(product)

    async def update_product(
        self,
        db: AsyncSession,
        product_id: str,
        form: DTFProductForm,
        upload: Optional[UploadFile],
    ) -> DTFProductResponse:
        product = await self._load(db, product_id)

        cost = None
        if form.cost is not None:
            cost = parse_amount(form.cost, "Cost must be a valid number")

        if form.title is not None:
            product.title = clean(form.title) or product.title
        if form.slug is not None:
            candidate = normalize_slug(form.slug)
            if candidate and candidate != product.slug:
                product.slug = await unique_slug(db, DTFProduct, candidate, exclude_id=product.id)
        if form.description is not None:
            product.description = clean(form.description)
        if cost is not None:
            product.cost = cost
        if form.is_active is not None:
            product.is_active = is_true(form.is_active)

        replaced = None
        stored: List[str] = []
        if upload is not None:
            replaced = (product.image or {}).get("public_id")
            product.image = await self.files.store_upload(upload, DTF_FOLDER)
            stored.append(product.image["public_id"])

        await self._commit(db, stored, {"id": str(product.id)})
        await self.files.destroy(replaced)

        logger.info("DTF product updated: %s (image replaced: %s)", product.id, bool(stored))
        return DTFProductResponse.model_validate(product)

    async def delete_product(self, db: AsyncSession, product_id: str) -> None:
        product = await self._load(db, product_id)
        public_id = (product.image or {}).get("public_id")
        await self._delete(db, product)
        await self.files.destroy(public_id)
        logger.info("DTF product deleted: %s", product.id)


# ── Singleton Instances ───────────────────────────────────────────────────
casual_product_service = CasualProductService()
dtf_product_service = DTFProductService()

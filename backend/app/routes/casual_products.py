"""
CustomTees Backend — Casual Product Routes
============================================

What:  /api/casual-products: public catalog reads and admin CRUD.
Who:   Storefront product pages (reads), admin CasualProducts page (writes).

Chains:
    GET  /, /slug/{slug}, /{product_id}   public
    POST /, PUT /{product_id}             auth → admin → gallery upload (≤ 12 "images")
    DELETE /{product_id}                  auth → admin
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import gallery_upload, require_admin
from app.schemas.catalog import CasualProductForm, CasualProductResponse
from app.schemas.common import DataResponse, ErrorResponse, MessageResponse
from app.services.catalog_service import casual_product_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/casual-products", tags=["Casual Products"])


def casual_product_form(
    name: Optional[str] = Form(default=None),
    slug: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    price: Optional[str] = Form(default=None),
    colors: Optional[str] = Form(default=None, description="Comma separated"),
    sizes: Optional[str] = Form(default=None, description="Comma separated"),
    material: Optional[str] = Form(default=None),
    fit: Optional[str] = Form(default=None),
    care_instructions: Optional[str] = Form(default=None, alias="careInstructions"),
    is_active: Optional[str] = Form(default=None, alias="isActive"),
    remove_image_ids: Optional[str] = Form(
        default=None,
        alias="removeImageIds",
        description="JSON array or comma separated list of image public ids",
    ),
) -> CasualProductForm:
    return CasualProductForm(
        name=name,
        slug=slug,
        category=category,
        description=description,
        price=price,
        colors=colors,
        sizes=sizes,
        material=material,
        fit=fit,
        care_instructions=care_instructions,
        is_active=is_active,
        remove_image_ids=remove_image_ids,
    )


@router.get(
    "/",
    response_model=DataResponse[List[CasualProductResponse]],
    summary="List active casual products",
    description="Active products only, newest first.",
)
async def list_casual_products(
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[List[CasualProductResponse]]:
    products = await casual_product_service.list_products(db)
    return DataResponse[List[CasualProductResponse]](data=products)


@router.get(
    "/slug/{slug}",
    response_model=DataResponse[CasualProductResponse],
    responses={404: {"description": "Product not found", "model": ErrorResponse}},
    summary="Get an active casual product by slug",
)
async def get_casual_product_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CasualProductResponse]:
    product = await casual_product_service.get_by_slug(db, slug)
    return DataResponse[CasualProductResponse](data=product)


@router.get(
    "/{product_id}",
    response_model=DataResponse[CasualProductResponse],
    responses={404: {"description": "Product not found", "model": ErrorResponse}},
    summary="Get a casual product by id",
    description="Returns inactive products too (admin preview).",
)
async def get_casual_product(
    product_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CasualProductResponse]:
    product = await casual_product_service.get_product(db, product_id)
    return DataResponse[CasualProductResponse](data=product)


@router.post(
    "/",
    status_code=201,
    response_model=DataResponse[CasualProductResponse],
    dependencies=[Depends(require_admin)],
    responses={
        400: {"description": "Missing fields, bad price or rejected image", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Not an admin", "model": ErrorResponse},
    },
    summary="Create a casual product",
    description=(
        "Multipart form. `name`, `category` and `price` are required; `colors` and "
        "`sizes` are comma separated; up to 12 `images`. The slug is derived from "
        "the name when omitted and suffixed (-1, -2...) until unique."
    ),
)
async def create_casual_product(
    form: CasualProductForm = Depends(casual_product_form),
    images: List[UploadFile] = Depends(gallery_upload),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CasualProductResponse]:
    product = await casual_product_service.create_product(db, form, images)
    return DataResponse[CasualProductResponse](message="Product created successfully", data=product)


@router.put(
    "/{product_id}",
    response_model=DataResponse[CasualProductResponse],
    dependencies=[Depends(require_admin)],
    responses={
        400: {"description": "Bad price, too many images or rejected image", "model": ErrorResponse},
        404: {"description": "Product not found", "model": ErrorResponse},
    },
    summary="Update a casual product",
    description=(
        "Partial multipart update. `removeImageIds` drops gallery images (their files "
        "are deleted); new `images` are appended. At most 12 images after the update."
    ),
)
async def update_casual_product(
    product_id: str,
    form: CasualProductForm = Depends(casual_product_form),
    images: List[UploadFile] = Depends(gallery_upload),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CasualProductResponse]:
    product = await casual_product_service.update_product(db, product_id, form, images)
    return DataResponse[CasualProductResponse](message="Product updated successfully", data=product)


@router.delete(
    "/{product_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "Product not found", "model": ErrorResponse}},
    summary="Delete a casual product and its images",
)
async def delete_casual_product(
    product_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await casual_product_service.delete_product(db, product_id)
    return MessageResponse(message="Product deleted successfully")

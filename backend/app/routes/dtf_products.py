"""
CustomTees Backend — DTF Product Routes
=========================================

What:  /api/dtf-products: DTF transfer catalog, one image per product.

Chains:
    GET  /, /slug/{slug}, /{product_id}   public
    POST /, PUT /{product_id}             auth → admin → single upload ("image")
    DELETE /{product_id}                  auth → admin
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import require_admin, single_image_upload
from app.schemas.catalog import DTFProductForm, DTFProductResponse
from app.schemas.common import DataResponse, ErrorResponse, MessageResponse
from app.services.catalog_service import dtf_product_service

router = APIRouter(prefix="/api/dtf-products", tags=["DTF Products"])


def dtf_product_form(
    title: Optional[str] = Form(default=None),
    slug: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    cost: Optional[str] = Form(default=None),
    is_active: Optional[str] = Form(default=None, alias="isActive"),
) -> DTFProductForm:
    return DTFProductForm(
        title=title,
        slug=slug,
        description=description,
        cost=cost,
        is_active=is_active,
    )


@router.get(
    "/",
    response_model=DataResponse[List[DTFProductResponse]],
    summary="List active DTF products",
)
async def list_dtf_products(
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[List[DTFProductResponse]]:
    return DataResponse[List[DTFProductResponse]](data=await dtf_product_service.list_products(db))


@router.get(
    "/slug/{slug}",
    response_model=DataResponse[DTFProductResponse],
    responses={404: {"description": "DTF product not found", "model": ErrorResponse}},
    summary="Get an active DTF product by slug",
)
async def get_dtf_product_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[DTFProductResponse]:
    return DataResponse[DTFProductResponse](data=await dtf_product_service.get_by_slug(db, slug))


@router.get(
    "/{product_id}",
    response_model=DataResponse[DTFProductResponse],
    responses={404: {"description": "DTF product not found", "model": ErrorResponse}},
    summary="Get a DTF product by id",
)
async def get_dtf_product(
    product_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[DTFProductResponse]:
    return DataResponse[DTFProductResponse](data=await dtf_product_service.get_product(db, product_id))


@router.post(
    "/",
    status_code=201,
    response_model=DataResponse[DTFProductResponse],
    dependencies=[Depends(require_admin)],
    responses={
        400: {"description": "Missing title/cost/image or bad cost", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Not an admin", "model": ErrorResponse},
    },
    summary="Create a DTF product",
)
async def create_dtf_product(
    form: DTFProductForm = Depends(dtf_product_form),
    image: Optional[UploadFile] = Depends(single_image_upload),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[DTFProductResponse]:
    product = await dtf_product_service.create_product(db, form, image)
    return DataResponse[DTFProductResponse](message="DTF product created", data=product)


@router.put(
    "/{product_id}",
    response_model=DataResponse[DTFProductResponse],
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "DTF product not found", "model": ErrorResponse}},
    summary="Update a DTF product",
    description="Partial update. A new `image` replaces the stored one (old file deleted).",
)
async def update_dtf_product(
    product_id: str,
    form: DTFProductForm = Depends(dtf_product_form),
    image: Optional[UploadFile] = Depends(single_image_upload),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[DTFProductResponse]:
    product = await dtf_product_service.update_product(db, product_id, form, image)
    return DataResponse[DTFProductResponse](message="DTF product updated", data=product)


@router.delete(
    "/{product_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "DTF product not found", "model": ErrorResponse}},
    summary="Delete a DTF product and its image",
)
async def delete_dtf_product(
    product_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await dtf_product_service.delete_product(db, product_id)
    return MessageResponse(message="DTF product deleted")

"""
CustomTees Backend — Template Routes
======================================

What:  /api/templates: garment templates for the design tool.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import require_admin, single_image_upload
from app.schemas.catalog import TemplateForm, TemplateResponse
from app.schemas.common import DataResponse, ErrorResponse, MessageResponse
from app.services.template_service import template_service

router = APIRouter(prefix="/api/templates", tags=["Templates"])


def template_form(name: Optional[str] = Form(default=None)) -> TemplateForm:
    return TemplateForm(name=name)


@router.get(
    "/",
    response_model=DataResponse[List[TemplateResponse]],
    summary="List templates, newest first",
)
async def list_templates(
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[List[TemplateResponse]]:
    return DataResponse[List[TemplateResponse]](data=await template_service.list_templates(db))


@router.post(
    "/",
    status_code=201,
    response_model=DataResponse[TemplateResponse],
    dependencies=[Depends(require_admin)],
    responses={400: {"description": "Template image is required", "model": ErrorResponse}},
    summary="Create a template",
    description="`image` is required; `name` defaults to the upload's filename without extension.",
)
async def create_template(
    form: TemplateForm = Depends(template_form),
    image: Optional[UploadFile] = Depends(single_image_upload),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[TemplateResponse]:
    return DataResponse[TemplateResponse](data=await template_service.create_template(db, form, image))


@router.put(
    "/{template_id}",
    response_model=DataResponse[TemplateResponse],
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "Template not found", "model": ErrorResponse}},
    summary="Rename a template and/or replace its image",
)
async def update_template(
    template_id: str,
    form: TemplateForm = Depends(template_form),
    image: Optional[UploadFile] = Depends(single_image_upload),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[TemplateResponse]:
    template = await template_service.update_template(db, template_id, form, image)
    return DataResponse[TemplateResponse](data=template)


@router.delete(
    "/{template_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "Template not found", "model": ErrorResponse}},
    summary="Delete a template and its image",
)
async def delete_template(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await template_service.delete_template(db, template_id)
    return MessageResponse(message="Template deleted successfully")

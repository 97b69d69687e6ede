"""
CustomTees Backend — Template Service
=======================================

What:  Garment templates for the design tool: list, create, rename/replace
       image, delete. Writes commit before a replaced image file is removed.
Who:   routes/templates.py.
"""

import logging
from pathlib import PurePath
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, NotFoundError, ValidationError
from app.models.template import Template
from app.schemas.catalog import TemplateForm, TemplateResponse
from app.services.catalog_service import clean, parse_uuid
from app.services.file_service import FileService, file_service

logger = logging.getLogger(__name__)

TEMPLATES_FOLDER = "templates"
DEFAULT_TEMPLATE_NAME = "Template"


def default_name(upload: UploadFile) -> str:
    """Upload filename without its extension, or "Template"."""
    return PurePath(upload.filename or "").stem.strip() or DEFAULT_TEMPLATE_NAME


class TemplateService:

    def __init__(self, files: Optional[FileService] = None):
        self.files = files or file_service

    async def _load(self, db: AsyncSession, template_id: str) -> Template:
        tid = parse_uuid(template_id)
        template = None
        if tid is not None:
            try:
                template = await db.get(Template, tid)
            except SQLAlchemyError as e:
                logger.error("Failed to load template %s: %s", tid, str(e), exc_info=True)
                raise DatabaseError(context={"id": str(tid)})
        if template is None:
            raise NotFoundError(resource="template", resource_id=str(template_id), message="Template not found")
        return template

    async def list_templates(self, db: AsyncSession) -> List[TemplateResponse]:
        try:
            result = await db.execute(select(Template).order_by(Template.created_at.desc()))
        except SQLAlchemyError as e:
            logger.error("Failed to list templates: %s", str(e), exc_info=True)
            raise DatabaseError()
        return [TemplateResponse.model_validate(t) for t in result.scalars().all()]

    async def create_template(
        self, db: AsyncSession, form: TemplateForm, upload: Optional[UploadFile]
    ) -> TemplateResponse:
        if upload is None:
            raise ValidationError("Template image is required", field="image")

        image = await self.files.store_upload(upload, TEMPLATES_FOLDER)
        template = Template(name=clean(form.name) or default_name(upload), image=image)
        db.add(template)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to save template: %s", str(e), exc_info=True)
            await self.files.destroy(image["public_id"])
            raise DatabaseError()

        logger.info("Template created: %s (%s)", template.id, template.name)
        return TemplateResponse.model_validate(template)

    async def update_template(
        self,
        db: AsyncSession,
        template_id: str,
        form: TemplateForm,
        upload: Optional[UploadFile],
    ) -> TemplateResponse:
        template = await self._load(db, template_id)

        if clean(form.name):
            template.name = clean(form.name)

        old_public_id = None
        new_image = None
        if upload is not None:
            new_image = await self.files.store_upload(upload, TEMPLATES_FOLDER)
            old_public_id = (template.image or {}).get("public_id")
            template.image = new_image

        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to update template %s: %s", template.id, str(e), exc_info=True)
            if new_image:
                await self.files.destroy(new_image["public_id"])
            raise DatabaseError(context={"id": str(template.id)})

        await self.files.destroy(old_public_id)
        return TemplateResponse.model_validate(template)

    async def delete_template(self, db: AsyncSession, template_id: str) -> None:
        template = await self._load(db, template_id)
        public_id = (template.image or {}).get("public_id")
        try:
            await db.delete(template)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to delete template %s: %s", template.id, str(e), exc_info=True)
            raise DatabaseError(context={"id": str(template.id)})
        await self.files.destroy(public_id)
        logger.info("Template deleted: %s", template.id)


# ── Singleton Instance ────────────────────────────────────────────────────
template_service = TemplateService()

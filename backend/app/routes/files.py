"""
CustomTees Backend — Stored File Route
========================================

What:  GET /api/files/{path}: serves product images, template images and
       shipping label PDFs written by FileService.

Security:
    - the path is resolved inside STORAGE_ROOT; anything escaping it is a 404
    - only regular files are served
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from app.schemas.common import ErrorResponse
from app.services.file_service import file_service

router = APIRouter(prefix="/api/files", tags=["Files"])


@router.get(
    "/{file_path:path}",
    summary="Serve a stored file",
    responses={
        200: {"description": "Image or PDF"},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_file(file_path: str) -> FileResponse:
    path = file_service.resolve_public_path(file_path)
    # media type is guessed from the extension
    return FileResponse(
        path=str(path),
        headers={"Cache-Control": "public, max-age=86400"},
    )

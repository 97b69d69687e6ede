"""
CustomTees Backend — File Storage Service
============================================

What:  Validates, stores, serves and deletes uploaded images and shipping labels.
Why:   Catalog images, template images and carrier labels all end up on disk
       and are referenced from the database as {url, public_id}.
How:   Validates extension, size and content type, stores under
       <folder>/YYYY/MM/DD/<uuid><ext> with aiofiles, and hands back a
       reference whose public_id is the storage-relative path.
Who:   CatalogService, TemplateService, UPSService (labels), files route.

Security Model:
    1. Extension check:  fast rejection of obviously wrong files
    2. Size check:       bounded by settings.max_file_size
    3. Content check:    libmagic must detect an allowed image type that
                         matches the extension, and Pillow must decode it,
                         so a renamed .exe or a header-only fake is rejected
    4. UUID filename:    no client-controlled text in the stored path
    5. Serve guard:      resolved paths must stay inside storage_root

Directory Structure:
    storage/
    ├── casual-products/2024/01/15/a1b2....jpg
    ├── dtf-products/...
    ├── templates/...
    └── labels/<order_id>.pdf
"""

import asyncio
import base64
import binascii
import io
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import aiofiles
import magic
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from app.config import settings
from app.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}

# Detected MIME type -> extensions it may be uploaded under
ALLOWED_MIME_TYPES = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/gif": {".gif"},
    "image/webp": {".webp"},
}

# Pillow format name -> MIME type
PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

LABELS_FOLDER = "labels"
FILES_ROUTE = "/api/files"

# 4x6in thermal label rendered at 300 dpi with a quarter-inch margin
LABEL_DPI = 300
LABEL_PAGE_PX = (4 * LABEL_DPI, 6 * LABEL_DPI)
LABEL_MARGIN_PX = LABEL_DPI // 4


def detect_mime_type(content: bytes) -> str:
    """
    MIME type reported by libmagic.

    Raises:
        FileStorageError: libmagic could not inspect the content
    """
    try:
        return magic.from_buffer(content, mime=True)
    except magic.MagicException as e:
        logger.error("MIME type detection failed: %s", str(e))
        raise FileStorageError(
            message="Could not verify file type. Please try again.",
            context={"error": str(e)},
        )


def decoded_image_type(content: bytes) -> Optional[str]:
    """MIME type of the image Pillow decodes from content, or None when it cannot."""
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            return PIL_FORMATS.get(img.format or "")
    except Exception as e:
        # Pillow raises a mix of OSError, SyntaxError, ValueError and struct.error
        logger.debug("Image decode failed: %s", str(e))
        return None


def render_label_pdf(png_bytes: bytes) -> bytes:
    """
    Centers a carrier label image on a 4x6in page and returns PDF bytes.

    CPU-bound; callers run it through asyncio.to_thread.
    """
    with Image.open(io.BytesIO(png_bytes)) as label:
        label = label.convert("RGB")
        max_w = LABEL_PAGE_PX[0] - 2 * LABEL_MARGIN_PX
        max_h = LABEL_PAGE_PX[1] - 2 * LABEL_MARGIN_PX
        # UPS returns landscape labels; turn them to fit the portrait page
        if label.width > label.height:
            label = label.rotate(90, expand=True)
        label.thumbnail((max_w, max_h))

        page = Image.new("RGB", LABEL_PAGE_PX, "white")
        offset = (
            (LABEL_PAGE_PX[0] - label.width) // 2,
            (LABEL_PAGE_PX[1] - label.height) // 2,
        )
        page.paste(label, offset)

        out = io.BytesIO()
        page.save(out, format="PDF", resolution=float(LABEL_DPI))
        return out.getvalue()


class FileService:
    """
    Manages the lifecycle of stored files.

    References handed to callers and persisted on rows:
        {"url": "<public_base_url>/api/files/<public_id>", "public_id": "<relative path>"}
    """

    def __init__(self, storage_root: Optional[str] = None, public_base_url: Optional[str] = None):
        """
        Args:
            storage_root:    Override settings.storage_root (tests).
            public_base_url: Override settings.public_base_url (tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """Normalized extension (lowercase, with dot). Raises ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or 'unknown'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Checks the declared size (when the client sent one) and the actual size.

        Raises:
            ValidationError with a human-readable limit
        """
        max_mb = settings.max_file_size / (1024 * 1024)

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

        if actual_size == 0:
            raise ValidationError(message="Uploaded file is empty.", field="file")

    def validate_content(self, file_content: bytes, filename: str) -> str:
        """
        Checks what the bytes actually are, independent of the filename.

        libmagic must report an allowed image type, the extension must belong
        to that type, and Pillow must decode the same format.

        Returns:
            The detected MIME type

        Raises:
            ValidationError:  not a supported image, or extension mismatch
            FileStorageError: libmagic failed
        """
        name = Path(filename or "").name
        ext = Path(name).suffix.lower()
        mime_type = detect_mime_type(file_content)

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File '{name}' is not a valid image. "
                    "Supported formats: PNG, JPEG, WebP, GIF."
                ),
                field="file",
                context={"detected_type": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )

        if ext not in ALLOWED_MIME_TYPES[mime_type]:
            raise ValidationError(
                message=f"File '{name}' has extension '{ext or 'none'}' but its content is {mime_type}.",
                field="file",
                context={"detected_type": mime_type, "extension": ext},
            )

        if decoded_image_type(file_content) != mime_type:
            raise ValidationError(
                message=f"File '{name}' is not a valid image. The image data is corrupt or incomplete.",
                field="file",
                context={"detected_type": mime_type},
            )

        return mime_type

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, folder: str, extension: str) -> Tuple[Path, str]:
        """(absolute_path, relative_path) for <folder>/YYYY/MM/DD/<uuid><ext>."""
        now = datetime.now(timezone.utc)
        date_dir = now.strftime("%Y/%m/%d")
        unique_name = f"{uuid.uuid4()}{extension}"

        relative_path = f"{folder}/{date_dir}/{unique_name}"
        return self.storage_root / relative_path, relative_path

    def public_url(self, public_id: str) -> str:
        return f"{self.public_base_url}{FILES_ROUTE}/{public_id}"

    def reference(self, public_id: str) -> Dict[str, str]:
        return {"url": self.public_url(public_id), "public_id": public_id}

    async def _write(self, absolute_path: Path, relative_path: str, content: bytes) -> None:
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )
        logger.info("File stored: %s (%d bytes)", relative_path, len(content))

    async def store_file(self, content: bytes, extension: str, folder: str) -> Tuple[str, str]:
        """Writes content to a fresh path. Returns (absolute_path, relative_path)."""
        absolute_path, relative_path = self._generate_storage_path(folder, extension)
        await self._write(absolute_path, relative_path, content)
        return str(absolute_path), relative_path

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        folder: str,
        content_length: Optional[int] = None,
    ) -> Dict[str, str]:
        """
        Complete validation and storage pipeline for one image.

        Validation order: extension, size, content (cheapest first).
        Returns the {url, public_id} reference.
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_content(content, filename)

        _, relative_path = await self.store_file(content, ext, folder)
        return self.reference(relative_path)

    async def store_upload(self, upload: UploadFile, folder: str) -> Dict[str, str]:
        content = await upload.read()
        return await self.validate_and_store(
            filename=upload.filename or "",
            content=content,
            folder=folder,
            content_length=upload.size,
        )

    async def store_uploads(self, uploads: Iterable[UploadFile], folder: str) -> List[Dict[str, str]]:
        """
        Stores every upload or none of them: when one fails validation the
        files already written for this call are removed before re-raising.
        """
        stored: List[Dict[str, str]] = []
        try:
            for upload in uploads:
                stored.append(await self.store_upload(upload, folder))
        except Exception:
            await self.destroy_many(ref["public_id"] for ref in stored)
            raise
        return stored

    async def store_label_pdf(self, order_id: str, label_b64: str) -> Dict[str, str]:
        """
        Converts a base64 carrier label image to a 4x6 PDF at labels/<order_id>.pdf.

        Regenerating a label for the same order overwrites the previous file.
        """
        try:
            png_bytes = base64.b64decode(label_b64, validate=False)
        except (binascii.Error, ValueError) as e:
            raise FileStorageError(
                message="Carrier returned an unreadable label image",
                context={"order_id": order_id, "error": str(e)},
            )

        try:
            pdf_bytes = await asyncio.to_thread(render_label_pdf, png_bytes)
        except (UnidentifiedImageError, OSError) as e:
            logger.error("Label conversion failed for order %s: %s", order_id, str(e))
            raise FileStorageError(
                message="Failed to convert shipping label to PDF",
                context={"order_id": order_id, "error": str(e)},
            )

        relative_path = f"{LABELS_FOLDER}/{order_id}.pdf"
        await self._write(self.storage_root / relative_path, relative_path, pdf_bytes)
        return self.reference(relative_path)

    # ── Deletion ──────────────────────────────────────────────────────────

    async def destroy(self, public_id: Optional[str]) -> None:
        """
        Best-effort removal of a stored file. Logs failures, never raises.
        """
        if not public_id:
            return
        try:
            path = self._resolve(public_id)
            if path.exists():
                os.remove(path)
                logger.info("Removed stored file: %s", public_id)
            else:
                logger.debug("Destroy: file already gone: %s", public_id)
        except Exception as e:
            logger.warning("Failed to remove stored file %s: %s", public_id, str(e))

    async def destroy_many(self, public_ids: Iterable[Optional[str]]) -> None:
        for public_id in public_ids:
            await self.destroy(public_id)

    # ── Serving ───────────────────────────────────────────────────────────

    def _resolve(self, public_id: str) -> Path:
        path = (self.storage_root / public_id).resolve()
        if not path.is_relative_to(self.storage_root):
            raise NotFoundError(resource="file", message="File not found")
        return path

    def resolve_public_path(self, public_id: str) -> Path:
        """
        Absolute path of a stored file for the download route.

        Raises:
            NotFoundError: unknown file, or a path escaping storage_root
        """
        path = self._resolve(public_id)
        if not path.is_file():
            raise NotFoundError(resource="file", message="File not found")
        return path


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()

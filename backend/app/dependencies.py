"""
CustomTees Backend — Shared Route Dependencies
================================================

What:  The authorization gate and the multipart upload intake.
Why:   Every route table composes the same few stages (auth → admin →
       upload); declaring them once keeps the chains identical.
How:   Plain FastAPI dependencies. Admin-only routes list require_admin in
       the decorator's `dependencies=[...]` so it is solved before the
       upload dependency and a non-admin never gets an upload validated.

Chains:
    public                      → handler
    get_current_user            → handler
    require_admin               → handler
    require_admin → gallery     → handler   (images, ≤ gallery_max_images)
    require_admin → single      → handler   (image, ≤ 1)
"""

import logging
from typing import List, Optional

from fastapi import Depends, File, Request, UploadFile
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DatabaseError,
    ValidationError,
)
from app.models.user import User
from app.security import decode_token, extract_token, user_id_from_claims

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Authorization gate
# ══════════════════════════════════════════════════════════════════════════

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Resolves the caller from the request's token.

    Raises:
        AuthenticationError: no token, undecodable token, no usable id
                             claim, or the user no longer exists (401)
    """
    token = extract_token(request.headers)
    if not token:
        raise AuthenticationError()

    claims = decode_token(token)
    if not claims:
        raise AuthenticationError()

    user_id = user_id_from_claims(claims)
    if user_id is None:
        raise AuthenticationError()

    try:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("Failed to load user %s: %s", user_id, str(e), exc_info=True)
        raise DatabaseError(context={"user_id": str(user_id)})

    if user is None:
        raise AuthenticationError()

    request.state.user_id = str(user.id)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning("Admin route refused for user %s", user.id)
        raise AuthorizationError()
    return user


# ══════════════════════════════════════════════════════════════════════════
# Upload intake
# ══════════════════════════════════════════════════════════════════════════

def _check_count(files: List[UploadFile], limit: int, field: str) -> None:
    if len(files) > limit:
        raise ValidationError(
            message=f"Too many files. At most {limit} allowed for '{field}'",
            field=field,
            context={"received": len(files), "limit": limit},
        )


async def gallery_upload(
    images: Optional[List[UploadFile]] = File(
        default=None, description="Product gallery images"
    ),
) -> List[UploadFile]:
    files = [f for f in (images or []) if f is not None and f.filename]
    _check_count(files, settings.gallery_max_images, "images")
    return files


async def single_image_upload(
    image: Optional[List[UploadFile]] = File(default=None, description="Single image"),
) -> Optional[UploadFile]:
    # Declared as a list so a second `image` part is rejected, not silently dropped
    files = [f for f in (image or []) if f is not None and f.filename]
    _check_count(files, settings.single_image_max, "image")
    return files[0] if files else None

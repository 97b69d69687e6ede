"""
CustomTees Backend — Shipment Routes
======================================

What:  /api/shipment: admin label purchase and carrier handoff.
Who:   Admin Orders page ("Create label", "Handed to UPS" buttons).

Both routes: auth → admin → handler. See services/shipment_service.py for
the reuse short-circuit and the email-after-commit protocol.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import require_admin
from app.schemas.common import ErrorResponse
from app.schemas.order import ShipmentResponse
from app.services.shipment_service import is_truthy_flag, shipment_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/shipment",
    tags=["Shipments"],
    dependencies=[Depends(require_admin)],
)

_ERRORS = {
    400: {"description": "Invalid package info or order state", "model": ErrorResponse},
    401: {"description": "Not signed in", "model": ErrorResponse},
    403: {"description": "Not an admin", "model": ErrorResponse},
    404: {"description": "Order not found", "model": ErrorResponse},
    500: {"description": "UPS or email failure", "model": ErrorResponse},
    503: {"description": "UPS circuit open", "model": ErrorResponse},
}


@router.post(
    "/create-label/{order_id}",
    response_model=ShipmentResponse,
    response_model_exclude_none=True,
    responses=_ERRORS,
    summary="Buy a UPS label for an order",
    description=(
        "Body: {weight, length, width, height, packagingType?, packagingDescription?}. "
        "An order that already has a label gets it back (`reused: true`) unless "
        "`?force=true` is passed."
    ),
)
async def create_label(
    order_id: str,
    package_info: Optional[Dict[str, Any]] = Body(default=None),
    force: Optional[str] = Query(default=None, description="Buy a new label even if one exists"),
    db: AsyncSession = Depends(get_db_session),
) -> ShipmentResponse:
    return await shipment_service.create_label(
        db,
        order_id,
        package_info or {},
        force=is_truthy_flag(force),
    )


@router.post(
    "/handoff/{order_id}",
    response_model=ShipmentResponse,
    response_model_exclude_none=True,
    responses=_ERRORS,
    summary="Mark an order as handed to UPS",
)
async def mark_handoff(
    order_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> ShipmentResponse:
    return await shipment_service.mark_handoff(db, order_id)

"""
CustomTees Backend — Tracking Routes
======================================

What:  /api/tracking: customer and public tracking lookups plus the admin
       "sync now" trigger.

Route order matters: /order/{order_id} and /sync are declared before the
catch-all /{tracking_number}.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_current_user, require_admin
from app.models.user import User
from app.schemas.common import DataResponse, ErrorResponse
from app.schemas.shipping import SyncResult, TrackingDetails
from app.services.tracking_service import tracking_service

router = APIRouter(prefix="/api/tracking", tags=["Tracking"])


@router.get(
    "/order/{order_id}",
    response_model=DataResponse[TrackingDetails],
    responses={
        400: {"description": "Order does not have tracking yet", "model": ErrorResponse},
        403: {"description": "Not the order's owner", "model": ErrorResponse},
        404: {"description": "Order not found", "model": ErrorResponse},
    },
    summary="Live tracking for one of the caller's orders",
    description=(
        "Fetches UPS tracking and stores the snapshot on the order. "
        "No emails are sent from this route."
    ),
)
async def get_order_tracking(
    order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[TrackingDetails]:
    details = await tracking_service.get_for_order(db, order_id, user)
    return DataResponse[TrackingDetails](data=details)


@router.post(
    "/sync",
    response_model=DataResponse[SyncResult],
    dependencies=[Depends(require_admin)],
    summary="Refresh tracking for open shipments",
    description="Processes up to TRACKING_SYNC_BATCH_SIZE undelivered orders, most recently updated first.",
)
async def trigger_tracking_sync(
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[SyncResult]:
    result = await tracking_service.sync_open_shipments(db)
    return DataResponse[SyncResult](data=result)


@router.get(
    "/{tracking_number}",
    response_model=DataResponse[TrackingDetails],
    responses={
        500: {"description": "UPS error", "model": ErrorResponse},
        503: {"description": "UPS circuit open", "model": ErrorResponse},
    },
    summary="Public lookup by tracking number",
)
async def get_tracking_by_number(tracking_number: str) -> DataResponse[TrackingDetails]:
    details = await tracking_service.get_by_number(tracking_number)
    return DataResponse[TrackingDetails](data=details)

"""
CustomTees Backend — Shipping Quote Routes
============================================

What:  /api/shipping: checkout quotes from UPS (signed-in customers).
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user
from app.schemas.common import DataResponse, ErrorResponse
from app.schemas.shipping import (
    RateQuote,
    RateRequest,
    ShippingOptions,
    ShippingOptionsRequest,
    TransitRequest,
    TransitResult,
)
from app.services.shipping_service import shipping_service

router = APIRouter(
    prefix="/api/shipping",
    tags=["Shipping"],
    dependencies=[Depends(get_current_user)],
    responses={
        400: {"description": "Destination missing or incomplete", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        500: {"description": "UPS error", "model": ErrorResponse},
        503: {"description": "UPS circuit open", "model": ErrorResponse},
    },
)


@router.post(
    "/rate",
    response_model=DataResponse[RateQuote],
    summary="Rate one UPS service",
    description="`weight` defaults to 1 lb and `serviceCode` to 03 (Ground). Cost is in cents.",
)
async def get_shipping_rate(request: RateRequest) -> DataResponse[RateQuote]:
    return DataResponse[RateQuote](data=await shipping_service.rate(request))


@router.post(
    "/transit",
    response_model=DataResponse[TransitResult],
    summary="Transit times for every available service",
    description="`shipDate` (YYYYMMDD) defaults to today.",
)
async def get_transit_time(request: TransitRequest) -> DataResponse[TransitResult]:
    return DataResponse[TransitResult](data=await shipping_service.transit(request))


@router.post(
    "/options",
    response_model=DataResponse[ShippingOptions],
    summary="Rated shipping options, fastest first",
)
async def get_shipping_options(request: ShippingOptionsRequest) -> DataResponse[ShippingOptions]:
    return DataResponse[ShippingOptions](data=await shipping_service.options(request))

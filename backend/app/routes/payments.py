"""
CustomTees Backend — Payment Routes
=====================================

What:  /api/payments/square/verify, called by the storefront when Square
       redirects the customer back after checkout.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.common import DataResponse, ErrorResponse
from app.schemas.shipping import PaymentVerification, SquareVerifyRequest
from app.services.payment_service import payment_service

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.post(
    "/square/verify",
    response_model=DataResponse[PaymentVerification],
    responses={
        400: {"description": "Missing orderId or not a Square order", "model": ErrorResponse},
        403: {"description": "Access denied for this order", "model": ErrorResponse},
        404: {"description": "Order not found", "model": ErrorResponse},
        500: {"description": "Square payments are not configured", "model": ErrorResponse},
        502: {"description": "Square unreachable or returned an error", "model": ErrorResponse},
    },
    summary="Verify a Square checkout and record the payment outcome",
    description=(
        "Body: {orderId, transactionId?, squareOrderId?, status?}. A declined or "
        "missing payment is a successful call with `paymentStatus: failed`."
    ),
)
async def verify_square_payment(
    request: SquareVerifyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[PaymentVerification]:
    result = await payment_service.verify_square_payment(db, request, user)
    return DataResponse[PaymentVerification](data=result)

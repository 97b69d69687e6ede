"""
CustomTees Backend — Payment Verification Service
===================================================

What:  Confirms a Square checkout after the customer is redirected back
       and records the outcome on the order.
Who:   routes/payments.py (POST /api/payments/square/verify).

Flow:
    1. Square not configured → 500
    2. orderId missing → 400; unknown → 404; not the caller's → 403
    3. order not paid with Square → 400
    4. no transactionId → payment failed (cancelled or missing id)
    5. GET payment by transactionId; if Square does not know it, look the
       payment up through the Square order's tenders
    6. nothing found → failed, squareStatus NOT_FOUND
    7. COMPLETED → paid, ids recorded, placed → processing
       anything else → failed with the card or Square status as reason

Square outages raise PaymentGatewayError (502) before anything is saved.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AuthorizationError, IntegrationError, ValidationError
from app.models.order import Order, OrderStatus, PaymentStatus
from app.models.user import User
from app.schemas.order import OrderResponse
from app.schemas.shipping import PaymentVerification, SquareVerifyRequest
from app.services.order_lifecycle import commit, load_order_with_user
from app.services.square_service import COMPLETED, SquareService, square_service

logger = logging.getLogger(__name__)

SQUARE_METHOD = "square"
NOT_FOUND_STATUS = "NOT_FOUND"


def _with_payment(order: Order, **changes: Any) -> None:
    # JSON column: assign a new dict so the change is flushed
    payment = dict(order.payment or {})
    for key, value in changes.items():
        if value is None:
            payment.pop(key, None)
        else:
            payment[key] = value
    order.payment = payment


class PaymentService:

    def __init__(self, square: Optional[SquareService] = None):
        self.square = square or square_service

    async def _locate_payment(
        self, transaction_id: str, square_order_id: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        payment = await self.square.retrieve_payment(transaction_id)
        if payment is not None:
            logger.info("Square payment %s retrieved (status=%s)", payment.get("id"), payment.get("status"))
            return payment

        if not square_order_id:
            return None
        logger.info(
            "Square payment %s not found; checking Square order %s",
            transaction_id,
            square_order_id,
        )
        return await self.square.find_order_payment(square_order_id)

    async def verify_square_payment(
        self, db: AsyncSession, request: SquareVerifyRequest, user: User
    ) -> PaymentVerification:
        if not self.square.configured:
            raise IntegrationError("Square payments are not configured", service="square")
        if not request.order_id:
            raise ValidationError("orderId is required", field="orderId")

        order = await load_order_with_user(db, request.order_id)
        if order.user_id != user.id:
            raise AuthorizationError("Access denied for this order", context={"order_id": str(order.id)})
        if order.payment_method != SQUARE_METHOD:
            raise ValidationError("Order was not paid with Square", field="paymentMethod")

        context = {"order_id": str(order.id)}

        if not request.transaction_id:
            reason = (
                "Customer cancelled Square checkout"
                if (request.status or "").lower() == "cancelled"
                else "Missing Square transaction ID"
            )
            _with_payment(order, status=PaymentStatus.FAILED, failureReason=reason)
            await commit(db, context)
            logger.info("Order %s payment failed: %s", order.id, reason)
            return PaymentVerification(
                order=OrderResponse.model_validate(order),
                payment_status=PaymentStatus.FAILED,
                message=reason,
            )

        square_order_id = request.square_order_id or (order.payment or {}).get("squareOrderId")
        payment = await self._locate_payment(request.transaction_id, square_order_id)

        if payment is None:
            logger.warning(
                "No Square payment found for order %s (transaction=%s, squareOrder=%s)",
                order.id,
                request.transaction_id,
                square_order_id,
            )
            _with_payment(
                order,
                status=PaymentStatus.FAILED,
                failureReason="Payment verification failed: Payment not found in Square system",
            )
            await commit(db, context)
            return PaymentVerification(
                order=OrderResponse.model_validate(order),
                payment_status=PaymentStatus.FAILED,
                square_status=NOT_FOUND_STATUS,
            )

        square_status = payment.get("status")
        if square_status == COMPLETED:
            _with_payment(
                order,
                status=PaymentStatus.PAID,
                squarePaymentId=payment.get("id"),
                squareOrderId=payment.get("order_id") or square_order_id,
                failureReason=None,
            )
            if order.status == OrderStatus.PLACED:
                order.status = OrderStatus.PROCESSING
            logger.info("Order %s paid via Square payment %s", order.id, payment.get("id"))
        else:
            reason = (payment.get("card_details") or {}).get("status") or square_status or "Square payment failed"
            _with_payment(order, status=PaymentStatus.FAILED, failureReason=reason)
            logger.info("Order %s Square payment not completed: %s", order.id, reason)

        await commit(db, context)
        return PaymentVerification(
            order=OrderResponse.model_validate(order),
            payment_status=order.payment["status"],
            square_status=square_status,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
payment_service = PaymentService()

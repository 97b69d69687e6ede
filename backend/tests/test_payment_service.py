"""
CustomTees Backend — Payment Verification Unit Tests
======================================================

What:  PaymentService against a mocked Square client; SquareService against
       httpx.MockTransport.

What we test:
    ✅ Guard rails: not configured, missing orderId, wrong owner, wrong method
    ✅ Cancelled / missing transaction → failed
    ✅ COMPLETED → paid, ids recorded, placed → processing
    ✅ Fallback through the Square order's tenders
    ✅ Square 404 → None, 5xx → PaymentGatewayError
"""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.exceptions import (
    AuthorizationError,
    IntegrationError,
    PaymentGatewayError,
    ValidationError,
)
from app.models.user import User
from app.schemas.shipping import SquareVerifyRequest
from app.services.payment_service import PaymentService
from app.services.square_service import SquareService


def square_mock(payment=None, order_payment=None, configured=True):
    square = MagicMock()
    square.configured = configured
    square.retrieve_payment = AsyncMock(return_value=payment)
    square.find_order_payment = AsyncMock(return_value=order_payment)
    return square


class TestVerifyGuards:

    @pytest.mark.asyncio
    async def test_not_configured(self, mock_db_session, customer):
        service = PaymentService(square=square_mock(configured=False))
        with pytest.raises(IntegrationError, match="Square payments are not configured"):
            await service.verify_square_payment(mock_db_session, SquareVerifyRequest(order_id="x"), customer)

    @pytest.mark.asyncio
    async def test_order_id_required(self, mock_db_session, customer):
        service = PaymentService(square=square_mock())
        with pytest.raises(ValidationError, match="orderId is required"):
            await service.verify_square_payment(mock_db_session, SquareVerifyRequest(), customer)

    @pytest.mark.asyncio
    async def test_other_customers_order(self, mock_db_session, make_order, customer):
        order = make_order(payment_method="square")
        intruder = User(id=uuid.uuid4(), name="Intruder", role="user")
        service = PaymentService(square=square_mock())
        with patch("app.services.payment_service.load_order_with_user", return_value=order):
            with pytest.raises(AuthorizationError, match="Access denied for this order"):
                await service.verify_square_payment(
                    mock_db_session, SquareVerifyRequest(order_id=str(order.id)), intruder
                )

    @pytest.mark.asyncio
    async def test_not_a_square_order(self, mock_db_session, make_order, customer):
        order = make_order(payment_method="cod")
        service = PaymentService(square=square_mock())
        with patch("app.services.payment_service.load_order_with_user", return_value=order):
            with pytest.raises(ValidationError, match="Order was not paid with Square"):
                await service.verify_square_payment(
                    mock_db_session, SquareVerifyRequest(order_id=str(order.id)), customer
                )


class TestVerifyOutcomes:

    @pytest.fixture
    def order(self, make_order):
        return make_order(status="placed", payment_method="square", payment={"provider": "square", "status": "pending"})

    async def _verify(self, service, db, order, user, **fields):
        request = SquareVerifyRequest(order_id=str(order.id), **fields)
        with patch("app.services.payment_service.load_order_with_user", return_value=order):
            return await service.verify_square_payment(db, request, user)

    @pytest.mark.asyncio
    async def test_cancelled_checkout(self, mock_db_session, order, customer):
        result = await self._verify(PaymentService(square=square_mock()), mock_db_session, order, customer, status="cancelled")

        assert result.payment_status == "failed"
        assert order.payment["failureReason"] == "Customer cancelled Square checkout"
        assert order.status == "placed"
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_transaction_id(self, mock_db_session, order, customer):
        result = await self._verify(PaymentService(square=square_mock()), mock_db_session, order, customer)
        assert result.payment_status == "failed"
        assert order.payment["failureReason"] == "Missing Square transaction ID"

    @pytest.mark.asyncio
    async def test_completed_payment(self, mock_db_session, order, customer):
        square = square_mock(payment={"id": "PAY1", "status": "COMPLETED", "order_id": "SQORD1"})
        result = await self._verify(
            PaymentService(square=square), mock_db_session, order, customer, transaction_id="PAY1"
        )

        assert result.payment_status == "paid"
        assert result.square_status == "COMPLETED"
        assert order.payment["squarePaymentId"] == "PAY1"
        assert order.payment["squareOrderId"] == "SQORD1"
        assert order.payment["provider"] == "square"
        assert "failureReason" not in order.payment
        assert order.status == "processing"

    @pytest.mark.asyncio
    async def test_declined_card(self, mock_db_session, order, customer):
        square = square_mock(payment={"id": "PAY1", "status": "FAILED", "card_details": {"status": "DECLINED"}})
        result = await self._verify(
            PaymentService(square=square), mock_db_session, order, customer, transaction_id="PAY1"
        )

        assert result.payment_status == "failed"
        assert result.square_status == "FAILED"
        assert order.payment["failureReason"] == "DECLINED"
        assert order.status == "placed"

    @pytest.mark.asyncio
    async def test_falls_back_to_square_order(self, mock_db_session, order, customer):
        square = square_mock(payment=None, order_payment={"id": "PAY2", "status": "COMPLETED"})
        result = await self._verify(
            PaymentService(square=square),
            mock_db_session,
            order,
            customer,
            transaction_id="CHECKOUT1",
            square_order_id="SQORD9",
        )

        square.find_order_payment.assert_awaited_once_with("SQORD9")
        assert result.payment_status == "paid"
        assert order.payment["squareOrderId"] == "SQORD9"

    @pytest.mark.asyncio
    async def test_payment_not_found(self, mock_db_session, order, customer):
        result = await self._verify(
            PaymentService(square=square_mock()), mock_db_session, order, customer, transaction_id="NOPE"
        )

        assert result.payment_status == "failed"
        assert result.square_status == "NOT_FOUND"
        assert order.payment["failureReason"] == "Payment verification failed: Payment not found in Square system"

    @pytest.mark.asyncio
    async def test_gateway_error_saves_nothing(self, mock_db_session, order, customer):
        square = square_mock()
        square.retrieve_payment.side_effect = PaymentGatewayError("Square API GET failed: 503")
        with pytest.raises(PaymentGatewayError):
            await self._verify(PaymentService(square=square), mock_db_session, order, customer, transaction_id="PAY1")

        assert order.payment == {"provider": "square", "status": "pending"}
        mock_db_session.commit.assert_not_awaited()


class TestSquareClient:

    def client_for(self, handler):
        return SquareService(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    @pytest.mark.asyncio
    async def test_retrieve_payment_sends_auth_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["version"] = request.headers["Square-Version"]
            return httpx.Response(200, json={"payment": {"id": "PAY1", "status": "COMPLETED"}})

        payment = await self.client_for(handler).retrieve_payment("PAY1")

        assert payment["status"] == "COMPLETED"
        assert seen["path"] == "/v2/payments/PAY1"
        assert seen["auth"] == "Bearer sq-test-token"
        assert seen["version"]

    @pytest.mark.asyncio
    async def test_404_is_none(self):
        client = self.client_for(lambda request: httpx.Response(404, json={"errors": []}))
        assert await client.retrieve_payment("missing") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        client = self.client_for(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(PaymentGatewayError):
            await client.retrieve_order("SQORD1")

    @pytest.mark.asyncio
    async def test_order_payment_prefers_completed(self):
        payments = {
            "PAY_A": {"id": "PAY_A", "status": "FAILED"},
            "PAY_B": {"id": "PAY_B", "status": "COMPLETED"},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v2/orders/SQORD1":
                return httpx.Response(200, json={"order": {"tenders": [{"payment_id": "PAY_A"}, {"payment_id": "PAY_B"}]}})
            payment_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"payment": payments[payment_id]})

        payment = await self.client_for(handler).find_order_payment("SQORD1")
        assert payment["id"] == "PAY_B"

    @pytest.mark.asyncio
    async def test_unknown_square_order(self):
        client = self.client_for(lambda request: httpx.Response(404, json={}))
        assert await client.find_order_payment("SQORD404") is None

"""
CustomTees Backend — Order Lifecycle Unit Tests
=================================================

What we test:
    ✅ Legal (status, shipment_status) pairs and cancelled orders
    ✅ load_order_with_user: malformed id, missing row, DB failure
    ✅ commit_and_notify: commit before send, intent rolled back on failure
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from app.exceptions import DatabaseError, NotFoundError, NotificationError, PreconditionError
from app.models.order import OrderStatus, ShipmentStatus
from app.services.order_lifecycle import (
    apply_state,
    check_transition,
    commit_and_notify,
    is_legal_state,
    load_order_with_user,
    stage_notification,
)


class TestLegalStates:

    @pytest.mark.parametrize("status", ["placed", "processing", "cancelled"])
    def test_pending_allows_pre_shipment_statuses(self, status):
        assert is_legal_state(status, ShipmentStatus.PENDING)

    def test_pending_rejects_shipped(self):
        assert not is_legal_state(OrderStatus.SHIPPED, ShipmentStatus.PENDING)

    def test_delivered_requires_delivered_status(self):
        assert is_legal_state(OrderStatus.DELIVERED, ShipmentStatus.DELIVERED)
        assert not is_legal_state(OrderStatus.SHIPPED, ShipmentStatus.DELIVERED)

    def test_label_generated_rejects_placed(self):
        assert not is_legal_state(OrderStatus.PLACED, ShipmentStatus.LABEL_GENERATED)

    def test_unknown_shipment_status(self):
        assert not is_legal_state(OrderStatus.SHIPPED, "lost")


class TestTransitions:

    def test_omitted_half_keeps_current_value(self, make_order):
        order = make_order(status="processing", shipment_status="pending")
        assert check_transition(order, shipment_status="label_generated") == ("processing", "label_generated")

    def test_illegal_pair_raises_and_leaves_order(self, make_order):
        order = make_order(status="processing", shipment_status="pending")
        with pytest.raises(PreconditionError):
            apply_state(order, OrderStatus.SHIPPED, ShipmentStatus.PENDING)
        assert (order.status, order.shipment_status) == ("processing", "pending")

    def test_cancelled_order_cannot_ship(self, make_order):
        order = make_order(status="cancelled", shipment_status="pending")
        with pytest.raises(PreconditionError, match="cancelled"):
            check_transition(order, OrderStatus.SHIPPED, ShipmentStatus.LABEL_GENERATED)

    def test_apply_state_sets_both_fields(self, make_order):
        order = make_order(status="processing", shipment_status="pending")
        apply_state(order, OrderStatus.SHIPPED, ShipmentStatus.LABEL_GENERATED)
        assert order.status == "shipped"
        assert order.shipment_status == "label_generated"


class TestLoadOrder:

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, mock_db_session):
        with pytest.raises(NotFoundError, match="Order not found"):
            await load_order_with_user(mock_db_session, "not-a-uuid")
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_row_is_not_found(self, mock_db_session, result_with):
        mock_db_session.execute.return_value = result_with(None)
        with pytest.raises(NotFoundError, match="Order not found"):
            await load_order_with_user(mock_db_session, str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_returns_order(self, mock_db_session, result_with, make_order):
        order = make_order()
        mock_db_session.execute.return_value = result_with(order)
        assert await load_order_with_user(mock_db_session, str(order.id)) is order

    @pytest.mark.asyncio
    async def test_query_failure_is_database_error(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(DatabaseError):
            await load_order_with_user(mock_db_session, str(uuid.uuid4()))


class TestCommitAndNotify:

    @pytest.mark.asyncio
    async def test_commits_before_sending(self, mock_db_session, make_order):
        order = make_order(tracking_number="1Z999")
        calls = []
        mock_db_session.commit = AsyncMock(side_effect=lambda: calls.append("commit"))
        send = AsyncMock(side_effect=lambda: calls.append("send"))

        pending = [stage_notification(order, "tracking", {"tracking_email_sent_at": "stamp"}, send)]
        await commit_and_notify(mock_db_session, order, pending)

        assert calls == ["commit", "send"]
        assert order.tracking_email_sent_at == "stamp"

    @pytest.mark.asyncio
    async def test_failed_send_restores_stamp(self, mock_db_session, make_order):
        order = make_order(tracking_number="1Z999")
        send = AsyncMock(side_effect=NotificationError("SendGrid down"))
        pending = [stage_notification(order, "tracking", {"tracking_email_sent_at": "stamp"}, send)]

        with pytest.raises(NotificationError):
            await commit_and_notify(mock_db_session, order, pending)

        assert order.tracking_email_sent_at is None
        assert mock_db_session.commit.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_commit_sends_nothing(self, mock_db_session, make_order):
        order = make_order()
        mock_db_session.commit.side_effect = OperationalError("COMMIT", {}, Exception("down"))
        send = AsyncMock()
        pending = [stage_notification(order, "tracking", {"tracking_email_sent_at": "stamp"}, send)]

        with pytest.raises(DatabaseError):
            await commit_and_notify(mock_db_session, order, pending)

        send.assert_not_awaited()
        mock_db_session.rollback.assert_awaited_once()

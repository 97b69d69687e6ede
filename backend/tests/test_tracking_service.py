"""
CustomTees Backend — Tracking Service Unit Tests
==================================================

What we test:
    ✅ UPS date parsing and activity normalization (both response shapes)
    ✅ Milestone mapping by description keyword, then status code
    ✅ Persisting a snapshot: history cap, summary fallbacks, status pair
    ✅ Delivery email at most once; status emails only on change
    ✅ Customer lookups never email; ownership enforced
    ✅ Sync batch continues past a failing order
    ✅ Sync batch reloads remaining orders after a failed commit
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from app.exceptions import (
    AuthorizationError,
    CarrierError,
    PreconditionError,
    ValidationError,
)
from app.models.user import User
from app.schemas.shipping import TrackingDetails, TrackingEvent
from app.services.tracking_service import (
    TrackingService,
    build_tracking_details,
    extract_activities,
    map_event_to_milestone,
    normalize_activity,
    parse_ups_datetime,
)


def ups_track_response(*activities, delivery_date=None):
    package = {"trackingNumber": "1Z999", "activity": list(activities)}
    if delivery_date:
        package["deliveryDate"] = [{"type": "SDD", "date": delivery_date}]
    return {"trackResponse": {"shipment": [{"package": [package]}]}}


def activity(description, code="I", date="20250310", time="101500", city="Secaucus"):
    return {
        "location": {"address": {"city": city, "stateProvince": "NJ", "country": "US"}},
        "status": {"type": code, "description": description, "code": code},
        "date": date,
        "time": time,
    }


def event(status, code=None):
    return TrackingEvent(status=status, code=code, description=status)


class TestParseUpsDatetime:

    def test_full_date_and_time(self):
        assert parse_ups_datetime("20250310", "101500") == datetime(2025, 3, 10, 10, 15, tzinfo=timezone.utc)

    def test_missing_time_is_midnight(self):
        assert parse_ups_datetime("20250310") == datetime(2025, 3, 10, tzinfo=timezone.utc)

    def test_short_date_defaults_month_and_day(self):
        assert parse_ups_datetime("2025") == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_empty_and_impossible_dates(self):
        assert parse_ups_datetime("") is None
        assert parse_ups_datetime(None) is None
        assert parse_ups_datetime("20251399") is None


class TestNormalization:

    def test_camel_case_activity(self):
        result = normalize_activity(activity("Departure Scan", code="I"))
        assert result.status == "Departure Scan"
        assert result.code == "I"
        assert result.location == "Secaucus, NJ, US"
        assert result.date == datetime(2025, 3, 10, 10, 15, tzinfo=timezone.utc)

    def test_legacy_pascal_case_activity(self):
        result = normalize_activity({
            "Status": {"Description": "Delivered", "Code": "D"},
            "Location": {"Address": {"City": "Hoboken", "StateProvinceCode": "NJ"}},
            "Date": "20250312",
        })
        assert result.status == "Delivered"
        assert result.code == "D"
        assert result.location == "Hoboken, NJ"

    def test_empty_activity_skipped(self):
        assert normalize_activity({}) is None
        assert normalize_activity("garbage") is None

    def test_activities_sorted_newest_first(self):
        data = ups_track_response(
            activity("Origin Scan", date="20250308"),
            activity("Out For Delivery Today", date="20250312"),
            activity("Arrival Scan", date="20250310"),
        )
        statuses = [e.status for e in extract_activities(data)]
        assert statuses == ["Out For Delivery Today", "Arrival Scan", "Origin Scan"]

    def test_no_shipment(self):
        assert extract_activities({"trackResponse": {"shipment": []}}) == []


class TestMilestones:

    @pytest.mark.parametrize("status, stage, milestone", [
        ("Shipper created a label, UPS has not received the package yet. Label Created", "pending", "label_created"),
        ("Origin Scan", "label_generated", "origin_scan"),
        ("Pickup Scan", "label_generated", "origin_scan"),
        ("Departed UPS Facility", "carrier_handoff", "departed_facility"),
        ("Departure Scan", "carrier_handoff", "departed_facility"),
        ("Out For Delivery Today", "in_transit", "out_for_delivery"),
        ("In Transit", "in_transit", "in_transit"),
        ("Arrival Scan", "in_transit", "in_transit"),
        ("DELIVERED", "delivered", "delivered"),
    ])
    def test_keyword_rules(self, status, stage, milestone):
        assert map_event_to_milestone(event(status)) == (stage, milestone)

    def test_code_fallback(self):
        assert map_event_to_milestone(event("Left at front door", code="D")) == ("delivered", "delivered")
        assert map_event_to_milestone(event("Processing", code="i")) == ("in_transit", "in_transit")

    def test_unmapped(self):
        assert map_event_to_milestone(event("Weather delay", code="X")) == (None, None)
        assert map_event_to_milestone(None) == (None, None)

    def test_details_default_stage(self):
        details = build_tracking_details("1Z999", ups_track_response(activity("Weather delay", code="X")))
        assert details.shipment_status == "label_generated"
        assert details.milestone_key is None

    def test_estimated_delivery(self):
        details = build_tracking_details(
            "1Z999",
            ups_track_response(activity("In Transit"), delivery_date="20250314"),
        )
        assert details.estimated_delivery == datetime(2025, 3, 14, tzinfo=timezone.utc)


class TestPersistTracking:

    @pytest.fixture
    def service(self, mock_carrier, mock_notifier):
        return TrackingService(carrier=mock_carrier, notifier=mock_notifier)

    @pytest.fixture
    def shipped_order(self, make_order):
        return make_order(
            status="shipped",
            shipment_status="label_generated",
            tracking_number="1Z999",
            tracking_email_sent_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
        )

    @pytest.mark.asyncio
    async def test_in_transit_snapshot_and_status_email(
        self, service, mock_db_session, shipped_order, mock_notifier
    ):
        details = build_tracking_details("1Z999", ups_track_response(activity("Arrival Scan")))
        await service.persist_tracking_on_order(mock_db_session, shipped_order, details)

        assert shipped_order.shipment_status == "in_transit"
        assert shipped_order.status == "shipped"
        assert shipped_order.tracking_summary["status"] == "Arrival Scan"
        assert shipped_order.tracking_summary["lastLocation"] == "Secaucus, NJ, US"
        assert shipped_order.tracking_history[0]["status"] == "Arrival Scan"
        assert shipped_order.last_tracking_status_notified == "Arrival Scan"
        assert shipped_order.last_tracking_sync_at is not None
        mock_notifier.send_tracking_status_update.assert_awaited_once()
        assert mock_notifier.send_tracking_status_update.await_args.kwargs["milestone"] == "in_transit"

    @pytest.mark.asyncio
    async def test_same_status_not_emailed_twice(
        self, service, mock_db_session, shipped_order, mock_notifier
    ):
        shipped_order.last_tracking_status_notified = "Arrival Scan"
        details = build_tracking_details("1Z999", ups_track_response(activity("Arrival Scan")))
        await service.persist_tracking_on_order(mock_db_session, shipped_order, details)

        mock_notifier.send_tracking_status_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery(self, service, mock_db_session, shipped_order, mock_notifier):
        details = build_tracking_details(
            "1Z999", ups_track_response(activity("Delivered", code="D", date="20250312"))
        )
        await service.persist_tracking_on_order(mock_db_session, shipped_order, details)

        assert shipped_order.status == "delivered"
        assert shipped_order.shipment_status == "delivered"
        assert shipped_order.delivered_at == datetime(2025, 3, 12, 10, 15, tzinfo=timezone.utc)
        assert shipped_order.delivery_email_sent_at is not None
        mock_notifier.send_delivery_notification.assert_awaited_once()
        mock_notifier.send_tracking_status_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_email_sent_once(self, service, mock_db_session, shipped_order, mock_notifier):
        shipped_order.status = "delivered"
        shipped_order.shipment_status = "delivered"
        shipped_order.delivery_email_sent_at = datetime(2025, 3, 12, tzinfo=timezone.utc)
        details = build_tracking_details("1Z999", ups_track_response(activity("Delivered", code="D")))
        await service.persist_tracking_on_order(mock_db_session, shipped_order, details)

        mock_notifier.send_delivery_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_without_email_only_stamps(
        self, service, mock_db_session, make_order, customer, mock_notifier
    ):
        customer.email = None
        order = make_order(user=customer, status="shipped", shipment_status="in_transit", tracking_number="1Z1")
        details = build_tracking_details("1Z1", ups_track_response(activity("Delivered", code="D")))
        await service.persist_tracking_on_order(mock_db_session, order, details)

        assert order.delivery_email_sent_at is not None
        mock_notifier.send_delivery_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_illegal_stage_is_ignored(self, service, mock_db_session, make_order):
        order = make_order(status="cancelled", shipment_status="pending", tracking_number="1Z1")
        details = build_tracking_details("1Z1", ups_track_response(activity("In Transit")))
        await service.persist_tracking_on_order(mock_db_session, order, details, suppress_emails=True)

        assert (order.status, order.shipment_status) == ("cancelled", "pending")
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_history_capped(self, service, mock_db_session, shipped_order):
        activities = [activity("In Transit", date=f"202503{day:02d}") for day in range(1, 8)]
        details = build_tracking_details("1Z999", ups_track_response(*activities))
        with patch("app.services.tracking_service.settings") as mock_settings:
            mock_settings.tracking_history_limit = 3
            await service.persist_tracking_on_order(mock_db_session, shipped_order, details, suppress_emails=True)

        assert len(shipped_order.tracking_history) == 3
        assert shipped_order.tracking_history[0]["date"].startswith("2025-03-07")

    @pytest.mark.asyncio
    async def test_no_events_keeps_previous_summary(self, service, mock_db_session, shipped_order):
        shipped_order.tracking_summary = {"status": "Origin Scan", "lastLocation": "Jersey City, NJ, US"}
        shipped_order.tracking_history = [{"status": "Origin Scan"}]
        details = TrackingDetails(tracking_number="1Z999", shipment_status="label_generated")
        await service.persist_tracking_on_order(mock_db_session, shipped_order, details)

        assert shipped_order.tracking_summary["status"] == "Origin Scan"
        assert shipped_order.tracking_summary["lastLocation"] == "Jersey City, NJ, US"
        assert shipped_order.tracking_history == [{"status": "Origin Scan"}]


class TestLookups:

    @pytest.fixture
    def service(self, mock_carrier, mock_notifier):
        mock_carrier.fetch_tracking.return_value = ups_track_response(activity("Arrival Scan"))
        return TrackingService(carrier=mock_carrier, notifier=mock_notifier)

    @pytest.mark.asyncio
    async def test_blank_tracking_number(self, service):
        with pytest.raises(ValidationError, match="Tracking number is required"):
            await service.get_by_number("  ")

    @pytest.mark.asyncio
    async def test_public_lookup(self, service, mock_carrier):
        details = await service.get_by_number(" 1Z999 ")
        assert details.tracking_number == "1Z999"
        assert details.latest_event.status == "Arrival Scan"
        mock_carrier.fetch_tracking.assert_awaited_once_with("1Z999")

    @pytest.mark.asyncio
    async def test_order_without_tracking(self, service, mock_db_session, make_order, customer):
        order = make_order()
        with patch("app.services.tracking_service.load_order_with_user", return_value=order):
            with pytest.raises(PreconditionError, match="Order does not have tracking yet"):
                await service.get_for_order(mock_db_session, str(order.id), customer)

    @pytest.mark.asyncio
    async def test_other_customer_refused(self, service, mock_db_session, make_order, customer):
        stranger = User(id=uuid.uuid4(), name="Other", email="o@example.com", role="user")
        order = make_order(status="shipped", shipment_status="label_generated", tracking_number="1Z999")
        with patch("app.services.tracking_service.load_order_with_user", return_value=order):
            with pytest.raises(AuthorizationError, match="Not authorized to view this tracking info"):
                await service.get_for_order(mock_db_session, str(order.id), stranger)

    @pytest.mark.asyncio
    async def test_owner_lookup_sends_no_email(
        self, service, mock_db_session, make_order, customer, mock_notifier
    ):
        order = make_order(status="shipped", shipment_status="label_generated", tracking_number="1Z999")
        with patch("app.services.tracking_service.load_order_with_user", return_value=order):
            details = await service.get_for_order(mock_db_session, str(order.id), customer)

        assert details.shipment_status == "in_transit"
        assert order.shipment_status == "in_transit"
        assert order.last_tracking_status_notified is None
        mock_notifier.send_tracking_status_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_may_view_any_order(self, service, mock_db_session, make_order, admin_user):
        order = make_order(status="shipped", shipment_status="label_generated", tracking_number="1Z999")
        with patch("app.services.tracking_service.load_order_with_user", return_value=order):
            details = await service.get_for_order(mock_db_session, str(order.id), admin_user)
        assert details.tracking_number == "1Z999"


class TestSync:

    @pytest.mark.asyncio
    async def test_failing_order_does_not_stop_batch(
        self, mock_db_session, result_with, make_order, mock_carrier, mock_notifier
    ):
        first = make_order(status="shipped", shipment_status="label_generated", tracking_number="1ZBAD")
        second = make_order(status="shipped", shipment_status="label_generated", tracking_number="1ZGOOD")
        mock_db_session.execute.return_value = result_with([first, second])
        mock_carrier.fetch_tracking = AsyncMock(side_effect=[
            CarrierError("Tracking number not found"),
            ups_track_response(activity("Arrival Scan")),
        ])
        service = TrackingService(carrier=mock_carrier, notifier=mock_notifier)

        result = await service.sync_open_shipments(mock_db_session)

        assert result.synced == 1
        assert second.shipment_status == "in_transit"
        assert first.last_tracking_sync_at is None

    @pytest.mark.asyncio
    async def test_commit_failure_reloads_remaining_orders(
        self, mock_db_session, result_with, make_order, mock_carrier, mock_notifier
    ):
        first = make_order(status="shipped", shipment_status="label_generated", tracking_number="1ZFIRST")
        second = make_order(status="shipped", shipment_status="label_generated", tracking_number="1ZSECOND")
        mock_db_session.execute.side_effect = [result_with([first, second]), result_with(second)]
        mock_db_session.commit.side_effect = [
            OperationalError("COMMIT", {}, Exception("connection reset")),
            None,
        ]
        mock_carrier.fetch_tracking = AsyncMock(return_value=ups_track_response(activity("Arrival Scan")))
        service = TrackingService(carrier=mock_carrier, notifier=mock_notifier)

        result = await service.sync_open_shipments(mock_db_session)

        assert result.synced == 1
        mock_db_session.rollback.assert_awaited_once()
        # batch query, then the reload of the second order
        assert mock_db_session.execute.await_count == 2
        assert second.shipment_status == "in_transit"
        tracked = [call.args[0] for call in mock_carrier.fetch_tracking.await_args_list]
        assert tracked == ["1ZFIRST", "1ZSECOND"]

"""
CustomTees Backend — UPS Service Unit Tests
=============================================

What:  UPS payload builders, response parsers, and the client itself
       against httpx.MockTransport (no network).

What we test:
    ✅ Error text extraction from both UPS error shapes
    ✅ Shipment payload: address checks, measurement fallbacks, service code
    ✅ Transit parsing: emsResponse and flat shapes
    ✅ Quotes: cents, transit fallback to rating data, option sorting
    ✅ OAuth token cached; 401 invalidates it
    ✅ Label stored as PDF; 5xx trips the breaker, 4xx does not
"""

import base64
import json

import httpx
import pytest

from app.exceptions import CarrierError, CircuitBreakerOpenError
from app.schemas.shipping import Destination
from app.services.file_service import FileService
from app.services.ups_service import (
    UPSService,
    build_quote,
    build_shipment_payload,
    extract_error_message,
    normalize_measurement,
    parse_shipment_response,
    parse_transit_services,
    transit_from_rating,
    wire_ship_date,
)

DESTINATION = Destination(city="Hoboken", state="NJ", postal_code="07030", line1="12 Harbor St")


def rated(value="12.34", code="03", **extra):
    body = {"Service": {"Code": code}, "TotalCharges": {"CurrencyCode": "USD", "MonetaryValue": value}}
    body.update(extra)
    return {"RateResponse": {"RatedShipment": [body]}}


class FakeUPS:
    """Routes MockTransport requests by path; records every request."""

    def __init__(self):
        self.requests = []
        self.routes = {
            "/security/v1/oauth/token": lambda req: httpx.Response(
                200, json={"access_token": "ups-token", "expires_in": "3600"}
            ),
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"response": {"errors": [{"code": "404", "message": "no route"}]}})
        return handler(request)

    def count(self, path):
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def fake_ups():
    return FakeUPS()


@pytest.fixture
def ups(fake_ups, temp_storage):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_ups))
    return UPSService(http_client=client, files=FileService(storage_root=temp_storage))


class TestHelpers:

    def test_error_message_new_shape(self):
        data = {"response": {"errors": [{"code": "120802", "message": "Address Validation Error"}]}}
        assert extract_error_message(data, "shipment", 400) == "Address Validation Error"

    def test_error_message_fault_shape(self):
        data = {"Fault": {"detail": {"Errors": {"ErrorDetail": {"PrimaryErrorCode": {"Description": "Invalid Access"}}}}}}
        assert extract_error_message(data, "rating", 401) == "Invalid Access"

    def test_error_message_generic(self):
        assert extract_error_message({}, "tracking", 502) == "UPS tracking failed with status 502"

    def test_measurement_fallback(self):
        assert normalize_measurement("3.5", 10) == "3.50"
        assert normalize_measurement(0, 10) == "10.00"
        assert normalize_measurement("abc", 4) == "4.00"

    def test_wire_ship_date(self):
        assert wire_ship_date("20250310") == "2025-03-10"
        assert wire_ship_date("2025-03-10") == "2025-03-10"


class TestShipmentPayload:

    def test_payload(self, make_order):
        order = make_order(shipping_method="02")
        payload = build_shipment_payload(order, {"weight": 2, "length": 12, "width": 10, "height": 4})
        shipment = payload["ShipmentRequest"]["Shipment"]

        assert shipment["Service"]["Code"] == "02"
        assert shipment["ShipTo"]["Name"] == "Jamie Rivera"
        assert shipment["ShipTo"]["Address"]["PostalCode"] == "07030"
        package = shipment["Package"][0]
        assert package["PackageWeight"]["Weight"] == "2.00"
        assert package["Dimensions"]["Length"] == "12.00"
        assert package["Packaging"]["Code"] == "02"
        assert package["ReferenceNumber"]["Value"] == str(order.id)

    def test_default_service_code(self, make_order):
        order = make_order(shipping_method=None)
        payload = build_shipment_payload(order, {"weight": 1, "length": 1, "width": 1, "height": 1})
        assert payload["ShipmentRequest"]["Shipment"]["Service"]["Code"] == "03"

    def test_incomplete_address(self, make_order):
        order = make_order(shipping_address={"line1": "12 Harbor St", "city": "Hoboken"})
        with pytest.raises(CarrierError, match="Order is missing shipping address details"):
            build_shipment_payload(order, {})

    def test_parse_response_requires_label(self):
        with pytest.raises(CarrierError):
            parse_shipment_response({"ShipmentResponse": {"ShipmentResults": {"PackageResults": {"TrackingNumber": "1Z"}}}})


class TestTransitAndQuotes:

    def test_ems_shape(self):
        data = {"emsResponse": {"services": [
            {"serviceLevel": "GND", "serviceLevelDescription": "UPS Ground", "businessTransitDays": "3",
             "deliveryDate": "2025-03-13", "guaranteeIndicator": "0"},
            {"serviceLevel": "1DA", "businessTransitDays": "1", "guaranteeIndicator": "1"},
        ]}}
        services = parse_transit_services(data)
        assert [s.service_code for s in services] == ["03", "01"]
        assert services[0].business_days_in_transit == 3
        assert services[1].is_guaranteed is True
        assert services[1].service_name == "UPS Next Day Air"

    def test_flat_shape(self):
        services = parse_transit_services({"services": [{"serviceCode": "12", "transitDays": 3}]})
        assert services[0].service_name == "UPS 3 Day Select"
        assert services[0].business_days_in_transit == 3

    def test_unknown_shape(self):
        with pytest.raises(CarrierError, match="Unknown Time in Transit API response structure"):
            parse_transit_services({"unexpected": True})

    def test_quote_in_cents(self):
        quote = build_quote(rated("12.34")["RateResponse"]["RatedShipment"][0], "03", None)
        assert quote.cost == 1234
        assert quote.service_name == "UPS Ground"
        assert quote.transit_days is None

    def test_transit_from_rating(self):
        info = transit_from_rating({"GuaranteedDelivery": {"BusinessDaysInTransit": "2", "DeliveryByTime": "10:30 A.M."}})
        assert info.business_days_in_transit == 2
        assert info.delivery_time == "10:30 A.M."
        assert info.is_guaranteed is True
        assert transit_from_rating({}) is None


class TestUPSClient:

    @pytest.mark.asyncio
    async def test_token_is_cached(self, ups, fake_ups):
        fake_ups.routes["/api/track/v1/details"] = lambda req: httpx.Response(200, json={"trackResponse": {}})

        await ups.fetch_tracking("1Z1")
        await ups.fetch_tracking("1Z2")

        assert fake_ups.count("/security/v1/oauth/token") == 1
        track = [r for r in fake_ups.requests if r.url.path == "/api/track/v1/details"]
        assert track[0].headers["Authorization"] == "Bearer ups-token"
        assert json.loads(track[1].content)["trackRequest"]["TrackingNumber"] == ["1Z2"]

    @pytest.mark.asyncio
    async def test_unauthorized_invalidates_token(self, ups, fake_ups):
        fake_ups.routes["/api/track/v1/details"] = lambda req: httpx.Response(
            401, json={"response": {"errors": [{"code": "250002", "message": "Invalid Authentication Information."}]}}
        )
        with pytest.raises(CarrierError, match="Invalid Authentication Information."):
            await ups.fetch_tracking("1Z1")
        assert ups._access_token is None

    @pytest.mark.asyncio
    async def test_rate_uses_transit_when_available(self, ups, fake_ups):
        fake_ups.routes["/api/rating/v2205/rate"] = lambda req: httpx.Response(200, json=rated("9.99"))
        fake_ups.routes["/api/shipments/v1/transittimes"] = lambda req: httpx.Response(200, json={
            "emsResponse": {"services": [{"serviceLevel": "GND", "businessTransitDays": "4", "deliveryDate": "2025-03-14"}]}
        })

        quote = await ups.calculate_rate(DESTINATION, weight=2)

        assert quote.cost == 999
        assert quote.transit_days == 4
        assert quote.estimated_delivery == "2025-03-14"

    @pytest.mark.asyncio
    async def test_rate_survives_transit_failure(self, ups, fake_ups):
        fake_ups.routes["/api/rating/v2205/rate"] = lambda req: httpx.Response(
            200, json=rated("9.99", GuaranteedDelivery={"BusinessDaysInTransit": "5"})
        )
        fake_ups.routes["/api/shipments/v1/transittimes"] = lambda req: httpx.Response(400, json={})

        quote = await ups.calculate_rate(DESTINATION)

        assert quote.transit_days == 5
        assert quote.is_guaranteed is True

    @pytest.mark.asyncio
    async def test_options_sorted_and_failures_dropped(self, ups, fake_ups):
        prices = {"01": "40.00", "03": "9.99", "12": "19.50"}

        def rate(request):
            code = json.loads(request.content)["RateRequest"]["Shipment"]["Service"]["Code"]
            if code == "02":
                return httpx.Response(400, json={"response": {"errors": [{"message": "Service unavailable"}]}})
            return httpx.Response(200, json=rated(prices[code], code=code))

        fake_ups.routes["/api/rating/v2205/rate"] = rate
        fake_ups.routes["/api/shipments/v1/transittimes"] = lambda req: httpx.Response(200, json={
            "emsResponse": {"services": [
                {"serviceLevel": "GND", "businessTransitDays": "5"},
                {"serviceLevel": "3DS", "businessTransitDays": "3"},
                {"serviceLevel": "1DA", "businessTransitDays": "1"},
            ]}
        })

        result = await ups.get_shipping_options(DESTINATION, service_codes=["03", "02", "12", "01"])

        assert [o.service_code for o in result.options] == ["01", "12", "03"]
        assert [o.cost for o in result.options] == [4000, 1950, 999]

    @pytest.mark.asyncio
    async def test_create_shipment_stores_pdf(self, ups, fake_ups, make_order, sample_png_bytes, temp_storage):
        label = base64.b64encode(sample_png_bytes).decode()
        fake_ups.routes["/api/shipments/v1/ship"] = lambda req: httpx.Response(200, json={
            "ShipmentResponse": {"ShipmentResults": {
                "ShipmentIdentificationNumber": "1ZSHIP",
                "PackageResults": [{"TrackingNumber": "1Z999AA1", "ShippingLabel": {"GraphicImage": label}}],
            }}
        })
        order = make_order()

        result = await ups.create_shipment(order, {"weight": 1, "length": 10, "width": 8, "height": 2})

        assert result.tracking_number == "1Z999AA1"
        assert result.label_public_id == f"labels/{order.id}.pdf"
        assert result.label_url.endswith(f"/api/files/labels/{order.id}.pdf")
        pdf = (ups._files.storage_root / result.label_public_id).read_bytes()
        assert pdf.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_client_error_does_not_trip_breaker(self, ups, fake_ups, make_order):
        fake_ups.routes["/api/shipments/v1/ship"] = lambda req: httpx.Response(
            400, json={"response": {"errors": [{"code": "120100", "message": "Missing or invalid shipper number"}]}}
        )
        for _ in range(ups.circuit_breaker.failure_threshold):
            with pytest.raises(CarrierError, match="Missing or invalid shipper number"):
                await ups.create_shipment(make_order(), {"weight": 1})
        assert ups.circuit_breaker.state == "closed"

    @pytest.mark.asyncio
    async def test_server_errors_open_breaker(self, ups, fake_ups, make_order):
        fake_ups.routes["/api/shipments/v1/ship"] = lambda req: httpx.Response(503, json={})
        for _ in range(ups.circuit_breaker.failure_threshold):
            with pytest.raises(CarrierError):
                await ups.create_shipment(make_order(), {"weight": 1})

        with pytest.raises(CircuitBreakerOpenError):
            await ups.create_shipment(make_order(), {"weight": 1})

    @pytest.mark.asyncio
    async def test_missing_credentials(self, temp_storage, monkeypatch):
        from app.services import ups_service as module

        monkeypatch.setattr(module.settings, "ups_client_id", "")
        service = UPSService(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
            files=FileService(storage_root=temp_storage),
        )
        with pytest.raises(CarrierError, match="UPS_CLIENT_ID and UPS_CLIENT_SECRET are required"):
            await service.get_token()

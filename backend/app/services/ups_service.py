"""
CustomTees Backend — UPS Carrier Service
==========================================

What:  Client for the UPS REST APIs: OAuth, Rating, Time in Transit,
       Shipping (labels) and Tracking.
Why:   Every shipping feature of the store (checkout quotes, admin label
       purchase, customer tracking page) goes through UPS.
How:   One lazily created httpx.AsyncClient, a cached OAuth token, tenacity
       retries for idempotent calls and a circuit breaker around all of them.
Who:   ShippingService, ShipmentService, TrackingService. Singleton below.

Resilience Strategy:
    - Token, rate, transit and tracking calls retry on transport errors
      (exponential backoff with jitter, before_sleep logged)
    - Shipment creation is NOT retried: a timeout after UPS accepted the
      request would buy a second label
    - Transport failures and 5xx responses count against the circuit
      breaker; 4xx responses (bad address, bad service code) do not

Endpoints (relative to settings.ups_base_url):
    /security/v1/oauth/token         client_credentials, Basic auth
    /api/rating/v2205/rate           RateRequest
    /api/shipments/v1/transittimes   flat transit request
    /api/shipments/v1/ship           ShipmentRequest, PNG 4x6 label
    /api/track/v1/details            trackRequest
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from jose import JWTError, jwt
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import CarrierError
from app.models.order import Order
from app.schemas.shipping import (
    Destination,
    RateQuote,
    ShippingOptions,
    TransitInfo,
    TransitResult,
    TransitService,
)
from app.services.circuit_breaker import CircuitBreaker
from app.services.file_service import FileService, file_service

logger = logging.getLogger(__name__)

TOKEN_PATH = "/security/v1/oauth/token"
RATING_PATH = "/api/rating/v2205/rate"
TRANSIT_PATH = "/api/shipments/v1/transittimes"
SHIPMENT_PATH = "/api/shipments/v1/ship"
TRACKING_PATH = "/api/track/v1/details"

# Tokens are refreshed this long before they expire
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)

DEFAULT_SERVICE_CODE = "03"
DEFAULT_OPTION_CODES = ("03", "12")
MAX_OPTION_CODES = 10

SERVICE_NAMES = {
    "01": "UPS Next Day Air",
    "02": "UPS 2nd Day Air",
    "03": "UPS Ground",
    "12": "UPS 3 Day Select",
    "13": "UPS Next Day Air Saver",
    "14": "UPS Next Day Air Early AM",
    "59": "UPS 2nd Day Air AM",
    "65": "UPS Saver",
}

# Time in Transit reports service levels; Rating and Shipping want codes
SERVICE_LEVEL_CODES = {
    "1DM": "14",
    "1DA": "01",
    "1DP": "13",
    "2DM": "59",
    "2DA": "02",
    "3DS": "12",
    "GND": "03",
}


# ══════════════════════════════════════════════════════════════════════════
# Payload helpers
# ══════════════════════════════════════════════════════════════════════════

def get_service_name(code: Optional[str]) -> str:
    return SERVICE_NAMES.get(code or "", f"UPS Service {code}")


def map_service_level(level: Optional[str]) -> Optional[str]:
    return SERVICE_LEVEL_CODES.get(level or "", level)


def dig(data: Any, *path: Any) -> Any:
    """Nested lookup that returns None on the first missing key or index."""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
        if current is None:
            return None
    return current


def first_item(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def extract_error_message(data: Any, operation: str, status_code: int) -> str:
    """Most specific error text UPS put in the body, else a generic one."""
    return (
        dig(data, "response", "errors", 0, "message")
        or dig(data, "Fault", "detail", "Errors", "ErrorDetail", "PrimaryErrorCode", "Description")
        or dig(data, "Fault", "faultstring")
        or dig(data, "message")
        or f"UPS {operation} failed with status {status_code}"
    )


def normalize_measurement(value: Any, fallback: float) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float("nan")
    if not math.isfinite(number) or number <= 0:
        number = float(fallback)
    return f"{number:.2f}"


def format_ship_date(ship_date: Optional[str]) -> str:
    """YYYYMMDD for the caller-facing value; today when omitted."""
    if not ship_date:
        return datetime.now(timezone.utc).strftime("%Y%m%d")
    return ship_date


def wire_ship_date(ship_date: str) -> str:
    if len(ship_date) == 8 and ship_date.isdigit():
        return f"{ship_date[:4]}-{ship_date[4:6]}-{ship_date[6:8]}"
    return ship_date


def default_origin() -> Dict[str, str]:
    return {
        "name": settings.ups_origin_name,
        "address_line": settings.ups_origin_address,
        "city": settings.ups_origin_city,
        "state": settings.ups_origin_state,
        "postal_code": settings.ups_origin_postal,
        "country": settings.ups_origin_country,
    }


def _party(origin: Dict[str, str], with_number: bool = False) -> Dict[str, Any]:
    party: Dict[str, Any] = {
        "Name": origin["name"],
        "Address": {
            "AddressLine": origin["address_line"],
            "City": origin["city"],
            "StateProvinceCode": origin["state"],
            "PostalCode": origin["postal_code"],
            "CountryCode": origin["country"],
        },
    }
    if with_number:
        party["ShipperNumber"] = settings.ups_shipper_number
    return party


def build_rate_payload(destination: Destination, weight: float, service_code: str) -> Dict[str, Any]:
    origin = default_origin()
    return {
        "RateRequest": {
            "Request": {"TransactionReference": {"CustomerContext": "CustomTees Shipping Rate"}},
            "Shipment": {
                "Shipper": _party(origin, with_number=True),
                "ShipTo": {
                    "Name": destination.name or "Customer",
                    "Address": {
                        "AddressLine": destination.address_line or destination.line1 or "",
                        "City": destination.city,
                        "StateProvinceCode": destination.state_province_code or destination.state,
                        "PostalCode": destination.postal_code,
                        "CountryCode": destination.country_code or destination.country or "US",
                    },
                },
                "ShipFrom": _party(origin),
                "Service": {"Code": service_code},
                "Package": [
                    {
                        "PackagingType": {"Code": "02"},
                        "PackageWeight": {
                            "UnitOfMeasurement": {"Code": "LBS"},
                            "Weight": str(weight),
                        },
                    }
                ],
            },
        }
    }


def build_transit_payload(
    destination: Destination, ship_date: str, weight: float, service_code: str
) -> Dict[str, Any]:
    origin = default_origin()
    return {
        "originCountryCode": origin["country"] or "US",
        "originStateProvince": origin["state"],
        "originCityName": origin["city"],
        "originPostalCode": origin["postal_code"],
        "destinationCountryCode": destination.country_code or destination.country or "US",
        "destinationStateProvince": destination.state_province_code or destination.state,
        "destinationCityName": destination.city,
        "destinationPostalCode": destination.postal_code,
        "weight": str(weight),
        "weightUnitOfMeasure": "LBS",
        "shipmentContentsValue": "100",
        "shipmentContentsCurrencyCode": "USD",
        "billType": service_code,
        "shipDate": wire_ship_date(ship_date),
    }


def build_shipment_payload(order: Order, package_info: Dict[str, Any]) -> Dict[str, Any]:
    """
    ShipmentRequest for one package billed to the shipper account.

    Raises:
        CarrierError: the address lacks line1, city or postalCode
    """
    address = order.shipping_address or {}
    if not address.get("line1") or not address.get("city") or not address.get("postalCode"):
        raise CarrierError("Order is missing shipping address details")

    order_ref = str(order.id)
    origin = default_origin()
    recipient = address.get("fullName") or (order.user.name if order.user else None) or "Customer"

    return {
        "ShipmentRequest": {
            "Request": {"TransactionReference": {"CustomerContext": f"Order {order_ref}"}},
            "Shipment": {
                "Description": f"Custom Tees Order {order_ref}",
                "Shipper": _party(origin, with_number=True),
                "ShipTo": {
                    "Name": recipient,
                    "Address": {
                        "AddressLine": address.get("line1"),
                        "City": address.get("city"),
                        "StateProvinceCode": address.get("state"),
                        "PostalCode": address.get("postalCode"),
                        "CountryCode": address.get("country") or "US",
                    },
                },
                "ShipFrom": _party(origin),
                "PaymentInformation": {
                    "ShipmentCharge": [
                        {"Type": "01", "BillShipper": {"AccountNumber": settings.ups_shipper_number}}
                    ]
                },
                "Service": {"Code": order.shipping_method or DEFAULT_SERVICE_CODE},
                "Package": [
                    {
                        "Packaging": {
                            "Code": package_info.get("packagingType") or "02",
                            "Description": package_info.get("packagingDescription")
                            or "Customer Supplied Package",
                        },
                        "ReferenceNumber": {"Value": order_ref},
                        "Dimensions": {
                            "UnitOfMeasurement": {"Code": "IN"},
                            "Length": normalize_measurement(package_info.get("length"), 10),
                            "Width": normalize_measurement(package_info.get("width"), 10),
                            "Height": normalize_measurement(package_info.get("height"), 4),
                        },
                        "PackageWeight": {
                            "UnitOfMeasurement": {"Code": "LBS"},
                            "Weight": normalize_measurement(package_info.get("weight"), 1),
                        },
                    }
                ],
            },
            "LabelSpecification": {
                "LabelImageFormat": {"Code": "PNG"},
                "LabelStockSize": {"Height": "6", "Width": "4"},
            },
        }
    }


def parse_shipment_response(data: Dict[str, Any]) -> Dict[str, str]:
    """{"tracking_number", "label_image"} from a ShipmentResponse."""
    results = dig(data, "ShipmentResponse", "ShipmentResults")
    if not results:
        raise CarrierError("UPS response missing ShipmentResults")

    package = first_item(results.get("PackageResults")) or {}
    tracking_number = package.get("TrackingNumber") or results.get("ShipmentIdentificationNumber")
    label_image = dig(package, "ShippingLabel", "GraphicImage") or dig(
        results, "ControlLogReceipt", "GraphicImage"
    )
    if not tracking_number or not label_image:
        raise CarrierError("UPS response missing tracking number or label image")
    return {"tracking_number": tracking_number, "label_image": label_image}


def parse_transit_services(data: Any) -> List[TransitService]:
    if isinstance(data, dict) and dig(data, "emsResponse", "services") is not None:
        services = []
        for svc in data["emsResponse"]["services"] or []:
            code = map_service_level(svc.get("serviceLevel")) or ""
            services.append(TransitService(
                service_code=code,
                service_level=svc.get("serviceLevel"),
                service_name=svc.get("serviceLevelDescription") or get_service_name(code),
                business_days_in_transit=to_int(svc.get("businessTransitDays")),
                delivery_date=svc.get("deliveryDate"),
                delivery_time=svc.get("deliveryTime") or svc.get("commitTime"),
                is_guaranteed=str(svc.get("guaranteeIndicator")) == "1",
            ))
        return services

    flat = data if isinstance(data, list) else (data or {}).get("services")
    if isinstance(flat, list):
        services = []
        for svc in flat:
            code = svc.get("serviceCode") or svc.get("code") or ""
            services.append(TransitService(
                service_code=code,
                service_name=get_service_name(code),
                business_days_in_transit=to_int(
                    svc.get("businessDaysInTransit") or svc.get("transitDays")
                ),
                delivery_date=svc.get("deliveryDate") or svc.get("estimatedDeliveryDate"),
                delivery_time=svc.get("deliveryTime") or svc.get("estimatedDeliveryTime"),
                is_guaranteed=bool(svc.get("isGuaranteed")),
            ))
        return services

    raise CarrierError("Unknown Time in Transit API response structure")


def transit_from_rating(rated: Dict[str, Any]) -> Optional[TransitInfo]:
    """Delivery data embedded in a rating response, used when transit lookup fails."""
    guaranteed = rated.get("GuaranteedDelivery") or {}
    scheduled = rated.get("ScheduledDelivery") or {}
    estimated = rated.get("EstimatedDelivery") or {}
    if not (guaranteed or scheduled or estimated):
        return None

    def pick(key: str) -> Any:
        return guaranteed.get(key) or scheduled.get(key) or estimated.get(key)

    return TransitInfo(
        business_days_in_transit=to_int(pick("BusinessDaysInTransit")),
        delivery_date=pick("DeliveryDate"),
        delivery_time=pick("DeliveryTime") or pick("DeliveryByTime"),
        is_guaranteed=bool(guaranteed),
    )


def build_quote(
    rated: Dict[str, Any],
    service_code: str,
    transit_info: Optional[TransitInfo],
) -> RateQuote:
    charges = rated.get("TotalCharges") or {}
    try:
        cost = round(float(charges.get("MonetaryValue") or 0) * 100)
    except (TypeError, ValueError):
        raise CarrierError("UPS returned an unreadable rate amount")

    guaranteed = rated.get("GuaranteedDelivery") or {}
    return RateQuote(
        cost=cost,
        currency=charges.get("CurrencyCode") or "USD",
        service_code=dig(rated, "Service", "Code") or service_code,
        service_name=get_service_name(service_code),
        transit_days=(transit_info.business_days_in_transit if transit_info else None)
        or to_int(guaranteed.get("BusinessDaysInTransit")),
        estimated_delivery=(transit_info.delivery_date if transit_info else None)
        or guaranteed.get("DeliveryDate"),
        delivery_time=transit_info.delivery_time if transit_info else None,
        is_guaranteed=bool(transit_info and transit_info.is_guaranteed) or bool(guaranteed),
        transit_info=transit_info,
    )


def _as_transit_info(service: TransitService) -> TransitInfo:
    return TransitInfo(
        business_days_in_transit=service.business_days_in_transit,
        delivery_date=service.delivery_date,
        delivery_time=service.delivery_time,
        is_guaranteed=service.is_guaranteed,
    )


@dataclass
class LabelResult:
    tracking_number: str
    label_url: str
    label_public_id: str


# ══════════════════════════════════════════════════════════════════════════
# UPS Service
# ══════════════════════════════════════════════════════════════════════════

class UPSService:
    """
    UPS API client with OAuth token caching.

    Token sources, in order:
        1. settings.ups_access_token while its `exp` is > 5 minutes away
        2. a token obtained earlier and cached until 5 minutes before expiry
        3. a fresh client_credentials grant
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        files: Optional[FileService] = None,
    ):
        self._http_client = http_client
        self._files = files or file_service
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
            service="UPS",
        )

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.ups_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ── Transport ─────────────────────────────────────────────────────────

    async def _send_once(self, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_http_client()
        return await client.post(url, **kwargs)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send_with_retry(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._send_once(url, **kwargs)

    # ── OAuth ─────────────────────────────────────────────────────────────

    @staticmethod
    def _token_usable(token: str) -> bool:
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            return False
        exp = to_int(claims.get("exp"))
        if exp is None:
            return False
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        return expires_at - TOKEN_REFRESH_MARGIN > datetime.now(timezone.utc)

    def invalidate_token(self) -> None:
        self._access_token = None
        self._token_expires_at = None

    async def get_token(self) -> str:
        """
        Bearer token for UPS calls.

        Raises:
            CarrierError: credentials missing, or UPS refused the grant
        """
        if settings.ups_access_token and self._token_usable(settings.ups_access_token):
            return settings.ups_access_token

        if self._access_token and self._token_expires_at:
            if datetime.now(timezone.utc) < self._token_expires_at - TOKEN_REFRESH_MARGIN:
                return self._access_token

        if not settings.ups_client_id or not settings.ups_client_secret:
            raise CarrierError(
                "UPS_CLIENT_ID and UPS_CLIENT_SECRET are required to call UPS",
                code="AUTH_CONFIG",
            )

        logger.info("Requesting new UPS access token")
        try:
            response = await self._send_with_retry(
                f"{settings.ups_base_url}{TOKEN_PATH}",
                data={"grant_type": "client_credentials"},
                auth=(settings.ups_client_id, settings.ups_client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.error("UPS token request failed: %s", str(e))
            raise CarrierError(f"Failed to generate UPS token: {e}", code="NETWORK_ERROR")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_error or not data.get("access_token"):
            message = data.get("error_description") or data.get("error") or "Failed to generate UPS access token"
            logger.error("UPS token generation failed: %d %s", response.status_code, message)
            raise CarrierError(
                f"Failed to generate UPS token: {message}",
                code="AUTH_FAILED",
                status_code=response.status_code,
            )

        expires_in = to_int(data.get("expires_in")) or 3600
        self._access_token = data["access_token"]
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        logger.info("UPS access token obtained, expires in %ds", expires_in)
        return self._access_token

    # ── Authenticated JSON calls ──────────────────────────────────────────

    async def _post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        operation: str,
        source: str,
        retryable: bool = True,
    ) -> Dict[str, Any]:
        """
        POSTs a JSON payload and returns the decoded body.

        Raises:
            CircuitBreakerOpenError: UPS failing repeatedly (503)
            CarrierError:            transport failure or UPS error response
        """
        self.circuit_breaker.can_execute()
        token = await self.get_token()

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "transId": str(int(time.time() * 1000)),
            "transactionSrc": source,
        }
        url = f"{settings.ups_base_url}{path}"
        send = self._send_with_retry if retryable else self._send_once

        start_time = time.perf_counter()
        try:
            response = await send(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error("UPS %s request failed: %s", operation, str(e))
            raise CarrierError(f"UPS {operation} request failed: {e}", code="NETWORK_ERROR")

        duration_ms = (time.perf_counter() - start_time) * 1000
        if response.status_code >= 500:
            self.circuit_breaker.record_failure()
        else:
            self.circuit_breaker.record_success()

        logger.info("UPS %s -> %d in %.0fms", operation, response.status_code, duration_ms)

        try:
            data = response.json()
        except ValueError:
            raise CarrierError(
                f"UPS {operation} API returned invalid JSON",
                status_code=response.status_code,
            )

        if response.is_error:
            if response.status_code == 401:
                self.invalidate_token()
            message = extract_error_message(data, operation, response.status_code)
            logger.warning("UPS %s error %d: %s", operation, response.status_code, message)
            raise CarrierError(
                message,
                code=dig(data, "response", "errors", 0, "code"),
                status_code=response.status_code,
            )
        return data

    # ── Time in Transit ───────────────────────────────────────────────────

    async def get_time_in_transit(
        self,
        destination: Destination,
        ship_date: Optional[str] = None,
        weight: float = 1,
        service_code: str = DEFAULT_SERVICE_CODE,
    ) -> TransitResult:
        """Transit times for every service UPS offers to the destination."""
        ship_date = format_ship_date(ship_date)
        data = await self._post_json(
            TRANSIT_PATH,
            build_transit_payload(destination, ship_date, weight, service_code),
            operation="time in transit",
            source="CustomTeesApp",
        )
        services = parse_transit_services(data)
        default = next((s for s in services if s.service_code == DEFAULT_SERVICE_CODE), None)
        return TransitResult(
            ship_date=ship_date,
            services=services,
            default_service=default or (services[0] if services else None),
        )

    # ── Rating ────────────────────────────────────────────────────────────

    async def _rated_shipment(
        self, destination: Destination, weight: float, service_code: str
    ) -> Dict[str, Any]:
        data = await self._post_json(
            RATING_PATH,
            build_rate_payload(destination, weight, service_code),
            operation="rating",
            source="CustomTeesApp",
        )
        rated = first_item(dig(data, "RateResponse", "RatedShipment"))
        if not rated:
            raise CarrierError("No rate information returned from UPS")
        return rated

    async def calculate_rate(
        self,
        destination: Destination,
        weight: float = 1,
        service_code: str = DEFAULT_SERVICE_CODE,
    ) -> RateQuote:
        """
        Price for one service, with transit information attached.

        The transit lookup is best-effort; when it fails the delivery data
        embedded in the rating response is used instead.
        """
        rated = await self._rated_shipment(destination, weight, service_code)

        transit_info: Optional[TransitInfo] = None
        try:
            transit = await self.get_time_in_transit(
                destination, weight=weight, service_code=service_code
            )
        except CarrierError as e:
            logger.warning("Time in transit lookup failed, using rating data: %s", e.message)
            transit_info = transit_from_rating(rated)
        else:
            match = next((s for s in transit.services if s.service_code == service_code), None)
            if match is not None:
                transit_info = _as_transit_info(match)
            else:
                logger.info("No transit info for service %s", service_code)

        return build_quote(rated, service_code, transit_info)

    async def get_shipping_options(
        self,
        destination: Destination,
        weight: float = 1,
        service_codes: Optional[List[str]] = None,
    ) -> ShippingOptions:
        """
        Rated options sorted fastest first, then cheapest.

        One transit call for all services plus one rating call per service
        code (Ground and 3 Day Select unless codes are requested, at most 10).
        Services whose rating fails are left out.
        """
        transit: Optional[TransitResult] = None
        try:
            transit = await self.get_time_in_transit(destination, weight=weight)
        except CarrierError as e:
            logger.warning("Transit data unavailable, returning rates only: %s", e.message)

        codes = list(service_codes[:MAX_OPTION_CODES]) if service_codes else list(DEFAULT_OPTION_CODES)

        async def quote(code: str) -> Optional[RateQuote]:
            try:
                rated = await self._rated_shipment(destination, weight, code)
            except CarrierError as e:
                logger.warning("Rate for service %s failed: %s", code, e.message)
                return None
            match = None
            if transit is not None:
                match = next((s for s in transit.services if s.service_code == code), None)
            info = _as_transit_info(match) if match else transit_from_rating(rated)
            return build_quote(rated, code, info)

        quotes = await asyncio.gather(*(quote(code) for code in codes))
        options = sorted(
            (q for q in quotes if q is not None),
            key=lambda q: (q.transit_days or 999, q.cost),
        )
        return ShippingOptions(options=options)

    # ── Shipping ──────────────────────────────────────────────────────────

    async def create_shipment(self, order: Order, package_info: Dict[str, Any]) -> LabelResult:
        """
        Buys a label for the order and stores it as labels/<order_id>.pdf.

        Requires order.user to be loaded. Never retried.
        """
        payload = build_shipment_payload(order, package_info)
        data = await self._post_json(
            SHIPMENT_PATH,
            payload,
            operation="shipment",
            source="CustomTeesAdmin",
            retryable=False,
        )
        parsed = parse_shipment_response(data)
        logger.info("UPS shipment created for order %s: %s", order.id, parsed["tracking_number"])

        label = await self._files.store_label_pdf(str(order.id), parsed["label_image"])
        return LabelResult(
            tracking_number=parsed["tracking_number"],
            label_url=label["url"],
            label_public_id=label["public_id"],
        )

    # ── Tracking ──────────────────────────────────────────────────────────

    async def fetch_tracking(self, tracking_number: str) -> Dict[str, Any]:
        """Raw trackResponse for TrackingService to normalize."""
        return await self._post_json(
            TRACKING_PATH,
            {"locale": "en_US", "trackRequest": {"TrackingNumber": [tracking_number]}},
            operation="tracking",
            source="CustomTeesTrack",
        )


# ── Singleton Instance ────────────────────────────────────────────────────
ups_service = UPSService()

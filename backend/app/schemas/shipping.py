"""
Shipping quote, tracking and payment verification schemas.

Request models accept camelCase (what the storefront sends) or snake_case.
Required-ness of `destination`, city and postal code is enforced by the
shipping service so the client gets the established 400 messages instead
of a 422 validation dump.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.schemas.common import APIModel
from app.schemas.order import OrderResponse


# ══════════════════════════════════════════════════════════════════════════
# Shipping quotes
# ══════════════════════════════════════════════════════════════════════════

class Destination(APIModel):
    name: Optional[str] = None
    address_line: Optional[str] = None
    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    state_province_code: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None


class RateRequest(APIModel):
    destination: Optional[Destination] = None
    weight: Optional[float] = Field(default=None, gt=0)
    service_code: Optional[str] = None


class TransitRequest(APIModel):
    destination: Optional[Destination] = None
    # YYYYMMDD or YYYY-MM-DD; today when omitted
    ship_date: Optional[str] = None
    weight: Optional[float] = Field(default=None, gt=0)


class ShippingOptionsRequest(APIModel):
    destination: Optional[Destination] = None
    weight: Optional[float] = Field(default=None, gt=0)
    service_codes: Optional[List[str]] = None


class TransitInfo(APIModel):
    business_days_in_transit: Optional[int] = None
    delivery_date: Optional[str] = None
    delivery_time: Optional[str] = None
    is_guaranteed: bool = False


class TransitService(TransitInfo):
    service_code: str
    service_level: Optional[str] = None
    service_name: str


class TransitResult(APIModel):
    ship_date: str
    services: List[TransitService] = Field(default_factory=list)
    default_service: Optional[TransitService] = None


class RateQuote(APIModel):
    cost: int = Field(description="Total charge in cents")
    currency: str = "USD"
    service_code: Optional[str] = None
    service_name: str
    transit_days: Optional[int] = None
    estimated_delivery: Optional[str] = None
    delivery_time: Optional[str] = None
    is_guaranteed: bool = False
    transit_info: Optional[TransitInfo] = None


class ShippingOptions(APIModel):
    options: List[RateQuote] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Tracking
# ══════════════════════════════════════════════════════════════════════════

class TrackingEvent(APIModel):
    status: str
    code: Optional[str] = None
    description: Optional[str] = None
    location: str = ""
    date: Optional[datetime] = None


class TrackingDetails(APIModel):
    tracking_number: str
    shipment_status: str
    milestone_key: Optional[str] = None
    latest_event: Optional[TrackingEvent] = None
    estimated_delivery: Optional[datetime] = None
    events: List[TrackingEvent] = Field(default_factory=list)


class SyncResult(APIModel):
    synced: int


# ══════════════════════════════════════════════════════════════════════════
# Payments
# ══════════════════════════════════════════════════════════════════════════

class SquareVerifyRequest(APIModel):
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    square_order_id: Optional[str] = None
    # "cancelled" when the customer backed out of Square checkout
    status: Optional[str] = None


class PaymentVerification(APIModel):
    order: Optional[OrderResponse] = None
    payment_status: str
    square_status: Optional[str] = None
    message: Optional[str] = None

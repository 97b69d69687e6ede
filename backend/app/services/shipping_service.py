"""
CustomTees Backend — Shipping Quote Service
=============================================

What:  Checkout-facing shipping quotes: a single rate, transit times, and
       the list of rated options.
Who:   routes/shipping.py.

Validation (400, checked in this order):
    no destination                      → "Destination address is required"
    destination without city/postalCode → "City and postal code are required"
Weight defaults to 1 lb and the service code to UPS Ground ("03").
"""

import logging
from typing import Optional

from app.exceptions import ValidationError
from app.schemas.shipping import (
    Destination,
    RateQuote,
    RateRequest,
    ShippingOptions,
    ShippingOptionsRequest,
    TransitRequest,
    TransitResult,
)
from app.services.ups_service import DEFAULT_SERVICE_CODE, UPSService, ups_service

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT_LBS = 1.0


def require_destination(destination: Optional[Destination]) -> Destination:
    if destination is None:
        raise ValidationError("Destination address is required", field="destination")
    if not destination.city or not destination.postal_code:
        raise ValidationError("City and postal code are required", field="destination")
    return destination


class ShippingService:

    def __init__(self, carrier: Optional[UPSService] = None):
        self.carrier = carrier or ups_service

    async def rate(self, request: RateRequest) -> RateQuote:
        destination = require_destination(request.destination)
        service_code = request.service_code or DEFAULT_SERVICE_CODE
        logger.info("Rating service %s to %s %s", service_code, destination.city, destination.postal_code)
        return await self.carrier.calculate_rate(
            destination,
            weight=request.weight or DEFAULT_WEIGHT_LBS,
            service_code=service_code,
        )

    async def transit(self, request: TransitRequest) -> TransitResult:
        destination = require_destination(request.destination)
        return await self.carrier.get_time_in_transit(
            destination,
            ship_date=request.ship_date,
            weight=request.weight or DEFAULT_WEIGHT_LBS,
        )

    async def options(self, request: ShippingOptionsRequest) -> ShippingOptions:
        destination = require_destination(request.destination)
        return await self.carrier.get_shipping_options(
            destination,
            weight=request.weight or DEFAULT_WEIGHT_LBS,
            service_codes=request.service_codes,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
shipping_service = ShippingService()

"""
Order and shipment response schemas.

ShipmentResponse is the flat envelope the admin label/handoff buttons read:
    {"success": true, "trackingNumber": ..., "labelUrl": ..., "labelPublicId": ...,
     "status": ..., "shipmentStatus": ..., "reused": false}
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from app.schemas.common import APIModel


class OrderResponse(APIModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    status: str
    shipment_status: str

    shipping_address: Optional[Dict[str, Any]] = None
    shipping_method: Optional[str] = None
    shipping_cost: Optional[int] = None
    total: Optional[float] = None

    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    label_public_id: Optional[str] = None
    carrier_handoff_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    tracking_history: List[Dict[str, Any]] = Field(default_factory=list)
    tracking_summary: Optional[Dict[str, Any]] = None
    last_tracking_sync_at: Optional[datetime] = None
    tracking_email_sent_at: Optional[datetime] = None
    delivery_email_sent_at: Optional[datetime] = None

    payment_method: Optional[str] = None
    payment: Dict[str, Any] = Field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ShipmentResponse(APIModel):
    success: bool = True
    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    label_public_id: Optional[str] = None
    status: str
    shipment_status: str
    reused: bool = False
    # handoff only
    carrier_handoff_at: Optional[datetime] = None
    data: Optional[OrderResponse] = None

"""
Delivery Pydantic schemas.

Request bodies reject unknown fields. Three response shapes exist:
``DeliveryResponse`` (create/update/list), ``DeliveryDetailResponse``
(owner detail view) and ``PublicTrackingResponse`` (tracking-code lookup,
no phone numbers or internal ids).
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.models.order_enums import OrderStatus
from backend.app.schemas.common import UtcDatetime


# --- Requests ---

class DeliveryCreate(BaseModel):
    """Schema for creating a delivery for a paid order."""
    model_config = ConfigDict(extra="forbid")

    order_id: int = Field(..., description="Order to ship")
    driver_id: Optional[int] = Field(None, description="Assigned driver")
    shipping_provider: str = Field("internal", min_length=1, max_length=50)
    estimated_delivery_date: Optional[UtcDatetime] = Field(
        None, description="Defaults to two days from now"
    )


class DeliveryUpdate(BaseModel):
    """Schema for moving a delivery and/or editing its free-text fields."""
    model_config = ConfigDict(extra="forbid")

    status: Optional[DeliveryStatus] = None
    delivery_notes: Optional[str] = Field(None, max_length=2000)
    current_location: Optional[str] = Field(None, max_length=255)
    estimated_delivery_date: Optional[UtcDatetime] = None


# --- Nested summaries ---

class MemberSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    full_name: str
    phone: Optional[str] = None


class DeliveryOrderSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    member_id: int
    total_amount: float
    shipping_address: Optional[Dict[str, Any]] = None
    status: OrderStatus
    member: Optional[MemberSummary] = None


class DriverSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    phone: str
    vehicle_type: str
    license_plate: str


class DeliveryItemSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_name: str
    quantity: int
    subtotal: float


class TrackingEvent(BaseModel):
    status: DeliveryStatus
    timestamp: UtcDatetime
    title: str
    description: str
    location: str
    active: bool = True


class StatusInfo(BaseModel):
    title: str
    description: str
    icon: str


# --- Responses ---

class DeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    tracking_number: str
    status: DeliveryStatus
    shipping_provider: str
    driver_id: Optional[int]
    shipping_address: Optional[Dict[str, Any]]
    current_location: Optional[str]
    delivery_notes: Optional[str]
    estimated_delivery_date: Optional[UtcDatetime]
    pickup_time: Optional[UtcDatetime]
    in_transit_time: Optional[UtcDatetime]
    actual_delivery_date: Optional[UtcDatetime]
    created_at: UtcDatetime
    updated_at: UtcDatetime
    order: Optional[DeliveryOrderSummary] = None
    driver: Optional[DriverSummary] = None


class DeliveryDetailResponse(DeliveryResponse):
    items: List[DeliveryItemSummary] = []
    tracking_history: List[TrackingEvent] = []
    estimated_remaining_time: Optional[int] = Field(None, description="Hours until the estimate, floored at 0")
    is_delayed: bool = False
    allowed_transitions: List[DeliveryStatus] = []


class PublicOrderInfo(BaseModel):
    order_number: str
    total_amount: float
    recipient: Optional[str] = None
    address: Optional[Dict[str, Any]] = None


class PublicDriverInfo(BaseModel):
    name: str
    vehicle: str


class ShippingInfo(BaseModel):
    provider: str
    estimated_delivery: Optional[UtcDatetime] = None
    actual_delivery: Optional[UtcDatetime] = None
    is_delayed: bool
    estimated_remaining_time: Optional[int] = None


class PublicTrackingResponse(BaseModel):
    tracking_number: str
    current_status: DeliveryStatus
    current_status_info: StatusInfo
    order_info: Optional[PublicOrderInfo] = None
    driver_info: Optional[PublicDriverInfo] = None
    shipping_info: ShippingInfo
    tracking_events: List[TrackingEvent]
    items: List[DeliveryItemSummary] = []

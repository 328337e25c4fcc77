"""
Order Pydantic schemas.

Defines request and response models for the order desk.
"""

from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from backend.app.models.order_enums import OrderStatus, PaymentStatus, PaymentMethod
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.schemas.common import UtcDatetime


class ShippingAddress(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipient_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    street: str = Field(..., min_length=1, max_length=500)
    village: Optional[str] = Field(None, max_length=100)
    district: Optional[str] = Field(None, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    province: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=10)


class OrderItemCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1, description="Number of units")
    unit_price: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    weight_grams: int = Field(0, ge=0, description="Weight of one unit in grams")


class OrderCreate(BaseModel):
    """Schema for placing an order."""
    model_config = ConfigDict(extra="forbid")

    shipping_address: ShippingAddress
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.COD
    notes: Optional[str] = Field(None, max_length=1000)


class PaymentConfirm(BaseModel):
    """Schema for confirming payment of a pending order."""
    model_config = ConfigDict(extra="forbid")

    payment_method: Optional[PaymentMethod] = None
    payment_proof_url: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_name: str
    quantity: int
    unit_price: float
    weight_grams: int
    subtotal: float


class OrderDeliverySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: DeliveryStatus
    tracking_number: str
    estimated_delivery_date: Optional[UtcDatetime] = None
    actual_delivery_date: Optional[UtcDatetime] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    member_id: int
    tenant_id: Optional[int]
    subtotal_amount: float
    shipping_fee: float
    admin_fee: float
    total_amount: float
    shipping_address: Dict[str, Any]
    notes: Optional[str]
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_date: Optional[UtcDatetime]
    status: OrderStatus
    created_at: UtcDatetime
    updated_at: UtcDatetime
    items: List[OrderItemResponse] = []
    total_items: int = 0
    delivery: Optional[OrderDeliverySummary] = None

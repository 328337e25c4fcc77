"""
Delivery database model.

One delivery per order (``order_id`` is unique). Deliveries are never deleted;
cancelled and failed ones stay for the record.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.delivery_enums import DeliveryStatus


class Delivery(Base):
    __tablename__ = "order_deliveries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False, index=True)
    tracking_number = Column(String(50), unique=True, nullable=False, index=True)

    status = Column(Enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False, index=True)
    shipping_provider = Column(String(50), nullable=False, default="internal")

    # Driver assignment (optional, referenced not owned)
    driver_id = Column(Integer, ForeignKey("delivery_drivers.id"), nullable=True, index=True)

    # Copied from the order at creation
    shipping_address = Column(JSON, nullable=True)

    current_location = Column(String(255), nullable=True)
    delivery_notes = Column(Text, nullable=True)

    # Milestones
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    pickup_time = Column(DateTime(timezone=True), nullable=True)
    in_transit_time = Column(DateTime(timezone=True), nullable=True)
    actual_delivery_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Delivery(id={self.id}, tracking='{self.tracking_number}', status='{self.status.value}')>"

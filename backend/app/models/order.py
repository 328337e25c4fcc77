"""
Order and order item database models.

Orders are placed by members; payment confirmation and the delivery
lifecycle move them forward.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.order_enums import OrderStatus, PaymentStatus, PaymentMethod


class Order(Base):
    """
    Order model.

    Owned by the member who created it (``member_id``).
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)

    # Ownership
    member_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("koperasi.id"), nullable=True, index=True)

    # Amounts (IDR)
    subtotal_amount = Column(Numeric(14, 2), nullable=False)
    shipping_fee = Column(Numeric(14, 2), nullable=False, default=0)
    admin_fee = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False)

    # Shipping address as submitted at checkout (street, city, postal_code, ...)
    shipping_address = Column(JSON, nullable=False)
    notes = Column(Text, nullable=True)

    # Payment
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.COD, nullable=False)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_proof_url = Column(String(500), nullable=True)

    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING_PAYMENT, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status.value}')>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    weight_grams = Column(Integer, nullable=False, default=0)
    subtotal = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, product='{self.product_name}', qty={self.quantity})>"

"""
Order-related enumerations.
"""

import enum


class OrderStatus(str, enum.Enum):
    """
    Order status enumeration.

    Status flow:
        pending_payment → paid → processing → shipped → delivered
        pending_payment / paid → cancelled

    ``shipped`` and ``delivered`` are only ever set by the delivery lifecycle.
    """
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"
    E_WALLET = "e_wallet"
    SAVINGS_BALANCE = "savings_balance"

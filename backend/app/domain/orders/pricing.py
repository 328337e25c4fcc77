"""
Order totals and order numbers.

Amounts are IDR held as ``Decimal``. Shipping is a flat base fee for the
first kilogram plus a per-kilogram fee for every started kilogram after it.
"""

import math
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Iterable, NamedTuple, Optional

from backend.app.core.clock import utcnow
from backend.app.core.config import settings
from backend.app.schemas.order import OrderItemCreate

ORDER_NUMBER_PREFIX = "SIN"
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class OrderTotals(NamedTuple):
    subtotal: Decimal
    shipping_fee: Decimal
    admin_fee: Decimal
    total: Decimal
    total_weight_grams: int


def line_subtotal(item: OrderItemCreate) -> Decimal:
    return Decimal(item.unit_price) * item.quantity


def shipping_fee_for_weight(total_grams: int) -> Decimal:
    """Base fee covers the first kg (and weightless orders)."""
    kilograms = math.ceil(total_grams / 1000) if total_grams > 0 else 0
    extra_kg = max(0, kilograms - 1)
    return Decimal(settings.shipping_base_fee + settings.shipping_fee_per_extra_kg * extra_kg)


def compute_totals(items: Iterable[OrderItemCreate]) -> OrderTotals:
    items = list(items)
    subtotal = sum((line_subtotal(item) for item in items), Decimal("0"))
    weight = sum(item.weight_grams * item.quantity for item in items)
    shipping = shipping_fee_for_weight(weight)
    admin = Decimal(settings.admin_fee)
    return OrderTotals(
        subtotal=subtotal,
        shipping_fee=shipping,
        admin_fee=admin,
        total=subtotal + shipping + admin,
        total_weight_grams=weight,
    )


def generate_order_number(now: Optional[datetime] = None) -> str:
    """``SIN-<last 8 digits of epoch ms>-<4 x [A-Z0-9]>``"""
    now = now or utcnow()
    timestamp = str(int(now.timestamp() * 1000))[-8:]
    suffix = "".join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(4))
    return f"{ORDER_NUMBER_PREFIX}-{timestamp}-{suffix}"
